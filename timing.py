"""Timing decomposition and display formatting for probe results."""
from email.utils import formatdate
from typing import Dict, Union

from models import TimingRecord

# code, flag, location
REGION_DETAILS: Dict[str, Dict[str, str]] = {
    "ams": {"code": "ams", "flag": "\U0001F1F3\U0001F1F1", "location": "Amsterdam, Netherlands"},
    "arn": {"code": "arn", "flag": "\U0001F1F8\U0001F1EA", "location": "Stockholm, Sweden"},
    "bom": {"code": "bom", "flag": "\U0001F1EE\U0001F1F3", "location": "Mumbai, India"},
    "cdg": {"code": "cdg", "flag": "\U0001F1EB\U0001F1F7", "location": "Paris, France"},
    "fra": {"code": "fra", "flag": "\U0001F1E9\U0001F1EA", "location": "Frankfurt, Germany"},
    "gru": {"code": "gru", "flag": "\U0001F1E7\U0001F1F7", "location": "Sao Paulo, Brazil"},
    "hkg": {"code": "hkg", "flag": "\U0001F1ED\U0001F1F0", "location": "Hong Kong, Hong Kong"},
    "iad": {"code": "iad", "flag": "\U0001F1FA\U0001F1F8", "location": "Ashburn, Virginia, USA"},
    "jnb": {"code": "jnb", "flag": "\U0001F1FF\U0001F1E6", "location": "Johannesburg, South Africa"},
    "lax": {"code": "lax", "flag": "\U0001F1FA\U0001F1F8", "location": "Los Angeles, California, USA"},
    "lhr": {"code": "lhr", "flag": "\U0001F1EC\U0001F1E7", "location": "London, United Kingdom"},
    "nrt": {"code": "nrt", "flag": "\U0001F1EF\U0001F1F5", "location": "Tokyo, Japan"},
    "ord": {"code": "ord", "flag": "\U0001F1FA\U0001F1F8", "location": "Chicago, Illinois, USA"},
    "sin": {"code": "sin", "flag": "\U0001F1F8\U0001F1EC", "location": "Singapore, Singapore"},
    "syd": {"code": "syd", "flag": "\U0001F1E6\U0001F1FA", "location": "Sydney, Australia"},
    "yyz": {"code": "yyz", "flag": "\U0001F1E8\U0001F1E6", "location": "Toronto, Canada"},
}

Number = Union[int, float]


def phase_durations(timing: TimingRecord) -> Dict[str, Number]:
    """Duration of each phase (done - start), keyed dns/connection/tls/ttfb/transfer."""
    return {phase: done - start for phase, (start, done) in timing.phase_bounds().items()}


def total_latency(timing: TimingRecord) -> Number:
    return sum(phase_durations(timing).values())


def phase_widths(timing: TimingRecord) -> Dict[str, Dict[str, float]]:
    """Percentage width of each phase with the cumulative offset of the phases before it.

    A zero total yields zero widths and offsets rather than NaN.
    """
    durations = phase_durations(timing)
    total = sum(durations.values())

    widths = {}
    offset = 0.0
    for phase, duration in durations.items():
        width = (duration / total) * 100 if total > 0 else 0.0
        widths[phase] = {"offset": offset, "width": width}
        offset += width
    return widths


def timing_breakdown(timing: TimingRecord) -> Dict[str, object]:
    """Durations, widths and total latency of one probe, as served to dashboards."""
    return {
        "phases": phase_durations(timing),
        "widths": phase_widths(timing),
        "total": total_latency(timing),
    }


def latency_formatter(value: Number) -> str:
    text = f"{value:,.3f}".rstrip("0").rstrip(".")
    return f"{text}ms"


def timestamp_formatter(timestamp: Number) -> str:
    """Epoch milliseconds as an RFC 7231 GMT date."""
    return formatdate(timestamp / 1000, usegmt=True)


def region_formatter(region: str, type: str = "short") -> str:
    details = REGION_DETAILS.get(region)
    if details is None:
        return region.upper()
    if type == "short":
        return f"{details['code']} {details['flag']}"
    return details["location"]
