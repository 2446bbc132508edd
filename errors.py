"""Exception taxonomy for geoping.

Per-region probe failures derive from ProbeError and are captured into that
region's outcome by the fan-out. The remaining errors surface to the caller.
"""
from typing import Any, List, Optional


class GeoPingError(Exception):
    """Base error carrying a machine-parseable code and a readable message."""

    error_code = "geoping_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProbeError(GeoPingError):
    """A single region's probe failed."""

    error_code = "probe_error"

    def __init__(self, region: str, message: str):
        super().__init__(message)
        self.region = region


class InvalidProbeResponse(ProbeError):
    """The probing service answered with a payload that breaks the CheckResult contract."""

    error_code = "invalid_probe_response"

    def __init__(self, region: str, payload: Any, detail: str):
        super().__init__(region, f"Invalid probe response from {region}: {detail}")
        self.payload = payload
        self.detail = detail


class ProbeTimeout(ProbeError):
    error_code = "probe_timeout"

    def __init__(self, region: str, timeout: float):
        super().__init__(region, f"Probe from {region} exceeded {timeout}s")
        self.timeout = timeout


class ProbeRequestFailed(ProbeError):
    """Transport failure talking to the probing service."""

    error_code = "probe_request_failed"

    def __init__(self, region: str, detail: str):
        super().__init__(region, f"Probe request to {region} failed: {detail}")
        self.detail = detail


class AllRegionsFailed(GeoPingError):
    """Every configured region failed; `failures` holds one RegionFailure per region."""

    error_code = "all_regions_failed"

    def __init__(self, failures: List[Any]):
        regions = ", ".join(f.region for f in failures) or "none configured"
        super().__init__(f"Every region failed: {regions}")
        self.failures = failures


class SessionValidationError(GeoPingError):
    """An assembled or stored session does not match the CheckSession contract."""

    error_code = "session_validation_error"

    def __init__(self, detail: str, payload: Optional[Any] = None):
        super().__init__(f"Session validation failed: {detail}")
        self.detail = detail
        self.payload = payload


class CacheUnavailable(GeoPingError):
    error_code = "cache_unavailable"

    def __init__(self, detail: str):
        super().__init__(f"Cache store unavailable: {detail}")
        self.detail = detail


__all__ = [
    "GeoPingError",
    "ProbeError",
    "InvalidProbeResponse",
    "ProbeTimeout",
    "ProbeRequestFailed",
    "AllRegionsFailed",
    "SessionValidationError",
    "CacheUnavailable",
]
