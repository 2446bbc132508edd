"""
Pytest configuration and fixtures for geoping tests.

Environment defaults are set before any project module is imported so that
config validation runs in development mode with an in-memory cache.
"""

import os
import threading
import time

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOW_DEFAULT_TOKEN", "true")
os.environ.setdefault("PROBE_SECRET", "test-probe-secret")
os.environ.setdefault("TOKEN_SECRET", "test-token-secret-0123456789abcdef0123")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("PROBE_REGIONS", '["ams", "gru", "syd"]')

import pytest

from models import CheckResult, RegionCheck

# =========================================================================
# Fakes
# =========================================================================


class FakeProbeClient:
    """Stands in for ProbeClient; per-region failures and delays are configurable."""

    def __init__(self, payload, failures=None, delays=None):
        self.payload = payload
        self.failures = failures or {}
        self.delays = delays or {}
        self.calls = []
        self._lock = threading.Lock()

    def probe(self, url, region, options=None):
        with self._lock:
            self.calls.append((url, region, options))
        if region in self.delays:
            time.sleep(self.delays[region])
        if region in self.failures:
            raise self.failures[region]
        return RegionCheck(region=region, **dict(CheckResult.model_validate(self.payload)))


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now: float = 1_760_868_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


# =========================================================================
# Sample data
# =========================================================================


@pytest.fixture
def regions():
    return ["ams", "gru", "syd"]


@pytest.fixture
def timing_payload():
    """Timing with durations dns=10, connection=20, tls=30, ttfb=100, transfer=40."""
    return {
        "dnsStart": 0,
        "dnsDone": 10,
        "connectStart": 10,
        "connectDone": 30,
        "tlsHandshakeStart": 30,
        "tlsHandshakeDone": 60,
        "firstByteStart": 60,
        "firstByteDone": 160,
        "transferStart": 160,
        "transferDone": 200,
    }


@pytest.fixture
def check_payload(timing_payload):
    """A valid probing service response."""
    return {
        "status": 200,
        "latency": 200,
        "headers": {"Content-Type": "text/html; charset=utf-8", "server": "nginx"},
        "time": 1_760_868_000_000,
        "timing": timing_payload,
        "body": None,
    }


@pytest.fixture
def fake_probe_client(check_payload):
    """Factory for FakeProbeClient bound to the sample payload."""

    def _make(failures=None, delays=None):
        return FakeProbeClient(check_payload, failures=failures, delays=delays)

    return _make


@pytest.fixture
def clock():
    return FakeClock()
