"""Unit tests for the session store write and read paths."""

import json
import re
from unittest.mock import AsyncMock, MagicMock

import pytest
import requests

from cache import MemoryCacheStore
from errors import (
    AllRegionsFailed,
    CacheUnavailable,
    InvalidProbeResponse,
    ProbeRequestFailed,
    SessionValidationError,
)
from fanout import FanOutOrchestrator
from models import CheckSession, Method, ProbeOptions
from probe import ProbeClient
from sessions import SESSION_TTL_SECONDS, SessionStore, generate_session_id

URL = "https://example.com/health"


@pytest.fixture
def cache(clock):
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def make_store(fake_probe_client, regions, cache, clock):
    created = []

    def _make(failures=None, cache_store=None):
        client = fake_probe_client(failures=failures)
        orchestrator = FanOutOrchestrator(client, regions, deadline=5.0)
        created.append(orchestrator)
        store = SessionStore(orchestrator, cache_store or cache, regions, clock=clock)
        return store, client

    yield _make
    for orchestrator in created:
        orchestrator.shutdown()


class TestSessionIds:
    def test_format(self):
        assert re.fullmatch(r"[0-9a-f]{32}", generate_session_id())

    def test_no_collisions(self):
        ids = {generate_session_id() for _ in range(10_000)}

        assert len(ids) == 10_000


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_round_trip(self, make_store, regions, clock):
        store, _ = make_store()

        session_id = await store.create_session(URL)
        session = await store.get_session(session_id)

        assert isinstance(session, CheckSession)
        assert session.url == URL
        assert session.method == Method.GET
        assert session.time == int(clock.now * 1000)
        assert len(session.checks) == len(regions)
        assert session.failures == []

    @pytest.mark.asyncio
    async def test_each_call_creates_new_session(self, make_store):
        store, client = make_store()

        first = await store.create_session(URL)
        second = await store.create_session(URL)

        assert first != second
        assert len(client.calls) == 6

    @pytest.mark.asyncio
    async def test_partial_failure_stores_successes_and_failures(self, make_store):
        failures = {"gru": InvalidProbeResponse("gru", {}, "status: Field required")}
        store, _ = make_store(failures=failures)

        session = await store.get_session(await store.create_session(URL))

        assert [check.region for check in session.checks] == ["ams", "syd"]
        assert len(session.failures) == 1
        assert session.failures[0].region == "gru"
        assert session.failures[0].error == "invalid_probe_response"

    @pytest.mark.asyncio
    async def test_all_regions_failed_writes_nothing(self, make_store, regions, cache):
        failures = {region: ProbeRequestFailed(region, "refused") for region in regions}
        store, _ = make_store(failures=failures)

        with pytest.raises(AllRegionsFailed) as exc_info:
            await store.create_session(URL)

        assert len(exc_info.value.failures) == 3
        assert (await cache.health_check())["entries"] == 0

    @pytest.mark.asyncio
    async def test_stored_with_one_day_ttl(self, make_store, regions):
        cache = AsyncMock()
        store, _ = make_store(cache_store=cache)

        session_id = await store.create_session(URL)

        key, value, ttl = cache.set.call_args.args
        assert key == session_id
        assert ttl == SESSION_TTL_SECONDS == 86_400
        stored = json.loads(value)
        assert stored["url"] == URL
        assert stored["checks"][0]["timing"]["tlsHandshakeStart"] == 30
        assert [check["region"] for check in stored["checks"]] == regions

    @pytest.mark.asyncio
    async def test_session_expires(self, make_store, clock):
        store, _ = make_store()
        session_id = await store.create_session(URL)

        clock.advance(SESSION_TTL_SECONDS)

        assert await store.get_session(session_id) is None

    @pytest.mark.asyncio
    async def test_method_recorded(self, make_store):
        store, client = make_store()
        options = ProbeOptions(method=Method.POST, body="{}")

        session = await store.get_session(await store.create_session(URL, options))

        assert session.method == Method.POST
        assert client.calls[0][2] is options

    @pytest.mark.asyncio
    async def test_cache_write_failure_propagates(self, make_store):
        cache = AsyncMock()
        cache.set.side_effect = CacheUnavailable("connection refused")
        store, _ = make_store(cache_store=cache)

        with pytest.raises(CacheUnavailable):
            await store.create_session(URL)

    @pytest.mark.asyncio
    async def test_assembled_session_is_validated(self, make_store):
        store, _ = make_store()
        store.regions = ["fra"]

        with pytest.raises(SessionValidationError):
            await store.create_session(URL)


class TestGetSession:
    @pytest.mark.asyncio
    async def test_missing_id_returns_none(self, make_store):
        store, _ = make_store()

        assert await store.get_session("nonexistent-id") is None

    @pytest.mark.asyncio
    async def test_corrupt_payload_raises(self, make_store, cache):
        store, _ = make_store()
        await cache.set("corrupt", '{"url": "", "time": 1, "checks": []}', 60)

        with pytest.raises(SessionValidationError) as exc_info:
            await store.get_session("corrupt")

        assert exc_info.value.payload == '{"url": "", "time": 1, "checks": []}'

    @pytest.mark.asyncio
    async def test_non_json_payload_raises(self, make_store, cache):
        store, _ = make_store()
        await cache.set("garbage", "not json at all", 60)

        with pytest.raises(SessionValidationError):
            await store.get_session("garbage")

    @pytest.mark.asyncio
    async def test_cache_outage_is_not_a_miss(self, make_store):
        cache = AsyncMock()
        cache.get.side_effect = CacheUnavailable("timed out")
        store, _ = make_store(cache_store=cache)

        with pytest.raises(CacheUnavailable):
            await store.get_session("abc")

    @pytest.mark.asyncio
    async def test_read_does_not_refresh_ttl(self, make_store, clock):
        store, _ = make_store()
        session_id = await store.create_session(URL)

        clock.advance(SESSION_TTL_SECONDS - 1)
        assert await store.get_session(session_id) is not None

        clock.advance(1)
        assert await store.get_session(session_id) is None


class TestNonFiniteProbeValues:
    @pytest.mark.asyncio
    async def test_session_with_nan_latency_reads_back(self, check_payload, regions, cache, clock):
        def post(endpoint, **kwargs):
            response = MagicMock()
            response.status_code = 200
            payload = check_payload
            if endpoint.endswith("/gru"):
                payload = dict(check_payload, latency=float("nan"))
            text = json.dumps(payload)
            response.json.side_effect = lambda: json.loads(text)
            return response

        http_session = MagicMock(spec=requests.Session)
        http_session.post.side_effect = post
        orchestrator = FanOutOrchestrator(
            ProbeClient("https://checker.example.dev/ping", "s3cret", session=http_session, regions=regions),
            regions,
            deadline=5.0
        )
        store = SessionStore(orchestrator, cache, regions, clock=clock)
        try:
            session = await store.get_session(await store.create_session(URL))
        finally:
            orchestrator.shutdown()

        assert [check.region for check in session.checks] == ["ams", "syd"]
        assert [failure.region for failure in session.failures] == ["gru"]
        assert session.failures[0].error == "invalid_probe_response"
