"""Session store: build, persist and retrieve cached check sessions."""
import time
import logging
import secrets
from typing import Callable, Iterable, Optional

from errors import AllRegionsFailed, SessionValidationError
from fanout import FanOutOrchestrator
from models import CheckSession, ProbeOptions, parse_session

logger = logging.getLogger("geoping.sessions")

SESSION_TTL_SECONDS = 86_400  # 60 * 60 * 24 = 1d


def generate_session_id() -> str:
    """128 random bits as 32 lowercase hex characters."""
    return secrets.token_hex(16)


class SessionStore:
    """Creates sessions from a regional fan-out and serves them back by id.

    Sessions are written once under a fresh id and expire with the cache TTL.
    Nothing is kept in-process between calls.
    """

    def __init__(self, orchestrator: FanOutOrchestrator, cache, regions: Iterable[str],
                 ttl_seconds: int = SESSION_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.orchestrator = orchestrator
        self.cache = cache
        self.regions = list(regions)
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    async def create_session(self, url: str, options: Optional[ProbeOptions] = None) -> str:
        """Probe `url` from every region, cache the session and return its id.

        Every call fans out again and yields a new id.

        Raises:
            AllRegionsFailed: no region produced a check; nothing is written.
            SessionValidationError: the assembled session breaks its contract.
            CacheUnavailable: the cache store could not be written.
        """
        options = options or ProbeOptions()
        created_at = int(self._clock() * 1000)

        outcomes = await self.orchestrator.probe_all_regions(url, options)
        checks = [outcome.check for outcome in outcomes if outcome.ok]
        failures = [outcome.failure for outcome in outcomes if not outcome.ok]

        if not checks:
            logger.error(f"Session for {url} not created: all {len(outcomes)} regions failed")
            raise AllRegionsFailed(failures)

        session = CheckSession(
            url=url,
            time=created_at,
            method=options.method,
            checks=checks,
            failures=failures
        )
        payload = session.model_dump(mode="json", by_alias=True)
        parsed = parse_session(payload, self.regions)
        if not parsed.success:
            logger.error(f"Assembled session for {url} failed validation: {parsed.error}")
            raise SessionValidationError(parsed.error, payload)

        session_id = generate_session_id()
        await self.cache.set(
            session_id,
            parsed.data.model_dump_json(by_alias=True),
            self.ttl_seconds
        )

        logger.info(
            f"Session {session_id} stored for {url}: "
            f"{len(checks)} checks, {len(failures)} failures"
        )
        return session_id

    async def get_session(self, session_id: str) -> Optional[CheckSession]:
        """Return the cached session, or None when it never existed or has expired.

        Raises:
            SessionValidationError: the stored payload no longer matches the contract.
            CacheUnavailable: the cache store could not be read.
        """
        raw = await self.cache.get(session_id)
        if raw is None:
            logger.debug(f"Session {session_id} not found")
            return None

        parsed = parse_session(raw, self.regions)
        if not parsed.success:
            logger.error(f"Stored session {session_id} failed validation: {parsed.error}")
            raise SessionValidationError(parsed.error, raw)
        return parsed.data
