"""Key-value session cache backed by MongoDB, with an in-memory store for development."""
import time
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from pymongo import ASCENDING
from pymongo.errors import PyMongoError
from motor.motor_asyncio import AsyncIOMotorClient

from errors import CacheUnavailable

logger = logging.getLogger("geoping.cache")

class MongoCacheStore:
    """MongoDB-backed cache with per-key expiry.

    Each key is one document ``{_id, value, expires_at}``. A TTL index removes
    expired documents; reads also filter on ``expires_at`` since the TTL
    monitor only runs periodically. Driver errors surface as CacheUnavailable
    so they are never mistaken for a miss.
    """

    def __init__(self, uri: str, db_name: str, collection_name: str = "sessions",
                 timeout_seconds: int = 3, collection=None):
        self._uri = uri
        self._db_name = db_name
        self._collection_name = collection_name
        self._timeout_ms = timeout_seconds * 1000
        self._client = None
        self._collection = collection
        self._init_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._collection is not None

    async def initialize(self):
        """Connect, verify the server answers and ensure the TTL index exists."""
        try:
            self._client = AsyncIOMotorClient(
                self._uri,
                maxPoolSize=50,
                serverSelectionTimeoutMS=self._timeout_ms,
                connectTimeoutMS=self._timeout_ms,
                socketTimeoutMS=self._timeout_ms
            )
            await asyncio.wait_for(
                self._client.admin.command("ping"),
                timeout=self._timeout_ms / 1000 + 2
            )

            collection = self._client[self._db_name][self._collection_name]
            await collection.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
            self._collection = collection
            logger.info(f"Connected to MongoDB session cache {self._db_name}.{self._collection_name}")
        except (PyMongoError, asyncio.TimeoutError) as e:
            logger.error(f"Session cache connection failed: {e}")
            if self._client is not None:
                self._client.close()
                self._client = None
            raise CacheUnavailable(str(e) or "connection timed out") from e

    async def _get_collection(self):
        if self._collection is None:
            async with self._init_lock:
                if self._collection is None:
                    await self.initialize()
        return self._collection

    async def get(self, key: str) -> Optional[str]:
        collection = await self._get_collection()
        try:
            document = await collection.find_one(
                {"_id": key, "expires_at": {"$gt": datetime.now(timezone.utc)}}
            )
        except PyMongoError as e:
            logger.error(f"Session cache read failed for {key}: {e}")
            raise CacheUnavailable(str(e)) from e

        if document is None:
            return None
        return document["value"]

    async def set(self, key: str, value: str, ttl_seconds: int):
        collection = await self._get_collection()
        now = datetime.now(timezone.utc)
        document = {
            "_id": key,
            "value": value,
            "created_at": now,
            "expires_at": now + timedelta(seconds=ttl_seconds)
        }
        try:
            await collection.replace_one({"_id": key}, document, upsert=True)
        except PyMongoError as e:
            logger.error(f"Session cache write failed for {key}: {e}")
            raise CacheUnavailable(str(e)) from e

    async def health_check(self) -> Dict[str, Any]:
        health = {"backend": "mongo", "connected": self.is_connected}
        try:
            collection = await self._get_collection()
            start_time = time.time()
            await collection.database.command("ping")
            health["response_time_ms"] = (time.time() - start_time) * 1000
            health["connected"] = True
            health["status"] = "healthy"
        except (CacheUnavailable, PyMongoError) as e:
            health["status"] = "unavailable"
            health["error"] = str(e)
        return health

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None
            self._collection = None


class MemoryCacheStore:
    """In-process cache with the same interface, for local runs and tests."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    @property
    def is_connected(self) -> bool:
        return True

    async def initialize(self):
        logger.info("Using in-memory session cache")

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int):
        now = self._clock()
        self._cleanup(now)
        self._entries[key] = (value, now + ttl_seconds)

    def _cleanup(self, now: float):
        """Drop expired entries, including keys that are never read again."""
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    async def health_check(self) -> Dict[str, Any]:
        return {"backend": "memory", "connected": True, "status": "healthy", "entries": len(self._entries)}

    def close(self):
        self._entries.clear()


def build_cache_store(settings):
    """Create the cache backend named by CACHE_BACKEND."""
    if settings.CACHE_BACKEND == "memory":
        return MemoryCacheStore()
    return MongoCacheStore(
        settings.MONGO_URI,
        settings.DB_NAME,
        settings.SESSION_COLLECTION,
        timeout_seconds=settings.DB_CONNECTION_TIMEOUT
    )
