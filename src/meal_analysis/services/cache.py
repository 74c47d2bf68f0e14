"""
Content-addressed cache of analysis results.

Keys combine the image hash with the calendar day, so re-viewing the same
photo on the same day costs no provider call. The first result written for
a key wins; entries expire after a TTL (24 h by default).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import timedelta, timezone

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from meal_analysis.models.analysis import CacheEntry, MacroEstimate
from meal_analysis.utils.dates import date_key, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 86400


def make_cache_key(image_hash: str, day: str | None = None) -> str:
    """Build the cache key for an image on a calendar day."""
    return f"cache:{image_hash}:{date_key(day)}"


class AnalysisCache(ABC):
    """Store for previously computed estimates."""

    @abstractmethod
    async def get(self, key: str) -> MacroEstimate | None:
        """Return the cached estimate, or None on miss or expiry."""
        ...

    @abstractmethod
    async def set_if_absent(self, key: str, value: MacroEstimate) -> bool:
        """
        Store an estimate unless the key already holds one.

        Returns:
            True if this call wrote the entry
        """
        ...


class InMemoryAnalysisCache(AnalysisCache):
    """In-process cache with per-entry expiry.

    NOT shared between instances; use MongoAnalysisCache for that.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> MacroEstimate | None:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache miss for key: {key}")
            return None

        if entry.is_expired(utc_now()):
            logger.debug(f"Cache entry expired for key: {key}")
            async with self._lock:
                if self._entries.get(key) is entry:
                    del self._entries[key]
            return None

        logger.debug(f"Cache hit for key: {key}")
        return entry.value

    async def set_if_absent(self, key: str, value: MacroEstimate) -> bool:
        now = utc_now()
        async with self._lock:
            existing = self._entries.get(key)
            if existing is not None and not existing.is_expired(now):
                return False
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                written_at=now,
                expires_at=now + timedelta(seconds=self.ttl_seconds),
            )
        logger.debug(f"Cached estimate for key {key} with TTL {self.ttl_seconds}s")
        return True

    def clear(self) -> None:
        """Clear all cache entries."""
        self._entries.clear()
        logger.debug("Cache cleared")

    def cleanup_expired(self) -> int:
        """
        Remove all expired entries from cache.

        Returns:
            Number of expired entries removed
        """
        now = utc_now()
        expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]

        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            logger.debug(f"Cleaned up {len(expired_keys)} expired cache entries")

        return len(expired_keys)


class MongoAnalysisCache(AnalysisCache):
    """
    MongoDB-backed cache.

    One document per key; $setOnInsert makes the first write win even
    across processes. A TTL index removes expired documents.
    """

    COLLECTION_NAME = "AnalysisCache"

    def __init__(self, db: AsyncIOMotorDatabase, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self._collection = db[self.COLLECTION_NAME]
        self.ttl_seconds = ttl_seconds

    async def ensure_indexes(self) -> None:
        """Create the TTL index on expires_at."""
        await self._collection.create_index("expires_at", expireAfterSeconds=0)

    async def get(self, key: str) -> MacroEstimate | None:
        doc = await self._collection.find_one({"_id": key})
        if not doc:
            logger.debug(f"Cache miss for key: {key}")
            return None

        expires_at = doc.get("expires_at")
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            # The TTL monitor runs periodically, so expired documents can linger
            if utc_now() >= expires_at:
                return None

        return MacroEstimate.model_validate(doc["value"])

    async def set_if_absent(self, key: str, value: MacroEstimate) -> bool:
        now = utc_now()
        try:
            # Matches only an expired document; a live one makes the upsert
            # collide on _id
            result = await self._collection.update_one(
                {"_id": key, "expires_at": {"$lte": now}},
                {
                    "$set": {
                        "value": value.model_dump(by_alias=True),
                        "written_at": now,
                        "expires_at": now + timedelta(seconds=self.ttl_seconds),
                    }
                },
                upsert=True,
            )
        except DuplicateKeyError:
            logger.debug(f"Cache key already holds a live entry: {key}")
            return False
        return result.upserted_id is not None or result.modified_count > 0

