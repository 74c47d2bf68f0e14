"""Per-user daily analysis quota tracking and limiting."""

import asyncio
import logging
from abc import ABC, abstractmethod

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from meal_analysis.core.config import Settings, get_settings
from meal_analysis.core.exceptions import QuotaExceededError
from meal_analysis.models.analysis import Tier, UsageQuota
from meal_analysis.utils.dates import date_key, utc_now

logger = logging.getLogger(__name__)


def usage_key(user_id: str, day: str) -> str:
    """Key of the usage record for a user on a day."""
    return f"usage:{user_id}:{day}"


class UsageStore(ABC):
    """Storage for per-user, per-day usage counters."""

    @abstractmethod
    async def get(self, user_id: str, day: str) -> int:
        """Return the count for the user on the day (0 if no record)."""
        ...

    @abstractmethod
    async def increment(self, user_id: str, day: str) -> int:
        """Atomically add one to the counter and return the new value."""
        ...

    @abstractmethod
    async def try_acquire(self, user_id: str, day: str, limit: int) -> int | None:
        """
        Atomically add one to the counter if it is below limit.

        Returns:
            The new count, or None if the limit was already reached
        """
        ...

    @abstractmethod
    async def release(self, user_id: str, day: str) -> None:
        """Give back one acquired slot. Never goes below zero."""
        ...


class InMemoryUsageStore(UsageStore):
    """In-process usage counters keyed by usage_key()."""

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def get(self, user_id: str, day: str) -> int:
        return self._counts.get(usage_key(user_id, day), 0)

    async def increment(self, user_id: str, day: str) -> int:
        key = usage_key(user_id, day)
        async with self._lock:
            count = self._counts.get(key, 0) + 1
            self._counts[key] = count
        return count

    async def try_acquire(self, user_id: str, day: str, limit: int) -> int | None:
        key = usage_key(user_id, day)
        async with self._lock:
            count = self._counts.get(key, 0)
            if count >= limit:
                return None
            self._counts[key] = count + 1
        return count + 1

    async def release(self, user_id: str, day: str) -> None:
        key = usage_key(user_id, day)
        async with self._lock:
            if self._counts.get(key, 0) > 0:
                self._counts[key] -= 1


class MongoUsageStore(UsageStore):
    """
    MongoDB-backed usage counters.

    One document per user per day; $inc with upsert keeps increments
    atomic across concurrent requests and processes.
    """

    COLLECTION_NAME = "AnalysisUsage"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._collection = db[self.COLLECTION_NAME]

    async def get(self, user_id: str, day: str) -> int:
        record = await self._collection.find_one({"_id": usage_key(user_id, day)})
        return record.get("count", 0) if record else 0

    async def increment(self, user_id: str, day: str) -> int:
        now = utc_now()
        record = await self._collection.find_one_and_update(
            {"_id": usage_key(user_id, day)},
            {
                "$inc": {"count": 1},
                "$set": {"last_call": now},
                "$setOnInsert": {
                    "user_id": user_id,
                    "date": day,
                    "created_at": now,
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return record.get("count", 0)

    async def try_acquire(self, user_id: str, day: str, limit: int) -> int | None:
        now = utc_now()
        try:
            record = await self._collection.find_one_and_update(
                {"_id": usage_key(user_id, day), "count": {"$lt": limit}},
                {
                    "$inc": {"count": 1},
                    "$set": {"last_call": now},
                    "$setOnInsert": {
                        "user_id": user_id,
                        "date": day,
                        "created_at": now,
                    },
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # The record exists with count >= limit, so the upsert tried to insert
            return None
        return record.get("count", 0)

    async def release(self, user_id: str, day: str) -> None:
        await self._collection.update_one(
            {"_id": usage_key(user_id, day), "count": {"$gt": 0}},
            {"$inc": {"count": -1}},
        )


class QuotaManager:
    """
    Service for tracking and limiting meal analyses per user per day.

    Usage:
        quota = QuotaManager(InMemoryUsageStore())

        # Reserve a slot before calling providers
        await quota.acquire("user-1", Tier.BASIC)  # Raises QuotaExceededError if over

        # Give it back if the analysis is abandoned
        await quota.release("user-1")

    A new calendar day starts from a fresh zero-count record; there is no
    reset job.
    """

    def __init__(
        self,
        store: UsageStore,
        settings: Settings | None = None,
    ):
        """
        Initialize quota manager.

        Args:
            store: Usage counter storage
            settings: Application settings (uses default if not provided)
        """
        self._store = store
        self._settings = settings or get_settings()

    @property
    def limits(self) -> dict[Tier, int]:
        """Tier to daily limit table."""
        return {
            Tier.BASIC: self._settings.basic_daily_limit,
            Tier.PREMIUM: self._settings.premium_daily_limit,
            Tier.VIP: self._settings.vip_daily_limit,
        }

    def daily_limit(self, tier: Tier | str) -> int:
        """Get the daily limit for a tier. Read on every call, never cached."""
        return self.limits[Tier(tier)]

    async def get_usage(self, user_id: str, day: str | None = None) -> int:
        """Get number of analyses the user made on the day."""
        return await self._store.get(user_id, date_key(day))

    async def increment(self, user_id: str, day: str | None = None) -> int:
        """
        Record one analysis for the user.

        Returns:
            The updated count
        """
        day = date_key(day)
        count = await self._store.increment(user_id, day)
        logger.debug(f"Recorded analysis: user={user_id}, date={day}, count={count}")
        return count

    async def get_quota(
        self,
        user_id: str,
        tier: Tier | str,
        day: str | None = None,
    ) -> UsageQuota:
        """Get the user's usage record for the day."""
        day = date_key(day)
        tier = Tier(tier)
        return UsageQuota(
            user_id=user_id,
            date=day,
            count=await self._store.get(user_id, day),
            daily_limit=self.daily_limit(tier),
            tier=tier,
        )

    async def check(
        self,
        user_id: str,
        tier: Tier | str,
        day: str | None = None,
    ) -> UsageQuota:
        """
        Check if the user is within the daily limit for their tier.

        Returns:
            The current usage record

        Raises:
            QuotaExceededError: If the count has reached the limit
        """
        quota = await self.get_quota(user_id, tier, day)
        if quota.is_limited:
            raise QuotaExceededError(
                user_id=user_id,
                tier=quota.tier.value,
                count=quota.count,
                limit=quota.daily_limit,
            )
        return quota

    async def acquire(
        self,
        user_id: str,
        tier: Tier | str,
        day: str | None = None,
    ) -> UsageQuota:
        """
        Reserve one analysis for the user, failing if the limit is reached.

        Check and increment are a single atomic store operation, so
        concurrent requests can never take more slots than the limit.

        Returns:
            The usage record including the reserved slot

        Raises:
            QuotaExceededError: If the count has reached the limit
        """
        day = date_key(day)
        tier = Tier(tier)
        limit = self.daily_limit(tier)

        count = await self._store.try_acquire(user_id, day, limit)
        if count is None:
            raise QuotaExceededError(
                user_id=user_id,
                tier=tier.value,
                count=await self._store.get(user_id, day),
                limit=limit,
            )

        logger.debug(f"Reserved analysis: user={user_id}, date={day}, count={count}/{limit}")
        return UsageQuota(user_id=user_id, date=day, count=count, daily_limit=limit, tier=tier)

    async def release(self, user_id: str, day: str | None = None) -> None:
        """Give back a slot reserved by acquire() for an analysis that did not finish."""
        day = date_key(day)
        await self._store.release(user_id, day)
        logger.debug(f"Released analysis: user={user_id}, date={day}")
