"""Tests for the quota manager and usage stores."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from meal_analysis.core.config import Settings
from meal_analysis.core.exceptions import QuotaExceededError
from meal_analysis.models.analysis import Tier
from meal_analysis.services.quota import (
    InMemoryUsageStore,
    MongoUsageStore,
    QuotaManager,
    usage_key,
)


@pytest.fixture
def quota(settings) -> QuotaManager:
    return QuotaManager(InMemoryUsageStore(), settings)


class TestQuotaManager:
    def test_tier_limits(self, quota):
        assert quota.daily_limit(Tier.BASIC) == 5
        assert quota.daily_limit(Tier.PREMIUM) == 8
        assert quota.daily_limit("vip") == 12

    def test_limits_follow_settings(self):
        quota = QuotaManager(InMemoryUsageStore(), Settings(_env_file=None, basic_daily_limit=2))

        assert quota.daily_limit(Tier.BASIC) == 2

    @pytest.mark.asyncio
    async def test_usage_starts_at_zero(self, quota):
        assert await quota.get_usage("user-1", "2024-05-01") == 0

    @pytest.mark.asyncio
    async def test_increment_is_monotonic(self, quota):
        counts = [await quota.increment("user-1", "2024-05-01") for _ in range(3)]

        assert counts == [1, 2, 3]
        assert await quota.get_usage("user-1", "2024-05-01") == 3

    @pytest.mark.asyncio
    async def test_new_day_resets_usage(self, quota):
        await quota.increment("user-1", "2024-05-01")
        await quota.increment("user-1", "2024-05-01")

        assert await quota.get_usage("user-1", "2024-05-02") == 0
        assert await quota.get_usage("user-1", "2024-05-01") == 2

    @pytest.mark.asyncio
    async def test_users_are_independent(self, quota):
        await quota.increment("user-1", "2024-05-01")

        assert await quota.get_usage("user-2", "2024-05-01") == 0

    @pytest.mark.asyncio
    async def test_concurrent_increments_lose_no_updates(self, quota):
        await asyncio.gather(*(quota.increment("user-1", "2024-05-01") for _ in range(50)))

        assert await quota.get_usage("user-1", "2024-05-01") == 50

    @pytest.mark.asyncio
    async def test_check_passes_below_limit(self, quota):
        for _ in range(4):
            await quota.increment("user-1", "2024-05-01")

        result = await quota.check("user-1", Tier.BASIC, "2024-05-01")

        assert result.count == 4
        assert result.remaining == 1
        assert result.is_limited is False

    @pytest.mark.asyncio
    async def test_check_raises_at_limit(self, quota):
        for _ in range(5):
            await quota.increment("user-1", "2024-05-01")

        with pytest.raises(QuotaExceededError) as exc_info:
            await quota.check("user-1", Tier.BASIC, "2024-05-01")

        assert exc_info.value.status_code == 429
        assert exc_info.value.details == {
            "user_id": "user-1",
            "tier": "basic",
            "count": 5,
            "limit": 5,
        }

    @pytest.mark.asyncio
    async def test_tier_change_applies_immediately(self, quota):
        for _ in range(5):
            await quota.increment("user-1", "2024-05-01")

        with pytest.raises(QuotaExceededError):
            await quota.check("user-1", Tier.BASIC, "2024-05-01")

        result = await quota.check("user-1", Tier.PREMIUM, "2024-05-01")
        assert result.remaining == 3


class TestMongoUsageStore:
    @pytest.fixture
    def collection(self):
        return MagicMock()

    @pytest.fixture
    def store(self, collection):
        db = MagicMock()
        db.__getitem__.return_value = collection
        return MongoUsageStore(db)

    @pytest.mark.asyncio
    async def test_get_missing_record(self, store, collection):
        collection.find_one = AsyncMock(return_value=None)

        assert await store.get("user-1", "2024-05-01") == 0
        collection.find_one.assert_called_once_with({"_id": "usage:user-1:2024-05-01"})

    @pytest.mark.asyncio
    async def test_get_existing_record(self, store, collection):
        collection.find_one = AsyncMock(return_value={"_id": "usage:user-1:2024-05-01", "count": 3})

        assert await store.get("user-1", "2024-05-01") == 3

    @pytest.mark.asyncio
    async def test_increment_uses_atomic_upsert(self, store, collection):
        collection.find_one_and_update = AsyncMock(return_value={"count": 4})

        assert await store.increment("user-1", "2024-05-01") == 4

        args, kwargs = collection.find_one_and_update.call_args
        assert args[0] == {"_id": usage_key("user-1", "2024-05-01")}
        assert args[1]["$inc"] == {"count": 1}
        assert args[1]["$setOnInsert"]["date"] == "2024-05-01"
        assert kwargs["upsert"] is True
        assert kwargs["return_document"] == ReturnDocument.AFTER


class TestQuotaAcquire:
    @pytest.mark.asyncio
    async def test_acquire_reserves_slot(self, quota):
        result = await quota.acquire("user-1", Tier.BASIC, "2024-05-01")

        assert result.count == 1
        assert result.remaining == 4
        assert await quota.get_usage("user-1", "2024-05-01") == 1

    @pytest.mark.asyncio
    async def test_acquire_at_limit_does_not_count(self, quota):
        for _ in range(5):
            await quota.increment("user-1", "2024-05-01")

        with pytest.raises(QuotaExceededError) as exc_info:
            await quota.acquire("user-1", Tier.BASIC, "2024-05-01")

        assert exc_info.value.count == 5
        assert exc_info.value.limit == 5
        assert await quota.get_usage("user-1", "2024-05-01") == 5

    @pytest.mark.asyncio
    async def test_concurrent_acquires_stop_at_limit(self, quota):
        results = await asyncio.gather(
            *(quota.acquire("user-1", Tier.BASIC, "2024-05-01") for _ in range(10)),
            return_exceptions=True,
        )

        granted = [r for r in results if not isinstance(r, Exception)]
        assert len(granted) == 5
        assert sorted(r.count for r in granted) == [1, 2, 3, 4, 5]
        assert await quota.get_usage("user-1", "2024-05-01") == 5

    @pytest.mark.asyncio
    async def test_release_gives_slot_back(self, quota):
        await quota.acquire("user-1", Tier.BASIC, "2024-05-01")

        await quota.release("user-1", "2024-05-01")
        await quota.release("user-1", "2024-05-01")

        assert await quota.get_usage("user-1", "2024-05-01") == 0


class TestMongoUsageStoreAcquire:
    @pytest.fixture
    def collection(self):
        return MagicMock()

    @pytest.fixture
    def store(self, collection):
        db = MagicMock()
        db.__getitem__.return_value = collection
        return MongoUsageStore(db)

    @pytest.mark.asyncio
    async def test_try_acquire_below_limit(self, store, collection):
        collection.find_one_and_update = AsyncMock(return_value={"count": 3})

        assert await store.try_acquire("user-1", "2024-05-01", 5) == 3

        args, kwargs = collection.find_one_and_update.call_args
        assert args[0] == {"_id": "usage:user-1:2024-05-01", "count": {"$lt": 5}}
        assert args[1]["$inc"] == {"count": 1}
        assert kwargs["upsert"] is True

    @pytest.mark.asyncio
    async def test_try_acquire_at_limit(self, store, collection):
        collection.find_one_and_update = AsyncMock(side_effect=DuplicateKeyError("dup"))

        assert await store.try_acquire("user-1", "2024-05-01", 5) is None

    @pytest.mark.asyncio
    async def test_release_never_below_zero(self, store, collection):
        collection.update_one = AsyncMock()

        await store.release("user-1", "2024-05-01")

        collection.update_one.assert_called_once_with(
            {"_id": "usage:user-1:2024-05-01", "count": {"$gt": 0}},
            {"$inc": {"count": -1}},
        )
