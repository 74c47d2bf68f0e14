"""Tests for the analysis result cache."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymongo.errors import DuplicateKeyError

from meal_analysis.models.analysis import MacroEstimate
from meal_analysis.services.cache import (
    InMemoryAnalysisCache,
    MongoAnalysisCache,
    make_cache_key,
)


def estimate(calories: float = 400) -> MacroEstimate:
    return MacroEstimate(
        calories=calories,
        protein=20,
        carbs=45,
        fats=12,
        confidence=0.8,
        detected_foods=["pasta"],
        description="Pasta",
        source="generative",
    )


class TestMakeCacheKey:
    def test_key_includes_hash_and_day(self):
        assert make_cache_key("abc123", "2024-05-01") == "cache:abc123:2024-05-01"

    def test_different_days_give_different_keys(self):
        assert make_cache_key("abc123", "2024-05-01") != make_cache_key("abc123", "2024-05-02")


class TestInMemoryAnalysisCache:
    @pytest.mark.asyncio
    async def test_miss_then_hit(self):
        cache = InMemoryAnalysisCache()

        assert await cache.get("k") is None
        assert await cache.set_if_absent("k", estimate()) is True
        assert await cache.get("k") == estimate()

    @pytest.mark.asyncio
    async def test_first_write_wins(self):
        cache = InMemoryAnalysisCache()

        assert await cache.set_if_absent("k", estimate(400)) is True
        assert await cache.set_if_absent("k", estimate(900)) is False
        assert (await cache.get("k")).calories == 400

    @pytest.mark.asyncio
    async def test_concurrent_writes_store_once(self):
        cache = InMemoryAnalysisCache()

        results = await asyncio.gather(
            *(cache.set_if_absent("k", estimate(100 + i)) for i in range(10))
        )

        assert results.count(True) == 1
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_expired_entry_is_a_miss(self):
        cache = InMemoryAnalysisCache(ttl_seconds=60)
        await cache.set_if_absent("k", estimate())

        later = datetime.now(timezone.utc) + timedelta(seconds=61)
        with patch("meal_analysis.services.cache.utc_now", return_value=later):
            assert await cache.get("k") is None
            assert await cache.set_if_absent("k", estimate(900)) is True

    @pytest.mark.asyncio
    async def test_cleanup_expired(self):
        cache = InMemoryAnalysisCache(ttl_seconds=0)
        await cache.set_if_absent("a", estimate())
        await cache.set_if_absent("b", estimate())

        assert cache.cleanup_expired() == 2
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_clear(self):
        cache = InMemoryAnalysisCache()
        await cache.set_if_absent("k", estimate())

        cache.clear()

        assert await cache.get("k") is None


class TestMongoAnalysisCache:
    @pytest.fixture
    def collection(self):
        return MagicMock()

    @pytest.fixture
    def cache(self, collection):
        db = MagicMock()
        db.__getitem__.return_value = collection
        return MongoAnalysisCache(db, ttl_seconds=3600)

    @pytest.mark.asyncio
    async def test_get_hit(self, cache, collection):
        collection.find_one = AsyncMock(
            return_value={
                "_id": "k",
                "value": estimate().model_dump(by_alias=True),
                "expires_at": datetime.now(timezone.utc) + timedelta(hours=1),
            }
        )

        result = await cache.get("k")

        assert result == estimate()
        collection.find_one.assert_called_once_with({"_id": "k"})

    @pytest.mark.asyncio
    async def test_get_ignores_expired_naive_timestamp(self, cache, collection):
        collection.find_one = AsyncMock(
            return_value={
                "_id": "k",
                "value": estimate().model_dump(by_alias=True),
                "expires_at": datetime(2000, 1, 1),
            }
        )

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_get_miss(self, cache, collection):
        collection.find_one = AsyncMock(return_value=None)

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_set_if_absent_inserts_new_key(self, cache, collection):
        collection.update_one = AsyncMock(
            return_value=MagicMock(upserted_id="k", modified_count=0)
        )

        assert await cache.set_if_absent("k", estimate()) is True

        args, kwargs = collection.update_one.call_args
        assert args[0]["_id"] == "k"
        assert "$lte" in args[0]["expires_at"]
        assert args[1]["$set"]["value"]["detectedFoods"] == ["pasta"]
        assert kwargs["upsert"] is True

    @pytest.mark.asyncio
    async def test_set_if_absent_replaces_expired_document(self, cache, collection):
        # Expired documents linger until the TTL monitor removes them
        collection.update_one = AsyncMock(
            return_value=MagicMock(upserted_id=None, modified_count=1)
        )

        assert await cache.set_if_absent("k", estimate()) is True

    @pytest.mark.asyncio
    async def test_set_if_absent_live_entry_wins(self, cache, collection):
        # A live document does not match the filter, so the upsert collides on _id
        collection.update_one = AsyncMock(side_effect=DuplicateKeyError("dup"))

        assert await cache.set_if_absent("k", estimate()) is False

    @pytest.mark.asyncio
    async def test_ensure_indexes(self, cache, collection):
        collection.create_index = AsyncMock()

        await cache.ensure_indexes()

        collection.create_index.assert_called_once_with("expires_at", expireAfterSeconds=0)
