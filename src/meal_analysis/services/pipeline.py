"""
Meal analysis pipeline.

Facade over cache, quota and providers:

    cache lookup -> quota reservation -> providers in order -> heuristic -> default

Provider failures only advance the chain. The only error a caller sees is
QuotaExceededError.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from motor.motor_asyncio import AsyncIOMotorDatabase

from meal_analysis.core.config import Settings, StorageBackend, get_settings
from meal_analysis.core.exceptions import QuotaExceededError
from meal_analysis.models.analysis import AnalysisRequest, MacroEstimate, Tier, UsageQuota
from meal_analysis.services import heuristic
from meal_analysis.services.aggregator import aggregate, clamp_estimate
from meal_analysis.services.cache import (
    AnalysisCache,
    InMemoryAnalysisCache,
    MongoAnalysisCache,
    make_cache_key,
)
from meal_analysis.services.food_reference import DEFAULT_REFERENCE_TABLE, FoodReferenceTable
from meal_analysis.services.providers import AnalysisProvider, ProviderError, build_providers
from meal_analysis.services.quota import (
    InMemoryUsageStore,
    MongoUsageStore,
    QuotaManager,
    UsageStore,
)
from meal_analysis.utils.dates import date_key

logger = logging.getLogger(__name__)


@dataclass
class _KeyLock:
    """Lock for one cache key and the number of requests holding or awaiting it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    waiters: int = 0


class MealAnalysisPipeline:
    """
    Turns a meal photo into a validated MacroEstimate.

    Usage:
        pipeline = MealAnalysisPipeline(
            providers=[classifier, generative],
            cache=InMemoryAnalysisCache(),
            quota=QuotaManager(InMemoryUsageStore()),
        )
        estimate = await pipeline.analyze_meal(request)

    The provider list is the fallback order. A returned estimate with
    degraded=True came from the heuristic or the default, not a provider.
    """

    def __init__(
        self,
        providers: Sequence[AnalysisProvider],
        cache: AnalysisCache,
        quota: QuotaManager,
        *,
        reference_table: FoodReferenceTable = DEFAULT_REFERENCE_TABLE,
        enforce_quota: bool = True,
    ):
        """
        Initialize the pipeline.

        Args:
            providers: Adapters in the order they should be tried
            cache: Result cache
            quota: Quota manager for usage checks and counting
            reference_table: Reference macros for classifier labels
            enforce_quota: If False, quota is advisory and only recorded
        """
        self.providers = tuple(providers)
        self.cache = cache
        self.quota = quota
        self.reference_table = reference_table
        self.enforce_quota = enforce_quota
        self._key_locks: dict[str, _KeyLock] = {}

    @asynccontextmanager
    async def _locked(self, key: str) -> AsyncIterator[None]:
        """Serialize requests for the same cache key."""
        entry = self._key_locks.get(key)
        if entry is None:
            entry = self._key_locks[key] = _KeyLock()
        entry.waiters += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.waiters -= 1
            if entry.waiters == 0:
                del self._key_locks[key]

    async def analyze_meal(
        self,
        request: AnalysisRequest,
        *,
        today: str | None = None,
    ) -> MacroEstimate:
        """
        Analyze a meal photo.

        Args:
            request: Image, optional description, user and tier
            today: Calendar day override (YYYY-MM-DD), defaults to today UTC

        Returns:
            Validated MacroEstimate

        Raises:
            QuotaExceededError: The user reached the daily limit for their tier
        """
        day = date_key(today)
        key = make_cache_key(request.image_hash, day)

        async with self._locked(key):
            cached = await self.cache.get(key)
            if cached is not None:
                logger.info(f"Using cached analysis for user={request.user_id}")
                return cached

            await self._reserve_quota(request, day)

            try:
                estimate = await self._run_stages(request)
                if not estimate.degraded:
                    await self.cache.set_if_absent(key, estimate)
            except BaseException:
                # Cancelled or failed: the reserved slot was not used
                await self.quota.release(request.user_id, day)
                raise

        logger.info(
            f"Analysis complete: user={request.user_id}, source={estimate.source}, "
            f"degraded={estimate.degraded}, calories={estimate.calories}"
        )
        return estimate

    async def usage(
        self,
        user_id: str,
        tier: Tier | str,
        today: str | None = None,
    ) -> UsageQuota:
        """Get the user's usage against their tier limit."""
        return await self.quota.get_quota(user_id, tier, today)

    async def close(self) -> None:
        """Close provider HTTP clients."""
        for provider in self.providers:
            await provider.close()

    async def _reserve_quota(self, request: AnalysisRequest, day: str) -> None:
        """Take one slot of the user's daily quota before any provider runs."""
        try:
            await self.quota.acquire(request.user_id, request.tier, day)
        except QuotaExceededError as e:
            if self.enforce_quota:
                logger.info(f"Quota exceeded: user={e.user_id}, {e.count}/{e.limit}")
                raise
            logger.warning(
                f"Quota exceeded but not enforced: user={e.user_id}, {e.count}/{e.limit}"
            )
            await self.quota.increment(request.user_id, day)

    async def _run_stages(self, request: AnalysisRequest) -> MacroEstimate:
        """Try each provider in order, then the heuristic, then the default."""
        for provider in self.providers:
            name = provider.provider_name
            try:
                output = await provider.analyze(request.image, request.description)
            except ProviderError as e:
                logger.warning(f"Provider {name} failed ({e.error_code}): {e.message}")
                continue

            try:
                return aggregate(output, self.reference_table, source=name)
            except ValueError as e:
                logger.warning(f"Provider {name} returned unusable output: {e}")
                continue

        if request.description and request.description.strip():
            logger.info("All providers failed, using description heuristic")
            return clamp_estimate(heuristic.estimate(request.description))

        logger.info("All providers failed, using default estimate")
        return clamp_estimate(heuristic.default_estimate())


def create_pipeline(
    settings: Settings | None = None,
    db: AsyncIOMotorDatabase | None = None,
) -> MealAnalysisPipeline:
    """
    Build a pipeline from settings.

    Args:
        settings: Application settings (uses default if not provided)
        db: Database for the mongo storage backend

    Returns:
        Configured MealAnalysisPipeline

    Raises:
        ValueError: If the mongo backend is selected without a database
    """
    settings = settings or get_settings()

    if settings.storage_backend == StorageBackend.MONGO:
        if db is None:
            raise ValueError("The mongo storage backend requires a database")
        cache: AnalysisCache = MongoAnalysisCache(db, ttl_seconds=settings.cache_ttl_seconds)
        store: UsageStore = MongoUsageStore(db)
    else:
        cache = InMemoryAnalysisCache(ttl_seconds=settings.cache_ttl_seconds)
        store = InMemoryUsageStore()

    return MealAnalysisPipeline(
        providers=build_providers(settings),
        cache=cache,
        quota=QuotaManager(store, settings),
        enforce_quota=settings.quota_enforcement_enabled,
    )
