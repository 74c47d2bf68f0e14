"""Business logic services."""

from .cache import AnalysisCache, InMemoryAnalysisCache, MongoAnalysisCache, make_cache_key
from .pipeline import MealAnalysisPipeline, create_pipeline
from .quota import InMemoryUsageStore, MongoUsageStore, QuotaManager, UsageStore

__all__ = [
    "AnalysisCache",
    "InMemoryAnalysisCache",
    "MongoAnalysisCache",
    "make_cache_key",
    "MealAnalysisPipeline",
    "create_pipeline",
    "InMemoryUsageStore",
    "MongoUsageStore",
    "QuotaManager",
    "UsageStore",
]
