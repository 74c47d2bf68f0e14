"""Pydantic models for meal analysis."""

from .analysis import (
    AnalysisRequest,
    CacheEntry,
    LabelOutput,
    MacroEstimate,
    NutritionRecord,
    ProviderLabel,
    ProviderOutput,
    Tier,
    UsageQuota,
)

__all__ = [
    # Request
    "AnalysisRequest",
    "Tier",
    # Provider outputs
    "LabelOutput",
    "NutritionRecord",
    "ProviderLabel",
    "ProviderOutput",
    # Result
    "MacroEstimate",
    # Records
    "CacheEntry",
    "UsageQuota",
]
