"""
Models for meal image analysis.

Covers the pipeline input (AnalysisRequest), the normalized provider
outputs, the single output type (MacroEstimate) and the records kept by
the cache and the quota manager.
"""

import hashlib
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


class Tier(str, Enum):
    """User service level, determines the daily analysis quota."""

    BASIC = "basic"
    PREMIUM = "premium"
    VIP = "vip"


class AnalysisRequest(BaseModel):
    """One photo (plus optional description) submitted by one user."""

    model_config = ConfigDict(frozen=True)

    image: bytes = Field(..., min_length=1, description="Raw image content")
    description: str | None = Field(None, description="Free-text meal description")
    user_id: str = Field(..., min_length=1)
    tier: Tier = Tier.BASIC

    @property
    def image_hash(self) -> str:
        """SHA-256 of the image content, used for content-addressed caching."""
        return hashlib.sha256(self.image).hexdigest()


class ProviderLabel(BaseModel):
    """A single ranked label from a classifier-style provider."""

    label: str
    confidence: float = Field(ge=0.0, le=1.0)


class LabelOutput(BaseModel):
    """Classifier-style provider output: labels ordered by confidence."""

    kind: Literal["labels"] = "labels"
    labels: list[ProviderLabel] = Field(default_factory=list)


class NutritionRecord(BaseModel):
    """Generative-style provider output: a complete nutrition record."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
    )

    kind: Literal["record"] = "record"
    calories: float
    protein: float
    carbs: float
    fats: float
    confidence: float = 0.5
    detected_foods: list[str] = Field(default_factory=list)
    description: str = ""


ProviderOutput = Annotated[Union[LabelOutput, NutritionRecord], Field(discriminator="kind")]


class MacroEstimate(BaseModel):
    """Macro-nutrient estimate for one meal. The pipeline's only output."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    calories: float = Field(ge=0, description="Energy in kcal")
    protein: float = Field(ge=0, description="Protein in grams")
    carbs: float = Field(ge=0, description="Carbohydrates in grams")
    fats: float = Field(ge=0, description="Fats in grams")
    confidence: float = Field(ge=0.0, le=1.0)
    detected_foods: list[str] = Field(default_factory=list)
    description: str = ""
    degraded: bool = Field(
        False, description="True when produced by the heuristic or default fallback"
    )
    source: str = Field("unknown", description="Stage that produced this estimate")


class CacheEntry(BaseModel):
    """A cached estimate keyed by image hash and calendar day."""

    key: str
    value: MacroEstimate
    written_at: datetime
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class UsageQuota(BaseModel):
    """Per-user, per-day usage against the tier's daily limit."""

    user_id: str
    date: str
    count: int = Field(ge=0)
    daily_limit: int = Field(gt=0)
    tier: Tier = Tier.BASIC

    @computed_field
    @property
    def remaining(self) -> int:
        return max(0, self.daily_limit - self.count)

    @computed_field
    @property
    def is_limited(self) -> bool:
        return self.count >= self.daily_limit
