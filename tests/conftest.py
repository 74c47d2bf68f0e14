"""Pytest configuration and fixtures."""

import base64
from collections.abc import Callable

import pytest

from meal_analysis.core.config import Settings
from meal_analysis.models.analysis import (
    AnalysisRequest,
    LabelOutput,
    NutritionRecord,
    ProviderLabel,
    ProviderOutput,
    Tier,
)
from meal_analysis.services.cache import InMemoryAnalysisCache
from meal_analysis.services.pipeline import MealAnalysisPipeline
from meal_analysis.services.providers.base import AnalysisProvider, ProviderTransportError
from meal_analysis.services.quota import InMemoryUsageStore, QuotaManager


# Sample test image (1x1 red pixel PNG)
TINY_PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8z8DwHwAFBQIAX8jx0gAAAABJRU5ErkJggg=="
)
TINY_PNG_BYTES = base64.b64decode(TINY_PNG_BASE64)

TODAY = "2024-05-01"


class FakeProvider(AnalysisProvider):
    """Provider returning a scripted output or raising a scripted error."""

    def __init__(self, name: str, result: ProviderOutput | Exception):
        super().__init__(timeout=1.0)
        self._name = name
        self.result = result
        self.calls = 0

    @property
    def provider_name(self) -> str:
        return self._name

    async def _analyze(self, image: bytes, description: str | None) -> ProviderOutput:
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def transport_error(name: str) -> ProviderTransportError:
    return ProviderTransportError(message="connection refused", provider=name)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def pizza_labels() -> LabelOutput:
    return LabelOutput(
        labels=[
            ProviderLabel(label="pizza", confidence=0.8),
            ProviderLabel(label="salad", confidence=0.15),
            ProviderLabel(label="unknown_x", confidence=0.05),
        ]
    )


@pytest.fixture
def chicken_record() -> NutritionRecord:
    return NutritionRecord(
        calories=520,
        protein=42,
        carbs=48,
        fats=16,
        confidence=0.85,
        detected_foods=["grilled chicken", "rice"],
        description="Grilled chicken with rice",
    )


@pytest.fixture
def make_request() -> Callable[..., AnalysisRequest]:
    def _make(
        image: bytes = TINY_PNG_BYTES,
        description: str | None = None,
        user_id: str = "user-1",
        tier: Tier = Tier.BASIC,
    ) -> AnalysisRequest:
        return AnalysisRequest(image=image, description=description, user_id=user_id, tier=tier)

    return _make


@pytest.fixture
def make_pipeline(settings) -> Callable[..., MealAnalysisPipeline]:
    """Build a pipeline over fake providers with in-memory stores."""

    def _make(*providers: AnalysisProvider, enforce_quota: bool = True) -> MealAnalysisPipeline:
        return MealAnalysisPipeline(
            providers=list(providers),
            cache=InMemoryAnalysisCache(),
            quota=QuotaManager(InMemoryUsageStore(), settings),
            enforce_quota=enforce_quota,
        )

    return _make
