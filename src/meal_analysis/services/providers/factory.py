"""
Factory for the ordered provider chain.

Reads configuration from settings and returns the adapters in fallback order.
"""

import logging

from meal_analysis.core.config import Settings, get_settings

from .base import AnalysisProvider, ProviderError
from .classifier import ClassifierProvider
from .generative import GenerativeProvider

logger = logging.getLogger(__name__)


def _build_classifier(settings: Settings) -> AnalysisProvider:
    return ClassifierProvider(
        url=settings.classifier_url,
        token=settings.huggingface_token,
        timeout=settings.provider_timeout,
    )


def _build_generative(settings: Settings) -> AnalysisProvider:
    return GenerativeProvider(
        url=settings.openai_url,
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        timeout=settings.provider_timeout,
    )


# Supported providers
PROVIDERS = {
    "classifier": _build_classifier,
    "generative": _build_generative,
}


def build_providers(settings: Settings | None = None) -> list[AnalysisProvider]:
    """
    Build the provider chain in configured fallback order.

    Configuration is read from settings:
    - PROVIDER_ORDER: comma separated provider names (default: "classifier,generative")
    - PROVIDER_TIMEOUT: hard timeout per call in seconds (default: 30)

    Returns:
        Providers in the order they should be tried

    Raises:
        ProviderError: If a configured provider is not supported
    """
    settings = settings or get_settings()
    providers = []

    for name in settings.provider_names:
        if name not in PROVIDERS:
            raise ProviderError(
                message=f"Unknown analysis provider: {name}",
                provider=name,
                details={"supported_providers": list(PROVIDERS.keys())},
            )
        providers.append(PROVIDERS[name](settings))

    logger.info(f"Provider fallback order: {[p.provider_name for p in providers]}")
    return providers
