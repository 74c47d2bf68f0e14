"""
Analysis providers - uniform interface over external analysis backends.

The classifier returns ranked labels, the generative model returns a
nutrition record; both are mapped into ProviderOutput.
"""

from .base import (
    AnalysisProvider,
    ProviderError,
    ProviderMalformedResponse,
    ProviderRateLimited,
    ProviderTimeout,
    ProviderTransportError,
)
from .classifier import ClassifierProvider
from .factory import PROVIDERS, build_providers
from .generative import GenerativeProvider, unwrap_json_content

__all__ = [
    "AnalysisProvider",
    "ProviderError",
    "ProviderMalformedResponse",
    "ProviderRateLimited",
    "ProviderTimeout",
    "ProviderTransportError",
    "ClassifierProvider",
    "GenerativeProvider",
    "unwrap_json_content",
    "PROVIDERS",
    "build_providers",
]
