"""
Base classes for meal analysis providers.

Defines the abstract interface that all providers must implement, the
error taxonomy they raise, and the shared HTTP call with its hard timeout.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from meal_analysis.models.analysis import ProviderOutput

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class ProviderError(Exception):
    """Error during provider analysis."""

    error_code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.details = details or {}


class ProviderTimeout(ProviderError):
    """The provider did not answer within the hard timeout."""

    error_code = "TIMEOUT"


class ProviderTransportError(ProviderError):
    """Network or HTTP transport failure."""

    error_code = "TRANSPORT_ERROR"


class ProviderMalformedResponse(ProviderError):
    """Response could not be parsed into the expected schema."""

    error_code = "MALFORMED_RESPONSE"


class ProviderRateLimited(ProviderError):
    """The provider rejected the call with HTTP 429."""

    error_code = "RATE_LIMITED"


class AnalysisProvider(ABC):
    """
    Abstract base class for meal analysis providers.

    Classifier-style and generative-style providers both map their
    responses into ProviderOutput, so callers never branch on provider
    identity.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.timeout = timeout
        self._client = client

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of this provider."""
        ...

    async def analyze(self, image: bytes, description: str | None = None) -> ProviderOutput:
        """
        Analyze a meal image.

        Args:
            image: Raw image bytes (JPEG or PNG)
            description: Optional free-text description from the user

        Returns:
            LabelOutput or NutritionRecord

        Raises:
            ProviderError: One of the ProviderError subclasses
        """
        try:
            return await self._analyze(image, description)
        except ProviderError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in {self.provider_name}")
            raise ProviderError(
                message=f"Unexpected error: {e}",
                provider=self.provider_name,
            ) from e

    @abstractmethod
    async def _analyze(self, image: bytes, description: str | None) -> ProviderOutput:
        """Provider-specific call and response mapping."""
        ...

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        """
        POST with the provider's hard timeout.

        The pending request is cancelled when the timeout expires.

        Raises:
            ProviderTimeout: Timeout expired
            ProviderTransportError: Connection or protocol failure
            ProviderRateLimited: HTTP 429
            ProviderMalformedResponse: Any other non-2xx status
        """
        client = await self._get_client()
        try:
            response = await asyncio.wait_for(client.post(url, **kwargs), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise ProviderTimeout(
                message=f"{self.provider_name} timed out after {self.timeout}s",
                provider=self.provider_name,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderTransportError(
                message=f"Failed to reach {self.provider_name}: {e}",
                provider=self.provider_name,
            ) from e

        if response.status_code == 429:
            raise ProviderRateLimited(
                message=f"{self.provider_name} rate limited the request",
                provider=self.provider_name,
                details={"retry_after": response.headers.get("retry-after")},
            )
        if not response.is_success:
            raise ProviderMalformedResponse(
                message=f"{self.provider_name} API error: {response.status_code}",
                provider=self.provider_name,
                details={"status_code": response.status_code, "body": response.text[:500]},
            )
        return response
