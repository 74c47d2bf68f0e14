"""
Image classification provider (Hugging Face inference API).

Sends the raw image and receives ranked food labels with scores.
"""

import logging
import math

import httpx

from meal_analysis.models.analysis import LabelOutput, ProviderLabel

from .base import DEFAULT_TIMEOUT, AnalysisProvider, ProviderMalformedResponse

logger = logging.getLogger(__name__)


class ClassifierProvider(AnalysisProvider):
    """
    Food classification using a Hugging Face image-classification model.

    Response contract: JSON array of {"label": str, "score": float},
    ordered by score descending.
    """

    def __init__(
        self,
        url: str = "https://api-inference.huggingface.co/models/nateraw/food101",
        token: str = "",
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize classifier provider.

        Args:
            url: Inference endpoint for the classification model
            token: Hugging Face API token
            timeout: Hard timeout in seconds
            client: Optional preconfigured HTTP client
        """
        super().__init__(timeout=timeout, client=client)
        self.url = url
        self.token = token

    @property
    def provider_name(self) -> str:
        return "classifier"

    async def _analyze(self, image: bytes, description: str | None) -> LabelOutput:
        headers = {"Content-Type": "application/octet-stream"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        logger.info(f"Sending {len(image)} bytes to classifier")
        response = await self._post(self.url, content=image, headers=headers)

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderMalformedResponse(
                message="Classifier returned non-JSON body",
                provider=self.provider_name,
                details={"body": response.text[:500]},
            ) from e

        labels = self._parse_labels(payload)
        logger.info(f"Classifier returned {len(labels)} labels")
        return LabelOutput(labels=labels)

    def _parse_labels(self, payload: object) -> list[ProviderLabel]:
        """Validate the label array and normalize it."""
        if not isinstance(payload, list):
            raise ProviderMalformedResponse(
                message="Classifier response is not a JSON array",
                provider=self.provider_name,
                details={"type": type(payload).__name__},
            )

        labels = []
        for item in payload:
            try:
                label = item["label"]
                score = item["score"]
                if not isinstance(label, str) or isinstance(score, bool):
                    raise TypeError("label must be a string and score a number")
                score = float(score)
                if not math.isfinite(score):
                    raise ValueError(f"score is not finite: {score}")
            except (KeyError, TypeError, ValueError) as e:
                raise ProviderMalformedResponse(
                    message=f"Malformed classifier label: {e}",
                    provider=self.provider_name,
                    details={"item": repr(item)[:200]},
                ) from e
            labels.append(
                ProviderLabel(label=label.strip().lower(), confidence=min(max(score, 0.0), 1.0))
            )

        labels.sort(key=lambda item: item.confidence, reverse=True)
        return labels
