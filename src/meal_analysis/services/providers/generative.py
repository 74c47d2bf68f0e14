"""
Multimodal generative provider (OpenAI chat completions).

Sends the image as a base64 data URL together with a prompt and expects a
JSON nutrition record in the message content.
"""

import base64
import json
import logging
import re

import httpx
from pydantic import ValidationError

from meal_analysis.models.analysis import NutritionRecord

from .base import DEFAULT_TIMEOUT, AnalysisProvider, ProviderMalformedResponse

logger = logging.getLogger(__name__)


NUTRITION_PROMPT = """Analyze this food image and provide a detailed nutritional analysis.

Respond ONLY with JSON using exactly this structure:
{
  "calories": <number>,
  "protein": <number in grams>,
  "carbs": <number in grams>,
  "fats": <number in grams>,
  "confidence": <number between 0 and 1>,
  "detectedFoods": ["food1", "food2"],
  "description": "<short description of the meal>"
}

User description: {description}

Be precise with calories and macros. If you are not sure, use conservative values."""


_FENCE_PATTERN = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n?(.*?)\n?```$", re.DOTALL)


def build_prompt(description: str | None) -> str:
    text = description.strip() if description and description.strip() else "Not provided"
    return NUTRITION_PROMPT.replace("{description}", text)


def unwrap_json_content(content: str) -> str:
    """
    Strip wrapping artifacts from a model's JSON answer.

    Handles surrounding whitespace, markdown code fences (```json or bare
    ```), and prose before or after a single top-level JSON object. The
    result is not guaranteed to parse; callers still validate it.

    Args:
        content: Raw message content

    Returns:
        The text most likely to be the JSON object
    """
    text = content.strip()

    match = _FENCE_PATTERN.match(text)
    if match:
        text = match.group(1).strip()

    if text.startswith("{") and text.endswith("}"):
        return text

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]

    return text


class GenerativeProvider(AnalysisProvider):
    """
    Nutrition estimation using an OpenAI vision-capable chat model.
    """

    def __init__(
        self,
        url: str = "https://api.openai.com/v1/chat/completions",
        api_key: str = "",
        model: str = "gpt-4o",
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize generative provider.

        Args:
            url: Chat completions endpoint
            api_key: OpenAI API key
            model: Vision model to use
            timeout: Hard timeout in seconds
            client: Optional preconfigured HTTP client
        """
        super().__init__(timeout=timeout, client=client)
        self.url = url
        self.api_key = api_key
        self.model = model

    @property
    def provider_name(self) -> str:
        return "generative"

    def build_request(self, image: bytes, description: str | None) -> dict:
        image_b64 = base64.b64encode(image).decode("utf-8")
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(description)},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"},
                        },
                    ],
                }
            ],
            "max_tokens": 500,
            "temperature": 0.1,
        }

    async def _analyze(self, image: bytes, description: str | None) -> NutritionRecord:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        logger.info(f"Sending nutrition request to {self.model}")
        response = await self._post(
            self.url,
            json=self.build_request(image, description),
            headers=headers,
        )

        content = self._extract_content(response)
        logger.debug(f"Raw generative content: {content[:500]}")
        return self._parse_record(content)

    def _extract_content(self, response: httpx.Response) -> str:
        """Pull the first choice's message text out of the chat envelope."""
        try:
            envelope = response.json()
            content = envelope["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderMalformedResponse(
                message=f"Unexpected chat envelope: {e}",
                provider=self.provider_name,
                details={"body": response.text[:500]},
            ) from e

        if not isinstance(content, str) or not content.strip():
            raise ProviderMalformedResponse(
                message="No content in chat response",
                provider=self.provider_name,
            )
        return content

    def _parse_record(self, content: str) -> NutritionRecord:
        json_str = unwrap_json_content(content)
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ProviderMalformedResponse(
                message=f"Invalid JSON in generative response: {e}",
                provider=self.provider_name,
                details={"content": content[:500]},
            ) from e

        if not isinstance(data, dict):
            raise ProviderMalformedResponse(
                message="Generative response is not a JSON object",
                provider=self.provider_name,
            )

        data.pop("kind", None)
        try:
            return NutritionRecord.model_validate(data)
        except ValidationError as e:
            raise ProviderMalformedResponse(
                message="Generative response does not match the nutrition schema",
                provider=self.provider_name,
                details={"errors": e.errors(include_url=False)},
            ) from e
