# leadsight/adapters/vision/openai_compatible.py
from __future__ import annotations

import logging
from typing import Any

import httpx

from ...config import settings
from ...domain.errors import ProviderError
from ...domain.types import SatelliteImage
from ..clients.http_resilience import resilient_request
from .base import VisionProvider
from .gemini import GeminiProvider

log = logging.getLogger(__name__)


class OpenAICompatibleProvider:
    """chat/completions with an image_url content part (OpenAI, Groq)."""

    def __init__(self, *, name: str, base_url: str, api_key: str | None, model: str) -> None:
        self.name = name
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._model = model

    def _payload(self, image: SatelliteImage, prompt: str) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": image.url}},
                    ],
                }
            ],
            "max_tokens": settings.VISION_MAX_TOKENS,
            "temperature": settings.VISION_TEMPERATURE,
        }

    async def classify(self, image: SatelliteImage, prompt: str) -> str:
        if not self._api_key:
            raise ProviderError(self.name, "API key not configured")

        url = f"{self._base_url}/chat/completions"
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}

        try:
            resp = await resilient_request(
                "POST",
                url,
                headers=headers,
                json=self._payload(image, prompt),
                timeout_s=settings.VISION_TIMEOUT_S,
            )
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(self.name, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise ProviderError(self.name, "non-JSON response body") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, "response has no choices[0].message.content") from e

        if isinstance(content, list):
            # some compatible servers return content parts
            content = "".join(p.get("text", "") for p in content if isinstance(p, dict))
        if not isinstance(content, str):
            raise ProviderError(self.name, "message content is not text")
        return content


def build_default_providers() -> list[VisionProvider]:
    """Rank order: OpenAI, then Groq, then Gemini."""
    return [
        OpenAICompatibleProvider(
            name="openai",
            base_url=settings.OPENAI_BASE_URL,
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
        ),
        OpenAICompatibleProvider(
            name="groq",
            base_url=settings.GROQ_BASE_URL,
            api_key=settings.GROQ_API_KEY,
            model=settings.GROQ_MODEL,
        ),
        GeminiProvider(
            base_url=settings.GEMINI_BASE_URL,
            api_key=settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
        ),
    ]
