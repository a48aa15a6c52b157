# leadsight/adapters/vision/gemini.py
from __future__ import annotations

import base64
from typing import Any, Awaitable, Callable

import httpx

from ...config import settings
from ...domain.errors import ProviderError, TransportFailure
from ...domain.types import SatelliteImage
from ..clients.http_resilience import resilient_request

ImageLoader = Callable[[str], Awaitable[bytes]]


async def _download(url: str) -> bytes:
    resp = await resilient_request("GET", url, timeout_s=settings.IMAGERY_TIMEOUT_S)
    return resp.content


class GeminiProvider:
    """generateContent with the image inlined as base64; Gemini will not fetch remote URLs."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None,
        model: str,
        name: str = "gemini",
        image_loader: ImageLoader | None = None,
    ) -> None:
        self.name = name
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._load_image = image_loader or _download

    async def _inline_image(self, image: SatelliteImage) -> str:
        try:
            raw = await self._load_image(image.url)
        except (httpx.HTTPError, TransportFailure) as e:
            raise ProviderError(self.name, f"could not load image bytes: {e}") from e
        return base64.b64encode(raw).decode("ascii")

    async def classify(self, image: SatelliteImage, prompt: str) -> str:
        if not self._api_key:
            raise ProviderError(self.name, "API key not configured")

        payload: dict[str, Any] = {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": "image/png", "data": await self._inline_image(image)}},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": settings.VISION_TEMPERATURE,
                "maxOutputTokens": settings.VISION_MAX_TOKENS,
            },
        }
        url = f"{self._base_url}/models/{self._model}:generateContent"

        try:
            resp = await resilient_request(
                "POST",
                url,
                headers={"Content-Type": "application/json"},
                params={"key": self._api_key},
                json=payload,
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
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, "response has no candidates[0].content.parts") from e

        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text:
            raise ProviderError(self.name, "candidate contains no text parts")
        return text
