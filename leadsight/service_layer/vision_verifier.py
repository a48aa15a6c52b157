# leadsight/service_layer/vision_verifier.py
"""
Coordinates -> satellite image -> ranked vision providers -> parsed analysis.

The verifier does no caching of its own; the caller decides what to keep.
Only TransportFailure advances to the next provider. A provider that answered
with an unusable analysis raises MalformedAnalysis straight through.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Sequence

from ..adapters.clients.base import ImageryProvider
from ..adapters.vision.base import VisionProvider
from ..domain.analysis import build_prompt, parse_analysis
from ..domain.errors import InvalidInput, TransportFailure, VisionUnavailable
from ..domain.types import LeadCategory, ValidationRecord

log = logging.getLogger(__name__)


def _check_coordinate(name: str, value: Any, bound: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise InvalidInput(f"{name} must be a number (got {value!r})")
    if not -bound <= value <= bound:
        raise InvalidInput(f"{name} must be within [-{bound:g}, {bound:g}] (got {value})")
    return float(value)


def validate_coordinates(latitude: Any, longitude: Any) -> tuple[float, float]:
    return (
        _check_coordinate("latitude", latitude, 90),
        _check_coordinate("longitude", longitude, 180),
    )


class VisionVerifier:
    def __init__(self, imagery: ImageryProvider, providers: Sequence[VisionProvider]) -> None:
        if not providers:
            raise ValueError("VisionVerifier needs at least one provider")
        self.imagery = imagery
        self.providers = list(providers)

    @classmethod
    def from_settings(cls) -> "VisionVerifier":
        from ..adapters.clients.satellite_imagery import GoogleStaticMapsImagery
        from ..adapters.vision import build_default_providers

        return cls(GoogleStaticMapsImagery(), build_default_providers())

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self.providers]

    async def verify(
        self,
        latitude: Any,
        longitude: Any,
        category: LeadCategory | str,
        context: dict[str, Any] | None = None,
    ) -> ValidationRecord:
        lat, lon = validate_coordinates(latitude, longitude)
        category = LeadCategory.parse(category)

        image = await self.imagery.fetch_satellite_image(lat, lon)
        prompt = build_prompt(category, context)

        failures: list[TransportFailure] = []
        for provider in self.providers:
            try:
                text = await provider.classify(image, prompt)
            except TransportFailure as e:
                log.warning("vision provider failed provider=%s error=%s", provider.name, e)
                failures.append(e)
                continue

            analysis = parse_analysis(text, category)
            if failures:
                log.info(
                    "vision fallback succeeded provider=%s after=%s",
                    provider.name,
                    [getattr(f, "provider", "?") for f in failures],
                )
            return ValidationRecord(
                category=category,
                image=image,
                analysis=analysis,
                provider=provider.name,
                validated_at=datetime.now(timezone.utc),
            )

        primary = failures[0]
        raise VisionUnavailable(
            f"All vision providers failed ({', '.join(self.provider_names)}): {primary}"
        ) from primary
