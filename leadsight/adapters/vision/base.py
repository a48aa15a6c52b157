# leadsight/adapters/vision/base.py
from __future__ import annotations

from typing import Protocol

from ...domain.types import SatelliteImage


class VisionProvider(Protocol):
    """
    One ranked vision backend.

    classify() returns the model's raw text. It must raise ProviderError for
    anything that means "this provider is unavailable" so the verifier can move
    on to the next one; it never parses the analysis itself.
    """

    name: str

    async def classify(self, image: SatelliteImage, prompt: str) -> str:
        raise NotImplementedError
