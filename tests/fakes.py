# tests/fakes.py
import json
from typing import Any, Callable

from leadsight.adapters.clients.base import SearchFilters
from leadsight.domain.errors import NoPropertiesFound, ProviderError
from leadsight.domain.types import PropertyCandidate, SatelliteImage


def pool_json(has_pool: bool = True, confidence: Any = 85, **extra: Any) -> str:
    return json.dumps({"has_pool": has_pool, "confidence": confidence, "reasoning": "test", **extra})


def backyard_json(
    *,
    empty: bool = False,
    underdeveloped: bool = False,
    surface: str = "grass",
    free_area: str = "medium",
    potential: str = "medium",
    confidence: Any = 75,
    structures: list[str] | None = None,
) -> str:
    return json.dumps(
        {
            "is_empty_backyard": empty,
            "is_underdeveloped": underdeveloped,
            "surface_type": surface,
            "estimated_free_area": free_area,
            "development_potential": potential,
            "confidence": confidence,
            "structures_detected": structures or [],
            "reasoning": "test",
        }
    )


def make_candidate(i: int, *, lat: float | None = None, lon: float | None = None, **attrs: Any) -> PropertyCandidate:
    return PropertyCandidate(
        id=f"z{i}",
        address=f"{i} Test St",
        latitude=30.0 + i / 1000 if lat is None else lat,
        longitude=-97.0 - i / 1000 if lon is None else lon,
        price=400_000.0,
        bedrooms=3,
        bathrooms=2,
        attributes=attrs,
    )


class FakeListings:
    """Band results keyed by min_price; an Exception value raises for that band."""

    def __init__(self, bands: dict[int, Any] | None = None, details: dict[str, PropertyCandidate] | None = None) -> None:
        self.bands = bands or {}
        self.details = details or {}
        self.calls: list[tuple[str, SearchFilters]] = []
        self.detail_calls: list[str] = []

    async def search(self, location: str, filters: SearchFilters) -> list[PropertyCandidate]:
        self.calls.append((location, filters))
        found = self.bands.get(filters.min_price or 0, [])
        if isinstance(found, Exception):
            raise found
        return list(found)

    async def get_property_details(self, property_id: str) -> PropertyCandidate:
        self.detail_calls.append(property_id)
        if property_id not in self.details:
            raise NoPropertiesFound(f"Property {property_id} not found")
        return self.details[property_id]


class FakeImagery:
    def __init__(self, fail: Exception | None = None) -> None:
        self.fail = fail
        self.calls: list[tuple[float, float]] = []

    async def fetch_satellite_image(self, latitude: float, longitude: float) -> SatelliteImage:
        self.calls.append((latitude, longitude))
        if self.fail is not None:
            raise self.fail
        return SatelliteImage(
            url=f"https://img.test/{latitude},{longitude}.png",
            latitude=latitude,
            longitude=longitude,
            zoom=21,
            width=600,
            height=600,
        )

    async def fetch_image_bytes(self, url: str) -> bytes:
        return b"\x89PNG"


class FakeProvider:
    """
    responder: fixed text, an Exception to raise, or a callable(image) -> text.
    """

    def __init__(self, name: str, responder: Any) -> None:
        self.name = name
        self.responder = responder
        self.calls: list[SatelliteImage] = []

    async def classify(self, image: SatelliteImage, prompt: str) -> str:
        self.calls.append(image)
        r = self.responder
        if isinstance(r, Exception):
            raise r
        if callable(r):
            out = r(image)
            if isinstance(out, Exception):
                raise out
            return out
        return r


def down(name: str) -> FakeProvider:
    return FakeProvider(name, ProviderError(name, "connection refused"))


def by_latitude(answers: dict[float, str], default: str | None = None) -> Callable[[SatelliteImage], Any]:
    def _respond(image: SatelliteImage) -> Any:
        text = answers.get(round(image.latitude, 6), default)
        if text is None:
            return ProviderError("fake", f"no scripted answer for {image.latitude}")
        return text

    return _respond


