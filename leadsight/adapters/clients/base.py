# leadsight/adapters/clients/base.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Protocol

from ...domain.types import PropertyCandidate, SatelliteImage


@dataclass(frozen=True)
class SearchFilters:
    min_price: int | None = None
    max_price: int | None = None
    min_bedrooms: int | None = None
    max_bedrooms: int | None = None
    status_type: str = "ForSale"
    home_type: str = "Houses"

    def as_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class ListingsClient(Protocol):
    async def search(self, location: str, filters: SearchFilters) -> list[PropertyCandidate]:
        """Empty list means zero results; transport failures raise ListingsUnavailable."""
        raise NotImplementedError

    async def get_property_details(self, property_id: str) -> PropertyCandidate:
        """Unknown ids raise NoPropertiesFound."""
        raise NotImplementedError


class ImageryProvider(Protocol):
    async def fetch_satellite_image(self, latitude: float, longitude: float) -> SatelliteImage:
        raise NotImplementedError

    async def fetch_image_bytes(self, url: str) -> bytes:
        raise NotImplementedError
