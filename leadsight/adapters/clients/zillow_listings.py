# leadsight/adapters/clients/zillow_listings.py
from __future__ import annotations

import logging
import math
from typing import Any

import httpx

from ...config import settings
from ...domain.errors import InvalidInput, ListingsUnavailable, NoPropertiesFound
from ...domain.types import PropertyCandidate
from .base import SearchFilters
from .http_resilience import resilient_request

log = logging.getLogger(__name__)

_ENVELOPE_KEYS = ("props", "results", "properties", "data")
_PROVIDER_ASSERTIONS = ("has_pool", "pool_type", "has_backyard", "surface_type", "lot_size")


def _pick(item: dict[str, Any], *names: str) -> Any:
    """
    First usable value among `names`. A name may be a dot path into nested
    objects ('address.streetAddress'); blank strings count as missing.
    """
    for name in names:
        v: Any = item
        for part in name.split("."):
            v = v.get(part) if isinstance(v, dict) else None
        if v is None or (isinstance(v, str) and not v.strip()):
            continue
        return v
    return None


def _num(v: Any) -> float | None:
    # Zillow sends numbers, numeric strings and sometimes "NaN"
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(str(v).replace(",", "")) if isinstance(v, str) else float(v)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(f) or math.isinf(f) else f


def _year(v: Any) -> int | None:
    f = _num(v)
    return int(f) if f is not None and f > 0 else None


def _text(v: Any) -> str:
    return "" if v is None else str(v).strip()


def _to_bool(v: Any) -> bool | None:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        s = v.strip().lower()
        if s in ("true", "yes", "1"):
            return True
        if s in ("false", "no", "0"):
            return False
    return None


def _extract_rows(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return [x for x in data if isinstance(x, dict)]
    if isinstance(data, dict):
        for k in _ENVELOPE_KEYS:
            v = data.get(k)
            if isinstance(v, list):
                return [x for x in v if isinstance(x, dict)]
        log.warning("unexpected listings envelope keys=%s", sorted(data)[:10])
    return []


def canonicalize_listing(item: dict[str, Any]) -> PropertyCandidate | None:
    pid = _pick(item, "zpid", "id")
    if pid is None:
        return None

    # search rows carry a flat address string; /property nests it
    address = _pick(item, "address.streetAddress", "address", "formattedAddress")
    if isinstance(address, dict):
        address = _pick(item, "formattedAddress")

    attributes: dict[str, Any] = {}
    for key in _PROVIDER_ASSERTIONS:
        if item.get(key) is not None:
            attributes[key] = item[key]
    for key in ("has_pool", "has_backyard"):
        if key in attributes:
            b = _to_bool(attributes[key])
            if b is None:
                del attributes[key]
            else:
                attributes[key] = b

    return PropertyCandidate(
        id=_text(pid),
        address=_text(address),
        latitude=_num(_pick(item, "latitude", "lat")),
        longitude=_num(_pick(item, "longitude", "lng", "lon")),
        price=_num(_pick(item, "price", "unformattedPrice")),
        bedrooms=_num(_pick(item, "bedrooms", "beds")),
        bathrooms=_num(_pick(item, "bathrooms", "baths")),
        square_feet=_num(_pick(item, "livingArea", "squareFeet", "sqft")),
        lot_size=_num(_pick(item, "lotAreaValue", "lotSize", "lot_size")),
        year_built=_year(item.get("yearBuilt")),
        property_type=_text(_pick(item, "propertyType", "homeType", "type")) or None,
        listing_url=_text(_pick(item, "detailUrl", "url", "listingUrl")) or None,
        city=_text(_pick(item, "city", "address.city")),
        state=_text(_pick(item, "state", "address.state")),
        zipcode=_text(_pick(item, "zipcode", "zip", "zipCode", "address.zipcode")),
        attributes=attributes,
    )


class ZillowListingsClient:
    """
    Thin client for the RapidAPI-hosted Zillow search.
    Returns canonical PropertyCandidate records, not raw payloads.
    """

    def __init__(self, *, api_key: str | None = None, host: str | None = None) -> None:
        self._api_key = api_key if api_key is not None else settings.RAPIDAPI_KEY
        self._host = host or settings.RAPIDAPI_HOST

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ListingsUnavailable("RAPIDAPI_KEY is not set")
        return {"x-rapidapi-key": self._api_key, "x-rapidapi-host": self._host}

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        try:
            resp = await resilient_request(
                "GET",
                f"https://{self._host}{path}",
                headers=self._headers(),
                params=params,
                timeout_s=settings.LISTINGS_TIMEOUT_S,
            )
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise ListingsUnavailable(
                f"listings provider returned status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ListingsUnavailable(f"no response from listings provider: {e}") from e
        except ValueError as e:
            raise ListingsUnavailable(f"listings provider returned non-JSON body: {e}") from e

    async def search(self, location: str, filters: SearchFilters) -> list[PropertyCandidate]:
        if not location or not location.strip():
            raise InvalidInput("Location parameter is required for property search")

        f = filters.as_dict()
        params: dict[str, Any] = {
            "location": location,
            "status_type": f.pop("status_type"),
            "home_type": f.pop("home_type"),
        }
        # provider uses camelCase filter names
        params.update({
            "minPrice": f.get("min_price"),
            "maxPrice": f.get("max_price"),
            "bedsMin": f.get("min_bedrooms"),
            "bedsMax": f.get("max_bedrooms"),
        })
        params = {k: v for k, v in params.items() if v is not None}

        data = await self._get_json("/propertyExtendedSearch", params)

        out: list[PropertyCandidate] = []
        for row in _extract_rows(data):
            cand = canonicalize_listing(row)
            if cand is not None:
                out.append(cand)

        log.info("listings search location=%r params=%s results=%s", location, params, len(out))
        return out

    async def get_property_details(self, property_id: str) -> PropertyCandidate:
        if not property_id or not str(property_id).strip():
            raise InvalidInput("Property ID parameter is required")
        pid = str(property_id).strip()

        data = await self._get_json("/property", {"zpid": pid})
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]

        cand = canonicalize_listing(data) if isinstance(data, dict) else None
        if cand is None:
            raise NoPropertiesFound(f"Property {pid} not found")

        log.info("listings details zpid=%s has_coordinates=%s", pid, cand.has_coordinates)
        return cand
