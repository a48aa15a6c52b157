# leadsight/adapters/clients/satellite_imagery.py
from __future__ import annotations

import logging
from urllib.parse import urlencode

import httpx

from ...config import settings
from ...domain.errors import ImageRetrievalError
from ...domain.types import SatelliteImage
from .http_resilience import resilient_request

log = logging.getLogger(__name__)


class GoogleStaticMapsImagery:
    """
    Satellite tiles from the Google Static Maps API.

    The reference returned is the signed-by-key URL itself; vision providers
    that accept remote images use it directly, the rest pull bytes through
    fetch_image_bytes().
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        zoom: int | None = None,
        size_px: int | None = None,
        verify: bool = True,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self._base_url = base_url or settings.IMAGERY_BASE_URL
        self._zoom = int(zoom if zoom is not None else settings.IMAGERY_ZOOM)
        self._size = int(size_px if size_px is not None else settings.IMAGERY_SIZE_PX)
        self._verify = verify

    def build_url(self, latitude: float, longitude: float) -> str:
        if not self._api_key:
            raise ImageRetrievalError("GOOGLE_MAPS_API_KEY is not set")
        params = {
            "center": f"{latitude},{longitude}",
            "zoom": self._zoom,
            "size": f"{self._size}x{self._size}",
            "maptype": "satellite",
            "markers": f"color:red|label:P|{latitude},{longitude}",
            "key": self._api_key,
        }
        return f"{self._base_url}?{urlencode(params)}"

    async def fetch_satellite_image(self, latitude: float, longitude: float) -> SatelliteImage:
        url = self.build_url(latitude, longitude)
        if self._verify:
            await self.fetch_image_bytes(url)

        return SatelliteImage(
            url=url,
            latitude=latitude,
            longitude=longitude,
            zoom=self._zoom,
            width=self._size,
            height=self._size,
        )

    async def fetch_image_bytes(self, url: str) -> bytes:
        try:
            resp = await resilient_request("GET", url, timeout_s=settings.IMAGERY_TIMEOUT_S)
        except httpx.HTTPStatusError as e:
            raise ImageRetrievalError(f"imagery provider returned status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ImageRetrievalError(f"imagery provider unreachable: {e}") from e

        ctype = resp.headers.get("content-type", "")
        if ctype and not ctype.startswith("image/"):
            # Static Maps answers 200 + text for some key/quota errors
            raise ImageRetrievalError(f"imagery provider returned non-image content ({ctype})")
        return resp.content
