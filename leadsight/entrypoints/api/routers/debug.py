# leadsight/entrypoints/api/routers/debug.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ..deps import get_cache, require_api_key
from ....adapters.cache import CoordinateCache
from ....schemas import CacheStatsOut

router = APIRouter(tags=["debug"])


@router.get("/debug/cache/stats", response_model=CacheStatsOut, dependencies=[Depends(require_api_key)])
def cache_stats(cache: CoordinateCache = Depends(get_cache)) -> dict[str, Any]:
    return cache.snapshot()


@router.delete("/debug/cache", dependencies=[Depends(require_api_key)])
def cache_clear(cache: CoordinateCache = Depends(get_cache)) -> dict[str, Any]:
    return {"success": True, "removed": cache.clear()}
