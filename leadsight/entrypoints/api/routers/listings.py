# leadsight/entrypoints/api/routers/listings.py
from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, Query

from ..deps import get_orchestrator
from ....adapters.clients.base import SearchFilters
from ....service_layer.batch_leads import BatchLeadOrchestrator, validate_location

router = APIRouter(tags=["listings"])


@router.get("/listings/search")
async def search_listings(
    location: str = Query(default=""),
    min_price: int | None = Query(default=None, ge=0, alias="minPrice"),
    max_price: int | None = Query(default=None, ge=0, alias="maxPrice"),
    min_bedrooms: int | None = Query(default=None, ge=0, alias="minBedrooms"),
    max_bedrooms: int | None = Query(default=None, ge=0, alias="maxBedrooms"),
    orchestrator: BatchLeadOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    location = validate_location(location)
    filters = SearchFilters(
        min_price=min_price,
        max_price=max_price,
        min_bedrooms=min_bedrooms,
        max_bedrooms=max_bedrooms,
    )
    found = await orchestrator.search_listings(location, filters)
    return {
        "success": True,
        "location": location,
        "filters": filters.as_dict(),
        "count": len(found),
        "properties": [asdict(c) for c in found],
    }


@router.get("/listings/{property_id}")
async def property_details(
    property_id: str,
    orchestrator: BatchLeadOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    cand = await orchestrator.get_property(property_id)
    return {"success": True, "data": asdict(cand)}
