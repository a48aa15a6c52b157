# leadsight/entrypoints/api/routers/leads.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Response

from ..deps import get_cache, get_orchestrator
from ....adapters.cache import CoordinateCache
from ....adapters.clients.base import SearchFilters
from ....config import settings
from ....domain.policies import policy_for
from ....domain.quality import generate_quality_report
from ....domain.types import InvalidCandidate, LeadCategory, PropertyCandidate
from ....schemas import (
    AnalyzePropertyItem,
    AnalyzeRequest,
    BatchLeadsMultipleRequest,
    BatchLeadsRequest,
    SearchAndAnalyzeRequest,
    ValidateVisualRequest,
)
from ....service_layer.batch_leads import BatchLeadOrchestrator
from ....service_layer.formatter import (
    format_batch_response,
    format_multi_category_response,
    format_quality_report,
    format_validation,
)

log = logging.getLogger(__name__)

router = APIRouter(tags=["leads"])

SOURCE = "leadsight-batch-pipeline"


def _metadata(cached: bool, **extra: Any) -> dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "source": SOURCE,
        "cached": cached,
        **extra,
    }


@router.post("/leads/validate-visual")
async def validate_visual(
    body: ValidateVisualRequest,
    orchestrator: BatchLeadOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    category = LeadCategory.parse(body.lead_type)
    context = {"address": body.address, "property_id": body.property_id, "provider_data": body.provider_data}

    record = await orchestrator.validate_visual(body.latitude, body.longitude, category, context)

    # the caller's provider data stands in for a listing record
    candidate = PropertyCandidate(
        id=body.property_id or "adhoc",
        address=body.address or "",
        latitude=body.latitude,
        longitude=body.longitude,
        attributes=dict(body.provider_data),
    )
    report = generate_quality_report(candidate.id, candidate, record, category)
    reason = policy_for(category).invalid_reason(record.analysis)

    return {
        "success": True,
        "data": {
            "validation": format_validation(record),
            "valid": reason is None,
            "invalid_reason": reason,
            "quality_report": format_quality_report(report),
        },
        "metadata": _metadata(cached=False),
    }


@router.post("/leads/batch")
async def batch_leads(
    body: BatchLeadsRequest,
    orchestrator: BatchLeadOrchestrator = Depends(get_orchestrator),
    cache: CoordinateCache = Depends(get_cache),
) -> dict[str, Any]:
    key = cache.generate_key(
        "batch-leads",
        {"location": body.location, "leadType": body.lead_type, "requestedLeads": body.requested_leads},
    )
    cached = cache.get(key)
    if cached is not None:
        cached["metadata"] = _metadata(cached=True)
        return cached

    result = await orchestrator.get_batch_leads(body.location, body.lead_type, body.requested_leads)
    response = {"success": True, "data": format_batch_response(result), "metadata": _metadata(cached=False)}
    cache.set(key, response, settings.BATCH_CACHE_TTL_S)

    log.info(
        "batch leads location=%r lead_type=%s requested=%s delivered=%s",
        result.location, result.category.value, result.requested_leads, result.delivered_leads,
    )
    return response


@router.post("/leads/batch-multiple")
async def batch_leads_multiple(
    body: BatchLeadsMultipleRequest,
    orchestrator: BatchLeadOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    result = await orchestrator.get_batch_leads_multiple(body.location, body.lead_types, body.requested_leads)
    return {"success": True, "data": format_multi_category_response(result), "metadata": _metadata(cached=False)}


# ---------- ad-hoc analysis ----------


def _as_candidate(item: AnalyzePropertyItem) -> PropertyCandidate:
    return PropertyCandidate(
        id="" if item.property_id is None else str(item.property_id).strip(),
        address=item.address.strip() if isinstance(item.address, str) else "",
        latitude=item.latitude,
        longitude=item.longitude,
        attributes=dict(item.provider_data),
    )


def _location_hint(address: str) -> str:
    # "10 Lake Dr, Austin, TX 78701" -> "TX 78701"
    tail = address.rsplit(",", 1)[-1].strip()
    return tail or "Unknown"


async def _analyze(
    body: AnalyzeRequest,
    category: LeadCategory,
    response: Response,
    orchestrator: BatchLeadOrchestrator,
) -> dict[str, Any]:
    if body.properties is None:
        # single property: errors map straight to an HTTP status
        lead = await orchestrator.analyze_candidate(_as_candidate(body), category)
        result = orchestrator.analysis_result(_location_hint(lead.candidate.address), category, [lead])
        return {
            "success": True,
            "data": format_batch_response(result),
            "metadata": _metadata(cached=False, analysis_type=category.value),
        }

    candidates = [_as_candidate(p) for p in body.properties]
    outcomes = await orchestrator.analyze_many(candidates, category)
    location = _location_hint(candidates[0].address) if candidates else "Unknown"
    result = orchestrator.analysis_result(location, category, outcomes)

    errors = [
        {"property_index": i, "zpid": o.id or None, "error": o.reason}
        for i, o in enumerate(outcomes)
        if isinstance(o, InvalidCandidate)
    ]
    if errors:
        response.status_code = 207

    log.info(
        "analysis done category=%s total=%s analyzed=%s errors=%s",
        category.value, len(outcomes), result.delivered_leads, len(errors),
    )
    return {
        "success": not errors,
        "data": format_batch_response(result),
        "errors": errors,
        "metadata": _metadata(cached=False, analysis_type=category.value),
    }


@router.post("/leads/analyze-pool")
async def analyze_pool(
    body: AnalyzeRequest,
    response: Response,
    orchestrator: BatchLeadOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return await _analyze(body, LeadCategory.pool_check, response, orchestrator)


@router.post("/leads/analyze-backyard")
async def analyze_backyard(
    body: AnalyzeRequest,
    response: Response,
    orchestrator: BatchLeadOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return await _analyze(body, LeadCategory.backyard_check, response, orchestrator)


async def _search_and_analyze(
    body: SearchAndAnalyzeRequest,
    category: LeadCategory,
    orchestrator: BatchLeadOrchestrator,
) -> dict[str, Any]:
    f = body.filters
    filters = SearchFilters(
        min_price=f.min_price,
        max_price=f.max_price,
        min_bedrooms=f.min_bedrooms,
        max_bedrooms=f.max_bedrooms,
    )
    result = await orchestrator.search_and_analyze(body.location, category, filters, body.count)
    return {
        "success": True,
        "data": format_batch_response(result),
        "metadata": _metadata(cached=False, analysis_type=category.value),
    }


@router.post("/leads/search-and-analyze-pool")
async def search_and_analyze_pool(
    body: SearchAndAnalyzeRequest,
    orchestrator: BatchLeadOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return await _search_and_analyze(body, LeadCategory.pool_check, orchestrator)


@router.post("/leads/search-and-analyze-backyard")
async def search_and_analyze_backyard(
    body: SearchAndAnalyzeRequest,
    orchestrator: BatchLeadOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return await _search_and_analyze(body, LeadCategory.backyard_check, orchestrator)


@router.post("/leads/search-and-analyze")
async def search_and_analyze(
    body: SearchAndAnalyzeRequest,
    orchestrator: BatchLeadOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return await _search_and_analyze(body, LeadCategory.parse(body.lead_type), orchestrator)
