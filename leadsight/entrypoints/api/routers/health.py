# leadsight/entrypoints/api/routers/health.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from ..deps import get_orchestrator, require_api_key
from ....config import settings
from ....service_layer.batch_leads import BatchLeadOrchestrator

router = APIRouter(tags=["health"])


@router.get("/health")
def health(orchestrator: BatchLeadOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    return {
        "status": "ok",
        "env": settings.ENV,
        "vision_providers": orchestrator.verifier.provider_names,
    }


@router.get("/debug/config", dependencies=[Depends(require_api_key)])
def debug_config() -> dict[str, Any]:
    """Reads the running server's settings; secrets are reported as set/unset only."""
    return {
        "ENV": settings.ENV,
        "RAPIDAPI_HOST": settings.RAPIDAPI_HOST,
        "RAPIDAPI_KEY_SET": bool(settings.RAPIDAPI_KEY),
        "GOOGLE_MAPS_API_KEY_SET": bool(settings.GOOGLE_MAPS_API_KEY),
        "OPENAI_API_KEY_SET": bool(settings.OPENAI_API_KEY),
        "GROQ_API_KEY_SET": bool(settings.GROQ_API_KEY),
        "GEMINI_API_KEY_SET": bool(settings.GEMINI_API_KEY),
        "VISION_CONCURRENCY": settings.VISION_CONCURRENCY,
        "API_KEY_SET": bool(settings.API_KEY),
    }


@router.get("/debug/routes", dependencies=[Depends(require_api_key)])
def debug_routes(request: Request) -> dict[str, Any]:
    routes: list[str] = []
    for r in request.app.routes:
        methods = getattr(r, "methods", None)
        path = getattr(r, "path", None)
        if path:
            routes.append(f"{sorted(methods)} {path}" if methods else path)
    return {"count": len(routes), "routes": sorted(routes)}
