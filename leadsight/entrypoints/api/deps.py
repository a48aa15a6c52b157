# leadsight/entrypoints/api/deps.py
from __future__ import annotations

from fastapi import Header, HTTPException, Request

from ...adapters.cache import CoordinateCache
from ...config import settings
from ...service_layer.batch_leads import BatchLeadOrchestrator


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    if settings.API_KEY:
        if not x_api_key or x_api_key != settings.API_KEY:
            raise HTTPException(status_code=401, detail="Invalid API key")


def get_cache(request: Request) -> CoordinateCache:
    return request.app.state.cache


def get_orchestrator(request: Request) -> BatchLeadOrchestrator:
    return request.app.state.orchestrator
