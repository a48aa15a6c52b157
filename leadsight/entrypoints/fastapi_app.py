# leadsight/entrypoints/fastapi_app.py
from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..adapters.cache import CoordinateCache
from ..adapters.clients.base import ListingsClient
from ..config import settings
from ..domain.errors import (
    InvalidInput,
    LeadSightError,
    MalformedAnalysis,
    NoPropertiesFound,
    TransportFailure,
)
from ..jobs.scheduler import build_scheduler
from ..schemas import ErrorBody, ErrorResponse
from ..service_layer.batch_leads import BatchLeadOrchestrator
from ..service_layer.vision_verifier import VisionVerifier
from .api.routers import debug, health, leads
from .api.routers import listings as listing_routes

log = logging.getLogger(__name__)

# most specific first
_STATUS_BY_ERROR: list[tuple[type[LeadSightError], int]] = [
    (InvalidInput, 400),
    (NoPropertiesFound, 404),
    (MalformedAnalysis, 502),
    (TransportFailure, 503),
]


def status_for(exc: LeadSightError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return 500


def error_code(exc: Exception) -> str:
    # VisionUnavailable -> VISION_UNAVAILABLE
    return re.sub(r"(?<!^)(?=[A-Z])", "_", type(exc).__name__).upper()


def _error_response(code: str, message: str, status: int) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorBody(
            code=code,
            message=message,
            statusCode=status,
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )
    )
    return JSONResponse(status_code=status, content=body.model_dump())


def create_app(
    *,
    cache: CoordinateCache | None = None,
    listings: ListingsClient | None = None,
    verifier: VisionVerifier | None = None,
    run_scheduler: bool = True,
) -> FastAPI:
    if cache is None:
        cache = CoordinateCache(settings.CACHE_DEFAULT_TTL_S)
    if listings is None:
        from ..adapters.clients.zillow_listings import ZillowListingsClient

        listings = ZillowListingsClient()
    if verifier is None:
        verifier = VisionVerifier.from_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = build_scheduler(cache) if run_scheduler else None
        if scheduler is not None:
            scheduler.start()
        log.info("leadsight started env=%s providers=%s", settings.ENV, verifier.provider_names)
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown(wait=False)
            cache.clear()

    app = FastAPI(title="LeadSight - Visual Lead Validation", lifespan=lifespan)

    # one cache per process, shared by every route and the sweep job
    app.state.cache = cache
    app.state.verifier = verifier
    app.state.orchestrator = BatchLeadOrchestrator(listings, verifier, cache)

    @app.exception_handler(LeadSightError)
    async def _pipeline_error(request: Request, exc: LeadSightError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            log.error("request failed path=%s error=%s: %s", request.url.path, type(exc).__name__, exc)
        else:
            log.info("request rejected path=%s error=%s: %s", request.url.path, type(exc).__name__, exc)
        return _error_response(error_code(exc), str(exc), status)

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or "request"
        return _error_response("INVALID_INPUT", f"Invalid {loc}: {first.get('msg', 'invalid value')}", 400)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(health.router)
    app.include_router(listing_routes.router)
    app.include_router(leads.router)
    app.include_router(debug.router)

    return app
