# leadsight/service_layer/batch_leads.py
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from ..adapters.cache import CoordinateCache
from ..adapters.clients.base import ListingsClient, SearchFilters
from ..config import settings
from ..domain.errors import (
    InvalidInput,
    InvalidRequestSize,
    LeadSightError,
    MalformedAnalysis,
    NoPropertiesFound,
    TransportFailure,
)
from ..domain.policies import policy_for
from ..domain.quality import generate_quality_report
from ..domain.types import (
    BatchResult,
    BatchStatistics,
    CategoryFailure,
    InvalidCandidate,
    Lead,
    LeadCategory,
    MultiCategoryResult,
    PropertyCandidate,
    ValidationRecord,
)
from .vision_verifier import VisionVerifier, validate_coordinates

log = logging.getLogger(__name__)

# (min_price, max_price), ascending; searched in this order
PRICE_BANDS: tuple[tuple[int, int], ...] = (
    (0, 500_000),
    (500_001, 1_000_000),
    (1_000_001, 2_000_000),
    (2_000_001, 5_000_000),
)

VALID_REQUEST_SIZES: tuple[int, ...] = (10, 25, 50, 100)


def fetch_target(requested_leads: int, buffer: int | None = None) -> int:
    return requested_leads + (settings.LEAD_BUFFER if buffer is None else buffer)


def bands_to_search(target: int, per_band: int | None = None) -> int:
    per_band = per_band or settings.RESULTS_PER_BAND
    return min(math.ceil(target / per_band), len(PRICE_BANDS))


def validate_request_size(requested_leads: Any) -> int:
    if isinstance(requested_leads, bool) or requested_leads not in VALID_REQUEST_SIZES:
        allowed = ", ".join(str(n) for n in VALID_REQUEST_SIZES)
        raise InvalidRequestSize(f"Requested leads must be one of: {allowed} (got {requested_leads!r})")
    return int(requested_leads)


def validate_location(location: Any) -> str:
    if not isinstance(location, str) or not location.strip():
        raise InvalidInput("Location parameter is required")
    return location.strip()


class BatchLeadOrchestrator:
    """
    Location + category -> up to `requested_leads` validated, quality-scored leads.

    Vision results are cached per (coordinates, category) in the injected
    cache, so a coordinate checked by /leads/validate-visual is reused by a
    later batch and vice versa.
    """

    def __init__(
        self,
        listings: ListingsClient,
        verifier: VisionVerifier,
        cache: CoordinateCache,
        *,
        concurrency: int | None = None,
        vision_ttl_s: float | None = None,
        search_ttl_s: float | None = None,
        buffer: int | None = None,
        per_band: int | None = None,
    ) -> None:
        self.listings = listings
        self.verifier = verifier
        self.cache = cache
        self.concurrency = max(1, int(concurrency or settings.VISION_CONCURRENCY))
        self.vision_ttl_s = float(vision_ttl_s if vision_ttl_s is not None else settings.VISION_CACHE_TTL_S)
        self.search_ttl_s = float(search_ttl_s if search_ttl_s is not None else settings.SEARCH_CACHE_TTL_S)
        self.buffer = settings.LEAD_BUFFER if buffer is None else int(buffer)
        self.per_band = int(per_band or settings.RESULTS_PER_BAND)

    # ---------- cached collaborators ----------

    async def search_listings(self, location: str, filters: SearchFilters) -> list[PropertyCandidate]:
        key = self.cache.generate_key("search", {"location": location, **filters.as_dict()})
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        found = await self.listings.search(location, filters)
        self.cache.set(key, found, self.search_ttl_s)
        return found

    async def validate_visual(
        self,
        latitude: Any,
        longitude: Any,
        category: LeadCategory | str,
        context: dict[str, Any] | None = None,
    ) -> ValidationRecord:
        lat, lon = validate_coordinates(latitude, longitude)
        category = LeadCategory.parse(category)

        key = self.cache.generate_key(
            "visual-validation",
            {"latitude": lat, "longitude": lon, "lead_type": category.value},
        )
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        record = await self.verifier.verify(lat, lon, category, context)
        self.cache.set(key, record, self.vision_ttl_s)
        return record

    async def get_property(self, property_id: Any) -> PropertyCandidate:
        pid = str(property_id).strip() if property_id is not None else ""
        if not pid:
            raise InvalidInput("Property ID parameter is required")

        key = self.cache.generate_key("property", {"id": pid})
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        cand = await self.listings.get_property_details(pid)
        self.cache.set(key, cand, self.search_ttl_s)
        return cand

    # ---------- ad-hoc analysis ----------

    async def analyze_candidate(self, cand: PropertyCandidate, category: LeadCategory | str) -> Lead:
        """
        Vision check plus quality report for one property, whatever the
        vision model saw. The batch validity predicate is not applied here.
        """
        if not cand.id.strip():
            raise InvalidInput("Property ID (zpid) is required")
        if not cand.address.strip():
            raise InvalidInput("Address parameter is required")
        category = LeadCategory.parse(category)
        lat, lon = validate_coordinates(cand.latitude, cand.longitude)
        cand = replace(cand, latitude=lat, longitude=lon)

        context = {"address": cand.address, "property_id": cand.id, "provider_data": dict(cand.attributes)}
        record = await self.validate_visual(lat, lon, category, context)
        report = generate_quality_report(cand.id, cand, record, category)
        return Lead(candidate=cand, validation=record, quality_report=report)

    async def analyze_many(
        self, candidates: Sequence[PropertyCandidate], category: LeadCategory | str
    ) -> list[Lead | InvalidCandidate]:
        """Outcomes come back in input order; a failed property never sinks the rest."""
        category = LeadCategory.parse(category)
        sem = asyncio.Semaphore(self.concurrency)

        async def one(cand: PropertyCandidate) -> Lead | InvalidCandidate:
            async with sem:
                try:
                    return await self.analyze_candidate(cand, category)
                except LeadSightError as e:
                    log.warning("analysis failed id=%s error=%s: %s", cand.id, type(e).__name__, e)
                    return InvalidCandidate(cand.id, cand.address, f"{type(e).__name__}: {e}")

        return list(await asyncio.gather(*(one(c) for c in candidates)))

    def analysis_result(
        self,
        location: str,
        category: LeadCategory,
        outcomes: Sequence[Lead | InvalidCandidate],
        *,
        candidates_found: int | None = None,
        bands_searched: int = 0,
    ) -> BatchResult:
        leads = [o for o in outcomes if isinstance(o, Lead)]
        invalid = [o for o in outcomes if isinstance(o, InvalidCandidate)]
        rate = round(len(leads) / len(outcomes) * 100, 2) if outcomes else 0.0
        avg_conf = (
            round(sum(lead.validation.analysis.confidence for lead in leads) / len(leads), 2) if leads else 0.0
        )
        found = len(outcomes) if candidates_found is None else candidates_found
        return BatchResult(
            location=location,
            category=category,
            requested_leads=len(outcomes),
            fetch_target=found,
            leads=leads,
            invalid=invalid,
            statistics=BatchStatistics(
                validation_rate=rate,
                price_bands_searched=bands_searched,
                average_confidence=avg_conf,
                candidates_found=found,
                candidates_considered=len(outcomes),
            ),
            generated_at=datetime.now(timezone.utc),
        )

    async def search_and_analyze(
        self,
        location: str,
        category: LeadCategory | str,
        filters: SearchFilters | None = None,
        count: int | None = None,
    ) -> BatchResult:
        """
        One search, no price bands or buffer: every located result (or the
        first `count` of them) is analyzed concurrently.
        """
        location = validate_location(location)
        category = LeadCategory.parse(category)

        found = await self.search_listings(location, filters or SearchFilters())
        located = [c for c in found if c.has_coordinates]
        if count is not None and count > 0:
            located = located[:count]

        outcomes = await self.analyze_many(located, category)
        result = self.analysis_result(location, category, outcomes, candidates_found=len(found), bands_searched=1)
        log.info(
            "search and analyze location=%r category=%s found=%s analyzed=%s leads=%s",
            location, category.value, len(found), len(located), result.delivered_leads,
        )
        return result

    # ---------- stages ----------

    async def _collect_candidates(
        self, location: str, category: LeadCategory, target: int
    ) -> tuple[list[PropertyCandidate], int]:
        policy = policy_for(category)
        pool: list[PropertyCandidate] = []
        seen: set[str] = set()
        searched = 0

        for min_price, max_price in PRICE_BANDS[: bands_to_search(target, self.per_band)]:
            if len(pool) >= target:
                break

            filters = SearchFilters(
                min_price=min_price,
                max_price=max_price,
                min_bedrooms=policy.min_bedrooms,
                max_bedrooms=policy.max_bedrooms,
            )
            searched += 1
            try:
                found = await self.search_listings(location, filters)
            except TransportFailure as e:
                log.warning("band search failed location=%r band=%s-%s error=%s", location, min_price, max_price, e)
                continue

            added = 0
            for cand in found:
                if cand.id in seen:
                    continue
                seen.add(cand.id)
                pool.append(cand)
                added += 1
                if len(pool) >= target:
                    break

            log.info(
                "band searched location=%r band=%s-%s results=%s new=%s pool=%s",
                location, min_price, max_price, len(found), added, len(pool),
            )

        return pool, searched

    async def _evaluate(self, cand: PropertyCandidate, category: LeadCategory) -> Lead | InvalidCandidate:
        if not cand.has_coordinates:
            return InvalidCandidate(cand.id, cand.address, "missing coordinates")

        context = {"address": cand.address, "property_id": cand.id, "provider_data": dict(cand.attributes)}
        try:
            record = await self.validate_visual(cand.latitude, cand.longitude, category, context)
        except (InvalidInput, TransportFailure, MalformedAnalysis) as e:
            return InvalidCandidate(cand.id, cand.address, f"{type(e).__name__}: {e}")

        reason = policy_for(category).invalid_reason(record.analysis)
        if reason is not None:
            return InvalidCandidate(cand.id, cand.address, reason)

        report = generate_quality_report(cand.id, cand, record, category)
        return Lead(candidate=cand, validation=record, quality_report=report)

    async def _validate_in_order(
        self, pool: Sequence[PropertyCandidate], category: LeadCategory, requested: int
    ) -> tuple[list[Lead], list[InvalidCandidate], int]:
        """
        Windowed dispatch: each round verifies the next
        min(still_needed, concurrency) candidates concurrently, then accepts
        outcomes in discovery order. A round never exceeds what a one-by-one
        loop would still have to examine, so exactly the same candidates get
        a vision call as in the sequential algorithm.
        """
        leads: list[Lead] = []
        invalid: list[InvalidCandidate] = []
        i = 0

        while len(leads) < requested and i < len(pool):
            width = min(requested - len(leads), self.concurrency)
            window = pool[i : i + width]
            outcomes = await asyncio.gather(*(self._evaluate(c, category) for c in window))
            for outcome in outcomes:
                if isinstance(outcome, Lead):
                    leads.append(outcome)
                else:
                    log.info("candidate invalid id=%s reason=%s", outcome.id, outcome.reason)
                    invalid.append(outcome)
            i += len(window)

        return leads, invalid, i

    # ---------- public ----------

    async def get_batch_leads(
        self,
        location: str,
        category: LeadCategory | str,
        requested_leads: int,
    ) -> BatchResult:
        location = validate_location(location)
        category = LeadCategory.parse(category)
        requested = validate_request_size(requested_leads)
        target = fetch_target(requested, self.buffer)

        pool, bands_searched = await self._collect_candidates(location, category, target)
        if not pool:
            raise NoPropertiesFound(f"No properties found in {location}")

        leads, invalid, considered = await self._validate_in_order(pool, category, requested)
        leads = leads[:requested]

        rate = round(len(leads) / considered * 100, 2) if considered else 0.0
        avg_conf = (
            round(sum(lead.validation.analysis.confidence for lead in leads) / len(leads), 2) if leads else 0.0
        )

        log.info(
            "batch done location=%r category=%s requested=%s delivered=%s considered=%s bands=%s",
            location, category.value, requested, len(leads), considered, bands_searched,
        )

        return BatchResult(
            location=location,
            category=category,
            requested_leads=requested,
            fetch_target=target,
            leads=leads,
            invalid=invalid,
            statistics=BatchStatistics(
                validation_rate=rate,
                price_bands_searched=bands_searched,
                average_confidence=avg_conf,
                candidates_found=len(pool),
                candidates_considered=considered,
            ),
            generated_at=datetime.now(timezone.utc),
        )

    async def _run_category(
        self, location: str, category: LeadCategory, requested: int
    ) -> BatchResult | CategoryFailure:
        try:
            return await self.get_batch_leads(location, category, requested)
        except LeadSightError as e:
            log.warning("category failed location=%r category=%s error=%s", location, category.value, e)
            return CategoryFailure(category=category, error=str(e), error_type=type(e).__name__)

    async def get_batch_leads_multiple(
        self,
        location: str,
        categories: Iterable[LeadCategory | str] | None,
        requested_leads: int,
    ) -> MultiCategoryResult:
        location = validate_location(location)
        requested = validate_request_size(requested_leads)

        parsed: list[LeadCategory] = []
        for c in categories if categories is not None else list(LeadCategory):
            cat = LeadCategory.parse(c)
            if cat not in parsed:
                parsed.append(cat)
        if not parsed:
            raise InvalidInput("At least one lead type is required")

        outcomes = await asyncio.gather(*(self._run_category(location, c, requested) for c in parsed))

        return MultiCategoryResult(
            location=location,
            requested_leads=requested,
            results=dict(zip(parsed, outcomes)),
            generated_at=datetime.now(timezone.utc),
        )
