# leadsight/domain/policies.py
"""
Per-category business policy.

Each lead category carries its own validity predicate, discrepancy policy and
search defaults. Backyard leads are deliberately asymmetric: an underdeveloped
yard with high potential is the product, not a defect.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol

from .analysis import BackyardAnalysis, PoolAnalysis, VisionAnalysis
from .types import Discrepancy, DiscrepancyDetail, LeadCategory, PropertyCandidate, Severity

MIN_VALID_CONFIDENCE = 60
POOL_MAJOR_CONFIDENCE = 80
POOL_MINOR_CONFIDENCE = 60
BACKYARD_SIZE_MISMATCH_CONFIDENCE = 90
NON_DEVELOPABLE_SURFACES = {"concrete"}


class DiscrepancyPolicy(Protocol):
    def compare(self, candidate: PropertyCandidate, analysis: VisionAnalysis) -> Discrepancy:
        raise NotImplementedError


def pool_mismatch_severity(confidence: int) -> Severity:
    if confidence >= POOL_MAJOR_CONFIDENCE:
        return Severity.major
    if confidence >= POOL_MINOR_CONFIDENCE:
        return Severity.minor
    return Severity.none


def is_ideal_backyard(analysis: VisionAnalysis) -> bool:
    return (
        isinstance(analysis, BackyardAnalysis)
        and analysis.is_underdeveloped
        and analysis.development_potential == "high"
    )


class PoolDiscrepancyPolicy:
    def compare(self, candidate: PropertyCandidate, analysis: VisionAnalysis) -> Discrepancy:
        d = Discrepancy()
        if not isinstance(analysis, PoolAnalysis):
            return d

        attrs = candidate.attributes
        provider_has_pool = attrs.get("has_pool") is True
        vision_has_pool = analysis.has_pool
        conf = analysis.confidence

        if provider_has_pool != vision_has_pool:
            d.record(
                "pool_mismatch",
                DiscrepancyDetail("has_pool", provider_has_pool, vision_has_pool, conf),
            )
            d.severity = pool_mismatch_severity(conf)

        if provider_has_pool and vision_has_pool:
            provider_type = _norm(attrs.get("pool_type"))
            vision_type = analysis.pool_type
            if provider_type and vision_type and provider_type != vision_type:
                # severity stays whatever the presence check decided
                d.record(
                    "pool_type_mismatch",
                    DiscrepancyDetail("pool_type", provider_type, vision_type, conf),
                )

        d.confidence_diff = abs(conf - 50)
        return d


class BackyardDiscrepancyPolicy:
    def compare(self, candidate: PropertyCandidate, analysis: VisionAnalysis) -> Discrepancy:
        d = Discrepancy()
        if not isinstance(analysis, BackyardAnalysis):
            return d

        if is_ideal_backyard(analysis):
            return d

        attrs = candidate.attributes
        conf = analysis.confidence
        provider_has_backyard = attrs.get("has_backyard") is not False

        if (
            provider_has_backyard
            and analysis.estimated_free_area == "low"
            and conf >= BACKYARD_SIZE_MISMATCH_CONFIDENCE
        ):
            lot = candidate.lot_size or attrs.get("lot_size")
            d.record(
                "backyard_size_mismatch",
                DiscrepancyDetail("estimated_free_area", "large" if lot else "unknown", analysis.estimated_free_area, conf),
            )
            d.severity = Severity.major

        provider_surface = _norm(attrs.get("surface_type"))
        if provider_surface and analysis.surface_type and provider_surface != analysis.surface_type:
            d.record(
                "surface_type_mismatch",
                DiscrepancyDetail("surface_type", provider_surface, analysis.surface_type, conf),
            )
            d.severity = d.severity.escalate(Severity.minor)

        d.confidence_diff = abs(conf - 50)
        return d


def _norm(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip().lower()
    return s or None


# ---------- validity predicates ----------


def pool_validity(analysis: VisionAnalysis) -> str | None:
    """Return None when valid, else the rejection reason."""
    if not isinstance(analysis, PoolAnalysis):
        return "analysis does not match PoolLeadGen schema"
    if not analysis.has_pool:
        return "no pool detected"
    if analysis.confidence < MIN_VALID_CONFIDENCE:
        return f"pool confidence {analysis.confidence} below {MIN_VALID_CONFIDENCE}"
    return None


def backyard_validity(analysis: VisionAnalysis) -> str | None:
    if not isinstance(analysis, BackyardAnalysis):
        return "analysis does not match BackyardBoost schema"
    if analysis.is_empty_backyard:
        return "backyard reported empty"
    if analysis.confidence < MIN_VALID_CONFIDENCE:
        return f"backyard confidence {analysis.confidence} below {MIN_VALID_CONFIDENCE}"
    if analysis.surface_type in NON_DEVELOPABLE_SURFACES:
        return f"non-developable surface: {analysis.surface_type}"
    return None


@dataclass(frozen=True)
class CategoryPolicy:
    category: LeadCategory
    min_bedrooms: int
    max_bedrooms: int
    discrepancy: DiscrepancyPolicy
    validity: Callable[[VisionAnalysis], str | None]
    minor_discrepancy_note: str

    def invalid_reason(self, analysis: VisionAnalysis | None) -> str | None:
        if analysis is None:
            return "no visual analysis"
        return self.validity(analysis)


POLICIES: dict[LeadCategory, CategoryPolicy] = {
    LeadCategory.pool_check: CategoryPolicy(
        category=LeadCategory.pool_check,
        min_bedrooms=3,
        max_bedrooms=6,
        discrepancy=PoolDiscrepancyPolicy(),
        validity=pool_validity,
        minor_discrepancy_note="Lead quality reduced due to data inconsistency",
    ),
    LeadCategory.backyard_check: CategoryPolicy(
        category=LeadCategory.backyard_check,
        min_bedrooms=2,
        max_bedrooms=6,
        discrepancy=BackyardDiscrepancyPolicy(),
        validity=backyard_validity,
        minor_discrepancy_note="Lead still viable for BackyardBoost opportunities",
    ),
}


def policy_for(category: LeadCategory) -> CategoryPolicy:
    return POLICIES[category]
