# leadsight/domain/quality.py
from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from .analysis import BackyardAnalysis, PoolAnalysis, VisionAnalysis
from .policies import is_ideal_backyard, policy_for
from .types import (
    Discrepancy,
    Flag,
    LeadCategory,
    PropertyCandidate,
    QualityAssessment,
    QualityReport,
    QualityScore,
    Severity,
    ValidationRecord,
)

log = logging.getLogger(__name__)

APPROVE = "APPROVE - Lead meets quality standards"
REVIEW = "REVIEW - Major discrepancies detected, manual review recommended"
REJECT = "REJECT - Lead quality too low"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compare_with_vision(
    candidate: PropertyCandidate | None,
    analysis: VisionAnalysis | None,
    category: LeadCategory,
) -> Discrepancy:
    if candidate is None or analysis is None:
        return Discrepancy()
    return policy_for(category).discrepancy.compare(candidate, analysis)


def _score_from_confidence(conf: int, reasoning: list[str]) -> QualityScore:
    # absence of contradiction keeps a lead at medium even at low confidence
    if conf >= 80:
        reasoning.append("Visual validation confirms listing data with high confidence")
        return QualityScore.high
    if conf >= 60:
        reasoning.append("Visual validation confirms listing data with moderate confidence")
        return QualityScore.medium
    if conf >= 50:
        reasoning.append("Visual validation has moderate confidence")
        return QualityScore.medium
    reasoning.append("Visual validation has low confidence but no contradictions")
    return QualityScore.medium


def calculate_quality(
    candidate: PropertyCandidate | None,
    analysis: VisionAnalysis | None,
    discrepancy: Discrepancy,
    category: LeadCategory,
) -> QualityAssessment:
    if analysis is None:
        return QualityAssessment(
            quality_score=QualityScore.low,
            confidence=0,
            reasoning=["Visual analysis failed or unavailable"],
            details={},
        )

    conf = analysis.confidence
    reasoning: list[str] = []

    if not discrepancy.detected:
        score = _score_from_confidence(conf, reasoning)
    elif discrepancy.severity == Severity.none:
        # neither confirms nor contradicts the listing; no confidence upgrade
        score = QualityScore.medium
        reasoning.append(f"Non-gating discrepancy noted: {discrepancy.type}")
    elif discrepancy.severity == Severity.major:
        score = QualityScore.low
        reasoning.append(f"Major discrepancy detected: {discrepancy.type}")
        reasoning.append("Lead requires manual review before use")
    else:
        score = QualityScore.medium
        reasoning.append(f"Minor discrepancy detected: {discrepancy.type}")
        reasoning.append(policy_for(category).minor_discrepancy_note)

    details: dict[str, Any] = {
        "visual_confidence": conf,
        "discrepancy_detected": discrepancy.detected,
        "discrepancy_type": discrepancy.type,
        "discrepancy_severity": discrepancy.severity.value,
        "lead_type": category.value,
    }

    if isinstance(analysis, PoolAnalysis):
        details["pool_confidence"] = conf
        if analysis.has_pool and conf >= 85:
            reasoning.append("Pool presence confirmed with high confidence")
    elif isinstance(analysis, BackyardAnalysis):
        details["backyard_confidence"] = conf
        if is_ideal_backyard(analysis):
            reasoning.append("Underdeveloped backyard with high development potential")
            if score == QualityScore.medium:
                score = QualityScore.high
        if analysis.is_empty_backyard and conf >= 75:
            reasoning.append("Empty backyard confirmed - good opportunity for development")

    return QualityAssessment(quality_score=score, confidence=conf, reasoning=reasoning, details=details)


def recommendation(quality_score: QualityScore, severity: Severity) -> str:
    if quality_score == QualityScore.high:
        return APPROVE
    if quality_score == QualityScore.medium:
        if severity == Severity.major:
            return REVIEW
        return APPROVE
    if severity == Severity.major:
        return f"{REJECT}, major discrepancies detected"
    return REJECT


def flag_discrepancy(
    lead_id: str,
    discrepancy: Discrepancy,
    *,
    candidate: PropertyCandidate,
    record: ValidationRecord,
) -> Flag:
    analysis = record.analysis
    flag = Flag(
        lead_id=lead_id,
        flag_type=discrepancy.type or "unknown",
        flagged_at=_utcnow(),
        evidence={
            "satellite_image_url": record.image.url,
            "provider_data": dict(candidate.attributes),
            "visual_analysis": analysis.model_dump(),
            "discrepancy_details": [asdict(d) for d in discrepancy.details],
            "visual_confidence": analysis.confidence,
            "lead_type": record.category.value,
            "severity": discrepancy.severity.value,
        },
    )
    log.warning("lead flagged id=%s type=%s severity=%s", lead_id, flag.flag_type, discrepancy.severity.value)
    return flag


def generate_quality_report(
    lead_id: str,
    candidate: PropertyCandidate,
    record: ValidationRecord,
    category: LeadCategory | None = None,
) -> QualityReport:
    category = category or record.category
    analysis = record.analysis

    discrepancy = compare_with_vision(candidate, analysis, category)
    assessment = calculate_quality(candidate, analysis, discrepancy, category)

    flag = None
    if discrepancy.detected and discrepancy.severity == Severity.major:
        flag = flag_discrepancy(lead_id, discrepancy, candidate=candidate, record=record)

    log.debug(
        "quality lead=%s score=%s conf=%s discrepancy=%s",
        lead_id,
        assessment.quality_score.value,
        assessment.confidence,
        discrepancy.type,
    )

    return QualityReport(
        lead_id=lead_id,
        category=category,
        assessed_at=_utcnow(),
        quality_score=assessment.quality_score,
        confidence=assessment.confidence,
        reasoning=assessment.reasoning,
        discrepancy=discrepancy,
        recommendation=recommendation(assessment.quality_score, discrepancy.severity),
        flag=flag,
    )
