# leadsight/service_layer/formatter.py
"""
Wire shaping for leads and batches, plus the CSV export.
"""
from __future__ import annotations

import base64
import csv
import io
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from ..domain.analysis import BackyardAnalysis, PoolAnalysis
from ..domain.types import (
    BatchResult,
    CategoryFailure,
    Lead,
    LeadCategory,
    MultiCategoryResult,
    QualityReport,
    QualityScore,
    ValidationRecord,
)

_BASE_SCORE = {QualityScore.high: 85, QualityScore.medium: 65, QualityScore.low: 35}
DISCREPANCY_PENALTY = 15

CSV_HEADERS = [
    "Address",
    "Latitude",
    "Longitude",
    "ZPID",
    "Bedrooms",
    "Bathrooms",
    "Square Feet",
    "Lot Size",
    "Year Built",
    "Property Type",
    "Price",
    "Zillow URL",
    "Lead Score",
    "Quality Score",
    "Confidence",
    "Image URL",
]

CATEGORY_CSV_HEADERS: dict[LeadCategory, list[str]] = {
    LeadCategory.pool_check: ["Pool Present", "Pool Type", "Pool Size", "Water Bodies"],
    LeadCategory.backyard_check: ["Empty Backyard", "Surface Type", "Free Area", "Structures"],
}


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def calculate_lead_score(report: QualityReport) -> int:
    base = _BASE_SCORE.get(report.quality_score, 50)
    score = int(base * report.confidence / 100 + 0.5)
    if report.discrepancy.detected:
        score -= DISCREPANCY_PENALTY
    return min(100, max(0, score))


def format_vision(record: ValidationRecord) -> dict[str, Any]:
    a = record.analysis
    if isinstance(a, PoolAnalysis):
        out: dict[str, Any] = {
            "pool_present": a.has_pool,
            "pool_type": a.pool_type,
            "pool_size": a.pool_size_estimate,
            "water_bodies": a.water_bodies,
        }
    elif isinstance(a, BackyardAnalysis):
        out = {
            "empty_backyard": a.is_empty_backyard,
            "underdeveloped": a.is_underdeveloped,
            "surface_type": a.surface_type,
            "free_area": a.estimated_free_area,
            "development_potential": a.development_potential,
            "structures": list(a.structures_detected),
        }
    else:
        out = {}
    out["confidence"] = a.confidence / 100
    out["reasoning"] = a.reasoning
    out["provider"] = record.provider
    return out


def format_quality_report(report: QualityReport) -> dict[str, Any]:
    d = report.discrepancy
    return {
        "score": report.quality_score.value,
        "confidence": report.confidence,
        "recommendation": report.recommendation,
        "reasoning": list(report.reasoning),
        "discrepancy": {
            "detected": d.detected,
            "type": d.type,
            "severity": d.severity.value,
            "details": [asdict(x) for x in d.details],
            "confidence_diff": d.confidence_diff,
        },
        "flagged": report.flag is not None,
        "flag": (
            {
                "type": report.flag.flag_type,
                "flagged_at": _iso(report.flag.flagged_at),
                "status": report.flag.status,
                "requires_review": report.flag.requires_review,
                "evidence": report.flag.evidence,
            }
            if report.flag is not None
            else None
        ),
        "assessed_at": _iso(report.assessed_at),
    }


def format_validation(record: ValidationRecord) -> dict[str, Any]:
    return {
        "lead_type": record.category.value,
        "coordinates": {"lat": record.image.latitude, "lng": record.image.longitude},
        "satellite_image_url": record.image.url,
        "analysis": record.analysis.model_dump(),
        "provider": record.provider,
        "validated_at": _iso(record.validated_at),
    }


def format_lead(lead: Lead) -> dict[str, Any]:
    c = lead.candidate
    img = lead.validation.image
    return {
        "address": c.address,
        "coordinates": {"lat": c.latitude, "lng": c.longitude},
        "zpid": c.id,
        "property": {
            "bedrooms": c.bedrooms,
            "bathrooms": c.bathrooms,
            "square_feet": c.square_feet,
            "lot_size": c.lot_size,
            "year_built": c.year_built,
            "property_type": c.property_type,
            "price": c.price,
            "zillow_url": c.listing_url or f"https://www.zillow.com/homedetails/{c.id}_zpid/",
            "city": c.city or None,
            "state": c.state or None,
            "zipcode": c.zipcode or None,
        },
        "imagery": {
            "image_url": img.url,
            "zoom": img.zoom,
            "size": {"w": img.width, "h": img.height},
        },
        "vision": format_vision(lead.validation),
        "lead_score": calculate_lead_score(lead.quality_report),
        "quality_report": format_quality_report(lead.quality_report),
    }


def _cell(v: Any) -> Any:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    return v


def _category_cells(vision: dict[str, Any], category: LeadCategory) -> list[Any]:
    if category == LeadCategory.pool_check:
        return [vision.get("pool_present"), vision.get("pool_type"), vision.get("pool_size"), vision.get("water_bodies")]
    return [
        vision.get("empty_backyard"),
        vision.get("surface_type"),
        vision.get("free_area"),
        "; ".join(vision.get("structures") or []),
    ]


def generate_csv(formatted_leads: list[dict[str, Any]], category: LeadCategory) -> str:
    """CSV text for already-formatted leads (format_lead output)."""
    buf = io.StringIO()
    w = csv.writer(buf, lineterminator="\n")
    w.writerow(CSV_HEADERS + CATEGORY_CSV_HEADERS[category])

    for lead in formatted_leads:
        prop = lead.get("property") or {}
        qr = lead["quality_report"]
        row = [
            lead["address"],
            lead["coordinates"]["lat"],
            lead["coordinates"]["lng"],
            lead["zpid"],
            prop.get("bedrooms"),
            prop.get("bathrooms"),
            prop.get("square_feet"),
            prop.get("lot_size"),
            prop.get("year_built"),
            prop.get("property_type"),
            prop.get("price"),
            prop.get("zillow_url"),
            lead["lead_score"],
            qr["score"],
            qr["confidence"],
            lead["imagery"]["image_url"],
        ]
        row += _category_cells(lead["vision"], category)
        w.writerow([_cell(v) for v in row])

    return buf.getvalue().rstrip("\n")


def csv_export(formatted_leads: list[dict[str, Any]], category: LeadCategory, *, on: datetime | None = None) -> dict[str, str]:
    day = (on or datetime.now(timezone.utc)).date().isoformat()
    text = generate_csv(formatted_leads, category)
    return {
        "filename": f"{category.value.lower()}_leads_{day}.csv",
        "base64": base64.b64encode(text.encode("utf-8")).decode("ascii"),
    }


def format_batch_response(result: BatchResult) -> dict[str, Any]:
    leads = [format_lead(lead) for lead in result.leads]
    s = result.statistics
    return {
        "location": result.location,
        "lead_type": result.category.value,
        "status": result.status,
        "requested_leads": result.requested_leads,
        "delivered_leads": result.delivered_leads,
        "count": len(leads),
        "leads": leads,
        "invalid": [asdict(x) for x in result.invalid],
        "statistics": {
            "validation_rate": s.validation_rate,
            "price_bands_searched": s.price_bands_searched,
            "average_confidence": s.average_confidence,
            "candidates_found": s.candidates_found,
            "candidates_considered": s.candidates_considered,
            "fetch_target": result.fetch_target,
        },
        "csv": csv_export(leads, result.category, on=result.generated_at),
        "metadata": {
            "timestamp": _iso(result.generated_at),
            "lead_type": result.category.value,
            "export_format": "csv",
        },
    }


def format_multi_category_response(result: MultiCategoryResult) -> dict[str, Any]:
    results: dict[str, Any] = {}
    for category, outcome in result.results.items():
        if isinstance(outcome, CategoryFailure):
            results[category.value] = {
                "success": False,
                "error": outcome.error,
                "error_type": outcome.error_type,
            }
        else:
            results[category.value] = {"success": True, **format_batch_response(outcome)}

    return {
        "success": result.success,
        "location": result.location,
        "requested_leads": result.requested_leads,
        "results": results,
        "timestamp": _iso(result.generated_at),
    }
