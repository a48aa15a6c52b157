# leadsight/domain/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import InvalidInput

if TYPE_CHECKING:
    from .analysis import VisionAnalysis


class LeadCategory(str, Enum):
    pool_check = "PoolLeadGen"
    backyard_check = "BackyardBoost"

    @classmethod
    def parse(cls, value: "LeadCategory | str | None") -> "LeadCategory":
        if isinstance(value, LeadCategory):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(c.value for c in cls)
            raise InvalidInput(f"Lead type must be one of: {allowed} (got {value!r})") from None


class Severity(str, Enum):
    none = "none"
    minor = "minor"
    major = "major"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def escalate(self, other: "Severity") -> "Severity":
        """Return the more severe of the two."""
        return other if other.rank > self.rank else self


_SEVERITY_RANK = {Severity.none: 0, Severity.minor: 1, Severity.major: 2}


class QualityScore(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


@dataclass(frozen=True)
class PropertyCandidate:
    """
    Provider-sourced listing record.

    `attributes` holds what the listings provider asserts about the lot
    (has_pool, pool_type, has_backyard, surface_type, lot_size).
    """
    id: str
    address: str
    latitude: float | None
    longitude: float | None
    price: float | None = None
    bedrooms: float | None = None
    bathrooms: float | None = None
    square_feet: float | None = None
    lot_size: float | None = None
    year_built: int | None = None
    property_type: str | None = None
    listing_url: str | None = None
    city: str = ""
    state: str = ""
    zipcode: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class SatelliteImage:
    url: str
    latitude: float
    longitude: float
    zoom: int
    width: int
    height: int


@dataclass(frozen=True)
class ValidationRecord:
    """Cache payload: one vision analysis plus the image it was made from."""
    category: LeadCategory
    image: SatelliteImage
    analysis: "VisionAnalysis"
    provider: str
    validated_at: datetime


@dataclass(frozen=True)
class DiscrepancyDetail:
    field: str
    provider_value: Any
    vision_value: Any
    vision_confidence: int


@dataclass
class Discrepancy:
    detected: bool = False
    type: str | None = None
    severity: Severity = Severity.none
    details: list[DiscrepancyDetail] = field(default_factory=list)
    confidence_diff: int = 0

    def record(self, type_: str, detail: DiscrepancyDetail) -> None:
        """Mark as detected; the first recorded type wins."""
        self.detected = True
        if self.type is None:
            self.type = type_
        self.details.append(detail)


@dataclass(frozen=True)
class Flag:
    lead_id: str
    flag_type: str
    flagged_at: datetime
    evidence: dict[str, Any]
    status: str = "flagged"
    requires_review: bool = True


@dataclass(frozen=True)
class QualityAssessment:
    quality_score: QualityScore
    confidence: int
    reasoning: list[str]
    details: dict[str, Any]


@dataclass(frozen=True)
class QualityReport:
    lead_id: str
    category: LeadCategory
    assessed_at: datetime
    quality_score: QualityScore
    confidence: int
    reasoning: list[str]
    discrepancy: Discrepancy
    recommendation: str
    flag: Flag | None = None


@dataclass(frozen=True)
class Lead:
    candidate: PropertyCandidate
    validation: ValidationRecord
    quality_report: QualityReport

    @property
    def category(self) -> LeadCategory:
        return self.validation.category


@dataclass(frozen=True)
class InvalidCandidate:
    id: str
    address: str
    reason: str


@dataclass(frozen=True)
class BatchStatistics:
    validation_rate: float  # percent, 2dp
    price_bands_searched: int
    average_confidence: float
    candidates_found: int
    candidates_considered: int


@dataclass(frozen=True)
class BatchResult:
    location: str
    category: LeadCategory
    requested_leads: int
    fetch_target: int
    leads: list[Lead]
    invalid: list[InvalidCandidate]
    statistics: BatchStatistics
    generated_at: datetime

    @property
    def delivered_leads(self) -> int:
        return len(self.leads)

    @property
    def status(self) -> str:
        """'satisfied' when every requested lead was delivered, else 'partial'."""
        return "satisfied" if self.delivered_leads >= self.requested_leads else "partial"


@dataclass(frozen=True)
class CategoryFailure:
    category: LeadCategory
    error: str
    error_type: str


@dataclass(frozen=True)
class MultiCategoryResult:
    location: str
    requested_leads: int
    results: dict[LeadCategory, BatchResult | CategoryFailure]
    generated_at: datetime

    @property
    def success(self) -> bool:
        return all(isinstance(r, BatchResult) for r in self.results.values())
