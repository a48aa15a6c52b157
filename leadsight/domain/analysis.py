# leadsight/domain/analysis.py
"""
Vision analysis schema + tolerant response parsing.

Providers are asked for a strict JSON object but often wrap it in prose or
code fences. Parsing is kept separate from transport so that format drift
surfaces as MalformedAnalysis (never retried against another provider)
instead of looking like an outage.
"""
from __future__ import annotations

import json
import math
import re
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError, field_validator

from .errors import MalformedAnalysis
from .types import LeadCategory

Level = Literal["high", "medium", "low"]
PoolSize = Literal["small", "medium", "large"]

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


class _AnalysisBase(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    confidence: int = Field(..., ge=0, le=100)
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence_number(cls, v: Any) -> int:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("confidence must be a number")
        if math.isnan(v) or v < 0 or v > 100:
            raise ValueError("confidence must be within [0, 100]")
        return int(round(v))

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)


def _lower(v: Any) -> Any:
    return v.strip().lower() if isinstance(v, str) else v


class PoolAnalysis(_AnalysisBase):
    has_pool: StrictBool
    pool_type: str | None = None
    pool_size_estimate: PoolSize | None = None
    water_bodies: str | None = None

    @field_validator("pool_type", mode="before")
    @classmethod
    def _pool_type(cls, v: Any) -> str | None:
        if v is None:
            return None
        s = str(v).strip().lower()
        return s or None

    @field_validator("pool_size_estimate", mode="before")
    @classmethod
    def _pool_size(cls, v: Any) -> str | None:
        # optional field: anything outside the fixed set degrades to unknown
        v = _lower(v)
        return v if v in ("small", "medium", "large") else None

    @field_validator("water_bodies", mode="before")
    @classmethod
    def _water_bodies(cls, v: Any) -> str | None:
        if v is None or v is False:
            return None
        return str(v)


class BackyardAnalysis(_AnalysisBase):
    is_empty_backyard: StrictBool
    is_underdeveloped: StrictBool
    surface_type: str = Field(..., min_length=1)
    estimated_free_area: Level
    development_potential: Level
    structures_detected: list[str] = Field(default_factory=list)

    @field_validator("surface_type", "estimated_free_area", "development_potential", mode="before")
    @classmethod
    def _normalize_enum(cls, v: Any) -> Any:
        return _lower(v)

    @field_validator("structures_detected", mode="before")
    @classmethod
    def _structures(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v


VisionAnalysis = Union[PoolAnalysis, BackyardAnalysis]

_MODELS: dict[LeadCategory, type[_AnalysisBase]] = {
    LeadCategory.pool_check: PoolAnalysis,
    LeadCategory.backyard_check: BackyardAnalysis,
}


def extract_json_object(text: str) -> dict[str, Any] | None:
    """
    Return the first balanced top-level JSON object embedded in `text`.
    Strips ``` fences, then scans brace depth while respecting string literals.
    """
    s = text.strip()
    if s.startswith("```"):
        s = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", s, count=1), count=1)

    start = s.find("{")
    while start != -1:
        depth = 0
        in_str = False
        escaped = False
        for i in range(start, len(s)):
            ch = s[i]
            if in_str:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_str = False
                continue
            if ch == '"':
                in_str = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    try:
                        loaded = json.loads(s[start : i + 1])
                    except json.JSONDecodeError:
                        break
                    if isinstance(loaded, dict):
                        return loaded
                    break
        start = s.find("{", start + 1)
    return None


def parse_analysis(text: Any, category: LeadCategory) -> VisionAnalysis:
    if not isinstance(text, str) or not text.strip():
        raise MalformedAnalysis("Empty or non-text response from vision provider")

    obj = extract_json_object(text)
    if obj is None:
        raise MalformedAnalysis("No JSON object found in vision provider response")

    model = _MODELS[category]
    try:
        return model.model_validate(obj)  # type: ignore[return-value]
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ())) or "<root>"
        raise MalformedAnalysis(f"Invalid {loc} in {category.value} analysis: {first.get('msg')}") from e


_POOL_PROMPT = """Analyze this satellite image of a property and provide a JSON response with the following structure:
{
  "has_pool": boolean,
  "confidence": number (0-100),
  "pool_type": string or null (e.g., "in-ground", "above-ground", "hot-tub"),
  "pool_size_estimate": string or null ("small", "medium", "large"),
  "water_bodies": string or null (description of any water features detected),
  "reasoning": string (brief explanation of findings)
}

Focus on detecting:
1. Swimming pools (in-ground or above-ground)
2. Hot tubs or spas
3. Any water bodies or water features
4. Confidence level based on image clarity and feature visibility

The red marker labelled P sits on the property being evaluated.
Return ONLY valid JSON, no additional text."""

_BACKYARD_PROMPT = """Analyze this satellite image of a property's backyard and provide a JSON response with the following structure:
{
  "is_empty_backyard": boolean,
  "is_underdeveloped": boolean,
  "surface_type": string (e.g., "grass", "dirt", "concrete", "paved", "mixed"),
  "estimated_free_area": string ("high", "medium", "low"),
  "confidence": number (0-100),
  "structures_detected": array of strings (e.g., ["shed", "deck", "fence", "trees"]),
  "development_potential": string ("high", "medium", "low"),
  "reasoning": string (brief explanation of findings)
}

Focus on detecting:
1. Empty or available backyard space
2. Underdeveloped backyard (minimal structures, mostly open space)
3. Surface type (grass, dirt, concrete, etc.)
4. Existing structures (sheds, decks, pools, etc.)
5. Estimated share of free usable space
6. Development potential for improvements
7. Confidence level based on image clarity

The red marker labelled P sits on the property being evaluated.
Return ONLY valid JSON, no additional text."""


def build_prompt(category: LeadCategory, context: dict[str, Any] | None = None) -> str:
    base = _POOL_PROMPT if category == LeadCategory.pool_check else _BACKYARD_PROMPT
    address = (context or {}).get("address")
    if address:
        return f"{base}\n\nProperty address (for orientation only): {address}"
    return base
