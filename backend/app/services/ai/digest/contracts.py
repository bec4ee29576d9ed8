"""Contracts for the AI weekly digest: returned to the caller, never stored."""

from __future__ import annotations

import logging
import math
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

RISK_SCORE_MIN = 1
RISK_SCORE_MAX = 10
RISK_SCORE_DEFAULT = 5

# Advisory ceilings stated in the prompt.
SUMMARY_MAX_CHARS = 200
RECOMMENDATION_MAX_CHARS = 100

FALLBACK_SUMMARY = "Unable to generate digest right now."


class Trend(StrEnum):
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class RiskLabel(StrEnum):
    HEALTHY = "Healthy"
    CAUTION = "Caution"
    AT_RISK = "At Risk"
    CRITICAL = "Critical"


class DigestHighlight(BaseModel):
    label: str
    value: str
    trend: Trend = Trend.NEUTRAL
    good: bool = False


class WeeklyDigest(BaseModel):
    summary: str
    highlights: list[DigestHighlight] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    risk_score: int = Field(default=RISK_SCORE_DEFAULT, ge=RISK_SCORE_MIN, le=RISK_SCORE_MAX)
    risk_label: RiskLabel = RiskLabel.CAUTION


def fallback_digest() -> WeeklyDigest:
    return WeeklyDigest(
        summary=FALLBACK_SUMMARY,
        highlights=[],
        recommendations=[],
        risk_score=RISK_SCORE_DEFAULT,
        risk_label=RiskLabel.CAUTION,
    )


def label_for_score(score: int) -> RiskLabel:
    if score >= 8:
        return RiskLabel.HEALTHY
    if score >= 5:
        return RiskLabel.CAUTION
    if score >= 3:
        return RiskLabel.AT_RISK
    return RiskLabel.CRITICAL


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip()


def _coerce_risk_score(value: Any) -> int:
    if isinstance(value, bool):
        return RISK_SCORE_DEFAULT
    if isinstance(value, int):
        return max(RISK_SCORE_MIN, min(RISK_SCORE_MAX, value))
    try:
        score = float(value)
    except (TypeError, ValueError, OverflowError):
        return RISK_SCORE_DEFAULT
    if math.isnan(score):
        return RISK_SCORE_DEFAULT
    return int(round(max(RISK_SCORE_MIN, min(RISK_SCORE_MAX, score))))


def _coerce_risk_label(value: Any, score: int) -> RiskLabel:
    raw = _text(value).lower()
    for label in RiskLabel:
        if label.value.lower() == raw:
            return label
    return label_for_score(score)


def _coerce_highlight(entry: Any) -> Optional[DigestHighlight]:
    if not isinstance(entry, dict):
        return None
    label = _text(entry.get("label"))
    if not label:
        return None
    trend_raw = _text(entry.get("trend")).lower()
    trend = Trend(trend_raw) if trend_raw in {t.value for t in Trend} else Trend.NEUTRAL
    good = entry.get("good")
    return DigestHighlight(
        label=label,
        value=_text(entry.get("value")),
        trend=trend,
        good=good if isinstance(good, bool) else False,
    )


def validate_digest(parsed: Any) -> WeeklyDigest:
    """Validate parsed model output into a ``WeeklyDigest``.

    A non-object value or a missing summary yields the fallback digest; every
    other field is coerced to its nearest safe default.
    """
    if not isinstance(parsed, dict):
        if parsed is not None:
            logger.warning("AI digest: expected a JSON object, got %s", type(parsed).__name__)
        return fallback_digest()

    summary = _text(parsed.get("summary"))
    if not summary:
        logger.warning("AI digest: response has no summary")
        return fallback_digest()

    raw_highlights = parsed.get("highlights")
    highlights = [
        h for h in (_coerce_highlight(e) for e in (raw_highlights if isinstance(raw_highlights, list) else [])) if h
    ]

    raw_recs = parsed.get("recommendations")
    recommendations = [
        r.strip() for r in (raw_recs if isinstance(raw_recs, list) else []) if isinstance(r, str) and r.strip()
    ]

    risk_score = _coerce_risk_score(parsed.get("risk_score"))

    return WeeklyDigest(
        summary=summary,
        highlights=highlights,
        recommendations=recommendations,
        risk_score=risk_score,
        risk_label=_coerce_risk_label(parsed.get("risk_label"), risk_score),
    )
