"""Contracts for AI anomaly insights: models, enums and output validation."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

MAX_INSIGHTS = 5
MIN_TRANSACTIONS = 5
MAX_PROMPT_TRANSACTIONS = 100

# Advisory ceilings stated in the prompt; longer values are still accepted.
TITLE_MAX_CHARS = 60
MESSAGE_MAX_CHARS = 150
ACTION_LABEL_MAX_CHARS = 20

INSUFFICIENT_DATA_MESSAGE = "Not enough transaction data"


class InsightSeverity(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class InsightActionType(StrEnum):
    VIEW_TRANSACTIONS = "view_transactions"
    CHAT = "chat"


class AnomalyInsight(BaseModel):
    """One anomaly as returned to the caller and stored in ``ai_insights``."""

    id: Optional[str] = None
    account_id: Optional[str] = None
    type: InsightSeverity = InsightSeverity.WARNING
    title: str
    message: str
    action_label: Optional[str] = None
    action_type: Optional[InsightActionType] = None
    dismissed: bool = False
    created_at: Optional[datetime] = None


class AnomalyInsightsResponse(BaseModel):
    insights: list[AnomalyInsight]
    message: Optional[str] = None


def _clean_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _coerce_severity(value: Any) -> InsightSeverity:
    raw = _clean_text(value).lower()
    try:
        return InsightSeverity(raw)
    except ValueError:
        return InsightSeverity.WARNING


def _coerce_action_type(value: Any) -> Optional[InsightActionType]:
    raw = _clean_text(value).lower()
    try:
        return InsightActionType(raw)
    except ValueError:
        return None


def coerce_insight(entry: Any) -> Optional[AnomalyInsight]:
    """Normalize one model entry, or ``None`` when it has no usable title/message."""
    if not isinstance(entry, dict):
        return None
    title = _clean_text(entry.get("title"))
    message = _clean_text(entry.get("message"))
    if not title or not message:
        return None
    severity = entry.get("type")
    if severity is None:
        severity = entry.get("severity")
    return AnomalyInsight(
        type=_coerce_severity(severity),
        title=title,
        message=message,
        action_label=_clean_text(entry.get("action_label")) or None,
        action_type=_coerce_action_type(entry.get("action_type")),
        dismissed=False,
    )


def validate_anomalies(parsed: Any) -> list[AnomalyInsight]:
    """Validate parsed model output into at most ``MAX_INSIGHTS`` insights.

    A non-list value yields ``[]``. Entries that cannot be coerced are dropped;
    the first ``MAX_INSIGHTS`` valid entries are kept in model order.
    """
    if not isinstance(parsed, list):
        if parsed is not None:
            logger.warning("AI anomalies: expected a JSON array, got %s", type(parsed).__name__)
        return []

    insights: list[AnomalyInsight] = []
    dropped = 0
    for entry in parsed:
        insight = coerce_insight(entry)
        if insight is None:
            dropped += 1
            continue
        insights.append(insight)
        if len(insights) == MAX_INSIGHTS:
            break
    if dropped:
        logger.warning("AI anomalies: dropped %d malformed entries", dropped)
    return insights
