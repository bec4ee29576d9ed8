"""AI anomaly detection over the last 90 days of an account's transactions.

Flow: read transactions and the account currency → summarize → prompt → one
model call → tolerant JSON parse → contract validation (max 5 insights) →
append to ``ai_insights``.

Each run appends; earlier insights for the same account are not deduplicated.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings
from app.models.finance import AiInsight
from app.services.ai.common import router as ai_router
from app.services.ai.common.audit import log_ai_run
from app.services.ai.common.errors import DataUnavailableError, StorageError
from app.services.ai.common.json_tools import parse_model_json
from app.services.finance_summary import (
    AggregateSummary,
    FinancialRecord,
    fetch_account,
    fetch_transactions,
    format_minor,
    read_records,
    summarize,
    window_start,
)

from .contracts import (
    ACTION_LABEL_MAX_CHARS,
    INSUFFICIENT_DATA_MESSAGE,
    MAX_PROMPT_TRANSACTIONS,
    MESSAGE_MAX_CHARS,
    MIN_TRANSACTIONS,
    TITLE_MAX_CHARS,
    AnomalyInsight,
    AnomalyInsightsResponse,
    InsightActionType,
    InsightSeverity,
    validate_anomalies,
)

logger = logging.getLogger(__name__)

SCOPE = "anomalies"
DEFAULT_CURRENCY = "EUR"


def _transaction_line(record: FinancialRecord, currency: str) -> str:
    direction = "IN" if record.is_income else "OUT"
    return f"{record.created.isoformat()}: {direction} {format_minor(abs(record.amount), currency)} - {record.label}"


def build_anomaly_prompt(
    summary: AggregateSummary,
    transactions: Sequence[FinancialRecord],
    *,
    window_days: int,
    currency: str = DEFAULT_CURRENCY,
) -> str:
    """Render the detector prompt; *transactions* must already be capped."""
    category_lines = [
        f"  {c.category}: {format_minor(c.total, currency)}" for c in summary.top_categories
    ] or ["  none"]
    severities = ", ".join(f'"{s.value}"' for s in InsightSeverity)
    action_types = " or ".join(f'"{a.value}"' for a in InsightActionType)

    return "\n".join(
        [
            "You are a financial anomaly detector for a small business. Analyze these recent "
            "transactions and identify anomalies: unusual spending, unexpected charges, patterns "
            "that break from norms, or suspicious duplicates.",
            "",
            f"Period totals (last {window_days} days, {summary.transaction_count} transactions):",
            f"Income: {format_minor(summary.total_income, currency)}",
            f"Expenses: {format_minor(summary.total_expense, currency)}",
            f"Net: {format_minor(summary.net, currency)}",
            "Top expenses by category:",
            *category_lines,
            "",
            "Transactions (most recent first):",
            *(_transaction_line(t, currency) for t in transactions),
            "",
            "Return a JSON array of anomalies found. Each object must have:",
            f'- "title": short title (max {TITLE_MAX_CHARS} chars)',
            f'- "message": explanation (max {MESSAGE_MAX_CHARS} chars)',
            f'- "type": one of {severities}',
            f'- "action_label": suggested action button text (max {ACTION_LABEL_MAX_CHARS} chars) or null',
            f'- "action_type": {action_types} or null',
            "",
            "Return ONLY the JSON array, no markdown and no other text. If no anomalies are found, return [].",
        ]
    )


def persist_insights(
    session_factory: sessionmaker,
    account_id: str,
    insights: Sequence[AnomalyInsight],
) -> list[AnomalyInsight]:
    """Append validated insights as new ``ai_insights`` rows and return them as stored."""
    if not insights:
        return []
    try:
        with session_factory() as db:
            rows = [
                AiInsight(
                    account_id=account_id,
                    type=insight.type.value,
                    title=insight.title,
                    message=insight.message,
                    action_label=insight.action_label,
                    action_type=insight.action_type.value if insight.action_type else None,
                    dismissed=False,
                )
                for insight in insights
            ]
            db.add_all(rows)
            db.flush()
            stored = [
                insight.model_copy(
                    update={
                        "id": str(row.id),
                        "account_id": str(row.account_id),
                        "created_at": row.created_at,
                    }
                )
                for insight, row in zip(insights, rows)
            ]
            db.commit()
    except SQLAlchemyError as exc:
        logger.error(
            "AI anomalies: failed to store %d insights for account=%s",
            len(insights),
            account_id,
            exc_info=True,
        )
        raise StorageError("Failed to store insights") from exc
    return stored


async def analyze_anomalies(
    account_id: str,
    session_factory: Optional[sessionmaker],
    *,
    now: Optional[datetime] = None,
) -> AnomalyInsightsResponse:
    """Run the anomaly pipeline for one account.

    Returns the insufficient-data response without calling the model when the
    window holds fewer than ``MIN_TRANSACTIONS`` transactions.
    """
    if session_factory is None:
        raise DataUnavailableError("DATABASE_URL is not configured")

    settings = get_settings()
    window_days = settings.ai_anomaly_window_days
    since = window_start(window_days, now=now)

    transactions = await asyncio.to_thread(read_records, session_factory, fetch_transactions, account_id, since)
    if len(transactions) < MIN_TRANSACTIONS:
        logger.info(
            "AI anomalies: account=%s has %d transactions, below threshold", account_id, len(transactions)
        )
        return AnomalyInsightsResponse(insights=[], message=INSUFFICIENT_DATA_MESSAGE)

    account = await asyncio.to_thread(read_records, session_factory, fetch_account, account_id)
    currency = account.currency if account else DEFAULT_CURRENCY

    summary = summarize(transactions, since=since)
    prompt = build_anomaly_prompt(
        summary,
        transactions[:MAX_PROMPT_TRANSACTIONS],
        window_days=window_days,
        currency=currency,
    )

    config = ai_router.resolve(SCOPE)
    provider_result = await ai_router.complete(config, config.instruct(prompt))

    insights = validate_anomalies(parse_model_json(provider_result.raw_text, expect=list))
    log_ai_run(
        scope=SCOPE,
        provider_result=provider_result,
        prompt_text=prompt,
        extra_meta={"account_id": account_id, "insight_count": len(insights)},
    )

    stored = await asyncio.to_thread(persist_insights, session_factory, account_id, insights)
    return AnomalyInsightsResponse(insights=stored)
