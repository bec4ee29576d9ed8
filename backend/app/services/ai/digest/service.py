"""AI weekly digest: CFO-style summary of the last 7 days for one account.

The four record reads (transactions, invoices, incidents, account) are
independent and run concurrently; the first failure fails the request.
The validated digest is returned as-is and never persisted.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings
from app.services.ai.common import router as ai_router
from app.services.ai.common.audit import log_ai_run
from app.services.ai.common.errors import DataUnavailableError
from app.services.ai.common.json_tools import parse_model_json
from app.services.finance_summary import (
    AccountRecord,
    AggregateSummary,
    FinancialRecord,
    IncidentRecord,
    InvoiceRecord,
    fetch_account,
    fetch_incidents,
    fetch_invoices,
    fetch_transactions,
    format_minor,
    read_records,
    summarize,
    window_start,
)

from .contracts import (
    RECOMMENDATION_MAX_CHARS,
    RISK_SCORE_MAX,
    RISK_SCORE_MIN,
    SUMMARY_MAX_CHARS,
    RiskLabel,
    Trend,
    WeeklyDigest,
    validate_digest,
)

logger = logging.getLogger(__name__)

SCOPE = "digest"

UNKNOWN_ACCOUNT = AccountRecord(business_name="Unknown", payroll_amount=0, currency="EUR")


async def load_weekly_records(
    session_factory: sessionmaker,
    account_id: str,
    since: datetime,
) -> tuple[
    list[FinancialRecord],
    list[InvoiceRecord],
    list[IncidentRecord],
    Optional[AccountRecord],
]:
    """Fan out the four reads; the first failure cancels the rest and is re-raised.

    Cancelling only stops waiting: a read already running in a worker thread
    finishes in the background and its result is discarded.
    """
    try:
        async with asyncio.TaskGroup() as tg:
            transactions = tg.create_task(
                asyncio.to_thread(read_records, session_factory, fetch_transactions, account_id, since)
            )
            invoices = tg.create_task(asyncio.to_thread(read_records, session_factory, fetch_invoices, account_id))
            incidents = tg.create_task(
                asyncio.to_thread(read_records, session_factory, fetch_incidents, account_id, since)
            )
            account = tg.create_task(asyncio.to_thread(read_records, session_factory, fetch_account, account_id))
    except ExceptionGroup as group:
        raise group.exceptions[0]
    return transactions.result(), invoices.result(), incidents.result(), account.result()


def build_digest_context(summary: AggregateSummary, account: AccountRecord) -> str:
    currency = account.currency

    def money(amount: int) -> str:
        return format_minor(amount, currency)

    lines = [
        f"Business: {account.business_name}",
        f"Currency: {currency}",
        f"This week's income: {money(summary.total_income)}",
        f"This week's expenses: {money(summary.total_expense)}",
        f"Net: {money(summary.net)}",
        f"Total transactions: {summary.transaction_count}",
        f"Overdue invoices: {summary.overdue_count} totaling {money(summary.overdue_total)}",
        f"Invoices paid this week: {summary.invoices_paid_in_window}",
        f"New incidents: {summary.incidents_opened}",
    ]
    if summary.incident_shortfall_total:
        lines.append(f"Incident shortfall: {money(summary.incident_shortfall_total)}")
    if summary.open_incidents_by_severity:
        counts = ", ".join(f"{severity}: {count}" for severity, count in summary.open_incidents_by_severity)
        lines.append(f"Open incidents by severity: {counts}")
    lines.append(f"Payroll amount: {money(account.payroll_amount)}")
    lines.append("")
    lines.append("Top expenses by category:")
    if summary.top_categories:
        lines.extend(f"  {c.category}: {money(c.total)}" for c in summary.top_categories)
    else:
        lines.append("  none")
    return "\n".join(lines)


def build_digest_prompt(summary: AggregateSummary, account: AccountRecord) -> str:
    trends = " | ".join(f'"{t.value}"' for t in Trend)
    labels = " | ".join(f'"{label.value}"' for label in RiskLabel)
    return "\n".join(
        [
            "You are Float AI, an expert CFO assistant. Generate a concise weekly financial "
            "digest for this small business.",
            "",
            build_digest_context(summary, account),
            "",
            "Return a JSON object with:",
            f'- "summary": 2-3 sentence executive summary (max {SUMMARY_MAX_CHARS} chars)',
            '- "highlights": array of 3-5 key highlights, each '
            f'{{ "label": "short label", "value": "formatted value", "trend": {trends}, "good": true/false }}',
            f'- "recommendations": array of 2-3 actionable recommendations (strings, max {RECOMMENDATION_MAX_CHARS} chars each)',
            f'- "risk_score": integer {RISK_SCORE_MIN}-{RISK_SCORE_MAX} overall financial health ({RISK_SCORE_MAX} = excellent)',
            f'- "risk_label": {labels}',
            "",
            "Return ONLY the JSON object, no markdown and no other text.",
        ]
    )


async def generate_weekly_digest(
    account_id: str,
    session_factory: Optional[sessionmaker],
    *,
    now: Optional[datetime] = None,
) -> WeeklyDigest:
    """Run the digest pipeline for one account and return the validated digest."""
    if session_factory is None:
        raise DataUnavailableError("DATABASE_URL is not configured")

    settings = get_settings()
    since = window_start(settings.ai_digest_window_days, now=now)

    transactions, invoices, incidents, account = await load_weekly_records(session_factory, account_id, since)
    if account is None:
        logger.info("AI digest: account=%s has no profile row, using defaults", account_id)
        account = UNKNOWN_ACCOUNT

    summary = summarize(transactions, since=since, invoices=invoices, incidents=incidents)
    prompt = build_digest_prompt(summary, account)

    config = ai_router.resolve(SCOPE)
    provider_result = await ai_router.complete(config, config.instruct(prompt))

    digest = validate_digest(parse_model_json(provider_result.raw_text, expect=dict))
    log_ai_run(
        scope=SCOPE,
        provider_result=provider_result,
        prompt_text=prompt,
        extra_meta={"account_id": account_id, "risk_score": digest.risk_score},
    )
    return digest
