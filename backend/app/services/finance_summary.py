"""Financial record reads and deterministic summaries for the AI insight pipelines.

Money stays in integer minor units everywhere in this module; only
``format_minor`` divides by 100, when a value is rendered into prompt text.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.models.finance import Account, Incident, Invoice, Transaction
from app.services.ai.common.errors import DataUnavailableError

logger = logging.getLogger(__name__)

OTHER_CATEGORY = "Other"
TOP_CATEGORY_LIMIT = 5
CURRENCY_SYMBOLS = {"EUR": "€", "GBP": "£", "USD": "$"}

T = TypeVar("T")


@dataclass(frozen=True)
class FinancialRecord:
    amount: int
    is_income: bool
    created: datetime
    category: Optional[str] = None
    merchant_name: Optional[str] = None
    description: Optional[str] = None

    @property
    def label(self) -> str:
        return self.merchant_name or self.category or self.description or "unknown"


@dataclass(frozen=True)
class InvoiceRecord:
    amount: int
    status: str
    paid_at: Optional[datetime] = None
    client_name: str = ""


@dataclass(frozen=True)
class IncidentRecord:
    title: str
    severity: str
    status: str
    opened_at: datetime
    shortfall_amount: Optional[int] = None


@dataclass(frozen=True)
class AccountRecord:
    business_name: str
    payroll_amount: int
    currency: str


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    total: int


@dataclass(frozen=True)
class AggregateSummary:
    window_start: datetime
    transaction_count: int
    total_income: int
    total_expense: int
    top_categories: tuple[CategoryTotal, ...]
    overdue_count: int = 0
    overdue_total: int = 0
    invoices_paid_in_window: int = 0
    incidents_opened: int = 0
    incident_shortfall_total: int = 0
    open_incidents_by_severity: tuple[tuple[str, int], ...] = ()

    @property
    def net(self) -> int:
        return self.total_income - self.total_expense


# ─── Helpers ───────────────────────────────────────────


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def window_start(days: int, *, now: Optional[datetime] = None) -> datetime:
    return (now or now_utc()) - timedelta(days=days)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_minor(amount: int, currency: str = "EUR") -> str:
    """Render integer minor units as a major-unit string with two decimals."""
    code = (currency or "EUR").upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    sign = "-" if amount < 0 else ""
    major = Decimal(abs(int(amount))) / Decimal(100)
    return f"{sign}{symbol}{major:.2f}"


# ─── Aggregation ───────────────────────────────────────


def rank_expense_categories(
    records: Iterable[FinancialRecord], limit: int = TOP_CATEGORY_LIMIT
) -> list[CategoryTotal]:
    """Expense totals per category, largest first, ties by category name."""
    totals: dict[str, int] = {}
    for record in records:
        if record.is_income:
            continue
        category = (record.category or "").strip() or OTHER_CATEGORY
        totals[category] = totals.get(category, 0) + abs(record.amount)
    ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [CategoryTotal(category=c, total=t) for c, t in ranked[:limit]]


def summarize(
    records: Sequence[FinancialRecord],
    *,
    since: datetime,
    invoices: Sequence[InvoiceRecord] = (),
    incidents: Sequence[IncidentRecord] = (),
) -> AggregateSummary:
    """Reduce raw records to an ``AggregateSummary``; pure and order independent."""
    total_income = 0
    total_expense = 0
    for record in records:
        if record.is_income:
            total_income += record.amount
        else:
            total_expense += abs(record.amount)

    overdue = [i for i in invoices if i.status == "overdue"]
    paid_in_window = [i for i in invoices if i.paid_at is not None and as_utc(i.paid_at) >= since]
    opened = [i for i in incidents if as_utc(i.opened_at) >= since]
    open_by_severity: dict[str, int] = {}
    for incident in opened:
        if incident.status == "open":
            open_by_severity[incident.severity] = open_by_severity.get(incident.severity, 0) + 1

    return AggregateSummary(
        window_start=since,
        transaction_count=len(records),
        total_income=total_income,
        total_expense=total_expense,
        top_categories=tuple(rank_expense_categories(records)),
        overdue_count=len(overdue),
        overdue_total=sum(i.amount for i in overdue),
        invoices_paid_in_window=len(paid_in_window),
        incidents_opened=len(opened),
        incident_shortfall_total=sum(i.shortfall_amount or 0 for i in opened),
        open_incidents_by_severity=tuple(sorted(open_by_severity.items())),
    )


# ─── Record store reads ────────────────────────────────


def fetch_transactions(db: Session, account_id: str, since: datetime) -> list[FinancialRecord]:
    """Transactions created at or after *since*, newest first."""
    rows = (
        db.query(Transaction)
        .filter(Transaction.account_id == account_id, Transaction.created >= since)
        .order_by(Transaction.created.desc(), Transaction.id.asc())
        .all()
    )
    return [
        FinancialRecord(
            amount=int(row.amount),
            is_income=bool(row.is_income),
            created=as_utc(row.created),
            category=row.category,
            merchant_name=row.merchant_name,
            description=row.description,
        )
        for row in rows
    ]


def fetch_invoices(db: Session, account_id: str) -> list[InvoiceRecord]:
    rows = db.query(Invoice).filter(Invoice.account_id == account_id).all()
    return [
        InvoiceRecord(
            amount=int(row.amount),
            status=str(row.status or ""),
            paid_at=as_utc(row.paid_at),
            client_name=row.client_name or "",
        )
        for row in rows
    ]


def fetch_incidents(db: Session, account_id: str, since: datetime) -> list[IncidentRecord]:
    rows = (
        db.query(Incident)
        .filter(Incident.account_id == account_id, Incident.opened_at >= since)
        .all()
    )
    return [
        IncidentRecord(
            title=row.title,
            severity=row.severity,
            status=row.status,
            opened_at=as_utc(row.opened_at),
            shortfall_amount=row.shortfall_amount,
        )
        for row in rows
    ]


def fetch_account(db: Session, account_id: str) -> Optional[AccountRecord]:
    row = db.get(Account, account_id)
    if row is None:
        return None
    return AccountRecord(
        business_name=row.business_name,
        payroll_amount=int(row.payroll_amount or 0),
        currency=row.currency or "EUR",
    )


def read_records(session_factory: sessionmaker, fetch: Callable[..., T], *args) -> T:
    """Run one read in its own session; store failures become ``DataUnavailableError``."""
    try:
        with session_factory() as db:
            return fetch(db, *args)
    except SQLAlchemyError as exc:
        logger.warning("Record store read %s failed", getattr(fetch, "__name__", fetch), exc_info=True)
        raise DataUnavailableError("Financial data unavailable") from exc
