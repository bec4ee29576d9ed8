import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from sqlalchemy.types import CHAR, TypeDecorator

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value if dialect.name == "postgresql" else str(value)
        if isinstance(value, str):
            try:
                parsed = uuid.UUID(value)
            except ValueError:
                return value
            return parsed if dialect.name == "postgresql" else str(parsed)
        return value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(value)
        except ValueError:
            return value


UUID_TYPE = GUID()


class Account(Base):
    __tablename__ = "accounts"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    business_name = Column(Text, nullable=False, default="My Business", server_default=text("'My Business'"))
    payroll_amount = Column(Integer, nullable=False, default=0, server_default=text("0"))
    currency = Column(String(3), nullable=False, default="EUR", server_default=text("'EUR'"))
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Text, primary_key=True)
    account_id = Column(UUID_TYPE, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Integer, nullable=False)
    merchant_name = Column(Text)
    category = Column(Text)
    description = Column(Text)
    is_income = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    created = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_transactions_account_created", "account_id", "created"),)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    account_id = Column(UUID_TYPE, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    client_name = Column(Text, nullable=False)
    amount = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="unpaid", server_default=text("'unpaid'"))
    due_date = Column(Date)
    paid_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('unpaid', 'sent', 'paid', 'overdue', 'cancelled')",
            name="chk_invoice_status",
        ),
        Index("idx_invoices_account", "account_id"),
    )


class Incident(Base):
    __tablename__ = "incidents"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    account_id = Column(UUID_TYPE, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    severity = Column(String(8), nullable=False, default="P2", server_default=text("'P2'"))
    title = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="open", server_default=text("'open'"))
    shortfall_amount = Column(Integer)
    opened_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    closed_at = Column(DateTime(timezone=True))

    __table_args__ = (Index("idx_incidents_account_opened", "account_id", "opened_at"),)


class AiInsight(Base):
    __tablename__ = "ai_insights"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    account_id = Column(UUID_TYPE, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(16), nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    action_label = Column(Text)
    action_type = Column(String(32))
    dismissed = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("type IN ('critical', 'warning', 'info')", name="chk_ai_insight_type"),
        Index("idx_ai_insights_account", "account_id"),
    )
