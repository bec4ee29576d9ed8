"""init insights schema

Revision ID: 20260316_000001
Revises:
Create Date: 2026-03-16 09:00:00.000000
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20260316_000001"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        sa.dialects.postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _account_fk() -> sa.Column:
    return sa.Column(
        "account_id",
        sa.dialects.postgresql.UUID(as_uuid=True),
        sa.ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "accounts",
        _uuid_pk(),
        sa.Column("business_name", sa.Text(), nullable=False, server_default=sa.text("'My Business'")),
        sa.Column("payroll_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'EUR'")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Transaction ids come from the bank feed, so they are text.
    op.create_table(
        "transactions",
        sa.Column("id", sa.Text(), primary_key=True),
        _account_fk(),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("merchant_name", sa.Text()),
        sa.Column("category", sa.Text()),
        sa.Column("description", sa.Text()),
        sa.Column("is_income", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_transactions_account_created", "transactions", ["account_id", "created"])

    op.create_table(
        "invoices",
        _uuid_pk(),
        _account_fk(),
        sa.Column("client_name", sa.Text(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'unpaid'")),
        sa.Column("due_date", sa.Date()),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('unpaid', 'sent', 'paid', 'overdue', 'cancelled')",
            name="chk_invoice_status",
        ),
    )
    op.create_index("idx_invoices_account", "invoices", ["account_id"])

    op.create_table(
        "incidents",
        _uuid_pk(),
        _account_fk(),
        sa.Column("severity", sa.String(8), nullable=False, server_default=sa.text("'P2'")),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'open'")),
        sa.Column("shortfall_amount", sa.Integer()),
        sa.Column("opened_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("idx_incidents_account_opened", "incidents", ["account_id", "opened_at"])

    op.create_table(
        "ai_insights",
        _uuid_pk(),
        _account_fk(),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("action_label", sa.Text()),
        sa.Column("action_type", sa.String(32)),
        sa.Column("dismissed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("type IN ('critical', 'warning', 'info')", name="chk_ai_insight_type"),
    )
    op.create_index("idx_ai_insights_account", "ai_insights", ["account_id"])


def downgrade() -> None:
    op.drop_index("idx_ai_insights_account", table_name="ai_insights")
    op.drop_table("ai_insights")
    op.drop_index("idx_incidents_account_opened", table_name="incidents")
    op.drop_table("incidents")
    op.drop_index("idx_invoices_account", table_name="invoices")
    op.drop_table("invoices")
    op.drop_index("idx_transactions_account_created", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("accounts")
