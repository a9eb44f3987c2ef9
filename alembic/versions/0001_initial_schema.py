"""initial schema: users, jobs, quotes, payments, marketplace, credits

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _user_fk(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("phone", sa.String(20)),
        sa.Column("password_hash", sa.String(255)),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("business_name", sa.String(200)),
        sa.Column("role", sa.Enum("client", "tradie", "admin", name="user_role"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "suspended", "deactivated", name="user_status"),
            nullable=False,
        ),
        sa.Column("email_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("stripe_customer_id", sa.String(255)),
        sa.Column("last_login_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )

    op.create_table(
        "jobs",
        _uuid_pk(),
        _user_fk("client_id"),
        _user_fk("tradie_id", nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column(
            "status",
            sa.Enum("open", "quoted", "active", "completed", "cancelled", name="job_status"),
            nullable=False,
        ),
        *_timestamps(),
    )
    op.create_index("ix_jobs_client_id", "jobs", ["client_id"])
    op.create_index("ix_jobs_tradie_id", "jobs", ["tradie_id"])

    op.create_table(
        "quotes",
        _uuid_pk(),
        sa.Column("quote_number", sa.String(20), nullable=False, unique=True),
        _user_fk("tradie_id"),
        _user_fk("client_id"),
        sa.Column(
            "job_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("jobs.id", ondelete="SET NULL"),
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("terms_conditions", sa.Text),
        sa.Column("notes", sa.Text),
        sa.Column("gst_enabled", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("gst_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="AUD"),
        sa.Column(
            "status",
            sa.Enum(
                "draft", "sent", "viewed", "accepted", "rejected", "expired", "cancelled",
                name="quote_status",
            ),
            nullable=False,
        ),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        sa.Column("viewed_at", sa.DateTime(timezone=True)),
        sa.Column("accepted_at", sa.DateTime(timezone=True)),
        sa.Column("rejected_at", sa.DateTime(timezone=True)),
        sa.Column("rejection_reason", sa.Text),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("cancellation_reason", sa.Text),
        sa.Column(
            "payment_status",
            sa.Enum(
                "pending", "processing", "succeeded", "failed", "refunded",
                "partially_refunded", "invoiced",
                name="quote_payment_status",
            ),
        ),
        sa.Column("payment_id", sa.String(255)),
        *_timestamps(),
    )
    op.create_index("ix_quotes_quote_number", "quotes", ["quote_number"])
    op.create_index("ix_quotes_tradie_id", "quotes", ["tradie_id"])
    op.create_index("ix_quotes_client_id", "quotes", ["client_id"])
    op.create_index("ix_quotes_status", "quotes", ["status"])

    op.create_table(
        "quote_items",
        _uuid_pk(),
        sa.Column(
            "quote_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("quotes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "item_type",
            sa.Enum("material", "labor", "other", name="quote_item_type"),
            nullable=False,
        ),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), nullable=False),
        sa.Column("unit", sa.String(20), nullable=False, server_default="each"),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("line_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_quote_items_quote_id", "quote_items", ["quote_id"])

    op.create_table(
        "quote_payments",
        _uuid_pk(),
        sa.Column("quote_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("quotes.id"), nullable=False),
        sa.Column("payment_intent_id", sa.String(255), unique=True),
        sa.Column("payment_method_id", sa.String(255)),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("failure_reason", sa.Text),
        sa.Column("request_id", sa.String(100)),
        *_timestamps(),
    )
    op.create_index("ix_quote_payments_quote_id", "quote_payments", ["quote_id"])

    op.create_table(
        "quote_invoices",
        _uuid_pk(),
        sa.Column(
            "quote_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("quotes.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("invoice_number", sa.String(30), nullable=False, unique=True),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("gst_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("line_items", postgresql.JSONB, nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("request_id", sa.String(100)),
        *_timestamps(),
    )

    op.create_table(
        "quote_refunds",
        _uuid_pk(),
        sa.Column(
            "quote_payment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("quote_payments.id"),
            nullable=False,
        ),
        sa.Column("refund_id", sa.String(255), nullable=False, unique=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("reason", sa.Text),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("request_id", sa.String(100)),
        *_timestamps(),
    )
    op.create_index("ix_quote_refunds_quote_payment_id", "quote_refunds", ["quote_payment_id"])

    op.create_table(
        "marketplace_jobs",
        _uuid_pk(),
        _user_fk("client_id"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column(
            "job_type",
            sa.Enum(
                "electrical", "plumbing", "roofing", "hvac", "carpentry", "painting",
                "landscaping", "cleaning", "handyman", "general",
                name="marketplace_job_type",
            ),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum(
                "available", "in_review", "assigned", "completed", "expired", "cancelled",
                name="marketplace_job_status",
            ),
            nullable=False,
        ),
        sa.Column(
            "urgency_level",
            sa.Enum("low", "medium", "high", "urgent", name="urgency_level"),
            nullable=False,
        ),
        sa.Column("estimated_budget", sa.Numeric(12, 2)),
        sa.Column("location", sa.String(255)),
        sa.Column("date_required", sa.Date),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("application_count", sa.Integer, nullable=False, server_default="0"),
        _user_fk("assigned_tradie_id", nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_marketplace_jobs_client_id", "marketplace_jobs", ["client_id"])
    op.create_index("ix_marketplace_jobs_status", "marketplace_jobs", ["status"])

    op.create_table(
        "job_applications",
        _uuid_pk(),
        sa.Column(
            "marketplace_job_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("marketplace_jobs.id"),
            nullable=False,
        ),
        _user_fk("tradie_id"),
        sa.Column("custom_quote", sa.Numeric(12, 2), nullable=False),
        sa.Column("proposed_timeline", sa.String(500), nullable=False),
        sa.Column("approach_description", sa.Text, nullable=False),
        sa.Column("availability_dates", postgresql.JSONB, nullable=False),
        sa.Column("cover_message", sa.Text),
        sa.Column("credits_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "status",
            sa.Enum(
                "submitted", "under_review", "selected", "rejected", "withdrawn",
                name="application_status",
            ),
            nullable=False,
        ),
        sa.Column("status_reason", sa.Text),
        sa.Column("application_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True)),
        sa.Column("withdrawn_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.UniqueConstraint("marketplace_job_id", "tradie_id", name="uq_job_applications_job_tradie"),
    )
    op.create_index("ix_job_applications_marketplace_job_id", "job_applications", ["marketplace_job_id"])
    op.create_index("ix_job_applications_tradie_id", "job_applications", ["tradie_id"])
    op.create_index("ix_job_applications_status", "job_applications", ["status"])

    op.create_table(
        "credit_accounts",
        _uuid_pk(),
        sa.Column(
            "tradie_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("balance", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("balance >= 0", name="ck_credit_accounts_balance_non_negative"),
    )

    op.create_table(
        "credit_transactions",
        _uuid_pk(),
        _user_fk("tradie_id"),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column(
            "transaction_type",
            sa.Enum(
                "purchase", "job_application", "application_refund", "adjustment",
                name="credit_transaction_type",
            ),
            nullable=False,
        ),
        sa.Column("reference_id", postgresql.UUID(as_uuid=True)),
        sa.Column("description", sa.String(255)),
        sa.Column("balance_after", sa.Integer, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_credit_transactions_tradie_id", "credit_transactions", ["tradie_id"])


def downgrade() -> None:
    for table in (
        "credit_transactions",
        "credit_accounts",
        "job_applications",
        "marketplace_jobs",
        "quote_refunds",
        "quote_invoices",
        "quote_payments",
        "quote_items",
        "quotes",
        "jobs",
        "users",
    ):
        op.drop_table(table)
    for enum_name in (
        "credit_transaction_type",
        "application_status",
        "urgency_level",
        "marketplace_job_status",
        "marketplace_job_type",
        "quote_payment_status",
        "quote_item_type",
        "quote_status",
        "job_status",
        "user_status",
        "user_role",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
