"""
SQLAlchemy models for quote_payments, quote_invoices and quote_refunds.

One ``QuotePayment`` row is written per charge attempt (failed attempts
included). Refunds reference the payment they reverse.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class QuotePayment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "quote_payments"

    quote_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("quotes.id"),
        nullable=False,
        index=True,
    )
    payment_intent_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )
    payment_method_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<QuotePayment(id={self.id}, quote={self.quote_id}, "
            f"intent={self.payment_intent_id}, status={self.status})>"
        )


class QuoteInvoice(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "quote_invoices"

    quote_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("quotes.id"),
        unique=True,
        nullable=False,
    )
    invoice_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    gst_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    line_items: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    request_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<QuoteInvoice(id={self.id}, number={self.invoice_number}, "
            f"total={self.total_amount})>"
        )


class QuoteRefund(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "quote_refunds"

    quote_payment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("quote_payments.id"),
        nullable=False,
        index=True,
    )
    refund_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    request_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<QuoteRefund(id={self.id}, refund={self.refund_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
