"""
SQLAlchemy models for credit_accounts and credit_transactions.

The account row holds the live balance; every mutation also appends a
transaction row recording the signed amount and the balance after it.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class CreditTransactionType(str, enum.Enum):
    PURCHASE = "purchase"
    JOB_APPLICATION = "job_application"
    APPLICATION_REFUND = "application_refund"
    ADJUSTMENT = "adjustment"


class CreditAccount(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "credit_accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="balance_non_negative"),
    )

    tradie_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id"),
        unique=True,
        nullable=False,
    )
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<CreditAccount(tradie={self.tradie_id}, balance={self.balance})>"


class CreditTransaction(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "credit_transactions"

    tradie_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[CreditTransactionType] = mapped_column(
        Enum(CreditTransactionType, name="credit_transaction_type"),
        nullable=False,
    )
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<CreditTransaction(tradie={self.tradie_id}, amount={self.amount}, "
            f"type={self.transaction_type})>"
        )
