"""
TradieHub SQLAlchemy Models
=============================

Central import point for all ORM models. Import ``Base`` from here for
Alembic auto-generation and for the ``create_all`` convenience in tests.

Usage::

    from tradiehub.models import Base, User, Quote, JobApplication
"""

# -- Base & Mixins --
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# -- Users --
from .user import User, UserRole, UserStatus

# -- Jobs --
from .job import Job, JobStatus

# -- Quotes --
from .quote import Quote, QuoteItem, QuoteItemType, QuotePaymentStatus, QuoteStatus

# -- Quote payments --
from .quote_payment import QuoteInvoice, QuotePayment, QuoteRefund

# -- Marketplace --
from .marketplace import (
    ApplicationStatus,
    JobApplication,
    MarketplaceJob,
    MarketplaceJobStatus,
    MarketplaceJobType,
    UrgencyLevel,
)

# -- Credits --
from .credit import CreditAccount, CreditTransaction, CreditTransactionType

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "User",
    "UserRole",
    "UserStatus",
    "Job",
    "JobStatus",
    "Quote",
    "QuoteItem",
    "QuoteItemType",
    "QuotePaymentStatus",
    "QuoteStatus",
    "QuoteInvoice",
    "QuotePayment",
    "QuoteRefund",
    "ApplicationStatus",
    "JobApplication",
    "MarketplaceJob",
    "MarketplaceJobStatus",
    "MarketplaceJobType",
    "UrgencyLevel",
    "CreditAccount",
    "CreditTransaction",
    "CreditTransactionType",
]
