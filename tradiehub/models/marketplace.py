"""
SQLAlchemy models for marketplace_jobs and job_applications.

A marketplace job is posted by a client and receives credit-gated
applications from tradies. There is at most one application per
(job, tradie) pair, enforced by a unique constraint.
"""

import enum
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, as_utc, utcnow


class MarketplaceJobStatus(str, enum.Enum):
    AVAILABLE = "available"
    IN_REVIEW = "in_review"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class UrgencyLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class MarketplaceJobType(str, enum.Enum):
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    ROOFING = "roofing"
    HVAC = "hvac"
    CARPENTRY = "carpentry"
    PAINTING = "painting"
    LANDSCAPING = "landscaping"
    CLEANING = "cleaning"
    HANDYMAN = "handyman"
    GENERAL = "general"


class ApplicationStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    SELECTED = "selected"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class MarketplaceJob(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "marketplace_jobs"

    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    job_type: Mapped[MarketplaceJobType] = mapped_column(
        Enum(MarketplaceJobType, name="marketplace_job_type"),
        nullable=False,
        default=MarketplaceJobType.GENERAL,
    )
    status: Mapped[MarketplaceJobStatus] = mapped_column(
        Enum(MarketplaceJobStatus, name="marketplace_job_status"),
        nullable=False,
        default=MarketplaceJobStatus.AVAILABLE,
        index=True,
    )
    urgency_level: Mapped[UrgencyLevel] = mapped_column(
        Enum(UrgencyLevel, name="urgency_level"),
        nullable=False,
        default=UrgencyLevel.MEDIUM,
    )
    estimated_budget: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), nullable=True
    )
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    date_required: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    application_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assigned_tradie_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id"),
        nullable=True,
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expires_at = as_utc(self.expires_at)
        return expires_at is not None and expires_at <= (now or utcnow())

    def __repr__(self) -> str:
        return (
            f"<MarketplaceJob(id={self.id}, type={self.job_type}, "
            f"status={self.status}, applications={self.application_count})>"
        )


class JobApplication(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "job_applications"
    __table_args__ = (
        UniqueConstraint(
            "marketplace_job_id", "tradie_id", name="uq_job_applications_job_tradie"
        ),
    )

    marketplace_job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("marketplace_jobs.id"),
        nullable=False,
        index=True,
    )
    tradie_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    custom_quote: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    proposed_timeline: Mapped[str] = mapped_column(String(500), nullable=False)
    approach_description: Mapped[str] = mapped_column(Text, nullable=False)
    availability_dates: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    cover_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"),
        nullable=False,
        default=ApplicationStatus.SUBMITTED,
        index=True,
    )
    status_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    application_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    withdrawn_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def withdrawal_deadline(self, window_hours: int = 24) -> datetime:
        return as_utc(self.application_timestamp) + timedelta(hours=window_hours)

    def is_withdrawable(self, now: Optional[datetime] = None, window_hours: int = 24) -> bool:
        """Submitted applications may be withdrawn within the window after
        they were made."""
        if self.status != ApplicationStatus.SUBMITTED:
            return False
        return (now or utcnow()) < self.withdrawal_deadline(window_hours)

    def __repr__(self) -> str:
        return (
            f"<JobApplication(id={self.id}, job={self.marketplace_job_id}, "
            f"tradie={self.tradie_id}, status={self.status})>"
        )
