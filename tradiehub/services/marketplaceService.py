"""
Marketplace Service
===================

Client-posted marketplace jobs and their application credit cost.

Credit cost::

    ceil(base_application_credits * urgency multiplier * job-type multiplier)
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tradiehub.core.config import settings
from tradiehub.core.errors import (
    FieldError,
    InvalidStateTransitionError,
    NotFoundError,
    UnauthorizedAccessError,
    ValidationError,
)
from tradiehub.models.base import as_utc, utcnow
from tradiehub.models.marketplace import (
    MarketplaceJob,
    MarketplaceJobStatus,
    MarketplaceJobType,
    UrgencyLevel,
)
from tradiehub.models.user import UserRole
from tradiehub.services import userService
from tradiehub.services.pagination import PaginatedResult

logger = logging.getLogger(__name__)

URGENCY_MULTIPLIERS: dict[UrgencyLevel, float] = {
    UrgencyLevel.LOW: 1.0,
    UrgencyLevel.MEDIUM: 1.2,
    UrgencyLevel.HIGH: 1.5,
    UrgencyLevel.URGENT: 2.0,
}

JOB_TYPE_MULTIPLIERS: dict[MarketplaceJobType, float] = {
    MarketplaceJobType.ELECTRICAL: 1.5,
    MarketplaceJobType.PLUMBING: 1.5,
    MarketplaceJobType.ROOFING: 1.3,
    MarketplaceJobType.HVAC: 1.3,
    MarketplaceJobType.CARPENTRY: 1.2,
    MarketplaceJobType.PAINTING: 1.0,
    MarketplaceJobType.LANDSCAPING: 1.0,
    MarketplaceJobType.CLEANING: 0.8,
    MarketplaceJobType.HANDYMAN: 1.0,
    MarketplaceJobType.GENERAL: 1.0,
}

_UPDATABLE_FIELDS = frozenset({
    "title",
    "description",
    "urgency_level",
    "estimated_budget",
    "location",
    "date_required",
    "expires_at",
})


def get_credit_cost(job_type: MarketplaceJobType, urgency_level: UrgencyLevel) -> int:
    """Credits a tradie spends to apply for a job of this type and urgency."""
    multiplier = (
        URGENCY_MULTIPLIERS.get(UrgencyLevel(urgency_level), 1.0)
        * JOB_TYPE_MULTIPLIERS.get(MarketplaceJobType(job_type), 1.0)
    )
    # Round away float noise before the ceiling (2 * 1.2 * 1.5 must be 4, not 5)
    return math.ceil(round(settings.base_application_credits * multiplier, 6))


def job_credit_cost(job: MarketplaceJob) -> int:
    return get_credit_cost(job.job_type, job.urgency_level)


async def get_marketplace_job(db: AsyncSession, job_id: uuid.UUID) -> MarketplaceJob:
    result = await db.execute(select(MarketplaceJob).where(MarketplaceJob.id == job_id))
    job = result.scalar_one_or_none()
    if job is None:
        raise NotFoundError("Marketplace job", job_id)
    return job


async def _get_owned_job(db: AsyncSession, job_id: uuid.UUID, client_id: uuid.UUID) -> MarketplaceJob:
    job = await get_marketplace_job(db, job_id)
    if job.client_id != client_id:
        raise UnauthorizedAccessError("Only the client who posted this job can change it.")
    return job


def _check_expiry(expires_at: Optional[datetime]) -> Optional[datetime]:
    if expires_at is None:
        return None
    expires_at = as_utc(expires_at)
    if expires_at <= utcnow():
        raise ValidationError.for_field("expires_at", "Expiry must be in the future.")
    return expires_at


def _check_budget(budget: Optional[Decimal]) -> None:
    if budget is not None and budget <= 0:
        raise ValidationError.for_field("estimated_budget", "Budget must be greater than zero.")


async def create_marketplace_job(
    db: AsyncSession,
    client_id: uuid.UUID,
    *,
    title: str,
    job_type: MarketplaceJobType,
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM,
    description: Optional[str] = None,
    estimated_budget: Optional[Decimal] = None,
    location: Optional[str] = None,
    date_required: Optional[date] = None,
    expires_at: Optional[datetime] = None,
) -> MarketplaceJob:
    await userService.require_user(db, client_id, UserRole.CLIENT, field="client_id")
    if not title or not title.strip():
        raise ValidationError.for_field("title", "Title is required.")
    _check_budget(estimated_budget)

    job = MarketplaceJob(
        client_id=client_id,
        title=title.strip(),
        description=description,
        job_type=MarketplaceJobType(job_type),
        urgency_level=UrgencyLevel(urgency_level),
        status=MarketplaceJobStatus.AVAILABLE,
        estimated_budget=estimated_budget,
        location=location,
        date_required=date_required,
        expires_at=_check_expiry(expires_at),
        application_count=0,
    )
    db.add(job)
    await db.flush()

    logger.info(
        "Marketplace job %s posted by client %s (type=%s, urgency=%s, cost=%d credits)",
        job.id,
        client_id,
        job.job_type.value,
        job.urgency_level.value,
        job_credit_cost(job),
    )
    return job


async def list_available_jobs(
    db: AsyncSession,
    *,
    job_type: Optional[MarketplaceJobType] = None,
    urgency_level: Optional[UrgencyLevel] = None,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResult:
    """Open, unexpired jobs, newest first."""
    now = utcnow()
    filters = [
        MarketplaceJob.status == MarketplaceJobStatus.AVAILABLE,
        or_(MarketplaceJob.expires_at.is_(None), MarketplaceJob.expires_at > now),
    ]
    if job_type is not None:
        filters.append(MarketplaceJob.job_type == job_type)
    if urgency_level is not None:
        filters.append(MarketplaceJob.urgency_level == urgency_level)

    total_items: int = (
        await db.execute(select(func.count(MarketplaceJob.id)).where(*filters))
    ).scalar_one()
    jobs = (
        await db.execute(
            select(MarketplaceJob)
            .where(*filters)
            .order_by(MarketplaceJob.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).scalars().all()
    return PaginatedResult(items=jobs, total_items=total_items, page=page, page_size=page_size)


async def update_marketplace_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    client_id: uuid.UUID,
    changes: dict[str, Any],
) -> MarketplaceJob:
    """Edit an available, unexpired job. Job type is fixed once posted, and
    urgency once the job has applications, because both price applications."""
    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            "Unknown fields in update.",
            errors=[FieldError(name, "Field cannot be updated.") for name in sorted(unknown)],
        )

    job = await _get_owned_job(db, job_id, client_id)
    if job.status != MarketplaceJobStatus.AVAILABLE:
        raise InvalidStateTransitionError(
            job.status.value,
            job.status.value,
            f"Jobs in '{job.status.value}' status cannot be edited.",
        )
    if job.is_expired():
        raise InvalidStateTransitionError(
            MarketplaceJobStatus.EXPIRED.value,
            job.status.value,
            "Expired jobs cannot be edited.",
        )

    if "estimated_budget" in changes:
        _check_budget(changes["estimated_budget"])
    if "expires_at" in changes:
        changes = {**changes, "expires_at": _check_expiry(changes["expires_at"])}
    if "urgency_level" in changes and changes["urgency_level"] is not None:
        changes = {**changes, "urgency_level": UrgencyLevel(changes["urgency_level"])}
        if changes["urgency_level"] != job.urgency_level and job.application_count > 0:
            raise ValidationError.for_field(
                "urgency_level",
                "Urgency cannot change after tradies have applied; it sets their credit cost.",
            )
    if "title" in changes and not (changes["title"] or "").strip():
        raise ValidationError.for_field("title", "Title is required.")

    for name, value in changes.items():
        setattr(job, name, value)
    await db.flush()

    logger.info("Marketplace job %s updated (fields=%s)", job.id, sorted(changes))
    return job


async def delete_marketplace_job(db: AsyncSession, job_id: uuid.UUID, client_id: uuid.UUID) -> None:
    job = await _get_owned_job(db, job_id, client_id)
    if job.application_count > 0:
        raise InvalidStateTransitionError(
            job.status.value,
            "deleted",
            "Jobs that have received applications cannot be deleted.",
        )
    await db.delete(job)
    await db.flush()
    logger.info("Marketplace job %s deleted by client %s", job_id, client_id)


async def expire_marketplace_jobs(db: AsyncSession) -> int:
    """Mark available/in-review jobs past ``expires_at`` as expired."""
    now = utcnow()
    outcome = await db.execute(
        update(MarketplaceJob)
        .where(
            MarketplaceJob.status.in_(
                [MarketplaceJobStatus.AVAILABLE, MarketplaceJobStatus.IN_REVIEW]
            ),
            MarketplaceJob.expires_at.is_not(None),
            MarketplaceJob.expires_at <= now,
        )
        .values(status=MarketplaceJobStatus.EXPIRED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    count = outcome.rowcount or 0
    if count:
        logger.info("Expired %d marketplace jobs", count)
    return count
