"""
Application Service
===================

Credit-gated applications from tradies to marketplace jobs.

Key functions:
  - validate_application_eligibility -- read-only pre-check with reasons
  - create_application     -- re-checks everything at write time; the
    unique (job, tradie) constraint and the conditional credit deduction
    make it safe against concurrent submissions
  - withdraw_application   -- owner only, within the withdrawal window
  - update_application_status -- reviewer decisions; selecting one
    application assigns the job and rejects the rest
  - bulk_update_status     -- per-item results, each item in a SAVEPOINT
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tradiehub.core.config import settings
from tradiehub.core.errors import (
    AppError,
    DuplicateApplicationError,
    FieldError,
    InvalidStateTransitionError,
    NotFoundError,
    UnauthorizedAccessError,
    ValidationError,
    WithdrawalNotAllowedError,
)
from tradiehub.events.applicationEvents import (
    emit_application_status_changed,
    emit_application_submitted,
    emit_application_withdrawn,
)
from tradiehub.models.base import utcnow
from tradiehub.models.marketplace import (
    ApplicationStatus,
    JobApplication,
    MarketplaceJob,
    MarketplaceJobStatus,
)
from tradiehub.models.user import User, UserRole
from tradiehub.services import creditLedger, marketplaceService, userService
from tradiehub.services.applicationStateManager import validate_transition
from tradiehub.services.pagination import PaginatedResult
from tradiehub.services.stateMachine import ActorType

logger = logging.getLogger(__name__)

MIN_CUSTOM_QUOTE = Decimal("10")
MAX_CUSTOM_QUOTE = Decimal("1000000")
TIMELINE_LENGTH = (10, 500)
APPROACH_LENGTH = (20, 1000)
MAX_AVAILABILITY_DATES = 10
MAX_COVER_MESSAGE_LENGTH = 1000

SELECTION_REJECTION_REASON = "Another application was selected"

_REVIEW_STATUSES = (
    ApplicationStatus.UNDER_REVIEW,
    ApplicationStatus.SELECTED,
    ApplicationStatus.REJECTED,
)


@dataclass(frozen=True)
class EligibilityResult:
    can_apply: bool
    reasons: list[str] = field(default_factory=list)
    required_credits: int = 0
    current_balance: int = 0


@dataclass(frozen=True)
class BulkItemResult:
    application_id: uuid.UUID
    success: bool
    error: Optional[str] = None
    code: Optional[str] = None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_application_data(
    *,
    custom_quote: Decimal,
    proposed_timeline: str,
    approach_description: str,
    availability_dates: Sequence[date],
    cover_message: Optional[str] = None,
) -> None:
    """Field-level checks on an application payload.

    Raises:
        ValidationError: With one ``FieldError`` per failing field.
    """
    errors: list[FieldError] = []

    if custom_quote is None or not (MIN_CUSTOM_QUOTE <= Decimal(str(custom_quote)) <= MAX_CUSTOM_QUOTE):
        errors.append(FieldError(
            "custom_quote",
            f"Quote must be between ${MIN_CUSTOM_QUOTE} and ${MAX_CUSTOM_QUOTE:,}.",
        ))

    timeline = (proposed_timeline or "").strip()
    if not (TIMELINE_LENGTH[0] <= len(timeline) <= TIMELINE_LENGTH[1]):
        errors.append(FieldError(
            "proposed_timeline",
            f"Timeline must be {TIMELINE_LENGTH[0]} to {TIMELINE_LENGTH[1]} characters.",
        ))

    approach = (approach_description or "").strip()
    if not (APPROACH_LENGTH[0] <= len(approach) <= APPROACH_LENGTH[1]):
        errors.append(FieldError(
            "approach_description",
            f"Approach must be {APPROACH_LENGTH[0]} to {APPROACH_LENGTH[1]} characters.",
        ))

    if not availability_dates or len(availability_dates) > MAX_AVAILABILITY_DATES:
        errors.append(FieldError(
            "availability_dates",
            f"Provide between 1 and {MAX_AVAILABILITY_DATES} availability dates.",
        ))
    else:
        today = utcnow().date()
        for index, value in enumerate(availability_dates):
            if value < today:
                errors.append(FieldError(
                    f"availability_dates[{index}]",
                    "Availability dates cannot be in the past.",
                ))

    if cover_message is not None and len(cover_message) > MAX_COVER_MESSAGE_LENGTH:
        errors.append(FieldError(
            "cover_message",
            f"Cover message must be at most {MAX_COVER_MESSAGE_LENGTH} characters.",
        ))

    if errors:
        raise ValidationError("Invalid application.", errors=errors)


def _job_closed_reason(job: MarketplaceJob, tradie_id: uuid.UUID) -> Optional[str]:
    if job.status != MarketplaceJobStatus.AVAILABLE:
        return f"Job is not accepting applications (status '{job.status.value}')."
    if job.is_expired():
        return "Job has expired."
    if job.application_count >= settings.max_applications_per_job:
        return "Job has reached the maximum number of applications."
    if job.client_id == tradie_id:
        return "You cannot apply to your own job."
    return None


async def _find_existing(
    db: AsyncSession, job_id: uuid.UUID, tradie_id: uuid.UUID
) -> Optional[JobApplication]:
    result = await db.execute(
        select(JobApplication).where(
            JobApplication.marketplace_job_id == job_id,
            JobApplication.tradie_id == tradie_id,
        )
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Eligibility and creation
# ---------------------------------------------------------------------------

async def validate_application_eligibility(
    db: AsyncSession,
    tradie_id: uuid.UUID,
    job_id: uuid.UUID,
) -> EligibilityResult:
    """Collect every reason the tradie cannot apply right now.

    Business-rule failures are returned in ``reasons``; only a missing job
    raises.
    """
    job = await marketplaceService.get_marketplace_job(db, job_id)
    required = marketplaceService.job_credit_cost(job)
    balance = await creditLedger.get_balance(db, tradie_id)

    reasons: list[str] = []
    closed = _job_closed_reason(job, tradie_id)
    if closed:
        reasons.append(closed)
    if await _find_existing(db, job_id, tradie_id) is not None:
        reasons.append("You have already applied to this job.")
    if balance < required:
        reasons.append(f"Insufficient credits: {required} required, {balance} available.")

    return EligibilityResult(
        can_apply=not reasons,
        reasons=reasons,
        required_credits=required,
        current_balance=balance,
    )


async def create_application(
    db: AsyncSession,
    tradie_id: uuid.UUID,
    *,
    marketplace_job_id: uuid.UUID,
    custom_quote: Decimal,
    proposed_timeline: str,
    approach_description: str,
    availability_dates: Sequence[date],
    cover_message: Optional[str] = None,
) -> JobApplication:
    """Submit an application, spending the job's credit cost.

    Every check is repeated here rather than trusted from an earlier
    eligibility call. The request transaction rolls back the deduction if
    any later step fails.

    Raises:
        ValidationError: Bad payload or job not open for applications.
        DuplicateApplicationError: The tradie already applied (including a
            concurrent request that won the insert).
        InsufficientCreditsError: Balance below the job's credit cost.
    """
    validate_application_data(
        custom_quote=custom_quote,
        proposed_timeline=proposed_timeline,
        approach_description=approach_description,
        availability_dates=availability_dates,
        cover_message=cover_message,
    )
    await userService.require_user(db, tradie_id, UserRole.TRADIE, field="tradie_id")

    job = await marketplaceService.get_marketplace_job(db, marketplace_job_id)
    closed = _job_closed_reason(job, tradie_id)
    if closed:
        raise ValidationError.for_field("marketplace_job_id", closed)
    if await _find_existing(db, marketplace_job_id, tradie_id) is not None:
        raise DuplicateApplicationError()

    cost = marketplaceService.job_credit_cost(job)
    application = JobApplication(
        marketplace_job_id=marketplace_job_id,
        tradie_id=tradie_id,
        custom_quote=Decimal(str(custom_quote)),
        proposed_timeline=proposed_timeline.strip(),
        approach_description=approach_description.strip(),
        availability_dates=[value.isoformat() for value in availability_dates],
        cover_message=cover_message,
        credits_used=cost,
        status=ApplicationStatus.SUBMITTED,
        application_timestamp=utcnow(),
    )
    try:
        async with db.begin_nested():
            db.add(application)
            await db.flush()
    except IntegrityError as exc:
        logger.info(
            "Concurrent duplicate application by tradie %s for job %s",
            tradie_id,
            marketplace_job_id,
        )
        raise DuplicateApplicationError() from exc

    await creditLedger.deduct(
        db,
        tradie_id,
        cost,
        reference_id=application.id,
        description=f"Application to job {marketplace_job_id}",
    )

    outcome = await db.execute(
        update(MarketplaceJob)
        .where(
            MarketplaceJob.id == marketplace_job_id,
            MarketplaceJob.status == MarketplaceJobStatus.AVAILABLE,
            MarketplaceJob.application_count < settings.max_applications_per_job,
        )
        .values(application_count=MarketplaceJob.application_count + 1)
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount != 1:
        raise ValidationError.for_field(
            "marketplace_job_id", "Job stopped accepting applications."
        )

    emit_application_submitted(
        application_id=application.id,
        marketplace_job_id=marketplace_job_id,
        tradie_id=tradie_id,
        credits_used=cost,
    )
    logger.info(
        "Application %s submitted by tradie %s for job %s (%d credits)",
        application.id,
        tradie_id,
        marketplace_job_id,
        cost,
    )
    return application


# ---------------------------------------------------------------------------
# Status changes
# ---------------------------------------------------------------------------

async def _get_application(db: AsyncSession, application_id: uuid.UUID) -> JobApplication:
    result = await db.execute(select(JobApplication).where(JobApplication.id == application_id))
    application = result.scalar_one_or_none()
    if application is None:
        raise NotFoundError("Application", application_id)
    return application


async def transition_application(
    db: AsyncSession,
    application: JobApplication,
    new_status: ApplicationStatus,
    actor_type: ActorType,
    *,
    actor_id: Optional[uuid.UUID] = None,
    reason: Optional[str] = None,
    values: Optional[dict[str, Any]] = None,
) -> JobApplication:
    """Compare-and-swap status change for an application.

    Raises:
        InvalidStateTransitionError: Disallowed transition or actor, or a
            concurrent request changed the status first.
    """
    old_status = application.status
    check = validate_transition(old_status, new_status, actor_type)
    if not check.allowed:
        raise InvalidStateTransitionError(old_status.value, new_status.value, check.reason)

    now = utcnow()
    row_values: dict[str, Any] = {"status": new_status, "updated_at": now}
    if reason is not None:
        row_values["status_reason"] = reason
    if new_status in _REVIEW_STATUSES:
        row_values["reviewed_at"] = now
    if new_status == ApplicationStatus.WITHDRAWN:
        row_values["withdrawn_at"] = now
    if values:
        row_values.update(values)

    outcome = await db.execute(
        update(JobApplication)
        .where(JobApplication.id == application.id, JobApplication.status == old_status)
        .values(**row_values)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(application)

    if outcome.rowcount != 1:
        logger.warning(
            "Application %s lost status race: expected %s, now %s (requested %s)",
            application.id,
            old_status.value,
            application.status.value,
            new_status.value,
        )
        raise InvalidStateTransitionError(
            application.status.value,
            new_status.value,
            f"Application status changed from '{old_status.value}' to "
            f"'{application.status.value}' before this request completed.",
        )

    emit_application_status_changed(
        application_id=application.id,
        old_status=old_status.value,
        new_status=new_status.value,
        actor_id=actor_id,
    )
    logger.info(
        "Application %s transitioned: %s -> %s (actor=%s, type=%s)",
        application.id,
        old_status.value,
        new_status.value,
        actor_id,
        actor_type.value,
    )
    return application


async def withdraw_application(
    db: AsyncSession,
    application_id: uuid.UUID,
    tradie_id: uuid.UUID,
    reason: Optional[str] = None,
    refund_credits: bool = True,
) -> JobApplication:
    """Withdraw a submitted application within the withdrawal window.

    Raises:
        UnauthorizedAccessError: If the caller did not make the application.
        WithdrawalNotAllowedError: If the application is past review or the
            window has closed.
    """
    application = await _get_application(db, application_id)
    if application.tradie_id != tradie_id:
        raise UnauthorizedAccessError("Only the applying tradie can withdraw this application.")

    window = settings.application_withdrawal_hours
    if application.status != ApplicationStatus.SUBMITTED:
        raise WithdrawalNotAllowedError(
            f"Applications in '{application.status.value}' status cannot be withdrawn."
        )
    if not application.is_withdrawable(window_hours=window):
        deadline = application.withdrawal_deadline(window)
        raise WithdrawalNotAllowedError(
            f"The {window}-hour withdrawal window closed at {deadline:%Y-%m-%d %H:%M} UTC."
        )

    await transition_application(
        db,
        application,
        ApplicationStatus.WITHDRAWN,
        ActorType.TRADIE,
        actor_id=tradie_id,
        reason=reason,
    )

    refunded = 0
    if refund_credits and application.credits_used > 0:
        await creditLedger.refund(
            db,
            tradie_id,
            application.credits_used,
            reference_id=application.id,
            description="Application withdrawn",
        )
        refunded = application.credits_used

    await db.execute(
        update(MarketplaceJob)
        .where(
            MarketplaceJob.id == application.marketplace_job_id,
            MarketplaceJob.application_count > 0,
        )
        .values(application_count=MarketplaceJob.application_count - 1)
        .execution_options(synchronize_session=False)
    )

    emit_application_withdrawn(
        application_id=application.id,
        tradie_id=tradie_id,
        credits_refunded=refunded,
        reason=reason,
    )
    return application


def _resolve_actor(user: User, job: MarketplaceJob, application: JobApplication) -> ActorType:
    if user.role == UserRole.ADMIN:
        return ActorType.ADMIN
    if user.id == job.client_id:
        return ActorType.CLIENT
    if user.id == application.tradie_id:
        return ActorType.TRADIE
    raise UnauthorizedAccessError("You do not have access to this application.")


async def _assign_job(db: AsyncSession, job: MarketplaceJob, application: JobApplication) -> None:
    outcome = await db.execute(
        update(MarketplaceJob)
        .where(
            MarketplaceJob.id == job.id,
            MarketplaceJob.status.in_(
                [MarketplaceJobStatus.AVAILABLE, MarketplaceJobStatus.IN_REVIEW]
            ),
        )
        .values(
            status=MarketplaceJobStatus.ASSIGNED,
            assigned_tradie_id=application.tradie_id,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(job)
    if outcome.rowcount != 1:
        raise InvalidStateTransitionError(
            job.status.value,
            MarketplaceJobStatus.ASSIGNED.value,
            "The job has already been assigned.",
        )
    logger.info("Marketplace job %s assigned to tradie %s", job.id, application.tradie_id)

    others = (
        await db.execute(
            select(JobApplication).where(
                JobApplication.marketplace_job_id == job.id,
                JobApplication.id != application.id,
                JobApplication.status.in_(
                    [ApplicationStatus.SUBMITTED, ApplicationStatus.UNDER_REVIEW]
                ),
            )
        )
    ).scalars().all()
    for other in others:
        try:
            await transition_application(
                db,
                other,
                ApplicationStatus.REJECTED,
                ActorType.SYSTEM,
                reason=SELECTION_REJECTION_REASON,
            )
        except InvalidStateTransitionError:
            # Withdrawn concurrently; nothing left to reject
            logger.info("Application %s changed before it could be rejected", other.id)


async def update_application_status(
    db: AsyncSession,
    application_id: uuid.UUID,
    new_status: ApplicationStatus,
    actor: User,
    reason: Optional[str] = None,
) -> JobApplication:
    """Move an application through review.

    The job's client (or an admin) reviews; the applying tradie may only
    withdraw, which goes through the withdrawal rules.
    """
    application = await _get_application(db, application_id)
    job = await marketplaceService.get_marketplace_job(db, application.marketplace_job_id)
    actor_type = _resolve_actor(actor, job, application)

    if new_status == ApplicationStatus.WITHDRAWN and actor_type == ActorType.TRADIE:
        return await withdraw_application(db, application_id, actor.id, reason)

    await transition_application(
        db,
        application,
        new_status,
        actor_type,
        actor_id=actor.id,
        reason=reason,
    )
    if new_status == ApplicationStatus.SELECTED:
        await _assign_job(db, job, application)
    return application


async def bulk_update_status(
    db: AsyncSession,
    application_ids: Sequence[uuid.UUID],
    new_status: ApplicationStatus,
    actor: User,
    reason: Optional[str] = None,
) -> list[BulkItemResult]:
    """Apply the same status change to several applications.

    Each item runs in its own SAVEPOINT so one failure never undoes or
    blocks the others. Results come back in request order.
    """
    unique_ids = list(dict.fromkeys(application_ids))
    if not unique_ids:
        raise ValidationError.for_field("application_ids", "At least one application id is required.")
    if len(unique_ids) > settings.max_bulk_operations:
        raise ValidationError.for_field(
            "application_ids",
            f"At most {settings.max_bulk_operations} applications can be updated at once.",
        )

    results: list[BulkItemResult] = []
    for application_id in unique_ids:
        try:
            async with db.begin_nested():
                await update_application_status(db, application_id, new_status, actor, reason)
        except AppError as exc:
            results.append(BulkItemResult(
                application_id=application_id,
                success=False,
                error=exc.message,
                code=exc.code,
            ))
        else:
            results.append(BulkItemResult(application_id=application_id, success=True))

    succeeded = sum(1 for result in results if result.success)
    logger.info(
        "Bulk application update to %s: %d succeeded, %d failed",
        new_status.value,
        succeeded,
        len(results) - succeeded,
    )
    return results


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_application(db: AsyncSession, application_id: uuid.UUID, user: User) -> JobApplication:
    application = await _get_application(db, application_id)
    if user.role == UserRole.ADMIN or application.tradie_id == user.id:
        return application
    job = await marketplaceService.get_marketplace_job(db, application.marketplace_job_id)
    if job.client_id != user.id:
        raise UnauthorizedAccessError("You do not have access to this application.")
    return application


async def _paginate(
    db: AsyncSession,
    filters: list,
    page: int,
    page_size: int,
) -> PaginatedResult:
    total_items: int = (
        await db.execute(select(func.count(JobApplication.id)).where(*filters))
    ).scalar_one()
    items = (
        await db.execute(
            select(JobApplication)
            .where(*filters)
            .order_by(JobApplication.application_timestamp.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).scalars().all()
    return PaginatedResult(items=items, total_items=total_items, page=page, page_size=page_size)


async def list_applications_for_tradie(
    db: AsyncSession,
    tradie_id: uuid.UUID,
    *,
    status_filter: Optional[ApplicationStatus] = None,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResult:
    filters = [JobApplication.tradie_id == tradie_id]
    if status_filter is not None:
        filters.append(JobApplication.status == status_filter)
    return await _paginate(db, filters, page, page_size)


async def list_applications_for_job(
    db: AsyncSession,
    job_id: uuid.UUID,
    user: User,
    *,
    status_filter: Optional[ApplicationStatus] = None,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResult:
    """Applications for a job, visible to the posting client and admins."""
    job = await marketplaceService.get_marketplace_job(db, job_id)
    if user.role != UserRole.ADMIN and job.client_id != user.id:
        raise UnauthorizedAccessError("Only the client who posted this job can see its applications.")
    filters = [JobApplication.marketplace_job_id == job_id]
    if status_filter is not None:
        filters.append(JobApplication.status == status_filter)
    return await _paginate(db, filters, page, page_size)
