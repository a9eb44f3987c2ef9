"""
Quote Service
=============

Business logic for the quote lifecycle. All operations take an async
SQLAlchemy session first and enforce:

  - Pricing through ``pricingCalculator`` (totals are never set directly)
  - State machine rules through ``quoteStateManager``
  - Compare-and-swap status writes: ``UPDATE ... WHERE id = :id AND
    status = :expected``; a zero row count means another request won the
    race and the caller gets ``InvalidStateTransitionError``
  - Wall-clock expiry on every client decision

Key functions:
  - create_quote / update_quote / delete_quote -- tradie-side editing
  - update_quote_status -- generic tradie-driven transition (e.g. cancel)
  - send_quote         -- draft -> sent plus per-channel delivery
  - view_quote         -- public lookup, sent -> viewed on first view
  - accept_quote / reject_quote -- client decisions
  - check_expired_quotes / get_expiring_quotes -- expiry sweep and warnings
  - get_analytics      -- per-tradie reporting
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tradiehub.core.config import settings
from tradiehub.core.errors import (
    FieldError,
    InternalError,
    InvalidStateTransitionError,
    NotFoundError,
    QuoteExpiredError,
    UnauthorizedAccessError,
    ValidationError,
)
from tradiehub.events.quoteEvents import emit_quote_created, emit_quote_status_changed
from tradiehub.models.base import as_utc, utcnow
from tradiehub.models.quote import (
    Quote,
    QuoteItem,
    QuoteItemType,
    QuotePaymentStatus,
    QuoteStatus,
)
from tradiehub.models.quote_payment import QuotePayment
from tradiehub.models.user import User, UserRole
from tradiehub.services import userService
from tradiehub.services.deliveryService import (
    ChannelResult,
    DeliveryMethod,
    Notifier,
    build_quote_payload,
)
from tradiehub.services.pagination import PaginatedResult
from tradiehub.services.pricingCalculator import LineItem, calculate_quote
from tradiehub.services.quoteStateManager import (
    DECIDABLE_STATUSES,
    is_editable,
    validate_transition,
)
from tradiehub.services.stateMachine import ActorType

logger = logging.getLogger(__name__)

QUOTE_NUMBER_ATTEMPTS = 5

# Timestamp column stamped when a quote enters each status
_STATUS_TIMESTAMPS: dict[QuoteStatus, str] = {
    QuoteStatus.SENT: "sent_at",
    QuoteStatus.VIEWED: "viewed_at",
    QuoteStatus.ACCEPTED: "accepted_at",
    QuoteStatus.REJECTED: "rejected_at",
    QuoteStatus.CANCELLED: "cancelled_at",
}

_UPDATABLE_FIELDS = frozenset({
    "title",
    "description",
    "items",
    "gst_enabled",
    "valid_until",
    "terms_conditions",
    "notes",
})


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QuoteDeliveryResult:
    """Outcome of ``send_quote``: the sent quote plus per-channel results."""
    quote: Quote
    success: bool
    tracking_id: str
    channels: list[ChannelResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class StatusBreakdown:
    status: QuoteStatus
    count: int
    total_amount: Decimal


@dataclass(frozen=True)
class QuoteAnalytics:
    start_date: datetime
    end_date: datetime
    total_quotes: int
    total_value: Decimal
    average_quote_value: Decimal
    acceptance_rate: float
    conversion_rate: float
    average_response_hours: float
    by_status: list[StatusBreakdown]
    paid_quotes: int
    refunded_quotes: int
    total_revenue: Decimal


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def generate_quote_number() -> str:
    """Human-readable quote number: prefix, the last four digits of the
    millisecond clock, then three random digits (e.g. ``QT4821307``).

    Uniqueness is checked by the caller and enforced by a unique constraint.
    """
    millis = int(time.time() * 1000) % 10_000
    return f"{settings.quote_number_prefix}{millis:04d}{random.randint(0, 999):03d}"


async def _allocate_quote_number(db: AsyncSession) -> str:
    for _ in range(QUOTE_NUMBER_ATTEMPTS):
        candidate = generate_quote_number()
        result = await db.execute(select(Quote.id).where(Quote.quote_number == candidate))
        if result.scalar_one_or_none() is None:
            return candidate
        logger.debug("Quote number collision on %s; retrying", candidate)
    raise InternalError("Could not allocate a unique quote number.")


def is_expired(quote: Quote, now: Optional[datetime] = None) -> bool:
    return as_utc(quote.valid_until) <= (now or utcnow())


def _build_items(items: Sequence[LineItem], line_totals: Sequence[Decimal]) -> list[QuoteItem]:
    return [
        QuoteItem(
            item_type=QuoteItemType(item.item_type),
            description=item.description,
            quantity=Decimal(str(item.quantity)),
            unit=item.unit,
            unit_price=Decimal(str(item.unit_price)),
            line_total=line_total,
            sort_order=index,
        )
        for index, (item, line_total) in enumerate(zip(items, line_totals))
    ]


def _validate_valid_until(valid_until: datetime, now: datetime) -> datetime:
    valid_until = as_utc(valid_until)
    if valid_until <= now:
        raise ValidationError.for_field("valid_until", "Valid until date must be in the future.")
    return valid_until


def _ensure_quote_access(quote: Quote, user: User) -> None:
    if user.role == UserRole.ADMIN:
        return
    if quote.tradie_id != user.id and quote.client_id != user.id:
        raise UnauthorizedAccessError("You do not have access to this quote.")


async def get_quote_by_id(db: AsyncSession, quote_id: uuid.UUID) -> Quote:
    result = await db.execute(select(Quote).where(Quote.id == quote_id))
    quote = result.scalar_one_or_none()
    if quote is None:
        raise NotFoundError("Quote", quote_id)
    return quote


async def get_quote_by_number(db: AsyncSession, quote_number: str) -> Quote:
    result = await db.execute(select(Quote).where(Quote.quote_number == quote_number))
    quote = result.scalar_one_or_none()
    if quote is None:
        raise NotFoundError("Quote", quote_number)
    return quote


async def get_owned_quote(db: AsyncSession, quote_id: uuid.UUID, tradie_id: uuid.UUID) -> Quote:
    quote = await get_quote_by_id(db, quote_id)
    if quote.tradie_id != tradie_id:
        raise UnauthorizedAccessError("Only the quoting tradie can modify this quote.")
    return quote


async def _get_client_quote(db: AsyncSession, quote_number: str, client_id: uuid.UUID) -> Quote:
    quote = await get_quote_by_number(db, quote_number)
    if quote.client_id != client_id:
        raise UnauthorizedAccessError("This quote was not issued to you.")
    return quote


# ---------------------------------------------------------------------------
# Status transitions (compare-and-swap)
# ---------------------------------------------------------------------------

async def transition_quote(
    db: AsyncSession,
    quote: Quote,
    new_status: QuoteStatus,
    actor_type: ActorType,
    *,
    actor_id: Optional[uuid.UUID] = None,
    reason: Optional[str] = None,
    values: Optional[dict[str, Any]] = None,
) -> Quote:
    """Move ``quote`` to ``new_status`` if, and only if, its persisted
    status is still the one this request observed.

    Raises:
        InvalidStateTransitionError: If the transition is not in the table,
            the actor is not permitted, or a concurrent request changed the
            status first. The persisted status is left unchanged.
    """
    old_status = quote.status
    check = validate_transition(old_status, new_status, actor_type)
    if not check.allowed:
        raise InvalidStateTransitionError(old_status.value, new_status.value, check.reason)

    now = utcnow()
    row_values: dict[str, Any] = {"status": new_status, "updated_at": now}
    timestamp_column = _STATUS_TIMESTAMPS.get(new_status)
    if timestamp_column:
        row_values[timestamp_column] = now
    if values:
        row_values.update(values)

    stmt = (
        update(Quote)
        .where(Quote.id == quote.id, Quote.status == old_status)
        .values(**row_values)
        .execution_options(synchronize_session=False)
    )
    outcome = await db.execute(stmt)
    await db.refresh(quote)

    if outcome.rowcount != 1:
        logger.warning(
            "Quote %s lost status race: expected %s, now %s (requested %s)",
            quote.id,
            old_status.value,
            quote.status.value,
            new_status.value,
        )
        raise InvalidStateTransitionError(
            quote.status.value,
            new_status.value,
            f"Quote status changed from '{old_status.value}' to "
            f"'{quote.status.value}' before this request could apply '{new_status.value}'.",
        )

    emit_quote_status_changed(
        quote_id=quote.id,
        old_status=old_status.value,
        new_status=new_status.value,
        actor_id=actor_id,
        reason=reason,
    )
    logger.info(
        "Quote %s transitioned: %s -> %s (actor=%s, type=%s)",
        quote.quote_number,
        old_status.value,
        new_status.value,
        actor_id,
        actor_type.value,
    )
    return quote


async def expire_if_lapsed(db: AsyncSession, quote: Quote) -> bool:
    """Lazily expire a sent/viewed quote whose validity window has passed.

    Returns True when the quote is (now) expired. Losing the race to a
    concurrent transition is not an error here.
    """
    if quote.status == QuoteStatus.EXPIRED:
        return True
    if quote.status not in DECIDABLE_STATUSES or not is_expired(quote):
        return False
    try:
        await transition_quote(db, quote, QuoteStatus.EXPIRED, ActorType.SYSTEM)
    except InvalidStateTransitionError:
        return quote.status == QuoteStatus.EXPIRED
    return True


def ensure_decidable(quote: Quote, requested: QuoteStatus) -> None:
    """Common gate for client decisions: not past ``valid_until`` (checked
    against the clock, whatever the stored status) and in sent/viewed.

    Raises:
        QuoteExpiredError: If the validity window has passed.
        InvalidStateTransitionError: If the quote is not awaiting a decision.
    """
    if is_expired(quote):
        raise QuoteExpiredError(
            f"Quote {quote.quote_number} expired on {as_utc(quote.valid_until):%Y-%m-%d %H:%M} UTC."
        )
    if quote.status not in DECIDABLE_STATUSES:
        raise InvalidStateTransitionError(
            quote.status.value,
            requested.value,
            f"Quote {quote.quote_number} is '{quote.status.value}' and can no longer be "
            f"{requested.value}.",
        )


# ---------------------------------------------------------------------------
# Tradie-side operations
# ---------------------------------------------------------------------------

async def create_quote(
    db: AsyncSession,
    tradie_id: uuid.UUID,
    *,
    client_id: uuid.UUID,
    title: str,
    items: Sequence[LineItem],
    gst_enabled: bool = True,
    job_id: Optional[uuid.UUID] = None,
    description: Optional[str] = None,
    valid_until: Optional[datetime] = None,
    terms_conditions: Optional[str] = None,
    notes: Optional[str] = None,
) -> Quote:
    """Create a draft quote priced from its items.

    Raises:
        ValidationError: On bad items, a past ``valid_until``, or a client /
            job that does not fit the quote.
        NotFoundError: If the client or job does not exist.
        UnauthorizedAccessError: If the job is assigned to another tradie.
    """
    now = utcnow()
    calculation = calculate_quote(items, gst_enabled)

    await userService.require_user(db, tradie_id, UserRole.TRADIE, field="tradie_id")
    await userService.require_user(db, client_id, UserRole.CLIENT, field="client_id")

    if job_id is not None:
        job = await userService.require_job(db, job_id)
        if job.client_id != client_id:
            raise ValidationError.for_field("job_id", "The job does not belong to this client.")
        if job.tradie_id is not None and job.tradie_id != tradie_id:
            raise UnauthorizedAccessError("The job is assigned to another tradie.")

    if valid_until is None:
        valid_until = now + timedelta(days=settings.quote_default_valid_days)
    valid_until = _validate_valid_until(valid_until, now)

    quote = Quote(
        quote_number=await _allocate_quote_number(db),
        tradie_id=tradie_id,
        client_id=client_id,
        job_id=job_id,
        title=title.strip(),
        description=description,
        terms_conditions=terms_conditions,
        notes=notes,
        gst_enabled=gst_enabled,
        subtotal=calculation.subtotal,
        gst_amount=calculation.gst_amount,
        total_amount=calculation.total_amount,
        currency=settings.currency,
        status=QuoteStatus.DRAFT,
        valid_until=valid_until,
        items=_build_items(items, calculation.line_totals),
    )
    db.add(quote)
    await db.flush()

    emit_quote_created(
        quote_id=quote.id,
        quote_number=quote.quote_number,
        tradie_id=tradie_id,
        client_id=client_id,
        total_amount=quote.total_amount,
    )
    logger.info(
        "Quote %s created by tradie %s for client %s (total=%s %s)",
        quote.quote_number,
        tradie_id,
        client_id,
        quote.total_amount,
        quote.currency,
    )
    return quote


async def update_quote(
    db: AsyncSession,
    quote_id: uuid.UUID,
    tradie_id: uuid.UUID,
    changes: dict[str, Any],
) -> Quote:
    """Apply a partial update to an editable (draft/sent/viewed) quote.

    ``changes`` holds only the fields the caller sent. Totals are recomputed
    whenever ``items`` or ``gst_enabled`` change. The write is conditional on
    the status observed at read time.

    Raises:
        InvalidStateTransitionError: If the quote is no longer editable.
        QuoteExpiredError: If the quote has lapsed and no new
            ``valid_until`` is supplied.
    """
    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            "Unknown fields in update.",
            errors=[FieldError(name, "Field cannot be updated.") for name in sorted(unknown)],
        )

    quote = await get_owned_quote(db, quote_id, tradie_id)
    observed_status = quote.status
    now = utcnow()

    if not is_editable(observed_status):
        raise InvalidStateTransitionError(
            observed_status.value,
            observed_status.value,
            f"Quote cannot be edited in '{observed_status.value}' status.",
        )
    if changes.get("valid_until") is None and is_expired(quote, now):
        raise QuoteExpiredError("Cannot update an expired quote without extending it.")

    values: dict[str, Any] = {}
    for name in ("title", "description", "terms_conditions", "notes"):
        if name in changes:
            values[name] = changes[name]
    if changes.get("valid_until") is not None:
        values["valid_until"] = _validate_valid_until(changes["valid_until"], now)

    new_items: Optional[list[QuoteItem]] = None
    gst_enabled = changes.get("gst_enabled")
    if gst_enabled is None:
        gst_enabled = quote.gst_enabled
    if changes.get("items") is not None or "gst_enabled" in changes:
        priced_items = changes.get("items") or quote.items
        calculation = calculate_quote(priced_items, gst_enabled)
        values.update(
            gst_enabled=gst_enabled,
            subtotal=calculation.subtotal,
            gst_amount=calculation.gst_amount,
            total_amount=calculation.total_amount,
        )
        if changes.get("items") is not None:
            new_items = _build_items(changes["items"], calculation.line_totals)

    values["updated_at"] = now
    outcome = await db.execute(
        update(Quote)
        .where(Quote.id == quote.id, Quote.status == observed_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount != 1:
        await db.refresh(quote)
        raise InvalidStateTransitionError(
            quote.status.value,
            observed_status.value,
            "Quote status changed while it was being edited.",
        )

    if new_items is not None:
        await db.execute(
            delete(QuoteItem)
            .where(QuoteItem.quote_id == quote.id)
            .execution_options(synchronize_session=False)
        )
        for item in new_items:
            item.quote_id = quote.id
        db.add_all(new_items)
        await db.flush()

    await db.refresh(quote)
    logger.info(
        "Quote %s updated by tradie %s (fields=%s)",
        quote.quote_number,
        tradie_id,
        sorted(changes),
    )
    return quote


async def update_quote_status(
    db: AsyncSession,
    quote_id: uuid.UUID,
    tradie_id: uuid.UUID,
    new_status: QuoteStatus,
    reason: Optional[str] = None,
) -> Quote:
    """Tradie-driven transition through the state table (typically cancel)."""
    quote = await get_owned_quote(db, quote_id, tradie_id)
    values: dict[str, Any] = {}
    if new_status == QuoteStatus.CANCELLED:
        values["cancellation_reason"] = reason
    return await transition_quote(
        db,
        quote,
        new_status,
        ActorType.TRADIE,
        actor_id=tradie_id,
        reason=reason,
        values=values,
    )


async def delete_quote(db: AsyncSession, quote_id: uuid.UUID, tradie_id: uuid.UUID) -> None:
    """Hard-delete a quote that is still editable and has no payment history."""
    quote = await get_owned_quote(db, quote_id, tradie_id)
    if not is_editable(quote.status):
        raise InvalidStateTransitionError(
            quote.status.value,
            "deleted",
            f"Quotes in '{quote.status.value}' status cannot be deleted.",
        )

    payments = await db.execute(
        select(func.count(QuotePayment.id)).where(QuotePayment.quote_id == quote.id)
    )
    if payments.scalar_one() > 0:
        raise InvalidStateTransitionError(
            quote.status.value,
            "deleted",
            "Quotes with payment records cannot be deleted; cancel the quote instead.",
        )

    await db.delete(quote)
    await db.flush()
    logger.info("Quote %s deleted by tradie %s", quote.quote_number, tradie_id)


async def send_quote(
    db: AsyncSession,
    quote_id: uuid.UUID,
    tradie_id: uuid.UUID,
    notifier: Notifier,
    *,
    methods: Sequence[DeliveryMethod],
    recipient_email: Optional[str] = None,
    recipient_phone: Optional[str] = None,
    message: Optional[str] = None,
) -> QuoteDeliveryResult:
    """Send a draft quote to its client.

    Recipients default to the client's email and phone on file and are
    validated per method before anything is dispatched. The draft -> sent
    transition is kept even when some channels fail; failures are reported
    per channel.
    """
    quote = await get_owned_quote(db, quote_id, tradie_id)

    if quote.status != QuoteStatus.DRAFT:
        raise InvalidStateTransitionError(
            quote.status.value,
            QuoteStatus.SENT.value,
            f"Only draft quotes can be sent (quote is '{quote.status.value}').",
        )
    if is_expired(quote):
        raise QuoteExpiredError("Cannot send an expired quote; extend its validity first.")

    unique_methods = list(dict.fromkeys(DeliveryMethod(m) for m in methods))
    if not unique_methods:
        raise ValidationError.for_field("delivery_methods", "At least one delivery method is required.")

    client = await userService.get_user(db, quote.client_id)
    email = recipient_email or (client.email if client else None)
    phone = recipient_phone or (client.phone if client else None)

    errors: list[FieldError] = []
    if DeliveryMethod.EMAIL in unique_methods and not email:
        errors.append(FieldError("recipient_email", "Email delivery requires a recipient email."))
    if DeliveryMethod.SMS in unique_methods and not phone:
        errors.append(FieldError("recipient_phone", "SMS delivery requires a recipient phone number."))
    if errors:
        raise ValidationError("Missing delivery recipients.", errors=errors)

    await transition_quote(db, quote, QuoteStatus.SENT, ActorType.TRADIE, actor_id=tradie_id)

    recipients = {
        DeliveryMethod.EMAIL: email,
        DeliveryMethod.SMS: phone,
    }
    payload = build_quote_payload(quote, message)
    channels = await notifier.send_many(
        [(method, recipients.get(method)) for method in unique_methods],
        payload,
    )

    tracking_id = f"QD-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"
    channel_errors = [
        f"{result.method.value} delivery failed: {result.error}"
        for result in channels
        if not result.success
    ]
    if channel_errors:
        logger.warning("Quote %s sent with delivery failures: %s", quote.quote_number, channel_errors)

    return QuoteDeliveryResult(
        quote=quote,
        success=any(result.success for result in channels),
        tracking_id=tracking_id,
        channels=channels,
        errors=channel_errors,
    )


# ---------------------------------------------------------------------------
# Client-side operations
# ---------------------------------------------------------------------------

async def get_quote(db: AsyncSession, quote_id: uuid.UUID, user: User) -> Quote:
    """Fetch a quote for its tradie, its client or an admin, expiring it
    lazily if its validity window has passed."""
    quote = await get_quote_by_id(db, quote_id)
    _ensure_quote_access(quote, user)
    await expire_if_lapsed(db, quote)
    return quote


async def view_quote(db: AsyncSession, quote_number: str) -> Quote:
    """Public, client-facing lookup by quote number.

    The first view of a sent quote moves it to viewed; later views (and
    views of quotes in any other status) leave the status alone.
    """
    quote = await get_quote_by_number(db, quote_number)
    if quote.status == QuoteStatus.DRAFT:
        raise NotFoundError("Quote", quote_number)

    if await expire_if_lapsed(db, quote):
        return quote

    if quote.status == QuoteStatus.SENT:
        try:
            await transition_quote(db, quote, QuoteStatus.VIEWED, ActorType.SYSTEM)
        except InvalidStateTransitionError:
            # A concurrent view (or decision) got there first
            logger.debug("Quote %s already moved on from sent", quote.quote_number)
    return quote


async def accept_quote(db: AsyncSession, quote_number: str, client_id: uuid.UUID) -> Quote:
    """Client accepts a sent/viewed quote. A linked job becomes active.

    Raises:
        UnauthorizedAccessError: If the caller is not the quote's client.
        QuoteExpiredError: If ``valid_until`` has passed.
        InvalidStateTransitionError: If the quote is not awaiting a decision
            or a concurrent request decided it first.
    """
    quote = await _get_client_quote(db, quote_number, client_id)
    ensure_decidable(quote, QuoteStatus.ACCEPTED)
    await transition_quote(db, quote, QuoteStatus.ACCEPTED, ActorType.CLIENT, actor_id=client_id)

    if quote.job_id is not None:
        await userService.activate_job(db, quote.job_id, quote.tradie_id)
    return quote


async def reject_quote(
    db: AsyncSession,
    quote_number: str,
    client_id: uuid.UUID,
    reason: Optional[str] = None,
) -> Quote:
    quote = await _get_client_quote(db, quote_number, client_id)
    ensure_decidable(quote, QuoteStatus.REJECTED)
    return await transition_quote(
        db,
        quote,
        QuoteStatus.REJECTED,
        ActorType.CLIENT,
        actor_id=client_id,
        reason=reason,
        values={"rejection_reason": reason},
    )


async def list_quotes(
    db: AsyncSession,
    user: User,
    *,
    status_filter: Optional[QuoteStatus] = None,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResult:
    """Paginated list of the caller's quotes (sent or received), newest first."""
    filters = []
    if user.role == UserRole.TRADIE:
        filters.append(Quote.tradie_id == user.id)
    elif user.role == UserRole.CLIENT:
        filters.append(Quote.client_id == user.id)
        filters.append(Quote.status != QuoteStatus.DRAFT)
    if status_filter is not None:
        filters.append(Quote.status == status_filter)

    total_items: int = (
        await db.execute(select(func.count(Quote.id)).where(*filters))
    ).scalar_one()
    quotes = (
        await db.execute(
            select(Quote)
            .where(*filters)
            .order_by(Quote.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).scalars().all()

    return PaginatedResult(items=quotes, total_items=total_items, page=page, page_size=page_size)


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------

async def check_expired_quotes(db: AsyncSession) -> int:
    """Expire every sent/viewed quote whose validity window has passed.

    Returns the number of quotes expired.
    """
    now = utcnow()
    outcome = await db.execute(
        update(Quote)
        .where(
            Quote.status.in_(DECIDABLE_STATUSES),
            Quote.valid_until <= now,
        )
        .values(status=QuoteStatus.EXPIRED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    count = outcome.rowcount or 0
    if count:
        logger.info("Expired %d lapsed quotes", count)
    return count


async def get_expiring_quotes(db: AsyncSession, tradie_id: uuid.UUID) -> list[Quote]:
    """Sent/viewed quotes that expire within the warning window."""
    now = utcnow()
    horizon = now + timedelta(days=settings.quote_expiry_warning_days)
    result = await db.execute(
        select(Quote)
        .where(
            Quote.tradie_id == tradie_id,
            Quote.status.in_(DECIDABLE_STATUSES),
            Quote.valid_until > now,
            Quote.valid_until <= horizon,
        )
        .order_by(Quote.valid_until.asc())
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

async def get_analytics(
    db: AsyncSession,
    tradie_id: uuid.UUID,
    start_date: datetime,
    end_date: datetime,
) -> QuoteAnalytics:
    """Quote counts and amounts by status for quotes created in the window.

    Raises:
        ValidationError: If ``end_date`` is before ``start_date``.
    """
    start_date = as_utc(start_date)
    end_date = as_utc(end_date)
    if end_date < start_date:
        raise ValidationError.for_field("end_date", "End date must be on or after start date.")

    window = (
        Quote.tradie_id == tradie_id,
        Quote.created_at >= start_date,
        Quote.created_at <= end_date,
    )

    rows = (
        await db.execute(
            select(
                Quote.status,
                func.count(Quote.id),
                func.coalesce(func.sum(Quote.total_amount), 0),
            )
            .where(*window)
            .group_by(Quote.status)
        )
    ).all()
    by_status = [
        StatusBreakdown(status=row[0], count=int(row[1]), total_amount=Decimal(str(row[2])))
        for row in rows
    ]
    counts = {entry.status: entry.count for entry in by_status}
    total_quotes = sum(counts.values())
    total_value = sum((entry.total_amount for entry in by_status), Decimal("0"))

    accepted = counts.get(QuoteStatus.ACCEPTED, 0)
    decided = accepted + counts.get(QuoteStatus.REJECTED, 0)

    decisions = (
        await db.execute(
            select(Quote.sent_at, Quote.accepted_at).where(
                *window,
                Quote.status == QuoteStatus.ACCEPTED,
                Quote.sent_at.is_not(None),
                Quote.accepted_at.is_not(None),
            )
        )
    ).all()
    response_hours = [
        (as_utc(accepted_at) - as_utc(sent_at)).total_seconds() / 3600
        for sent_at, accepted_at in decisions
    ]

    payment_rows = (
        await db.execute(
            select(
                Quote.payment_status,
                func.count(Quote.id),
                func.coalesce(func.sum(Quote.total_amount), 0),
            )
            .where(*window, Quote.payment_status.is_not(None))
            .group_by(Quote.payment_status)
        )
    ).all()
    payments = {row[0]: (int(row[1]), Decimal(str(row[2]))) for row in payment_rows}
    paid_statuses = (QuotePaymentStatus.SUCCEEDED, QuotePaymentStatus.INVOICED)
    refunded_statuses = (QuotePaymentStatus.REFUNDED, QuotePaymentStatus.PARTIALLY_REFUNDED)

    return QuoteAnalytics(
        start_date=start_date,
        end_date=end_date,
        total_quotes=total_quotes,
        total_value=total_value.quantize(Decimal("0.01")),
        average_quote_value=(
            (total_value / total_quotes).quantize(Decimal("0.01"))
            if total_quotes
            else Decimal("0.00")
        ),
        acceptance_rate=round(accepted / total_quotes * 100, 2) if total_quotes else 0.0,
        conversion_rate=round(accepted / decided * 100, 2) if decided else 0.0,
        average_response_hours=(
            round(sum(response_hours) / len(response_hours), 2) if response_hours else 0.0
        ),
        by_status=sorted(by_status, key=lambda entry: entry.status.value),
        paid_quotes=sum(payments.get(s, (0, Decimal("0")))[0] for s in paid_statuses),
        refunded_quotes=sum(payments.get(s, (0, Decimal("0")))[0] for s in refunded_statuses),
        total_revenue=sum(
            (payments.get(s, (0, Decimal("0")))[1] for s in paid_statuses),
            Decimal("0"),
        ).quantize(Decimal("0.01")),
    )
