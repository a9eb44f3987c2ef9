"""
Quote Payment Service
=====================

Money movement around an accepted quote:

  - accept_quote_with_payment -- charge the client's saved payment method
    and accept the quote in one request
  - create_payment_intent     -- client-side confirmation flow
  - generate_quote_invoice    -- one invoice per accepted quote
  - refund_quote_payment      -- full or partial refunds

Gateway calls are bounded by ``settings.payment_timeout_seconds``. A charge
that succeeds at the gateway but cannot be recorded (for example because a
concurrent request already decided the quote) is refunded before the error
propagates, so no client is ever charged for a quote they did not accept.
A charge still running when its request times out is watched in the
background and refunded if it completes.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradiehub.core.config import settings
from tradiehub.core.errors import (
    InvalidStateTransitionError,
    PaymentFailedError,
    PaymentTimeoutError,
    ValidationError,
)
from tradiehub.events.quoteEvents import (
    emit_invoice_generated,
    emit_payment_failed,
    emit_payment_succeeded,
    emit_refund_processed,
)
from tradiehub.integrations.stripe.gateway import PaymentGateway
from tradiehub.integrations.stripe.paymentService import ChargeResult, PaymentError
from tradiehub.models.base import utcnow
from tradiehub.models.quote import Quote, QuotePaymentStatus, QuoteStatus
from tradiehub.models.quote_payment import QuoteInvoice, QuotePayment, QuoteRefund
from tradiehub.services import quoteService, userService
from tradiehub.services.pricingCalculator import round_money
from tradiehub.services.stateMachine import ActorType

logger = logging.getLogger(__name__)

INVOICE_DUE_DAYS = 14

_PAID_STATUSES = (
    QuotePaymentStatus.SUCCEEDED,
    QuotePaymentStatus.INVOICED,
    QuotePaymentStatus.PARTIALLY_REFUNDED,
)


@dataclass(frozen=True)
class PaymentAcceptance:
    quote: Quote
    payment: QuotePayment


@dataclass(frozen=True)
class PaymentIntentInfo:
    quote: Quote
    payment_intent_id: str
    client_secret: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class RefundOutcome:
    quote: Quote
    refund: QuoteRefund
    total_refunded: Decimal


def _metadata(
    quote: Quote,
    request_id: Optional[str],
    attempt_id: Optional[uuid.UUID] = None,
) -> dict[str, str]:
    metadata = {
        "quote_id": str(quote.id),
        "quote_number": quote.quote_number,
        "tradie_id": str(quote.tradie_id),
        "client_id": str(quote.client_id),
    }
    if attempt_id is not None:
        metadata["attempt_id"] = str(attempt_id)
    if request_id:
        metadata["request_id"] = request_id
    return metadata


async def _with_timeout(awaitable, operation: str):
    try:
        return await asyncio.wait_for(awaitable, timeout=settings.payment_timeout_seconds)
    except asyncio.TimeoutError as exc:
        logger.error(
            "Payment gateway timed out after %ss during %s",
            settings.payment_timeout_seconds,
            operation,
        )
        raise PaymentTimeoutError() from exc


# ---------------------------------------------------------------------------
# Late charge settlement
# ---------------------------------------------------------------------------

# Gateway calls run on worker threads, so a timed-out charge keeps going
# after the request gives up. Each one is watched here until it finishes.
_pending_settlements: set[asyncio.Task] = set()


async def _charge_with_timeout(
    gateway: PaymentGateway,
    charge_call,
    quote_number: str,
) -> ChargeResult:
    charge_task = asyncio.ensure_future(charge_call)
    try:
        return await asyncio.wait_for(
            asyncio.shield(charge_task), timeout=settings.payment_timeout_seconds
        )
    except asyncio.TimeoutError as exc:
        logger.error(
            "Payment gateway timed out after %ss charging quote %s",
            settings.payment_timeout_seconds,
            quote_number,
        )
        _watch_late_charge(gateway, charge_task, quote_number)
        raise PaymentTimeoutError() from exc
    except asyncio.CancelledError:
        # The request went away; the charge itself may still land
        _watch_late_charge(gateway, charge_task, quote_number)
        raise


def _watch_late_charge(
    gateway: PaymentGateway,
    charge_task: asyncio.Future,
    quote_number: str,
) -> None:
    settlement = asyncio.create_task(_settle_late_charge(gateway, charge_task, quote_number))
    _pending_settlements.add(settlement)
    settlement.add_done_callback(_pending_settlements.discard)


async def _settle_late_charge(
    gateway: PaymentGateway,
    charge_task: asyncio.Future,
    quote_number: str,
) -> None:
    """Refund a charge that completed after its request timed out."""
    try:
        charge = await charge_task
    except PaymentError as exc:
        logger.info("Timed-out charge for quote %s did not complete: %s", quote_number, exc.message)
        return
    except Exception:
        logger.exception("Timed-out charge for quote %s ended with an error", quote_number)
        return

    logger.warning(
        "Charge %s for quote %s completed after the request timed out; refunding",
        charge.payment_intent_id,
        quote_number,
    )
    await _compensate(gateway, charge.payment_intent_id, quote_number)


async def drain_pending_settlements() -> None:
    """Wait for every outstanding late-charge settlement. Called on shutdown."""
    if _pending_settlements:
        await asyncio.gather(*list(_pending_settlements), return_exceptions=True)


async def _record_failed_payment(
    db: AsyncSession,
    quote: Quote,
    client_id: uuid.UUID,
    attempt_id: uuid.UUID,
    payment_method_id: Optional[str],
    reason: str,
    request_id: Optional[str],
) -> None:
    """Persist a failed attempt. Committed immediately because the request
    transaction is rolled back when the error propagates."""
    db.add(
        QuotePayment(
            id=attempt_id,
            quote_id=quote.id,
            payment_method_id=payment_method_id,
            amount=quote.total_amount,
            currency=quote.currency,
            status=QuotePaymentStatus.FAILED.value,
            failure_reason=reason,
            request_id=request_id,
        )
    )
    quote.payment_status = QuotePaymentStatus.FAILED
    await db.commit()
    emit_payment_failed(quote_id=quote.id, reason=reason, actor_id=client_id)


async def accept_quote_with_payment(
    db: AsyncSession,
    gateway: PaymentGateway,
    quote_number: str,
    client_id: uuid.UUID,
    payment_method_id: str,
    request_id: Optional[str] = None,
) -> PaymentAcceptance:
    """Charge the quote total and accept the quote.

    Every attempt gets its own id, which becomes the ``QuotePayment`` row id
    and seeds the gateway idempotency key. The acceptance is committed here
    rather than by the request, so a failed commit still refunds the charge.

    Raises:
        QuoteExpiredError / InvalidStateTransitionError: If the quote cannot
            be accepted. Nothing is charged.
        PaymentFailedError: If the gateway declines. A failed payment record
            is kept and the quote status is unchanged.
        PaymentTimeoutError: If the gateway does not answer in time. A
            charge that lands afterwards is refunded in the background.
    """
    if not payment_method_id:
        raise ValidationError.for_field("payment_method_id", "Payment method is required.")

    quote = await quoteService._get_client_quote(db, quote_number, client_id)
    quoteService.ensure_decidable(quote, QuoteStatus.ACCEPTED)

    attempt_id = uuid.uuid4()
    try:
        charge = await _charge_with_timeout(
            gateway,
            gateway.charge(
                quote.total_amount,
                quote.currency,
                payment_method_id,
                metadata=_metadata(quote, request_id, attempt_id),
                idempotency_key=f"quote-accept-{quote.id}-{attempt_id}",
            ),
            quote.quote_number,
        )
    except PaymentTimeoutError:
        await _record_failed_payment(
            db, quote, client_id, attempt_id, payment_method_id,
            "Payment gateway timeout", request_id,
        )
        raise
    except PaymentError as exc:
        await _record_failed_payment(
            db, quote, client_id, attempt_id, payment_method_id, exc.message, request_id
        )
        raise PaymentFailedError(
            exc.message,
            gateway_code=exc.stripe_error_code,
            decline_code=exc.decline_code,
        ) from exc

    try:
        await quoteService.transition_quote(
            db,
            quote,
            QuoteStatus.ACCEPTED,
            ActorType.CLIENT,
            actor_id=client_id,
            values={
                "payment_status": QuotePaymentStatus.SUCCEEDED,
                "payment_id": charge.payment_intent_id,
            },
        )
        payment = QuotePayment(
            id=attempt_id,
            quote_id=quote.id,
            payment_intent_id=charge.payment_intent_id,
            payment_method_id=charge.payment_method_id or payment_method_id,
            amount=quote.total_amount,
            currency=quote.currency,
            status=QuotePaymentStatus.SUCCEEDED.value,
            request_id=request_id,
        )
        db.add(payment)
        await db.flush()
        if quote.job_id is not None:
            await userService.activate_job(db, quote.job_id, quote.tradie_id)
        await db.commit()
    except Exception:
        logger.warning(
            "Refunding charge %s for quote %s after acceptance failed",
            charge.payment_intent_id,
            quote.quote_number,
        )
        await _compensate(gateway, charge.payment_intent_id, quote.quote_number)
        raise

    emit_payment_succeeded(
        quote_id=quote.id,
        payment_intent_id=charge.payment_intent_id,
        amount=quote.total_amount,
        actor_id=client_id,
    )
    logger.info(
        "Quote %s accepted with payment %s (%s %s)",
        quote.quote_number,
        charge.payment_intent_id,
        quote.total_amount,
        quote.currency,
    )
    return PaymentAcceptance(quote=quote, payment=payment)


async def _compensate(gateway: PaymentGateway, payment_intent_id: str, quote_number: str) -> None:
    try:
        await _with_timeout(
            gateway.refund(
                payment_intent_id,
                None,
                "requested_by_customer",
                idempotency_key=f"quote-compensate-{payment_intent_id}",
            ),
            "compensating refund",
        )
    except (PaymentError, PaymentTimeoutError):
        # Surfaced for manual reconciliation; the original error still propagates
        logger.exception(
            "Compensating refund failed for charge %s on quote %s",
            payment_intent_id,
            quote_number,
        )


async def create_payment_intent(
    db: AsyncSession,
    gateway: PaymentGateway,
    quote_number: str,
    client_id: uuid.UUID,
    request_id: Optional[str] = None,
) -> PaymentIntentInfo:
    """Create a gateway payment intent for client-side confirmation. The
    quote status is not changed."""
    quote = await quoteService._get_client_quote(db, quote_number, client_id)
    quoteService.ensure_decidable(quote, QuoteStatus.ACCEPTED)

    try:
        intent = await _with_timeout(
            gateway.create_intent(
                quote.total_amount,
                quote.currency,
                metadata=_metadata(quote, request_id),
                idempotency_key=f"quote-intent-{quote.id}-{request_id or uuid.uuid4()}",
            ),
            "create intent",
        )
    except PaymentError as exc:
        raise PaymentFailedError(
            exc.message,
            gateway_code=exc.stripe_error_code,
            decline_code=exc.decline_code,
        ) from exc

    quote.payment_status = QuotePaymentStatus.PROCESSING
    quote.payment_id = intent.id
    await db.flush()

    logger.info("Payment intent %s created for quote %s", intent.id, quote.quote_number)
    return PaymentIntentInfo(
        quote=quote,
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        amount=quote.total_amount,
        currency=quote.currency,
    )


async def generate_quote_invoice(
    db: AsyncSession,
    quote_id: uuid.UUID,
    tradie_id: uuid.UUID,
    request_id: Optional[str] = None,
) -> QuoteInvoice:
    """Issue the invoice for an accepted quote. Each quote gets at most one.

    Raises:
        InvalidStateTransitionError: If the quote is not accepted.
        ValidationError: If an invoice already exists.
    """
    quote = await quoteService.get_owned_quote(db, quote_id, tradie_id)
    if quote.status != QuoteStatus.ACCEPTED:
        raise InvalidStateTransitionError(
            quote.status.value,
            "invoiced",
            "Invoices can only be generated for accepted quotes.",
        )

    existing = await db.execute(select(QuoteInvoice.id).where(QuoteInvoice.quote_id == quote.id))
    if existing.scalar_one_or_none() is not None:
        raise ValidationError.for_field("quote_id", "An invoice already exists for this quote.")

    now = utcnow()
    invoice = QuoteInvoice(
        quote_id=quote.id,
        invoice_number=f"INV-{quote.quote_number}",
        subtotal=quote.subtotal,
        gst_amount=quote.gst_amount,
        total_amount=quote.total_amount,
        currency=quote.currency,
        line_items=[
            {
                "description": item.description,
                "item_type": item.item_type.value,
                "quantity": str(item.quantity),
                "unit": item.unit,
                "unit_price": str(item.unit_price),
                "line_total": str(item.line_total),
            }
            for item in quote.items
        ],
        issued_at=now,
        due_date=now + timedelta(days=INVOICE_DUE_DAYS),
        request_id=request_id,
    )
    db.add(invoice)
    if quote.payment_status not in _PAID_STATUSES:
        quote.payment_status = QuotePaymentStatus.INVOICED
    await db.flush()

    emit_invoice_generated(
        quote_id=quote.id,
        invoice_number=invoice.invoice_number,
        total_amount=invoice.total_amount,
    )
    logger.info("Invoice %s generated for quote %s", invoice.invoice_number, quote.quote_number)
    return invoice


async def refund_quote_payment(
    db: AsyncSession,
    gateway: PaymentGateway,
    quote_id: uuid.UUID,
    tradie_id: uuid.UUID,
    amount: Optional[Decimal] = None,
    reason: Optional[str] = None,
    request_id: Optional[str] = None,
) -> RefundOutcome:
    """Refund all or part of a quote's successful payment.

    ``amount`` defaults to the remaining refundable balance.

    Raises:
        ValidationError: If there is no successful payment or the amount is
            not positive or exceeds what is left to refund.
        PaymentFailedError / PaymentTimeoutError: On gateway failure.
    """
    quote = await quoteService.get_owned_quote(db, quote_id, tradie_id)

    result = await db.execute(
        select(QuotePayment)
        .where(
            QuotePayment.quote_id == quote.id,
            QuotePayment.status.in_(
                [QuotePaymentStatus.SUCCEEDED.value, QuotePaymentStatus.PARTIALLY_REFUNDED.value]
            ),
        )
        .order_by(QuotePayment.created_at.desc())
        .limit(1)
    )
    payment = result.scalar_one_or_none()
    if payment is None or payment.payment_intent_id is None:
        raise ValidationError.for_field("quote_id", "This quote has no refundable payment.")

    refunded_so_far = (
        await db.execute(
            select(func.coalesce(func.sum(QuoteRefund.amount), 0)).where(
                QuoteRefund.quote_payment_id == payment.id
            )
        )
    ).scalar_one()
    refunded_so_far = round_money(Decimal(str(refunded_so_far)))
    remaining = round_money(payment.amount - refunded_so_far)

    refund_amount = round_money(Decimal(str(amount))) if amount is not None else remaining
    if refund_amount <= 0:
        raise ValidationError.for_field("amount", "Refund amount must be greater than zero.")
    if refund_amount > remaining:
        raise ValidationError.for_field(
            "amount", f"Refund amount exceeds the refundable balance of {remaining}."
        )

    try:
        gateway_refund = await _with_timeout(
            gateway.refund(
                payment.payment_intent_id,
                refund_amount,
                "requested_by_customer",
                idempotency_key=f"quote-refund-{payment.id}-{request_id}" if request_id else None,
            ),
            "refund",
        )
    except PaymentError as exc:
        raise PaymentFailedError(
            exc.message,
            gateway_code=exc.stripe_error_code,
            decline_code=exc.decline_code,
        ) from exc

    refund = QuoteRefund(
        quote_payment_id=payment.id,
        refund_id=gateway_refund.id,
        amount=refund_amount,
        reason=reason,
        status=gateway_refund.status,
        request_id=request_id,
    )
    db.add(refund)

    total_refunded = refunded_so_far + refund_amount
    fully_refunded = total_refunded >= payment.amount
    new_status = (
        QuotePaymentStatus.REFUNDED if fully_refunded else QuotePaymentStatus.PARTIALLY_REFUNDED
    )
    payment.status = new_status.value
    quote.payment_status = new_status
    await db.flush()

    emit_refund_processed(
        quote_id=quote.id,
        refund_id=gateway_refund.id,
        amount=refund_amount,
        reason=reason,
    )
    logger.info(
        "Refund %s of %s processed for quote %s (total refunded %s)",
        gateway_refund.id,
        refund_amount,
        quote.quote_number,
        total_refunded,
    )
    return RefundOutcome(quote=quote, refund=refund, total_refunded=total_refunded)
