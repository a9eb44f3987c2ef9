"""
Stripe Payment Service
======================

Customer-facing payment operations for quotes, through Stripe:
- Payment intent creation (client-side confirmation flow)
- Server-side charges with a saved payment method
- Refund processing

All monetary amounts are in cents (integers) to avoid floating-point issues.
The Stripe SDK is synchronous, so every API call is pushed onto a worker
thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

import stripe

from tradiehub.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Stripe SDK configuration
# ---------------------------------------------------------------------------

stripe.api_key = settings.stripe_secret_key
stripe.api_version = "2024-06-20"

PLATFORM_TAG = "tradiehub"


# ---------------------------------------------------------------------------
# Custom exception
# ---------------------------------------------------------------------------

class PaymentError(Exception):
    """Raised when a Stripe payment operation fails.

    Attributes:
        message: Human-readable error description.
        stripe_error_code: The Stripe error code, if available.
        stripe_error_type: The Stripe error type, if available.
        decline_code: The decline code from the card issuer, if available.
    """

    def __init__(
        self,
        message: str,
        stripe_error_code: str | None = None,
        stripe_error_type: str | None = None,
        decline_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stripe_error_code = stripe_error_code
        self.stripe_error_type = stripe_error_type
        self.decline_code = decline_code

    def __repr__(self) -> str:
        return (
            f"PaymentError(message={self.message!r}, "
            f"code={self.stripe_error_code!r}, "
            f"type={self.stripe_error_type!r})"
        )


# ---------------------------------------------------------------------------
# Response dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PaymentIntentResult:
    """Result of creating a Stripe PaymentIntent for client-side confirmation."""
    id: str
    client_secret: str
    status: str
    amount_cents: int
    currency: str


@dataclass(frozen=True)
class ChargeResult:
    """Result of a server-side charge (a PaymentIntent confirmed at creation)."""
    payment_intent_id: str
    status: str
    amount_cents: int
    currency: str
    payment_method_id: str | None


@dataclass(frozen=True)
class RefundResult:
    """Result of a Stripe refund operation."""
    id: str
    status: str
    amount_cents: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def to_cents(amount: Decimal) -> int:
    """Convert a dollar amount to integer cents."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(amount_cents: int) -> Decimal:
    return (Decimal(amount_cents) / 100).quantize(Decimal("0.01"))


def _handle_stripe_error(exc: stripe.StripeError) -> PaymentError:
    """Convert a Stripe SDK exception into a PaymentError."""
    error_body = getattr(exc, "error", None)

    code = getattr(error_body, "code", None) if error_body else None
    error_type = getattr(error_body, "type", None) if error_body else None
    decline_code = getattr(error_body, "decline_code", None) if error_body else None

    logger.error(
        "Stripe API error: %s (code=%s, type=%s, decline_code=%s)",
        str(exc),
        code,
        error_type,
        decline_code,
    )

    message = getattr(exc, "user_message", None) or str(exc)
    return PaymentError(
        message=message,
        stripe_error_code=code,
        stripe_error_type=error_type,
        decline_code=decline_code,
    )


def _payment_method_id(intent) -> str | None:
    if intent.payment_method and isinstance(intent.payment_method, str):
        return intent.payment_method
    if intent.payment_method:
        return intent.payment_method.id
    return None


# ---------------------------------------------------------------------------
# Payment Intent operations
# ---------------------------------------------------------------------------

async def create_payment_intent(
    amount_cents: int,
    currency: str,
    metadata: dict[str, str],
    customer_stripe_id: str | None = None,
    idempotency_key: str | None = None,
) -> PaymentIntentResult:
    """Create a PaymentIntent the client confirms with its ``client_secret``.

    Raises:
        PaymentError: If the Stripe API call fails.
        ValueError: If amount_cents is non-positive.
    """
    if amount_cents <= 0:
        raise ValueError(f"Payment amount must be positive, got {amount_cents}")

    params: dict = {
        "amount": amount_cents,
        "currency": currency.lower(),
        "metadata": {**metadata, "platform": PLATFORM_TAG},
        "automatic_payment_methods": {"enabled": True},
        "capture_method": "automatic",
    }
    if customer_stripe_id:
        params["customer"] = customer_stripe_id
    if idempotency_key:
        params["idempotency_key"] = idempotency_key

    try:
        intent = await asyncio.to_thread(stripe.PaymentIntent.create, **params)
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info(
        "PaymentIntent created: id=%s, amount=%d %s, metadata=%s",
        intent.id,
        amount_cents,
        currency,
        metadata,
    )

    return PaymentIntentResult(
        id=intent.id,
        client_secret=intent.client_secret,
        status=intent.status,
        amount_cents=intent.amount,
        currency=intent.currency,
    )


async def charge(
    amount_cents: int,
    currency: str,
    payment_method_id: str,
    metadata: dict[str, str],
    customer_stripe_id: str | None = None,
    idempotency_key: str | None = None,
) -> ChargeResult:
    """Charge a saved payment method immediately.

    The PaymentIntent is created and confirmed in one call. Anything other
    than ``succeeded`` (for example ``requires_action`` for 3-D Secure) is
    treated as a failed charge and the intent is cancelled.

    Raises:
        PaymentError: If Stripe declines or errors, or the charge does not
            complete synchronously.
        ValueError: If amount_cents is non-positive.
    """
    if amount_cents <= 0:
        raise ValueError(f"Payment amount must be positive, got {amount_cents}")

    params: dict = {
        "amount": amount_cents,
        "currency": currency.lower(),
        "payment_method": payment_method_id,
        "confirm": True,
        "metadata": {**metadata, "platform": PLATFORM_TAG},
        "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
    }
    if customer_stripe_id:
        params["customer"] = customer_stripe_id
    if idempotency_key:
        params["idempotency_key"] = idempotency_key

    try:
        intent = await asyncio.to_thread(stripe.PaymentIntent.create, **params)
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    if intent.status != "succeeded":
        logger.warning(
            "PaymentIntent %s did not succeed (status=%s); cancelling",
            intent.id,
            intent.status,
        )
        await cancel_payment(intent.id, reason="abandoned")
        raise PaymentError(
            message=f"Payment could not be completed (status: {intent.status}).",
            stripe_error_code=intent.status,
        )

    logger.info(
        "Charge succeeded: intent=%s, amount=%d %s",
        intent.id,
        intent.amount,
        intent.currency,
    )

    return ChargeResult(
        payment_intent_id=intent.id,
        status=intent.status,
        amount_cents=intent.amount,
        currency=intent.currency,
        payment_method_id=_payment_method_id(intent),
    )


async def cancel_payment(
    payment_intent_id: str,
    reason: str = "requested_by_customer",
) -> bool:
    """Cancel a PaymentIntent before it has been captured.

    Raises:
        PaymentError: If the cancellation fails (e.g., already captured).
    """
    valid_reasons = {"duplicate", "fraudulent", "requested_by_customer", "abandoned"}
    if reason not in valid_reasons:
        reason = "requested_by_customer"

    try:
        intent = await asyncio.to_thread(
            stripe.PaymentIntent.cancel,
            payment_intent_id,
            cancellation_reason=reason,
        )
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info("PaymentIntent cancelled: id=%s, reason=%s", intent.id, reason)
    return intent.status == "canceled"


async def refund_payment(
    payment_intent_id: str,
    amount_cents: int | None = None,
    reason: str = "",
    idempotency_key: str | None = None,
) -> RefundResult:
    """Refund a PaymentIntent (full or partial).

    Args:
        payment_intent_id: The Stripe PaymentIntent ID to refund.
        amount_cents: Amount to refund in cents. If None, full refund.
        reason: Human-readable reason for the refund (stored in metadata).
        idempotency_key: Optional key so retried requests refund once.

    Raises:
        PaymentError: If the refund fails.
        ValueError: If amount_cents is negative.
    """
    if amount_cents is not None and amount_cents < 0:
        raise ValueError(f"Refund amount cannot be negative, got {amount_cents}")

    params: dict = {
        "payment_intent": payment_intent_id,
        "metadata": {
            "reason": reason[:500] if reason else "",
            "platform": PLATFORM_TAG,
        },
    }
    if amount_cents is not None and amount_cents > 0:
        params["amount"] = amount_cents
    if idempotency_key:
        params["idempotency_key"] = idempotency_key

    try:
        refund = await asyncio.to_thread(stripe.Refund.create, **params)
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info(
        "Refund created: id=%s, payment_intent=%s, amount=%d, status=%s",
        refund.id,
        payment_intent_id,
        refund.amount,
        refund.status,
    )

    return RefundResult(
        id=refund.id,
        status=refund.status,
        amount_cents=refund.amount,
    )

