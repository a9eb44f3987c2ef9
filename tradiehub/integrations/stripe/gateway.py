"""
Payment gateway seam used by the quote payment workflow.

``PaymentGateway`` is the protocol the services depend on; ``StripeGateway``
implements it on top of ``paymentService``. Amounts cross this boundary as
dollar ``Decimal`` values and are converted to cents here.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol

from . import paymentService
from .paymentService import ChargeResult, PaymentIntentResult, RefundResult


class PaymentGateway(Protocol):
    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method_id: str,
        *,
        metadata: dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> ChargeResult: ...

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        *,
        metadata: dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntentResult: ...

    async def refund(
        self,
        payment_intent_id: str,
        amount: Optional[Decimal],
        reason: str,
        *,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult: ...


class StripeGateway:
    """``PaymentGateway`` backed by the Stripe API."""

    async def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method_id: str,
        *,
        metadata: dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> ChargeResult:
        return await paymentService.charge(
            amount_cents=paymentService.to_cents(amount),
            currency=currency,
            payment_method_id=payment_method_id,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        *,
        metadata: dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntentResult:
        return await paymentService.create_payment_intent(
            amount_cents=paymentService.to_cents(amount),
            currency=currency,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )

    async def refund(
        self,
        payment_intent_id: str,
        amount: Optional[Decimal],
        reason: str,
        *,
        idempotency_key: Optional[str] = None,
    ) -> RefundResult:
        return await paymentService.refund_payment(
            payment_intent_id=payment_intent_id,
            amount_cents=paymentService.to_cents(amount) if amount is not None else None,
            reason=reason,
            idempotency_key=idempotency_key,
        )
