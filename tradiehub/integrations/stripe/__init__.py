"""
Stripe Integration Module
=========================

Central export point for the Stripe payment integration.

Usage::

    from tradiehub.integrations.stripe import (
        PaymentError,
        PaymentGateway,
        StripeGateway,
    )
"""

from .gateway import PaymentGateway, StripeGateway
from .paymentService import (
    ChargeResult,
    PaymentError,
    PaymentIntentResult,
    RefundResult,
    cancel_payment,
    charge,
    create_payment_intent,
    from_cents,
    refund_payment,
    to_cents,
)

__all__ = [
    # Gateway
    "PaymentGateway",
    "StripeGateway",
    # Payment Service
    "PaymentError",
    "PaymentIntentResult",
    "ChargeResult",
    "RefundResult",
    "create_payment_intent",
    "charge",
    "cancel_payment",
    "refund_payment",
    "to_cents",
    "from_cents",
]
