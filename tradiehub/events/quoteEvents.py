"""
Quote Event Emission Stubs
==========================

Events for quote lifecycle and payment changes. Each emitter logs the event
and returns the payload dict; a transport (message bus, webhooks) can be
attached behind ``_build_event`` without touching callers.

Events emitted:
  - quote.created
  - quote.status_changed (sent, viewed, accepted, rejected, expired, cancelled)
  - quote.payment.succeeded
  - quote.payment.failed
  - quote.invoice.generated
  - quote.refund.processed
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

logger = logging.getLogger(__name__)


def _build_event(
    event_type: str,
    quote_id: uuid.UUID,
    *,
    data: dict[str, Any] | None = None,
    actor_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    """Construct a standardised event payload."""
    return {
        "event_type": event_type,
        "quote_id": str(quote_id),
        "actor_id": str(actor_id) if actor_id else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data or {},
    }


def emit_quote_created(
    quote_id: uuid.UUID,
    quote_number: str,
    tradie_id: uuid.UUID,
    client_id: uuid.UUID,
    total_amount: Decimal,
) -> dict[str, Any]:
    event = _build_event(
        "quote.created",
        quote_id,
        actor_id=tradie_id,
        data={
            "quote_number": quote_number,
            "client_id": str(client_id),
            "total_amount": str(total_amount),
        },
    )
    logger.info("Event emitted: %s for quote %s", event["event_type"], quote_number)
    return event


def emit_quote_status_changed(
    quote_id: uuid.UUID,
    old_status: str,
    new_status: str,
    actor_id: uuid.UUID | None = None,
    reason: str | None = None,
) -> dict[str, Any]:
    """Emit ``quote.<new_status>`` when a quote transitions between states."""
    event = _build_event(
        f"quote.{new_status}",
        quote_id,
        actor_id=actor_id,
        data={
            "old_status": old_status,
            "new_status": new_status,
            "reason": reason,
        },
    )
    logger.info(
        "Event emitted: %s for quote %s (%s -> %s)",
        event["event_type"],
        quote_id,
        old_status,
        new_status,
    )
    return event


def emit_payment_succeeded(
    quote_id: uuid.UUID,
    payment_intent_id: str,
    amount: Decimal,
    actor_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    event = _build_event(
        "quote.payment.succeeded",
        quote_id,
        actor_id=actor_id,
        data={"payment_intent_id": payment_intent_id, "amount": str(amount)},
    )
    logger.info("Event emitted: %s for quote %s", event["event_type"], quote_id)
    return event


def emit_payment_failed(
    quote_id: uuid.UUID,
    reason: str,
    actor_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    event = _build_event(
        "quote.payment.failed",
        quote_id,
        actor_id=actor_id,
        data={"reason": reason},
    )
    logger.warning("Event emitted: %s for quote %s: %s", event["event_type"], quote_id, reason)
    return event


def emit_invoice_generated(
    quote_id: uuid.UUID,
    invoice_number: str,
    total_amount: Decimal,
) -> dict[str, Any]:
    event = _build_event(
        "quote.invoice.generated",
        quote_id,
        data={"invoice_number": invoice_number, "total_amount": str(total_amount)},
    )
    logger.info("Event emitted: %s for quote %s", event["event_type"], quote_id)
    return event


def emit_refund_processed(
    quote_id: uuid.UUID,
    refund_id: str,
    amount: Decimal,
    reason: str | None = None,
) -> dict[str, Any]:
    event = _build_event(
        "quote.refund.processed",
        quote_id,
        data={"refund_id": refund_id, "amount": str(amount), "reason": reason},
    )
    logger.info("Event emitted: %s for quote %s", event["event_type"], quote_id)
    return event
