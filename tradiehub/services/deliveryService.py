"""
Quote Delivery Service
======================

Dispatches quote documents to clients over one or more channels:

  email   -- transactional email via the email provider
  sms     -- short message with the portal link via the SMS provider
  pdf     -- a downloadable PDF reference on the client portal
  portal  -- the quote is listed in the client portal (always available)

Each channel runs under ``settings.notification_timeout_seconds``. A timeout
or provider error never raises: it is logged and reported as a failed
``ChannelResult`` so callers can surface per-channel outcomes.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from tradiehub.core.config import settings
from tradiehub.integrations.messaging import MessagingError, send_email, send_sms
from tradiehub.models.quote import Quote

logger = logging.getLogger(__name__)


class DeliveryMethod(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"
    PDF = "pdf"
    PORTAL = "portal"


@dataclass(frozen=True)
class DeliveryPayload:
    subject: str
    body: str
    quote_number: str
    portal_url: str


@dataclass(frozen=True)
class ChannelResult:
    method: DeliveryMethod
    success: bool
    reference: Optional[str] = None
    error: Optional[str] = None


def quote_portal_url(quote_number: str) -> str:
    return f"{settings.portal_base_url.rstrip('/')}/quotes/{quote_number}"


def build_quote_payload(quote: Quote, message: Optional[str] = None) -> DeliveryPayload:
    """Render the client-facing message for a quote."""
    url = quote_portal_url(quote.quote_number)
    lines = [
        f"Quote {quote.quote_number}: {quote.title}",
        f"Total: {quote.currency} {quote.total_amount}"
        + (" (incl. GST)" if quote.gst_enabled else ""),
        f"Valid until: {quote.valid_until:%d %b %Y}",
    ]
    if message:
        lines.extend(["", message])
    lines.extend(["", f"View and respond: {url}"])
    return DeliveryPayload(
        subject=f"Quote {quote.quote_number} - {quote.title}",
        body="\n".join(lines),
        quote_number=quote.quote_number,
        portal_url=url,
    )


class Notifier:
    """Per-channel quote delivery with timeouts."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._http = http_client
        self._timeout = (
            settings.notification_timeout_seconds
            if timeout_seconds is None
            else timeout_seconds
        )

    async def _dispatch(
        self,
        method: DeliveryMethod,
        recipient: Optional[str],
        payload: DeliveryPayload,
    ) -> str:
        if method == DeliveryMethod.EMAIL:
            return await send_email(self._http, recipient, payload.subject, payload.body)
        if method == DeliveryMethod.SMS:
            text = f"{payload.subject}. View: {payload.portal_url}"
            return await send_sms(self._http, recipient, text)
        if method == DeliveryMethod.PDF:
            return f"{payload.portal_url}.pdf"
        return payload.portal_url

    async def send(
        self,
        method: DeliveryMethod,
        recipient: Optional[str],
        payload: DeliveryPayload,
    ) -> ChannelResult:
        """Deliver ``payload`` over one channel. Never raises for delivery
        failures."""
        try:
            reference = await asyncio.wait_for(
                self._dispatch(method, recipient, payload),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Delivery of quote %s via %s timed out after %.1fs",
                payload.quote_number,
                method.value,
                self._timeout,
            )
            return ChannelResult(method=method, success=False, error="Delivery timed out")
        except MessagingError as exc:
            logger.warning(
                "Delivery of quote %s via %s failed: %s",
                payload.quote_number,
                method.value,
                exc,
            )
            return ChannelResult(method=method, success=False, error=str(exc))
        except Exception:
            # One broken channel must not fail the others or the send itself
            logger.exception(
                "Unexpected error delivering quote %s via %s",
                payload.quote_number,
                method.value,
            )
            return ChannelResult(method=method, success=False, error="Delivery failed")

        logger.info(
            "Quote %s delivered via %s (ref=%s)",
            payload.quote_number,
            method.value,
            reference,
        )
        return ChannelResult(method=method, success=True, reference=reference)

    async def send_many(
        self,
        deliveries: list[tuple[DeliveryMethod, Optional[str]]],
        payload: DeliveryPayload,
    ) -> list[ChannelResult]:
        """Run every channel concurrently; results keep the input order."""
        return list(
            await asyncio.gather(
                *(self.send(method, recipient, payload) for method, recipient in deliveries)
            )
        )
