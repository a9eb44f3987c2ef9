"""
Transactional email through an HTTP email provider.

When ``EMAIL_API_URL`` is not configured the message is only logged, which
is the expected mode for local development.
"""

from __future__ import annotations

import logging
import uuid

import httpx

from tradiehub.core.config import settings

from .httpClient import post_with_retry

logger = logging.getLogger(__name__)


async def send_email(
    client: httpx.AsyncClient,
    to: str,
    subject: str,
    body: str,
) -> str:
    """Send a plain-text email and return the provider message id.

    Raises:
        MessagingError: If the provider rejects the message or is unreachable.
    """
    if not settings.email_api_url:
        message_id = f"dev-email-{uuid.uuid4().hex[:12]}"
        logger.info("Email provider not configured; would send %r to %s", subject, to)
        return message_id

    payload = {
        "from": settings.email_from,
        "to": [to],
        "subject": subject,
        "text": body,
    }
    data = await post_with_retry(
        client, "Email provider", settings.email_api_url, settings.email_api_key, payload
    )
    message_id = str(data.get("id") or data.get("message_id") or "")
    logger.info("Email sent to %s (message_id=%s)", to, message_id)
    return message_id
