"""
SMS delivery through an HTTP SMS provider.

When ``SMS_API_URL`` is not configured the message is only logged.
"""

from __future__ import annotations

import logging
import uuid

import httpx

from tradiehub.core.config import settings

from .httpClient import post_with_retry

logger = logging.getLogger(__name__)

MAX_SMS_LENGTH = 480


async def send_sms(client: httpx.AsyncClient, to: str, body: str) -> str:
    """Send an SMS and return the provider message id.

    Raises:
        MessagingError: If the provider rejects the message or is unreachable.
    """
    body = body[:MAX_SMS_LENGTH]

    if not settings.sms_api_url:
        message_id = f"dev-sms-{uuid.uuid4().hex[:12]}"
        logger.info("SMS provider not configured; would text %s: %s", to, body)
        return message_id

    payload = {"from": settings.sms_from, "to": to, "body": body}
    data = await post_with_retry(
        client, "SMS provider", settings.sms_api_url, settings.sms_api_key, payload
    )
    message_id = str(data.get("sid") or data.get("id") or "")
    logger.info("SMS sent to %s (message_id=%s)", to, message_id)
    return message_id
