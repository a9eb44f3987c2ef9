"""
Shared HTTP plumbing for the outbound messaging providers.

Requests are retried on transient failures (5xx responses and any httpx
request error) with exponential backoff. 4xx responses and unreadable
success bodies fail immediately as ``MessagingError``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_INITIAL_BACKOFF_SECONDS = 0.5


class MessagingError(Exception):
    """Raised when a messaging provider rejects a request or stays
    unreachable after all retries."""

    def __init__(self, message: str, status: str | None = None, raw: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.raw = raw


def _decode(provider: str, response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError as exc:
        raise MessagingError(
            f"{provider} returned a non-JSON response: HTTP {response.status_code}",
            status=str(response.status_code),
            raw=response.text,
        ) from exc
    if not isinstance(data, dict):
        raise MessagingError(
            f"{provider} returned an unexpected response body",
            status=str(response.status_code),
            raw=data,
        )
    return data


async def post_with_retry(
    client: httpx.AsyncClient,
    provider: str,
    url: str,
    api_key: str,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """POST ``payload`` as JSON to ``url`` with bearer authentication.

    Any httpx request error (timeouts, refused or dropped connections,
    protocol and decoding errors) and 5xx responses are retried.

    Raises:
        MessagingError: on a 4xx response, a 2xx body that is not a JSON
            object, or after the last retry.
    """
    last_exception: Exception | None = None
    backoff = _INITIAL_BACKOFF_SECONDS
    headers = {"Authorization": f"Bearer {api_key}"}

    for attempt in range(1, _MAX_RETRIES + 1):
        try:
            response = await client.post(url, json=payload, headers=headers)
        except httpx.RequestError as exc:
            last_exception = exc
            logger.warning(
                "%s transport error on attempt %d/%d: %r",
                provider,
                attempt,
                _MAX_RETRIES,
                exc,
            )
        else:
            if 400 <= response.status_code < 500:
                raise MessagingError(
                    f"{provider} rejected the request: HTTP {response.status_code}",
                    status=str(response.status_code),
                    raw=response.text,
                )
            if response.status_code < 400:
                return _decode(provider, response)

            last_exception = MessagingError(
                f"{provider} server error: HTTP {response.status_code}",
                status=str(response.status_code),
                raw=response.text,
            )
            logger.warning(
                "%s server error on attempt %d/%d: HTTP %d",
                provider,
                attempt,
                _MAX_RETRIES,
                response.status_code,
            )

        if attempt < _MAX_RETRIES:
            await asyncio.sleep(backoff)
            backoff *= 2

    raise MessagingError(
        f"{provider} request failed after {_MAX_RETRIES} attempts",
        raw=repr(last_exception),
    )
