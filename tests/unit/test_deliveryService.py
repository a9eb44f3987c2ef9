"""
Unit tests for quote delivery.

With no providers configured email and SMS are logged only, so delivery
succeeds offline. Failures are injected by patching the senders, or by
pointing the providers at an ``httpx.MockTransport``.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from tradiehub.core.config import settings
from tradiehub.integrations.messaging import MessagingError, httpClient
from tradiehub.services import deliveryService
from tradiehub.services.deliveryService import DeliveryMethod, Notifier, build_quote_payload


@pytest.fixture
async def notifier():
    async with httpx.AsyncClient() as client:
        yield Notifier(client, timeout_seconds=0.05)


def test_payload_mentions_total_and_portal_link(sample_quote):
    payload = build_quote_payload(sample_quote, message="Thanks for your time")
    assert payload.quote_number == "QT4821307"
    assert "AUD 110.00 (incl. GST)" in payload.body
    assert "Thanks for your time" in payload.body
    assert payload.portal_url.endswith("/quotes/QT4821307")
    assert payload.portal_url in payload.body


class TestNotifier:

    async def test_portal_and_pdf_references(self, notifier, sample_quote):
        payload = build_quote_payload(sample_quote)
        portal = await notifier.send(DeliveryMethod.PORTAL, None, payload)
        pdf = await notifier.send(DeliveryMethod.PDF, None, payload)
        assert portal.success and portal.reference == payload.portal_url
        assert pdf.success and pdf.reference == f"{payload.portal_url}.pdf"

    async def test_unconfigured_email_succeeds(self, notifier, sample_quote):
        result = await notifier.send(
            DeliveryMethod.EMAIL, "client@example.com", build_quote_payload(sample_quote)
        )
        assert result.success is True
        assert result.reference.startswith("dev-email-")

    async def test_provider_error_is_reported_not_raised(self, notifier, sample_quote):
        failing = AsyncMock(side_effect=MessagingError("SMS provider rejected the request: HTTP 400"))
        with patch.object(deliveryService, "send_sms", new=failing):
            result = await notifier.send(
                DeliveryMethod.SMS, "+61400000000", build_quote_payload(sample_quote)
            )
        assert result.success is False
        assert "HTTP 400" in result.error

    async def test_timeout_is_reported(self, notifier, sample_quote):
        async def _hang(*args, **kwargs):
            await asyncio.sleep(1)

        with patch.object(deliveryService, "send_email", new=_hang):
            result = await notifier.send(
                DeliveryMethod.EMAIL, "client@example.com", build_quote_payload(sample_quote)
            )
        assert result.success is False
        assert result.error == "Delivery timed out"

    async def test_send_many_keeps_order_when_one_fails(self, notifier, sample_quote):
        failing = AsyncMock(side_effect=MessagingError("down"))
        with patch.object(deliveryService, "send_sms", new=failing):
            results = await notifier.send_many(
                [
                    (DeliveryMethod.EMAIL, "client@example.com"),
                    (DeliveryMethod.SMS, "+61400000000"),
                    (DeliveryMethod.PORTAL, None),
                ],
                build_quote_payload(sample_quote),
            )
        assert [r.method for r in results] == [
            DeliveryMethod.EMAIL, DeliveryMethod.SMS, DeliveryMethod.PORTAL,
        ]
        assert [r.success for r in results] == [True, False, True]

    async def test_unexpected_error_is_reported(self, notifier, sample_quote):
        with patch.object(deliveryService, "send_email", new=AsyncMock(side_effect=RuntimeError("boom"))):
            result = await notifier.send(
                DeliveryMethod.EMAIL, "client@example.com", build_quote_payload(sample_quote)
            )
        assert result.success is False
        assert result.error == "Delivery failed"


# ---------------------------------------------------------------------------
# Configured providers
# ---------------------------------------------------------------------------


@pytest.fixture
def providers_configured():
    with patch.object(settings, "email_api_url", "https://mail.test/v1/send"), \
            patch.object(settings, "email_api_key", "email-key"), \
            patch.object(settings, "sms_api_url", "https://sms.test/v1/messages"), \
            patch.object(settings, "sms_api_key", "sms-key"), \
            patch.object(httpClient, "_INITIAL_BACKOFF_SECONDS", 0):
        yield


def _provider_notifier(handler) -> tuple[httpx.AsyncClient, Notifier]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client, Notifier(client, timeout_seconds=1.0)


class TestProviderResponses:

    async def test_plain_text_success_body_is_a_failed_channel(
        self, providers_configured, sample_quote
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(202, text="Queued")

        client, notifier = _provider_notifier(handler)
        async with client:
            result = await notifier.send(
                DeliveryMethod.EMAIL, "client@example.com", build_quote_payload(sample_quote)
            )

        assert result.success is False
        assert "non-JSON" in result.error

    async def test_dropped_connection_is_retried_then_reported(
        self, providers_configured, sample_quote
    ):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            raise httpx.RemoteProtocolError("Server disconnected", request=request)

        client, notifier = _provider_notifier(handler)
        async with client:
            result = await notifier.send(
                DeliveryMethod.SMS, "+61400000000", build_quote_payload(sample_quote)
            )

        assert result.success is False
        assert "failed after 3 attempts" in result.error
        assert len(seen) == 3

    async def test_read_error_recovers_on_retry(self, providers_configured, sample_quote):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if len(seen) == 1:
                raise httpx.ReadError("Connection reset by peer", request=request)
            return httpx.Response(200, json={"sid": "SM123"})

        client, notifier = _provider_notifier(handler)
        async with client:
            result = await notifier.send(
                DeliveryMethod.SMS, "+61400000000", build_quote_payload(sample_quote)
            )

        assert result.success is True
        assert result.reference == "SM123"
        assert seen[0].headers["Authorization"] == "Bearer sms-key"

    async def test_send_many_survives_a_broken_provider(self, providers_configured, sample_quote):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "sms.test":
                raise httpx.RemoteProtocolError("Server disconnected", request=request)
            return httpx.Response(200, json={"id": "msg_1"})

        client, notifier = _provider_notifier(handler)
        async with client:
            results = await notifier.send_many(
                [
                    (DeliveryMethod.EMAIL, "client@example.com"),
                    (DeliveryMethod.SMS, "+61400000000"),
                    (DeliveryMethod.PORTAL, None),
                ],
                build_quote_payload(sample_quote),
            )

        assert [r.success for r in results] == [True, False, True]
        assert results[0].reference == "msg_1"
