"""
E2E: Paying for quotes.

The payment gateway is the in-memory ``FakeGateway`` from the conftest.
Covers:
- Accepting a quote with payment, then invoicing and refunding it
- A declined card leaving the quote undecided with a failed payment record
- A charge refunded when the acceptance cannot be committed
- Payment intents for client-side confirmation
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tests.e2e.conftest import API, create_quote_via_api, create_sent_quote
from tradiehub.models.quote_payment import QuotePayment


async def _pay(client, client_headers, quote_number: str, request_id: str = "req-1"):
    return await client.post(
        f"{API}/quotes/{quote_number}/accept-with-payment",
        json={"paymentMethodId": "pm_card_visa"},
        headers={**client_headers, "X-Request-ID": request_id},
    )


async def test_accept_with_payment(client, gateway, client_headers):
    quote = await create_sent_quote(client)

    resp = await _pay(client, client_headers, quote["quoteNumber"])

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["quote"]["status"] == "accepted"
    assert data["quote"]["paymentStatus"] == "succeeded"
    assert data["payment"]["paymentIntentId"] == "pi_test_1"
    assert data["payment"]["amount"] == "110.00"
    assert data["payment"]["status"] == "succeeded"
    assert gateway.charges[0]["metadata"]["quote_number"] == quote["quoteNumber"]
    assert gateway.charges[0]["metadata"]["request_id"] == "req-1"


async def test_declined_payment_leaves_quote_undecided(client, db, gateway, client_headers, tradie_headers):
    quote = await create_sent_quote(client)
    await client.get(f"{API}/quotes/view/{quote['quoteNumber']}")
    gateway.decline = "Your card was declined."

    resp = await _pay(client, client_headers, quote["quoteNumber"])

    assert resp.status_code == 402
    body = resp.json()
    assert body["code"] == "PAYMENT_FAILED"
    assert body["message"] == "Your card was declined."

    current = await client.get(f"{API}/quotes/{quote['id']}", headers=tradie_headers)
    assert current.json()["data"]["status"] == "viewed"
    assert current.json()["data"]["paymentStatus"] == "failed"

    async with db() as session:
        payments = (
            await session.execute(
                select(QuotePayment).where(QuotePayment.quote_id == uuid.UUID(quote["id"]))
            )
        ).scalars().all()
    assert [p.status for p in payments] == ["failed"]
    assert payments[0].failure_reason == "Your card was declined."

    invoice = await client.post(f"{API}/quotes/{quote['id']}/invoice", headers=tradie_headers)
    assert invoice.status_code == 409

    # The client can retry with a working card
    gateway.decline = None
    retry = await _pay(client, client_headers, quote["quoteNumber"], request_id="req-2")
    assert retry.status_code == 200
    assert retry.json()["data"]["quote"]["status"] == "accepted"


async def test_paid_quote_cannot_be_paid_twice(client, gateway, client_headers):
    quote = await create_sent_quote(client)
    await _pay(client, client_headers, quote["quoteNumber"])

    again = await _pay(client, client_headers, quote["quoteNumber"], request_id="req-2")

    assert again.status_code == 409
    assert again.json()["code"] == "INVALID_STATE_TRANSITION"
    assert len(gateway.charges) == 1


async def test_draft_is_never_charged(client, gateway, client_headers):
    created = await create_quote_via_api(client)
    resp = await _pay(client, client_headers, created.json()["data"]["quoteNumber"])
    assert resp.status_code == 409
    assert gateway.charges == []


async def test_invoice_then_partial_and_full_refund(client, gateway, client_headers, tradie_headers):
    quote = await create_sent_quote(client)
    await _pay(client, client_headers, quote["quoteNumber"])

    invoice = await client.post(f"{API}/quotes/{quote['id']}/invoice", headers=tradie_headers)
    assert invoice.status_code == 201
    inv = invoice.json()["data"]
    assert inv["invoiceNumber"] == f"INV-{quote['quoteNumber']}"
    assert inv["totalAmount"] == "110.00"
    assert inv["gstAmount"] == "10.00"
    assert inv["lineItems"][0]["line_total"] == "100.00"

    duplicate = await client.post(f"{API}/quotes/{quote['id']}/invoice", headers=tradie_headers)
    assert duplicate.status_code == 400

    partial = await client.post(
        f"{API}/quotes/{quote['id']}/refund",
        json={"amount": "30", "reason": "Reduced scope"},
        headers=tradie_headers,
    )
    assert partial.status_code == 200
    assert partial.json()["data"]["totalRefunded"] == "30.00"
    assert partial.json()["data"]["paymentStatus"] == "partially_refunded"

    too_much = await client.post(
        f"{API}/quotes/{quote['id']}/refund",
        json={"amount": "500"},
        headers=tradie_headers,
    )
    assert too_much.status_code == 400

    rest = await client.post(f"{API}/quotes/{quote['id']}/refund", json={}, headers=tradie_headers)
    assert rest.status_code == 200
    assert rest.json()["data"]["amount"] == "80.00"
    assert rest.json()["data"]["totalRefunded"] == "110.00"
    assert rest.json()["data"]["paymentStatus"] == "refunded"
    assert [r["payment_intent_id"] for r in gateway.refunds] == ["pi_test_1", "pi_test_1"]


async def test_refund_without_payment_rejected(client, client_headers, tradie_headers):
    quote = await create_sent_quote(client)
    await client.post(f"{API}/quotes/accept/{quote['quoteNumber']}", headers=client_headers)

    resp = await client.post(f"{API}/quotes/{quote['id']}/refund", json={}, headers=tradie_headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


async def test_payment_intent(client, client_headers):
    quote = await create_sent_quote(client)

    resp = await client.post(
        f"{API}/quotes/{quote['quoteNumber']}/payment-intent", headers=client_headers
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["paymentIntentId"] == "pi_test_intent"
    assert data["clientSecret"] == "pi_test_intent_secret"
    assert data["amount"] == "110.00"


async def test_failed_commit_refunds_the_charge(
    app, client, gateway, client_headers, tradie_headers
):
    quote = await create_sent_quote(client)
    lost = OperationalError("COMMIT", {}, Exception("disk I/O error"))

    # The error handler answers 500 and the server middleware re-raises
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as failing_client:
        with patch.object(AsyncSession, "commit", new=AsyncMock(side_effect=lost)):
            resp = await _pay(failing_client, client_headers, quote["quoteNumber"])

    assert resp.status_code == 500
    assert resp.json()["code"] == "INTERNAL_ERROR"
    assert len(gateway.charges) == 1
    assert [r["payment_intent_id"] for r in gateway.refunds] == ["pi_test_1"]

    current = await client.get(f"{API}/quotes/{quote['id']}", headers=tradie_headers)
    assert current.json()["data"]["status"] == "sent"
    assert current.json()["data"]["paymentStatus"] != "succeeded"
