"""
E2E test fixtures for the TradieHub backend.

Provides:
- An in-process FastAPI app built by ``create_app`` with a fake payment
  gateway in its service container
- httpx AsyncClient wired via ASGI transport (no network needed)
- A fresh in-memory SQLite database per test, with SAVEPOINT support so the
  nested transactions used by the services behave as on PostgreSQL
- Seed users (client, second client, tradie, low-balance tradie, admin)
  and bearer tokens for each

Email and SMS providers are left unconfigured, so quote delivery only logs.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Any, AsyncGenerator, Optional

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from tradiehub.core.container import ServiceContainer
from tradiehub.core.rate_limit import limiter
from tradiehub.integrations.stripe.paymentService import (
    ChargeResult,
    PaymentError,
    PaymentIntentResult,
    RefundResult,
)
from tradiehub.models import Base
from tradiehub.models.credit import CreditAccount
from tradiehub.models.user import User, UserRole, UserStatus
from tradiehub.services import auth_service
from tradiehub.services.deliveryService import Notifier


@compiles(JSONB, "sqlite")
def compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


# ---------------------------------------------------------------------------
# Test IDs (stable across tests so cross-references work)
# ---------------------------------------------------------------------------

CLIENT_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
OTHER_CLIENT_ID = uuid.UUID("abababab-abab-abab-abab-abababababab")
TRADIE_ID = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")
POOR_TRADIE_ID = uuid.UUID("cccccccc-cccc-cccc-cccc-cccccccccccc")
ADMIN_ID = uuid.UUID("dddddddd-dddd-dddd-dddd-dddddddddddd")

TRADIE_CREDITS = 20
POOR_TRADIE_CREDITS = 3

TEST_DB_URL = "sqlite+aiosqlite://"


# ---------------------------------------------------------------------------
# Fake payment gateway
# ---------------------------------------------------------------------------

class FakeGateway:
    """In-memory ``PaymentGateway``. Set ``decline`` to make the next
    charges fail the way Stripe reports a card error."""

    def __init__(self) -> None:
        self.decline: Optional[str] = None
        self.charges: list[dict[str, Any]] = []
        self.refunds: list[dict[str, Any]] = []

    async def charge(self, amount, currency, payment_method_id, *, metadata, idempotency_key=None):
        if self.decline:
            raise PaymentError(
                self.decline, stripe_error_code="card_declined", decline_code="generic_decline"
            )
        intent_id = f"pi_test_{len(self.charges) + 1}"
        self.charges.append({"id": intent_id, "amount": amount, "metadata": metadata})
        return ChargeResult(
            payment_intent_id=intent_id,
            status="succeeded",
            amount_cents=int(amount * 100),
            currency=currency,
            payment_method_id=payment_method_id,
        )

    async def create_intent(self, amount, currency, *, metadata, idempotency_key=None):
        return PaymentIntentResult(
            id="pi_test_intent",
            client_secret="pi_test_intent_secret",
            status="requires_payment_method",
            amount_cents=int(amount * 100),
            currency=currency,
        )

    async def refund(self, payment_intent_id, amount, reason, *, idempotency_key=None):
        refund_id = f"re_test_{len(self.refunds) + 1}"
        self.refunds.append({"id": refund_id, "payment_intent_id": payment_intent_id, "amount": amount})
        return RefundResult(
            id=refund_id,
            status="succeeded",
            amount_cents=int(amount * 100) if amount is not None else 0,
        )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    """A private in-memory database for one test."""
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLAlchemy issue BEGIN itself so SAVEPOINT works, and enforce
    # foreign keys (off by default in SQLite)
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def _seed_data(db: AsyncSession) -> None:
    """Insert the users every flow needs."""

    def user(user_id, email, role, first_name, business_name=None):
        return User(
            id=user_id,
            email=email,
            password_hash=auth_service.hash_password("correct-horse-battery"),
            first_name=first_name,
            last_name="Test",
            business_name=business_name,
            phone="+61400000000",
            role=role,
            status=UserStatus.ACTIVE,
            email_verified=True,
        )

    db.add_all([
        user(CLIENT_ID, "client@test.tradiehub.au", UserRole.CLIENT, "Jane"),
        user(OTHER_CLIENT_ID, "other@test.tradiehub.au", UserRole.CLIENT, "Olive"),
        user(TRADIE_ID, "tradie@test.tradiehub.au", UserRole.TRADIE, "John", "Smith Plumbing"),
        user(POOR_TRADIE_ID, "poor@test.tradiehub.au", UserRole.TRADIE, "Pete", "Pete's Pipes"),
        user(ADMIN_ID, "admin@test.tradiehub.au", UserRole.ADMIN, "Admin"),
    ])
    await db.flush()
    db.add_all([
        CreditAccount(tradie_id=TRADIE_ID, balance=TRADIE_CREDITS),
        CreditAccount(tradie_id=POOR_TRADIE_ID, balance=POOR_TRADIE_CREDITS),
    ])
    await db.commit()


@pytest.fixture
async def seeded(session_factory) -> async_sessionmaker[AsyncSession]:
    async with session_factory() as db:
        await _seed_data(db)
    return session_factory


# ---------------------------------------------------------------------------
# FastAPI test application
# ---------------------------------------------------------------------------

@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
async def app(seeded, gateway) -> AsyncGenerator[FastAPI, None]:
    """The test application, with the fake gateway and the test database."""
    from tradiehub.api.deps import get_db
    from tradiehub.main import create_app

    async def _override_get_db():
        async with seeded() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async with httpx.AsyncClient() as http_client:
        container = ServiceContainer(
            payment_gateway=gateway,
            notifier=Notifier(http_client, timeout_seconds=1.0),
            http_client=http_client,
        )
        app = create_app(container=container)
        app.dependency_overrides[get_db] = _override_get_db

        limiter.enabled = False
        try:
            yield app
        finally:
            limiter.enabled = True


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient connected to the test app via ASGI transport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def db(seeded) -> async_sessionmaker[AsyncSession]:
    """Session factory for arranging and inspecting state outside the API."""
    return seeded


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

def auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    token, _ = auth_service.create_access_token(user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client_headers() -> dict[str, str]:
    return auth_headers(CLIENT_ID)


@pytest.fixture
def tradie_headers() -> dict[str, str]:
    return auth_headers(TRADIE_ID)


@pytest.fixture
def poor_tradie_headers() -> dict[str, str]:
    return auth_headers(POOR_TRADIE_ID)


# ---------------------------------------------------------------------------
# Flow helpers
# ---------------------------------------------------------------------------

API = "/api/v1"


async def create_quote_via_api(
    client: AsyncClient,
    *,
    items: Optional[list[dict[str, Any]]] = None,
    gst_enabled: bool = True,
    client_id: uuid.UUID = CLIENT_ID,
) -> httpx.Response:
    """POST a draft quote as the seeded tradie."""
    payload = {
        "clientId": str(client_id),
        "title": "Replace kitchen tap",
        "description": "Supply and fit a new mixer tap.",
        "items": items
        or [{"itemType": "labor", "description": "Labour", "quantity": "2", "unit": "hour", "unitPrice": "50"}],
        "gstEnabled": gst_enabled,
    }
    return await client.post(f"{API}/quotes", json=payload, headers=auth_headers(TRADIE_ID))


async def create_sent_quote(client: AsyncClient) -> dict[str, Any]:
    """Create a draft and send it through the portal channel."""
    created = await create_quote_via_api(client)
    quote_id = created.json()["data"]["id"]
    sent = await client.post(
        f"{API}/quotes/{quote_id}/send",
        json={"deliveryMethods": ["portal"]},
        headers=auth_headers(TRADIE_ID),
    )
    return sent.json()["data"]["quote"]


async def post_marketplace_job(
    client: AsyncClient,
    *,
    job_type: str = "plumbing",
    urgency_level: str = "high",
) -> dict[str, Any]:
    resp = await client.post(
        f"{API}/marketplace/jobs",
        json={
            "title": "Fix leaking pipe under sink",
            "description": "Water pooling in the cabinet.",
            "jobType": job_type,
            "urgencyLevel": urgency_level,
            "estimatedBudget": "400",
            "location": "Brisbane QLD",
        },
        headers=auth_headers(CLIENT_ID),
    )
    return resp.json()["data"]


def application_payload(job_id: str, **overrides) -> dict[str, Any]:
    from datetime import date

    payload = {
        "marketplaceJobId": job_id,
        "customQuote": "450",
        "proposedTimeline": "Two days next week",
        "approachDescription": "Replace the corroded section and pressure test the line.",
        "availabilityDates": [(date.today() + timedelta(days=3)).isoformat()],
    }
    payload.update(overrides)
    return payload


async def apply_to_job(
    client: AsyncClient,
    job_id: str,
    tradie_id: uuid.UUID = TRADIE_ID,
    **overrides,
) -> httpx.Response:
    return await client.post(
        f"{API}/marketplace/applications",
        json=application_payload(job_id, **overrides),
        headers=auth_headers(tradie_id),
    )


async def balance_of(db: async_sessionmaker[AsyncSession], tradie_id: uuid.UUID) -> int:
    from tradiehub.services import creditLedger

    async with db() as session:
        return await creditLedger.get_balance(session, tradie_id)


def money(value: str) -> Decimal:
    return Decimal(value)
