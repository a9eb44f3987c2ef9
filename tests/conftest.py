"""
Shared pytest fixtures for TradieHub unit tests.

Provides mock database sessions and sample domain objects built from the
production ORM models without requiring a live database connection.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from tradiehub.models.marketplace import (
    ApplicationStatus,
    JobApplication,
    MarketplaceJob,
    MarketplaceJobStatus,
    MarketplaceJobType,
    UrgencyLevel,
)
from tradiehub.models.quote import Quote, QuoteItem, QuoteItemType, QuoteStatus
from tradiehub.models.user import User, UserRole, UserStatus


# ---------------------------------------------------------------------------
# Database session mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db() -> AsyncMock:
    """Async mock of ``AsyncSession``.

    Provides a mock that supports ``db.execute()``, ``db.add()``,
    ``db.flush()``, ``db.refresh()`` and ``db.commit()`` out of the box.
    Individual tests can configure ``mock_db.execute.return_value`` to
    control query results.
    """
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


def execute_result(*, rowcount: int = 1, scalar=None) -> MagicMock:
    """A stand-in for the ``Result`` returned by ``AsyncSession.execute``."""
    result = MagicMock()
    result.rowcount = rowcount
    result.scalar_one_or_none.return_value = scalar
    result.scalar_one.return_value = scalar
    return result


@pytest.fixture
def make_result():
    return execute_result


# ---------------------------------------------------------------------------
# User fixtures
# ---------------------------------------------------------------------------


def _user(role: UserRole, email: str) -> User:
    now = datetime.now(timezone.utc)
    return User(
        id=uuid.uuid4(),
        email=email,
        first_name="Sam",
        last_name="Taylor",
        role=role,
        status=UserStatus.ACTIVE,
        email_verified=True,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def sample_client() -> User:
    return _user(UserRole.CLIENT, "client@example.com")


@pytest.fixture
def sample_tradie() -> User:
    return _user(UserRole.TRADIE, "tradie@example.com")


@pytest.fixture
def sample_admin() -> User:
    return _user(UserRole.ADMIN, "admin@example.com")


# ---------------------------------------------------------------------------
# Quote fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_quote(sample_tradie: User, sample_client: User) -> Quote:
    """A sent quote for $110.00 incl. GST, valid for another week."""
    now = datetime.now(timezone.utc)
    quote = Quote(
        id=uuid.uuid4(),
        quote_number="QT4821307",
        tradie_id=sample_tradie.id,
        client_id=sample_client.id,
        title="Replace kitchen tap",
        gst_enabled=True,
        subtotal=Decimal("100.00"),
        gst_amount=Decimal("10.00"),
        total_amount=Decimal("110.00"),
        currency="AUD",
        status=QuoteStatus.SENT,
        valid_until=now + timedelta(days=7),
        sent_at=now,
        created_at=now,
        updated_at=now,
    )
    quote.items = [
        QuoteItem(
            id=uuid.uuid4(),
            item_type=QuoteItemType.LABOR,
            description="Labour",
            quantity=Decimal("2"),
            unit="hour",
            unit_price=Decimal("50.00"),
            line_total=Decimal("100.00"),
            sort_order=0,
        )
    ]
    return quote


# ---------------------------------------------------------------------------
# Marketplace fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_marketplace_job(sample_client: User) -> MarketplaceJob:
    now = datetime.now(timezone.utc)
    return MarketplaceJob(
        id=uuid.uuid4(),
        client_id=sample_client.id,
        title="Fix leaking pipe",
        job_type=MarketplaceJobType.PLUMBING,
        urgency_level=UrgencyLevel.HIGH,
        status=MarketplaceJobStatus.AVAILABLE,
        application_count=0,
        expires_at=now + timedelta(days=5),
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def sample_application(
    sample_marketplace_job: MarketplaceJob, sample_tradie: User
) -> JobApplication:
    now = datetime.now(timezone.utc)
    return JobApplication(
        id=uuid.uuid4(),
        marketplace_job_id=sample_marketplace_job.id,
        tradie_id=sample_tradie.id,
        custom_quote=Decimal("450.00"),
        proposed_timeline="Two days next week",
        approach_description="Replace the corroded section and pressure test.",
        availability_dates=[(now + timedelta(days=2)).date().isoformat()],
        credits_used=5,
        status=ApplicationStatus.SUBMITTED,
        application_timestamp=now,
        created_at=now,
        updated_at=now,
    )
