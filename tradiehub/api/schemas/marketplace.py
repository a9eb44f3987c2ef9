"""
Pydantic v2 schemas for the marketplace job, application and credit APIs.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from tradiehub.api.schemas.common import CamelModel
from tradiehub.models.credit import CreditTransactionType
from tradiehub.models.marketplace import (
    ApplicationStatus,
    MarketplaceJobStatus,
    MarketplaceJobType,
    UrgencyLevel,
)


# ---------------------------------------------------------------------------
# Marketplace jobs
# ---------------------------------------------------------------------------

class MarketplaceJobCreateRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    job_type: MarketplaceJobType = MarketplaceJobType.GENERAL
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    estimated_budget: Optional[Decimal] = Field(None, gt=0)
    location: Optional[str] = Field(None, max_length=255)
    date_required: Optional[date] = None
    expires_at: Optional[datetime] = None


class MarketplaceJobUpdateRequest(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    urgency_level: Optional[UrgencyLevel] = None
    estimated_budget: Optional[Decimal] = Field(None, gt=0)
    location: Optional[str] = Field(None, max_length=255)
    date_required: Optional[date] = None
    expires_at: Optional[datetime] = None


class MarketplaceJobOut(CamelModel):
    id: uuid.UUID
    client_id: uuid.UUID
    title: str
    description: Optional[str] = None
    job_type: MarketplaceJobType
    status: MarketplaceJobStatus
    urgency_level: UrgencyLevel
    estimated_budget: Optional[Decimal] = None
    location: Optional[str] = None
    date_required: Optional[date] = None
    expires_at: Optional[datetime] = None
    application_count: int
    assigned_tradie_id: Optional[uuid.UUID] = None
    credit_cost: Optional[int] = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------

class ApplicationCreateRequest(CamelModel):
    marketplace_job_id: uuid.UUID
    custom_quote: Decimal
    proposed_timeline: str
    approach_description: str
    availability_dates: list[date]
    cover_message: Optional[str] = None


class ApplicationWithdrawRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=1000)
    refund_credits: bool = True


class ApplicationStatusUpdateRequest(CamelModel):
    status: ApplicationStatus
    reason: Optional[str] = Field(None, max_length=1000)


class BulkStatusUpdateRequest(CamelModel):
    application_ids: list[uuid.UUID] = Field(..., min_length=1)
    status: ApplicationStatus
    reason: Optional[str] = Field(None, max_length=1000)


class ApplicationOut(CamelModel):
    id: uuid.UUID
    marketplace_job_id: uuid.UUID
    tradie_id: uuid.UUID
    custom_quote: Decimal
    proposed_timeline: str
    approach_description: str
    availability_dates: list[date]
    cover_message: Optional[str] = None
    credits_used: int
    status: ApplicationStatus
    status_reason: Optional[str] = None
    application_timestamp: datetime
    reviewed_at: Optional[datetime] = None
    withdrawn_at: Optional[datetime] = None


class EligibilityOut(CamelModel):
    can_apply: bool
    reasons: list[str]
    required_credits: int
    current_balance: int


class BulkItemResultOut(CamelModel):
    application_id: uuid.UUID
    success: bool
    error: Optional[str] = None
    code: Optional[str] = None


class BulkUpdateOut(CamelModel):
    results: list[BulkItemResultOut]
    succeeded: int
    failed: int


# ---------------------------------------------------------------------------
# Credits
# ---------------------------------------------------------------------------

class CreditPurchaseRequest(CamelModel):
    amount: int = Field(..., gt=0, le=10_000)


class CreditTransactionOut(CamelModel):
    id: uuid.UUID
    amount: int
    transaction_type: CreditTransactionType
    reference_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    balance_after: int
    created_at: datetime


class CreditBalanceOut(CamelModel):
    balance: int
    transactions: list[CreditTransactionOut] = []
