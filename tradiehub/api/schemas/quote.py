"""
Pydantic v2 schemas for the Quotes API.

Request models only check shapes and basic ranges; business validation
(item limits, per-item quantity/price bounds, totals) lives in the
services so the same rules apply however a quote is created.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from tradiehub.api.schemas.common import CamelModel
from tradiehub.models.quote import QuoteItemType, QuotePaymentStatus, QuoteStatus
from tradiehub.services.deliveryService import DeliveryMethod
from tradiehub.services.pricingCalculator import LineItem


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class QuoteItemIn(CamelModel):
    item_type: QuoteItemType = QuoteItemType.OTHER
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal
    unit: str = Field(default="each", max_length=20)
    unit_price: Decimal

    def to_line_item(self) -> LineItem:
        return LineItem(
            quantity=self.quantity,
            unit_price=self.unit_price,
            description=self.description,
            item_type=self.item_type.value,
            unit=self.unit,
        )


class QuoteCreateRequest(CamelModel):
    client_id: uuid.UUID
    job_id: Optional[uuid.UUID] = None
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    items: list[QuoteItemIn]
    gst_enabled: bool = True
    valid_until: Optional[datetime] = None
    terms_conditions: Optional[str] = Field(None, max_length=5000)
    notes: Optional[str] = Field(None, max_length=2000)


class QuoteUpdateRequest(CamelModel):
    """Partial update; only fields present in the body are applied."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    items: Optional[list[QuoteItemIn]] = None
    gst_enabled: Optional[bool] = None
    valid_until: Optional[datetime] = None
    terms_conditions: Optional[str] = Field(None, max_length=5000)
    notes: Optional[str] = Field(None, max_length=2000)

    def to_changes(self) -> dict:
        changes = self.model_dump(exclude_unset=True, exclude={"items"})
        if "items" in self.model_fields_set and self.items is not None:
            changes["items"] = [item.to_line_item() for item in self.items]
        return changes


class QuoteCalculateRequest(CamelModel):
    items: list[QuoteItemIn]
    gst_enabled: bool = True


class QuoteStatusUpdateRequest(CamelModel):
    status: QuoteStatus
    reason: Optional[str] = Field(None, max_length=1000)


class SendQuoteRequest(CamelModel):
    delivery_methods: list[DeliveryMethod] = Field(default_factory=lambda: [DeliveryMethod.EMAIL])
    recipient_email: Optional[str] = Field(None, max_length=320)
    recipient_phone: Optional[str] = Field(None, max_length=20)
    message: Optional[str] = Field(None, max_length=2000)


class RejectQuoteRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=1000)


class AcceptWithPaymentRequest(CamelModel):
    payment_method_id: str = Field(..., min_length=1, max_length=255)


class RefundRequest(CamelModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=1000)


class AiPricingRequest(CamelModel):
    job_description: str
    job_type: str
    hourly_rate: Decimal
    estimated_duration: Optional[float] = Field(None, gt=0)
    location: Optional[str] = Field(None, max_length=255)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class QuoteItemOut(CamelModel):
    id: uuid.UUID
    item_type: QuoteItemType
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    line_total: Decimal
    sort_order: int


class QuoteOut(CamelModel):
    id: uuid.UUID
    quote_number: str
    tradie_id: uuid.UUID
    client_id: uuid.UUID
    job_id: Optional[uuid.UUID] = None
    title: str
    description: Optional[str] = None
    status: QuoteStatus
    payment_status: Optional[QuotePaymentStatus] = None
    gst_enabled: bool
    subtotal: Decimal
    gst_amount: Decimal
    total_amount: Decimal
    currency: str
    valid_until: datetime
    terms_conditions: Optional[str] = None
    notes: Optional[str] = None
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: list[QuoteItemOut] = []


class QuoteSummaryOut(CamelModel):
    id: uuid.UUID
    quote_number: str
    title: str
    status: QuoteStatus
    total_amount: Decimal
    currency: str
    valid_until: datetime
    created_at: datetime


class QuoteCalculationOut(CamelModel):
    subtotal: Decimal
    gst_amount: Decimal
    total_amount: Decimal
    gst_rate: Decimal
    line_totals: list[Decimal]


class ChannelResultOut(CamelModel):
    method: DeliveryMethod
    success: bool
    reference: Optional[str] = None
    error: Optional[str] = None


class QuoteDeliveryOut(CamelModel):
    quote: QuoteOut
    success: bool
    tracking_id: str
    channels: list[ChannelResultOut]
    errors: list[str] = []


class PaymentOut(CamelModel):
    id: uuid.UUID
    payment_intent_id: Optional[str] = None
    amount: Decimal
    currency: str
    status: str


class PaymentAcceptanceOut(CamelModel):
    quote: QuoteOut
    payment: PaymentOut


class PaymentIntentOut(CamelModel):
    quote_number: str
    payment_intent_id: str
    client_secret: str
    amount: Decimal
    currency: str


class InvoiceOut(CamelModel):
    id: uuid.UUID
    quote_id: uuid.UUID
    invoice_number: str
    subtotal: Decimal
    gst_amount: Decimal
    total_amount: Decimal
    currency: str
    line_items: list[dict]
    issued_at: datetime
    due_date: datetime


class RefundOut(CamelModel):
    refund_id: str
    amount: Decimal
    status: str
    reason: Optional[str] = None
    total_refunded: Decimal
    payment_status: Optional[QuotePaymentStatus] = None


class StatusBreakdownOut(CamelModel):
    status: QuoteStatus
    count: int
    total_amount: Decimal


class QuoteAnalyticsOut(CamelModel):
    start_date: datetime
    end_date: datetime
    total_quotes: int
    total_value: Decimal
    average_quote_value: Decimal
    acceptance_rate: float
    conversion_rate: float
    average_response_hours: float
    by_status: list[StatusBreakdownOut]
    paid_quotes: int
    refunded_quotes: int
    total_revenue: Decimal


class PricingBreakdownOut(CamelModel):
    labour: Decimal
    materials: Decimal
    markup: Decimal


class PricingSuggestionOut(CamelModel):
    suggested_total: Decimal
    min_price: Decimal
    max_price: Decimal
    complexity_factor: float
    estimated_hours: float
    confidence: float
    breakdown: PricingBreakdownOut
    reasoning: str
    source: str
    warnings: list[str] = []
