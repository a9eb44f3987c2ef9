"""
Quote API Routes
================

REST endpoints for the quote lifecycle, pricing and payments.

Routes:
  POST   /api/v1/quotes                               -- Create a draft quote (tradie)
  GET    /api/v1/quotes                               -- List own quotes
  POST   /api/v1/quotes/calculate                     -- Price a set of line items
  POST   /api/v1/quotes/ai-pricing                    -- AI pricing suggestion
  GET    /api/v1/quotes/analytics                     -- Tradie quote analytics
  GET    /api/v1/quotes/expiring                      -- Quotes expiring soon
  GET    /api/v1/quotes/view/{quote_number}           -- Public client view
  POST   /api/v1/quotes/accept/{quote_number}         -- Client accepts
  POST   /api/v1/quotes/reject/{quote_number}         -- Client rejects
  POST   /api/v1/quotes/{quote_number}/accept-with-payment
  POST   /api/v1/quotes/{quote_number}/payment-intent
  GET    /api/v1/quotes/{quote_id}                    -- Quote detail
  PUT    /api/v1/quotes/{quote_id}                    -- Edit a quote
  DELETE /api/v1/quotes/{quote_id}                    -- Delete a quote
  PATCH  /api/v1/quotes/{quote_id}/status             -- Tradie status change
  POST   /api/v1/quotes/{quote_id}/send               -- Send to the client
  POST   /api/v1/quotes/{quote_id}/invoice            -- Generate the invoice
  POST   /api/v1/quotes/{quote_id}/refund             -- Refund a payment
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Query, Request, status

from tradiehub.api.deps import ClientUser, Container, CurrentUser, DBSession, RequestID, TradieUser
from tradiehub.api.schemas.common import ApiResponse, Page, build_page
from tradiehub.api.schemas.quote import (
    AcceptWithPaymentRequest,
    AiPricingRequest,
    ChannelResultOut,
    InvoiceOut,
    PaymentAcceptanceOut,
    PaymentIntentOut,
    PaymentOut,
    PricingSuggestionOut,
    QuoteAnalyticsOut,
    QuoteCalculateRequest,
    QuoteCalculationOut,
    QuoteCreateRequest,
    QuoteDeliveryOut,
    QuoteOut,
    QuoteStatusUpdateRequest,
    QuoteSummaryOut,
    QuoteUpdateRequest,
    RefundOut,
    RefundRequest,
    RejectQuoteRequest,
    SendQuoteRequest,
)
from tradiehub.core.config import settings
from tradiehub.core.rate_limit import QUOTE_ACTION_LIMIT, limiter
from tradiehub.models.base import utcnow
from tradiehub.models.quote import QuoteStatus
from tradiehub.services import aiPricingService, quotePaymentService, quoteService
from tradiehub.services.pricingCalculator import calculate_quote

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes", tags=["Quotes"])


# ---------------------------------------------------------------------------
# Collection endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=ApiResponse[QuoteOut],
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft quote",
)
async def create_quote(db: DBSession, user: TradieUser, body: QuoteCreateRequest):
    quote = await quoteService.create_quote(
        db,
        user.id,
        client_id=body.client_id,
        job_id=body.job_id,
        title=body.title,
        description=body.description,
        items=[item.to_line_item() for item in body.items],
        gst_enabled=body.gst_enabled,
        valid_until=body.valid_until,
        terms_conditions=body.terms_conditions,
        notes=body.notes,
    )
    return ApiResponse(message="Quote created", data=QuoteOut.model_validate(quote))


@router.get(
    "",
    response_model=ApiResponse[Page[QuoteSummaryOut]],
    summary="List quotes sent or received by the current user",
)
async def list_quotes(
    db: DBSession,
    user: CurrentUser,
    status_filter: Optional[QuoteStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"),
):
    result = await quoteService.list_quotes(
        db, user, status_filter=status_filter, page=page, page_size=page_size
    )
    return ApiResponse(data=build_page(result, QuoteSummaryOut))


@router.post(
    "/calculate",
    response_model=ApiResponse[QuoteCalculationOut],
    summary="Calculate totals for a set of line items",
)
async def calculate(user: CurrentUser, body: QuoteCalculateRequest):
    calculation = calculate_quote([item.to_line_item() for item in body.items], body.gst_enabled)
    return ApiResponse(data=QuoteCalculationOut.model_validate(calculation))


@router.post(
    "/ai-pricing",
    response_model=ApiResponse[PricingSuggestionOut],
    summary="Suggest a price for a job",
    description="Advisory only: no quote is created or changed.",
)
@limiter.limit(QUOTE_ACTION_LIMIT)
async def ai_pricing(
    request: Request,
    user: TradieUser,
    container: Container,
    body: AiPricingRequest,
):
    suggestion = await aiPricingService.get_suggested_pricing(
        container.http_client,
        job_description=body.job_description,
        job_type=body.job_type,
        hourly_rate=body.hourly_rate,
        estimated_duration=body.estimated_duration,
        location=body.location,
    )
    return ApiResponse(data=PricingSuggestionOut.model_validate(suggestion))


@router.get(
    "/analytics",
    response_model=ApiResponse[QuoteAnalyticsOut],
    summary="Quote analytics for the current tradie",
)
async def analytics(
    db: DBSession,
    user: TradieUser,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
):
    end_date = end_date or utcnow()
    start_date = start_date or end_date - timedelta(days=30)
    result = await quoteService.get_analytics(db, user.id, start_date, end_date)
    return ApiResponse(data=QuoteAnalyticsOut.model_validate(result))


@router.get(
    "/expiring",
    response_model=ApiResponse[list[QuoteSummaryOut]],
    summary="Sent quotes that expire soon",
)
async def expiring(db: DBSession, user: TradieUser):
    quotes = await quoteService.get_expiring_quotes(db, user.id)
    return ApiResponse(data=[QuoteSummaryOut.model_validate(q) for q in quotes])


# ---------------------------------------------------------------------------
# Client-facing endpoints (by quote number)
# ---------------------------------------------------------------------------

@router.get(
    "/view/{quote_number}",
    response_model=ApiResponse[QuoteOut],
    summary="View a quote (public link)",
)
async def view_quote(db: DBSession, quote_number: str):
    quote = await quoteService.view_quote(db, quote_number)
    return ApiResponse(data=QuoteOut.model_validate(quote))


@router.post(
    "/accept/{quote_number}",
    response_model=ApiResponse[QuoteOut],
    summary="Accept a quote",
)
@limiter.limit(QUOTE_ACTION_LIMIT)
async def accept_quote(request: Request, db: DBSession, user: ClientUser, quote_number: str):
    quote = await quoteService.accept_quote(db, quote_number, user.id)
    return ApiResponse(message="Quote accepted", data=QuoteOut.model_validate(quote))


@router.post(
    "/reject/{quote_number}",
    response_model=ApiResponse[QuoteOut],
    summary="Reject a quote",
)
@limiter.limit(QUOTE_ACTION_LIMIT)
async def reject_quote(
    request: Request,
    db: DBSession,
    user: ClientUser,
    quote_number: str,
    body: Optional[RejectQuoteRequest] = None,
):
    reason = body.reason if body else None
    quote = await quoteService.reject_quote(db, quote_number, user.id, reason)
    return ApiResponse(message="Quote rejected", data=QuoteOut.model_validate(quote))


@router.post(
    "/{quote_number}/accept-with-payment",
    response_model=ApiResponse[PaymentAcceptanceOut],
    summary="Pay for and accept a quote",
    description=(
        "Charges the quote total to the given payment method and accepts the "
        "quote. A declined or timed-out payment leaves the quote unchanged."
    ),
)
@limiter.limit(QUOTE_ACTION_LIMIT)
async def accept_with_payment(
    request: Request,
    db: DBSession,
    user: ClientUser,
    container: Container,
    request_id: RequestID,
    quote_number: str,
    body: AcceptWithPaymentRequest,
):
    result = await quotePaymentService.accept_quote_with_payment(
        db,
        container.payment_gateway,
        quote_number,
        user.id,
        body.payment_method_id,
        request_id,
    )
    return ApiResponse(
        message="Quote accepted and paid",
        data=PaymentAcceptanceOut(
            quote=QuoteOut.model_validate(result.quote),
            payment=PaymentOut.model_validate(result.payment),
        ),
    )


@router.post(
    "/{quote_number}/payment-intent",
    response_model=ApiResponse[PaymentIntentOut],
    summary="Create a payment intent for client-side confirmation",
)
@limiter.limit(QUOTE_ACTION_LIMIT)
async def payment_intent(
    request: Request,
    db: DBSession,
    user: ClientUser,
    container: Container,
    request_id: RequestID,
    quote_number: str,
):
    info = await quotePaymentService.create_payment_intent(
        db, container.payment_gateway, quote_number, user.id, request_id
    )
    return ApiResponse(
        data=PaymentIntentOut(
            quote_number=info.quote.quote_number,
            payment_intent_id=info.payment_intent_id,
            client_secret=info.client_secret,
            amount=info.amount,
            currency=info.currency,
        )
    )


# ---------------------------------------------------------------------------
# Single-quote endpoints (by id)
# ---------------------------------------------------------------------------

@router.get(
    "/{quote_id}",
    response_model=ApiResponse[QuoteOut],
    summary="Get a quote",
)
async def get_quote(db: DBSession, user: CurrentUser, quote_id: uuid.UUID):
    quote = await quoteService.get_quote(db, quote_id, user)
    return ApiResponse(data=QuoteOut.model_validate(quote))


@router.put(
    "/{quote_id}",
    response_model=ApiResponse[QuoteOut],
    summary="Update a quote",
)
async def update_quote(
    db: DBSession,
    user: TradieUser,
    quote_id: uuid.UUID,
    body: QuoteUpdateRequest,
):
    quote = await quoteService.update_quote(db, quote_id, user.id, body.to_changes())
    return ApiResponse(message="Quote updated", data=QuoteOut.model_validate(quote))


@router.delete(
    "/{quote_id}",
    response_model=ApiResponse[None],
    summary="Delete a quote",
)
async def delete_quote(db: DBSession, user: TradieUser, quote_id: uuid.UUID):
    await quoteService.delete_quote(db, quote_id, user.id)
    return ApiResponse(message="Quote deleted")


@router.patch(
    "/{quote_id}/status",
    response_model=ApiResponse[QuoteOut],
    summary="Change a quote's status",
)
@limiter.limit(QUOTE_ACTION_LIMIT)
async def update_status(
    request: Request,
    db: DBSession,
    user: TradieUser,
    quote_id: uuid.UUID,
    body: QuoteStatusUpdateRequest,
):
    quote = await quoteService.update_quote_status(db, quote_id, user.id, body.status, body.reason)
    return ApiResponse(
        message=f"Quote {quote.status.value}",
        data=QuoteOut.model_validate(quote),
    )


@router.post(
    "/{quote_id}/send",
    response_model=ApiResponse[QuoteDeliveryOut],
    summary="Send a draft quote to the client",
)
@limiter.limit(QUOTE_ACTION_LIMIT)
async def send_quote(
    request: Request,
    db: DBSession,
    user: TradieUser,
    container: Container,
    quote_id: uuid.UUID,
    body: SendQuoteRequest,
):
    result = await quoteService.send_quote(
        db,
        quote_id,
        user.id,
        container.notifier,
        methods=body.delivery_methods,
        recipient_email=body.recipient_email,
        recipient_phone=body.recipient_phone,
        message=body.message,
    )
    return ApiResponse(
        message="Quote sent" if result.success else "Quote sent with delivery failures",
        data=QuoteDeliveryOut(
            quote=QuoteOut.model_validate(result.quote),
            success=result.success,
            tracking_id=result.tracking_id,
            channels=[ChannelResultOut.model_validate(c) for c in result.channels],
            errors=result.errors,
        ),
    )


@router.post(
    "/{quote_id}/invoice",
    response_model=ApiResponse[InvoiceOut],
    status_code=status.HTTP_201_CREATED,
    summary="Generate the invoice for an accepted quote",
)
async def generate_invoice(
    db: DBSession,
    user: TradieUser,
    request_id: RequestID,
    quote_id: uuid.UUID,
):
    invoice = await quotePaymentService.generate_quote_invoice(db, quote_id, user.id, request_id)
    return ApiResponse(message="Invoice generated", data=InvoiceOut.model_validate(invoice))


@router.post(
    "/{quote_id}/refund",
    response_model=ApiResponse[RefundOut],
    summary="Refund all or part of a quote payment",
)
@limiter.limit(QUOTE_ACTION_LIMIT)
async def refund(
    request: Request,
    db: DBSession,
    user: TradieUser,
    container: Container,
    request_id: RequestID,
    quote_id: uuid.UUID,
    body: RefundRequest,
):
    outcome = await quotePaymentService.refund_quote_payment(
        db,
        container.payment_gateway,
        quote_id,
        user.id,
        body.amount,
        body.reason,
        request_id,
    )
    return ApiResponse(
        message="Refund processed",
        data=RefundOut(
            refund_id=outcome.refund.refund_id,
            amount=outcome.refund.amount,
            status=outcome.refund.status,
            reason=outcome.refund.reason,
            total_refunded=outcome.total_refunded,
            payment_status=outcome.quote.payment_status,
        ),
    )
