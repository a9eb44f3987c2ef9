"""
Marketplace API Routes
======================

Client-posted jobs and the credit-gated applications tradies make to them.

Routes:
  POST   /api/v1/marketplace/jobs                         -- Post a job (client)
  GET    /api/v1/marketplace/jobs                         -- Browse available jobs
  GET    /api/v1/marketplace/jobs/{job_id}                -- Job detail
  PATCH  /api/v1/marketplace/jobs/{job_id}                -- Edit a job (owner)
  DELETE /api/v1/marketplace/jobs/{job_id}                -- Delete a job (owner)
  GET    /api/v1/marketplace/jobs/{job_id}/eligibility    -- Can the tradie apply?
  GET    /api/v1/marketplace/jobs/{job_id}/applications   -- Applications (owner)
  POST   /api/v1/marketplace/applications                 -- Apply (tradie)
  GET    /api/v1/marketplace/applications                 -- Own applications (tradie)
  POST   /api/v1/marketplace/applications/bulk-status     -- Bulk status change
  GET    /api/v1/marketplace/applications/{id}            -- Application detail
  PATCH  /api/v1/marketplace/applications/{id}/status     -- Status change
  POST   /api/v1/marketplace/applications/{id}/withdraw   -- Withdraw (tradie)
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Query, Request, status

from tradiehub.api.deps import ClientUser, CurrentUser, DBSession, TradieUser
from tradiehub.api.schemas.common import ApiResponse, Page, build_page
from tradiehub.api.schemas.marketplace import (
    ApplicationCreateRequest,
    ApplicationOut,
    ApplicationStatusUpdateRequest,
    ApplicationWithdrawRequest,
    BulkItemResultOut,
    BulkStatusUpdateRequest,
    BulkUpdateOut,
    EligibilityOut,
    MarketplaceJobCreateRequest,
    MarketplaceJobOut,
    MarketplaceJobUpdateRequest,
)
from tradiehub.core.config import settings
from tradiehub.core.rate_limit import APPLICATION_LIMIT, limiter
from tradiehub.models.marketplace import ApplicationStatus, MarketplaceJob, MarketplaceJobType, UrgencyLevel
from tradiehub.services import applicationService, marketplaceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/marketplace", tags=["Marketplace"])


def _job_out(job: MarketplaceJob) -> MarketplaceJobOut:
    out = MarketplaceJobOut.model_validate(job)
    out.credit_cost = marketplaceService.job_credit_cost(job)
    return out


# ---------------------------------------------------------------------------
# Marketplace jobs
# ---------------------------------------------------------------------------

@router.post(
    "/jobs",
    response_model=ApiResponse[MarketplaceJobOut],
    status_code=status.HTTP_201_CREATED,
    summary="Post a marketplace job",
)
async def create_job(db: DBSession, user: ClientUser, body: MarketplaceJobCreateRequest):
    job = await marketplaceService.create_marketplace_job(
        db,
        user.id,
        title=body.title,
        description=body.description,
        job_type=body.job_type,
        urgency_level=body.urgency_level,
        estimated_budget=body.estimated_budget,
        location=body.location,
        date_required=body.date_required,
        expires_at=body.expires_at,
    )
    return ApiResponse(message="Job posted", data=_job_out(job))


@router.get(
    "/jobs",
    response_model=ApiResponse[Page[MarketplaceJobOut]],
    summary="Browse available marketplace jobs",
)
async def list_jobs(
    db: DBSession,
    user: CurrentUser,
    job_type: Optional[MarketplaceJobType] = Query(None, alias="jobType"),
    urgency_level: Optional[UrgencyLevel] = Query(None, alias="urgencyLevel"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"),
):
    result = await marketplaceService.list_available_jobs(
        db,
        job_type=job_type,
        urgency_level=urgency_level,
        page=page,
        page_size=page_size,
    )
    payload = build_page(result, MarketplaceJobOut)
    payload["items"] = [_job_out(job) for job in result.items]
    return ApiResponse(data=payload)


@router.get(
    "/jobs/{job_id}",
    response_model=ApiResponse[MarketplaceJobOut],
    summary="Get a marketplace job",
)
async def get_job(db: DBSession, user: CurrentUser, job_id: uuid.UUID):
    job = await marketplaceService.get_marketplace_job(db, job_id)
    return ApiResponse(data=_job_out(job))


@router.patch(
    "/jobs/{job_id}",
    response_model=ApiResponse[MarketplaceJobOut],
    summary="Edit a marketplace job",
)
async def update_job(
    db: DBSession,
    user: ClientUser,
    job_id: uuid.UUID,
    body: MarketplaceJobUpdateRequest,
):
    job = await marketplaceService.update_marketplace_job(
        db, job_id, user.id, body.model_dump(exclude_unset=True)
    )
    return ApiResponse(message="Job updated", data=_job_out(job))


@router.delete(
    "/jobs/{job_id}",
    response_model=ApiResponse[None],
    summary="Delete a marketplace job without applications",
)
async def delete_job(db: DBSession, user: ClientUser, job_id: uuid.UUID):
    await marketplaceService.delete_marketplace_job(db, job_id, user.id)
    return ApiResponse(message="Job deleted")


@router.get(
    "/jobs/{job_id}/eligibility",
    response_model=ApiResponse[EligibilityOut],
    summary="Check whether the current tradie can apply",
)
async def eligibility(db: DBSession, user: TradieUser, job_id: uuid.UUID):
    result = await applicationService.validate_application_eligibility(db, user.id, job_id)
    return ApiResponse(data=EligibilityOut.model_validate(result))


@router.get(
    "/jobs/{job_id}/applications",
    response_model=ApiResponse[Page[ApplicationOut]],
    summary="Applications received for a job",
)
async def job_applications(
    db: DBSession,
    user: CurrentUser,
    job_id: uuid.UUID,
    status_filter: Optional[ApplicationStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"),
):
    result = await applicationService.list_applications_for_job(
        db, job_id, user, status_filter=status_filter, page=page, page_size=page_size
    )
    return ApiResponse(data=build_page(result, ApplicationOut))


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------

@router.post(
    "/applications",
    response_model=ApiResponse[ApplicationOut],
    status_code=status.HTTP_201_CREATED,
    summary="Apply to a marketplace job",
)
@limiter.limit(APPLICATION_LIMIT)
async def create_application(
    request: Request,
    db: DBSession,
    user: TradieUser,
    body: ApplicationCreateRequest,
):
    application = await applicationService.create_application(
        db,
        user.id,
        marketplace_job_id=body.marketplace_job_id,
        custom_quote=body.custom_quote,
        proposed_timeline=body.proposed_timeline,
        approach_description=body.approach_description,
        availability_dates=body.availability_dates,
        cover_message=body.cover_message,
    )
    return ApiResponse(
        message="Application submitted",
        data=ApplicationOut.model_validate(application),
    )


@router.get(
    "/applications",
    response_model=ApiResponse[Page[ApplicationOut]],
    summary="The current tradie's applications",
)
async def my_applications(
    db: DBSession,
    user: TradieUser,
    status_filter: Optional[ApplicationStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, alias="pageSize"),
):
    result = await applicationService.list_applications_for_tradie(
        db, user.id, status_filter=status_filter, page=page, page_size=page_size
    )
    return ApiResponse(data=build_page(result, ApplicationOut))


@router.post(
    "/applications/bulk-status",
    response_model=ApiResponse[BulkUpdateOut],
    summary="Change the status of several applications",
    description="Each application is processed independently; failures are reported per item.",
)
@limiter.limit(APPLICATION_LIMIT)
async def bulk_status(
    request: Request,
    db: DBSession,
    user: CurrentUser,
    body: BulkStatusUpdateRequest,
):
    results = await applicationService.bulk_update_status(
        db, body.application_ids, body.status, user, body.reason
    )
    succeeded = sum(1 for r in results if r.success)
    return ApiResponse(
        message=f"{succeeded} of {len(results)} applications updated",
        data=BulkUpdateOut(
            results=[BulkItemResultOut.model_validate(r) for r in results],
            succeeded=succeeded,
            failed=len(results) - succeeded,
        ),
    )


@router.get(
    "/applications/{application_id}",
    response_model=ApiResponse[ApplicationOut],
    summary="Get an application",
)
async def get_application(db: DBSession, user: CurrentUser, application_id: uuid.UUID):
    application = await applicationService.get_application(db, application_id, user)
    return ApiResponse(data=ApplicationOut.model_validate(application))


@router.patch(
    "/applications/{application_id}/status",
    response_model=ApiResponse[ApplicationOut],
    summary="Move an application through review",
)
@limiter.limit(APPLICATION_LIMIT)
async def update_application_status(
    request: Request,
    db: DBSession,
    user: CurrentUser,
    application_id: uuid.UUID,
    body: ApplicationStatusUpdateRequest,
):
    application = await applicationService.update_application_status(
        db, application_id, body.status, user, body.reason
    )
    return ApiResponse(
        message=f"Application {application.status.value}",
        data=ApplicationOut.model_validate(application),
    )


@router.post(
    "/applications/{application_id}/withdraw",
    response_model=ApiResponse[ApplicationOut],
    summary="Withdraw an application",
)
@limiter.limit(APPLICATION_LIMIT)
async def withdraw_application(
    request: Request,
    db: DBSession,
    user: TradieUser,
    application_id: uuid.UUID,
    body: Optional[ApplicationWithdrawRequest] = None,
):
    body = body or ApplicationWithdrawRequest()
    application = await applicationService.withdraw_application(
        db, application_id, user.id, body.reason, body.refund_credits
    )
    return ApiResponse(
        message="Application withdrawn",
        data=ApplicationOut.model_validate(application),
    )
