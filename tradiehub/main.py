"""TradieHub API -- Main Application Entry Point

Creates the FastAPI application, configures CORS middleware and rate
limiting, renders every error in the standard response envelope, and
registers all API route modules under the /api/v1 prefix.

Run with::

    uvicorn tradiehub.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from tradiehub.api.routes import auth, credits, marketplace, quotes
from tradiehub.core.config import settings
from tradiehub.core.container import ServiceContainer, build_container
from tradiehub.core.errors import (
    AppError,
    FieldError,
    InternalError,
    RateLimitExceededError,
    ValidationError,
)
from tradiehub.core.rate_limit import limiter
from tradiehub.services import quotePaymentService

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

def _error_response(exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    return _error_response(exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        FieldError(
            ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            err.get("msg", "Invalid value"),
        )
        for err in exc.errors()
    ]
    return _error_response(ValidationError("Request validation failed.", errors=errors))


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit exceeded on %s %s: %s", request.method, request.url.path, exc.detail)
    return _error_response(RateLimitExceededError(f"Rate limit exceeded: {exc.detail}"))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(InternalError())


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the application.

    ``container`` lets tests inject fake collaborators; when omitted the
    production container is built on startup and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        app.state.container = container or build_container()
        logger.info("Starting %s %s", settings.app_name, settings.app_version)
        yield
        await quotePaymentService.drain_pending_settlements()
        if owned:
            await app.state.container.aclose()
        logger.info("Shutting down %s", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    if container is not None:
        app.state.container = container

    # Rate limiting
    app.state.limiter = limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.get("/health", tags=["Health"])
    async def health():
        """Lightweight health check for load balancers and readiness checks."""
        return {"status": "ok", "version": settings.app_version}

    # Each router defines its own prefix (e.g. /quotes, /marketplace); they
    # are mounted under the shared /api/v1 prefix.
    _prefix = settings.api_v1_prefix
    app.include_router(auth.router, prefix=_prefix)
    app.include_router(quotes.router, prefix=_prefix)
    app.include_router(marketplace.router, prefix=_prefix)
    app.include_router(credits.router, prefix=_prefix)

    return app


app = create_app()
