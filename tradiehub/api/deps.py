"""
Shared FastAPI dependencies for the TradieHub backend.

Provides the async database session dependency used by all route handlers,
the service container attached to the application, and authentication
dependencies for extracting the current user from JWT Bearer tokens.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tradiehub.core.config import settings
from tradiehub.core.container import ServiceContainer
from tradiehub.core.errors import AuthenticationRequiredError, UnauthorizedAccessError
from tradiehub.models.user import User, UserRole

# ---------------------------------------------------------------------------
# Async engine & session factory
# ---------------------------------------------------------------------------
# The engine is created once at module import time. The session factory
# produces ``AsyncSession`` instances scoped to a single request via the
# ``get_db`` dependency below.
# ---------------------------------------------------------------------------

engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for one request.

    The session is committed when the handler returns and rolled back when
    it raises, so every service call inside a request shares one
    transaction.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DBSession = Annotated[AsyncSession, Depends(get_db)]


# ---------------------------------------------------------------------------
# Service container & request metadata
# ---------------------------------------------------------------------------

def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


Container = Annotated[ServiceContainer, Depends(get_container)]


def get_request_id(request: Request) -> Optional[str]:
    """Caller-supplied ``X-Request-ID`` used as the payment idempotency seed."""
    return request.headers.get("X-Request-ID")


RequestID = Annotated[Optional[str], Depends(get_request_id)]


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(_bearer_scheme)],
    db: DBSession,
) -> User:
    """Extract and validate a Bearer token from the Authorization header.

    Raises ``AuthenticationRequiredError`` (401) if the token is missing,
    expired, or belongs to an inactive account.
    """
    from tradiehub.services import auth_service

    if credentials is None:
        raise AuthenticationRequiredError()
    try:
        return await auth_service.get_current_user(db, credentials.credentials)
    except ValueError as exc:
        raise AuthenticationRequiredError(str(exc)) from exc


CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_tradie_user(user: CurrentUser) -> User:
    if user.role != UserRole.TRADIE:
        raise UnauthorizedAccessError("This action is only available to tradies.")
    return user


async def get_client_user(user: CurrentUser) -> User:
    if user.role != UserRole.CLIENT:
        raise UnauthorizedAccessError("This action is only available to clients.")
    return user


TradieUser = Annotated[User, Depends(get_tradie_user)]
ClientUser = Annotated[User, Depends(get_client_user)]
