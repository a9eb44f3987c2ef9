"""
Authentication API routes
=========================

Endpoints for user registration, login, token refresh and profile retrieval.

Routes:
  POST /api/v1/auth/register  -- create a client or tradie account
  POST /api/v1/auth/login     -- authenticate with email & password
  POST /api/v1/auth/refresh   -- exchange a refresh token for new tokens
  GET  /api/v1/auth/me        -- get the currently authenticated user
"""

from fastapi import APIRouter, Request, status

from tradiehub.api.deps import CurrentUser, DBSession
from tradiehub.api.schemas.auth import (
    AuthOut,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokensOut,
    UserOut,
)
from tradiehub.api.schemas.common import ApiResponse
from tradiehub.core.errors import AuthenticationRequiredError
from tradiehub.core.rate_limit import AUTH_LIMIT, limiter
from tradiehub.models.user import User, UserRole
from tradiehub.services import auth_service

router = APIRouter(prefix="/auth", tags=["Authentication"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _user_to_out(user: User) -> UserOut:
    """Convert a User ORM object to a UserOut schema with the role string."""
    return UserOut(
        id=user.id,
        email=user.email,
        phone=user.phone,
        first_name=user.first_name,
        last_name=user.last_name,
        business_name=user.business_name,
        role=user.role.value,
        email_verified=user.email_verified,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _tokens_to_out(tokens: dict) -> TokensOut:
    return TokensOut(
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        expires_at=tokens["expires_at"],
    )


# ---------------------------------------------------------------------------
# POST /auth/register
# ---------------------------------------------------------------------------

@router.post(
    "/register",
    response_model=ApiResponse[AuthOut],
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user account",
    description=(
        "Creates a client or tradie account and returns the user with a JWT "
        "token pair. Tradie accounts start with an empty credit balance."
    ),
)
@limiter.limit(AUTH_LIMIT)
async def register(
    request: Request,
    body: RegisterRequest,
    db: DBSession,
):
    user, tokens = await auth_service.register(
        db=db,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        role=UserRole(body.role),
        phone=body.phone,
        business_name=body.business_name,
    )
    return ApiResponse(
        message="Account created successfully.",
        data=AuthOut(user=_user_to_out(user), tokens=_tokens_to_out(tokens)),
    )


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------

@router.post(
    "/login",
    response_model=ApiResponse[AuthOut],
    summary="Authenticate with email and password",
)
@limiter.limit(AUTH_LIMIT)
async def login(
    request: Request,
    body: LoginRequest,
    db: DBSession,
):
    user, tokens = await auth_service.login(
        db=db,
        email=body.email,
        password=body.password,
    )
    return ApiResponse(
        message="Logged in successfully.",
        data=AuthOut(user=_user_to_out(user), tokens=_tokens_to_out(tokens)),
    )


# ---------------------------------------------------------------------------
# POST /auth/refresh
# ---------------------------------------------------------------------------

@router.post(
    "/refresh",
    response_model=ApiResponse[TokensOut],
    summary="Refresh access token",
)
async def refresh(
    body: RefreshRequest,
    db: DBSession,
):
    try:
        tokens = await auth_service.refresh_token(
            db=db,
            refresh_token_str=body.refresh_token,
        )
    except ValueError as exc:
        raise AuthenticationRequiredError(str(exc))

    return ApiResponse(
        message="Tokens refreshed successfully.",
        data=_tokens_to_out(tokens),
    )


# ---------------------------------------------------------------------------
# GET /auth/me
# ---------------------------------------------------------------------------

@router.get(
    "/me",
    response_model=ApiResponse[UserOut],
    summary="Get current user profile",
)
async def me(current_user: CurrentUser):
    return ApiResponse(data=_user_to_out(current_user))
