"""
Pydantic v2 schemas for authentication API endpoints.

All models use camelCase field names on the wire via the shared
``CamelModel`` config, so both snake_case and camelCase are accepted for
construction.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from tradiehub.api.schemas.common import CamelModel


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class RegisterRequest(CamelModel):
    """Request body for POST /auth/register."""

    email: str = Field(..., max_length=320, description="User email address")
    password: str = Field(
        ..., min_length=8, max_length=128, description="Password (min 8 characters)"
    )
    first_name: str = Field(..., min_length=1, max_length=100, description="First name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Last name")
    phone: Optional[str] = Field(None, max_length=20, description="Phone number")
    business_name: Optional[str] = Field(None, max_length=200)
    role: str = Field(
        ...,
        pattern=r"^(client|tradie)$",
        description="User role: client or tradie",
    )


class LoginRequest(CamelModel):
    """Request body for POST /auth/login."""

    email: str = Field(..., description="User email address")
    password: str = Field(..., description="Password")


class RefreshRequest(CamelModel):
    """Request body for POST /auth/refresh."""

    refresh_token: str = Field(..., description="Refresh token")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class UserOut(CamelModel):
    """Public user representation."""

    id: uuid.UUID
    email: str
    phone: Optional[str] = None
    first_name: str
    last_name: str
    business_name: Optional[str] = None
    role: str = Field(description="client, tradie or admin")
    email_verified: bool = False
    created_at: datetime
    updated_at: datetime


class TokensOut(CamelModel):
    """JWT token pair returned after authentication."""

    access_token: str
    refresh_token: str
    expires_at: datetime


class AuthOut(CamelModel):
    user: UserOut
    tokens: TokensOut
