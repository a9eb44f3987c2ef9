"""
Authentication service for the TradieHub platform.

Handles user registration, login and JWT token management. Uses bcrypt for
password hashing and PyJWT for token generation/verification.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradiehub.core.config import settings
from tradiehub.core.errors import AuthenticationRequiredError, ValidationError
from tradiehub.models.user import User, UserRole, UserStatus
from tradiehub.services import creditLedger

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Password hashing (bcrypt used directly)
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt."""
    # bcrypt requires bytes; truncate to 72 bytes (bcrypt limit)
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a bcrypt hash."""
    pw_bytes = plain_password.encode("utf-8")[:72]
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(pw_bytes, hashed_bytes)


# ---------------------------------------------------------------------------
# JWT token generation
# ---------------------------------------------------------------------------

REFRESH_TOKEN_EXPIRE_DAYS = 7


def _create_token(user_id: uuid.UUID, token_type: str, lifetime: timedelta) -> tuple[str, datetime]:
    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + lifetime
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "exp": expires_at,
        "iat": issued_at,
        "jti": str(uuid.uuid4()),
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, expires_at


def create_access_token(user_id: uuid.UUID) -> tuple[str, datetime]:
    """Create a short-lived access token.

    Returns:
        Tuple of (token_string, expiration_datetime).
    """
    return _create_token(
        user_id, "access", timedelta(minutes=settings.access_token_expire_minutes)
    )


def create_refresh_token(user_id: uuid.UUID) -> tuple[str, datetime]:
    return _create_token(user_id, "refresh", timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))


def create_tokens(user_id: uuid.UUID) -> dict:
    access_token, access_expires = create_access_token(user_id)
    refresh_token, _ = create_refresh_token(user_id)
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_at": access_expires,
    }


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Raises:
        jwt.ExpiredSignatureError: If the token has expired.
        jwt.InvalidTokenError: If the token is otherwise invalid.
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
    )


# ---------------------------------------------------------------------------
# Service functions
# ---------------------------------------------------------------------------

async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    stmt = select(User).where(User.email == email.lower().strip())
    result = await db.execute(stmt)
    return result.scalars().first()


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    stmt = select(User).where(User.id == user_id)
    result = await db.execute(stmt)
    return result.scalars().first()


async def register(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: UserRole,
    phone: Optional[str] = None,
    business_name: Optional[str] = None,
) -> tuple[User, dict]:
    """Register a new client or tradie.

    Tradies get an empty credit account so the ledger can be topped up
    straight away.

    Raises:
        ValidationError: If the email is taken or the role is not
            self-service.
    """
    email = email.lower().strip()
    role = UserRole(role)
    if role == UserRole.ADMIN:
        raise ValidationError.for_field("role", "Admin accounts cannot be self-registered.")

    existing = await get_user_by_email(db, email)
    if existing is not None:
        raise ValidationError.for_field("email", "A user with this email address already exists.")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        business_name=business_name,
        role=role,
        status=UserStatus.ACTIVE,
        email_verified=False,
    )
    db.add(user)
    await db.flush()  # Flush to generate ID without committing

    if role == UserRole.TRADIE:
        await creditLedger.open_account(db, user.id)

    logger.info("Registered %s %s", role.value, user.id)
    return user, create_tokens(user.id)


async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, dict]:
    """Authenticate a user with email and password.

    Raises:
        AuthenticationRequiredError: If credentials are invalid or the
            account is not active.
    """
    user = await get_user_by_email(db, email)
    if user is None or user.password_hash is None:
        raise AuthenticationRequiredError("Invalid email or password.")
    if not verify_password(password, user.password_hash):
        raise AuthenticationRequiredError("Invalid email or password.")

    if user.status == UserStatus.SUSPENDED:
        raise AuthenticationRequiredError("This account is currently suspended.")
    if user.status == UserStatus.DEACTIVATED:
        raise AuthenticationRequiredError("This account has been deactivated.")

    user.last_login_at = datetime.now(timezone.utc)
    await db.flush()

    return user, create_tokens(user.id)


async def _user_from_token(db: AsyncSession, token: str, expected_type: str) -> User:
    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError:
        raise ValueError(f"{expected_type.capitalize()} token has expired.")
    except jwt.InvalidTokenError:
        raise ValueError(f"Invalid {expected_type} token.")

    if payload.get("type") != expected_type:
        raise ValueError(f"Invalid token type. Expected a {expected_type} token.")

    user_id_str = payload.get("sub")
    if user_id_str is None:
        raise ValueError("Invalid token: missing subject.")

    try:
        user_id = uuid.UUID(user_id_str)
    except (ValueError, AttributeError):
        raise ValueError("Invalid token: malformed subject.")

    user = await get_user_by_id(db, user_id)
    if user is None:
        raise ValueError("User not found.")
    if user.status != UserStatus.ACTIVE:
        raise ValueError("Account is no longer active.")
    return user


async def refresh_token(db: AsyncSession, refresh_token_str: str) -> dict:
    """Validate a refresh token and issue new tokens.

    Raises:
        ValueError: If the refresh token is invalid or expired.
    """
    user = await _user_from_token(db, refresh_token_str, "refresh")
    return create_tokens(user.id)


async def get_current_user(db: AsyncSession, token: str) -> User:
    """Decode a JWT access token and return the corresponding user.

    Raises:
        ValueError: If the token is invalid, expired, or user not found.
    """
    return await _user_from_token(db, token, "access")
