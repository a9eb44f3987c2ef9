"""
User and job lookups used by the quote and marketplace workflows.

Read-mostly helpers that turn "row missing" or "wrong kind of user" into
the API's typed errors.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradiehub.core.errors import NotFoundError, ValidationError
from tradiehub.models.job import Job, JobStatus
from tradiehub.models.user import User, UserRole, UserStatus

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def require_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    role: Optional[UserRole] = None,
    *,
    field: str = "user_id",
) -> User:
    """Load an active user, optionally requiring a role.

    Raises:
        NotFoundError: If the user does not exist.
        ValidationError: If the user is inactive or has a different role.
    """
    user = await get_user(db, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    if user.status != UserStatus.ACTIVE:
        raise ValidationError.for_field(field, "User account is not active.")
    if role is not None and user.role != role:
        raise ValidationError.for_field(field, f"User must be a {role.value}.")
    return user


async def require_job(db: AsyncSession, job_id: uuid.UUID) -> Job:
    result = await db.execute(select(Job).where(Job.id == job_id))
    job = result.scalar_one_or_none()
    if job is None:
        raise NotFoundError("Job", job_id)
    return job


async def activate_job(db: AsyncSession, job_id: uuid.UUID, tradie_id: uuid.UUID) -> Job:
    """Mark a job as active once its quote has been accepted."""
    job = await require_job(db, job_id)
    old_status = job.status
    job.status = JobStatus.ACTIVE
    job.tradie_id = tradie_id
    await db.flush()
    logger.info("Job %s transitioned: %s -> %s", job.id, old_status.value, job.status.value)
    return job
