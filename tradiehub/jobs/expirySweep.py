"""
Quote & Marketplace Expiry Sweep -- Scheduled Job.

Reads lazily expire a single quote when it is touched; this job catches the
rest in bulk:

1. Marks sent/viewed quotes past ``valid_until`` as ``expired``.
2. Marks available/in-review marketplace jobs past ``expires_at`` as ``expired``.
3. Logs a warning for every open quote expiring within the warning window,
   so tradies can be reminded to follow up.

Intended to run hourly from cron or a similar scheduler::

    python -m tradiehub.jobs.expirySweep
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tradiehub.core.config import settings
from tradiehub.models.base import as_utc, utcnow
from tradiehub.models.quote import Quote
from tradiehub.services import marketplaceService, quoteService
from tradiehub.services.quoteStateManager import DECIDABLE_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    quotes_expired: int
    jobs_expired: int
    expiry_warnings: int


async def send_quote_expiry_warnings(db: AsyncSession) -> int:
    """Log a follow-up reminder for each open quote close to expiry.

    Returns:
        The number of quotes in the warning window.
    """
    now = utcnow()
    horizon = now + timedelta(days=settings.quote_expiry_warning_days)
    result = await db.execute(
        select(Quote)
        .where(
            Quote.status.in_(DECIDABLE_STATUSES),
            Quote.valid_until > now,
            Quote.valid_until <= horizon,
        )
        .order_by(Quote.valid_until.asc())
    )
    expiring = result.scalars().all()
    for quote in expiring:
        hours_left = int((as_utc(quote.valid_until) - now).total_seconds() // 3600)
        logger.info(
            "Quote %s for tradie %s expires in %d hours (status %s)",
            quote.quote_number,
            quote.tradie_id,
            hours_left,
            quote.status.value,
        )
    return len(expiring)


async def run_expiry_sweep(db: AsyncSession) -> SweepResult:
    """Run the full sweep in the caller's transaction."""
    logger.info("Starting expiry sweep at %s", utcnow().isoformat())

    quotes_expired = await quoteService.check_expired_quotes(db)
    jobs_expired = await marketplaceService.expire_marketplace_jobs(db)
    warnings = await send_quote_expiry_warnings(db)

    logger.info(
        "Expiry sweep completed. Expired: quotes=%d, jobs=%d. Warnings: %d.",
        quotes_expired,
        jobs_expired,
        warnings,
    )
    return SweepResult(
        quotes_expired=quotes_expired,
        jobs_expired=jobs_expired,
        expiry_warnings=warnings,
    )


# ---------------------------------------------------------------------------
# CLI entry point (for manual runs / simple cron)
# ---------------------------------------------------------------------------

async def _cli_main() -> None:
    from tradiehub.api.deps import async_session_factory

    async with async_session_factory() as session:
        try:
            result = await run_expiry_sweep(session)
            await session.commit()
            logger.info("Expiry sweep result: %s", result)
        except Exception:
            await session.rollback()
            logger.exception("Expiry sweep failed")
            raise


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level)
    asyncio.run(_cli_main())
