"""
E2E: The scheduled expiry sweep.

Arranges state through the API, moves deadlines in the database, then runs
the sweep against the same database and reads the results back over HTTP.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

from sqlalchemy import update

from tests.e2e.conftest import API, create_quote_via_api, create_sent_quote, post_marketplace_job
from tradiehub.jobs.expirySweep import run_expiry_sweep
from tradiehub.models.base import utcnow
from tradiehub.models.marketplace import MarketplaceJob
from tradiehub.models.quote import Quote


async def _set_valid_until(db, quote_id: str, delta: timedelta) -> None:
    async with db() as session:
        await session.execute(
            update(Quote).where(Quote.id == uuid.UUID(quote_id)).values(valid_until=utcnow() + delta)
        )
        await session.commit()


async def test_sweep_expires_lapsed_quotes_and_jobs(client, db, tradie_headers):
    lapsed = await create_sent_quote(client)
    closing = await create_sent_quote(client)
    draft = (await create_quote_via_api(client)).json()["data"]
    job = await post_marketplace_job(client)

    await _set_valid_until(db, lapsed["id"], timedelta(hours=-1))
    await _set_valid_until(db, closing["id"], timedelta(days=1))
    await _set_valid_until(db, draft["id"], timedelta(hours=-1))
    async with db() as session:
        await session.execute(
            update(MarketplaceJob)
            .where(MarketplaceJob.id == uuid.UUID(job["id"]))
            .values(expires_at=utcnow() - timedelta(minutes=1))
        )
        await session.commit()

    async with db() as session:
        result = await run_expiry_sweep(session)
        await session.commit()

    assert result.quotes_expired == 1
    assert result.jobs_expired == 1
    assert result.expiry_warnings == 1

    statuses = {}
    for quote in (lapsed, closing, draft):
        resp = await client.get(f"{API}/quotes/{quote['id']}", headers=tradie_headers)
        statuses[quote["id"]] = resp.json()["data"]["status"]
    assert statuses == {lapsed["id"]: "expired", closing["id"]: "sent", draft["id"]: "draft"}

    job_now = await client.get(f"{API}/marketplace/jobs/{job['id']}", headers=tradie_headers)
    assert job_now.json()["data"]["status"] == "expired"


async def test_sweep_with_nothing_to_do(client, db):
    await create_sent_quote(client)

    async with db() as session:
        result = await run_expiry_sweep(session)

    assert (result.quotes_expired, result.jobs_expired, result.expiry_warnings) == (0, 0, 0)
