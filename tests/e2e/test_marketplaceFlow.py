"""
E2E: Marketplace jobs, credit-gated applications and review.

Covers:
- Credit cost shown on posted jobs and the eligibility pre-check
- Applying (credits spent), insufficient credits and duplicate applications
- The 24-hour withdrawal window and credit refunds
- Client review: selection assigns the job and rejects the other applicants
- Best-effort bulk status updates
- Credit balance and purchases
"""

from __future__ import annotations

import uuid
from datetime import timedelta

from sqlalchemy import select, update

from tests.e2e.conftest import (
    API,
    OTHER_CLIENT_ID,
    POOR_TRADIE_CREDITS,
    POOR_TRADIE_ID,
    TRADIE_CREDITS,
    TRADIE_ID,
    apply_to_job,
    auth_headers,
    balance_of,
    post_marketplace_job,
)
from tradiehub.models.base import utcnow
from tradiehub.models.marketplace import JobApplication


# ---------------------------------------------------------------------------
# Jobs and eligibility
# ---------------------------------------------------------------------------


async def test_posted_job_shows_credit_cost(client, tradie_headers):
    job = await post_marketplace_job(client, job_type="plumbing", urgency_level="high")
    assert job["status"] == "available"
    assert job["creditCost"] == 5

    listed = await client.get(
        f"{API}/marketplace/jobs", params={"jobType": "plumbing"}, headers=tradie_headers
    )
    assert listed.status_code == 200
    items = listed.json()["data"]["items"]
    assert [item["id"] for item in items] == [job["id"]]
    assert items[0]["creditCost"] == 5


async def test_tradie_cannot_post_job(client, tradie_headers):
    resp = await client.post(
        f"{API}/marketplace/jobs",
        json={"title": "Anything", "jobType": "general"},
        headers=tradie_headers,
    )
    assert resp.status_code == 403


async def test_insufficient_credits_blocks_application(client, db, poor_tradie_headers):
    job = await post_marketplace_job(client, job_type="plumbing", urgency_level="high")

    check = await client.get(
        f"{API}/marketplace/jobs/{job['id']}/eligibility", headers=poor_tradie_headers
    )
    eligibility = check.json()["data"]
    assert eligibility["canApply"] is False
    assert eligibility["requiredCredits"] == 5
    assert eligibility["currentBalance"] == POOR_TRADIE_CREDITS

    resp = await apply_to_job(client, job["id"], tradie_id=POOR_TRADIE_ID)

    assert resp.status_code == 402
    assert resp.json()["code"] == "INSUFFICIENT_CREDITS"
    assert await balance_of(db, POOR_TRADIE_ID) == POOR_TRADIE_CREDITS
    refreshed = await client.get(f"{API}/marketplace/jobs/{job['id']}", headers=poor_tradie_headers)
    assert refreshed.json()["data"]["applicationCount"] == 0


async def test_apply_spends_credits(client, db, tradie_headers):
    job = await post_marketplace_job(client)

    resp = await apply_to_job(client, job["id"])

    assert resp.status_code == 201
    application = resp.json()["data"]
    assert application["status"] == "submitted"
    assert application["creditsUsed"] == 5
    assert await balance_of(db, TRADIE_ID) == TRADIE_CREDITS - 5

    refreshed = await client.get(f"{API}/marketplace/jobs/{job['id']}", headers=tradie_headers)
    assert refreshed.json()["data"]["applicationCount"] == 1

    mine = await client.get(f"{API}/marketplace/applications", headers=tradie_headers)
    assert mine.json()["data"]["meta"]["totalItems"] == 1


async def test_duplicate_application_rejected(client, db):
    job = await post_marketplace_job(client)
    await apply_to_job(client, job["id"])

    again = await apply_to_job(client, job["id"])

    assert again.status_code == 409
    assert again.json()["code"] == "DUPLICATE_APPLICATION"
    assert await balance_of(db, TRADIE_ID) == TRADIE_CREDITS - 5


async def test_invalid_application_payload(client):
    job = await post_marketplace_job(client)
    resp = await apply_to_job(client, job["id"], customQuote="5", proposedTimeline="soon")
    assert resp.status_code == 400
    fields = {error["field"] for error in resp.json()["errors"]}
    assert fields == {"custom_quote", "proposed_timeline"}


# ---------------------------------------------------------------------------
# Withdrawal
# ---------------------------------------------------------------------------


async def test_withdraw_within_window_refunds(client, db, tradie_headers):
    job = await post_marketplace_job(client)
    application = (await apply_to_job(client, job["id"])).json()["data"]

    resp = await client.post(
        f"{API}/marketplace/applications/{application['id']}/withdraw",
        json={"reason": "Fully booked"},
        headers=tradie_headers,
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "withdrawn"
    assert resp.json()["data"]["withdrawnAt"] is not None
    assert await balance_of(db, TRADIE_ID) == TRADIE_CREDITS
    refreshed = await client.get(f"{API}/marketplace/jobs/{job['id']}", headers=tradie_headers)
    assert refreshed.json()["data"]["applicationCount"] == 0


async def test_withdraw_after_window_refused(client, db, tradie_headers):
    job = await post_marketplace_job(client)
    application = (await apply_to_job(client, job["id"])).json()["data"]

    async with db() as session:
        await session.execute(
            update(JobApplication)
            .where(JobApplication.id == uuid.UUID(application["id"]))
            .values(application_timestamp=utcnow() - timedelta(hours=25))
        )
        await session.commit()

    resp = await client.post(
        f"{API}/marketplace/applications/{application['id']}/withdraw",
        headers=tradie_headers,
    )

    assert resp.status_code == 409
    assert resp.json()["code"] == "WITHDRAWAL_NOT_ALLOWED"
    assert await balance_of(db, TRADIE_ID) == TRADIE_CREDITS - 5
    async with db() as session:
        stored = await session.scalar(
            select(JobApplication.status).where(JobApplication.id == uuid.UUID(application["id"]))
        )
    assert stored.value == "submitted"


async def test_other_tradie_cannot_withdraw(client, poor_tradie_headers):
    job = await post_marketplace_job(client)
    application = (await apply_to_job(client, job["id"])).json()["data"]

    resp = await client.post(
        f"{API}/marketplace/applications/{application['id']}/withdraw",
        headers=poor_tradie_headers,
    )
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Review and selection
# ---------------------------------------------------------------------------


async def test_selecting_assigns_job_and_rejects_others(client, client_headers):
    job = await post_marketplace_job(client, job_type="general", urgency_level="low")
    chosen = (await apply_to_job(client, job["id"])).json()["data"]
    other = (await apply_to_job(client, job["id"], tradie_id=POOR_TRADIE_ID)).json()["data"]

    review = await client.patch(
        f"{API}/marketplace/applications/{chosen['id']}/status",
        json={"status": "under_review"},
        headers=client_headers,
    )
    assert review.status_code == 200
    assert review.json()["data"]["reviewedAt"] is not None

    selected = await client.patch(
        f"{API}/marketplace/applications/{chosen['id']}/status",
        json={"status": "selected"},
        headers=client_headers,
    )
    assert selected.status_code == 200
    assert selected.json()["data"]["status"] == "selected"

    job_now = (
        await client.get(f"{API}/marketplace/jobs/{job['id']}", headers=client_headers)
    ).json()["data"]
    assert job_now["status"] == "assigned"
    assert job_now["assignedTradieId"] == str(TRADIE_ID)

    loser = await client.get(
        f"{API}/marketplace/applications/{other['id']}", headers=auth_headers(POOR_TRADIE_ID)
    )
    assert loser.json()["data"]["status"] == "rejected"
    assert loser.json()["data"]["statusReason"] == "Another application was selected"


async def test_client_cannot_skip_review(client, client_headers):
    job = await post_marketplace_job(client)
    application = (await apply_to_job(client, job["id"])).json()["data"]

    resp = await client.patch(
        f"{API}/marketplace/applications/{application['id']}/status",
        json={"status": "selected"},
        headers=client_headers,
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "INVALID_STATE_TRANSITION"


async def test_tradie_cannot_review_own_application(client, tradie_headers):
    job = await post_marketplace_job(client)
    application = (await apply_to_job(client, job["id"])).json()["data"]

    resp = await client.patch(
        f"{API}/marketplace/applications/{application['id']}/status",
        json={"status": "under_review"},
        headers=tradie_headers,
    )
    assert resp.status_code == 409


async def test_job_applications_visible_to_owner_only(client, client_headers, tradie_headers):
    job = await post_marketplace_job(client)
    await apply_to_job(client, job["id"])

    owner = await client.get(f"{API}/marketplace/jobs/{job['id']}/applications", headers=client_headers)
    assert owner.json()["data"]["meta"]["totalItems"] == 1

    stranger = await client.get(
        f"{API}/marketplace/jobs/{job['id']}/applications", headers=tradie_headers
    )
    assert stranger.status_code == 403


# ---------------------------------------------------------------------------
# Bulk updates
# ---------------------------------------------------------------------------


async def test_bulk_update_reports_partial_failure(client, tradie_headers, client_headers):
    job = await post_marketplace_job(client, job_type="general", urgency_level="low")
    open_app = (await apply_to_job(client, job["id"])).json()["data"]
    withdrawn = (await apply_to_job(client, job["id"], tradie_id=POOR_TRADIE_ID)).json()["data"]
    await client.post(
        f"{API}/marketplace/applications/{withdrawn['id']}/withdraw",
        headers=auth_headers(POOR_TRADIE_ID),
    )
    missing = str(uuid.uuid4())

    resp = await client.post(
        f"{API}/marketplace/applications/bulk-status",
        json={
            "applicationIds": [open_app["id"], withdrawn["id"], missing],
            "status": "under_review",
        },
        headers=client_headers,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "1 of 3 applications updated"
    results = body["data"]["results"]
    assert [r["success"] for r in results] == [True, False, False]
    assert results[1]["code"] == "INVALID_STATE_TRANSITION"
    assert results[2]["code"] == "NOT_FOUND"

    updated = await client.get(
        f"{API}/marketplace/applications/{open_app['id']}", headers=tradie_headers
    )
    assert updated.json()["data"]["status"] == "under_review"


# ---------------------------------------------------------------------------
# Credits
# ---------------------------------------------------------------------------


async def test_purchase_and_balance(client, tradie_headers):
    bought = await client.post(
        f"{API}/credits/purchase", json={"amount": 10}, headers=tradie_headers
    )
    assert bought.status_code == 201
    assert bought.json()["data"]["balanceAfter"] == TRADIE_CREDITS + 10
    assert bought.json()["data"]["transactionType"] == "purchase"

    job = await post_marketplace_job(client)
    await apply_to_job(client, job["id"])

    balance = await client.get(f"{API}/credits/balance", headers=tradie_headers)
    data = balance.json()["data"]
    assert data["balance"] == TRADIE_CREDITS + 10 - 5
    assert {t["transactionType"] for t in data["transactions"]} == {"purchase", "job_application"}


async def test_client_has_no_credit_balance(client, client_headers):
    resp = await client.get(f"{API}/credits/balance", headers=client_headers)
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Job management
# ---------------------------------------------------------------------------


async def test_client_edits_job_and_cost_follows_urgency(client, client_headers):
    job = await post_marketplace_job(client, job_type="plumbing", urgency_level="high")

    resp = await client.patch(
        f"{API}/marketplace/jobs/{job['id']}",
        json={"title": "Fix leaking pipe and tap", "urgencyLevel": "urgent"},
        headers=client_headers,
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["title"] == "Fix leaking pipe and tap"
    assert data["urgencyLevel"] == "urgent"
    assert data["creditCost"] == 6
    assert data["jobType"] == "plumbing"


async def test_urgency_frozen_once_tradies_apply(client, client_headers):
    job = await post_marketplace_job(client, job_type="plumbing", urgency_level="high")
    await apply_to_job(client, job["id"])

    raised = await client.patch(
        f"{API}/marketplace/jobs/{job['id']}",
        json={"urgencyLevel": "urgent"},
        headers=client_headers,
    )
    assert raised.status_code == 400
    assert raised.json()["errors"][0]["field"] == "urgency_level"

    unchanged = await client.patch(
        f"{API}/marketplace/jobs/{job['id']}",
        json={"title": "Fix leaking pipe urgently", "urgencyLevel": "high"},
        headers=client_headers,
    )
    assert unchanged.status_code == 200
    assert unchanged.json()["data"]["creditCost"] == 5


async def test_delete_job_only_without_applications(client, client_headers, tradie_headers):
    empty = await post_marketplace_job(client)
    taken = await post_marketplace_job(client)
    await apply_to_job(client, taken["id"])

    deleted = await client.delete(f"{API}/marketplace/jobs/{empty['id']}", headers=client_headers)
    assert deleted.status_code == 200
    gone = await client.get(f"{API}/marketplace/jobs/{empty['id']}", headers=tradie_headers)
    assert gone.status_code == 404

    refused = await client.delete(f"{API}/marketplace/jobs/{taken['id']}", headers=client_headers)
    assert refused.status_code == 409


async def test_other_client_cannot_edit_job(client):
    job = await post_marketplace_job(client)
    resp = await client.patch(
        f"{API}/marketplace/jobs/{job['id']}",
        json={"title": "Mine now"},
        headers=auth_headers(OTHER_CLIENT_ID),
    )
    assert resp.status_code == 403
