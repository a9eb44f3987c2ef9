"""
Marketplace application events.

Events emitted:
  - application.submitted
  - application.withdrawn
  - application.status_changed
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


def _build_event(
    event_type: str,
    application_id: uuid.UUID,
    *,
    data: dict[str, Any] | None = None,
    actor_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    return {
        "event_type": event_type,
        "application_id": str(application_id),
        "actor_id": str(actor_id) if actor_id else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data or {},
    }


def emit_application_submitted(
    application_id: uuid.UUID,
    marketplace_job_id: uuid.UUID,
    tradie_id: uuid.UUID,
    credits_used: int,
) -> dict[str, Any]:
    event = _build_event(
        "application.submitted",
        application_id,
        actor_id=tradie_id,
        data={"marketplace_job_id": str(marketplace_job_id), "credits_used": credits_used},
    )
    logger.info("Event emitted: %s for application %s", event["event_type"], application_id)
    return event


def emit_application_withdrawn(
    application_id: uuid.UUID,
    tradie_id: uuid.UUID,
    credits_refunded: int,
    reason: str | None = None,
) -> dict[str, Any]:
    event = _build_event(
        "application.withdrawn",
        application_id,
        actor_id=tradie_id,
        data={"credits_refunded": credits_refunded, "reason": reason},
    )
    logger.info("Event emitted: %s for application %s", event["event_type"], application_id)
    return event


def emit_application_status_changed(
    application_id: uuid.UUID,
    old_status: str,
    new_status: str,
    actor_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    event = _build_event(
        "application.status_changed",
        application_id,
        actor_id=actor_id,
        data={"old_status": old_status, "new_status": new_status},
    )
    logger.info(
        "Event emitted: %s for application %s (%s -> %s)",
        event["event_type"],
        application_id,
        old_status,
        new_status,
    )
    return event
