"""
Application State Manager
=========================

State machine for marketplace job applications::

    submitted --> under_review --> selected
         |              \\--> rejected
         \\--> withdrawn

``submitted -> rejected`` exists only for the system, which uses it to turn
down the remaining applications once one has been selected. Selected,
rejected and withdrawn are terminal.
"""

from __future__ import annotations

from tradiehub.models.marketplace import ApplicationStatus
from tradiehub.services.stateMachine import (
    ActorType,
    TransitionResult,
    describe_targets,
    require_actor,
)

VALID_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.SUBMITTED: {
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.WITHDRAWN,
        ApplicationStatus.REJECTED,
    },
    ApplicationStatus.UNDER_REVIEW: {
        ApplicationStatus.SELECTED,
        ApplicationStatus.REJECTED,
    },
    ApplicationStatus.SELECTED: set(),
    ApplicationStatus.REJECTED: set(),
    ApplicationStatus.WITHDRAWN: set(),
}

_REVIEWERS = frozenset({ActorType.CLIENT, ActorType.ADMIN, ActorType.SYSTEM})


def validate_transition(
    current_status: ApplicationStatus,
    new_status: ApplicationStatus,
    actor_type: ActorType = ActorType.SYSTEM,
) -> TransitionResult:
    """Validate an application status change for the given actor."""
    allowed_targets = VALID_TRANSITIONS.get(current_status, set())
    if new_status not in allowed_targets:
        return TransitionResult(
            allowed=False,
            reason=(
                f"Invalid transition: '{current_status.value}' -> '{new_status.value}'. "
                f"Allowed transitions from '{current_status.value}': "
                f"{describe_targets(allowed_targets)}."
            ),
        )

    if new_status == ApplicationStatus.WITHDRAWN:
        return require_actor(
            actor_type,
            frozenset({ActorType.TRADIE}),
            "Only the applying tradie can withdraw an application.",
        )

    if current_status == ApplicationStatus.SUBMITTED and new_status == ApplicationStatus.REJECTED:
        return require_actor(
            actor_type,
            frozenset({ActorType.SYSTEM}),
            "An application must be under review before it can be rejected.",
        )

    return require_actor(
        actor_type,
        _REVIEWERS,
        "Only the job owner can review applications.",
    )


def is_terminal(status: ApplicationStatus) -> bool:
    return not VALID_TRANSITIONS.get(status)
