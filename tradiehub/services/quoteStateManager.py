"""
Quote State Manager
===================

Finite state machine governing every quote status change. All transitions
MUST be checked with ``validate_transition`` before being persisted.

State machine overview::

    draft --> sent --> viewed --> accepted
                 \\         \\--> rejected
                  \\--> accepted | rejected

    (any non-terminal) --> cancelled   (tradie)
    (any non-terminal) --> expired     (system, validity window passed)

Terminal states: accepted, rejected, expired, cancelled.
"""

from __future__ import annotations

from tradiehub.models.quote import QuoteStatus
from tradiehub.services.stateMachine import (
    ActorType,
    TransitionResult,
    describe_targets,
    require_actor,
)


# ---------------------------------------------------------------------------
# Transition definitions
# ---------------------------------------------------------------------------

VALID_TRANSITIONS: dict[QuoteStatus, set[QuoteStatus]] = {
    QuoteStatus.DRAFT: {
        QuoteStatus.SENT,
        QuoteStatus.CANCELLED,
        QuoteStatus.EXPIRED,
    },
    QuoteStatus.SENT: {
        QuoteStatus.VIEWED,
        QuoteStatus.ACCEPTED,
        QuoteStatus.REJECTED,
        QuoteStatus.EXPIRED,
        QuoteStatus.CANCELLED,
    },
    QuoteStatus.VIEWED: {
        QuoteStatus.ACCEPTED,
        QuoteStatus.REJECTED,
        QuoteStatus.EXPIRED,
        QuoteStatus.CANCELLED,
    },
    QuoteStatus.ACCEPTED: set(),
    QuoteStatus.REJECTED: set(),
    QuoteStatus.EXPIRED: set(),
    QuoteStatus.CANCELLED: set(),
}

TERMINAL_STATUSES: frozenset[QuoteStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

# Statuses in which the tradie may still edit or delete the quote
EDITABLE_STATUSES: frozenset[QuoteStatus] = frozenset({
    QuoteStatus.DRAFT,
    QuoteStatus.SENT,
    QuoteStatus.VIEWED,
})

# Statuses from which a client decision is possible
DECIDABLE_STATUSES: frozenset[QuoteStatus] = frozenset({
    QuoteStatus.SENT,
    QuoteStatus.VIEWED,
})

_ACTOR_GUARDS: dict[QuoteStatus, tuple[frozenset[ActorType], str]] = {
    QuoteStatus.SENT: (
        frozenset({ActorType.TRADIE, ActorType.ADMIN, ActorType.SYSTEM}),
        "Only the tradie can send a quote.",
    ),
    QuoteStatus.VIEWED: (
        frozenset({ActorType.CLIENT, ActorType.ADMIN, ActorType.SYSTEM}),
        "Only the client can mark a quote as viewed.",
    ),
    QuoteStatus.ACCEPTED: (
        frozenset({ActorType.CLIENT}),
        "Only the client can accept a quote.",
    ),
    QuoteStatus.REJECTED: (
        frozenset({ActorType.CLIENT}),
        "Only the client can reject a quote.",
    ),
    QuoteStatus.CANCELLED: (
        frozenset({ActorType.TRADIE, ActorType.ADMIN, ActorType.SYSTEM}),
        "Only the tradie can cancel a quote.",
    ),
    QuoteStatus.EXPIRED: (
        frozenset({ActorType.SYSTEM, ActorType.ADMIN}),
        "Quotes can only be expired by the system.",
    ),
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_transition(
    current_status: QuoteStatus,
    new_status: QuoteStatus,
    actor_type: ActorType = ActorType.SYSTEM,
) -> TransitionResult:
    """Validate whether a quote status transition is allowed.

    Checks the transition table first, then the actor guard for the target
    status. Returns ``allowed=False`` with a human-readable ``reason`` when
    either check fails.
    """
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

    guard = _ACTOR_GUARDS.get(new_status)
    if guard is not None:
        permitted, message = guard
        return require_actor(actor_type, permitted, message)

    return TransitionResult(allowed=True)


def get_valid_transitions(
    current_status: QuoteStatus,
    actor_type: ActorType = ActorType.SYSTEM,
) -> list[QuoteStatus]:
    """Return the statuses the given actor can move a quote to."""
    candidates = VALID_TRANSITIONS.get(current_status, set())
    return sorted(
        (t for t in candidates if validate_transition(current_status, t, actor_type).allowed),
        key=lambda s: s.value,
    )


def is_terminal(status: QuoteStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_editable(status: QuoteStatus) -> bool:
    return status in EDITABLE_STATUSES
