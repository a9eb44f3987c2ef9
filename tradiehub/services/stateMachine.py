"""
Shared building blocks for the quote and application state machines.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass


class ActorType(str, enum.Enum):
    CLIENT = "client"
    TRADIE = "tradie"
    SYSTEM = "system"
    ADMIN = "admin"


@dataclass(frozen=True)
class TransitionResult:
    """Result of a transition validation attempt."""
    allowed: bool
    reason: str | None = None


def describe_targets(targets: Iterable[enum.Enum]) -> str:
    """Render a set of statuses as a sorted, comma-separated list."""
    return ", ".join(sorted(t.value for t in targets)) or "none"


def require_actor(
    actor_type: ActorType,
    permitted: frozenset[ActorType],
    message: str,
) -> TransitionResult:
    if actor_type not in permitted:
        return TransitionResult(allowed=False, reason=message)
    return TransitionResult(allowed=True)
