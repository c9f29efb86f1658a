"""
Node status state machine.

    IDLE --(scheduled)--> GENERATING --(success)--> COMPLETE
                          GENERATING --(failure)--> ERROR
    IDLE --(upstream failure)--> ERROR
    COMPLETE | ERROR --(re-run)--> GENERATING

A node being re-run that is blocked by an upstream failure moves straight
from COMPLETE/ERROR to ERROR. Resetting statuses returns any node that is
not mid-flight to IDLE.
"""

from __future__ import annotations

from enum import Enum

from compute_flow.core.errors import InvalidTransition


class NodeStatus(str, Enum):
    """Execution status of a single node."""
    IDLE = "idle"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


_TRANSITIONS: dict[NodeStatus, frozenset[NodeStatus]] = {
    NodeStatus.IDLE: frozenset({NodeStatus.GENERATING, NodeStatus.ERROR}),
    NodeStatus.GENERATING: frozenset({NodeStatus.COMPLETE, NodeStatus.ERROR}),
    NodeStatus.COMPLETE: frozenset({NodeStatus.GENERATING, NodeStatus.ERROR}),
    NodeStatus.ERROR: frozenset({NodeStatus.GENERATING, NodeStatus.ERROR}),
}


def can_transition(current: NodeStatus, requested: NodeStatus) -> bool:
    """Check whether `current -> requested` is a legal transition."""
    return requested in _TRANSITIONS[current]


def guard_transition(node_id: str, current: NodeStatus, requested: NodeStatus) -> None:
    """Raise InvalidTransition unless `current -> requested` is legal."""
    if not can_transition(current, requested):
        raise InvalidTransition(node_id, current.value, requested.value)


def can_reset(current: NodeStatus) -> bool:
    """A node may be reset to IDLE unless it is mid-flight."""
    return current is not NodeStatus.GENERATING


def is_runnable(current: NodeStatus) -> bool:
    """A node may be scheduled unless it is already GENERATING."""
    return can_transition(current, NodeStatus.GENERATING)
