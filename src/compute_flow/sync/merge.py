"""
Merging remote node changes into a local graph.

Merges are field-level last-writer-wins. A remote event only overwrites the
fields it carries, never removes a local node, never brings back a node the
user removed after the event was committed, and never overwrites a
user-edited field (label, params, position) edited after the event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from compute_flow.core.errors import SyncError
from compute_flow.core.graph import NodeError, NodeGraph, Point2D, utcnow
from compute_flow.core.node_types import NodeRegistry
from compute_flow.core.status import NodeStatus
from compute_flow.sync.events import ChangeEvent, EntityType


logger = logging.getLogger(__name__)

# Local fields whose user edits are protected from older remote writes
USER_FIELDS = frozenset({"label", "params", "position"})

_STATUS_ALIASES: dict[str, NodeStatus] = {
    "idle": NodeStatus.IDLE,
    "queued": NodeStatus.IDLE,
    "generating": NodeStatus.GENERATING,
    "running": NodeStatus.GENERATING,
    "complete": NodeStatus.COMPLETE,
    "completed": NodeStatus.COMPLETE,
    "succeeded": NodeStatus.COMPLETE,
    "error": NodeStatus.ERROR,
    "failed": NodeStatus.ERROR,
}


class MergeOutcome(Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    IGNORED = "ignored"


@dataclass
class LocalEditLog:
    """When the local user last removed a node or edited one of its fields."""
    removed: dict[str, datetime] = field(default_factory=dict)
    edited: dict[tuple[str, str], datetime] = field(default_factory=dict)

    def record_edit(self, node_id: str, field_name: str, at: datetime | None = None) -> None:
        self.edited[(node_id, field_name)] = at or utcnow()

    def record_removal(self, node_id: str, at: datetime | None = None) -> None:
        self.removed[node_id] = at or utcnow()

    def forget(self, node_id: str) -> None:
        self.removed.pop(node_id, None)
        for key in [k for k in self.edited if k[0] == node_id]:
            del self.edited[key]

    def removed_after(self, node_id: str, when: datetime) -> bool:
        removed_at = self.removed.get(node_id)
        return removed_at is not None and removed_at > when

    def edited_after(self, node_id: str, field_name: str, when: datetime) -> bool:
        edited_at = self.edited.get((node_id, field_name))
        return edited_at is not None and edited_at > when


def parse_status(value: Any) -> NodeStatus:
    status = _STATUS_ALIASES.get(str(value).lower())
    if status is None:
        raise SyncError(f"Unknown node status: {value!r}")
    return status


def parse_progress(value: Any) -> float:
    progress = float(value)
    # Remote writers report either a fraction or a percentage
    if progress > 1.0:
        progress /= 100.0
    return max(0.0, min(1.0, progress))


def merge_node_event(graph: NodeGraph, event: ChangeEvent, edits: LocalEditLog) -> MergeOutcome:
    """
    Apply one node change to `graph`.

    Every carried field is parsed before anything is written, so a rejected
    record leaves the graph exactly as it was.

    Raises:
        SyncError: The record cannot be applied (e.g. insert of unknown kind)
    """
    if event.entity is not EntityType.NODE:
        raise SyncError(f"Not a node event: {event.entity.value}")

    node_id = event.entity_id
    record = event.record
    when = event.reference_time

    if edits.removed_after(node_id, when):
        logger.debug("Ignoring change for node %s removed locally", node_id)
        return MergeOutcome.IGNORED

    try:
        changes = _parse_fields(record)
    except (TypeError, ValueError, AttributeError) as e:
        raise SyncError(f"Malformed record for node {node_id}: {e}") from e

    node = graph.get_node(node_id)
    outcome = MergeOutcome.UPDATED
    if node is None:
        kind = record.get("kind")
        node_type = NodeRegistry.instance().get(kind) if kind else None
        if node_type is None:
            raise SyncError(f"Cannot insert node {node_id}: unknown kind {kind!r}")
        node = node_type.instantiate(label=changes.get("label"))
        node.id = node_id
        graph.insert_node(node)
        edits.forget(node_id)
        outcome = MergeOutcome.INSERTED

    for name, value in changes.items():
        if name in USER_FIELDS and edits.edited_after(node_id, name, when):
            continue
        if name == "outputs":
            for port in node.outputs:
                if port.id in value:
                    port.value = value[port.id]
        else:
            setattr(node, name, value)

    graph.touch()
    return outcome


def _parse_fields(record: dict[str, Any]) -> dict[str, Any]:
    """Node attribute values carried by a record, keyed by attribute name."""
    changes: dict[str, Any] = {}
    if record.get("status") is not None:
        changes["status"] = parse_status(record["status"])
    if record.get("progress") is not None:
        changes["progress"] = parse_progress(record["progress"])
    if "error" in record or "error_message" in record:
        changes["error"] = _parse_error(record.get("error") or record.get("error_message"))
    if isinstance(record.get("outputs"), dict):
        changes["outputs"] = dict(record["outputs"])

    if record.get("label"):
        changes["label"] = str(record["label"])
    if isinstance(record.get("params"), dict):
        changes["params"] = dict(record["params"])
    if isinstance(record.get("position"), dict):
        position = record["position"]
        changes["position"] = Point2D(
            float(position.get("x", 0.0)), float(position.get("y", 0.0))
        )
    return changes


def _parse_error(value: Any) -> NodeError | None:
    if not value:
        return None
    if isinstance(value, dict):
        return NodeError(
            message=str(value.get("message", "")),
            details=value.get("details"),
            blocked_by=value.get("blockedBy"),
        )
    return NodeError(message=str(value))
