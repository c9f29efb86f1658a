"""
Change events delivered by the realtime feed.

Raw payloads follow the Supabase realtime postgres_changes shape:

    {"type": "INSERT" | "UPDATE", "table": ..., "record": {...},
     "commit_timestamp": "2024-01-01T00:00:00Z"}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from compute_flow.core.errors import SyncError
from compute_flow.core.graph import utcnow


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class EntityType(str, Enum):
    NODE = "node"
    MEDIA = "media"


# Tables the feed listens to, and the entity each one carries
TABLE_ENTITIES: dict[str, EntityType] = {
    "compute_nodes": EntityType.NODE,
    "execution_node_status": EntityType.NODE,
    "media_items": EntityType.MEDIA,
}


@dataclass(frozen=True)
class ChangeEvent:
    """A parsed remote change."""
    type: ChangeType
    entity: EntityType
    record: dict[str, Any]
    reference_time: datetime
    table: str = ""

    @property
    def entity_id(self) -> str:
        if self.entity is EntityType.NODE:
            return str(
                self.record.get("node_id")
                or self.record.get("nodeId")
                or self.record.get("id")
            )
        return str(self.record["id"])


def parse_event(raw: Any) -> ChangeEvent:
    """
    Parse a raw feed payload.

    Raises:
        SyncError: The payload is malformed or from an unknown table
    """
    if not isinstance(raw, dict):
        raise SyncError(f"Malformed change event: expected object, got {type(raw).__name__}")

    # Realtime wraps the change in "data"; plain payloads are accepted too
    payload = raw.get("data", raw)
    if not isinstance(payload, dict):
        raise SyncError("Malformed change event: data is not an object")

    try:
        change_type = ChangeType(str(payload.get("type") or payload.get("eventType")).upper())
    except ValueError:
        raise SyncError(f"Unsupported change type: {payload.get('type')!r}") from None

    table = payload.get("table")
    entity = TABLE_ENTITIES.get(table)
    if entity is None:
        raise SyncError(f"Change event from unknown table: {table!r}")

    record = payload.get("record") or payload.get("new")
    if not isinstance(record, dict):
        raise SyncError("Change event has no record")

    if entity is EntityType.NODE:
        if not (record.get("node_id") or record.get("nodeId") or record.get("id")):
            raise SyncError("Node change event has no node id")
    elif not record.get("id"):
        raise SyncError("Media change event has no id")

    return ChangeEvent(
        type=change_type,
        entity=entity,
        record=record,
        reference_time=_parse_timestamp(payload.get("commit_timestamp")),
        table=table,
    )


def _parse_timestamp(value: Any) -> datetime:
    if not value:
        return utcnow()
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise SyncError(f"Invalid commit timestamp: {value!r}") from None
    # Offset-less timestamps are UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
