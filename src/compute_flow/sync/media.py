"""
Media library - Artifacts produced for a project, keyed by id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class MediaItem:
    """A generated or uploaded media artifact."""
    id: str
    project_id: str = ""
    media_type: str = "image"
    name: str = ""
    url: str | None = None
    duration_seconds: float | None = None
    source_type: str | None = None
    source_node_id: str | None = None
    status: str = "completed"
    thumbnail_url: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _FIELDS = (
        "project_id", "media_type", "name", "url", "duration_seconds",
        "source_type", "source_node_id", "status", "thumbnail_url",
    )

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> MediaItem:
        item = cls(id=str(record["id"]))
        item.update(record)
        return item

    def update(self, record: dict[str, Any]) -> None:
        """Overwrite the fields the record carries."""
        for name in self._FIELDS:
            if name in record:
                setattr(self, name, record[name])
        self.extra.update({
            k: v for k, v in record.items()
            if k != "id" and k not in self._FIELDS
        })


class MediaLibrary:
    """Project media, merged from local results and remote events."""

    def __init__(self):
        self._items: dict[str, MediaItem] = {}

    def merge(self, record: dict[str, Any]) -> MediaItem:
        """Insert a new item or overwrite the carried fields of a known one."""
        item_id = str(record["id"])
        item = self._items.get(item_id)
        if item is None:
            item = MediaItem.from_record(record)
            self._items[item_id] = item
        else:
            item.update(record)
        return item

    def get(self, item_id: str) -> MediaItem | None:
        return self._items.get(item_id)

    @property
    def items(self) -> list[MediaItem]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items
