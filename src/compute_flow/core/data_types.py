"""
Data Types - Port datatypes and the values that flow between nodes.

This module defines:
- DataType: Well-known MIME-like datatype tags used by the built-in nodes
- is_compatible: The connection compatibility rule between two datatypes
- ArtifactRef: Reference to a media artifact produced by a generation backend

Datatypes are plain strings so that graphs loaded from storage may carry
concrete subtypes (e.g. "image/webp") the enum does not list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias


ANY = "any"
WILDCARD_SUFFIX = "/*"


class DataType(str, Enum):
    """
    Well-known datatypes that can flow through node connections.

    Each port has a datatype that determines which connections are valid.
    Values ending in "/*" are wildcard families.
    """
    TEXT = "text/plain"
    IMAGE = "image/*"
    IMAGE_PNG = "image/png"
    IMAGE_JPEG = "image/jpeg"
    VIDEO = "video/*"
    VIDEO_MP4 = "video/mp4"
    ANY = ANY

    def is_compatible_with(self, other: DataType | str) -> bool:
        """Check if this type can connect to another type."""
        return is_compatible(self.value, _as_str(other))


# Type alias for parameter values
ParameterValue: TypeAlias = str | int | float | bool | list | dict | None


def _as_str(datatype: DataType | str) -> str:
    return datatype.value if isinstance(datatype, DataType) else datatype


def is_wildcard(datatype: DataType | str) -> bool:
    """True for family datatypes such as "image/*"."""
    return _as_str(datatype).endswith(WILDCARD_SUFFIX)


def family(datatype: DataType | str) -> str:
    """Return the major type of a datatype ("image/png" -> "image")."""
    return _as_str(datatype).split("/", 1)[0]


def is_compatible(source: DataType | str, target: DataType | str) -> bool:
    """
    Check whether an output of type `source` may feed an input of type `target`.

    Compatible when the strings match exactly, when either side is "any",
    or when either side is a wildcard family that covers the other.
    """
    src = _as_str(source)
    tgt = _as_str(target)

    if src == tgt:
        return True
    if src == ANY or tgt == ANY:
        return True
    if is_wildcard(tgt) and src.startswith(family(tgt) + "/"):
        return True
    if is_wildcard(src) and tgt.startswith(family(src) + "/"):
        return True
    return False


@dataclass
class ArtifactRef:
    """
    Reference to a media artifact (image or video) held by external storage.

    The core never decodes media; artifacts travel between nodes as URLs
    plus whatever dimensions the backend reported.
    """
    url: str
    mime_type: str = ""
    width: int | None = None
    height: int | None = None
    duration: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"url": self.url}
        if self.mime_type:
            data["mimeType"] = self.mime_type
        if self.width is not None:
            data["width"] = self.width
        if self.height is not None:
            data["height"] = self.height
        if self.duration is not None:
            data["duration"] = self.duration
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArtifactRef:
        known = {"url", "mimeType", "width", "height", "duration"}
        return cls(
            url=str(data.get("url", "")),
            mime_type=data.get("mimeType", ""),
            width=data.get("width"),
            height=data.get("height"),
            duration=data.get("duration"),
            extra={k: v for k, v in data.items() if k not in known},
        )
