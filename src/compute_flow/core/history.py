"""
History Manager - Bounded undo/redo over graph snapshots.

The history is a fixed-capacity ring of snapshots with a cursor. Taking a
snapshot discards everything after the cursor (linear history) and evicts
the oldest entry once the capacity is exceeded.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable

from compute_flow.core.graph import Edge, Node


logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50


@dataclass(frozen=True)
class HistorySnapshot:
    """Immutable capture of the full node/edge set at one point in time."""
    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...]

    @classmethod
    def capture(cls, nodes: Iterable[Node], edges: Iterable[Edge]) -> HistorySnapshot:
        return cls(
            nodes=tuple(copy.deepcopy(list(nodes))),
            edges=tuple(edges),  # Edge is frozen
        )

    def restore(self) -> tuple[list[Node], list[Edge]]:
        """Fresh mutable copies; the snapshot itself is never handed out."""
        return copy.deepcopy(list(self.nodes)), list(self.edges)


class HistoryManager:
    """
    Bounded linear undo/redo stack.

    Invariant: 0 <= index <= len - 1 whenever the history is non-empty.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.capacity = capacity
        self._entries: deque[HistorySnapshot] = deque(maxlen=capacity)
        self._index = -1

    def reset(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> None:
        """Clear the history and seed it with the current state."""
        self._entries.clear()
        self._entries.append(HistorySnapshot.capture(nodes, edges))
        self._index = 0

    def snapshot(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> None:
        """Record the state after a discrete mutation."""
        while len(self._entries) > self._index + 1:
            self._entries.pop()
        self._entries.append(HistorySnapshot.capture(nodes, edges))
        # deque(maxlen) evicts from the left once full
        self._index = len(self._entries) - 1
        logger.debug("History snapshot %d/%d", self._index + 1, len(self._entries))

    def undo(self) -> HistorySnapshot | None:
        if not self.can_undo:
            return None
        self._index -= 1
        return self._entries[self._index]

    def redo(self) -> HistorySnapshot | None:
        if not self.can_redo:
            return None
        self._index += 1
        return self._entries[self._index]

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    @property
    def index(self) -> int:
        return self._index

    def __len__(self) -> int:
        return len(self._entries)


class SnapshotDebouncer:
    """
    Collapses a burst of continuous mutations (e.g. dragging a node) into a
    single snapshot taken after `delay` seconds of quiet.
    """

    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def touch(self) -> None:
        """Restart the quiet period."""
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def flush(self) -> None:
        """Take the pending snapshot now, if any."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()
