"""
Tests for undo/redo history and snapshot debouncing.
"""

import asyncio

import pytest

from compute_flow.core.graph import NodeGraph
from compute_flow.core.history import HistoryManager, HistorySnapshot, SnapshotDebouncer
from compute_flow.core.node_types import NodeKind


def labels(snapshot):
    nodes, _ = snapshot.restore()
    return [n.label for n in nodes]


class TestHistoryManager:

    def test_reset_seeds_one_entry(self):
        history = HistoryManager(5)
        history.reset([], [])
        assert len(history) == 1
        assert not history.can_undo
        assert not history.can_redo

    def test_undo_redo(self):
        graph = NodeGraph()
        history = HistoryManager(5)
        history.reset(graph.nodes, graph.edges)

        graph.add_node(NodeKind.TEXT_INPUT, label="one")
        history.snapshot(graph.nodes, graph.edges)
        graph.add_node(NodeKind.TEXT_INPUT, label="two")
        history.snapshot(graph.nodes, graph.edges)

        assert labels(history.undo()) == ["one"]
        assert labels(history.undo()) == []
        assert history.undo() is None
        assert labels(history.redo()) == ["one"]
        assert history.can_redo

    def test_snapshot_after_undo_discards_redo(self):
        history = HistoryManager(5)
        graph = NodeGraph()
        history.reset(graph.nodes, graph.edges)
        graph.add_node(NodeKind.TEXT_INPUT, label="a")
        history.snapshot(graph.nodes, graph.edges)
        history.undo()

        graph.add_node(NodeKind.TEXT_INPUT, label="b")
        history.snapshot(graph.nodes, graph.edges)

        assert not history.can_redo
        assert len(history) == 2

    def test_capacity_evicts_oldest(self):
        history = HistoryManager(3)
        graph = NodeGraph()
        history.reset(graph.nodes, graph.edges)
        for name in ("a", "b", "c", "d"):
            graph.add_node(NodeKind.TEXT_INPUT, label=name)
            history.snapshot(graph.nodes, graph.edges)

        assert len(history) == 3
        assert history.index == 2
        history.undo()
        oldest = history.undo()
        assert labels(oldest) == ["a", "b"]
        assert not history.can_undo

    def test_snapshot_is_isolated_from_graph(self):
        graph = NodeGraph()
        node = graph.add_node(NodeKind.TEXT_INPUT, label="before")
        snapshot = HistorySnapshot.capture(graph.nodes, graph.edges)

        node.label = "after"
        restored, _ = snapshot.restore()
        restored[0].label = "mutated"

        assert labels(snapshot) == ["before"]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            HistoryManager(0)


class TestSnapshotDebouncer:

    def test_burst_collapses_to_one_call(self):
        calls = []

        async def scenario():
            debouncer = SnapshotDebouncer(0.02, lambda: calls.append(1))
            for _ in range(5):
                debouncer.touch()
                await asyncio.sleep(0.001)
            assert debouncer.pending
            await asyncio.sleep(0.1)
            assert not debouncer.pending

        asyncio.run(scenario())
        assert calls == [1]

    def test_flush_fires_immediately(self):
        calls = []

        async def scenario():
            debouncer = SnapshotDebouncer(10.0, lambda: calls.append(1))
            debouncer.touch()
            debouncer.flush()
            debouncer.flush()
            assert not debouncer.pending

        asyncio.run(scenario())
        assert calls == [1]

    def test_cancel_drops_pending(self):
        calls = []

        async def scenario():
            debouncer = SnapshotDebouncer(0.01, lambda: calls.append(1))
            debouncer.touch()
            debouncer.cancel()
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert calls == []
