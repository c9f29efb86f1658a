"""
Graph Session - The single entry point for mutating a project's graph.

A session owns one graph and one asyncio.Lock. Local edits, undo/redo,
execution writebacks and remote merges all take the lock, so they apply one
at a time and in arrival order. Provider calls run without it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from compute_flow.config import StudioSettings
from compute_flow.core.errors import StructuralError
from compute_flow.core.execution import ExecutionEngine, ExecutionHandle, plan_execution
from compute_flow.core.executor import NodeExecutor
from compute_flow.core.graph import Edge, Node, NodeGraph, Point2D
from compute_flow.core.history import HistoryManager, HistorySnapshot, SnapshotDebouncer
from compute_flow.core.node_types import NodeRegistry
from compute_flow.core.status import NodeStatus, can_reset
from compute_flow.core.validation import ValidationResult, validate
from compute_flow.sync.events import ChangeEvent
from compute_flow.sync.merge import LocalEditLog, MergeOutcome, merge_node_event

if TYPE_CHECKING:
    from compute_flow.providers.registry import ProviderRegistry
    from compute_flow.sync.coordinator import RealtimeSyncCoordinator
    from compute_flow.sync.feed import ChangeFeed


logger = logging.getLogger(__name__)


class GraphSession:
    """
    An editing and execution session over one graph.

    Every discrete mutation records one history snapshot; node moves are
    debounced into a single snapshot per drag.
    """

    def __init__(
        self,
        graph: NodeGraph | None = None,
        settings: StudioSettings | None = None,
        providers: ProviderRegistry | None = None,
        executor: NodeExecutor | None = None,
    ):
        self.graph = graph or NodeGraph()
        self.settings = settings or StudioSettings()
        self._lock = asyncio.Lock()

        self.history = HistoryManager(self.settings.history_limit)
        self.history.reset(self.graph.nodes, self.graph.edges)
        self._debouncer = SnapshotDebouncer(
            self.settings.position_debounce_seconds, self._snapshot
        )
        self.edits = LocalEditLog()

        self.engine = ExecutionEngine(
            executor or NodeExecutor(providers),
            max_concurrent_nodes=self.settings.max_concurrent_nodes,
            lock=self._lock,
        )

        self.coordinator: RealtimeSyncCoordinator | None = None
        self._sync_task: asyncio.Task | None = None
        self._closed = False

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    @property
    def is_closed(self) -> bool:
        return self._closed

    # --- History plumbing ---

    def _snapshot(self) -> None:
        self.history.snapshot(self.graph.nodes, self.graph.edges)

    def _restore(self, snapshot: HistorySnapshot) -> None:
        """
        Swap in a snapshot's nodes and edges.

        Execution state is not part of history: nodes that still exist keep
        their live status, progress, error and outputs, and a node brought
        back while it was recorded as generating comes back IDLE.
        """
        nodes, edges = snapshot.restore()
        for node in nodes:
            live = self.graph.get_node(node.id)
            if live is not None:
                node.status = live.status
                node.progress = live.progress
                node.error = live.error
                node.store_outputs(live.output_values)
            elif node.status is NodeStatus.GENERATING:
                node.status = NodeStatus.IDLE
                node.progress = 0.0
        self.graph.replace_contents(nodes, edges)

    # --- Structural edits ---

    async def add_node(
        self,
        kind: str,
        position: Point2D | None = None,
        label: str | None = None,
    ) -> Node:
        async with self._lock:
            self._debouncer.flush()
            node = self.graph.add_node(kind, position, label)
            self.edits.forget(node.id)
            self._snapshot()
            return node

    async def remove_node(self, node_id: str) -> Node:
        """Remove a node and every edge attached to it."""
        async with self._lock:
            self._debouncer.flush()
            node = self.graph.remove_node(node_id)
            self.edits.record_removal(node_id)
            self._snapshot()
            return node

    async def connect(
        self,
        source_node_id: str,
        source_port_id: str,
        target_node_id: str,
        target_port_id: str,
    ) -> Edge:
        """
        Connect two ports. A rejected connection raises the StructuralError
        naming the violated rule and records nothing.
        """
        async with self._lock:
            self._debouncer.flush()
            edge = self.graph.connect(
                source_node_id, source_port_id, target_node_id, target_port_id
            )
            self._snapshot()
            return edge

    async def disconnect(self, edge_id: str) -> Edge:
        async with self._lock:
            self._debouncer.flush()
            edge = self.graph.disconnect(edge_id)
            self._snapshot()
            return edge

    async def set_parameter(self, node_id: str, name: str, value: Any) -> None:
        async with self._lock:
            node = self.graph.require_node(node_id)
            self._debouncer.flush()
            node.set_parameter(name, value)
            self.edits.record_edit(node_id, "params")
            self.graph.touch()
            self._snapshot()

    async def set_input_value(self, node_id: str, port_id: str, value: Any) -> None:
        """Set the literal value of an input port."""
        async with self._lock:
            node = self.graph.require_node(node_id)
            self._debouncer.flush()
            node.set_input_value(port_id, value)
            self.graph.touch()
            self._snapshot()

    async def rename_node(self, node_id: str, label: str) -> None:
        async with self._lock:
            node = self.graph.require_node(node_id)
            self._debouncer.flush()
            node.label = label
            self.edits.record_edit(node_id, "label")
            self.graph.touch()
            self._snapshot()

    async def move_node(self, node_id: str, position: Point2D) -> None:
        """Move a node; a burst of moves becomes one history entry."""
        async with self._lock:
            node = self.graph.require_node(node_id)
            node.position = position
            self.edits.record_edit(node_id, "position")
            self.graph.touch()
            self._debouncer.touch()

    async def add_generated_workflow(
        self,
        nodes: list[dict[str, Any]],
        edges: list[dict[str, Any]],
    ) -> tuple[list[Node], list[Edge]]:
        """
        Import a generated workflow as one undoable step.

        Nodes get fresh ids. An edge naming a port its node lacks falls back
        to the node's first port on that side; edges that still break a
        connection rule are dropped with a warning.
        """
        registry = NodeRegistry.instance()
        async with self._lock:
            self._debouncer.flush()

            id_map: dict[str, Node] = {}
            added_nodes: list[Node] = []
            for item in nodes:
                node_type = registry.get(item.get("kind", ""))
                if node_type is None:
                    logger.warning("Skipping generated node of unknown kind %r", item.get("kind"))
                    continue
                position = item.get("position") or {}
                node = node_type.instantiate(
                    Point2D(float(position.get("x", 0.0)), float(position.get("y", 0.0))),
                    item.get("label"),
                )
                node.params.update(item.get("params") or {})
                self.graph.insert_node(node)
                added_nodes.append(node)
                if item.get("id"):
                    id_map[str(item["id"])] = node

            added_edges: list[Edge] = []
            for item in edges:
                try:
                    source = id_map[item["source"]["nodeId"]]
                    target = id_map[item["target"]["nodeId"]]
                except (KeyError, TypeError):
                    logger.warning("Skipping generated edge with unknown endpoints: %r", item)
                    continue

                source_port = item["source"].get("portId")
                if source.get_output(source_port) is None and source.outputs:
                    source_port = source.outputs[0].id
                target_port = item["target"].get("portId")
                if target.get_input(target_port) is None and target.inputs:
                    target_port = target.inputs[0].id

                try:
                    added_edges.append(
                        self.graph.connect(source.id, source_port, target.id, target_port)
                    )
                except StructuralError as e:
                    logger.warning("Skipping generated edge: %s", e)

            self._snapshot()
            return added_nodes, added_edges

    # --- History ---

    async def undo(self) -> bool:
        async with self._lock:
            self._debouncer.flush()
            snapshot = self.history.undo()
            if snapshot is None:
                return False
            self._restore(snapshot)
            return True

    async def redo(self) -> bool:
        async with self._lock:
            self._debouncer.flush()
            snapshot = self.history.redo()
            if snapshot is None:
                return False
            self._restore(snapshot)
            return True

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo or self._debouncer.pending

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo and not self._debouncer.pending

    # --- Validation and execution ---

    async def validate(self) -> ValidationResult:
        async with self._lock:
            return validate(self.graph)

    async def plan(self, target: str | None = None) -> list[str]:
        async with self._lock:
            return plan_execution(self.graph, target)

    async def run(self, target: str | None = None) -> ExecutionHandle:
        """
        Validate, plan and start executing the graph (or one target's
        upstream subgraph).

        Raises:
            GraphValidationError: The graph is not executable
            ExecutionRejected: A planned node is already generating
        """
        async with self._lock:
            validate(self.graph).raise_for_errors()
            plan = plan_execution(self.graph, target)
            logger.info("Running %d node(s)%s", len(plan), f" for {target}" if target else "")
            return self.engine.execute(self.graph, plan)

    async def reset_statuses(self) -> int:
        """Return every node that is not generating to IDLE; returns the count."""
        async with self._lock:
            count = 0
            for node in self.graph.nodes:
                if not can_reset(node.status):
                    continue
                node.status = NodeStatus.IDLE
                node.progress = 0.0
                node.error = None
                count += 1
            self.graph.touch()
            return count

    # --- Remote changes ---

    async def apply_remote_event(self, event: ChangeEvent) -> MergeOutcome:
        async with self._lock:
            return merge_node_event(self.graph, event, self.edits)

    def start_sync(
        self,
        feed: ChangeFeed,
        project_id: str | None = None,
    ) -> RealtimeSyncCoordinator:
        """Subscribe this session to a change feed in the background."""
        from compute_flow.sync.coordinator import RealtimeSyncCoordinator

        if self._sync_task is not None:
            raise RuntimeError("Session is already subscribed to a change feed")
        self.coordinator = RealtimeSyncCoordinator(
            self,
            feed,
            project_id=project_id,
            resubscribe_delay=self.settings.resubscribe_delay,
        )
        self._sync_task = asyncio.create_task(self.coordinator.run())
        return self.coordinator

    async def close(self) -> None:
        """Cancel running jobs and release the realtime subscription."""
        if self._closed:
            return
        self._closed = True
        self.engine.cancel_all()
        self._debouncer.flush()

        if self.coordinator is not None:
            self.coordinator.stop()
        if self._sync_task is not None:
            self._sync_task.cancel()
            try:
                await self._sync_task
            except asyncio.CancelledError:
                pass
            self._sync_task = None
        logger.debug("Session for graph %s closed", self.graph.id)

