"""
Execution Engine - Async workflow execution.

This module provides:
- plan_execution: Deterministic dependency order for a target or the whole graph
- ExecutionEngine: Runs a plan with concurrent independent branches
- ExecutionHandle: Awaitable, cancellable view of one running job
- ExecutionJob / ExecutionProgress: Job results and progress reports

A node starts only once every in-plan dependency is COMPLETE. A failed node
blocks its transitive dependents; independent branches keep running.
Cancellation is cooperative: nodes already generating finish, nodes not yet
started keep their status.
"""

from __future__ import annotations

import asyncio
import heapq
import logging
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, AsyncIterator, Callable
from uuid import UUID, uuid4

from compute_flow.core.errors import CycleDetected, ExecutionError, ExecutionRejected
from compute_flow.core.executor import NodeExecutor
from compute_flow.core.graph import BLOCKED_BY_UPSTREAM, Node, NodeError, NodeGraph
from compute_flow.core.status import NodeStatus, guard_transition, is_runnable


logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_NODES = 4


def plan_execution(graph: NodeGraph, target_node_id: str | None = None) -> list[str]:
    """
    Compute the order in which nodes must run.

    With a target, only the target and its transitive upstream nodes are
    planned; otherwise every node is. Ties between ready nodes are broken by
    creation order, so the same graph always yields the same plan.

    Raises:
        MissingReference: Unknown target node
        CycleDetected: The relevant subgraph is not acyclic
    """
    if target_node_id is not None:
        graph.require_node(target_node_id)
        needed = {target_node_id} | graph.get_upstream_nodes(target_node_id)
    else:
        # Every node of a DAG reaches some sink
        needed = {n.id for n in graph.nodes}

    in_degree: dict[str, int] = {nid: 0 for nid in needed}
    adjacency: dict[str, list[str]] = defaultdict(list)
    for edge in graph.edges:
        if edge.source_node_id in needed and edge.target_node_id in needed:
            adjacency[edge.source_node_id].append(edge.target_node_id)
            in_degree[edge.target_node_id] += 1

    def key(node_id: str) -> tuple[int, str]:
        return (graph.require_node(node_id).created_seq, node_id)

    ready = [key(nid) for nid, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    order: list[str] = []
    while ready:
        _, node_id = heapq.heappop(ready)
        order.append(node_id)
        for neighbor in adjacency[node_id]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                heapq.heappush(ready, key(neighbor))

    if len(order) != len(needed):
        raise CycleDetected("Workflow contains a cycle and cannot be executed")
    return order


def resolve_inputs(graph: NodeGraph, node: Node) -> dict[str, Any]:
    """
    Gather a node's input values.

    Literal port values are overridden by the output values of upstream
    nodes. Ports that accept several connections receive a list.
    """
    inputs: dict[str, Any] = {p.id: p.value for p in node.inputs if p.value is not None}

    for port in node.inputs:
        values = []
        for edge in graph.incoming_edges(node.id, port.id):
            source = graph.get_node(edge.source_node_id)
            if source is None:
                continue
            output = source.get_output(edge.source_port_id)
            if output is not None and output.value is not None:
                values.append(output.value)
        if not values:
            continue
        inputs[port.id] = values if port.cardinality.max > 1 else values[0]

    return inputs


class ExecutionStatus(Enum):
    """Status of an execution job."""
    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()


@dataclass
class ExecutionProgress:
    """Progress information for an execution."""
    job_id: UUID
    status: ExecutionStatus
    current_node: str | None = None
    current_node_name: str = ""
    node_status: NodeStatus | None = None
    nodes_completed: int = 0
    nodes_total: int = 0
    message: str = ""
    error: str | None = None

    @property
    def progress_percent(self) -> float:
        if self.nodes_total == 0:
            return 0.0
        return (self.nodes_completed / self.nodes_total) * 100


@dataclass
class ExecutionJob:
    """One execution of a plan, with per-node results."""
    id: UUID
    plan: list[str]
    status: ExecutionStatus = ExecutionStatus.PENDING
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None
    completed_at: float | None = None
    results: dict[str, dict[str, Any]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    timings: dict[str, float] = field(default_factory=dict)
    error: str | None = None

    @property
    def nodes_finished(self) -> int:
        return len(self.results) + len(self.errors)

    @property
    def skipped(self) -> list[str]:
        """Planned nodes that never ran (cancellation)."""
        return [
            nid for nid in self.plan
            if nid not in self.results and nid not in self.errors
        ]


class ExecutionContext:
    """
    Per-job context shared by the scheduler and its node tasks.

    Provides cancellation checking and progress reporting.
    """

    def __init__(
        self,
        job_id: UUID,
        on_progress: Callable[[ExecutionProgress], None] | None = None,
    ):
        self.job_id = job_id
        self._on_progress = on_progress
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def report_progress(self, progress: ExecutionProgress) -> None:
        """Report progress to listeners."""
        if self._on_progress:
            try:
                self._on_progress(progress)
            except Exception:
                logger.exception("Progress callback failed")


class ExecutionHandle:
    """Handle on a running job: await it, cancel it, or poll it."""

    def __init__(self, job: ExecutionJob, task: asyncio.Task, context: ExecutionContext):
        self._job = job
        self._task = task
        self._context = context

    @property
    def job_id(self) -> UUID:
        return self._job.id

    @property
    def job(self) -> ExecutionJob:
        return self._job

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        """Stop launching new nodes; nodes already generating finish."""
        self._context.cancel()

    async def wait(self) -> ExecutionJob:
        await self._task
        return self._job


class ExecutionEngine:
    """
    Async execution engine for node graphs.

    Features:
    - Concurrent execution of independent branches
    - Upstream-failure blocking
    - Progress reporting
    - Cooperative cancellation
    """

    def __init__(
        self,
        executor: NodeExecutor | None = None,
        max_concurrent_nodes: int = DEFAULT_MAX_CONCURRENT_NODES,
        lock: asyncio.Lock | None = None,
    ):
        if max_concurrent_nodes < 1:
            raise ValueError("max_concurrent_nodes must be at least 1")
        self.executor = executor or NodeExecutor()
        self.max_concurrent_nodes = max_concurrent_nodes
        self._lock = lock
        self._handles: dict[UUID, ExecutionHandle] = {}

        # Callbacks
        self._on_progress: Callable[[ExecutionProgress], None] | None = None
        self._on_job_complete: Callable[[ExecutionJob], None] | None = None

    def set_progress_callback(
        self,
        callback: Callable[[ExecutionProgress], None],
    ) -> None:
        """Set the progress callback."""
        self._on_progress = callback

    def set_completion_callback(
        self,
        callback: Callable[[ExecutionJob], None],
    ) -> None:
        """Set the job completion callback."""
        self._on_job_complete = callback

    @property
    def active_jobs(self) -> list[ExecutionHandle]:
        return [h for h in self._handles.values() if not h.done]

    def execute(self, graph: NodeGraph, plan: list[str]) -> ExecutionHandle:
        """
        Start executing `plan` against `graph`.

        Must be called from a running event loop. Returns immediately with a
        handle; the job runs as a background task.

        Raises:
            ExecutionRejected: A planned node is already generating
            MissingReference: A planned node does not exist
        """
        for node_id in plan:
            node = graph.require_node(node_id)
            if not is_runnable(node.status):
                raise ExecutionRejected(
                    f'Node "{node.label}" is already generating'
                )

        job = ExecutionJob(id=uuid4(), plan=list(plan))
        context = ExecutionContext(job.id, on_progress=self._on_progress)
        task = asyncio.create_task(self._execute_job(job, graph, context))
        handle = ExecutionHandle(job, task, context)
        self._handles[job.id] = handle
        task.add_done_callback(lambda _: self._handles.pop(job.id, None))
        return handle

    def cancel_all(self) -> None:
        """Cancel every running job."""
        for handle in self.active_jobs:
            handle.cancel()

    @asynccontextmanager
    async def _writeback(self) -> AsyncIterator[None]:
        """Serialize graph writes with other mutators when a lock is shared."""
        if self._lock is None:
            yield
            return
        async with self._lock:
            yield

    async def _execute_job(
        self,
        job: ExecutionJob,
        graph: NodeGraph,
        context: ExecutionContext,
    ) -> None:
        """Run every planned node, respecting dependencies."""
        job.status = ExecutionStatus.RUNNING
        job.started_at = time.time()
        total = len(job.plan)
        logger.info("Execution %s started (%d nodes)", job.id, total)

        context.report_progress(ExecutionProgress(
            job_id=job.id,
            status=ExecutionStatus.RUNNING,
            nodes_total=total,
            message="Starting execution",
        ))

        in_plan = set(job.plan)
        dependencies = {
            nid: {
                e.source_node_id for e in graph.incoming_edges(nid)
                if e.source_node_id in in_plan
            }
            for nid in job.plan
        }

        pending = list(job.plan)
        running: dict[asyncio.Task, str] = {}
        succeeded: set[str] = set()
        failed: set[str] = set()

        try:
            while pending or running:
                if not context.is_cancelled:
                    # Plan order is topological, so one pass blocks transitively
                    for node_id in list(pending):
                        blocker = next(
                            (d for d in sorted(dependencies[node_id]) if d in failed),
                            None,
                        )
                        if blocker is None:
                            continue
                        pending.remove(node_id)
                        failed.add(node_id)
                        await self._mark_blocked(graph, job, node_id, blocker, context)

                    for node_id in list(pending):
                        if len(running) >= self.max_concurrent_nodes:
                            break
                        if not dependencies[node_id] <= succeeded:
                            continue
                        pending.remove(node_id)
                        task = asyncio.create_task(
                            self._execute_node(graph, job, node_id, context)
                        )
                        running[task] = node_id

                if not running:
                    break

                done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    node_id = running.pop(task)
                    if task.result():
                        succeeded.add(node_id)
                    else:
                        failed.add(node_id)

        except asyncio.CancelledError:
            for task in running:
                task.cancel()
            job.status = ExecutionStatus.CANCELLED
            job.error = "Execution task cancelled"
            job.completed_at = time.time()
            raise

        job.completed_at = time.time()
        if context.is_cancelled and pending:
            job.status = ExecutionStatus.CANCELLED
            job.error = "Cancelled by user"
            message = "Execution cancelled"
        elif failed:
            job.status = ExecutionStatus.FAILED
            job.error = f"{len(failed)} node(s) failed"
            message = f"Execution failed: {job.error}"
        else:
            job.status = ExecutionStatus.COMPLETED
            message = "Execution complete"

        logger.info("Execution %s finished: %s", job.id, job.status.name)
        context.report_progress(ExecutionProgress(
            job_id=job.id,
            status=job.status,
            nodes_completed=len(job.results),
            nodes_total=total,
            message=message,
            error=job.error,
        ))

        if self._on_job_complete:
            self._on_job_complete(job)

    async def _execute_node(
        self,
        graph: NodeGraph,
        job: ExecutionJob,
        node_id: str,
        context: ExecutionContext,
    ) -> bool:
        """Execute a single node; returns True on success."""
        async with self._writeback():
            node = graph.get_node(node_id)
            if node is None:
                job.errors[node_id] = "Node was removed before it could run"
                return False
            if node.status is NodeStatus.GENERATING:
                job.errors[node_id] = "Node is already generating"
                return False
            guard_transition(node.id, node.status, NodeStatus.GENERATING)
            node.status = NodeStatus.GENERATING
            node.progress = 0.0
            node.error = None
            inputs = resolve_inputs(graph, node)
            params = dict(node.params)
            kind = node.kind
            label = node.label

        context.report_progress(ExecutionProgress(
            job_id=job.id,
            status=ExecutionStatus.RUNNING,
            current_node=node_id,
            current_node_name=label,
            node_status=NodeStatus.GENERATING,
            nodes_completed=len(job.results),
            nodes_total=len(job.plan),
            message=f"Executing {label}",
        ))

        def on_node_progress(nid: str, fraction: float) -> None:
            # Called on the loop thread with no await, so it never lands inside
            # a locked writeback; only the progress field is touched.
            target = graph.get_node(nid)
            if target is not None and target.status is NodeStatus.GENERATING:
                target.progress = fraction

        start = time.perf_counter()
        try:
            result = await self.executor.execute(
                node_id, kind, inputs, params, on_progress=on_node_progress
            )
        except asyncio.CancelledError:
            async with self._writeback():
                self._store_error(graph, node_id, NodeError("Execution cancelled"))
            raise
        except Exception as e:
            details = e.provider_message if isinstance(e, ExecutionError) else None
            logger.warning("Node %s (%s) failed: %s", node_id, kind, e)
            job.errors[node_id] = str(e)
            job.timings[node_id] = time.perf_counter() - start
            async with self._writeback():
                self._store_error(graph, node_id, NodeError(str(e), details=details))
            self._report_node_finished(job, node_id, label, NodeStatus.ERROR, context, str(e))
            return False

        job.timings[node_id] = time.perf_counter() - start
        async with self._writeback():
            node = graph.get_node(node_id)
            stored = node is not None and node.status is NodeStatus.GENERATING
            if stored:
                guard_transition(node.id, node.status, NodeStatus.COMPLETE)
                node.status = NodeStatus.COMPLETE
                node.progress = 1.0
                node.store_outputs(result.outputs)

        if not stored:
            # Removed or reset during the call: outputs are discarded
            message = "Node was removed or reset while generating"
            logger.warning("Node %s: %s", node_id, message)
            job.errors[node_id] = message
            self._report_node_finished(job, node_id, label, NodeStatus.ERROR, context, message)
            return False

        job.results[node_id] = result.outputs
        logger.debug("Node %s completed in %.2fs", node_id, job.timings[node_id])
        self._report_node_finished(job, node_id, label, NodeStatus.COMPLETE, context)
        return True

    @staticmethod
    def _store_error(graph: NodeGraph, node_id: str, error: NodeError) -> None:
        node = graph.get_node(node_id)
        if node is None:
            return
        guard_transition(node.id, node.status, NodeStatus.ERROR)
        node.status = NodeStatus.ERROR
        node.error = error

    async def _mark_blocked(
        self,
        graph: NodeGraph,
        job: ExecutionJob,
        node_id: str,
        blocker: str,
        context: ExecutionContext,
    ) -> None:
        job.errors[node_id] = BLOCKED_BY_UPSTREAM
        async with self._writeback():
            node = graph.get_node(node_id)
            if node is None:
                return
            guard_transition(node.id, node.status, NodeStatus.ERROR)
            node.status = NodeStatus.ERROR
            node.progress = 0.0
            node.error = NodeError(BLOCKED_BY_UPSTREAM, blocked_by=blocker)
            node.clear_outputs()
            label = node.label
        logger.debug("Node %s blocked by upstream failure of %s", node_id, blocker)
        self._report_node_finished(
            job, node_id, label, NodeStatus.ERROR, context, BLOCKED_BY_UPSTREAM
        )

    @staticmethod
    def _report_node_finished(
        job: ExecutionJob,
        node_id: str,
        label: str,
        status: NodeStatus,
        context: ExecutionContext,
        error: str | None = None,
    ) -> None:
        context.report_progress(ExecutionProgress(
            job_id=job.id,
            status=ExecutionStatus.RUNNING,
            current_node=node_id,
            current_node_name=label,
            node_status=status,
            nodes_completed=len(job.results),
            nodes_total=len(job.plan),
            message=f"{label}: {status.value}",
            error=error,
        ))
