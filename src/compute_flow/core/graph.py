"""
Node Graph Model - Core data structures for the compute workflow.

This module defines the fundamental building blocks:
- Port: A typed connection point on a node (input or output)
- Node: A single compute block whose ports are fixed by its kind
- Edge: A link from an output port to an input port
- NodeGraph: The complete graph and its legal structural mutations

Every structural mutation is all-or-nothing: a rejected mutation raises a
StructuralError and leaves the graph untouched.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable
from uuid import uuid4

from compute_flow.core.data_types import is_compatible
from compute_flow.core.errors import (
    CardinalityExceeded,
    CycleDetected,
    IncompatibleTypes,
    InvalidPortDirection,
    MissingReference,
    StructuralError,
)
from compute_flow.core.status import NodeStatus


# Monotonic creation counter used for stable ordering of nodes
_creation_counter = itertools.count()


def new_node_id() -> str:
    """Generate a new unique node ID."""
    return str(uuid4())


def new_edge_id() -> str:
    """Generate a new unique edge ID."""
    return str(uuid4())


def next_creation_seq() -> int:
    return next(_creation_counter)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PortDirection(str, Enum):
    INPUT = "input"
    OUTPUT = "output"


class PortSide(str, Enum):
    """Layout hint only; carries no semantics."""
    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"
    LEFT = "left"


@dataclass(frozen=True)
class Cardinality:
    """Allowed range of edge counts terminating at (or leaving) a port."""
    min: int = 0
    max: int = 1

    def __post_init__(self) -> None:
        if self.min < 0 or self.max < self.min:
            raise ValueError(f"Invalid cardinality {self.min}..{self.max}")


@dataclass
class Point2D:
    """2D point for node positioning on the canvas."""
    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: Point2D) -> Point2D:
        return Point2D(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point2D) -> Point2D:
        return Point2D(self.x - other.x, self.y - other.y)


@dataclass
class ViewState:
    """Canvas viewport persisted with the graph."""
    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0


@dataclass
class Port:
    """
    A typed, named connection point on a node.

    Attributes:
        id: Unique within the owning node (e.g. "text-in")
        name: Display name
        datatype: MIME-like tag ("text/plain", "image/*", "any")
        direction: Input or output
        side: Layout hint
        optional: If False and cardinality.min >= 1, the input is required
        cardinality: Allowed number of connections
        value: Literal value (inputs) or produced output (outputs)
    """
    id: str
    name: str
    datatype: str
    direction: PortDirection
    side: PortSide = PortSide.LEFT
    optional: bool = False
    cardinality: Cardinality = field(default_factory=Cardinality)
    value: Any = None

    @property
    def is_input(self) -> bool:
        return self.direction is PortDirection.INPUT

    @property
    def is_required(self) -> bool:
        return self.is_input and not self.optional and self.cardinality.min >= 1


@dataclass
class NodeError:
    """Error information from a failed node execution."""
    message: str
    details: str | None = None
    blocked_by: str | None = None  # Upstream node id when blocked


BLOCKED_BY_UPSTREAM = "blocked by upstream failure"


@dataclass
class Node:
    """
    A single compute block in the workflow graph.

    Nodes have:
    - A unique ID and a kind (which fixes the port shape)
    - Input and output ports
    - Parameter values
    - Execution status, progress and error
    - Position on the canvas
    """
    id: str
    kind: str
    label: str
    inputs: list[Port] = field(default_factory=list)
    outputs: list[Port] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)
    status: NodeStatus = NodeStatus.IDLE
    progress: float = 0.0
    position: Point2D = field(default_factory=Point2D)
    error: NodeError | None = None
    created_seq: int = field(default_factory=next_creation_seq)

    def __post_init__(self) -> None:
        ids = [p.id for p in self.inputs] + [p.id for p in self.outputs]
        if len(ids) != len(set(ids)):
            raise StructuralError(f"Node {self.id}: port ids must be unique")

    def get_input(self, port_id: str) -> Port | None:
        for port in self.inputs:
            if port.id == port_id:
                return port
        return None

    def get_output(self, port_id: str) -> Port | None:
        for port in self.outputs:
            if port.id == port_id:
                return port
        return None

    def get_port(self, port_id: str) -> Port | None:
        return self.get_input(port_id) or self.get_output(port_id)

    def set_parameter(self, name: str, value: Any) -> None:
        self.params[name] = value

    def get_parameter(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)

    def set_input_value(self, port_id: str, value: Any) -> None:
        """Set the literal value of an input port."""
        port = self.get_input(port_id)
        if port is None:
            raise MissingReference(f"Node {self.id} has no input port {port_id}")
        port.value = value

    @property
    def output_values(self) -> dict[str, Any]:
        """Produced outputs keyed by output port id."""
        return {p.id: p.value for p in self.outputs if p.value is not None}

    def store_outputs(self, outputs: dict[str, Any]) -> None:
        """Store produced values on matching output ports."""
        for port in self.outputs:
            port.value = outputs.get(port.id)

    def clear_outputs(self) -> None:
        for port in self.outputs:
            port.value = None


@dataclass(frozen=True)
class Edge:
    """A directed connection from one output port to one input port."""
    id: str
    source_node_id: str
    source_port_id: str
    target_node_id: str
    target_port_id: str

    @classmethod
    def create(
        cls,
        source_node_id: str,
        source_port_id: str,
        target_node_id: str,
        target_port_id: str,
    ) -> Edge:
        """Factory method to create a new edge."""
        return cls(
            id=new_edge_id(),
            source_node_id=source_node_id,
            source_port_id=source_port_id,
            target_node_id=target_node_id,
            target_port_id=target_port_id,
        )


class NodeGraph:
    """
    The complete compute graph for a project.

    Contains nodes (in insertion order) and edges.
    Provides the legal structural mutations and dependency queries.
    """

    def __init__(
        self,
        graph_id: str | None = None,
        created_by: str = "",
        created_at: datetime | None = None,
    ):
        self.id: str = graph_id or str(uuid4())
        self.created_by: str = created_by
        self.created_at: datetime = created_at or utcnow()
        self.updated_at: datetime = self.created_at
        self.view_state: ViewState = ViewState()
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, Edge] = {}

    def touch(self) -> None:
        self.updated_at = utcnow()

    # --- Node operations ---

    @property
    def nodes(self) -> list[Node]:
        """All nodes in insertion order (copy of the list)."""
        return list(self._nodes.values())

    def add_node(
        self,
        kind: str,
        position: Point2D | None = None,
        label: str | None = None,
    ) -> Node:
        """Instantiate a node of `kind` from its template and add it."""
        from compute_flow.core.node_types import NodeRegistry

        node = NodeRegistry.instance().create_node(kind, position, label)
        self._nodes[node.id] = node
        self.touch()
        return node

    def insert_node(self, node: Node) -> None:
        """Add a prebuilt node (loaded from storage or a remote event)."""
        if node.id in self._nodes:
            raise StructuralError(f"Node {node.id} already exists")
        self._nodes[node.id] = node
        self.touch()

    def remove_node(self, node_id: str) -> Node:
        """
        Remove a node and every edge touching any of its ports.

        Returns the removed node.
        """
        node = self._nodes.pop(node_id, None)
        if node is None:
            raise MissingReference(f"Node {node_id} not found")
        self._edges = {
            eid: edge for eid, edge in self._edges.items()
            if edge.source_node_id != node_id and edge.target_node_id != node_id
        }
        self.touch()
        return node

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def require_node(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise MissingReference(f"Node {node_id} not found")
        return node

    # --- Edge operations ---

    @property
    def edges(self) -> list[Edge]:
        """All edges in insertion order (copy of the list)."""
        return list(self._edges.values())

    def get_edge(self, edge_id: str) -> Edge | None:
        return self._edges.get(edge_id)

    def connect(
        self,
        source_node_id: str,
        source_port_id: str,
        target_node_id: str,
        target_port_id: str,
    ) -> Edge:
        """
        Connect an output port to an input port.

        Raises:
            MissingReference: Unknown node or port
            InvalidPortDirection: Source is not an output or target not an input
            IncompatibleTypes: Datatypes cannot be connected
            CardinalityExceeded: Target (or source) port is full
            CycleDetected: The edge would close a cycle
        """
        edge = Edge.create(source_node_id, source_port_id, target_node_id, target_port_id)
        self.check_edge(edge)
        self._edges[edge.id] = edge
        self.touch()
        return edge

    def insert_edge(self, edge: Edge) -> None:
        """Add a prebuilt edge after checking every connection rule."""
        if edge.id in self._edges:
            raise StructuralError(f"Edge {edge.id} already exists")
        self.check_edge(edge)
        self._edges[edge.id] = edge
        self.touch()

    def check_edge(self, edge: Edge, existing: Iterable[Edge] | None = None) -> None:
        """Raise the StructuralError that adding `edge` would violate, if any."""
        edges = list(self._edges.values()) if existing is None else list(existing)
        source_node = self.require_node(edge.source_node_id)
        target_node = self.require_node(edge.target_node_id)

        source_port = source_node.get_port(edge.source_port_id)
        target_port = target_node.get_port(edge.target_port_id)
        if source_port is None:
            raise MissingReference(
                f"Node {source_node.id} has no port {edge.source_port_id}"
            )
        if target_port is None:
            raise MissingReference(
                f"Node {target_node.id} has no port {edge.target_port_id}"
            )
        if source_port.is_input:
            raise InvalidPortDirection(f"Port {source_port.id} is not an output")
        if not target_port.is_input:
            raise InvalidPortDirection(f"Port {target_port.id} is not an input")

        if not is_compatible(source_port.datatype, target_port.datatype):
            raise IncompatibleTypes(source_port.datatype, target_port.datatype)

        incoming = sum(
            1 for e in edges
            if e.target_node_id == edge.target_node_id
            and e.target_port_id == edge.target_port_id
        )
        if incoming + 1 > target_port.cardinality.max:
            raise CardinalityExceeded(target_port.name, target_port.cardinality.max)

        outgoing = sum(
            1 for e in edges
            if e.source_node_id == edge.source_node_id
            and e.source_port_id == edge.source_port_id
        )
        if outgoing + 1 > source_port.cardinality.max:
            raise CardinalityExceeded(
                source_port.name, source_port.cardinality.max, source_side=True
            )

        if edge.source_node_id == edge.target_node_id:
            raise CycleDetected("Cannot connect a node to itself")
        if self._reachable(edge.target_node_id, edge.source_node_id, edges):
            raise CycleDetected()

    def disconnect(self, edge_id: str) -> Edge:
        """Remove an edge unconditionally."""
        edge = self._edges.pop(edge_id, None)
        if edge is None:
            raise MissingReference(f"Edge {edge_id} not found")
        self.touch()
        return edge

    def incoming_edges(self, node_id: str, port_id: str | None = None) -> list[Edge]:
        """Edges terminating at a node (optionally at one of its ports)."""
        return [
            e for e in self._edges.values()
            if e.target_node_id == node_id
            and (port_id is None or e.target_port_id == port_id)
        ]

    def outgoing_edges(self, node_id: str, port_id: str | None = None) -> list[Edge]:
        """Edges leaving a node (optionally from one of its ports)."""
        return [
            e for e in self._edges.values()
            if e.source_node_id == node_id
            and (port_id is None or e.source_port_id == port_id)
        ]

    # --- Graph analysis ---

    def get_sink_nodes(self) -> list[Node]:
        """Nodes with no outgoing edges (terminal nodes)."""
        sources = {e.source_node_id for e in self._edges.values()}
        return [n for n in self._nodes.values() if n.id not in sources]

    def get_upstream_nodes(self, node_id: str) -> set[str]:
        """Get all nodes that this node depends on (directly or indirectly)."""
        upstream: set[str] = set()
        to_visit = [node_id]

        while to_visit:
            current = to_visit.pop()
            for edge in self._edges.values():
                if edge.target_node_id == current:
                    source_id = edge.source_node_id
                    if source_id not in upstream:
                        upstream.add(source_id)
                        to_visit.append(source_id)

        return upstream

    def get_downstream_nodes(self, node_id: str) -> set[str]:
        """Get all nodes that depend on this node (directly or indirectly)."""
        downstream: set[str] = set()
        to_visit = [node_id]

        while to_visit:
            current = to_visit.pop()
            for edge in self._edges.values():
                if edge.source_node_id == current:
                    target_id = edge.target_node_id
                    if target_id not in downstream:
                        downstream.add(target_id)
                        to_visit.append(target_id)

        return downstream

    @staticmethod
    def _reachable(start: str, goal: str, edges: list[Edge]) -> bool:
        """Depth-first walk along outgoing edges from `start`."""
        visited: set[str] = set()
        to_visit = [start]

        while to_visit:
            current = to_visit.pop()
            if current == goal:
                return True
            if current in visited:
                continue
            visited.add(current)
            to_visit.extend(
                e.target_node_id for e in edges if e.source_node_id == current
            )

        return False

    # --- Bulk state (history restore, loading) ---

    def replace_contents(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> None:
        """Replace all nodes and edges without checks."""
        self._nodes = {n.id: n for n in nodes}
        self._edges = {e.id: e for e in edges}
        self.touch()

    def clear(self) -> None:
        """Remove all nodes and edges."""
        self._nodes.clear()
        self._edges.clear()
        self.touch()

    def __len__(self) -> int:
        """Return the number of nodes."""
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes
