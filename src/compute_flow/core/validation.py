"""
Graph Validator - Structural legality checks before execution.

Every check runs independently and all issues are collected; nothing
short-circuits. Mutation paths already enforce most of these rules, but
graphs loaded from storage or merged from remote events may not have gone
through them.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum

from compute_flow.core.data_types import is_compatible
from compute_flow.core.errors import GraphValidationError
from compute_flow.core.graph import Edge, Node, NodeGraph


class ValidationCode(str, Enum):
    MISSING_NODE = "missing_node"
    MISSING_PORT = "missing_port"
    INVALID_DIRECTION = "invalid_direction"
    INCOMPATIBLE_TYPES = "incompatible_types"
    CARDINALITY_EXCEEDED = "cardinality_exceeded"
    CYCLE = "cycle"
    REQUIRED_INPUT = "required_input"
    DUPLICATE_ID = "duplicate_id"


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation failure."""
    code: ValidationCode
    message: str
    node_id: str | None = None
    edge_id: str | None = None


@dataclass
class ValidationResult:
    """Outcome of validating a graph."""
    errors: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise GraphValidationError(self.errors)

    def codes(self) -> set[ValidationCode]:
        return {issue.code for issue in self.errors}


class GraphValidator:
    """Collects every structural problem in a graph."""

    def validate(self, graph: NodeGraph) -> ValidationResult:
        nodes = graph.nodes
        edges = graph.edges
        result = ValidationResult()

        result.errors.extend(self._check_duplicates(nodes, edges))
        node_map = {n.id: n for n in nodes}
        resolvable = self._check_references(node_map, edges, result)
        result.errors.extend(self._check_edge_rules(node_map, resolvable))
        result.errors.extend(self._check_cycles(node_map, resolvable))
        result.errors.extend(self._check_required_inputs(nodes, resolvable))
        return result

    @staticmethod
    def _check_duplicates(nodes: list[Node], edges: list[Edge]) -> list[ValidationIssue]:
        """Report ids shared by two nodes or two edges."""
        issues: list[ValidationIssue] = []
        seen_nodes: set[str] = set()
        for node in nodes:
            if node.id in seen_nodes:
                issues.append(ValidationIssue(
                    ValidationCode.DUPLICATE_ID,
                    f"Duplicate node id {node.id}",
                    node_id=node.id,
                ))
            seen_nodes.add(node.id)
        seen_edges: set[str] = set()
        for edge in edges:
            if edge.id in seen_edges:
                issues.append(ValidationIssue(
                    ValidationCode.DUPLICATE_ID,
                    f"Duplicate edge id {edge.id}",
                    edge_id=edge.id,
                ))
            seen_edges.add(edge.id)
        return issues

    @staticmethod
    def _check_references(
        node_map: dict[str, Node],
        edges: list[Edge],
        result: ValidationResult,
    ) -> list[Edge]:
        """Report dangling edges; return the edges whose endpoints resolve."""
        resolvable: list[Edge] = []
        for edge in edges:
            source = node_map.get(edge.source_node_id)
            target = node_map.get(edge.target_node_id)
            if source is None or target is None:
                missing = edge.source_node_id if source is None else edge.target_node_id
                result.errors.append(ValidationIssue(
                    ValidationCode.MISSING_NODE,
                    f"Edge {edge.id}: node {missing} not found",
                    edge_id=edge.id,
                ))
                continue

            source_port = source.get_port(edge.source_port_id)
            target_port = target.get_port(edge.target_port_id)
            if source_port is None or target_port is None:
                owner, port_id = (
                    (source, edge.source_port_id) if source_port is None
                    else (target, edge.target_port_id)
                )
                result.errors.append(ValidationIssue(
                    ValidationCode.MISSING_PORT,
                    f"Edge {edge.id}: node {owner.id} has no port {port_id}",
                    edge_id=edge.id,
                ))
                continue

            if source_port.is_input or not target_port.is_input:
                result.errors.append(ValidationIssue(
                    ValidationCode.INVALID_DIRECTION,
                    f"Edge {edge.id}: must connect an output to an input",
                    edge_id=edge.id,
                ))
                continue

            resolvable.append(edge)
        return resolvable

    @staticmethod
    def _check_edge_rules(node_map: dict[str, Node], edges: list[Edge]) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        incoming: dict[tuple[str, str], int] = defaultdict(int)
        outgoing: dict[tuple[str, str], int] = defaultdict(int)

        for edge in edges:
            source_port = node_map[edge.source_node_id].get_port(edge.source_port_id)
            target_port = node_map[edge.target_node_id].get_port(edge.target_port_id)
            if not is_compatible(source_port.datatype, target_port.datatype):
                issues.append(ValidationIssue(
                    ValidationCode.INCOMPATIBLE_TYPES,
                    f"Edge {edge.id}: cannot connect {source_port.datatype} "
                    f"to {target_port.datatype}",
                    edge_id=edge.id,
                ))
            incoming[(edge.target_node_id, edge.target_port_id)] += 1
            outgoing[(edge.source_node_id, edge.source_port_id)] += 1

        for counts in (incoming, outgoing):
            for (node_id, port_id), count in counts.items():
                port = node_map[node_id].get_port(port_id)
                if count > port.cardinality.max:
                    issues.append(ValidationIssue(
                        ValidationCode.CARDINALITY_EXCEEDED,
                        f'Node {node_id}: port "{port.name}" has {count} connections, '
                        f"maximum is {port.cardinality.max}",
                        node_id=node_id,
                    ))
        return issues

    @staticmethod
    def _check_cycles(node_map: dict[str, Node], edges: list[Edge]) -> list[ValidationIssue]:
        """Global cycle check using Kahn's algorithm."""
        in_degree: dict[str, int] = {nid: 0 for nid in node_map}
        adjacency: dict[str, list[str]] = defaultdict(list)
        for edge in edges:
            adjacency[edge.source_node_id].append(edge.target_node_id)
            in_degree[edge.target_node_id] += 1

        queue = [nid for nid, degree in in_degree.items() if degree == 0]
        visited = 0
        while queue:
            current = queue.pop()
            visited += 1
            for neighbor in adjacency[current]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    queue.append(neighbor)

        if visited == len(node_map):
            return []
        cyclic = sorted(nid for nid, degree in in_degree.items() if degree > 0)
        return [ValidationIssue(
            ValidationCode.CYCLE,
            f"Graph contains a cycle through nodes: {', '.join(cyclic)}",
        )]

    @staticmethod
    def _check_required_inputs(nodes: list[Node], edges: list[Edge]) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        counts: dict[tuple[str, str], int] = defaultdict(int)
        for edge in edges:
            counts[(edge.target_node_id, edge.target_port_id)] += 1

        for node in nodes:
            for port in node.inputs:
                if not port.is_required:
                    continue
                if port.value is not None:
                    continue
                if counts[(node.id, port.id)] >= port.cardinality.min:
                    continue
                issues.append(ValidationIssue(
                    ValidationCode.REQUIRED_INPUT,
                    f'Node "{node.label or node.id}": required input "{port.name}" '
                    f"is not connected",
                    node_id=node.id,
                ))
        return issues


def validate(graph: NodeGraph) -> ValidationResult:
    """Validate a graph with the default validator."""
    return GraphValidator().validate(graph)
