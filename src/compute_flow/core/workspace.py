"""
Workspace Persistence - Save and load node graphs to/from disk.

Graphs are stored as versioned JSON documents:

    {"schemaVersion": "2.0", "graph": {id, createdAt, updatedAt, createdBy,
     nodes, edges, viewState: {x, y, zoom}}}

Loading does not re-run the connection rules; run the validator on a loaded
graph before executing it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from compute_flow.core.errors import (
    StructuralError,
    UnsupportedSchemaVersion,
    WorkspaceFormatError,
)
from compute_flow.core.graph import (
    Cardinality,
    Edge,
    Node,
    NodeError,
    NodeGraph,
    Point2D,
    Port,
    PortDirection,
    PortSide,
    ViewState,
)
from compute_flow.core.node_types import NodeRegistry
from compute_flow.core.status import NodeStatus


logger = logging.getLogger(__name__)

SCHEMA_VERSION = "2.0"

# Workspace storage directory
WORKSPACE_DIR = Path.home() / ".local" / "share" / "compute_flow" / "workspaces"


def get_workspace_dir() -> Path:
    """Get the workspace storage directory, creating if needed."""
    WORKSPACE_DIR.mkdir(parents=True, exist_ok=True)
    return WORKSPACE_DIR


# --- Encoding ---

def port_to_dict(port: Port) -> dict[str, Any]:
    return {
        "id": port.id,
        "name": port.name,
        "datatype": port.datatype,
        "side": port.side.value,
        "optional": port.optional,
        "cardinality": {"min": port.cardinality.min, "max": port.cardinality.max},
        "value": port.value,
    }


def node_to_dict(node: Node) -> dict[str, Any]:
    error = None
    if node.error is not None:
        error = {"message": node.error.message}
        if node.error.details:
            error["details"] = node.error.details
        if node.error.blocked_by:
            error["blockedBy"] = node.error.blocked_by
    return {
        "id": node.id,
        "kind": node.kind,
        "label": node.label,
        "position": {"x": node.position.x, "y": node.position.y},
        "params": node.params,
        "status": node.status.value,
        "progress": node.progress,
        "error": error,
        "inputs": [port_to_dict(p) for p in node.inputs],
        "outputs": [port_to_dict(p) for p in node.outputs],
    }


def edge_to_dict(edge: Edge) -> dict[str, Any]:
    return {
        "id": edge.id,
        "source": {"nodeId": edge.source_node_id, "portId": edge.source_port_id},
        "target": {"nodeId": edge.target_node_id, "portId": edge.target_port_id},
    }


def graph_to_document(graph: NodeGraph) -> dict[str, Any]:
    """Serialize a graph into a versioned persistence document."""
    return {
        "schemaVersion": SCHEMA_VERSION,
        "graph": {
            "id": graph.id,
            "createdAt": graph.created_at.isoformat(),
            "updatedAt": graph.updated_at.isoformat(),
            "createdBy": graph.created_by,
            "nodes": [node_to_dict(n) for n in graph.nodes],
            "edges": [edge_to_dict(e) for e in graph.edges],
            "viewState": {
                "x": graph.view_state.x,
                "y": graph.view_state.y,
                "zoom": graph.view_state.zoom,
            },
        },
    }


# --- Decoding ---

def port_from_dict(data: dict[str, Any], direction: PortDirection) -> Port:
    cardinality = data.get("cardinality") or {}
    return Port(
        id=data["id"],
        name=data.get("name", data["id"]),
        datatype=data["datatype"],
        direction=direction,
        side=PortSide(data.get("side", PortSide.LEFT.value)),
        optional=bool(data.get("optional", False)),
        cardinality=Cardinality(
            int(cardinality.get("min", 0)),
            int(cardinality.get("max", 1)),
        ),
        value=data.get("value"),
    )


def node_from_dict(data: dict[str, Any]) -> Node:
    """
    Rebuild a node. Ports stored in the document win; a node stored without
    ports gets the port shape of its kind's template.
    """
    kind = data["kind"]
    if "inputs" in data or "outputs" in data:
        inputs = [port_from_dict(p, PortDirection.INPUT) for p in data.get("inputs", [])]
        outputs = [port_from_dict(p, PortDirection.OUTPUT) for p in data.get("outputs", [])]
    else:
        template = NodeRegistry.instance().get(kind)
        if template is None:
            raise WorkspaceFormatError(f"Node {data['id']}: unknown kind {kind!r}")
        fresh = template.instantiate()
        inputs, outputs = fresh.inputs, fresh.outputs

    error_data = data.get("error")
    error = None
    if error_data:
        error = NodeError(
            message=error_data.get("message", ""),
            details=error_data.get("details"),
            blocked_by=error_data.get("blockedBy"),
        )

    position = data.get("position") or {}
    status = NodeStatus(data.get("status", NodeStatus.IDLE.value))
    if status is NodeStatus.GENERATING:
        # Nothing is in flight after a reload
        status = NodeStatus.IDLE

    return Node(
        id=data["id"],
        kind=kind,
        label=data.get("label", kind),
        inputs=inputs,
        outputs=outputs,
        params=dict(data.get("params") or {}),
        status=status,
        progress=float(data.get("progress", 0.0)),
        position=Point2D(float(position.get("x", 0.0)), float(position.get("y", 0.0))),
        error=error,
    )


def edge_from_dict(data: dict[str, Any]) -> Edge:
    return Edge(
        id=data["id"],
        source_node_id=data["source"]["nodeId"],
        source_port_id=data["source"]["portId"],
        target_node_id=data["target"]["nodeId"],
        target_port_id=data["target"]["portId"],
    )


def graph_from_document(document: dict[str, Any]) -> NodeGraph:
    """
    Rebuild a graph from a persistence document.

    Raises:
        UnsupportedSchemaVersion: The document's schemaVersion is not "2.0"
        WorkspaceFormatError: The document is structurally invalid
    """
    if not isinstance(document, dict):
        raise WorkspaceFormatError("Workspace document must be a JSON object")

    version = document.get("schemaVersion")
    if version != SCHEMA_VERSION:
        raise UnsupportedSchemaVersion(version)

    data = document.get("graph")
    if not isinstance(data, dict):
        raise WorkspaceFormatError("Workspace document has no graph")

    try:
        nodes = [node_from_dict(n) for n in data.get("nodes", [])]
        edges = [edge_from_dict(e) for e in data.get("edges", [])]
        created_at = _parse_time(data.get("createdAt"))
        updated_at = _parse_time(data.get("updatedAt"))
        view = data.get("viewState") or {}
        view_state = ViewState(
            float(view.get("x", 0.0)),
            float(view.get("y", 0.0)),
            float(view.get("zoom", 1.0)),
        )
    except WorkspaceFormatError:
        raise
    except (KeyError, TypeError, ValueError, StructuralError) as e:
        raise WorkspaceFormatError(f"Invalid workspace document: {e}") from e

    _check_unique("node", [n.id for n in nodes])
    _check_unique("edge", [e.id for e in edges])

    graph = NodeGraph(
        graph_id=data.get("id"),
        created_by=data.get("createdBy", ""),
        created_at=created_at,
    )
    graph.replace_contents(nodes, edges)
    graph.view_state = view_state
    graph.updated_at = updated_at or graph.created_at
    return graph


def _check_unique(what: str, ids: list[str]) -> None:
    seen: set[str] = set()
    for item_id in ids:
        if item_id in seen:
            raise WorkspaceFormatError(f"Duplicate {what} id: {item_id}")
        seen.add(item_id)


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


# --- Files ---

def save_workspace(
    graph: NodeGraph,
    path: Path | None = None,
    name: str = "workspace",
) -> Path:
    """
    Save a workspace to disk.

    Args:
        graph: The graph to save
        path: Optional specific path, otherwise uses default location
        name: Workspace name (used for filename if path not specified)

    Returns:
        Path where workspace was saved
    """
    if path is None:
        path = get_workspace_dir() / f"{name}.json"

    with open(path, "w", encoding="utf-8") as f:
        json.dump(graph_to_document(graph), f, indent=2)

    logger.debug("Saved workspace %s (%d nodes)", path, len(graph))
    return path


def load_workspace(path: Path) -> NodeGraph:
    """
    Load a workspace from disk.

    Raises:
        FileNotFoundError: If workspace file doesn't exist
        WorkspaceFormatError: If the file is not a valid workspace document
    """
    if not path.exists():
        raise FileNotFoundError(f"Workspace not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise WorkspaceFormatError(f"Invalid JSON in {path}: {e}") from e

    return graph_from_document(document)


def list_workspaces() -> list[dict[str, Any]]:
    """
    List all saved workspaces.

    Returns:
        List of workspace metadata dicts with 'name', 'path', 'updated_at',
        'node_count'
    """
    workspaces = []
    workspace_dir = get_workspace_dir()

    for path in workspace_dir.glob("*.json"):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            graph = data["graph"]
            workspaces.append({
                "name": path.stem,
                "path": path,
                "updated_at": graph.get("updatedAt", ""),
                "node_count": len(graph.get("nodes", [])),
            })
        except (json.JSONDecodeError, KeyError, TypeError):
            continue

    # Sort by most recent
    workspaces.sort(key=lambda w: w.get("updated_at") or "", reverse=True)
    return workspaces
