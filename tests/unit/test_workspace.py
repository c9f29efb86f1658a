"""
Tests for workspace persistence.
"""

import json

import pytest

from compute_flow.core.errors import UnsupportedSchemaVersion, WorkspaceFormatError
from compute_flow.core.graph import NodeError, NodeGraph, Point2D
from compute_flow.core.node_types import NodeKind
from compute_flow.core.status import NodeStatus
from compute_flow.core.workspace import (
    SCHEMA_VERSION,
    graph_from_document,
    graph_to_document,
    load_workspace,
    save_workspace,
)


def sample_graph():
    graph = NodeGraph(created_by="user-1")
    prompt = graph.add_node(NodeKind.TEXT_INPUT, Point2D(10, 20), label="Prompt")
    prompt.set_parameter("value", "a red fox")
    prompt.status = NodeStatus.COMPLETE
    prompt.store_outputs({"text-out": "a red fox"})
    image = graph.add_node(NodeKind.IMAGE_GENERATE, Point2D(300, 20))
    image.status = NodeStatus.ERROR
    image.error = NodeError("fal error", details="HTTP 500")
    graph.connect(prompt.id, "text-out", image.id, "text-in")
    graph.view_state.zoom = 1.5
    return graph, prompt, image


def test_save_and_load(tmp_path):
    graph, prompt, image = sample_graph()
    path = save_workspace(graph, tmp_path / "flow.json")

    loaded = load_workspace(path)

    assert loaded.id == graph.id
    assert loaded.created_by == "user-1"
    assert loaded.view_state.zoom == 1.5
    assert [n.id for n in loaded.nodes] == [prompt.id, image.id]
    assert len(loaded.edges) == 1
    assert loaded.edges[0] == graph.edges[0]

    restored = loaded.get_node(prompt.id)
    assert restored.label == "Prompt"
    assert restored.params["value"] == "a red fox"
    assert restored.position == Point2D(10, 20)
    assert restored.status is NodeStatus.COMPLETE
    assert restored.output_values == {"text-out": "a red fox"}

    failed = loaded.get_node(image.id)
    assert failed.error == NodeError("fal error", details="HTTP 500")
    assert failed.get_input("text-in").cardinality.max == 1


def test_document_shape():
    graph, _, _ = sample_graph()
    document = graph_to_document(graph)

    assert document["schemaVersion"] == SCHEMA_VERSION
    edge = document["graph"]["edges"][0]
    assert set(edge) == {"id", "source", "target"}
    assert set(edge["source"]) == {"nodeId", "portId"}
    json.dumps(document)


def test_generating_node_loads_as_idle():
    graph, prompt, _ = sample_graph()
    prompt.status = NodeStatus.GENERATING
    loaded = graph_from_document(graph_to_document(graph))
    assert loaded.get_node(prompt.id).status is NodeStatus.IDLE


def test_node_without_ports_uses_template():
    document = {
        "schemaVersion": "2.0",
        "graph": {
            "id": "g1",
            "nodes": [{"id": "n1", "kind": "video.generate"}],
            "edges": [],
        },
    }
    node = graph_from_document(document).get_node("n1")
    assert [p.id for p in node.inputs] == ["image-in", "text-in"]
    assert [p.id for p in node.outputs] == ["video-out"]
    assert node.label == "video.generate"


def test_unknown_kind_without_ports():
    document = {
        "schemaVersion": "2.0",
        "graph": {"nodes": [{"id": "n1", "kind": "audio.generate"}]},
    }
    with pytest.raises(WorkspaceFormatError, match="unknown kind"):
        graph_from_document(document)


@pytest.mark.parametrize("version", ["1.0", None, 2])
def test_unsupported_schema_version(version):
    with pytest.raises(UnsupportedSchemaVersion):
        graph_from_document({"schemaVersion": version, "graph": {}})


def test_duplicate_node_ids():
    document = {
        "schemaVersion": "2.0",
        "graph": {
            "nodes": [
                {"id": "n1", "kind": "text.input"},
                {"id": "n1", "kind": "text.input"},
            ],
        },
    }
    with pytest.raises(WorkspaceFormatError, match="Duplicate node id"):
        graph_from_document(document)


def test_malformed_edge():
    document = {
        "schemaVersion": "2.0",
        "graph": {"nodes": [], "edges": [{"id": "e1", "source": {}}]},
    }
    with pytest.raises(WorkspaceFormatError):
        graph_from_document(document)


def test_load_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(WorkspaceFormatError):
        load_workspace(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_workspace(tmp_path / "missing.json")


def test_list_workspaces(tmp_path, monkeypatch):
    from compute_flow.core import workspace

    monkeypatch.setattr(workspace, "WORKSPACE_DIR", tmp_path)
    graph, _, _ = sample_graph()
    save_workspace(graph, name="portrait")
    (tmp_path / "junk.json").write_text("[]", encoding="utf-8")

    listed = workspace.list_workspaces()

    assert [w["name"] for w in listed] == ["portrait"]
    assert listed[0]["node_count"] == 2
