"""
Tests for the command-line entry point.
"""

import json

import pytest

from compute_flow.core.graph import NodeGraph
from compute_flow.core.node_types import NodeKind
from compute_flow.core.status import NodeStatus
from compute_flow.core.workspace import load_workspace, save_workspace
from compute_flow.main import EXIT_FAILED, EXIT_LOAD_ERROR, EXIT_OK, main


@pytest.fixture
def settings_path(tmp_path):
    return str(tmp_path / "settings.json")


def write_graph(path, valid=True):
    graph = NodeGraph()
    prompt = graph.add_node(NodeKind.TEXT_INPUT, label="Prompt")
    prompt.set_parameter("value", "hello")
    if not valid:
        graph.add_node(NodeKind.IMAGE_GENERATE, label="Orphan")
    save_workspace(graph, path)
    return graph


def test_validate_ok(tmp_path, settings_path, capsys):
    path = tmp_path / "flow.json"
    write_graph(path)

    assert main(["--settings", settings_path, "validate", str(path)]) == EXIT_OK
    assert "OK: 1 nodes" in capsys.readouterr().out


def test_validate_reports_issues(tmp_path, settings_path, capsys):
    path = tmp_path / "flow.json"
    write_graph(path, valid=False)

    assert main(["--settings", settings_path, "validate", str(path)]) == EXIT_FAILED
    assert "required_input" in capsys.readouterr().out


def test_plan(tmp_path, settings_path, capsys):
    path = tmp_path / "flow.json"
    graph = write_graph(path)

    assert main(["--settings", settings_path, "plan", str(path)]) == EXIT_OK
    out = capsys.readouterr().out
    assert "1. Prompt (text.input)" in out
    assert graph.nodes[0].id in out


def test_run_saves_results(tmp_path, settings_path, capsys):
    path = tmp_path / "flow.json"
    output = tmp_path / "result.json"
    graph = write_graph(path)

    code = main(["--settings", settings_path, "run", str(path), "--output", str(output)])

    assert code == EXIT_OK
    result = load_workspace(output)
    node = result.get_node(graph.nodes[0].id)
    assert node.status is NodeStatus.COMPLETE
    assert node.output_values == {"text-out": "hello"}


def test_run_invalid_graph(tmp_path, settings_path, capsys):
    path = tmp_path / "flow.json"
    write_graph(path, valid=False)

    assert main(["--settings", settings_path, "run", str(path)]) == EXIT_FAILED
    assert "Graph validation failed" in capsys.readouterr().err


def test_load_errors(tmp_path, settings_path):
    missing = tmp_path / "missing.json"
    assert main(["--settings", settings_path, "validate", str(missing)]) == EXIT_LOAD_ERROR

    old = tmp_path / "old.json"
    old.write_text(json.dumps({"schemaVersion": "1.0", "graph": {}}), encoding="utf-8")
    assert main(["--settings", settings_path, "plan", str(old)]) == EXIT_LOAD_ERROR
