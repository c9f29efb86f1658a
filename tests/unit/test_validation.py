"""
Tests for graph validation.

Graphs with illegal structure are built through replace_contents, the way a
loaded or remotely merged graph can end up, since connect() rejects them.
"""

import pytest

from compute_flow.core.errors import GraphValidationError
from compute_flow.core.graph import Edge, NodeGraph
from compute_flow.core.node_types import NodeKind, NodeRegistry
from compute_flow.core.validation import ValidationCode, validate


def make_nodes(*kinds):
    registry = NodeRegistry.instance()
    return [registry.create_node(kind) for kind in kinds]


def test_valid_graph():
    graph = NodeGraph()
    prompt = graph.add_node(NodeKind.TEXT_INPUT)
    image = graph.add_node(NodeKind.IMAGE_GENERATE)
    graph.connect(prompt.id, "text-out", image.id, "text-in")

    result = validate(graph)

    assert result.valid
    assert result.errors == []
    result.raise_for_errors()


def test_empty_graph_is_valid():
    assert validate(NodeGraph()).valid


def test_missing_required_input():
    graph = NodeGraph()
    image = graph.add_node(NodeKind.IMAGE_GENERATE)

    result = validate(graph)

    assert result.codes() == {ValidationCode.REQUIRED_INPUT}
    assert result.errors[0].node_id == image.id
    assert "Prompt" in result.errors[0].message


def test_literal_value_satisfies_required_input():
    graph = NodeGraph()
    image = graph.add_node(NodeKind.IMAGE_GENERATE)
    image.set_input_value("text-in", "a red fox")

    assert validate(graph).valid


def test_optional_input_not_required():
    graph = NodeGraph()
    source = graph.add_node(NodeKind.IMAGE_INPUT)
    video = graph.add_node(NodeKind.VIDEO_GENERATE)
    graph.connect(source.id, "image-out", video.id, "image-in")

    assert validate(graph).valid


def test_dangling_edge():
    prompt, image = make_nodes(NodeKind.TEXT_INPUT, NodeKind.IMAGE_GENERATE)
    graph = NodeGraph()
    graph.replace_contents(
        [prompt, image],
        [
            Edge("e1", prompt.id, "text-out", image.id, "text-in"),
            Edge("e2", "ghost", "text-out", image.id, "text-in"),
        ],
    )

    result = validate(graph)

    assert ValidationCode.MISSING_NODE in result.codes()
    assert [i.edge_id for i in result.errors if i.code is ValidationCode.MISSING_NODE] == ["e2"]


def test_duplicate_node_id():
    first, second = make_nodes(NodeKind.TEXT_INPUT, NodeKind.TEXT_INPUT)
    graph = NodeGraph()
    graph.replace_contents([first, second], [])
    second.id = first.id

    result = validate(graph)

    assert result.codes() == {ValidationCode.DUPLICATE_ID}
    assert result.errors[0].node_id == first.id


def test_missing_port():
    prompt, image = make_nodes(NodeKind.TEXT_INPUT, NodeKind.IMAGE_GENERATE)
    image.set_input_value("text-in", "x")
    graph = NodeGraph()
    graph.replace_contents([prompt, image], [Edge("e1", prompt.id, "bogus", image.id, "text-in")])

    assert validate(graph).codes() == {ValidationCode.MISSING_PORT}


def test_wrong_direction():
    a, b = make_nodes(NodeKind.IMAGE_TRANSFORM, NodeKind.IMAGE_TRANSFORM)
    a.set_input_value("image-in", "https://cdn.test/a.png")
    b.set_input_value("image-in", "https://cdn.test/b.png")
    graph = NodeGraph()
    graph.replace_contents([a, b], [Edge("e1", a.id, "image-in", b.id, "image-in")])

    assert validate(graph).codes() == {ValidationCode.INVALID_DIRECTION}


def test_incompatible_types_and_cardinality_all_reported():
    first, second, transform = make_nodes(
        NodeKind.TEXT_INPUT, NodeKind.TEXT_INPUT, NodeKind.IMAGE_TRANSFORM
    )
    graph = NodeGraph()
    graph.replace_contents(
        [first, second, transform],
        [
            Edge("e1", first.id, "text-out", transform.id, "image-in"),
            Edge("e2", second.id, "text-out", transform.id, "image-in"),
        ],
    )

    result = validate(graph)

    incompatible = [i for i in result.errors if i.code is ValidationCode.INCOMPATIBLE_TYPES]
    assert {i.edge_id for i in incompatible} == {"e1", "e2"}
    assert ValidationCode.CARDINALITY_EXCEEDED in result.codes()


def test_cycle():
    a, b = make_nodes(NodeKind.IMAGE_TRANSFORM, NodeKind.IMAGE_TRANSFORM)
    graph = NodeGraph()
    graph.replace_contents(
        [a, b],
        [
            Edge("e1", a.id, "image-out", b.id, "image-in"),
            Edge("e2", b.id, "image-out", a.id, "image-in"),
        ],
    )

    result = validate(graph)

    assert result.codes() == {ValidationCode.CYCLE}
    assert a.id in result.errors[0].message


def test_raise_for_errors_carries_every_issue():
    graph = NodeGraph()
    graph.add_node(NodeKind.IMAGE_GENERATE)
    graph.add_node(NodeKind.IMAGE_TRANSFORM)

    with pytest.raises(GraphValidationError) as exc:
        validate(graph).raise_for_errors()

    assert len(exc.value.issues) == 2
    assert "Graph validation failed" in str(exc.value)
