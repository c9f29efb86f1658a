"""
Tests for single-node execution and the built-in node executors.
"""

import asyncio

import aiohttp
import pytest

from compute_flow.core.errors import ExecutionError, NodeInputError
from compute_flow.core.executor import NodeExecutor
from compute_flow.core.node_types import NodeKind, NodeRegistry
from compute_flow.providers import AuthenticationError


def run(coro):
    return asyncio.run(coro)


def test_text_input_passes_value_through():
    result = run(NodeExecutor().execute("n1", "text.input", {}, {"value": "a lighthouse"}))
    assert result.outputs == {"text-out": "a lighthouse"}
    assert result.execution_time >= 0.0


def test_image_input_requires_url():
    with pytest.raises(ExecutionError, match="No media URL set"):
        run(NodeExecutor().execute("n1", "image.input", {}, {}))


def test_image_input_emits_artifact():
    result = run(NodeExecutor().execute(
        "n1", "image.input", {}, {"url": "https://cdn.test/cat.png"}
    ))
    assert result.outputs["image-out"] == {"url": "https://cdn.test/cat.png", "mimeType": "image/png"}


@pytest.mark.parametrize("kind, message", [
    ("text.generate", "Text input required"),
    ("image.generate", "Text prompt required for image generation"),
    ("image.transform", "Image input required for transformation"),
    ("video.generate", "Image input required for video generation"),
])
def test_missing_required_input(kind, message):
    with pytest.raises(NodeInputError) as exc:
        run(NodeExecutor().execute("n1", kind, {}, {}))
    assert str(exc.value) == message
    assert exc.value.node_id == "n1"


def test_blank_prompt_counts_as_missing():
    with pytest.raises(NodeInputError):
        run(NodeExecutor().execute("n1", "image.generate", {"text-in": "   "}, {}))


def test_unknown_kind():
    with pytest.raises(ExecutionError, match="Unknown node kind"):
        run(NodeExecutor().execute("n1", "audio.generate", {}, {}))


def test_kind_without_executor():
    NodeRegistry.instance().reset()
    with pytest.raises(ExecutionError, match="No executor registered"):
        run(NodeExecutor().execute("n1", "text.input", {}, {"value": "x"}))


def test_defaults_merged_under_params():
    seen = {}

    async def capture(inputs, parameters, context):
        seen.update(parameters)
        return {"image-out": "x"}

    NodeRegistry.instance().register_executor(NodeKind.IMAGE_GENERATE, capture)
    run(NodeExecutor().execute("n1", "image.generate", {"text-in": "p"}, {"steps": 4}))

    assert seen["steps"] == 4
    assert seen["aspect_ratio"] == "1:1"
    assert seen["model"] == "fal-ai/flux/dev"


def test_generation_delegates_to_provider(fake_provider):
    result = run(NodeExecutor().execute(
        "n1", "image.generate", {"text-in": "a red fox"}, {"model": "fal-ai/flux/schnell"}
    ))

    assert result.outputs["image-out"]["url"] == "https://cdn.test/fal-ai/flux/schnell.png"
    request, model = fake_provider.requests[0]
    assert request.node_id == "n1"
    assert request.node_type == "image.generate"
    assert request.inputs == {"text-in": "a red fox"}
    assert "model" not in request.params
    assert model.id == "fal-ai/flux/schnell"


def test_text_generation(fake_provider):
    result = run(NodeExecutor().execute("n1", "text.generate", {"text-in": "hi"}, {}))
    assert result.outputs == {"text-out": "generated: hi"}


def test_provider_error_becomes_execution_error(fake_provider):
    fake_provider.fail_with = AuthenticationError("Invalid fal API key")

    with pytest.raises(ExecutionError) as exc:
        run(NodeExecutor().execute("n1", "image.generate", {"text-in": "x"}, {}))

    assert exc.value.node_id == "n1"
    assert exc.value.provider_message == "Invalid fal API key"


def test_transport_error_becomes_execution_error(fake_provider):
    fake_provider.fail_with = aiohttp.ClientConnectionError("connection refused")

    with pytest.raises(ExecutionError) as exc:
        run(NodeExecutor().execute("n1", "image.generate", {"text-in": "x"}, {}))

    assert exc.value.node_id == "n1"
    assert exc.value.provider_message == "connection refused"
    assert isinstance(exc.value.__cause__, aiohttp.ClientConnectionError)


def test_unknown_model_fails_before_calling_provider(fake_provider):
    with pytest.raises(ExecutionError, match="Unknown model"):
        run(NodeExecutor().execute(
            "n1", "image.generate", {"text-in": "x"}, {"model": "nobody/nothing"}
        ))
    assert fake_provider.requests == []


def test_progress_reported(fake_provider):
    reported = []
    run(NodeExecutor().execute(
        "n1", "image.generate", {"text-in": "x"}, {},
        on_progress=lambda nid, fraction: reported.append((nid, fraction)),
    ))
    assert reported[0] == ("n1", 0.1)
    assert reported[-1] == ("n1", 1.0)


def test_generation_error_from_empty_result(fake_provider):
    from compute_flow.providers import NodeExecutionResult

    async def empty(request, model):
        return NodeExecutionResult.ok({})

    fake_provider.run = empty
    with pytest.raises(ExecutionError, match="produced no image-out"):
        run(NodeExecutor().execute("n1", "image.generate", {"text-in": "x"}, {}))
