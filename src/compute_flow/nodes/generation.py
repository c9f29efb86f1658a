"""
Generation Nodes - Nodes that delegate to a generation provider.

Each executor builds a NodeExecutionRequest from the node's resolved inputs
and parameters, resolves the provider for the node's model, and maps the
provider result back to the node's output port.
"""

from __future__ import annotations

from typing import Any

from compute_flow.core.node_types import NodeKind, NodeRegistry
from compute_flow.providers.base import GenerationError, NodeExecutionRequest


async def _delegate(
    kind: NodeKind,
    output_port: str,
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    from compute_flow.providers import get_registry

    providers = context.providers or get_registry()
    provider, model = providers.resolve(kind.value, parameters.get("model"))

    params = {k: v for k, v in parameters.items() if k != "model"}
    request = NodeExecutionRequest(
        node_id=context.node_id,
        node_type=kind.value,
        inputs=inputs,
        params=params,
    )

    context.report_progress(0.1)
    result = await provider.run(request, model)
    if not result.success:
        raise GenerationError(result.error or f"{model.name} returned no result")

    value = result.outputs.get(output_port)
    if value is None:
        raise GenerationError(f"{model.name} produced no {output_port} value")
    context.report_progress(1.0)
    return {output_port: value}


async def text_generate_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Generate text from the prompt on text-in."""
    return await _delegate(NodeKind.TEXT_GENERATE, "text-out", inputs, parameters, context)


async def image_generate_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Generate an image from the prompt on text-in."""
    return await _delegate(NodeKind.IMAGE_GENERATE, "image-out", inputs, parameters, context)


async def image_transform_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    return await _delegate(NodeKind.IMAGE_TRANSFORM, "image-out", inputs, parameters, context)


async def video_generate_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Animate the image on image-in, guided by the optional motion prompt."""
    return await _delegate(NodeKind.VIDEO_GENERATE, "video-out", inputs, parameters, context)


def register_generation_nodes() -> None:
    """Attach executors to the generative node kinds."""
    registry = NodeRegistry.instance()
    registry.register_executor(NodeKind.TEXT_GENERATE, text_generate_executor)
    registry.register_executor(NodeKind.IMAGE_GENERATE, image_generate_executor)
    registry.register_executor(NodeKind.IMAGE_TRANSFORM, image_transform_executor)
    registry.register_executor(NodeKind.VIDEO_GENERATE, video_generate_executor)
