"""
Input Nodes - Nodes that provide literal data to the workflow.

Input nodes compute locally and never call a provider: text comes from the
"value" parameter, images and videos from a URL parameter.
"""

from __future__ import annotations

from typing import Any

from compute_flow.core.errors import ExecutionError
from compute_flow.core.node_types import NodeKind, NodeRegistry


async def text_input_executor(
    inputs: dict[str, Any],
    parameters: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Pass the text parameter to the output."""
    text = parameters.get("value")
    if text is None:
        text = parameters.get("text", "")
    return {"text-out": str(text)}


def _media_executor(output_port: str, default_mime: str):
    async def executor(
        inputs: dict[str, Any],
        parameters: dict[str, Any],
        context: Any,
    ) -> dict[str, Any]:
        url = parameters.get("url") or parameters.get("value")
        if not url:
            raise ExecutionError(
                "No media URL set",
                node_id=getattr(context, "node_id", None),
            )
        return {output_port: {"url": url, "mimeType": parameters.get("mime_type", default_mime)}}

    return executor


image_input_executor = _media_executor("image-out", "image/png")
video_input_executor = _media_executor("video-out", "video/mp4")


def register_input_nodes() -> None:
    """Attach executors to the input node kinds."""
    registry = NodeRegistry.instance()
    registry.register_executor(NodeKind.TEXT_INPUT, text_input_executor)
    registry.register_executor(NodeKind.IMAGE_INPUT, image_input_executor)
    registry.register_executor(NodeKind.VIDEO_INPUT, video_input_executor)
