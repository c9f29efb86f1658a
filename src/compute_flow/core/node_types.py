"""
Node Type System - Definitions and registry for node kinds.

This module defines how node kinds are specified:
- NodeKind: The closed set of compute node kinds
- PortDefinition: Template for an input or output port
- ParameterDefinition: Describes a configurable parameter
- NodeType: Complete definition of a node kind
- NodeRegistry: Global registry of node kinds (the kind -> template table)

A node's kind fixes its port shape for the lifetime of the node; adding a new
kind means adding one template entry here plus one executor in `nodes`.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from compute_flow.core.data_types import DataType, ParameterValue
from compute_flow.core.errors import MissingReference
from compute_flow.core.graph import (
    Cardinality,
    Node,
    Point2D,
    Port,
    PortDirection,
    PortSide,
    new_node_id,
)


class NodeKind(str, Enum):
    """The closed set of compute node kinds."""
    TEXT_INPUT = "text.input"
    TEXT_GENERATE = "text.generate"
    IMAGE_INPUT = "image.input"
    IMAGE_GENERATE = "image.generate"
    IMAGE_TRANSFORM = "image.transform"
    VIDEO_INPUT = "video.input"
    VIDEO_GENERATE = "video.generate"

    @property
    def is_input(self) -> bool:
        return self.value.endswith(".input")

    @property
    def is_generative(self) -> bool:
        return self.value.endswith((".generate", ".transform"))


class ParameterType(Enum):
    """Types of node parameters (determines UI widget)."""
    TEXT = "text"
    TEXT_MULTILINE = "text_multiline"
    INTEGER = "integer"
    FLOAT = "float"
    ENUM = "enum"
    URL = "url"
    MODEL = "model"


class NodeCategory(Enum):
    """Categories for organizing nodes in the block library."""
    INPUT = "input"
    GENERATION = "generation"
    TRANSFORM = "transform"


@dataclass(frozen=True)
class PortDefinition:
    """
    Template for a port on every node of a kind.

    Attributes:
        id: Port identifier, unique within the node (e.g. "text-in")
        name: Display label
        datatype: Datatype tag
        side: Layout hint
        optional: If True, the node can execute without this input
        cardinality: Allowed number of connections
    """
    id: str
    name: str
    datatype: str
    side: PortSide = PortSide.LEFT
    optional: bool = False
    cardinality: Cardinality = field(default_factory=Cardinality)

    def instantiate(self, direction: PortDirection) -> Port:
        return Port(
            id=self.id,
            name=self.name,
            datatype=self.datatype,
            direction=direction,
            side=self.side,
            optional=self.optional,
            cardinality=self.cardinality,
        )


@dataclass
class EnumOption:
    """A single option in an enum parameter."""
    value: str
    label: str


@dataclass
class ParameterDefinition:
    """
    Definition of a configurable parameter on a node.

    Parameters are user-editable values that affect node behavior.
    Unlike inputs, they don't come from connections.
    """
    name: str
    label: str
    param_type: ParameterType
    default: ParameterValue = None
    min_value: float | None = None
    max_value: float | None = None
    options: list[EnumOption] = field(default_factory=list)
    description: str = ""

    @classmethod
    def text(
        cls,
        name: str,
        label: str,
        default: str = "",
        multiline: bool = False,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for text parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.TEXT_MULTILINE if multiline else ParameterType.TEXT,
            default=default,
            description=description,
        )

    @classmethod
    def integer(
        cls,
        name: str,
        label: str,
        default: int = 0,
        min_value: int | None = None,
        max_value: int | None = None,
    ) -> ParameterDefinition:
        """Factory for integer parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.INTEGER,
            default=default,
            min_value=min_value,
            max_value=max_value,
        )

    @classmethod
    def float_param(
        cls,
        name: str,
        label: str,
        default: float = 0.0,
        min_value: float | None = None,
        max_value: float | None = None,
    ) -> ParameterDefinition:
        """Factory for float parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.FLOAT,
            default=default,
            min_value=min_value,
            max_value=max_value,
        )

    @classmethod
    def enum(
        cls,
        name: str,
        label: str,
        options: list[tuple[str, str]],
        default: str | None = None,
    ) -> ParameterDefinition:
        """Factory for enum parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.ENUM,
            default=default or (options[0][0] if options else None),
            options=[EnumOption(v, lbl) for v, lbl in options],
        )

    @classmethod
    def model(cls, default: str, name: str = "model", label: str = "Model") -> ParameterDefinition:
        """Factory for model selector parameter."""
        return cls(name=name, label=label, param_type=ParameterType.MODEL, default=default)


@runtime_checkable
class NodeExecutorFn(Protocol):
    """Protocol for per-kind execution functions."""

    async def __call__(
        self,
        inputs: dict[str, Any],
        parameters: dict[str, Any],
        context: Any,
    ) -> dict[str, Any]:
        """
        Execute the node.

        Args:
            inputs: Resolved input values by port id
            parameters: Parameter values by name
            context: Execution context (node id, providers)

        Returns:
            Dictionary of output values by output port id
        """
        ...


@dataclass
class NodeType:
    """
    Complete definition of a node kind.

    NodeTypes are templates that define a kind's ports and parameters.
    Actual nodes in a graph reference a NodeType by their kind.
    """
    kind: NodeKind
    name: str
    category: NodeCategory
    description: str = ""

    inputs: list[PortDefinition] = field(default_factory=list)
    outputs: list[PortDefinition] = field(default_factory=list)
    parameters: list[ParameterDefinition] = field(default_factory=list)

    # The actual execution function, attached by `compute_flow.nodes`
    executor: NodeExecutorFn | None = None

    # UI hints
    color: str = "#4a5568"

    def get_input(self, port_id: str) -> PortDefinition | None:
        for inp in self.inputs:
            if inp.id == port_id:
                return inp
        return None

    def get_output(self, port_id: str) -> PortDefinition | None:
        for out in self.outputs:
            if out.id == port_id:
                return out
        return None

    def get_default_parameters(self) -> dict[str, ParameterValue]:
        """Get default values for all parameters."""
        return {p.name: copy.deepcopy(p.default) for p in self.parameters}

    def instantiate(self, position: Point2D | None = None, label: str | None = None) -> Node:
        """Create a fresh node of this kind."""
        return Node(
            id=new_node_id(),
            kind=self.kind.value,
            label=label or self.name,
            inputs=[p.instantiate(PortDirection.INPUT) for p in self.inputs],
            outputs=[p.instantiate(PortDirection.OUTPUT) for p in self.outputs],
            params=self.get_default_parameters(),
            position=position or Point2D(),
        )


_FAN_OUT = Cardinality(0, 100)
_SINGLE_REQUIRED = Cardinality(1, 1)
_SINGLE_OPTIONAL = Cardinality(0, 1)

TEXT_OUT = PortDefinition("text-out", "Text", DataType.TEXT.value, PortSide.RIGHT, cardinality=_FAN_OUT)
IMAGE_OUT = PortDefinition("image-out", "Image", DataType.IMAGE.value, PortSide.RIGHT, cardinality=_FAN_OUT)
VIDEO_OUT = PortDefinition("video-out", "Video", DataType.VIDEO.value, PortSide.RIGHT, cardinality=_FAN_OUT)


NODE_TEMPLATES: dict[NodeKind, NodeType] = {
    NodeKind.TEXT_INPUT: NodeType(
        kind=NodeKind.TEXT_INPUT,
        name="Text Input",
        category=NodeCategory.INPUT,
        description="Literal text entered by the user",
        outputs=[TEXT_OUT],
        parameters=[ParameterDefinition.text("value", "Text", multiline=True)],
        color="#3b82f6",
    ),
    NodeKind.TEXT_GENERATE: NodeType(
        kind=NodeKind.TEXT_GENERATE,
        name="Generate Text",
        category=NodeCategory.GENERATION,
        description="Generate text from a prompt using a language model",
        inputs=[
            PortDefinition("text-in", "Prompt", DataType.TEXT.value, cardinality=_SINGLE_REQUIRED),
        ],
        outputs=[replace(TEXT_OUT, name="Generated Text")],
        parameters=[
            ParameterDefinition.model("fal-ai/any-llm"),
            ParameterDefinition.float_param("temperature", "Temperature", 0.7, 0.0, 2.0),
        ],
        color="#3b82f6",
    ),
    NodeKind.IMAGE_INPUT: NodeType(
        kind=NodeKind.IMAGE_INPUT,
        name="Image Input",
        category=NodeCategory.INPUT,
        description="An uploaded or referenced image",
        outputs=[IMAGE_OUT],
        parameters=[ParameterDefinition("url", "Image URL", ParameterType.URL, default="")],
        color="#a855f7",
    ),
    NodeKind.IMAGE_GENERATE: NodeType(
        kind=NodeKind.IMAGE_GENERATE,
        name="Generate Image",
        category=NodeCategory.GENERATION,
        description="Generate an image from a text prompt",
        inputs=[
            PortDefinition("text-in", "Prompt", DataType.TEXT.value, cardinality=_SINGLE_REQUIRED),
        ],
        outputs=[replace(IMAGE_OUT, name="Generated Image")],
        parameters=[
            ParameterDefinition.model("fal-ai/flux/dev"),
            ParameterDefinition.integer("steps", "Steps", 28, 1, 100),
            ParameterDefinition.enum(
                "aspect_ratio",
                "Aspect Ratio",
                [("1:1", "Square"), ("16:9", "Landscape"), ("9:16", "Portrait")],
            ),
        ],
        color="#a855f7",
    ),
    NodeKind.IMAGE_TRANSFORM: NodeType(
        kind=NodeKind.IMAGE_TRANSFORM,
        name="Transform Image",
        category=NodeCategory.TRANSFORM,
        description="Upscale or otherwise transform an image",
        inputs=[
            PortDefinition("image-in", "Source Image", DataType.IMAGE.value, cardinality=_SINGLE_REQUIRED),
            PortDefinition(
                "params-in", "Parameters", DataType.TEXT.value, PortSide.TOP,
                optional=True, cardinality=_SINGLE_OPTIONAL,
            ),
        ],
        outputs=[replace(IMAGE_OUT, name="Transformed Image")],
        parameters=[
            ParameterDefinition.model("fal-ai/esrgan"),
            ParameterDefinition.enum("operation", "Operation", [("upscale", "Upscale")]),
            ParameterDefinition.integer("scale", "Scale", 2, 1, 8),
        ],
        color="#a855f7",
    ),
    NodeKind.VIDEO_INPUT: NodeType(
        kind=NodeKind.VIDEO_INPUT,
        name="Video Input",
        category=NodeCategory.INPUT,
        description="An uploaded or referenced video",
        outputs=[VIDEO_OUT],
        parameters=[ParameterDefinition("url", "Video URL", ParameterType.URL, default="")],
        color="#f97316",
    ),
    NodeKind.VIDEO_GENERATE: NodeType(
        kind=NodeKind.VIDEO_GENERATE,
        name="Generate Video",
        category=NodeCategory.GENERATION,
        description="Animate a source image into a video clip",
        inputs=[
            PortDefinition("image-in", "Source Image", DataType.IMAGE.value, cardinality=_SINGLE_REQUIRED),
            PortDefinition(
                "text-in", "Motion Prompt", DataType.TEXT.value, PortSide.TOP,
                optional=True, cardinality=_SINGLE_OPTIONAL,
            ),
        ],
        outputs=[replace(VIDEO_OUT, name="Generated Video")],
        parameters=[
            ParameterDefinition.model("fal-ai/kling-video/v1/standard/image-to-video"),
            ParameterDefinition.integer("duration", "Duration (s)", 5, 1, 10),
            ParameterDefinition.integer("fps", "FPS", 24, 1, 60),
        ],
        color="#f97316",
    ),
}


class NodeRegistry:
    """
    Global registry of node kinds.

    Seeded from NODE_TEMPLATES; `compute_flow.nodes` attaches an executor
    to each kind at startup.
    """

    _instance: NodeRegistry | None = None

    def __new__(cls) -> NodeRegistry:
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._types = {}
            cls._instance.reset()
        return cls._instance

    @classmethod
    def instance(cls) -> NodeRegistry:
        """Get the singleton instance."""
        return cls()

    def reset(self) -> None:
        """Restore the built-in templates without executors (for testing)."""
        self._types: dict[NodeKind, NodeType] = {
            kind: replace(nt) for kind, nt in NODE_TEMPLATES.items()
        }

    def register(self, node_type: NodeType) -> None:
        """Register (or replace) a node kind."""
        self._types[node_type.kind] = node_type

    def register_executor(self, kind: NodeKind | str, executor: NodeExecutorFn) -> None:
        """Attach an execution function to a registered kind."""
        node_type = self.require(kind)
        self._types[node_type.kind] = replace(node_type, executor=executor)

    def get(self, kind: NodeKind | str) -> NodeType | None:
        try:
            return self._types.get(NodeKind(kind))
        except ValueError:
            return None

    def require(self, kind: NodeKind | str) -> NodeType:
        node_type = self.get(kind)
        if node_type is None:
            raise MissingReference(f"Unknown node kind: {kind}")
        return node_type

    def get_all(self) -> list[NodeType]:
        return list(self._types.values())

    def list_by_category(self, category: NodeCategory) -> list[NodeType]:
        return [t for t in self._types.values() if t.category == category]

    def create_node(
        self,
        kind: NodeKind | str,
        position: Point2D | None = None,
        label: str | None = None,
    ) -> Node:
        """Instantiate a node whose port shape comes from the kind's template."""
        return self.require(kind).instantiate(position, label)

    def __len__(self) -> int:
        return len(self._types)

    def __contains__(self, kind: object) -> bool:
        return self.get(kind) is not None  # type: ignore[arg-type]

