"""
Node Executor - Runs the computation for a single node.

The executor checks that a node's structurally required inputs are present,
then hands the resolved inputs and parameters to the executor function
registered for the node's kind. Input kinds compute locally; generative
kinds delegate to a provider. Provider failures surface as ExecutionError.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from compute_flow.core.errors import ExecutionError, NodeInputError, ValidationError
from compute_flow.core.node_types import NodeKind, NodeRegistry
from compute_flow.providers.base import ProviderError

if TYPE_CHECKING:
    from compute_flow.providers.registry import ProviderRegistry


logger = logging.getLogger(__name__)


# Input each generative kind cannot run without, and the message naming it
REQUIRED_INPUTS: dict[NodeKind, tuple[str, str]] = {
    NodeKind.TEXT_GENERATE: ("text-in", "Text input required"),
    NodeKind.IMAGE_GENERATE: ("text-in", "Text prompt required for image generation"),
    NodeKind.IMAGE_TRANSFORM: ("image-in", "Image input required for transformation"),
    NodeKind.VIDEO_GENERATE: ("image-in", "Image input required for video generation"),
}


@dataclass
class NodeResult:
    """Outputs produced by one node, keyed by output port id."""
    outputs: dict[str, Any] = field(default_factory=dict)
    execution_time: float = 0.0


@dataclass
class NodeContext:
    """
    Context passed to per-kind executor functions.

    Gives executors their node id, the provider registry to delegate to,
    and a hook for reporting fractional progress.
    """
    node_id: str
    kind: str
    providers: ProviderRegistry | None = None
    on_progress: Callable[[str, float], None] | None = None

    def report_progress(self, fraction: float) -> None:
        if self.on_progress:
            self.on_progress(self.node_id, max(0.0, min(1.0, fraction)))


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, dict)) and not value:
        return True
    return False


class NodeExecutor:
    """Executes single nodes through the node-type registry."""

    def __init__(
        self,
        providers: ProviderRegistry | None = None,
        registry: NodeRegistry | None = None,
    ):
        self.providers = providers
        self.registry = registry or NodeRegistry.instance()

    def validate_inputs(self, node_id: str, kind: str, inputs: dict[str, Any]) -> None:
        """Raise NodeInputError if a required input is absent or empty."""
        node_type = self.registry.get(kind)
        if node_type is None:
            return
        required = REQUIRED_INPUTS.get(node_type.kind)
        if required is None:
            return
        port_id, message = required
        if _is_missing(inputs.get(port_id)):
            raise NodeInputError(node_id, port_id, message)

    async def execute(
        self,
        node_id: str,
        kind: str,
        resolved_inputs: dict[str, Any],
        params: dict[str, Any],
        on_progress: Callable[[str, float], None] | None = None,
    ) -> NodeResult:
        """
        Execute one node.

        Args:
            node_id: Id of the node being executed
            kind: The node's kind (e.g. "image.generate")
            resolved_inputs: Input values by input port id
            params: Parameter values by name (merged over the kind's defaults)

        Returns:
            NodeResult with outputs keyed by output port id

        Raises:
            NodeInputError: A required input is missing
            ExecutionError: The computation failed
        """
        node_type = self.registry.get(kind)
        if node_type is None:
            raise ExecutionError(f"Unknown node kind: {kind}", node_id=node_id)

        self.validate_inputs(node_id, kind, resolved_inputs)

        if node_type.executor is None:
            raise ExecutionError(f"No executor registered for {kind}", node_id=node_id)

        parameters = node_type.get_default_parameters()
        parameters.update(params)
        context = NodeContext(
            node_id=node_id,
            kind=kind,
            providers=self.providers,
            on_progress=on_progress,
        )

        start = time.perf_counter()
        logger.debug("Executing node %s (%s)", node_id, kind)
        try:
            outputs = await node_type.executor(resolved_inputs, parameters, context)
        except (ValidationError, ExecutionError):
            raise
        except ProviderError as e:
            raise ExecutionError(str(e), node_id=node_id, provider_message=str(e)) from e
        except Exception as e:
            # Transport errors a provider did not map, or a faulty executor
            message = str(e) or type(e).__name__
            logger.debug("Node %s raised %s", node_id, type(e).__name__, exc_info=True)
            raise ExecutionError(
                f"{kind} failed: {message}", node_id=node_id, provider_message=message
            ) from e

        return NodeResult(
            outputs=dict(outputs or {}),
            execution_time=time.perf_counter() - start,
        )
