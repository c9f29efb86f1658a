"""
Errors - Exception hierarchy for the compute flow core.

- StructuralError: an illegal graph mutation (rejected, graph unchanged)
- ValidationError: a graph or node fails pre-execution checks
- ExecutionError: a node's computation failed
- SyncError: the realtime feed dropped or delivered garbage
- WorkspaceFormatError: a persisted document cannot be loaded
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from compute_flow.core.validation import ValidationIssue


class ComputeFlowError(Exception):
    """Base exception for all compute flow errors."""
    pass


# --- Structural errors ---

class StructuralError(ComputeFlowError):
    """An illegal mutation of the graph structure."""
    rule: str = "structural"


class IncompatibleTypes(StructuralError):
    """Source and target port datatypes cannot be connected."""
    rule = "incompatible_types"

    def __init__(self, source_type: str, target_type: str):
        super().__init__(
            f"Type mismatch: cannot connect {source_type} to {target_type}"
        )
        self.source_type = source_type
        self.target_type = target_type


class CardinalityExceeded(StructuralError):
    """A port already holds its maximum number of connections."""
    rule = "cardinality_exceeded"

    def __init__(self, port_name: str, maximum: int, source_side: bool = False):
        plural = "s" if maximum != 1 else ""
        prefix = "Source port" if source_side else "Port"
        super().__init__(
            f'{prefix} "{port_name}" accepts maximum {maximum} connection{plural}'
        )
        self.port_name = port_name
        self.maximum = maximum


class CycleDetected(StructuralError):
    """A connection would create a cycle in the workflow."""
    rule = "cycle_detected"

    def __init__(self, message: str = "Connection would create a cycle in the workflow"):
        super().__init__(message)


class MissingReference(StructuralError):
    """A node, port or edge id does not exist."""
    rule = "missing_reference"


class InvalidPortDirection(StructuralError):
    """An edge must run from an output port to an input port."""
    rule = "invalid_port_direction"


# --- Validation errors ---

class ValidationError(ComputeFlowError):
    """A graph or a node's inputs failed pre-execution checks."""
    pass


class GraphValidationError(ValidationError):
    """Graph validation failed; carries every collected issue."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = list(issues)
        summary = "; ".join(issue.message for issue in self.issues)
        super().__init__(f"Graph validation failed: {summary}")


class NodeInputError(ValidationError):
    """A node is missing a structurally required input."""

    def __init__(self, node_id: str, port_id: str, message: str):
        super().__init__(message)
        self.node_id = node_id
        self.port_id = port_id


# --- Execution errors ---

class ExecutionError(ComputeFlowError):
    """A node's delegated computation failed."""

    def __init__(
        self,
        message: str,
        node_id: str | None = None,
        provider_message: str | None = None,
    ):
        super().__init__(message)
        self.node_id = node_id
        self.provider_message = provider_message


class InvalidTransition(ComputeFlowError):
    """An illegal node status transition was attempted."""

    def __init__(self, node_id: str, current: str, requested: str):
        super().__init__(
            f"Node {node_id}: illegal status transition {current} -> {requested}"
        )
        self.node_id = node_id
        self.current = current
        self.requested = requested


class ExecutionRejected(ComputeFlowError):
    """An execution request was refused before anything started."""
    pass


# --- Sync and persistence ---

class SyncError(ComputeFlowError):
    """Realtime feed subscription dropped or an event payload was malformed."""
    pass


class WorkspaceFormatError(ComputeFlowError):
    """A persisted graph document is structurally invalid."""
    pass


class UnsupportedSchemaVersion(WorkspaceFormatError):
    """A persisted graph document has an unrecognized schema version."""

    def __init__(self, version: object):
        super().__init__(f"Unsupported schema version: {version!r}")
        self.version = version
