"""
Core module - Graph model, validation, execution, history and sessions.

This module provides the fundamental building blocks for Compute Flow:
- Graph: Nodes, typed ports and edges
- Node Types: The closed set of node kinds and their templates
- Validation: Structural checks before execution
- Execution: Planning and concurrent execution of a graph
- History: Bounded undo/redo
- Session / Project: The per-project mutation queue
"""

from compute_flow.core.errors import (
    CardinalityExceeded,
    ComputeFlowError,
    CycleDetected,
    ExecutionError,
    ExecutionRejected,
    GraphValidationError,
    IncompatibleTypes,
    InvalidPortDirection,
    InvalidTransition,
    MissingReference,
    NodeInputError,
    StructuralError,
    SyncError,
    UnsupportedSchemaVersion,
    ValidationError,
    WorkspaceFormatError,
)

from compute_flow.core.data_types import (
    ArtifactRef,
    DataType,
    ParameterValue,
    is_compatible,
)

from compute_flow.core.status import NodeStatus

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
    new_edge_id,
    new_node_id,
)

from compute_flow.core.node_types import (
    NodeCategory,
    NodeKind,
    NodeRegistry,
    NodeType,
    ParameterDefinition,
    ParameterType,
    PortDefinition,
)

from compute_flow.core.validation import (
    GraphValidator,
    ValidationCode,
    ValidationIssue,
    ValidationResult,
    validate,
)

from compute_flow.core.history import HistoryManager, SnapshotDebouncer

from compute_flow.core.executor import NodeExecutor, NodeResult

from compute_flow.core.execution import (
    ExecutionEngine,
    ExecutionHandle,
    ExecutionJob,
    ExecutionProgress,
    ExecutionStatus,
    plan_execution,
)

from compute_flow.core.session import GraphSession

from compute_flow.core.project import Project, ProjectManager


__all__ = [
    # errors.py
    "CardinalityExceeded",
    "ComputeFlowError",
    "CycleDetected",
    "ExecutionError",
    "ExecutionRejected",
    "GraphValidationError",
    "IncompatibleTypes",
    "InvalidPortDirection",
    "InvalidTransition",
    "MissingReference",
    "NodeInputError",
    "StructuralError",
    "SyncError",
    "UnsupportedSchemaVersion",
    "ValidationError",
    "WorkspaceFormatError",
    # data_types.py
    "ArtifactRef",
    "DataType",
    "ParameterValue",
    "is_compatible",
    # status.py
    "NodeStatus",
    # graph.py
    "Cardinality",
    "Edge",
    "Node",
    "NodeError",
    "NodeGraph",
    "Point2D",
    "Port",
    "PortDirection",
    "PortSide",
    "ViewState",
    "new_edge_id",
    "new_node_id",
    # node_types.py
    "NodeCategory",
    "NodeKind",
    "NodeRegistry",
    "NodeType",
    "ParameterDefinition",
    "ParameterType",
    "PortDefinition",
    # validation.py
    "GraphValidator",
    "ValidationCode",
    "ValidationIssue",
    "ValidationResult",
    "validate",
    # history.py
    "HistoryManager",
    "SnapshotDebouncer",
    # executor.py / execution.py
    "NodeExecutor",
    "NodeResult",
    "ExecutionEngine",
    "ExecutionHandle",
    "ExecutionJob",
    "ExecutionProgress",
    "ExecutionStatus",
    "plan_execution",
    # session.py / project.py
    "GraphSession",
    "Project",
    "ProjectManager",
]
