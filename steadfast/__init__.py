"""Steadfast: durable, checkpointing workflow execution."""

from .cancellation import CancellationToken
from .contracts import (
    WorkflowDefinition,
    WorkflowResult,
    WorkflowState,
    WorkflowStatus,
    WorkflowStepContext,
    WorkflowStepDefinition,
    WorkflowStepResult,
)
from .engine import DurableWorkflowEngine
from .errors import (
    EmptyWorkflowError,
    NoCheckpointsError,
    SteadfastError,
    WorkflowCancelledError,
    WorkflowNotFoundError,
)
from .persistence import ExecutionCheckpoint, ExecutionStepStatus, get_checkpoint_store

__version__ = "0.1.0"
__all__ = [
    "CancellationToken",
    "DurableWorkflowEngine",
    "EmptyWorkflowError",
    "ExecutionCheckpoint",
    "ExecutionStepStatus",
    "NoCheckpointsError",
    "SteadfastError",
    "WorkflowCancelledError",
    "WorkflowDefinition",
    "WorkflowNotFoundError",
    "WorkflowResult",
    "WorkflowState",
    "WorkflowStatus",
    "WorkflowStepContext",
    "WorkflowStepDefinition",
    "WorkflowStepResult",
    "get_checkpoint_store",
]
