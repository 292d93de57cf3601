"""Exceptions raised by the steadfast workflow engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .persistence.models import ExecutionCheckpoint


class SteadfastError(Exception):
    """Base class for all steadfast errors."""


class EmptyWorkflowError(SteadfastError, ValueError):
    """Raised when a workflow definition has no steps."""


class WorkflowNotFoundError(SteadfastError, LookupError):
    """Raised when resuming a workflow whose definition was never registered."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            f"Workflow {workflow_id} not found. "
            "Cannot resume a workflow that hasn't been registered."
        )
        self.workflow_id = workflow_id


class NoCheckpointsError(SteadfastError, LookupError):
    """Raised when resuming a workflow that has no checkpoints."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            f"No checkpoints found for workflow {workflow_id}. Cannot resume."
        )
        self.workflow_id = workflow_id


class StepTimeoutError(SteadfastError, TimeoutError):
    """A single step attempt exceeded its timeout."""


class WorkflowCancelledError(SteadfastError):
    """Raised to the caller when a workflow run is cancelled.

    ``checkpoint`` holds the terminal checkpoint written for the cancellation,
    or ``None`` when the write could not be made.
    """

    def __init__(
        self,
        workflow_id: str,
        reason: Optional[str] = None,
        checkpoint: Optional["ExecutionCheckpoint"] = None,
    ) -> None:
        message = f"Workflow {workflow_id} cancelled"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.workflow_id = workflow_id
        self.reason = reason
        self.checkpoint = checkpoint
