"""Core contracts for steadfast workflow definitions and results."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_MAX_RETRY_PER_STEP, DEFAULT_STEP_TIMEOUT
from .persistence.models import ExecutionCheckpoint

if TYPE_CHECKING:
    from .cancellation import CancellationToken


class WorkflowState(str, Enum):
    """Lifecycle of a workflow execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"

    @property
    def is_terminal(self) -> bool:
        return self in (
            WorkflowState.COMPLETED,
            WorkflowState.FAILED,
            WorkflowState.CANCELLED,
        )


class WorkflowStepContext(BaseModel):
    """Input handed to a step unit.

    ``state`` is a private copy of the workflow state; changes made to it are
    discarded. Steps report changes through ``WorkflowStepResult.state_updates``.
    """

    workflow_id: str
    step_number: int
    step_name: str
    state: Dict[str, Any] = Field(default_factory=dict)
    previous_step_output: Any = None


class WorkflowStepResult(BaseModel):
    """Result returned by a single step unit."""

    success: bool
    output: Any = None
    error_message: Optional[str] = None
    state_updates: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(
        cls, output: Any = None, state_updates: Optional[Dict[str, Any]] = None
    ) -> "WorkflowStepResult":
        return cls(success=True, output=output, state_updates=state_updates or {})

    @classmethod
    def fail(cls, error_message: str) -> "WorkflowStepResult":
        return cls(success=False, error_message=error_message)


StepUnit = Callable[
    [WorkflowStepContext, "CancellationToken"],
    Union[WorkflowStepResult, Awaitable[WorkflowStepResult]],
]


class WorkflowStepDefinition(BaseModel):
    """One step in a workflow. Steps compare equal by ``step_number``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    step_number: int
    name: str
    description: str = ""
    execute: Optional[Callable[..., Any]] = Field(default=None, exclude=True)
    requires_governance_check: bool = True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WorkflowStepDefinition):
            return NotImplemented
        return self.step_number == other.step_number

    def __hash__(self) -> int:
        return hash(self.step_number)


class WorkflowDefinition(BaseModel):
    """A workflow as an ordered chain of executable steps."""

    workflow_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    description: str = ""
    steps: List[WorkflowStepDefinition] = Field(default_factory=list)
    is_pre_approved: bool = False
    max_retry_per_step: int = Field(default=DEFAULT_MAX_RETRY_PER_STEP, ge=0)
    step_timeout: float = Field(default=DEFAULT_STEP_TIMEOUT, gt=0)
    initial_context: Dict[str, Any] = Field(default_factory=dict)

    def ordered_steps(self) -> List[WorkflowStepDefinition]:
        return sorted(self.steps, key=lambda s: s.step_number)


class WorkflowStatus(BaseModel):
    """Live, in-memory view of a workflow run."""

    workflow_id: str
    state: WorkflowState = WorkflowState.PENDING
    total_steps: int = 0
    current_step: int = 0
    current_step_name: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class WorkflowResult(BaseModel):
    """Terminal summary of one workflow run."""

    workflow_id: str
    success: bool
    total_steps: int = 0
    completed_steps: int = 0
    failed_steps: int = 0
    final_output: Any = None
    error_message: Optional[str] = None
    total_duration: float = 0.0
    checkpoints: List[ExecutionCheckpoint] = Field(default_factory=list)


class StepOutcome(str, Enum):
    """How a step's retry loop concluded."""

    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    CANCELLED = "cancelled"


class StepAttempt(BaseModel):
    """Tagged outcome of running a step, possibly over several attempts."""

    outcome: StepOutcome
    result: Optional[WorkflowStepResult] = None
    attempts: int = 1

    @property
    def succeeded(self) -> bool:
        return self.outcome is StepOutcome.SUCCESS
