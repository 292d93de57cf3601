"""Data models for persisted execution checkpoints."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python


class ExecutionStepStatus(str, Enum):
    """Status of a single execution step within a workflow."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


def dump_json(value: Any) -> str:
    """Serialize ``value`` to a JSON document."""
    return json.dumps(to_jsonable_python(value))


def load_json(data: str) -> Any:
    """Deserialize a JSON document; an empty blob reads as ``None``."""
    if not data:
        return None
    return json.loads(data)


class ExecutionCheckpoint(BaseModel):
    """One durable record of a step's outcome and the state preceding it.

    ``state_json`` is the workflow state *before* the step's updates were
    merged; ``state_updates_json`` holds the updates a completed step returned
    so a resume can rebuild the state after it.
    """

    checkpoint_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    step_number: int
    step_name: str
    status: ExecutionStepStatus = ExecutionStepStatus.COMPLETED
    state_json: str = "{}"
    input_json: str = "{}"
    output_json: str = ""
    state_updates_json: str = "{}"
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    execution_duration: float = 0.0

    def deserialize_state(self) -> dict[str, Any]:
        return load_json(self.state_json) or {}

    def deserialize_input(self) -> dict[str, Any]:
        return load_json(self.input_json) or {}

    def deserialize_output(self) -> Any:
        return load_json(self.output_json)

    def deserialize_state_updates(self) -> dict[str, Any]:
        return load_json(self.state_updates_json) or {}

    def resumed_state(self) -> dict[str, Any]:
        """State a resumed run should start from after this checkpoint."""
        state = self.deserialize_state()
        if self.status == ExecutionStepStatus.COMPLETED:
            state.update(self.deserialize_state_updates())
        return state
