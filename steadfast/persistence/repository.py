"""Checkpoint store abstraction for durable workflow execution."""

from __future__ import annotations

from typing import Protocol

from .models import ExecutionCheckpoint


class CheckpointStore(Protocol):
    """Protocol for checkpoint persistence backends.

    Checkpoints are append-only. ``get_latest_checkpoint`` returns the most
    recently written checkpoint for a workflow and
    ``get_workflow_checkpoints`` returns them in write order.
    """

    async def save_checkpoint(self, checkpoint: ExecutionCheckpoint) -> None:
        """Persist a checkpoint."""

    async def get_checkpoint(
        self, workflow_id: str, checkpoint_id: str
    ) -> ExecutionCheckpoint | None:
        """Retrieve one checkpoint by id."""

    async def get_latest_checkpoint(
        self, workflow_id: str
    ) -> ExecutionCheckpoint | None:
        """Return the last checkpoint written for ``workflow_id``."""

    async def get_workflow_checkpoints(
        self, workflow_id: str
    ) -> list[ExecutionCheckpoint]:
        """Return every checkpoint for ``workflow_id`` in write order."""

    async def purge_workflow_checkpoints(self, workflow_id: str) -> int:
        """Delete all checkpoints for ``workflow_id``; return how many were removed."""
