"""In-memory implementation of the checkpoint store."""

from __future__ import annotations

import logging
import threading
from typing import Awaitable, Callable, Dict, List, Optional

from .models import ExecutionCheckpoint
from .repository import CheckpointStore

logger = logging.getLogger(__name__)

PersistCallback = Callable[[ExecutionCheckpoint], Awaitable[None]]


class InMemoryCheckpointStore(CheckpointStore):
    """Store checkpoints in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts unless ``persist_callback`` forwards
    each checkpoint somewhere durable.
    """

    def __init__(self, persist_callback: Optional[PersistCallback] = None) -> None:
        self._lock = threading.Lock()
        self._checkpoints: Dict[str, List[ExecutionCheckpoint]] = {}
        self._persist_callback = persist_callback

    # ------------------------------------------------------------------
    async def save_checkpoint(self, checkpoint: ExecutionCheckpoint) -> None:
        with self._lock:
            self._checkpoints.setdefault(checkpoint.workflow_id, []).append(checkpoint)

        logger.debug(
            f"Checkpoint saved: workflow={checkpoint.workflow_id}, "
            f"step={checkpoint.step_number}/{checkpoint.step_name}, status={checkpoint.status.value}"
        )

        if self._persist_callback is not None:
            await self._persist_callback(checkpoint)

    async def get_checkpoint(
        self, workflow_id: str, checkpoint_id: str
    ) -> ExecutionCheckpoint | None:
        with self._lock:
            for checkpoint in self._checkpoints.get(workflow_id, []):
                if checkpoint.checkpoint_id == checkpoint_id:
                    return checkpoint
        return None

    async def get_latest_checkpoint(
        self, workflow_id: str
    ) -> ExecutionCheckpoint | None:
        with self._lock:
            checkpoints = self._checkpoints.get(workflow_id)
            return checkpoints[-1] if checkpoints else None

    async def get_workflow_checkpoints(
        self, workflow_id: str
    ) -> list[ExecutionCheckpoint]:
        with self._lock:
            return list(self._checkpoints.get(workflow_id, []))

    async def purge_workflow_checkpoints(self, workflow_id: str) -> int:
        if not workflow_id or not workflow_id.strip():
            raise ValueError("workflow_id must be a non-empty string")
        with self._lock:
            removed = self._checkpoints.pop(workflow_id, [])
        if removed:
            logger.info(f"Purged {len(removed)} checkpoints for workflow {workflow_id}")
        else:
            logger.debug(f"No checkpoints found to purge for workflow {workflow_id}")
        return len(removed)

    @property
    def total_checkpoint_count(self) -> int:
        """Number of checkpoints held across all workflows."""
        with self._lock:
            return sum(len(items) for items in self._checkpoints.values())
