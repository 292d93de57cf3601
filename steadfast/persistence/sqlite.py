"""SQLite implementation of the checkpoint store."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from .models import ExecutionCheckpoint, ExecutionStepStatus
from .repository import CheckpointStore

_COLUMNS = (
    "checkpoint_id, workflow_id, step_number, step_name, status, state_json, "
    "input_json, output_json, state_updates_json, error_message, created_at, "
    "execution_duration"
)


class SQLiteCheckpointStore(CheckpointStore):
    """Persist checkpoints using SQLite.

    The autoincrement ``id`` column records write order.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS checkpoints (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    checkpoint_id TEXT NOT NULL UNIQUE,
                    workflow_id TEXT NOT NULL,
                    step_number INTEGER NOT NULL,
                    step_name TEXT NOT NULL,
                    status TEXT NOT NULL,
                    state_json TEXT NOT NULL,
                    input_json TEXT NOT NULL,
                    output_json TEXT NOT NULL,
                    state_updates_json TEXT NOT NULL,
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    execution_duration REAL NOT NULL
                )
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_checkpoints_workflow ON checkpoints (workflow_id, id)"
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _to_checkpoint(row: sqlite3.Row) -> ExecutionCheckpoint:
        return ExecutionCheckpoint(
            checkpoint_id=row["checkpoint_id"],
            workflow_id=row["workflow_id"],
            step_number=row["step_number"],
            step_name=row["step_name"],
            status=ExecutionStepStatus(row["status"]),
            state_json=row["state_json"],
            input_json=row["input_json"],
            output_json=row["output_json"],
            state_updates_json=row["state_updates_json"],
            error_message=row["error_message"],
            created_at=datetime.fromisoformat(row["created_at"]),
            execution_duration=row["execution_duration"],
        )

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Store API
    async def save_checkpoint(self, checkpoint: ExecutionCheckpoint) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO checkpoints ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            checkpoint.checkpoint_id,
            checkpoint.workflow_id,
            checkpoint.step_number,
            checkpoint.step_name,
            checkpoint.status.value,
            checkpoint.state_json,
            checkpoint.input_json,
            checkpoint.output_json,
            checkpoint.state_updates_json,
            checkpoint.error_message,
            checkpoint.created_at.isoformat(),
            checkpoint.execution_duration,
        )

    async def get_checkpoint(
        self, workflow_id: str, checkpoint_id: str
    ) -> ExecutionCheckpoint | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_COLUMNS} FROM checkpoints WHERE workflow_id = ? AND checkpoint_id = ?",
            workflow_id,
            checkpoint_id,
        )
        return self._to_checkpoint(row) if row else None

    async def get_latest_checkpoint(
        self, workflow_id: str
    ) -> ExecutionCheckpoint | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_COLUMNS} FROM checkpoints WHERE workflow_id = ? ORDER BY id DESC LIMIT 1",
            workflow_id,
        )
        return self._to_checkpoint(row) if row else None

    async def get_workflow_checkpoints(
        self, workflow_id: str
    ) -> list[ExecutionCheckpoint]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_COLUMNS} FROM checkpoints WHERE workflow_id = ? ORDER BY id",
            workflow_id,
        )
        return [self._to_checkpoint(r) for r in rows]

    async def purge_workflow_checkpoints(self, workflow_id: str) -> int:
        if not workflow_id or not workflow_id.strip():
            raise ValueError("workflow_id must be a non-empty string")
        return await asyncio.to_thread(
            self._execute,
            "DELETE FROM checkpoints WHERE workflow_id = ?",
            workflow_id,
        )
