"""PostgreSQL implementation of the checkpoint store."""

from __future__ import annotations

import asyncpg

from .models import ExecutionCheckpoint, ExecutionStepStatus
from .repository import CheckpointStore

_COLUMNS = (
    "checkpoint_id, workflow_id, step_number, step_name, status, state_json, "
    "input_json, output_json, state_updates_json, error_message, created_at, "
    "execution_duration"
)


class PostgresCheckpointStore(CheckpointStore):
    """Persist checkpoints using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS checkpoints (
                id BIGSERIAL PRIMARY KEY,
                checkpoint_id TEXT NOT NULL UNIQUE,
                workflow_id TEXT NOT NULL,
                step_number INTEGER NOT NULL,
                step_name TEXT NOT NULL,
                status TEXT NOT NULL,
                state_json JSONB NOT NULL,
                input_json JSONB NOT NULL,
                output_json TEXT NOT NULL,
                state_updates_json JSONB NOT NULL,
                error_message TEXT,
                created_at TIMESTAMPTZ NOT NULL,
                execution_duration DOUBLE PRECISION NOT NULL
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_checkpoints_workflow ON checkpoints (workflow_id, id)"
        )

    @staticmethod
    def _to_checkpoint(row: asyncpg.Record) -> ExecutionCheckpoint:
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
            created_at=row["created_at"],
            execution_duration=row["execution_duration"],
        )

    # ------------------------------------------------------------------
    async def save_checkpoint(self, checkpoint: ExecutionCheckpoint) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"""
                INSERT INTO checkpoints ({_COLUMNS})
                VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7::jsonb, $8, $9::jsonb, $10, $11, $12)
                """,
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
                checkpoint.created_at,
                checkpoint.execution_duration,
            )
        finally:
            await conn.close()

    async def get_checkpoint(
        self, workflow_id: str, checkpoint_id: str
    ) -> ExecutionCheckpoint | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM checkpoints WHERE workflow_id = $1 AND checkpoint_id = $2",
                workflow_id,
                checkpoint_id,
            )
        finally:
            await conn.close()
        return self._to_checkpoint(row) if row else None

    async def get_latest_checkpoint(
        self, workflow_id: str
    ) -> ExecutionCheckpoint | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM checkpoints WHERE workflow_id = $1 ORDER BY id DESC LIMIT 1",
                workflow_id,
            )
        finally:
            await conn.close()
        return self._to_checkpoint(row) if row else None

    async def get_workflow_checkpoints(
        self, workflow_id: str
    ) -> list[ExecutionCheckpoint]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM checkpoints WHERE workflow_id = $1 ORDER BY id",
                workflow_id,
            )
        finally:
            await conn.close()
        return [self._to_checkpoint(r) for r in rows]

    async def purge_workflow_checkpoints(self, workflow_id: str) -> int:
        if not workflow_id or not workflow_id.strip():
            raise ValueError("workflow_id must be a non-empty string")
        conn = await self._connect()
        try:
            status = await conn.execute(
                "DELETE FROM checkpoints WHERE workflow_id = $1", workflow_id
            )
        finally:
            await conn.close()
        # asyncpg returns the command tag, e.g. "DELETE 3"
        return int(status.split()[-1])
