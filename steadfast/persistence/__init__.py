"""Checkpoint persistence layer for steadfast workflows."""

from __future__ import annotations

import os
from typing import Optional

from ..config import SteadfastConfig, load_config
from .inmemory import InMemoryCheckpointStore
from .models import ExecutionCheckpoint, ExecutionStepStatus
from .postgres import PostgresCheckpointStore
from .repository import CheckpointStore
from .sqlite import SQLiteCheckpointStore

_store_instance: CheckpointStore | None = None


def get_checkpoint_store(
    database_url: Optional[str] = None, config: Optional[SteadfastConfig] = None
) -> CheckpointStore:
    """Factory function to obtain a checkpoint store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``STEADFAST_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned.
    """

    global _store_instance
    if _store_instance is not None and database_url is None and config is None:
        return _store_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("STEADFAST_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _store_instance = InMemoryCheckpointStore()
        return _store_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _store_instance = SQLiteCheckpointStore(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        _store_instance = PostgresCheckpointStore(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _store_instance


__all__ = [
    "CheckpointStore",
    "ExecutionCheckpoint",
    "ExecutionStepStatus",
    "InMemoryCheckpointStore",
    "PostgresCheckpointStore",
    "SQLiteCheckpointStore",
    "get_checkpoint_store",
]
