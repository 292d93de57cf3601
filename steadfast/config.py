from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    """Defaults applied by the workflow engine."""

    backoff_base_ms: float = Field(default=100.0, ge=0)


class BenchmarkConfig(BaseModel):
    """Settings for the Tower of Hanoi benchmark."""

    max_discs: int = Field(default=15, ge=1, le=25)
    step_timeout: float = Field(default=30.0, gt=0)
    max_retry_per_step: int = Field(default=1, ge=0)


class SteadfastConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    engine: EngineConfig = EngineConfig()
    benchmark: BenchmarkConfig = BenchmarkConfig()


def load_config(path: Optional[str] = None) -> SteadfastConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEADFAST_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEADFAST_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = SteadfastConfig(**data)
    else:
        config = SteadfastConfig()

    env_db_url = os.getenv("STEADFAST_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
