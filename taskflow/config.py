"""
Configuration loading and validation.

Loads client configuration from a YAML file. The backend API key is read from
the environment variable named in the config, never from the file itself.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

from .schemas.common import SortOption


class BackendConfig(BaseModel):
    url: str = "http://localhost:54321"
    api_key_env: str = "TASKFLOW_API_KEY"
    verify_tls: bool = True
    request_timeout_seconds: int = 30

    @property
    def api_key(self) -> str | None:
        return os.environ.get(self.api_key_env)


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "text"] = "json"


class ViewConfig(BaseModel):
    default_sort: SortOption = SortOption.PRIORITY


class TaskFlowConfig(BaseModel):
    backend: BackendConfig = Field(default_factory=BackendConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    view: ViewConfig = Field(default_factory=ViewConfig)


def load_config(path: str | Path) -> TaskFlowConfig:
    """Load and validate configuration from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return TaskFlowConfig.model_validate(raw)
