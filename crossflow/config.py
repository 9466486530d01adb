from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

DEFAULT_STEP_TIMEOUT = 300.0
DEFAULT_STATE_DIR = "test-results/workflow-states"


class WorkflowOptions(BaseModel):
    """Execution options applied to every step of a workflow."""

    continue_on_error: bool = False
    capture_screenshots: bool = False
    timeout: float = Field(default=DEFAULT_STEP_TIMEOUT, gt=0)
    retry_failed_steps: int = Field(default=0, ge=0)
    retry_delay: float = Field(default=2.0, ge=0)
    retry_backoff: float = Field(default=1.0, ge=1.0)
    retry_jitter: float = Field(default=0.0, ge=0)
    save_after_each_step: bool = False


class StateConfig(BaseModel):
    """Where and how workflow snapshots are persisted."""

    backend: Literal["file", "sqlite", "inmemory"] = "file"
    state_dir: str = DEFAULT_STATE_DIR
    database_path: Optional[str] = None
    days_to_keep: int = Field(default=7, ge=0)


class CrossflowConfig(BaseModel):
    """Top-level configuration model."""

    workflow: WorkflowOptions = Field(default_factory=WorkflowOptions)
    state: StateConfig = Field(default_factory=StateConfig)
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> CrossflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to CROSSFLOW_CONFIG env
            variable or 'crossflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("CROSSFLOW_CONFIG", "crossflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = CrossflowConfig(**data)
    else:
        config = CrossflowConfig()

    env_state_dir = os.getenv("CROSSFLOW_STATE_DIR")
    if env_state_dir:
        config.state.state_dir = env_state_dir
    return config
