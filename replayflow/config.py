from __future__ import annotations

import os
import socket
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .contracts import DEFAULT_ACTIVITY_VERSION
from .heartbeat import DEFAULT_HEARTBEAT_INTERVAL


def default_identity(role: str) -> str:
    """Return ``<role>-<hostname>-<pid>``."""
    return f"{role}-{socket.gethostname()}-{os.getpid()}"


class SWFConfig(BaseModel):
    """Configuration for the Amazon SWF backend."""

    domain: Optional[str] = None
    region: Optional[str] = None
    endpoint_url: Optional[str] = None


class ServiceConfig(BaseModel):
    """Orchestration service client settings."""

    backend: Literal["inmemory", "swf"] = "inmemory"
    swf: SWFConfig = Field(default_factory=SWFConfig)


class DeciderConfig(BaseModel):
    """Settings for decision task pollers."""

    task_list: Optional[str] = None
    identity: str = Field(default_factory=lambda: default_identity("decider"))
    maximum_page_size: int = 500
    reverse_order: bool = False


class ActivityWorkerConfig(BaseModel):
    """Settings for activity task pollers."""

    task_list: Optional[str] = None
    identity: str = Field(default_factory=lambda: default_identity("activity"))
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    default_version: str = DEFAULT_ACTIVITY_VERSION
    max_concurrency: int = 1


class ReplayflowConfig(BaseModel):
    """Top-level configuration model."""

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    decider: DeciderConfig = Field(default_factory=DeciderConfig)
    activity: ActivityWorkerConfig = Field(default_factory=ActivityWorkerConfig)


def load_config(path: Optional[str] = None) -> ReplayflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to REPLAYFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("REPLAYFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ReplayflowConfig(**data)
    else:
        config = ReplayflowConfig()

    env_backend = os.getenv("REPLAYFLOW_BACKEND")
    if env_backend:
        config.service.backend = env_backend.lower()
    env_domain = os.getenv("REPLAYFLOW_DOMAIN")
    if env_domain:
        config.service.swf.domain = env_domain
    return config
