from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Transport configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class StoreConfig(BaseModel):
    """Document store settings. No ``database_url`` means in-memory."""

    database_url: Optional[str] = None


class TriggerConfig(BaseModel):
    """How step change events reach the completion listener.

    ``local`` invokes the listener in-process on every step write,
    ``transport`` publishes the change on the configured transport for a
    separate ``reelflow worker run`` process.
    """

    mode: Literal["local", "transport"] = "local"


class AgentConfig(BaseModel):
    """Agent execution settings."""

    simulated_delay: float = 3.0
    timeout: float = 300.0
    ffprobe_path: str = "ffprobe"
    probe_timeout: float = 30.0


class ReelflowConfig(BaseModel):
    """Top-level configuration model."""

    store: StoreConfig = StoreConfig()
    transport: TransportConfig = TransportConfig()
    trigger: TriggerConfig = TriggerConfig()
    agents: AgentConfig = AgentConfig()
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> ReelflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to REELFLOW_CONFIG env
            variable or 'reelflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("REELFLOW_CONFIG", "reelflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ReelflowConfig(**data)
    else:
        config = ReelflowConfig()

    env_db_url = os.getenv("REELFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.store.database_url = env_db_url
    env_transport = os.getenv("REELFLOW_TRANSPORT")
    if env_transport:
        config.transport.backend = env_transport.lower()
    return config
