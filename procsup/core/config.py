"""Supervisor configuration.

Loaded from ``~/.procsup/config.yaml`` (or an explicit path) with
environment overrides applied last:

    host: 127.0.0.1
    port: 8080
    state_path: ~/.procsup/processes.json
    reply_timeout: 5.0
    max_launch_workers: 4
    log_level: INFO
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from procsup.core.protocol import MAX_DATAGRAM_SIZE

DEFAULT_HOME = Path("~/.procsup")
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config.yaml"
DEFAULT_STATE_PATH = DEFAULT_HOME / "processes.json"

# Environment variable -> config field
ENV_OVERRIDES = {
    "PROCSUP_HOST": "host",
    "PROCSUP_PORT": "port",
    "PROCSUP_STATE_PATH": "state_path",
}


class ConfigError(Exception):
    """Configuration file or override is invalid."""

    pass


class SupervisorConfig(BaseModel):
    """Settings shared by the daemon, registry and client."""

    model_config = {"extra": "forbid"}

    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=0, le=65535)
    state_path: Path = DEFAULT_STATE_PATH
    reply_timeout: float = Field(default=5.0, gt=0)
    max_launch_workers: int = Field(default=4, ge=1)
    max_datagram_size: int = Field(default=MAX_DATAGRAM_SIZE, ge=64, le=65507)
    log_level: str = "INFO"

    @field_validator("state_path")
    @classmethod
    def expand_state_path(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def address(self) -> tuple[str, int]:
        return self.host, self.port


def load_config(path: str | Path | None = None) -> SupervisorConfig:
    """Build the effective configuration.

    Precedence (lowest to highest): defaults, YAML file, environment.
    A missing default config file is fine; a missing explicit one is not.

    Raises:
        ConfigError: If the file is unreadable, not a mapping, or holds
            invalid values.
    """
    explicit = path is not None
    config_path = Path(path if path is not None else DEFAULT_CONFIG_PATH).expanduser()

    values: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path) as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read config {config_path}: {e}") from e
        if loaded is not None:
            if not isinstance(loaded, dict):
                raise ConfigError(f"Config {config_path} must be a mapping")
            values.update(loaded)
    elif explicit:
        raise ConfigError(f"Config file not found: {config_path}")

    for env_name, field_name in ENV_OVERRIDES.items():
        env_value = os.environ.get(env_name)
        if env_value:
            values[field_name] = env_value

    try:
        return SupervisorConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
