"""Configuration models for the Engine Relay MCP Server."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .executor.logging import get_logger

CONFIG_ENV = "ENGINE_RELAY_CONFIG"
DEFAULT_CONFIG_FILE = "engines.yaml"
TRUTHY = ("1", "true", "yes", "on")


class EngineSettings(BaseModel):
    """Per-engine overrides."""

    model: Optional[str] = Field(default=None, description="Model passed to the engine CLI")
    mode: Optional[str] = Field(default=None, description="Streaming protocol, where the engine has several")
    binary: Optional[str] = Field(default=None, description="Executable to run instead of the default")
    timeout: Optional[float] = Field(default=None, description="Timeout in seconds for one run")
    mcp_config_files: list[str] = Field(
        default_factory=list, description="MCP config files handed to the engine"
    )
    env: dict[str, str] = Field(
        default_factory=dict, description="Extra environment variables for the engine process"
    )


class Config(BaseModel):
    """Root configuration model."""

    engines: dict[str, EngineSettings] = Field(
        default_factory=dict, description="Map of engine id to settings"
    )
    max_permission_retries: int = Field(
        default=3, ge=0, description="How many permission prompts one run may go through"
    )
    config_file: Optional[Path] = Field(
        default=None, description="File the configuration was loaded from"
    )

    def engine(self, engine_id: str) -> EngineSettings:
        return self.engines.get(engine_id) or EngineSettings()


def find_config_file() -> Path:
    """Find the configuration file.

    Search order:
    1. ENGINE_RELAY_CONFIG environment variable
    2. ./engines.yaml in current working directory
    """
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path).resolve()
    return Path.cwd() / DEFAULT_CONFIG_FILE


def load_config(config_file: Optional[Path] = None) -> Config:
    """Load configuration from a YAML file.

    A missing file yields the defaults. An unreadable or invalid file is
    logged and also yields the defaults.

    Format:
        max_permission_retries: 3
        engines:
          kimi:
            mode: wire
            model: kimi-for-coding
          opencode:
            timeout: 600
    """
    logger = get_logger()
    if config_file is None:
        config_file = find_config_file()

    if not config_file.is_file():
        return Config()

    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to read config {config_file}: {e}")
        return Config()

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config {config_file}: top level must be a mapping")
        return Config()

    try:
        return Config(**data, config_file=config_file)
    except (TypeError, ValidationError) as e:
        logger.warning(f"Invalid config {config_file}: {e}")
        return Config()


def get_config() -> Config:
    """Get the configuration (always reloads from disk)."""
    return load_config()


def env_value(key: str, env: Optional[dict[str, str]] = None) -> Optional[str]:
    """Look a variable up in the run's env first, then in the process env."""
    if env and env.get(key) is not None:
        return env[key]
    return os.environ.get(key)


def env_flag(key: str, env: Optional[dict[str, str]] = None) -> bool:
    value = env_value(key, env)
    return value is not None and value.strip().lower() in TRUTHY
