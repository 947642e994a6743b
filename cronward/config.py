"""
cronward Configuration Management.

Handles loading application settings from:
- Default values
- Settings file (TOML)
- Environment variables

The tasks themselves live in a separate JSON tasks file, see
cronward.scheduler.config_validator.
"""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "cronward"
DEFAULT_CONFIG_FILE = "settings.toml"
DEFAULT_TASKS_FILE = "scheduler.json"
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "cronward"

_TRUE_VALUES = ("true", "1", "yes", "on")


@dataclass
class SchedulerSettings:
    """Settings for the scheduler core."""

    # Paths (derived from config_dir / data_dir when unset)
    tasks_file: Optional[Path] = None
    history_dir: Optional[Path] = None

    # Hot reload
    watch_config: bool = True
    debounce_seconds: float = 0.5

    # Execution
    http_timeout: float = 30.0
    max_instances: int = 10
    misfire_grace_time: int = 60

    # History
    max_history_records: int = 1000


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "WARNING"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[Path] = None


@dataclass
class AppConfig:
    """Main configuration container for cronward."""

    # Paths
    config_dir: Path = DEFAULT_CONFIG_DIR
    data_dir: Path = DEFAULT_DATA_DIR

    # Sub-configurations
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        self.resolve_paths()

    def resolve_paths(self) -> None:
        """Fill in scheduler paths that were not set explicitly."""
        if self.scheduler.tasks_file is None:
            self.scheduler.tasks_file = self.config_dir / DEFAULT_TASKS_FILE
        if self.scheduler.history_dir is None:
            self.scheduler.history_dir = self.data_dir / "history"

    @property
    def pid_file(self) -> Path:
        return self.data_dir / "cronward.pid"


def load_config(
    config_path: Optional[Path] = None,
    env_prefix: str = "CRONWARD_"
) -> AppConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Settings file
    3. Default values

    Args:
        config_path: Path to settings file (default: ~/.config/cronward/settings.toml)
        env_prefix: Prefix for environment variables

    Returns:
        Loaded configuration
    """
    config = AppConfig()
    # Paths are resolved after file and env overrides are applied
    config.scheduler.tasks_file = None
    config.scheduler.history_dir = None

    if config_path is None:
        env_config_dir = os.environ.get(f"{env_prefix}CONFIG_DIR")
        if env_config_dir:
            config_path = Path(env_config_dir) / DEFAULT_CONFIG_FILE
        else:
            config_path = DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE

    if config_path.exists():
        config = _load_from_file(config_path, config)

    config = _load_from_env(config, env_prefix)
    config.resolve_paths()

    return config


def _load_from_file(path: Path, config: AppConfig) -> AppConfig:
    """Load configuration from a TOML file."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)

        if "scheduler" in data:
            for key, value in data["scheduler"].items():
                if hasattr(config.scheduler, key):
                    if key in ("tasks_file", "history_dir"):
                        value = Path(value).expanduser()
                    setattr(config.scheduler, key, value)

        if "logging" in data:
            for key, value in data["logging"].items():
                if hasattr(config.logging, key):
                    if key == "file":
                        value = Path(value).expanduser()
                    setattr(config.logging, key, value)

        # Top-level settings
        if "config_dir" in data:
            config.config_dir = Path(data["config_dir"]).expanduser()
        if "data_dir" in data:
            config.data_dir = Path(data["data_dir"]).expanduser()

    except (OSError, tomllib.TOMLDecodeError) as e:
        print(f"Warning: Failed to load config from {path}: {e}")

    return config


def _load_from_env(config: AppConfig, prefix: str) -> AppConfig:
    """Load configuration from environment variables."""

    # Paths
    if env_val := os.environ.get(f"{prefix}CONFIG_DIR"):
        config.config_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}DATA_DIR"):
        config.data_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}TASKS_FILE"):
        config.scheduler.tasks_file = Path(env_val)
    if env_val := os.environ.get(f"{prefix}HISTORY_DIR"):
        config.scheduler.history_dir = Path(env_val)

    # Scheduler settings
    if env_val := os.environ.get(f"{prefix}WATCH_CONFIG"):
        config.scheduler.watch_config = env_val.lower() in _TRUE_VALUES
    if env_val := os.environ.get(f"{prefix}HTTP_TIMEOUT"):
        try:
            config.scheduler.http_timeout = float(env_val)
        except ValueError:
            print(f"Warning: Ignoring invalid {prefix}HTTP_TIMEOUT: {env_val}")

    # Logging settings
    if env_val := os.environ.get(f"{prefix}LOG_LEVEL"):
        config.logging.level = env_val.upper()

    return config


def ensure_directories(config: AppConfig) -> None:
    """Ensure all required directories exist."""
    config.config_dir.mkdir(parents=True, exist_ok=True)
    config.data_dir.mkdir(parents=True, exist_ok=True)
    if config.scheduler.history_dir:
        config.scheduler.history_dir.mkdir(parents=True, exist_ok=True)


def get_default_config() -> AppConfig:
    """Get the default configuration."""
    return AppConfig()


# Global configuration instance (lazy-loaded)
_global_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def clear_config_cache() -> None:
    """Clear the global configuration cache."""
    global _global_config
    _global_config = None


def _config_to_dict(config: AppConfig) -> dict[str, Any]:
    """
    Convert configuration to dictionary.

    Args:
        config: Configuration to convert

    Returns:
        Dictionary representation of config
    """
    scheduler = config.scheduler
    return {
        "config_dir": str(config.config_dir),
        "data_dir": str(config.data_dir),
        "scheduler": {
            "tasks_file": str(scheduler.tasks_file) if scheduler.tasks_file else None,
            "history_dir": str(scheduler.history_dir) if scheduler.history_dir else None,
            "watch_config": scheduler.watch_config,
            "debounce_seconds": scheduler.debounce_seconds,
            "http_timeout": scheduler.http_timeout,
            "max_instances": scheduler.max_instances,
            "misfire_grace_time": scheduler.misfire_grace_time,
            "max_history_records": scheduler.max_history_records,
        },
        "logging": {
            "level": config.logging.level,
            "format": config.logging.format,
            "file": str(config.logging.file) if config.logging.file else None,
        },
    }


def export_config_yaml(config: AppConfig) -> str:
    """
    Export configuration as YAML string.

    Args:
        config: Configuration to export

    Returns:
        YAML string representation of config
    """
    config_dict = _config_to_dict(config)
    return yaml.dump(config_dict, default_flow_style=False, sort_keys=False, allow_unicode=True)


def export_config_json(config: AppConfig) -> str:
    """
    Export configuration as JSON string.

    Args:
        config: Configuration to export

    Returns:
        JSON string representation of config
    """
    config_dict = _config_to_dict(config)
    return json.dumps(config_dict, indent=2)
