"""
Configuration loading and merge utilities.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .models import Platform

DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_SYNC_DELAY = 0.5
DEFAULT_CSV_COLUMN = "DeviceName"


class ConfigurationError(Exception):
    """Raised when configuration or user input is invalid, before any remote call."""


def _default_platforms() -> List[Platform]:
    return [Platform.WINDOWS, Platform.MACOS, Platform.IOS, Platform.ANDROID]


@dataclass
class Config:
    tenant_id: Optional[str] = None
    graph_base_url: str = DEFAULT_GRAPH_BASE_URL
    sync_delay: float = DEFAULT_SYNC_DELAY  # Seconds between consecutive sync calls
    platforms: List[Platform] = field(default_factory=_default_platforms)
    csv_column: str = DEFAULT_CSV_COLUMN
    log_file: Optional[Path] = None
    teams_webhook_url: Optional[str] = None
    config_path: Optional[Path] = None


def _section(file_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = file_data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{name}' section must be a mapping.")
    return value


def parse_platform(value: str) -> Platform:
    try:
        return Platform.parse(value)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def parse_platforms(values: List[Any]) -> List[Platform]:
    if not isinstance(values, list):
        raise ConfigurationError("'sync.platforms' must be a list of platform names.")
    return [parse_platform(str(v)) for v in values]


def load_config(cli_tenant: Optional[str] = None, config_file: Optional[str] = None) -> Config:
    """
    Load configuration from CLI, environment, and optional YAML file.

    Precedence: CLI > environment > config file > defaults.
    """
    env_tenant = os.environ.get("INTUNE_TENANT_ID")
    env_config = os.environ.get("INTUNE_SYNC_TOOL_CONFIG")
    config_path = Path(config_file or env_config or Path.home() / ".intune_sync_tool.yml").expanduser()

    file_data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
                if not isinstance(loaded, dict):
                    raise ConfigurationError("Configuration file must contain a mapping.")
                file_data = loaded
        except OSError as exc:
            raise ConfigurationError(f"Failed to read config file {config_path}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in config file {config_path}") from exc

    sync_config = _section(file_data, "sync")
    input_config = _section(file_data, "input")

    try:
        sync_delay = float(sync_config.get("delay_seconds", DEFAULT_SYNC_DELAY))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("'sync.delay_seconds' must be a number.") from exc
    if sync_delay < 0:
        raise ConfigurationError("'sync.delay_seconds' cannot be negative.")

    platforms = _default_platforms()
    if "platforms" in sync_config:
        platforms = parse_platforms(sync_config["platforms"])

    log_file = file_data.get("log_file")

    return Config(
        tenant_id=cli_tenant or env_tenant or file_data.get("tenant_id"),
        graph_base_url=file_data.get("graph_base_url") or DEFAULT_GRAPH_BASE_URL,
        sync_delay=sync_delay,
        platforms=platforms,
        csv_column=input_config.get("csv_column") or DEFAULT_CSV_COLUMN,
        log_file=Path(log_file).expanduser() if log_file else None,
        teams_webhook_url=file_data.get("teams_webhook_url"),
        config_path=config_path if config_path.exists() else None,
    )
