"""
Core configuration settings for thermobridge.

Directory locations follow the XDG base-directory variables.  Runtime options
come from an optional YAML file and a handful of environment overrides:

    THERMOBRIDGE_CONFIG     path of the YAML file (default: <config dir>/config.yaml)
    THERMOBRIDGE_LOG_LEVEL  overrides ``log_level``
    THERMOBRIDGE_BUS_NAME   overrides ``bus_name``
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional, Union

import yaml

from thermobridge.bt_ref.constants import ADAPTER_NAME, DEFAULT_BUS_NAME

# Base paths
THERMOBRIDGE_ROOT = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local/share")) / "thermobridge"
CACHE_DIR = Path(os.getenv("XDG_CACHE_HOME", Path.home() / ".cache")) / "thermobridge"
CONFIG_DIR = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config")) / "thermobridge"

# Logging configuration
LOG_DIR = DATA_DIR / "logs"

# Log types
LOG__GENERAL = "GENERAL"
LOG__DEBUG = "DEBUG"
LOG__MEASUREMENT = "MEASUREMENT"

# Default adapter
DEFAULT_ADAPTER = ADAPTER_NAME

DEFAULT_CONFIG_FILE = CONFIG_DIR / "config.yaml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class BridgeConfig:
    """Runtime options for the bridge."""

    bus_name: str = DEFAULT_BUS_NAME
    log_level: str = "INFO"
    # Adapter names (e.g. "hci0") to serve; empty means every adapter
    adapters: List[str] = field(default_factory=list)
    confirm_indications: bool = True

    def __post_init__(self):
        from thermobridge.core.errors import InvalidArgumentError

        self.log_level = str(self.log_level).upper()
        if self.log_level not in _LOG_LEVELS:
            raise InvalidArgumentError("log_level", f"expected one of {', '.join(_LOG_LEVELS)}")
        if not self.bus_name or not isinstance(self.bus_name, str):
            raise InvalidArgumentError("bus_name", "must be a non-empty string")
        if not isinstance(self.adapters, list):
            raise InvalidArgumentError("adapters", "must be a list of adapter names")
        self.adapters = [str(a) for a in self.adapters]
        self.confirm_indications = bool(self.confirm_indications)

    def serves_adapter(self, adapter_path: str) -> bool:
        if not self.adapters:
            return True
        return adapter_path.rstrip("/").rsplit("/", 1)[-1] in self.adapters


def config_path() -> Path:
    env = os.getenv("THERMOBRIDGE_CONFIG")
    return Path(env) if env else DEFAULT_CONFIG_FILE


def load_config(path: Optional[Union[str, Path]] = None) -> BridgeConfig:
    """Build a :class:`BridgeConfig` from *path* (or the default file) and env.

    A missing file yields the defaults; unknown keys are rejected.
    """
    from thermobridge.core.errors import InvalidArgumentError

    source = Path(path) if path is not None else config_path()
    data = {}
    if source.is_file():
        with open(source, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise InvalidArgumentError(str(source), "configuration must be a mapping")

    known = {f.name for f in fields(BridgeConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise InvalidArgumentError(str(source), f"unknown keys: {', '.join(unknown)}")

    level = os.getenv("THERMOBRIDGE_LOG_LEVEL")
    if level:
        data["log_level"] = level
    bus_name = os.getenv("THERMOBRIDGE_BUS_NAME")
    if bus_name:
        data["bus_name"] = bus_name

    return BridgeConfig(**data)


def save_config(cfg: BridgeConfig, path: Optional[Union[str, Path]] = None) -> Path:
    target = Path(path) if path is not None else config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = {f.name: getattr(cfg, f.name) for f in fields(BridgeConfig)}
    with open(target, "w", encoding="utf-8") as fh:
        yaml.safe_dump(payload, fh, default_flow_style=False, sort_keys=True)
    return target
