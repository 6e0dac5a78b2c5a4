"""Shared turnflow configuration utilities.

Centralises reading of ~/.turnflow/configuration.json so the CLI, the
services and the tests share one implementation.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MAX_FLOW_STEPS = 100

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------


def get_turnflow_home() -> Path:
    """Base directory for config and storage (``TURNFLOW_HOME`` or ~/.turnflow)."""
    env_home = os.environ.get("TURNFLOW_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".turnflow"


def get_turnflow_config() -> dict[str, Any]:
    """Load configuration.json from the turnflow home directory."""
    config_file = get_turnflow_home() / "configuration.json"
    if not config_file.exists():
        return {}
    try:
        with open(config_file, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_storage_path() -> Path:
    """Return the directory used by the JSON file stores."""
    configured = get_turnflow_config().get("storage", {}).get("path")
    if configured:
        return Path(configured).expanduser()
    return get_turnflow_home() / "data"


def get_log_level() -> str:
    return get_turnflow_config().get("logging", {}).get("level", "INFO")


def get_log_format() -> str:
    return get_turnflow_config().get("logging", {}).get("format", "auto")


def get_max_flow_steps() -> int:
    """Return the node-visit limit for one turn, falling back to DEFAULT_MAX_FLOW_STEPS."""
    return int(get_turnflow_config().get("flow", {}).get("max_steps", DEFAULT_MAX_FLOW_STEPS))


# ---------------------------------------------------------------------------
# RuntimeConfig
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Runtime configuration loaded from configuration.json."""

    storage_path: Path = field(default_factory=get_storage_path)
    log_level: str = field(default_factory=get_log_level)
    log_format: str = field(default_factory=get_log_format)
    max_flow_steps: int = field(default_factory=get_max_flow_steps)
