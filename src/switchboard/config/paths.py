"""Centralized path management for Switchboard.

State lives under one base directory, overridable with the SWITCHBOARD_HOME
environment variable.

Default locations:
- Linux/macOS: ~/.switchboard
- Windows: %USERPROFILE%\\.switchboard
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "SWITCHBOARD_HOME"


@lru_cache(maxsize=1)
def get_switchboard_home() -> Path:
    """Get the base directory for all Switchboard data.

    Resolution order:
    1. SWITCHBOARD_HOME environment variable (if set)
    2. Platform default (~/.switchboard)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".switchboard"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_switchboard_home() / "config.toml"


def get_logs_path() -> Path:
    """Get the JSONL log directory."""
    return get_switchboard_home() / "logs"
