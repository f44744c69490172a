"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from switchboard.config.models import SwitchboardConfig
from switchboard.config.paths import get_config_path

LOG_LEVEL_ENV_VAR = "SWITCHBOARD_LOG_LEVEL"


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("switchboard.toml"),  # Current directory
        get_config_path(),  # ~/.switchboard/config.toml (or SWITCHBOARD_HOME)
        Path("/etc/switchboard/config.toml"),  # System-wide
    ]


def _resolve_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Fill values from environment variables where the file leaves them unset."""
    if dsn := os.environ.get("SENTRY_DSN"):
        sentry = config.setdefault("sentry", {})
        if sentry.get("dsn") is None:
            sentry["dsn"] = SecretStr(dsn)

    if level := os.environ.get(LOG_LEVEL_ENV_VAR):
        logging_section = config.setdefault("logging", {})
        logging_section.setdefault("level", level.upper())

    return config


def load_config(path: Path | None = None) -> SwitchboardConfig:
    """Load configuration from a TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Validated SwitchboardConfig instance.

    Raises:
        FileNotFoundError: If no config file is found.
        ValueError: If config file is invalid.
    """
    config_path: Path | None = None

    default_paths = _get_default_config_paths()

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in default_paths:
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    if config_path is None:
        raise FileNotFoundError(
            f"No config file found. Searched: {', '.join(str(p) for p in default_paths)}"
        )

    with config_path.open("rb") as f:
        raw_config = tomllib.load(f)

    raw_config = _resolve_env_overrides(raw_config)

    return SwitchboardConfig.model_validate(raw_config)


def get_default_config() -> SwitchboardConfig:
    """Get a default configuration for embedding and testing."""
    return SwitchboardConfig()
