"""Configuration module."""

from switchboard.config.loader import get_default_config, load_config
from switchboard.config.models import (
    ExecutorConfig,
    GatewayConfig,
    LoggingConfig,
    ManifestConfig,
    RegistryConfig,
    SentryConfig,
    SwitchboardConfig,
)
from switchboard.config.paths import (
    get_config_path,
    get_logs_path,
    get_switchboard_home,
)

__all__ = [
    "ExecutorConfig",
    "GatewayConfig",
    "LoggingConfig",
    "ManifestConfig",
    "RegistryConfig",
    "SentryConfig",
    "SwitchboardConfig",
    "get_config_path",
    "get_default_config",
    "get_logs_path",
    "get_switchboard_home",
    "load_config",
]
