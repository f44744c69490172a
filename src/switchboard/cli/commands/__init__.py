"""CLI command modules."""

from switchboard.cli.commands import check, config

__all__ = [
    "check",
    "config",
]
