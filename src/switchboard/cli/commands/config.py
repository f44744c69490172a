"""Configuration management commands."""

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import click
import typer

from switchboard.cli.console import console, create_table, error, success

if TYPE_CHECKING:
    from rich.table import Table

    from switchboard.config import SwitchboardConfig

ACTIONS = ("show", "validate")


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, validate"),
        ] = None,
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: $SWITCHBOARD_HOME/config.toml)",
            ),
        ] = None,
    ) -> None:
        """Show or validate the mediator configuration."""
        if action is None:
            click.echo(click.get_current_context().get_help())
            raise typer.Exit(0)

        if action not in ACTIONS:
            error(f"Unknown action: {action}")
            console.print(f"Valid actions: {', '.join(ACTIONS)}")
            raise typer.Exit(1)

        from switchboard.config.paths import get_config_path

        config_path = path.expanduser() if path else get_config_path()
        if not config_path.exists():
            error(f"Config file not found: {config_path}")
            raise typer.Exit(1)

        if action == "show":
            _show(config_path)
        else:
            _validate(config_path)


def _show(config_path: Path) -> None:
    from rich.syntax import Syntax

    console.print(f"[bold]Config file: {config_path}[/bold]\n")
    console.print(
        Syntax(config_path.read_text(), "toml", theme="monokai", line_numbers=True)
    )


def _validate(config_path: Path) -> None:
    from pydantic import ValidationError

    from switchboard.config import load_config

    try:
        loaded = load_config(config_path)
    except ValidationError as e:
        error("Configuration validation failed:")
        console.print()
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"])
            console.print(f"  [yellow]{loc}[/yellow]: {err['msg']}")
        raise typer.Exit(1) from None
    except Exception as e:
        error(f"Error loading config: {e}")
        raise typer.Exit(1) from None

    success("Configuration is valid!")
    console.print()
    console.print(_summary(loaded))


def _summary(config: "SwitchboardConfig") -> "Table":
    table = create_table("Configuration Summary", [("Setting", "cyan"), ("Value", "green")])

    timeout = config.executor.confirmation_timeout_seconds
    sentry_configured = config.sentry is not None and config.sentry.dsn is not None
    rows = [
        ("Instance policy", config.registry.instance_policy),
        ("Request timeout", f"{config.gateway.request_timeout_seconds}s"),
        ("Disconnect policy", config.gateway.disconnect_policy),
        (
            "Confirmation timeout",
            f"{timeout}s" if timeout is not None else "[dim]none[/dim]",
        ),
        ("Report results", "yes" if config.executor.report_results else "no"),
        ("Manifest method", config.manifest.method),
        ("Publish on change", "yes" if config.manifest.publish_on_change else "no"),
        ("Log level", config.logging.level),
        ("Sentry", "configured" if sentry_configured else "[dim]not configured[/dim]"),
    ]
    for setting, value in rows:
        table.add_row(setting, value)
    return table
