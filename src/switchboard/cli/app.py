"""Main CLI application."""

from pathlib import Path
from typing import Annotated

import typer

from switchboard.cli.commands import check, config

app = typer.Typer(
    name="switchboard",
    help="Switchboard - capability mediator between UI components and a remote agent",
    no_args_is_help=True,
)


@app.callback()
def main(
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Config file for logging and Sentry (default: search order)",
        ),
    ] = None,
) -> None:
    """Set up logging and error reporting before any command runs."""
    from switchboard.cli.console import error
    from switchboard.config import get_default_config, load_config
    from switchboard.logging import configure_logging
    from switchboard.observability import init_sentry

    try:
        loaded = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        if config_path is not None:
            error(f"Error loading config: {e}")
            raise typer.Exit(1) from None
        # No usable default config; commands still run with defaults.
        loaded = get_default_config()

    configure_logging(
        loaded.logging.level,
        use_rich=True,
        log_to_file=loaded.logging.to_file,
        retention_days=loaded.logging.retention_days,
    )
    init_sentry(loaded.sentry)


config.register(app)
check.register(app)


if __name__ == "__main__":
    app()
