"""Envelope checking command."""

from pathlib import Path
from typing import Annotated

import typer

from switchboard.cli.console import console, create_table, error, success


def register(app: typer.Typer) -> None:
    """Register the check command."""

    @app.command()
    def check(
        file: Annotated[
            Path,
            typer.Argument(help="JSONL file with one inbound envelope per line"),
        ],
    ) -> None:
        """Classify captured inbound envelopes and report malformed ones."""
        from switchboard.errors import ProtocolError
        from switchboard.gateway.protocol import RPCNotification, decode

        expanded = file.expanduser()
        if not expanded.exists():
            error(f"File not found: {expanded}")
            raise typer.Exit(1)

        table = create_table(
            f"Envelopes in {expanded.name}",
            [
                ("Line", {"justify": "right", "style": "dim"}),
                ("Kind", "cyan"),
                ("Id / Method", {}),
                ("Detail", {}),
            ],
        )

        invalid = 0
        for lineno, line in enumerate(expanded.read_text().splitlines(), start=1):
            if not line.strip():
                continue
            try:
                envelope = decode(line)
            except ProtocolError as e:
                invalid += 1
                table.add_row(str(lineno), "[red]invalid[/red]", "", str(e))
                continue

            if isinstance(envelope, RPCNotification):
                keys = ", ".join(sorted(envelope.params)) or "-"
                table.add_row(str(lineno), "notification", envelope.method, keys)
            elif envelope.error is not None:
                table.add_row(
                    str(lineno),
                    "[yellow]error[/yellow]",
                    envelope.id,
                    f"{envelope.error.code}: {envelope.error.message}",
                )
            else:
                table.add_row(str(lineno), "response", envelope.id, "")

        console.print(table)
        if invalid:
            error(f"{invalid} invalid envelope(s)")
            raise typer.Exit(1)
        success("All envelopes are valid")
