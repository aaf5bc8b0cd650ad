#!/usr/bin/env python3
"""
Ledger CLI - Tamper-evident asset event ledger

Main entrypoint for the ledger command-line tool. The storage backend is
selected with LEDGER_* environment variables (see ledger.config).
"""

import typer
from rich.console import Console
from rich.table import Table

from cli.commands import checkpoint, events
from cli.commands.common import print_json
from ledger.logging_config import setup_logging

# Initialize Typer app
app = typer.Typer(
    name="ledger",
    help="Tamper-evident, hash-chained event ledger per asset",
    add_completion=False,
)

console = Console()

# Add command groups
app.add_typer(checkpoint.app, name="checkpoint", help="Signed checkpoint management")

# Add standalone commands
app.command("append")(events.append_command)
app.command("events")(events.events_command)
app.command("verify")(events.verify_command)
app.command("export")(events.export_command)


@app.callback()
def configure():
    """Tamper-evident, hash-chained event ledger per asset."""
    setup_logging()


@app.command()
def version(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """Show version information."""
    from cli import __version__
    from ledger import __version__ as ledger_version
    from ledger.core import CANONICAL_VERSION

    if json_output:
        print_json(
            {
                "cli": __version__,
                "ledger": ledger_version,
                "canonical_version": CANONICAL_VERSION,
            }
        )
        return

    table = Table(show_header=False, box=None)
    table.add_row("[bold]Ledger CLI[/bold]", f"v{__version__}")
    table.add_row("Library", f"v{ledger_version}")
    table.add_row("Canonical encoding", f"v{CANONICAL_VERSION}")

    console.print(table)


def main():
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()
