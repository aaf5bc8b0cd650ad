"""
Helpers shared by CLI commands: store construction and error output.
"""

import json
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from ledger.config import LedgerSettings
from ledger.log import LedgerStore, open_store

console = Console()

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTEGRITY = 2


def configured_store() -> LedgerStore:
    """Open the backend described by LEDGER_* environment variables."""
    return open_store(LedgerSettings.from_env())


def print_json(data) -> None:
    print(json.dumps(data, indent=2))


def fail(message: str, json_output: bool, code: int = EXIT_ERROR, **details) -> NoReturn:
    """Report an error in the requested format and exit with code."""
    if json_output:
        print_json({"success": False, "error": message, **details})
    else:
        console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(code)
