"""
Ledger commands: append, events, verify, export
"""

from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from ledger.core import LedgerError, SystemClock, parse_timestamp
from ledger.verify import Broken, export_history, verify_chain

from .common import (
    EXIT_INTEGRITY,
    EXIT_OK,
    configured_store,
    console,
    fail,
    print_json,
)


def _events_table(title: str, events) -> Table:
    table = Table(title=title)
    table.add_column("Seq", style="cyan", justify="right")
    table.add_column("Type", style="green")
    table.add_column("Occurred at")
    table.add_column("Recorded at", style="dim")
    table.add_column("Hash (prefix)", style="dim")

    for event in events:
        table.add_row(
            str(event.sequence),
            event.event_type,
            event.occurred_at.isoformat(),
            event.recorded_at.isoformat(),
            event.self_hash_hex[:16],
        )
    return table


def append_command(
    subject_id: str = typer.Argument(..., help="Subject UUID"),
    event_type: str = typer.Argument(..., help="Event type (INSTALL, SERVICE, INSPECTION, ...)"),
    payload: Optional[str] = typer.Option(None, "--payload", "-p", help="Payload text (UTF-8)"),
    payload_file: Optional[Path] = typer.Option(
        None,
        "--payload-file",
        "-f",
        help="Read payload bytes from file",
    ),
    occurred_at: Optional[str] = typer.Option(
        None,
        "--occurred-at",
        help="ISO-8601 timestamp with offset (default: now)",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Append an event to a subject's ledger.

    Examples:
        ledger append 5f0c... INSTALL --payload '{"model": "X200"}'
        ledger append 5f0c... SERVICE --payload-file report.pdf --occurred-at 2024-03-01T09:00:00+00:00
    """
    if payload is not None and payload_file is not None:
        fail("Use either --payload or --payload-file, not both", json_output)

    try:
        if payload_file is not None:
            data = payload_file.read_bytes()
        else:
            data = (payload or "").encode("utf-8")
        when = parse_timestamp(occurred_at) if occurred_at else SystemClock().now()

        store = configured_store()
        event = store.append(subject_id, event_type, data, when)
    except (LedgerError, OSError, ValueError) as e:
        fail(str(e), json_output, error_type=type(e).__name__)

    if json_output:
        print_json({"success": True, "event": event.to_record()})
    else:
        console.print(f"[green]✓ Appended event {event.sequence}[/green]")
        console.print(f"  Subject: [cyan]{event.subject_id}[/cyan]")
        console.print(f"  Type: {event.event_type}")
        console.print(f"  Hash: {event.self_hash_hex[:16]}...")

    raise typer.Exit(EXIT_OK)


def events_command(
    subject_id: str = typer.Argument(..., help="Subject UUID"),
    from_seq: int = typer.Option(1, "--from", help="Start at sequence number"),
    to_seq: Optional[int] = typer.Option(None, "--to", help="End at sequence number (inclusive)"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    List a subject's events in sequence order.

    Examples:
        ledger events 5f0c...
        ledger events 5f0c... --from 10 --to 20 --json
    """
    try:
        store = configured_store()
        events = list(store.list_events(subject_id, from_sequence=from_seq, to_sequence=to_seq))
    except (LedgerError, ValueError) as e:
        fail(str(e), json_output, error_type=type(e).__name__)

    if json_output:
        print_json({"events": [event.to_record() for event in events], "count": len(events)})
    elif not events:
        console.print("[yellow]No events[/yellow]")
    else:
        console.print(_events_table(f"Ledger: {escape(subject_id)}", events))
        console.print(f"\n[bold]Total events:[/bold] {len(events)}")

    raise typer.Exit(EXIT_OK)


def verify_command(
    subject_id: str = typer.Argument(..., help="Subject UUID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Verify a subject's hash chain from genesis to head.

    Exit code 0 when the chain is valid, 2 when it is broken.

    Examples:
        ledger verify 5f0c...
        ledger verify 5f0c... --json
    """
    try:
        store = configured_store()
        result = verify_chain(store, subject_id)
    except (LedgerError, ValueError) as e:
        fail(str(e), json_output, error_type=type(e).__name__)

    broken = isinstance(result, Broken)
    if json_output:
        print_json({"subject_id": subject_id, **result.to_dict()})
    elif broken:
        console.print("[red]✗ Chain broken[/red]")
        console.print(f"  At sequence: {result.at_sequence}")
        console.print(f"  Reason: {result.reason.value}")
        console.print(f"  {result.describe()}")
    else:
        console.print("[green]✓ Chain valid[/green]")
        console.print(f"  Events: {result.event_count}")
        console.print(f"  Head hash: {result.final_hash.hex()[:16]}...")

    raise typer.Exit(EXIT_INTEGRITY if broken else EXIT_OK)


def export_command(
    subject_id: str = typer.Argument(..., help="Subject UUID"),
    allow_broken: bool = typer.Option(
        False,
        "--allow-broken",
        help="Export a broken history anyway (flagged is_valid=false)",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Export a subject's verified history.

    A broken history is refused with exit code 2 unless --allow-broken is
    given, in which case it is exported flagged as unverified.

    Examples:
        ledger export 5f0c... --json > history.json
        ledger export 5f0c... --allow-broken --json
    """
    try:
        store = configured_store()
        history = export_history(store, subject_id)
    except (LedgerError, ValueError) as e:
        fail(str(e), json_output, error_type=type(e).__name__)

    if not history.verified and not allow_broken:
        fail(
            f"History of {history.subject_id} failed verification",
            json_output,
            code=EXIT_INTEGRITY,
            subject_id=history.subject_id,
            is_valid=False,
            errors=history.errors,
        )

    if json_output:
        print_json(history.to_dict())
    else:
        status = "[green]VERIFIED[/green]" if history.verified else "[red]UNVERIFIED[/red]"
        console.print(_events_table(f"History: {history.subject_id}", history.events))
        console.print(f"\n[bold]Status:[/bold] {status}")
        for error in history.errors:
            console.print(f"  [red]{escape(error)}[/red]")

    raise typer.Exit(EXIT_OK)
