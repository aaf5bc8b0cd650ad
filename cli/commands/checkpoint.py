"""
Checkpoint commands: create, verify
"""

from typing import Optional

import typer

from ledger.checkpoint import (
    CheckpointStore,
    SigningKey,
    VerifyingKey,
    create_checkpoint,
    ensure_keypair,
    verify_checkpoint,
)
from ledger.checkpoint.signer import get_default_key_path
from ledger.core import IntegrityError, LedgerError

from .common import (
    EXIT_INTEGRITY,
    EXIT_OK,
    configured_store,
    console,
    fail,
    print_json,
)

app = typer.Typer()


@app.command()
def create(
    subject_id: str = typer.Argument(..., help="Subject UUID"),
    key_path: Optional[str] = typer.Option(
        None,
        "--key",
        "-k",
        help="Path to signing key (Ed25519 private key PEM, default: ~/.ledger/keys/checkpoint_ed25519)",
    ),
    generate_key: bool = typer.Option(
        False,
        "--generate-key",
        help="Generate the signing key (and KEY.pub) if it does not exist",
    ),
    directory: str = typer.Option(
        "checkpoints",
        "--dir",
        "-d",
        help="Directory to write checkpoint files into",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Create a signed checkpoint of a subject's ledger head.

    The chain is verified first; a broken or empty ledger is refused.

    Examples:
        ledger checkpoint create 5f0c... --generate-key
        ledger checkpoint create 5f0c... --key signing_key.pem --dir /var/lib/ledger/checkpoints
    """
    key_path = key_path or str(get_default_key_path())

    try:
        if generate_key:
            key_path, _ = ensure_keypair(key_path)
        signing_key = SigningKey.load_from_file(key_path)

        store = configured_store()
        checkpoint = create_checkpoint(store, subject_id, signing_key)
        checkpoint_path = CheckpointStore(directory).save(checkpoint)
    except FileNotFoundError as e:
        fail(f"Key file not found: {e.filename}", json_output)
    except IntegrityError as e:
        fail(str(e), json_output, code=EXIT_INTEGRITY)
    except (LedgerError, OSError, ValueError) as e:
        fail(str(e), json_output, error_type=type(e).__name__)

    if json_output:
        print_json(
            {
                "success": True,
                "checkpoint_path": checkpoint_path,
                "subject_id": checkpoint.subject_id,
                "sequence": checkpoint.sequence,
                "self_hash": checkpoint.self_hash,
                "pubkey_id": checkpoint.pubkey_id,
            }
        )
    else:
        console.print("[green]✓ Checkpoint created successfully[/green]")
        console.print(f"  File: [cyan]{checkpoint_path}[/cyan]")
        console.print(f"  Sequence: {checkpoint.sequence}")
        console.print(f"  Head hash: {checkpoint.self_hash[:16]}...")
        console.print(f"  Public key ID: {checkpoint.pubkey_id}")

    raise typer.Exit(EXIT_OK)


@app.command()
def verify(
    checkpoint_path: str = typer.Argument(..., help="Path to checkpoint file"),
    pubkey_path: str = typer.Option(
        ...,
        "--pubkey",
        help="Path to verifying key (Ed25519 public key PEM)",
    ),
    full: bool = typer.Option(
        False,
        "--full",
        help="Also verify the chain and that the attested event is still in the ledger",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Verify checkpoint signature, and with --full the ledger it attests.

    Exit code 0 when verification passes, 2 when it fails.

    Examples:
        ledger checkpoint verify checkpoints/cp_5f0c..._0000000003_ab12cd34.json --pubkey key.pub
        ledger checkpoint verify cp.json --pubkey key.pub --full
    """
    try:
        checkpoint = CheckpointStore.load(checkpoint_path)
        verifying_key = VerifyingKey.load_from_file(pubkey_path)
        store = configured_store() if full else None
        result = verify_checkpoint(
            checkpoint,
            verifying_key,
            store=store,
            mode="full" if full else "signature",
        )
    except FileNotFoundError as e:
        fail(f"File not found: {e.filename}", json_output)
    except (LedgerError, OSError, ValueError) as e:
        fail(f"Unreadable checkpoint or key: {e}", json_output, error_type=type(e).__name__)

    if json_output:
        print_json(
            {
                "success": result.valid,
                "verification": "full" if full else "signature",
                "subject_id": checkpoint.subject_id,
                "sequence": checkpoint.sequence,
                "signature_valid": result.signature_valid,
                "chain_valid": result.chain_valid,
                "head_present": result.head_present,
                "error": result.error,
            }
        )
    elif result.valid:
        console.print(f"[green]✓ {'Full' if full else 'Signature'} verification passed[/green]")
        console.print("  [green]✓[/green] Signature valid")
        if full:
            console.print("  [green]✓[/green] Chain valid")
            console.print(f"  [green]✓[/green] Event {checkpoint.sequence} present with attested hash")
    else:
        console.print(f"[red]✗ Verification failed:[/red] {result.error}")

    raise typer.Exit(EXIT_OK if result.valid else EXIT_INTEGRITY)
