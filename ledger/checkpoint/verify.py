"""
Checkpoint creation and verification.

Verification levels:
- signature: Fast signature-only verification
- full: Signature + hash chain + attested head still present in the store
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.clock import SystemClock, format_timestamp
from ..core.errors import IntegrityError
from ..core.ids import normalize_subject_id
from ..log.store import LedgerStore
from ..logging_config import get_logger
from ..verify.chain import Broken, verify_chain
from .model import CHECKPOINT_VERSION, Checkpoint
from .signer import SigningKey, VerifyingKey


@dataclass
class CheckpointVerificationResult:
    """
    Result of checkpoint verification.

    Fields:
        valid: Overall validity (all performed checks passed)
        signature_valid: Signature verification passed
        chain_valid: Subject's hash chain verified end-to-end
        head_present: Attested event still in the ledger with the attested hash
        error: Error message if verification failed
    """
    valid: bool
    signature_valid: bool = False
    chain_valid: bool = False
    head_present: bool = False
    error: Optional[str] = None


def create_checkpoint(
    store: LedgerStore,
    subject_id,
    signing_key: SigningKey,
    clock=None,
    meta: Optional[Dict[str, Any]] = None,
) -> Checkpoint:
    """
    Sign an attestation of a subject's current ledger head.

    Args:
        store: Ledger store
        subject_id: Subject UUID
        signing_key: Ed25519 signing key
        clock: Clock for created_at (default: system clock)
        meta: Unsigned metadata to attach

    Returns:
        Signed Checkpoint

    Raises:
        IntegrityError: If the chain is broken or the ledger is empty
    """
    subject_id = normalize_subject_id(subject_id)
    result = verify_chain(store, subject_id)
    if isinstance(result, Broken):
        raise IntegrityError(
            f"refusing to checkpoint broken ledger: {result.reason.value} at sequence {result.at_sequence}"
        )
    if result.event_count == 0:
        raise IntegrityError(f"refusing to checkpoint empty ledger for subject {subject_id}")

    unsigned = Checkpoint(
        version=CHECKPOINT_VERSION,
        subject_id=subject_id,
        sequence=result.event_count,
        self_hash=result.final_hash.hex(),
        created_at=format_timestamp((clock or SystemClock()).now()),
        pubkey_id=signing_key.get_pubkey_id(),
        signature="",
        meta=dict(meta or {}),
    )
    checkpoint = unsigned.with_signature(signing_key.sign_base64(unsigned.signing_payload()))

    get_logger(__name__, subject_id=subject_id).info(
        "Checkpoint signed at seq=%d by key %s", checkpoint.sequence, checkpoint.pubkey_id
    )
    return checkpoint


def verify_signature(checkpoint: Checkpoint, verifying_key: VerifyingKey) -> CheckpointVerificationResult:
    """
    Verify checkpoint signature only (fast mode).

    Returns:
        CheckpointVerificationResult with signature_valid set
    """
    expected_pubkey_id = verifying_key.get_pubkey_id()
    if checkpoint.pubkey_id != expected_pubkey_id:
        return CheckpointVerificationResult(
            valid=False,
            error=f"Public key ID mismatch: expected {expected_pubkey_id}, got {checkpoint.pubkey_id}",
        )

    if not verifying_key.verify_base64(checkpoint.signing_payload(), checkpoint.signature):
        return CheckpointVerificationResult(valid=False, error="Invalid signature")

    return CheckpointVerificationResult(valid=True, signature_valid=True)


def verify_against_store(
    checkpoint: Checkpoint,
    verifying_key: VerifyingKey,
    store: LedgerStore,
) -> CheckpointVerificationResult:
    """
    Full checkpoint verification.

    Verifies:
    1. Signature is valid
    2. The subject's hash chain is intact
    3. The attested event is still present with the attested self_hash
       (detects truncation or a rewritten ledger)

    Returns:
        CheckpointVerificationResult with all checks performed
    """
    sig_result = verify_signature(checkpoint, verifying_key)
    if not sig_result.signature_valid:
        return sig_result

    chain = verify_chain(store, checkpoint.subject_id)
    if isinstance(chain, Broken):
        return CheckpointVerificationResult(
            valid=False,
            signature_valid=True,
            error=f"Hash chain broken: {chain.reason.value} at sequence {chain.at_sequence}",
        )

    event = store.get_event(checkpoint.subject_id, checkpoint.sequence)
    if event is None:
        return CheckpointVerificationResult(
            valid=False,
            signature_valid=True,
            chain_valid=True,
            error=f"Attested event {checkpoint.sequence} not found in ledger",
        )
    if event.self_hash_hex != checkpoint.self_hash:
        return CheckpointVerificationResult(
            valid=False,
            signature_valid=True,
            chain_valid=True,
            error=(
                f"Attested hash mismatch at sequence {checkpoint.sequence}: "
                f"checkpoint {checkpoint.self_hash}, ledger {event.self_hash_hex}"
            ),
        )

    return CheckpointVerificationResult(
        valid=True,
        signature_valid=True,
        chain_valid=True,
        head_present=True,
    )


def verify_checkpoint(
    checkpoint: Checkpoint,
    verifying_key: VerifyingKey,
    store: Optional[LedgerStore] = None,
    mode: str = "signature",
) -> CheckpointVerificationResult:
    """
    Verify checkpoint with configurable verification level.

    Raises:
        ValueError: If mode is "full" but no store is given, or mode is unknown
    """
    if mode == "signature":
        return verify_signature(checkpoint, verifying_key)
    elif mode == "full":
        if store is None:
            raise ValueError("Full verification requires a store")
        return verify_against_store(checkpoint, verifying_key, store)
    else:
        raise ValueError(f"Unknown verification mode: {mode}")
