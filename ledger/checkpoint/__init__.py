"""
Signed checkpoints of ledger heads.

Provides:
- Checkpoint model with canonical signing payload
- Ed25519 signing and verification
- Checkpoint creation from a verified chain
- Checkpoint storage management
"""

from .model import Checkpoint, CHECKPOINT_VERSION
from .signer import SigningKey, VerifyingKey, ensure_keypair
from .verify import (
    CheckpointVerificationResult,
    create_checkpoint,
    verify_against_store,
    verify_checkpoint,
    verify_signature,
)
from .store import CheckpointStore

__all__ = [
    "Checkpoint",
    "CHECKPOINT_VERSION",
    "SigningKey",
    "VerifyingKey",
    "ensure_keypair",
    "CheckpointVerificationResult",
    "create_checkpoint",
    "verify_against_store",
    "verify_checkpoint",
    "verify_signature",
    "CheckpointStore",
]
