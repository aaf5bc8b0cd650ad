"""
Hash chain engine.

Implements tamper-evident linking of a subject's events. Each event's
self_hash covers the previous event's self_hash, so altering or removing any
event invalidates every later link.

    self_hash = SHA-256(prev_hash || canonicalize(event))

The genesis value is a fixed, public all-zero digest, so any party can
re-verify a ledger without subject creation metadata.
"""

import hashlib
from datetime import datetime
from typing import Optional

from ..core.canonical import canonicalize
from ..core.errors import ValidationError
from ..core.events import EventDraft, LedgerEvent

HASH_SIZE = 32
GENESIS_HASH = bytes(HASH_SIZE)


def compute_hash(prev_hash: bytes, canonical_bytes: bytes) -> bytes:
    """
    Compute an event digest chained to the previous one.

    Args:
        prev_hash: 32-byte hash of previous event (or GENESIS_HASH)
        canonical_bytes: Output of canonicalize()

    Returns:
        32-byte SHA-256 digest
    """
    if len(prev_hash) != HASH_SIZE:
        raise ValueError(f"prev_hash must be {HASH_SIZE} bytes, got {len(prev_hash)}")
    return hashlib.sha256(bytes(prev_hash) + canonical_bytes).digest()


def hash_event(event: LedgerEvent) -> bytes:
    """
    Recompute self_hash from an event's own fields.

    Raises:
        ValidationError: If the stored fields no longer canonicalize
    """
    data = canonicalize(
        event.subject_id,
        event.sequence,
        event.event_type,
        event.payload,
        event.occurred_at,
    )
    return compute_hash(event.prev_hash, data)


def seal_event(
    draft: EventDraft,
    sequence: int,
    prev_hash: bytes,
    recorded_at: datetime,
    max_payload_bytes: Optional[int] = None,
) -> LedgerEvent:
    """
    Turn a draft into a LedgerEvent bound to prev_hash.

    Store-internal factory: only stores call this, after reading the tail.

    Args:
        draft: Validated caller input
        sequence: Next sequence number for the subject
        prev_hash: self_hash of the current tail (or GENESIS_HASH)
        recorded_at: Store clock reading

    Returns:
        Sealed event with self_hash computed
    """
    data = canonicalize(
        draft.subject_id,
        sequence,
        draft.event_type,
        draft.payload,
        draft.occurred_at,
        max_payload_bytes=max_payload_bytes,
    )
    return LedgerEvent(
        subject_id=draft.subject_id,
        sequence=sequence,
        event_type=draft.event_type.value,
        payload=draft.payload,
        occurred_at=draft.occurred_at,
        recorded_at=recorded_at,
        prev_hash=bytes(prev_hash),
        self_hash=compute_hash(prev_hash, data),
    )


def hash_matches(event: LedgerEvent) -> bool:
    """True if the stored self_hash equals the recomputed one."""
    try:
        return hash_event(event) == event.self_hash
    except (ValidationError, ValueError):
        return False


def verify_link(event: LedgerEvent, expected_prev_hash: bytes) -> bool:
    """
    Verify a single link of the chain.

    Mismatch is an expected outcome and returns False rather than raising.

    Args:
        event: Stored event
        expected_prev_hash: self_hash of the prior event (or GENESIS_HASH)

    Returns:
        True if prev_hash matches and self_hash recomputes
    """
    return event.prev_hash == expected_prev_hash and hash_matches(event)
