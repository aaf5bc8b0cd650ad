"""
Verify a subject's full hash chain.

A broken chain is a finding, not a fault: results are returned as data so they
can be logged, displayed and tested without special control flow.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional, Union

from ..core.errors import ValidationError
from ..core.events import LedgerEvent
from ..core.ids import normalize_subject_id
from ..log.integrity import GENESIS_HASH, hash_event, hash_matches
from ..log.store import LedgerStore
from ..logging_config import get_logger


class BreakReason(str, Enum):
    """Why a link failed."""

    # stored self_hash differs from the recomputed value: content was altered
    HASH_MISMATCH = "HashMismatch"
    # prev_hash differs from the prior self_hash: an event was removed, reordered or inserted
    LINK_MISMATCH = "LinkMismatch"


@dataclass(frozen=True)
class Valid:
    """Chain intact end-to-end."""

    event_count: int
    final_hash: bytes

    valid = True

    def to_dict(self) -> dict:
        return {
            "status": "Valid",
            "valid": True,
            "event_count": self.event_count,
            "final_hash": self.final_hash.hex(),
        }


@dataclass(frozen=True)
class Broken:
    """
    First failing link.

    Fields:
        at_sequence: Sequence of the first event that fails verification
        reason: BreakReason
        checked: Number of events verified before the break
        expected: Expected hash (hex) at the failing check
        actual: Stored hash (hex) at the failing check
    """

    at_sequence: int
    reason: BreakReason
    checked: int = 0
    expected: Optional[str] = None
    actual: Optional[str] = None

    valid = False

    def describe(self) -> str:
        if self.reason is BreakReason.LINK_MISMATCH:
            return (
                f"Event {self.at_sequence}: Invalid prevHash. "
                f"Expected: {self.expected}, Got: {self.actual}"
            )
        return (
            f"Event {self.at_sequence}: Hash mismatch. "
            f"Expected: {self.expected}, Got: {self.actual}"
        )

    def to_dict(self) -> dict:
        return {
            "status": "Broken",
            "valid": False,
            "at_sequence": self.at_sequence,
            "reason": self.reason.value,
            "checked": self.checked,
            "expected": self.expected,
            "actual": self.actual,
        }


VerificationResult = Union[Valid, Broken]


def _recomputed_hex(event: LedgerEvent) -> Optional[str]:
    try:
        return hash_event(event).hex()
    except (ValidationError, ValueError):
        return None


def verify_events(events: Iterable[LedgerEvent], subject_id=None) -> VerificationResult:
    """
    Verify an ordered run of events starting at sequence 1.

    Checks, for each event in order:
    - prev_hash equals the running expected hash (genesis first)
    - the event belongs to subject_id and sits at its own position
    - self_hash equals the hash recomputed from the event's own fields

    An event copied in from another subject, or renumbered, is reported as
    HASH_MISMATCH: its stored hash was computed over a different subject or
    sequence than the one it now claims in this ledger.

    Args:
        events: Events in ascending sequence order
        subject_id: Subject the run must belong to (None = the first event's)

    Returns:
        Valid(event_count, final_hash) or Broken at the first failing event
    """
    owner = normalize_subject_id(subject_id) if subject_id is not None else None
    expected = GENESIS_HASH
    checked = 0

    for event in events:
        if event.prev_hash != expected:
            return Broken(
                at_sequence=event.sequence,
                reason=BreakReason.LINK_MISMATCH,
                checked=checked,
                expected=expected.hex(),
                actual=event.prev_hash.hex(),
            )
        if owner is None:
            owner = event.subject_id
        position = checked + 1
        if event.subject_id != owner or event.sequence != position:
            return Broken(
                at_sequence=position,
                reason=BreakReason.HASH_MISMATCH,
                checked=checked,
                expected=_recomputed_hex(replace(event, subject_id=owner, sequence=position)),
                actual=event.self_hash.hex(),
            )
        if not hash_matches(event):
            return Broken(
                at_sequence=event.sequence,
                reason=BreakReason.HASH_MISMATCH,
                checked=checked,
                expected=_recomputed_hex(event),
                actual=event.self_hash.hex(),
            )
        expected = event.self_hash
        checked += 1

    return Valid(event_count=checked, final_hash=expected)


def verify_chain(store: LedgerStore, subject_id) -> VerificationResult:
    """
    Re-derive a subject's chain from storage.

    Pure read: never mutates the ledger and needs no coordination with
    writers or other verifiers. An empty ledger is Valid with zero events.

    Args:
        store: Ledger store
        subject_id: Subject UUID

    Returns:
        Valid or Broken

    Raises:
        StorageUnavailable: If the store cannot be read
    """
    subject_id = normalize_subject_id(subject_id)
    result = verify_events(store.list_events(subject_id), subject_id)

    log = get_logger(__name__, subject_id=subject_id)
    if isinstance(result, Broken):
        log.warning("Chain broken at seq=%d: %s", result.at_sequence, result.reason.value)
    else:
        log.debug("Chain valid: %d events", result.event_count)
    return result
