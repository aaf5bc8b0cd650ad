"""
Core ledger primitives.

- Event model: EventType, EventDraft, LedgerEvent
- Canonical: deterministic byte encoding for hashing
- Clock: recorded_at source and timestamp normalization
- IDs: subject id normalization
- Errors: the ledger exception taxonomy
"""

from .events import EventType, EventDraft, LedgerEvent, parse_event_type
from .canonical import canonicalize, canonical_json_bytes, canonical_json_str, CANONICAL_VERSION
from .clock import SystemClock, FixedClock, format_timestamp, parse_timestamp
from .ids import normalize_subject_id, new_subject_id
from .errors import (
    LedgerError,
    ValidationError,
    InvalidEventType,
    PayloadTooLarge,
    InvalidPayload,
    InvalidTimestamp,
    InvalidSubjectId,
    ConcurrentAppendConflict,
    StorageUnavailable,
    CorruptRecord,
    IntegrityError,
)

__all__ = [
    "EventType",
    "EventDraft",
    "LedgerEvent",
    "parse_event_type",
    "canonicalize",
    "canonical_json_bytes",
    "canonical_json_str",
    "CANONICAL_VERSION",
    "SystemClock",
    "FixedClock",
    "format_timestamp",
    "parse_timestamp",
    "normalize_subject_id",
    "new_subject_id",
    "LedgerError",
    "ValidationError",
    "InvalidEventType",
    "PayloadTooLarge",
    "InvalidPayload",
    "InvalidTimestamp",
    "InvalidSubjectId",
    "ConcurrentAppendConflict",
    "StorageUnavailable",
    "CorruptRecord",
    "IntegrityError",
]
