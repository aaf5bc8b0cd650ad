"""
Event model for the asset ledger.

Events are immutable records of what happened to a subject. Callers build an
EventDraft; only the store turns a draft into a LedgerEvent by assigning
sequence, prev_hash and self_hash (see ledger.log.integrity.seal_event).
"""

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from .clock import ensure_utc, format_timestamp, parse_timestamp
from .errors import InvalidEventType, InvalidPayload, PayloadTooLarge, ValidationError
from .ids import normalize_subject_id


class EventType(str, Enum):
    """Closed set of lifecycle event kinds."""

    INSTALL = "INSTALL"
    SERVICE = "SERVICE"
    INSPECTION = "INSPECTION"
    TRANSFER = "TRANSFER"
    DOCUMENT_ATTACHED = "DOCUMENT_ATTACHED"
    WARRANTY_REGISTERED = "WARRANTY_REGISTERED"
    CLAIM = "CLAIM"
    OTHER = "OTHER"


def parse_event_type(value: Union[str, EventType]) -> EventType:
    """
    Coerce value into an EventType.

    Raises:
        InvalidEventType: If value is not one of the closed set
    """
    if isinstance(value, EventType):
        return value
    try:
        return EventType(value)
    except ValueError as ex:
        raise InvalidEventType(f"unknown event type: {value!r}") from ex


def coerce_payload(payload: Any, max_bytes: Optional[int] = None) -> bytes:
    """
    Return payload as immutable bytes, enforcing the size limit.

    Raises:
        InvalidPayload: If payload is not bytes-like
        PayloadTooLarge: If len(payload) > max_bytes
    """
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise InvalidPayload(f"payload must be bytes, got {type(payload).__name__}")
    data = bytes(payload)
    if max_bytes is not None and len(data) > max_bytes:
        raise PayloadTooLarge(f"payload is {len(data)} bytes, limit is {max_bytes}")
    return data


@dataclass(frozen=True)
class EventDraft:
    """
    Caller-supplied part of an event.

    There is intentionally no way to pass sequence or hashes here.
    """
    subject_id: str
    event_type: EventType
    payload: bytes
    occurred_at: datetime

    @classmethod
    def create(
        cls,
        subject_id,
        event_type: Union[str, EventType],
        payload: Any,
        occurred_at: datetime,
        max_payload_bytes: Optional[int] = None,
    ) -> "EventDraft":
        """
        Validate caller input and build a draft.

        Raises:
            ValidationError: On any invalid field (see ledger.core.errors)
        """
        return cls(
            subject_id=normalize_subject_id(subject_id),
            event_type=parse_event_type(event_type),
            payload=coerce_payload(payload, max_payload_bytes),
            occurred_at=ensure_utc(occurred_at),
        )


@dataclass(frozen=True)
class LedgerEvent:
    """
    Immutable, durably appended event.

    Fields:
        subject_id: Owning subject (normalized UUID string)
        sequence: 1-based position in the subject's ledger
        event_type: Event type as stored
        payload: Opaque canonical payload bytes
        occurred_at: When the real-world action happened
        recorded_at: When the store appended the event
        prev_hash: self_hash of the previous event, or the genesis hash
        self_hash: SHA-256 over prev_hash and the canonical event bytes
    """
    subject_id: str
    sequence: int
    event_type: str
    payload: bytes
    occurred_at: datetime
    recorded_at: datetime
    prev_hash: bytes
    self_hash: bytes

    @property
    def self_hash_hex(self) -> str:
        return self.self_hash.hex()

    @property
    def prev_hash_hex(self) -> str:
        return self.prev_hash.hex()

    def to_record(self) -> Dict[str, Any]:
        """
        Serialize to the storage-agnostic record shape.

        Returns:
            JSON-compatible dict (payload base64, hashes hex, ISO timestamps)
        """
        return {
            "subject_id": self.subject_id,
            "sequence": self.sequence,
            "event_type": self.event_type,
            "payload": base64.b64encode(self.payload).decode("ascii"),
            "occurred_at": format_timestamp(self.occurred_at),
            "recorded_at": format_timestamp(self.recorded_at),
            "prev_hash": self.prev_hash.hex(),
            "self_hash": self.self_hash.hex(),
        }

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "LedgerEvent":
        """
        Rebuild an event from a stored record without validating the chain.

        Raises:
            ValidationError: If the record is structurally unreadable
        """
        try:
            return cls(
                subject_id=rec["subject_id"],
                sequence=int(rec["sequence"]),
                event_type=rec["event_type"],
                payload=base64.b64decode(rec["payload"], validate=True),
                occurred_at=parse_timestamp(rec["occurred_at"]),
                recorded_at=parse_timestamp(rec["recorded_at"]),
                prev_hash=bytes.fromhex(rec["prev_hash"]),
                self_hash=bytes.fromhex(rec["self_hash"]),
            )
        except (KeyError, TypeError, ValueError, binascii.Error) as ex:
            raise ValidationError(f"unreadable ledger record: {ex}") from ex
