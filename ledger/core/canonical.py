"""
Canonical serialization for deterministic hashing.

This module is the heart of tamper evidence. Every hash over an event goes
through canonicalize(); any independent verifier must reproduce this encoding
byte for byte.

Event encoding, version 1 (integers big-endian):

    u8   format version (1)
    16B  subject UUID bytes
    u64  sequence
    u16  length of event_type || event_type (ASCII)
    i64  occurred_at, microseconds since 1970-01-01T00:00:00Z
    u32  length of payload || payload

Variable-length fields are length-prefixed so that no two distinct events
share an encoding. The JSON helpers below are used for records, checkpoints
and signatures, never for event hashes.
"""

import json
import struct
from datetime import datetime
from typing import Any, Optional, Union

from .clock import to_micros
from .errors import ValidationError
from .events import EventType, coerce_payload, parse_event_type
from .ids import subject_id_bytes

CANONICAL_VERSION = 1

_HEADER = struct.Struct(">B16sQ")
_TYPE_LEN = struct.Struct(">H")
_OCCURRED_AT = struct.Struct(">q")
_PAYLOAD_LEN = struct.Struct(">I")


def canonicalize(
    subject_id: str,
    sequence: int,
    event_type: Union[str, EventType],
    payload: bytes,
    occurred_at: datetime,
    max_payload_bytes: Optional[int] = None,
) -> bytes:
    """
    Deterministic byte encoding of an event (all fields except self_hash).

    prev_hash is not part of this encoding; compute_hash() prefixes it.

    Args:
        subject_id: Subject UUID (string or UUID)
        sequence: 1-based sequence number
        event_type: One of EventType
        payload: Opaque payload bytes
        occurred_at: Timezone-aware timestamp
        max_payload_bytes: Optional size limit

    Returns:
        Canonical bytes

    Raises:
        InvalidEventType, PayloadTooLarge, InvalidPayload, InvalidTimestamp,
        InvalidSubjectId: On invalid fields
    """
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 1:
        raise ValidationError(f"sequence must be a positive integer, got {sequence!r}")

    type_bytes = parse_event_type(event_type).value.encode("ascii")
    data = coerce_payload(payload, max_payload_bytes)

    return b"".join(
        (
            _HEADER.pack(CANONICAL_VERSION, subject_id_bytes(subject_id), sequence),
            _TYPE_LEN.pack(len(type_bytes)),
            type_bytes,
            _OCCURRED_AT.pack(to_micros(occurred_at)),
            _PAYLOAD_LEN.pack(len(data)),
            data,
        )
    )


def _normalize(obj: Any) -> Any:
    """
    Convert arbitrary nested dict/list to canonical form.

    Rules:
    - dict keys sorted alphabetically
    - tuples converted to lists
    - recursive normalization
    """
    if isinstance(obj, dict):
        return {k: _normalize(obj[k]) for k in sorted(obj.keys())}
    if isinstance(obj, (list, tuple)):
        return [_normalize(x) for x in obj]
    return obj


def canonical_json_bytes(obj: Any) -> bytes:
    """
    Deterministic JSON bytes for records and signatures.

    Guarantees:
    - sorted keys, no whitespace
    - ensure_ascii=False keeps UTF-8 stable

    Returns:
        UTF-8 encoded JSON bytes
    """
    s = json.dumps(_normalize(obj), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return s.encode("utf-8")


def canonical_json_str(obj: Any) -> str:
    """Same as canonical_json_bytes but returns a string."""
    return canonical_json_bytes(obj).decode("utf-8")
