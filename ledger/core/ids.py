"""
Subject identifier handling.

Subjects (assets, properties) are identified by UUIDs. The ledger stores the
lowercase hyphenated form and hashes the 16 raw bytes.
"""

import uuid

from .errors import InvalidSubjectId


def normalize_subject_id(subject_id) -> str:
    """
    Normalize a subject id to its canonical string form.

    Args:
        subject_id: UUID instance or any string uuid.UUID accepts

    Returns:
        Lowercase hyphenated UUID string

    Raises:
        InvalidSubjectId: If the value does not parse as a UUID
    """
    if isinstance(subject_id, uuid.UUID):
        return str(subject_id)
    try:
        return str(uuid.UUID(str(subject_id)))
    except (TypeError, ValueError) as ex:
        raise InvalidSubjectId(f"subject id is not a UUID: {subject_id!r}") from ex


def subject_id_bytes(subject_id: str) -> bytes:
    """Raw 16-byte form of a subject id (used in canonical encoding)."""
    return uuid.UUID(normalize_subject_id(subject_id)).bytes


def new_subject_id() -> str:
    """Generate a fresh random subject id."""
    return str(uuid.uuid4())
