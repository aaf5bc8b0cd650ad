"""
Exception types for the event ledger.

Integrity findings (a broken chain) are not exceptions; see
ledger.verify.chain.Broken.
"""


class LedgerError(Exception):
    """Base class for all ledger errors."""
    pass


class ValidationError(LedgerError):
    """Raised when caller input is rejected before hashing or writing."""
    pass


class InvalidEventType(ValidationError):
    """Raised when event_type is not in the closed set."""
    pass


class PayloadTooLarge(ValidationError):
    """Raised when payload exceeds the configured maximum size."""
    pass


class InvalidPayload(ValidationError):
    """Raised when payload is not a byte sequence."""
    pass


class InvalidTimestamp(ValidationError):
    """Raised when a timestamp is naive or otherwise unusable."""
    pass


class InvalidSubjectId(ValidationError):
    """Raised when a subject id is not a UUID."""
    pass


class ConcurrentAppendConflict(LedgerError):
    """
    Raised when another append for the same subject won every attempt.

    Retryable: the caller should re-read the tail and append again.
    """

    def __init__(self, subject_id: str, attempts: int) -> None:
        super().__init__(
            f"append to subject {subject_id} conflicted {attempts} time(s)"
        )
        self.subject_id = subject_id
        self.attempts = attempts


class StorageUnavailable(LedgerError):
    """Raised when the storage backend fails (transient, retry with backoff)."""
    pass


class CorruptRecord(StorageUnavailable):
    """Raised when a stored record cannot be decoded back into an event."""
    pass


class IntegrityError(LedgerError):
    """Raised when an operation requires verified history but the chain is broken."""
    pass
