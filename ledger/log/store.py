"""
LedgerStore abstract interface.

Defines the append-only contract every storage backend implements.
"""

import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, Optional, Union

from ..core.clock import SystemClock
from ..core.errors import ConcurrentAppendConflict, StorageUnavailable
from ..core.events import EventDraft, EventType, LedgerEvent
from ..core.ids import normalize_subject_id
from ..logging_config import get_logger
from .integrity import GENESIS_HASH, seal_event

DEFAULT_MAX_PAYLOAD_BYTES = 65536
DEFAULT_MAX_APPEND_RETRIES = 8
DEFAULT_RETRY_BACKOFF_SECONDS = 0.01
MAX_RETRY_BACKOFF_SECONDS = 1.0


@dataclass(frozen=True)
class AppendResult:
    """
    Result of a single append attempt.

    When committed is False and conflict is True, nothing was written and
    observed_prev_hash holds the tail the store saw.
    """

    draft: EventDraft
    event: Optional[LedgerEvent]
    committed: bool
    conflict: bool
    observed_prev_hash: Optional[bytes] = None

    @property
    def sequence(self) -> Optional[int]:
        return self.event.sequence if self.event is not None else None


class LedgerStore(ABC):
    """
    Abstract ledger storage interface.

    All implementations must guarantee:
    - Append-only (no updates, no deletes)
    - One gap-free sequence per subject, starting at 1
    - Per-subject atomic append-if-tail-unchanged (never a global lock)
    - Durability once try_append reports committed
    """

    def __init__(
        self,
        clock=None,
        max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
        max_append_retries: int = DEFAULT_MAX_APPEND_RETRIES,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
    ) -> None:
        self.clock = clock or SystemClock()
        self.max_payload_bytes = max_payload_bytes
        self.max_append_retries = max(1, max_append_retries)
        self.retry_backoff_seconds = retry_backoff_seconds

    def append(
        self,
        subject_id,
        event_type: Union[str, EventType],
        payload: Any,
        occurred_at: datetime,
    ) -> LedgerEvent:
        """
        Append a new event to a subject's ledger.

        Validates input, then retries conflicting attempts up to
        max_append_retries with jittered exponential backoff.

        Args:
            subject_id: Subject UUID
            event_type: One of EventType
            payload: Opaque payload bytes
            occurred_at: When the action happened (timezone-aware)

        Returns:
            The durably appended event

        Raises:
            ValidationError: If input is invalid (nothing hashed or written)
            ConcurrentAppendConflict: If every attempt lost to another writer
            StorageUnavailable: If the backend fails
        """
        draft = EventDraft.create(
            subject_id,
            event_type,
            payload,
            occurred_at,
            max_payload_bytes=self.max_payload_bytes,
        )
        log = get_logger(__name__, subject_id=draft.subject_id)

        for attempt in range(1, self.max_append_retries + 1):
            result = self.try_append(draft)
            if result.committed:
                log.debug(
                    "Appended %s seq=%d hash=%s",
                    draft.event_type.value,
                    result.event.sequence,
                    result.event.self_hash_hex[:16],
                )
                return result.event
            if not result.conflict:
                raise StorageUnavailable("append failed without conflict")

            log.info("Append conflict (attempt %d/%d)", attempt, self.max_append_retries)
            if attempt < self.max_append_retries:
                time.sleep(self.backoff_delay(attempt))

        log.warning("Append gave up after %d conflicting attempts", self.max_append_retries)
        raise ConcurrentAppendConflict(draft.subject_id, self.max_append_retries)

    def backoff_delay(self, attempt: int) -> float:
        """
        Wait before retrying after the given failed attempt.

        Full jitter over an exponential window capped at
        MAX_RETRY_BACKOFF_SECONDS, so writers that lost the same race do not
        come back in lockstep.
        """
        window = min(MAX_RETRY_BACKOFF_SECONDS, self.retry_backoff_seconds * 2 ** (attempt - 1))
        return random.uniform(0, window)

    @abstractmethod
    def try_append(
        self, draft: EventDraft, expected_prev_hash: Optional[bytes] = None
    ) -> AppendResult:
        """
        Make one append attempt under per-subject mutual exclusion.

        Args:
            draft: Validated event input
            expected_prev_hash: Tail hash the caller based its write on
                (None = accept whatever tail the store observes)

        Returns:
            AppendResult with commit/conflict info

        Raises:
            StorageUnavailable: If the backend fails
        """
        ...

    @abstractmethod
    def list_events(
        self,
        subject_id,
        from_sequence: int = 1,
        to_sequence: Optional[int] = None,
    ) -> Iterator[LedgerEvent]:
        """
        Read a subject's events in ascending sequence order.

        Lazy and restartable: callers page through long histories by range.
        Stored fields are returned as-is; verification is a separate step.

        Args:
            subject_id: Subject UUID
            from_sequence: First sequence to return (inclusive)
            to_sequence: Last sequence to return (inclusive, None = tail)

        Yields:
            Events in sequence order
        """
        ...

    @abstractmethod
    def get_latest(self, subject_id) -> Optional[LedgerEvent]:
        """Return the highest-sequence event, or None for an empty ledger."""
        ...

    def get_event(self, subject_id, sequence: int) -> Optional[LedgerEvent]:
        """
        Return the event at sequence, if present.

        Implementations may override with a direct lookup.
        """
        for event in self.list_events(subject_id, sequence, sequence):
            return event
        return None

    def _seal(self, draft: EventDraft, tail: Optional[LedgerEvent]) -> LedgerEvent:
        """Build the next event on top of tail (None = empty ledger)."""
        sequence = tail.sequence + 1 if tail is not None else 1
        prev_hash = tail.self_hash if tail is not None else GENESIS_HASH
        return seal_event(
            draft,
            sequence=sequence,
            prev_hash=prev_hash,
            recorded_at=self.clock.now(),
            max_payload_bytes=self.max_payload_bytes,
        )

    @staticmethod
    def _conflict(draft: EventDraft, observed_prev_hash: bytes) -> AppendResult:
        return AppendResult(
            draft=draft,
            event=None,
            committed=False,
            conflict=True,
            observed_prev_hash=observed_prev_hash,
        )

    @staticmethod
    def _committed(draft: EventDraft, event: LedgerEvent) -> AppendResult:
        return AppendResult(
            draft=draft,
            event=event,
            committed=True,
            conflict=False,
            observed_prev_hash=event.prev_hash,
        )

    @staticmethod
    def _range(subject_id, from_sequence: int, to_sequence: Optional[int]):
        """Normalize read arguments shared by all backends."""
        return normalize_subject_id(subject_id), max(1, from_sequence), to_sequence
