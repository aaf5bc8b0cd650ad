"""
In-process ledger store.

Per-subject threading locks, events held in lists. Suitable for tests and
single-process tools only: it is not a source of truth across instances.
"""

import threading
from typing import Dict, Iterator, List, Optional

from ..core.events import EventDraft, LedgerEvent
from ..core.ids import normalize_subject_id
from .integrity import GENESIS_HASH
from .store import AppendResult, LedgerStore


class MemoryLedgerStore(LedgerStore):
    """Append-only store backed by per-subject lists."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._events: Dict[str, List[LedgerEvent]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, subject_id: str) -> threading.Lock:
        # The registry lock only guards lock creation, never an append.
        with self._registry_lock:
            lock = self._locks.get(subject_id)
            if lock is None:
                lock = self._locks[subject_id] = threading.Lock()
                self._events[subject_id] = []
            return lock

    def try_append(
        self, draft: EventDraft, expected_prev_hash: Optional[bytes] = None
    ) -> AppendResult:
        with self._lock_for(draft.subject_id):
            events = self._events[draft.subject_id]
            tail = events[-1] if events else None
            observed = tail.self_hash if tail is not None else GENESIS_HASH
            if expected_prev_hash is not None and expected_prev_hash != observed:
                return self._conflict(draft, observed)

            event = self._seal(draft, tail)
            events.append(event)
            return self._committed(draft, event)

    def list_events(
        self,
        subject_id,
        from_sequence: int = 1,
        to_sequence: Optional[int] = None,
    ) -> Iterator[LedgerEvent]:
        subject_id, from_sequence, to_sequence = self._range(subject_id, from_sequence, to_sequence)
        with self._registry_lock:
            # Snapshot: appends after this point are not visible to this read.
            events = list(self._events.get(subject_id, ()))
        for event in events:
            if event.sequence < from_sequence:
                continue
            if to_sequence is not None and event.sequence > to_sequence:
                break
            yield event

    def get_latest(self, subject_id) -> Optional[LedgerEvent]:
        subject_id = normalize_subject_id(subject_id)
        with self._registry_lock:
            events = self._events.get(subject_id)
            return events[-1] if events else None

    def raw_events(self, subject_id) -> List[LedgerEvent]:
        """
        Direct handle on the stored list, bypassing the append contract.

        Exists so integrity tests can tamper with storage.
        """
        subject_id = normalize_subject_id(subject_id)
        self._lock_for(subject_id)
        return self._events[subject_id]
