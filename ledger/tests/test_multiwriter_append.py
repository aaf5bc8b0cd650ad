"""
Tests for multi-writer append safety (append-if-tail-unchanged).

Goal: A stale expected_prev_hash must never write, and retry must commit.
"""

import json
import os
import tempfile
from datetime import datetime, timezone

import pytest

from ledger.core import ConcurrentAppendConflict, EventDraft, StorageUnavailable, new_subject_id
from ledger.log import GENESIS_HASH, AppendResult, FileLedgerStore, MemoryLedgerStore
from ledger.log.integrity import hash_event

WHEN = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)


def _read_records(path: str):
    with open(path, "r") as f:
        return [json.loads(line) for line in f if line.strip()]


def _verify_records(store, subject):
    prev = GENESIS_HASH
    for seq, event in enumerate(store.list_events(subject), start=1):
        assert event.sequence == seq
        assert event.prev_hash == prev
        assert hash_event(event) == event.self_hash
        prev = event.self_hash


def test_stale_tail_conflicts_without_writing():
    """Stale expected_prev_hash must conflict and not write a new record."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = FileLedgerStore(tmpdir)
        subject = new_subject_id()

        d1 = EventDraft.create(subject, "INSTALL", b"1", WHEN)
        r1 = store.try_append(d1, expected_prev_hash=GENESIS_HASH)
        assert r1.committed
        assert r1.sequence == 1

        # Stale expected_prev_hash (still genesis)
        d2 = EventDraft.create(subject, "SERVICE", b"2", WHEN)
        r2 = store.try_append(d2, expected_prev_hash=GENESIS_HASH)
        assert r2.conflict
        assert not r2.committed
        assert r2.event is None
        assert r2.observed_prev_hash == r1.event.self_hash

        assert len(_read_records(store.path_for(subject))) == 1


def test_two_writers_with_stale_hashes_interleave():
    """Simulate two writers on one directory; the loser re-reads and commits."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store_a = FileLedgerStore(tmpdir)
        store_b = FileLedgerStore(tmpdir)
        subject = new_subject_id()

        total = 25
        for i in range(total):
            latest = store_a.get_latest(subject)
            expected = latest.self_hash if latest else GENESIS_HASH

            res_a = store_a.try_append(
                EventDraft.create(subject, "SERVICE", f"a{i}".encode(), WHEN), expected
            )
            assert res_a.committed

            # Writer B uses the stale expected hash to force a conflict
            draft_b = EventDraft.create(subject, "INSPECTION", f"b{i}".encode(), WHEN)
            res_b = store_b.try_append(draft_b, expected)
            assert res_b.conflict
            res_b = store_b.try_append(draft_b, res_b.observed_prev_hash)
            assert res_b.committed

        assert len(_read_records(store_a.path_for(subject))) == total * 2
        _verify_records(store_b, subject)


class _FlakyStore(MemoryLedgerStore):
    """Reports a conflict for the first `losses` attempts."""

    def __init__(self, losses, **kwargs):
        super().__init__(**kwargs)
        self.losses = losses
        self.attempts = 0

    def try_append(self, draft, expected_prev_hash=None):
        self.attempts += 1
        if self.attempts <= self.losses:
            return self._conflict(draft, GENESIS_HASH)
        return super().try_append(draft, expected_prev_hash)


def test_append_retries_conflicts():
    store = _FlakyStore(losses=2, retry_backoff_seconds=0)
    event = store.append(new_subject_id(), "INSTALL", b"x", WHEN)
    assert event.sequence == 1
    assert store.attempts == 3


def test_append_gives_up_after_max_retries():
    subject = new_subject_id()
    store = _FlakyStore(losses=10, max_append_retries=4, retry_backoff_seconds=0)

    with pytest.raises(ConcurrentAppendConflict) as exc_info:
        store.append(subject, "INSTALL", b"x", WHEN)

    assert exc_info.value.subject_id == subject
    assert exc_info.value.attempts == 4
    assert store.attempts == 4
    assert list(store.list_events(subject)) == []


def test_retry_backoff_is_jittered_and_growing(monkeypatch):
    delays = []
    monkeypatch.setattr("ledger.log.store.time.sleep", delays.append)
    store = _FlakyStore(losses=6, max_append_retries=7, retry_backoff_seconds=0.01)

    store.append(new_subject_id(), "INSTALL", b"x", WHEN)

    assert len(delays) == 6
    for attempt, delay in enumerate(delays, start=1):
        assert 0 <= delay <= 0.01 * 2 ** (attempt - 1)


def test_retry_backoff_window_is_capped():
    store = MemoryLedgerStore(retry_backoff_seconds=0.5)
    assert all(store.backoff_delay(attempt) <= 1.0 for attempt in range(1, 20))
    assert MemoryLedgerStore(retry_backoff_seconds=0).backoff_delay(5) == 0


def test_append_without_commit_or_conflict_is_storage_failure():
    class _Broken(MemoryLedgerStore):
        def try_append(self, draft, expected_prev_hash=None):
            return AppendResult(draft=draft, event=None, committed=False, conflict=False)

    with pytest.raises(StorageUnavailable):
        _Broken().append(new_subject_id(), "INSTALL", b"x", WHEN)


def test_unwritable_directory_is_storage_unavailable(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    with pytest.raises(StorageUnavailable):
        FileLedgerStore(os.path.join(str(blocker), "ledger"))
