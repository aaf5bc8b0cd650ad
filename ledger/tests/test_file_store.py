"""
Tests for FileLedgerStore.

Covers sequencing, persisted record shape, range reads, torn-tail recovery
and per-subject file isolation.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from ledger.core import (
    CorruptRecord,
    EventType,
    FixedClock,
    InvalidEventType,
    StorageUnavailable,
    ValidationError,
    new_subject_id,
)
from ledger.core.clock import parse_timestamp
from ledger.log import FileLedgerStore, GENESIS_HASH, verify_link
from ledger.verify import Valid, verify_chain

WHEN = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)


def _read_records(path: str):
    with open(path, "r") as f:
        return [json.loads(line) for line in f if line.strip()]


def test_sequences_are_gap_free_from_one(tmp_path, subject_id):
    store = FileLedgerStore(str(tmp_path))
    for i in range(10):
        event = store.append(subject_id, "SERVICE", f"visit {i}".encode(), WHEN + timedelta(days=i))
        assert event.sequence == i + 1

    assert [e.sequence for e in store.list_events(subject_id)] == list(range(1, 11))


def test_each_append_links_to_previous(tmp_path, subject_id):
    store = FileLedgerStore(str(tmp_path))
    prev = GENESIS_HASH
    for i in range(5):
        event = store.append(subject_id, EventType.INSPECTION, b"ok", WHEN)
        assert event.prev_hash == prev
        assert verify_link(event, prev)
        prev = event.self_hash


def test_persisted_record_shape(tmp_path, subject_id):
    clock = FixedClock(current=datetime(2024, 2, 1, 12, 0, 0, 123456, tzinfo=timezone.utc))
    store = FileLedgerStore(str(tmp_path), clock=clock)
    event = store.append(subject_id, "INSTALL", b"\x00raw\xff", WHEN)

    records = _read_records(store.path_for(subject_id))
    assert len(records) == 1
    rec = records[0]
    assert set(rec) == {
        "subject_id", "sequence", "event_type", "payload",
        "occurred_at", "recorded_at", "prev_hash", "self_hash",
    }
    assert rec["subject_id"] == subject_id
    assert rec["sequence"] == 1
    assert rec["event_type"] == "INSTALL"
    assert rec["payload"] == "AHJhd/8="
    assert rec["recorded_at"] == "2024-02-01T12:00:00.123456+00:00"
    assert parse_timestamp(rec["occurred_at"]) == WHEN
    assert rec["prev_hash"] == "00" * 32
    assert rec["self_hash"] == event.self_hash_hex


def test_reopened_store_continues_chain(tmp_path, subject_id):
    FileLedgerStore(str(tmp_path)).append(subject_id, "INSTALL", b"a", WHEN)
    store = FileLedgerStore(str(tmp_path))
    second = store.append(subject_id, "SERVICE", b"b", WHEN)

    assert second.sequence == 2
    assert isinstance(verify_chain(store, subject_id), Valid)


def test_range_reads(tmp_path, subject_id):
    store = FileLedgerStore(str(tmp_path))
    for i in range(8):
        store.append(subject_id, "OTHER", bytes([i]), WHEN)

    assert [e.sequence for e in store.list_events(subject_id, 3, 5)] == [3, 4, 5]
    assert [e.sequence for e in store.list_events(subject_id, from_sequence=7)] == [7, 8]
    assert [e.sequence for e in store.list_events(subject_id, 0, 2)] == [1, 2]
    assert list(store.list_events(subject_id, 9)) == []
    assert store.get_event(subject_id, 4).payload == bytes([3])
    assert store.get_event(subject_id, 42) is None


def test_unknown_subject_is_empty(tmp_path):
    store = FileLedgerStore(str(tmp_path))
    subject = new_subject_id()
    assert list(store.list_events(subject)) == []
    assert store.get_latest(subject) is None
    assert not os.path.exists(store.path_for(subject))


def test_get_latest(tmp_path, subject_id):
    store = FileLedgerStore(str(tmp_path))
    store.append(subject_id, "INSTALL", b"a", WHEN)
    last = store.append(subject_id, "SERVICE", b"b" * 10000, WHEN)
    assert store.get_latest(subject_id) == last


def test_subjects_are_isolated(tmp_path):
    store = FileLedgerStore(str(tmp_path))
    a, b = new_subject_id(), new_subject_id()
    store.append(a, "INSTALL", b"a1", WHEN)
    store.append(b, "INSTALL", b"b1", WHEN)
    store.append(a, "SERVICE", b"a2", WHEN)

    assert [e.payload for e in store.list_events(a)] == [b"a1", b"a2"]
    assert [e.sequence for e in store.list_events(b)] == [1]
    assert store.path_for(a) != store.path_for(b)


def test_invalid_input_writes_nothing(tmp_path, subject_id):
    store = FileLedgerStore(str(tmp_path))
    with pytest.raises(InvalidEventType):
        store.append(subject_id, "REPAINT", b"", WHEN)
    assert not os.path.exists(store.path_for(subject_id))


def test_torn_tail_is_invisible_and_repaired():
    """
    A writer that died mid-line leaves bytes without a newline.

    Readers skip them; the next append truncates them and continues the chain.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        store = FileLedgerStore(tmpdir)
        subject = new_subject_id()
        store.append(subject, "INSTALL", b"a", WHEN)
        store.append(subject, "SERVICE", b"b", WHEN)

        with open(store.path_for(subject), "ab") as f:
            f.write(b'{"subject_id": "' + subject.encode() + b'", "seq')

        assert [e.sequence for e in store.list_events(subject)] == [1, 2]
        assert store.get_latest(subject).sequence == 2

        third = store.append(subject, "INSPECTION", b"c", WHEN)
        assert third.sequence == 3
        assert len(_read_records(store.path_for(subject))) == 3
        assert verify_chain(store, subject) == Valid(3, third.self_hash)


def test_torn_tail_repair_is_logged_with_subject(tmp_path, subject_id, caplog):
    store = FileLedgerStore(str(tmp_path))
    store.append(subject_id, "INSTALL", b"a", WHEN)
    with open(store.path_for(subject_id), "ab") as f:
        f.write(b'{"seq')

    with caplog.at_level(logging.WARNING, logger="ledger.log.file_store"):
        store.append(subject_id, "SERVICE", b"b", WHEN)

    repairs = [r for r in caplog.records if "torn byte" in r.getMessage()]
    assert len(repairs) == 1
    assert repairs[0].subject_id == subject_id


def test_corrupt_tail_record_is_storage_failure(tmp_path, subject_id):
    """A complete but undecodable last line is damage on disk, not bad caller input."""
    store = FileLedgerStore(str(tmp_path))
    store.append(subject_id, "INSTALL", b"a", WHEN)
    with open(store.path_for(subject_id), "ab") as f:
        f.write(b'{"subject_id": "not a record"}\n')

    with pytest.raises(CorruptRecord) as exc_info:
        store.append(subject_id, "SERVICE", b"b", WHEN)

    assert isinstance(exc_info.value, StorageUnavailable)
    assert not isinstance(exc_info.value, ValidationError)
    assert len(_read_records(store.path_for(subject_id))) == 2

    with pytest.raises(CorruptRecord):
        list(store.list_events(subject_id))
