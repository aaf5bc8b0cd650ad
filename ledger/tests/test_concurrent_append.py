"""
Concurrent appends to one subject must serialize into a single chain.

N appends from many threads produce sequences 1..N with no gaps, no
duplicates and a valid chain, for every backend. The file, sql and s3
variants give each worker its own store instance, like separate processes
sharing one storage.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import boto3
import pytest
from moto import mock_aws

from ledger.core import new_subject_id
from ledger.log import FileLedgerStore, MemoryLedgerStore, S3LedgerStore, SqlLedgerStore
from ledger.verify import Valid, verify_chain

WHEN = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)

WORKERS = 8
APPENDS = 64
BUCKET = "ledger-concurrency"


@pytest.fixture(params=["memory", "file", "file-multi-instance", "sql", "s3"])
def make_store(request, tmp_path, monkeypatch):
    """Factory returning the store a given worker should use."""
    if request.param == "memory":
        store = MemoryLedgerStore()
        yield lambda worker: store
    elif request.param == "file":
        store = FileLedgerStore(str(tmp_path))
        yield lambda worker: store
    elif request.param == "file-multi-instance":
        # Separate file descriptions, same files
        stores = [FileLedgerStore(str(tmp_path)) for _ in range(WORKERS)]
        yield lambda worker: stores[worker]
    elif request.param == "sql":
        url = f"sqlite:///{tmp_path}/ledger.db"
        stores = [SqlLedgerStore(url=url) for _ in range(WORKERS)]
        yield lambda worker: stores[worker]
    else:
        for name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN"):
            monkeypatch.setenv(name, "testing")
        with mock_aws():
            boto3.client("s3", region_name="us-east-1").create_bucket(Bucket=BUCKET)
            # Optimistic only: give losers room to back off past each other
            stores = [S3LedgerStore(bucket=BUCKET, max_append_retries=12) for _ in range(WORKERS)]
            yield lambda worker: stores[worker]


def test_concurrent_appends_one_subject(make_store):
    subject = new_subject_id()

    def work(i):
        store = make_store(i % WORKERS)
        return store.append(subject, "SERVICE", f"job-{i}".encode(), WHEN).sequence

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        sequences = list(pool.map(work, range(APPENDS)))

    assert sorted(sequences) == list(range(1, APPENDS + 1))

    store = make_store(0)
    events = list(store.list_events(subject))
    assert [e.sequence for e in events] == list(range(1, APPENDS + 1))
    assert sorted(e.payload for e in events) == sorted(f"job-{i}".encode() for i in range(APPENDS))

    result = verify_chain(store, subject)
    assert result == Valid(APPENDS, events[-1].self_hash)


def test_concurrent_appends_many_subjects(make_store):
    subjects = [new_subject_id() for _ in range(4)]

    def work(i):
        store = make_store(i % WORKERS)
        store.append(subjects[i % len(subjects)], "INSPECTION", bytes([i]), WHEN)

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        list(pool.map(work, range(APPENDS)))

    store = make_store(0)
    per_subject = APPENDS // len(subjects)
    for subject in subjects:
        result = verify_chain(store, subject)
        assert isinstance(result, Valid)
        assert result.event_count == per_subject


def test_readers_see_consistent_prefix_during_writes(tmp_path):
    """A verification racing with appends sees a valid prefix, never a torn chain."""
    store = FileLedgerStore(str(tmp_path))
    subject = new_subject_id()
    store.append(subject, "INSTALL", b"first", WHEN)

    def write(i):
        store.append(subject, "SERVICE", bytes([i]), WHEN)

    def read(_):
        return verify_chain(store, subject)

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        writes = [pool.submit(write, i) for i in range(APPENDS)]
        reads = [pool.submit(read, i) for i in range(APPENDS)]
        for future in writes:
            future.result()
        results = [future.result() for future in reads]

    assert all(isinstance(r, Valid) for r in results)
    assert verify_chain(store, subject).event_count == APPENDS + 1
