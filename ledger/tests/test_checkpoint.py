"""
Tests for signed ledger checkpoints.

Critical tests:
1. Signature verification
2. Tamper detection (attested fields)
3. Wrong public key
4. Truncation detection (full mode)
5. Refusal to checkpoint broken or empty ledgers
"""

import os
import stat
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from ledger.checkpoint import (
    Checkpoint,
    CheckpointStore,
    SigningKey,
    VerifyingKey,
    create_checkpoint,
    ensure_keypair,
    verify_checkpoint,
)
from ledger.core import IntegrityError
from ledger.log import MemoryLedgerStore

DAY0 = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def store(subject_id):
    store = MemoryLedgerStore()
    store.append(subject_id, "INSTALL", b"install", DAY0)
    store.append(subject_id, "SERVICE", b"service", DAY0 + timedelta(days=90))
    store.append(subject_id, "INSPECTION", b"inspection", DAY0 + timedelta(days=91))
    return store


@pytest.fixture
def signing_key():
    return SigningKey.generate()


def test_checkpoint_attests_head(store, subject_id, signing_key, clock):
    cp = create_checkpoint(store, subject_id, signing_key, clock=clock, meta={"source": "test"})
    head = store.get_latest(subject_id)

    assert cp.subject_id == subject_id
    assert cp.sequence == 3
    assert cp.self_hash == head.self_hash_hex
    assert cp.created_at == "2024-06-01T00:00:00.000000+00:00"
    assert cp.pubkey_id == signing_key.get_pubkey_id()
    assert cp.meta == {"source": "test"}


def test_signature_verification_passes(store, subject_id, signing_key):
    cp = create_checkpoint(store, subject_id, signing_key)
    result = verify_checkpoint(cp, signing_key.verifying_key())

    assert result.valid
    assert result.signature_valid
    assert result.error is None


def test_tampered_fields_fail_signature(store, subject_id, signing_key):
    cp = create_checkpoint(store, subject_id, signing_key)
    vk = signing_key.verifying_key()

    for tampered in (
        replace(cp, sequence=2),
        replace(cp, self_hash="00" * 32),
        replace(cp, created_at="2020-01-01T00:00:00.000000+00:00"),
    ):
        result = verify_checkpoint(tampered, vk)
        assert not result.valid
        assert result.error == "Invalid signature"


def test_meta_is_not_signed(store, subject_id, signing_key):
    cp = create_checkpoint(store, subject_id, signing_key)
    assert verify_checkpoint(replace(cp, meta={"note": "added later"}), signing_key.verifying_key()).valid


def test_garbage_signature_is_invalid(store, subject_id, signing_key):
    cp = create_checkpoint(store, subject_id, signing_key)
    result = verify_checkpoint(cp.with_signature("not base64!"), signing_key.verifying_key())
    assert not result.valid


def test_wrong_public_key(store, subject_id, signing_key):
    cp = create_checkpoint(store, subject_id, signing_key)
    result = verify_checkpoint(cp, SigningKey.generate().verifying_key())

    assert not result.valid
    assert "Public key ID mismatch" in result.error


def test_full_verification_passes(store, subject_id, signing_key):
    cp = create_checkpoint(store, subject_id, signing_key)
    result = verify_checkpoint(cp, signing_key.verifying_key(), store=store, mode="full")

    assert result.valid
    assert result.signature_valid and result.chain_valid and result.head_present


def test_full_verification_passes_after_more_appends(store, subject_id, signing_key):
    cp = create_checkpoint(store, subject_id, signing_key)
    store.append(subject_id, "CLAIM", b"claim", DAY0 + timedelta(days=120))

    assert verify_checkpoint(cp, signing_key.verifying_key(), store=store, mode="full").valid


def test_truncated_ledger_is_detected(store, subject_id, signing_key):
    """Dropping the tail leaves a valid chain; only the checkpoint notices."""
    cp = create_checkpoint(store, subject_id, signing_key)
    store.raw_events(subject_id).pop()

    result = verify_checkpoint(cp, signing_key.verifying_key(), store=store, mode="full")
    assert not result.valid
    assert result.signature_valid
    assert result.chain_valid
    assert not result.head_present
    assert "not found" in result.error


def test_rewritten_ledger_is_detected(subject_id, signing_key):
    """A ledger rebuilt from scratch with different content has a different head hash."""
    original = MemoryLedgerStore()
    original.append(subject_id, "INSTALL", b"real install", DAY0)
    cp = create_checkpoint(original, subject_id, signing_key)

    rewritten = MemoryLedgerStore()
    rewritten.append(subject_id, "INSTALL", b"fake install", DAY0)

    result = verify_checkpoint(cp, signing_key.verifying_key(), store=rewritten, mode="full")
    assert not result.valid
    assert "hash mismatch" in result.error


def test_full_verification_reports_broken_chain(store, subject_id, signing_key):
    cp = create_checkpoint(store, subject_id, signing_key)
    raw = store.raw_events(subject_id)
    raw[0] = replace(raw[0], payload=b"altered")

    result = verify_checkpoint(cp, signing_key.verifying_key(), store=store, mode="full")
    assert not result.valid
    assert not result.chain_valid
    assert "HashMismatch at sequence 1" in result.error


def test_refuses_broken_ledger(store, subject_id, signing_key):
    raw = store.raw_events(subject_id)
    raw[1] = replace(raw[1], payload=b"altered")

    with pytest.raises(IntegrityError, match="broken"):
        create_checkpoint(store, subject_id, signing_key)


def test_refuses_empty_ledger(subject_id, signing_key):
    with pytest.raises(IntegrityError, match="empty"):
        create_checkpoint(MemoryLedgerStore(), subject_id, signing_key)


def test_verification_modes(store, subject_id, signing_key):
    cp = create_checkpoint(store, subject_id, signing_key)
    vk = signing_key.verifying_key()

    with pytest.raises(ValueError, match="requires a store"):
        verify_checkpoint(cp, vk, mode="full")
    with pytest.raises(ValueError, match="Unknown verification mode"):
        verify_checkpoint(cp, vk, store=store, mode="replay")


def test_checkpoint_json_roundtrip(store, subject_id, signing_key):
    cp = create_checkpoint(store, subject_id, signing_key)
    assert Checkpoint.from_json(cp.to_json()) == cp


def test_checkpoint_store_save_list_latest(store, subject_id, signing_key):
    with tempfile.TemporaryDirectory() as tmpdir:
        cp_store = CheckpointStore(tmpdir)
        first = create_checkpoint(store, subject_id, signing_key)
        path1 = cp_store.save(first)

        for day in range(200, 210):
            store.append(subject_id, "SERVICE", b"s", DAY0 + timedelta(days=day))
        second = create_checkpoint(store, subject_id, signing_key)
        path2 = cp_store.save(second)

        other = MemoryLedgerStore()
        other_subject = "00000000-0000-4000-8000-000000000001"
        other.append(other_subject, "INSTALL", b"x", DAY0)
        cp_store.save(create_checkpoint(other, other_subject, signing_key))

        assert os.path.basename(path1).startswith(f"cp_{subject_id}_0000000003_")
        assert cp_store.list_checkpoints(subject_id) == [path1, path2]
        assert len(cp_store.list_checkpoints()) == 3
        assert cp_store.find_latest(subject_id) == path2
        assert cp_store.find_latest("00000000-0000-4000-8000-000000000002") is None
        assert CheckpointStore.load(path2) == second


def test_key_files_roundtrip(tmp_path, store, subject_id):
    key_path, pub_path = ensure_keypair(str(tmp_path / "keys" / "checkpoint_ed25519"))

    assert os.path.exists(key_path) and os.path.exists(pub_path)
    assert stat.S_IMODE(os.stat(key_path).st_mode) == 0o600

    signing_key = SigningKey.load_from_file(key_path)
    verifying_key = VerifyingKey.load_from_file(pub_path)
    assert signing_key.get_pubkey_id() == verifying_key.get_pubkey_id()

    cp = create_checkpoint(store, subject_id, signing_key)
    assert verify_checkpoint(cp, verifying_key).valid

    # Existing keys are kept
    assert ensure_keypair(key_path) == (key_path, pub_path)
    assert SigningKey.load_from_file(key_path).get_pubkey_id() == signing_key.get_pubkey_id()


def test_checkpoint_file_missing_fields_rejected(tmp_path):
    bad = tmp_path / "cp_bad.json"
    bad.write_text('{"version": 1, "subject_id": "x", "sequence": 2}')

    with pytest.raises(ValueError, match="self_hash"):
        CheckpointStore.load(str(bad))
