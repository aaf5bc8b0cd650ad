"""
File-based ledger store using one append-only JSONL file per subject.

Each line is a persisted event record:
{"event_type": "...", "occurred_at": "...", "payload": "<base64>", "prev_hash": "...",
 "recorded_at": "...", "self_hash": "...", "sequence": N, "subject_id": "..."}
"""

import fcntl
import json
import os
from typing import Iterator, Optional

from ..core.canonical import canonical_json_str
from ..core.errors import CorruptRecord, StorageUnavailable, ValidationError
from ..core.events import EventDraft, LedgerEvent
from ..core.ids import normalize_subject_id
from ..logging_config import get_logger
from .integrity import GENESIS_HASH
from .store import AppendResult, LedgerStore

_TAIL_BLOCK = 4096


class FileLedgerStore(LedgerStore):
    """
    File-based append-only ledger store.

    Storage format: {directory}/{subject_id}.jsonl

    Guarantees:
    - Append-only (no mutations)
    - Exclusive flock on the subject's file around read-tail/seal/write
      (subjects never contend with each other)
    - Fsync after each append (durability)
    - Readers skip a trailing line without newline (append in flight)
    """

    def __init__(self, directory: str, **kwargs) -> None:
        """
        Initialize file ledger store.

        Args:
            directory: Directory holding one JSONL file per subject
        """
        super().__init__(**kwargs)
        self.directory = directory
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as ex:
            raise StorageUnavailable(str(ex)) from ex

    def path_for(self, subject_id) -> str:
        return os.path.join(self.directory, f"{normalize_subject_id(subject_id)}.jsonl")

    def _read_tail(self, f) -> Optional[LedgerEvent]:
        """
        Read the last complete record by scanning backwards from EOF.

        Returns:
            Last event, or None if the file holds no complete record
        """
        f.seek(0, os.SEEK_END)
        end = f.tell()
        buf = b""
        pos = end
        while pos > 0:
            step = min(_TAIL_BLOCK, pos)
            pos -= step
            f.seek(pos)
            buf = f.read(step) + buf
            lines = buf.split(b"\n")
            # lines[-1] is the unterminated remainder; lines[0] may be cut unless at BOF
            candidates = lines[:-1] if pos == 0 else lines[1:-1]
            for line in reversed(candidates):
                if line.strip():
                    return self._decode(line)
        return None

    def _truncate_torn_tail(self, f, subject_id: str) -> None:
        """Drop bytes after the last newline left by a writer that died mid-append."""
        f.seek(0, os.SEEK_END)
        end = f.tell()
        if end == 0:
            return
        f.seek(end - 1)
        if f.read(1) == b"\n":
            return
        pos = end
        keep = 0
        while pos > 0:
            step = min(_TAIL_BLOCK, pos)
            pos -= step
            f.seek(pos)
            idx = f.read(step).rfind(b"\n")
            if idx >= 0:
                keep = pos + idx + 1
                break
        get_logger(__name__, subject_id=subject_id).warning(
            "Truncating %d torn byte(s) from %s", end - keep, f.name
        )
        f.truncate(keep)

    @staticmethod
    def _decode(line: bytes) -> LedgerEvent:
        try:
            return LedgerEvent.from_record(json.loads(line))
        except (ValueError, ValidationError) as ex:
            raise CorruptRecord(f"unreadable ledger line: {ex}") from ex

    def try_append(
        self, draft: EventDraft, expected_prev_hash: Optional[bytes] = None
    ) -> AppendResult:
        """
        Append under an exclusive lock on the subject's file.

        Raises:
            StorageUnavailable: If the file cannot be locked, read or written
        """
        try:
            with open(self.path_for(draft.subject_id), "a+b") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    self._truncate_torn_tail(f, draft.subject_id)
                    tail = self._read_tail(f)
                    observed = tail.self_hash if tail is not None else GENESIS_HASH
                    if expected_prev_hash is not None and expected_prev_hash != observed:
                        return self._conflict(draft, observed)

                    event = self._seal(draft, tail)
                    line = canonical_json_str(event.to_record()) + "\n"

                    f.seek(0, os.SEEK_END)
                    f.write(line.encode("utf-8"))
                    f.flush()
                    os.fsync(f.fileno())
                    return self._committed(draft, event)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as ex:
            raise StorageUnavailable(str(ex)) from ex

    def list_events(
        self,
        subject_id,
        from_sequence: int = 1,
        to_sequence: Optional[int] = None,
    ) -> Iterator[LedgerEvent]:
        """
        Read events from the subject's file.

        Yields:
            Events in file (sequence) order
        """
        subject_id, from_sequence, to_sequence = self._range(subject_id, from_sequence, to_sequence)
        path = self.path_for(subject_id)
        try:
            f = open(path, "rb")
        except FileNotFoundError:
            return
        except OSError as ex:
            raise StorageUnavailable(str(ex)) from ex

        with f:
            try:
                for line in f:
                    if not line.endswith(b"\n"):
                        break
                    if not line.strip():
                        continue
                    event = self._decode(line)
                    if event.sequence < from_sequence:
                        continue
                    if to_sequence is not None and event.sequence > to_sequence:
                        break
                    yield event
            except OSError as ex:
                raise StorageUnavailable(str(ex)) from ex

    def get_latest(self, subject_id) -> Optional[LedgerEvent]:
        path = self.path_for(subject_id)
        try:
            with open(path, "rb") as f:
                return self._read_tail(f)
        except FileNotFoundError:
            return None
        except OSError as ex:
            raise StorageUnavailable(str(ex)) from ex
