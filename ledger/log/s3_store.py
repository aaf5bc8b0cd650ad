"""
S3-based ledger store using one-object-per-event pattern.

Each event is stored as a separate S3 object with key:
{prefix}/{subject_id}/{sequence:010d}.json

This provides:
- Scalable storage (unbounded histories, paginated listing)
- Per-subject CAS via conditional PUT (IfNoneMatch="*" on the next sequence
  key plays the role of a unique (subject_id, sequence) constraint)
- HA-compatible (no lock is ever held)
"""

import json
from typing import Iterator, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.canonical import canonical_json_str
from ..core.errors import CorruptRecord, StorageUnavailable, ValidationError
from ..core.events import EventDraft, LedgerEvent
from ..core.ids import normalize_subject_id
from ..logging_config import get_logger
from .integrity import GENESIS_HASH
from .store import AppendResult, LedgerStore

_PRECONDITION_CODES = ("PreconditionFailed", "412", "ConditionalRequestConflict", "409")
_MISSING_CODES = ("NoSuchKey", "404")


def _error_code(ex: ClientError) -> str:
    return ex.response.get("Error", {}).get("Code", "")


class S3LedgerStore(LedgerStore):
    """
    S3-based append-only ledger store.

    Storage format: One JSON record per event
    Object key: {prefix}/{subject_id}/{sequence:010d}.json
    Head cache: {prefix}/{subject_id}/_head.json (best-effort lower bound)

    Key naming: sequence zero-padded to 10 digits ensures lex order = numeric order.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "ledger",
        endpoint_url: Optional[str] = None,
        region: str = "us-east-1",
        skip_bucket_check: bool = False,
        **kwargs,
    ) -> None:
        """
        Initialize S3 ledger store.

        Args:
            bucket: S3 bucket name
            prefix: Key prefix for ledgers (default: "ledger")
            endpoint_url: S3 endpoint URL (for MinIO, localstack, etc.)
            region: AWS region (default: us-east-1)
            skip_bucket_check: Skip head_bucket on startup

        Raises:
            StorageUnavailable: If the bucket is not accessible
        """
        super().__init__(**kwargs)
        self.bucket = bucket
        self.prefix = prefix.rstrip("/")
        self.endpoint_url = endpoint_url
        self.region = region

        # Credentials from environment: AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY
        try:
            self.s3_client = boto3.client("s3", endpoint_url=endpoint_url, region_name=region)
        except BotoCoreError as e:
            raise StorageUnavailable(f"Failed to create S3 client: {e}") from e

        if not skip_bucket_check:
            try:
                self.s3_client.head_bucket(Bucket=bucket)
            except ClientError as e:
                raise StorageUnavailable(
                    f"Bucket '{bucket}' not accessible (code: {_error_code(e) or 'Unknown'})"
                ) from e
            except BotoCoreError as e:
                raise StorageUnavailable(f"Bucket '{bucket}' not accessible: {e}") from e

    def _subject_prefix(self, subject_id: str) -> str:
        return f"{self.prefix}/{subject_id}/"

    def _key_for(self, subject_id: str, sequence: int) -> str:
        return f"{self._subject_prefix(subject_id)}{sequence:010d}.json"

    def _head_key(self, subject_id: str) -> str:
        return f"{self._subject_prefix(subject_id)}_head.json"

    def _sequence_from_key(self, subject_id: str, key: str) -> Optional[int]:
        prefix = self._subject_prefix(subject_id)
        if not key.startswith(prefix) or not key.endswith(".json"):
            return None
        try:
            return int(key[len(prefix):-5])
        except ValueError:
            return None

    def _get_record(self, key: str) -> Optional[LedgerEvent]:
        """Fetch and decode one event object; None if it does not exist."""
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return None
            raise
        body = response["Body"].read()
        try:
            return LedgerEvent.from_record(json.loads(body))
        except (ValueError, ValidationError) as ex:
            raise CorruptRecord(f"unreadable ledger object {key}: {ex}") from ex

    def _read_head(self, subject_id: str) -> int:
        """
        Read the cached tail sequence.

        Returns:
            Cached sequence, or 0 if missing/invalid
        """
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=self._head_key(subject_id))
            data = json.loads(response["Body"].read())
            return max(0, int(data.get("sequence", 0)))
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return 0
            raise
        except (ValueError, TypeError):
            return 0

    def _write_head(self, subject_id: str, sequence: int) -> None:
        """Best-effort head update; a stale head only costs extra probes."""
        body = canonical_json_str({"sequence": sequence})
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=self._head_key(subject_id),
                Body=body.encode("utf-8"),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as e:
            get_logger(__name__, subject_id=subject_id).warning("Head cache update failed: %s", e)

    def _scan_tail(self, subject_id: str) -> Optional[LedgerEvent]:
        """Find the tail by listing every event key (O(N), used without a head)."""
        paginator = self.s3_client.get_paginator("list_objects_v2")
        last_seq = 0
        last_key = None
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self._subject_prefix(subject_id)):
            for obj in page.get("Contents", []):
                seq = self._sequence_from_key(subject_id, obj["Key"])
                if seq is not None and seq > last_seq:
                    last_seq, last_key = seq, obj["Key"]
        return self._get_record(last_key) if last_key else None

    def _find_tail(self, subject_id: str) -> Optional[LedgerEvent]:
        """
        Locate the tail event.

        Starts from the head cache and probes forward, since the cache may lag
        behind concurrent writers.
        """
        head_seq = self._read_head(subject_id)
        if head_seq == 0:
            return self._scan_tail(subject_id)

        tail = self._get_record(self._key_for(subject_id, head_seq))
        if tail is None:
            return self._scan_tail(subject_id)
        while True:
            nxt = self._get_record(self._key_for(subject_id, tail.sequence + 1))
            if nxt is None:
                return tail
            tail = nxt

    def _put_if_absent(self, key: str, body: str) -> bool:
        """
        Put object only if it does not already exist.

        Returns:
            True if committed, False if conflict (object exists)
        """
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body.encode("utf-8"),
                ContentType="application/json",
                IfNoneMatch="*",
            )
            return True
        except ClientError as e:
            if _error_code(e) in _PRECONDITION_CODES:
                return False
            raise

    def try_append(
        self, draft: EventDraft, expected_prev_hash: Optional[bytes] = None
    ) -> AppendResult:
        """
        Append with conditional PUT on the next sequence key.

        Raises:
            StorageUnavailable: If S3 fails
        """
        subject_id = draft.subject_id
        try:
            tail = self._find_tail(subject_id)
            observed = tail.self_hash if tail is not None else GENESIS_HASH
            if expected_prev_hash is not None and expected_prev_hash != observed:
                return self._conflict(draft, observed)

            event = self._seal(draft, tail)
            body = canonical_json_str(event.to_record())
            if not self._put_if_absent(self._key_for(subject_id, event.sequence), body):
                # Another writer took this sequence; report the tail it left.
                winner = self._find_tail(subject_id)
                return self._conflict(draft, winner.self_hash if winner else GENESIS_HASH)

            self._write_head(subject_id, event.sequence)
            return self._committed(draft, event)
        except (BotoCoreError, ClientError) as e:
            raise StorageUnavailable(f"Failed to append event to S3: {e}") from e

    def list_events(
        self,
        subject_id,
        from_sequence: int = 1,
        to_sequence: Optional[int] = None,
    ) -> Iterator[LedgerEvent]:
        """
        Read events by listing keys (paginator handles >1000 keys).

        Listing rather than probing sequence numbers keeps deleted objects
        visible to verification as a gap.

        Yields:
            Events in sequence order
        """
        subject_id, from_sequence, to_sequence = self._range(subject_id, from_sequence, to_sequence)
        kwargs = {"Bucket": self.bucket, "Prefix": self._subject_prefix(subject_id)}
        if from_sequence > 1:
            kwargs["StartAfter"] = self._key_for(subject_id, from_sequence - 1)

        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(**kwargs):
                for obj in page.get("Contents", []):
                    seq = self._sequence_from_key(subject_id, obj["Key"])
                    if seq is None or seq < from_sequence:
                        continue
                    if to_sequence is not None and seq > to_sequence:
                        return
                    event = self._get_record(obj["Key"])
                    if event is not None:
                        yield event
        except (BotoCoreError, ClientError) as e:
            raise StorageUnavailable(f"Failed to read events from S3: {e}") from e

    def get_latest(self, subject_id) -> Optional[LedgerEvent]:
        subject_id = normalize_subject_id(subject_id)
        try:
            return self._find_tail(subject_id)
        except (BotoCoreError, ClientError) as e:
            raise StorageUnavailable(f"Failed to get tail from S3: {e}") from e

    def get_event(self, subject_id, sequence: int) -> Optional[LedgerEvent]:
        subject_id = normalize_subject_id(subject_id)
        try:
            return self._get_record(self._key_for(subject_id, sequence))
        except (BotoCoreError, ClientError) as e:
            raise StorageUnavailable(f"Failed to read event from S3: {e}") from e
