"""
Build the configured ledger store.
"""

from typing import Optional

from ..config import LedgerSettings
from .file_store import FileLedgerStore
from .memory_store import MemoryLedgerStore
from .s3_store import S3LedgerStore
from .sql_store import SqlLedgerStore
from .store import LedgerStore


def open_store(settings: Optional[LedgerSettings] = None, clock=None) -> LedgerStore:
    """
    Create the backend named by settings.backend.

    Args:
        settings: Ledger settings (default: LedgerSettings.from_env())
        clock: Optional clock for recorded_at

    Returns:
        LedgerStore implementation

    Raises:
        ValueError: If the backend is unknown
        StorageUnavailable: If the backend cannot be reached
    """
    settings = settings or LedgerSettings.from_env()
    settings.validate()
    common = {
        "clock": clock,
        "max_payload_bytes": settings.max_payload_bytes,
        "max_append_retries": settings.max_append_retries,
        "retry_backoff_seconds": settings.retry_backoff_seconds,
    }

    if settings.backend == "file":
        return FileLedgerStore(settings.path, **common)
    if settings.backend == "s3":
        return S3LedgerStore(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
            skip_bucket_check=settings.s3_skip_bucket_check,
            **common,
        )
    if settings.backend == "sql":
        return SqlLedgerStore(url=settings.database_url, **common)
    if settings.backend == "memory":
        return MemoryLedgerStore(**common)
    raise ValueError(f"unknown ledger backend: {settings.backend}")
