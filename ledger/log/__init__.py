"""
Ledger storage and hash chain integrity.

This module provides:
- LedgerStore: Abstract interface for per-subject append-only persistence
- MemoryLedgerStore: In-process storage (tests, single-process tools)
- FileLedgerStore: One JSONL file per subject, flock-guarded
- S3LedgerStore: One object per event, conditional-PUT guarded
- SqlLedgerStore: Relational rows, per-subject lock plus unique constraints
- Integrity: Hash chain computation and link verification
"""

from .integrity import GENESIS_HASH, compute_hash, hash_event, seal_event, verify_link
from .store import LedgerStore, AppendResult
from .memory_store import MemoryLedgerStore
from .file_store import FileLedgerStore
from .s3_store import S3LedgerStore
from .sql_store import SqlLedgerStore
from .factory import open_store

__all__ = [
    "GENESIS_HASH",
    "compute_hash",
    "hash_event",
    "seal_event",
    "verify_link",
    "LedgerStore",
    "AppendResult",
    "MemoryLedgerStore",
    "FileLedgerStore",
    "S3LedgerStore",
    "SqlLedgerStore",
    "open_store",
]
