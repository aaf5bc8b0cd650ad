"""
Test suite for the event ledger.

Focus areas:
- Canonical encoding determinism
- Hash chain integrity and tamper detection
- Per-subject append safety under concurrency
- Backend parity (file, memory, S3, SQL)
"""
