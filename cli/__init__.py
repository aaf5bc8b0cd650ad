"""
Ledger CLI - Tamper-evident asset event ledger

Commands:
- ledger append/events - Write and read a subject's events
- ledger verify - Re-derive a subject's hash chain
- ledger export - Verified history for certificate renderers
- ledger checkpoint create/verify - Signed ledger head attestations
"""

__version__ = "0.1.0"
