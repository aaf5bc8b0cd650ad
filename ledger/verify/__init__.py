"""
Verification of ledger history.
"""

from .chain import BreakReason, Broken, Valid, VerificationResult, verify_chain, verify_events
from .export import HistoryExport, export_history

__all__ = [
    "BreakReason",
    "Broken",
    "Valid",
    "VerificationResult",
    "verify_chain",
    "verify_events",
    "HistoryExport",
    "export_history",
]
