"""
Verified history export: the input contract for certificate/report renderers.

Renderers receive events together with the verification result and must not
present a Broken history as verified.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from ..core.errors import IntegrityError
from ..core.events import LedgerEvent
from ..core.ids import normalize_subject_id
from ..log.store import LedgerStore
from ..logging_config import get_logger
from .chain import Broken, VerificationResult, verify_events


@dataclass(frozen=True)
class HistoryExport:
    subject_id: str
    events: List[LedgerEvent]
    verification: VerificationResult

    @property
    def verified(self) -> bool:
        return not isinstance(self.verification, Broken)

    @property
    def errors(self) -> List[str]:
        if isinstance(self.verification, Broken):
            return [self.verification.describe()]
        return []

    def require_verified(self) -> "HistoryExport":
        """
        Return self if the chain is intact.

        Raises:
            IntegrityError: If the history is Broken
        """
        if isinstance(self.verification, Broken):
            raise IntegrityError(
                f"history of subject {self.subject_id} is not verifiable: "
                f"{self.verification.reason.value} at sequence {self.verification.at_sequence}"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "event_count": len(self.events),
            "is_valid": self.verified,
            "errors": self.errors,
            "verification": self.verification.to_dict(),
            "events": [event.to_record() for event in self.events],
        }


def export_history(store: LedgerStore, subject_id) -> HistoryExport:
    """
    Read a subject's history and verify exactly what was read.

    The events and the verification come from the same read, so a renderer
    never pairs a Valid result with a different snapshot of the ledger.

    Args:
        store: Ledger store
        subject_id: Subject UUID

    Returns:
        HistoryExport (check .verified before rendering a certificate)
    """
    subject_id = normalize_subject_id(subject_id)
    events = list(store.list_events(subject_id))
    verification = verify_events(events, subject_id)
    if isinstance(verification, Broken):
        get_logger(__name__, subject_id=subject_id).warning(
            "Exporting unverifiable history: %s", verification.describe()
        )
    return HistoryExport(subject_id=subject_id, events=events, verification=verification)
