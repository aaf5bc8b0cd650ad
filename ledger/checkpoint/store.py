"""
Directory of checkpoint JSON files.

File names are cp_{subject_id}_{sequence:010d}_{self_hash[:8]}.json, so a
plain sort orders them by subject and then by sequence.
"""

from pathlib import Path
from typing import List, Optional

from ..core.ids import normalize_subject_id
from .model import Checkpoint


class CheckpointStore:
    def __init__(self, directory: str = "checkpoints"):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, checkpoint: Checkpoint) -> Path:
        name = f"cp_{checkpoint.subject_id}_{checkpoint.sequence:010d}_{checkpoint.self_hash[:8]}.json"
        return self.directory / name

    def save(self, checkpoint: Checkpoint) -> str:
        """Write the checkpoint and return the file path."""
        target = self.path_for(checkpoint)
        target.write_text(checkpoint.to_json())
        return str(target)

    @staticmethod
    def load(filepath: str) -> Checkpoint:
        return Checkpoint.from_json(Path(filepath).read_text())

    def list_checkpoints(self, subject_id=None) -> List[str]:
        if subject_id is None:
            pattern = "cp_*.json"
        else:
            pattern = f"cp_{normalize_subject_id(subject_id)}_*.json"
        return sorted(str(p) for p in self.directory.glob(pattern))

    def find_latest(self, subject_id) -> Optional[str]:
        """Highest-sequence checkpoint for the subject, or None."""
        found = self.list_checkpoints(subject_id)
        return found[-1] if found else None
