"""
Checkpoint model: a signed attestation of a subject's ledger head.

A hash chain detects altered, removed or reordered events, but not a ledger
cut back to an earlier tail. A checkpoint records (sequence, self_hash) of the
head at signing time, so a later ledger that no longer contains that event
fails verification.
"""

import json
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict

CHECKPOINT_VERSION = 1

# Not covered by the signature
_UNSIGNED_FIELDS = ("signature", "meta")


@dataclass(frozen=True)
class Checkpoint:
    """
    Signed head attestation.

    pubkey_id is the first 16 hex chars of SHA-256 over the signer's public
    PEM. signature is base64 Ed25519 over signing_payload(). meta travels
    with the file but is not signed.
    """
    version: int
    subject_id: str
    sequence: int
    self_hash: str
    created_at: str
    pubkey_id: str
    signature: str
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Checkpoint":
        required = [f.name for f in fields(cls) if f.name != "meta"]
        missing = [name for name in required if name not in data]
        if missing:
            raise ValueError(f"Checkpoint is missing fields: {', '.join(missing)}")
        values = {name: data[name] for name in required}
        return cls(meta=dict(data.get("meta") or {}), **values)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "Checkpoint":
        return cls.from_dict(json.loads(json_str))

    def signing_payload(self) -> Dict[str, Any]:
        data = self.to_dict()
        for name in _UNSIGNED_FIELDS:
            data.pop(name)
        return data

    def with_signature(self, signature: str) -> "Checkpoint":
        return replace(self, signature=signature)
