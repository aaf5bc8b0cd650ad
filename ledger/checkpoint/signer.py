"""
Ed25519 signing for ledger checkpoints.

Keys are PEM files. Development keys default to ~/.ledger/keys/; deployments
pass the path of a mounted secret instead.
"""

import base64
import binascii
import hashlib
import os
from pathlib import Path
from typing import Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from ..core.canonical import canonical_json_bytes


def _public_pem(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _pubkey_id(public_key: Ed25519PublicKey) -> str:
    """Public key identifier: first 16 hex chars of SHA-256 over the PEM."""
    return hashlib.sha256(_public_pem(public_key)).hexdigest()[:16]


class SigningKey:
    """Private half of a checkpoint keypair; signs canonical JSON payloads."""

    def __init__(self, private_key: Ed25519PrivateKey):
        self.private_key = private_key
        self.public_key = private_key.public_key()

    @classmethod
    def generate(cls) -> "SigningKey":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def load_from_file(cls, path: str) -> "SigningKey":
        """
        Load private key from PEM file.

        Raises:
            FileNotFoundError: If key file doesn't exist
            ValueError: If key format is invalid
        """
        with open(path, "rb") as f:
            private_key = serialization.load_pem_private_key(f.read(), password=None)

        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError("Key file is not Ed25519 private key")
        return cls(private_key)

    def save_to_file(self, path: str, public_path: Optional[str] = None) -> None:
        """
        Save private key (and optionally public key) as PEM.

        The private key file is created with mode 0600.
        """
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

        private_pem = self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(private_pem)

        if public_path:
            with open(public_path, "wb") as f:
                f.write(_public_pem(self.public_key))

    def sign_base64(self, payload: dict) -> str:
        """Sign canonical JSON of payload; return base64 signature."""
        signature = self.private_key.sign(canonical_json_bytes(payload))
        return base64.b64encode(signature).decode("ascii")

    def get_pubkey_id(self) -> str:
        return _pubkey_id(self.public_key)

    def verifying_key(self) -> "VerifyingKey":
        return VerifyingKey(self.public_key)


class VerifyingKey:
    """Public half of a checkpoint keypair. Auditors only ever need this one."""

    def __init__(self, public_key: Ed25519PublicKey):
        self.public_key = public_key

    @classmethod
    def load_from_file(cls, path: str) -> "VerifyingKey":
        with open(path, "rb") as f:
            public_key = serialization.load_pem_public_key(f.read())

        if not isinstance(public_key, Ed25519PublicKey):
            raise ValueError("Key file is not Ed25519 public key")
        return cls(public_key)

    def verify_base64(self, payload: dict, signature_b64: str) -> bool:
        """False for malformed base64 as well as for a bad signature."""
        try:
            signature = base64.b64decode(signature_b64, validate=True)
        except (binascii.Error, ValueError):
            return False
        try:
            self.public_key.verify(signature, canonical_json_bytes(payload))
            return True
        except InvalidSignature:
            return False

    def get_pubkey_id(self) -> str:
        return _pubkey_id(self.public_key)


def get_default_key_path() -> Path:
    """Default key path (~/.ledger/keys/checkpoint_ed25519)."""
    return Path.home() / ".ledger" / "keys" / "checkpoint_ed25519"


def ensure_keypair(key_path: Optional[str] = None) -> Tuple[str, str]:
    """
    Generate a keypair at key_path unless one is already there.

    The public key is written next to it with a ".pub" suffix.
    Returns (private_key_path, public_key_path).
    """
    if key_path is None:
        key_path = str(get_default_key_path())

    public_key_path = key_path + ".pub"
    if not os.path.exists(key_path):
        SigningKey.generate().save_to_file(key_path, public_key_path)

    return key_path, public_key_path
