"""
Ed25519 identity keys (distributors, key-holders, casting accounts)

Kept apart from the secp256k1 types: an Ed25519 key is never a ``Point`` and
a secp256k1 scalar is never an Ed25519 seed.
"""

import logging
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey as _CryptographyPublicKey,
)

logger = logging.getLogger(__name__)

SEED_SIZE = 32
PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64


def _require_bytes(value, size: int, what: str) -> bytes:
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError(f"{what} must be {size} raw bytes, got {type(value).__name__}")
    if len(value) != size:
        raise ValueError(f"{what} must be {size} bytes, got {len(value)}")
    return bytes(value)


@dataclass(frozen=True)
class Ed25519PublicKey:
    """Raw 32-byte Ed25519 verification key"""
    raw: bytes

    def __post_init__(self):
        _require_bytes(self.raw, PUBLIC_KEY_SIZE, "Ed25519 public key")

    @classmethod
    def from_hex(cls, value: str) -> "Ed25519PublicKey":
        return cls(bytes.fromhex(value))

    def hex(self) -> str:
        return self.raw.hex()

    def verify(self, signature: bytes, message: bytes) -> bool:
        """Return True only for a valid signature; malformed input is False"""
        if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_SIZE:
            return False
        try:
            key = _CryptographyPublicKey.from_public_bytes(self.raw)
            key.verify(bytes(signature), bytes(message))
            return True
        except (InvalidSignature, ValueError):
            return False


@dataclass(frozen=True)
class Ed25519Keypair:
    """Ed25519 signing identity derived from a 32-byte seed"""
    seed: bytes = field(repr=False)

    def __post_init__(self):
        _require_bytes(self.seed, SEED_SIZE, "Ed25519 seed")

    @classmethod
    def generate(cls) -> "Ed25519Keypair":
        private_key = Ed25519PrivateKey.generate()
        seed = private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return cls(seed)

    @classmethod
    def from_seed(cls, seed: bytes) -> "Ed25519Keypair":
        return cls(seed)

    @classmethod
    def from_hex(cls, value: str) -> "Ed25519Keypair":
        return cls(bytes.fromhex(value))

    def _private_key(self) -> Ed25519PrivateKey:
        return Ed25519PrivateKey.from_private_bytes(self.seed)

    @property
    def public_key(self) -> Ed25519PublicKey:
        raw = self._private_key().public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return Ed25519PublicKey(raw)

    def sign(self, message: bytes) -> bytes:
        return self._private_key().sign(bytes(message))

    def seed_hex(self) -> str:
        return self.seed.hex()
