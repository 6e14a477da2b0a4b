"""Ed25519 signing keys with a derived network address."""

from __future__ import annotations

import binascii
import hashlib

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

SEED_SIZE = 32
PRIVATE_KEY_SIZE = 64


class Signer:
    """Signs messages with an Ed25519 key."""

    def __init__(self, key: Ed25519PrivateKey, public_bytes: bytes | None = None) -> None:
        self._key = key
        self._seed = key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
        if public_bytes is None:
            public_bytes = key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self._public = public_bytes
        self._address = hashlib.sha3_256(public_bytes).digest()[:20].hex()

    def __repr__(self) -> str:
        return f"Signer(address={self._address!r})"

    @classmethod
    def random(cls) -> Signer:
        """Create a signer with a freshly generated key."""
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_private_key(cls, private_key_hex: str) -> Signer:
        """Create a signer from a hex seed (32 bytes) or full private key (64 bytes)."""
        try:
            raw = binascii.unhexlify(private_key_hex)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"invalid private key hex: {exc}") from exc
        if len(raw) == SEED_SIZE:
            return cls(Ed25519PrivateKey.from_private_bytes(raw))
        if len(raw) == PRIVATE_KEY_SIZE:
            return cls(Ed25519PrivateKey.from_private_bytes(raw[:SEED_SIZE]), raw[SEED_SIZE:])
        raise ValueError(
            f"invalid private key size, expected {SEED_SIZE} or {PRIVATE_KEY_SIZE} bytes"
        )

    def sign(self, message: bytes) -> str:
        """Return the hex-encoded signature of ``message``."""
        return self._key.sign(bytes(message)).hex()

    def address(self) -> str:
        """Hex address: the first 20 bytes of SHA3-256 of the public key."""
        return self._address

    def public_key(self) -> str:
        """Hex-encoded public key."""
        return self._public.hex()

    def private_key(self) -> str:
        """Hex-encoded private key: the seed followed by the public key."""
        return (self._seed + self._public).hex()