"""
Key and hash primitives consumed by the swap connectors.

Signature and hash algorithms come from coincurve and hashlib; nothing here
implements them.
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Callable

from coincurve import PrivateKey, PublicKey

# Returns (compressed public key, private key secret)
KeyGenerator = Callable[[], tuple[bytes, bytes]]


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def generate_key_pair() -> tuple[bytes, bytes]:
    private_key = PrivateKey()
    return private_key.public_key.format(compressed=True), private_key.secret


def public_key_from_private(privkey: bytes, compressed: bool = True) -> bytes:
    return PrivateKey(privkey).public_key.format(compressed=compressed)


def decompress_public_key(pubkey: bytes) -> bytes:
    """Return the 65-byte uncompressed form of a SEC1 public key."""
    return PublicKey(pubkey).format(compressed=False)


def generate_secret(size: int = 32) -> tuple[bytes, bytes]:
    """
    Generate a swap secret and its HASH160 lock.

    Returns:
        (secret, secret_hash)
    """
    secret = secrets.token_bytes(size)
    return secret, hash160(secret)


def verify_secret(secret: bytes, secret_hash: bytes) -> bool:
    return hash160(secret) == secret_hash
