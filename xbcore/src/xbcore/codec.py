"""
Cross-chain address codec.

A cross-chain address is the chain's fixed 2-byte prefix followed by the
ASCII bytes of the chain-native address string.
"""

from __future__ import annotations

from loguru import logger

from xbcore.constants import XADDR_PREFIX_LENGTH
from xbcore.crypto import KeyGenerator, generate_key_pair
from xbcore.errors import AddressCodecError


class AddressCodec:
    def __init__(self, prefix: bytes, keygen: KeyGenerator | None = None):
        if len(prefix) != XADDR_PREFIX_LENGTH:
            raise AddressCodecError(
                f"Address prefix must be {XADDR_PREFIX_LENGTH} bytes, got {len(prefix)}"
            )
        self.prefix = prefix
        self._keygen = keygen or generate_key_pair

    def to_xaddr(self, address: str) -> bytes:
        """
        Prefix a native address with the chain prefix.

        Raises:
            AddressCodecError: If the native address is not ASCII
        """
        try:
            return self.prefix + address.encode("ascii")
        except UnicodeEncodeError as e:
            raise AddressCodecError(f"Native address is not ASCII: {e}") from e

    def from_xaddr(self, xaddr: bytes) -> str:
        """
        Strip the chain prefix from a cross-chain address.

        Raises:
            AddressCodecError: If the prefix belongs to another chain or the
                input is too short to carry one
        """
        if len(xaddr) <= XADDR_PREFIX_LENGTH:
            raise AddressCodecError(f"Cross-chain address too short: {xaddr.hex()}")
        prefix = bytes(xaddr[:XADDR_PREFIX_LENGTH])
        if prefix != self.prefix:
            raise AddressCodecError(
                f"Address prefix {prefix.hex()} does not match chain prefix {self.prefix.hex()}"
            )
        try:
            return bytes(xaddr[XADDR_PREFIX_LENGTH:]).decode("ascii")
        except UnicodeDecodeError as e:
            raise AddressCodecError(f"Native address is not ASCII: {e}") from e

    def new_key_pair(self) -> tuple[bytes, bytes]:
        """Generate (public_key, private_key). Persisting them is up to the caller."""
        pubkey, privkey = self._keygen()
        logger.debug(f"Generated key pair, pubkey {pubkey.hex()}")
        return pubkey, privkey
