"""
Exception types used below the connector boundary.

Connectors catch these and report failure through their return values.
"""

from __future__ import annotations


class XBridgeError(Exception):
    """Base class for xbridge errors."""


class AddressCodecError(XBridgeError, ValueError):
    """Raised when a cross-chain address cannot be decoded for a chain."""


class ScriptError(XBridgeError, ValueError):
    """Raised when a lock script cannot be built from the given parameters."""


class TransactionSigningError(XBridgeError):
    pass


class InvariantViolation(XBridgeError):
    """
    A configuration or chain-state condition that makes a swap unsafe.

    Never retried: the swap using the offending chain must be aborted.
    """
