"""
xbcore - Core library for xbridge atomic swap components

Provides the chain RPC client, address codec, key primitives and swap models.
"""

__version__ = "0.3.0"

from xbcore.codec import AddressCodec
from xbcore.constants import (
    COIN,
    INITIATOR_WINDOW_SECONDS,
    RESPONDER_WINDOW_SECONDS,
    XADDR_PREFIX_LENGTH,
)
from xbcore.crypto import (
    KeyGenerator,
    generate_key_pair,
    generate_secret,
    hash160,
    verify_secret,
)
from xbcore.errors import (
    AddressCodecError,
    InvariantViolation,
    ScriptError,
    TransactionSigningError,
    XBridgeError,
)
from xbcore.models import (
    BroadcastResult,
    DepositLock,
    SwapRole,
    SwapState,
    SwapTransactionSet,
    SwapTx,
    TxCheck,
    TxCheckStatus,
    UtxoEntry,
    advance_state,
    can_transition,
)
from xbcore.rpc import JsonRpcClient, RpcError, RpcErrorKind, RpcReply

__all__ = [
    "AddressCodec",
    "AddressCodecError",
    "BroadcastResult",
    "COIN",
    "DepositLock",
    "INITIATOR_WINDOW_SECONDS",
    "InvariantViolation",
    "JsonRpcClient",
    "KeyGenerator",
    "RESPONDER_WINDOW_SECONDS",
    "RpcError",
    "RpcErrorKind",
    "RpcReply",
    "ScriptError",
    "SwapRole",
    "SwapState",
    "SwapTransactionSet",
    "SwapTx",
    "TransactionSigningError",
    "TxCheck",
    "TxCheckStatus",
    "UtxoEntry",
    "XADDR_PREFIX_LENGTH",
    "XBridgeError",
    "advance_state",
    "can_transition",
    "generate_key_pair",
    "generate_secret",
    "hash160",
    "verify_secret",
]
