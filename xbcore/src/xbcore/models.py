"""
Swap data models shared by connectors, the transaction builder and callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from xbcore.errors import InvariantViolation
from xbcore.rpc import RpcError

# (label, [addresses])
AddressBookEntry = tuple[str, list[str]]


class SwapRole(str, Enum):
    """Which side of the swap this wallet plays. Drives the locktime window."""

    INITIATOR = "initiator"
    RESPONDER = "responder"


class SwapState(str, Enum):
    INITIATED = "initiated"
    DEPOSIT_BROADCAST = "deposit_broadcast"
    DEPOSIT_CONFIRMED = "deposit_confirmed"
    PAID = "paid"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in (SwapState.PAID, SwapState.REFUNDED)


SWAP_TRANSITIONS: dict[SwapState, frozenset[SwapState]] = {
    SwapState.INITIATED: frozenset({SwapState.DEPOSIT_BROADCAST}),
    SwapState.DEPOSIT_BROADCAST: frozenset({SwapState.DEPOSIT_CONFIRMED}),
    SwapState.DEPOSIT_CONFIRMED: frozenset({SwapState.PAID, SwapState.REFUNDED}),
    SwapState.PAID: frozenset(),
    SwapState.REFUNDED: frozenset(),
}


def can_transition(current: SwapState, target: SwapState) -> bool:
    return target in SWAP_TRANSITIONS[current]


def advance_state(current: SwapState, target: SwapState) -> SwapState:
    """
    Move a swap to its next state.

    Raises:
        InvariantViolation: If the transition is not part of the swap lifecycle
    """
    if not can_transition(current, target):
        raise InvariantViolation(f"Illegal swap transition {current.value} -> {target.value}")
    return target


@dataclass
class UtxoEntry:
    """Spendable output. `amount` is in base units (satoshis)."""

    txid: str
    vout: int
    amount: int
    address: str = ""
    scriptpubkey: str = ""
    confirmations: int = 0


@dataclass
class SwapTx:
    """A constructed swap transaction, not yet broadcast."""

    txid: str
    raw_tx: str
    # Index of the output holding the locked funds (script chains only)
    lock_output: int | None = None


@dataclass
class SwapTransactionSet:
    deposit: SwapTx | None = None
    payment: SwapTx | None = None
    refund: SwapTx | None = None
    inner_script: bytes = b""
    lock_time: int = 0
    lock_amount: int = 0


@dataclass
class DepositLock:
    """Lock condition encoded into a deposit transaction."""

    role: SwapRole
    secret_hash: bytes
    lock_time: int
    counterparty: str
    inner_script: bytes = b""
    my_pubkey: bytes = b""
    my_privkey: bytes = field(default=b"", repr=False)


@dataclass
class BroadcastResult:
    txid: str | None = None
    error: RpcError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.txid)

    @property
    def error_code(self) -> int:
        """Remote error code, 0 on success, -1 when no code is available."""
        if self.error is None:
            return 0
        return self.error.code if self.error.code is not None else -1


class TxCheckStatus(str, Enum):
    NOT_FOUND = "not_found"  # not visible yet, retry later
    UNCONFIRMED = "unconfirmed"  # visible but below the required depth, retry later
    MISMATCH = "mismatch"  # confirmed but wrong destination or amount
    INCONSISTENT = "inconsistent"  # chain state violates an invariant
    ERROR = "error"  # node could not answer
    GOOD = "good"


@dataclass
class TxCheck:
    status: TxCheckStatus
    confirmations: int = 0
    error: RpcError | None = None
    reason: str = ""

    @property
    def found(self) -> bool:
        return self.status not in (TxCheckStatus.NOT_FOUND, TxCheckStatus.ERROR)

    @property
    def is_good(self) -> bool:
        return self.status == TxCheckStatus.GOOD

    @property
    def should_wait(self) -> bool:
        """True when polling again later may still produce GOOD."""
        if self.status == TxCheckStatus.ERROR:
            return self.error is not None and self.error.retryable
        return self.status in (TxCheckStatus.NOT_FOUND, TxCheckStatus.UNCONFIRMED)
