"""
Wallet connector interface shared by every chain family.

A connector is the only thing the swap orchestration talks to. Every
operation reports failure through its return value (None, an empty result,
a failed BroadcastResult or a non-GOOD TxCheck) and never raises past this
boundary, so callers can drive script chains and contract chains the same way.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, ClassVar

from loguru import logger

from xbcore.codec import AddressCodec
from xbcore.constants import DEPOSIT_FEE_WEIGHTS, PAYMENT_FEE_WEIGHTS
from xbcore.crypto import KeyGenerator
from xbcore.errors import AddressCodecError
from xbcore.models import (
    AddressBookEntry,
    BroadcastResult,
    DepositLock,
    SwapRole,
    SwapTx,
    TxCheck,
    TxCheckStatus,
    UtxoEntry,
)
from xbcore.rpc import JsonRpcClient, RpcError, RpcErrorKind

from xbwallet.config import ChainConfig, ChainFamily

# (address, amount in base units)
OutputSpec = tuple[str, int]


class WalletConnector(ABC):
    """
    Abstract wallet connector.

    Owns the RPC client and address codec for one chain. Calls are awaited
    one at a time; swap steps are sequential, so a connector is never used
    for two in-flight operations at once.
    """

    family: ClassVar[ChainFamily]
    # Chain exposes spendable outputs that deposits must select from
    utxo_model: ClassVar[bool]
    # Payment/refund fees are paid out of the locked amount
    lock_includes_spend_fee: ClassVar[bool]
    jsonrpc_version: ClassVar[str] = "1.0"

    def __init__(
        self,
        config: ChainConfig,
        rpc: JsonRpcClient | None = None,
        keygen: KeyGenerator | None = None,
    ):
        if config.family != self.family:
            raise ValueError(
                f"{type(self).__name__} cannot serve {config.family.value} chain {config.currency}"
            )
        self.config = config
        self.rpc = rpc or JsonRpcClient(
            host=config.host,
            port=config.port,
            user=config.user,
            password=config.password,
            use_tls=config.use_tls,
            jsonrpc_version=self.jsonrpc_version,
            timeout=config.rpc_timeout,
        )
        self.codec = AddressCodec(config.prefix_bytes, keygen)

    @property
    def currency(self) -> str:
        return self.config.currency

    # =========================================================================
    # Address / key codec
    # =========================================================================

    def to_xaddr(self, address: str) -> bytes | None:
        try:
            return self.codec.to_xaddr(address)
        except AddressCodecError as e:
            logger.warning(f"[{self.currency}] Rejected native address: {e}")
            return None

    def from_xaddr(self, xaddr: bytes) -> str | None:
        try:
            return self.codec.from_xaddr(xaddr)
        except AddressCodecError as e:
            logger.warning(f"[{self.currency}] Rejected cross-chain address: {e}")
            return None

    def new_key_pair(self) -> tuple[bytes, bytes]:
        return self.codec.new_key_pair()

    # =========================================================================
    # Units and fees
    # =========================================================================

    def to_base_units(self, amount: Decimal | str | int) -> int:
        value = Decimal(str(amount)) * self.config.coin
        return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    def to_display_units(self, amount: int) -> Decimal:
        return Decimal(amount) / Decimal(self.config.coin)

    def fee_base_units(
        self,
        weights: tuple[int, int, int],
        input_count: int,
        output_count: int,
        fee_per_byte: int | None = None,
    ) -> int:
        """Linear size-weighted fee in base units, floored at the chain minimum."""
        if input_count < 0 or output_count < 0:
            raise ValueError(f"Negative input/output count: {input_count}/{output_count}")
        per_input, per_output, overhead = weights
        rate = self.config.fee_per_byte if fee_per_byte is None else fee_per_byte
        fee = (per_input * input_count + per_output * output_count + overhead) * rate
        return max(fee, self.config.min_tx_fee)

    def min_fee_deposit(self, input_count: int, output_count: int) -> Decimal:
        """Fee for a deposit transaction, in display units."""
        return self.to_display_units(
            self.fee_base_units(DEPOSIT_FEE_WEIGHTS, input_count, output_count)
        )

    def min_fee_payment(self, input_count: int, output_count: int) -> Decimal:
        """Fee for a payment or refund transaction, in display units."""
        return self.to_display_units(
            self.fee_base_units(PAYMENT_FEE_WEIGHTS, input_count, output_count)
        )

    async def fee_rate(self) -> int | None:
        """Fee per byte for new deposits, None when it cannot be determined."""
        return self.config.fee_per_byte

    # =========================================================================
    # Locktime and confirmations
    # =========================================================================

    async def lock_time(self, role: SwapRole) -> int:
        """
        Absolute lock height for a deposit made in `role`.

        Returns 0 when the current height is unavailable; 0 is never a valid
        lock time.
        """
        height = await self.get_block_height()
        if not height:
            logger.warning(f"[{self.currency}] Block height unavailable, no lock time")
            return 0
        return height + self.config.lock_blocks(role)

    def confirmation_check(self, txid: str, tx_height: int, current_height: int) -> TxCheck | None:
        """
        Compare a transaction's depth to the required confirmations.

        Returns a waiting or inconsistent TxCheck, or None when the
        transaction is deep enough to be validated.
        """
        confirmations = current_height - tx_height
        if confirmations < 0:
            logger.error(
                f"[{self.currency}] tx {txid} at height {tx_height} is above tip "
                f"{current_height}, refusing to validate"
            )
            return TxCheck(
                TxCheckStatus.INCONSISTENT,
                confirmations=confirmations,
                reason="transaction height above chain tip",
            )
        required = self.config.required_confirmations
        if confirmations < required:
            logger.info(
                f"[{self.currency}] tx {txid} unconfirmed, {confirmations}/{required} confirmations"
            )
            return TxCheck(TxCheckStatus.UNCONFIRMED, confirmations=confirmations)
        return None

    @staticmethod
    def error_check(error: RpcError | None, reason: str) -> TxCheck:
        if error is not None and error.kind == RpcErrorKind.NOT_YET_AVAILABLE:
            return TxCheck(TxCheckStatus.NOT_FOUND, error=error, reason=reason)
        return TxCheck(TxCheckStatus.ERROR, error=error, reason=reason)

    # =========================================================================
    # Chain-specific operations
    # =========================================================================

    @abstractmethod
    async def request_address_book(self) -> list[AddressBookEntry] | None:
        """Wallet addresses grouped by label, None if the node query failed."""

    @abstractmethod
    async def get_unspent_outputs(self) -> list[UtxoEntry] | None:
        """Spendable outputs, empty for chains without a UTXO model."""

    @abstractmethod
    async def get_new_address(self) -> str | None:
        """New receive address; empty string where not applicable."""

    @abstractmethod
    async def send_raw_transaction(self, raw_tx: str) -> BroadcastResult:
        """Broadcast, preserving the node's error code on failure."""

    @abstractmethod
    def get_key_id(self, pubkey: bytes) -> bytes:
        """Key identifier used in locks; empty means not applicable."""

    @abstractmethod
    def get_script_id(self, script: bytes) -> bytes:
        """Script identifier used in locks; empty means not applicable."""

    def script_id_to_string(self, script_id: bytes) -> str:
        """Native rendering of a script identifier; empty means not applicable."""
        return ""

    @abstractmethod
    def lock_address(self, inner_script: bytes) -> str:
        """Destination that deposits locked by `inner_script` are sent to."""

    @abstractmethod
    async def get_block_height(self) -> int | None:
        """Current chain height, None if unavailable."""

    @abstractmethod
    async def check_transaction(
        self,
        txid: str,
        destination: str,
        amount: int,
        secret_hash: bytes | None = None,
        min_lock_time: int | None = None,
    ) -> TxCheck:
        """
        Check a deposit's depth, destination and amount (base units).

        `secret_hash` and `min_lock_time`, when given, are the lock terms the
        deposit must commit to. A lock that has already expired is never good.
        """

    @abstractmethod
    def create_deposit_unlock_script(
        self,
        my_pubkey: bytes,
        other_pubkey: bytes,
        secret_hash: bytes,
        lock_time: int,
    ) -> bytes | None:
        """Lock condition for a deposit, None on invalid parameters."""

    @abstractmethod
    async def create_deposit_transaction(
        self,
        inputs: list[UtxoEntry],
        outputs: list[OutputSpec],
        lock: DepositLock,
        fee_rate: int | None = None,
    ) -> SwapTx | None:
        """
        Signed transaction moving funds into the lock.

        `fee_rate` is a live rate the caller already fetched to fund the
        inputs; without it the connector queries the node itself.
        """

    @abstractmethod
    async def create_refund_transaction(
        self,
        inputs: list[UtxoEntry],
        outputs: list[OutputSpec],
        my_pubkey: bytes,
        my_privkey: bytes,
        inner_script: bytes,
        lock_time: int,
    ) -> SwapTx | None:
        """Signed transaction returning the deposit to its owner after lock_time."""

    @abstractmethod
    async def create_payment_transaction(
        self,
        inputs: list[UtxoEntry],
        outputs: list[OutputSpec],
        my_pubkey: bytes,
        my_privkey: bytes,
        secret: bytes,
        inner_script: bytes,
    ) -> SwapTx | None:
        """Signed transaction claiming the deposit by revealing `secret`."""

    @abstractmethod
    def sign_transaction(self, transaction: Any, private_key: bytes) -> bytes:
        """Chain-native signature encoding for `transaction`."""

    async def close(self) -> None:
        await self.rpc.close()
