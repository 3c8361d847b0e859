"""
Swap transaction builder.

Drives one connector through the deposit, refund and payment construction
steps. The builder decides which outputs fund a deposit and how much is
locked; the connector decides how the chain encodes and signs it. Nothing
here broadcasts.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass

from loguru import logger

from xbcore.constants import DEPOSIT_FEE_WEIGHTS, DUST_THRESHOLD, PAYMENT_FEE_WEIGHTS
from xbcore.models import (
    DepositLock,
    SwapRole,
    SwapTransactionSet,
    SwapTx,
    TxCheck,
    UtxoEntry,
)

from xbwallet.connectors.base import OutputSpec, WalletConnector

# wait_for_deposit polling
DEPOSIT_POLL_ATTEMPTS = 30
DEPOSIT_POLL_BASE_DELAY = 5.0
DEPOSIT_POLL_MAX_DELAY = 300.0


@dataclass
class CoinSelection:
    """Result of coin selection"""

    utxos: list[UtxoEntry]
    total_value: int
    change_value: int
    fee: int


class SwapTransactionBuilder:
    """
    Builds the transactions of one side of a swap on one chain.

    Args:
        connector: Connector for the chain the deposit lives on
        min_confirmations: Only outputs at least this deep fund deposits
    """

    def __init__(self, connector: WalletConnector, min_confirmations: int = 1):
        self.connector = connector
        self.min_confirmations = min_confirmations

    @property
    def currency(self) -> str:
        return self.connector.currency

    def select_utxos(
        self, utxos: list[UtxoEntry], target_amount: int, fee_rate: int, output_count: int = 2
    ) -> CoinSelection:
        """
        Select outputs to fund `target_amount` plus the deposit fee.
        Uses simple greedy selection strategy, largest first.

        Raises:
            ValueError: If the eligible outputs cannot cover amount and fee
        """
        eligible = [utxo for utxo in utxos if utxo.confirmations >= self.min_confirmations]
        eligible.sort(key=lambda u: u.amount, reverse=True)

        selected: list[UtxoEntry] = []
        total = 0
        fee = 0
        for utxo in eligible:
            selected.append(utxo)
            total += utxo.amount
            fee = self.connector.fee_base_units(
                DEPOSIT_FEE_WEIGHTS, len(selected), output_count, fee_rate
            )
            if total >= target_amount + fee:
                break
        else:
            raise ValueError(
                f"Insufficient funds: need {target_amount} + fee, have {total} "
                f"in {len(eligible)} eligible outputs"
            )

        change = total - target_amount - fee
        if change < DUST_THRESHOLD:
            fee += change
            change = 0
        return CoinSelection(utxos=selected, total_value=total, change_value=change, fee=fee)

    def lock_amount(self, amount: int) -> int:
        """Amount to lock so that `amount` remains after the payment fee."""
        if not self.connector.lock_includes_spend_fee:
            return amount
        return amount + self.connector.fee_base_units(PAYMENT_FEE_WEIGHTS, 1, 1)

    # =========================================================================
    # Construction steps
    # =========================================================================

    async def prepare_lock(
        self,
        role: SwapRole,
        my_pubkey: bytes,
        my_privkey: bytes,
        other_pubkey: bytes,
        secret_hash: bytes,
        counterparty: str,
    ) -> DepositLock | None:
        lock_time = await self.connector.lock_time(role)
        if lock_time == 0:
            logger.error(f"[{self.currency}] No lock time, swap cannot start")
            return None

        inner_script = self.connector.create_deposit_unlock_script(
            my_pubkey, other_pubkey, secret_hash, lock_time
        )
        if inner_script is None:
            return None

        logger.info(f"[{self.currency}] {role.value} lock until height {lock_time}")
        return DepositLock(
            role=role,
            secret_hash=secret_hash,
            lock_time=lock_time,
            counterparty=counterparty,
            inner_script=inner_script,
            my_pubkey=my_pubkey,
            my_privkey=my_privkey,
        )

    async def build_deposit(self, lock: DepositLock, amount: int) -> tuple[SwapTx, int] | None:
        """
        Build the deposit locking `amount` (plus spend fee where the chain needs it).

        Returns:
            (deposit, locked amount) or None
        """
        locked = self.lock_amount(amount)
        destination = self.connector.lock_address(lock.inner_script)

        inputs: list[UtxoEntry] = []
        outputs: list[OutputSpec] = [(destination, locked)]
        fee_rate = None
        if self.connector.utxo_model:
            funding = await self._fund(locked)
            if funding is None:
                return None
            inputs, change, fee_rate = funding
            if change is not None:
                outputs.append(change)

        deposit = await self.connector.create_deposit_transaction(
            inputs, outputs, lock, fee_rate=fee_rate
        )
        if deposit is None:
            logger.error(f"[{self.currency}] Deposit construction failed")
            return None
        return deposit, locked

    async def _fund(
        self, amount: int
    ) -> tuple[list[UtxoEntry], OutputSpec | None, int] | None:
        fee_rate = await self.connector.fee_rate()
        if fee_rate is None:
            logger.error(f"[{self.currency}] No fee rate, deposit not funded")
            return None

        utxos = await self.connector.get_unspent_outputs()
        if utxos is None:
            return None
        try:
            selection = self.select_utxos(utxos, amount, fee_rate)
        except ValueError as e:
            logger.error(f"[{self.currency}] {e}")
            return None
        logger.debug(
            f"[{self.currency}] Selected {len(selection.utxos)} outputs, "
            f"fee {selection.fee}, change {selection.change_value}"
        )

        if selection.change_value == 0:
            return selection.utxos, None, fee_rate
        change_address = await self.connector.get_new_address()
        if not change_address:
            logger.error(f"[{self.currency}] No change address")
            return None
        return selection.utxos, (change_address, selection.change_value), fee_rate

    def _spend_outputs(self, address: str, lock_amount: int) -> list[OutputSpec] | None:
        if not self.connector.lock_includes_spend_fee:
            return []
        fee = self.connector.fee_base_units(PAYMENT_FEE_WEIGHTS, 1, 1)
        if lock_amount - fee < DUST_THRESHOLD:
            logger.error(f"[{self.currency}] Locked {lock_amount} does not cover fee {fee}")
            return None
        return [(address, lock_amount - fee)]

    def _lock_input(
        self, deposit_txid: str, lock_output: int | None, lock_amount: int
    ) -> list[UtxoEntry]:
        if not self.connector.utxo_model:
            return []
        return [UtxoEntry(txid=deposit_txid, vout=lock_output or 0, amount=lock_amount)]

    async def build_refund(
        self, deposit: SwapTx, lock: DepositLock, lock_amount: int, refund_address: str
    ) -> SwapTx | None:
        outputs = self._spend_outputs(refund_address, lock_amount)
        if outputs is None:
            return None
        return await self.connector.create_refund_transaction(
            self._lock_input(deposit.txid, deposit.lock_output, lock_amount),
            outputs,
            lock.my_pubkey,
            lock.my_privkey,
            lock.inner_script,
            lock.lock_time,
        )

    async def build_payment(
        self,
        deposit_txid: str,
        lock_output: int | None,
        lock_amount: int,
        inner_script: bytes,
        secret: bytes,
        my_pubkey: bytes,
        my_privkey: bytes,
        payout_address: str,
    ) -> SwapTx | None:
        """Claim the counterparty's deposit on this chain with the revealed secret."""
        outputs = self._spend_outputs(payout_address, lock_amount)
        if outputs is None:
            return None
        return await self.connector.create_payment_transaction(
            self._lock_input(deposit_txid, lock_output, lock_amount),
            outputs,
            my_pubkey,
            my_privkey,
            secret,
            inner_script,
        )

    async def build_transaction_set(
        self,
        role: SwapRole,
        amount: int,
        my_pubkey: bytes,
        my_privkey: bytes,
        other_pubkey: bytes,
        secret_hash: bytes,
        counterparty: str,
        refund_address: str | None = None,
    ) -> SwapTransactionSet | None:
        """
        Build the deposit and its refund, both signed and not broadcast.

        The refund exists before the deposit is sent so funds are never locked
        without a way back. On UTXO chains the refund pays `refund_address`, or a
        fresh wallet address when none is given.
        """
        lock = await self.prepare_lock(
            role, my_pubkey, my_privkey, other_pubkey, secret_hash, counterparty
        )
        if lock is None:
            return None

        built = await self.build_deposit(lock, amount)
        if built is None:
            return None
        deposit, locked = built

        if refund_address is None and self.connector.utxo_model:
            refund_address = await self.connector.get_new_address()
            if not refund_address:
                logger.error(f"[{self.currency}] No refund address, dropping deposit")
                return None

        refund = await self.build_refund(deposit, lock, locked, refund_address or "")
        if refund is None:
            logger.error(f"[{self.currency}] Refund construction failed, dropping deposit")
            return None

        logger.info(f"[{self.currency}] Built deposit {deposit.txid} and refund {refund.txid}")
        return SwapTransactionSet(
            deposit=deposit,
            refund=refund,
            inner_script=lock.inner_script,
            lock_time=lock.lock_time,
            lock_amount=locked,
        )

    async def wait_for_deposit(
        self,
        txid: str,
        destination: str,
        amount: int,
        max_attempts: int = DEPOSIT_POLL_ATTEMPTS,
        base_delay: float = DEPOSIT_POLL_BASE_DELAY,
        max_delay: float = DEPOSIT_POLL_MAX_DELAY,
        secret_hash: bytes | None = None,
        min_lock_time: int | None = None,
    ) -> TxCheck:
        """
        Poll check_transaction until the deposit is settled one way or the other.

        Retries NOT_FOUND, UNCONFIRMED and retryable errors with exponential
        backoff and jitter. Returns the last check once it is final or the
        attempts run out. `secret_hash` and `min_lock_time` are the lock terms
        the deposit must commit to.
        """
        check = await self.connector.check_transaction(
            txid, destination, amount, secret_hash, min_lock_time
        )
        for attempt in range(max_attempts - 1):
            if not check.should_wait:
                break
            delay = min(base_delay * (2**attempt), max_delay) + random.uniform(0, 0.5)
            logger.debug(
                f"[{self.currency}] Deposit {txid} {check.status.value}, retrying in "
                f"{delay:.2f}s (attempt {attempt + 1}/{max_attempts})"
            )
            await asyncio.sleep(delay)
            check = await self.connector.check_transaction(
                txid, destination, amount, secret_hash, min_lock_time
            )
        return check
