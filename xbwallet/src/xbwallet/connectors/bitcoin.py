"""
UTXO-script connector for Bitcoin Core compatible nodes.

Deposits are funded and signed by the node wallet and pay a P2WSH output
locked by the swap HTLC script. Payment and refund spends of that output are
built and signed locally, so the swap keys never reach the node.
"""

from __future__ import annotations

import hashlib
import math
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from loguru import logger

from xbcore.constants import (
    BTC_RPC_INVALID_ADDRESS_OR_KEY,
    DEPOSIT_FEE_WEIGHTS,
    PAYMENT_FEE_WEIGHTS,
)
from xbcore.crypto import hash160, public_key_from_private
from xbcore.errors import ScriptError, TransactionSigningError
from xbcore.models import (
    AddressBookEntry,
    BroadcastResult,
    DepositLock,
    SwapTx,
    TxCheck,
    TxCheckStatus,
    UtxoEntry,
)
from xbcore.rpc import RpcError, RpcErrorKind

from xbwallet.config import ChainFamily
from xbwallet.connectors.base import OutputSpec, WalletConnector
from xbwallet.wallet.address import (
    address_to_scriptpubkey,
    encode_segwit_address,
    script_to_p2wsh_scriptpubkey,
)
from xbwallet.wallet.script import (
    build_htlc_script,
    payment_witness,
    push_data,
    refund_witness,
)
from xbwallet.wallet.transaction import (
    SEQUENCE_FINAL,
    SEQUENCE_LOCKTIME_ENABLED,
    Transaction,
    TxIn,
    TxOut,
    deserialize_transaction,
    sign_segwit_input,
)

# Confirmation target for estimatesmartfee
FEE_CONF_TARGET = 6


@dataclass
class HtlcSpend:
    """One HTLC input of a payment or refund transaction, ready to sign."""

    tx: Transaction
    input_index: int
    witness_script: bytes
    value: int


class BitcoinConnector(WalletConnector):
    family = ChainFamily.UTXO_SCRIPT
    utxo_model = True
    lock_includes_spend_fee = True
    jsonrpc_version = "1.0"

    # =========================================================================
    # Wallet queries
    # =========================================================================

    async def request_address_book(self) -> list[AddressBookEntry] | None:
        reply = (await self.rpc.call("listlabels")).expect(list)
        if not reply.ok:
            logger.warning(f"[{self.currency}] listlabels failed: {reply.error}")
            return None

        entries: list[AddressBookEntry] = []
        for label in reply.result:
            if not isinstance(label, str):
                continue
            addresses = (await self.rpc.call("getaddressesbylabel", [label])).expect(dict)
            if not addresses.ok:
                logger.warning(f"[{self.currency}] getaddressesbylabel failed: {addresses.error}")
                return None
            entries.append((label, list(addresses.result.keys())))
        return entries

    async def get_unspent_outputs(self) -> list[UtxoEntry] | None:
        reply = (await self.rpc.call("listunspent")).expect(list)
        if not reply.ok:
            logger.warning(f"[{self.currency}] listunspent failed: {reply.error}")
            return None

        utxos: list[UtxoEntry] = []
        try:
            for entry in reply.result:
                if not entry.get("spendable", True):
                    continue
                utxos.append(
                    UtxoEntry(
                        txid=entry["txid"],
                        vout=int(entry["vout"]),
                        amount=self.to_base_units(entry["amount"]),
                        address=entry.get("address", ""),
                        scriptpubkey=entry.get("scriptPubKey", ""),
                        confirmations=int(entry.get("confirmations", 0)),
                    )
                )
        except (AttributeError, KeyError, TypeError, ValueError, InvalidOperation) as e:
            logger.error(f"[{self.currency}] Malformed listunspent entry: {e}")
            return None

        logger.debug(f"[{self.currency}] {len(utxos)} spendable outputs")
        return utxos

    async def get_new_address(self) -> str | None:
        reply = (await self.rpc.call("getnewaddress", ["", "bech32"])).expect(str)
        if not reply.ok:
            logger.warning(f"[{self.currency}] getnewaddress failed: {reply.error}")
            return None
        return reply.result

    async def send_raw_transaction(self, raw_tx: str) -> BroadcastResult:
        reply = (await self.rpc.call("sendrawtransaction", [raw_tx])).expect(str)
        if not reply.ok:
            logger.error(f"[{self.currency}] Failed to broadcast transaction: {reply.error}")
            return BroadcastResult(error=reply.error)
        logger.info(f"[{self.currency}] Broadcast transaction: {reply.result}")
        return BroadcastResult(txid=reply.result)

    # =========================================================================
    # Identifiers
    # =========================================================================

    def get_key_id(self, pubkey: bytes) -> bytes:
        return hash160(pubkey)

    def get_script_id(self, script: bytes) -> bytes:
        # P2WSH witness program
        return hashlib.sha256(script).digest()

    def script_id_to_string(self, script_id: bytes) -> str:
        return encode_segwit_address(script_id, self.config.network)

    def lock_address(self, inner_script: bytes) -> str:
        return self.script_id_to_string(self.get_script_id(inner_script))

    # =========================================================================
    # Chain state
    # =========================================================================

    async def get_block_height(self) -> int | None:
        reply = (await self.rpc.call("getblockcount")).expect(int)
        if not reply.ok:
            logger.warning(f"[{self.currency}] getblockcount failed: {reply.error}")
            return None
        return reply.result

    async def estimate_fee_rate(self) -> int | None:
        """Live fee rate in sat/vB, None if the node has no estimate."""
        reply = (await self.rpc.call("estimatesmartfee", [FEE_CONF_TARGET])).expect(dict)
        if not reply.ok:
            logger.warning(f"[{self.currency}] estimatesmartfee failed: {reply.error}")
            return None
        feerate = reply.result.get("feerate")
        if feerate is None:
            logger.warning(
                f"[{self.currency}] Fee estimation unavailable: {reply.result.get('errors')}"
            )
            return None
        try:
            btc_per_kvb = Decimal(str(feerate))
        except InvalidOperation:
            logger.error(f"[{self.currency}] Malformed feerate: {feerate}")
            return None
        return math.ceil(btc_per_kvb * self.config.coin / 1000)

    async def fee_rate(self) -> int | None:
        live = await self.estimate_fee_rate()
        if live is None:
            return None
        return max(live, self.config.fee_per_byte)

    async def check_transaction(
        self,
        txid: str,
        destination: str,
        amount: int,
        secret_hash: bytes | None = None,
        min_lock_time: int | None = None,
    ) -> TxCheck:
        # The P2WSH destination already commits to the hash, keys and lock time
        reply = await self.rpc.call("getrawtransaction", [txid, True])
        if not reply.ok:
            error = reply.error
            if error.kind == RpcErrorKind.REMOTE and error.code == BTC_RPC_INVALID_ADDRESS_OR_KEY:
                error = RpcError(RpcErrorKind.NOT_YET_AVAILABLE, error.message, error.code)
            logger.info(f"[{self.currency}] no tx found {txid}: {error}")
            return self.error_check(error, "transaction lookup failed")
        reply = reply.expect(dict)
        if not reply.ok:
            return self.error_check(reply.error, "transaction lookup failed")
        tx = reply.result

        blockhash = tx.get("blockhash")
        if blockhash:
            header = (await self.rpc.call("getblockheader", [blockhash])).expect(dict)
            if not header.ok or not isinstance(header.result.get("height"), int):
                logger.warning(f"[{self.currency}] can't get block of {txid}: {header.error}")
                return self.error_check(header.error, "block header lookup failed")
            tx_height = header.result["height"]

            current_height = await self.get_block_height()
            if current_height is None:
                logger.warning(f"[{self.currency}] can't get last block number for {txid}")
                return TxCheck(TxCheckStatus.ERROR, reason="block height unavailable")

            waiting = self.confirmation_check(txid, tx_height, current_height)
            if waiting is not None:
                return waiting
            confirmations = current_height - tx_height
        elif self.config.required_confirmations > 0:
            logger.info(f"[{self.currency}] tx {txid} still in mempool")
            return TxCheck(TxCheckStatus.UNCONFIRMED)
        else:
            confirmations = 0

        if not self._pays(tx.get("vout", []), destination, amount):
            logger.error(
                f"[{self.currency}] tx {txid} does not pay {amount} to {destination}"
            )
            return TxCheck(
                TxCheckStatus.MISMATCH,
                confirmations=confirmations,
                reason="no output pays the expected amount to the destination",
            )

        return TxCheck(TxCheckStatus.GOOD, confirmations=confirmations)

    def _pays(self, vouts: Any, destination: str, amount: int) -> bool:
        if not isinstance(vouts, list):
            return False
        for vout in vouts:
            try:
                spk = vout.get("scriptPubKey", {})
                address = spk.get("address") or next(iter(spk.get("addresses", [])), None)
                value = self.to_base_units(vout["value"])
            except (AttributeError, KeyError, TypeError, InvalidOperation):
                continue
            if address == destination and value >= amount:
                return True
        return False

    # =========================================================================
    # Transaction construction
    # =========================================================================

    def create_deposit_unlock_script(
        self,
        my_pubkey: bytes,
        other_pubkey: bytes,
        secret_hash: bytes,
        lock_time: int,
    ) -> bytes | None:
        try:
            return build_htlc_script(my_pubkey, other_pubkey, secret_hash, lock_time)
        except ScriptError as e:
            logger.error(f"[{self.currency}] Can't build deposit script: {e}")
            return None

    async def create_deposit_transaction(
        self,
        inputs: list[UtxoEntry],
        outputs: list[OutputSpec],
        lock: DepositLock,
        fee_rate: int | None = None,
    ) -> SwapTx | None:
        if fee_rate is None:
            fee_rate = await self.fee_rate()
        else:
            fee_rate = max(fee_rate, self.config.fee_per_byte)
        if fee_rate is None:
            logger.error(f"[{self.currency}] can't get fee rate, deposit not created")
            return None

        if not inputs or not outputs:
            logger.error(f"[{self.currency}] Deposit needs inputs and outputs")
            return None
        if any(value <= 0 for _, value in outputs):
            logger.error(f"[{self.currency}] Deposit outputs must be positive")
            return None

        lock_address = self.lock_address(lock.inner_script)
        lock_indexes = [i for i, (address, _) in enumerate(outputs) if address == lock_address]
        if len(lock_indexes) != 1:
            logger.error(f"[{self.currency}] Deposit must pay the lock address {lock_address} once")
            return None

        total_in = sum(inp.amount for inp in inputs)
        total_out = sum(value for _, value in outputs)
        required_fee = self.fee_base_units(
            DEPOSIT_FEE_WEIGHTS,
            len(inputs),
            len(outputs),
            fee_rate,
        )
        if total_in - total_out < required_fee:
            logger.error(
                f"[{self.currency}] Deposit fee {total_in - total_out} below required "
                f"{required_fee} ({fee_rate} sat/vB)"
            )
            return None

        raw_inputs = [{"txid": inp.txid, "vout": inp.vout} for inp in inputs]
        raw_outputs = [
            {address: str(self.to_display_units(value))} for address, value in outputs
        ]
        created = (await self.rpc.call("createrawtransaction", [raw_inputs, raw_outputs])).expect(
            str
        )
        if not created.ok:
            logger.error(f"[{self.currency}] createrawtransaction failed: {created.error}")
            return None

        signed = (await self.rpc.call("signrawtransactionwithwallet", [created.result])).expect(
            dict
        )
        if not signed.ok:
            logger.error(f"[{self.currency}] signrawtransactionwithwallet failed: {signed.error}")
            return None
        if not signed.result.get("complete") or not isinstance(signed.result.get("hex"), str):
            logger.error(f"[{self.currency}] Wallet could not sign deposit: {signed.result}")
            return None

        raw_tx = signed.result["hex"]
        try:
            tx = deserialize_transaction(bytes.fromhex(raw_tx))
        except (ValueError, TransactionSigningError) as e:
            logger.error(f"[{self.currency}] Node returned an unparseable deposit: {e}")
            return None

        lock_output = lock_indexes[0]
        if tx.outputs[lock_output].script != script_to_p2wsh_scriptpubkey(lock.inner_script):
            logger.error(f"[{self.currency}] Signed deposit reordered its outputs")
            return None

        txid = tx.txid()
        logger.info(f"[{self.currency}] Created deposit {txid} locking output {lock_output}")
        return SwapTx(txid=txid, raw_tx=raw_tx, lock_output=lock_output)

    async def create_refund_transaction(
        self,
        inputs: list[UtxoEntry],
        outputs: list[OutputSpec],
        my_pubkey: bytes,
        my_privkey: bytes,
        inner_script: bytes,
        lock_time: int,
    ) -> SwapTx | None:
        if lock_time <= 0:
            logger.error(f"[{self.currency}] Refund needs a lock time")
            return None
        return self._spend_htlc(
            inputs,
            outputs,
            my_pubkey,
            my_privkey,
            inner_script,
            locktime=lock_time,
            sequence=SEQUENCE_LOCKTIME_ENABLED,
            witness=lambda sig: refund_witness(sig, inner_script),
        )

    async def create_payment_transaction(
        self,
        inputs: list[UtxoEntry],
        outputs: list[OutputSpec],
        my_pubkey: bytes,
        my_privkey: bytes,
        secret: bytes,
        inner_script: bytes,
    ) -> SwapTx | None:
        if push_data(hash160(secret)) not in inner_script:
            logger.error(f"[{self.currency}] Secret does not open this deposit script")
            return None
        return self._spend_htlc(
            inputs,
            outputs,
            my_pubkey,
            my_privkey,
            inner_script,
            locktime=0,
            sequence=SEQUENCE_FINAL,
            witness=lambda sig: payment_witness(sig, secret, inner_script),
        )

    def _spend_htlc(
        self,
        inputs: list[UtxoEntry],
        outputs: list[OutputSpec],
        my_pubkey: bytes,
        my_privkey: bytes,
        inner_script: bytes,
        locktime: int,
        sequence: int,
        witness: Callable[[bytes], list[bytes]],
    ) -> SwapTx | None:
        if not inputs or not outputs:
            logger.error(f"[{self.currency}] HTLC spend needs inputs and outputs")
            return None

        try:
            if public_key_from_private(my_privkey) != my_pubkey:
                logger.error(f"[{self.currency}] Private key does not match public key")
                return None

            tx = Transaction(
                inputs=[TxIn(inp.txid, inp.vout, sequence=sequence) for inp in inputs],
                outputs=[TxOut(value, address_to_scriptpubkey(addr)) for addr, value in outputs],
                locktime=locktime,
            )

            fee = sum(inp.amount for inp in inputs) - sum(out.value for out in tx.outputs)
            required_fee = self.fee_base_units(PAYMENT_FEE_WEIGHTS, len(inputs), len(outputs))
            if fee < required_fee:
                logger.error(
                    f"[{self.currency}] HTLC spend fee {fee} below required {required_fee}"
                )
                return None

            for index, inp in enumerate(inputs):
                signature = self.sign_transaction(
                    HtlcSpend(tx, index, inner_script, inp.amount), my_privkey
                )
                tx.inputs[index].witness = witness(signature)
        except (ValueError, TransactionSigningError) as e:
            logger.error(f"[{self.currency}] Can't build HTLC spend: {e}")
            return None

        txid = tx.txid()
        logger.debug(
            f"[{self.currency}] Built HTLC spend {txid}, locktime {locktime}, {tx.vsize()} vB"
        )
        return SwapTx(txid=txid, raw_tx=tx.serialize().hex())

    def sign_transaction(self, transaction: HtlcSpend, private_key: bytes) -> bytes:
        return sign_segwit_input(
            transaction.tx,
            transaction.input_index,
            transaction.witness_script,
            transaction.value,
            private_key,
        )
