"""
Account-contract connector for Ethereum JSON-RPC nodes.

Swaps are locked in a contract keyed by the 20-byte secret hash:

    initiate(bytes20 hash, address participant, uint256 locktime)  payable
    respond(bytes20 hash, address participant, uint256 locktime)   payable
    redeem(bytes20 hash, bytes secret)
    refund(bytes20 hash)

Transactions are signed locally with eth-account and broadcast with
eth_sendRawTransaction. There are no spendable outputs or scripts on this
chain, so the UTXO-shaped operations return their "not applicable" values.
"""

from __future__ import annotations

from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_utils import keccak, to_checksum_address
from loguru import logger

from xbcore.constants import SECRET_HASH_LENGTH
from xbcore.crypto import decompress_public_key, hash160, public_key_from_private
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
from xbcore.rpc import RpcError, RpcErrorKind

from xbwallet.config import ChainFamily
from xbwallet.connectors.base import OutputSpec, WalletConnector

LOCK_ARGS = ["bytes20", "address", "uint256"]


def method_selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


INITIATE_SELECTOR = method_selector("initiate(bytes20,address,uint256)")
RESPOND_SELECTOR = method_selector("respond(bytes20,address,uint256)")
REFUND_SELECTOR = method_selector("refund(bytes20)")
REDEEM_SELECTOR = method_selector("redeem(bytes20,bytes)")


def encode_call(selector: bytes, types: list[str], args: list[Any]) -> str:
    return "0x" + (selector + encode(types, args)).hex()


def pubkey_to_address(pubkey: bytes) -> str:
    """Checksummed account address of a SEC1 public key."""
    uncompressed = decompress_public_key(pubkey)
    return to_checksum_address(keccak(uncompressed[1:])[-20:])


def _hex_int(value: Any) -> int:
    if not isinstance(value, str):
        raise TypeError(f"expected hex quantity, got {type(value).__name__}")
    return int(value, 16)


class EthereumConnector(WalletConnector):
    family = ChainFamily.ACCOUNT_CONTRACT
    utxo_model = False
    lock_includes_spend_fee = False
    jsonrpc_version = "2.0"

    @property
    def contract_address(self) -> str:
        return self.config.contract_address

    # =========================================================================
    # Wallet queries
    # =========================================================================

    async def request_address_book(self) -> list[AddressBookEntry] | None:
        reply = (await self.rpc.call("eth_accounts")).expect(list)
        if not reply.ok:
            logger.warning(f"[{self.currency}] eth_accounts failed: {reply.error}")
            return None
        return [("default", [a for a in reply.result if isinstance(a, str)])]

    async def get_unspent_outputs(self) -> list[UtxoEntry] | None:
        return []

    async def get_new_address(self) -> str | None:
        return ""

    async def send_raw_transaction(self, raw_tx: str) -> BroadcastResult:
        if not raw_tx.startswith("0x"):
            raw_tx = "0x" + raw_tx
        reply = (await self.rpc.call("eth_sendRawTransaction", [raw_tx])).expect(str)
        if not reply.ok:
            logger.error(f"[{self.currency}] Failed to broadcast transaction: {reply.error}")
            return BroadcastResult(error=reply.error)
        logger.info(f"[{self.currency}] Broadcast transaction: {reply.result}")
        return BroadcastResult(txid=reply.result)

    # =========================================================================
    # Identifiers
    # =========================================================================

    def get_key_id(self, pubkey: bytes) -> bytes:
        return b""

    def get_script_id(self, script: bytes) -> bytes:
        return b""

    def lock_address(self, inner_script: bytes) -> str:
        return self.contract_address

    # =========================================================================
    # Chain state
    # =========================================================================

    async def get_block_height(self) -> int | None:
        reply = (await self.rpc.call("eth_blockNumber")).expect(str)
        if not reply.ok:
            logger.warning(f"[{self.currency}] eth_blockNumber failed: {reply.error}")
            return None
        try:
            return _hex_int(reply.result)
        except ValueError:
            logger.error(f"[{self.currency}] Malformed block number: {reply.result}")
            return None

    async def get_gas_price(self) -> int | None:
        reply = (await self.rpc.call("eth_gasPrice")).expect(str)
        if not reply.ok:
            logger.warning(f"[{self.currency}] eth_gasPrice failed: {reply.error}")
            return None
        try:
            return _hex_int(reply.result)
        except ValueError:
            logger.error(f"[{self.currency}] Malformed gas price: {reply.result}")
            return None

    async def check_transaction(
        self,
        txid: str,
        destination: str,
        amount: int,
        secret_hash: bytes | None = None,
        min_lock_time: int | None = None,
    ) -> TxCheck:
        reply = (await self.rpc.call("eth_getTransactionByHash", [txid])).expect(dict, type(None))
        if not reply.ok:
            logger.warning(f"[{self.currency}] can't get tx {txid}: {reply.error}")
            return self.error_check(reply.error, "transaction lookup failed")
        tx = reply.result
        if tx is None:
            logger.info(f"[{self.currency}] no tx found {txid}")
            return self.error_check(
                RpcError(RpcErrorKind.NOT_YET_AVAILABLE, f"unknown transaction {txid}"),
                "transaction not visible",
            )

        # A pending contract call has no execution status yet, so it locks nothing
        block_number = tx.get("blockNumber")
        if block_number is None:
            logger.info(f"[{self.currency}] tx {txid} still pending")
            return TxCheck(TxCheckStatus.UNCONFIRMED)
        try:
            tx_height = _hex_int(block_number)
        except (TypeError, ValueError):
            logger.error(f"[{self.currency}] Malformed blockNumber for {txid}: {block_number}")
            return TxCheck(TxCheckStatus.ERROR, reason="malformed block number")

        current_height = await self.get_block_height()
        if current_height is None:
            logger.warning(f"[{self.currency}] can't get last block number for {txid}")
            return TxCheck(TxCheckStatus.ERROR, reason="block height unavailable")

        waiting = self.confirmation_check(txid, tx_height, current_height)
        if waiting is not None:
            return waiting
        confirmations = current_height - tx_height

        reason = self._lock_mismatch(
            tx, destination, amount, secret_hash, min_lock_time, current_height
        )
        if not reason:
            receipt = await self._receipt_status(txid)
            if isinstance(receipt, TxCheck):
                return receipt
            if receipt != 1:
                reason = "contract call reverted"
        if reason:
            logger.error(f"[{self.currency}] tx {txid} rejected: {reason}")
            return TxCheck(TxCheckStatus.MISMATCH, confirmations=confirmations, reason=reason)

        return TxCheck(TxCheckStatus.GOOD, confirmations=confirmations)

    async def _receipt_status(self, txid: str) -> int | TxCheck:
        """Execution status of a mined transaction, or the TxCheck to report instead."""
        reply = (await self.rpc.call("eth_getTransactionReceipt", [txid])).expect(
            dict, type(None)
        )
        if not reply.ok:
            logger.warning(f"[{self.currency}] can't get receipt of {txid}: {reply.error}")
            return self.error_check(reply.error, "receipt lookup failed")
        if reply.result is None:
            logger.info(f"[{self.currency}] no receipt yet for {txid}")
            return self.error_check(
                RpcError(RpcErrorKind.NOT_YET_AVAILABLE, f"no receipt for {txid}"),
                "receipt not visible",
            )
        try:
            return _hex_int(reply.result.get("status"))
        except (TypeError, ValueError):
            logger.error(f"[{self.currency}] Malformed receipt status for {txid}")
            return TxCheck(TxCheckStatus.ERROR, reason="malformed receipt")

    def _lock_mismatch(
        self,
        tx: dict,
        destination: str,
        amount: int,
        secret_hash: bytes | None,
        min_lock_time: int | None,
        current_height: int,
    ) -> str:
        """Why `tx` is not a lock of `amount` for `destination`, empty if it is."""
        to = tx.get("to")
        if not isinstance(to, str) or to.lower() != self.contract_address.lower():
            return f"sent to {to}, not the swap contract"
        try:
            value = _hex_int(tx.get("value"))
            data = bytes.fromhex(str(tx.get("input", "")).removeprefix("0x"))
        except (TypeError, ValueError):
            return "malformed value or input"
        if value < amount:
            return f"locks {value}, expected at least {amount}"
        if data[:4] not in (INITIATE_SELECTOR, RESPOND_SELECTOR):
            return "not an initiate or respond call"
        try:
            locked_hash, participant, locktime = decode(LOCK_ARGS, data[4:])
        except DecodingError:
            return "undecodable lock arguments"
        if participant.lower() != destination.lower():
            return f"locked for {participant}, expected {destination}"
        if secret_hash is not None and locked_hash != secret_hash:
            return f"locked under hash {locked_hash.hex()}, expected {secret_hash.hex()}"
        if locktime <= current_height:
            return f"lock expired at {locktime}, chain is at {current_height}"
        if min_lock_time is not None and locktime < min_lock_time:
            return f"lock expires at {locktime}, expected no earlier than {min_lock_time}"
        return ""

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
        # The contract keys each lock by its secret hash
        if len(secret_hash) != SECRET_HASH_LENGTH:
            logger.error(f"[{self.currency}] Secret hash must be {SECRET_HASH_LENGTH} bytes")
            return None
        return secret_hash

    async def create_deposit_transaction(
        self,
        inputs: list[UtxoEntry],
        outputs: list[OutputSpec],
        lock: DepositLock,
        fee_rate: int | None = None,
    ) -> SwapTx | None:
        # Gas is priced per call, a funding fee rate does not apply
        gas_price = await self.get_gas_price()
        if gas_price is None:
            logger.error(f"[{self.currency}] can't get gasPrice, deposit not created")
            return None

        contract = self.contract_address.lower()
        values = [value for address, value in outputs if address.lower() == contract]
        if len(values) != 1 or len(outputs) != 1 or values[0] <= 0:
            logger.error(f"[{self.currency}] Deposit must send one positive amount to {contract}")
            return None
        if len(lock.secret_hash) != SECRET_HASH_LENGTH or lock.lock_time <= 0:
            logger.error(f"[{self.currency}] Invalid lock parameters")
            return None

        try:
            participant = to_checksum_address(lock.counterparty)
        except ValueError as e:
            logger.error(f"[{self.currency}] Invalid counterparty {lock.counterparty}: {e}")
            return None

        selector = INITIATE_SELECTOR if lock.role == SwapRole.INITIATOR else RESPOND_SELECTOR
        data = encode_call(selector, LOCK_ARGS, [lock.secret_hash, participant, lock.lock_time])
        return await self._build_signed(lock.my_privkey, data, values[0], gas_price, estimate=True)

    async def create_refund_transaction(
        self,
        inputs: list[UtxoEntry],
        outputs: list[OutputSpec],
        my_pubkey: bytes,
        my_privkey: bytes,
        inner_script: bytes,
        lock_time: int,
    ) -> SwapTx | None:
        gas_price = await self.get_gas_price()
        if gas_price is None:
            logger.error(f"[{self.currency}] can't get gasPrice, refund not created")
            return None
        if not self._owns_key(my_pubkey, my_privkey) or len(inner_script) != SECRET_HASH_LENGTH:
            return None
        data = encode_call(REFUND_SELECTOR, ["bytes20"], [inner_script])
        # Refund reverts until the lock expires, so gas cannot be estimated yet
        return await self._build_signed(my_privkey, data, 0, gas_price, estimate=False)

    async def create_payment_transaction(
        self,
        inputs: list[UtxoEntry],
        outputs: list[OutputSpec],
        my_pubkey: bytes,
        my_privkey: bytes,
        secret: bytes,
        inner_script: bytes,
    ) -> SwapTx | None:
        gas_price = await self.get_gas_price()
        if gas_price is None:
            logger.error(f"[{self.currency}] can't get gasPrice, payment not created")
            return None
        if not self._owns_key(my_pubkey, my_privkey):
            return None
        if hash160(secret) != inner_script:
            logger.error(f"[{self.currency}] Secret does not open this lock")
            return None
        data = encode_call(REDEEM_SELECTOR, ["bytes20", "bytes"], [inner_script, secret])
        return await self._build_signed(my_privkey, data, 0, gas_price, estimate=True)

    def _owns_key(self, my_pubkey: bytes, my_privkey: bytes) -> bool:
        try:
            if public_key_from_private(my_privkey) == my_pubkey:
                return True
        except ValueError as e:
            logger.error(f"[{self.currency}] Invalid private key: {e}")
            return False
        logger.error(f"[{self.currency}] Private key does not match public key")
        return False

    async def _build_signed(
        self,
        private_key: bytes,
        data: str,
        value: int,
        gas_price: int,
        estimate: bool,
    ) -> SwapTx | None:
        try:
            sender = pubkey_to_address(public_key_from_private(private_key))
        except ValueError as e:
            logger.error(f"[{self.currency}] Invalid private key: {e}")
            return None

        nonce_reply = (
            await self.rpc.call("eth_getTransactionCount", [sender, "pending"])
        ).expect(str)
        if not nonce_reply.ok:
            logger.error(f"[{self.currency}] can't get nonce for {sender}: {nonce_reply.error}")
            return None

        call = {"from": sender, "to": self.contract_address, "value": hex(value), "data": data}
        gas = self.config.gas_limit
        if estimate:
            gas_reply = (await self.rpc.call("eth_estimateGas", [call])).expect(str)
            if not gas_reply.ok:
                logger.error(f"[{self.currency}] eth_estimateGas failed: {gas_reply.error}")
                return None
            try:
                gas = _hex_int(gas_reply.result)
            except ValueError:
                logger.error(f"[{self.currency}] Malformed gas estimate: {gas_reply.result}")
                return None
            if gas > self.config.gas_limit:
                logger.error(
                    f"[{self.currency}] Estimated gas {gas} above limit {self.config.gas_limit}"
                )
                return None

        try:
            transaction = {
                "to": self.contract_address,
                "value": value,
                "data": data,
                "gas": gas,
                "gasPrice": gas_price,
                "nonce": _hex_int(nonce_reply.result),
                "chainId": self.config.chain_id,
            }
            raw = self.sign_transaction(transaction, private_key)
        except (TypeError, ValueError) as e:
            logger.error(f"[{self.currency}] Can't sign transaction: {e}")
            return None

        txid = "0x" + keccak(raw).hex()
        logger.debug(f"[{self.currency}] Built contract call {txid} from {sender}, gas {gas}")
        return SwapTx(txid=txid, raw_tx="0x" + raw.hex())

    def sign_transaction(self, transaction: dict, private_key: bytes) -> bytes:
        signed = Account.sign_transaction(transaction, private_key)
        return bytes(signed.raw_transaction)
