"""
Bitcoin transaction serialization and BIP143 signing for swap spends.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from coincurve import PrivateKey

from xbcore.crypto import hash256
from xbcore.errors import TransactionSigningError

SIGHASH_ALL = 1

# Final sequence disables nLockTime, so locktime-gated spends use this one
SEQUENCE_LOCKTIME_ENABLED = 0xFFFFFFFE
SEQUENCE_FINAL = 0xFFFFFFFF


@dataclass
class TxIn:
    txid: str  # RPC (big-endian) hex
    vout: int
    sequence: int = SEQUENCE_FINAL
    script_sig: bytes = b""
    witness: list[bytes] = field(default_factory=list)


@dataclass
class TxOut:
    value: int
    script: bytes


@dataclass
class Transaction:
    inputs: list[TxIn]
    outputs: list[TxOut]
    locktime: int = 0
    version: int = 2

    @property
    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)

    def serialize(self, include_witness: bool = True) -> bytes:
        with_witness = include_witness and self.has_witness
        result = struct.pack("<I", self.version)
        if with_witness:
            result += bytes([0x00, 0x01])  # SegWit marker and flag

        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += serialize_outpoint(inp.txid, inp.vout)
            result += encode_varint(len(inp.script_sig)) + inp.script_sig
            result += struct.pack("<I", inp.sequence)

        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += struct.pack("<Q", out.value)
            result += encode_varint(len(out.script)) + out.script

        if with_witness:
            for inp in self.inputs:
                result += encode_varint(len(inp.witness))
                for item in inp.witness:
                    result += encode_varint(len(item)) + item

        result += struct.pack("<I", self.locktime)
        return result

    def txid(self) -> str:
        """Double SHA256 of the non-witness serialization, RPC byte order."""
        return hash256(self.serialize(include_witness=False))[::-1].hex()

    def vsize(self) -> int:
        base = len(self.serialize(include_witness=False))
        total = len(self.serialize())
        return (base * 3 + total + 3) // 4


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    """Read varint and return (value, new_offset)."""
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        return int.from_bytes(data[offset : offset + 2], "little"), offset + 2
    if first == 0xFE:
        return int.from_bytes(data[offset : offset + 4], "little"), offset + 4
    return int.from_bytes(data[offset : offset + 8], "little"), offset + 8


def serialize_outpoint(txid: str, vout: int) -> bytes:
    # txid is in RPC format (big-endian), raw tx wants it reversed
    return bytes.fromhex(txid)[::-1] + struct.pack("<I", vout)


def deserialize_transaction(tx_bytes: bytes) -> Transaction:
    """
    Parse a raw transaction.

    Raises:
        TransactionSigningError: If the bytes are not a well-formed transaction
    """
    try:
        offset = 0
        version = int.from_bytes(tx_bytes[offset : offset + 4], "little")
        offset += 4

        has_witness = tx_bytes[offset] == 0x00 and tx_bytes[offset + 1] == 0x01
        if has_witness:
            offset += 2

        input_count, offset = read_varint(tx_bytes, offset)
        inputs: list[TxIn] = []
        for _ in range(input_count):
            txid = tx_bytes[offset : offset + 32][::-1].hex()
            offset += 32
            vout = int.from_bytes(tx_bytes[offset : offset + 4], "little")
            offset += 4
            script_len, offset = read_varint(tx_bytes, offset)
            script_sig = tx_bytes[offset : offset + script_len]
            offset += script_len
            sequence = int.from_bytes(tx_bytes[offset : offset + 4], "little")
            offset += 4
            inputs.append(TxIn(txid, vout, sequence, script_sig))

        output_count, offset = read_varint(tx_bytes, offset)
        outputs: list[TxOut] = []
        for _ in range(output_count):
            value = int.from_bytes(tx_bytes[offset : offset + 8], "little")
            offset += 8
            script_len, offset = read_varint(tx_bytes, offset)
            outputs.append(TxOut(value, tx_bytes[offset : offset + script_len]))
            offset += script_len

        if has_witness:
            for inp in inputs:
                stack_count, offset = read_varint(tx_bytes, offset)
                for _ in range(stack_count):
                    item_len, offset = read_varint(tx_bytes, offset)
                    inp.witness.append(tx_bytes[offset : offset + item_len])
                    offset += item_len

        if offset + 4 != len(tx_bytes):
            raise ValueError(f"{len(tx_bytes) - offset - 4} trailing bytes")
        locktime = int.from_bytes(tx_bytes[offset : offset + 4], "little")
        return Transaction(inputs, outputs, locktime, version)

    except (IndexError, ValueError) as e:
        raise TransactionSigningError(f"Failed to parse transaction: {e}") from e


def compute_sighash_segwit(
    tx: Transaction,
    input_index: int,
    script_code: bytes,
    value: int,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """BIP143 signature hash. `script_code` is given without its length prefix."""
    if input_index >= len(tx.inputs):
        raise TransactionSigningError("Input index out of range")

    hash_prevouts = hash256(b"".join(serialize_outpoint(i.txid, i.vout) for i in tx.inputs))
    hash_sequence = hash256(b"".join(struct.pack("<I", i.sequence) for i in tx.inputs))
    hash_outputs = hash256(
        b"".join(
            struct.pack("<Q", out.value) + encode_varint(len(out.script)) + out.script
            for out in tx.outputs
        )
    )

    target = tx.inputs[input_index]
    preimage = (
        struct.pack("<I", tx.version)
        + hash_prevouts
        + hash_sequence
        + serialize_outpoint(target.txid, target.vout)
        + encode_varint(len(script_code))
        + script_code
        + struct.pack("<Q", value)
        + struct.pack("<I", target.sequence)
        + hash_outputs
        + struct.pack("<I", tx.locktime)
        + struct.pack("<I", sighash_type)
    )
    return hash256(preimage)


def sign_segwit_input(
    tx: Transaction,
    input_index: int,
    script_code: bytes,
    value: int,
    private_key: bytes,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    Sign a segwit input with coincurve.

    Returns:
        DER-encoded low-S signature with the sighash type byte appended
    """
    sighash = compute_sighash_segwit(tx, input_index, script_code, value, sighash_type)
    try:
        key = PrivateKey(private_key)
    except ValueError as e:
        raise TransactionSigningError(f"Invalid private key: {e}") from e
    # sighash is already SHA256d, skip coincurve's own hashing
    return key.sign(sighash, hasher=None) + bytes([sighash_type])
