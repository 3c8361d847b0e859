"""
Hashed timelock script for UTXO swap deposits.

Script structure:
    OP_IF
        <locktime> OP_CHECKLOCKTIMEVERIFY OP_DROP
        <depositor_pubkey> OP_CHECKSIG
    OP_ELSE
        OP_HASH160 <secret_hash> OP_EQUALVERIFY
        <counterparty_pubkey> OP_CHECKSIG
    OP_ENDIF

Refund (after locktime):  <signature> OP_TRUE <script>
Payment (with secret):    <signature> <secret> OP_FALSE <script>
"""

from __future__ import annotations

import struct

from xbcore.constants import SECRET_HASH_LENGTH
from xbcore.errors import ScriptError

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E
OP_1 = 0x51
OP_IF = 0x63
OP_ELSE = 0x67
OP_ENDIF = 0x68
OP_DROP = 0x75
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC
OP_CHECKLOCKTIMEVERIFY = 0xB1

# nLockTime values at or above this are unix timestamps, below are heights
LOCKTIME_THRESHOLD = 500_000_000


def push_data(data: bytes) -> bytes:
    length = len(data)
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    elif length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    elif length <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + struct.pack("<H", length) + data
    return bytes([OP_PUSHDATA4]) + struct.pack("<I", length) + data


def push_int(n: int) -> bytes:
    """Push a non-negative script number (minimal encoding)."""
    if n < 0:
        raise ScriptError(f"Negative script number: {n}")
    if n == 0:
        return bytes([OP_0])
    if n <= 16:
        return bytes([OP_1 - 1 + n])
    encoded = bytearray()
    while n:
        encoded.append(n & 0xFF)
        n >>= 8
    # Top bit is the sign bit
    if encoded[-1] & 0x80:
        encoded.append(0x00)
    return push_data(bytes(encoded))


def build_htlc_script(
    refund_pubkey: bytes,
    claim_pubkey: bytes,
    secret_hash: bytes,
    lock_time: int,
) -> bytes:
    """
    Build the deposit witness script.

    Args:
        refund_pubkey: Depositor's compressed pubkey, can spend after lock_time
        claim_pubkey: Counterparty's compressed pubkey, can spend with the secret
        secret_hash: HASH160 of the swap secret
        lock_time: Absolute block height checked by OP_CHECKLOCKTIMEVERIFY

    Raises:
        ScriptError: On malformed keys, hash or locktime
    """
    for name, key in (("refund", refund_pubkey), ("claim", claim_pubkey)):
        if len(key) != 33 or key[0] not in (0x02, 0x03):
            raise ScriptError(f"Invalid compressed {name} pubkey: {key.hex()}")
    if len(secret_hash) != SECRET_HASH_LENGTH:
        raise ScriptError(f"Secret hash must be {SECRET_HASH_LENGTH} bytes, got {len(secret_hash)}")
    if not 0 < lock_time < LOCKTIME_THRESHOLD:
        raise ScriptError(f"Lock time must be a block height, got {lock_time}")

    return (
        bytes([OP_IF])
        + push_int(lock_time)
        + bytes([OP_CHECKLOCKTIMEVERIFY, OP_DROP])
        + push_data(refund_pubkey)
        + bytes([OP_CHECKSIG, OP_ELSE, OP_HASH160])
        + push_data(secret_hash)
        + bytes([OP_EQUALVERIFY])
        + push_data(claim_pubkey)
        + bytes([OP_CHECKSIG, OP_ENDIF])
    )


def refund_witness(signature: bytes, script: bytes) -> list[bytes]:
    return [signature, b"\x01", script]


def payment_witness(signature: bytes, secret: bytes, script: bytes) -> list[bytes]:
    return [signature, secret, b"", script]
