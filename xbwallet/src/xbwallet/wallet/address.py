"""
Bitcoin address utilities for swap lock outputs.
"""

from __future__ import annotations

import hashlib

import base58
import bech32

from xbcore.crypto import hash160

BECH32_HRP = {
    "mainnet": "bc",
    "testnet": "tb",
    "signet": "tb",
    "regtest": "bcrt",
}


def get_bech32_hrp(network: str) -> str:
    try:
        return BECH32_HRP[network]
    except KeyError:
        raise ValueError(f"Unknown network: {network}") from None


def encode_segwit_address(witness_program: bytes, network: str) -> str:
    address = bech32.encode(get_bech32_hrp(network), 0, witness_program)
    if address is None:
        raise ValueError(f"Failed to encode witness program: {witness_program.hex()}")
    return address


def pubkey_to_p2wpkh_address(pubkey: bytes, network: str = "mainnet") -> str:
    """Convert compressed public key to P2WPKH (native segwit) address."""
    if len(pubkey) != 33:
        raise ValueError(f"Invalid compressed pubkey length: {len(pubkey)}")
    return encode_segwit_address(hash160(pubkey), network)


def script_to_p2wsh_scriptpubkey(script: bytes) -> bytes:
    """P2WSH scriptPubKey: OP_0 <32-byte-hash>"""
    return bytes([0x00, 0x20]) + hashlib.sha256(script).digest()


def address_to_scriptpubkey(address: str) -> bytes:
    """
    Convert a Bitcoin address to scriptPubKey.

    Supports P2WPKH, P2WSH, P2TR (bech32/bech32m) and legacy P2PKH/P2SH.
    """
    lowered = address.lower()
    for hrp in ("bcrt", "bc", "tb"):
        if lowered.startswith(hrp + "1"):
            witver, witprog = bech32.decode(hrp, lowered)
            if witver is None or witprog is None:
                raise ValueError(f"Invalid bech32 address: {address}")
            program = bytes(witprog)
            if witver == 0 and len(program) in (20, 32):
                return bytes([0x00, len(program)]) + program
            if witver == 1 and len(program) == 32:
                return bytes([0x51, 0x20]) + program
            raise ValueError(f"Unsupported witness version: {witver}")

    decoded = base58.b58decode_check(address)
    version = decoded[0]
    payload = decoded[1:]

    if version in (0x00, 0x6F):
        # OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG
        return bytes([0x76, 0xA9, 0x14]) + payload + bytes([0x88, 0xAC])
    elif version in (0x05, 0xC4):
        # OP_HASH160 <20-byte-scripthash> OP_EQUAL
        return bytes([0xA9, 0x14]) + payload + bytes([0x87])

    raise ValueError(f"Unknown address version: {version}")
