"""
Tests for the HTLC script, address and transaction helpers
"""

import hashlib

import pytest
from coincurve import PrivateKey, PublicKey

from xbcore.crypto import hash160
from xbcore.errors import ScriptError, TransactionSigningError

from xbwallet.wallet.address import (
    address_to_scriptpubkey,
    encode_segwit_address,
    pubkey_to_p2wpkh_address,
    script_to_p2wsh_scriptpubkey,
)
from xbwallet.wallet.script import (
    OP_CHECKLOCKTIMEVERIFY,
    OP_ENDIF,
    OP_IF,
    build_htlc_script,
    payment_witness,
    push_data,
    push_int,
    refund_witness,
)
from xbwallet.wallet.transaction import (
    Transaction,
    TxIn,
    TxOut,
    compute_sighash_segwit,
    deserialize_transaction,
    encode_varint,
    read_varint,
    sign_segwit_input,
)

G_PUBKEY = bytes.fromhex("0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798")
OTHER = PrivateKey((0xB0B).to_bytes(32, "big"))
OTHER_PUBKEY = OTHER.public_key.format(compressed=True)
SECRET_HASH = hash160(b"swap secret")


class TestScriptNumbers:
    @pytest.mark.parametrize(
        "n,expected",
        [
            (0, "00"),
            (1, "51"),
            (16, "60"),
            (17, "0111"),
            (128, "028000"),
            (500, "02f401"),
            (800_000, "0300350c"),
        ],
    )
    def test_push_int(self, n, expected):
        assert push_int(n).hex() == expected

    def test_negative_rejected(self):
        with pytest.raises(ScriptError):
            push_int(-1)

    def test_push_data_lengths(self):
        assert push_data(b"\x01" * 20)[0] == 20
        assert push_data(b"\x01" * 80)[:2] == b"\x4c\x50"
        assert push_data(b"\x01" * 300)[:3] == b"\x4d\x2c\x01"


class TestHtlcScript:
    def test_structure(self):
        script = build_htlc_script(G_PUBKEY, OTHER_PUBKEY, SECRET_HASH, 500)
        assert script[0] == OP_IF
        assert script[1:4] == push_int(500)
        assert script[4] == OP_CHECKLOCKTIMEVERIFY
        assert push_data(G_PUBKEY) in script
        assert push_data(OTHER_PUBKEY) in script
        assert push_data(SECRET_HASH) in script
        assert script[-1] == OP_ENDIF
        # refund key sits in the locktime branch, before the secret hash
        assert script.index(G_PUBKEY) < script.index(SECRET_HASH) < script.index(OTHER_PUBKEY)

    @pytest.mark.parametrize(
        "refund,claim,secret_hash,lock_time",
        [
            (G_PUBKEY[1:], OTHER_PUBKEY, SECRET_HASH, 500),
            (G_PUBKEY, b"\x04" + OTHER_PUBKEY[1:], SECRET_HASH, 500),
            (G_PUBKEY, OTHER_PUBKEY, SECRET_HASH + b"\x00", 500),
            (G_PUBKEY, OTHER_PUBKEY, SECRET_HASH, 0),
            (G_PUBKEY, OTHER_PUBKEY, SECRET_HASH, 500_000_000),
        ],
        ids=["short-refund-key", "uncompressed-claim-key", "long-hash", "zero-lock", "timestamp"],
    )
    def test_invalid_parameters(self, refund, claim, secret_hash, lock_time):
        with pytest.raises(ScriptError):
            build_htlc_script(refund, claim, secret_hash, lock_time)

    def test_witnesses(self):
        assert refund_witness(b"sig", b"script") == [b"sig", b"\x01", b"script"]
        assert payment_witness(b"sig", b"secret", b"script") == [
            b"sig",
            b"secret",
            b"",
            b"script",
        ]


class TestAddresses:
    def test_p2wpkh_reference_vector(self):
        assert pubkey_to_p2wpkh_address(G_PUBKEY) == "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"

    def test_p2wsh_address_round_trip(self):
        script = build_htlc_script(G_PUBKEY, OTHER_PUBKEY, SECRET_HASH, 500)
        address = encode_segwit_address(hashlib.sha256(script).digest(), "regtest")
        assert address.startswith("bcrt1q")
        assert address_to_scriptpubkey(address) == script_to_p2wsh_scriptpubkey(script)

    def test_legacy_p2pkh(self):
        spk = address_to_scriptpubkey("1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH")
        assert spk.hex() == "76a914751e76e8199196d454941c45d1b3a323f1433bd688ac"

    def test_invalid_address(self):
        with pytest.raises(ValueError):
            address_to_scriptpubkey("bc1qinvalid")

    def test_unknown_network(self):
        with pytest.raises(ValueError):
            encode_segwit_address(bytes(32), "moonnet")


class TestTransaction:
    def spend(self) -> Transaction:
        payout = address_to_scriptpubkey(pubkey_to_p2wpkh_address(G_PUBKEY))
        return Transaction(
            inputs=[TxIn("11" * 32, 1, sequence=0xFFFFFFFE)],
            outputs=[TxOut(49_000, payout)],
            locktime=700_000,
        )

    @pytest.mark.parametrize("value", [0, 0xFC, 0xFD, 0xFFFF, 0x10000, 0x100000000])
    def test_varint(self, value):
        encoded = encode_varint(value)
        assert read_varint(encoded, 0) == (value, len(encoded))

    def test_signature_verifies(self):
        tx = self.spend()
        script = build_htlc_script(G_PUBKEY, OTHER_PUBKEY, SECRET_HASH, 700_000)

        signature = sign_segwit_input(tx, 0, script, 50_000, OTHER.secret)

        assert signature[-1] == 0x01
        sighash = compute_sighash_segwit(tx, 0, script, 50_000)
        assert PublicKey(OTHER_PUBKEY).verify(signature[:-1], sighash, hasher=None)

    def test_sighash_commits_to_value(self):
        tx = self.spend()
        assert compute_sighash_segwit(tx, 0, b"\x51", 50_000) != compute_sighash_segwit(
            tx, 0, b"\x51", 50_001
        )

    def test_txid_ignores_witness(self):
        tx = self.spend()
        txid = tx.txid()
        tx.inputs[0].witness = [b"sig", b"\x01", b"script"]
        assert tx.has_witness
        assert tx.txid() == txid
        assert tx.vsize() < len(tx.serialize())

    def test_parse_witness_transaction(self):
        tx = self.spend()
        tx.inputs[0].witness = [b"sig", b"", b"script"]

        parsed = deserialize_transaction(tx.serialize())

        assert parsed.locktime == 700_000
        assert parsed.inputs[0].txid == "11" * 32
        assert parsed.inputs[0].sequence == 0xFFFFFFFE
        assert parsed.inputs[0].witness == [b"sig", b"", b"script"]

    def test_parse_rejects_garbage(self):
        raw = self.spend().serialize()
        with pytest.raises(TransactionSigningError):
            deserialize_transaction(raw + b"\x00")
        with pytest.raises(TransactionSigningError):
            deserialize_transaction(raw[:10])

    def test_input_index_out_of_range(self):
        with pytest.raises(TransactionSigningError):
            compute_sighash_segwit(self.spend(), 3, b"\x51", 1)

    def test_invalid_private_key(self):
        with pytest.raises(TransactionSigningError):
            sign_segwit_input(self.spend(), 0, b"\x51", 1, b"\x00" * 32)
