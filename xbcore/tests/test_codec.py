"""
Tests for xbcore.codec
"""

import pytest

from xbcore.codec import AddressCodec
from xbcore.errors import AddressCodecError

BTC_PREFIX = bytes.fromhex("0001")
ETH_PREFIX = bytes.fromhex("0002")


@pytest.mark.parametrize(
    "address",
    [
        "bcrt1qw508d6qejxtdg4y5r3zarvary0c5xw7kygt080",
        "1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2",
        "0x52908400098527886E0F7030069857D2E4169EE7",
    ],
)
def test_round_trip(address):
    codec = AddressCodec(BTC_PREFIX)
    xaddr = codec.to_xaddr(address)
    assert xaddr[:2] == BTC_PREFIX
    assert codec.from_xaddr(xaddr) == address


def test_prefix_is_prepended():
    codec = AddressCodec(ETH_PREFIX)
    assert codec.to_xaddr("0xab") == b"\x00\x020xab"


def test_other_chain_prefix_rejected():
    btc = AddressCodec(BTC_PREFIX)
    eth = AddressCodec(ETH_PREFIX)
    with pytest.raises(AddressCodecError, match="does not match"):
        btc.from_xaddr(eth.to_xaddr("0x52908400098527886E0F7030069857D2E4169EE7"))


@pytest.mark.parametrize("xaddr", [b"", b"\x00", b"\x00\x01"])
def test_too_short_rejected(xaddr):
    with pytest.raises(AddressCodecError, match="too short"):
        AddressCodec(BTC_PREFIX).from_xaddr(xaddr)


def test_non_ascii_native_address_rejected():
    with pytest.raises(AddressCodecError):
        AddressCodec(BTC_PREFIX).from_xaddr(BTC_PREFIX + b"\xff\xfe")


def test_non_ascii_address_not_encoded():
    with pytest.raises(AddressCodecError, match="not ASCII"):
        AddressCodec(BTC_PREFIX).to_xaddr("bc1q\u00e9")


@pytest.mark.parametrize("prefix", [b"", b"\x01", b"\x00\x01\x02"])
def test_prefix_length_enforced(prefix):
    with pytest.raises(AddressCodecError):
        AddressCodec(prefix)


def test_codec_error_is_value_error():
    with pytest.raises(ValueError):
        AddressCodec(BTC_PREFIX).from_xaddr(b"\x09\x09abc")


def test_new_key_pair_uses_generator():
    codec = AddressCodec(BTC_PREFIX, keygen=lambda: (b"\x02" + b"\x11" * 32, b"\x22" * 32))
    pubkey, privkey = codec.new_key_pair()
    assert pubkey == b"\x02" + b"\x11" * 32
    assert privkey == b"\x22" * 32


def test_new_key_pair_default_generator():
    pubkey, privkey = AddressCodec(BTC_PREFIX).new_key_pair()
    assert len(pubkey) == 33
    assert pubkey[0] in (2, 3)
    assert len(privkey) == 32
