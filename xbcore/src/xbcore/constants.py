"""
Chain and swap protocol constants.

Per-chain values here are only defaults; every connector receives its own
validated configuration.
"""

from __future__ import annotations

# Cross-chain addresses carry a fixed-size chain prefix
XADDR_PREFIX_LENGTH = 2

# Base units per coin (satoshis per BTC)
COIN = 100_000_000

# Wei per ether
WEI_PER_ETHER = 10**18

# Locktime windows. The initiator must always wait longer than the responder
# so the responder can redeem with the revealed secret before the initiator
# is able to refund.
INITIATOR_WINDOW_SECONDS = 2 * 60 * 60  # 2h
RESPONDER_WINDOW_SECONDS = 1 * 60 * 60  # 1h

# Fee model weights in bytes: (per input, per output, overhead).
# The deposit spends ordinary wallet outputs, payment/refund spend the
# larger HTLC witness.
DEPOSIT_FEE_WEIGHTS = (148, 34, 10)
PAYMENT_FEE_WEIGHTS = (180, 34, 10)

# Default HTTP timeout for node RPC calls (seconds)
DEFAULT_RPC_TIMEOUT = 30.0

# Length of the secret hash used by both script and contract locks (HASH160)
SECRET_HASH_LENGTH = 20

# Bitcoin Core error code for unknown transactions
BTC_RPC_INVALID_ADDRESS_OR_KEY = -5

# Change below this many base units is added to the fee instead
DUST_THRESHOLD = 546
