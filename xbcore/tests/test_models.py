"""
Tests for xbcore.models
"""

import pytest

from xbcore.errors import InvariantViolation
from xbcore.models import (
    BroadcastResult,
    DepositLock,
    SwapRole,
    SwapState,
    TxCheck,
    TxCheckStatus,
    advance_state,
    can_transition,
)
from xbcore.rpc import RpcError, RpcErrorKind


def test_swap_happy_path():
    state = SwapState.INITIATED
    for target in (SwapState.DEPOSIT_BROADCAST, SwapState.DEPOSIT_CONFIRMED, SwapState.PAID):
        state = advance_state(state, target)
    assert state.is_terminal


def test_refund_branch():
    assert can_transition(SwapState.DEPOSIT_CONFIRMED, SwapState.REFUNDED)
    assert SwapState.REFUNDED.is_terminal


@pytest.mark.parametrize(
    "current,target",
    [
        (SwapState.INITIATED, SwapState.DEPOSIT_CONFIRMED),
        (SwapState.DEPOSIT_BROADCAST, SwapState.PAID),
        (SwapState.PAID, SwapState.REFUNDED),
        (SwapState.REFUNDED, SwapState.INITIATED),
    ],
)
def test_illegal_transitions(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvariantViolation):
        advance_state(current, target)


def test_non_terminal_states():
    assert not SwapState.INITIATED.is_terminal
    assert not SwapState.DEPOSIT_CONFIRMED.is_terminal


def test_broadcast_result_codes():
    assert BroadcastResult(txid="ab").ok
    assert BroadcastResult(txid="ab").error_code == 0

    remote = BroadcastResult(error=RpcError(RpcErrorKind.REMOTE, "missing inputs", -25))
    assert not remote.ok
    assert remote.error_code == -25

    transport = BroadcastResult(error=RpcError(RpcErrorKind.TRANSPORT, "down"))
    assert transport.error_code == -1


class TestTxCheck:
    def test_good(self):
        check = TxCheck(TxCheckStatus.GOOD, confirmations=6)
        assert check.found
        assert check.is_good
        assert not check.should_wait

    def test_waiting_states(self):
        assert TxCheck(TxCheckStatus.NOT_FOUND).should_wait
        assert not TxCheck(TxCheckStatus.NOT_FOUND).found
        unconfirmed = TxCheck(TxCheckStatus.UNCONFIRMED, confirmations=4)
        assert unconfirmed.found
        assert unconfirmed.should_wait
        assert not unconfirmed.is_good

    def test_final_failures(self):
        assert not TxCheck(TxCheckStatus.MISMATCH).should_wait
        assert not TxCheck(TxCheckStatus.INCONSISTENT).should_wait

    def test_error_retry_depends_on_kind(self):
        transport = TxCheck(TxCheckStatus.ERROR, error=RpcError(RpcErrorKind.TRANSPORT, "x"))
        malformed = TxCheck(TxCheckStatus.ERROR, error=RpcError(RpcErrorKind.MALFORMED, "x"))
        assert transport.should_wait
        assert not malformed.should_wait
        assert not TxCheck(TxCheckStatus.ERROR).should_wait


def test_deposit_lock_hides_private_key():
    lock = DepositLock(
        role=SwapRole.INITIATOR,
        secret_hash=b"\x01" * 20,
        lock_time=100,
        counterparty="addr",
        my_privkey=b"\x42" * 32,
    )
    assert "my_privkey" not in repr(lock)
