"""
Atomicity Conformance Tests

INVARIANT: Operations are all-or-nothing.

    ∀ operation op on stream S:
        op raises ⟹ state(S) after = state(S) before
                     custody balances after = custody balances before
                     event log after = event log before

Transitions compute the next snapshot first and commit only once every
check and transfer succeeded.
"""

import copy

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from streamledger import (
    InsufficientFunds,
    OperationNotAllowed,
    StreamError,
    Unauthorized,
    WithdrawAmountExceedsBalance,
    deposit,
    withdraw,
)

from tests.stream_builders import (
    BOOTSTRAPPING_START,
    CREATOR,
    IN_ASSET,
    NOW,
    OUT_ASSET,
    PARTICIPANTS,
    STREAM_END,
    STREAM_START,
    open_stream,
    operation_lists,
    run_operations,
)


def footprint(stream):
    """Everything a failed operation must leave untouched."""
    custody = stream.custody
    return (
        stream.snapshot(),
        len(stream.event_log),
        copy.deepcopy({h: dict(b) for h, b in custody.balances.items()}),
        len(custody.transfer_log),
        stream.total_deposited,
        stream.total_withdrawn,
    )


class TestPureTransitionsDoNotMutate:

    @given(operation_lists(), st.sampled_from(PARTICIPANTS))
    @settings(max_examples=50)
    def test_rejected_withdraw_returns_no_state(self, operations, who):
        """PROPERTY: asking for more than the balance fails and leaves inputs intact."""
        stream, positions, _, _, now = run_operations(operations)
        position = positions.get(who)
        if position is None or position.in_balance == 0:
            return
        before = (stream, position)
        with pytest.raises(StreamError):
            withdraw(stream, position, position.in_balance + 1, now)
        assert (stream, position) == before

    @given(operation_lists())
    @settings(max_examples=50)
    def test_deposit_after_end_rejected(self, operations):
        stream, positions, _, _, _ = run_operations(operations)
        with pytest.raises(OperationNotAllowed):
            deposit(stream, None, 1_000, STREAM_END)


class TestShellAtomicity:

    def test_overdraft_withdraw(self):
        _, stream = open_stream()
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        before = footprint(stream)
        with pytest.raises(WithdrawAmountExceedsBalance):
            stream.withdraw("alice", 1_001, STREAM_START)
        assert footprint(stream) == before

    def test_unfunded_deposit(self):
        _, stream = open_stream()
        before = footprint(stream)
        with pytest.raises(InsufficientFunds):
            stream.deposit("mallory", 1_000, BOOTSTRAPPING_START)
        assert footprint(stream) == before

    def test_unauthorized_finalize(self):
        _, stream = open_stream()
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        before = footprint(stream)
        with pytest.raises(Unauthorized):
            stream.finalize("alice", STREAM_END)
        assert footprint(stream) == before

    def test_custody_shortfall_on_exit(self):
        _, stream = open_stream()
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        # drain the out asset behind the stream's back
        stream.custody.push(CREATOR, OUT_ASSET, 10)
        stream._held[OUT_ASSET] -= 10
        before = footprint(stream)
        with pytest.raises(InsufficientFunds):
            stream.exit("alice", STREAM_END)
        assert footprint(stream) == before
        assert not stream.get_position("alice").has_exited

    def test_rejected_cancel(self):
        _, stream = open_stream()
        stream.sync(BOOTSTRAPPING_START)
        before = footprint(stream)
        with pytest.raises(OperationNotAllowed):
            stream.cancel(CREATOR, BOOTSTRAPPING_START)
        assert footprint(stream) == before
        assert stream.custody.get_balance(CREATOR, OUT_ASSET) == 0

    def test_sequence_survives_rejections(self):
        _, stream = open_stream()
        with pytest.raises(OperationNotAllowed):
            stream.deposit("alice", 1_000, NOW)
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        assert [e.sequence for e in stream.event_log] == [0, 1]
        assert stream.custody.get_balance(stream.custody.account, IN_ASSET) == 1_000
