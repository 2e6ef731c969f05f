"""
Idempotency Conformance Tests

INVARIANT: Synchronization at a fixed time is idempotent.

    ∀ stream S, time t ≥ last_updated(S):
        sync(sync(S, t), t) = sync(S, t)
        reconcile(reconcile(P, t), t) = reconcile(P, t)

Any caller may sync at any time without changing outcomes, so syncing is
always safe to retry.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from streamledger import EventType, sync_position_at, sync_stream

from tests.stream_builders import (
    BOOTSTRAPPING_START,
    STREAM_END,
    open_stream,
    operation_lists,
    run_operations,
)


class TestIdempotencyProperties:
    """Property-based idempotency tests."""

    @given(operation_lists(), st.integers(min_value=0, max_value=200_000),
           st.integers(min_value=2, max_value=5))
    @settings(max_examples=50)
    def test_repeated_sync_is_idempotent(self, operations, offset, repeats):
        """PROPERTY: syncing again at the same time changes nothing."""
        stream, _, _, _, now = run_operations(operations)
        now += offset
        once = sync_stream(stream, now)
        again = once
        for _ in range(repeats):
            again = sync_stream(again, now)
        assert again == once

    @given(operation_lists(), st.integers(min_value=0, max_value=200_000))
    @settings(max_examples=50)
    def test_repeated_reconcile_is_idempotent(self, operations, offset):
        """PROPERTY: reconciling a position twice at the same time changes nothing."""
        stream, positions, _, _, now = run_operations(operations)
        now += offset
        for position in positions.values():
            stream, once = sync_position_at(stream, position, now)
            stream_again, twice = sync_position_at(stream, once, now)
            assert twice == once
            assert stream_again == stream

    @given(operation_lists(max_size=10), st.integers(min_value=0, max_value=50_000))
    @settings(max_examples=50)
    def test_sync_cadence_does_not_change_end_result(self, operations, step):
        """PROPERTY: an extra sync in between does not change the final distribution."""
        stream, _, _, _, now = run_operations(operations)
        direct = sync_stream(stream, STREAM_END)
        stepped = sync_stream(sync_stream(stream, min(now + step, STREAM_END)), STREAM_END)
        assert direct.distribution.out_remaining == stepped.distribution.out_remaining == (
            0 if stream.distribution.shares else stream.distribution.out_remaining
        )
        assert direct.distribution.spent_in == stepped.distribution.spent_in


class TestIdempotentShell:

    def test_stream_sync_logs_once(self):
        _, stream = open_stream()
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        for _ in range(3):
            stream.sync(STREAM_END - 1)
        synced = [e for e in stream.event_log if e.event_type is EventType.STREAM_SYNCED]
        assert len(synced) == 1

    def test_sync_position_twice(self):
        _, stream = open_stream()
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        first = stream.sync_position("alice", STREAM_END - 1)
        second = stream.sync_position("alice", STREAM_END - 1)
        assert first == second
