"""
test_stream_lifecycle.py - End-to-end stream lifecycle scenarios

Tests complete streams through the factory and custody:
- Successful stream with an early and a late subscriber
- Threshold missed: everyone refunded, creator gets the out supply back
- Admin cancellation while active
- Withdraw everything and come back later
- Exits before and after finalize
- Several streams sharing one custody
- Random activity replayed from a seed
"""

import pytest

from streamledger import (
    EventType,
    ExitKind,
    InvalidPosition,
    OperationNotAllowed,
    StreamFactory,
    StreamStatus,
    random_schedule,
    replay_schedule,
)

from tests.stream_builders import (
    ADMIN,
    BOOTSTRAPPING_START,
    CREATOR,
    FUNDING,
    IN_ASSET,
    NOW,
    OUT_ASSET,
    OUT_SUPPLY,
    PARTICIPANTS,
    STREAM_END,
    STREAM_START,
    TREASURY,
    make_custody,
    make_params,
    open_stream,
)


MID = STREAM_START + 50_000


def balance(stream, holder, asset):
    return stream.custody.get_balance(holder, asset)


def assert_books_balance(stream):
    result = stream.verify_conservation()
    assert result['valid'], result['discrepancies']
    custody = stream.custody.verify_conservation()
    assert custody['valid'], custody['discrepancies']


class TestSuccessfulStream:
    """Threshold met: creator paid, subscribers keep what they bought."""

    def test_early_and_late_subscriber(self, stream):
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        stream.sync(MID)
        assert stream.distribution.out_remaining == 5_000
        stream.deposit("bob", 1_000, MID)
        assert_books_balance(stream)

        outcome = stream.finalize(CREATOR, STREAM_END)
        assert outcome.status is StreamStatus.FINALIZED_STREAMED
        assert outcome.protocol_fee == 20
        assert outcome.creator_revenue == 1_980
        assert balance(stream, CREATOR, IN_ASSET) == 1_980
        assert balance(stream, TREASURY, IN_ASSET) == 20

        alice = stream.exit("alice", STREAM_END)
        bob = stream.exit("bob", STREAM_END)
        assert (alice.out_amount, alice.in_refund) == (6_666, 0)
        assert (bob.out_amount, bob.in_refund) == (3_333, 0)
        assert balance(stream, "alice", IN_ASSET) == FUNDING - 1_000
        assert balance(stream, "bob", OUT_ASSET) == 3_333

        # the last exit hands the unclaimable index dust to the creator
        assert stream.held(OUT_ASSET) == 0
        assert stream.held(IN_ASSET) == 0
        assert balance(stream, CREATOR, OUT_ASSET) == 1
        assert stream.event_log[-1].event_type is EventType.DUST_SWEPT
        assert stream.event_log[-1].amounts == {OUT_ASSET: 1}
        assert_books_balance(stream)

    def test_exit_before_finalize(self, stream):
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        outcome = stream.exit("alice", STREAM_END)
        assert outcome.kind is ExitKind.STREAMED
        assert outcome.out_amount == OUT_SUPPLY
        assert_books_balance(stream)

        final = stream.finalize(CREATOR, STREAM_END + 5)
        assert final.creator_revenue == 990
        assert final.protocol_fee == 10
        assert stream.held(IN_ASSET) == 0
        assert_books_balance(stream)

    def test_partial_withdrawal_before_start(self, stream):
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        stream.withdraw("alice", 300, STREAM_START)
        stream.finalize(CREATOR, STREAM_END)
        outcome = stream.exit("alice", STREAM_END)
        # 700 shares: the index grows by floor(10000 / 700) = 14.285714
        assert outcome.out_amount == 9_999
        assert outcome.in_refund == 0
        assert balance(stream, "alice", IN_ASSET) == FUNDING - 700
        assert balance(stream, CREATOR, IN_ASSET) == 693
        # nobody can claim the last unit, so it goes back to the creator
        assert balance(stream, CREATOR, OUT_ASSET) == 1
        assert stream.held(OUT_ASSET) == 0
        assert_books_balance(stream)

    def test_dust_swept_at_finalize_when_everyone_left(self, stream):
        stream.deposit("alice", 700, BOOTSTRAPPING_START)
        outcome = stream.exit("alice", STREAM_END)
        assert outcome.out_amount == 9_999
        assert stream.held(OUT_ASSET) == 1

        stream.finalize(CREATOR, STREAM_END)
        assert balance(stream, CREATOR, OUT_ASSET) == 1
        assert stream.held(OUT_ASSET) == 0
        assert stream.held(IN_ASSET) == 0
        assert [e.event_type for e in stream.event_log][-2:] == [
            EventType.FINALIZED_STREAMED,
            EventType.DUST_SWEPT,
        ]
        assert_books_balance(stream)

    def test_no_subscribers_returns_out_supply(self, stream):
        outcome = stream.finalize(CREATOR, STREAM_END)
        assert outcome.out_refund == OUT_SUPPLY
        assert balance(stream, CREATOR, OUT_ASSET) == OUT_SUPPLY
        with pytest.raises(InvalidPosition):
            stream.exit("alice", STREAM_END)

    def test_event_trail(self, stream):
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        stream.sync(MID)
        stream.finalize(CREATOR, STREAM_END)
        stream.exit("alice", STREAM_END)
        assert [e.event_type for e in stream.event_log] == [
            EventType.STREAM_CREATED,
            EventType.SUBSCRIBED,
            EventType.STREAM_SYNCED,
            EventType.FINALIZED_STREAMED,
            EventType.EXIT_STREAMED,
        ]
        assert stream.event_log[-1].to_dict()['amounts'] == {'out_amount': 10_000, 'in_refund': 0}


class TestRefundedStream:
    """Threshold missed or stream cancelled: everyone whole again."""

    def test_threshold_missed(self, threshold_stream):
        stream = threshold_stream
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        stream.deposit("bob", 5_000, MID)
        stream.withdraw("bob", 1_000, MID + 10_000)
        assert not stream.threshold_reached()

        finalized = stream.finalize(CREATOR, STREAM_END)
        assert finalized.status is StreamStatus.FINALIZED_REFUNDED
        assert balance(stream, CREATOR, OUT_ASSET) == OUT_SUPPLY
        assert balance(stream, CREATOR, IN_ASSET) == 0

        for participant in ("alice", "bob"):
            outcome = stream.exit(participant, STREAM_END)
            assert outcome.kind is ExitKind.REFUNDED
            assert balance(stream, participant, IN_ASSET) == FUNDING
            assert balance(stream, participant, OUT_ASSET) == 0
        assert stream.held(IN_ASSET) == 0
        assert_books_balance(stream)

    def test_refund_exit_before_finalize(self, threshold_stream):
        stream = threshold_stream
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        outcome = stream.exit("alice", STREAM_END)
        assert outcome.kind is ExitKind.REFUNDED
        assert outcome.in_refund == 1_000
        assert_books_balance(stream)

    def test_admin_cancel_mid_stream(self, stream):
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        stream.deposit("bob", 2_500, STREAM_START + 20_000)
        refund = stream.cancel(ADMIN, MID)
        assert refund == OUT_SUPPLY
        assert balance(stream, CREATOR, OUT_ASSET) == OUT_SUPPLY

        with pytest.raises(OperationNotAllowed):
            stream.deposit("charlie", 1_000, MID + 1)
        with pytest.raises(OperationNotAllowed):
            stream.finalize(CREATOR, STREAM_END)

        stream.exit("alice", MID + 1)
        stream.exit("bob", STREAM_END + 100)
        assert balance(stream, "alice", IN_ASSET) == FUNDING
        assert balance(stream, "bob", IN_ASSET) == FUNDING
        assert_books_balance(stream)


class TestResubscription:

    def test_leave_and_return(self, stream):
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        assert stream.withdraw("alice", None, STREAM_START) == 1_000
        assert stream.distribution.shares == 0

        # nothing is released while nobody is subscribed
        stream.sync(MID)
        assert stream.distribution.out_remaining == OUT_SUPPLY

        position = stream.deposit("alice", 2_000, MID)
        assert position.shares == 2_000
        stream.finalize(CREATOR, STREAM_END)
        outcome = stream.exit("alice", STREAM_END)
        assert outcome.out_amount == OUT_SUPPLY
        assert stream.get_position("alice").spent_in == 2_000
        assert_books_balance(stream)

    def test_exited_participant_cannot_deposit_again(self, stream):
        stream.deposit("alice", 1_000, BOOTSTRAPPING_START)
        stream.exit("alice", STREAM_END)
        with pytest.raises(OperationNotAllowed):
            stream.deposit("alice", 1_000, STREAM_END)


class TestSharedCustody:

    def test_streams_are_independent(self):
        custody = make_custody(out_supply=2 * OUT_SUPPLY)
        factory = StreamFactory(make_params(), custody)
        kwargs = dict(
            creator=CREATOR, in_asset=IN_ASSET, out_asset=OUT_ASSET, out_supply=OUT_SUPPLY,
            bootstrapping_start=BOOTSTRAPPING_START, stream_start=STREAM_START,
            stream_end=STREAM_END, now=NOW,
        )
        first = factory.create_stream(**kwargs)
        second = factory.create_stream(threshold=10 ** 9, **kwargs)

        first.deposit("alice", 1_000, BOOTSTRAPPING_START)
        second.deposit("alice", 1_000, BOOTSTRAPPING_START)
        first.finalize(CREATOR, STREAM_END)
        second.finalize(CREATOR, STREAM_END)
        first.exit("alice", STREAM_END)
        second.exit("alice", STREAM_END)

        assert first.status is StreamStatus.FINALIZED_STREAMED
        assert second.status is StreamStatus.FINALIZED_REFUNDED
        assert custody.get_balance("alice", OUT_ASSET) == OUT_SUPPLY
        assert custody.get_balance("alice", IN_ASSET) == FUNDING - 1_000
        assert custody.get_balance(CREATOR, OUT_ASSET) == OUT_SUPPLY
        assert custody.get_balance(custody.account, IN_ASSET) == 0
        assert custody.verify_conservation()['valid']


class TestRandomActivity:

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_replayed_stream_closes_out_cleanly(self, seed):
        _, stream = open_stream()
        schedule = random_schedule(seed, PARTICIPANTS, BOOTSTRAPPING_START, STREAM_END, 60)
        replay_schedule(stream, schedule)
        assert_books_balance(stream)

        stream.finalize(CREATOR, STREAM_END)
        for participant, position in sorted(stream.positions.items()):
            # withdrew everything before anything was spent
            if not (position.shares or position.spent_in or position.purchased):
                continue
            stream.exit(participant, STREAM_END)
        assert_books_balance(stream)

        spent = stream.distribution.spent_in
        fee = spent // 100
        assert balance(stream, CREATOR, IN_ASSET) == spent - fee
        assert balance(stream, TREASURY, IN_ASSET) == fee
        assert stream.held(IN_ASSET) == 0
