"""
test_position.py - Unit tests for per-participant position reconciliation

Tests:
- Purchases and spending for an early and a late subscriber
- Fractional reward carry between syncs
- Empty positions only stamp the index
- Rounding surplus keeps the stored balance
- Consistency failures (index regression, share mismatch)
"""

import pytest

from streamledger import (
    FixedPoint,
    IndexRegression,
    MAX_UINT256,
    Position,
    ShareMismatch,
    ZERO,
    new_position,
    sync_position,
)


def make_position(in_balance=500_000, shares=500_000, index=ZERO, pending_reward=ZERO, **kwargs):
    return Position(
        in_balance=in_balance,
        shares=shares,
        index=index,
        pending_reward=pending_reward,
        spent_in=kwargs.get("spent_in", 0),
        purchased=kwargs.get("purchased", 0),
        last_update_time=kwargs.get("last_update_time", 0),
        exit_date=kwargs.get("exit_date", 0),
    )


class TestSyncPosition:

    def test_sole_subscriber(self):
        position = make_position()
        synced = sync_position(position, FixedPoint.from_number(1), 500_000, 250_000, 10)

        assert synced.in_balance == 250_000
        assert synced.spent_in == 250_000
        assert synced.purchased == 500_000
        assert synced.pending_reward == ZERO
        assert synced.index == FixedPoint.from_number(1)
        assert synced.last_update_time == 10

    def test_late_subscriber(self):
        position = make_position(in_balance=200_000, shares=240_000, index=FixedPoint.from_number(1))
        synced = sync_position(position, FixedPoint.from_decimal("1.5681"), 440_000, 250_000, 20)

        assert synced.in_balance == 136_363
        assert synced.spent_in == 63_637
        assert synced.purchased == 136_344

    def test_fractional_reward_carried(self):
        position = make_position(in_balance=3, shares=3)
        first = sync_position(position, FixedPoint.from_ratio(1, 2), 3, 3, 1)
        assert first.purchased == 1
        assert first.pending_reward == FixedPoint.from_ratio(1, 2)

        second = sync_position(first, FixedPoint.from_number(1), 3, 3, 2)
        assert second.purchased == 3
        assert second.pending_reward == ZERO

    def test_share_count_near_the_256_bit_limit(self):
        huge = MAX_UINT256 // 100
        position = make_position(in_balance=huge, shares=huge)
        synced = sync_position(position, FixedPoint.from_number(10), huge, huge, 5)
        assert synced.purchased == 10 * huge
        assert synced.pending_reward == ZERO
        assert synced.in_balance == huge

    def test_empty_position_only_stamps_index(self):
        position = new_position(ZERO, 0)
        synced = sync_position(position, FixedPoint.from_number(3), 100, 100, 5)
        assert synced.index == FixedPoint.from_number(3)
        assert synced.last_update_time == 5
        assert synced.purchased == 0
        assert synced.in_balance == 0

    def test_rounding_surplus_keeps_balance(self):
        # pro-rata remainder 11 exceeds the stored balance 10
        position = make_position(in_balance=10, shares=10)
        synced = sync_position(position, ZERO, 10, 11, 3)
        assert synced.in_balance == 10
        assert synced.spent_in == 0

    def test_index_regression_raises(self):
        position = make_position(index=FixedPoint.from_number(2))
        with pytest.raises(IndexRegression):
            sync_position(position, FixedPoint.from_number(1), 500_000, 250_000, 10)

    def test_more_shares_than_pool_raises(self):
        position = make_position(shares=10)
        with pytest.raises(ShareMismatch):
            sync_position(position, ZERO, 5, 5, 1)

    def test_input_not_mutated(self):
        position = make_position()
        sync_position(position, FixedPoint.from_number(1), 500_000, 250_000, 10)
        assert position == make_position()


class TestPositionRecord:

    def test_new_position_is_empty(self):
        position = new_position(FixedPoint.from_number(7), 99)
        assert position.is_empty()
        assert not position.has_exited
        assert position.index == FixedPoint.from_number(7)
        assert position.last_update_time == 99

    def test_negative_field_rejected(self):
        with pytest.raises(ValueError):
            make_position(in_balance=-1)

    def test_exit_date_marks_exited(self):
        assert make_position(exit_date=5).has_exited
