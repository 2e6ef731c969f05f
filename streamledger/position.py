"""
position.py - Per-Participant Position Accounting

A Position is one participant's stake in one stream. It is reconciled lazily:
nothing about it changes while time passes, and sync_position brings it up to
date with the global distribution index and in supply whenever the
participant acts (or anyone asks).

Reconciliation:
    purchased_raw   = shares * (dist_index - position.index) + pending_reward
    purchased      += whole part of purchased_raw
    pending_reward  = fractional part of purchased_raw
    in_remaining    = floor(in_supply * shares / total_shares)
    spent           = in_balance - in_remaining
    in_balance      = in_remaining

The fractional carry means a position that syncs every second buys exactly
the same out amount as one that syncs once at the end.

Rounding surplus: other participants' deposits mint shares rounded down and
their withdrawals burn shares rounded up, which nudges the in supply per
share upward. A position's pro-rata in_remaining can therefore exceed its
stored in_balance by rounding dust. In that case the stored balance is kept
and nothing is recorded as spent; the dust stays in the pool and is consumed
by later syncs. A position's in_balance never grows during reconciliation,
so in_balance + spent_in always equals what the participant deposited minus
what they withdrew.
"""

from __future__ import annotations
from dataclasses import dataclass, replace

from .core import IndexRegression, ShareMismatch
from .fixed_point import FixedPoint, ZERO


@dataclass(frozen=True, slots=True)
class Position:
    """
    Immutable snapshot of one participant's stake in a stream.

    A position with exit_date != 0 has left the stream and is terminal.
    """
    in_balance: int              # Unspent in asset still owned by the participant
    shares: int                  # Claim on the pooled in supply
    index: FixedPoint            # dist_index at the last reconciliation
    pending_reward: FixedPoint   # Fractional out asset carried between syncs
    spent_in: int                # Cumulative in asset consumed
    purchased: int               # Cumulative whole out asset accrued
    last_update_time: int
    exit_date: int = 0

    def __post_init__(self):
        for name in ("in_balance", "shares", "spent_in", "purchased", "last_update_time", "exit_date"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Position.{name} must be int, got {type(value).__name__}")
            if value < 0:
                raise ValueError(f"Position.{name} cannot be negative, got {value}")

    @property
    def has_exited(self) -> bool:
        return self.exit_date != 0

    def is_empty(self) -> bool:
        """No shares and nothing left to withdraw."""
        return self.shares == 0 and self.in_balance == 0


def new_position(dist_index: FixedPoint, now: int) -> Position:
    """An empty position stamped at the current distribution index."""
    return Position(
        in_balance=0,
        shares=0,
        index=dist_index,
        pending_reward=ZERO,
        spent_in=0,
        purchased=0,
        last_update_time=now,
    )


def sync_position(
    position: Position,
    dist_index: FixedPoint,
    total_shares: int,
    in_supply: int,
    now: int,
) -> Position:
    """
    Reconcile a position against the global distribution.

    PURE FUNCTION - returns a new Position.

    Args:
        position: Position to reconcile
        dist_index: Current global distribution index
        total_shares: Current global share total
        in_supply: Current global in supply
        now: Time of the reconciliation

    Raises:
        IndexRegression: if the position's index is ahead of dist_index.
        ShareMismatch: if the position holds more shares than the pool.
    """
    if position.index > dist_index:
        raise IndexRegression(
            f"position index {position.index} is ahead of distribution index {dist_index}"
        )
    if position.shares == 0:
        return replace(position, index=dist_index, last_update_time=now)
    if position.shares > total_shares:
        raise ShareMismatch(
            f"position holds {position.shares} shares but only {total_shares} are outstanding"
        )

    index_diff = dist_index - position.index
    purchased, carry = index_diff.mul_split(position.shares, position.pending_reward)

    in_remaining = in_supply * position.shares // total_shares
    if in_remaining <= position.in_balance:
        spent = position.in_balance - in_remaining
        in_balance = in_remaining
    else:
        spent = 0
        in_balance = position.in_balance

    return replace(
        position,
        in_balance=in_balance,
        index=dist_index,
        pending_reward=carry,
        spent_in=position.spent_in + spent,
        purchased=position.purchased + purchased,
        last_update_time=now,
    )
