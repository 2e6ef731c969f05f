"""
distribution.py - Global Distribution State and Synchronization

This module owns the per-stream accounting that every position is reconciled
against:

1. DistributionState: immutable snapshot of the pooled in supply, the
   undistributed out asset, the share total and the cumulative index.
2. calculate_diff: fraction of the *remaining* stream window that elapsed
   since the last sync.
3. sync_distribution: consumes that fraction, moving in supply to spent and
   out asset into the distribution index.
4. normalize_amount / compute_streamed_price: the single place where
   amounts of differently-scaled assets are brought to a common scale.

Key formulas (all floors):
    distribution_balance = floor(out_remaining * diff)
    spent                = floor(in_supply * diff)
    dist_index          += distribution_balance / shares
    streamed_price       = norm(spent) / norm(distribution_balance)

Because diff is a fraction of what *remains*, a sync at the stream end has
diff == 1 and drains both the in supply and the out remaining completely,
however irregular the earlier syncs were.
"""

from __future__ import annotations
from dataclasses import dataclass, replace

from .core import NORMALIZED_DECIMALS, ArithmeticUnderflow
from .fixed_point import FixedPoint, ZERO


# ============================================================================
# STATE
# ============================================================================

@dataclass(frozen=True, slots=True)
class DistributionState:
    """
    Immutable global accounting of one stream.

    Each sync, deposit or withdrawal creates a NEW instance.

    Invariants kept by the functions of this module and engine.py:
        - out_remaining only decreases
        - spent_in only increases
        - dist_index never decreases
        - shares change only through deposits and withdrawals
    """
    out_remaining: int                   # Out asset not yet distributed
    in_supply: int                       # Pooled in asset not yet spent
    shares: int                          # Total shares outstanding
    dist_index: FixedPoint               # Cumulative out distributed per share
    spent_in: int                        # Cumulative in asset consumed
    current_streamed_price: FixedPoint   # In per out of the most recent sync
    last_updated: int                    # Time of the most recent sync

    def __post_init__(self):
        for name in ("out_remaining", "in_supply", "shares", "spent_in", "last_updated"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"DistributionState.{name} must be int, got {type(value).__name__}")
            if value < 0:
                raise ValueError(f"DistributionState.{name} cannot be negative, got {value}")
        if not isinstance(self.dist_index, FixedPoint):
            raise ValueError("DistributionState.dist_index must be FixedPoint")
        if not isinstance(self.current_streamed_price, FixedPoint):
            raise ValueError("DistributionState.current_streamed_price must be FixedPoint")


def initial_distribution(out_supply: int, now: int) -> DistributionState:
    """Fresh state holding the whole out supply and nothing else."""
    return DistributionState(
        out_remaining=out_supply,
        in_supply=0,
        shares=0,
        dist_index=ZERO,
        spent_in=0,
        current_streamed_price=ZERO,
        last_updated=now,
    )


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_diff(now: int, stream_start: int, stream_end: int, last_updated: int) -> FixedPoint:
    """
    Fraction of the remaining window [max(last_updated, start), end] that has
    elapsed by ``now``.

    Returns 0 before the stream starts, once the stream was already synced at
    or after its end, and whenever no time (or no window) is left.

    Example:
        start=200, end=300, last_updated=220, now=250 -> 30/80 = 0.375
    """
    if now < stream_start:
        return ZERO
    if last_updated >= stream_end:
        return ZERO
    now_effective = min(now, stream_end)
    last_effective = max(last_updated, stream_start)
    numerator = now_effective - last_effective
    denominator = stream_end - last_effective
    if numerator <= 0 or denominator <= 0:
        return ZERO
    return FixedPoint.from_ratio(numerator, denominator)


def normalize_amount(amount: int, decimals: int, target: int = NORMALIZED_DECIMALS) -> int:
    """Rescale an amount with ``decimals`` native digits to ``target`` digits."""
    if decimals <= target:
        return amount * 10 ** (target - decimals)
    return amount // 10 ** (decimals - target)


def compute_streamed_price(
    spent: int,
    distribution_balance: int,
    in_decimals: int,
    out_decimals: int,
) -> FixedPoint:
    """
    In asset paid per unit of out asset.

    Both sides are scaled up to the wider of NORMALIZED_DECIMALS and the two
    asset precisions, so neither amount is truncated and a positive
    distribution_balance never normalizes to zero.
    """
    target = max(NORMALIZED_DECIMALS, in_decimals, out_decimals)
    return FixedPoint.from_ratio(
        normalize_amount(spent, in_decimals, target),
        normalize_amount(distribution_balance, out_decimals, target),
    )


def sync_distribution(
    state: DistributionState,
    diff: FixedPoint,
    now: int,
    in_decimals: int,
    out_decimals: int,
) -> DistributionState:
    """
    Advance the global distribution by ``diff`` of the remaining window.

    PURE FUNCTION - returns a new state, the input is not touched.

    Nothing but last_updated changes when no shares are outstanding or diff
    is zero. The distribution index and streamed price move only when a
    positive out amount is released; the in side is consumed regardless.

    Raises:
        ArithmeticUnderflow: if diff exceeds 1, which would spend more than
            the in supply.
    """
    if state.shares == 0 or diff.is_zero():
        return replace(state, last_updated=now)

    distribution_balance = diff.mul_floor(state.out_remaining)
    spent = diff.mul_floor(state.in_supply)
    if spent > state.in_supply or distribution_balance > state.out_remaining:
        raise ArithmeticUnderflow(f"sync fraction {diff} exceeds the remaining window")

    out_remaining = state.out_remaining
    dist_index = state.dist_index
    price = state.current_streamed_price
    if distribution_balance > 0:
        out_remaining -= distribution_balance
        dist_index = dist_index + FixedPoint.from_ratio(distribution_balance, state.shares)
        price = compute_streamed_price(spent, distribution_balance, in_decimals, out_decimals)

    return DistributionState(
        out_remaining=out_remaining,
        in_supply=state.in_supply - spent,
        shares=state.shares,
        dist_index=dist_index,
        spent_in=state.spent_in + spent,
        current_streamed_price=price,
        last_updated=now,
    )
