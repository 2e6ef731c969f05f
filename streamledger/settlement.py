"""
settlement.py - Exit Fees and Close-Out Payouts

Pure calculations for what leaves a stream when it closes:

1. calculate_exit_fee / settle_exit: the protocol fee taken from spent in
   asset (fee = floor(spent * ratio), remainder to the beneficiary).
2. threshold_reached: whether the stream raised enough to count as a success.
3. calculate_exit_outcome: what a participant receives on exit, streamed
   (keep purchases, recover unspent) or refunded (recover everything).
4. calculate_finalize_outcome: what the creator and fee collector receive
   when the creator finalizes an ended stream.

Nothing here moves assets. The Stream shell turns these outcomes into
custody transfers.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

from .core import (
    ArithmeticUnderflow, ExitKind, OperationNotAllowed, StreamStatus,
)
from .distribution import DistributionState
from .fixed_point import FixedPoint
from .position import Position


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class ExitOutcome:
    """Amounts owed to a participant leaving a closed stream."""
    kind: ExitKind
    out_amount: int    # Out asset paid to the participant
    in_refund: int     # In asset returned to the participant


@dataclass(frozen=True, slots=True)
class FinalizeOutcome:
    """
    Amounts released when the creator finalizes an ended stream.

    creator_revenue and protocol_fee are in asset; out_refund is out asset
    returned to the creator (undistributed remainder, or everything when the
    stream is refunded).
    """
    status: StreamStatus
    creator_revenue: int
    protocol_fee: int
    out_refund: int


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_exit_fee(spent_in: int, exit_fee_ratio: FixedPoint) -> Tuple[int, int]:
    """
    Split spent in asset into (fee, remaining).

    fee = floor(spent_in * exit_fee_ratio); remaining = spent_in - fee.

    Example:
        calculate_exit_fee(1000, FixedPoint.from_decimal("0.02")) -> (20, 980)

    Raises:
        ArithmeticUnderflow: if the ratio exceeds 1 (fee larger than spent).
    """
    fee = exit_fee_ratio.mul_floor(spent_in)
    if fee > spent_in:
        raise ArithmeticUnderflow(f"exit fee {fee} exceeds spent amount {spent_in}")
    return fee, spent_in - fee


def settle_exit(position: Position, exit_fee_ratio: FixedPoint) -> Tuple[int, int]:
    """(net_amount, fee_amount) of a position's spent in asset."""
    fee, net = calculate_exit_fee(position.spent_in, exit_fee_ratio)
    return net, fee


def threshold_reached(distribution: DistributionState, threshold: int) -> bool:
    return distribution.spent_in >= threshold


def calculate_exit_outcome(position: Position, status: StreamStatus, threshold_met: bool) -> ExitOutcome:
    """
    Payout for a (reconciled) position leaving a stream in ``status``.

    Streamed exit: FINALIZED_STREAMED, or ENDED with the threshold met.
    Refund exit: CANCELLED, FINALIZED_REFUNDED, or ENDED below threshold.

    Raises:
        OperationNotAllowed: if the stream is still running.
    """
    if status is StreamStatus.FINALIZED_STREAMED or (status is StreamStatus.ENDED and threshold_met):
        return ExitOutcome(
            kind=ExitKind.STREAMED,
            out_amount=position.purchased,
            in_refund=position.in_balance,
        )
    if status in (StreamStatus.CANCELLED, StreamStatus.FINALIZED_REFUNDED, StreamStatus.ENDED):
        return ExitOutcome(
            kind=ExitKind.REFUNDED,
            out_amount=0,
            in_refund=position.in_balance + position.spent_in,
        )
    raise OperationNotAllowed(f"cannot exit a stream in status {status.value}")


def calculate_finalize_outcome(
    distribution: DistributionState,
    out_supply: int,
    threshold: int,
    exit_fee_ratio: FixedPoint,
) -> FinalizeOutcome:
    """
    Creator payout for an ended stream.

    Threshold met: the spent in asset is split into protocol fee and creator
    revenue, and any out asset that was never distributed goes back to the
    creator. Threshold missed: the entire out supply goes back to the creator
    and participants recover their in asset through refund exits.
    """
    if threshold_reached(distribution, threshold):
        fee, revenue = calculate_exit_fee(distribution.spent_in, exit_fee_ratio)
        return FinalizeOutcome(
            status=StreamStatus.FINALIZED_STREAMED,
            creator_revenue=revenue,
            protocol_fee=fee,
            out_refund=distribution.out_remaining,
        )
    return FinalizeOutcome(
        status=StreamStatus.FINALIZED_REFUNDED,
        creator_revenue=0,
        protocol_fee=0,
        out_refund=out_supply,
    )
