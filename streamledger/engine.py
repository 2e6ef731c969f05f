"""
engine.py - Pure Stream Transitions

Every operation a stream supports, written as a pure function from the
current snapshot and inputs to the next snapshot:

    create_stream(terms, params, now)                -> StreamState
    sync_stream(stream, now)                         -> StreamState
    sync_position_at(stream, position, now)          -> (StreamState, Position)
    deposit(stream, position, amount_in, now)        -> (StreamState, Position)
    withdraw(stream, position, cap_amount, now)      -> (StreamState, Position, released)
    exit_stream(stream, position, now)               -> (StreamState, Position, ExitOutcome)
    finalize_stream(stream, params, now)             -> (StreamState, FinalizeOutcome)
    cancel_stream(stream, now, by_admin)             -> (StreamState, out_refund)
    settle_exit(position, exit_fee_ratio)            -> (net_amount, fee_amount)

Ordering contract: every operation first syncs the stream to ``now`` (which
also recomputes the status), then reconciles the position it touches, and
only then validates phase-dependent rules and applies its own delta.

Inputs are never mutated. A raised exception means no new snapshot exists,
so callers that only commit returned values get all-or-nothing semantics for
free. Authorization (who may finalize or cancel) is the caller's concern.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .config import ProtocolParams, StreamTerms
from .core import (
    MAX_UINT256, StreamStatus, StreamTimes,
    DecimalOverflow, DurationTooShort, InvalidAmount, InvalidPosition,
    InvalidStreamTimes, OperationNotAllowed, ShareMismatch, TimeRegression,
    WithdrawAmountExceedsBalance,
    require_amount,
)
from .distribution import (
    DistributionState, calculate_diff, initial_distribution, sync_distribution,
)
from .phase import status_at
from .position import Position, new_position, sync_position
from .settlement import (
    ExitOutcome, FinalizeOutcome,
    calculate_exit_outcome, calculate_finalize_outcome, settle_exit, threshold_reached,
)
from .shares import compute_shares


# ============================================================================
# STREAM SNAPSHOT
# ============================================================================

@dataclass(frozen=True, slots=True)
class StreamState:
    """
    Immutable snapshot of one stream: its term sheet, status and global
    distribution accounting. Each transition creates a NEW instance.
    """
    terms: StreamTerms
    status: StreamStatus
    distribution: DistributionState

    @property
    def times(self) -> StreamTimes:
        return self.terms.times

    def threshold_met(self) -> bool:
        return threshold_reached(self.distribution, self.terms.threshold)

    def distributed_out(self) -> int:
        """Out asset moved into the distribution index so far."""
        return self.terms.out_supply - self.distribution.out_remaining


# ============================================================================
# CREATION
# ============================================================================

def create_stream(terms: StreamTerms, params: ProtocolParams, now: int) -> StreamState:
    """
    Validate a term sheet against protocol minimums and open the stream.

    Raises:
        InvalidAmount: if the out supply is zero.
        InvalidStreamTimes: if bootstrapping would start in the past.
        DurationTooShort: if any phase is shorter than the protocol minimum.
    """
    if terms.out_supply == 0:
        raise InvalidAmount("out supply must be positive")
    times = terms.times
    if times.bootstrapping_start < now:
        raise InvalidStreamTimes(
            f"bootstrapping_start {times.bootstrapping_start} is before now {now}"
        )
    if times.bootstrapping_start - now < params.min_waiting_duration:
        raise DurationTooShort(
            f"waiting duration {times.bootstrapping_start - now} is below "
            f"the minimum {params.min_waiting_duration}"
        )
    if times.bootstrapping_duration < params.min_bootstrapping_duration:
        raise DurationTooShort(
            f"bootstrapping duration {times.bootstrapping_duration} is below "
            f"the minimum {params.min_bootstrapping_duration}"
        )
    if times.stream_duration < params.min_stream_duration:
        raise DurationTooShort(
            f"stream duration {times.stream_duration} is below "
            f"the minimum {params.min_stream_duration}"
        )
    return StreamState(
        terms=terms,
        status=status_at(StreamStatus.WAITING, now, times),
        distribution=initial_distribution(terms.out_supply, now),
    )


# ============================================================================
# SYNCHRONIZATION
# ============================================================================

def sync_stream(stream: StreamState, now: int) -> StreamState:
    """
    Bring status and distribution up to ``now``.

    Always legal and idempotent at a fixed ``now``. A terminal stream is
    frozen and returned unchanged.

    Raises:
        TimeRegression: if ``now`` is earlier than the last sync.
    """
    if stream.status.is_terminal():
        return stream
    dist = stream.distribution
    if now < dist.last_updated:
        raise TimeRegression(f"cannot sync at {now}: stream was last synced at {dist.last_updated}")
    times = stream.terms.times
    diff = calculate_diff(now, times.stream_start, times.stream_end, dist.last_updated)
    return StreamState(
        terms=stream.terms,
        status=status_at(stream.status, now, times),
        distribution=sync_distribution(
            dist, diff, now, stream.terms.in_decimals, stream.terms.out_decimals
        ),
    )


def _reconcile(stream: StreamState, position: Position, now: int) -> Position:
    dist = stream.distribution
    return sync_position(position, dist.dist_index, dist.shares, dist.in_supply, now)


def sync_position_at(stream: StreamState, position: Position, now: int) -> Tuple[StreamState, Position]:
    """Sync the stream, then reconcile one position; no balances move."""
    stream = sync_stream(stream, now)
    return stream, _reconcile(stream, position, now)


# ============================================================================
# SUBSCRIPTION: DEPOSIT / WITHDRAW
# ============================================================================

def deposit(
    stream: StreamState,
    position: Optional[Position],
    amount_in: int,
    now: int,
) -> Tuple[StreamState, Position]:
    """
    Add ``amount_in`` to the pool on behalf of a position.

    ``position`` is None for a participant's first deposit. Shares are minted
    rounded down.

    Raises:
        InvalidAmount: if the amount is not positive or too small to mint a share.
        OperationNotAllowed: unless the stream is BOOTSTRAPPING or ACTIVE at ``now``.
        InvalidPosition: if the position has already exited.
    """
    require_amount(amount_in, "amount_in")
    stream = sync_stream(stream, now)
    if not stream.status.accepts_subscriptions():
        raise OperationNotAllowed(f"cannot subscribe while stream is {stream.status.value}")

    dist = stream.distribution
    if position is None:
        position = new_position(dist.dist_index, now)
    elif position.has_exited:
        raise InvalidPosition("position has already exited")
    position = _reconcile(stream, position, now)

    minted = compute_shares(amount_in, False, dist.in_supply, dist.shares)
    if minted == 0:
        raise InvalidAmount(f"amount {amount_in} is too small to mint a share")
    if dist.in_supply + amount_in > MAX_UINT256 or dist.shares + minted > MAX_UINT256:
        raise DecimalOverflow("deposit would exceed the 256-bit range")

    new_dist = replace(dist, in_supply=dist.in_supply + amount_in, shares=dist.shares + minted)
    new_position_state = replace(
        position,
        in_balance=position.in_balance + amount_in,
        shares=position.shares + minted,
    )
    return replace(stream, distribution=new_dist), new_position_state


def withdraw(
    stream: StreamState,
    position: Optional[Position],
    cap_amount: Optional[int],
    now: int,
) -> Tuple[StreamState, Position, int]:
    """
    Take unspent in asset back out of the pool.

    ``cap_amount`` None withdraws the whole remaining balance. Shares are
    burned rounded up; withdrawing the whole balance burns all of the
    position's shares.

    Returns:
        (new stream, new position, amount released to the participant)

    Raises:
        InvalidPosition: if there is no position, it has exited, or it has
            no in balance left.
        OperationNotAllowed: unless the stream is BOOTSTRAPPING or ACTIVE at ``now``.
        WithdrawAmountExceedsBalance: if cap_amount exceeds the reconciled balance.
    """
    if position is None:
        raise InvalidPosition("no position to withdraw from")
    if position.has_exited:
        raise InvalidPosition("position has already exited")
    if cap_amount is not None:
        require_amount(cap_amount, "cap_amount")

    stream = sync_stream(stream, now)
    if not stream.status.accepts_subscriptions():
        raise OperationNotAllowed(f"cannot withdraw while stream is {stream.status.value}")
    position = _reconcile(stream, position, now)
    if position.in_balance == 0:
        raise InvalidPosition("position has no in balance left to withdraw")

    dist = stream.distribution
    if cap_amount is None or cap_amount == position.in_balance:
        amount = position.in_balance
        burned = position.shares
    else:
        if cap_amount > position.in_balance:
            raise WithdrawAmountExceedsBalance(
                f"requested {cap_amount} but only {position.in_balance} is available"
            )
        amount = cap_amount
        burned = compute_shares(amount, True, dist.in_supply, dist.shares)
    if burned > position.shares:
        raise ShareMismatch(f"burning {burned} shares from a position holding {position.shares}")

    new_dist = replace(dist, in_supply=dist.in_supply - amount, shares=dist.shares - burned)
    new_position_state = replace(
        position,
        in_balance=position.in_balance - amount,
        shares=position.shares - burned,
    )
    return replace(stream, distribution=new_dist), new_position_state, amount


# ============================================================================
# CLOSE-OUT: EXIT / FINALIZE / CANCEL
# ============================================================================

def exit_stream(
    stream: StreamState,
    position: Optional[Position],
    now: int,
) -> Tuple[StreamState, Position, ExitOutcome]:
    """
    Close a position once the stream can no longer change.

    Legal when the stream is ENDED or terminal. The returned position keeps
    its final accounting and is stamped with exit_date = now.

    Raises:
        InvalidPosition: if there is no position, it already exited, or it
            never held anything.
        OperationNotAllowed: if the stream is still running.
    """
    if position is None:
        raise InvalidPosition("no position to exit")
    if position.has_exited:
        raise InvalidPosition("position has already exited")

    stream = sync_stream(stream, now)
    if not (stream.status is StreamStatus.ENDED or stream.status.is_terminal()):
        raise OperationNotAllowed(f"cannot exit while stream is {stream.status.value}")
    position = _reconcile(stream, position, now)
    if position.is_empty() and position.spent_in == 0 and position.purchased == 0:
        raise InvalidPosition("position holds nothing to exit with")

    outcome = calculate_exit_outcome(position, stream.status, stream.threshold_met())
    return stream, replace(position, exit_date=now), outcome


def finalize_stream(
    stream: StreamState,
    params: ProtocolParams,
    now: int,
) -> Tuple[StreamState, FinalizeOutcome]:
    """
    Settle an ENDED stream for its creator.

    Raises:
        OperationNotAllowed: unless the stream is ENDED at ``now`` (this also
            rejects finalizing twice).
    """
    stream = sync_stream(stream, now)
    if stream.status is not StreamStatus.ENDED:
        raise OperationNotAllowed(f"cannot finalize a stream in status {stream.status.value}")
    outcome = calculate_finalize_outcome(
        stream.distribution,
        stream.terms.out_supply,
        stream.terms.threshold,
        params.exit_fee_ratio,
    )
    return replace(stream, status=outcome.status), outcome


_CREATOR_CANCELLABLE = frozenset({StreamStatus.WAITING})
_ADMIN_CANCELLABLE = frozenset({
    StreamStatus.WAITING, StreamStatus.BOOTSTRAPPING, StreamStatus.ACTIVE,
})


def cancel_stream(stream: StreamState, now: int, by_admin: bool = False) -> Tuple[StreamState, int]:
    """
    Abort a stream and return its whole out supply to the creator.

    The creator may cancel only before bootstrapping starts; the protocol
    admin may cancel any time before the stream ends.

    Returns:
        (cancelled stream, out amount owed back to the creator)
    """
    stream = sync_stream(stream, now)
    allowed = _ADMIN_CANCELLABLE if by_admin else _CREATOR_CANCELLABLE
    if stream.status not in allowed:
        raise OperationNotAllowed(f"cannot cancel a stream in status {stream.status.value}")
    return replace(stream, status=StreamStatus.CANCELLED), stream.terms.out_supply


__all__ = [
    'StreamState',
    'create_stream', 'sync_stream', 'sync_position_at',
    'deposit', 'withdraw',
    'exit_stream', 'finalize_stream', 'cancel_stream', 'settle_exit',
]
