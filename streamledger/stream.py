"""
stream.py - Stateful Stream Shell

The Stream class is the only place where a stream's state changes. It wraps
the pure transitions of engine.py with everything they deliberately leave
out:

    - Holds the current StreamState and every participant's Position
    - Serializes mutating operations on one stream behind a per-stream lock
    - Moves assets through the AssetCustody collaborator
    - Checks who may finalize or cancel
    - Always logs: every applied operation becomes a StreamEvent

Each mutating method follows the same sequence: compute the next snapshot
with a pure transition, perform the custody transfers it implies, then
commit. Anything raised before the commit leaves the stream exactly as it
was; payouts that already left custody are pulled back first.

Once a closed stream owes nothing to any position, whatever it still holds
(rounding dust of the index and the in supply) goes to the creator and is
logged as DUST_SWEPT, so no unit stays in custody without a claimant.
"""

from __future__ import annotations
import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import ProtocolParams
from .core import (
    EventType, ExitKind, StreamEvent, StreamStatus, StreamError,
    InsufficientFunds, InvalidPosition, Unauthorized,
)
from .custody import AssetCustody
from .distribution import DistributionState
from .engine import (
    StreamState,
    cancel_stream, deposit, exit_stream, finalize_stream, sync_position_at,
    sync_stream, withdraw,
)
from .position import Position, sync_position
from .settlement import ExitOutcome, FinalizeOutcome


_RUNNING = frozenset({StreamStatus.WAITING, StreamStatus.BOOTSTRAPPING, StreamStatus.ACTIVE})


def _reconciled(dist: DistributionState, positions: Mapping[str, Position]) -> Dict[str, Position]:
    result = {}
    for participant in sorted(positions):
        position = positions[participant]
        if position.has_exited:
            result[participant] = position
        else:
            result[participant] = sync_position(
                position, dist.dist_index, dist.shares, dist.in_supply,
                max(position.last_update_time, dist.last_updated),
            )
    return result


class Stream:
    """
    One continuous distribution stream with its positions and audit trail.

    Created by StreamFactory, which validates the terms and pulls the out
    supply into custody before handing the stream over.

    Thread Safety:
        Operations and audit reads on the same Stream are serialized by an
        internal reentrant lock. Different streams share nothing and run
        independently.

    Example:
        stream = factory.create_stream("creator", "USDC", "TOKEN", 10_000, ...)
        stream.deposit("alice", 1_000, now=t0)
        stream.sync(now=t1)
        outcome = stream.exit("alice", now=t_end)
    """

    def __init__(
        self,
        stream_id: int,
        creator: str,
        state: StreamState,
        params: ProtocolParams,
        custody: AssetCustody,
        created_at: int,
        verbose: bool = False,
    ):
        """
        Wrap an already-created stream snapshot.

        Args:
            stream_id: Identifier assigned by the factory
            creator: Wallet that supplied the out asset and receives revenue
            state: Snapshot returned by create_stream
            params: Protocol parameters of the owning factory
            custody: Asset custody the out supply was pulled into
            created_at: Creation time, recorded in the event log
            verbose: Print one line per applied or rejected operation
        """
        if not creator or not creator.strip():
            raise ValueError("creator cannot be empty")
        self.stream_id = stream_id
        self.creator = creator
        self.params = params
        self.custody = custody
        self.verbose = verbose
        self._state = state
        self.positions: Dict[str, Position] = {}
        self.event_log: List[StreamEvent] = []
        self._lock = threading.RLock()
        # Cumulative in asset that entered and left through subscriptions.
        self.total_deposited = 0
        self.total_withdrawn = 0
        # Assets this stream currently has in custody.
        self._held: Dict[str, int] = {
            state.terms.in_asset: 0,
            state.terms.out_asset: state.terms.out_supply,
        }
        self._record(EventType.STREAM_CREATED, created_at, creator, {
            'out_supply': state.terms.out_supply,
            'threshold': state.terms.threshold,
        })

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def status(self) -> StreamStatus:
        return self._state.status

    @property
    def distribution(self) -> DistributionState:
        return self._state.distribution

    @property
    def in_asset(self) -> str:
        return self._state.terms.in_asset

    @property
    def out_asset(self) -> str:
        return self._state.terms.out_asset

    def get_position(self, participant: str) -> Optional[Position]:
        return self.positions.get(participant)

    def threshold_reached(self) -> bool:
        return self._state.threshold_met()

    def held(self, asset: str) -> int:
        """Amount of ``asset`` this stream holds in custody."""
        return self._held.get(asset, 0)

    # ========================================================================
    # OPERATIONS (Mutating)
    # ========================================================================

    def sync(self, now: int) -> StreamState:
        """Advance status and distribution to ``now``. Idempotent at a fixed time."""
        with self._lock:
            try:
                new_state = sync_stream(self._state, now)
            except StreamError as exc:
                self._reject("SYNC", None, exc)
                raise
            changed = new_state != self._state
            self._state = new_state
            if changed:
                dist = new_state.distribution
                self._record(EventType.STREAM_SYNCED, now, None, {
                    'out_remaining': dist.out_remaining,
                    'in_supply': dist.in_supply,
                    'spent_in': dist.spent_in,
                })
            return new_state

    def sync_position(self, participant: str, now: int) -> Position:
        """Reconcile one participant's position at ``now`` without moving balances."""
        with self._lock:
            position = self.positions.get(participant)
            if position is None:
                exc = InvalidPosition(f"{participant} has no position")
                self._reject("SYNC_POSITION", participant, exc)
                raise exc
            try:
                new_state, new_position = sync_position_at(self._state, position, now)
            except StreamError as exc:
                self._reject("SYNC_POSITION", participant, exc)
                raise
            self._state = new_state
            self.positions[participant] = new_position
            return new_position

    def deposit(self, participant: str, amount: int, now: int) -> Position:
        """
        Subscribe ``amount`` of the in asset for ``participant``.

        Raises:
            ValidationError: for a bad amount or a stream not accepting
                subscriptions.
            InsufficientFunds: if the participant cannot cover the amount.
        """
        with self._lock:
            try:
                new_state, new_position = deposit(
                    self._state, self.positions.get(participant), amount, now
                )
                self.custody.pull(participant, self.in_asset, amount)
            except StreamError as exc:
                self._reject("DEPOSIT", participant, exc)
                raise
            minted = new_position.shares - self._shares_of(participant)
            self._state = new_state
            self.positions[participant] = new_position
            self.total_deposited += amount
            self._held[self.in_asset] += amount
            self._record(EventType.SUBSCRIBED, now, participant, {
                'amount_in': amount,
                'shares': minted,
            })
            return new_position

    def withdraw(self, participant: str, cap_amount: Optional[int], now: int) -> int:
        """
        Withdraw unspent in asset; ``cap_amount`` None withdraws everything.

        Returns:
            Amount of in asset released to the participant.
        """
        with self._lock:
            try:
                new_state, new_position, released = withdraw(
                    self._state, self.positions.get(participant), cap_amount, now
                )
                self._pay_out([(participant, self.in_asset, released)])
            except StreamError as exc:
                self._reject("WITHDRAW", participant, exc)
                raise
            burned = self._shares_of(participant) - new_position.shares
            self._state = new_state
            self.positions[participant] = new_position
            self.total_withdrawn += released
            self._record(EventType.WITHDRAWN, now, participant, {
                'amount_in': released,
                'shares': burned,
            })
            return released

    def exit(self, participant: str, now: int) -> ExitOutcome:
        """
        Leave an ended, finalized or cancelled stream.

        Pays out purchased out asset plus unspent in asset (streamed exit),
        or every unit of in asset the participant put in (refund exit).
        The last claimant to leave a closed stream also sends the creator
        whatever rounding dust nobody can claim.
        """
        with self._lock:
            try:
                new_state, new_position, outcome = exit_stream(
                    self._state, self.positions.get(participant), now
                )
                payouts = [
                    (participant, self.out_asset, outcome.out_amount),
                    (participant, self.in_asset, outcome.in_refund),
                ]
                positions = dict(self.positions)
                positions[participant] = new_position
                dust = self._unclaimable(new_state, positions, payouts)
                self._pay_out(payouts + dust)
            except StreamError as exc:
                self._reject("EXIT", participant, exc)
                raise
            self._state = new_state
            self.positions[participant] = new_position
            event_type = (EventType.EXIT_STREAMED if outcome.kind is ExitKind.STREAMED
                          else EventType.EXIT_REFUNDED)
            self._record(event_type, now, participant, {
                'out_amount': outcome.out_amount,
                'in_refund': outcome.in_refund,
            })
            self._record_sweep(dust, now)
            return outcome

    def finalize(self, caller: str, now: int) -> FinalizeOutcome:
        """
        Settle an ended stream: pay the creator and the fee collector, or
        return the out supply if the threshold was missed. Creator only.
        """
        with self._lock:
            try:
                if caller != self.creator:
                    raise Unauthorized(f"{caller} is not the creator of stream {self.stream_id}")
                new_state, outcome = finalize_stream(self._state, self.params, now)
                payouts = [
                    (self.creator, self.in_asset, outcome.creator_revenue),
                    (self.params.fee_collector, self.in_asset, outcome.protocol_fee),
                    (self.creator, self.out_asset, outcome.out_refund),
                ]
                dust = self._unclaimable(new_state, self.positions, payouts)
                self._pay_out(payouts + dust)
            except StreamError as exc:
                self._reject("FINALIZE", caller, exc)
                raise
            self._state = new_state
            event_type = (EventType.FINALIZED_STREAMED
                          if outcome.status is StreamStatus.FINALIZED_STREAMED
                          else EventType.FINALIZED_REFUNDED)
            self._record(event_type, now, caller, {
                'creator_revenue': outcome.creator_revenue,
                'protocol_fee': outcome.protocol_fee,
                'out_refund': outcome.out_refund,
            })
            self._record_sweep(dust, now)
            return outcome

    def cancel(self, caller: str, now: int) -> int:
        """
        Cancel the stream and return the out supply to the creator.

        The creator may cancel while WAITING; the protocol admin may cancel
        until the stream ends.

        Returns:
            Out amount returned to the creator.
        """
        with self._lock:
            try:
                by_admin = caller == self.params.protocol_admin
                if not by_admin and caller != self.creator:
                    raise Unauthorized(f"{caller} cannot cancel stream {self.stream_id}")
                new_state, out_refund = cancel_stream(self._state, now, by_admin=by_admin)
                self._pay_out([(self.creator, self.out_asset, out_refund)])
            except StreamError as exc:
                self._reject("CANCEL", caller, exc)
                raise
            self._state = new_state
            self._record(EventType.CANCELLED, now, caller, {'out_refund': out_refund})
            return out_refund

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    def reconciled_positions(self) -> Dict[str, Position]:
        """
        Every position reconciled against the current distribution, without
        committing anything. Exited positions are returned as stored.
        """
        with self._lock:
            return _reconciled(self._state.distribution, self.positions)

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify the stream's accounting against its positions and custody.

        Checks:
            - position shares sum to the global share total
            - in_supply + spent_in equals deposits minus withdrawals
            - reconciled in balances never exceed the in supply
            - purchases never exceed what was distributed
            - custody holds enough of each asset for everything still owed

        Returns:
            Dict with keys:
            - 'valid': bool - True if every check holds
            - 'owed': Dict[str, int] - amount still owed per asset
            - 'held': Dict[str, int] - amount held in custody per asset
            - 'discrepancies': List[Dict] - description of failed checks
        """
        with self._lock:
            state = self._state
            dist = state.distribution
            positions = _reconciled(dist, self.positions)
            discrepancies = []

            share_total = sum(p.shares for p in self.positions.values())
            if share_total != dist.shares:
                discrepancies.append({'check': 'shares', 'positions': share_total, 'global': dist.shares})

            net_in = self.total_deposited - self.total_withdrawn
            if dist.in_supply + dist.spent_in != net_in:
                discrepancies.append({
                    'check': 'in_accounting',
                    'in_supply_plus_spent': dist.in_supply + dist.spent_in,
                    'deposited_minus_withdrawn': net_in,
                })

            active = [p for p in positions.values() if not p.has_exited]
            balance_total = sum(p.in_balance for p in active)
            if balance_total > dist.in_supply:
                discrepancies.append({'check': 'in_balances', 'positions': balance_total, 'in_supply': dist.in_supply})

            purchased_total = sum(p.purchased for p in positions.values())
            if purchased_total > state.distributed_out():
                discrepancies.append({
                    'check': 'purchased',
                    'positions': purchased_total,
                    'distributed': state.distributed_out(),
                })

            owed = self._owed(state, active)
            for asset, amount in owed.items():
                if self.held(asset) < amount:
                    discrepancies.append({'check': 'solvency', 'asset': asset, 'owed': amount, 'held': self.held(asset)})

            return {
                'valid': len(discrepancies) == 0,
                'owed': owed,
                'held': dict(self._held),
                'discrepancies': discrepancies,
            }

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view of the stream, for reporting and comparisons."""
        with self._lock:
            dist = self._state.distribution
            return {
                'stream_id': self.stream_id,
                'status': self._state.status.value,
                'out_remaining': dist.out_remaining,
                'in_supply': dist.in_supply,
                'shares': dist.shares,
                'dist_index': dist.dist_index.value,
                'spent_in': dist.spent_in,
                'current_streamed_price': dist.current_streamed_price.value,
                'last_updated': dist.last_updated,
                'positions': {
                    name: {
                        'in_balance': p.in_balance,
                        'shares': p.shares,
                        'index': p.index.value,
                        'pending_reward': p.pending_reward.value,
                        'spent_in': p.spent_in,
                        'purchased': p.purchased,
                        'exit_date': p.exit_date,
                    }
                    for name, p in sorted(self.positions.items())
                },
            }

    def __repr__(self) -> str:
        with self._lock:
            dist = self._state.distribution
            return (f"Stream(#{self.stream_id} {self.in_asset}->{self.out_asset} "
                    f"{self._state.status.value} out_remaining={dist.out_remaining} "
                    f"in_supply={dist.in_supply} positions={len(self.positions)})")

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _owed(self, state: StreamState, active: List[Position]) -> Dict[str, int]:
        dist = state.distribution
        status = state.status
        refund_total = sum(p.in_balance + p.spent_in for p in active)
        if status in _RUNNING:
            return {self.in_asset: refund_total, self.out_asset: state.terms.out_supply}
        if status in (StreamStatus.CANCELLED, StreamStatus.FINALIZED_REFUNDED):
            return {self.in_asset: refund_total, self.out_asset: 0}
        if status is StreamStatus.ENDED and not state.threshold_met():
            return {self.in_asset: refund_total, self.out_asset: state.terms.out_supply}
        purchased = sum(p.purchased for p in active)
        in_owed = sum(p.in_balance for p in active)
        if status is StreamStatus.ENDED:
            return {self.in_asset: in_owed + dist.spent_in, self.out_asset: purchased + dist.out_remaining}
        return {self.in_asset: in_owed, self.out_asset: purchased}

    def _unclaimable(
        self,
        state: StreamState,
        positions: Mapping[str, Position],
        payouts: List[Tuple[str, str, int]],
    ) -> List[Tuple[str, str, int]]:
        """
        Transfers sending the creator what would be left over once ``payouts``
        are made, if the stream is closed and no position can claim anything.
        """
        if not state.status.is_terminal():
            return []
        active = [p for p in _reconciled(state.distribution, positions).values() if not p.has_exited]
        if any(self._owed(state, active).values()):
            return []
        remaining = dict(self._held)
        for _, asset, amount in payouts:
            remaining[asset] -= amount
        return [(self.creator, asset, amount) for asset, amount in sorted(remaining.items()) if amount > 0]

    def _shares_of(self, participant: str) -> int:
        position = self.positions.get(participant)
        return 0 if position is None else position.shares

    def _pay_out(self, transfers: List[Tuple[str, str, int]]) -> None:
        """
        Push every (recipient, asset, amount) out of custody, or none of them.

        Each single push is all-or-nothing on the custody side. If a later
        push fails, the earlier ones are pulled back before the error
        propagates, and held balances only change once every push went
        through.
        """
        needed: Dict[str, int] = {}
        for _, asset, amount in transfers:
            needed[asset] = needed.get(asset, 0) + amount
        for asset, amount in needed.items():
            if self.held(asset) < amount:
                raise InsufficientFunds(
                    f"stream {self.stream_id} holds {self.held(asset)} {asset}, owes {amount}"
                )
        done: List[Tuple[str, str, int]] = []
        try:
            for recipient, asset, amount in transfers:
                if amount > 0:
                    self.custody.push(recipient, asset, amount)
                    done.append((recipient, asset, amount))
        except StreamError:
            for recipient, asset, amount in reversed(done):
                self.custody.pull(recipient, asset, amount)
            raise
        for _, asset, amount in done:
            self._held[asset] -= amount

    def _record_sweep(self, dust: List[Tuple[str, str, int]], now: int) -> None:
        if dust:
            self._record(EventType.DUST_SWEPT, now, self.creator,
                         {asset: amount for _, asset, amount in dust})

    def _record(self, event_type: EventType, now: int, participant: Optional[str],
                amounts: Mapping[str, int]) -> StreamEvent:
        event = StreamEvent(
            event_type=event_type,
            stream_id=self.stream_id,
            timestamp=now,
            sequence=len(self.event_log),
            participant=participant,
            amounts=dict(amounts),
        )
        self.event_log.append(event)
        if self.verbose:
            print(f"✓ {event_type.value.upper()}: {event!r}")
        return event

    def _reject(self, operation: str, participant: Optional[str], exc: Exception) -> None:
        if self.verbose:
            who = f" {participant}" if participant else ""
            print(f"✗ REJECTED {operation}{who} on stream {self.stream_id}: "
                  f"{type(exc).__name__}: {exc}")
