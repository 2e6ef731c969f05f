"""
analytics.py - Scenario Schedules and Outcome Analysis

Tools for exercising a stream with many participants and looking at who got
what:

1. ScheduledAction / random_schedule: reproducible random subscription
   activity drawn from numpy's Generator (same seed, same schedule).
2. replay_schedule: applies a schedule to a Stream in time order.
3. position_table / effective_prices / purchase_shares: per-participant
   outcome arrays for reporting.

Arrays here are float64 and meant for reporting. The exact integer amounts
always remain on the Position records.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np

from .core import NORMALIZED_DECIMALS
from .stream import Stream


ACTION_DEPOSIT = "deposit"
ACTION_WITHDRAW = "withdraw"
ACTION_SYNC = "sync"


@dataclass(frozen=True, slots=True)
class ScheduledAction:
    """
    One step of a scenario.

    deposit uses ``amount``; withdraw takes ``fraction`` of the participant's
    reconciled in balance; sync only advances the stream.
    """
    time: int
    participant: str
    kind: str
    amount: int = 0
    fraction: float = 0.0

    def __post_init__(self):
        if self.kind not in (ACTION_DEPOSIT, ACTION_WITHDRAW, ACTION_SYNC):
            raise ValueError(f"Unknown action kind: {self.kind}")
        if self.kind == ACTION_DEPOSIT and self.amount <= 0:
            raise ValueError(f"deposit amount must be positive, got {self.amount}")
        if self.kind == ACTION_WITHDRAW and not 0.0 < self.fraction <= 1.0:
            raise ValueError(f"withdraw fraction must be in (0, 1], got {self.fraction}")


def random_schedule(
    seed: int,
    participants: Sequence[str],
    start: int,
    end: int,
    n_actions: int,
    min_amount: int = 1_000,
    max_amount: int = 1_000_000,
    withdraw_probability: float = 0.2,
    sync_probability: float = 0.1,
) -> List[ScheduledAction]:
    """
    Random activity in [start, end), sorted by time.

    A participant's first action is always a deposit, so withdrawals only
    ever target participants that subscribed earlier in the schedule.
    """
    if not participants:
        raise ValueError("participants cannot be empty")
    if end <= start:
        raise ValueError(f"end {end} must be after start {start}")
    if not 0 < min_amount <= max_amount:
        raise ValueError(f"invalid amount range [{min_amount}, {max_amount}]")

    rng = np.random.default_rng(seed)
    times = np.sort(rng.integers(start, end, size=n_actions))
    who = rng.integers(0, len(participants), size=n_actions)
    amounts = rng.integers(min_amount, max_amount + 1, size=n_actions)
    draws = rng.random(n_actions)
    fractions = rng.uniform(0.05, 1.0, size=n_actions)

    schedule = []
    subscribed = set()
    for t, idx, amount, draw, fraction in zip(times, who, amounts, draws, fractions):
        participant = participants[int(idx)]
        if draw < sync_probability:
            schedule.append(ScheduledAction(int(t), participant, ACTION_SYNC))
        elif draw < sync_probability + withdraw_probability and participant in subscribed:
            schedule.append(ScheduledAction(int(t), participant, ACTION_WITHDRAW,
                                            fraction=float(fraction)))
        else:
            subscribed.add(participant)
            schedule.append(ScheduledAction(int(t), participant, ACTION_DEPOSIT, amount=int(amount)))
    return schedule


def replay_schedule(stream: Stream, schedule: Sequence[ScheduledAction]) -> int:
    """
    Apply a schedule to a stream in time order.

    Withdrawals whose fraction of the reconciled balance rounds to zero,
    or whose participant has nothing left, are skipped. Any other error
    propagates.

    Returns:
        Number of actions applied.
    """
    applied = 0
    for action in sorted(schedule, key=lambda a: a.time):
        if action.kind == ACTION_SYNC:
            stream.sync(action.time)
        elif action.kind == ACTION_DEPOSIT:
            stream.deposit(action.participant, action.amount, action.time)
        else:
            if stream.get_position(action.participant) is None:
                continue
            position = stream.sync_position(action.participant, action.time)
            amount = int(position.in_balance * action.fraction)
            if amount == 0:
                continue
            if amount == position.in_balance:
                stream.withdraw(action.participant, None, action.time)
            else:
                stream.withdraw(action.participant, amount, action.time)
        applied += 1
    return applied


def position_table(stream: Stream) -> Dict[str, np.ndarray]:
    """Reconciled positions as parallel arrays, sorted by participant."""
    positions = stream.reconciled_positions()
    names = sorted(positions)
    return {
        'participants': np.array(names, dtype=str),
        'in_balance': np.array([positions[n].in_balance for n in names], dtype=np.float64),
        'shares': np.array([positions[n].shares for n in names], dtype=np.float64),
        'spent_in': np.array([positions[n].spent_in for n in names], dtype=np.float64),
        'purchased': np.array([positions[n].purchased for n in names], dtype=np.float64),
    }


def effective_prices(stream: Stream) -> np.ndarray:
    """
    In asset paid per unit of out asset for each participant, on the
    normalized scale used by the streamed price. nan where nothing was
    purchased.
    """
    table = position_table(stream)
    terms = stream.state.terms
    spent = table['spent_in'] * 10.0 ** (NORMALIZED_DECIMALS - terms.in_decimals)
    purchased = table['purchased'] * 10.0 ** (NORMALIZED_DECIMALS - terms.out_decimals)
    prices = np.full(spent.shape, np.nan)
    np.divide(spent, purchased, out=prices, where=purchased > 0)
    return prices


def purchase_shares(stream: Stream) -> np.ndarray:
    """Fraction of all purchased out asset held by each participant."""
    purchased = position_table(stream)['purchased']
    total = purchased.sum()
    if total == 0:
        return np.zeros_like(purchased)
    return purchased / total
