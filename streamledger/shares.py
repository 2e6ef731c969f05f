"""
shares.py - Share Mint/Burn Arithmetic

A position's claim on the pooled in supply is expressed in shares. Shares are
minted on deposit and burned on withdrawal with opposite rounding so that
integer truncation always favours the pool over the individual:

    deposit:    minted = floor(total_shares * amount_in / in_supply)
    withdraw:   burned = ceil(total_shares * amount_in / in_supply)

The first deposit into an empty pool mints shares one-for-one.
"""

from __future__ import annotations

from .core import DivisionByZero, InvalidAmount


def compute_shares(amount_in: int, round_up: bool, in_supply: int, total_shares: int) -> int:
    """
    Shares corresponding to ``amount_in`` of pooled in asset.

    Args:
        amount_in: In-asset amount being added or removed
        round_up: True for burns (withdrawals), False for mints (deposits)
        in_supply: Current pooled in supply
        total_shares: Current total shares outstanding

    Returns:
        amount_in when the pool has no shares or amount_in is 0, otherwise
        the pro-rata share count rounded in the requested direction.

    Raises:
        DivisionByZero: if shares are outstanding but the in supply is 0.
        InvalidAmount: if any input is negative.
    """
    if amount_in < 0 or in_supply < 0 or total_shares < 0:
        raise InvalidAmount(
            f"share inputs cannot be negative: amount_in={amount_in}, "
            f"in_supply={in_supply}, total_shares={total_shares}"
        )
    if total_shares == 0 or amount_in == 0:
        return amount_in
    if in_supply == 0:
        raise DivisionByZero(
            f"{total_shares} shares outstanding against an empty in supply"
        )
    numerator = total_shares * amount_in
    if round_up:
        return (numerator + in_supply - 1) // in_supply
    return numerator // in_supply
