"""
custody.py - Asset Custody Boundary

The distribution engine never holds assets itself. Everything that actually
moves value goes through an AssetCustody implementation:

1. AssetCustody (Protocol): the interface the Stream shell depends on -
   decimals lookup, balance lookup, pull (participant -> stream) and
   push (stream -> recipient).
2. AssetInfo / Transfer: immutable records for registered assets and
   executed transfers.
3. InMemoryCustody: a double-entry implementation keeping balances per
   holder per asset, with an append-only transfer log and a conservation
   check. Used by tests, the demo and scenario replays.

Every transfer debits one holder and credits another by the same integer
amount, so the total supply of each asset only changes through fund().
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from .core import MAX_ASSET_DECIMALS, AssetNotRegistered, InsufficientFunds, require_amount


# Reserved holder that issues assets into custody.
SYSTEM_ACCOUNT = "system"


# ============================================================================
# PROTOCOL
# ============================================================================

@runtime_checkable
class AssetCustody(Protocol):
    """
    Asset-holding collaborator of a stream.

    pull and push either move the full amount or raise; a raised error
    means nothing moved. Streams rely on this to undo a partly executed
    payout by pulling back the pushes that already went through.
    """

    @property
    def account(self) -> str:
        """Holder id of the custody account streams pull into."""
        ...

    def get_decimals(self, asset: str) -> int:
        """Native decimals of an asset."""
        ...

    def get_balance(self, holder: str, asset: str) -> int:
        """Balance of ``asset`` held by ``holder`` (0 if none)."""
        ...

    def pull(self, payer: str, asset: str, amount: int) -> None:
        """Move ``amount`` of ``asset`` from ``payer`` into custody."""
        ...

    def push(self, recipient: str, asset: str, amount: int) -> None:
        """Move ``amount`` of ``asset`` from custody to ``recipient``."""
        ...


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class AssetInfo:
    """A registered asset. decimals is the number of native fractional digits."""
    symbol: str
    decimals: int
    name: str = ""

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("AssetInfo symbol cannot be empty")
        if isinstance(self.decimals, bool) or not isinstance(self.decimals, int):
            raise ValueError(f"AssetInfo decimals must be int, got {type(self.decimals).__name__}")
        if not 0 <= self.decimals <= MAX_ASSET_DECIMALS:
            raise ValueError(f"AssetInfo decimals must be within 0..{MAX_ASSET_DECIMALS}, got {self.decimals}")


@dataclass(frozen=True, slots=True)
class Transfer:
    """
    A single executed movement of an asset between two holders.

    All fields are validated in __post_init__.
    """
    asset: str
    amount: int
    source: str
    dest: str
    sequence: int

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Transfer source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Transfer dest cannot be empty")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount <= 0:
            raise ValueError(f"Transfer amount must be a positive int, got {self.amount!r}")

    def __repr__(self) -> str:
        return f"Transfer(#{self.sequence} {self.amount} {self.asset}: {self.source}→{self.dest})"


# ============================================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================================

class InMemoryCustody:
    """
    Double-entry custody of integer asset balances.

    Implements the AssetCustody protocol. Not thread-safe on its own; the
    Stream shell serializes the operations of each stream, and callers that
    share one custody between streams on several threads must serialize
    access themselves.

    Example:
        custody = InMemoryCustody("vault")
        custody.register_asset(AssetInfo("USDC", 6))
        custody.fund("alice", "USDC", 1_000_000)
        custody.pull("alice", "USDC", 250_000)
    """

    def __init__(self, account: str = "stream_custody"):
        if not account or not account.strip():
            raise ValueError("custody account cannot be empty")
        if account == SYSTEM_ACCOUNT:
            raise ValueError(f"'{SYSTEM_ACCOUNT}' is reserved")
        self._account = account
        self.assets: Dict[str, AssetInfo] = {}
        self.balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.transfer_log: List[Transfer] = []

    @property
    def account(self) -> str:
        return self._account

    # ------------------------------------------------------------------
    # Registration and issuance
    # ------------------------------------------------------------------

    def register_asset(self, info: AssetInfo) -> None:
        if info.symbol in self.assets:
            raise ValueError(f"Asset {info.symbol} already registered")
        self.assets[info.symbol] = info

    def fund(self, holder: str, asset: str, amount: int) -> None:
        """Issue ``amount`` of ``asset`` to ``holder`` from the system account."""
        self._transfer(SYSTEM_ACCOUNT, holder, asset, amount, allow_overdraft=True)

    # ------------------------------------------------------------------
    # AssetCustody protocol
    # ------------------------------------------------------------------

    def get_decimals(self, asset: str) -> int:
        return self._asset(asset).decimals

    def get_balance(self, holder: str, asset: str) -> int:
        self._asset(asset)
        if holder not in self.balances:
            return 0
        return self.balances[holder].get(asset, 0)

    def pull(self, payer: str, asset: str, amount: int) -> None:
        self._transfer(payer, self._account, asset, amount)

    def push(self, recipient: str, asset: str, amount: int) -> None:
        self._transfer(self._account, recipient, asset, amount)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def total_supply(self, asset: str) -> int:
        """Sum of all balances of ``asset``, the system account included."""
        self._asset(asset)
        return sum(self.balances[h].get(asset, 0) for h in sorted(self.balances))

    def issued(self, asset: str) -> int:
        """Amount issued through fund() so far."""
        return -self.get_balance(SYSTEM_ACCOUNT, asset)

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that every asset's balances sum to zero across holders.

        The system account goes negative by exactly what it issued, so a
        non-zero total means value was created or destroyed.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every asset conserves
            - 'issued': Dict[str, int] - amount issued per asset
            - 'discrepancies': List[Dict] - assets whose balances do not net to zero
        """
        discrepancies = []
        issued = {}
        for asset in sorted(self.assets):
            issued[asset] = self.issued(asset)
            total = self.total_supply(asset)
            if total != 0:
                discrepancies.append({'asset': asset, 'net': total})
            for holder in sorted(self.balances):
                if holder == SYSTEM_ACCOUNT:
                    continue
                balance = self.balances[holder].get(asset, 0)
                if balance < 0:
                    discrepancies.append({'asset': asset, 'holder': holder, 'balance': balance})
        return {
            'valid': len(discrepancies) == 0,
            'issued': issued,
            'discrepancies': discrepancies,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _asset(self, asset: str) -> AssetInfo:
        info: Optional[AssetInfo] = self.assets.get(asset)
        if info is None:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        return info

    def _transfer(
        self,
        source: str,
        dest: str,
        asset: str,
        amount: int,
        allow_overdraft: bool = False,
    ) -> Transfer:
        self._asset(asset)
        require_amount(amount, "transfer amount")
        available = self.get_balance(source, asset)
        if not allow_overdraft and available < amount:
            raise InsufficientFunds(
                f"{source} holds {available} {asset}, cannot transfer {amount}"
            )
        transfer = Transfer(
            asset=asset,
            amount=amount,
            source=source,
            dest=dest,
            sequence=len(self.transfer_log),
        )
        self.balances[source][asset] -= amount
        self.balances[dest][asset] += amount
        self.transfer_log.append(transfer)
        return transfer
