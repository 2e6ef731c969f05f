"""
config.py - Protocol Parameters and Stream Term Sheets

Two frozen configuration records, both validated on construction:

1. ProtocolParams: set once per factory (exit fee, minimum phase durations,
   fee collector and protocol admin identities).
2. StreamTerms: the immutable term sheet of a single stream (milestones,
   assets and their decimals, out supply, threshold).

Preset constructors mirror the deployment profiles the protocol ships with:
default_params() for local use, testnet_params() with one-second minimums and
production_params() with hour/day/three-day minimums and a 2% exit fee.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal

from .core import (
    MAX_ASSET_DECIMALS, MAX_UINT256,
    InvalidParameter, StreamError, StreamTimes,
)
from .fixed_point import FixedPoint, ONE


@dataclass(frozen=True, slots=True)
class ProtocolParams:
    """
    Immutable protocol-wide parameters shared by every stream of a factory.

    exit_fee_ratio accepts a FixedPoint or anything Decimal can parse
    ("0.01", 0.01, Decimal("0.01")) and is converted on construction.
    """
    exit_fee_ratio: FixedPoint
    fee_collector: str
    protocol_admin: str
    min_waiting_duration: int = 5
    min_bootstrapping_duration: int = 1
    min_stream_duration: int = 1

    def __post_init__(self):
        if not isinstance(self.exit_fee_ratio, FixedPoint):
            if isinstance(self.exit_fee_ratio, (Decimal, str, float, int)):
                try:
                    ratio = FixedPoint.from_decimal(self.exit_fee_ratio)
                except (StreamError, ArithmeticError, ValueError) as exc:
                    raise InvalidParameter(f"invalid exit_fee_ratio {self.exit_fee_ratio!r}: {exc}") from exc
                object.__setattr__(self, 'exit_fee_ratio', ratio)
            else:
                raise InvalidParameter(
                    f"exit_fee_ratio must be FixedPoint or decimal-like, got {type(self.exit_fee_ratio).__name__}"
                )
        if self.exit_fee_ratio > ONE:
            raise InvalidParameter(f"exit_fee_ratio cannot exceed 1, got {self.exit_fee_ratio}")

        if not self.fee_collector or not self.fee_collector.strip():
            raise InvalidParameter("fee_collector cannot be empty")
        if not self.protocol_admin or not self.protocol_admin.strip():
            raise InvalidParameter("protocol_admin cannot be empty")

        for name in ("min_waiting_duration", "min_bootstrapping_duration", "min_stream_duration"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidParameter(f"{name} must be an integer number of seconds, got {value!r}")
            if value < 0:
                raise InvalidParameter(f"{name} cannot be negative, got {value}")


def default_params(operator: str) -> ProtocolParams:
    """1% exit fee; ``operator`` both collects fees and administers."""
    return ProtocolParams(
        exit_fee_ratio=FixedPoint.from_decimal("0.01"),
        fee_collector=operator,
        protocol_admin=operator,
        min_waiting_duration=5,
        min_bootstrapping_duration=1,
        min_stream_duration=1,
    )


def testnet_params(operator: str) -> ProtocolParams:
    return ProtocolParams(
        exit_fee_ratio=FixedPoint.from_decimal("0.01"),
        fee_collector=operator,
        protocol_admin=operator,
        min_waiting_duration=1,
        min_bootstrapping_duration=1,
        min_stream_duration=1,
    )


def production_params(operator: str) -> ProtocolParams:
    return ProtocolParams(
        exit_fee_ratio=FixedPoint.from_decimal("0.02"),
        fee_collector=operator,
        protocol_admin=operator,
        min_waiting_duration=3600,        # 1 hour
        min_bootstrapping_duration=86400,  # 1 day
        min_stream_duration=259200,       # 3 days
    )


@dataclass(frozen=True, slots=True)
class StreamTerms:
    """
    Immutable term sheet of one stream - set at creation, never changes.

    threshold is the minimum total in asset that must be spent for the
    stream to succeed; 0 means any outcome counts as success.
    """
    times: StreamTimes
    out_supply: int
    in_asset: str
    out_asset: str
    in_decimals: int = 18
    out_decimals: int = 18
    threshold: int = 0

    def __post_init__(self):
        if not isinstance(self.times, StreamTimes):
            raise InvalidParameter("times must be a StreamTimes")
        for name in ("out_supply", "threshold"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidParameter(f"{name} must be an integer amount, got {value!r}")
            if value < 0 or value > MAX_UINT256:
                raise InvalidParameter(f"{name} out of range: {value}")
        for name in ("in_decimals", "out_decimals"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidParameter(f"{name} must be an integer, got {value!r}")
            if not 0 <= value <= MAX_ASSET_DECIMALS:
                raise InvalidParameter(f"{name} must be within 0..{MAX_ASSET_DECIMALS}, got {value}")
        if not self.in_asset or not self.in_asset.strip():
            raise InvalidParameter("in_asset cannot be empty")
        if not self.out_asset or not self.out_asset.strip():
            raise InvalidParameter("out_asset cannot be empty")
        if self.in_asset == self.out_asset:
            raise InvalidParameter("in_asset and out_asset must be different")
