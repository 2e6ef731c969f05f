"""
Core types, constants and exceptions for the stream distribution engine.

This module provides the foundational data structures shared by every other
module:
1. Constants: fixed-point scale, normalization digits, integer bounds
2. Enums: StreamStatus (with terminal-state query), EventType, ExitKind
3. Exceptions: StreamError and its validation / arithmetic / consistency /
   custody families
4. Immutable data structures: StreamTimes, StreamEvent

Everything here is pure and immutable. State lives in frozen dataclasses and
only the Stream shell (stream.py) ever replaces it.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


# ============================================================================
# CONSTANTS
# ============================================================================

# Number of implicit fractional digits carried by FixedPoint.
DECIMAL_PRECISION = 6
DECIMAL_SCALE = 10 ** DECIMAL_PRECISION

# Amounts are normalized to this many digits before computing a price,
# so assets with different native decimals compare on the same footing.
NORMALIZED_DECIMALS = 18
DEFAULT_DECIMALS = 18

# Upper bound of every stored integer (amounts, shares, raw fixed-point values).
MAX_UINT256 = 2 ** 256 - 1

# Largest decimals an asset may declare; 10**78 no longer fits the bound above.
MAX_ASSET_DECIMALS = 77


# ============================================================================
# ENUMS
# ============================================================================

class StreamStatus(Enum):
    """
    Lifecycle phase of a stream.

    WAITING: Created, bootstrapping has not started. No subscriptions.
    BOOTSTRAPPING: Subscriptions accepted, nothing is distributed yet.
    ACTIVE: Out asset is distributed continuously against the in supply.
    ENDED: Stream end reached. Awaiting finalize and exits.
    FINALIZED_REFUNDED: Threshold missed; all subscribers are refunded.
    FINALIZED_STREAMED: Threshold met; creator has been paid.
    CANCELLED: Stream aborted before it ended; all subscribers are refunded.
    """
    WAITING = "waiting"
    BOOTSTRAPPING = "bootstrapping"
    ACTIVE = "active"
    ENDED = "ended"
    FINALIZED_REFUNDED = "finalized_refunded"
    FINALIZED_STREAMED = "finalized_streamed"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        """Terminal statuses are never left again, whatever the time."""
        return self in _TERMINAL_STATUSES

    def accepts_subscriptions(self) -> bool:
        return self in (StreamStatus.BOOTSTRAPPING, StreamStatus.ACTIVE)


_TERMINAL_STATUSES = frozenset({
    StreamStatus.CANCELLED,
    StreamStatus.FINALIZED_STREAMED,
    StreamStatus.FINALIZED_REFUNDED,
})


class EventType(Enum):
    """Kind of an entry in a stream's event log."""
    STREAM_CREATED = "stream_created"
    STREAM_SYNCED = "stream_synced"
    SUBSCRIBED = "subscribed"
    WITHDRAWN = "withdrawn"
    EXIT_STREAMED = "exit_streamed"
    EXIT_REFUNDED = "exit_refunded"
    FINALIZED_STREAMED = "finalized_streamed"
    FINALIZED_REFUNDED = "finalized_refunded"
    CANCELLED = "cancelled"
    DUST_SWEPT = "dust_swept"


class ExitKind(Enum):
    """
    How a participant leaves a closed stream.

    STREAMED: Keeps the out asset purchased and gets unspent in asset back.
    REFUNDED: Gets every unit of in asset back (spent and unspent), no out asset.
    """
    STREAMED = "streamed"
    REFUNDED = "refunded"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class StreamError(Exception):
    """Base exception for all stream-related errors."""
    pass


# --- Validation: bad input or an operation illegal in the current phase. ---
# Raised before any mutation; the caller may fix the input and retry.

class ValidationError(StreamError):
    """Raised when an operation's inputs or timing are not acceptable."""
    pass


class InvalidParameter(ValidationError):
    """Raised when a configuration value is out of its allowed range."""
    pass


class InvalidStreamTimes(ValidationError):
    """Raised when stream milestones are out of order or in the past."""
    pass


class DurationTooShort(ValidationError):
    """Raised when a stream phase is shorter than the protocol minimum."""
    pass


class OperationNotAllowed(ValidationError):
    """Raised when an operation is not legal in the stream's current status."""
    pass


class InvalidAmount(ValidationError):
    """Raised when an amount is zero, negative or not an integer."""
    pass


class InvalidPosition(ValidationError):
    """Raised when a position is missing, empty or already exited."""
    pass


class WithdrawAmountExceedsBalance(ValidationError):
    """Raised when a withdrawal asks for more than the position's in balance."""
    pass


class TimeRegression(ValidationError):
    """Raised when an operation is stamped earlier than the last sync."""
    pass


class Unauthorized(ValidationError):
    """Raised when the caller is not allowed to control the stream."""
    pass


# --- Arithmetic: an invariant of the integer math was broken. ---

class StreamArithmeticError(StreamError):
    """Base class for fixed-point and integer arithmetic failures."""
    pass


class ArithmeticUnderflow(StreamArithmeticError):
    """Raised when a subtraction would produce a negative amount."""
    pass


class DivisionByZero(StreamArithmeticError):
    """Raised when a divisor is zero."""
    pass


class DecimalOverflow(StreamArithmeticError):
    """Raised when a value exceeds the 256-bit unsigned range."""
    pass


# --- Consistency: global and per-position accounting disagree. ---

class ConsistencyError(StreamError):
    """Base class for accounting consistency violations."""
    pass


class IndexRegression(ConsistencyError):
    """Raised when a position's index is ahead of the distribution index."""
    pass


class ShareMismatch(ConsistencyError):
    """Raised when share accounting between a position and the pool diverges."""
    pass


# --- Custody: the asset-holding collaborator refused a transfer. ---

class CustodyError(StreamError):
    """Base class for custody failures."""
    pass


class InsufficientFunds(CustodyError):
    """Raised when a holder cannot cover a pull or the stream cannot cover a push."""
    pass


class AssetNotRegistered(CustodyError):
    """Raised when an asset is unknown to the custody layer."""
    pass


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def require_amount(amount: Any, name: str = "amount", allow_zero: bool = False) -> int:
    """
    Check that an amount is an integer in [0, MAX_UINT256].

    Args:
        amount: Value to check (bool is rejected even though it subclasses int)
        name: Field name used in the error message
        allow_zero: Accept 0 as a valid amount

    Returns:
        The amount, unchanged.

    Raises:
        InvalidAmount: if the amount is not an integer, is negative, is zero
            while allow_zero is False, or exceeds MAX_UINT256.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"{name} must be an integer, got {type(amount).__name__}")
    if amount < 0:
        raise InvalidAmount(f"{name} cannot be negative, got {amount}")
    if amount == 0 and not allow_zero:
        raise InvalidAmount(f"{name} must be positive, got 0")
    if amount > MAX_UINT256:
        raise InvalidAmount(f"{name} exceeds the 256-bit range")
    return amount


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class StreamTimes:
    """
    Immutable milestones of a stream, as integer timestamps.

    Ordering (bootstrapping_start <= stream_start <= stream_end) is checked
    here. The minimum phase durations depend on protocol parameters and are
    checked by create_stream.
    """
    bootstrapping_start: int
    stream_start: int
    stream_end: int

    def __post_init__(self):
        for name in ("bootstrapping_start", "stream_start", "stream_end"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidStreamTimes(f"{name} must be an integer timestamp, got {value!r}")
            if value < 0:
                raise InvalidStreamTimes(f"{name} cannot be negative, got {value}")
        if self.stream_start < self.bootstrapping_start:
            raise InvalidStreamTimes(
                f"stream_start {self.stream_start} is before "
                f"bootstrapping_start {self.bootstrapping_start}"
            )
        if self.stream_end < self.stream_start:
            raise InvalidStreamTimes(
                f"stream_end {self.stream_end} is before stream_start {self.stream_start}"
            )

    @property
    def bootstrapping_duration(self) -> int:
        return self.stream_start - self.bootstrapping_start

    @property
    def stream_duration(self) -> int:
        return self.stream_end - self.stream_start


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """
    Immutable audit record of one applied stream operation.

    Attributes:
        event_type: What happened
        stream_id: Stream the event belongs to
        timestamp: Caller-supplied time of the operation
        sequence: Monotonic position of the event within the stream's log
        participant: Wallet the event concerns (None for stream-wide events)
        amounts: Named integer amounts moved or recorded by the operation
    """
    event_type: EventType
    stream_id: int
    timestamp: int
    sequence: int
    participant: Optional[str] = None
    amounts: Mapping[str, int] = field(default_factory=dict)

    def __repr__(self) -> str:
        who = f" {self.participant}" if self.participant else ""
        details = ", ".join(f"{k}={v}" for k, v in sorted(self.amounts.items()))
        return (f"StreamEvent(#{self.sequence} {self.event_type.value}{who} "
                f"stream={self.stream_id} t={self.timestamp} {details})")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_type': self.event_type.value,
            'stream_id': self.stream_id,
            'timestamp': self.timestamp,
            'sequence': self.sequence,
            'participant': self.participant,
            'amounts': dict(self.amounts),
        }
