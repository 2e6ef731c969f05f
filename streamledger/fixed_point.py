"""
fixed_point.py - Unsigned Fixed-Point Numbers With Six Fractional Digits

FixedPoint stores an integer ``value`` that represents ``value / 10**6``.
It is the only non-integer number used by the distribution engine: the
distribution index, the streamed price, the exit fee ratio, the time
fraction of a sync and a position's fractional reward carry.

Rules:
    - Every result is floored unless the caller asks for ceil explicitly.
    - Products are formed on Python integers before scaling down, so no
      intermediate result can overflow.
    - Values live in [0, 2**256 - 1]; leaving that range raises
      ArithmeticUnderflow or DecimalOverflow instead of wrapping or clamping.

Example:
    >>> FixedPoint.from_ratio(1, 3)
    FixedPoint(0.333333)
    >>> FixedPoint.from_number(2) * FixedPoint.from_number(3)
    FixedPoint(6.000000)
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Tuple, Union

from .core import (
    DECIMAL_PRECISION, DECIMAL_SCALE, MAX_UINT256,
    ArithmeticUnderflow, DecimalOverflow, DivisionByZero,
)


def _check_range(raw: int) -> int:
    if raw < 0:
        raise ArithmeticUnderflow(f"fixed-point result is negative: {raw}")
    if raw > MAX_UINT256:
        raise DecimalOverflow("fixed-point result exceeds the 256-bit range")
    return raw


def _require_int(n: int, name: str) -> int:
    if isinstance(n, bool) or not isinstance(n, int):
        raise TypeError(f"{name} must be an int, got {type(n).__name__}")
    return n


@dataclass(frozen=True, slots=True, order=True)
class FixedPoint:
    """
    Immutable unsigned fixed-point number with DECIMAL_PRECISION digits.

    Construct through the factories (from_number, from_ratio, from_decimal)
    rather than with a raw value, unless the raw value is already scaled.
    Ordering compares the raw values, so ``<`` and ``>`` behave numerically.
    """
    value: int

    def __post_init__(self):
        _require_int(self.value, "FixedPoint value")
        _check_range(self.value)

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def from_number(cls, n: int) -> FixedPoint:
        """Whole number n as a fixed-point value (n * 10**6)."""
        _require_int(n, "n")
        return cls(_check_range(n * DECIMAL_SCALE))

    @classmethod
    def from_ratio(cls, numerator: int, denominator: int) -> FixedPoint:
        """floor(numerator * 10**6 / denominator)."""
        _require_int(numerator, "numerator")
        _require_int(denominator, "denominator")
        if denominator == 0:
            raise DivisionByZero(f"ratio {numerator}/0")
        if numerator < 0 or denominator < 0:
            raise ArithmeticUnderflow(f"ratio {numerator}/{denominator} has a negative term")
        return cls(_check_range(numerator * DECIMAL_SCALE // denominator))

    @classmethod
    def from_decimal(cls, d: Union[Decimal, str, float]) -> FixedPoint:
        """
        Parse a decimal quantity, truncating digits beyond the sixth.

        Floats go through str() first so 0.1 parses as 0.100000.
        """
        if not isinstance(d, Decimal):
            d = Decimal(str(d))
        if not d.is_finite():
            raise ValueError(f"cannot convert {d} to FixedPoint")
        if d < 0:
            raise ArithmeticUnderflow(f"fixed-point value cannot be negative: {d}")
        scaled = (d * DECIMAL_SCALE).to_integral_value(rounding=ROUND_DOWN)
        return cls(_check_range(int(scaled)))

    @classmethod
    def zero(cls) -> FixedPoint:
        return cls(0)

    @classmethod
    def one(cls) -> FixedPoint:
        return cls(DECIMAL_SCALE)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def add(self, other: FixedPoint) -> FixedPoint:
        return FixedPoint(_check_range(self.value + other.value))

    def sub(self, other: FixedPoint) -> FixedPoint:
        """Subtract; raises ArithmeticUnderflow when other > self."""
        if other.value > self.value:
            raise ArithmeticUnderflow(f"{self} - {other} is negative")
        return FixedPoint(self.value - other.value)

    def mul(self, other: FixedPoint) -> FixedPoint:
        """floor(self * other), computed on the unscaled product."""
        return FixedPoint(_check_range(self.value * other.value // DECIMAL_SCALE))

    def mul_scalar(self, n: int) -> FixedPoint:
        """Multiply by a plain integer; exact."""
        _require_int(n, "n")
        return FixedPoint(_check_range(self.value * n))

    def mul_floor(self, n: int) -> int:
        """
        floor(self * n) as a plain integer.

        The product is kept unscaled on Python integers, so only the result
        has to fit the 256-bit range, not self.value * n.
        """
        _require_int(n, "n")
        if n < 0:
            raise ArithmeticUnderflow(f"{self} * {n} is negative")
        return _check_range(self.value * n // DECIMAL_SCALE)

    def mul_split(self, n: int, carry: FixedPoint) -> Tuple[int, FixedPoint]:
        """
        (whole part, fractional remainder) of self * n + carry.

        Same widening as mul_floor; the remainder is always below one.
        """
        _require_int(n, "n")
        if n < 0:
            raise ArithmeticUnderflow(f"{self} * {n} is negative")
        whole, frac = divmod(self.value * n + carry.value, DECIMAL_SCALE)
        return _check_range(whole), FixedPoint(frac)

    def div(self, other: FixedPoint) -> FixedPoint:
        """floor(self / other)."""
        if other.value == 0:
            raise DivisionByZero(f"{self} / 0")
        return FixedPoint(_check_range(self.value * DECIMAL_SCALE // other.value))

    def div_scalar(self, n: int) -> FixedPoint:
        """floor(self / n) for a plain integer n."""
        _require_int(n, "n")
        if n == 0:
            raise DivisionByZero(f"{self} / 0")
        return FixedPoint(_check_range(self.value // n))

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def floor(self) -> int:
        return self.value // DECIMAL_SCALE

    def ceil(self) -> int:
        return -(-self.value // DECIMAL_SCALE)

    def to_number(self) -> Tuple[int, FixedPoint]:
        """Split into (whole part, fractional remainder)."""
        whole, frac = divmod(self.value, DECIMAL_SCALE)
        return whole, FixedPoint(frac)

    def to_decimal(self) -> Decimal:
        """Exact decimal rendering, for display and reporting."""
        return Decimal(self.value).scaleb(-DECIMAL_PRECISION)

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def gt(self, other: FixedPoint) -> bool:
        return self.value > other.value

    def lt(self, other: FixedPoint) -> bool:
        return self.value < other.value

    def is_zero(self) -> bool:
        return self.value == 0

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def __add__(self, other: FixedPoint) -> FixedPoint:
        if not isinstance(other, FixedPoint):
            return NotImplemented
        return self.add(other)

    def __sub__(self, other: FixedPoint) -> FixedPoint:
        if not isinstance(other, FixedPoint):
            return NotImplemented
        return self.sub(other)

    def __mul__(self, other: Union[FixedPoint, int]) -> FixedPoint:
        if isinstance(other, FixedPoint):
            return self.mul(other)
        if isinstance(other, int) and not isinstance(other, bool):
            return self.mul_scalar(other)
        return NotImplemented

    def __rmul__(self, other: int) -> FixedPoint:
        if isinstance(other, int) and not isinstance(other, bool):
            return self.mul_scalar(other)
        return NotImplemented

    def __truediv__(self, other: Union[FixedPoint, int]) -> FixedPoint:
        if isinstance(other, FixedPoint):
            return self.div(other)
        if isinstance(other, int) and not isinstance(other, bool):
            return self.div_scalar(other)
        return NotImplemented

    def __str__(self) -> str:
        whole, frac = divmod(self.value, DECIMAL_SCALE)
        return f"{whole}.{frac:0{DECIMAL_PRECISION}d}"

    def __repr__(self) -> str:
        return f"FixedPoint({self})"


ZERO = FixedPoint(0)
ONE = FixedPoint(DECIMAL_SCALE)
