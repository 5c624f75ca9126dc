"""
High-precision numeric core for the approximate agreement simulator.

Closed-form discrepancy formulas and near-zero discrepancy comparisons are
evaluated with ``decimal.Decimal`` so that expressions such as ``1 - q**k``
do not lose their significant digits when ``p`` is close to 0 or 1. The
Monte Carlo loop itself stays in ordinary floating point, where sampling
noise dominates any rounding error.

Precision settings live in an immutable :class:`NumericConfig` that is
handed to a :class:`NumericContext`; the process-wide ``decimal`` context
is never modified.
"""

import decimal
from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from typing import Iterable, Union

Number = Union[int, float, str, Fraction, Decimal]


@dataclass(frozen=True)
class NumericConfig:
    """Precision settings for exact arithmetic.

    Attributes:
        precision: Number of significant decimal digits.
        rounding: One of the ``decimal`` rounding modes.
        emin: Smallest allowed exponent.
        emax: Largest allowed exponent.
    """

    precision: int = 50
    rounding: str = decimal.ROUND_HALF_UP
    emin: int = -999_999
    emax: int = 999_999

    def __post_init__(self) -> None:
        if self.precision < 1:
            raise ValueError(f"precision must be >= 1, got {self.precision}")
        if self.emin > 0 or self.emax < 0:
            raise ValueError(
                f"emin must be <= 0 and emax >= 0, got emin={self.emin}, emax={self.emax}"
            )


class NumericContext:
    """Decimal arithmetic bound to a private context.

    Args:
        config: Precision settings. Defaults to 50 significant digits.
    """

    def __init__(self, config: NumericConfig | None = None):
        self.config = config or NumericConfig()
        self._context = decimal.Context(
            prec=self.config.precision,
            rounding=self.config.rounding,
            Emin=self.config.emin,
            Emax=self.config.emax,
        )

    def to_decimal(self, value: Number) -> Decimal:
        """Convert a number to a Decimal without binary-float artefacts.

        Floats go through their shortest ``repr`` so that ``0.7`` becomes
        ``Decimal("0.7")`` rather than ``0.6999999999999999555910790149937``.
        """
        if isinstance(value, Decimal):
            return self._context.plus(value)
        if isinstance(value, bool):
            raise TypeError("booleans are not numeric values")
        if isinstance(value, Fraction):
            return self._context.divide(
                Decimal(value.numerator), Decimal(value.denominator)
            )
        if isinstance(value, float):
            return self._context.create_decimal(repr(value))
        if isinstance(value, (int, str)):
            return self._context.create_decimal(value)
        raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")

    def add(self, a: Number, b: Number) -> Decimal:
        return self._context.add(self.to_decimal(a), self.to_decimal(b))

    def subtract(self, a: Number, b: Number) -> Decimal:
        return self._context.subtract(self.to_decimal(a), self.to_decimal(b))

    def multiply(self, a: Number, b: Number) -> Decimal:
        return self._context.multiply(self.to_decimal(a), self.to_decimal(b))

    def divide(self, a: Number, b: Number) -> Decimal:
        return self._context.divide(self.to_decimal(a), self.to_decimal(b))

    def power(self, base: Number, exponent: Number) -> Decimal:
        """Raise base to exponent.

        ``0 ** 0`` is 1, matching the combinatorial reading of the
        formulas (an empty product of failures).
        """
        b = self.to_decimal(base)
        e = self.to_decimal(exponent)
        if e == 0:
            return Decimal(1)
        if b == 0:
            return Decimal(0)
        return self._context.power(b, e)

    def complement(self, value: Number) -> Decimal:
        """Return ``1 - value``."""
        return self._context.subtract(Decimal(1), self.to_decimal(value))

    def abs_diff(self, a: Number, b: Number) -> Decimal:
        return self._context.abs(self.subtract(a, b))

    def max_abs_diff(self, values: Iterable[Number]) -> Decimal:
        """Maximum pairwise absolute difference.

        For scalars this equals ``max - min``, computed exactly.
        """
        decimals = [self.to_decimal(v) for v in values]
        if len(decimals) < 2:
            return Decimal(0)
        return self._context.subtract(max(decimals), min(decimals))

    def is_close_to_zero(self, value: Number, epsilon: Number = 1e-9) -> bool:
        return self._context.abs(self.to_decimal(value)) < self.to_decimal(epsilon)

    def __repr__(self) -> str:
        return f"NumericContext(precision={self.config.precision})"


DEFAULT_NUMERIC = NumericContext()
