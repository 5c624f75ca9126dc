"""
Error taxonomy for the approximate agreement simulator.

Only invalid input is an exception. An exhausted rejection budget is
reported through ``ConditionedRoundResult.was_conditioned`` and a missing
closed form through the ``UNAVAILABLE`` sentinel, so that callers can tell
both apart from a numeric result.
"""

import math
from enum import Enum
from numbers import Integral
from typing import Sequence


class InvalidParameterError(ValueError):
    """A simulation or formula parameter is outside its valid domain."""


class ConfigError(ValueError):
    """A configuration file is malformed."""


class Unavailable(Enum):
    """Sentinel for a theoretical value that has no closed form.

    Falsy, and never equal to a number, so ``if value:`` and
    ``value is UNAVAILABLE`` both read naturally at call sites.
    """

    UNAVAILABLE = "unavailable"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNAVAILABLE"


UNAVAILABLE = Unavailable.UNAVAILABLE


def validate_probability(p: float, name: str = "p") -> float:
    """Check that p lies in [0, 1] and return it as a float."""
    try:
        value = float(p)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError(f"{name} must be a number, got {p!r}") from exc
    if not 0.0 <= value <= 1.0:
        raise InvalidParameterError(f"{name} must be in [0, 1], got {p}")
    return value


def validate_process_count(n: int) -> int:
    if n < 2:
        raise InvalidParameterError(f"At least 2 processes are required, got {n}")
    return n


def _require_integer(value, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise InvalidParameterError(f"{name} must be an integer, got {value!r}")


def validate_values(values: Sequence[float]) -> list[float]:
    """Convert scalar process values to floats, rejecting NaN and infinities."""
    result = [float(v) for v in values]
    for v in result:
        if not math.isfinite(v):
            raise InvalidParameterError(f"process values must be finite, got {v}")
    return result


def validate_rounds(rounds: int) -> int:
    _require_integer(rounds, "rounds")
    if rounds < 0:
        raise InvalidParameterError(f"rounds must be >= 0, got {rounds}")
    return rounds


def validate_repetitions(repetitions: int) -> int:
    _require_integer(repetitions, "repetitions")
    if repetitions < 1:
        raise InvalidParameterError(f"repetitions must be >= 1, got {repetitions}")
    return repetitions
