"""
Combining rules applied by each process at the end of a round.

Each rule sees the process's own value and the values it received this
round (in sender order) and returns the process's next value. MIN is the
exception: it never changes a value mid-protocol and only grows the
process's set of known values; the decision is taken after the last round.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from ..errors import InvalidParameterError


class Algorithm(Enum):
    """Closed set of supported combining rules."""

    AMP = "AMP"  # Agreed meeting point
    FV = "FV"  # Flip value
    MIN = "MIN"  # Decide minimum of everything seen
    RECURSIVE_AMP = "RECURSIVE_AMP"  # Move a fraction of the observed range

    @classmethod
    def parse(cls, name: "str | Algorithm") -> "Algorithm":
        """Look up an algorithm by value, accepting ``"RECURSIVE AMP"`` too."""
        if isinstance(name, Algorithm):
            return name
        key = str(name).strip().upper().replace(" ", "_").replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise InvalidParameterError(
                f"Unknown algorithm {name!r}; expected one of "
                f"{', '.join(a.value for a in cls)}"
            ) from None

    @property
    def has_closed_form(self) -> bool:
        """Whether a theoretical expected discrepancy exists for this rule."""
        return self in (Algorithm.AMP, Algorithm.FV)

    @property
    def accumulates_known_values(self) -> bool:
        return self is Algorithm.MIN


def optimal_algorithm(p: float) -> Algorithm:
    """Pick the better of AMP and FV for two processes.

    AMP leaves ``q`` and FV leaves ``p^2 + q^2``; AMP wins for p > 1/2.
    """
    return Algorithm.AMP if p > 0.5 else Algorithm.FV


@dataclass(frozen=True)
class AlgorithmParams:
    """Tunable parameters of the combining rules.

    Attributes:
        meeting_point: Target value ``a`` for AMP and the range fraction for
            RECURSIVE_AMP. A tuple gives one value per dimension for
            vector-valued processes.
        tolerance: Two values closer than this are treated as equal when
            AMP and FV look for disagreement.
        epsilon: RECURSIVE_AMP leaves a process alone when its observed
            range is at most epsilon.
    """

    meeting_point: float | tuple[float, ...] = 0.5
    tolerance: float = 1e-9
    epsilon: float = 1e-9

    def __post_init__(self) -> None:
        points = (
            self.meeting_point
            if isinstance(self.meeting_point, tuple)
            else (self.meeting_point,)
        )
        if not points:
            raise InvalidParameterError("meeting_point must not be empty")
        for a in points:
            if not math.isfinite(a) or not 0.0 <= a <= 1.0:
                raise InvalidParameterError(f"meeting_point must be in [0, 1], got {a}")
        if self.tolerance < 0:
            raise InvalidParameterError(f"tolerance must be >= 0, got {self.tolerance}")
        if self.epsilon < 0:
            raise InvalidParameterError(f"epsilon must be >= 0, got {self.epsilon}")

    @property
    def scalar_meeting_point(self) -> float:
        if isinstance(self.meeting_point, tuple):
            if len(self.meeting_point) != 1:
                raise InvalidParameterError(
                    "A per-dimension meeting point cannot be used with scalar values"
                )
            return float(self.meeting_point[0])
        return float(self.meeting_point)

    def validate_dimension(self, dimension: int) -> None:
        """Reject a per-dimension meeting point of the wrong length."""
        if isinstance(self.meeting_point, tuple) and len(self.meeting_point) != dimension:
            raise InvalidParameterError(
                f"meeting_point has {len(self.meeting_point)} coordinates, "
                f"values have {dimension}"
            )

    def meeting_vector(self, dimension: int) -> tuple[float, ...]:
        """Meeting point broadcast (or checked) against a dimension."""
        self.validate_dimension(dimension)
        if isinstance(self.meeting_point, tuple):
            return tuple(float(a) for a in self.meeting_point)
        return (float(self.meeting_point),) * dimension


def _amp(own: float, received: Sequence[float], params: AlgorithmParams) -> float:
    if any(abs(v - own) > params.tolerance for v in received):
        return params.scalar_meeting_point
    return own


def _fv(own: float, received: Sequence[float], params: AlgorithmParams) -> float:
    for v in received:
        if abs(v - own) > params.tolerance:
            return v
    return own


def _min(own: float, received: Sequence[float], params: AlgorithmParams) -> float:
    # Decided only after the final round, see decide_min().
    return own


def _recursive_amp(own: float, received: Sequence[float], params: AlgorithmParams) -> float:
    return recursive_step([own, *received], own, params.scalar_meeting_point, params.epsilon)


def recursive_step(known: Sequence[float], own: float, fraction: float, epsilon: float) -> float:
    """Move to ``min + fraction * (max - min)`` of the observed values."""
    low = min(known)
    high = max(known)
    spread = high - low
    if spread > epsilon:
        return low + fraction * spread
    return own


UpdateRule = Callable[[float, Sequence[float], AlgorithmParams], float]

UPDATE_RULES: dict[Algorithm, UpdateRule] = {
    Algorithm.AMP: _amp,
    Algorithm.FV: _fv,
    Algorithm.MIN: _min,
    Algorithm.RECURSIVE_AMP: _recursive_amp,
}


def apply_update(
    algorithm: Algorithm, own: float, received: Sequence[float], params: AlgorithmParams
) -> float:
    """Next value of a process. Receiving nothing never changes a value."""
    if not received:
        return own
    return UPDATE_RULES[algorithm](own, received, params)


def initial_known_values(values: Sequence[float]) -> list[frozenset[float]]:
    """Known-value sets at the start of a MIN run: each process knows itself."""
    return [frozenset([v]) for v in values]


def extend_known_values(
    known: Sequence[frozenset[float]], received: Sequence[Sequence[float]]
) -> list[frozenset[float]]:
    """Add this round's received values to every process's known set."""
    return [k | frozenset(r) for k, r in zip(known, received)]


def decide_min(known: Sequence[frozenset[float]]) -> list[float]:
    """Terminal MIN decision: each process outputs the minimum it has seen."""
    return [min(k) for k in known]
