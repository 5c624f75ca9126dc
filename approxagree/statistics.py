"""
Reduction of repeated-experiment discrepancy samples.

Turns the final discrepancies of N independent experiments into summary
statistics and, when a closed-form value is available, compares them with
it. The theoretical value is always supplied by the caller and never
estimated from the sample.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

import numpy as np
from scipy import stats as scipy_stats

from .errors import UNAVAILABLE, InvalidParameterError, Unavailable

DEFAULT_CONFIDENCE_LEVEL = 0.95
DEFAULT_Z = 1.96


class RelativeErrorStatus(Enum):
    """How the relative error against theory was obtained."""

    OK = "ok"
    BOTH_NEAR_ZERO = "both_near_zero"  # Theory and experiment both ~0
    THEORY_ZERO = "theory_zero"  # Theory ~0, experiment is not
    UNAVAILABLE = "unavailable"  # No closed form to compare with


def z_value(confidence_level: float = DEFAULT_CONFIDENCE_LEVEL) -> float:
    """Two-sided normal critical value.

    The 95% level returns the conventional 1.96 rather than the exact
    quantile so that intervals match the usual textbook figures.
    """
    if not 0 < confidence_level < 1:
        raise InvalidParameterError(
            f"confidence_level must be in (0, 1), got {confidence_level}"
        )
    if confidence_level == DEFAULT_CONFIDENCE_LEVEL:
        return DEFAULT_Z
    alpha = 1.0 - confidence_level
    return float(scipy_stats.norm.ppf(1 - alpha / 2))


@dataclass
class DiscrepancyStatistics:
    """Summary of N final-discrepancy samples.

    Attributes:
        sample_size: Number of samples N.
        mean: Sample mean.
        median: Sample median (average of the middle pair for even N).
        min: Smallest sample.
        max: Largest sample.
        variance: Bessel-corrected variance, 0 for a single sample.
        std: Square root of ``variance``.
        standard_error: ``std / sqrt(N)``.
        ci_low: Lower end of the confidence interval for the mean.
        ci_high: Upper end of the confidence interval for the mean.
        confidence_level: Level used for the interval.
        theoretical: Closed-form expectation, or UNAVAILABLE.
        absolute_error: ``|mean - theoretical|``, None without theory.
        relative_error: Absolute error as a percentage of theory, None
            unless ``relative_error_status`` is OK.
        relative_error_status: See RelativeErrorStatus.
    """

    sample_size: int
    mean: float
    median: float
    min: float
    max: float
    variance: float
    std: float
    standard_error: float
    ci_low: float
    ci_high: float
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL
    theoretical: float | Unavailable = UNAVAILABLE
    absolute_error: float | None = None
    relative_error: float | None = None
    relative_error_status: RelativeErrorStatus = RelativeErrorStatus.UNAVAILABLE

    @property
    def ci_half_width(self) -> float:
        return (self.ci_high - self.ci_low) / 2

    def summary(self) -> str:
        """Generate a text summary of the statistics."""
        level = int(round(self.confidence_level * 100))
        lines = [
            f"Discrepancy statistics ({self.sample_size} samples)",
            f"  Mean: {self.mean:.6g} (std: {self.std:.6g}, SE: {self.standard_error:.6g})",
            f"  {level}% CI: [{self.ci_low:.6g}, {self.ci_high:.6g}]",
            f"  Median: {self.median:.6g}  Range: [{self.min:.6g}, {self.max:.6g}]",
        ]
        if self.theoretical is UNAVAILABLE:
            lines.append("  Theory: unavailable")
        else:
            lines.append(
                f"  Theory: {self.theoretical:.6g} (abs error: {self.absolute_error:.6g})"
            )
            if self.relative_error_status is RelativeErrorStatus.OK:
                lines.append(f"  Relative error: {self.relative_error:.2f}%")
            elif self.relative_error_status is RelativeErrorStatus.BOTH_NEAR_ZERO:
                lines.append("  Relative error: n/a (both ~0)")
            else:
                lines.append("  Relative error: n/a (theory ~0)")
        return "\n".join(lines)


def _relative_error(
    mean: float, theoretical: float, absolute_error: float, epsilon: float
) -> tuple[float | None, RelativeErrorStatus]:
    if abs(theoretical) < epsilon:
        if abs(mean) < epsilon:
            return None, RelativeErrorStatus.BOTH_NEAR_ZERO
        return None, RelativeErrorStatus.THEORY_ZERO
    return absolute_error / abs(theoretical) * 100.0, RelativeErrorStatus.OK


def summarize_discrepancies(
    samples: Sequence[float],
    theoretical: float | Unavailable | None = None,
    *,
    epsilon: float = 1e-9,
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
) -> DiscrepancyStatistics:
    """Reduce final discrepancies to summary statistics.

    Args:
        samples: One final discrepancy per experiment.
        theoretical: Expected discrepancy (anything float() accepts, such
            as a TheoreticalValue), or None / UNAVAILABLE.
        epsilon: Values below this count as zero when guarding the
            relative error.
        confidence_level: Level of the interval for the mean.

    Returns:
        DiscrepancyStatistics.

    Raises:
        InvalidParameterError: If ``samples`` is empty.
    """
    data = np.asarray(samples, dtype=float)
    if data.size == 0:
        raise InvalidParameterError("Cannot summarize an empty sample")

    n = int(data.size)
    mean = float(np.mean(data))
    variance = float(np.var(data, ddof=1)) if n > 1 else 0.0
    std = math.sqrt(variance)
    standard_error = std / math.sqrt(n)
    margin = z_value(confidence_level) * standard_error

    stats = DiscrepancyStatistics(
        sample_size=n,
        mean=mean,
        median=float(np.median(data)),
        min=float(np.min(data)),
        max=float(np.max(data)),
        variance=variance,
        std=std,
        standard_error=standard_error,
        ci_low=mean - margin,
        ci_high=mean + margin,
        confidence_level=confidence_level,
    )

    if theoretical is None or theoretical is UNAVAILABLE:
        return stats

    theory = float(theoretical)
    stats.theoretical = theory
    stats.absolute_error = abs(mean - theory)
    stats.relative_error, stats.relative_error_status = _relative_error(
        mean, theory, stats.absolute_error, epsilon
    )
    return stats


@dataclass
class AggregateResult:
    """Repeated experiments for one (p, algorithm, rounds) configuration.

    Attributes:
        probability: Per-link delivery probability.
        algorithm: Combining rule, by value.
        rounds: Rounds per experiment.
        stats: Summary of the final discrepancies.
        theoretical: Closed-form value (with its ``approximate`` flag) or
            UNAVAILABLE.
        samples: Final discrepancy of each completed experiment.
        unmet_conditioning_rounds: Guaranteed-delivery rounds whose
            rejection budget ran out, summed over all experiments.
        cancelled: True when the run stopped early on request.
    """

    probability: float
    algorithm: str
    rounds: int
    stats: DiscrepancyStatistics | None
    theoretical: object = UNAVAILABLE
    samples: list[float] = field(default_factory=list)
    unmet_conditioning_rounds: int = 0
    cancelled: bool = False

    @property
    def sample_size(self) -> int:
        return len(self.samples)

    @property
    def mean(self) -> float | None:
        return self.stats.mean if self.stats is not None else None

    @property
    def theory_is_approximate(self) -> bool:
        return bool(getattr(self.theoretical, "approximate", False))

    def summary(self) -> str:
        header = (
            f"{self.algorithm} p={self.probability:g} rounds={self.rounds}"
            f"{' (cancelled)' if self.cancelled else ''}"
        )
        lines = [header]
        if self.stats is None:
            lines.append("  No samples collected")
        else:
            lines.append(self.stats.summary())
        if self.theory_is_approximate:
            lines.append("  Note: theory is a multi-round approximation")
        if self.unmet_conditioning_rounds:
            lines.append(
                f"  Warning: {self.unmet_conditioning_rounds} rounds did not meet "
                "the delivery guarantee"
            )
        return "\n".join(lines)

    def __repr__(self) -> str:
        mean = f"{self.mean:.6g}" if self.mean is not None else "n/a"
        return (
            f"AggregateResult({self.algorithm}, p={self.probability}, "
            f"rounds={self.rounds}, n={self.sample_size}, mean={mean})"
        )
