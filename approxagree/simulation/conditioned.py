"""
Guaranteed-progress delivery: rounds conditioned on at least K deliveries.

Three paths produce the delivery matrix:

- Two processes with K = 1 sample the exact conditional distribution of
  the three possible outcomes, so no draw is ever rejected.
- K >= M (all n(n-1) links) is deterministic: everything is delivered.
- Anything else uses rejection sampling over unconditioned rounds, bounded
  by an attempt budget derived from a normal approximation to the
  Binomial(M, p) tail. When the budget is exhausted the last draw is
  returned as-is and flagged, never padded with extra deliveries.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np
from scipy import stats as scipy_stats

from ..errors import InvalidParameterError, validate_probability, validate_process_count, validate_values
from .algorithms import Algorithm, AlgorithmParams
from .messages import delivered_count, draw_delivery_matrix, empty_delivery_matrix, full_delivery_matrix, link_count
from .numeric import DEFAULT_NUMERIC, NumericContext
from .round import RoundResult, apply_delivery

logger = logging.getLogger(__name__)

MIN_ATTEMPTS = 50
MAX_ATTEMPTS = 200_000
TARGET_SUCCESS_PROBABILITY = 0.99


class ConditioningOutcome(Enum):
    """How a conditioned round obtained its delivery matrix."""

    EXACT = "exact"  # Closed-form conditional distribution (n=2, K=1)
    ALL_DELIVERED = "all_delivered"  # K >= M, deterministic
    REJECTION = "rejection"  # Rejection sampling succeeded
    REJECTION_EXHAUSTED = "rejection_exhausted"  # Budget spent, condition not met
    UNCONDITIONED = "unconditioned"  # K <= 0, nothing to enforce

    @property
    def condition_met(self) -> bool:
        return self is not ConditioningOutcome.REJECTION_EXHAUSTED


class DeliveryMode(Enum):
    """Channel model for a whole experiment."""

    STANDARD = "standard"
    GUARANTEED = "guaranteed"  # At least K messages per round


@dataclass
class ConditionedDelivery:
    """A delivery matrix together with how it was obtained."""

    matrix: np.ndarray
    outcome: ConditioningOutcome
    attempts: int

    @property
    def was_conditioned(self) -> bool:
        return self.outcome.condition_met


@dataclass
class ConditionedRoundResult(RoundResult):
    """RoundResult plus conditioning bookkeeping.

    Attributes:
        was_conditioned: False only when rejection sampling ran out of
            attempts and the returned round may have fewer than K deliveries.
        attempts: Number of unconditioned draws made (1 for the exact path,
            0 for the deterministic all-delivered path).
        outcome: Which sampling path produced the round.
    """

    was_conditioned: bool = True
    attempts: int = 0
    outcome: ConditioningOutcome = ConditioningOutcome.UNCONDITIONED


def binomial_tail_estimate(num_links: int, p: float, min_delivered: int) -> float:
    """Approximate P(X >= K) for X ~ Binomial(M, p).

    Normal approximation with continuity correction. Degenerate variances
    (p in {0, 1}) are answered exactly.
    """
    if min_delivered <= 0:
        return 1.0
    if min_delivered > num_links:
        return 0.0
    if p <= 0.0:
        return 0.0
    if p >= 1.0:
        return 1.0
    mean = num_links * p
    std = math.sqrt(num_links * p * (1.0 - p))
    z = (min_delivered - 0.5 - mean) / std
    return float(scipy_stats.norm.sf(z))


def rejection_attempt_budget(num_links: int, p: float, min_delivered: int) -> int:
    """Attempts needed for a 99% chance of at least one accepted draw.

    Solves ``1 - (1 - t)^N >= 0.99`` for N, where t is the estimated
    acceptance probability, then clamps N to [MIN_ATTEMPTS, MAX_ATTEMPTS].
    """
    tail = binomial_tail_estimate(num_links, p, min_delivered)
    if tail >= 1.0:
        return MIN_ATTEMPTS
    if tail <= 0.0:
        return MAX_ATTEMPTS
    needed = math.log(1.0 - TARGET_SUCCESS_PROBABILITY) / math.log1p(-tail)
    return int(min(MAX_ATTEMPTS, max(MIN_ATTEMPTS, math.ceil(needed))))


def _exact_two_process(p: float, rng: np.random.Generator) -> np.ndarray:
    """Sample the two-process round conditioned on at least one delivery."""
    q = 1.0 - p
    z = 1.0 - q * q
    one_way = p * q / z
    u = rng.random()
    matrix = empty_delivery_matrix(2)
    if u < one_way:
        matrix[0, 1] = True
    elif u < 2.0 * one_way:
        matrix[1, 0] = True
    else:
        matrix[0, 1] = True
        matrix[1, 0] = True
    return matrix


def sample_conditioned_delivery(
    n: int,
    p: float,
    min_delivered: int,
    rng: np.random.Generator,
    max_attempts: int | None = None,
) -> ConditionedDelivery:
    """Draw a delivery matrix with at least ``min_delivered`` deliveries.

    Args:
        n: Number of processes.
        p: Per-link delivery probability.
        min_delivered: K, the minimum number of delivered messages.
        rng: NumPy random number generator.
        max_attempts: Override for the rejection budget (never above
            MAX_ATTEMPTS). Mostly useful in tests.

    Returns:
        ConditionedDelivery describing the matrix and the sampling path.
    """
    num_links = link_count(n)

    if min_delivered <= 0:
        return ConditionedDelivery(
            draw_delivery_matrix(n, p, rng), ConditioningOutcome.UNCONDITIONED, 1
        )
    if min_delivered >= num_links:
        return ConditionedDelivery(full_delivery_matrix(n), ConditioningOutcome.ALL_DELIVERED, 0)
    if n == 2 and min_delivered == 1 and p > 0.0:
        return ConditionedDelivery(_exact_two_process(p, rng), ConditioningOutcome.EXACT, 1)

    budget = rejection_attempt_budget(num_links, p, min_delivered)
    if max_attempts is not None:
        budget = max(1, min(budget, max_attempts, MAX_ATTEMPTS))

    matrix = None
    for attempt in range(1, budget + 1):
        matrix = draw_delivery_matrix(n, p, rng)
        if delivered_count(matrix) >= min_delivered:
            return ConditionedDelivery(matrix, ConditioningOutcome.REJECTION, attempt)

    logger.warning(
        "Rejection budget of %d attempts exhausted (n=%d, p=%s, K=%d)",
        budget, n, p, min_delivered,
    )
    return ConditionedDelivery(matrix, ConditioningOutcome.REJECTION_EXHAUSTED, budget)


def conditioned_round_result(
    base: RoundResult, delivery: ConditionedDelivery
) -> ConditionedRoundResult:
    return ConditionedRoundResult(
        new_values=base.new_values,
        messages=base.messages,
        delivery=base.delivery,
        discrepancy=base.discrepancy,
        known_values=base.known_values,
        was_conditioned=delivery.was_conditioned,
        attempts=delivery.attempts,
        outcome=delivery.outcome,
    )


def simulate_conditioned_round(
    values: Sequence[float],
    p: float,
    algorithm: Algorithm | str,
    params: AlgorithmParams | None = None,
    min_delivered: int = 1,
    rng: np.random.Generator | None = None,
    *,
    known_values: Sequence[frozenset[float]] | None = None,
    final_round: bool = False,
    max_attempts: int | None = None,
    numeric: NumericContext = DEFAULT_NUMERIC,
) -> ConditionedRoundResult:
    """Simulate one round conditioned on at least ``min_delivered`` deliveries.

    Args:
        values: Current process values (n >= 2).
        p: Per-link delivery probability in [0, 1].
        algorithm: Combining rule.
        params: Rule parameters.
        min_delivered: K, the minimum number of delivered messages.
        rng: Random generator; a fresh unseeded one if omitted.
        known_values: MIN known-value sets from earlier rounds.
        final_round: Whether MIN should take its terminal decision.
        max_attempts: Optional tighter cap on rejection attempts.
        numeric: Context for the exact discrepancy computation.

    Returns:
        ConditionedRoundResult. ``was_conditioned`` is False when the
        rejection budget ran out; the round then reflects the last draw.
    """
    validate_process_count(len(values))
    p = validate_probability(p)
    if isinstance(min_delivered, bool) or not isinstance(min_delivered, (int, np.integer)):
        raise InvalidParameterError(f"min_delivered must be an integer, got {min_delivered!r}")
    algorithm = Algorithm.parse(algorithm)
    params = params or AlgorithmParams()
    rng = rng if rng is not None else np.random.default_rng()

    values = validate_values(values)
    delivery = sample_conditioned_delivery(len(values), p, int(min_delivered), rng, max_attempts)
    base = apply_delivery(
        values,
        delivery.matrix,
        algorithm,
        params,
        known_values=known_values,
        final_round=final_round,
        numeric=numeric,
    )
    return conditioned_round_result(base, delivery)
