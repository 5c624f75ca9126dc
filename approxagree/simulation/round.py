"""
One communication round for scalar-valued processes.

A round has two phases. In the message phase every directed link draws an
independent Bernoulli(p) outcome. In the update phase each process applies
the combining rule to the values it received. The new discrepancy is then
recomputed from scratch.
"""

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from ..errors import validate_probability, validate_process_count, validate_values
from .algorithms import (
    Algorithm,
    AlgorithmParams,
    apply_update,
    decide_min,
    extend_known_values,
    initial_known_values,
)
from .distance import scalar_discrepancy
from .messages import Message, build_messages, delivered_count, draw_delivery_matrix, received_from
from .numeric import DEFAULT_NUMERIC, NumericContext


@dataclass
class RoundResult:
    """Outcome of one round.

    Attributes:
        new_values: Process values after the update phase.
        messages: Every directed message of the round, delivered or not.
        delivery: Boolean (n, n) delivery matrix, ``delivery[i, j]`` for i -> j.
        discrepancy: Maximum pairwise distance of ``new_values``.
        known_values: Per-process known-value sets (MIN only).
    """

    new_values: list
    messages: list[Message]
    delivery: np.ndarray
    discrepancy: float
    known_values: list | None = field(default=None)

    @property
    def delivered_count(self) -> int:
        return delivered_count(self.delivery)


def apply_delivery(
    values: Sequence[float],
    delivery: np.ndarray,
    algorithm: Algorithm,
    params: AlgorithmParams,
    known_values: Sequence[frozenset[float]] | None = None,
    final_round: bool = False,
    numeric: NumericContext = DEFAULT_NUMERIC,
) -> RoundResult:
    """Run the update phase for a given delivery matrix.

    Args:
        values: Values at the start of the round.
        delivery: Delivery matrix from the message phase.
        algorithm: Combining rule.
        params: Rule parameters.
        known_values: MIN known-value sets carried over from earlier rounds.
            Ignored by the other rules.
        final_round: Whether MIN should take its terminal decision.
        numeric: Context for the exact discrepancy computation.

    Returns:
        RoundResult for this round.
    """
    n = len(values)
    received = [[values[i] for i in received_from(delivery, j)] for j in range(n)]

    known = None
    if algorithm.accumulates_known_values:
        start = list(known_values) if known_values is not None else initial_known_values(values)
        known = extend_known_values(start, received)
        new_values = decide_min(known) if final_round else list(values)
    else:
        new_values = [apply_update(algorithm, values[j], received[j], params) for j in range(n)]

    return RoundResult(
        new_values=new_values,
        messages=build_messages(values, delivery),
        delivery=delivery,
        discrepancy=scalar_discrepancy(new_values, numeric),
        known_values=known,
    )


def simulate_round(
    values: Sequence[float],
    p: float,
    algorithm: Algorithm | str,
    params: AlgorithmParams | None = None,
    rng: np.random.Generator | None = None,
    *,
    known_values: Sequence[frozenset[float]] | None = None,
    final_round: bool = False,
    numeric: NumericContext = DEFAULT_NUMERIC,
) -> RoundResult:
    """Simulate one unconditioned round.

    Args:
        values: Current process values (n >= 2).
        p: Per-link delivery probability in [0, 1].
        algorithm: Combining rule, as an Algorithm or its name.
        params: Rule parameters (defaults: meeting point 0.5).
        rng: Random generator; a fresh unseeded one if omitted.
        known_values: MIN known-value sets from earlier rounds.
        final_round: Whether MIN should take its terminal decision.
        numeric: Context for the exact discrepancy computation.

    Returns:
        RoundResult with new values, messages and discrepancy.
    """
    validate_process_count(len(values))
    p = validate_probability(p)
    algorithm = Algorithm.parse(algorithm)
    params = params or AlgorithmParams()
    rng = rng if rng is not None else np.random.default_rng()

    values = validate_values(values)
    delivery = draw_delivery_matrix(len(values), p, rng)
    return apply_delivery(
        values,
        delivery,
        algorithm,
        params,
        known_values=known_values,
        final_round=final_round,
        numeric=numeric,
    )
