#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Closed-form expected discrepancies for AMP and FV.

All formulas assume binary inputs: m processes start at 0 and n - m at 1,
so the initial discrepancy is 1. Everything is evaluated in Decimal through
a NumericContext.

Two processes, one round:
    AMP: q            FV: p^2 + q^2
Two processes, one round, conditioned on at least one delivery
(Z = 1 - q^2):
    AMP: pq / Z       FV: p^2 / Z
n processes, one round (A = (1 - q^(n-m))^m, B = (1 - q^m)^(n-m),
C = q^(m(n-m))):
    AMP(a): 1 - (a A + (1 - a) B)       FV: 1 - C (A + B)

After k rounds the two-process values are raised to the k-th power, which
is exact for two processes. For n > 2 the single-round n-process value is
multiplied by the two-process factor k - 1 times; that extension has no
error bound and results are flagged ``approximate``.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from .errors import UNAVAILABLE, InvalidParameterError, Unavailable, validate_probability, validate_process_count, validate_rounds
from .simulation.algorithms import Algorithm
from .simulation.numeric import DEFAULT_NUMERIC, NumericContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TheoreticalValue:
    """A closed-form expected discrepancy.

    Attributes:
        value: Exact Decimal result.
        approximate: True when the multi-round extension for n > 2 was used.
    """

    value: Decimal
    approximate: bool = False

    def __float__(self) -> float:
        return float(self.value)

    def __repr__(self) -> str:
        suffix = ", approximate" if self.approximate else ""
        return f"TheoreticalValue({float(self.value):.10g}{suffix})"


def two_process_factor(
    p: float, algorithm: Algorithm, *, numeric: NumericContext = DEFAULT_NUMERIC
) -> Decimal:
    """Single-round expected discrepancy for two processes."""
    p_dec = numeric.to_decimal(p)
    q = numeric.complement(p_dec)
    if algorithm is Algorithm.AMP:
        return q
    if algorithm is Algorithm.FV:
        return numeric.add(numeric.power(p_dec, 2), numeric.power(q, 2))
    raise InvalidParameterError(f"No closed form for {algorithm.value}")


def conditioned_two_process_factor(
    p: float, algorithm: Algorithm, *, numeric: NumericContext = DEFAULT_NUMERIC
) -> Decimal | Unavailable:
    """Single-round expected discrepancy for two processes when at least
    one of the two messages is guaranteed to arrive.

    Undefined at p = 0, where the conditioning event has probability zero.
    """
    p_dec = numeric.to_decimal(p)
    q = numeric.complement(p_dec)
    z = numeric.complement(numeric.power(q, 2))
    if z == 0:
        return UNAVAILABLE
    if algorithm is Algorithm.AMP:
        return numeric.divide(numeric.multiply(p_dec, q), z)
    if algorithm is Algorithm.FV:
        return numeric.divide(numeric.power(p_dec, 2), z)
    raise InvalidParameterError(f"No closed form for {algorithm.value}")


def optimal_conditioned_algorithm(p: float) -> Algorithm:
    """Better rule under guaranteed progress: FV below p = 1/2, AMP from 1/2 on.

    The preference is reversed with respect to the unconditioned channel.
    """
    return Algorithm.AMP if p >= 0.5 else Algorithm.FV


def optimal_conditioned_factor(
    p: float, *, numeric: NumericContext = DEFAULT_NUMERIC
) -> Decimal | Unavailable:
    """min(AMP, FV) under guaranteed progress; never above 1/3, equal to it at p = 1/2."""
    amp = conditioned_two_process_factor(p, Algorithm.AMP, numeric=numeric)
    fv = conditioned_two_process_factor(p, Algorithm.FV, numeric=numeric)
    if amp is UNAVAILABLE or fv is UNAVAILABLE:
        return UNAVAILABLE
    return min(amp, fv)


def n_process_factor(
    p: float,
    n: int,
    m: int,
    algorithm: Algorithm,
    meeting_point: float = 0.5,
    *,
    numeric: NumericContext = DEFAULT_NUMERIC,
) -> Decimal:
    """Single-round expected discrepancy with m processes at 0 and n - m at 1."""
    if m <= 0 or m >= n:
        return Decimal(0)
    one = Decimal(1)
    q = numeric.complement(p)
    a_term = numeric.power(numeric.complement(numeric.power(q, n - m)), m)
    b_term = numeric.power(numeric.complement(numeric.power(q, m)), n - m)
    if algorithm is Algorithm.AMP:
        a = numeric.to_decimal(meeting_point)
        weighted = numeric.add(
            numeric.multiply(a, a_term),
            numeric.multiply(numeric.complement(a), b_term),
        )
        return numeric.subtract(one, weighted)
    if algorithm is Algorithm.FV:
        c_term = numeric.power(q, m * (n - m))
        return numeric.subtract(one, numeric.multiply(c_term, numeric.add(a_term, b_term)))
    raise InvalidParameterError(f"No closed form for {algorithm.value}")


def calculate_expected_discrepancy(
    p: float,
    algorithm: Algorithm | str,
    rounds: int = 1,
    n: int = 2,
    m: Optional[int] = None,
    *,
    meeting_point: float = 0.5,
    conditioned: bool = False,
    min_delivered: int = 1,
    numeric: Optional[NumericContext] = None,
) -> TheoreticalValue | Unavailable:
    """Expected discrepancy after ``rounds`` rounds, starting from gap 1.

    Args:
        p: Per-link delivery probability in [0, 1].
        algorithm: Combining rule.
        rounds: Number of rounds k >= 0.
        n: Number of processes.
        m: Number of processes starting at 0 (defaults to 1 for n = 2).
        meeting_point: AMP meeting point a.
        conditioned: Use the guaranteed-progress channel.
        min_delivered: K for the guaranteed-progress channel.
        numeric: Context for exact arithmetic.

    Returns:
        TheoreticalValue, or UNAVAILABLE when no closed form exists for the
        requested combination.

    Raises:
        InvalidParameterError: For out-of-range inputs, or when the
            guaranteed-progress variant is requested for MIN or RECURSIVE_AMP.
    """
    numeric = numeric or DEFAULT_NUMERIC
    p = validate_probability(p)
    algorithm = Algorithm.parse(algorithm)
    validate_rounds(rounds)
    validate_process_count(n)
    if m is None:
        if n != 2:
            raise InvalidParameterError("m (processes starting at 0) is required for n > 2")
        m = 1
    if not 0 <= m <= n:
        raise InvalidParameterError(f"m must be in [0, {n}], got {m}")

    if conditioned and not algorithm.has_closed_form:
        raise InvalidParameterError(
            f"Guaranteed-progress theory is not supported for {algorithm.value}"
        )
    if not algorithm.has_closed_form:
        return UNAVAILABLE
    if m == 0 or m == n:
        # Every process already agrees.
        return TheoreticalValue(Decimal(0))
    if rounds == 0:
        return TheoreticalValue(Decimal(1))

    if conditioned:
        if n != 2 or min_delivered != 1:
            return UNAVAILABLE
        factor = conditioned_two_process_factor(p, algorithm, numeric=numeric)
        if factor is UNAVAILABLE:
            return UNAVAILABLE
        return TheoreticalValue(numeric.power(factor, rounds))

    factor = two_process_factor(p, algorithm, numeric=numeric)
    if n == 2:
        return TheoreticalValue(numeric.power(factor, rounds))

    single = n_process_factor(p, n, m, algorithm, meeting_point, numeric=numeric)
    if rounds == 1:
        return TheoreticalValue(single)
    logger.warning(
        "Multi-round theory for n=%d is an approximation (single-round value x factor^%d)",
        n, rounds - 1,
    )
    return TheoreticalValue(
        numeric.multiply(single, numeric.power(factor, rounds - 1)), approximate=True
    )


def count_zero_processes(values: Sequence) -> Optional[int]:
    """Number of processes starting at 0, or None if inputs are not binary."""
    if any(isinstance(v, (tuple, list)) for v in values):
        return None
    if any(float(v) not in (0.0, 1.0) for v in values):
        return None
    return sum(1 for v in values if float(v) == 0.0)


def expected_discrepancy_for_values(
    values: Sequence,
    p: float,
    algorithm: Algorithm,
    rounds: int,
    *,
    meeting_point: float = 0.5,
    conditioned: bool = False,
    min_delivered: int = 1,
    numeric: Optional[NumericContext] = None,
) -> TheoreticalValue | Unavailable:
    """Theory matched to concrete initial values.

    Only binary scalar inputs have a closed form; everything else, and any
    rule without a closed form, yields UNAVAILABLE.
    """
    m = count_zero_processes(values)
    if m is None or not algorithm.has_closed_form:
        return UNAVAILABLE
    return calculate_expected_discrepancy(
        p,
        algorithm,
        rounds,
        len(values),
        m,
        meeting_point=meeting_point,
        conditioned=conditioned,
        min_delivered=min_delivered,
        numeric=numeric,
    )


@dataclass(frozen=True)
class RoundConvergence:
    """Theoretical progress made in a single round."""

    round_index: int
    discrepancy: float
    reduction_factor: float
    convergence_rate: float


@dataclass(frozen=True)
class ConvergenceAnalysis:
    probability: float
    algorithm: Algorithm
    factor: float
    rounds: list[RoundConvergence]


def convergence_rates(
    p: float,
    algorithm: Algorithm | str,
    rounds: int,
    *,
    conditioned: bool = False,
    numeric: Optional[NumericContext] = None,
) -> ConvergenceAnalysis | Unavailable:
    """Per-round theoretical discrepancy, reduction factor and convergence rate
    for two processes.

    The convergence rate of round r is ``1 - D_r / D_{r-1}``; both it and the
    reduction factor are reported as 0 once the previous discrepancy is 0.
    """
    numeric = numeric or DEFAULT_NUMERIC
    p = validate_probability(p)
    algorithm = Algorithm.parse(algorithm)
    validate_rounds(rounds)
    if not algorithm.has_closed_form:
        return UNAVAILABLE

    if conditioned:
        factor = conditioned_two_process_factor(p, algorithm, numeric=numeric)
        if factor is UNAVAILABLE:
            return UNAVAILABLE
    else:
        factor = two_process_factor(p, algorithm, numeric=numeric)

    per_round = []
    for r in range(1, rounds + 1):
        current = numeric.power(factor, r)
        previous = numeric.power(factor, r - 1)
        if previous > 0:
            reduction = numeric.divide(current, previous)
            rate = numeric.complement(reduction)
        else:
            reduction = Decimal(0)
            rate = Decimal(0)
        per_round.append(
            RoundConvergence(
                round_index=r,
                discrepancy=float(current),
                reduction_factor=float(reduction),
                convergence_rate=float(rate),
            )
        )

    return ConvergenceAnalysis(
        probability=p, algorithm=algorithm, factor=float(factor), rounds=per_round
    )
