"""
Multi-dimensional processes.

Values become coordinate vectors of a common dimension d. AMP and FV act
on whole vectors: a disagreeing process jumps to the meeting vector or
adopts the first differing vector it received. MIN and RECURSIVE_AMP act
coordinate by coordinate, each coordinate with its own known values and
its own observed range.
"""

from enum import Enum
from typing import Sequence

import numpy as np

from ..errors import InvalidParameterError, validate_probability, validate_process_count, validate_values
from .algorithms import Algorithm, AlgorithmParams, recursive_step
from .conditioned import ConditionedRoundResult, conditioned_round_result, sample_conditioned_delivery
from .distance import DistanceMetric, vector_discrepancy
from .messages import build_messages, draw_delivery_matrix, received_from
from .round import RoundResult

Point = tuple[float, ...]
KnownCoordinates = tuple[frozenset[float], ...]


class InitialPattern(Enum):
    """Ways to lay out initial process positions in the unit hypercube."""

    CORNERS = "corners"
    RANDOM = "random"
    CENTROID = "centroid"
    LINE = "line"


def generate_initial_points(
    pattern: InitialPattern | str,
    n: int,
    dimension: int,
    rng: np.random.Generator | None = None,
) -> list[Point]:
    """Generate n starting points in [0, 1]^d.

    Args:
        pattern: Layout to use.
        n: Number of processes.
        dimension: Number of coordinates per process.
        rng: Random generator (only used by RANDOM).

    Returns:
        List of n coordinate tuples.

    CORNERS enumerates hypercube corners by the bits of the process index,
    cycling when there are more processes than the 2^d corners. LINE spaces
    processes evenly along the main diagonal from the origin to (1, ..., 1).
    """
    pattern = InitialPattern(pattern)
    validate_process_count(n)
    if dimension < 1:
        raise InvalidParameterError(f"dimension must be >= 1, got {dimension}")

    if pattern is InitialPattern.CORNERS:
        corners = 2**dimension
        return [
            tuple(float(((i % corners) >> bit) & 1) for bit in range(dimension))
            for i in range(n)
        ]
    if pattern is InitialPattern.RANDOM:
        rng = rng if rng is not None else np.random.default_rng()
        return [tuple(float(x) for x in row) for row in rng.random((n, dimension))]
    if pattern is InitialPattern.CENTROID:
        return [(0.5,) * dimension for _ in range(n)]
    if pattern is InitialPattern.LINE:
        return [(i / (n - 1),) * dimension for i in range(n)]
    raise AssertionError(f"unhandled pattern {pattern}")


def validate_points(points: Sequence[Sequence[float]]) -> list[Point]:
    """Check that all points share one dimension and return them as tuples."""
    validate_process_count(len(points))
    try:
        result = [tuple(validate_values(point)) for point in points]
    except TypeError as exc:
        raise InvalidParameterError("Cannot mix scalar and vector process values") from exc
    dimension = len(result[0])
    if dimension < 1:
        raise InvalidParameterError("points must have at least one coordinate")
    for point in result:
        if len(point) != dimension:
            raise InvalidParameterError(
                f"All points must have dimension {dimension}, got {len(point)}"
            )
    return result


def _differs(a: Point, b: Point, tolerance: float) -> bool:
    return any(abs(x - y) > tolerance for x, y in zip(a, b))


def vector_update(
    algorithm: Algorithm,
    own: Point,
    received: Sequence[Point],
    params: AlgorithmParams,
) -> Point:
    """Next position of a process for AMP, FV and RECURSIVE_AMP.

    MIN is handled by the caller through known-value sets.
    """
    if not received:
        return own
    if algorithm is Algorithm.AMP:
        if any(_differs(v, own, params.tolerance) for v in received):
            return params.meeting_vector(len(own))
        return own
    if algorithm is Algorithm.FV:
        for v in received:
            if _differs(v, own, params.tolerance):
                return v
        return own
    if algorithm is Algorithm.RECURSIVE_AMP:
        fractions = params.meeting_vector(len(own))
        return tuple(
            recursive_step([own[d], *(v[d] for v in received)], own[d], fractions[d], params.epsilon)
            for d in range(len(own))
        )
    if algorithm is Algorithm.MIN:
        return own
    raise AssertionError(f"unhandled algorithm {algorithm}")


def initial_known_coordinates(points: Sequence[Point]) -> list[KnownCoordinates]:
    return [tuple(frozenset([x]) for x in point) for point in points]


def decide_min_coordinates(known: Sequence[KnownCoordinates]) -> list[Point]:
    """Per-coordinate minimum of everything each process has seen."""
    return [tuple(min(k) for k in coords) for coords in known]


def apply_vector_delivery(
    points: Sequence[Point],
    delivery: np.ndarray,
    algorithm: Algorithm,
    params: AlgorithmParams,
    metric: DistanceMetric = DistanceMetric.EUCLIDEAN,
    known_values: Sequence[KnownCoordinates] | None = None,
    final_round: bool = False,
) -> RoundResult:
    """Update phase for vector-valued processes."""
    n = len(points)
    received = [[points[i] for i in received_from(delivery, j)] for j in range(n)]

    known = None
    if algorithm.accumulates_known_values:
        known = list(known_values) if known_values is not None else initial_known_coordinates(points)
        known = [
            tuple(coord | frozenset(v[d] for v in received[j]) for d, coord in enumerate(known[j]))
            for j in range(n)
        ]
        new_points = decide_min_coordinates(known) if final_round else list(points)
    else:
        new_points = [vector_update(algorithm, points[j], received[j], params) for j in range(n)]

    return RoundResult(
        new_values=new_points,
        messages=build_messages(points, delivery),
        delivery=delivery,
        discrepancy=vector_discrepancy(new_points, metric),
        known_values=known,
    )


def simulate_vector_round(
    points: Sequence[Sequence[float]],
    p: float,
    algorithm: Algorithm | str,
    params: AlgorithmParams | None = None,
    rng: np.random.Generator | None = None,
    *,
    metric: DistanceMetric = DistanceMetric.EUCLIDEAN,
    known_values: Sequence[KnownCoordinates] | None = None,
    final_round: bool = False,
    min_delivered: int | None = None,
    max_attempts: int | None = None,
) -> RoundResult | ConditionedRoundResult:
    """Simulate one round for vector-valued processes.

    With ``min_delivered`` set, the delivery matrix comes from the
    conditioned sampler and a ConditionedRoundResult is returned.
    """
    points = validate_points(points)
    p = validate_probability(p)
    algorithm = Algorithm.parse(algorithm)
    params = params or AlgorithmParams()
    rng = rng if rng is not None else np.random.default_rng()
    if algorithm in (Algorithm.AMP, Algorithm.RECURSIVE_AMP):
        params.validate_dimension(len(points[0]))

    if min_delivered is None:
        delivery = draw_delivery_matrix(len(points), p, rng)
        return apply_vector_delivery(
            points, delivery, algorithm, params, metric, known_values, final_round
        )

    conditioned = sample_conditioned_delivery(len(points), p, min_delivered, rng, max_attempts)
    base = apply_vector_delivery(
        points, conditioned.matrix, algorithm, params, metric, known_values, final_round
    )
    return conditioned_round_result(base, conditioned)
