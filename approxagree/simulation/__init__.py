"""
Round-based simulation of approximate agreement over lossy links.

This package provides the per-round message and update phases, the
guaranteed-delivery sampler, the vector extension and the experiment
driver that strings rounds together.
"""

from .numeric import NumericConfig, NumericContext, DEFAULT_NUMERIC
from .messages import (
    Message,
    link_count,
    draw_delivery_matrix,
    full_delivery_matrix,
    empty_delivery_matrix,
    delivered_count,
    build_messages,
)
from .distance import DistanceMetric, scalar_discrepancy, vector_discrepancy
from .algorithms import Algorithm, AlgorithmParams, optimal_algorithm, apply_update
from .round import RoundResult, simulate_round
from .conditioned import (
    ConditioningOutcome,
    DeliveryMode,
    ConditionedDelivery,
    ConditionedRoundResult,
    rejection_attempt_budget,
    sample_conditioned_delivery,
    simulate_conditioned_round,
)
from .vector import InitialPattern, generate_initial_points, simulate_vector_round
from .experiment import (
    ExperimentConfig,
    RoundRecord,
    ExperimentHistory,
    Simulator,
    run_experiment,
    run_vector_experiment,
)

__all__ = [
    # Numeric
    "NumericConfig",
    "NumericContext",
    "DEFAULT_NUMERIC",
    # Messages
    "Message",
    "link_count",
    "draw_delivery_matrix",
    "full_delivery_matrix",
    "empty_delivery_matrix",
    "delivered_count",
    "build_messages",
    # Distance
    "DistanceMetric",
    "scalar_discrepancy",
    "vector_discrepancy",
    # Algorithms
    "Algorithm",
    "AlgorithmParams",
    "optimal_algorithm",
    "apply_update",
    # Rounds
    "RoundResult",
    "simulate_round",
    # Guaranteed delivery
    "ConditioningOutcome",
    "DeliveryMode",
    "ConditionedDelivery",
    "ConditionedRoundResult",
    "rejection_attempt_budget",
    "sample_conditioned_delivery",
    "simulate_conditioned_round",
    # Vectors
    "InitialPattern",
    "generate_initial_points",
    "simulate_vector_round",
    # Experiments
    "ExperimentConfig",
    "RoundRecord",
    "ExperimentHistory",
    "Simulator",
    "run_experiment",
    "run_vector_experiment",
]
