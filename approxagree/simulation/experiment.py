"""
Round-by-round experiment driver.

A Simulator owns one experiment: it copies the initial values, runs the
configured number of rounds through the round simulator (plain or
conditioned, scalar or vector) and appends one RoundRecord per round to
an ExperimentHistory. Round 0 records the initial state.
"""

from dataclasses import dataclass, field
from typing import Any, Iterator, Sequence

import numpy as np

from ..errors import InvalidParameterError, validate_probability, validate_process_count, validate_rounds, validate_values
from .algorithms import Algorithm, AlgorithmParams, decide_min, initial_known_values
from .conditioned import (
    ConditionedRoundResult,
    ConditioningOutcome,
    DeliveryMode,
    simulate_conditioned_round,
)
from .distance import DistanceMetric, scalar_discrepancy, vector_discrepancy
from .messages import Message
from .numeric import DEFAULT_NUMERIC, NumericContext
from .round import RoundResult, simulate_round
from .vector import decide_min_coordinates, initial_known_coordinates, simulate_vector_round, validate_points


@dataclass(frozen=True)
class ExperimentConfig:
    """Everything needed to run one experiment.

    Attributes:
        initial_values: One value per process; floats, or coordinate
            sequences for vector-valued processes.
        probability: Per-link delivery probability p.
        rounds: Number of rounds k.
        algorithm: Combining rule.
        params: Rule parameters.
        delivery_mode: STANDARD, or GUARANTEED for at-least-K delivery.
        min_delivered: K for GUARANTEED mode.
        metric: Distance used for vector values.
    """

    initial_values: tuple
    probability: float
    rounds: int
    algorithm: Algorithm = Algorithm.AMP
    params: AlgorithmParams = field(default_factory=AlgorithmParams)
    delivery_mode: DeliveryMode = DeliveryMode.STANDARD
    min_delivered: int = 1
    metric: DistanceMetric = DistanceMetric.EUCLIDEAN

    def __post_init__(self) -> None:
        values = tuple(self.initial_values)
        validate_process_count(len(values))
        if any(isinstance(v, (tuple, list, np.ndarray)) for v in values):
            values = tuple(validate_points(values))
        else:
            values = tuple(validate_values(values))
        object.__setattr__(self, "initial_values", values)
        object.__setattr__(self, "probability", validate_probability(self.probability))
        object.__setattr__(self, "algorithm", Algorithm.parse(self.algorithm))
        object.__setattr__(self, "delivery_mode", DeliveryMode(self.delivery_mode))
        object.__setattr__(self, "metric", DistanceMetric(self.metric))
        validate_rounds(self.rounds)
        if self.delivery_mode is DeliveryMode.GUARANTEED and self.min_delivered < 1:
            raise InvalidParameterError(
                f"min_delivered must be >= 1 in guaranteed mode, got {self.min_delivered}"
            )
        if self.algorithm in (Algorithm.AMP, Algorithm.RECURSIVE_AMP):
            self.params.validate_dimension(self.dimension)

    @property
    def process_count(self) -> int:
        return len(self.initial_values)

    @property
    def is_vector(self) -> bool:
        return isinstance(self.initial_values[0], tuple)

    @property
    def dimension(self) -> int:
        return len(self.initial_values[0]) if self.is_vector else 1

    @property
    def conditioned(self) -> bool:
        return self.delivery_mode is DeliveryMode.GUARANTEED


@dataclass(frozen=True)
class RoundRecord:
    """State of an experiment after one round.

    Attributes:
        round_index: 0 for the initial state, then 1..k.
        values: Process values after the round.
        discrepancy: Maximum pairwise distance of ``values``.
        messages: All messages of the round (empty for round 0).
        known_values: MIN known-value sets after the round, if applicable.
        outcome: Conditioning path for guaranteed-delivery rounds.
        attempts: Unconditioned draws used by the conditioned sampler.
    """

    round_index: int
    values: tuple
    discrepancy: float
    messages: tuple[Message, ...] = ()
    known_values: tuple | None = None
    outcome: ConditioningOutcome | None = None
    attempts: int = 0

    @property
    def was_conditioned(self) -> bool:
        return self.outcome is None or self.outcome.condition_met

    @property
    def delivered_count(self) -> int:
        return sum(1 for m in self.messages if m.delivered)


@dataclass
class ExperimentHistory:
    """Append-only sequence of RoundRecords for one experiment.

    Invariant once complete: ``len(history) == config.rounds + 1``.
    """

    config: ExperimentConfig
    records: list[RoundRecord] = field(default_factory=list)

    def append(self, record: RoundRecord) -> None:
        expected = len(self.records)
        if record.round_index != expected:
            raise ValueError(f"Expected round {expected}, got {record.round_index}")
        self.records.append(record)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[RoundRecord]:
        return iter(self.records)

    def __getitem__(self, index: int) -> RoundRecord:
        return self.records[index]

    @property
    def final(self) -> RoundRecord:
        return self.records[-1]

    @property
    def final_values(self) -> tuple:
        return self.final.values

    @property
    def final_discrepancy(self) -> float:
        return self.final.discrepancy

    @property
    def decided_values(self) -> tuple:
        """Output of each process; for MIN this is its terminal decision."""
        return self.final.values

    def discrepancies(self) -> list[float]:
        return [r.discrepancy for r in self.records]

    def unmet_conditioning_rounds(self) -> int:
        return sum(1 for r in self.records if not r.was_conditioned)

    def __repr__(self) -> str:
        return (
            f"ExperimentHistory({self.config.algorithm.value}, p={self.config.probability}, "
            f"rounds={len(self.records) - 1}, final_discrepancy={self.final_discrepancy:.6g})"
        )


class Simulator:
    """Runs a single experiment round by round.

    The simulator maintains:
    - The current process values (a private copy of the initial values)
    - Per-process known-value sets for MIN
    - A random generator seeded for reproducibility
    """

    def __init__(
        self,
        config: ExperimentConfig,
        seed: int | None = None,
        numeric: NumericContext | None = None,
        max_attempts: int | None = None,
    ):
        """Initialize the simulator.

        Args:
            config: Experiment configuration.
            seed: Random seed for reproducibility.
            numeric: Context for exact scalar discrepancies.
            max_attempts: Optional tighter cap on conditioned rejection attempts.
        """
        self.config = config
        self.rng = np.random.default_rng(seed)
        self.numeric = numeric or DEFAULT_NUMERIC
        self.max_attempts = max_attempts

    def _initial_record(self) -> RoundRecord:
        values = self.config.initial_values
        known = None
        if self.config.algorithm.accumulates_known_values:
            known = (
                initial_known_coordinates(values) if self.config.is_vector else initial_known_values(values)
            )
        if self.config.is_vector:
            discrepancy = vector_discrepancy(values, self.config.metric)
        else:
            discrepancy = scalar_discrepancy(values, self.numeric)
        # With zero rounds MIN decides straight away on its own value.
        if known is not None and self.config.rounds == 0:
            values = tuple(decide_min_coordinates(known) if self.config.is_vector else decide_min(known))
        return RoundRecord(
            round_index=0,
            values=values,
            discrepancy=discrepancy,
            known_values=tuple(known) if known is not None else None,
        )

    def _step(self, values: tuple, known: tuple | None, final_round: bool) -> RoundResult:
        cfg = self.config
        min_delivered = cfg.min_delivered if cfg.conditioned else None
        if cfg.is_vector:
            return simulate_vector_round(
                values,
                cfg.probability,
                cfg.algorithm,
                cfg.params,
                self.rng,
                metric=cfg.metric,
                known_values=known,
                final_round=final_round,
                min_delivered=min_delivered,
                max_attempts=self.max_attempts,
            )
        if cfg.conditioned:
            return simulate_conditioned_round(
                values,
                cfg.probability,
                cfg.algorithm,
                cfg.params,
                cfg.min_delivered,
                self.rng,
                known_values=known,
                final_round=final_round,
                max_attempts=self.max_attempts,
                numeric=self.numeric,
            )
        return simulate_round(
            values,
            cfg.probability,
            cfg.algorithm,
            cfg.params,
            self.rng,
            known_values=known,
            final_round=final_round,
            numeric=self.numeric,
        )

    def run(self) -> ExperimentHistory:
        """Run all configured rounds.

        Returns:
            ExperimentHistory with rounds + 1 records.
        """
        history = ExperimentHistory(config=self.config)
        first = self._initial_record()
        history.append(first)

        values = self.config.initial_values
        known = first.known_values
        for r in range(1, self.config.rounds + 1):
            result = self._step(values, known, final_round=(r == self.config.rounds))
            values = tuple(result.new_values)
            known = tuple(result.known_values) if result.known_values is not None else None
            conditioned = isinstance(result, ConditionedRoundResult)
            history.append(
                RoundRecord(
                    round_index=r,
                    values=values,
                    discrepancy=result.discrepancy,
                    messages=tuple(result.messages),
                    known_values=known,
                    outcome=result.outcome if conditioned else None,
                    attempts=result.attempts if conditioned else 0,
                )
            )
        return history


def run_experiment(
    initial_values: Sequence[Any],
    p: float,
    rounds: int,
    algorithm: Algorithm | str = Algorithm.AMP,
    params: AlgorithmParams | None = None,
    *,
    delivery_mode: DeliveryMode | str = DeliveryMode.STANDARD,
    min_delivered: int = 1,
    metric: DistanceMetric | str = DistanceMetric.EUCLIDEAN,
    seed: int | None = None,
    numeric: NumericContext | None = None,
) -> ExperimentHistory:
    """Convenience function to run one experiment.

    Args:
        initial_values: One value (or coordinate sequence) per process.
        p: Per-link delivery probability.
        rounds: Number of rounds.
        algorithm: Combining rule.
        params: Rule parameters.
        delivery_mode: STANDARD or GUARANTEED.
        min_delivered: K for GUARANTEED mode.
        metric: Distance for vector values.
        seed: Random seed.
        numeric: Context for exact scalar discrepancies.

    Returns:
        ExperimentHistory from round 0 to round ``rounds``.
    """
    config = ExperimentConfig(
        initial_values=tuple(initial_values),
        probability=p,
        rounds=rounds,
        algorithm=Algorithm.parse(algorithm),
        params=params or AlgorithmParams(),
        delivery_mode=DeliveryMode(delivery_mode),
        min_delivered=min_delivered,
        metric=DistanceMetric(metric),
    )
    return Simulator(config, seed=seed, numeric=numeric).run()


def run_vector_experiment(
    initial_points: Sequence[Sequence[float]],
    p: float,
    rounds: int,
    algorithm: Algorithm | str = Algorithm.AMP,
    params: AlgorithmParams | None = None,
    **kwargs: Any,
) -> ExperimentHistory:
    """Run an experiment with vector-valued processes.

    Accepts the same keyword arguments as :func:`run_experiment`.
    """
    points = validate_points(initial_points)
    return run_experiment(points, p, rounds, algorithm, params, **kwargs)
