"""
Monte Carlo runner for approximate agreement experiments.

Repeats whole experiments, optionally in parallel, and reduces their final
discrepancies to statistics alongside the closed-form expectation. Also
provides sweeps over a grid of delivery probabilities and a per-round
comparison of AMP and FV against theory.
"""

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

import numpy as np

from .errors import UNAVAILABLE, InvalidParameterError, validate_probability, validate_repetitions
from .simulation.algorithms import Algorithm, AlgorithmParams, optimal_algorithm
from .simulation.conditioned import DeliveryMode
from .simulation.distance import DistanceMetric
from .simulation.experiment import ExperimentConfig, Simulator
from .simulation.numeric import NumericConfig, NumericContext
from .statistics import AggregateResult, summarize_discrepancies
from .theory import calculate_expected_discrepancy, expected_discrepancy_for_values

logger = logging.getLogger(__name__)

CancelCheck = Callable[[], bool]
ProgressCallback = Callable[[int, int], None]


@dataclass
class MonteCarloConfig:
    """Configuration for repeated experiments.

    Attributes:
        repetitions: Number of independent experiments per configuration.
        parallel_workers: Number of parallel worker processes (1 = sequential).
        base_seed: Base seed for reproducibility (repetition i gets base_seed + i).
        max_attempts: Optional tighter cap on conditioned rejection attempts.
        numeric: Precision used for exact discrepancies and theory.
    """

    repetitions: int
    parallel_workers: int = 1
    base_seed: int | None = None
    max_attempts: int | None = None
    numeric: NumericConfig = field(default_factory=NumericConfig)

    def __post_init__(self) -> None:
        validate_repetitions(self.repetitions)
        if self.parallel_workers < 1:
            raise InvalidParameterError(
                f"parallel_workers must be >= 1, got {self.parallel_workers}"
            )
        if self.max_attempts is not None and self.max_attempts < 1:
            raise InvalidParameterError(
                f"max_attempts must be >= 1, got {self.max_attempts}"
            )

    def seed_for(self, index: int) -> int | None:
        return self.base_seed + index if self.base_seed is not None else None


@dataclass
class ExperimentSummary:
    """What the runner keeps from one experiment."""

    index: int
    discrepancies: list[float]
    unmet_conditioning_rounds: int

    @property
    def final_discrepancy(self) -> float:
        return self.discrepancies[-1]


def _run_single_experiment(
    experiment: ExperimentConfig,
    index: int,
    seed: int | None,
    numeric: NumericConfig,
    max_attempts: int | None,
) -> ExperimentSummary:
    """Run one experiment (used for parallel execution).

    This is a module-level function to support multiprocessing. Only the
    per-round discrepancies travel back to the parent process.
    """
    simulator = Simulator(
        experiment,
        seed=seed,
        numeric=NumericContext(numeric),
        max_attempts=max_attempts,
    )
    history = simulator.run()
    return ExperimentSummary(
        index=index,
        discrepancies=history.discrepancies(),
        unmet_conditioning_rounds=history.unmet_conditioning_rounds(),
    )


class MonteCarloRunner:
    """Runs repeated experiments and aggregates their results.

    Supports parallel execution for faster results on multi-core systems.
    Cancellation is checked only between whole repetitions.
    """

    def __init__(self, config: MonteCarloConfig):
        """Initialize the runner.

        Args:
            config: Monte Carlo configuration.
        """
        self.config = config
        self.numeric = NumericContext(config.numeric)

    def run(
        self,
        experiment: ExperimentConfig,
        should_cancel: CancelCheck | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> AggregateResult:
        """Repeat an experiment and summarize its final discrepancies.

        Args:
            experiment: Configuration shared by every repetition.
            should_cancel: Optional callable polled between repetitions.
            progress_callback: Optional callback(completed, total).

        Returns:
            AggregateResult with the closed-form value attached when one
            exists. A cancelled run keeps the samples collected so far.
        """
        summaries, cancelled = self._collect(experiment, should_cancel, progress_callback)
        samples = [s.final_discrepancy for s in summaries]
        unmet = sum(s.unmet_conditioning_rounds for s in summaries)
        if unmet:
            logger.warning(
                "%d of %d guaranteed-delivery rounds did not meet K=%d (p=%s, %s)",
                unmet,
                len(summaries) * experiment.rounds,
                experiment.min_delivered,
                experiment.probability,
                experiment.algorithm.value,
            )

        theoretical = self._theory_for(experiment)
        stats = summarize_discrepancies(samples, theoretical) if samples else None
        return AggregateResult(
            probability=experiment.probability,
            algorithm=experiment.algorithm.value,
            rounds=experiment.rounds,
            stats=stats,
            theoretical=theoretical,
            samples=samples,
            unmet_conditioning_rounds=unmet,
            cancelled=cancelled,
        )

    def round_means(
        self,
        experiment: ExperimentConfig,
        should_cancel: CancelCheck | None = None,
    ) -> tuple[list[float], bool]:
        """Mean discrepancy of every round from 0 to ``experiment.rounds``.

        Returns:
            Tuple of (per-round means, cancelled). Means are NaN when no
            repetition completed.
        """
        summaries, cancelled = self._collect(experiment, should_cancel, None)
        if not summaries:
            return [float("nan")] * (experiment.rounds + 1), cancelled
        table = np.array([s.discrepancies for s in summaries], dtype=float)
        return [float(x) for x in table.mean(axis=0)], cancelled

    def _theory_for(self, experiment: ExperimentConfig):
        if experiment.is_vector:
            return UNAVAILABLE
        return expected_discrepancy_for_values(
            experiment.initial_values,
            experiment.probability,
            experiment.algorithm,
            experiment.rounds,
            meeting_point=experiment.params.scalar_meeting_point,
            conditioned=experiment.conditioned,
            min_delivered=experiment.min_delivered,
            numeric=self.numeric,
        )

    def _collect(
        self,
        experiment: ExperimentConfig,
        should_cancel: CancelCheck | None,
        progress_callback: ProgressCallback | None,
    ) -> tuple[list[ExperimentSummary], bool]:
        if self.config.parallel_workers > 1:
            summaries, cancelled = self._run_parallel(experiment, should_cancel, progress_callback)
        else:
            summaries, cancelled = self._run_sequential(experiment, should_cancel, progress_callback)
        # Completion order is arbitrary in parallel mode.
        summaries.sort(key=lambda s: s.index)
        if cancelled:
            logger.info(
                "Cancelled after %d of %d repetitions", len(summaries), self.config.repetitions
            )
        return summaries, cancelled

    def _run_sequential(
        self,
        experiment: ExperimentConfig,
        should_cancel: CancelCheck | None,
        progress_callback: ProgressCallback | None,
    ) -> tuple[list[ExperimentSummary], bool]:
        """Run repetitions sequentially."""
        summaries = []
        total = self.config.repetitions
        for i in range(total):
            if should_cancel is not None and should_cancel():
                return summaries, True

            summaries.append(
                _run_single_experiment(
                    experiment,
                    index=i,
                    seed=self.config.seed_for(i),
                    numeric=self.config.numeric,
                    max_attempts=self.config.max_attempts,
                )
            )
            if progress_callback:
                progress_callback(i + 1, total)
        logger.debug("Completed %d repetitions sequentially", total)
        return summaries, False

    def _run_parallel(
        self,
        experiment: ExperimentConfig,
        should_cancel: CancelCheck | None,
        progress_callback: ProgressCallback | None,
    ) -> tuple[list[ExperimentSummary], bool]:
        """Run repetitions in parallel using ProcessPoolExecutor."""
        summaries = []
        total = self.config.repetitions
        cancelled = False

        with ProcessPoolExecutor(max_workers=self.config.parallel_workers) as executor:
            futures = [
                executor.submit(
                    _run_single_experiment,
                    experiment,
                    index=i,
                    seed=self.config.seed_for(i),
                    numeric=self.config.numeric,
                    max_attempts=self.config.max_attempts,
                )
                for i in range(total)
            ]

            for future in as_completed(futures):
                if future.cancelled():
                    continue
                summaries.append(future.result())
                if progress_callback:
                    progress_callback(len(summaries), total)
                if not cancelled and should_cancel is not None and should_cancel():
                    cancelled = True
                    for pending in futures:
                        pending.cancel()

        logger.debug(
            "Completed %d repetitions on %d workers", len(summaries), self.config.parallel_workers
        )
        return summaries, cancelled


def _experiment_config(
    initial_values: Sequence[Any],
    p: float,
    rounds: int,
    algorithm: Algorithm | str,
    params: AlgorithmParams | None,
    delivery_mode: DeliveryMode | str,
    min_delivered: int,
    metric: DistanceMetric | str,
) -> ExperimentConfig:
    return ExperimentConfig(
        initial_values=tuple(initial_values),
        probability=p,
        rounds=rounds,
        algorithm=Algorithm.parse(algorithm),
        params=params or AlgorithmParams(),
        delivery_mode=DeliveryMode(delivery_mode),
        min_delivered=min_delivered,
        metric=DistanceMetric(metric),
    )


def run_multiple_experiments(
    initial_values: Sequence[Any],
    p: float,
    rounds: int,
    repetitions: int,
    algorithm: Algorithm | str = Algorithm.AMP,
    params: AlgorithmParams | None = None,
    *,
    delivery_mode: DeliveryMode | str = DeliveryMode.STANDARD,
    min_delivered: int = 1,
    metric: DistanceMetric | str = DistanceMetric.EUCLIDEAN,
    parallel_workers: int = 1,
    seed: int | None = None,
    numeric: NumericConfig | None = None,
    max_attempts: int | None = None,
    should_cancel: CancelCheck | None = None,
    progress_callback: ProgressCallback | None = None,
) -> AggregateResult:
    """Convenience function to repeat one experiment.

    Args:
        initial_values: One value (or coordinate sequence) per process.
        p: Per-link delivery probability.
        rounds: Rounds per experiment.
        repetitions: Number of independent experiments.
        algorithm: Combining rule.
        params: Rule parameters.
        delivery_mode: STANDARD or GUARANTEED.
        min_delivered: K for GUARANTEED mode.
        metric: Distance for vector values.
        parallel_workers: Number of parallel workers.
        seed: Base random seed.
        numeric: Precision settings.
        max_attempts: Optional cap on conditioned rejection attempts.
        should_cancel: Optional callable polled between repetitions.
        progress_callback: Optional callback(completed, total).

    Returns:
        AggregateResult for the configuration.
    """
    experiment = _experiment_config(
        initial_values, p, rounds, algorithm, params, delivery_mode, min_delivered, metric
    )
    config = MonteCarloConfig(
        repetitions=repetitions,
        parallel_workers=parallel_workers,
        base_seed=seed,
        max_attempts=max_attempts,
        numeric=numeric or NumericConfig(),
    )
    return MonteCarloRunner(config).run(experiment, should_cancel, progress_callback)


def run_probability_sweep(
    initial_values: Sequence[Any],
    probabilities: Sequence[float],
    rounds: int,
    repetitions: int,
    algorithm: Algorithm | str = Algorithm.AMP,
    params: AlgorithmParams | None = None,
    *,
    should_cancel: CancelCheck | None = None,
    **kwargs: Any,
) -> list[AggregateResult]:
    """Repeat an experiment at every probability of a grid.

    Accepts the same keyword arguments as :func:`run_multiple_experiments`.
    A cancelled sweep returns the grid points finished so far, the last
    one possibly partial.
    """
    if not probabilities:
        raise InvalidParameterError("probabilities must not be empty")
    results = []
    for p in probabilities:
        result = run_multiple_experiments(
            initial_values,
            p,
            rounds,
            repetitions,
            algorithm,
            params,
            should_cancel=should_cancel,
            **kwargs,
        )
        results.append(result)
        logger.debug("Sweep point p=%s done (%d/%d)", p, len(results), len(probabilities))
        if result.cancelled:
            break
    return results


@dataclass
class MultiRoundAnalysis:
    """Per-round AMP and FV discrepancies at one probability.

    Attributes:
        probability: Per-link delivery probability.
        optimal_algorithm: Better of AMP and FV for two processes at p.
        theoretical: Expected discrepancy per round (index 0 is the
            initial gap), keyed by algorithm.
        experimental: Mean simulated discrepancy per round, keyed by
            algorithm.
        cancelled: True when the analysis stopped early on request.
    """

    probability: float
    optimal_algorithm: Algorithm
    theoretical: dict[Algorithm, list[float]]
    experimental: dict[Algorithm, list[float]]
    cancelled: bool = False


def run_multi_round_analysis(
    initial_gap: float,
    probabilities: Sequence[float],
    max_rounds: int,
    repetitions: int = 100,
    *,
    parallel_workers: int = 1,
    seed: int | None = None,
    should_cancel: CancelCheck | None = None,
) -> list[MultiRoundAnalysis]:
    """Compare AMP and FV round by round for two processes at [0, gap].

    The AMP meeting point is the midpoint ``gap / 2``; for two processes the
    expected AMP discrepancy does not depend on where the meeting point
    lies inside the initial interval.

    Args:
        initial_gap: Initial distance between the processes, in (0, 1].
        probabilities: Grid of delivery probabilities.
        max_rounds: Last round to report.
        repetitions: Experiments per (p, algorithm).
        parallel_workers: Number of parallel workers.
        seed: Base random seed.
        should_cancel: Optional callable polled between repetitions.

    Returns:
        One MultiRoundAnalysis per probability.
    """
    initial_gap = validate_probability(initial_gap, "initial_gap")
    if initial_gap == 0.0:
        raise InvalidParameterError("initial_gap must be > 0")
    params = AlgorithmParams(meeting_point=initial_gap / 2)
    runner = MonteCarloRunner(
        MonteCarloConfig(
            repetitions=repetitions, parallel_workers=parallel_workers, base_seed=seed
        )
    )

    analyses = []
    for p in probabilities:
        theoretical = {}
        experimental = {}
        cancelled = False
        for algorithm in (Algorithm.AMP, Algorithm.FV):
            theoretical[algorithm] = [
                initial_gap * float(calculate_expected_discrepancy(p, algorithm, r))
                for r in range(max_rounds + 1)
            ]
            experiment = ExperimentConfig(
                initial_values=(0.0, initial_gap),
                probability=p,
                rounds=max_rounds,
                algorithm=algorithm,
                params=params,
            )
            experimental[algorithm], stopped = runner.round_means(experiment, should_cancel)
            cancelled = cancelled or stopped
        analyses.append(
            MultiRoundAnalysis(
                probability=float(p),
                optimal_algorithm=optimal_algorithm(p),
                theoretical=theoretical,
                experimental=experimental,
                cancelled=cancelled,
            )
        )
        if cancelled:
            break
    return analyses
