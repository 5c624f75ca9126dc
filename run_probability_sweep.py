import argparse
import csv
import logging
import os
import sys

import numpy as np

from approxagree.config import load_experiment_config
from approxagree.monte_carlo import run_multi_round_analysis, run_probability_sweep
from approxagree.simulation.algorithms import Algorithm

logger = logging.getLogger("run_probability_sweep")

FIELDNAMES = [
    'algorithm', 'probability', 'rounds', 'samples', 'mean', 'median', 'std',
    'ci_low', 'ci_high', 'theoretical', 'approximate', 'relative_error_pct',
    'relative_error_status', 'unmet_conditioning_rounds',
]


def _row(result):
    stats = result.stats
    theory = result.theoretical
    return {
        'algorithm': result.algorithm,
        'probability': result.probability,
        'rounds': result.rounds,
        'samples': result.sample_size,
        'mean': stats.mean if stats else '',
        'median': stats.median if stats else '',
        'std': stats.std if stats else '',
        'ci_low': stats.ci_low if stats else '',
        'ci_high': stats.ci_high if stats else '',
        'theoretical': float(theory) if theory else '',
        'approximate': result.theory_is_approximate,
        'relative_error_pct': stats.relative_error if stats and stats.relative_error is not None else '',
        'relative_error_status': stats.relative_error_status.value if stats else '',
        'unmet_conditioning_rounds': result.unmet_conditioning_rounds,
    }


def sweep_probabilities(grid_points, configured, conditioned):
    """Probability grid for a sweep.

    Guaranteed-delivery rounds can never be accepted at p = 0, so that point
    is dropped from conditioned sweeps.
    """
    if grid_points:
        probabilities = [float(p) for p in np.linspace(0.0, 1.0, grid_points)]
    else:
        probabilities = list(configured)
    if conditioned and any(p <= 0.0 for p in probabilities):
        logger.info("Skipping p=0 for guaranteed delivery")
        probabilities = [p for p in probabilities if p > 0.0]
    return probabilities


def run_sweep(args):
    settings = load_experiment_config(args.config)
    exp = settings.experiment
    mc = settings.monte_carlo

    probabilities = sweep_probabilities(args.grid, settings.probabilities, exp.conditioned)
    if not probabilities:
        logger.warning("No probabilities left to sweep")
        return

    algorithms = [Algorithm.parse(a) for a in args.algorithms] if args.algorithms else [exp.algorithm]

    logger.info("Sweeping %d probabilities x %d algorithms, %d repetitions each",
                len(probabilities), len(algorithms), mc.repetitions)

    rows = []
    for algorithm in algorithms:
        results = run_probability_sweep(
            exp.initial_values,
            probabilities,
            exp.rounds,
            mc.repetitions,
            algorithm,
            exp.params,
            delivery_mode=exp.delivery_mode,
            min_delivered=exp.min_delivered,
            metric=exp.metric,
            parallel_workers=mc.parallel_workers,
            seed=mc.base_seed,
            numeric=mc.numeric,
        )
        for result in results:
            print(result.summary(), flush=True)
            rows.append(_row(result))

    write_header = not os.path.exists(args.output)
    mode = 'w' if write_header else 'a'
    with open(args.output, mode, newline='') as f:
        writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
        if write_header:
            writer.writeheader()
        writer.writerows(rows)
    logger.info("Wrote %d rows to %s", len(rows), args.output)


def run_rounds(args):
    probabilities = [float(p) for p in np.linspace(0.1, 0.9, args.grid or 9)]
    analyses = run_multi_round_analysis(
        args.initial_gap, probabilities, args.max_rounds, args.repetitions, seed=args.seed,
    )
    for analysis in analyses:
        print(f"p={analysis.probability:.2f} (optimal: {analysis.optimal_algorithm.value})")
        for algorithm in (Algorithm.AMP, Algorithm.FV):
            theory = analysis.theoretical[algorithm]
            experiment = analysis.experimental[algorithm]
            cells = " ".join(f"{t:.4f}/{e:.4f}" for t, e in zip(theory, experiment))
            print(f"  {algorithm.value:>3} theory/experiment per round: {cells}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Approximate agreement probability sweeps")
    parser.add_argument('-v', '--verbose', action='store_true')
    sub = parser.add_subparsers(dest='command', required=True)

    sweep = sub.add_parser('sweep', help="Repeat the configured experiment over a probability grid")
    sweep.add_argument('--config', default=None, help="YAML config (default: $APPROXAGREE_CONFIG or config.yaml)")
    sweep.add_argument('--grid', type=int, default=0, help="Use N evenly spaced probabilities in [0, 1]")
    sweep.add_argument('--algorithms', nargs='*', default=None)
    sweep.add_argument('--output', default='probability_sweep.csv')
    sweep.set_defaults(func=run_sweep)

    rounds = sub.add_parser('rounds', help="Per-round AMP vs FV comparison for two processes")
    rounds.add_argument('--initial-gap', type=float, default=1.0)
    rounds.add_argument('--max-rounds', type=int, default=5)
    rounds.add_argument('--repetitions', type=int, default=100)
    rounds.add_argument('--grid', type=int, default=9)
    rounds.add_argument('--seed', type=int, default=None)
    rounds.set_defaults(func=run_rounds)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.func(args)
    return 0


if __name__ == '__main__':
    sys.exit(main())
