#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
YAML configuration for experiments and sweeps.

Example ``config.yaml``::

    experiment:
      values: [0, 1]
      probability: 0.7
      rounds: 3
      repetitions: 1000
      algorithm: AMP
      meeting_point: 0.5
      delivery_mode: standard
      seed: 42
    numeric:
      precision: 50
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .errors import ConfigError
from .monte_carlo import MonteCarloConfig
from .simulation.algorithms import AlgorithmParams
from .simulation.experiment import ExperimentConfig
from .simulation.numeric import NumericConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "APPROXAGREE_CONFIG"

_EXPERIMENT_KEYS = {
    "values",
    "probability",
    "probabilities",
    "rounds",
    "repetitions",
    "algorithm",
    "meeting_point",
    "tolerance",
    "epsilon",
    "delivery_mode",
    "min_delivered",
    "metric",
    "seed",
    "parallel_workers",
}
_NUMERIC_KEYS = {"precision"}


@dataclass
class ExperimentSettings:
    """Everything a configuration file describes.

    Attributes:
        experiment: Single-experiment configuration.
        monte_carlo: Repetition settings.
        probabilities: Grid for sweeps; defaults to the single probability.
    """

    experiment: ExperimentConfig
    monte_carlo: MonteCarloConfig
    probabilities: list[float] = field(default_factory=list)

    @property
    def numeric(self) -> NumericConfig:
        return self.monte_carlo.numeric


def _default_config_path() -> Path:
    """Find config.yaml at the project root (parent of approxagree/ package)."""
    return Path(__file__).resolve().parent.parent / "config.yaml"


def resolve_config_path(config_path: Optional[str] = None) -> Path:
    """Explicit path, then $APPROXAGREE_CONFIG, then config.yaml at the project root."""
    if config_path:
        return Path(config_path)
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return _default_config_path()


def _section(config: dict, name: str, allowed: set[str]) -> dict:
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(section).__name__}")
    unknown = set(section) - allowed
    if unknown:
        raise ConfigError(f"Unknown keys in '{name}': {', '.join(sorted(unknown))}")
    return section


def _meeting_point(raw: Any) -> float | tuple[float, ...]:
    if isinstance(raw, list):
        return tuple(float(a) for a in raw)
    return float(raw)


def parse_experiment_config(config: dict) -> ExperimentSettings:
    """Build settings from an already-parsed YAML document.

    Raises:
        ConfigError: If the document is malformed or a value is invalid.
    """
    if not isinstance(config, dict):
        raise ConfigError("Configuration root must be a mapping")
    unknown = set(config) - {"experiment", "numeric"}
    if unknown:
        raise ConfigError(f"Unknown sections: {', '.join(sorted(unknown))}")

    exp = _section(config, "experiment", _EXPERIMENT_KEYS)
    num = _section(config, "numeric", _NUMERIC_KEYS)

    for required in ("values", "rounds"):
        if required not in exp:
            raise ConfigError(f"'experiment.{required}' is required")
    if "probability" not in exp and not exp.get("probabilities"):
        raise ConfigError("One of 'experiment.probability' or 'experiment.probabilities' is required")

    try:
        probabilities = [float(p) for p in exp.get("probabilities") or [exp["probability"]]]
        numeric = NumericConfig(precision=int(num.get("precision", 50)))
        params = AlgorithmParams(
            meeting_point=_meeting_point(exp.get("meeting_point", 0.5)),
            tolerance=float(exp.get("tolerance", 1e-9)),
            epsilon=float(exp.get("epsilon", 1e-9)),
        )
        experiment = ExperimentConfig(
            initial_values=tuple(exp["values"]),
            probability=float(exp.get("probability", probabilities[0])),
            rounds=int(exp["rounds"]),
            algorithm=exp.get("algorithm", "AMP"),
            params=params,
            delivery_mode=str(exp.get("delivery_mode", "standard")).lower(),
            min_delivered=int(exp.get("min_delivered", 1)),
            metric=str(exp.get("metric", "euclidean")).lower(),
        )
        monte_carlo = MonteCarloConfig(
            repetitions=int(exp.get("repetitions", 1000)),
            parallel_workers=int(exp.get("parallel_workers", 1)),
            base_seed=exp.get("seed"),
            numeric=numeric,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid experiment configuration: {exc}") from exc

    return ExperimentSettings(
        experiment=experiment, monte_carlo=monte_carlo, probabilities=probabilities
    )


def load_experiment_config(config_path: Optional[str] = None) -> ExperimentSettings:
    """Load experiment settings from YAML.

    Args:
        config_path: Path to the file. Falls back to $APPROXAGREE_CONFIG and
            then to config.yaml at the project root.

    Raises:
        FileNotFoundError: If no configuration file exists at the resolved path.
        ConfigError: If the file is not valid YAML or has invalid content.
    """
    resolved_path = resolve_config_path(config_path)
    if not resolved_path.exists():
        raise FileNotFoundError(
            f"Missing experiment config at {resolved_path}. "
            f"Set {CONFIG_ENV_VAR} or create config.yaml."
        )

    with resolved_path.open("r", encoding="utf-8") as handle:
        try:
            config = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Cannot parse {resolved_path}: {exc}") from exc

    logger.debug("Loaded experiment config from %s", resolved_path)
    return parse_experiment_config(config)
