"""
Configuration file support for permutation runs.

Supports YAML and JSON config files holding the run settings shared by
the max-statistic correction and the replication estimate.

Example (run.yaml):
    iterations: 5000
    correlation_type: Spearman
    missing_policy: pairwise
    seed: 20181010
    n_jobs: 4
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict

import yaml

from permcorr.stats.partial_correlation import CorrelationType, MissingPolicy
from permcorr.stats.validation import (
    validate_iterations,
    validate_n_jobs,
    validate_percentile_method,
)

logger = logging.getLogger(__name__)


@dataclass
class PermutationConfig:
    """Settings for a permutation run."""
    iterations: int = 1000
    correlation_type: CorrelationType = CorrelationType.PEARSON
    missing_policy: MissingPolicy = MissingPolicy.ALL
    seed: int | None = None
    n_jobs: int = 1
    percentile_method: str = "linear"

    def __post_init__(self):
        self.iterations = validate_iterations(self.iterations)
        self.correlation_type = CorrelationType.parse(self.correlation_type)
        self.missing_policy = MissingPolicy.parse(self.missing_policy)
        self.n_jobs = validate_n_jobs(self.n_jobs)
        self.percentile_method = validate_percentile_method(self.percentile_method)

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "PermutationConfig":
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in values.items() if k in known})

    @classmethod
    def from_file(cls, config_path: Path) -> "PermutationConfig":
        """Load and validate a YAML or JSON config file."""
        return cls.from_dict(load_config(Path(config_path)))

    def run_kwargs(self, include_percentile: bool = True) -> Dict[str, Any]:
        """
        Keyword arguments for run_max_stat_correction / the replication
        estimators.

        Parameters:
            include_percentile: Set False for the replication estimators,
                which take no percentile method.
        """
        kwargs = {
            "correlation_type": self.correlation_type,
            "missing_policy": self.missing_policy,
            "iterations": self.iterations,
            "seed": self.seed,
            "n_jobs": self.n_jobs,
        }
        if include_percentile:
            kwargs["percentile_method"] = self.percentile_method
        return kwargs

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iterations": self.iterations,
            "correlation_type": self.correlation_type.value,
            "missing_policy": self.missing_policy.value,
            "seed": self.seed,
            "n_jobs": self.n_jobs,
            "percentile_method": self.percentile_method,
        }


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Read the raw run settings from a YAML or JSON file.

    The top level must be a mapping. Keys are not checked here; pass the
    result to PermutationConfig.from_dict, which validates iterations,
    correlation_type, missing_policy, seed, n_jobs and percentile_method
    and drops anything else with a warning. An empty file gives {} and
    therefore the defaults.

    Parameters:
        config_path: Path ending in .yaml, .yml or .json

    Returns:
        Settings as loaded, e.g. {"iterations": 5000, "missing_policy": "pairwise"}

    Raises:
        FileNotFoundError: If config_path does not exist
        ValueError: If the suffix is unsupported, the file does not parse,
            or the top level is not a mapping
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()
    if suffix not in ('.yaml', '.yml', '.json'):
        raise ValueError(
            f"Unsupported config format: {suffix}. "
            f"Use .yaml, .yml, or .json"
        )

    try:
        with open(config_path, 'r') as f:
            if suffix == '.json':
                config = json.load(f)
            else:
                config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}")
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}")

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a dictionary/mapping at top level")

    return config
