"""
permcorr - Permutation Inference for Partial Correlations

Max-statistic correction and cross-dataset replication-by-chance
estimates for partial-correlation analyses in cognitive neuroscience.
"""

__version__ = "0.1.0"

from permcorr.exceptions import InvalidInput, PermutationCancelled
from permcorr.config import PermutationConfig, load_config
from permcorr.stats import (
    CorrelationType,
    MissingPolicy,
    MaxStatResult,
    ReplicationDataset,
    ReplicationResult,
    estimate_replication_probability,
    replicated_by_chance_in_3,
    run_max_stat_correction,
)

__all__ = [
    "InvalidInput",
    "PermutationCancelled",
    "PermutationConfig",
    "load_config",
    "CorrelationType",
    "MissingPolicy",
    "MaxStatResult",
    "ReplicationDataset",
    "ReplicationResult",
    "estimate_replication_probability",
    "replicated_by_chance_in_3",
    "run_max_stat_correction",
]
