"""
Permutation inference for partial-correlation analyses.

Exports core functions for:
- Max-statistic multiple-comparisons correction across predictors
- Replication-by-chance probability across independent datasets
- The partial correlation capability both procedures are built on
"""

from .partial_correlation import (
    CorrelationType,
    MissingPolicy,
    PartialCorrelation,
    PartialCorrelationResult,
    partial_correlation,
)
from .permutation import (
    generate_permutation,
    spawn_iteration_seeds,
)
from .max_statistic import (
    MaxStatResult,
    run_max_stat_correction,
)
from .replication import (
    ReplicationDataset,
    ReplicationResult,
    estimate_replication_probability,
    replicated_by_chance_in_3,
)

__all__ = [
    "CorrelationType",
    "MissingPolicy",
    "PartialCorrelation",
    "PartialCorrelationResult",
    "partial_correlation",
    "generate_permutation",
    "spawn_iteration_seeds",
    "MaxStatResult",
    "run_max_stat_correction",
    "ReplicationDataset",
    "ReplicationResult",
    "estimate_replication_probability",
    "replicated_by_chance_in_3",
]
