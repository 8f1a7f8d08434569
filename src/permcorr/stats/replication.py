"""
Probability that a finding replicates across datasets by chance.

Given the observed partial-correlation p-value in each of several
independent datasets, estimates how often permuted data would produce a
set of p-values that is at least as significant in every dataset.

Per-permutation loop:
    1. Shuffle y independently within each dataset
    2. Partial correlation p-value of x with shuffled y given z, per dataset
    3. Sort the null p-values ascending

An iteration counts as significant by chance only if every sorted null
p-value is strictly smaller than the actual p-value of the same rank.
Comparing rank-matched sorted vectors makes the test indifferent to
which dataset happens to yield the smallest p-value.

    probability = n_significant / n_iterations

A NaN actual p-value can never be undercut, so the probability is 0.0;
this is reported with a warning rather than raised.
"""

from __future__ import annotations

import logging
import threading
import warnings
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from permcorr.exceptions import InvalidInput

from .partial_correlation import (
    CorrelationType,
    MissingPolicy,
    PartialCorrelation,
    partial_correlation as default_partial_correlation,
)
from .permutation import generate_permutation, run_iterations, spawn_iteration_seeds
from .validation import (
    as_covariate_matrix,
    as_outcome_vector,
    as_predictor_matrix,
    check_row_count,
    validate_iterations,
    validate_n_jobs,
    validate_pvalue,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplicationDataset:
    """One dataset: a single predictor, the outcome and its covariates."""

    x: object
    y: object
    z: object = None


@dataclass
class ReplicationResult:
    """Result of the replication-by-chance estimate.

    Attributes:
        probability: Fraction of permutations in which every sorted null
            p-value was below the matching sorted actual p-value.
        n_significant: Number of such permutations.
        actual_pvalues_sorted: Actual p-values in ascending order.
        null_pvalues: Null p-values, shape (n_iterations, n_datasets), in
            dataset order (unsorted).
    """

    probability: float
    n_significant: int
    actual_pvalues_sorted: NDArray[np.float64]
    null_pvalues: NDArray[np.float64]

    @property
    def n_iterations(self) -> int:
        return self.null_pvalues.shape[0]

    @property
    def n_datasets(self) -> int:
        return self.null_pvalues.shape[1]

    @property
    def null_pvalues_sorted(self) -> NDArray[np.float64]:
        """Null p-values sorted ascending within each iteration."""
        return np.sort(self.null_pvalues, axis=1)

    def as_tuple(self) -> tuple[float, int]:
        """(probability, n_significant)."""
        return self.probability, self.n_significant

    def to_dict(self) -> dict:
        """Serialize to JSON-compatible dict."""
        return {
            "probability": self.probability,
            "n_significant": self.n_significant,
            "n_iterations": self.n_iterations,
            "n_datasets": self.n_datasets,
            "actual_pvalues_sorted": [float(p) for p in self.actual_pvalues_sorted],
        }


@dataclass(frozen=True)
class _PreparedDataset:
    x: NDArray[np.float64]
    y: NDArray[np.float64]
    z: NDArray[np.float64]


def _prepare_dataset(x, y, z, names: tuple[str, str, str]) -> _PreparedDataset:
    x_name, y_name, z_name = names
    x_arr, _ = as_predictor_matrix(x, x_name)
    if x_arr.shape[1] != 1:
        raise InvalidInput(
            x_name, f"must hold a single predictor column, got {x_arr.shape[1]}"
        )
    y_arr = as_outcome_vector(y, y_name)
    check_row_count(x_arr, len(y_arr), x_name)
    z_arr = as_covariate_matrix(z, len(y_arr), z_name)
    return _PreparedDataset(x_arr, y_arr, z_arr)


def _estimate(
    datasets: list[_PreparedDataset],
    actual_pvalues: NDArray[np.float64],
    correlation_type: CorrelationType,
    missing_policy: MissingPolicy,
    iterations: int,
    seed,
    n_jobs: int,
    partial_correlation: PartialCorrelation | None,
    cancel_event: threading.Event | None,
) -> ReplicationResult:
    correlate = partial_correlation or default_partial_correlation
    n_datasets = len(datasets)
    actual_sorted = np.sort(actual_pvalues)

    if np.isnan(actual_sorted).any():
        warnings.warn(
            "An actual p-value is NaN; no permutation can be more significant "
            "in every dataset, so the replication probability is 0.0"
        )

    logger.info(
        "Replication by chance: %d permutations across %d datasets (%s, rows=%s)",
        iterations, n_datasets, correlation_type.value, missing_policy.value,
    )

    null_pvalues = np.full((iterations, n_datasets), np.nan)
    iteration_seeds = spawn_iteration_seeds(seed, iterations)

    def _permute_once(i: int) -> None:
        rng = np.random.default_rng(iteration_seeds[i])
        for d, dataset in enumerate(datasets):
            y_shuffled = generate_permutation(dataset.y, rng)
            result = correlate(dataset.x, y_shuffled, dataset.z, correlation_type, missing_policy)
            null_pvalues[i, d] = result.pvalues[0]

    run_iterations(
        _permute_once, iterations, n_jobs=n_jobs,
        cancel_event=cancel_event, description="replication",
    )

    # NaN sorts last and compares False, so undefined nulls never count
    null_sorted = np.sort(null_pvalues, axis=1)
    significant = np.all(null_sorted < actual_sorted, axis=1)
    n_significant = int(np.sum(significant))
    probability = n_significant / iterations

    logger.info(
        "Significant in all %d datasets by chance: %d/%d (p = %.4g)",
        n_datasets, n_significant, iterations, probability,
    )

    return ReplicationResult(
        probability=probability,
        n_significant=n_significant,
        actual_pvalues_sorted=actual_sorted,
        null_pvalues=null_pvalues,
    )


def estimate_replication_probability(
    datasets: Sequence[ReplicationDataset],
    p_actual: Sequence[float],
    correlation_type: CorrelationType | str,
    missing_policy: MissingPolicy | str,
    iterations: int,
    *,
    seed: int | np.random.SeedSequence | None = None,
    n_jobs: int = 1,
    partial_correlation: PartialCorrelation | None = None,
    cancel_event: threading.Event | None = None,
) -> ReplicationResult:
    """
    Probability of the observed significance pattern arising by chance.

    Args:
        datasets: Independent datasets, each with one predictor column.
        p_actual: Actual (unpermuted) partial correlation p-value of each
            dataset, in the same order as datasets.
        correlation_type: 'Pearson' or 'Spearman'.
        missing_policy: 'all', 'complete' or 'pairwise'.
        iterations: Number of joint permutations (positive integer).
        seed: Random seed for reproducibility.
        n_jobs: Worker threads (1 = sequential, -1 = all cores).
        partial_correlation: Partial correlation provider.
        cancel_event: Optional event that aborts the run between iterations.

    Returns:
        ReplicationResult.

    Raises:
        InvalidInput: If any argument fails validation.
    """
    if isinstance(datasets, ReplicationDataset) or not isinstance(datasets, Sequence):
        raise InvalidInput("datasets", "must be a sequence of ReplicationDataset")
    if len(datasets) == 0:
        raise InvalidInput("datasets", "at least one dataset is required")

    prepared = []
    for i, dataset in enumerate(datasets):
        if not isinstance(dataset, ReplicationDataset):
            raise InvalidInput(
                f"datasets[{i}]", f"expected ReplicationDataset, got {type(dataset).__name__}"
            )
        names = (f"datasets[{i}].x", f"datasets[{i}].y", f"datasets[{i}].z")
        prepared.append(_prepare_dataset(dataset.x, dataset.y, dataset.z, names))

    correlation_type = CorrelationType.parse(correlation_type)
    missing_policy = MissingPolicy.parse(missing_policy)
    iterations = validate_iterations(iterations)

    p_values = list(np.atleast_1d(np.asarray(p_actual, dtype=object)))
    if len(p_values) != len(prepared):
        raise InvalidInput(
            "p_actual", f"expected {len(prepared)} p-values, got {len(p_values)}"
        )
    actual = np.array(
        [validate_pvalue(p, f"p_actual[{i}]") for i, p in enumerate(p_values)]
    )
    n_jobs = validate_n_jobs(n_jobs)

    return _estimate(
        prepared, actual, correlation_type, missing_policy, iterations,
        seed, n_jobs, partial_correlation, cancel_event,
    )


def replicated_by_chance_in_3(
    x1, y1, z1,
    x2, y2, z2,
    x3, y3, z3,
    correlation_type: CorrelationType | str,
    missing_policy: MissingPolicy | str,
    iterations: int,
    p_actual1: float,
    p_actual2: float,
    p_actual3: float,
    *,
    seed: int | np.random.SeedSequence | None = None,
    n_jobs: int = 1,
    partial_correlation: PartialCorrelation | None = None,
    cancel_event: threading.Event | None = None,
) -> ReplicationResult:
    """
    Probability that a partial correlation is significant in all three
    datasets by chance.

    Thin wrapper over the general estimator with three datasets; see
    estimate_replication_probability for the keyword arguments.

    Args:
        x1, x2, x3: Single predictor column of each dataset.
        y1, y2, y3: Outcome of each dataset (shuffled for the null).
        z1, z2, z3: Covariates of each dataset.
        correlation_type: 'Pearson' or 'Spearman'.
        missing_policy: 'all', 'complete' or 'pairwise'.
        iterations: Number of joint permutations.
        p_actual1, p_actual2, p_actual3: Actual p-value of each dataset.

    Returns:
        ReplicationResult; ``as_tuple()`` gives (probability, n_significant).
    """
    prepared = [
        _prepare_dataset(x1, y1, z1, ("x1", "y1", "z1")),
        _prepare_dataset(x2, y2, z2, ("x2", "y2", "z2")),
        _prepare_dataset(x3, y3, z3, ("x3", "y3", "z3")),
    ]
    correlation_type = CorrelationType.parse(correlation_type)
    missing_policy = MissingPolicy.parse(missing_policy)
    iterations = validate_iterations(iterations)
    actual = np.array([
        validate_pvalue(p_actual1, "p_actual1"),
        validate_pvalue(p_actual2, "p_actual2"),
        validate_pvalue(p_actual3, "p_actual3"),
    ])
    n_jobs = validate_n_jobs(n_jobs)

    return _estimate(
        prepared, actual, correlation_type, missing_policy, iterations,
        seed, n_jobs, partial_correlation, cancel_event,
    )
