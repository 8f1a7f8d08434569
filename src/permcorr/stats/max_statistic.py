"""
Max-statistic permutation correction for partial correlations.

Builds an empirical null for a family of partial correlations by shuffling
the outcome and re-running the partial correlation of every predictor
against it. For each permutation only the most extreme statistic in the
family is kept (largest |r|, smallest p), so thresholds derived from
those extrema control the family-wise error rate across predictors while
respecting their intercorrelation.

Per-permutation loop:
    1. Shuffle y (independent uniform permutation per iteration)
    2. Partial correlation of every predictor with shuffled y given z
    3. Store r and p in column i of the (n_predictors, n_iterations) nulls

Aggregation:
    - null r is taken in absolute value (two-tailed reference)
    - r threshold = 95th percentile of per-iteration max |r|
    - p threshold = 5th percentile of per-iteration min p
    - observed |r| >= r threshold and observed p <= p threshold are kept

Undefined statistics (NaN) never pass a threshold comparison, so
predictors whose observed statistic is NaN are left out of the selected
subsets rather than reported as significant.
"""

from __future__ import annotations

import logging
import threading
import warnings
from collections.abc import Mapping
from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from .partial_correlation import (
    CorrelationType,
    MissingPolicy,
    PartialCorrelation,
    partial_correlation as default_partial_correlation,
)
from .permutation import generate_permutation, run_iterations, spawn_iteration_seeds
from .validation import (
    as_covariate_matrix,
    as_labeled_results,
    as_outcome_vector,
    as_predictor_matrix,
    check_labels,
    check_row_count,
    validate_iterations,
    validate_n_jobs,
    validate_percentile_method,
)

logger = logging.getLogger(__name__)

R_PERCENTILE = 95.0
P_PERCENTILE = 5.0


def _column_extremum(values: NDArray[np.float64], reducer) -> NDArray[np.float64]:
    """Reduce each column ignoring NaN; all-NaN columns give NaN."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        return reducer(values, axis=0)


def _null_percentile(
    extrema: NDArray[np.float64],
    q: float,
    method: str,
    statistic: str,
) -> float:
    """Percentile of the per-iteration extrema, dropping undefined iterations."""
    valid = extrema[~np.isnan(extrema)]
    n_dropped = len(extrema) - len(valid)
    if n_dropped:
        logger.warning(
            "%d/%d permutations produced no defined %s for any predictor",
            n_dropped, len(extrema), statistic,
        )
    if len(valid) == 0:
        warnings.warn(
            f"Null distribution of {statistic} is entirely undefined; "
            f"threshold is NaN and no predictor will be selected"
        )
        return float("nan")
    return float(np.percentile(valid, q, method=method))


def _select_rows(original, series: pd.Series, mask: NDArray[np.bool_]):
    """Subset labelled results, keeping the caller's container type."""
    if isinstance(original, pd.DataFrame):
        return original.loc[mask]
    if isinstance(original, pd.Series):
        return original[mask]
    return series[mask]


@dataclass
class MaxStatResult:
    """Result of the max-statistic permutation correction.

    Attributes:
        max_r: Observed results with |r| >= r_threshold (labels and order kept).
        min_p: Observed results with p <= p_threshold (labels and order kept).
        r_threshold: 95th percentile of per-permutation max |r|.
        p_threshold: 5th percentile of per-permutation min p; observed
            p-values at or below it are significant after correction.
        null_r: |r| from permuted outcomes, shape (n_predictors, n_iterations).
        null_p: p from permuted outcomes, shape (n_predictors, n_iterations).
        correlation_type: Partial correlation type used for the null.
        missing_policy: Missing-data policy used for the null.
        percentile_method: numpy percentile method used for the thresholds.
    """

    max_r: pd.Series | pd.DataFrame
    min_p: pd.Series | pd.DataFrame
    r_threshold: float
    p_threshold: float
    null_r: NDArray[np.float64]
    null_p: NDArray[np.float64]
    correlation_type: CorrelationType = CorrelationType.PEARSON
    missing_policy: MissingPolicy = MissingPolicy.ALL
    percentile_method: str = "linear"

    @property
    def n_iterations(self) -> int:
        return self.null_r.shape[1]

    @property
    def n_predictors(self) -> int:
        return self.null_r.shape[0]

    @property
    def null_max_r(self) -> NDArray[np.float64]:
        """Largest |r| across predictors for each permutation."""
        return _column_extremum(self.null_r, np.nanmax)

    @property
    def null_min_p(self) -> NDArray[np.float64]:
        """Smallest p across predictors for each permutation."""
        return _column_extremum(self.null_p, np.nanmin)

    def as_tuple(self) -> tuple:
        """(max_r, min_p, r_threshold, p_threshold, null_r, null_p)."""
        return (
            self.max_r,
            self.min_p,
            self.r_threshold,
            self.p_threshold,
            self.null_r,
            self.null_p,
        )

    def fwer_pvalues(self, test_r) -> pd.Series:
        """
        Family-wise adjusted permutation p-value for each observed r.

        p_adj = (#{permutations with max|r| >= |r_obs|} + 1) / (n_valid + 1)

        Args:
            test_r: Observed coefficients keyed by predictor id.

        Returns:
            Series of adjusted p-values with the same labels; NaN where the
            observed coefficient is NaN.
        """
        observed = as_labeled_results(test_r, "test_r")
        null_max = self.null_max_r
        null_max = np.sort(null_max[~np.isnan(null_max)])
        n_valid = len(null_max)

        abs_r = np.abs(observed.to_numpy())
        n_extreme = n_valid - np.searchsorted(null_max, abs_r, side="left")
        adjusted = (n_extreme + 1) / (n_valid + 1)
        adjusted = np.where(np.isnan(abs_r), np.nan, adjusted)
        return pd.Series(adjusted, index=observed.index, name="p_fwer")

    def to_dict(self) -> dict:
        """Serialize to JSON-compatible dict."""
        null_max = self.null_max_r
        null_max = null_max[~np.isnan(null_max)]
        quantiles = {}
        if len(null_max):
            quantiles = {
                f"q{q:02d}": float(np.percentile(null_max, q, method=self.percentile_method))
                for q in (5, 25, 50, 75, 95)
            }
        return {
            "r_threshold": self.r_threshold,
            "p_threshold": self.p_threshold,
            "n_iterations": self.n_iterations,
            "n_predictors": self.n_predictors,
            "correlation_type": self.correlation_type.value,
            "missing_policy": self.missing_policy.value,
            "percentile_method": self.percentile_method,
            "significant_r": list(self.max_r.index),
            "significant_p": list(self.min_p.index),
            "null_max_r_quantiles": quantiles,
        }


def run_max_stat_correction(
    x,
    y,
    z,
    test_r: pd.Series | pd.DataFrame | Mapping,
    test_p: pd.Series | pd.DataFrame | Mapping,
    correlation_type: CorrelationType | str,
    missing_policy: MissingPolicy | str,
    iterations: int,
    *,
    seed: int | np.random.SeedSequence | None = None,
    n_jobs: int = 1,
    percentile_method: str = "linear",
    partial_correlation: PartialCorrelation | None = None,
    cancel_event: threading.Event | None = None,
) -> MaxStatResult:
    """
    Max-statistic permutation correction of partial correlations.

    Args:
        x: Predictor matrix (n_participants, n_predictors); array or
            DataFrame whose columns are the predictor ids.
        y: Outcome vector (n_participants,), shuffled for the null.
        z: Covariate matrix (n_participants, n_covariates), or None.
        test_r: Observed r/rho per predictor, keyed by predictor id.
        test_p: Observed p-value per predictor, keyed by predictor id.
        correlation_type: 'Pearson' or 'Spearman'. Must match the type used
            to compute test_r and test_p.
        missing_policy: 'all', 'complete' or 'pairwise'.
        iterations: Number of permutations (positive integer).
        seed: Random seed for reproducibility.
        n_jobs: Worker threads (1 = sequential, -1 = all cores).
        percentile_method: numpy percentile method for both thresholds.
            'linear' (default) interpolates between order statistics;
            'hazen' reproduces MATLAB's prctile.
        partial_correlation: Partial correlation provider. Defaults to
            the residual-based implementation in this package.
        cancel_event: Optional event; setting it aborts the run between
            iterations with PermutationCancelled.

    Returns:
        MaxStatResult with selected predictors, thresholds and the nulls.

    Raises:
        InvalidInput: If any argument fails validation. Raised before any
            permutation is drawn.
    """
    x_arr, predictor_ids = as_predictor_matrix(x, "x")
    y_arr = as_outcome_vector(y, "y")
    check_row_count(x_arr, len(y_arr), "x")
    z_arr = as_covariate_matrix(z, len(y_arr), "z")
    n_predictors = x_arr.shape[1]

    observed_r = as_labeled_results(test_r, "test_r")
    check_labels(observed_r, n_predictors, predictor_ids, "test_r")
    observed_p = as_labeled_results(test_p, "test_p")
    check_labels(observed_p, n_predictors, predictor_ids, "test_p")

    correlation_type = CorrelationType.parse(correlation_type)
    missing_policy = MissingPolicy.parse(missing_policy)
    iterations = validate_iterations(iterations)
    n_jobs = validate_n_jobs(n_jobs)
    percentile_method = validate_percentile_method(percentile_method)
    correlate = partial_correlation or default_partial_correlation

    logger.info(
        "Max-statistic correction: %d permutations, %d predictors, %d covariates (%s, rows=%s)",
        iterations, n_predictors, z_arr.shape[1],
        correlation_type.value, missing_policy.value,
    )

    # --- Null distribution ---
    null_r = np.full((n_predictors, iterations), np.nan)
    null_p = np.full((n_predictors, iterations), np.nan)
    iteration_seeds = spawn_iteration_seeds(seed, iterations)

    def _permute_once(i: int) -> None:
        rng = np.random.default_rng(iteration_seeds[i])
        y_shuffled = generate_permutation(y_arr, rng)
        result = correlate(x_arr, y_shuffled, z_arr, correlation_type, missing_policy)
        null_r[:, i] = result.coefficients
        null_p[:, i] = result.pvalues

    run_iterations(
        _permute_once, iterations, n_jobs=n_jobs,
        cancel_event=cancel_event, description="max-statistic",
    )

    # --- Thresholds from per-permutation extrema ---
    null_r = np.abs(null_r)
    null_max_r = _column_extremum(null_r, np.nanmax)
    null_min_p = _column_extremum(null_p, np.nanmin)

    r_threshold = _null_percentile(null_max_r, R_PERCENTILE, percentile_method, "|r|")
    p_threshold = _null_percentile(null_min_p, P_PERCENTILE, percentile_method, "p")

    # --- Compare observed statistics ---
    r_mask = np.abs(observed_r.to_numpy()) >= r_threshold
    p_mask = observed_p.to_numpy() <= p_threshold

    result = MaxStatResult(
        max_r=_select_rows(test_r, observed_r, r_mask),
        min_p=_select_rows(test_p, observed_p, p_mask),
        r_threshold=r_threshold,
        p_threshold=p_threshold,
        null_r=null_r,
        null_p=null_p,
        correlation_type=correlation_type,
        missing_policy=missing_policy,
        percentile_method=percentile_method,
    )

    logger.info(
        "r threshold (95th pct of max |r|) = %.4f: %d/%d predictors; "
        "p threshold (5th pct of min p) = %.4g: %d/%d predictors",
        r_threshold, int(r_mask.sum()), n_predictors,
        p_threshold, int(p_mask.sum()), n_predictors,
    )
    return result
