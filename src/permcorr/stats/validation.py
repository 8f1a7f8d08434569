"""Boundary validation for the permutation procedures.

Every check raises ``InvalidInput`` naming the offending argument, and all
of them run before any permutation work starts.
"""

from __future__ import annotations

from collections.abc import Mapping

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from permcorr.exceptions import InvalidInput

# Methods accepted by numpy.percentile(method=...)
PERCENTILE_METHODS = frozenset({
    "inverted_cdf",
    "averaged_inverted_cdf",
    "closest_observation",
    "interpolated_inverted_cdf",
    "hazen",
    "weibull",
    "linear",
    "median_unbiased",
    "normal_unbiased",
    "lower",
    "higher",
    "midpoint",
    "nearest",
})


def _as_numeric_array(values, argument: str) -> NDArray[np.float64]:
    """Convert to a float64 array, rejecting non-numeric input."""
    if values is None:
        raise InvalidInput(argument, "is required")
    if isinstance(values, pd.DataFrame):
        non_numeric = [
            col for col, dtype in values.dtypes.items()
            if not pd.api.types.is_numeric_dtype(dtype) or pd.api.types.is_bool_dtype(dtype)
        ]
        if non_numeric:
            raise InvalidInput(argument, f"non-numeric columns {non_numeric}")
        return values.to_numpy(dtype=np.float64)

    arr = np.asarray(values)
    if arr.dtype == bool or not np.issubdtype(arr.dtype, np.number):
        raise InvalidInput(argument, f"must be a numeric array, got dtype {arr.dtype}")
    if np.issubdtype(arr.dtype, np.complexfloating):
        raise InvalidInput(argument, "complex values are not supported")
    return arr.astype(np.float64)


def as_predictor_matrix(x, argument: str = "x") -> tuple[NDArray[np.float64], list | None]:
    """
    Validate a predictor matrix.

    Returns:
        (matrix of shape (n_rows, n_predictors), predictor labels or None).
        Labels are the DataFrame columns, or the Series name for a Series.
    """
    labels = None
    if isinstance(x, pd.DataFrame):
        labels = list(x.columns)
    elif isinstance(x, pd.Series) and x.name is not None:
        labels = [x.name]

    arr = _as_numeric_array(x, argument)
    if arr.ndim == 1:
        arr = arr[:, np.newaxis]
    if arr.ndim != 2:
        raise InvalidInput(argument, f"must be 1-D or 2-D, got {arr.ndim}-D")
    if arr.shape[1] == 0:
        raise InvalidInput(argument, "has no predictor columns")
    return arr, labels


def as_outcome_vector(y, argument: str = "y") -> NDArray[np.float64]:
    """Validate an outcome vector; an (n, 1) array is flattened."""
    arr = _as_numeric_array(y, argument)
    if arr.ndim == 2 and arr.shape[1] == 1:
        arr = arr[:, 0]
    if arr.ndim != 1:
        raise InvalidInput(argument, f"must be a vector, got shape {arr.shape}")
    if len(arr) == 0:
        raise InvalidInput(argument, "is empty")
    return arr


def as_covariate_matrix(z, n_rows: int, argument: str = "z") -> NDArray[np.float64]:
    """Validate a covariate matrix; None means no covariates."""
    if z is None:
        return np.empty((n_rows, 0))
    arr = _as_numeric_array(z, argument)
    if arr.ndim == 1:
        arr = arr[:, np.newaxis]
    if arr.ndim != 2:
        raise InvalidInput(argument, f"must be 1-D or 2-D, got {arr.ndim}-D")
    check_row_count(arr, n_rows, argument)
    return arr


def check_row_count(arr: NDArray, n_rows: int, argument: str) -> None:
    """Require arr to have n_rows rows (one per participant)."""
    if arr.shape[0] != n_rows:
        raise InvalidInput(
            argument,
            f"has {arr.shape[0]} rows but the outcome has {n_rows} values",
        )


def as_labeled_results(values, argument: str) -> pd.Series:
    """
    Validate labelled test statistics keyed by predictor id.

    Accepts a Series, a one-column DataFrame, or a mapping.
    """
    if isinstance(values, pd.DataFrame):
        if values.shape[1] != 1:
            raise InvalidInput(
                argument, f"DataFrame must have exactly one column, got {values.shape[1]}"
            )
        series = values.iloc[:, 0]
    elif isinstance(values, pd.Series):
        series = values
    elif isinstance(values, Mapping):
        series = pd.Series(dict(values), dtype=object)
    else:
        raise InvalidInput(
            argument,
            f"must be a pandas Series, one-column DataFrame or mapping, "
            f"got {type(values).__name__}",
        )

    try:
        series = pd.to_numeric(series, errors="raise").astype(np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidInput(argument, f"values must be numeric ({e})") from e
    if series.index.has_duplicates:
        raise InvalidInput(argument, "predictor labels must be unique")
    return series


def check_labels(
    results: pd.Series,
    n_predictors: int,
    predictor_labels: list | None,
    argument: str,
) -> None:
    """Require labelled results to cover exactly the predictors in x."""
    if len(results) != n_predictors:
        raise InvalidInput(
            argument,
            f"has {len(results)} entries but x has {n_predictors} predictors",
        )
    if predictor_labels is not None and set(results.index) != set(predictor_labels):
        missing = [label for label in predictor_labels if label not in results.index]
        extra = [label for label in results.index if label not in set(predictor_labels)]
        raise InvalidInput(
            argument,
            f"labels do not match x columns (missing {missing}, unexpected {extra})",
        )


def validate_iterations(iterations, argument: str = "iterations") -> int:
    """Require a positive integer iteration count."""
    if isinstance(iterations, (bool, np.bool_)) or not isinstance(iterations, (int, np.integer)):
        raise InvalidInput(
            argument, f"must be an integer, got {type(iterations).__name__}"
        )
    if iterations <= 0:
        raise InvalidInput(argument, f"must be positive, got {iterations}")
    return int(iterations)


def validate_n_jobs(n_jobs, argument: str = "n_jobs") -> int:
    """Require n_jobs >= 1 or n_jobs == -1 (all cores)."""
    if isinstance(n_jobs, (bool, np.bool_)) or not isinstance(n_jobs, (int, np.integer)):
        raise InvalidInput(argument, f"must be an integer, got {type(n_jobs).__name__}")
    if n_jobs == 0 or n_jobs < -1:
        raise InvalidInput(argument, f"must be >= 1 or -1, got {n_jobs}")
    return int(n_jobs)


def validate_percentile_method(method, argument: str = "percentile_method") -> str:
    """Require a method name numpy.percentile understands."""
    if method not in PERCENTILE_METHODS:
        raise InvalidInput(
            argument, f"unknown method {method!r}; use one of {sorted(PERCENTILE_METHODS)}"
        )
    return method


def validate_pvalue(p, argument: str) -> float:
    """Require a scalar p-value in [0, 1]; NaN is allowed."""
    try:
        value = float(p)
    except (TypeError, ValueError) as e:
        raise InvalidInput(argument, f"must be a scalar p-value, got {p!r}") from e
    if not np.isnan(value) and not 0.0 <= value <= 1.0:
        raise InvalidInput(argument, f"must lie in [0, 1], got {value}")
    return value
