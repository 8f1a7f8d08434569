"""
Partial correlation of many predictors with one outcome.

The permutation procedures only need one capability from a statistics
library: given a predictor matrix, an outcome vector and a covariate
matrix, return one (coefficient, p-value) pair per predictor column.
That capability is expressed as the ``PartialCorrelation`` protocol so
callers can inject their own implementation (or a deterministic stub in
tests). ``partial_correlation`` is the default provider.

Numeric contract of the default provider (matches MATLAB ``partialcorr``,
which produced the observed statistics this package is used with):

    1. Regress each predictor column and the outcome on [1, Z] by least
       squares and correlate the residuals.
    2. Spearman: rank-transform x, y and every Z column (average ranks for
       ties) over the rows in use, then proceed as Pearson.
    3. df = n - 2 - k, with k the number of covariate columns.
       t = r * sqrt(df / (1 - r^2)), two-tailed p from Student's t(df).

Missing-data policies:
    ALL       ('all')      rows are used verbatim; a NaN anywhere in a
                           predictor's inputs makes its r and p NaN.
    COMPLETE  ('complete') listwise deletion across X, Y and Z.
    PAIRWISE  ('pairwise') per predictor, drop rows with a NaN in that
                           predictor, Y or Z.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from permcorr.exceptions import InvalidInput

# Residual sums of squares below this fraction of the total are treated as
# zero variance (e.g. a predictor fully explained by the covariates).
_RELATIVE_VARIANCE_TOL = 1e-12


class CorrelationType(Enum):
    """Type of partial correlation."""

    PEARSON = "Pearson"
    SPEARMAN = "Spearman"

    @classmethod
    def parse(
        cls, value: "CorrelationType | str", argument: str = "correlation_type"
    ) -> "CorrelationType":
        """Resolve an enum member from a member or a case-insensitive name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if key in (member.value.lower(), member.name.lower()):
                    return member
        raise InvalidInput(
            argument,
            f"expected one of {[m.value for m in cls]}, got {value!r}",
        )


class MissingPolicy(Enum):
    """How rows with missing values are handled."""

    ALL = "all"
    COMPLETE = "complete"
    PAIRWISE = "pairwise"

    @classmethod
    def parse(
        cls, value: "MissingPolicy | str", argument: str = "missing_policy"
    ) -> "MissingPolicy":
        """Resolve an enum member from a member, MATLAB option or alias."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_")
            if key in _MISSING_POLICY_ALIASES:
                return _MISSING_POLICY_ALIASES[key]
        raise InvalidInput(
            argument,
            f"expected one of {[m.value for m in cls]}, got {value!r}",
        )


_MISSING_POLICY_ALIASES = {
    "all": MissingPolicy.ALL,
    "use_all_rows": MissingPolicy.ALL,
    "complete": MissingPolicy.COMPLETE,
    "listwise": MissingPolicy.COMPLETE,
    "listwise_deletion": MissingPolicy.COMPLETE,
    "pairwise": MissingPolicy.PAIRWISE,
    "pairwise_deletion": MissingPolicy.PAIRWISE,
}


@dataclass(frozen=True)
class PartialCorrelationResult:
    """Per-predictor partial correlation statistics.

    Attributes:
        coefficients: r (Pearson) or rho (Spearman) per predictor column.
        pvalues: Two-tailed p-value per predictor column.
        n_used: Number of rows each statistic was computed from, if known.
    """

    coefficients: NDArray[np.float64]
    pvalues: NDArray[np.float64]
    n_used: NDArray[np.int_] | None = None


@runtime_checkable
class PartialCorrelation(Protocol):
    """Protocol for a partial correlation provider.

    Implementations must return one coefficient and one p-value per column
    of ``x``, in column order.
    """

    def __call__(
        self,
        x: NDArray[np.float64],
        y: NDArray[np.float64],
        z: NDArray[np.float64],
        correlation_type: CorrelationType,
        missing_policy: MissingPolicy,
    ) -> PartialCorrelationResult:
        ...


def _residual_correlation(
    x: NDArray[np.float64],
    y: NDArray[np.float64],
    z: NDArray[np.float64],
    spearman: bool,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Partial correlation of every column of ``x`` with ``y`` given ``z``.

    All inputs must be free of NaN and share the same rows.
    """
    n_rows = len(y)
    n_covariates = z.shape[1]
    coefficients = np.full(x.shape[1], np.nan)
    pvalues = np.full(x.shape[1], np.nan)

    df = n_rows - 2 - n_covariates
    if n_rows == 0 or df <= 0:
        return coefficients, pvalues

    if spearman:
        x = stats.rankdata(x, axis=0)
        y = stats.rankdata(y)
        if n_covariates:
            z = stats.rankdata(z, axis=0)

    design = np.column_stack([np.ones(n_rows), z])
    response = np.column_stack([y, x])
    beta, *_ = np.linalg.lstsq(design, response, rcond=None)
    residuals = response - design @ beta

    centered = response - response.mean(axis=0)
    ss_total = np.sum(centered ** 2, axis=0)
    ss_resid = np.sum(residuals ** 2, axis=0)
    degenerate = (ss_total == 0) | (ss_resid <= _RELATIVE_VARIANCE_TOL * ss_total)
    if degenerate[0]:
        return coefficients, pvalues

    resid_y = residuals[:, 0]
    resid_x = residuals[:, 1:]
    with np.errstate(divide="ignore", invalid="ignore"):
        r = (resid_x.T @ resid_y) / np.sqrt(ss_resid[1:] * ss_resid[0])
        r = np.clip(r, -1.0, 1.0)
        r[degenerate[1:]] = np.nan
        t_stat = r * np.sqrt(df / (1.0 - r ** 2))
    p = 2.0 * stats.t.sf(np.abs(t_stat), df)

    coefficients[:] = r
    pvalues[:] = np.where(np.isnan(r), np.nan, p)
    return coefficients, pvalues


def partial_correlation(
    x: NDArray[np.float64],
    y: NDArray[np.float64],
    z: NDArray[np.float64] | None,
    correlation_type: CorrelationType | str = CorrelationType.PEARSON,
    missing_policy: MissingPolicy | str = MissingPolicy.ALL,
) -> PartialCorrelationResult:
    """
    Partial correlation between each column of x and y, controlling for z.

    Args:
        x: Predictor matrix (n_rows, n_predictors). A 1-D array is treated
            as a single predictor.
        y: Outcome vector (n_rows,).
        z: Covariate matrix (n_rows, n_covariates), 1-D for a single
            covariate, or None for no covariates.
        correlation_type: Pearson or Spearman.
        missing_policy: ALL, COMPLETE or PAIRWISE.

    Returns:
        PartialCorrelationResult. Predictors whose statistic is undefined
        (missing data under ALL, too few rows, zero residual variance) get
        NaN coefficient and p-value.
    """
    correlation_type = CorrelationType.parse(correlation_type)
    missing_policy = MissingPolicy.parse(missing_policy)

    x = np.asarray(x, dtype=np.float64)
    if x.ndim == 1:
        x = x[:, np.newaxis]
    y = np.asarray(y, dtype=np.float64).ravel()
    if z is None:
        z = np.empty((len(y), 0))
    z = np.asarray(z, dtype=np.float64)
    if z.ndim == 1:
        z = z[:, np.newaxis]

    spearman = correlation_type is CorrelationType.SPEARMAN
    n_predictors = x.shape[1]
    coefficients = np.full(n_predictors, np.nan)
    pvalues = np.full(n_predictors, np.nan)
    n_used = np.zeros(n_predictors, dtype=np.int_)

    rows_ok = ~np.isnan(y) & ~np.isnan(z).any(axis=1)
    column_nan = np.isnan(x)

    if missing_policy is MissingPolicy.PAIRWISE:
        for j in range(n_predictors):
            rows = rows_ok & ~column_nan[:, j]
            r, p = _residual_correlation(x[rows, j:j + 1], y[rows], z[rows], spearman)
            coefficients[j], pvalues[j] = r[0], p[0]
            n_used[j] = int(rows.sum())
        return PartialCorrelationResult(coefficients, pvalues, n_used)

    if missing_policy is MissingPolicy.COMPLETE:
        rows = rows_ok & ~column_nan.any(axis=1)
        columns = np.ones(n_predictors, dtype=bool)
    else:
        # ALL: only columns whose inputs are entirely observed are defined
        rows = np.ones(len(y), dtype=bool)
        columns = (
            ~column_nan.any(axis=0) if rows_ok.all()
            else np.zeros(n_predictors, dtype=bool)
        )

    if columns.any():
        r, p = _residual_correlation(x[rows][:, columns], y[rows], z[rows], spearman)
        coefficients[columns] = r
        pvalues[columns] = p
        n_used[columns] = int(rows.sum())

    return PartialCorrelationResult(coefficients, pvalues, n_used)
