"""
Pytest configuration and shared fixtures.

Provides synthetic participant-level data and a deterministic partial
correlation stub so permutation and threshold logic can be tested
independently of the statistics.
"""

import numpy as np
import pandas as pd
import pytest

from permcorr.stats.partial_correlation import PartialCorrelationResult


class ScheduledPartialCorrelation:
    """
    Partial correlation stub returning preset statistics in call order.

    Each call returns the next (coefficients, pvalues) pair from the
    schedule, whatever data it is given. Use with n_jobs=1 so call order
    equals iteration order.
    """

    def __init__(self, coefficients, pvalues):
        self.coefficients = [np.atleast_1d(np.asarray(c, dtype=float)) for c in coefficients]
        self.pvalues = [np.atleast_1d(np.asarray(p, dtype=float)) for p in pvalues]
        self.calls = 0

    def __call__(self, x, y, z, correlation_type, missing_policy):
        i = self.calls
        self.calls += 1
        return PartialCorrelationResult(self.coefficients[i], self.pvalues[i])


class ExplodingPartialCorrelation:
    """Stub that fails if it is ever called."""

    def __call__(self, x, y, z, correlation_type, missing_policy):
        raise AssertionError("partial correlation should not have been called")


def generate_participant_data(
    n_participants: int,
    n_predictors: int,
    n_covariates: int = 1,
    effect: float = 0.0,
    seed: int = 42,
):
    """
    Generate synthetic study data.

    Args:
        n_participants: Rows.
        n_predictors: Predictor columns (named pred_00, pred_01, ...).
        n_covariates: Covariate columns.
        effect: Loading of the outcome on the first predictor.
        seed: Random seed.

    Returns:
        (x DataFrame, y Series, z ndarray)
    """
    rng = np.random.default_rng(seed)
    x = rng.standard_normal((n_participants, n_predictors))
    z = rng.standard_normal((n_participants, n_covariates))
    y = rng.standard_normal(n_participants) + effect * x[:, 0]

    columns = [f"pred_{j:02d}" for j in range(n_predictors)]
    return pd.DataFrame(x, columns=columns), pd.Series(y, name="outcome"), z


@pytest.fixture
def noise_data():
    """Pure noise: 40 participants, 5 predictors, 2 covariates."""
    return generate_participant_data(40, 5, n_covariates=2, seed=42)


@pytest.fixture
def signal_data():
    """Outcome strongly driven by pred_00."""
    return generate_participant_data(60, 5, n_covariates=1, effect=1.5, seed=7)
