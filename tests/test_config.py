"""Tests for permutation run configuration files."""

import json

import numpy as np
import pandas as pd
import pytest

from permcorr.config import PermutationConfig, load_config
from permcorr.exceptions import InvalidInput
from permcorr.stats.max_statistic import run_max_stat_correction
from permcorr.stats.partial_correlation import CorrelationType, MissingPolicy
from permcorr.stats.replication import replicated_by_chance_in_3


class TestLoadConfig:
    """Tests for load_config()."""

    def test_yaml(self, tmp_path):
        path = tmp_path / "run.yaml"
        path.write_text("iterations: 500\ncorrelation_type: Spearman\nseed: 3\n")
        assert load_config(path) == {"iterations": 500, "correlation_type": "Spearman", "seed": 3}

    def test_json(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps({"iterations": 250, "missing_policy": "pairwise"}))
        assert load_config(path) == {"iterations": 250, "missing_policy": "pairwise"}

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert load_config(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "run.toml"
        path.write_text("iterations = 10")
        with pytest.raises(ValueError, match="Unsupported config format"):
            load_config(path)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text("{iterations: ")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_config(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "run.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(path)


class TestPermutationConfig:
    """Tests for PermutationConfig."""

    def test_defaults(self):
        config = PermutationConfig()
        assert config.iterations == 1000
        assert config.correlation_type is CorrelationType.PEARSON
        assert config.missing_policy is MissingPolicy.ALL
        assert config.n_jobs == 1
        assert config.percentile_method == "linear"

    def test_from_file_parses_enums(self, tmp_path):
        path = tmp_path / "run.yaml"
        path.write_text(
            "iterations: 200\ncorrelation_type: spearman\n"
            "missing_policy: complete\nn_jobs: -1\nseed: 9\n"
        )
        config = PermutationConfig.from_file(path)
        assert config.iterations == 200
        assert config.correlation_type is CorrelationType.SPEARMAN
        assert config.missing_policy is MissingPolicy.COMPLETE
        assert config.n_jobs == -1
        assert config.seed == 9

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "run.yml"
        path.write_text("")
        assert PermutationConfig.from_file(path) == PermutationConfig()

    def test_load_config_leaves_keys_unchecked(self, tmp_path):
        """Raw loading keeps every key; validation happens in from_dict."""
        path = tmp_path / "run.yaml"
        path.write_text("iterations: 0\nplot_style: dark\n")
        assert load_config(path) == {"iterations": 0, "plot_style": "dark"}
        with pytest.raises(InvalidInput):
            PermutationConfig.from_file(path)

    def test_unknown_keys_ignored(self, caplog):
        config = PermutationConfig.from_dict({"iterations": 10, "colour": "blue"})
        assert config.iterations == 10
        assert "colour" in caplog.text

    @pytest.mark.parametrize("values,argument", [
        ({"iterations": 0}, "iterations"),
        ({"correlation_type": "Kendall"}, "correlation_type"),
        ({"missing_policy": "drop"}, "missing_policy"),
        ({"n_jobs": 0}, "n_jobs"),
        ({"percentile_method": "cubic"}, "percentile_method"),
    ])
    def test_invalid_values(self, values, argument):
        with pytest.raises(InvalidInput) as exc_info:
            PermutationConfig.from_dict(values)
        assert exc_info.value.argument == argument

    def test_to_dict_round_trip(self):
        config = PermutationConfig(iterations=30, correlation_type="Spearman", seed=1)
        assert PermutationConfig.from_dict(config.to_dict()) == config

    def test_run_kwargs_drive_max_stat(self):
        rng = np.random.default_rng(0)
        x = pd.DataFrame(rng.standard_normal((20, 2)), columns=["a", "b"])
        y = rng.standard_normal(20)
        test = pd.Series({"a": 0.1, "b": 0.2})
        config = PermutationConfig(iterations=25, seed=4)

        result = run_max_stat_correction(x, y, None, test, test, **config.run_kwargs())
        assert result.n_iterations == 25

    def test_run_kwargs_drive_replication(self):
        rng = np.random.default_rng(0)
        data = []
        for _ in range(3):
            data.extend([rng.standard_normal(15), rng.standard_normal(15), rng.standard_normal(15)])
        config = PermutationConfig(iterations=20, seed=4)

        result = replicated_by_chance_in_3(
            *data, p_actual1=0.5, p_actual2=0.5, p_actual3=0.5,
            **config.run_kwargs(include_percentile=False),
        )
        assert result.n_iterations == 20
