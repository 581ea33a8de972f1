"""Tests for metacomm.config — configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from metacomm.config import (
    CovariateSection,
    MetacommConfig,
    apply_overrides,
    config_to_dict,
    deep_merge,
    default_config,
    load_config,
    validate_config,
    validate_simulation_config,
)
from metacomm.types import InvalidParameter

CONFIG_DIR = Path(__file__).resolve().parents[1] / "configs"


# ── deep_merge tests ──────────────────────────────────────────────────

class TestDeepMerge:
    def test_simple_override(self):
        assert deep_merge({'a': 1, 'b': 2}, {'b': 3}) == {'a': 1, 'b': 3}

    def test_nested_merge(self):
        base = {'x': {'a': 1, 'b': 2}, 'y': 10}
        result = deep_merge(base, {'x': {'b': 3, 'c': 4}})
        assert result == {'x': {'a': 1, 'b': 3, 'c': 4}, 'y': 10}

    def test_override_dict_with_scalar(self):
        assert deep_merge({'a': {'nested': 1}}, {'a': 'replaced'}) == {'a': 'replaced'}

    def test_empty_override(self):
        assert deep_merge({'a': 1}, {}) == {'a': 1}


# ── default_config tests ─────────────────────────────────────────────

class TestDefaultConfig:
    def test_creates_valid_config(self):
        assert isinstance(default_config(), MetacommConfig)

    def test_default_values(self):
        config = default_config()
        assert config.simulation.nsite == 200
        assert config.simulation.nspec == 100
        assert config.simulation.nrep == 2
        assert config.occurrence.mean_psi == 0.8
        assert config.detection.mean_p == 0.8
        assert config.occurrence.sd_beta_lpsi == 0.0
        assert config.covariates.gradient_dist == "normal"

    def test_shipped_default_yaml_matches_dataclasses(self):
        loaded = load_config(CONFIG_DIR / "default.yaml")
        assert config_to_dict(loaded) == config_to_dict(default_config())


# ── YAML loading tests ───────────────────────────────────────────────

class TestLoadConfig:
    def test_load_from_yaml(self, tmp_path):
        config_path = tmp_path / "test.yaml"
        with open(config_path, 'w') as f:
            yaml.dump({'simulation': {'seed': 99, 'nsite': 50}}, f)

        config = load_config(config_path)
        assert config.simulation.seed == 99
        assert config.simulation.nsite == 50
        # Unspecified sections get defaults
        assert config.detection.mean_p == 0.8

    def test_scenario_override(self):
        config = load_config(CONFIG_DIR / "default.yaml",
                             CONFIG_DIR / "filter_example.yaml")
        assert config.occurrence.mu_FTfilter_lpsi == -0.5
        assert config.detection.mu_FTfilter_lp == 1.0
        assert config.simulation.nspec == 100

    def test_missing_scenario_raises(self, tmp_path):
        base_path = tmp_path / "base.yaml"
        base_path.write_text("simulation:\n  nrep: 3\n")
        with pytest.raises(FileNotFoundError, match="nope.yaml"):
            load_config(base_path, tmp_path / "nope.yaml")

    def test_shipped_low_detectability_scenario(self):
        config = load_config(CONFIG_DIR / "default.yaml",
                             CONFIG_DIR / "low_detectability.yaml")
        assert config.simulation.seed == 3
        assert config.simulation.nsite == 200
        assert config.detection.sd_lp == 1.0
        assert config.detection.mu_FTfilter_lp == 2.0

    def test_sweep_overrides(self, tmp_path):
        base_path = tmp_path / "base.yaml"
        base_path.write_text("detection:\n  mean_p: 0.6\n")
        config = load_config(base_path, sweep_overrides={'detection': {'mean_p': 0.3}})
        assert config.detection.mean_p == 0.3

    def test_unknown_keys_ignored(self, tmp_path):
        base_path = tmp_path / "base.yaml"
        base_path.write_text("simulation:\n  nsite: 10\n  colour: blue\nextra: 1\n")
        assert load_config(base_path).simulation.nsite == 10

    def test_empty_file_gives_defaults(self, tmp_path):
        base_path = tmp_path / "empty.yaml"
        base_path.write_text("")
        assert config_to_dict(load_config(base_path)) == config_to_dict(default_config())

    def test_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml_value_raises(self, tmp_path):
        base_path = tmp_path / "bad.yaml"
        base_path.write_text("occurrence:\n  mean_psi: 1.0\n")
        with pytest.raises(InvalidParameter, match="mean_psi"):
            load_config(base_path)


# ── Validation tests ─────────────────────────────────────────────────

class TestValidateConfig:
    @pytest.mark.parametrize("field,value", [
        ("nsite", 0), ("nspec", -1), ("nrep", 0), ("nsite", 2.5), ("nrep", True),
    ])
    def test_bad_counts(self, field, value):
        config = default_config()
        setattr(config.simulation, field, value)
        with pytest.raises(InvalidParameter, match=field):
            validate_config(config)

    @pytest.mark.parametrize("value", [0.0, 1.0, -0.1, 1.5, float('nan')])
    def test_bad_mean_psi(self, value):
        config = default_config()
        config.occurrence.mean_psi = value
        with pytest.raises(InvalidParameter, match="mean_psi"):
            validate_config(config)

    def test_bad_mean_p(self):
        config = default_config()
        config.detection.mean_p = 0
        with pytest.raises(InvalidParameter, match="mean_p"):
            validate_config(config)

    def test_negative_sd(self):
        config = default_config()
        config.detection.sd_lp = -0.1
        with pytest.raises(InvalidParameter, match="sd_lp"):
            validate_config(config)

    def test_infinite_filter(self):
        config = default_config()
        config.occurrence.mu_FTfilter_lpsi = float('inf')
        with pytest.raises(InvalidParameter, match="mu_FTfilter_lpsi"):
            validate_config(config)

    def test_bad_seed(self):
        config = default_config()
        config.simulation.seed = -5
        with pytest.raises(InvalidParameter, match="seed"):
            validate_config(config)

    def test_unknown_distribution(self):
        config = default_config()
        config.covariates.gradient_dist = "gamma"
        with pytest.raises(InvalidParameter, match="gradient_dist"):
            validate_config(config)

    def test_uniform_bounds(self):
        config = default_config()
        config.covariates = CovariateSection(date_dist="uniform", date_low=1.0, date_high=1.0)
        with pytest.raises(InvalidParameter, match="date_low"):
            validate_config(config)

    def test_bad_posterior(self):
        config = default_config()
        config.correction.posterior = "median"
        with pytest.raises(InvalidParameter, match="posterior"):
            validate_config(config)

    def test_bad_workers(self):
        config = default_config()
        config.correction.parallel_workers = 0
        with pytest.raises(InvalidParameter, match="parallel_workers"):
            validate_config(config)


    def test_simulation_checks_skip_correction_settings(self):
        config = default_config()
        config.correction.threshold = 1.5
        config.sensitivity.num_levels = 1
        validate_simulation_config(config)
        with pytest.raises(InvalidParameter, match="threshold"):
            validate_config(config)

class TestApplyOverrides:
    def test_returns_new_config(self):
        base = default_config()
        new = apply_overrides(base, {'detection': {'mean_p': 0.4}})
        assert new.detection.mean_p == 0.4
        assert base.detection.mean_p == 0.8

    def test_validates(self):
        with pytest.raises(InvalidParameter):
            apply_overrides(default_config(), {'simulation': {'nsite': 0}})
