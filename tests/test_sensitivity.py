"""Tests for metacomm.sensitivity — replicate runs and Morris screening."""

import numpy as np
import pytest

from metacomm.config import apply_overrides, default_config
from metacomm.rng import spawn_seeds
from metacomm.sensitivity import (
    METRIC_NAMES,
    PARAM_SPEC,
    extract_metrics,
    get_param_names,
    get_salib_problem,
    run_morris,
    run_replicates,
    sample_to_overrides,
)
from metacomm.simulator import simulate_metacommunity
from metacomm.types import InvalidParameter


@pytest.fixture
def small_config():
    return apply_overrides(default_config(), {
        'simulation': {'nsite': 30, 'nspec': 20, 'nrep': 2},
    })


class TestParamSpec:
    def test_problem(self):
        problem = get_salib_problem()
        assert problem['num_vars'] == len(PARAM_SPEC)
        assert problem['names'] == get_param_names()
        for (low, high), name in zip(problem['bounds'], problem['names']):
            assert low < high

    def test_sample_to_overrides(self):
        names = ['occurrence.mean_psi', 'detection.mu_FTfilter_lp']
        overrides = sample_to_overrides(np.array([0.4, -1.0]), names)
        assert overrides == {'occurrence': {'mean_psi': 0.4},
                             'detection': {'mu_FTfilter_lp': -1.0}}

    def test_bounds_are_valid_configs(self):
        """Every corner of the sampled box is a valid configuration."""
        names = get_param_names()
        lows = [PARAM_SPEC[n]['low'] for n in names]
        highs = [PARAM_SPEC[n]['high'] for n in names]
        for row in (lows, highs):
            apply_overrides(default_config(), sample_to_overrides(row, names))


class TestExtractMetrics:
    def test_keys(self):
        res = simulate_metacommunity(nsite=30, nspec=20, seed=1)
        metrics = extract_metrics(res)
        assert list(metrics) == METRIC_NAMES
        assert 0.0 <= metrics['frac_unobserved'] <= 1.0
        assert metrics['naive_occupancy_bias'] <= 0.0

    def test_detection_filter_inflates_naive_association(self):
        res = simulate_metacommunity(mu_FTfilter_lpsi=0.0, mean_psi=0.7,
                                     mu_FTfilter_lp=2.0, mean_p=0.4,
                                     nsite=200, nspec=80, nrep=2, seed=3)
        assert extract_metrics(res)['naive_association_bias'] > 0.3


class TestRunReplicates:
    def test_seeds_and_order(self, small_config):
        results = run_replicates(4, small_config, master_seed=99)
        assert [r['run_index'] for r in results] == [0, 1, 2, 3]
        assert [r['seed'] for r in results] == spawn_seeds(99, 4)
        for r in results:
            assert set(r['metrics']) == set(METRIC_NAMES)

    def test_replicate_matches_direct_call(self, small_config):
        result = run_replicates(1, small_config, master_seed=5)[0]
        direct = simulate_metacommunity(nsite=30, nspec=20, nrep=2,
                                        seed=spawn_seeds(5, 1)[0])
        assert result['metrics'] == extract_metrics(direct)

    def test_pool_matches_serial(self, small_config):
        serial = run_replicates(3, small_config, master_seed=7, processes=1)
        pooled = run_replicates(3, small_config, master_seed=7, processes=2)
        for a, b in zip(serial, pooled):
            assert a['seed'] == b['seed']
            assert a['metrics'] == b['metrics']

    def test_bad_count(self, small_config):
        with pytest.raises(InvalidParameter):
            run_replicates(0, small_config)


class TestRunMorris:
    def test_small_screen(self, small_config):
        out = run_morris(small_config, trajectories=2, processes=1, seed=3)
        assert out
        for metric, si in out.items():
            assert metric in METRIC_NAMES
            assert si['names'] == get_param_names()
            assert len(si['mu_star']) == len(PARAM_SPEC)
            assert all(v >= 0 for v in si['mu_star'])
