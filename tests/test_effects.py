"""Tests for metacomm.effects — trait-filtered species random effects."""

import numpy as np
import pytest

from metacomm.config import DetectionSection, OccurrenceSection
from metacomm.effects import draw_species_effects, filtered_intercepts, species_slopes
from metacomm.rng import make_generator
from metacomm.transforms import logit


class TestFilteredIntercepts:
    def test_no_spread_is_deterministic_line(self):
        traits = np.array([-1.0, 0.0, 2.0])
        lpsi = filtered_intercepts(make_generator(0), traits, 0.8, -0.5, 0.0)
        np.testing.assert_allclose(lpsi, logit(0.8) - 0.5 * traits)

    def test_baseline_calibration(self):
        """Mean intercept over a centred pool equals logit(mean_prob)."""
        rng = make_generator(1)
        traits = rng.normal(size=200_000)
        traits -= traits.mean()
        lp = filtered_intercepts(rng, traits, 0.3, 1.5, 0.7)
        assert lp.mean() == pytest.approx(logit(0.3), abs=0.01)

    def test_spread(self):
        traits = np.zeros(100_000)
        lpsi = filtered_intercepts(make_generator(2), traits, 0.5, 1.0, 0.4)
        assert lpsi.std() == pytest.approx(0.4, abs=0.01)

    def test_filter_slope_recovered(self):
        rng = make_generator(3)
        traits = rng.normal(size=50_000)
        lpsi = filtered_intercepts(rng, traits, 0.6, -0.8, 0.5)
        slope = np.polyfit(traits, lpsi, 1)[0]
        assert slope == pytest.approx(-0.8, abs=0.02)


class TestSpeciesEffects:
    def test_shapes(self):
        traits = np.zeros(17)
        eff = draw_species_effects(make_generator(0), traits)
        assert eff.nspec == 17
        for arr in (eff.lpsi, eff.lp, eff.beta_lpsi, eff.alpha_lp):
            assert arr.shape == (17,)

    def test_fixed_slopes_when_no_spread(self):
        traits = np.zeros(10)
        occ = OccurrenceSection(mu_beta_lpsi=1.25, sd_beta_lpsi=0.0)
        det = DetectionSection(mu_alpha_lp=-0.4, sd_alpha_lp=0.0)
        eff = draw_species_effects(make_generator(0), traits, occ, det)
        np.testing.assert_array_equal(eff.beta_lpsi, np.full(10, 1.25))
        np.testing.assert_array_equal(eff.alpha_lp, np.full(10, -0.4))

    def test_occurrence_and_detection_noise_independent(self):
        traits = np.zeros(20_000)
        occ = OccurrenceSection(mean_psi=0.5, sd_lpsi=1.0)
        det = DetectionSection(mean_p=0.5, sd_lp=1.0)
        eff = draw_species_effects(make_generator(4), traits, occ, det)
        assert abs(np.corrcoef(eff.lpsi, eff.lp)[0, 1]) < 0.03

    def test_draw_order(self):
        traits = np.array([0.0, 1.0, -1.0])
        occ = OccurrenceSection(mean_psi=0.5, mu_FTfilter_lpsi=0.0, sd_lpsi=1.0,
                                mu_beta_lpsi=0.0, sd_beta_lpsi=1.0)
        det = DetectionSection(mean_p=0.5, mu_FTfilter_lp=0.0, sd_lp=1.0,
                               mu_alpha_lp=0.0, sd_alpha_lp=1.0)
        eff = draw_species_effects(make_generator(8), traits, occ, det)
        z = make_generator(8).normal(0.0, 1.0, 12)
        np.testing.assert_allclose(eff.lpsi, z[0:3])
        np.testing.assert_allclose(eff.lp, z[3:6])
        np.testing.assert_allclose(eff.beta_lpsi, z[6:9])
        np.testing.assert_allclose(eff.alpha_lp, z[9:12])

    def test_slope_spread(self):
        slopes = species_slopes(make_generator(0), 50_000, 0.5, 0.2)
        assert slopes.mean() == pytest.approx(0.5, abs=0.01)
        assert slopes.std() == pytest.approx(0.2, abs=0.01)
