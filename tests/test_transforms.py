"""Tests for metacomm.transforms — logit / inverse-logit."""

import numpy as np
import pytest

from metacomm.transforms import expit, logit
from metacomm.types import InvalidParameter


class TestExpit:
    def test_zero(self):
        assert expit(0.0) == 0.5

    def test_scalar_returns_float(self):
        assert isinstance(expit(1.0), float)

    def test_array_shape(self):
        x = np.zeros((3, 4, 2))
        assert expit(x).shape == (3, 4, 2)

    def test_extreme_values_finite(self):
        out = expit(np.array([-800.0, 800.0]))
        assert np.all(np.isfinite(out))
        assert out[0] >= 0.0 and out[1] <= 1.0

    def test_monotone(self):
        x = np.linspace(-10, 10, 101)
        assert np.all(np.diff(expit(x)) > 0)


class TestLogit:
    def test_half(self):
        assert logit(0.5) == 0.0

    def test_known_value(self):
        assert logit(0.8) == pytest.approx(np.log(4.0))

    def test_exact_inverse(self):
        p = np.linspace(0.01, 0.99, 99)
        np.testing.assert_allclose(expit(logit(p)), p, rtol=1e-12)
        x = np.linspace(-8, 8, 33)
        np.testing.assert_allclose(logit(expit(x)), x, atol=1e-9)

    @pytest.mark.parametrize("bad", [0.0, 1.0, -0.2, 1.2, float('nan')])
    def test_out_of_domain(self, bad):
        with pytest.raises(InvalidParameter):
            logit(bad)

    def test_array_with_one_bad_value(self):
        with pytest.raises(InvalidParameter):
            logit(np.array([0.2, 0.5, 1.0]))
