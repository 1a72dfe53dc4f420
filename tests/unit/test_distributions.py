"""
Tests for named generating distributions.
"""

import numpy as np
import pytest

from simreg.errors import ConfigurationError
from tests.config import MOMENT_TOL, N_LARGE


class TestGetDistribution:
    """Test name and parameter resolution."""

    @pytest.mark.parametrize(
        "name, params, mean, var",
        [
            ("rnorm", {"mean": 180, "sd": 30}, 180.0, 900.0),
            ("runif", {"min": 0, "max": 12}, 6.0, 12.0),
            ("rchisq", {"df": 3}, 3.0, 6.0),
            ("rgamma", {"shape": 2, "rate": 0.5}, 4.0, 8.0),
            ("rexp", {"rate": 2}, 0.5, 0.25),
            ("rpois", {"lambda": 4}, 4.0, 4.0),
            ("rbinom", {"size": 10, "prob": 0.3}, 3.0, 2.1),
        ],
    )
    def test_r_aliases_moments(self, name, params, mean, var):
        from simreg.stats.distributions import theoretical_moments

        m, v = theoretical_moments(name, params)
        assert m == pytest.approx(mean)
        assert v == pytest.approx(var)

    def test_scipy_name_fallback(self):
        from simreg.stats.distributions import get_distribution

        dist = get_distribution("laplace", {"loc": 1, "scale": 2})
        assert dist.mean() == pytest.approx(1.0)

    def test_unknown_name(self):
        from simreg.stats.distributions import get_distribution

        with pytest.raises(ConfigurationError, match="Unknown distribution 'nope'"):
            get_distribution("nope")

    def test_bad_parameters(self):
        from simreg.stats.distributions import get_distribution

        with pytest.raises(ConfigurationError, match="Invalid parameters"):
            get_distribution("rnorm", {"mu": 1})

    def test_gamma_rate_and_scale(self):
        from simreg.stats.distributions import get_distribution

        with pytest.raises(ConfigurationError, match="either rate or scale"):
            get_distribution("rgamma", {"shape": 2, "rate": 1, "scale": 1})

    def test_infinite_variance(self):
        from simreg.stats.distributions import theoretical_moments

        with pytest.raises(ConfigurationError, match="no finite mean/variance"):
            theoretical_moments("rt", {"df": 2})

    def test_available_distributions(self):
        from simreg.stats.distributions import available_distributions

        families = available_distributions()
        assert "rnorm" in families["normal"]
        assert "rchisq" in families["chisq"]


class TestDraw:
    """Test sampling helpers."""

    def test_reproducible(self):
        from simreg.stats.distributions import draw

        a = draw("rnorm", {}, 10, np.random.default_rng(3))
        b = draw("rnorm", {}, 10, np.random.default_rng(3))
        np.testing.assert_array_equal(a, b)

    def test_standardized_theoretical(self, rng):
        from simreg.stats.distributions import standardized_draws

        values = standardized_draws("rchisq", {"df": 1}, N_LARGE, rng)
        assert abs(values.mean()) < MOMENT_TOL
        assert values.var() == pytest.approx(1.0, rel=MOMENT_TOL)

    def test_standardized_explicit_moments(self, rng):
        from simreg.stats.distributions import standardized_draws

        values = standardized_draws("rnorm", {"mean": 5, "sd": 2}, N_LARGE, rng, ther=(5, 4))
        assert abs(values.mean()) < MOMENT_TOL
        assert values.var() == pytest.approx(1.0, rel=MOMENT_TOL)

    def test_standardized_simulated_moments(self, rng):
        from simreg.stats.distributions import standardized_draws

        values = standardized_draws("rgamma", {"shape": 2}, N_LARGE, rng, ther_sim=True)
        assert abs(values.mean()) < MOMENT_TOL
        assert values.var() == pytest.approx(1.0, rel=MOMENT_TOL)
