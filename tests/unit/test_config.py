"""
Tests for the dictionary configuration loader.
"""

import pytest

from simreg.errors import ConfigurationError


class TestLoadVariables:
    """Test load_variable / load_variables."""

    def test_variants(self, example_variables):
        from simreg.core.config import load_variables
        from simreg.core.variables import ContinuousVar, FactorVar, OrdinalVar, TimeVar

        variables = load_variables(example_variables)
        assert isinstance(variables["time"], TimeVar)
        assert isinstance(variables["weight"], ContinuousVar)
        assert variables["weight"].params == {"mean": 180, "sd": 30}
        assert variables["weight"].var_level == 2
        assert isinstance(variables["age"], OrdinalVar)
        assert variables["age"].level_values == list(range(30, 61))
        assert isinstance(variables["treat"], FactorVar)
        assert variables["treat"].categories == ["Treatment", "Control"]

    def test_continuous_distribution(self):
        from simreg.core.config import load_variable

        var = load_variable("x", {"var_type": "continuous", "dist": "rchisq", "df": 3})
        assert var.dist == "rchisq"
        assert var.params == {"df": 3}

    def test_unknown_type(self):
        from simreg.core.config import load_variable

        with pytest.raises(ConfigurationError, match="var_type must be one of"):
            load_variable("x", {"var_type": "binary"})

    def test_unknown_key(self):
        from simreg.core.config import load_variable

        with pytest.raises(ConfigurationError, match=r"unrecognised keys \['mean'\]"):
            load_variable("g", {"var_type": "factor", "levels": 2, "mean": 3})

    def test_time_levels(self):
        from simreg.core.config import load_variable

        assert load_variable("t", {"var_type": "time", "time_levels": [0, 2, 4]}).time_levels == [0, 2, 4]

    def test_knot(self):
        from simreg.core.config import load_variable
        from simreg.core.variables import KnotVar

        var = load_variable("k", {"var_type": "knot", "base": "time", "breakpoints": [3]})
        assert isinstance(var, KnotVar)
        assert var.breakpoints == (3,)
        assert var.transform is None


class TestLoadRandom:
    """Test load_random grouping."""

    def test_two_levels_and_cross_class(self):
        from simreg.core.config import load_random

        loaded = load_random(
            {
                "int": {"variance": 8, "var_level": 2},
                "time": {"variance": 3, "var_level": 2},
                "int3": {"variance": 2, "var_level": 3},
                "hood": {"cross_class": True, "num_ids": 30, "variance": 2},
            }
        )
        assert sorted(loaded.levels) == [2, 3]
        level2 = loaded.levels[2]
        assert level2.variances == [8.0, 3.0]
        assert level2.intercept
        assert level2.terms == ("time",)
        level3 = loaded.levels[3]
        assert level3.intercept
        assert level3.terms == ()
        assert loaded.cross_class.num_ids == 30

    def test_intercept_first_regardless_of_order(self):
        from simreg.core.config import load_random

        loaded = load_random({"time": {"variance": 3}, "int": {"variance": 8}})
        assert loaded.levels[2].variances == [8.0, 3.0]
        assert loaded.levels[2].labels == ["(Intercept)", "time"]

    def test_generator_parameters(self):
        from simreg.core.config import load_random

        loaded = load_random({"int": {"variance": 1, "rand_gen": "rchisq", "df": 2}})
        assert loaded.levels[2].rand_gen == ["rchisq"]
        assert loaded.levels[2].dist_params == [{"df": 2}]

    def test_correlations_per_level(self):
        from simreg.core.config import load_random

        loaded = load_random({"int": {"variance": 1}, "time": {"variance": 1}}, correlations={2: [0.3]})
        assert loaded.levels[2].correlations == [0.3]

    def test_missing_variance(self):
        from simreg.core.config import load_random

        with pytest.raises(ConfigurationError, match="needs a variance"):
            load_random({"int": {"var_level": 2}})

    def test_cross_class_needs_num_ids(self):
        from simreg.core.config import load_random

        with pytest.raises(ConfigurationError, match="needs num_ids"):
            load_random({"hood": {"cross_class": True, "variance": 1}})

    def test_two_cross_class_groups(self):
        from simreg.core.config import load_random

        with pytest.raises(ConfigurationError, match="Only one cross-classified"):
            load_random(
                {
                    "a": {"cross_class": True, "num_ids": 3, "variance": 1},
                    "b": {"cross_class": True, "num_ids": 3, "variance": 1},
                }
            )

    def test_bad_level(self):
        from simreg.core.config import load_random

        with pytest.raises(ConfigurationError, match="var_level must be 2 or 3"):
            load_random({"int": {"variance": 1, "var_level": 1}})


class TestLoadError:
    """Test load_error."""

    def test_defaults(self):
        from simreg.core.config import load_error

        spec = load_error({})
        assert spec.variance == 1.0
        assert spec.dist == "rnorm"
        assert spec.homogeneity

    def test_distribution_parameters(self):
        from simreg.core.config import load_error

        spec = load_error({"variance": 2, "dist": "rt", "df": 5, "arima": {"ar": [0.4]}})
        assert spec.dist_params == {"df": 5}
        assert spec.ar.tolist() == [0.4]


class TestLoadRandomIntercepts:
    """Test intercept key recognition."""

    def test_level_specific_keys(self):
        from simreg.core.config import load_random

        loaded = load_random({"int_2": {"variance": 1}, "intercept3": {"variance": 2, "var_level": 3}})
        assert loaded.levels[2].intercept
        assert loaded.levels[3].intercept
        assert loaded.levels[3].variances == [2.0]

    def test_intercept_twice(self):
        from simreg.core.config import load_random

        with pytest.raises(ConfigurationError, match="configured twice at level 2"):
            load_random({"int": {"variance": 1}, "int2": {"variance": 2}})
