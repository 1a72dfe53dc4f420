"""
Shared pytest fixtures for SimReg tests.
"""

import numpy as np
import pytest

from tests.config import SEED


@pytest.fixture
def rng():
    """Fresh random stream with the shared seed."""
    return np.random.default_rng(SEED)


@pytest.fixture
def example_variables():
    """Fixed terms of the 20 clusters x 10 observations reference design."""
    return {
        "time": {"var_type": "time"},
        "weight": {"var_type": "continuous", "mean": 180, "sd": 30, "var_level": 2},
        "age": {"var_type": "ordinal", "levels": range(30, 61), "var_level": 2},
        "treat": {"var_type": "factor", "levels": ["Treatment", "Control"], "var_level": 2},
    }


@pytest.fixture
def example_random():
    """Random intercept (variance 8) and time slope (variance 3) at level 2."""
    from simreg import RandomEffectSpec

    return RandomEffectSpec(variances=[8, 3], terms="~1 + time")


@pytest.fixture
def example_dataset(example_variables, example_random):
    """Two-level reference dataset: 20 clusters of 10 observations."""
    from simreg import simulate_nested

    return simulate_nested(
        fixed="~1 + time + weight + age + treat",
        fixed_param=[4, 0.5, 0.13, 0.15, 0.3],
        variables=example_variables,
        n=20,
        p=10,
        random=example_random,
        error={"variance": 4},
        seed=SEED,
    )
