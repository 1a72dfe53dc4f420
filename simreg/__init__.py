"""SimReg - multilevel regression data simulation.

Generates synthetic datasets for single-level, two-level and three-level
linear regression models with unbalanced and cross-classified designs,
correlated and non-normal random effects, and serially correlated or
heteroscedastic errors.

Example:
    >>> from simreg import RandomEffectSpec, simulate_nested
    >>>
    >>> data = simulate_nested(
    ...     fixed="~1 + time + weight + age + treat",
    ...     fixed_param=[4, 0.5, 0.13, 0.15, 0.3],
    ...     variables={
    ...         "time": {"var_type": "time"},
    ...         "weight": {"var_type": "continuous", "mean": 180, "sd": 30, "var_level": 2},
    ...         "age": {"var_type": "ordinal", "levels": range(30, 61), "var_level": 2},
    ...         "treat": {"var_type": "factor", "levels": ["Treatment", "Control"], "var_level": 2},
    ...     },
    ...     n=20,
    ...     p=10,
    ...     random=RandomEffectSpec(variances=[8, 3], terms="~1 + time"),
    ...     seed=2137,
    ... )
"""

from importlib.metadata import version as _get_version

from .core import (
    ClusterSizes,
    ContinuousVar,
    FactorVar,
    Interaction,
    KnotVar,
    OrdinalVar,
    ReplicationRunner,
    TimeVar,
    UnbalanceSpec,
    simulate_nested,
    simulate_nested3,
    simulate_single,
)
from .errors import ConfigurationError, SamplingError, StructuralError
from .progress import PrintReporter, ProgressUpdate, ReplicationProgress, SimulationCancelled, TqdmReporter
from .stats.random_effects import CrossClassSpec, RandomEffectSpec
from .stats.residuals import ErrorSpec
from .utils.parsers import ParsedFormula

__version__ = _get_version("SimReg")

__all__ = [
    # Assemblers
    "simulate_single",
    "simulate_nested",
    "simulate_nested3",
    "ReplicationRunner",
    # Specifications
    "ParsedFormula",
    "TimeVar",
    "ContinuousVar",
    "OrdinalVar",
    "FactorVar",
    "KnotVar",
    "Interaction",
    "RandomEffectSpec",
    "CrossClassSpec",
    "ErrorSpec",
    "UnbalanceSpec",
    "ClusterSizes",
    # Errors
    "ConfigurationError",
    "StructuralError",
    "SamplingError",
    # Progress
    "SimulationCancelled",
    "ProgressUpdate",
    "ReplicationProgress",
    "PrintReporter",
    "TqdmReporter",
]
