"""
Level-1 residual generation.

Three modes:

- independent: standardised draws scaled to a constant variance;
- serially correlated: a stationary ARMA process run independently inside
  each level-2 cluster and concatenated in cluster order;
- heteroscedastic: the variance of each observation is selected by a named
  covariate, either one variance per covariate value or a variance
  proportional to the covariate.
"""

import warnings
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.signal import lfilter

from ..core.clusters import ClusterSizes
from ..errors import ConfigurationError
from ..utils.validators import _validate_variance
from .distributions import standardized_draws

# Extra innovations generated and discarded so each cluster starts near the
# stationary distribution
ARMA_BURN_IN = 100


@dataclass
class ErrorSpec:
    """Level-1 error specification.

    Attributes:
        variance: Error variance. With heteroscedasticity, either a vector
            with one variance per sorted unique value of
            *heterogeneity_var*, or a scalar multiplied by that covariate.
        dist: Generating distribution.
        dist_params: Distribution parameters.
        arima: ARMA coefficients, ``{"ar": [...], "ma": [...]}``. The
            innovations have variance *variance*.
        homogeneity: ``False`` to enable heteroscedastic errors.
        heterogeneity_var: Covariate selecting each observation's variance.
        ther: Explicit ``(mean, variance)`` of *dist*.
    """

    variance: Union[float, Sequence[float]] = 1.0
    dist: str = "rnorm"
    dist_params: Mapping[str, Any] = field(default_factory=dict)
    arima: Optional[Mapping[str, Sequence[float]]] = None
    homogeneity: bool = True
    heterogeneity_var: Optional[str] = None
    ther: Optional[Tuple[float, float]] = None

    def __post_init__(self):
        for value in np.atleast_1d(self.variance):
            _validate_variance(float(value), "Error variance").raise_if_invalid()

        if self.arima is not None:
            unknown = set(self.arima) - {"ar", "ma"}
            if unknown:
                raise ConfigurationError(f"arima: unrecognised keys {sorted(unknown)}; expected 'ar' and/or 'ma'")
            _check_stationary(self.ar)

        if self.homogeneity:
            if self.heterogeneity_var is not None:
                warnings.warn(
                    f"heterogeneity_var '{self.heterogeneity_var}' is ignored while homogeneity=True",
                    stacklevel=3,
                )
            if np.ndim(self.variance) != 0:
                raise ConfigurationError("A vector of error variances requires homogeneity=False")
        else:
            if self.heterogeneity_var is None:
                raise ConfigurationError("heterogeneity_var is required when homogeneity=False")
            if self.arima is not None:
                raise ConfigurationError("ARMA errors cannot be combined with heteroscedastic errors")

    @property
    def ar(self) -> np.ndarray:
        return np.asarray((self.arima or {}).get("ar", ()), dtype=float)

    @property
    def ma(self) -> np.ndarray:
        return np.asarray((self.arima or {}).get("ma", ()), dtype=float)


def _check_stationary(ar: np.ndarray) -> None:
    """Raise ``ConfigurationError`` unless the AR polynomial is stationary."""
    if ar.size == 0:
        return
    roots = np.roots(np.concatenate([[1.0], -ar]))
    if np.any(np.abs(roots) >= 1.0):
        raise ConfigurationError(f"AR coefficients {ar.tolist()} do not define a stationary process")


def _draw(spec: ErrorSpec, size: int, rng: np.random.Generator) -> np.ndarray:
    return standardized_draws(spec.dist, spec.dist_params, size, rng, ther=spec.ther)


def sim_arma(spec: ErrorSpec, sizes: ClusterSizes, rng: np.random.Generator) -> np.ndarray:
    """Serially correlated residuals, one ARMA series per level-2 cluster."""
    ar, ma = spec.ar, spec.ma
    burn_in = ARMA_BURN_IN + ar.size + ma.size
    b = np.concatenate([[1.0], ma])
    a = np.concatenate([[1.0], -ar])
    sd = np.sqrt(float(spec.variance))

    series = []
    for p in sizes.level1:
        innovations = _draw(spec, int(p) + burn_in, rng) * sd
        series.append(lfilter(b, a, innovations)[burn_in:])
    return np.concatenate(series)


def heteroscedastic_variances(
    spec: ErrorSpec,
    fixed: Optional[pd.DataFrame],
    original: Optional[pd.DataFrame] = None,
) -> np.ndarray:
    """Per-observation error variances selected by ``spec.heterogeneity_var``.

    The covariate is looked up first among the original factor labels and
    then among the design columns.

    Raises:
        ConfigurationError: If the covariate is missing, the variance vector
            does not match its number of distinct values, or a
            proportional variance is not positive.
    """
    name = spec.heterogeneity_var
    if original is not None and name in original.columns:
        covariate = original[name].to_numpy()
    elif fixed is not None and name in fixed.columns:
        covariate = fixed[name].to_numpy()
    else:
        raise ConfigurationError(f"heterogeneity_var '{name}' is not a generated fixed-effect column")

    variance = np.atleast_1d(np.asarray(spec.variance, dtype=float))
    if np.ndim(spec.variance) == 0:
        if not np.issubdtype(covariate.dtype, np.number):
            raise ConfigurationError(
                f"Error variance proportional to '{name}' needs a numeric covariate; "
                f"give one variance per value of '{name}' instead"
            )
        row_variances = variance[0] * covariate.astype(float)
        if np.any(row_variances <= 0):
            raise ConfigurationError(
                f"Error variance proportional to '{name}' must be positive; '{name}' has non-positive values"
            )
        return row_variances

    groups, codes = np.unique(covariate, return_inverse=True)
    if len(groups) != len(variance):
        raise ConfigurationError(
            f"{len(variance)} error variances specified for {len(groups)} distinct values of '{name}'"
        )
    return variance[codes.ravel()]


def sim_err(
    spec: ErrorSpec,
    sizes: ClusterSizes,
    rng: np.random.Generator,
    fixed: Optional[pd.DataFrame] = None,
    original: Optional[pd.DataFrame] = None,
) -> np.ndarray:
    """Generate one residual per observation.

    Args:
        spec: Error specification.
        sizes: Resolved cluster sizes (ARMA series restart in each cluster).
        rng: Random stream.
        fixed: Design matrix, for heteroscedastic weighting.
        original: Original factor labels, for heteroscedastic weighting.

    Returns:
        Array of length ``sizes.n_obs``.
    """
    if spec.arima is not None:
        return sim_arma(spec, sizes, rng)

    if not spec.homogeneity:
        row_variances = heteroscedastic_variances(spec, fixed, original)
        return _draw(spec, sizes.n_obs, rng) * np.sqrt(row_variances)

    return _draw(spec, sizes.n_obs, rng) * np.sqrt(float(spec.variance))
