"""Named generating distributions for SimReg.

Maps the distribution identifiers used in simulation specifications to
frozen ``scipy.stats`` distributions. R-style names (``"rnorm"``,
``"rchisq"``, ...) and their R parameter names (``mean``/``sd``,
``min``/``max``, ``df``, ``shape``/``rate``, ...) are accepted, and any
other name is looked up directly in ``scipy.stats`` with its native
keyword arguments.

Usage:
    from simreg.stats.distributions import draw, standardized_draws
"""

from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import numpy as np
from scipy import stats

from ..errors import ConfigurationError

# Sample size used to estimate moments when ``ther_sim`` is requested
THER_SIM_SIZE = 100_000
FLOAT_NEAR_ZERO = 1e-15


def _norm(mean=0.0, sd=1.0):
    return stats.norm(loc=mean, scale=sd)


def _unif(min=0.0, max=1.0):  # noqa: A002
    return stats.uniform(loc=min, scale=max - min)


def _chisq(df, ncp=0.0):
    if ncp:
        return stats.ncx2(df, ncp)
    return stats.chi2(df)


def _t(df, ncp=0.0):
    if ncp:
        return stats.nct(df, ncp)
    return stats.t(df)


def _gamma(shape, rate=None, scale=None):
    if rate is not None and scale is not None:
        raise ConfigurationError("gamma: specify either rate or scale, not both")
    if scale is None:
        scale = 1.0 / rate if rate is not None else 1.0
    return stats.gamma(a=shape, scale=scale)


def _beta(shape1, shape2):
    return stats.beta(shape1, shape2)


def _exp(rate=1.0):
    return stats.expon(scale=1.0 / rate)


def _binom(size, prob):
    return stats.binom(n=size, p=prob)


def _pois(**kwargs):
    mu = kwargs.pop("lambda", kwargs.pop("mu", None))
    if mu is None or kwargs:
        raise TypeError("pois expects a single 'lambda' parameter")
    return stats.poisson(mu=mu)


def _lnorm(meanlog=0.0, sdlog=1.0):
    return stats.lognorm(s=sdlog, scale=np.exp(meanlog))


def _weibull(shape, scale=1.0):
    return stats.weibull_min(c=shape, scale=scale)


_FAMILIES: Dict[str, Callable[..., Any]] = {
    "normal": _norm,
    "uniform": _unif,
    "chisq": _chisq,
    "t": _t,
    "gamma": _gamma,
    "beta": _beta,
    "exp": _exp,
    "binom": _binom,
    "pois": _pois,
    "lnorm": _lnorm,
    "weibull": _weibull,
}

_ALIASES = {
    "rnorm": "normal",
    "norm": "normal",
    "gaussian": "normal",
    "runif": "uniform",
    "unif": "uniform",
    "rchisq": "chisq",
    "chi2": "chisq",
    "rt": "t",
    "rgamma": "gamma",
    "rbeta": "beta",
    "rexp": "exp",
    "exponential": "exp",
    "rbinom": "binom",
    "binomial": "binom",
    "rpois": "pois",
    "poisson": "pois",
    "rlnorm": "lnorm",
    "lognormal": "lnorm",
    "rweibull": "weibull",
}


def available_distributions():
    """Return the built-in family names and their accepted aliases."""
    return {name: sorted(alias for alias, target in _ALIASES.items() if target == name) for name in _FAMILIES}


def get_distribution(name: str, params: Optional[Mapping[str, Any]] = None):
    """Build a frozen ``scipy.stats`` distribution from a name and parameters.

    Args:
        name: Built-in family, alias (``"rnorm"``), or any ``scipy.stats``
            distribution name (``"skewnorm"``, ``"laplace"``, ...).
        params: Distribution parameters. Built-in families use R parameter
            names; scipy names use scipy's own keywords.

    Raises:
        ConfigurationError: If the name is unknown or the parameters do not
            fit the distribution.
    """
    params = dict(params or {})
    family = _ALIASES.get(name, name)

    if family in _FAMILIES:
        factory = _FAMILIES[family]
    else:
        scipy_dist = getattr(stats, name, None)
        if not isinstance(scipy_dist, (stats.rv_continuous, stats.rv_discrete)):
            raise ConfigurationError(
                f"Unknown distribution '{name}'. Use one of {', '.join(sorted(_FAMILIES))}, "
                "an R-style alias such as 'rnorm', or a scipy.stats distribution name"
            )
        factory = scipy_dist

    try:
        return factory(**params)
    except TypeError as e:
        raise ConfigurationError(f"Invalid parameters for distribution '{name}': {params} ({e})") from e


def draw(name: str, params: Optional[Mapping[str, Any]], size: int, rng: np.random.Generator) -> np.ndarray:
    """Draw *size* values from a named distribution using *rng*."""
    dist = get_distribution(name, params)
    return np.asarray(dist.rvs(size=size, random_state=rng), dtype=float)


def theoretical_moments(name: str, params: Optional[Mapping[str, Any]] = None) -> Tuple[float, float]:
    """Theoretical ``(mean, variance)`` of a named distribution.

    Raises:
        ConfigurationError: If the distribution has no finite variance
            (e.g. ``t`` with ``df <= 2``).
    """
    mean, var = get_distribution(name, params).stats(moments="mv")
    mean, var = float(mean), float(var)
    if not np.isfinite(mean) or not np.isfinite(var):
        raise ConfigurationError(
            f"Distribution '{name}' with parameters {dict(params or {})} has no finite mean/variance; "
            "supply ther=(mean, variance) explicitly"
        )
    return mean, var


def simulated_moments(
    name: str,
    params: Optional[Mapping[str, Any]],
    rng: np.random.Generator,
    size: int = THER_SIM_SIZE,
) -> Tuple[float, float]:
    """Estimate ``(mean, variance)`` from a large simulated reference sample."""
    sample = draw(name, params, size, rng)
    return float(np.mean(sample)), float(np.var(sample, ddof=1))


def standardized_draws(
    name: str,
    params: Optional[Mapping[str, Any]],
    size: int,
    rng: np.random.Generator,
    ther: Optional[Tuple[float, float]] = None,
    ther_sim: bool = False,
) -> np.ndarray:
    """Draw from a named distribution and rescale to mean 0, variance 1.

    The moments used for rescaling come from, in order of precedence: the
    explicit *ther* ``(mean, variance)`` pair, a simulated reference sample
    when *ther_sim* is set, or the distribution's theoretical moments.
    """
    if ther is not None:
        mean, var = float(ther[0]), float(ther[1])
    elif ther_sim:
        mean, var = simulated_moments(name, params, rng)
    else:
        mean, var = theoretical_moments(name, params)

    if var <= FLOAT_NEAR_ZERO:
        raise ConfigurationError(f"Distribution '{name}' has zero variance and cannot be rescaled")

    values = draw(name, params, size, rng)
    return (values - mean) / np.sqrt(var)
