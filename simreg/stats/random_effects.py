"""
Cluster-level random-effect draws.

One row per cluster, one column per random term (intercept first). Each
column is drawn from its generating distribution, standardised by the
distribution's moments and scaled to its target variance; an optional
correlation vector couples the columns while preserving each column's
variance. Cross-classified effects reuse the same generator against their
own, independently sized pool of clusters.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import ConfigurationError
from ..utils.parsers import ParsedFormula
from ..utils.validators import _validate_correlation_matrix, _validate_count, _validate_variance
from .data_generation import _cholesky_decomposition
from .distributions import standardized_draws

DistParams = Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]


def _per_column(value, n_columns: int, name: str, kind) -> List[Any]:
    """Broadcast a single setting, or check one setting per column."""
    if isinstance(value, kind):
        return [value] * n_columns
    values = list(value)
    if len(values) != n_columns:
        raise ConfigurationError(f"{name} has {len(values)} entries for {n_columns} random-effect columns")
    return values


@dataclass
class RandomEffectSpec:
    """Random effects of one nesting level.

    Attributes:
        variances: One variance per column, random intercept first unless
            suppressed.
        rand_gen: Generating distribution, shared or one per column.
        dist_params: Distribution parameters, shared or one mapping per
            column.
        correlations: Optional correlation vector filling the upper
            triangle row by row: ``(0, 1), (0, 2), ..., (1, 2), ...``.
        ther: Explicit ``(mean, variance)`` of the generating distribution.
        ther_sim: Estimate the moments from a large simulated sample
            instead of using the theoretical ones.
        terms: Random slopes, as term labels or a one-sided formula
            (``"~1 + time"``). A formula also sets *intercept*.
        intercept: Whether the first column is a random intercept.
        var_level: Nesting level the effects vary over (2 or 3).
    """

    variances: Sequence[float]
    rand_gen: Union[str, Sequence[str]] = "rnorm"
    dist_params: DistParams = field(default_factory=dict)
    correlations: Optional[Sequence[float]] = None
    ther: Optional[Tuple[float, float]] = None
    ther_sim: bool = False
    terms: Union[str, ParsedFormula, Sequence[str]] = ()
    intercept: bool = True
    var_level: int = 2

    def __post_init__(self):
        if isinstance(self.terms, str):
            self.terms = ParsedFormula.from_string(self.terms)
        if isinstance(self.terms, ParsedFormula):
            self.intercept = self.terms.intercept
            self.terms = self.terms.terms
        self.terms = tuple(self.terms)
        self.variances = [float(v) for v in np.atleast_1d(self.variances)]

        for i, variance in enumerate(self.variances):
            _validate_variance(variance, f"Random variance {i}").raise_if_invalid()
        if self.var_level not in (2, 3):
            raise ConfigurationError(f"Random effects vary over level 2 or 3, got var_level={self.var_level}")
        if not self.variances:
            raise ConfigurationError("At least one random variance is required")

        self.rand_gen = _per_column(self.rand_gen, self.n_columns, "rand_gen", str)
        self.dist_params = _per_column(self.dist_params, self.n_columns, "dist_params", Mapping)

    @property
    def n_columns(self) -> int:
        return len(self.variances)

    @property
    def labels(self) -> List[str]:
        """Column labels: ``"(Intercept)"`` (when present) then the slopes."""
        return (["(Intercept)"] if self.intercept else []) + list(self.terms)


@dataclass
class CrossClassSpec:
    """Cross-classified random intercept.

    Observations are assigned to one of *num_ids* clusters independently of
    the primary nesting; each cluster carries one draw.

    Attributes:
        num_ids: Size of the cross-classified cluster pool.
        variance: Variance of the cross-classified effect.
    """

    num_ids: int
    variance: float
    rand_gen: str = "rnorm"
    dist_params: Mapping[str, Any] = field(default_factory=dict)
    ther: Optional[Tuple[float, float]] = None
    ther_sim: bool = False

    def __post_init__(self):
        _validate_count(self.num_ids, "Cross-classified num_ids").raise_if_invalid()
        _validate_variance(self.variance, "Cross-classified variance").raise_if_invalid()

    @property
    def random_spec(self) -> RandomEffectSpec:
        return RandomEffectSpec(
            variances=[self.variance],
            rand_gen=self.rand_gen,
            dist_params=self.dist_params,
            ther=self.ther,
            ther_sim=self.ther_sim,
        )


def correlation_from_vector(correlations: Sequence[float], n_columns: int) -> np.ndarray:
    """Expand an upper-triangle correlation vector into a full matrix.

    Raises:
        ConfigurationError: If the vector length is not ``q(q-1)/2`` or the
            matrix is not a valid correlation matrix.
    """
    values = np.asarray(correlations, dtype=float).ravel()
    expected = n_columns * (n_columns - 1) // 2
    if values.size != expected:
        raise ConfigurationError(
            f"{values.size} random-effect correlations specified for {n_columns} columns (expected {expected})"
        )

    corr = np.eye(n_columns)
    rows, cols = np.triu_indices(n_columns, k=1)
    corr[rows, cols] = values
    corr[cols, rows] = values
    _validate_correlation_matrix(corr).raise_if_invalid()
    return corr


def sim_rand_eff(spec: RandomEffectSpec, n_clusters: int, rng: np.random.Generator) -> np.ndarray:
    """Draw the random effects of *n_clusters* clusters.

    Args:
        spec: Random-effect specification.
        n_clusters: Number of clusters at the effect's level.
        rng: Random stream.

    Returns:
        Array of shape ``(n_clusters, spec.n_columns)``.
    """
    _validate_count(n_clusters, "Number of random-effect clusters").raise_if_invalid()

    z = np.column_stack(
        [
            standardized_draws(dist, params, n_clusters, rng, ther=spec.ther, ther_sim=spec.ther_sim)
            for dist, params in zip(spec.rand_gen, spec.dist_params)  # type: ignore[arg-type]
        ]
    )

    if spec.correlations is not None:
        corr = correlation_from_vector(spec.correlations, spec.n_columns)
        z = z @ _cholesky_decomposition(corr).T

    return z * np.sqrt(np.asarray(spec.variances))
