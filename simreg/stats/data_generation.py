"""
Fixed-effect data generation for SimReg.

Generates the covariate columns of a simulated design:
- Time, continuous, ordinal, factor and knot-derived variables
- Replication of level-2 / level-3 values down to level-1 rows
- Pairwise correlation between continuous covariates
- Contrast coding of factors and interaction products

The result is the fixed-effect design matrix plus, when factors are
present, the frame of their original (pre-indicator) labels.
"""

import warnings
from dataclasses import dataclass, field
from itertools import product
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from ..core.clusters import ClusterSizes
from ..core.schema import INTERCEPT
from ..core.variables import (
    ContinuousVar,
    FactorVar,
    Interaction,
    KnotVar,
    OrdinalVar,
    TermRegistry,
    TimeVar,
)
from ..errors import ConfigurationError, SamplingError
from ..utils.parsers import _parse_correlations
from ..utils.validators import _validate_correlation_matrix
from .distributions import draw

FLOAT_NEAR_ZERO = 1e-15

Correlations = Union[str, Mapping[Tuple[str, str], float], None]
Contrast = Union[str, np.ndarray]


@dataclass
class FixedEffects:
    """Fixed-effect design of one simulated dataset.

    Attributes:
        design: ``(n_obs, n_columns)`` design matrix, intercept first when
            present, factors expanded and interactions multiplied out.
        original: Original labels of factor terms, one column per factor,
            or ``None`` when the design has no factor.
        columns_by_term: Design column names generated by each term.
    """

    design: pd.DataFrame
    original: Optional[pd.DataFrame] = None
    columns_by_term: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def n_columns(self) -> int:
        return self.design.shape[1]


def _cholesky_decomposition(corr_matrix):
    """Compute Cholesky factor, falling back to eigen-decomposition if needed."""
    try:
        return np.linalg.cholesky(corr_matrix)
    except np.linalg.LinAlgError:
        eigenvals, eigenvecs = np.linalg.eigh(corr_matrix)
        if np.any(eigenvals < FLOAT_NEAR_ZERO):
            warnings.warn("Correlation matrix is singular; eigenvalues were clipped to induce correlations", stacklevel=3)
        eigenvals = np.maximum(eigenvals, FLOAT_NEAR_ZERO)
        return eigenvecs @ np.diag(np.sqrt(eigenvals))


def correlation_matrix(names: List[str], pairs: Mapping[Tuple[str, str], float]) -> np.ndarray:
    """Build and validate a correlation matrix from pairwise correlations.

    Pairs not listed are uncorrelated.

    Raises:
        ConfigurationError: If a pair names an unknown variable or the
            resulting matrix is not a valid correlation matrix.
    """
    corr = np.eye(len(names))
    for (var1, var2), value in pairs.items():
        if var1 not in names or var2 not in names:
            raise ConfigurationError(f"corr({var1}, {var2}): both variables must be among {names}")
        i, j = names.index(var1), names.index(var2)
        corr[i, j] = corr[j, i] = value

    _validate_correlation_matrix(corr).raise_if_invalid()
    return corr


def induce_correlation(columns: np.ndarray, corr: np.ndarray) -> np.ndarray:
    """Transform independent columns so they follow the target correlation.

    Each column is standardised, rotated by the Cholesky factor of *corr*
    and restored to its own empirical mean and standard deviation, so the
    marginal location and scale are preserved.
    """
    means = columns.mean(axis=0)
    sds = columns.std(axis=0, ddof=1)
    if np.any(sds <= FLOAT_NEAR_ZERO):
        raise ConfigurationError("Cannot correlate a constant column")
    z = (columns - means) / sds
    return z @ _cholesky_decomposition(corr).T * sds + means


# ---------------------------------------------------------------------------
# Variable generator
# ---------------------------------------------------------------------------


def generate_time(spec: TimeVar, sizes: ClusterSizes) -> np.ndarray:
    """Generate a level-1 time column, restarting inside each cluster.

    Raises:
        ConfigurationError: If explicit time points do not match the
            level-1 sample size (the largest one for unbalanced designs).
    """
    p_max = int(np.max(sizes.level1))
    if spec.time_levels is None:
        points = np.arange(p_max, dtype=float)
    else:
        points = np.asarray(spec.time_levels, dtype=float)
        if len(points) != p_max:
            raise ConfigurationError(
                f"{spec.name}: time_levels has {len(points)} values but the level-1 sample size is {p_max}"
            )
    return np.concatenate([points[:p] for p in sizes.level1])


def generate_continuous(spec: ContinuousVar, size: int, rng: np.random.Generator) -> np.ndarray:
    """Draw *size* values of a continuous covariate."""
    return draw(spec.dist, spec.params, size, rng)


def sample_levels(spec: OrdinalVar, size: int, rng: np.random.Generator) -> np.ndarray:
    """Sample *size* values from the levels of an ordinal or factor variable.

    Raises:
        SamplingError: If sampling without replacement asks for more draws
            than there are levels.
    """
    values = spec.level_values
    if not spec.replace and size > len(values):
        raise SamplingError(
            f"{spec.name}: cannot take {size} draws without replacement from {len(values)} levels"
        )

    prob = None
    if spec.prob is not None:
        prob = np.asarray(spec.prob, dtype=float)
        prob = prob / prob.sum()

    idx = rng.choice(len(values), size=size, replace=spec.replace, p=prob)
    if isinstance(spec, FactorVar):
        return np.asarray(spec.categories, dtype=object)[idx]
    return np.asarray(values)[idx].astype(float)


def generate_variable(spec, sizes: ClusterSizes, rng: np.random.Generator) -> np.ndarray:
    """Generate the unique values of one base variable at its declared level.

    Returns one value per unit of ``spec.var_level`` (observations, level-2
    clusters or level-3 clusters); time variables are returned directly
    at level 1.
    """
    if isinstance(spec, TimeVar):
        return generate_time(spec, sizes)

    size = sizes.n_units(spec.var_level)
    if isinstance(spec, ContinuousVar):
        return generate_continuous(spec, size, rng)
    if isinstance(spec, OrdinalVar):
        return sample_levels(spec, size, rng)
    raise ConfigurationError(f"Cannot generate '{spec.name}' of type {type(spec).__name__} directly")


def derive_knot(spec: KnotVar, base_values: np.ndarray) -> np.ndarray:
    """Apply a knot variable's transform to its level-1 base column.

    Raises:
        ConfigurationError: If no transform was supplied or it returns the
            wrong number of values.
    """
    if spec.transform is None:
        raise ConfigurationError(
            f"Knot variable '{spec.name}' needs a transform(base_values, breakpoints) callable; none is built in"
        )
    if base_values.dtype == object:
        raise ConfigurationError(f"Knot variable '{spec.name}' cannot be derived from categorical '{spec.base}'")

    values = np.asarray(spec.transform(base_values, np.asarray(spec.breakpoints, dtype=float)), dtype=float)
    if values.shape != base_values.shape:
        raise ConfigurationError(f"Knot transform of '{spec.name}' returned {values.size} values for {base_values.size} rows")
    return values


# ---------------------------------------------------------------------------
# Contrasts
# ---------------------------------------------------------------------------


def contrast_matrix(name: str, categories: List[Any], contrast: Contrast = "treatment") -> Tuple[np.ndarray, List[str]]:
    """Coding matrix of a factor and the names of its indicator columns.

    Args:
        name: Factor name.
        categories: Category labels in declared order.
        contrast: ``"treatment"`` (first category is the reference),
            ``"sum"`` (deviation coding, last category coded -1) or an
            explicit ``(n_categories, n_columns)`` matrix.

    Returns:
        Tuple of ``(codes, column_names)`` where ``codes`` has one row per
        category.
    """
    n_levels = len(categories)

    if isinstance(contrast, str):
        if n_levels < 2:
            raise ConfigurationError(f"Factor '{name}' needs at least 2 levels for {contrast} coding")
        if contrast == "treatment":
            codes = np.eye(n_levels, dtype=float)[:, 1:]
            return codes, [f"{name}[{level}]" for level in categories[1:]]
        if contrast == "sum":
            codes = np.vstack([np.eye(n_levels - 1, dtype=float), -np.ones((1, n_levels - 1))])
            return codes, [f"{name}[S.{level}]" for level in categories[:-1]]
        raise ConfigurationError(f"Unknown contrast '{contrast}' for '{name}'. Use 'treatment', 'sum' or a matrix")

    codes = np.asarray(contrast, dtype=float)
    if codes.ndim != 2 or codes.shape[0] != n_levels:
        raise ConfigurationError(f"Contrast matrix for '{name}' must have {n_levels} rows, got shape {codes.shape}")
    return codes, [f"{name}[{j + 1}]" for j in range(codes.shape[1])]


def expand_factor(spec: FactorVar, labels: np.ndarray, contrast: Contrast = "treatment") -> Tuple[np.ndarray, List[str]]:
    """Expand level-1 factor labels into coded indicator columns."""
    categories = spec.categories
    codes, names = contrast_matrix(spec.name, categories, contrast)
    index = {label: i for i, label in enumerate(categories)}
    rows = np.fromiter((index[label] for label in labels), dtype=np.intp, count=len(labels))
    return codes[rows], names


# ---------------------------------------------------------------------------
# Fixed-effect matrix builder
# ---------------------------------------------------------------------------


def _correlate_continuous(
    terms: TermRegistry,
    unit_values: Dict[str, np.ndarray],
    correlations: Correlations,
) -> None:
    """Induce pairwise correlations between continuous covariates in place."""
    if isinstance(correlations, str):
        pairs = _parse_correlations(correlations, terms.names)
    else:
        pairs = {tuple(sorted(key)): float(value) for key, value in correlations.items()}  # type: ignore[union-attr]
    if not pairs:
        return

    names = [name for name in terms.names if any(name in pair for pair in pairs)]
    for name in names:
        spec = terms[name] if name in terms.names else None
        if not isinstance(spec, ContinuousVar):
            raise ConfigurationError(f"Correlations are only supported between continuous variables; '{name}' is not")

    levels = {terms[name].var_level for name in names}
    if len(levels) > 1:
        raise ConfigurationError(
            f"Correlated variables {names} are generated at different levels {sorted(levels)}; "
            "only variables sharing one level can be correlated"
        )

    corr = correlation_matrix(names, pairs)  # type: ignore[arg-type]
    stacked = np.column_stack([unit_values[name] for name in names])
    correlated = induce_correlation(stacked, corr)
    for j, name in enumerate(names):
        unit_values[name] = correlated[:, j]


def build_fixed_effects(
    terms: TermRegistry,
    sizes: ClusterSizes,
    rng: np.random.Generator,
    correlations: Correlations = None,
    contrasts: Optional[Mapping[str, Contrast]] = None,
) -> FixedEffects:
    """Build the fixed-effect design matrix of one dataset.

    Algorithm:

    1. Generate every base variable once per unit of its level.
    2. Induce the requested correlations between continuous covariates.
    3. Replicate level-2 / level-3 values across their level-1 rows.
    4. Derive knot variables from their level-1 base column.
    5. Expand factors with their contrasts, then multiply interaction
       parts column by column.

    Args:
        terms: Resolved fixed terms.
        sizes: Resolved cluster sizes.
        rng: Random stream.
        correlations: Pairwise correlations as ``{(a, b): r}`` or a
            ``"corr(a, b)=r"`` string.
        contrasts: Contrast per factor name (default ``"treatment"``).

    Returns:
        A :class:`FixedEffects` with the design matrix and the original
        labels of factor terms.
    """
    contrasts = dict(contrasts or {})
    unknown = [name for name in contrasts if name not in terms.categorical_names]
    if unknown:
        raise ConfigurationError(f"Contrasts given for {unknown}, which are not factor terms")

    unit_values: Dict[str, np.ndarray] = {}
    for spec in terms.base_terms:
        unit_values[spec.name] = generate_variable(spec, sizes, rng)

    if correlations:
        _correlate_continuous(terms, unit_values, correlations)

    level1: Dict[str, np.ndarray] = {}
    for spec in terms.base_terms:
        if isinstance(spec, TimeVar):
            level1[spec.name] = unit_values[spec.name]
        else:
            level1[spec.name] = sizes.replicate(unit_values[spec.name], spec.var_level)

    for knot in terms.knots:
        level1[knot.name] = derive_knot(knot, level1[knot.base])

    n_obs = sizes.n_obs
    columns: Dict[str, np.ndarray] = {}
    columns_by_term: Dict[str, List[str]] = {}
    expanded: Dict[str, Tuple[np.ndarray, List[str]]] = {}

    if terms.intercept:
        columns[INTERCEPT] = np.ones(n_obs)

    for term in terms:
        if isinstance(term, Interaction):
            parts = [expanded[part] for part in term.parts]
            names: List[str] = []
            cols: List[np.ndarray] = []
            for combo in product(*[range(len(part_names)) for _, part_names in parts]):
                cols.append(np.prod([parts[i][0][:, j] for i, j in enumerate(combo)], axis=0))
                names.append(":".join(parts[i][1][j] for i, j in enumerate(combo)))
            if len(names) == 1:
                names = [term.name]
            block = np.column_stack(cols)
        elif isinstance(term, FactorVar):
            block, names = expand_factor(term, level1[term.name], contrasts.get(term.name, "treatment"))
        else:
            block, names = level1[term.name].astype(float).reshape(-1, 1), [term.name]

        expanded[term.name] = (block, names)
        columns_by_term[term.name] = names
        for j, col_name in enumerate(names):
            if col_name in columns:
                raise ConfigurationError(f"Design column '{col_name}' is generated twice")
            columns[col_name] = block[:, j]

    design = pd.DataFrame(columns, index=pd.RangeIndex(n_obs))

    original = None
    if terms.has_categorical:
        original = pd.DataFrame({name: level1[name] for name in terms.categorical_names}, index=pd.RangeIndex(n_obs))

    return FixedEffects(design=design, original=original, columns_by_term=columns_by_term)
