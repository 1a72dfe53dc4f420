"""
Dataset assemblers for single-level, two-level and three-level designs.

Each assembler runs the same straight-line pipeline:

1. Resolve cluster sizes (levels >= 2 only).
2. Build the fixed-effect design matrix.
3. Draw random effects per level and replicate them to level-1 rows.
4. Evaluate the random terms against the design matrix columns.
5. Generate level-1 errors.
6. Response = fixed part + random part + error (+ cross-classified effect).
7. Attach identifier columns computed from the cluster sizes.

The output column names are fixed before generation (see
:mod:`simreg.core.schema`), so no column is ever dropped afterwards.
"""

import warnings
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..errors import ConfigurationError, StructuralError
from ..stats.data_generation import Contrast, Correlations, FixedEffects, build_fixed_effects
from ..stats.random_effects import CrossClassSpec, RandomEffectSpec, sim_rand_eff
from ..stats.residuals import ErrorSpec, sim_err
from ..utils.parsers import ParsedFormula
from ..utils.validators import _validate_fixed_param, _validate_random_variances
from . import schema
from .clusters import ClusterSizes, resolve_three_level, resolve_two_level
from .config import RandomConfig, load_error, load_random, load_variables
from .variables import TermRegistry

Seed = Union[None, int, np.random.SeedSequence]


def _make_rng(seed: Seed = None, rng: Optional[np.random.Generator] = None) -> np.random.Generator:
    if rng is not None:
        if seed is not None:
            raise ConfigurationError("Pass either seed or rng, not both")
        return rng
    return np.random.default_rng(seed)


def _coerce_formula(formula: Union[str, ParsedFormula, Sequence[str]]) -> ParsedFormula:
    if isinstance(formula, ParsedFormula):
        return formula
    if isinstance(formula, str):
        return ParsedFormula.from_string(formula)
    return ParsedFormula(terms=tuple(formula))


def _coerce_variables(variables: Mapping[str, Any]) -> Dict[str, Any]:
    """Accept typed variable specifications or their configuration maps."""
    return {
        name: load_variables({name: spec})[name] if isinstance(spec, Mapping) else spec
        for name, spec in variables.items()
    }


def _coerce_error(error: Union[None, ErrorSpec, Mapping[str, Any]]) -> ErrorSpec:
    if error is None:
        return ErrorSpec()
    if isinstance(error, Mapping):
        return load_error(error)
    return error


def _resolve_random(
    random: Union[None, RandomEffectSpec, Mapping[str, Any]],
    cross_class: Optional[CrossClassSpec],
    levels: Sequence[int],
    correlations: Optional[Mapping[int, Sequence[float]]] = None,
) -> Tuple[Dict[int, RandomEffectSpec], Optional[CrossClassSpec]]:
    """Random-effect specification per level plus the cross-classified group.

    *correlations* (one upper-triangle vector per level) only apply to a
    per-term configuration map; a :class:`RandomEffectSpec` carries its own.
    """
    if random is None or isinstance(random, RandomEffectSpec):
        if correlations:
            raise ConfigurationError(
                "random_correlations apply to a per-term random configuration map; "
                "set correlations on the RandomEffectSpec instead"
            )
        if random is None:
            return {}, cross_class
        return {random.var_level: random}, cross_class

    loaded: RandomConfig = load_random(random, correlations)
    if loaded.cross_class is not None and cross_class is not None:
        raise ConfigurationError("Cross-classified effect configured twice")
    extra = sorted(set(loaded.levels) - set(levels))
    if extra:
        raise ConfigurationError(f"Random terms at levels {extra} in a design with levels {list(levels)}")
    return loaded.levels, loaded.cross_class or cross_class


def _random_design(terms: TermRegistry, fixed: FixedEffects, spec: RandomEffectSpec, label: str) -> np.ndarray:
    """Columns the random effects of one level multiply.

    Raises:
        StructuralError: If a random term is not a fixed term.
        ConfigurationError: If the variance count does not match the
            random-effect columns.
    """
    blocks: List[np.ndarray] = []
    if spec.intercept:
        blocks.append(np.ones((len(fixed.design), 1)))

    n_slope_columns = 0
    for term in spec.terms:
        if term not in terms.names:
            raise StructuralError(
                f"Random term '{term}' ({label}) is not among the fixed terms {terms.names}; "
                "random terms must be a subset of the fixed terms"
            )
        columns = fixed.columns_by_term[term]
        n_slope_columns += len(columns)
        blocks.append(fixed.design[columns].to_numpy())

    _validate_random_variances(spec.n_columns, n_slope_columns, spec.intercept, label).raise_if_invalid()
    return np.hstack(blocks)


def _apply_random(
    sizes: ClusterSizes,
    terms: TermRegistry,
    fixed: FixedEffects,
    spec: RandomEffectSpec,
    level: int,
    rng: np.random.Generator,
    three_level: bool,
) -> Tuple[pd.DataFrame, np.ndarray, np.ndarray]:
    """Draw, replicate and apply the random effects of one level.

    Returns:
        Tuple of ``(replicated effect columns, per-row contribution, raw draws)``.
    """
    label = f"level{level}"
    z = _random_design(terms, fixed, spec, label)
    draws = sim_rand_eff(spec, sizes.n_units(level), rng)
    replicated = sizes.replicate(draws, level)

    names = schema.random_effect_columns(spec.n_columns, level, three_level=three_level)
    frame = pd.DataFrame(replicated, columns=names, index=fixed.design.index)
    return frame, np.sum(z * replicated, axis=1), draws


def _assemble(
    sizes: ClusterSizes,
    fixed_formula,
    fixed_param: Sequence[float],
    variables: Mapping[str, Any],
    random_levels: Dict[int, RandomEffectSpec],
    cross_class: Optional[CrossClassSpec],
    error: ErrorSpec,
    rng: np.random.Generator,
    correlations: Correlations,
    contrasts: Optional[Mapping[str, Contrast]],
) -> pd.DataFrame:
    terms = TermRegistry(_coerce_formula(fixed_formula), _coerce_variables(variables), sizes.depth)
    fixed = build_fixed_effects(terms, sizes, rng, correlations=correlations, contrasts=contrasts)

    beta = np.asarray(fixed_param, dtype=float).ravel()
    _validate_fixed_param(len(beta), fixed.n_columns).raise_if_invalid()

    fixed_pred = fixed.design.to_numpy() @ beta
    random_pred = np.zeros(sizes.n_obs)
    frames: List[pd.DataFrame] = [fixed.design]
    if fixed.original is not None:
        frames.append(fixed.original)

    raw_draws: Dict[str, List[List[float]]] = {}
    for level in sorted(random_levels):
        frame, contribution, draws = _apply_random(
            sizes, terms, fixed, random_levels[level], level, rng, three_level=sizes.depth == 3
        )
        frames.append(frame)
        random_pred += contribution
        raw_draws[f"level{level}"] = draws.tolist()

    err = sim_err(error, sizes, rng, fixed=fixed.design, original=fixed.original)

    outputs: Dict[str, np.ndarray] = {
        schema.FIXED_PRED: fixed_pred,
        schema.RANDOM_PRED: random_pred,
        schema.ERROR: err,
        schema.RESPONSE: fixed_pred + random_pred + err,
    }

    if sizes.single:
        outputs[schema.ID] = np.arange(1, sizes.n_obs + 1, dtype=np.int64)
    else:
        outputs[schema.WITHIN_ID] = sizes.within_ids()
        outputs[schema.CLUST_ID] = sizes.cluster_ids()
        if sizes.depth == 3:
            outputs[schema.CLUST3_ID] = sizes.cluster3_ids()

    if cross_class is not None:
        if cross_class.num_ids > sizes.n_obs:
            warnings.warn(
                f"Cross-classified pool of {cross_class.num_ids} ids exceeds the {sizes.n_obs} observations",
                stacklevel=3,
            )
        membership = rng.integers(1, cross_class.num_ids + 1, size=sizes.n_obs)
        cross_draws = sim_rand_eff(cross_class.random_spec, cross_class.num_ids, rng)[:, 0]
        cross_reff = cross_draws[membership - 1]
        outputs[schema.RESPONSE] = outputs[schema.RESPONSE] + cross_reff
        outputs[schema.CROSS_ID] = membership
        outputs[schema.CROSS_REFF] = cross_reff
        raw_draws["cross_class"] = cross_draws.tolist()

    frames.append(pd.DataFrame(outputs, index=fixed.design.index))
    data = pd.concat(frames, axis=1)

    duplicated = data.columns[data.columns.duplicated()].tolist()
    if duplicated:
        raise ConfigurationError(f"Output columns {duplicated} are generated more than once")

    data.attrs["level1_sizes"] = sizes.level1.tolist()
    if sizes.level2 is not None:
        data.attrs["level2_sizes"] = sizes.level2.tolist()
    data.attrs["fixed_param"] = beta.tolist()
    data.attrs["random_effects"] = raw_draws
    return data


def simulate_single(
    fixed: Union[str, ParsedFormula, Sequence[str]],
    fixed_param: Sequence[float],
    variables: Mapping[str, Any],
    n: int,
    error: Union[None, ErrorSpec, Mapping[str, Any]] = None,
    correlations: Correlations = None,
    contrasts: Optional[Mapping[str, Contrast]] = None,
    seed: Seed = None,
    rng: Optional[np.random.Generator] = None,
) -> pd.DataFrame:
    """Simulate a single-level (unclustered) regression dataset.

    Args:
        fixed: Fixed-effect formula (``"~1 + x + treat"``), parsed formula
            or list of term labels.
        fixed_param: One coefficient per design column, intercept first.
        variables: Variable specification (or configuration map) per base
            term.
        n: Number of observations.
        error: Error specification or configuration map (default: normal,
            variance 1).
        correlations: Pairwise correlations between continuous covariates.
        contrasts: Contrast coding per factor term.
        seed: Seed of a fresh random stream.
        rng: Existing random stream (instead of *seed*).

    Returns:
        One row per observation: design columns, original factor labels,
        ``fixed_pred``, ``random_pred``, ``err``, ``sim_data`` and ``id``.

    Raises:
        ConfigurationError: If ``len(fixed_param)`` does not match the
            design matrix width, or any specification is invalid.
    """
    rng = _make_rng(seed, rng)
    sizes = ClusterSizes.single_level(n)
    return _assemble(sizes, fixed, fixed_param, variables, {}, None, _coerce_error(error), rng, correlations, contrasts)


def simulate_nested(
    fixed: Union[str, ParsedFormula, Sequence[str]],
    fixed_param: Sequence[float],
    variables: Mapping[str, Any],
    n: int,
    p: Optional[int],
    random: Union[None, RandomEffectSpec, Mapping[str, Any]] = None,
    error: Union[None, ErrorSpec, Mapping[str, Any]] = None,
    unbal: Union[None, Sequence[int], Mapping[str, Any]] = None,
    cross_class: Optional[CrossClassSpec] = None,
    random_correlations: Optional[Sequence[float]] = None,
    correlations: Correlations = None,
    contrasts: Optional[Mapping[str, Contrast]] = None,
    seed: Seed = None,
    rng: Optional[np.random.Generator] = None,
) -> pd.DataFrame:
    """Simulate a two-level dataset (observations within clusters).

    Args:
        fixed: Fixed-effect formula, parsed formula or list of term labels.
        fixed_param: One coefficient per design column, intercept first.
        variables: Variable specification (or configuration map) per base
            term.
        n: Number of level-2 clusters.
        p: Level-1 observations per cluster (balanced designs).
        random: Level-2 random effects, as a :class:`RandomEffectSpec` or a
            per-term configuration map (which may also declare a
            cross-classified term).
        error: Error specification or configuration map.
        unbal: Unbalanced level-2 sizes: an explicit size per cluster or
            ``{"min": ..., "max": ...}``.
        cross_class: Cross-classified random intercept.
        random_correlations: Upper-triangle correlation vector of the
            level-2 random effects when *random* is a configuration map.
        correlations: Pairwise correlations between continuous covariates.
        contrasts: Contrast coding per factor term.
        seed: Seed of a fresh random stream.
        rng: Existing random stream (instead of *seed*).

    Returns:
        One row per observation with design columns, original factor
        labels, random-effect columns ``b0, b1, ...``, ``fixed_pred``,
        ``random_pred``, ``err``, ``sim_data``, ``within_id`` and
        ``clust_id`` (plus ``cross_id``/``cross_reff``).
    """
    rng = _make_rng(seed, rng)
    correlations_by_level = {2: random_correlations} if random_correlations is not None else None
    random_levels, cross_class = _resolve_random(random, cross_class, levels=(2,), correlations=correlations_by_level)
    sizes = resolve_two_level(n, p, rng, unbal=unbal)
    return _assemble(
        sizes, fixed, fixed_param, variables, random_levels, cross_class, _coerce_error(error), rng, correlations, contrasts
    )


def simulate_nested3(
    fixed: Union[str, ParsedFormula, Sequence[str]],
    fixed_param: Sequence[float],
    variables: Mapping[str, Any],
    k: int,
    n: Optional[int],
    p: Optional[int],
    random2: Union[None, RandomEffectSpec, Mapping[str, Any]] = None,
    random3: Optional[RandomEffectSpec] = None,
    error: Union[None, ErrorSpec, Mapping[str, Any]] = None,
    unbal2: Union[None, Sequence[int], Mapping[str, Any]] = None,
    unbal3: Union[None, Sequence[int], Mapping[str, Any]] = None,
    cross_class: Optional[CrossClassSpec] = None,
    random_correlations: Optional[Mapping[int, Sequence[float]]] = None,
    correlations: Correlations = None,
    contrasts: Optional[Mapping[str, Contrast]] = None,
    seed: Seed = None,
    rng: Optional[np.random.Generator] = None,
) -> pd.DataFrame:
    """Simulate a three-level dataset (observations within clusters within
    super-clusters).

    *random2* may also be a per-term configuration map covering both
    levels, in which case *random3* must be omitted and
    *random_correlations* maps each level to its correlation vector.
    Random-effect columns are named ``b0_2, b1_2, ...`` and
    ``b0_3, b1_3, ...``. An explicit *unbal2* size vector has one entry per
    level-2 cluster across all level-3 clusters.

    See :func:`simulate_nested` for the remaining arguments.
    """
    rng = _make_rng(seed, rng)
    random_levels, cross_class = _resolve_random(random2, cross_class, levels=(2, 3), correlations=random_correlations)
    if random3 is not None:
        if 3 in random_levels:
            raise ConfigurationError("Level-3 random effects configured twice")
        if random3.var_level != 3:
            random3 = replace(random3, var_level=3)
        random_levels[3] = random3
    if 2 in random_levels and random_levels[2].var_level != 2:
        raise ConfigurationError("random2 must describe level-2 random effects")

    sizes = resolve_three_level(k, n, p, rng, unbal2=unbal2, unbal3=unbal3)
    return _assemble(
        sizes, fixed, fixed_param, variables, random_levels, cross_class, _coerce_error(error), rng, correlations, contrasts
    )
