"""
Dictionary configuration loader.

Turns nested configuration maps into the typed specifications used by the
assemblers, once, before any data is generated. Recognised keys:

Fixed terms (one map per term name)::

    {"weight": {"var_type": "continuous", "var_level": 2, "dist": "rnorm",
                "mean": 180, "sd": 30},
     "age": {"var_type": "ordinal", "levels": range(30, 61), "var_level": 2},
     "treat": {"var_type": "factor", "levels": ["Treatment", "Control"],
               "var_level": 2}}

Random terms (one map per term, ``"int"`` for the intercept)::

    {"int": {"variance": 8, "var_level": 2},
     "time": {"variance": 3, "var_level": 2},
     "neighborhood": {"cross_class": True, "num_ids": 30, "variance": 2}}
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..errors import ConfigurationError
from ..stats.random_effects import CrossClassSpec, RandomEffectSpec
from ..stats.residuals import ErrorSpec
from .variables import ContinuousVar, FactorVar, KnotVar, OrdinalVar, TimeVar, VariableSpec

INTERCEPT_KEYS = ("int", "intercept", "(Intercept)")

# Level-specific intercept keys of three-level designs: "int2", "int_3", "intercept_3", ...
_LEVEL_INTERCEPT = re.compile(r"(int|intercept)_?[23]")

_VARIABLE_KEYS = {
    "time": {"var_type", "var_level", "time_levels"},
    "continuous": {"var_type", "var_level", "dist"},
    "ordinal": {"var_type", "var_level", "levels", "replace", "prob"},
    "factor": {"var_type", "var_level", "levels", "replace", "prob", "labels"},
    "knot": {"var_type", "var_level", "base", "breakpoints", "transform"},
}

_RANDOM_KEYS = {"variance", "var_level", "cross_class", "num_ids", "rand_gen", "ther", "ther_sim"}
_ERROR_KEYS = {"variance", "dist", "arima", "homogeneity", "heterogeneity_var", "ther"}


def _reject_unknown(config: Mapping[str, Any], allowed, label: str) -> None:
    unknown = sorted(set(config) - set(allowed))
    if unknown:
        raise ConfigurationError(f"{label}: unrecognised keys {unknown}. Recognised: {sorted(allowed)}")


def load_variable(name: str, config: Mapping[str, Any]) -> VariableSpec:
    """Build the variable variant described by one term's configuration.

    Continuous variables take every key besides ``var_type``, ``var_level``
    and ``dist`` as a distribution parameter; the other variants reject
    unrecognised keys.
    """
    var_type = config.get("var_type")
    if var_type not in _VARIABLE_KEYS:
        raise ConfigurationError(f"{name}: var_type must be one of {sorted(_VARIABLE_KEYS)}, got {var_type!r}")
    var_level = config.get("var_level", 1)

    if var_type == "continuous":
        params = {k: v for k, v in config.items() if k not in _VARIABLE_KEYS["continuous"]}
        return ContinuousVar(name=name, var_level=var_level, dist=config.get("dist", "rnorm"), params=params)

    _reject_unknown(config, _VARIABLE_KEYS[var_type], name)

    if var_type == "time":
        return TimeVar(name=name, time_levels=config.get("time_levels"), var_level=var_level)
    if var_type == "knot":
        return KnotVar(
            name=name,
            base=config.get("base", ""),
            breakpoints=tuple(config.get("breakpoints", ())),
            transform=config.get("transform"),
            var_level=var_level,
        )

    levels = config.get("levels")
    if isinstance(levels, range):
        levels = list(levels)
    kwargs = dict(
        name=name,
        levels=levels,
        var_level=var_level,
        replace=config.get("replace", True),
        prob=config.get("prob"),
    )
    if var_type == "factor":
        return FactorVar(labels=config.get("labels"), **kwargs)
    return OrdinalVar(**kwargs)


def load_variables(config: Mapping[str, Mapping[str, Any]]) -> Dict[str, VariableSpec]:
    """Build every fixed term's variable variant, keyed by term name."""
    return {name: load_variable(name, entry) for name, entry in config.items()}


@dataclass
class RandomConfig:
    """Random-effect specifications loaded from a configuration map.

    Attributes:
        levels: Random-effect specification per nesting level (2 and/or 3).
        cross_class: Cross-classified effect, if one was configured.
    """

    levels: Dict[int, RandomEffectSpec] = field(default_factory=dict)
    cross_class: Optional[CrossClassSpec] = None


def load_random(
    config: Mapping[str, Mapping[str, Any]],
    correlations: Optional[Mapping[int, Sequence[float]]] = None,
) -> RandomConfig:
    """Build random-effect specifications from per-term configuration.

    Terms are grouped by ``var_level`` (default 2); within a level the
    intercept comes first and slopes follow in configuration order. Keys
    besides the recognised ones are parameters of ``rand_gen``.

    Args:
        config: Per-term configuration.
        correlations: Optional correlation vector per level.

    Raises:
        ConfigurationError: On missing variances, several cross-classified
            groups, or unrecognised levels.
    """
    grouped: Dict[int, Dict[str, Any]] = {}
    cross_class = None

    for name, entry in config.items():
        if "variance" not in entry:
            raise ConfigurationError(f"Random term '{name}' needs a variance")
        params = {k: v for k, v in entry.items() if k not in _RANDOM_KEYS}

        if entry.get("cross_class", False):
            if cross_class is not None:
                raise ConfigurationError("Only one cross-classified random effect can be configured")
            if "num_ids" not in entry:
                raise ConfigurationError(f"Cross-classified term '{name}' needs num_ids")
            cross_class = CrossClassSpec(
                num_ids=entry["num_ids"],
                variance=entry["variance"],
                rand_gen=entry.get("rand_gen", "rnorm"),
                dist_params=params,
                ther=entry.get("ther"),
                ther_sim=entry.get("ther_sim", False),
            )
            continue

        level = entry.get("var_level", 2)
        if level not in (2, 3):
            raise ConfigurationError(f"Random term '{name}': var_level must be 2 or 3, got {level!r}")
        group = grouped.setdefault(level, {"intercept": None, "slopes": [], "ther": None, "ther_sim": False})
        column = (entry["variance"], entry.get("rand_gen", "rnorm"), params)
        if name in INTERCEPT_KEYS or _LEVEL_INTERCEPT.fullmatch(name):
            if group["intercept"] is not None:
                raise ConfigurationError(f"Random intercept configured twice at level {level}")
            group["intercept"] = column
        else:
            group["slopes"].append((name,) + column)
        if "ther" in entry:
            group["ther"] = entry["ther"]
        group["ther_sim"] = group["ther_sim"] or entry.get("ther_sim", False)

    correlations = dict(correlations or {})
    levels: Dict[int, RandomEffectSpec] = {}
    for level, group in sorted(grouped.items()):
        columns: List[tuple] = ([group["intercept"]] if group["intercept"] else []) + [s[1:] for s in group["slopes"]]
        levels[level] = RandomEffectSpec(
            variances=[c[0] for c in columns],
            rand_gen=[c[1] for c in columns],
            dist_params=[c[2] for c in columns],
            correlations=correlations.get(level),
            ther=group["ther"],
            ther_sim=group["ther_sim"],
            terms=[s[0] for s in group["slopes"]],
            intercept=group["intercept"] is not None,
            var_level=level,
        )

    unused = sorted(set(correlations) - set(levels))
    if unused:
        raise ConfigurationError(f"Random correlations given for levels {unused} without random terms")

    return RandomConfig(levels=levels, cross_class=cross_class)


def load_error(config: Mapping[str, Any]) -> ErrorSpec:
    """Build an :class:`ErrorSpec`; unrecognised keys are parameters of ``dist``."""
    params = {k: v for k, v in config.items() if k not in _ERROR_KEYS}
    return ErrorSpec(
        variance=config.get("variance", 1.0),
        dist=config.get("dist", "rnorm"),
        dist_params=params,
        arima=config.get("arima"),
        homogeneity=config.get("homogeneity", True),
        heterogeneity_var=config.get("heterogeneity_var"),
        ther=config.get("ther"),
    )
