"""
Fixed-term specifications and their resolution against a parsed formula.

Every fixed term is an explicit variant (time, continuous, ordinal,
factor, knot, interaction) resolved once when the simulation is
configured; generation code dispatches on the variant type and never
inspects term names.
"""

import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import ConfigurationError, StructuralError
from ..utils.parsers import INTERACTION_SEP, ParsedFormula
from ..utils.validators import _validate_probabilities, _validate_var_level
from .schema import check_term_names


@dataclass(frozen=True)
class TimeVar:
    """Within-cluster time variable (always level 1).

    Attributes:
        name: Term name.
        time_levels: Explicit ordered time points. Defaults to
            ``0, 1, ..., p_i - 1`` inside each cluster.
    """

    name: str
    time_levels: Optional[Sequence[float]] = None
    var_level: int = 1

    def __post_init__(self):
        if self.var_level != 1:
            raise ConfigurationError(f"{self.name}: time variables are level-1 variables, got var_level={self.var_level}")


@dataclass(frozen=True)
class ContinuousVar:
    """Continuous covariate drawn from a named distribution.

    Attributes:
        name: Term name.
        var_level: Level at which values are drawn (1, 2 or 3).
        dist: Distribution identifier (see :mod:`simreg.stats.distributions`).
        params: Distribution parameters, e.g. ``{"mean": 180, "sd": 30}``.
    """

    name: str
    var_level: int = 1
    dist: str = "rnorm"
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OrdinalVar:
    """Numeric variable sampled from a discrete set of levels.

    Attributes:
        name: Term name.
        levels: Either the number of levels ``k`` (values ``1..k``) or an
            explicit sequence of values.
        var_level: Level at which values are drawn.
        replace: Sample with replacement.
        prob: Optional sampling weights, one per level.
    """

    name: str
    levels: Union[int, Sequence[Any], None] = None
    var_level: int = 1
    replace: bool = True
    prob: Optional[Sequence[float]] = None

    def __post_init__(self):
        if self.levels is None:
            raise ConfigurationError(f"{self.name}: levels are required for {type(self).__name__}")
        if isinstance(self.levels, (int, np.integer)) and self.levels < 1:
            raise ConfigurationError(f"{self.name}: number of levels must be positive, got {self.levels}")
        _validate_probabilities(self.prob, len(self.level_values), self.name).raise_if_invalid()

    @property
    def level_values(self) -> List[Any]:
        """The set of values sampled from, in declared order."""
        if isinstance(self.levels, (int, np.integer)):
            return list(range(1, int(self.levels) + 1))
        return list(self.levels)  # type: ignore[arg-type]


@dataclass(frozen=True)
class FactorVar(OrdinalVar):
    """Categorical variable expanded into indicator columns.

    Same sampling mechanics as :class:`OrdinalVar`; the level set may hold
    arbitrary labels. *labels*, when given, renames the sampled level
    values one-to-one.
    """

    labels: Optional[Sequence[Any]] = None

    def __post_init__(self):
        super().__post_init__()
        if self.labels is not None and len(self.labels) != len(self.level_values):
            raise ConfigurationError(f"{self.name}: {len(self.labels)} labels given for {len(self.level_values)} levels")

    @property
    def categories(self) -> List[Any]:
        """Category labels in declared order (first one is the reference)."""
        return list(self.labels) if self.labels is not None else self.level_values


KnotTransform = Callable[[np.ndarray, np.ndarray], np.ndarray]


@dataclass(frozen=True)
class KnotVar:
    """Variable derived from another generated variable by breakpoints.

    No transform is assumed: the caller supplies *transform*, called as
    ``transform(base_values, breakpoints)`` on the level-1 base column.

    Attributes:
        name: Term name.
        base: Name of the variable the knot is derived from.
        breakpoints: Breakpoint locations.
        transform: Piecewise transform producing one value per row.
    """

    name: str
    base: str = ""
    breakpoints: Sequence[float] = field(default_factory=tuple)
    transform: Optional[KnotTransform] = None
    var_level: int = 1


@dataclass(frozen=True)
class Interaction:
    """Elementwise product of two or more base terms."""

    name: str
    parts: Tuple[str, ...] = field(default_factory=tuple)
    var_level: int = 1


VariableSpec = Union[TimeVar, ContinuousVar, OrdinalVar, FactorVar, KnotVar]
Term = Union[TimeVar, ContinuousVar, OrdinalVar, FactorVar, KnotVar, Interaction]


def is_categorical(term: Term) -> bool:
    """Whether the term carries labels that are expanded into indicators."""
    return isinstance(term, FactorVar)


class TermRegistry:
    """Ordered, resolved fixed terms of one design.

    Resolves every label of a parsed formula to its variable variant,
    turning ``":"``-joined labels into :class:`Interaction` terms, and
    checks levels, references and reserved names once. Terms are kept in
    design order: main effects and knots in formula order, then interactions
    by increasing order.
    """

    def __init__(
        self,
        formula: ParsedFormula,
        variables: Mapping[str, VariableSpec],
        depth: int,
    ):
        """Resolve *formula* against *variables*.

        Args:
            formula: Parsed fixed-effect formula.
            variables: Generation recipe per base term name.
            depth: Nesting depth of the design (1, 2 or 3).

        Raises:
            StructuralError: If a term has no recipe, or an interaction or
                knot refers to an undeclared term.
            ConfigurationError: If a variable level exceeds *depth* or a
                name collides with a reserved output column.
        """
        self.formula = formula
        self.depth = depth
        self._terms: Dict[str, Term] = {}

        check_term_names(formula.terms)

        for label in formula.terms:
            if INTERACTION_SEP in label:
                self._terms[label] = Interaction(name=label, parts=tuple(label.split(INTERACTION_SEP)))
                continue
            if label not in variables:
                raise StructuralError(f"Fixed term '{label}' has no variable specification. Available: {', '.join(variables) or 'none'}")
            spec = variables[label]
            if spec.name != label:
                raise ConfigurationError(f"Variable specification for '{label}' is named '{spec.name}'")
            self._terms[label] = spec

        unused = [name for name in variables if name not in self._terms]
        if unused:
            warnings.warn(f"Variables {unused} are specified but do not appear in the fixed formula; they are ignored", stacklevel=3)

        self._resolve_references()

        # Main effects keep formula order; interactions follow by order, as in model.matrix
        ordered = sorted(self._terms.values(), key=lambda t: len(t.parts) if isinstance(t, Interaction) else 1)
        self._terms = {term.name: term for term in ordered}

    def _resolve_references(self) -> None:
        for name, term in list(self._terms.items()):
            if isinstance(term, Interaction):
                missing = [part for part in term.parts if part not in self._terms or isinstance(self._terms[part], Interaction)]
                if missing:
                    raise StructuralError(f"Interaction '{name}' refers to undeclared terms {missing}")
                level = min(self._terms[part].var_level for part in term.parts)
                self._terms[name] = Interaction(name=name, parts=term.parts, var_level=level)
            elif isinstance(term, KnotVar):
                base = self._terms.get(term.base)
                if base is None or isinstance(base, (Interaction, KnotVar)):
                    raise StructuralError(f"Knot variable '{name}' refers to undeclared base variable '{term.base}'")
                if term.var_level != base.var_level:
                    self._terms[name] = KnotVar(
                        name=name,
                        base=term.base,
                        breakpoints=term.breakpoints,
                        transform=term.transform,
                        var_level=base.var_level,
                    )
            else:
                _validate_var_level(term.var_level, self.depth, name).raise_if_invalid()

    @property
    def names(self) -> List[str]:
        """Term names in design order: main effects, then interactions."""
        return list(self._terms)

    @property
    def intercept(self) -> bool:
        return self.formula.intercept

    def __getitem__(self, name: str) -> Term:
        return self._terms[name]

    def __iter__(self):
        return iter(self._terms.values())

    def __len__(self) -> int:
        return len(self._terms)

    @property
    def base_terms(self) -> List[Term]:
        """Generated terms (everything but knots and interactions)."""
        return [t for t in self._terms.values() if not isinstance(t, (Interaction, KnotVar))]

    @property
    def knots(self) -> List[KnotVar]:
        return [t for t in self._terms.values() if isinstance(t, KnotVar)]

    @property
    def interactions(self) -> List[Interaction]:
        return [t for t in self._terms.values() if isinstance(t, Interaction)]

    @property
    def categorical_names(self) -> List[str]:
        """Names of factor terms (expanded into indicator columns)."""
        return [t.name for t in self._terms.values() if is_categorical(t)]

    @property
    def has_categorical(self) -> bool:
        return bool(self.categorical_names)
