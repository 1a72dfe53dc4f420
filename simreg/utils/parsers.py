"""
Parsing utilities for SimReg.

This module provides the parsed-formula container handed to the engine and
parsers for one-sided formulas and ``corr(a, b)=r`` assignment strings.
"""

import re
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, List, Optional, Tuple

from ..errors import ConfigurationError

__all__ = ["ParsedFormula"]

# Unicode-aware identifier pattern: letter or underscore, then word characters
# or dots (R-style names such as ``treat.f``)
_IDENT = r"[^\W\d][\w.]*"

INTERACTION_SEP = ":"


@dataclass(frozen=True)
class ParsedFormula:
    """Ordered term labels of a one-sided formula.

    Attributes:
        terms: Term labels in formula order. Interactions are already
            expanded and joined with ``":"`` (e.g. ``"time:treat"``) but
            categorical terms are not yet expanded into indicator columns.
        intercept: ``False`` when the formula suppresses the intercept
            (``-1`` or ``0``).
    """

    terms: Tuple[str, ...] = field(default_factory=tuple)
    intercept: bool = True

    def __post_init__(self):
        object.__setattr__(self, "terms", tuple(self.terms))

    @classmethod
    def from_string(cls, formula: str) -> "ParsedFormula":
        """Parse a one-sided formula such as ``"~1 + time + x + time:x"``."""
        terms, intercept = _parse_formula(formula)
        return cls(terms=tuple(terms), intercept=intercept)

    @property
    def n_terms(self) -> int:
        """Number of term labels (intercept excluded)."""
        return len(self.terms)


def _parse_formula(formula: str) -> Tuple[List[str], bool]:
    """Extract term labels from a one-sided formula.

    Handles ``+`` for additive terms, ``:`` for specific interactions,
    ``*`` for full factorial expansion (all main effects plus all two-way
    through n-way interactions), and ``-1`` / ``+0`` to drop the intercept.

    Args:
        formula: Formula string, with or without a leading ``~``.

    Returns:
        Tuple of ``(terms, intercept)``.

    Raises:
        ConfigurationError: If the formula contains a left-hand side.
    """
    formula = formula.replace(" ", "")
    if "~" in formula:
        left_side, formula = formula.split("~", 1)
        if left_side:
            raise ConfigurationError(f"Expected a one-sided formula, got response '{left_side}'")

    intercept = True
    if re.search(r"(^|[+\-])-?0($|\+)", formula) or re.search(r"-1($|\+)", formula):
        intercept = False
    formula = re.sub(r"-1(?=$|\+)", "", formula)
    formula = re.sub(r"(^|\+)[01](?=$|\+)", r"\1", formula)

    terms: List[str] = []
    seen = set()

    def _add(label: str):
        if label not in seen:
            terms.append(label)
            seen.add(label)

    for term in re.split(r"\+", formula):
        term = term.strip()
        if not term:
            continue

        if "*" in term:
            interaction_vars = re.findall(_IDENT, term)
            for var in interaction_vars:
                _add(var)
            # All possible interactions (2-way, 3-way, ..., n-way)
            for r in range(2, len(interaction_vars) + 1):
                for combo in combinations(interaction_vars, r):
                    _add(INTERACTION_SEP.join(combo))
        elif INTERACTION_SEP in term:
            _add(INTERACTION_SEP.join(re.findall(_IDENT, term)))
        else:
            for var in re.findall(_IDENT, term):
                _add(var)

    return terms, intercept


def _split_assignments(input_string: str) -> List[str]:
    """Split assignments respecting parentheses."""
    assignments = []
    current: List[str] = []
    paren_count = 0

    for char in input_string:
        if char == "," and paren_count == 0:
            if current:
                assignments.append("".join(current).strip())
                current = []
        else:
            if char == "(":
                paren_count += 1
            elif char == ")":
                paren_count -= 1
            current.append(char)

    if current:
        assignments.append("".join(current).strip())

    return [a for a in assignments if a]


def _parse_correlation_assignment(assignment: str) -> Tuple[Tuple[str, str], str]:
    """Parse correlation assignment like 'corr(x1,x2)=0.5'."""
    if "=" not in assignment:
        raise ConfigurationError(f"Invalid format: '{assignment}'. Expected 'corr(var1, var2)=value'")

    left, right = assignment.split("=", 1)

    pattern = r"(?:corr?)?(?:\s*\(\s*([^,]+?)\s*,\s*([^,]+?)\s*\))"
    match = re.match(pattern, left.strip())

    if not match:
        raise ConfigurationError(f"Invalid correlation format: '{left}'. Expected 'corr(var1, var2)' or '(var1, var2)'")

    var1, var2 = match.groups()
    return (var1.strip(), var2.strip()), right.strip()


def _parse_correlations(input_string: str, available_vars: Optional[List[str]] = None) -> Dict[Tuple[str, str], float]:
    """Parse ``"corr(a, b)=0.3, corr(a, c)=-0.2"`` into a pairwise dict.

    Keys are sorted name pairs so ``corr(b, a)`` and ``corr(a, b)`` collide.

    Raises:
        ConfigurationError: Listing every malformed or unknown assignment.
    """
    parsed: Dict[Tuple[str, str], float] = {}
    errors: List[str] = []

    for assignment in _split_assignments(input_string):
        try:
            (var1, var2), value = _parse_correlation_assignment(assignment)
        except ConfigurationError as e:
            errors.append(str(e))
            continue

        if available_vars is not None:
            missing = [v for v in (var1, var2) if v not in available_vars]
            if missing:
                errors.append(f"Variable '{missing[0]}' not found. Available: {', '.join(available_vars)}")
                continue
        if var1 == var2:
            errors.append(f"Cannot correlate variable with itself: '{var1}'")
            continue

        try:
            corr = float(value)
        except ValueError:
            errors.append(f"Invalid correlation value '{value}'")
            continue
        if not -1 <= corr <= 1:
            errors.append(f"corr({var1}, {var2}): correlation must be between -1 and 1")
            continue

        key: Tuple[str, str] = tuple(sorted((var1, var2)))  # type: ignore[assignment]
        parsed[key] = corr

    if errors:
        raise ConfigurationError("Invalid correlations:\n" + "\n".join(f"• {err}" for err in errors))

    return parsed
