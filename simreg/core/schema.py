"""
Output schema of simulated datasets.

Column names reserved for ids, random-effect columns and the response are
fixed here, before any data is generated, so user terms that collide with
them are rejected up front instead of being dropped after assembly.
"""

from typing import Iterable, List

from ..errors import ConfigurationError

# Identifier columns
ID = "id"
WITHIN_ID = "within_id"
CLUST_ID = "clust_id"
CLUST3_ID = "clust3_id"
CROSS_ID = "cross_id"

# Linear predictor components and response
FIXED_PRED = "fixed_pred"
RANDOM_PRED = "random_pred"
CROSS_REFF = "cross_reff"
ERROR = "err"
RESPONSE = "sim_data"

INTERCEPT = "(Intercept)"

RESERVED_NAMES = frozenset(
    {ID, WITHIN_ID, CLUST_ID, CLUST3_ID, CROSS_ID, FIXED_PRED, RANDOM_PRED, CROSS_REFF, ERROR, RESPONSE, INTERCEPT}
)


def random_effect_columns(n_effects: int, level: int, three_level: bool = False) -> List[str]:
    """Names of the replicated random-effect columns of one level.

    Two-level designs use ``b0, b1, ...``; three-level designs suffix the
    level: ``b0_2, b1_2, ...`` and ``b0_3, b1_3, ...``.
    """
    suffix = f"_{level}" if three_level else ""
    return [f"b{i}{suffix}" for i in range(n_effects)]


def _is_random_effect_name(name: str) -> bool:
    head, _, level = name.partition("_")
    return head.startswith("b") and head[1:].isdigit() and (not level or level in ("2", "3"))


def check_term_names(names: Iterable[str]) -> None:
    """Reject term names that collide with reserved output columns.

    Raises:
        ConfigurationError: Listing every colliding name.
    """
    clashes = sorted({name for name in names if name in RESERVED_NAMES or _is_random_effect_name(name)})
    if clashes:
        raise ConfigurationError(
            f"Term names {clashes} collide with reserved output columns; rename them. "
            f"Reserved: {', '.join(sorted(RESERVED_NAMES))} and random-effect columns b0, b1, ... (b0_2, b0_3, ...)"
        )
