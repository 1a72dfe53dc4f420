"""
Cluster-structure resolution for nested designs.

Computes the per-cluster sample sizes of two- and three-level designs
(balanced, drawn from a uniform range, or supplied explicitly) and the
index bookkeeping needed to replicate cluster-level values down to
level-1 rows.
"""

import warnings
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import ConfigurationError
from ..utils.validators import (
    _validate_cluster_sizes,
    _validate_count,
    _validate_unbalance_range,
)


@dataclass(frozen=True)
class UnbalanceSpec:
    """How cluster sizes vary when a design is unbalanced.

    Exactly one of *sizes* or the *min*/*max* pair must be provided.

    Attributes:
        sizes: Explicit size per cluster; length must equal the number
            of clusters.
        min: Lower bound of the uniform size distribution.
        max: Upper bound of the uniform size distribution.
    """

    sizes: Optional[Sequence[int]] = None
    min: Optional[float] = None
    max: Optional[float] = None

    @classmethod
    def coerce(cls, value: Any, label: str) -> Optional["UnbalanceSpec"]:
        """Build a spec from ``None``, a spec, a size vector or a min/max mapping."""
        if value is None or isinstance(value, UnbalanceSpec):
            return value
        if isinstance(value, Mapping):
            unknown = set(value) - {"min", "max", "sizes"}
            if unknown:
                raise ConfigurationError(f"{label}: unrecognised keys {sorted(unknown)}; expected 'min'/'max' or 'sizes'")
            return cls(sizes=value.get("sizes"), min=value.get("min"), max=value.get("max"))
        if isinstance(value, (list, tuple, np.ndarray)):
            return cls(sizes=list(value))
        raise ConfigurationError(f"{label}: expected a size vector or a {{'min', 'max'}} mapping, got {type(value).__name__}")

    @property
    def is_range(self) -> bool:
        return self.min is not None or self.max is not None


def resolve_sizes(
    n_clusters: int,
    nominal: Optional[int],
    unbalance: Optional[UnbalanceSpec],
    rng: np.random.Generator,
    label: str = "level2",
) -> np.ndarray:
    """Resolve the observation count of every cluster.

    Args:
        n_clusters: Number of clusters.
        nominal: Cluster size used when the design is balanced.
        unbalance: ``None`` for a balanced design, otherwise the
            unbalanced-design directive.
        rng: Random stream used when sizes are drawn from a range.
        label: Level name used in error messages.

    Returns:
        Integer array of length *n_clusters*.

    Raises:
        ConfigurationError: If the balanced size is missing, the explicit
            size vector has the wrong length, or the unbalance directive
            carries neither sizes nor a complete min/max range.
    """
    _validate_count(n_clusters, f"Number of {label} clusters").raise_if_invalid()

    if unbalance is None:
        if nominal is None:
            raise ConfigurationError(f"A {label} cluster size is required for a balanced design")
        _validate_count(nominal, f"{label} cluster size").raise_if_invalid()
        return np.full(n_clusters, int(nominal), dtype=np.int64)

    if unbalance.sizes is not None:
        if unbalance.is_range:
            raise ConfigurationError(f"unbal_design['{label}']: give either sizes or min/max, not both")
        _validate_cluster_sizes(unbalance.sizes, n_clusters, f"unbal_design['{label}']").raise_if_invalid()
        return np.asarray(unbalance.sizes, dtype=np.int64)

    if unbalance.min is None or unbalance.max is None:
        raise ConfigurationError(f"Must specify unbal_design['{label}'] (sizes or both min and max) when {label} is unbalanced")

    _validate_unbalance_range(unbalance.min, unbalance.max, f"unbal_design['{label}']").raise_if_invalid()

    # np.rint rounds half to even, matching R's round()
    sizes = np.rint(rng.uniform(unbalance.min, unbalance.max, size=n_clusters)).astype(np.int64)
    if np.any(sizes < 1):
        warnings.warn(f"{int(np.sum(sizes < 1))} {label} cluster sizes rounded below 1 were set to 1", stacklevel=2)
        sizes = np.maximum(sizes, 1)
    return sizes


@dataclass(frozen=True)
class ClusterSizes:
    """Resolved sample sizes of a design.

    Attributes:
        level1: Level-1 observation count of every level-2 cluster
            (``p_i``), in cluster order.
        level2: Number of level-2 clusters inside every level-3 cluster
            (``n_k``), or ``None`` for two-level designs.
    """

    level1: np.ndarray
    level2: Optional[np.ndarray] = None
    single: bool = False

    @classmethod
    def single_level(cls, n: int) -> "ClusterSizes":
        """Sizes of an unclustered design with *n* observations."""
        _validate_count(n, "Sample size").raise_if_invalid()
        return cls(level1=np.array([int(n)], dtype=np.int64), single=True)

    @property
    def depth(self) -> int:
        """Nesting depth (1, 2 or 3)."""
        if self.single:
            return 1
        return 2 if self.level2 is None else 3

    @property
    def n_obs(self) -> int:
        """Total number of level-1 observations."""
        return int(np.sum(self.level1))

    @property
    def n_level2(self) -> int:
        """Total number of level-2 clusters."""
        return len(self.level1)

    @property
    def n_level3(self) -> int:
        """Number of level-3 clusters (0 for two-level designs)."""
        return 0 if self.level2 is None else len(self.level2)

    @property
    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Half-open ``[begin, end)`` level-2 index range of each level-3 cluster."""
        if self.level2 is None:
            return np.array([0]), np.array([self.n_level2])
        end = np.cumsum(self.level2)
        begin = end - self.level2
        return begin, end

    @property
    def level3_obs(self) -> Optional[np.ndarray]:
        """Level-1 observation count of every level-3 cluster."""
        if self.level2 is None:
            return None
        begin, end = self.bounds
        return np.array([self.level1[b:e].sum() for b, e in zip(begin, end)], dtype=np.int64)

    def counts_at(self, level: int) -> np.ndarray:
        """Per-unit level-1 row counts for values generated at *level*."""
        if level == 1:
            return np.ones(self.n_obs, dtype=np.int64)
        if level == 2 and not self.single:
            return self.level1
        if level == 3 and self.level2 is not None:
            return self.level3_obs  # type: ignore[return-value]
        raise ConfigurationError(f"Level {level} does not exist in a {self.depth}-level design")

    def n_units(self, level: int) -> int:
        """Number of distinct values a level-*level* variable takes."""
        return len(self.counts_at(level))

    def replicate(self, values: np.ndarray, level: int) -> np.ndarray:
        """Repeat one value per level-*level* unit across its level-1 rows."""
        counts = self.counts_at(level)
        values = np.asarray(values)
        if len(values) != len(counts):
            raise ConfigurationError(f"Expected {len(counts)} level-{level} values, got {len(values)}")
        return np.repeat(values, counts, axis=0)

    def within_ids(self) -> np.ndarray:
        """Within-cluster index restarting at 1 inside each level-2 cluster."""
        starts = np.repeat(np.cumsum(self.level1) - self.level1, self.level1)
        return np.arange(self.n_obs, dtype=np.int64) - starts + 1

    def cluster_ids(self) -> np.ndarray:
        """Level-2 cluster id (1-based) of every row."""
        return np.repeat(np.arange(1, self.n_level2 + 1, dtype=np.int64), self.level1)

    def cluster3_ids(self) -> np.ndarray:
        """Level-3 cluster id (1-based) of every row."""
        if self.level2 is None:
            raise ConfigurationError("Level-3 ids requested for a two-level design")
        return np.repeat(np.arange(1, self.n_level3 + 1, dtype=np.int64), self.level3_obs)


def resolve_two_level(
    n: int,
    p: Optional[int],
    rng: np.random.Generator,
    unbal: Union[None, UnbalanceSpec, Sequence[int], Mapping] = None,
) -> ClusterSizes:
    """Resolve a two-level design with *n* level-2 clusters of nominal size *p*."""
    unbalance = UnbalanceSpec.coerce(unbal, "unbal_design['level2']")
    return ClusterSizes(level1=resolve_sizes(n, p, unbalance, rng, label="level2"))


def resolve_three_level(
    k: int,
    n: Optional[int],
    p: Optional[int],
    rng: np.random.Generator,
    unbal2: Union[None, UnbalanceSpec, Sequence[int], Mapping] = None,
    unbal3: Union[None, UnbalanceSpec, Sequence[int], Mapping] = None,
) -> ClusterSizes:
    """Resolve a three-level design.

    Level-3 → level-2 counts are resolved first (``k`` clusters of nominal
    size ``n``); level-2 → level-1 counts are then resolved over the total
    number of level-2 clusters, so an explicit level-2 size vector must
    have length ``sum(n_k)``.
    """
    unbalance3 = UnbalanceSpec.coerce(unbal3, "unbal_design['level3']")
    unbalance2 = UnbalanceSpec.coerce(unbal2, "unbal_design['level2']")

    lvl2ss = resolve_sizes(k, n, unbalance3, rng, label="level3")
    lvl1ss = resolve_sizes(int(lvl2ss.sum()), p, unbalance2, rng, label="level2")
    return ClusterSizes(level1=lvl1ss, level2=lvl2ss)
