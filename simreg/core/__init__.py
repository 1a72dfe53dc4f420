"""Core components of the SimReg engine.

Re-exports the building blocks:

- ``ClusterSizes``, ``UnbalanceSpec``, ``resolve_two_level``,
  ``resolve_three_level``: cluster-structure resolution.
- ``TimeVar``, ``ContinuousVar``, ``OrdinalVar``, ``FactorVar``,
  ``KnotVar``, ``Interaction``, ``TermRegistry``: fixed-term variants.
- ``simulate_single``, ``simulate_nested``, ``simulate_nested3``: dataset
  assemblers.
- ``ReplicationRunner``: independent replications.
"""

from .assemblers import simulate_nested, simulate_nested3, simulate_single
from .clusters import ClusterSizes, UnbalanceSpec, resolve_three_level, resolve_two_level
from .config import load_error, load_random, load_variables
from .replications import ReplicationRunner
from .variables import ContinuousVar, FactorVar, Interaction, KnotVar, OrdinalVar, TermRegistry, TimeVar

__all__ = [
    # Clusters
    "ClusterSizes",
    "UnbalanceSpec",
    "resolve_two_level",
    "resolve_three_level",
    # Variables
    "TimeVar",
    "ContinuousVar",
    "OrdinalVar",
    "FactorVar",
    "KnotVar",
    "Interaction",
    "TermRegistry",
    # Configuration
    "load_variables",
    "load_random",
    "load_error",
    # Assemblers
    "simulate_single",
    "simulate_nested",
    "simulate_nested3",
    "ReplicationRunner",
]
