"""
Exception types raised by the SimReg data-generation engine.

All of them derive from ``ValueError`` so callers that already guard
simulation runs with ``except ValueError`` keep working.
"""


class ConfigurationError(ValueError):
    """Raised when a simulation specification is inconsistent.

    Examples: fixed-parameter count not matching the design matrix,
    random variance count not matching the random terms, a missing
    unbalanced-design specification, or a probability vector whose
    length differs from its levels vector.
    """

    pass


class StructuralError(ValueError):
    """Raised when a term refers to something the design does not contain.

    The typical case is a random term that is not among the fixed terms,
    so the random-effect application matrix cannot be evaluated.
    """

    pass


class SamplingError(ValueError):
    """Raised when a categorical variable cannot be sampled as requested."""

    pass
