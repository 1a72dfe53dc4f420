"""
Shared test configuration constants.

All test files should import from this module to ensure consistency
across the test suite.
"""

SEED = 2137
"""Default random seed for reproducibility."""

N_LARGE = 20000
"""Sample size for moment checks (means, variances, correlations)."""

N_REPLICATIONS = 6
"""Replications per runner test."""

MOMENT_TOL = 0.1
"""Relative tolerance for sample moments computed from ``N_LARGE`` draws."""
