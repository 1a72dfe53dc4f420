"""
Validation utilities for SimReg.

This module provides validation functions for simulation inputs: cluster
sizes, categorical level/probability vectors, correlation matrices and
the parameter counts that must agree with the generated design.
"""

import warnings
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import ConfigurationError

__all__ = []


@dataclass
class _ValidationResult:
    """Outcome of a validation check, carrying errors and warnings.

    Attributes:
        is_valid: ``True`` if no errors were found.
        errors: List of error messages (empty when valid).
        warnings: List of non-fatal warning messages.
    """

    is_valid: bool
    errors: List[str]
    warnings: List[str]

    def raise_if_invalid(self):
        """Raise ``ConfigurationError`` if the validation failed.

        Non-fatal messages are forwarded through ``warnings.warn`` first.
        """
        for msg in self.warnings:
            warnings.warn(msg, stacklevel=3)
        if not self.is_valid:
            if len(self.errors) == 1:
                raise ConfigurationError(self.errors[0])
            error_msg = "Validation failed:\n" + "\n".join(f"• {err}" for err in self.errors)
            raise ConfigurationError(error_msg)


class _Validator:
    """Static helpers for type and range checks used by all validators."""

    @staticmethod
    def _check_type(value: Any, expected_types: tuple, name: str) -> Optional[str]:
        """Check if value has expected type."""
        if isinstance(value, bool) or not isinstance(value, expected_types):
            actual_type = type(value).__name__
            expected = expected_types[0].__name__ if len(expected_types) == 1 else f"one of {[t.__name__ for t in expected_types]}"
            return f"{name} must be {expected}, got {actual_type}"
        return None

    @staticmethod
    def _check_range(
        value: Union[int, float],
        min_val: Optional[float],
        max_val: Optional[float],
        name: str,
    ) -> Optional[str]:
        """Check if value is within range."""
        if min_val is not None and value < min_val:
            return f"{name} must be >= {min_val}, got {value}"
        if max_val is not None and value > max_val:
            return f"{name} must be <= {max_val}, got {value}"
        return None


_validator = _Validator()


def _validate_numeric_parameter(
    value: Any,
    name: str,
    expected_types: tuple = (int, float),
    min_val: Optional[float] = None,
    max_val: Optional[float] = None,
) -> _ValidationResult:
    """Generic validation for numeric parameters."""
    errors: List[str] = []

    type_error = _validator._check_type(value, expected_types, name)
    if type_error:
        errors.append(type_error)
        return _ValidationResult(False, errors, [])

    range_error = _validator._check_range(value, min_val, max_val, name)
    if range_error:
        errors.append(range_error)

    return _ValidationResult(len(errors) == 0, errors, [])


def _validate_count(value: Any, name: str) -> _ValidationResult:
    """Validate a cluster count or cluster size (positive integer)."""
    return _validate_numeric_parameter(value, name, expected_types=(int, np.integer), min_val=1)


def _validate_variance(value: Any, name: str) -> _ValidationResult:
    """Validate a variance (non-negative number)."""
    return _validate_numeric_parameter(value, name, expected_types=(int, float, np.integer, np.floating), min_val=0)


def _validate_cluster_sizes(sizes: Sequence, n_clusters: int, name: str) -> _ValidationResult:
    """Validate an explicit vector of per-cluster sample sizes.

    Args:
        sizes: Supplied sizes, one per cluster.
        n_clusters: Number of clusters the vector must cover.
        name: Label used in messages (e.g. ``"unbal_design['level2']"``).
    """
    errors: List[str] = []
    sizes_arr = np.asarray(sizes)

    if sizes_arr.ndim != 1:
        errors.append(f"{name} must be a one-dimensional vector of sizes")
        return _ValidationResult(False, errors, [])

    if len(sizes_arr) != n_clusters:
        errors.append(f"{name} has {len(sizes_arr)} sizes but {n_clusters} clusters were requested")

    if len(sizes_arr) and (not np.all(np.equal(np.mod(sizes_arr, 1), 0)) or np.any(sizes_arr < 1)):
        errors.append(f"{name} must contain positive integers, got {sizes_arr.tolist()}")

    return _ValidationResult(len(errors) == 0, errors, [])


def _validate_unbalance_range(min_size: Any, max_size: Any, name: str) -> _ValidationResult:
    """Validate a ``min``/``max`` range for uniformly drawn cluster sizes."""
    errors: List[str] = []
    warnings_list: List[str] = []

    for value, label in ((min_size, "min"), (max_size, "max")):
        type_error = _validator._check_type(value, (int, float, np.integer, np.floating), f"{name} {label}")
        if type_error:
            errors.append(type_error)

    if errors:
        return _ValidationResult(False, errors, warnings_list)

    if min_size > max_size:
        errors.append(f"{name} min ({min_size}) must not exceed max ({max_size})")
    elif min_size < 0.5:
        warnings_list.append(f"{name} min ({min_size}) can round to empty clusters; sizes are clipped to 1")

    return _ValidationResult(len(errors) == 0, errors, warnings_list)


def _validate_probabilities(prob: Optional[Sequence], n_levels: int, name: str) -> _ValidationResult:
    """Validate an optional sampling probability vector against its levels.

    Args:
        prob: Probability weights, or ``None`` for uniform sampling.
        n_levels: Length of the levels vector.
        name: Variable name used in messages.
    """
    errors: List[str] = []
    warnings_list: List[str] = []

    if prob is None:
        return _ValidationResult(True, errors, warnings_list)

    prob_arr = np.asarray(prob, dtype=float)
    if prob_arr.ndim != 1 or len(prob_arr) != n_levels:
        errors.append(f"{name}: prob has {prob_arr.size} values but levels has {n_levels}")
        return _ValidationResult(False, errors, warnings_list)

    if np.any(prob_arr < 0):
        errors.append(f"{name}: prob cannot contain negative values")
    elif prob_arr.sum() <= 0:
        errors.append(f"{name}: prob must have a positive sum")
    elif abs(prob_arr.sum() - 1.0) > 1e-6:
        warnings_list.append(f"{name}: prob sums to {prob_arr.sum():.4f}, not 1.0 (will be normalized)")

    return _ValidationResult(len(errors) == 0, errors, warnings_list)


def _validate_var_level(var_level: Any, max_level: int, name: str) -> _ValidationResult:
    """Validate that a variable's replication level fits the nesting depth."""
    errors: List[str] = []

    if var_level not in (1, 2, 3):
        errors.append(f"{name}: var_level must be 1, 2 or 3, got {var_level!r}")
    elif var_level > max_level:
        errors.append(f"{name}: var_level {var_level} exceeds the nesting depth of a {max_level}-level design")

    return _ValidationResult(len(errors) == 0, errors, [])


def _validate_correlation_matrix(
    corr_matrix: Optional[np.ndarray],
) -> _ValidationResult:
    """Validate correlation matrix meets mathematical requirements."""
    errors = []

    if corr_matrix is None:
        errors.append("Correlation matrix is None")
        return _ValidationResult(False, errors, [])

    # Shape check
    if corr_matrix.ndim != 2 or corr_matrix.shape[0] != corr_matrix.shape[1]:
        errors.append("Correlation matrix must be square")
        return _ValidationResult(False, errors, [])

    # Diagonal check
    if not np.allclose(np.diag(corr_matrix), 1.0):
        errors.append("Diagonal elements of correlation matrix must be 1")

    # Symmetry check
    if not np.allclose(corr_matrix, corr_matrix.T):
        errors.append("Correlation matrix must be symmetric")

    # Range check
    if np.any(np.abs(corr_matrix) > 1):
        errors.append("All correlations must be between -1 and 1")

    # Positive semi-definite check
    try:
        eigenvals = np.linalg.eigvalsh(corr_matrix)
        if np.any(eigenvals < -1e-8):  # Tolerance for floating point noise
            errors.append("Correlation matrix must be positive semi-definite")
    except np.linalg.LinAlgError:
        errors.append("Cannot compute eigenvalues of correlation matrix")

    return _ValidationResult(len(errors) == 0, errors, [])


def _validate_fixed_param(n_params: int, n_columns: int) -> _ValidationResult:
    """Validate the fixed-parameter vector against the design matrix width."""
    if n_params != n_columns:
        return _ValidationResult(
            False,
            [f"{n_params} parameters specified for {n_columns} variables in design matrix"],
            [],
        )
    return _ValidationResult(True, [], [])


def _validate_random_variances(n_variances: int, n_terms: int, intercept: bool, label: str) -> _ValidationResult:
    """Validate the number of random variances against the random terms.

    One variance is expected per random term, plus one for the random
    intercept unless it is suppressed.
    """
    expected = n_terms + (1 if intercept else 0)
    if n_variances != expected:
        intercept_note = " plus intercept" if intercept else ""
        return _ValidationResult(
            False,
            [f"{label}: {n_variances} random variances specified for {n_terms} random terms{intercept_note} (expected {expected})"],
            [],
        )
    return _ValidationResult(True, [], [])


def _validate_parallel_settings(enable: Any, n_cores: Optional[int]) -> Tuple[Tuple[bool, int], _ValidationResult]:
    """Validate parallel replication settings.

    Args:
        enable: ``True`` or ``False``.
        n_cores: Number of CPU cores (positive int or ``None`` for half of
            the available cores).

    Returns:
        ``((enable, n_cores), ValidationResult)``
    """
    import multiprocessing as mp

    errors = []

    if enable not in (True, False):
        errors.append(f"parallel must be True or False, got {enable!r}")
        return (False, 1), _ValidationResult(False, errors, [])

    max_cores = mp.cpu_count()
    validated_n_cores = max(1, max_cores // 2)

    if n_cores is not None:
        if isinstance(n_cores, bool) or not isinstance(n_cores, int) or n_cores <= 0:
            errors.append(f"n_cores must be a positive integer, got {n_cores}")
        else:
            validated_n_cores = min(n_cores, max_cores)

    return (bool(enable), validated_n_cores), _ValidationResult(len(errors) == 0, errors, [])
