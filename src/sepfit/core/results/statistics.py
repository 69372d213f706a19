"""Goodness-of-fit statistics for separable least-squares fits."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from sepfit.core.shared.typing import FloatArray


def compute_chi_squared(residuals: FloatArray) -> float:
    """Compute chi-squared (sum of squared residuals).

    Args:
        residuals: Residual vector, including any penalty rows

    Returns
    -------
        Chi-squared value (sum of residuals squared)
    """
    return float(np.sum(np.asarray(residuals) ** 2))


def compute_degrees_of_freedom(n_data: int, n_params: int) -> int:
    """Compute degrees of freedom, minimum of 1 to avoid division by zero."""
    return max(1, n_data - n_params)


def compute_reduced_chi_squared(
    chi_squared: float,
    n_data: int,
    n_params: int,
) -> float:
    """Compute reduced chi-squared.

    ``n_params`` counts both the nonlinear parameters and the linear
    coefficients solved at every iterate.

    Args:
        chi_squared: Sum of squared residuals
        n_data: Number of data points
        n_params: Total number of fitted parameters

    Returns
    -------
        Reduced chi-squared value (chi_squared / dof)
    """
    dof = compute_degrees_of_freedom(n_data, n_params)
    return chi_squared / dof


__all__ = [
    "compute_chi_squared",
    "compute_degrees_of_freedom",
    "compute_reduced_chi_squared",
]
