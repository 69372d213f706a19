r"""Covariance estimators for least-squares fits.

Two constructions are provided, both driven by a Jacobian :math:`J` (n x k)
and a residual vector :math:`e` (n):

- the classical estimate :math:`\sigma^2 (J^T J)^{-1}` with
  :math:`\sigma^2 = \mathrm{var}(e)`,
- heteroscedasticity-consistent sandwich estimators (HC0-HC5)

.. math::

    C = (J^T J)^{-1} J^T \Omega J (J^T J)^{-1}

where :math:`\Omega = \mathrm{diag}(\omega_i)` reweights the squared
residuals by the leverages :math:`h_i = [J (J^T J)^{-1} J^T]_{ii}`.

Singular :math:`J^T J` is not an error: the pseudo-inverse is used and the
returned estimate is flagged.

References
----------
    White, H. (1980). A heteroskedasticity-consistent covariance matrix
    estimator and a direct test for heteroskedasticity. Econometrica 48.

    Cribari-Neto, F., Souza, T.C., Vasconcellos, K.L.P. (2007). Inference
    under heteroskedasticity and leveraged data. Commun. Stat. Theory
    Methods 36, 1877-1888.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from sepfit.core.algorithms.linear_algebra import LinearAlgebraHelper
from sepfit.core.domain.config import CovarianceMethod

if TYPE_CHECKING:
    from sepfit.core.shared.typing import FloatArray

HC5_LEVERAGE_FACTOR = 0.7


@dataclass(frozen=True, slots=True)
class CovarianceEstimate:
    """Covariance matrix and whether a pseudo-inverse was needed."""

    matrix: FloatArray
    singular: bool


def _check_shapes(jacobian: FloatArray, residual: FloatArray) -> tuple[FloatArray, FloatArray]:
    jacobian = np.atleast_2d(np.asarray(jacobian, dtype=float))
    residual = np.asarray(residual, dtype=float).ravel()
    if jacobian.shape[0] != residual.size:
        msg = f"Jacobian has {jacobian.shape[0]} rows but the residual has {residual.size} entries"
        raise ValueError(msg)
    return jacobian, residual


def fisher_covariance(jacobian: FloatArray, residual: FloatArray) -> CovarianceEstimate:
    """Classical covariance ``σ² (JᵀJ)⁻¹`` with ``σ² = var(residual, ddof=1)``."""
    jacobian, residual = _check_shapes(jacobian, residual)
    sigma2 = float(np.var(residual, ddof=1)) if residual.size > 1 else 0.0
    inverse = LinearAlgebraHelper.inverse(jacobian.T @ jacobian)
    return CovarianceEstimate(sigma2 * inverse.matrix, inverse.singular)


def leverages(jacobian: FloatArray, jtj_inverse: FloatArray) -> FloatArray:
    """Diagonal of the hat matrix ``J (JᵀJ)⁻¹ Jᵀ``."""
    return np.einsum("ij,jk,ik->i", jacobian, jtj_inverse, jacobian)


def hccm(
    jacobian: FloatArray,
    residual: FloatArray,
    mode: CovarianceMethod | str = CovarianceMethod.HC1,
) -> CovarianceEstimate:
    r"""Heteroscedasticity-consistent covariance matrix.

    Weights :math:`\omega_i` of the variants:

    - HC0: :math:`e_i^2`
    - HC1: :math:`\frac{n}{n-k} e_i^2`
    - HC2: :math:`e_i^2 / (1 - h_i)`
    - HC3: :math:`e_i^2 / (1 - h_i)^2`
    - HC4: :math:`e_i^2 / (1 - h_i)^{\delta_i}`, :math:`\delta_i = \min(4, n h_i / k)`
    - HC5: :math:`e_i^2 / \sqrt{(1 - h_i)^{\alpha_i}}`,
      :math:`\alpha_i = \min(h_i / \bar h, \max(4, 0.7\, h_{max} / \bar h))`

    Args:
        jacobian: Model Jacobian, shape (n, k)
        residual: Residual vector, shape (n,)
        mode: One of HC0..HC5 (case-insensitive)

    Returns
    -------
        CovarianceEstimate of shape (k, k)

    Raises
    ------
        ValueError: If the mode is unknown or shapes disagree
    """
    jacobian, residual = _check_shapes(jacobian, residual)
    mode = CovarianceMethod(mode.lower() if isinstance(mode, str) else mode)
    if mode is CovarianceMethod.FISHER:
        msg = "hccm() requires one of the HC0-HC5 estimators"
        raise ValueError(msg)

    n, k = jacobian.shape
    inverse = LinearAlgebraHelper.inverse(jacobian.T @ jacobian)
    bread = inverse.matrix
    h = leverages(jacobian, bread)
    e2 = residual**2

    with np.errstate(divide="ignore", invalid="ignore"):
        if mode is CovarianceMethod.HC0:
            omega = e2
        elif mode is CovarianceMethod.HC1:
            omega = n / max(n - k, 1) * e2
        elif mode is CovarianceMethod.HC2:
            omega = e2 / (1 - h)
        elif mode is CovarianceMethod.HC3:
            omega = e2 / (1 - h) ** 2
        elif mode is CovarianceMethod.HC4:
            delta = np.minimum(4.0, n * h / k)
            omega = e2 / (1 - h) ** delta
        else:
            h_mean = np.mean(h)
            alpha = np.minimum(h / h_mean, max(4.0, HC5_LEVERAGE_FACTOR * h.max() / h_mean))
            omega = e2 / np.sqrt((1 - h) ** alpha)

    meat = (jacobian.T * omega) @ jacobian
    return CovarianceEstimate(bread @ meat @ bread, inverse.singular)


__all__ = ["CovarianceEstimate", "fisher_covariance", "hccm", "leverages"]
