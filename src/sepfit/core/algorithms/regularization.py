r"""Regularization operators and penalized least-squares components.

The penalized linear subproblem is

.. math::

    \min_x \|A x - y\|^2 + \alpha^2 \|W^{1/2} L x\|^2

where :math:`L` is a finite-difference operator and :math:`W` a diagonal
weight matrix. Tikhonov regularization uses :math:`W = I`. Total variation
and (pseudo-)Huber penalties are handled by iteratively reweighted normal
equations, so every penalty reduces to the quadratic form above with a
fixed :math:`W` at convergence.

References
----------
    Hansen, P.C. (2010). Discrete Inverse Problems: Insight and Algorithms.
    SIAM.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from sepfit.core.algorithms.linear_algebra import LinearAlgebraHelper
from sepfit.core.domain.config import RegularizationType
from sepfit.core.shared.constants import IRLS_MAX_ITERATIONS, IRLS_TOLERANCE, TV_SMOOTHING

if TYPE_CHECKING:
    from sepfit.core.shared.typing import FloatArray


def regoperator(n: int, order: int) -> FloatArray:
    """Build the finite-difference operator of a given order.

    Args:
        n: Number of linear coefficients ``M``
        order: Derivative order ``d``, with ``0 <= d < n``

    Returns
    -------
        Operator of shape ``(n - d, n)``; the identity for ``d = 0``

    Raises
    ------
        ValueError: If ``order`` is negative or not smaller than ``n``
    """
    if n < 1:
        msg = f"Operator size must be positive, got {n}"
        raise ValueError(msg)
    if order < 0 or order >= n:
        msg = f"Operator order must be in [0, {n - 1}], got {order}"
        raise ValueError(msg)
    return np.diff(np.eye(n), n=order, axis=0)


def penalty_weights(
    roughness: FloatArray,
    reg_type: RegularizationType,
    huber_param: float = 1.35,
) -> FloatArray:
    """Diagonal of the penalty weight matrix ``W`` for a given ``L x``.

    Args:
        roughness: Vector ``L x``
        reg_type: Penalty functional
        huber_param: Transition scale of the pseudo-Huber penalty

    Returns
    -------
        Weights, all ones for Tikhonov regularization
    """
    roughness = np.asarray(roughness, dtype=float)
    if reg_type is RegularizationType.TV:
        return 1.0 / np.sqrt(roughness**2 + TV_SMOOTHING**2)
    if reg_type is RegularizationType.HUBER:
        return 1.0 / np.sqrt(1.0 + (roughness / huber_param) ** 2)
    return np.ones_like(roughness)


@dataclass(frozen=True, slots=True)
class RegularizationComponents:
    """Penalized normal-equation components at a fixed ``alpha``.

    Attributes
    ----------
        normal_matrix: ``AᵀA + α² LᵀWL``
        normal_vector: ``Aᵀy``
        penalty_operator: ``α W^½ L``; the penalty residual is ``penalty_operator @ x``
        alpha: Regularization parameter
    """

    normal_matrix: FloatArray
    normal_vector: FloatArray
    penalty_operator: FloatArray
    alpha: float

    def penalty(self, x: FloatArray) -> FloatArray:
        return self.penalty_operator @ x


def lsq_components(
    A: FloatArray,
    y: FloatArray,
    L: FloatArray,
    alpha: float,
    reg_type: RegularizationType = RegularizationType.TIKHONOV,
    huber_param: float = 1.35,
) -> RegularizationComponents:
    """Form the penalized normal equations for one regularization parameter.

    For TV and Huber penalties the weights are refined by iteratively
    reweighted least squares until the relative change of the solution drops
    below ``IRLS_TOLERANCE``.

    Args:
        A: Forward operator, shape (N, M)
        y: Data vector, shape (N,)
        L: Regularization operator, shape (K, M)
        alpha: Regularization parameter
        reg_type: Penalty functional
        huber_param: Transition scale of the pseudo-Huber penalty

    Returns
    -------
        RegularizationComponents at the converged weights
    """
    AtA = A.T @ A
    Aty = A.T @ y
    alpha2 = float(alpha) ** 2
    weights = np.ones(L.shape[0])

    if reg_type is not RegularizationType.TIKHONOV:
        x = LinearAlgebraHelper.solve(AtA + alpha2 * (L.T @ L), Aty)
        for _ in range(IRLS_MAX_ITERATIONS):
            weights = penalty_weights(L @ x, reg_type, huber_param)
            x_new = LinearAlgebraHelper.solve(AtA + alpha2 * (L.T @ (weights[:, None] * L)), Aty)
            change = np.linalg.norm(x_new - x) / max(np.linalg.norm(x), np.finfo(float).tiny)
            x = x_new
            if change < IRLS_TOLERANCE:
                break
        weights = penalty_weights(L @ x, reg_type, huber_param)

    weighted = np.sqrt(weights)[:, None] * L
    return RegularizationComponents(
        normal_matrix=AtA + alpha2 * (weighted.T @ weighted),
        normal_vector=Aty,
        penalty_operator=float(alpha) * weighted,
        alpha=float(alpha),
    )


__all__ = [
    "RegularizationComponents",
    "lsq_components",
    "penalty_weights",
    "regoperator",
]
