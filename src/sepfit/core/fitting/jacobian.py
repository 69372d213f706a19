"""Finite-difference Jacobians of black-box vector functions.

The forward operator has no analytic derivative, so the nonlinear columns of
the uncertainty Jacobian are estimated by central differences. Next to a
finite bound the difference becomes one-sided so the function is never
evaluated outside the feasible box.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import numpy as np

from sepfit.core.algorithms.varpro import as_operator_matrix
from sepfit.core.shared.constants import JACOBIAN_RELATIVE_STEP

if TYPE_CHECKING:
    from sepfit.core.shared.typing import FloatArray, OperatorFunction


def numerical_jacobian(
    func: Callable[[FloatArray], FloatArray],
    x: FloatArray,
    lower: FloatArray | None = None,
    upper: FloatArray | None = None,
    rel_step: float = JACOBIAN_RELATIVE_STEP,
) -> FloatArray:
    """Estimate the Jacobian of ``func`` at ``x``.

    Args:
        func: Vector function of a parameter vector
        x: Evaluation point, shape (n,)
        lower: Optional lower bounds that the steps must respect
        upper: Optional upper bounds that the steps must respect
        rel_step: Step relative to ``max(1, |x_j|)``

    Returns
    -------
        Jacobian of shape (m, n)
    """
    x = np.asarray(x, dtype=float)
    lower = np.full(x.size, -np.inf) if lower is None else np.asarray(lower, dtype=float)
    upper = np.full(x.size, np.inf) if upper is None else np.asarray(upper, dtype=float)
    f0 = np.atleast_1d(np.asarray(func(x), dtype=float)).ravel()
    jac = np.empty((f0.size, x.size))

    for j in range(x.size):
        h = rel_step * max(1.0, abs(x[j]))
        room_up = upper[j] - x[j]
        room_down = x[j] - lower[j]
        if room_up < h and room_down < h:
            # Box narrower than the step: use the wider side
            h = max(room_up, room_down)
        if h <= 0:
            jac[:, j] = 0.0
            continue

        step = np.zeros_like(x)
        step[j] = h
        if room_up >= h and room_down >= h:
            f_plus = np.asarray(func(x + step), dtype=float).ravel()
            f_minus = np.asarray(func(x - step), dtype=float).ravel()
            jac[:, j] = (f_plus - f_minus) / (2 * h)
        elif room_up >= h:
            jac[:, j] = (np.asarray(func(x + step), dtype=float).ravel() - f0) / h
        else:
            jac[:, j] = (f0 - np.asarray(func(x - step), dtype=float).ravel()) / h

    return jac


def augmented_jacobian(
    operator: OperatorFunction,
    p: FloatArray,
    lin: FloatArray,
    lower: FloatArray | None = None,
    upper: FloatArray | None = None,
    penalty_operator: FloatArray | None = None,
) -> FloatArray:
    """Jacobian of the separable residual with respect to ``[p, x]``.

    The nonlinear block differentiates ``A(p) @ x`` numerically, the linear
    block is ``A(p)`` itself. When the fit was penalized, rows
    ``[0, penalty_operator]`` are appended for the penalty residual.

    Args:
        operator: Forward operator ``p -> A(p)``
        p: Nonlinear parameters at the optimum
        lin: Linear coefficients at the optimum
        lower, upper: Nonlinear bounds respected by the difference steps
        penalty_operator: ``α W^½ L`` of a penalized fit, or None

    Returns
    -------
        Jacobian of shape (N [+ K], W + M)
    """
    A = as_operator_matrix(operator(p))
    jac_nonlin = numerical_jacobian(lambda q: as_operator_matrix(operator(q)) @ lin, p, lower, upper)
    jac = np.hstack([jac_nonlin, A])
    if penalty_operator is not None:
        rows = np.hstack([np.zeros((penalty_operator.shape[0], p.size)), penalty_operator])
        jac = np.vstack([jac, rows])
    return jac


__all__ = ["augmented_jacobian", "numerical_jacobian"]
