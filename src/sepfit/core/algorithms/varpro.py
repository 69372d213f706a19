r"""Separable residual for variable-projection least squares.

The model is

.. math::

    y \approx A(p)\,x

with :math:`p` entering nonlinearly and :math:`x` linearly. The outer
optimizer only sees :math:`p`; at every iterate the residual evaluator

1.  builds :math:`A = A(p)`,
2.  forms the penalized components when the call is regularized
    (ill-conditioned :math:`A(p_0)` or a forced penalty), choosing or reusing
    :math:`\alpha`,
3.  solves the (constrained) linear subproblem for :math:`x`,
4.  rescales :math:`\hat y = A x` by the scalar :math:`s = \hat y^T y / \hat y^T \hat y`,
5.  returns :math:`[s\hat y - y,\ \alpha W^{1/2} L x]`.

References
----------
Golub, G. H., & Pereyra, V. (1973). The differentiation of pseudo-inverses and
nonlinear least squares problems whose variables separate.
SIAM Journal on Numerical Analysis, 10(2), 413-432.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from sepfit.core.algorithms.linear_solvers import LinearSubproblem
from sepfit.core.algorithms.regparam import select_regparam
from sepfit.core.algorithms.regularization import lsq_components, regoperator
from sepfit.core.shared.exceptions import InputDataError, SolverDivergenceError

if TYPE_CHECKING:
    from sepfit.core.algorithms.linear_solvers import LinearSolver
    from sepfit.core.algorithms.regularization import RegularizationComponents
    from sepfit.core.domain.config import SNLLSConfig
    from sepfit.core.domain.state import Bounds, SolverState
    from sepfit.core.shared.typing import FloatArray, OperatorFunction


def as_operator_matrix(A: FloatArray) -> FloatArray:
    """Return ``A`` as a float matrix; a 1D array is a single column."""
    A = np.asarray(A, dtype=float)
    return A[:, np.newaxis] if A.ndim == 1 else A


def evaluate_operator(operator: OperatorFunction, p: FloatArray, n_rows: int) -> FloatArray:
    """Evaluate the forward operator and check its shape.

    Raises
    ------
        InputDataError: If the row count does not match the data
    """
    A = as_operator_matrix(operator(p))
    if A.ndim != 2 or A.shape[0] != n_rows or A.shape[1] == 0:
        msg = f"Operator returned shape {A.shape}, expected ({n_rows}, M) with M >= 1"
        raise InputDataError(msg)
    return A


def fit_scale(model: FloatArray, y: FloatArray) -> float:
    """Least-squares scalar aligning ``model`` with ``y`` (1.0 for a zero model)."""
    norm2 = float(model @ model)
    if norm2 <= 0 or not np.isfinite(norm2):
        return 1.0
    return float(model @ y) / norm2


@dataclass(frozen=True, slots=True)
class ResidualEvaluation:
    """Everything computed by one residual evaluation."""

    p: FloatArray
    lin: FloatArray
    model: FloatArray
    scale: float
    residual: FloatArray
    alpha: float | None
    penalty_operator: FloatArray | None


@dataclass
class SeparableResidual:
    """Residual function of the outer nonlinear least-squares problem.

    Instances are callables ``p -> residual`` suitable for
    ``scipy.optimize.least_squares``. All state shared between consecutive
    evaluations lives in ``state``.

    The penalty rows ``α W^½ L x`` use the coefficients solved at this ``p``,
    not those of the previous evaluation as in the classic formulation, so the
    residual is a pure function of ``p``.
    """

    y: FloatArray
    operator: OperatorFunction
    config: SNLLSConfig
    bounds: Bounds
    linear_solver: LinearSolver
    state: SolverState

    _cache_hash: int | None = field(default=None, init=False, repr=False)
    _last: ResidualEvaluation | None = field(default=None, init=False, repr=False)

    @property
    def penalized(self) -> bool:
        """Whether the linear subproblem carries a regularization penalty."""
        return self.state.regularization.ill_conditioned or self.config.force_penalty

    def __call__(self, p: FloatArray) -> FloatArray:
        return self.evaluate(p).residual

    def evaluate(self, p: FloatArray) -> ResidualEvaluation:
        """Run the full inner pipeline at ``p``."""
        p = np.asarray(p, dtype=float)
        cache_hash = hash(p.tobytes())
        if self._cache_hash == cache_hash and self._last is not None:
            return self._last

        A = evaluate_operator(self.operator, p, self.y.size)
        if not np.all(np.isfinite(A)):
            msg = f"Operator is not finite at p = {p}"
            raise SolverDivergenceError(msg)

        components = self._components(A, p) if self.penalized else None
        problem = LinearSubproblem.build(A, self.y, components)
        lin = self.linear_solver.solve(problem, self.bounds.lbl, self.bounds.ubl)

        model = A @ lin
        scale = fit_scale(model, self.y)
        residual = scale * model - self.y
        if components is not None:
            residual = np.concatenate([residual, components.penalty(lin)])

        evaluation = ResidualEvaluation(
            p=p.copy(),
            lin=lin,
            model=scale * model,
            scale=scale,
            residual=residual,
            alpha=None if components is None else components.alpha,
            penalty_operator=None if components is None else components.penalty_operator,
        )
        self.state.lin = lin
        self.state.alpha = evaluation.alpha
        self.state.penalty_operator = evaluation.penalty_operator
        self.state.nfev += 1
        self._cache_hash = cache_hash
        self._last = evaluation
        return evaluation

    def _components(self, A: FloatArray, p: FloatArray) -> RegularizationComponents:
        n_lin = A.shape[1]
        L = regoperator(n_lin, min(n_lin - 1, self.config.reg_order))
        alpha = self.resolve_alpha(A, L, p)
        return lsq_components(
            A,
            self.y,
            L,
            alpha,
            reg_type=self.config.reg_type,
            huber_param=self.config.huber_param,
        )

    def resolve_alpha(self, A: FloatArray, L: FloatArray, p: FloatArray) -> float:
        """Literal value, cached value, or a fresh criterion-based selection."""
        config = self.config
        if not config.selects_regparam:
            return float(config.reg_param)

        cache = self.state.cache
        if cache.reusable(p, config.alpha_opt_threshold):
            assert cache.last_alpha is not None
            return cache.last_alpha

        selection = select_regparam(
            A,
            self.y,
            L,
            config.reg_param,
            reg_type=config.reg_type,
            huber_param=config.huber_param,
            search=config.regparam_search,
            resolution=config.regparam_resolution,
        )
        self.state.selections += 1
        cache.store(p, selection.alpha)
        return selection.alpha


__all__ = [
    "ResidualEvaluation",
    "SeparableResidual",
    "as_operator_matrix",
    "evaluate_operator",
    "fit_scale",
]
