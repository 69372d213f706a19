"""Constrained linear least-squares strategies.

Each strategy solves ``argmin_x ||D x - t||²`` for a :class:`LinearSubproblem`
``(D, t)`` under the box ``[lower, upper]``. When the fit is penalized the
subproblem is the stacked system ``D = [A; α W^½ L]``, ``t = [y; 0]``, whose
normal equations are exactly the penalized components ``(AᵀA + α²LᵀWL, Aᵀy)``.

The strategy is chosen once per call from the constraint classification:

- unconstrained -> direct least-squares solve
- general box -> ``scipy.optimize.lsq_linear`` (BVLS or TRF)
- non-negative only -> fast NNLS (Bro & De Jong) or active-set NNLS

Coefficients pinned by equal bounds are moved into the target and the chosen
strategy only sees the free ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np
from scipy.optimize import lsq_linear, nnls

from sepfit.core.domain.config import LinearSolverName, NNLSSolverName
from sepfit.core.shared.exceptions import SolverDivergenceError

if TYPE_CHECKING:
    from sepfit.core.algorithms.regularization import RegularizationComponents
    from sepfit.core.domain.config import SNLLSConfig
    from sepfit.core.domain.state import RegularizationState
    from sepfit.core.shared.typing import BoolArray, FloatArray


@dataclass(frozen=True, slots=True)
class LinearSubproblem:
    """Least-squares system ``(design, target)`` of one residual evaluation."""

    design: FloatArray
    target: FloatArray

    @classmethod
    def build(
        cls,
        A: FloatArray,
        y: FloatArray,
        components: RegularizationComponents | None = None,
    ) -> LinearSubproblem:
        """Raw system, or the penalty-augmented system when components are given."""
        if components is None:
            return cls(A, y)
        penalty = components.penalty_operator
        return cls(
            np.vstack([A, penalty]),
            np.concatenate([y, np.zeros(penalty.shape[0])]),
        )

    def normal_equations(self) -> tuple[FloatArray, FloatArray]:
        """Return ``(DᵀD, Dᵀt)``; for a stacked system this is ``(AᵀA + α²LᵀWL, Aᵀy)``."""
        return self.design.T @ self.design, self.design.T @ self.target

    def pin(self, fixed: BoolArray, values: FloatArray) -> LinearSubproblem:
        """Subproblem of the free coefficients, with the fixed ones moved into the target."""
        return LinearSubproblem(
            self.design[:, ~fixed],
            self.target - self.design[:, fixed] @ values,
        )


class LinearSolver(Protocol):
    """Strategy solving a linear least-squares subproblem under box bounds."""

    name: str

    def solve(self, problem: LinearSubproblem, lower: FloatArray, upper: FloatArray) -> FloatArray:
        """Return the constrained least-squares coefficients."""
        ...


class UnconstrainedSolver:
    """Direct least-squares solve; bounds are ignored."""

    name = "lstsq"

    def solve(self, problem: LinearSubproblem, lower: FloatArray, upper: FloatArray) -> FloatArray:
        return np.linalg.lstsq(problem.design, problem.target, rcond=None)[0]


class BoxConstrainedSolver:
    """Bounded-variable least squares through ``scipy.optimize.lsq_linear``."""

    def __init__(
        self,
        *,
        method: LinearSolverName = LinearSolverName.BVLS,
        max_iter: int = 10000,
        tol: float = 1e-10,
    ) -> None:
        self.name = LinearSolverName(method).value
        self._max_iter = max_iter
        self._tol = tol

    def solve(self, problem: LinearSubproblem, lower: FloatArray, upper: FloatArray) -> FloatArray:
        result = lsq_linear(
            problem.design,
            problem.target,
            bounds=(lower, upper),
            method=self.name,
            tol=self._tol,
            max_iter=self._max_iter,
        )
        if result.status == 0:
            msg = f"Linear solver '{self.name}' reached its iteration limit ({self._max_iter})"
            raise SolverDivergenceError(msg)
        return np.clip(result.x, lower, upper)


class FastNNLSSolver:
    """Fast non-negative least squares on the normal equations."""

    name = NNLSSolverName.FNNLS.value

    def __init__(self, *, max_iter: int = 10000) -> None:
        self._max_iter = max_iter

    def solve(self, problem: LinearSubproblem, lower: FloatArray, upper: FloatArray) -> FloatArray:
        AtA, Atb = problem.normal_equations()
        return fnnls(AtA, Atb, max_iter=self._max_iter)


class ActiveSetNNLSSolver:
    """Lawson-Hanson active-set NNLS through ``scipy.optimize.nnls``."""

    name = NNLSSolverName.NNLS.value

    def __init__(self, *, max_iter: int = 10000) -> None:
        self._max_iter = max_iter

    def solve(self, problem: LinearSubproblem, lower: FloatArray, upper: FloatArray) -> FloatArray:
        try:
            x, _ = nnls(problem.design, problem.target, maxiter=self._max_iter)
        except RuntimeError as exc:
            msg = f"Active-set NNLS did not converge: {exc}"
            raise SolverDivergenceError(msg) from exc
        return np.maximum(x, 0.0)


class PinnedLinearSolver:
    """Solve for the free coefficients only; pinned ones (``lower == upper``) keep their value."""

    def __init__(self, solver: LinearSolver, fixed: BoolArray) -> None:
        self.name = solver.name
        self._solver = solver
        self._fixed = fixed

    def solve(self, problem: LinearSubproblem, lower: FloatArray, upper: FloatArray) -> FloatArray:
        fixed = self._fixed
        free = ~fixed
        lin = np.where(fixed, lower, 0.0)
        if free.any():
            reduced = problem.pin(fixed, lower[fixed])
            lin[free] = self._solver.solve(reduced, lower[free], upper[free])
        return lin


def fnnls(
    AtA: FloatArray,
    Atb: FloatArray,
    *,
    tol: float | None = None,
    max_iter: int = 10000,
) -> FloatArray:
    """Fast non-negative least squares (Bro & De Jong, 1997).

    Solves ``min ||A x - b||`` subject to ``x >= 0`` given only the
    cross-products ``AᵀA`` and ``Aᵀb``.

    Args:
        AtA: Normal matrix, shape (M, M)
        Atb: Normal vector, shape (M,)
        tol: Tolerance on the gradient and on the coefficients
        max_iter: Iteration budget shared by the inner and outer loops

    Returns
    -------
        Non-negative coefficient vector

    Raises
    ------
        SolverDivergenceError: If the iteration budget is exhausted

    References
    ----------
        Bro, R., De Jong, S. (1997). A fast non-negativity-constrained least
        squares algorithm. Journal of Chemometrics 11, 393-401.
    """
    AtA = np.asarray(AtA, dtype=float)
    Atb = np.asarray(Atb, dtype=float)
    n = Atb.size
    if tol is None:
        tol = 10 * np.finfo(float).eps * np.linalg.norm(AtA, 1) * max(AtA.shape)

    passive = np.zeros(n, dtype=bool)
    x = np.zeros(n)
    w = Atb - AtA @ x
    iterations = 0

    while (~passive).any() and (w[~passive] > tol).any():
        iterations += 1
        if iterations > max_iter:
            msg = f"FNNLS did not converge within {max_iter} iterations"
            raise SolverDivergenceError(msg)

        candidate = int(np.argmax(np.where(passive, -np.inf, w)))
        passive[candidate] = True
        s = _solve_passive(AtA, Atb, passive)

        while (s[passive] <= tol).any():
            iterations += 1
            if iterations > max_iter:
                msg = f"FNNLS did not converge within {max_iter} iterations"
                raise SolverDivergenceError(msg)

            blocking = passive & (s <= tol)
            with np.errstate(divide="ignore", invalid="ignore"):
                step = x[blocking] / (x[blocking] - s[blocking])
            step = step[np.isfinite(step)]
            alpha = float(step.min()) if step.size else 0.0
            x = x + alpha * (s - x)
            passive &= x > tol
            s = _solve_passive(AtA, Atb, passive)

        x = s
        w = Atb - AtA @ x

    return np.maximum(x, 0.0)


def _solve_passive(AtA: FloatArray, Atb: FloatArray, passive: BoolArray) -> FloatArray:
    s = np.zeros(Atb.size)
    if passive.any():
        sub = AtA[np.ix_(passive, passive)]
        s[passive] = np.linalg.lstsq(sub, Atb[passive], rcond=None)[0]
    return s


BOX_SOLVERS: dict[LinearSolverName, type[BoxConstrainedSolver]] = {
    LinearSolverName.BVLS: BoxConstrainedSolver,
    LinearSolverName.TRF: BoxConstrainedSolver,
}

NNLS_SOLVERS: dict[NNLSSolverName, type[FastNNLSSolver] | type[ActiveSetNNLSSolver]] = {
    NNLSSolverName.FNNLS: FastNNLSSolver,
    NNLSSolverName.NNLS: ActiveSetNNLSSolver,
}


def get_linear_solver(
    regularization: RegularizationState,
    config: SNLLSConfig,
    fixed: BoolArray | None = None,
) -> LinearSolver:
    """Route the linear subproblem to a strategy from its constraint class.

    Args:
        regularization: Frozen constraint classification of the call
        config: Solver configuration
        fixed: Mask of coefficients pinned by ``lbl == ubl``

    Returns
    -------
        Strategy instance used by every residual evaluation of the call
    """
    solver: LinearSolver
    if not regularization.linear_constrained:
        solver = UnconstrainedSolver()
    elif regularization.non_negative_only:
        solver = NNLS_SOLVERS[config.nnls_solver](max_iter=config.lin_max_iter)
    else:
        solver = BOX_SOLVERS[config.lin_solver](
            method=config.lin_solver,
            max_iter=config.lin_max_iter,
            tol=config.lin_tol_fun,
        )
    if fixed is not None and fixed.any():
        return PinnedLinearSolver(solver, fixed)
    return solver


__all__ = [
    "BOX_SOLVERS",
    "NNLS_SOLVERS",
    "ActiveSetNNLSSolver",
    "BoxConstrainedSolver",
    "FastNNLSSolver",
    "LinearSolver",
    "LinearSubproblem",
    "PinnedLinearSolver",
    "UnconstrainedSolver",
    "fnnls",
    "get_linear_solver",
]
