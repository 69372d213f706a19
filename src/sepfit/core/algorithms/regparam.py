r"""Automatic selection of the regularization parameter.

Every candidate :math:`\alpha` defines a linear smoother with influence matrix

.. math::

    H(\alpha) = A (A^T A + \alpha^2 L^T W L)^{-1} A^T

and residual :math:`r = y - H y`. Pointwise criteria score one candidate from
:math:`r` and :math:`H` alone; curve criteria (Mallows' :math:`C_L` and the
two L-curve heuristics) need the scores of the whole grid. The selected
parameter is the grid minimizer, optionally refined by a bounded Brent search
over :math:`\log_{10}\alpha` between the neighbouring grid points.

References
----------
    Golub, G.H., Heath, M., Wahba, G. (1979). Generalized cross-validation
    as a method for choosing a good ridge parameter. Technometrics 21, 215.

    Hansen, P.C., O'Leary, D.P. (1993). The use of the L-curve in the
    regularization of discrete ill-posed problems. SIAM J. Sci. Comput. 14.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from scipy.optimize import minimize_scalar

from sepfit.core.algorithms.linear_algebra import LinearAlgebraHelper
from sepfit.core.algorithms.regularization import lsq_components
from sepfit.core.domain.config import RegParamCriterion, RegParamSearch, RegularizationType
from sepfit.core.shared.constants import REGPARAM_RANGE_FLOOR, RGCV_GAMMA, SRGCV_GAMMA
from sepfit.core.shared.exceptions import SolverDivergenceError

if TYPE_CHECKING:
    from sepfit.core.shared.typing import FloatArray


@dataclass(slots=True)
class RegParamEvaluation:
    """Penalized fit at one candidate regularization parameter."""

    alpha: float
    y: FloatArray
    A: FloatArray
    residual: FloatArray
    influence: FloatArray
    penalty_norm: float
    _trace: float | None = field(default=None, init=False, repr=False)

    @property
    def n(self) -> int:
        return self.y.size

    @property
    def rss(self) -> float:
        return float(self.residual @ self.residual)

    @property
    def trace(self) -> float:
        """Effective number of parameters, ``tr(H)``."""
        if self._trace is None:
            self._trace = float(np.trace(self.influence))
        return self._trace


def evaluate_regparam(
    A: FloatArray,
    y: FloatArray,
    L: FloatArray,
    alpha: float,
    reg_type: RegularizationType = RegularizationType.TIKHONOV,
    huber_param: float = 1.35,
) -> RegParamEvaluation:
    """Solve the penalized problem at ``alpha`` and build its influence matrix."""
    components = lsq_components(A, y, L, alpha, reg_type, huber_param)
    inverse = LinearAlgebraHelper.inverse(components.normal_matrix).matrix
    x = inverse @ components.normal_vector
    return RegParamEvaluation(
        alpha=float(alpha),
        y=y,
        A=A,
        residual=y - A @ x,
        influence=A @ inverse @ A.T,
        penalty_norm=float(np.linalg.norm(components.penalty_operator @ x) / max(alpha, np.finfo(float).tiny)),
    )


# =============================================================================
# Pointwise criteria
# =============================================================================


def _aic(ev: RegParamEvaluation) -> float:
    return ev.n * np.log(ev.rss / ev.n) + 2 * ev.trace


def _aicc(ev: RegParamEvaluation) -> float:
    dof = ev.n - ev.trace - 1
    if dof <= 0:
        return np.inf
    return _aic(ev) + 2 * ev.trace * (ev.trace + 1) / dof


def _bic(ev: RegParamEvaluation) -> float:
    return ev.n * np.log(ev.rss / ev.n) + np.log(ev.n) * ev.trace


def _gcv(ev: RegParamEvaluation) -> float:
    return ev.rss / (1 - ev.trace / ev.n) ** 2


def _rgcv(ev: RegParamEvaluation) -> float:
    trace_h2 = float(np.sum(ev.influence * ev.influence.T))
    return _gcv(ev) * (RGCV_GAMMA + (1 - RGCV_GAMMA) * trace_h2 / ev.n)


def _srgcv(ev: RegParamEvaluation) -> float:
    return _gcv(ev) * (SRGCV_GAMMA + (1 - SRGCV_GAMMA) * ev.trace / ev.n)


def _cv(ev: RegParamEvaluation) -> float:
    leverage = np.diag(ev.influence)
    return float(np.sum((ev.residual / (1 - leverage)) ** 2))


def _gml(ev: RegParamEvaluation) -> float:
    complement = np.eye(ev.n) - ev.influence
    eigenvalues = np.linalg.eigvalsh(0.5 * (complement + complement.T))
    kept = eigenvalues[eigenvalues > eigenvalues.max() * ev.n * np.finfo(float).eps]
    if kept.size == 0:
        return np.inf
    # log of yᵀ(I - H)y / det⁺(I - H)^(1/m)
    return float(np.log(ev.y @ complement @ ev.y) - np.mean(np.log(kept)))


def _rm(ev: RegParamEvaluation) -> float:
    scaling = ev.A.T @ (np.eye(ev.n) - ev.influence)
    return ev.rss / np.linalg.norm(scaling)


# =============================================================================
# Curve criteria
# =============================================================================


def _mcl(evaluations: Sequence[RegParamEvaluation]) -> FloatArray:
    # Noise level from the least regularized fit
    first = evaluations[0]
    sigma2 = first.rss / max(first.n - first.trace, 1.0)
    return np.array([ev.rss + 2 * sigma2 * ev.trace - ev.n * sigma2 for ev in evaluations])


def _lcurve(evaluations: Sequence[RegParamEvaluation]) -> tuple[FloatArray, FloatArray, FloatArray]:
    tiny = np.finfo(float).tiny
    log_alpha = np.log([ev.alpha for ev in evaluations])
    rho = np.log(np.maximum([np.sqrt(ev.rss) for ev in evaluations], tiny))
    eta = np.log(np.maximum([ev.penalty_norm for ev in evaluations], tiny))
    return log_alpha, rho, eta


def _lc(evaluations: Sequence[RegParamEvaluation]) -> FloatArray:
    if len(evaluations) < 3:
        return np.full(len(evaluations), np.nan)
    log_alpha, rho, eta = _lcurve(evaluations)
    d_rho = np.gradient(rho, log_alpha)
    d_eta = np.gradient(eta, log_alpha)
    dd_rho = np.gradient(d_rho, log_alpha)
    dd_eta = np.gradient(d_eta, log_alpha)
    curvature = (d_rho * dd_eta - dd_rho * d_eta) / (d_rho**2 + d_eta**2) ** 1.5
    return -curvature


def _lr(evaluations: Sequence[RegParamEvaluation]) -> FloatArray:
    _, rho, eta = _lcurve(evaluations)

    def normalize(values: FloatArray) -> FloatArray:
        span = values.max() - values.min()
        return (values - values.min()) / span if span > 0 else np.zeros_like(values)

    return np.hypot(normalize(rho), normalize(eta))


POINTWISE_CRITERIA: dict[RegParamCriterion, Callable[[RegParamEvaluation], float]] = {
    RegParamCriterion.AIC: _aic,
    RegParamCriterion.AICC: _aicc,
    RegParamCriterion.BIC: _bic,
    RegParamCriterion.CV: _cv,
    RegParamCriterion.GCV: _gcv,
    RegParamCriterion.RGCV: _rgcv,
    RegParamCriterion.SRGCV: _srgcv,
    RegParamCriterion.GML: _gml,
    RegParamCriterion.RM: _rm,
}

CURVE_CRITERIA: dict[RegParamCriterion, Callable[[Sequence[RegParamEvaluation]], FloatArray]] = {
    RegParamCriterion.MCL: _mcl,
    RegParamCriterion.LC: _lc,
    RegParamCriterion.LR: _lr,
}


# =============================================================================
# Selection
# =============================================================================


def regparam_range(A: FloatArray, resolution: float = 0.1) -> FloatArray:
    """Log-spaced grid of candidate regularization parameters.

    The grid spans the singular values of ``A``, floored at
    ``REGPARAM_RANGE_FLOOR * s_max`` and at least one decade wide.

    Args:
        A: Forward operator
        resolution: Grid step in decades

    Returns
    -------
        Increasing array of candidate values

    Raises
    ------
        SolverDivergenceError: If ``A`` has no positive singular value
    """
    singular_values = np.linalg.svd(A, compute_uv=False)
    upper = float(singular_values.max()) if singular_values.size else 0.0
    if not np.isfinite(upper) or upper <= 0:
        msg = "Cannot build a regularization grid for a zero or non-finite operator"
        raise SolverDivergenceError(msg)
    lower = max(float(singular_values.min()), upper * REGPARAM_RANGE_FLOOR)
    lower = min(lower, upper / 10)
    n_points = int(np.ceil((np.log10(upper) - np.log10(lower)) / resolution)) + 1
    return np.logspace(np.log10(lower), np.log10(upper), max(n_points, 3))


def score_evaluations(
    criterion: RegParamCriterion,
    evaluations: Sequence[RegParamEvaluation],
) -> FloatArray:
    """Score every evaluation with a criterion; lower is better."""
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if criterion in POINTWISE_CRITERIA:
            scorer = POINTWISE_CRITERIA[criterion]
            return np.array([scorer(ev) for ev in evaluations], dtype=float)
        return np.asarray(CURVE_CRITERIA[criterion](evaluations), dtype=float)


@dataclass(frozen=True, slots=True)
class RegParamSelection:
    """Outcome of a regularization-parameter search."""

    alpha: float
    criterion: RegParamCriterion
    grid: FloatArray
    scores: FloatArray


def select_regparam(
    A: FloatArray,
    y: FloatArray,
    L: FloatArray,
    criterion: RegParamCriterion = RegParamCriterion.AIC,
    *,
    reg_type: RegularizationType = RegularizationType.TIKHONOV,
    huber_param: float = 1.35,
    search: RegParamSearch = "grid",
    resolution: float = 0.1,
) -> RegParamSelection:
    """Choose the regularization parameter minimizing a selection criterion.

    Args:
        A: Forward operator, shape (N, M)
        y: Data vector, shape (N,)
        L: Regularization operator
        criterion: Selection criterion
        reg_type: Penalty functional
        huber_param: Transition scale of the pseudo-Huber penalty
        search: 'grid', or 'refine' to polish pointwise criteria with Brent's method
        resolution: Grid step in decades

    Returns
    -------
        RegParamSelection with the selected value and the scored grid

    Raises
    ------
        SolverDivergenceError: If no candidate yields a usable score
    """
    criterion = RegParamCriterion(criterion)
    grid = regparam_range(A, resolution)
    evaluations = [evaluate_regparam(A, y, L, alpha, reg_type, huber_param) for alpha in grid]
    scores = score_evaluations(criterion, evaluations)

    # -inf is a perfect fit and remains a valid minimum
    usable = ~np.isnan(scores) & (scores < np.inf)
    if not usable.any():
        msg = f"Regularization parameter selection ({criterion.value}) produced no finite score"
        raise SolverDivergenceError(msg)
    best = int(np.argmin(np.where(usable, scores, np.inf)))
    alpha = float(grid[best])

    if search == "refine" and criterion in POINTWISE_CRITERIA and np.isfinite(scores[best]):
        lower = np.log10(grid[max(best - 1, 0)])
        upper = np.log10(grid[min(best + 1, grid.size - 1)])
        scorer = POINTWISE_CRITERIA[criterion]

        def objective(log_alpha: float) -> float:
            ev = evaluate_regparam(A, y, L, 10.0**log_alpha, reg_type, huber_param)
            with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
                value = float(scorer(ev))
            return value if np.isfinite(value) else np.inf

        if upper > lower:
            result = minimize_scalar(objective, bounds=(lower, upper), method="bounded")
            if result.success and np.isfinite(result.fun) and result.fun <= scores[best]:
                alpha = float(10.0**result.x)

    return RegParamSelection(alpha=alpha, criterion=criterion, grid=grid, scores=scores)


__all__ = [
    "CURVE_CRITERIA",
    "POINTWISE_CRITERIA",
    "RegParamEvaluation",
    "RegParamSelection",
    "evaluate_regparam",
    "regparam_range",
    "score_evaluations",
    "select_regparam",
]
