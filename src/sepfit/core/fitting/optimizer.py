"""Separable nonlinear least-squares engine.

:func:`snlls` fits ``y ≈ A(p) x`` by variable projection: a bounded nonlinear
least-squares search over ``p`` whose residual solves the (regularized,
constrained) linear problem for ``x`` at every iterate.

Setup happens once per call: inputs are validated, bounds normalized, the
problem classified and its conditioning frozen from ``A(p0)``. Each
multi-start run then owns an independent :class:`SolverState`; the run with
the lowest cost is retained and, optionally, its uncertainty is quantified.
"""

from __future__ import annotations

from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np
from threadpoolctl import threadpool_limits

from sepfit.core.algorithms.linear_solvers import get_linear_solver
from sepfit.core.algorithms.varpro import SeparableResidual, evaluate_operator
from sepfit.core.domain.config import CovarianceMethod, NonlinearSolverName, SNLLSConfig, parse_config
from sepfit.core.domain.state import SolverState
from sepfit.core.fitting.constraints import classify_constraints
from sepfit.core.fitting.jacobian import augmented_jacobian
from sepfit.core.fitting.multistart import start_points
from sepfit.core.fitting.results import RunResult, SNLLSResult
from sepfit.core.fitting.strategies import OptimizationResult, get_strategy
from sepfit.core.results.covariance import fisher_covariance, hccm
from sepfit.core.results.uncertainty import UncertaintyQuantification
from sepfit.core.shared.exceptions import ConfigurationError, InputDataError, SolverDivergenceError
from sepfit.core.shared.reporter import LoggingReporter, Reporter

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from sepfit.core.algorithms.linear_solvers import LinearSolver
    from sepfit.core.domain.state import Bounds, RegularizationState
    from sepfit.core.fitting.strategies import OptimizationStrategy
    from sepfit.core.shared.typing import FloatArray, OperatorFunction


def _as_vector(values: ArrayLike, name: str) -> FloatArray:
    try:
        array = np.atleast_1d(np.asarray(values, dtype=float))
    except (TypeError, ValueError) as exc:
        msg = f"'{name}' must be a numeric vector"
        raise InputDataError(msg) from exc
    if array.ndim != 1:
        msg = f"'{name}' must be one-dimensional, got shape {array.shape}"
        raise InputDataError(msg)
    if array.size == 0:
        msg = f"'{name}' must not be empty"
        raise InputDataError(msg)
    if not np.all(np.isfinite(array)):
        msg = f"'{name}' contains non-finite values"
        raise InputDataError(msg)
    return array


@dataclass
class SeparableFitter:
    """Validated problem shared by every multi-start run of one call."""

    y: FloatArray
    operator: OperatorFunction
    p0: FloatArray
    bounds: Bounds
    regularization: RegularizationState
    config: SNLLSConfig
    reporter: Reporter

    @classmethod
    def setup(
        cls,
        y: ArrayLike,
        operator: OperatorFunction,
        p0: ArrayLike,
        lb: ArrayLike | None,
        ub: ArrayLike | None,
        lbl: ArrayLike | None,
        ubl: ArrayLike | None,
        config: SNLLSConfig,
        reporter: Reporter,
    ) -> SeparableFitter:
        """Validate inputs, normalize bounds and classify the problem.

        Raises
        ------
            InputDataError: On empty, non-finite or inconsistent inputs
            BoundsError: On malformed bounds or an infeasible ``p0``
            ConfigurationError: On option combinations the problem cannot support
        """
        y = _as_vector(y, "y")
        p0 = _as_vector(p0, "p0")
        A0 = evaluate_operator(operator, p0, y.size)
        if not np.all(np.isfinite(A0)):
            msg = "Operator returned non-finite values at p0"
            raise InputDataError(msg)

        bounds, regularization = classify_constraints(p0, A0, lb, ub, lbl, ubl)

        if config.multi_start > 1 and not regularization.nonlinear_constrained:
            msg = "Multi-start requires finite bounds on the nonlinear parameters"
            raise ConfigurationError(msg)
        free = ~bounds.fixed
        if config.nonlin_solver is NonlinearSolverName.LM and (
            np.isfinite(bounds.lb[free]).any() or np.isfinite(bounds.ub[free]).any()
        ):
            msg = "The 'lm' nonlinear solver does not support bounds; use 'trf' or 'dogbox'"
            raise ConfigurationError(msg)

        return cls(y, operator, p0, bounds, regularization, config, reporter)

    @property
    def penalized(self) -> bool:
        return self.regularization.ill_conditioned or self.config.force_penalty

    def _strategy(self) -> OptimizationStrategy:
        return get_strategy(
            self.config.nonlin_solver,
            ftol=self.config.nonlin_tol_fun,
            max_nfev=self.config.nonlin_max_iter,
        )

    def _linear_solver(self) -> LinearSolver:
        return get_linear_solver(self.regularization, self.config, self.bounds.fixed_lin)

    def residual_function(self, state: SolverState | None = None) -> SeparableResidual:
        """Residual evaluator bound to a (fresh by default) solver state."""
        return SeparableResidual(
            y=self.y,
            operator=self.operator,
            config=self.config,
            bounds=self.bounds,
            linear_solver=self._linear_solver(),
            state=state or SolverState(self.regularization),
        )

    def _optimize(self, residual: SeparableResidual, start: FloatArray) -> tuple[FloatArray, OptimizationResult]:
        # Pinned parameters (lb == ub) stay out of the search
        free = ~self.bounds.fixed
        if not free.any():
            return start.copy(), OptimizationResult(
                x=start[free],
                success=True,
                message="All nonlinear parameters are fixed by their bounds",
                optimality=0.0,
            )

        def reduced(q: FloatArray) -> FloatArray:
            p = start.copy()
            p[free] = q
            return residual(p)

        result = self._strategy().optimize(reduced, start[free], self.bounds.lb[free], self.bounds.ub[free])
        p = start.copy()
        p[free] = result.x
        return p, result

    def run(self, index: int, start: FloatArray) -> RunResult:
        """Optimize from one starting point; divergence is captured, not raised."""
        residual = self.residual_function()
        try:
            p, result = self._optimize(residual, start)
            final = residual.evaluate(p)
        except SolverDivergenceError as exc:
            self.reporter.warning(f"Run {index + 1} diverged: {exc}")
            return RunResult.failed(index, start, str(exc), nfev=residual.state.nfev)

        return RunResult(
            index=index,
            start=start,
            nonlin=final.p,
            lin=final.lin,
            cost=0.5 * float(final.residual @ final.residual),
            nfev=residual.state.nfev,
            success=result.success,
            message=result.message,
            optimality=result.optimality,
            residual=final.residual,
            model=final.model,
            regparam=final.alpha,
            penalty_operator=final.penalty_operator,
        )

    def run_all(self, starts: FloatArray) -> list[RunResult]:
        """Execute every run, in a thread pool when several workers are configured."""
        n_starts = len(starts)
        workers = min(self.config.workers, n_starts)

        def worker(index: int) -> RunResult:
            if n_starts > 1:
                self.reporter.action(f"Multi-start run {index + 1}/{n_starts}")
            return self.run(index, starts[index])

        if workers > 1:
            # Keep BLAS single-threaded while Python threads run in parallel
            with threadpool_limits(limits=1, user_api="blas"), ThreadPoolExecutor(max_workers=workers) as executor:
                return list(executor.map(worker, range(n_starts)))
        return [worker(index) for index in range(n_starts)]

    def uncertainty(self, best: RunResult) -> UncertaintyQuantification:
        """Covariance-based uncertainty of ``[p*, x*]`` at the retained optimum."""
        assert best.nonlin is not None and best.lin is not None and best.residual is not None
        jacobian = augmented_jacobian(
            self.operator,
            best.nonlin,
            best.lin,
            self.bounds.lb,
            self.bounds.ub,
            penalty_operator=best.penalty_operator if self.penalized else None,
        )
        # Pinned entries are not estimated and keep zero variance
        free = ~np.concatenate([self.bounds.fixed, self.bounds.fixed_lin])
        covariance = np.zeros((free.size, free.size))
        singular = False
        if free.any():
            if self.config.covariance is CovarianceMethod.FISHER:
                estimate = fisher_covariance(jacobian[:, free], best.residual)
            else:
                estimate = hccm(jacobian[:, free], best.residual, self.config.covariance)
            if estimate.singular:
                self.reporter.warning("Singular Jacobian at the optimum; covariance uses the pseudo-inverse")
            covariance[np.ix_(free, free)] = estimate.matrix
            singular = estimate.singular
        return UncertaintyQuantification(
            np.concatenate([best.nonlin, best.lin]),
            covariance,
            self.bounds.lower,
            self.bounds.upper,
            singular=singular,
        )


def select_best_run(runs: list[RunResult]) -> RunResult:
    """Global minimum by cost; ties go to the lowest start index.

    Raises
    ------
        SolverDivergenceError: If every run diverged
    """
    converged = [run for run in runs if not run.diverged]
    if not converged:
        reasons = "; ".join(f"run {run.index + 1}: {run.message}" for run in runs)
        msg = f"All {len(runs)} optimization runs diverged ({reasons})"
        raise SolverDivergenceError(msg)
    return min(converged, key=lambda run: (run.cost, run.index))


def snlls(
    y: ArrayLike,
    operator: OperatorFunction,
    p0: ArrayLike,
    lb: ArrayLike | None = None,
    ub: ArrayLike | None = None,
    lbl: ArrayLike | None = None,
    ubl: ArrayLike | None = None,
    *,
    config: SNLLSConfig | Mapping[str, Any] | None = None,
    reporter: Reporter | None = None,
    **options: Any,
) -> SNLLSResult:
    """Fit ``y ≈ A(p) x`` by separable nonlinear least squares.

    Args:
        y: Data vector, shape (N,)
        operator: Forward operator ``p -> A(p)`` returning an (N, M) matrix
        p0: Initial nonlinear parameters, shape (W,)
        lb, ub: Bounds of the nonlinear parameters (None for unbounded)
        lbl, ubl: Bounds of the linear coefficients (None for unbounded)
        config: Base configuration (SNLLSConfig or mapping of options)
        reporter: Progress reporter; logs to the 'sepfit' logger by default
        **options: Option overrides, by field name or camelCase alias

    Returns
    -------
        SNLLSResult with the fitted parameters and, unless disabled, the
        uncertainty of ``[p*, x*]``

    Raises
    ------
        InputDataError: On empty, non-finite or shape-inconsistent inputs
        BoundsError: On invalid bounds or an infeasible ``p0``
        ConfigurationError: On invalid or incompatible options
        SolverDivergenceError: If every optimization run diverges

    Example:
        >>> t = np.linspace(0, 5, 200)
        >>> model = lambda p: np.column_stack([np.exp(-p[0] * t), t])
        >>> fit = snlls(model([1.2]) @ [2.0, 0.5], model, [0.8], lb=[0], ub=[5])
        >>> fit.nonlin, fit.lin
    """
    config = parse_config(config, **options)
    reporter = reporter if reporter is not None else LoggingReporter()
    fitter = SeparableFitter.setup(y, operator, p0, lb, ub, lbl, ubl, config, reporter)

    regularization = fitter.regularization
    reporter.info(
        f"Separable fit: {fitter.p0.size} nonlinear / {fitter.bounds.lbl.size} linear parameters, "
        f"{'ill' if regularization.ill_conditioned else 'well'}-conditioned, "
        f"penalty {'on' if fitter.penalized else 'off'}"
    )

    starts = start_points(fitter.p0, fitter.bounds.lb, fitter.bounds.ub, config.multi_start, config.seed)
    runs = fitter.run_all(starts)
    best = select_best_run(runs)
    assert best.nonlin is not None and best.lin is not None
    assert best.residual is not None and best.model is not None

    if len(runs) > 1:
        n_diverged = sum(run.diverged for run in runs)
        reporter.info(f"Retained run {best.index + 1}/{len(runs)} ({n_diverged} diverged)")
    if best.regparam is not None:
        reporter.info(f"Regularization parameter: {best.regparam:.4g}")

    uncertainty = fitter.uncertainty(best) if config.uncertainty else None
    reporter.success(f"Fit finished with cost {best.cost:.6g}")

    return SNLLSResult(
        nonlin=best.nonlin,
        lin=best.lin,
        cost=best.cost,
        residual=best.residual,
        model=best.model,
        regparam=best.regparam,
        nfev=sum(run.nfev for run in runs),
        success=best.success,
        message=best.message,
        runs=runs,
        uncertainty=uncertainty,
        n_fixed=int(fitter.bounds.fixed.sum() + fitter.bounds.fixed_lin.sum()),
    )


__all__ = ["SeparableFitter", "select_best_run", "snlls"]
