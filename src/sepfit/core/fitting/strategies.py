"""Nonlinear optimization strategies for the outer separable problem."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import numpy as np
from scipy.optimize import least_squares

from sepfit.core.domain.config import NonlinearSolverName
from sepfit.core.shared.exceptions import ConfigurationError, InputDataError, SolverDivergenceError

if TYPE_CHECKING:
    from sepfit.core.shared.typing import FloatArray, ResidualFunction


@dataclass(slots=True)
class OptimizationResult:
    """Normalized result object for strategy executions."""

    x: FloatArray
    success: bool
    message: str
    optimality: float


class OptimizationStrategy(Protocol):
    """Protocol implemented by all nonlinear strategies."""

    def optimize(
        self,
        fun: ResidualFunction,
        x0: FloatArray,
        lower: FloatArray,
        upper: FloatArray,
    ) -> OptimizationResult:
        """Minimize ``0.5 * ||fun(x)||²`` over ``lower <= x <= upper``."""
        ...


class LeastSquaresStrategy:
    """Local optimizer using scipy.optimize.least_squares.

    ``trf`` and ``dogbox`` honour the bounds; ``lm`` (MINPACK) only solves
    unbounded problems. Exhausting ``max_nfev`` is not an error: the
    best point reached is returned with ``success=False``.
    """

    method: NonlinearSolverName = NonlinearSolverName.TRF

    def __init__(
        self,
        *,
        ftol: float = 1e-5,
        xtol: float = 1e-8,
        gtol: float = 1e-8,
        max_nfev: int | None = 10000,
        verbose: int = 0,
    ) -> None:
        self._ftol = ftol
        self._xtol = xtol
        self._gtol = gtol
        self._max_nfev = max_nfev
        self._verbose = verbose

    def optimize(
        self,
        fun: ResidualFunction,
        x0: FloatArray,
        lower: FloatArray,
        upper: FloatArray,
    ) -> OptimizationResult:
        """Run the local solver from ``x0``.

        Args:
            fun: Residual function of the nonlinear parameters
            x0: Starting point
            lower: Lower bounds (``-inf`` when unbounded)
            upper: Upper bounds (``inf`` when unbounded)

        Returns
        -------
            OptimizationResult with the final point and diagnostics

        Raises
        ------
            ConfigurationError: If ``lm`` is used with finite bounds
            SolverDivergenceError: If the solver fails or the cost is not finite
        """
        bounded = bool(np.isfinite(lower).any() or np.isfinite(upper).any())
        if self.method is NonlinearSolverName.LM and bounded:
            msg = "The 'lm' nonlinear solver does not support bounds; use 'trf' or 'dogbox'"
            raise ConfigurationError(msg)

        try:
            result = least_squares(
                fun,
                x0,
                bounds=(lower, upper),
                method=self.method.value,
                ftol=self._ftol,
                xtol=self._xtol,
                gtol=self._gtol,
                max_nfev=self._max_nfev,
                verbose=self._verbose,
            )
        except InputDataError:
            raise
        except ValueError as exc:
            msg = f"Nonlinear solver '{self.method.value}' failed: {exc}"
            raise SolverDivergenceError(msg) from exc

        if result.status == -1 or not np.isfinite(result.cost):
            msg = f"Nonlinear solver '{self.method.value}' diverged: {result.message}"
            raise SolverDivergenceError(msg)

        return OptimizationResult(
            x=np.asarray(result.x, dtype=float),
            success=bool(result.success),
            message=str(result.message),
            optimality=float(result.optimality),
        )


class TrustRegionReflectiveStrategy(LeastSquaresStrategy):
    """Trust-region reflective least squares, the bounded default."""

    method = NonlinearSolverName.TRF


class DogboxStrategy(LeastSquaresStrategy):
    """Dogleg least squares with rectangular trust regions."""

    method = NonlinearSolverName.DOGBOX


class LevenbergMarquardtStrategy(LeastSquaresStrategy):
    """MINPACK Levenberg-Marquardt for unbounded problems."""

    method = NonlinearSolverName.LM


STRATEGIES: dict[NonlinearSolverName, type[LeastSquaresStrategy]] = {
    NonlinearSolverName.TRF: TrustRegionReflectiveStrategy,
    NonlinearSolverName.DOGBOX: DogboxStrategy,
    NonlinearSolverName.LM: LevenbergMarquardtStrategy,
}


def get_strategy(name: NonlinearSolverName | str, **kwargs: Any) -> OptimizationStrategy:
    """Return an instantiated strategy by name."""
    try:
        strategy_cls = STRATEGIES[NonlinearSolverName(name.lower() if isinstance(name, str) else name)]
    except (KeyError, ValueError) as exc:
        msg = f"Unknown nonlinear solver: {name}"
        raise ConfigurationError(msg) from exc
    return strategy_cls(**kwargs)


__all__ = [
    "STRATEGIES",
    "DogboxStrategy",
    "LeastSquaresStrategy",
    "LevenbergMarquardtStrategy",
    "OptimizationResult",
    "OptimizationStrategy",
    "TrustRegionReflectiveStrategy",
    "get_strategy",
]
