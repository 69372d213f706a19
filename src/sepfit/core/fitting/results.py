"""Fitting result classes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from sepfit.core.results.statistics import compute_chi_squared, compute_reduced_chi_squared

if TYPE_CHECKING:
    from sepfit.core.results.uncertainty import UncertaintyQuantification
    from sepfit.core.shared.typing import FloatArray


@dataclass(slots=True)
class RunResult:
    """Outcome of one multi-start run.

    A diverged run has ``nonlin`` and ``lin`` set to None, an infinite cost
    and the divergence reason in ``message``.
    """

    index: int
    start: FloatArray
    nonlin: FloatArray | None
    lin: FloatArray | None
    cost: float
    nfev: int
    success: bool
    message: str
    optimality: float = np.nan
    residual: FloatArray | None = None
    model: FloatArray | None = None
    regparam: float | None = None
    penalty_operator: FloatArray | None = field(default=None, repr=False)

    @property
    def diverged(self) -> bool:
        return self.nonlin is None

    @classmethod
    def failed(cls, index: int, start: FloatArray, message: str, nfev: int = 0) -> RunResult:
        return cls(
            index=index,
            start=start,
            nonlin=None,
            lin=None,
            cost=float(np.inf),
            nfev=nfev,
            success=False,
            message=message,
        )


@dataclass(slots=True)
class SNLLSResult:
    """Result of a separable nonlinear least-squares fit.

    Attributes
    ----------
        nonlin: Fitted nonlinear parameters ``p*``
        lin: Fitted linear coefficients ``x*``
        cost: Half the sum of squared residuals at the optimum
        residual: Residual vector (observation rows, then penalty rows)
        model: Rescaled fit ``A(p*) x*``
        regparam: Regularization parameter at the optimum, None if unpenalized
        nfev: Residual evaluations summed over all runs
        success: Whether the retained run met a convergence criterion
        message: Solver message of the retained run
        runs: Every multi-start run, in start order
        uncertainty: Uncertainty structure of ``[p*, x*]``, if requested
        n_fixed: Parameters pinned by equal bounds, excluded from the degrees of freedom
    """

    nonlin: FloatArray
    lin: FloatArray
    cost: float
    residual: FloatArray
    model: FloatArray
    regparam: float | None
    nfev: int
    success: bool
    message: str
    runs: list[RunResult]
    uncertainty: UncertaintyQuantification | None = None
    n_fixed: int = 0

    @property
    def param(self) -> FloatArray:
        """Joint fitted vector ``[p*, x*]``."""
        return np.concatenate([self.nonlin, self.lin])

    @property
    def chisqr(self) -> float:
        """Chi-squared value."""
        return compute_chi_squared(self.residual)

    @property
    def redchi(self) -> float:
        """Reduced chi-squared over the free parameters of both groups."""
        return compute_reduced_chi_squared(self.chisqr, self.residual.size, self.param.size - self.n_fixed)


__all__ = ["RunResult", "SNLLSResult"]
