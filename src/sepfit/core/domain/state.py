"""Per-call solver state of the separable least-squares engine.

The residual evaluator reads and writes this state on every nonlinear
iterate: the cached regularization parameter, the linear coefficients of the
latest evaluation and the penalty actually applied. Keeping it in an explicit
object makes the dependency between consecutive evaluations visible, and lets
each multi-start run own an independent copy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from sepfit.core.shared.typing import BoolArray, FloatArray


@dataclass(frozen=True, slots=True)
class Bounds:
    """Normalized box constraints of both parameter groups.

    Attributes
    ----------
        lb, ub: Bounds of the nonlinear parameters (``±inf`` when absent)
        lbl, ubl: Bounds of the linear coefficients (``±inf`` when absent)
    """

    lb: FloatArray
    ub: FloatArray
    lbl: FloatArray
    ubl: FloatArray

    @property
    def lower(self) -> FloatArray:
        """Lower bounds of the joint vector ``[p, x]``."""
        return np.concatenate([self.lb, self.lbl])

    @property
    def upper(self) -> FloatArray:
        """Upper bounds of the joint vector ``[p, x]``."""
        return np.concatenate([self.ub, self.ubl])

    @property
    def fixed(self) -> BoolArray:
        """Nonlinear parameters pinned by ``lb == ub``."""
        return self.lb == self.ub

    @property
    def fixed_lin(self) -> BoolArray:
        """Linear coefficients pinned by ``lbl == ubl``."""
        return self.lbl == self.ubl


@dataclass(frozen=True, slots=True)
class RegularizationState:
    """Problem classification computed once at setup and never recomputed."""

    ill_conditioned: bool
    linear_constrained: bool
    nonlinear_constrained: bool
    non_negative_only: bool


@dataclass(slots=True)
class RegParamCache:
    """Last accepted regularization parameter and the ``p`` it was selected at."""

    last_p: FloatArray | None = None
    last_alpha: float | None = None

    def reusable(self, p: FloatArray, threshold: float) -> bool:
        """Check whether every component of ``p`` moved less than ``threshold``.

        The classic reuse test is ``|last_p - p| / |p| < threshold``. Here the change is
        taken relative to the cached ``p`` instead, which agrees with it to first order
        near the threshold; components where the cached value is zero use the
        absolute change so the test stays defined.
        """
        if self.last_p is None or self.last_alpha is None:
            return False
        if self.last_p.shape != p.shape:
            return False
        delta = np.abs(self.last_p - p)
        scale = np.abs(self.last_p)
        relative = np.divide(delta, scale, out=delta.copy(), where=scale > 0)
        return bool(np.all(relative < threshold))

    def store(self, p: FloatArray, alpha: float) -> None:
        self.last_p = np.array(p, dtype=float, copy=True)
        self.last_alpha = float(alpha)


@dataclass(slots=True)
class SolverState:
    """Mutable state shared by the evaluations of one optimizer run."""

    regularization: RegularizationState
    cache: RegParamCache = field(default_factory=RegParamCache)
    lin: FloatArray | None = None
    alpha: float | None = None
    penalty_operator: FloatArray | None = None
    nfev: int = 0
    selections: int = 0


__all__ = ["Bounds", "RegParamCache", "RegularizationState", "SolverState"]
