"""Box-constraint normalization and problem classification.

Bounds for both parameter groups are optional. Missing or empty bound vectors
become ``±inf``; the classification derived from them is computed once per
call and frozen in :class:`~sepfit.core.domain.state.RegularizationState`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from sepfit.core.algorithms.linear_algebra import LinearAlgebraHelper
from sepfit.core.domain.state import Bounds, RegularizationState
from sepfit.core.shared.exceptions import BoundsError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from sepfit.core.shared.typing import FloatArray


def normalize_bound(values: ArrayLike | None, size: int, fill: float, name: str) -> FloatArray:
    """Return a float bound vector of ``size`` entries.

    Args:
        values: Bound values; None or empty means unbounded
        size: Expected number of entries
        fill: Value used when the bound is absent (``-inf`` or ``inf``)
        name: Bound name used in error messages

    Returns
    -------
        Bound vector

    Raises
    ------
        BoundsError: If the size is wrong or a value is NaN
    """
    if values is None:
        return np.full(size, fill)
    array = np.atleast_1d(np.asarray(values, dtype=float)).ravel()
    if array.size == 0:
        return np.full(size, fill)
    if array.size != size:
        msg = f"'{name}' has {array.size} entries, expected {size}"
        raise BoundsError(msg)
    if np.isnan(array).any():
        msg = f"'{name}' contains NaN values"
        raise BoundsError(msg)
    return array


def _check_ordered(lower: FloatArray, upper: FloatArray, names: str) -> None:
    # Equal bounds pin a component and are allowed
    bad = np.flatnonzero(lower > upper)
    if bad.size:
        msg = f"Lower bounds exceed upper bounds ({names}) at indices {bad.tolist()}"
        raise BoundsError(msg)
    infinite = np.flatnonzero((lower == upper) & ~np.isfinite(lower))
    if infinite.size:
        msg = f"Pinned bounds must be finite ({names}), violated at indices {infinite.tolist()}"
        raise BoundsError(msg)


def classify_constraints(
    p0: FloatArray,
    A0: FloatArray,
    lb: ArrayLike | None = None,
    ub: ArrayLike | None = None,
    lbl: ArrayLike | None = None,
    ubl: ArrayLike | None = None,
) -> tuple[Bounds, RegularizationState]:
    """Normalize bounds and classify the separable problem.

    Args:
        p0: Initial nonlinear parameters, shape (W,)
        A0: Forward operator at ``p0``, shape (N, M)
        lb, ub: Nonlinear bounds
        lbl, ubl: Linear bounds

    Returns
    -------
        Normalized bounds and the frozen classification

    Raises
    ------
        BoundsError: If bounds are malformed, inverted, or exclude ``p0``
    """
    n_nonlin = p0.size
    n_lin = A0.shape[1]
    bounds = Bounds(
        lb=normalize_bound(lb, n_nonlin, -np.inf, "lb"),
        ub=normalize_bound(ub, n_nonlin, np.inf, "ub"),
        lbl=normalize_bound(lbl, n_lin, -np.inf, "lbl"),
        ubl=normalize_bound(ubl, n_lin, np.inf, "ubl"),
    )
    _check_ordered(bounds.lb, bounds.ub, "lb/ub")
    _check_ordered(bounds.lbl, bounds.ubl, "lbl/ubl")

    outside = np.flatnonzero((p0 < bounds.lb) | (p0 > bounds.ub))
    if outside.size:
        msg = f"Initial nonlinear parameters lie outside [lb, ub] at indices {outside.tolist()}"
        raise BoundsError(msg)

    state = RegularizationState(
        ill_conditioned=LinearAlgebraHelper.is_ill_conditioned(A0),
        linear_constrained=bool(np.isfinite(bounds.lbl).any() or np.isfinite(bounds.ubl).any()),
        nonlinear_constrained=bool(np.isfinite(bounds.lb).any() or np.isfinite(bounds.ub).any()),
        non_negative_only=bool(np.all(bounds.lbl == 0) and np.all(np.isposinf(bounds.ubl))),
    )
    return bounds, state


__all__ = ["classify_constraints", "normalize_bound"]
