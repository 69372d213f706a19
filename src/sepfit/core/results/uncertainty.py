"""Covariance-based uncertainty quantification of fitted parameters.

The fitted parameter vector is treated as a multivariate normal variable
with the estimated covariance. Intervals and densities are truncated to the
declared box constraints.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import numpy as np
from scipy.integrate import trapezoid
from scipy.stats import norm

from sepfit.core.fitting.jacobian import numerical_jacobian
from sepfit.core.shared.constants import PARDIST_POINTS, PARDIST_SPAN

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from sepfit.core.shared.typing import FloatArray


class UncertaintyQuantification:
    """Gaussian uncertainty structure of a parameter vector.

    Attributes
    ----------
        mean: Parameter estimate, shape (n,)
        covariance: Covariance matrix, shape (n, n)
        lower: Lower bounds used to clip intervals (``-inf`` when absent)
        upper: Upper bounds used to clip intervals (``inf`` when absent)
        singular: True if the covariance was built from a pseudo-inverse

    Example:
        >>> uq = UncertaintyQuantification([1.0, 2.0], np.diag([0.01, 0.04]))
        >>> uq.ci(95)  # array of shape (2, 2) with [lower, upper] rows
    """

    def __init__(
        self,
        mean: ArrayLike,
        covariance: ArrayLike,
        lower: ArrayLike | None = None,
        upper: ArrayLike | None = None,
        *,
        singular: bool = False,
    ) -> None:
        self.mean = np.atleast_1d(np.asarray(mean, dtype=float)).ravel()
        n = self.mean.size
        self.covariance = np.atleast_2d(np.asarray(covariance, dtype=float))
        if self.covariance.shape != (n, n):
            msg = f"Covariance has shape {self.covariance.shape}, expected ({n}, {n})"
            raise ValueError(msg)
        self.lower = np.full(n, -np.inf) if lower is None else np.asarray(lower, dtype=float).ravel()
        self.upper = np.full(n, np.inf) if upper is None else np.asarray(upper, dtype=float).ravel()
        if self.lower.size != n or self.upper.size != n:
            msg = f"Bounds must have {n} entries"
            raise ValueError(msg)
        self.singular = singular

    def __len__(self) -> int:
        return self.mean.size

    def __repr__(self) -> str:
        return f"UncertaintyQuantification(n={len(self)}, singular={self.singular})"

    @property
    def std(self) -> FloatArray:
        """Standard deviations; negative variances from a pseudo-inverse clip to 0."""
        return np.sqrt(np.clip(np.diag(self.covariance), 0.0, None))

    def ci(self, coverage: float = 95.0) -> FloatArray:
        """Confidence intervals of every parameter.

        Args:
            coverage: Coverage percentage in (0, 100)

        Returns
        -------
            Array of shape (n, 2) with lower and upper limits, clipped to the bounds

        Raises
        ------
            ValueError: If coverage is outside (0, 100)
        """
        if not 0 < coverage < 100:
            msg = f"Coverage must be in (0, 100), got {coverage}"
            raise ValueError(msg)
        z = norm.ppf(1 - (1 - coverage / 100) / 2)
        half_width = z * self.std
        limits = np.column_stack([self.mean - half_width, self.mean + half_width])
        return np.clip(limits, self.lower[:, None], self.upper[:, None])

    def percentile(self, p: float) -> FloatArray:
        """The ``p``-th percentile (0-100) of every parameter, clipped to the bounds."""
        if not 0 <= p <= 100:
            msg = f"Percentile must be in [0, 100], got {p}"
            raise ValueError(msg)
        values = self.mean + norm.ppf(p / 100) * self.std
        return np.clip(values, self.lower, self.upper)

    def pardist(self, index: int) -> tuple[FloatArray, FloatArray]:
        """Marginal density of one parameter, truncated to its bounds.

        Args:
            index: Parameter index

        Returns
        -------
            Tuple (values, density); the density integrates to one over the values.
            A parameter with zero variance yields a single point of unit weight.
        """
        mean = self.mean[index]
        sigma = self.std[index]
        if sigma == 0 or not np.isfinite(sigma):
            return np.array([mean]), np.array([1.0])

        start = max(mean - PARDIST_SPAN * sigma, self.lower[index])
        stop = min(mean + PARDIST_SPAN * sigma, self.upper[index])
        values = np.linspace(start, stop, PARDIST_POINTS)
        density = norm.pdf(values, loc=mean, scale=sigma)
        area = trapezoid(density, values)
        if area > 0:
            density = density / area
        return values, density

    def propagate(
        self,
        model: Callable[[FloatArray], ArrayLike],
        lower: ArrayLike | None = None,
        upper: ArrayLike | None = None,
    ) -> UncertaintyQuantification:
        """Propagate the uncertainty through a model of the parameters.

        First-order propagation: ``C_model = J C Jᵀ`` with ``J`` the numerical
        Jacobian of ``model`` at the mean.

        Args:
            model: Function of the full parameter vector
            lower: Bounds of the model output used to clip intervals
            upper: Bounds of the model output used to clip intervals

        Returns
        -------
            UncertaintyQuantification of the model output
        """

        def evaluate(params: FloatArray) -> FloatArray:
            return np.atleast_1d(np.asarray(model(params), dtype=float)).ravel()

        jacobian = numerical_jacobian(evaluate, self.mean, self.lower, self.upper)
        return UncertaintyQuantification(
            evaluate(self.mean),
            jacobian @ self.covariance @ jacobian.T,
            lower,
            upper,
            singular=self.singular,
        )


__all__ = ["UncertaintyQuantification"]
