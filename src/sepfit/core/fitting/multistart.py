"""Starting points for multi-start nonlinear optimization."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from sepfit.core.shared.typing import FloatArray


def latin_hypercube(n_points: int, n_dims: int, rng: np.random.Generator) -> FloatArray:
    """Latin-hypercube sample of the unit cube.

    Each dimension is split into ``n_points`` strata and every stratum holds
    exactly one point, placed uniformly at random inside it.
    """
    strata = np.column_stack([rng.permutation(n_points) for _ in range(n_dims)])
    return (strata + rng.random((n_points, n_dims))) / n_points


def start_points(
    p0: FloatArray,
    lower: FloatArray,
    upper: FloatArray,
    n_starts: int,
    seed: int | None = None,
) -> FloatArray:
    """Generate the starting vectors of a multi-start run.

    The first start is always ``p0``. The remaining ones spread over the box
    by Latin-hypercube sampling; components with an infinite bound keep their
    ``p0`` value.

    Args:
        p0: Initial nonlinear parameters, shape (W,)
        lower: Lower bounds, shape (W,)
        upper: Upper bounds, shape (W,)
        n_starts: Total number of starts, at least 1
        seed: Seed of the random spread

    Returns
    -------
        Array of shape (n_starts, W)
    """
    p0 = np.asarray(p0, dtype=float)
    if n_starts <= 1:
        return p0[np.newaxis, :].copy()

    rng = np.random.default_rng(seed)
    unit = latin_hypercube(n_starts - 1, p0.size, rng)
    finite = np.isfinite(lower) & np.isfinite(upper)
    spread = np.tile(p0, (n_starts - 1, 1))
    spread[:, finite] = lower[finite] + unit[:, finite] * (upper[finite] - lower[finite])
    return np.vstack([p0, spread])


__all__ = ["latin_hypercube", "start_points"]
