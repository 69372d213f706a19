"""Core numerical constants for the SepFit engine.

User-facing tunables live in :class:`sepfit.core.domain.config.SNLLSConfig`;
the values here are fixed properties of the algorithms.
"""

import numpy as np

# =============================================================================
# Conditioning
# =============================================================================

ILL_CONDITIONED_THRESHOLD = 10.0  # cond(A) above which the fit is penalized
"""Condition number of the forward operator that triggers regularization.

Evaluated once on ``A(p0)``; the outcome is frozen for the whole call.
"""

SINGULAR_CONDITION_THRESHOLD = 1.0 / np.finfo(float).eps
"""Condition number above which a normal matrix is treated as singular.

Matches the usual ``rcond < eps`` near-singularity test. Singular matrices
are inverted with the Moore-Penrose pseudo-inverse.
"""

# =============================================================================
# Regularization
# =============================================================================

REGPARAM_RANGE_FLOOR = 1e-8  # Smallest alpha relative to the largest singular value
"""Lower end of the regularization-parameter grid relative to ``s_max(A)``."""

RGCV_GAMMA = 0.9
"""Robustness weight of the robust GCV criterion."""

SRGCV_GAMMA = 0.8
"""Robustness weight of the strong robust GCV criterion."""

TV_SMOOTHING = 1e-6
"""Smoothing constant keeping total-variation weights finite where ``Lx = 0``."""

IRLS_TOLERANCE = 1e-3
"""Relative change of the solution that stops the reweighting iterations."""

IRLS_MAX_ITERATIONS = 500
"""Maximum number of reweighting iterations for TV and Huber penalties."""

# =============================================================================
# Uncertainty
# =============================================================================

JACOBIAN_RELATIVE_STEP = float(np.finfo(float).eps ** (1.0 / 3.0))
"""Relative central-difference step for the numerical Jacobian."""

PARDIST_SPAN = 5.0  # Standard deviations on each side of the mean
PARDIST_POINTS = 500
"""Grid used to tabulate marginal parameter densities."""
