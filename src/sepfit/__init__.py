"""SepFit - Separable nonlinear least squares by variable projection.

Public API:
    - snlls: Fit y ≈ A(p) x with automatic regularization and uncertainty
    - SNLLSResult: Result of a fit

Configuration:
    - SNLLSConfig: Options of a fit (snake_case or camelCase names)

Uncertainty:
    - UncertaintyQuantification: Covariance-based intervals and densities
    - hccm: Heteroscedasticity-consistent covariance (HC0-HC5)

Errors:
    - SepFitError and its subclasses BoundsError, ConfigurationError,
      SolverDivergenceError, InputDataError
"""

import contextlib
from importlib import metadata

__version__ = "0.1.0"

with contextlib.suppress(metadata.PackageNotFoundError):
    __version__ = metadata.version(__name__)

from sepfit.core.algorithms.regparam import select_regparam
from sepfit.core.algorithms.regularization import regoperator
from sepfit.core.domain.config import (
    CovarianceMethod,
    LinearSolverName,
    NNLSSolverName,
    NonlinearSolverName,
    RegParamCriterion,
    RegularizationType,
    SNLLSConfig,
)
from sepfit.core.fitting.optimizer import snlls
from sepfit.core.fitting.results import RunResult, SNLLSResult
from sepfit.core.results.covariance import fisher_covariance, hccm
from sepfit.core.results.uncertainty import UncertaintyQuantification
from sepfit.core.shared.exceptions import (
    BoundsError,
    ConfigurationError,
    InputDataError,
    SepFitError,
    SolverDivergenceError,
)

__all__ = [
    # Version
    "__version__",
    # Engine
    "snlls",
    "SNLLSResult",
    "RunResult",
    # Configuration
    "SNLLSConfig",
    "RegularizationType",
    "RegParamCriterion",
    "LinearSolverName",
    "NNLSSolverName",
    "NonlinearSolverName",
    "CovarianceMethod",
    # Building blocks
    "regoperator",
    "select_regparam",
    # Uncertainty
    "UncertaintyQuantification",
    "fisher_covariance",
    "hccm",
    # Errors
    "SepFitError",
    "BoundsError",
    "ConfigurationError",
    "SolverDivergenceError",
    "InputDataError",
]
