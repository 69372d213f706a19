"""Configuration and per-call state of the separable least-squares engine."""

from sepfit.core.domain.config import (
    CovarianceMethod,
    LinearSolverName,
    NNLSSolverName,
    NonlinearSolverName,
    RegParamCriterion,
    RegularizationType,
    SNLLSConfig,
    parse_config,
)
from sepfit.core.domain.state import Bounds, RegParamCache, RegularizationState, SolverState

__all__ = [
    "Bounds",
    "CovarianceMethod",
    "LinearSolverName",
    "NNLSSolverName",
    "NonlinearSolverName",
    "RegParamCache",
    "RegParamCriterion",
    "RegularizationState",
    "RegularizationType",
    "SNLLSConfig",
    "SolverState",
    "parse_config",
]
