"""Shared foundational utilities for SepFit."""

from sepfit.core.shared import constants, reporter, typing
from sepfit.core.shared.exceptions import (
    BoundsError,
    ConfigurationError,
    InputDataError,
    SepFitError,
    SolverDivergenceError,
)
from sepfit.core.shared.reporter import CompositeReporter, LoggingReporter, NullReporter, Reporter

__all__ = [
    "BoundsError",
    "CompositeReporter",
    "ConfigurationError",
    "InputDataError",
    "LoggingReporter",
    "NullReporter",
    "Reporter",
    "SepFitError",
    "SolverDivergenceError",
    "constants",
    "reporter",
    "typing",
]
