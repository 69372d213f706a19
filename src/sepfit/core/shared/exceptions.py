"""Exception taxonomy for SepFit.

This module defines a small, coherent hierarchy of exceptions raised by the
separable least-squares engine. Callers can catch ``SepFitError`` to handle
every engine failure, or one of the subclasses to react precisely.
"""

from __future__ import annotations


class SepFitError(Exception):
    """Base class for all SepFit-specific exceptions."""


class BoundsError(SepFitError):
    """Invalid or violated box constraints (inverted bounds, infeasible start)."""


class ConfigurationError(SepFitError):
    """Unknown option values or incompatible option combinations."""


class SolverDivergenceError(SepFitError):
    """A linear, nonlinear or selection solver failed to converge."""


class InputDataError(SepFitError, ValueError):
    """Empty, non-finite or shape-inconsistent numeric inputs."""


__all__ = [
    "BoundsError",
    "ConfigurationError",
    "InputDataError",
    "SepFitError",
    "SolverDivergenceError",
]
