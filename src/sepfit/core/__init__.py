"""Core module for SepFit - configuration, algorithms and the fitting engine."""

from sepfit.core.domain.config import SNLLSConfig
from sepfit.core.fitting.optimizer import snlls
from sepfit.core.fitting.results import SNLLSResult

__all__ = ["SNLLSConfig", "SNLLSResult", "snlls"]
