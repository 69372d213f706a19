"""Fit statistics, covariance estimators and uncertainty quantification."""

from sepfit.core.results.covariance import CovarianceEstimate, fisher_covariance, hccm
from sepfit.core.results.uncertainty import UncertaintyQuantification

__all__ = ["CovarianceEstimate", "UncertaintyQuantification", "fisher_covariance", "hccm"]
