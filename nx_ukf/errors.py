"""Numerical fault types raised by the filter core."""

import numpy as np


class NumericalFaultError(np.linalg.LinAlgError):
    """The current tick cannot be completed; the previous state is still valid."""


class CovarianceNotPositiveDefiniteError(NumericalFaultError):
    """State covariance has no Cholesky factor (not positive definite)."""


class IllConditionedUpdateError(NumericalFaultError):
    """Innovation covariance is singular/ill-conditioned or the update went non-finite."""
