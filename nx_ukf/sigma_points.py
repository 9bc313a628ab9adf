"""
NX-UKF Sigma Points
====================
Augmented sigma-point generation for the CTRV filter.

The state [px, py, v, yaw, yaw_rate] is augmented with the two process-noise
sources [ν_a, ν_yawdd], giving 2·7+1 = 15 sigma points. Column order is
fixed and relied upon downstream:

    col 0           augmented mean
    col 1 .. 7      mean + √(λ+n_aug) · L[:, i]
    col 8 .. 14     mean − √(λ+n_aug) · L[:, i]

Reference: Julier & Uhlmann (2004), Wan & van der Merwe (2000).
"""

import numpy as np
from scipy.linalg import block_diag

from .errors import CovarianceNotPositiveDefiniteError


# ===== DIMENSIONS =====

N_X = 5                     # State dimension
N_NOISE = 2                 # Process-noise dimensions
N_AUG = N_X + N_NOISE       # Augmented dimension
N_SIGMA = 2 * N_AUG + 1     # Sigma-point count
LAMBDA = 3 - N_AUG          # Spreading parameter

YAW = 3                     # Index of the heading angle in the state


def compute_weights(lambda_: float = LAMBDA, n_aug: int = N_AUG) -> np.ndarray:
    """Sigma-point weights; they sum to 1 for any λ ≠ -n_aug."""
    weights = np.full(2 * n_aug + 1, 0.5 / (n_aug + lambda_))
    weights[0] = lambda_ / (lambda_ + n_aug)
    return weights


def augmented_sqrt(P: np.ndarray, std_a: float, std_yawdd: float,
                   lambda_: float = LAMBDA) -> np.ndarray:
    """Lower-triangular √((λ+n_aug)·P_aug).

    P_aug is block-diagonal [P, diag(σ_a², σ_yawdd²)], so its Cholesky
    factor is the block-diagonal of chol(P) and diag(σ_a, σ_yawdd). Zero
    process noise therefore needs no special handling.
    """
    P = np.asarray(P, dtype=np.float64)
    try:
        L = np.linalg.cholesky(P)
    except np.linalg.LinAlgError as exc:
        raise CovarianceNotPositiveDefiniteError(
            f"State covariance is not positive definite: {exc}") from exc
    if not np.all(np.isfinite(L)):
        raise CovarianceNotPositiveDefiniteError("State covariance has non-finite entries")

    L_aug = block_diag(L, np.diag([std_a, std_yawdd]))
    return np.sqrt(lambda_ + P.shape[0] + N_NOISE) * L_aug


def generate_augmented_sigma_points(x: np.ndarray, P: np.ndarray,
                                    std_a: float, std_yawdd: float,
                                    lambda_: float = LAMBDA) -> np.ndarray:
    """Augmented sigma points, shape (n_x + 2, 2·(n_x + 2) + 1).

    Raises:
        CovarianceNotPositiveDefiniteError: if P has no Cholesky factor.
    """
    x = np.asarray(x, dtype=np.float64)
    n_aug = x.size + N_NOISE

    x_aug = np.zeros(n_aug)
    x_aug[:x.size] = x

    A = augmented_sqrt(P, std_a, std_yawdd, lambda_)

    Xsig_aug = np.empty((n_aug, 2 * n_aug + 1))
    Xsig_aug[:, 0] = x_aug
    Xsig_aug[:, 1:n_aug + 1] = x_aug[:, np.newaxis] + A
    Xsig_aug[:, n_aug + 1:] = x_aug[:, np.newaxis] - A
    return Xsig_aug


def weighted_mean(sigma: np.ndarray, weights: np.ndarray) -> np.ndarray:
    """Σ w_i · X[:, i]."""
    return sigma @ weights


def weighted_covariance(diff_a: np.ndarray, weights: np.ndarray,
                        diff_b: np.ndarray = None) -> np.ndarray:
    """Σ w_i · a_i b_iᵀ for difference matrices with one column per sigma point."""
    if diff_b is None:
        diff_b = diff_a
    return (diff_a * weights) @ diff_b.T
