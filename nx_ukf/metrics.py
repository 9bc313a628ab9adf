"""Estimation accuracy metrics."""

import numpy as np
from typing import Sequence


def state_to_cartesian(x: np.ndarray) -> np.ndarray:
    """[px, py, v, yaw, ...] → [px, py, vx, vy]."""
    px, py, v, yaw = x[0], x[1], x[2], x[3]
    return np.array([px, py, v * np.cos(yaw), v * np.sin(yaw)])


def compute_rmse(estimations: Sequence[np.ndarray],
                 ground_truth: Sequence[np.ndarray]) -> np.ndarray:
    """Per-component RMSE between two equally long sequences of vectors.

    Typically used on [px, py, vx, vy].
    """
    est = np.asarray(estimations, dtype=np.float64)
    gt = np.asarray(ground_truth, dtype=np.float64)
    if est.size == 0:
        raise ValueError("No estimations to evaluate")
    if est.shape != gt.shape:
        raise ValueError(f"Shape mismatch: estimations {est.shape} vs ground truth {gt.shape}")
    return np.sqrt(np.mean((est - gt) ** 2, axis=0))
