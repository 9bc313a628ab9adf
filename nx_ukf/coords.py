"""
NX-UKF Coordinate Helpers
==========================
Angle wrapping and 2D polar ↔ Cartesian conversions shared by the motion
model, the radar measurement model and the initializer.

Frames:
  - Cartesian 2D (px, py) in meters, sensor at the origin
  - Radar polar (range ρ, bearing φ, range-rate ρ̇), φ measured from +x
    counter-clockwise, ρ̇ positive when receding

Author: Dr. Mladen Mešter, Nexellum d.o.o.
"""

import numpy as np
from typing import Tuple, Union

ArrayLike = Union[float, np.ndarray]

TWO_PI = 2.0 * np.pi


# ===== ANGLES =====

def normalize_angle(angle: ArrayLike) -> ArrayLike:
    """Wrap angle(s) into (-π, π].

    Idempotent; the result differs from the input by an integer multiple
    of 2π. Works element-wise on arrays.
    """
    wrapped = np.pi - np.mod(np.pi - np.asarray(angle, dtype=np.float64), TWO_PI)
    # mod rounds up to 2π one ulp above π
    wrapped = np.where(wrapped <= -np.pi, wrapped + TWO_PI, wrapped)
    if np.ndim(wrapped) == 0:
        return float(wrapped)
    return wrapped


def normalize_component(diff: np.ndarray, index: int) -> np.ndarray:
    """Wrap row ``index`` of a vector or of a (dim × n) difference matrix in place."""
    diff[index] = normalize_angle(diff[index])
    return diff


# ===== POLAR ↔ CARTESIAN =====

def polar_to_cartesian(rho: float, phi: float) -> Tuple[float, float]:
    """Range/bearing → (px, py)."""
    return rho * np.cos(phi), rho * np.sin(phi)


def cartesian_to_polar(px: float, py: float, vx: float = 0.0, vy: float = 0.0,
                       min_range: float = 1e-4) -> np.ndarray:
    """(px, py, vx, vy) → [ρ, φ, ρ̇].

    ρ̇ is the radial component of the velocity vector. ``min_range``
    floors the denominator so a target sitting on the sensor does not
    produce a division by zero.
    """
    rho = np.hypot(px, py)
    phi = np.arctan2(py, px)
    rho_dot = (px * vx + py * vy) / max(rho, min_range)
    return np.array([rho, phi, rho_dot])


def radial_speed_to_speed(rho_dot: float, phi: float) -> float:
    """Speed magnitude recovered from a radar range-rate.

    Only the radial component is observable, so the recovered speed is
    |ρ̇|; the velocity is assumed to lie along the line of sight.
    """
    vx = rho_dot * np.cos(phi)
    vy = rho_dot * np.sin(phi)
    return float(np.sqrt(vx * vx + vy * vy))
