"""
NX-UKF CTRV Motion Model
=========================
Constant Turn Rate and Velocity (CTRV) process model.

State: [px, py, v, yaw, yaw_rate]. Speed and yaw rate are held constant over
the interval; position follows an arc, or a straight line when
|yaw_rate| <= epsilon. Process noise enters as longitudinal acceleration
ν_a and yaw acceleration ν_yawdd:

    px  += ½ dt² cos(yaw) ν_a
    py  += ½ dt² sin(yaw) ν_a
    v   += dt ν_a
    yaw += ½ dt² ν_yawdd
    yawd += dt ν_yawdd

Author: Dr. Mladen Mešter, Nexellum d.o.o.
"""

import numpy as np

YAW_RATE_EPSILON = 0.001


def propagate_sigma_points(Xsig_aug: np.ndarray, dt: float,
                           epsilon: float = YAW_RATE_EPSILON) -> np.ndarray:
    """Propagate augmented sigma points (7 × n) over dt → state sigma points (5 × n)."""
    Xsig_aug = np.asarray(Xsig_aug, dtype=np.float64)
    p_x, p_y, v, yaw, yawd, nu_a, nu_yawdd = Xsig_aug

    turning = np.abs(yawd) > epsilon
    # Dummy denominator on the straight branch; np.where evaluates both sides
    safe_yawd = np.where(turning, yawd, 1.0)
    yaw_end = yaw + yawd * dt

    px_p = np.where(turning,
                    p_x + v / safe_yawd * (np.sin(yaw_end) - np.sin(yaw)),
                    p_x + v * dt * np.cos(yaw))
    py_p = np.where(turning,
                    p_y + v / safe_yawd * (np.cos(yaw) - np.cos(yaw_end)),
                    p_y + v * dt * np.sin(yaw))

    half_dt2 = 0.5 * dt * dt
    Xsig_pred = np.empty((5, Xsig_aug.shape[1]))
    Xsig_pred[0] = px_p + half_dt2 * nu_a * np.cos(yaw)
    Xsig_pred[1] = py_p + half_dt2 * nu_a * np.sin(yaw)
    Xsig_pred[2] = v + nu_a * dt
    Xsig_pred[3] = yaw_end + half_dt2 * nu_yawdd
    Xsig_pred[4] = yawd + nu_yawdd * dt
    return Xsig_pred


def ctrv_transition(x: np.ndarray, dt: float,
                    epsilon: float = YAW_RATE_EPSILON) -> np.ndarray:
    """Noise-free CTRV step for a single 5-state vector."""
    x_aug = np.concatenate([np.asarray(x, dtype=np.float64), np.zeros(2)])
    return propagate_sigma_points(x_aug[:, np.newaxis], dt, epsilon)[:, 0]
