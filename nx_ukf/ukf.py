"""
NX-UKF - Unscented Kalman Filter for Lidar/Radar Fusion
========================================================
CTRV state estimation from asynchronous lidar (position) and radar
(range, bearing, range-rate) measurements.

Two layers:
  - ``UnscentedKalmanFilter``: functional core. ``init_state``, ``predict``
    and ``update`` take a state and return a new one; nothing is mutated.
  - ``CTRVFusionTracker``: owns one state handle and the NIS sequences and
    runs initialize → predict → correct once per measurement.

Numerical faults (non-PD covariance, singular innovation covariance) are
raised by the core as ``NumericalFaultError`` subclasses. The tracker keeps
the last valid state and reports the tick as DEGENERATE.

Example:
    >>> tracker = CTRVFusionTracker(UKFConfig(std_a=2.8, std_yawdd=1.1))
    >>> tracker.process_measurement(MeasurementPackage.laser(5.0, 3.0, 0))
    >>> result = tracker.process_measurement(
    ...     MeasurementPackage.radar(5.9, 0.55, 1.2, 50000))
    >>> print(f"NIS: {result.nis:.2f}")

Author: Dr. Mladen Mešter / Nexellum d.o.o.
License: AGPL v3 / Commercial
"""

import logging
import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, TextIO, Tuple

from .config import UKFConfig
from .coords import normalize_angle, normalize_component, polar_to_cartesian, radial_speed_to_speed
from .ctrv import propagate_sigma_points
from .diagnostics import write_nis_report
from .errors import IllConditionedUpdateError, NumericalFaultError
from .measurement import MeasurementPackage, SensorType
from .sensor_models import MeasurementModel, make_sensor_models
from .sigma_points import (
    LAMBDA, N_AUG, N_SIGMA, N_X, YAW,
    compute_weights, generate_augmented_sigma_points,
    weighted_covariance, weighted_mean,
)

logger = logging.getLogger(__name__)

US_PER_SECOND = 1_000_000.0


# =============================================================================
# STATE CONTAINERS
# =============================================================================

@dataclass
class UKFState:
    """Mean, covariance and the timestamp [µs] they refer to."""
    x: np.ndarray           # [px, py, v, yaw, yaw_rate]
    P: np.ndarray           # 5×5 covariance
    timestamp_us: int

    def copy(self) -> 'UKFState':
        return UKFState(self.x.copy(), self.P.copy(), self.timestamp_us)


@dataclass
class Prediction:
    """Output of the prediction step, consumed by exactly one correction."""
    x: np.ndarray
    P: np.ndarray
    sigma_points: np.ndarray    # 5 × 15 propagated sigma points
    weights: np.ndarray         # 15
    dt: float
    timestamp_us: int


@dataclass
class UpdateMetrics:
    """Innovation statistics of one correction."""
    sensor_type: SensorType
    predicted_measurement: np.ndarray
    innovation: np.ndarray
    innovation_covariance: np.ndarray
    kalman_gain: np.ndarray
    nis: float


class StepStatus(Enum):
    INITIALIZED = "initialized"
    UPDATED = "updated"
    SKIPPED = "skipped"         # sensor disabled
    DEGENERATE = "degenerate"   # numerical fault, state unchanged


@dataclass
class StepResult:
    """Outcome of ``CTRVFusionTracker.process_measurement``."""
    status: StepStatus
    sensor_type: SensorType
    dt: float = 0.0
    nis: Optional[float] = None
    fault: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not StepStatus.DEGENERATE


# =============================================================================
# FILTER CORE
# =============================================================================

class UnscentedKalmanFilter:
    """
    Augmented-state UKF with CTRV process model.

    Dimensions are fixed: n_x = 5, n_aug = 7, 15 sigma points, λ = 3 - n_aug.
    """

    def __init__(self, config: Optional[UKFConfig] = None):
        self.config = config or UKFConfig()
        self.n_x = N_X
        self.n_aug = N_AUG
        self.n_sigma = N_SIGMA
        self.lambda_ = LAMBDA
        self.models: Dict[SensorType, MeasurementModel] = make_sensor_models(self.config)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def init_state(self, meas: MeasurementPackage) -> UKFState:
        """Bootstrap mean and covariance from the first measurement."""
        cfg = self.config
        z = meas.raw_measurements

        if meas.sensor_type is SensorType.RADAR:
            rho, phi, rho_dot = z
            px, py = polar_to_cartesian(rho, phi)
            speed = radial_speed_to_speed(rho_dot, phi)
            x = np.array([px, py, speed, 0.0, 0.0])
            pos_var = (cfg.std_radr ** 2, cfg.std_radr ** 2)
            other_var = cfg.init_variances(radar=True)
        else:
            x = np.array([z[0], z[1], 0.0, 0.0, 0.0])
            pos_var = (cfg.std_laspx ** 2, cfg.std_laspy ** 2)
            other_var = cfg.init_variances(radar=False)

        P = np.diag(np.concatenate([pos_var, other_var]))
        logger.info("Filter initialized from %s at t=%d us: x=%s",
                    meas.sensor_type.name, meas.timestamp, np.array2string(x, precision=3))
        return UKFState(x=x, P=P, timestamp_us=meas.timestamp)

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict(self, state: UKFState, dt: float) -> Prediction:
        """
        Propagate the augmented sigma points over dt [s].

        Raises:
            ValueError: dt < 0.
            CovarianceNotPositiveDefiniteError: state.P has no Cholesky factor.
            NumericalFaultError: propagation produced non-finite values.
        """
        if dt < 0:
            raise ValueError(f"Negative elapsed time dt={dt}")
        cfg = self.config

        Xsig_aug = generate_augmented_sigma_points(
            state.x, state.P, cfg.std_a, cfg.std_yawdd, self.lambda_)
        Xsig_pred = propagate_sigma_points(Xsig_aug, dt, cfg.yaw_rate_epsilon)

        weights = compute_weights(self.lambda_, self.n_aug)

        x_pred = weighted_mean(Xsig_pred, weights)
        x_diff = Xsig_pred - x_pred[:, np.newaxis]
        normalize_component(x_diff, YAW)
        P_pred = weighted_covariance(x_diff, weights)
        if cfg.symmetrize_covariance:
            P_pred = 0.5 * (P_pred + P_pred.T)

        if not (np.all(np.isfinite(x_pred)) and np.all(np.isfinite(P_pred))):
            raise NumericalFaultError(f"Prediction over dt={dt:.6f}s produced non-finite values")

        logger.debug("Predict dt=%.6f s: x=%s", dt, np.array2string(x_pred, precision=3))
        timestamp = state.timestamp_us + int(round(dt * US_PER_SECOND))
        return Prediction(x=x_pred, P=P_pred, sigma_points=Xsig_pred,
                          weights=weights, dt=dt, timestamp_us=timestamp)

    # ------------------------------------------------------------------
    # Correction
    # ------------------------------------------------------------------

    def update(self, prediction: Prediction,
               meas: MeasurementPackage) -> Tuple[UKFState, UpdateMetrics]:
        """Fuse one measurement into the prediction.

        Returns:
            Tuple of (updated_state, metrics)
        """
        model = self.models[meas.sensor_type]
        state, metrics = self._correct(prediction, meas.raw_measurements, model)
        state.timestamp_us = meas.timestamp
        return state, metrics

    def _correct(self, prediction: Prediction, z: np.ndarray,
                 model: MeasurementModel) -> Tuple[UKFState, UpdateMetrics]:
        """Generic unscented correction for any ``MeasurementModel``."""
        weights = prediction.weights
        Xsig = prediction.sigma_points
        x, P = prediction.x, prediction.P

        # Sigma points in measurement space
        Zsig = model.project(Xsig)
        z_pred = self._measurement_mean(Zsig, weights, model.angle_index)

        z_diff = Zsig - z_pred[:, np.newaxis]
        if model.angle_index is not None:
            normalize_component(z_diff, model.angle_index)

        # Innovation covariance
        S = weighted_covariance(z_diff, weights) + model.noise_covariance

        # Cross correlation
        x_diff = Xsig - x[:, np.newaxis]
        normalize_component(x_diff, YAW)
        Tc = weighted_covariance(x_diff, weights, z_diff)

        S_inv = self._invert_innovation(S, model)
        K = Tc @ S_inv

        # Residual
        y = np.asarray(z, dtype=np.float64) - z_pred
        if model.angle_index is not None:
            normalize_component(y, model.angle_index)

        nis = float(y @ S_inv @ y)

        x_upd = x + K @ y
        P_upd = P - K @ S @ K.T
        if self.config.symmetrize_covariance:
            P_upd = 0.5 * (P_upd + P_upd.T)

        if not (np.all(np.isfinite(x_upd)) and np.all(np.isfinite(P_upd)) and np.isfinite(nis)):
            raise IllConditionedUpdateError(
                f"{model.sensor_type.name} update produced non-finite values")

        logger.debug("%s update: NIS=%.3f", model.sensor_type.name, nis)
        metrics = UpdateMetrics(
            sensor_type=model.sensor_type,
            predicted_measurement=z_pred,
            innovation=y,
            innovation_covariance=S,
            kalman_gain=K,
            nis=nis,
        )
        return UKFState(x=x_upd, P=P_upd, timestamp_us=prediction.timestamp_us), metrics

    @staticmethod
    def _measurement_mean(Zsig: np.ndarray, weights: np.ndarray,
                          angle_index: Optional[int]) -> np.ndarray:
        """Weighted mean of measurement sigma points.

        The angle component is averaged as offsets from the central sigma
        point, so points straddling ±π do not cancel out. Without
        wrap-around this equals the plain weighted sum.
        """
        z_pred = weighted_mean(Zsig, weights)
        if angle_index is not None:
            anchor = Zsig[angle_index, 0]
            offsets = normalize_angle(Zsig[angle_index] - anchor)
            z_pred[angle_index] = normalize_angle(anchor + offsets @ weights)
        return z_pred

    def _invert_innovation(self, S: np.ndarray, model: MeasurementModel) -> np.ndarray:
        """Direct inverse of S, refusing singular or ill-conditioned matrices."""
        name = model.sensor_type.name
        if not np.all(np.isfinite(S)):
            raise IllConditionedUpdateError(f"{name} innovation covariance is non-finite")
        cond = np.linalg.cond(S)
        if not np.isfinite(cond) or cond > self.config.max_innovation_condition:
            raise IllConditionedUpdateError(
                f"{name} innovation covariance is ill-conditioned (cond={cond:.3e})")
        try:
            return np.linalg.inv(S)
        except np.linalg.LinAlgError as exc:
            raise IllConditionedUpdateError(f"{name} innovation covariance is singular") from exc


# =============================================================================
# TRACKER
# =============================================================================

class CTRVFusionTracker:
    """
    Single-object lidar/radar fusion tracker.

    Not thread-safe: one caller at a time. The NIS sequences grow by one
    entry per successful update of the corresponding sensor.

    Args:
        config: Filter configuration (defaults if None)
        strict: Re-raise numerical faults instead of returning DEGENERATE
    """

    def __init__(self, config: Optional[UKFConfig] = None, strict: bool = False):
        self.ukf = UnscentedKalmanFilter(config)
        self.config = self.ukf.config
        self.strict = strict

        self._state: Optional[UKFState] = None
        self.nis_radar: List[float] = []
        self.nis_laser: List[float] = []
        self.last_prediction: Optional[Prediction] = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> Optional[UKFState]:
        return None if self._state is None else self._state.copy()

    @property
    def x(self) -> Optional[np.ndarray]:
        return None if self._state is None else self._state.x.copy()

    @property
    def P(self) -> Optional[np.ndarray]:
        return None if self._state is None else self._state.P.copy()

    @property
    def time_us(self) -> Optional[int]:
        return None if self._state is None else self._state.timestamp_us

    def _sensor_enabled(self, sensor_type: SensorType) -> bool:
        if sensor_type is SensorType.LASER:
            return self.config.use_laser
        return self.config.use_radar

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_measurement(self, meas: MeasurementPackage) -> StepResult:
        """
        Run one tick: initialize (first call only), predict, correct.

        Raises:
            ValueError: measurement older than the current state.
            NumericalFaultError: only when ``strict`` is set.
        """
        initializing = not self.is_initialized
        if initializing:
            self._state = self.ukf.init_state(meas)
            status = StepStatus.INITIALIZED
        else:
            if meas.timestamp < self._state.timestamp_us:
                raise ValueError(
                    f"Out-of-order measurement: t={meas.timestamp} us precedes "
                    f"state t={self._state.timestamp_us} us")
            status = StepStatus.UPDATED

        dt = (meas.timestamp - self._state.timestamp_us) / US_PER_SECOND

        if not self._sensor_enabled(meas.sensor_type):
            if not initializing:
                logger.warning("%s disabled, measurement at t=%d us skipped",
                               meas.sensor_type.name, meas.timestamp)
                status = StepStatus.SKIPPED
            return StepResult(status, meas.sensor_type, dt=dt)

        try:
            prediction = self.ukf.predict(self._state, dt)
            new_state, metrics = self.ukf.update(prediction, meas)
        except NumericalFaultError as exc:
            logger.warning("Degenerate %s tick at t=%d us, keeping last valid state: %s",
                           meas.sensor_type.name, meas.timestamp, exc)
            if self.strict:
                raise
            return StepResult(StepStatus.DEGENERATE, meas.sensor_type, dt=dt, fault=str(exc))

        self._state = new_state
        self.last_prediction = prediction
        if meas.sensor_type is SensorType.RADAR:
            self.nis_radar.append(metrics.nis)
        else:
            self.nis_laser.append(metrics.nis)

        return StepResult(status, meas.sensor_type, dt=dt, nis=metrics.nis)

    def nis_report(self, stream: Optional[TextIO] = None) -> None:
        """Write the NIS sequences as CSV (Num,Radar,Lidar)."""
        write_nis_report(self.nis_radar, self.nis_laser, stream)

    def __repr__(self):
        if not self.is_initialized:
            return "CTRVFusionTracker(uninitialized)"
        return (f"CTRVFusionTracker(t={self._state.timestamp_us} us, "
                f"x={np.array2string(self._state.x, precision=3)}, "
                f"radar={len(self.nis_radar)}, laser={len(self.nis_laser)})")
