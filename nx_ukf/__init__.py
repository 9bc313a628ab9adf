"""NX-UKF v1.0.0: CTRV Unscented Kalman Filter for lidar/radar fusion.

Estimates [px, py, v, yaw, yaw_rate] of a single object from asynchronous
lidar (position) and radar (range, bearing, range-rate) measurements.

Quick Start::

    from nx_ukf import CTRVFusionTracker, MeasurementPackage
    tracker = CTRVFusionTracker()
    tracker.process_measurement(MeasurementPackage.laser(0.31, 0.58, 1477010443000000))
    tracker.process_measurement(MeasurementPackage.radar(1.01, 0.55, 2.0, 1477010443050000))
    print(tracker.x)
    tracker.nis_report()

Nexellum d.o.o. — Dr. Mladen Mešter — mladen@nexellum.com
"""

__version__ = "1.0.0"
__author__ = "Dr. Mladen Mešter"
__email__ = "mladen@nexellum.com"
__license__ = "AGPL-3.0-or-later"

# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------
from .ukf import (
    CTRVFusionTracker,
    UnscentedKalmanFilter,
    UKFState,
    Prediction,
    UpdateMetrics,
    StepStatus,
    StepResult,
)
from .errors import (
    NumericalFaultError,
    CovarianceNotPositiveDefiniteError,
    IllConditionedUpdateError,
)
from .config import UKFConfig, load_config
from .measurement import MeasurementPackage, SensorType

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
from .sigma_points import (
    N_X, N_AUG, N_SIGMA, LAMBDA,
    compute_weights,
    generate_augmented_sigma_points,
)
from .ctrv import propagate_sigma_points, ctrv_transition
from .sensor_models import MeasurementModel, LidarModel, RadarModel, make_sensor_models
from .coords import normalize_angle, cartesian_to_polar, polar_to_cartesian

# ---------------------------------------------------------------------------
# Diagnostics & data
# ---------------------------------------------------------------------------
from .diagnostics import write_nis_report, nis_threshold, summarize_nis, NISSummary
from .metrics import compute_rmse, state_to_cartesian
from .datasets import (
    LabeledMeasurement,
    SyntheticCTRVScenario,
    load_measurement_log,
    save_measurement_log,
    read_measurements,
)

__all__ = [
    "__version__",
    # Filter
    "CTRVFusionTracker", "UnscentedKalmanFilter", "UKFState", "Prediction",
    "UpdateMetrics", "StepStatus", "StepResult",
    "NumericalFaultError", "CovarianceNotPositiveDefiniteError", "IllConditionedUpdateError",
    "UKFConfig", "load_config", "MeasurementPackage", "SensorType",
    # Models
    "N_X", "N_AUG", "N_SIGMA", "LAMBDA",
    "compute_weights", "generate_augmented_sigma_points",
    "propagate_sigma_points", "ctrv_transition",
    "MeasurementModel", "LidarModel", "RadarModel", "make_sensor_models",
    "normalize_angle", "cartesian_to_polar", "polar_to_cartesian",
    # Diagnostics & data
    "write_nis_report", "nis_threshold", "summarize_nis", "NISSummary",
    "compute_rmse", "state_to_cartesian",
    "LabeledMeasurement", "SyntheticCTRVScenario",
    "load_measurement_log", "save_measurement_log", "read_measurements",
]
