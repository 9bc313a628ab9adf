"""
NX-UKF Sensor Measurement Models
=================================
Observation models plugged into the generic unscented correction.

Each model supplies:
  - ``project(Xsig)``: state sigma points (5 × n) → measurement space (n_z × n)
  - ``noise_covariance``: fixed diagonal R from the configuration
  - ``angle_index``: measurement component wrapped into (-π, π], or None

Author: Dr. Mladen Mešter / Nexellum d.o.o.
"""

import numpy as np
from typing import Dict, Optional

from .config import UKFConfig
from .measurement import SensorType


class MeasurementModel:
    """Base observation model."""
    sensor_type: SensorType = None
    n_z: int = 0
    angle_index: Optional[int] = None

    def __init__(self, config: UKFConfig):
        self.config = config
        self.noise_covariance = self._noise_covariance(config)

    def _noise_covariance(self, config: UKFConfig) -> np.ndarray:
        raise NotImplementedError

    def project(self, Xsig: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}(n_z={self.n_z})"


class LidarModel(MeasurementModel):
    """Lidar: direct position [px, py]."""
    sensor_type = SensorType.LASER
    n_z = 2

    def _noise_covariance(self, config):
        return config.laser_noise_covariance()

    def project(self, Xsig):
        return np.array(Xsig[:2], dtype=np.float64)


class RadarModel(MeasurementModel):
    """Radar: [ρ, φ, ρ̇] with ρ̇ the radial component of the velocity."""
    sensor_type = SensorType.RADAR
    n_z = 3
    angle_index = 1

    def _noise_covariance(self, config):
        return config.radar_noise_covariance()

    def project(self, Xsig):
        p_x, p_y, v, yaw = Xsig[0], Xsig[1], Xsig[2], Xsig[3]
        v_x = np.cos(yaw) * v
        v_y = np.sin(yaw) * v

        rho = np.sqrt(p_x * p_x + p_y * p_y)
        Zsig = np.empty((3, Xsig.shape[1]))
        Zsig[0] = rho
        Zsig[1] = np.arctan2(p_y, p_x)
        Zsig[2] = (p_x * v_x + p_y * v_y) / np.maximum(rho, self.config.min_range)
        return Zsig


def make_sensor_models(config: UKFConfig) -> Dict[SensorType, MeasurementModel]:
    """One model per sensor kind."""
    return {
        SensorType.LASER: LidarModel(config),
        SensorType.RADAR: RadarModel(config),
    }
