"""
NX-UKF Measurement Records
===========================
Uniform measurement record handed to the tracker by the ingestion layer.

Validation happens here, at the boundary: a record that reaches the
filter always has the right length for its kind, finite values and a
non-negative integer timestamp in microseconds.
"""

import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Union


class SensorType(Enum):
    """Observation kinds."""
    LASER = "L"     # Direct position [px, py]
    RADAR = "R"     # Range, bearing, range-rate [ρ, φ, ρ̇]

    @property
    def n_z(self) -> int:
        return 2 if self is SensorType.LASER else 3

    @classmethod
    def parse(cls, token: Union[str, 'SensorType']) -> 'SensorType':
        """Accept 'L'/'R', 'laser'/'radar' (any case) or a SensorType."""
        if isinstance(token, cls):
            return token
        key = str(token).strip().upper()
        for member in cls:
            if key in (member.value, member.name):
                return member
        if key == 'LIDAR':
            return cls.LASER
        raise ValueError(f"Unknown sensor type {token!r}")


@dataclass
class MeasurementPackage:
    """One observation: kind, raw values and timestamp [µs]."""
    sensor_type: SensorType
    raw_measurements: np.ndarray
    timestamp: int

    def __post_init__(self):
        self.sensor_type = SensorType.parse(self.sensor_type)

        z = np.asarray(self.raw_measurements, dtype=np.float64).reshape(-1)
        expected = self.sensor_type.n_z
        if z.size != expected:
            raise ValueError(
                f"{self.sensor_type.name} measurement needs {expected} values, got {z.size}")
        if not np.all(np.isfinite(z)):
            raise ValueError(f"{self.sensor_type.name} measurement has non-finite values: {z}")
        self.raw_measurements = z

        if isinstance(self.timestamp, (bool, np.bool_)):
            raise ValueError("timestamp must be an integer number of microseconds")
        if isinstance(self.timestamp, (float, np.floating)):
            if not float(self.timestamp).is_integer():
                raise ValueError(f"timestamp must be whole microseconds, got {self.timestamp}")
        try:
            self.timestamp = int(self.timestamp)
        except (TypeError, ValueError):
            raise ValueError(f"timestamp must be an integer, got {self.timestamp!r}") from None
        if self.timestamp < 0:
            raise ValueError(f"timestamp must be >= 0, got {self.timestamp}")

    @classmethod
    def laser(cls, px: float, py: float, timestamp: int) -> 'MeasurementPackage':
        return cls(SensorType.LASER, np.array([px, py]), timestamp)

    @classmethod
    def radar(cls, rho: float, phi: float, rho_dot: float,
              timestamp: int) -> 'MeasurementPackage':
        return cls(SensorType.RADAR, np.array([rho, phi, rho_dot]), timestamp)

    @classmethod
    def from_values(cls, sensor: Union[str, SensorType], values: Sequence[float],
                    timestamp: int) -> 'MeasurementPackage':
        return cls(SensorType.parse(sensor), np.asarray(values, dtype=np.float64), timestamp)

    @property
    def is_laser(self) -> bool:
        return self.sensor_type is SensorType.LASER

    @property
    def is_radar(self) -> bool:
        return self.sensor_type is SensorType.RADAR
