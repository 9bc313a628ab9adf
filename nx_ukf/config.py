"""
NX-UKF Filter Configuration
============================
Immutable tuning and sensor parameters for the CTRV fusion filter.

Process-noise standard deviations are tuning knobs. Measurement-noise
standard deviations come from the sensor datasheets; overriding them is
allowed for experiments but raises a ``UserWarning``.

Configuration can be loaded from YAML::

    process_noise:
      std_a: 2.8
      std_yawdd: 1.1
    laser:
      enabled: true
    radar:
      enabled: true
    init:
      laser_var: [1.0, 1.0, 1.0]
    numerics:
      symmetrize_covariance: false

Author: Dr. Mladen Mešter / Nexellum d.o.o.
License: AGPL v3 / Commercial
"""

import math
import warnings
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np
import yaml


# =============================================================================
# SENSOR SPECIFICATION (datasheet values)
# =============================================================================

STD_LASPX = 0.15    # Laser position x [m]
STD_LASPY = 0.15    # Laser position y [m]
STD_RADR = 0.3      # Radar range [m]
STD_RADPHI = 0.03   # Radar bearing [rad]
STD_RADRD = 0.3     # Radar range-rate [m/s]

_SENSOR_SPEC = {
    'std_laspx': STD_LASPX,
    'std_laspy': STD_LASPY,
    'std_radr': STD_RADR,
    'std_radphi': STD_RADPHI,
    'std_radrd': STD_RADRD,
}

# YAML section → {yaml key: field name}
_SECTIONS = {
    'process_noise': {'std_a': 'std_a', 'std_yawdd': 'std_yawdd'},
    'laser': {'enabled': 'use_laser', 'std_px': 'std_laspx', 'std_py': 'std_laspy'},
    'radar': {'enabled': 'use_radar', 'std_r': 'std_radr',
              'std_phi': 'std_radphi', 'std_rd': 'std_radrd'},
    'init': {'laser_var': 'laser_init_var', 'radar_var': 'radar_init_var'},
    'numerics': {'yaw_rate_epsilon': 'yaw_rate_epsilon', 'min_range': 'min_range',
                 'symmetrize_covariance': 'symmetrize_covariance',
                 'max_innovation_condition': 'max_innovation_condition'},
}


@dataclass(frozen=True)
class UKFConfig:
    """Filter configuration, fixed for the lifetime of a tracker."""
    # Process noise (tunable)
    std_a: float = 2.8          # Longitudinal acceleration [m/s^2]
    std_yawdd: float = 1.1      # Yaw acceleration [rad/s^2]

    # Measurement noise (sensor specification)
    std_laspx: float = STD_LASPX
    std_laspy: float = STD_LASPY
    std_radr: float = STD_RADR
    std_radphi: float = STD_RADPHI
    std_radrd: float = STD_RADRD

    # Disabled sensors still initialize the filter
    use_laser: bool = True
    use_radar: bool = True

    # Initial variances of the components a first measurement cannot observe,
    # ordered (speed, yaw, yaw rate). None → std_radphi^2.
    laser_init_var: Tuple[Optional[float], ...] = (1.0, 1.0, 1.0)
    radar_init_var: Tuple[Optional[float], ...] = (1.0, None, None)

    # Numerics
    yaw_rate_epsilon: float = 0.001
    min_range: float = 1e-4
    symmetrize_covariance: bool = False
    max_innovation_condition: float = 1e12

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if f.type is float:
                try:
                    object.__setattr__(self, f.name, float(value))
                except (TypeError, ValueError):
                    raise ValueError(f"{f.name} must be a number, got {value!r}") from None
            elif f.type is bool and not isinstance(value, bool):
                raise ValueError(f"{f.name} must be true/false, got {value!r}")

        for name in ('std_a', 'std_yawdd'):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be finite and >= 0, got {value!r}")

        for name, spec in _SENSOR_SPEC.items():
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be finite and > 0, got {value!r}")
            if value != spec:
                warnings.warn(
                    f"{name}={value} differs from the sensor specification ({spec})",
                    UserWarning, stacklevel=3)

        for name in ('laser_init_var', 'radar_init_var'):
            variances = tuple(getattr(self, name))
            if len(variances) != 3:
                raise ValueError(f"{name} needs 3 entries (speed, yaw, yaw rate), "
                                 f"got {len(variances)}")
            for v in variances:
                if v is not None and (not math.isfinite(v) or v <= 0):
                    raise ValueError(f"{name} entries must be > 0 or None, got {v!r}")
            object.__setattr__(self, name, variances)

        if not self.yaw_rate_epsilon > 0:
            raise ValueError("yaw_rate_epsilon must be > 0")
        if not self.min_range > 0:
            raise ValueError("min_range must be > 0")
        if not self.max_innovation_condition > 1:
            raise ValueError("max_innovation_condition must be > 1")

    # ------------------------------------------------------------------
    # Noise matrices
    # ------------------------------------------------------------------

    def laser_noise_covariance(self) -> np.ndarray:
        """R for [px, py]."""
        return np.diag([self.std_laspx ** 2, self.std_laspy ** 2])

    def radar_noise_covariance(self) -> np.ndarray:
        """R for [ρ, φ, ρ̇]."""
        return np.diag([self.std_radr ** 2, self.std_radphi ** 2, self.std_radrd ** 2])

    def process_noise_covariance(self) -> np.ndarray:
        """Q for the augmented [ν_a, ν_yawdd] dimensions."""
        return np.diag([self.std_a ** 2, self.std_yawdd ** 2])

    def init_variances(self, radar: bool) -> Tuple[float, float, float]:
        """Resolved (speed, yaw, yaw rate) initial variances for a sensor kind."""
        raw = self.radar_init_var if radar else self.laser_init_var
        fallback = self.std_radphi ** 2
        return tuple(fallback if v is None else float(v) for v in raw)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    def with_overrides(self, **kwargs) -> 'UKFConfig':
        """Copy with selected fields replaced."""
        return replace(self, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'UKFConfig':
        """Build from a flat or sectioned mapping (see module docstring)."""
        if not data:
            return cls()

        valid = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key in _SECTIONS:
                if not isinstance(value, Mapping):
                    raise ValueError(f"Section '{key}' must be a mapping")
                mapping = _SECTIONS[key]
                for sub_key, sub_value in value.items():
                    if sub_key not in mapping:
                        raise ValueError(f"Unknown key '{key}.{sub_key}'")
                    kwargs[mapping[sub_key]] = sub_value
            elif key in valid:
                kwargs[key] = value
            else:
                raise ValueError(f"Unknown configuration key '{key}'")

        for name in ('laser_init_var', 'radar_init_var'):
            if name in kwargs:
                kwargs[name] = tuple(kwargs[name])
        return cls(**kwargs)


def load_config(path: str) -> UKFConfig:
    """Load a YAML configuration file. An empty file yields the defaults."""
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if data is not None and not isinstance(data, Mapping):
        raise ValueError(f"{path}: top level must be a mapping")
    return UKFConfig.from_dict(data)
