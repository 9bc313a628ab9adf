"""NX-UKF Dataset Adapters: measurement logs and synthetic CTRV scenarios
=====================================================================

Measurement log format (one measurement per line, whitespace/tab separated)::

    L  px  py        timestamp  gt_px gt_py gt_vx gt_vy [gt_yaw gt_yawrate]
    R  rho phi rho_dot timestamp gt_px gt_py gt_vx gt_vy [gt_yaw gt_yawrate]

Timestamps are integer microseconds and must be non-decreasing. Ground
truth columns are optional as a block (4 or 6 values, or none).

Each adapter produces ``LabeledMeasurement`` records: a validated
``MeasurementPackage`` plus the ground-truth vector if present.

Author: Dr. Mladen Mešter / Nexellum d.o.o.
"""

from __future__ import annotations
import csv
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .config import UKFConfig
from .coords import cartesian_to_polar
from .ctrv import ctrv_transition
from .measurement import MeasurementPackage, SensorType


@dataclass
class LabeledMeasurement:
    """A measurement with optional ground truth [px, py, vx, vy(, yaw, yaw_rate)]."""
    measurement: MeasurementPackage
    ground_truth: Optional[np.ndarray] = None
    metadata: Dict = field(default_factory=dict)

    @property
    def has_truth(self) -> bool:
        return self.ground_truth is not None


def parse_measurement_line(line: str, line_no: int = 0) -> Optional[LabeledMeasurement]:
    """Parse one log line; blank lines and '#' comments return None."""
    tokens = line.split()
    if not tokens or tokens[0].startswith('#'):
        return None

    where = f"line {line_no}" if line_no else "measurement line"
    try:
        sensor = SensorType.parse(tokens[0])
    except ValueError as exc:
        raise ValueError(f"{where}: {exc}") from None

    n_z = sensor.n_z
    n_truth = len(tokens) - 1 - n_z - 1
    if n_truth not in (0, 4, 6):
        raise ValueError(
            f"{where}: {sensor.name} line needs {n_z} values, a timestamp and "
            f"0, 4 or 6 ground-truth values; got {len(tokens) - 1} fields")

    try:
        values = [float(tok) for tok in tokens[1:1 + n_z]]
        timestamp = int(tokens[1 + n_z])
        truth = [float(tok) for tok in tokens[2 + n_z:]]
    except ValueError as exc:
        raise ValueError(f"{where}: {exc}") from None

    try:
        meas = MeasurementPackage(sensor, np.array(values), timestamp)
    except ValueError as exc:
        raise ValueError(f"{where}: {exc}") from None

    return LabeledMeasurement(
        measurement=meas,
        ground_truth=np.array(truth) if truth else None,
        metadata={'line': line_no},
    )


def read_measurements(lines: Iterable[str]) -> List[LabeledMeasurement]:
    """Parse a sequence of log lines, enforcing non-decreasing timestamps."""
    records = []
    last_t = None
    for line_no, line in enumerate(lines, start=1):
        rec = parse_measurement_line(line, line_no)
        if rec is None:
            continue
        t = rec.measurement.timestamp
        if last_t is not None and t < last_t:
            raise ValueError(
                f"line {line_no}: timestamp {t} precedes previous timestamp {last_t}")
        last_t = t
        records.append(rec)
    return records


def load_measurement_log(filepath: str) -> List[LabeledMeasurement]:
    """Load a lidar/radar measurement log (see module docstring)."""
    with open(filepath, 'r', encoding='utf-8') as f:
        return read_measurements(f)


def save_measurement_log(records: Iterable[LabeledMeasurement], filepath: str) -> None:
    """Write records in the measurement log format (tab separated)."""
    with open(filepath, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f, delimiter='\t', lineterminator='\n')
        for rec in records:
            meas = rec.measurement
            row = [meas.sensor_type.value]
            row += [repr(float(v)) for v in meas.raw_measurements]
            row.append(meas.timestamp)
            if rec.ground_truth is not None:
                row += [repr(float(v)) for v in rec.ground_truth]
            writer.writerow(row)


class SyntheticCTRVScenario:
    """Reproducible single-object CTRV scenario with alternating lidar/radar.

    The object follows a CTRV trajectory whose yaw rate varies sinusoidally
    (an S-turn) while its speed drifts slowly. Measurements carry Gaussian
    noise with the configured sensor standard deviations.

    Usage::

        scenario = SyntheticCTRVScenario(seed=7)
        for rec in scenario.generate(n_steps=200):
            tracker.process_measurement(rec.measurement)
    """

    def __init__(self, config: Optional[UKFConfig] = None, seed: int = 42,
                 dt: float = 0.05, start_us: int = 1_477_010_443_000_000):
        self.config = config or UKFConfig()
        self.rng = np.random.RandomState(seed)
        self.dt = dt
        self.start_us = start_us

    def trajectory(self, n_steps: int, x0: Optional[np.ndarray] = None,
                   turn_amplitude: float = 0.55, turn_period: float = 8.0,
                   accel: float = 0.3) -> np.ndarray:
        """Noise-free truth states, shape (n_steps, 5)."""
        x = np.array([0.6, 0.6, 5.2, 0.0, 0.0]) if x0 is None else np.array(x0, dtype=float)
        states = np.empty((n_steps, 5))
        for k in range(n_steps):
            t = k * self.dt
            x[4] = turn_amplitude * np.sin(2.0 * np.pi * t / turn_period)
            x[2] = max(x[2] + accel * np.cos(2.0 * np.pi * t / turn_period) * self.dt, 0.0)
            states[k] = x
            x = ctrv_transition(x, self.dt, self.config.yaw_rate_epsilon)
        return states

    def measure(self, truth: np.ndarray, sensor: SensorType, timestamp: int) -> MeasurementPackage:
        """Noisy measurement of a truth state."""
        cfg = self.config
        px, py, v, yaw = truth[:4]
        if sensor is SensorType.LASER:
            z = np.array([px, py]) + self.rng.randn(2) * [cfg.std_laspx, cfg.std_laspy]
        else:
            z = cartesian_to_polar(px, py, v * np.cos(yaw), v * np.sin(yaw), cfg.min_range)
            z = z + self.rng.randn(3) * [cfg.std_radr, cfg.std_radphi, cfg.std_radrd]
        return MeasurementPackage(sensor, z, timestamp)

    def generate(self, n_steps: int = 500, **trajectory_kwargs) -> List[LabeledMeasurement]:
        """Alternating L/R measurements with [px, py, vx, vy, yaw, yaw_rate] truth."""
        states = self.trajectory(n_steps, **trajectory_kwargs)
        records = []
        for k, truth in enumerate(states):
            sensor = SensorType.LASER if k % 2 == 0 else SensorType.RADAR
            timestamp = self.start_us + int(round(k * self.dt * 1e6))
            px, py, v, yaw, yawd = truth
            gt = np.array([px, py, v * np.cos(yaw), v * np.sin(yaw), yaw, yawd])
            records.append(LabeledMeasurement(
                measurement=self.measure(truth, sensor, timestamp),
                ground_truth=gt,
                metadata={'scenario': 'ctrv_s_turn', 'step': k},
            ))
        return records
