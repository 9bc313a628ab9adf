"""
Tests for NX-UKF measurement records, log adapters, diagnostics and demo
=========================================================================
pytest tests/test_nx_ukf_datasets.py -v
"""

import io

import numpy as np
import pytest
from numpy.testing import assert_allclose
import sys, os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from nx_ukf.config import UKFConfig
from nx_ukf.datasets import (
    LabeledMeasurement, SyntheticCTRVScenario, load_measurement_log,
    parse_measurement_line, read_measurements, save_measurement_log,
)
from nx_ukf.demo import main, run_tracker
from nx_ukf.diagnostics import (
    LASER_DOF, RADAR_DOF, nis_threshold, summarize_nis, write_nis_report,
)
from nx_ukf.measurement import MeasurementPackage, SensorType
from nx_ukf.metrics import compute_rmse, state_to_cartesian
from nx_ukf.ukf import CTRVFusionTracker


LASER_LINE = "L\t3.122427e-01\t5.803398e-01\t1477010443000000\t6.000000e-01\t6.000000e-01\t5.199937e+00\t0\t0\t6.911322e-03"
RADAR_LINE = "R\t1.014892e+00\t5.543292e-01\t4.892807e+00\t1477010443050000\t8.599968e-01\t6.000449e-01\t5.199747e+00\t1.796856e-03\t3.455661e-04\t1.382155e-02"


# ===== MEASUREMENT RECORDS =====

class TestMeasurementPackage:
    def test_constructors(self):
        m = MeasurementPackage.laser(1.0, 2.0, 100)
        assert m.is_laser and not m.is_radar
        assert m.raw_measurements.dtype == np.float64
        r = MeasurementPackage.radar(1.0, 0.1, -0.5, 200)
        assert r.is_radar
        assert r.raw_measurements.shape == (3,)

    def test_from_values_parses_sensor(self):
        m = MeasurementPackage.from_values('lidar', [1.0, 2.0], 0)
        assert m.sensor_type is SensorType.LASER
        m = MeasurementPackage.from_values('R', [1.0, 0.2, 0.3], 0)
        assert m.sensor_type is SensorType.RADAR

    @pytest.mark.parametrize("sensor,values,timestamp", [
        (SensorType.LASER, [1.0, 2.0, 3.0], 0),
        (SensorType.RADAR, [1.0, 2.0], 0),
        (SensorType.LASER, [1.0, np.nan], 0),
        (SensorType.RADAR, [1.0, np.inf, 0.0], 0),
        (SensorType.LASER, [1.0, 2.0], -1),
        (SensorType.LASER, [1.0, 2.0], 1.5),
        (SensorType.LASER, [1.0, 2.0], "soon"),
        ('X', [1.0, 2.0], 0),
    ])
    def test_rejects_invalid(self, sensor, values, timestamp):
        with pytest.raises(ValueError):
            MeasurementPackage(sensor, np.array(values, dtype=float), timestamp)

    def test_whole_float_timestamp_accepted(self):
        assert MeasurementPackage.laser(0.0, 0.0, 1000.0).timestamp == 1000


# ===== LOG ADAPTERS =====

class TestMeasurementLog:
    def test_parse_laser_line(self):
        rec = parse_measurement_line(LASER_LINE, 1)
        assert rec.measurement.sensor_type is SensorType.LASER
        assert_allclose(rec.measurement.raw_measurements, [0.3122427, 0.5803398])
        assert rec.measurement.timestamp == 1477010443000000
        assert rec.ground_truth.shape == (6,)
        assert rec.metadata['line'] == 1

    def test_parse_radar_line(self):
        rec = parse_measurement_line(RADAR_LINE)
        assert rec.measurement.sensor_type is SensorType.RADAR
        assert rec.measurement.raw_measurements[2] == pytest.approx(4.892807)
        assert rec.ground_truth[0] == pytest.approx(0.8599968)

    def test_truth_optional(self):
        rec = parse_measurement_line("R 1.0 0.1 0.0 500")
        assert rec.ground_truth is None
        assert not rec.has_truth
        rec = parse_measurement_line("L 1.0 2.0 500 1.0 2.0 0.5 0.5")
        assert rec.ground_truth.shape == (4,)

    def test_blank_and_comment_lines(self):
        assert parse_measurement_line("") is None
        assert parse_measurement_line("   \n") is None
        assert parse_measurement_line("# sensor values timestamp") is None

    @pytest.mark.parametrize("line", [
        "Q 1.0 2.0 100",
        "L 1.0 2.0",
        "L 1.0 2.0 100 1.0",
        "R 1.0 abc 0.0 100",
        "L 1.0 2.0 100.5",
        "L 1.0 nan 100",
    ])
    def test_malformed_lines_name_the_line(self, line):
        with pytest.raises(ValueError, match="line 7"):
            parse_measurement_line(line, 7)

    def test_read_rejects_decreasing_timestamps(self):
        lines = ["L 1.0 2.0 200", "L 1.0 2.0 100"]
        with pytest.raises(ValueError, match="line 2"):
            read_measurements(lines)

    def test_read_accepts_equal_timestamps(self):
        records = read_measurements(["L 1.0 2.0 100", "", "R 1.0 0.1 0.0 100"])
        assert len(records) == 2

    def test_save_and_load(self, tmp_path):
        records = SyntheticCTRVScenario(seed=1).generate(n_steps=6)
        records.append(LabeledMeasurement(MeasurementPackage.laser(1.0, 2.0, 10 ** 16)))
        path = str(tmp_path / "obj_pose.txt")
        save_measurement_log(records, path)

        loaded = load_measurement_log(path)
        assert len(loaded) == len(records)
        for a, b in zip(records, loaded):
            assert a.measurement.sensor_type is b.measurement.sensor_type
            assert a.measurement.timestamp == b.measurement.timestamp
            assert np.array_equal(a.measurement.raw_measurements, b.measurement.raw_measurements)
        assert loaded[-1].ground_truth is None
        assert np.array_equal(loaded[0].ground_truth, records[0].ground_truth)


class TestSyntheticScenario:
    def test_alternating_sensors(self):
        records = SyntheticCTRVScenario(seed=0).generate(n_steps=10)
        kinds = [r.measurement.sensor_type for r in records]
        assert kinds[::2] == [SensorType.LASER] * 5
        assert kinds[1::2] == [SensorType.RADAR] * 5

    def test_timestamps(self):
        scenario = SyntheticCTRVScenario(seed=0, dt=0.05, start_us=1000)
        stamps = [r.measurement.timestamp for r in scenario.generate(n_steps=5)]
        assert stamps == [1000, 51000, 101000, 151000, 201000]

    def test_reproducible(self):
        a = SyntheticCTRVScenario(seed=9).generate(n_steps=20)
        b = SyntheticCTRVScenario(seed=9).generate(n_steps=20)
        for ra, rb in zip(a, b):
            assert np.array_equal(ra.measurement.raw_measurements, rb.measurement.raw_measurements)

    def test_truth_layout(self):
        rec = SyntheticCTRVScenario(seed=0).generate(n_steps=1)[0]
        px, py, vx, vy, yaw, yawd = rec.ground_truth
        assert (px, py) == (0.6, 0.6)
        assert np.hypot(vx, vy) == pytest.approx(5.2, abs=0.05)

    def test_trajectory_leaves_start_state_alone(self):
        x0 = np.array([0.0, 0.0, 5.0, 0.0, 0.0])
        states = SyntheticCTRVScenario().trajectory(10, x0=x0)
        assert_allclose(x0, [0.0, 0.0, 5.0, 0.0, 0.0])
        assert states[0, 2] == pytest.approx(5.015)

    def test_trajectory_shape(self):
        states = SyntheticCTRVScenario().trajectory(30)
        assert states.shape == (30, 5)
        assert np.all(states[:, 2] >= 0.0)


# ===== DIAGNOSTICS =====

class TestNISReport:
    def test_header_and_rows(self):
        out = io.StringIO()
        write_nis_report([1.5, 2.25], [0.5, 0.75], out)
        assert out.getvalue().splitlines() == [
            "Num,Radar,Lidar",
            "0,1.5,0.5",
            "1,2.25,0.75",
        ]

    def test_unequal_lengths(self):
        out = io.StringIO()
        write_nis_report([1.0], [2.0, 3.0, 4.0], out)
        lines = out.getvalue().splitlines()
        assert len(lines) == 4
        assert lines[2] == "1,,3.0"
        assert lines[3] == "2,,4.0"

    def test_empty(self):
        out = io.StringIO()
        write_nis_report([], [], out)
        assert out.getvalue() == "Num,Radar,Lidar\n"

    def test_full_precision(self):
        out = io.StringIO()
        value = 1.0 / 3.0
        write_nis_report([value], [value], out)
        assert float(out.getvalue().splitlines()[1].split(",")[1]) == value

    def test_tracker_report(self, capsys):
        tracker = CTRVFusionTracker()
        for rec in SyntheticCTRVScenario(seed=2).generate(n_steps=5):
            tracker.process_measurement(rec.measurement)
        tracker.nis_report()
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "Num,Radar,Lidar"
        assert len(lines) == 1 + 3


class TestConsistency:
    def test_thresholds(self):
        assert nis_threshold(RADAR_DOF) == pytest.approx(7.815, abs=1e-3)
        assert nis_threshold(LASER_DOF) == pytest.approx(5.991, abs=1e-3)

    def test_bad_confidence(self):
        with pytest.raises(ValueError):
            nis_threshold(3, 1.5)

    def test_summary(self):
        summary = summarize_nis([1.0, 2.0, 3.0, 10.0], RADAR_DOF)
        assert summary.count == 4
        assert summary.mean == pytest.approx(4.0)
        assert summary.fraction_above == pytest.approx(0.25)
        assert not summary.consistent
        assert "n=4" in str(summary)

    def test_empty_summary(self):
        summary = summarize_nis([], LASER_DOF)
        assert summary.count == 0
        assert not summary.consistent

    def test_synthetic_run_is_consistent(self):
        tracker, _, _ = run_tracker(SyntheticCTRVScenario(seed=4).generate(n_steps=400))
        radar = summarize_nis(tracker.nis_radar, RADAR_DOF)
        laser = summarize_nis(tracker.nis_laser, LASER_DOF)
        assert 0.5 < radar.mean < 8.0
        assert 0.3 < laser.mean < 6.0


# ===== METRICS =====

class TestMetrics:
    def test_state_to_cartesian(self):
        assert_allclose(state_to_cartesian(np.array([1.0, 2.0, 2.0, np.pi / 2, 0.1])),
                        [1.0, 2.0, 0.0, 2.0], atol=1e-12)

    def test_rmse(self):
        est = [np.array([1.0, 1.0]), np.array([3.0, 1.0])]
        gt = [np.array([0.0, 1.0]), np.array([2.0, 1.0])]
        assert_allclose(compute_rmse(est, gt), [1.0, 0.0])

    def test_rmse_errors(self):
        with pytest.raises(ValueError):
            compute_rmse([], [])
        with pytest.raises(ValueError):
            compute_rmse([np.zeros(4)], [np.zeros(3)])


# ===== DEMO =====

class TestDemo:
    def test_run_tracker(self):
        records = SyntheticCTRVScenario(seed=5).generate(n_steps=300)
        tracker, estimates, truths = run_tracker(records, UKFConfig())
        assert len(estimates) == len(truths) == 300
        rmse = compute_rmse(estimates, truths)
        assert rmse[0] < 0.5 and rmse[1] < 0.5

    def test_main_synthetic(self, capsys):
        main(['--steps', '60', '--seed', '3'])
        out = capsys.readouterr().out
        assert "60 measurements" in out
        assert "RMSE" in out
        assert "Radar NIS" in out

    def test_main_nis_and_log(self, tmp_path, capsys):
        path = str(tmp_path / "log.txt")
        save_measurement_log(SyntheticCTRVScenario(seed=6).generate(n_steps=20), path)
        main(['--data', path, '--nis'])
        out = capsys.readouterr().out
        assert "Num,Radar,Lidar" in out
        assert path in out

    def test_main_empty_log(self, tmp_path, capsys):
        path = tmp_path / "empty.txt"
        path.write_text("# no measurements\n")
        main(['--data', str(path)])
        out = capsys.readouterr().out
        assert "0 measurements" in out
        assert "No measurements to process" in out
