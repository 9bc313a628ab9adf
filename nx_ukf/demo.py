#!/usr/bin/env python3
"""
NX-UKF Demo — Lidar/Radar Fusion Run
=====================================

Run with:
    python -m nx_ukf.demo                          # Synthetic S-turn scenario
    python -m nx_ukf.demo --data obj_pose.txt      # Replay a measurement log
    python -m nx_ukf.demo --nis                    # Also print the NIS CSV
    python -m nx_ukf.demo --plot --save            # Save PNGs instead of display

Prints position/velocity RMSE against ground truth and the χ² consistency
of the radar and lidar NIS sequences.

Nexellum d.o.o. — Dr. Mladen Mešter — mladen@nexellum.com
"""

import argparse
import logging
import os
import sys
import numpy as np

from .config import UKFConfig, load_config
from .datasets import SyntheticCTRVScenario, load_measurement_log
from .diagnostics import LASER_DOF, RADAR_DOF, summarize_nis, write_nis_report
from .metrics import compute_rmse, state_to_cartesian
from .ukf import CTRVFusionTracker, StepStatus

logger = logging.getLogger(__name__)


def run_tracker(records, config=None):
    """Feed records through a fresh tracker.

    Returns:
        (tracker, estimates, truths) where estimates/truths are lists of
        [px, py, vx, vy] for every record carrying ground truth.
    """
    tracker = CTRVFusionTracker(config)
    estimates, truths = [], []
    n_degenerate = 0

    for rec in records:
        result = tracker.process_measurement(rec.measurement)
        if result.status is StepStatus.DEGENERATE:
            n_degenerate += 1
        if rec.ground_truth is not None and tracker.is_initialized:
            estimates.append(state_to_cartesian(tracker.x))
            truths.append(rec.ground_truth[:4])

    if n_degenerate:
        logger.warning("%d degenerate ticks out of %d", n_degenerate, len(records))
    return tracker, estimates, truths


def plot_run(estimates, truths, tracker, save_path=None):
    """Trajectory and NIS plots."""
    import matplotlib.pyplot as plt

    est = np.asarray(estimates)
    gt = np.asarray(truths)

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(14, 6))
    ax1.plot(gt[:, 0], gt[:, 1], 'k-', lw=1.5, label='Ground truth')
    ax1.plot(est[:, 0], est[:, 1], 'c--', lw=1.2, label='UKF estimate')
    ax1.set_xlabel('px (m)')
    ax1.set_ylabel('py (m)')
    ax1.set_aspect('equal', adjustable='datalim')
    ax1.legend(loc='best', fontsize=8)
    ax1.grid(True, alpha=0.3)

    radar_thr = summarize_nis(tracker.nis_radar, RADAR_DOF).threshold
    laser_thr = summarize_nis(tracker.nis_laser, LASER_DOF).threshold
    ax2.plot(tracker.nis_radar, color='#d62728', lw=0.8, label='Radar NIS')
    ax2.plot(tracker.nis_laser, color='#1f77b4', lw=0.8, label='Lidar NIS')
    ax2.axhline(radar_thr, color='#d62728', ls=':', label=f'χ²₃ 95% = {radar_thr:.2f}')
    ax2.axhline(laser_thr, color='#1f77b4', ls=':', label=f'χ²₂ 95% = {laser_thr:.2f}')
    ax2.set_xlabel('Update')
    ax2.set_ylabel('NIS')
    ax2.legend(loc='upper right', fontsize=8)
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()
    if save_path:
        plt.savefig(save_path, dpi=150)
        print(f"  Saved: {save_path}")
    return fig


def run_demo(data=None, config_path=None, steps=500, seed=42,
             show_nis=False, plot=False, save=False, output_dir='.'):
    """Run one scenario end to end and print the summary.

    Returns the tracker, or None when the log holds no measurements.
    """
    config = load_config(config_path) if config_path else UKFConfig()

    if data:
        records = load_measurement_log(data)
        source = data
    else:
        records = SyntheticCTRVScenario(config, seed=seed).generate(n_steps=steps)
        source = f"synthetic CTRV S-turn (seed={seed})"

    print(f"━━━ NX-UKF: {len(records)} measurements from {source} ━━━")
    if not records:
        print("  No measurements to process")
        return None
    tracker, estimates, truths = run_tracker(records, config)
    print(f"  Final state: {np.array2string(tracker.x, precision=3)}")

    if estimates:
        rmse = compute_rmse(estimates, truths)
        print(f"  RMSE px={rmse[0]:.4f}  py={rmse[1]:.4f}  vx={rmse[2]:.4f}  vy={rmse[3]:.4f}")

    print(f"  Radar NIS: {summarize_nis(tracker.nis_radar, RADAR_DOF)}")
    print(f"  Lidar NIS: {summarize_nis(tracker.nis_laser, LASER_DOF)}")

    if show_nis:
        print()
        write_nis_report(tracker.nis_radar, tracker.nis_laser, sys.stdout)

    if plot and estimates:
        import matplotlib
        if save:
            matplotlib.use('Agg')
        import matplotlib.pyplot as plt

        path = None
        if save:
            os.makedirs(output_dir, exist_ok=True)
            path = os.path.join(output_dir, 'nx_ukf_demo.png')
        plot_run(estimates, truths, tracker, save_path=path)
        if not save:
            try:
                plt.show()
            except Exception:
                print("  (No display available, use --save to export PNGs)")

    return tracker


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='NX-UKF Demo — CTRV Unscented Kalman Filter, lidar/radar fusion',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m nx_ukf.demo                           # Synthetic scenario
  python -m nx_ukf.demo --data obj_pose.txt --nis # Replay a log, print NIS CSV
  python -m nx_ukf.demo --config config/ukf_default.yaml --plot --save
""")
    parser.add_argument('--data', '-d', type=str, default=None,
                        help='Measurement log to replay (default: synthetic scenario)')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='YAML filter configuration')
    parser.add_argument('--steps', '-n', type=int, default=500,
                        help='Synthetic scenario length (default: 500)')
    parser.add_argument('--seed', type=int, default=42,
                        help='Synthetic scenario seed (default: 42)')
    parser.add_argument('--nis', action='store_true',
                        help='Print the NIS report as CSV')
    parser.add_argument('--plot', action='store_true',
                        help='Plot trajectory and NIS (requires matplotlib)')
    parser.add_argument('--save', action='store_true',
                        help='Save PNG files instead of displaying')
    parser.add_argument('--output-dir', '-o', type=str, default='.',
                        help='Output directory for PNGs (default: current)')
    parser.add_argument('--log-level', type=str, default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: WARNING)')

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    run_demo(data=args.data, config_path=args.config, steps=args.steps, seed=args.seed,
             show_nis=args.nis, plot=args.plot, save=args.save, output_dir=args.output_dir)


if __name__ == '__main__':
    main()
