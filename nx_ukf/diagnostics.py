"""
NX-UKF Consistency Diagnostics
===============================
NIS (Normalized Innovation Squared) reporting and chi-square consistency.

For a consistent filter, NIS of an n_z-dimensional measurement follows a
χ²(n_z) distribution: roughly 5% of samples should exceed the 95%
threshold (7.815 for radar, 5.991 for lidar).

Author: Dr. Mladen Mešter, Nexellum d.o.o.
"""

import csv
import sys
import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence, TextIO

from scipy.stats import chi2

RADAR_DOF = 3
LASER_DOF = 2

NIS_HEADER = ("Num", "Radar", "Lidar")


def write_nis_report(nis_radar: Sequence[float], nis_laser: Sequence[float],
                     stream: Optional[TextIO] = None) -> None:
    """Write both NIS sequences as ``Num,Radar,Lidar`` CSV rows.

    Sequences of different length are reported up to the longer one; the
    missing cell is left empty.
    """
    if stream is None:
        stream = sys.stdout
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(NIS_HEADER)
    for i in range(max(len(nis_radar), len(nis_laser))):
        radar = repr(float(nis_radar[i])) if i < len(nis_radar) else ""
        laser = repr(float(nis_laser[i])) if i < len(nis_laser) else ""
        writer.writerow((i, radar, laser))


def nis_threshold(dof: int, confidence: float = 0.95) -> float:
    """χ² quantile for ``dof`` degrees of freedom."""
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")
    return float(chi2.ppf(confidence, dof))


@dataclass
class NISSummary:
    """Consistency summary of one NIS sequence."""
    count: int
    mean: float
    threshold: float
    fraction_above: float
    confidence: float

    @property
    def consistent(self) -> bool:
        """Exceedance rate within twice the nominal rate."""
        return self.count > 0 and self.fraction_above <= 2.0 * (1.0 - self.confidence)

    def __str__(self):
        return (f"n={self.count} mean={self.mean:.3f} "
                f"above χ²({self.confidence:.0%})={self.threshold:.3f}: "
                f"{self.fraction_above:.1%}")


def summarize_nis(values: Sequence[float], dof: int,
                  confidence: float = 0.95) -> NISSummary:
    threshold = nis_threshold(dof, confidence)
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return NISSummary(0, float('nan'), threshold, 0.0, confidence)
    return NISSummary(
        count=int(arr.size),
        mean=float(arr.mean()),
        threshold=threshold,
        fraction_above=float(np.mean(arr > threshold)),
        confidence=confidence,
    )
