"""
Outlier Filter
==============

Median Absolute Deviation (MAD) outlier detection over binary outcomes.

Outcomes are encoded 1 (true) / 0 (false). The median and MAD use the
upper median (``sorted(values)[n // 2]``), so an even split resolves
to 1 and every point is kept (5/5: median 1, MAD 1, threshold 2).

With binary values the MAD collapses to 0 as soon as a strict majority
agrees, which would make ``k * MAD`` meaningless. In that case, when
some points still deviate, the scale falls back to the mean absolute
deviation times sqrt(pi/2) (its consistency constant for normal data).
This flags the minority only when it holds less than ~40% of answers.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from permissionless_oracle.domain.entities import DataPoint

DEFAULT_K = 2.0
MEAN_AD_CONSISTENCY = math.sqrt(math.pi / 2)  # ~1.2533


def upper_median(values: Sequence[float]) -> float:
    """Median that picks the upper middle element for even-sized input."""
    if not values:
        raise ValueError("median of empty sequence")
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


@dataclass
class OutlierReport:
    """Result of outlier detection for one research call."""

    median: float
    mad: float
    scale: float  # spread actually used for the threshold
    threshold: float  # k * scale
    inliers: list[DataPoint] = field(default_factory=list)
    outliers: list[DataPoint] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.mad == 0 and self.scale > 0


def detect_outliers(points: Sequence[DataPoint], k: float = DEFAULT_K) -> OutlierReport:
    """
    Split data points into inliers and outliers.

    A point is an outlier if ``|value - median| > k * scale`` where
    ``scale`` is the MAD, or the fallback described in the module
    docstring when the MAD is 0. When every point agrees nothing is
    flagged regardless of ``k``.
    """
    if not points:
        return OutlierReport(median=0.0, mad=0.0, scale=0.0, threshold=0.0)

    values = [float(p.encoded) for p in points]
    median = upper_median(values)
    deviations = [abs(v - median) for v in values]
    mad = upper_median(deviations)

    if mad > 0:
        scale = mad
    elif any(deviations):
        scale = MEAN_AD_CONSISTENCY * (sum(deviations) / len(deviations))
    else:
        # Unanimous
        return OutlierReport(
            median=median, mad=0.0, scale=0.0, threshold=0.0, inliers=list(points)
        )

    threshold = k * scale
    report = OutlierReport(median=median, mad=mad, scale=scale, threshold=threshold)
    for point, deviation in zip(points, deviations, strict=True):
        if deviation > threshold:
            report.outliers.append(point)
        else:
            report.inliers.append(point)
    return report
