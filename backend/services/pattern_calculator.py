"""
Pattern Calculator

Turns a window of historical carbon intensity samples into a
RegionPattern: population statistics, nearest-rank P20/P80 thresholds,
an hour-of-day profile and the overall trend.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

import numpy as np
import structlog

from models.carbon import HistoricalSample
from models.pattern import HOURS_PER_DAY, RegionPattern
from services.trend_analysis import trend_confidence, trend_direction


logger = structlog.get_logger(__name__)


class PatternError(Exception):
    """Base exception for pattern computation and storage failures"""
    pass


class InsufficientDataError(PatternError):
    """Raised when a region has fewer samples than the analysis floor"""

    def __init__(self, actual: int, required: int, region: Optional[str] = None):
        self.actual = actual
        self.required = required
        self.region = region
        where = f" for {region}" if region else ""
        super().__init__(
            f"Insufficient data{where}: {actual} samples, {required} required"
        )


class PatternComputationError(PatternError):
    """Raised when samples cannot be summarised into a valid pattern"""

    def __init__(self, region: str, cause: BaseException):
        self.region = region
        self.cause = cause
        super().__init__(f"Pattern computation for {region} failed: {cause}")


def nearest_rank_percentile(sorted_values: Sequence[float], k: float) -> float:
    """
    Nearest-rank percentile over an ascending sequence.

    ``sorted[floor(n * k / 100)]`` with no interpolation. The index is
    clamped to the last element so k=100 stays in range.
    """
    n = len(sorted_values)
    if n == 0:
        raise ValueError("cannot take a percentile of an empty sequence")
    index = min(int(n * k // 100), n - 1)
    return float(sorted_values[index])


def hourly_profile(samples: Sequence[HistoricalSample], default: float) -> tuple:
    """Average intensity per hour of day; hours with no data get ``default``"""
    totals = np.zeros(HOURS_PER_DAY, dtype=np.float64)
    counts = np.zeros(HOURS_PER_DAY, dtype=np.int64)

    for sample in samples:
        hour = sample.timestamp.hour
        totals[hour] += sample.carbon_intensity
        counts[hour] += 1

    return tuple(
        float(totals[hour] / counts[hour]) if counts[hour] else float(default)
        for hour in range(HOURS_PER_DAY)
    )


def compute_pattern(
    region: str,
    samples: Sequence[HistoricalSample],
    min_points: int,
    now: Optional[datetime] = None,
) -> RegionPattern:
    """
    Compute a regional pattern from samples in ascending timestamp order.

    Args:
        region: Region code the samples belong to
        samples: Historical samples, oldest first
        min_points: Minimum sample count required
        now: Timestamp recorded as ``last_updated`` (defaults to UTC now)

    Returns:
        A new immutable RegionPattern

    Raises:
        InsufficientDataError: If fewer than ``min_points`` samples
    """
    if len(samples) < min_points or not samples:
        raise InsufficientDataError(len(samples), min_points, region)

    values = np.fromiter(
        (s.carbon_intensity for s in samples), dtype=np.float64, count=len(samples)
    )

    mean = float(values.mean())
    # Population standard deviation (ddof=0)
    std_dev = float(values.std())

    sorted_values = tuple(float(v) for v in np.sort(values))

    return RegionPattern(
        region=region,
        last_updated=now or datetime.now(timezone.utc),
        samples=tuple(samples),
        sorted_intensities=sorted_values,
        mean=mean,
        std_dev=std_dev,
        p20=nearest_rank_percentile(sorted_values, 20),
        p80=nearest_rank_percentile(sorted_values, 80),
        hourly_averages=hourly_profile(samples, mean),
        trend_direction=trend_direction(samples),
        trend_confidence=trend_confidence(samples, min_points),
    )


class PatternCalculator:
    """Computes regional patterns with a fixed minimum sample floor"""

    def __init__(self, min_points: int = 168):
        if min_points < 1:
            raise ValueError("min_points must be at least 1")
        self.min_points = min_points

    def compute(
        self,
        region: str,
        samples: Sequence[HistoricalSample],
        now: Optional[datetime] = None,
        min_points: Optional[int] = None,
    ) -> RegionPattern:
        """Compute a pattern; ``min_points`` overrides the floor for this call"""
        pattern = compute_pattern(region, samples, min_points or self.min_points, now=now)

        logger.debug(
            "pattern_computed",
            region=region,
            samples=pattern.sample_count,
            mean=round(pattern.mean, 2),
            p20=pattern.p20,
            p80=pattern.p80,
            trend=pattern.trend_direction.value,
        )

        return pattern
