"""
Relative Metrics

Classifies a live reading against a learned regional pattern and filters
forecast green hours with the pattern's dynamic thresholds.
"""

from bisect import bisect_left
from dataclasses import dataclass
from typing import List, Optional, Sequence

from models.carbon import GreenHour
from models.pattern import RegionPattern, RelativeMode
from services.trend_analysis import round_half_up


# Std-dev (g CO2/kWh) above which below-average hours also count as green
HIGH_VARIATION_STDDEV = 50.0

# Confidence discount for hours admitted through the high-variation rule
HIGH_VARIATION_CONFIDENCE_FACTOR = 0.8

DEFAULT_PERCENTILE = 50.0


@dataclass(frozen=True)
class RelativeMetrics:
    """Classification of one reading against a regional pattern"""

    percentile: float
    mode: RelativeMode
    daily_rank: str
    trend_magnitude: float


def local_percentile(value: float, pattern: RegionPattern) -> float:
    """
    Share of retained samples strictly below ``value``, as a percentage.

    This counting estimator is independent of the nearest-rank P20/P80
    thresholds on the pattern; the two may disagree near the cutoffs.
    """
    total = len(pattern.sorted_intensities)
    if total == 0:
        return DEFAULT_PERCENTILE

    below = bisect_left(pattern.sorted_intensities, value)
    return round_half_up(below / total * 100, 1)


def relative_mode(value: float, pattern: RegionPattern) -> RelativeMode:
    if value <= pattern.p20:
        return RelativeMode.CLEAN
    if value >= pattern.p80:
        return RelativeMode.DIRTY
    return RelativeMode.AVERAGE


def daily_rank(percentile: float) -> str:
    if percentile <= 20:
        return f"top {int(percentile)}% cleanest"
    if percentile >= 80:
        return f"top {int(100 - percentile)}% dirtiest"
    return "average for this region"


def trend_magnitude(value: float, pattern: RegionPattern) -> float:
    """Percentage deviation of ``value`` from the regional mean"""
    if pattern.mean <= 0:
        return 0.0
    return (value - pattern.mean) / pattern.mean * 100


def classify(value: float, pattern: RegionPattern) -> RelativeMetrics:
    """Classify a carbon intensity value against a regional pattern"""
    percentile = local_percentile(value, pattern)
    return RelativeMetrics(
        percentile=percentile,
        mode=relative_mode(value, pattern),
        daily_rank=daily_rank(percentile),
        trend_magnitude=trend_magnitude(value, pattern),
    )


def apply_dynamic_thresholds(
    hours: Sequence[GreenHour],
    pattern: RegionPattern,
) -> List[GreenHour]:
    """
    Keep forecast hours that are green by regional standards.

    An hour passes when its intensity is at or below P20. In a
    high-variation region (std-dev above HIGH_VARIATION_STDDEV) an hour
    below the mean also passes, with its confidence discounted.
    Returns new GreenHour instances; the inputs are left untouched.
    """
    high_variation = pattern.std_dev > HIGH_VARIATION_STDDEV
    filtered: List[GreenHour] = []

    for hour in hours:
        if hour.carbon_intensity <= pattern.p20:
            filtered.append(hour.model_copy())
        elif high_variation and hour.carbon_intensity < pattern.mean:
            filtered.append(
                hour.model_copy(
                    update={"confidence": hour.confidence * HIGH_VARIATION_CONFIDENCE_FACTOR}
                )
            )

    return filtered


def best_green_hour(hours: Sequence[GreenHour]) -> Optional[GreenHour]:
    """First hour with the lowest carbon intensity"""
    best: Optional[GreenHour] = None
    for hour in hours:
        if best is None or hour.carbon_intensity < best.carbon_intensity:
            best = hour
    return best
