"""
Trend Analysis and Confidence Scoring

Derives trend direction and reliability scores from historical carbon
intensity samples, and builds the historical trend report.
"""

import math
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import numpy as np

from models.carbon import HistoricalSample
from models.pattern import CarbonTrend, RegionPattern, TrendDirection, TrendPeriod


# |slope| below this (g CO2/kWh per sample) counts as flat
STABLE_SLOPE_THRESHOLD = 0.1

# Trend confidence is a data-volume proxy, capped regardless of fit quality
MAX_TREND_CONFIDENCE = 0.8

# Recency decays linearly over one week once the newest sample is a day old
RECENCY_GRACE_HOURS = 24.0
RECENCY_DECAY_HOURS = 168.0
MIN_RECENCY_FACTOR = 0.5
MIN_VARIATION_FACTOR = 0.5

# Trend report only embeds raw samples for short daily reports
MAX_EMBEDDED_DATA_POINTS = 24


def round_half_up(value: float, places: int) -> float:
    """Round non-negative values half away from zero"""
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def regression_slope(samples: Sequence[HistoricalSample]) -> float:
    """
    Ordinary least-squares slope of intensity against sample index.

    The index, not elapsed time, is the independent variable, so the
    slope is only a time rate when samples are evenly spaced.
    """
    n = len(samples)
    if n < 2:
        return 0.0

    x = np.arange(n, dtype=np.float64)
    y = np.fromiter((s.carbon_intensity for s in samples), dtype=np.float64, count=n)

    sum_x = x.sum()
    sum_y = y.sum()
    sum_xy = float(np.dot(x, y))
    sum_x2 = float(np.dot(x, x))

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return float((n * sum_xy - sum_x * sum_y) / denominator)


def trend_direction(samples: Sequence[HistoricalSample]) -> TrendDirection:
    """Classify the intensity trend as improving, worsening or stable"""
    if len(samples) < 2:
        return TrendDirection.STABLE

    slope = regression_slope(samples)

    if abs(slope) < STABLE_SLOPE_THRESHOLD:
        return TrendDirection.STABLE
    if slope < 0:
        return TrendDirection.IMPROVING
    return TrendDirection.WORSENING


def trend_confidence(samples: Sequence[HistoricalSample], min_points: int) -> float:
    """
    Confidence in the trend classification.

    More data means more confidence, up to four times the minimum sample
    count, and never above MAX_TREND_CONFIDENCE.
    """
    if min_points <= 0 or len(samples) < min_points:
        return 0.0

    data_factor = min(len(samples) / (min_points * 4), 1.0)
    return data_factor * MAX_TREND_CONFIDENCE


class ConfidenceScorer:
    """
    Scores the reliability of a regional pattern in [0, 1].

    The score multiplies three factors, each clamped to [0, 1]:
    data completeness against the retention window, recency of the
    newest sample, and relative spread (coefficient of variation).
    """

    def __init__(self, retention_days: int):
        self.retention_days = retention_days

    @property
    def expected_sample_count(self) -> int:
        return self.retention_days * 24

    def data_completeness(self, pattern: RegionPattern) -> float:
        expected = self.expected_sample_count
        if expected <= 0:
            return 1.0
        return _clamp(min(pattern.sample_count / expected, 1.0))

    def recency_factor(self, pattern: RegionPattern, now: datetime) -> float:
        newest = pattern.newest_sample_at
        if newest is None:
            return MIN_RECENCY_FACTOR

        hours_since_newest = (now - newest).total_seconds() / 3600
        if hours_since_newest <= RECENCY_GRACE_HOURS:
            return 1.0
        return _clamp(max(MIN_RECENCY_FACTOR, 1.0 - hours_since_newest / RECENCY_DECAY_HOURS))

    def variation_factor(self, pattern: RegionPattern) -> float:
        if pattern.mean <= 0:
            return 1.0
        coefficient_of_variation = pattern.std_dev / pattern.mean
        return _clamp(max(MIN_VARIATION_FACTOR, 1.0 - coefficient_of_variation / 2))

    def score(self, pattern: Optional[RegionPattern], now: Optional[datetime] = None) -> float:
        if pattern is None or pattern.sample_count == 0:
            return 0.0

        now = now or datetime.now(timezone.utc)
        confidence = (
            self.data_completeness(pattern)
            * self.recency_factor(pattern, now)
            * self.variation_factor(pattern)
        )
        return round_half_up(confidence, 2)


def build_carbon_trend(
    location: str,
    period: TrendPeriod,
    samples: Sequence[HistoricalSample],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> CarbonTrend:
    """
    Summarise historical samples into a CarbonTrend report.

    Cleanest/dirtiest hours are only reported when at least three hours
    of the day have data.
    """
    trend = CarbonTrend(location=location, period=period, start_date=start, end_date=end)

    if not samples:
        return trend

    values = np.fromiter((s.carbon_intensity for s in samples), dtype=np.float64, count=len(samples))

    hourly: Dict[int, List[float]] = defaultdict(list)
    weekday: List[float] = []
    weekend: List[float] = []

    for sample in samples:
        hourly[sample.timestamp.hour].append(sample.carbon_intensity)
        # Saturday=5, Sunday=6
        if sample.timestamp.weekday() >= 5:
            weekend.append(sample.carbon_intensity)
        else:
            weekday.append(sample.carbon_intensity)

    hour_averages = [(hour, sum(v) / len(v)) for hour, v in hourly.items()]

    # Ties go to the earlier hour in both rankings
    cleanest: List[int] = []
    dirtiest: List[int] = []
    if len(hour_averages) >= 3:
        cleanest = [hour for hour, _ in sorted(hour_averages, key=lambda item: (item[1], item[0]))[:3]]
        dirtiest = [hour for hour, _ in sorted(hour_averages, key=lambda item: (-item[1], item[0]))[:3]]

    weekday_vs_weekend: Dict[str, float] = {}
    if weekday:
        weekday_vs_weekend["weekday_average"] = sum(weekday) / len(weekday)
    if weekend:
        weekday_vs_weekend["weekend_average"] = sum(weekend) / len(weekend)

    data_points = None
    if period == TrendPeriod.DAILY and len(samples) <= MAX_EMBEDDED_DATA_POINTS:
        data_points = list(samples)

    return trend.model_copy(
        update={
            "average_intensity": float(values.mean()),
            "min_intensity": float(values.min()),
            "max_intensity": float(values.max()),
            "std_deviation": float(values.std()),
            "cleanest_hours": cleanest,
            "dirtiest_hours": dirtiest,
            "weekday_vs_weekend": weekday_vs_weekend,
            "data_points": data_points,
        }
    )
