"""
Window Predictor

Predicts the next hour-long low-carbon window from a pattern's
hour-of-day profile.
"""

from datetime import datetime, timedelta
from typing import Optional

from models.pattern import HOURS_PER_DAY, OptimalWindow, RegionPattern


WINDOW_LENGTH = timedelta(hours=1)

NIGHT_HOURS = frozenset([22, 23, 0, 1, 2, 3, 4, 5, 6])
SOLAR_HOURS = frozenset(range(10, 17))


def window_reason(hour: int) -> str:
    if hour in NIGHT_HOURS:
        return "Night wind patterns"
    if hour in SOLAR_HOURS:
        return "Solar generation peak"
    return "Historical low-carbon period"


def cleanest_upcoming_hour(pattern: RegionPattern, from_hour: int) -> int:
    """
    Hour of day with the lowest average, scanning forward from the next hour.

    Ties go to the hour that comes first in scan order, i.e. the nearest
    future hour.
    """
    best_hour = (from_hour + 1) % HOURS_PER_DAY
    best_value = pattern.hourly_averages[best_hour]

    for offset in range(2, HOURS_PER_DAY + 1):
        hour = (from_hour + offset) % HOURS_PER_DAY
        value = pattern.hourly_averages[hour]
        if value < best_value:
            best_hour, best_value = hour, value

    return best_hour


def next_occurrence(hour: int, from_time: datetime) -> datetime:
    """Next ``hour``:00 strictly after ``from_time``"""
    candidate = from_time.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= from_time:
        candidate += timedelta(days=1)
    return candidate


def predict_next_window(
    pattern: Optional[RegionPattern],
    from_time: datetime,
    confidence: float,
) -> Optional[OptimalWindow]:
    """
    Predict the next optimal window for a region.

    Args:
        pattern: Learned pattern, or None
        from_time: Reference time; the window starts strictly after it
        confidence: Pattern confidence from the ConfidenceScorer

    Returns:
        OptimalWindow, or None if there is no hourly data
    """
    if pattern is None or not pattern.hourly_averages or pattern.sample_count == 0:
        return None

    hour = cleanest_upcoming_hour(pattern, from_time.hour)
    start = next_occurrence(hour, from_time)

    return OptimalWindow(
        start=start,
        end=start + WINDOW_LENGTH,
        expected_intensity=pattern.hourly_averages[hour],
        confidence=confidence,
        reason=window_reason(hour),
    )
