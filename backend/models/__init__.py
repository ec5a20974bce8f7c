"""
Data Models

Pydantic models for the Carbon Intelligence Engine.
"""

from models.carbon import (
    CarbonIntensity,
    HistoricalSample,
    GreenHour,
    GreenHoursForecast,
)

from models.pattern import (
    RegionPattern,
    OptimalWindow,
    RelativeCarbonIntensity,
    RelativeMode,
    TrendDirection,
    TrendPeriod,
    CarbonTrend,
    RegionalStrategy,
)

__all__ = [
    # Carbon readings
    "CarbonIntensity",
    "HistoricalSample",
    "GreenHour",
    "GreenHoursForecast",
    # Pattern models
    "RegionPattern",
    "OptimalWindow",
    "RelativeCarbonIntensity",
    "RelativeMode",
    "TrendDirection",
    "TrendPeriod",
    "CarbonTrend",
    "RegionalStrategy",
]
