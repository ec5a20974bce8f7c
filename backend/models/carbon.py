"""
Carbon Intensity Data Models

Pydantic models for grid carbon-intensity readings, historical samples
and green-hour forecasts.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


# Absolute bands used by the raw reading (g CO2/kWh)
GREEN_THRESHOLD = 150.0
YELLOW_THRESHOLD = 300.0


def _ensure_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class HistoricalSample(BaseModel):
    """
    A single historical carbon intensity measurement.

    Produced by the historical-data collaborator, always in ascending
    timestamp order within a fetch.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    carbon_intensity: float = Field(..., ge=0, allow_inf_nan=False)
    renewable_percent: float = Field(default=0.0, ge=0, le=100)

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp_has_timezone(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC"""
        return _ensure_utc(v)


class CarbonIntensity(BaseModel):
    """
    Current carbon intensity reading for a location.

    Measured in grams of CO2 equivalent per kWh. The absolute ``mode``
    (green/yellow/red) uses fixed cutoffs; relative classification
    against regional norms lives on RelativeCarbonIntensity.
    """

    model_config = ConfigDict(from_attributes=True)

    location: str = Field(..., min_length=1)
    carbon_intensity: float = Field(..., ge=0, allow_inf_nan=False)
    renewable_percentage: float = Field(default=0.0, ge=0, le=100)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    fossil_fuel_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    source: Optional[str] = None
    grid_zone: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp_has_timezone(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC"""
        return _ensure_utc(v)

    @property
    def mode(self) -> str:
        """Absolute band: green (< 150), yellow (< 300) or red"""
        if self.carbon_intensity < GREEN_THRESHOLD:
            return "green"
        if self.carbon_intensity < YELLOW_THRESHOLD:
            return "yellow"
        return "red"

    @property
    def is_green(self) -> bool:
        return self.carbon_intensity < GREEN_THRESHOLD


class GreenHour(BaseModel):
    """A forecast hour-long window with low carbon intensity"""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    carbon_intensity: float = Field(..., ge=0, allow_inf_nan=False)
    renewable_percentage: float = Field(default=0.0, ge=0, le=100)
    confidence: float = Field(default=0.0, ge=0, le=100)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


class GreenHoursForecast(BaseModel):
    """
    Forecast of upcoming low-carbon windows for a location.

    ``green_hours`` are sorted by start time; ``best_window`` is the
    single lowest-intensity entry.
    """

    location: str
    green_hours: List[GreenHour] = Field(default_factory=list)
    best_window: Optional[GreenHour] = None
    forecast_start: datetime
    forecast_end: datetime
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0, le=100)

    @computed_field
    @property
    def average_intensity(self) -> float:
        """Average carbon intensity across all green hours"""
        if not self.green_hours:
            return 0.0
        return sum(h.carbon_intensity for h in self.green_hours) / len(self.green_hours)
