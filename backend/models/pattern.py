"""
Regional Pattern Models

Learned per-region statistical summaries and the response objects built
from them (relative intensity, optimal windows, trend reports).
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.carbon import CarbonIntensity, HistoricalSample


HOURS_PER_DAY = 24


class TrendDirection(str, Enum):
    """Direction of the intensity trend over the sample window"""
    IMPROVING = "improving"
    WORSENING = "worsening"
    STABLE = "stable"


class RelativeMode(str, Enum):
    """Classification of a reading against regional P20/P80 thresholds"""
    CLEAN = "clean"
    AVERAGE = "average"
    DIRTY = "dirty"


class TrendPeriod(str, Enum):
    """Aggregation period for trend reports"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RegionPattern(BaseModel):
    """
    Learned statistical model for one region.

    Immutable: a refresh builds a new instance which replaces the cached
    one wholesale. ``p20 <= mean <= p80`` is expected but not enforced,
    since the thresholds come from a nearest-rank lookup over the sorted
    samples and skewed inputs can violate the ordering.
    """

    model_config = ConfigDict(frozen=True)

    region: str
    last_updated: datetime
    samples: Tuple[HistoricalSample, ...] = ()
    sorted_intensities: Tuple[float, ...] = ()

    mean: float
    std_dev: float = Field(..., ge=0)
    p20: float
    p80: float

    hourly_averages: Tuple[float, ...]

    trend_direction: TrendDirection = TrendDirection.STABLE
    trend_confidence: float = Field(default=0.0, ge=0, le=1)

    @model_validator(mode="before")
    @classmethod
    def derive_sorted_intensities(cls, data: Any) -> Any:
        """Fill the ascending intensity copy when the caller did not"""
        if isinstance(data, dict) and not data.get("sorted_intensities"):
            samples = data.get("samples") or ()
            values = [
                s.carbon_intensity if isinstance(s, HistoricalSample) else s["carbon_intensity"]
                for s in samples
            ]
            data = {**data, "sorted_intensities": tuple(sorted(values))}
        return data

    @field_validator("hourly_averages")
    @classmethod
    def validate_hourly_averages(cls, v: Tuple[float, ...]) -> Tuple[float, ...]:
        if len(v) != HOURS_PER_DAY:
            raise ValueError(f"hourly_averages must have {HOURS_PER_DAY} entries, got {len(v)}")
        return v

    @field_validator("last_updated")
    @classmethod
    def validate_last_updated_has_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    @property
    def newest_sample_at(self) -> Optional[datetime]:
        """Timestamp of the last sample (samples are in ascending order)"""
        if not self.samples:
            return None
        return self.samples[-1].timestamp

    def age(self, now: datetime) -> timedelta:
        return now - self.last_updated

    def is_stale(self, now: datetime, update_interval: timedelta) -> bool:
        return self.age(now) > update_interval


class OptimalWindow(BaseModel):
    """A predicted hour-long low-carbon window"""

    start: datetime
    end: datetime
    expected_intensity: float
    confidence: float = Field(..., ge=0, le=1)
    reason: str


class RelativeCarbonIntensity(CarbonIntensity):
    """
    Current reading enriched with metrics relative to the regional pattern.

    When no pattern is available the relative fields stay ``None`` and
    ``confidence_score`` is 0.5.
    """

    local_percentile: Optional[float] = Field(default=None, ge=0, le=100)
    daily_rank: Optional[str] = None
    relative_mode: Optional[RelativeMode] = None

    trend_direction: Optional[TrendDirection] = None
    trend_magnitude: Optional[float] = None

    next_optimal_window: Optional[OptimalWindow] = None
    confidence_score: float = Field(default=0.5, ge=0, le=1)

    regional_baseline: Optional[float] = None
    is_high_variation: bool = False


class CarbonTrend(BaseModel):
    """Historical carbon intensity trend report for a location"""

    location: str
    period: TrendPeriod
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    average_intensity: float = 0.0
    min_intensity: float = 0.0
    max_intensity: float = 0.0
    std_deviation: float = 0.0

    cleanest_hours: List[int] = Field(default_factory=list)
    dirtiest_hours: List[int] = Field(default_factory=list)
    weekday_vs_weekend: Dict[str, float] = Field(default_factory=dict)

    # Only populated for short daily reports
    data_points: Optional[List[HistoricalSample]] = None


class RegionalStrategy(BaseModel):
    """Static scheduling guidance for a grid region"""

    region: str
    primary_energy_source: str
    optimal_hours: List[int] = Field(default_factory=list)
    avoidance_hours: List[int] = Field(default_factory=list)
    variation_level: str = Field(..., pattern=r"^(low|medium|high)$")
    recommendations: List[str] = Field(default_factory=list)
