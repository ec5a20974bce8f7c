"""
Carbon Intelligence Configuration

Runtime configuration for pattern learning, caching and refresh.
"""

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import List, Optional

from config.settings import DEFAULT_HIGH_VARIATION_REGIONS, Settings


@dataclass(frozen=True)
class IntelligenceConfig:
    """Configuration for the pattern store and its refresh cycle"""

    # Window size for historical fetches
    history_retention_days: int = 30

    # Computation floor (1 week of hourly data)
    min_data_points: int = 168

    # Staleness threshold and background refresh period
    update_interval: timedelta = timedelta(minutes=15)

    # Bound on a single recompute (fetch + compute)
    refresh_timeout_seconds: float = 300.0

    # Default bound on how long a reader waits for a recompute
    read_timeout_seconds: Optional[float] = 10.0

    # Static allow-list for the is_high_variation flag and the high_variation preset
    high_variation_regions: List[str] = field(
        default_factory=lambda: list(DEFAULT_HIGH_VARIATION_REGIONS)
    )

    def __post_init__(self) -> None:
        if self.history_retention_days < 1:
            raise ValueError("history_retention_days must be at least 1")
        if self.min_data_points < 1:
            raise ValueError("min_data_points must be at least 1")
        if self.update_interval <= timedelta(0):
            raise ValueError("update_interval must be positive")

    @property
    def expected_sample_count(self) -> int:
        """Hourly samples expected over the retention window"""
        return self.history_retention_days * 24

    @property
    def history_window(self) -> timedelta:
        return timedelta(days=self.history_retention_days)

    @classmethod
    def from_settings(cls, settings: Settings) -> "IntelligenceConfig":
        return cls(
            history_retention_days=settings.history_retention_days,
            min_data_points=settings.min_data_points_for_analysis,
            update_interval=timedelta(seconds=settings.pattern_update_interval_seconds),
            refresh_timeout_seconds=settings.pattern_refresh_timeout_seconds,
            read_timeout_seconds=settings.pattern_read_timeout_seconds,
            high_variation_regions=list(settings.high_variation_regions),
        )

    @classmethod
    def high_variation(cls, base: Optional["IntelligenceConfig"] = None) -> "IntelligenceConfig":
        """
        Preset for high-variation regions.

        Refreshes more often, needs less data and keeps a shorter window
        so patterns adapt faster.
        """
        return replace(
            base or cls(),
            update_interval=timedelta(minutes=10),
            min_data_points=72,
            history_retention_days=14,
        )
