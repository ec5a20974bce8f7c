"""
Pytest Configuration and Shared Fixtures

This module provides common fixtures and configuration for all tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import pytest

# Add backend directory to path for imports
import sys
from pathlib import Path

backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from config.intelligence import IntelligenceConfig
from integrations.carbon_apis.base import CarbonDataSource
from models.carbon import CarbonIntensity, GreenHour, GreenHoursForecast, HistoricalSample


# Monday, so day offsets map cleanly onto weekdays
FIXED_NOW = datetime(2026, 3, 2, 12, 30, tzinfo=timezone.utc)


# =============================================================================
# SAMPLE BUILDERS
# =============================================================================


def daily_profile_intensity(hour: int) -> float:
    """Night 100, evening peak 400, everything else 250"""
    if 0 <= hour <= 6:
        return 100.0
    if 17 <= hour <= 21:
        return 400.0
    return 250.0


def make_samples(
    values: List[float],
    end: datetime = FIXED_NOW,
    step: timedelta = timedelta(hours=1),
) -> List[HistoricalSample]:
    """Evenly spaced samples ending at ``end``, oldest first"""
    start = end - step * len(values)
    return [
        HistoricalSample(timestamp=start + step * (i + 1), carbon_intensity=value)
        for i, value in enumerate(values)
    ]


def make_daily_samples(
    days: int,
    end: datetime = FIXED_NOW,
    profile: Callable[[int], float] = daily_profile_intensity,
) -> List[HistoricalSample]:
    """``days`` whole days of hourly samples following ``profile``, oldest first"""
    last_day = end.replace(hour=0, minute=0, second=0, microsecond=0)
    first = last_day - timedelta(days=days)
    return [
        HistoricalSample(
            timestamp=first + timedelta(hours=i),
            carbon_intensity=profile((first + timedelta(hours=i)).hour),
        )
        for i in range(days * 24)
    ]


# =============================================================================
# FAKE DATA SOURCE
# =============================================================================


class FakeCarbonSource(CarbonDataSource):
    """
    In-memory data source.

    History, readings and forecasts are set per test. ``history_error`` /
    ``current_error`` make the corresponding call raise, and
    ``history_gate`` holds history fetches until the event is set.
    """

    def __init__(self, samples: Optional[List[HistoricalSample]] = None):
        self.samples = list(samples or [])
        self.current_value = 250.0
        self.forecast_hours: List[GreenHour] = []
        self.history_error: Optional[Exception] = None
        self.current_error: Optional[Exception] = None
        self.history_gate: Optional[asyncio.Event] = None
        self.history_calls = 0
        self.active_history_fetches = 0
        self.max_active_history_fetches = 0
        self.closed = False

    async def fetch_historical_samples(self, region, start, end):
        self.history_calls += 1
        self.active_history_fetches += 1
        self.max_active_history_fetches = max(
            self.max_active_history_fetches, self.active_history_fetches
        )
        try:
            if self.history_gate is not None:
                await self.history_gate.wait()
        finally:
            self.active_history_fetches -= 1
        if self.history_error is not None:
            raise self.history_error
        return list(self.samples)

    async def fetch_current_intensity(self, region):
        if self.current_error is not None:
            raise self.current_error
        return CarbonIntensity(
            location=region,
            carbon_intensity=self.current_value,
            renewable_percentage=40.0,
            timestamp=FIXED_NOW,
            source="fake",
        )

    async def fetch_forecast(self, region, hours=24):
        best = min(self.forecast_hours, key=lambda h: h.carbon_intensity) if self.forecast_hours else None
        return GreenHoursForecast(
            location=region,
            green_hours=list(self.forecast_hours),
            best_window=best,
            forecast_start=FIXED_NOW,
            forecast_end=FIXED_NOW + timedelta(hours=hours),
            generated_at=FIXED_NOW,
            source="fake",
            confidence=70.0,
        )

    async def close(self):
        self.closed = True


class MutableClock:
    """Clock that tests move forward by hand"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def week_samples():
    """Seven days of the night-clean / evening-dirty profile"""
    return make_daily_samples(7)


@pytest.fixture
def fake_source(week_samples):
    return FakeCarbonSource(week_samples)


@pytest.fixture
def intelligence_config():
    return IntelligenceConfig(
        history_retention_days=7,
        min_data_points=168,
        update_interval=timedelta(minutes=15),
        refresh_timeout_seconds=5.0,
        read_timeout_seconds=None,
    )

