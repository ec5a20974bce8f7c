"""
Carbon Intelligence Service

Entry point for region-relative carbon intelligence: classifies live
readings against learned regional patterns, predicts the next
low-carbon window, filters forecast green hours with dynamic thresholds
and builds historical trend reports.

Analytics failures never fail a request that has a current reading;
responses degrade to the raw reading instead.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog

from config.intelligence import IntelligenceConfig
from integrations.carbon_apis.base import CarbonDataSource
from models.carbon import CarbonIntensity, GreenHoursForecast, HistoricalSample
from models.pattern import CarbonTrend, RegionalStrategy, RegionPattern, RelativeCarbonIntensity, TrendPeriod
from services.pattern_calculator import InsufficientDataError, PatternCalculator, PatternError
from services.pattern_store import (
    Clock,
    CollaboratorFetchError,
    PatternRefreshScheduler,
    RegionPatternStore,
    utc_now,
)
from services.regional_strategy import get_regional_strategy
from services.relative_metrics import apply_dynamic_thresholds, best_green_hour, classify
from services.trend_analysis import ConfidenceScorer, build_carbon_trend
from services.window_predictor import predict_next_window

logger = structlog.get_logger(__name__)


class CarbonIntelligenceService:
    """
    Region-relative carbon intensity analytics.

    Example usage:
        ```python
        service = create_intelligence_service_from_settings()

        async with service:
            relative = await service.get_relative_carbon_intensity("DE")
            print(relative.relative_mode, relative.daily_rank)

            forecast = await service.get_dynamic_green_hours("DE", hours=24)
        ```
    """

    def __init__(
        self,
        source: CarbonDataSource,
        config: Optional[IntelligenceConfig] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the intelligence service.

        Args:
            source: Carbon data source for history, readings and forecasts
            config: Engine configuration (defaults to IntelligenceConfig())
            clock: Returns the current time; injectable for tests
        """
        self.source = source
        self.config = config or IntelligenceConfig()
        self._clock = clock or utc_now

        self._high_variation_regions = {
            region.strip().upper() for region in self.config.high_variation_regions
        }
        # Allow-listed regions refresh more often and need fewer samples
        self.high_variation_config = IntelligenceConfig.high_variation(self.config)

        self.calculator = PatternCalculator(self.config.min_data_points)
        self.store = RegionPatternStore(
            source,
            self.calculator,
            self.config,
            self._clock,
            region_config=self.config_for_region,
        )
        self.scorer = ConfidenceScorer(self.config.history_retention_days)
        self._high_variation_scorer = ConfidenceScorer(
            self.high_variation_config.history_retention_days
        )
        self.scheduler = PatternRefreshScheduler(
            self.store,
            interval_seconds=self.config.update_interval.total_seconds(),
            region_timeout_seconds=self.config.refresh_timeout_seconds,
        )


    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def start(self) -> None:
        """Start the background pattern refresh"""
        self.scheduler.start()

    async def close(self) -> None:
        """Stop the background refresh and release the data source"""
        await self.scheduler.stop()
        await self.source.close()

    async def __aenter__(self) -> "CarbonIntelligenceService":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ==========================================================================
    # Collaborator calls
    # ==========================================================================

    async def _fetch_current(self, location: str) -> CarbonIntensity:
        try:
            return await self.source.fetch_current_intensity(location)
        except Exception as e:
            logger.error("current_intensity_fetch_failed", location=location, error=str(e))
            raise CollaboratorFetchError(
                f"Current intensity for {location} unavailable: {e}",
                region=location,
                original_error=e,
            ) from e

    async def _fetch_forecast(self, location: str, hours: int) -> GreenHoursForecast:
        try:
            return await self.source.fetch_forecast(location, hours)
        except Exception as e:
            logger.error("forecast_fetch_failed", location=location, error=str(e))
            raise CollaboratorFetchError(
                f"Forecast for {location} unavailable: {e}",
                region=location,
                original_error=e,
            ) from e

    async def _fetch_history(
        self,
        location: str,
        start: datetime,
        end: datetime,
    ) -> List[HistoricalSample]:
        try:
            return await asyncio.wait_for(
                self.source.fetch_historical_samples(location, start, end),
                self.config.refresh_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise CollaboratorFetchError(
                f"Historical fetch for {location} timed out",
                region=location,
                original_error=e,
            ) from e
        except Exception as e:
            raise CollaboratorFetchError(
                f"Historical fetch for {location} failed: {e}",
                region=location,
                original_error=e,
            ) from e

    # ==========================================================================
    # Relative intensity
    # ==========================================================================

    def is_high_variation_region(self, location: str) -> bool:
        """Whether a location is on the configured high-variation allow-list"""
        return location.strip().upper() in self._high_variation_regions

    def config_for_region(self, location: str) -> IntelligenceConfig:
        """Engine configuration for a location; allow-listed regions use the high-variation preset"""
        if self.is_high_variation_region(location):
            return self.high_variation_config
        return self.config

    def _scorer_for(self, location: str) -> ConfidenceScorer:
        if self.is_high_variation_region(location):
            return self._high_variation_scorer
        return self.scorer

    async def get_relative_carbon_intensity(
        self,
        location: str,
        timeout: Optional[float] = None,
    ) -> RelativeCarbonIntensity:
        """
        Get the current reading with metrics relative to the regional pattern.

        Args:
            location: Region code or location name
            timeout: Seconds to wait for a pattern recompute

        Returns:
            RelativeCarbonIntensity; relative fields are None and
            confidence_score is 0.5 when no pattern is available

        Raises:
            CollaboratorFetchError: If the current reading is unavailable
        """
        current = await self._fetch_current(location)
        reading = current.model_dump()
        reading["location"] = location
        is_high_variation = self.is_high_variation_region(location)

        try:
            pattern = await self.store.get_pattern(location, timeout=timeout)
        except PatternError as e:
            logger.warning(
                "relative_intensity_degraded",
                location=location,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RelativeCarbonIntensity(**reading, is_high_variation=is_high_variation)

        now = self._clock()
        metrics = classify(current.carbon_intensity, pattern)
        confidence = self._scorer_for(location).score(pattern, now)

        return RelativeCarbonIntensity(
            **reading,
            local_percentile=metrics.percentile,
            daily_rank=metrics.daily_rank,
            relative_mode=metrics.mode,
            trend_direction=pattern.trend_direction,
            trend_magnitude=metrics.trend_magnitude,
            next_optimal_window=predict_next_window(pattern, now, confidence),
            confidence_score=confidence,
            regional_baseline=pattern.mean,
            is_high_variation=is_high_variation,
        )

    # ==========================================================================
    # Green hours
    # ==========================================================================

    async def get_dynamic_green_hours(
        self,
        location: str,
        hours: int = 24,
        timeout: Optional[float] = None,
    ) -> GreenHoursForecast:
        """
        Get forecast green hours filtered by the region's own thresholds.

        Without a pattern the source forecast is returned unchanged. When
        no hour passes the filter the original best window is kept.
        """
        if hours <= 0:
            raise ValueError("hours must be positive")

        forecast = await self._fetch_forecast(location, hours)

        try:
            pattern = await self.store.get_pattern(location, timeout=timeout)
        except PatternError as e:
            logger.warning(
                "dynamic_green_hours_degraded",
                location=location,
                error=str(e),
                error_type=type(e).__name__,
            )
            return forecast

        filtered = apply_dynamic_thresholds(forecast.green_hours, pattern)
        best = best_green_hour(filtered) or forecast.best_window

        logger.debug(
            "green_hours_filtered",
            location=location,
            forecast_hours=len(forecast.green_hours),
            kept=len(filtered),
            p20=pattern.p20,
        )

        return forecast.model_copy(update={"green_hours": filtered, "best_window": best})

    # ==========================================================================
    # Trends
    # ==========================================================================

    async def get_carbon_trends(
        self,
        location: str,
        period: str = "daily",
        days: int = 7,
    ) -> CarbonTrend:
        """
        Build a trend report from a fresh fetch of the last ``days`` days.

        Raises:
            ValueError: If days is not positive or the period is unknown
            InsufficientDataError: If fewer samples than the analysis floor
            CollaboratorFetchError: If the history fetch fails
        """
        if days <= 0:
            raise ValueError("days must be positive")
        trend_period = TrendPeriod(period)

        end = self._clock()
        start = end - timedelta(days=days)
        samples = await self._fetch_history(location, start, end)

        min_points = self.config_for_region(location).min_data_points
        if len(samples) < min_points:
            raise InsufficientDataError(len(samples), min_points, location)

        return build_carbon_trend(location, trend_period, samples, start=start, end=end)

    # ==========================================================================
    # Pattern management
    # ==========================================================================

    async def get_regional_pattern(
        self,
        location: str,
        timeout: Optional[float] = None,
    ) -> RegionPattern:
        return await self.store.get_pattern(location, timeout=timeout)

    async def update_pattern(self, location: str) -> RegionPattern:
        """Force a recompute of a region's pattern"""
        return await self.store.refresh(location)

    async def clear_pattern(self, location: Optional[str] = None) -> None:
        await self.store.clear(location)

    def get_supported_regions(self) -> List[str]:
        """Regions with a learned pattern"""
        return sorted(self.store.regions())

    def get_regional_strategy(self, location: str) -> RegionalStrategy:
        return get_regional_strategy(location)

    def get_metrics(self) -> Dict[str, Any]:
        return {
            **self.store.get_metrics(),
            "scheduler_running": self.scheduler.is_running,
        }


def create_intelligence_service_from_settings(settings=None) -> CarbonIntelligenceService:
    """
    Factory function to create CarbonIntelligenceService from application settings.

    Returns:
        Configured CarbonIntelligenceService backed by Electricity Maps
    """
    from config.settings import get_settings
    from integrations.carbon_apis.electricity_maps import ElectricityMapsClient

    settings = settings or get_settings()

    client = ElectricityMapsClient(
        api_key=settings.electricity_maps_api_key,
        base_url=settings.electricity_maps_base_url,
        timeout=settings.electricity_maps_timeout,
    )

    return CarbonIntelligenceService(
        source=client,
        config=IntelligenceConfig.from_settings(settings),
    )
