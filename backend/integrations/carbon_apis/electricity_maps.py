"""
Electricity Maps API Client

Provides grid carbon intensity data from the Electricity Maps v3 API.

API Documentation: https://static.electricitymaps.com/api/docs/index.html
Authentication: ``auth-token`` header

History is requested in chunks of at most ten days, the longest range
the past-range endpoints accept.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import structlog

from models.carbon import CarbonIntensity, GreenHour, GreenHoursForecast, HistoricalSample
from .base import BaseCarbonClient, CarbonAPIError, RetryConfig

logger = structlog.get_logger(__name__)


# Longest range accepted by the past-range endpoints
MAX_HISTORY_CHUNK = timedelta(days=10)

# Forecast hours below this intensity (g CO2/kWh) are reported as green
FORECAST_GREEN_THRESHOLD = 200.0
FORECAST_CONFIDENCE = 70.0


# Location mapping: common place names -> Electricity Maps zone
LOCATION_ZONE_MAP = {
    "berlin": "DE",
    "germany": "DE",
    "deutschland": "DE",
    "paris": "FR",
    "france": "FR",
    "london": "GB",
    "uk": "GB",
    "britain": "GB",
    "england": "GB",
    "madrid": "ES",
    "spain": "ES",
    "rome": "IT",
    "italy": "IT",
    "amsterdam": "NL",
    "netherlands": "NL",
    "vienna": "AT",
    "austria": "AT",
    "stockholm": "SE",
    "sweden": "SE",
    "oslo": "NO",
    "norway": "NO",
    "copenhagen": "DK",
    "denmark": "DK",
    "helsinki": "FI",
    "finland": "FI",
    "brussels": "BE",
    "belgium": "BE",
    "zurich": "CH",
    "switzerland": "CH",
    "dublin": "IE",
    "ireland": "IE",
    "lisbon": "PT",
    "portugal": "PT",
    "warsaw": "PL",
    "poland": "PL",
    "prague": "CZ",
    "czech": "CZ",
    "budapest": "HU",
    "hungary": "HU",
    "bucharest": "RO",
    "romania": "RO",
    "sofia": "BG",
    "bulgaria": "BG",
    "athens": "GR",
    "greece": "GR",
    "new york": "US-NY",
    "california": "US-CA",
    "texas": "US-TEX",
    "florida": "US-FLA",
    "toronto": "CA-ON",
    "vancouver": "CA-BC",
    "sydney": "AU-NSW",
    "australia-nsw": "AU-NSW",
    "melbourne": "AU-VIC",
    "tokyo": "JP",
    "japan": "JP",
    "china": "CN",
    "india": "IN",
    "south africa": "ZA",
}


def resolve_zone(location: str) -> str:
    """
    Map a location name to an Electricity Maps zone.

    Unknown values are assumed to already be zone codes.
    """
    key = location.strip().lower()
    if key in LOCATION_ZONE_MAP:
        return LOCATION_ZONE_MAP[key]
    return location.strip().upper()


def _parse_datetime(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class ElectricityMapsClient(BaseCarbonClient):
    """
    Async client for the Electricity Maps carbon intensity API.

    Example usage:
        ```python
        async with ElectricityMapsClient(api_key="your-key") as client:
            reading = await client.fetch_current_intensity("Berlin")
            print(f"{reading.grid_zone}: {reading.carbon_intensity} gCO2/kWh")
        ```
    """

    BASE_URL = "https://api.electricitymap.org/v3"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        """
        Initialize Electricity Maps client.

        Args:
            api_key: Electricity Maps API token
            base_url: Override for the API base URL
            timeout: Request timeout in seconds
            retry_config: Configuration for retry behavior
        """
        super().__init__(
            api_key=api_key,
            base_url=base_url or self.BASE_URL,
            client_name="electricity_maps",
            timeout=timeout,
            retry_config=retry_config,
        )

    def _get_default_headers(self) -> dict[str, str]:
        """Get default headers with token authentication"""
        headers = {
            "Accept": "application/json",
            "User-Agent": "CarbonIntelligenceEngine/1.0",
        }
        if self.api_key:
            headers["auth-token"] = self.api_key
        return headers

    async def _get_json(self, endpoint: str, params: dict) -> dict:
        response = await self.get(endpoint, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise CarbonAPIError(
                f"Invalid JSON from {endpoint}",
                status_code=response.status_code,
                api_name=self.client_name,
            ) from e

    # -------------------------------------------------------------------------
    # Current intensity
    # -------------------------------------------------------------------------

    def _parse_current_response(
        self,
        location: str,
        intensity: dict,
        breakdown: Optional[dict],
    ) -> CarbonIntensity:
        """Parse latest intensity and power breakdown into a reading"""
        if intensity.get("carbonIntensity") is None:
            raise CarbonAPIError(
                "Response missing carbonIntensity",
                api_name=self.client_name,
            )

        breakdown = breakdown or {}
        renewable = breakdown.get("renewablePercentage")
        fossil_free = breakdown.get("fossilFreePercentage")

        return CarbonIntensity(
            location=location,
            carbon_intensity=float(intensity["carbonIntensity"]),
            renewable_percentage=float(renewable) if renewable is not None else 0.0,
            fossil_fuel_percentage=100.0 - float(fossil_free) if fossil_free is not None else None,
            timestamp=_parse_datetime(intensity.get("datetime")),
            source=self.client_name,
            grid_zone=intensity.get("zone"),
        )

    async def fetch_current_intensity(self, region: str) -> CarbonIntensity:
        """Get the latest carbon intensity for a location"""
        zone = resolve_zone(region)

        intensity = await self._get_json("/carbon-intensity/latest", {"zone": zone})

        try:
            breakdown = await self._get_json("/power-breakdown/latest", {"zone": zone})
        except CarbonAPIError as e:
            # Renewable share is optional; the reading stands on its own
            self.logger.warning("power_breakdown_unavailable", zone=zone, error=str(e))
            breakdown = None

        return self._parse_current_response(region, intensity, breakdown)

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def _parse_history_response(
        self,
        intensity_data: List[dict],
        breakdown_data: List[dict],
    ) -> List[HistoricalSample]:
        """Join intensity and renewable share on timestamp"""
        renewable_by_time: Dict[datetime, float] = {}
        for entry in breakdown_data:
            if entry.get("renewablePercentage") is not None and entry.get("datetime"):
                renewable_by_time[_parse_datetime(entry["datetime"])] = float(
                    entry["renewablePercentage"]
                )

        samples = []
        for entry in intensity_data:
            if entry.get("carbonIntensity") is None or not entry.get("datetime"):
                continue
            timestamp = _parse_datetime(entry["datetime"])
            samples.append(
                HistoricalSample(
                    timestamp=timestamp,
                    carbon_intensity=float(entry["carbonIntensity"]),
                    renewable_percent=renewable_by_time.get(timestamp, 0.0),
                )
            )
        return samples

    async def fetch_historical_samples(
        self,
        region: str,
        start: datetime,
        end: datetime,
    ) -> List[HistoricalSample]:
        """Get hourly history for a location, oldest first"""
        if end <= start:
            return []

        zone = resolve_zone(region)
        samples: Dict[datetime, HistoricalSample] = {}

        chunk_start = start
        while chunk_start < end:
            chunk_end = min(chunk_start + MAX_HISTORY_CHUNK, end)
            params = {
                "zone": zone,
                "start": _format_datetime(chunk_start),
                "end": _format_datetime(chunk_end),
            }

            intensity = await self._get_json("/carbon-intensity/past-range", params)
            breakdown = await self._get_json("/power-breakdown/past-range", params)

            for sample in self._parse_history_response(
                intensity.get("data", []), breakdown.get("data", [])
            ):
                # Chunk boundaries overlap by one instant
                samples[sample.timestamp] = sample

            chunk_start = chunk_end

        ordered = sorted(samples.values(), key=lambda s: s.timestamp)

        self.logger.info(
            "historical_samples_fetched",
            zone=zone,
            count=len(ordered),
        )

        return ordered

    # -------------------------------------------------------------------------
    # Forecast
    # -------------------------------------------------------------------------

    def _parse_forecast_response(
        self,
        location: str,
        data: dict,
        hours: int,
        now: datetime,
    ) -> GreenHoursForecast:
        """Parse forecast entries into green hours below the static threshold"""
        forecast_end = now + timedelta(hours=hours)
        green_hours = []

        for entry in data.get("forecast", []):
            if entry.get("carbonIntensity") is None or not entry.get("datetime"):
                continue
            start = _parse_datetime(entry["datetime"])
            if start > forecast_end:
                continue
            intensity = float(entry["carbonIntensity"])
            if intensity < FORECAST_GREEN_THRESHOLD:
                green_hours.append(
                    GreenHour(
                        start=start,
                        end=start + timedelta(hours=1),
                        carbon_intensity=intensity,
                        confidence=FORECAST_CONFIDENCE,
                    )
                )

        green_hours.sort(key=lambda h: h.start)
        best = min(green_hours, key=lambda h: h.carbon_intensity) if green_hours else None

        return GreenHoursForecast(
            location=location,
            green_hours=green_hours,
            best_window=best,
            forecast_start=now,
            forecast_end=forecast_end,
            generated_at=now,
            source=self.client_name,
            confidence=FORECAST_CONFIDENCE,
        )

    async def fetch_forecast(self, region: str, hours: int = 24) -> GreenHoursForecast:
        """Get green hours for the next ``hours`` hours"""
        if hours <= 0:
            raise ValueError("hours must be positive")

        zone = resolve_zone(region)
        data = await self._get_json("/carbon-intensity/forecast", {"zone": zone})

        return self._parse_forecast_response(region, data, hours, datetime.now(timezone.utc))
