"""
Application Settings and Configuration Management

Uses pydantic-settings for type-safe configuration from environment variables.
"""

import json
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_HIGH_VARIATION_REGIONS = [
    "PL", "Poland",
    "US-TEX", "Texas",
    "CN", "China",
    "IN", "India",
    "AU-NSW", "Australia-NSW",
    "ZA", "South Africa",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    app_name: str = "Carbon Intelligence Engine"
    app_version: str = "0.1.0"
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    debug: bool = Field(default=False)

    # Pattern learning
    history_retention_days: int = Field(default=30, ge=1, validation_alias="HISTORY_RETENTION_DAYS")
    min_data_points_for_analysis: int = Field(
        default=168, ge=1, validation_alias="MIN_DATA_POINTS_FOR_ANALYSIS"
    )
    pattern_update_interval_seconds: int = Field(
        default=900, gt=0, validation_alias="PATTERN_UPDATE_INTERVAL_SECONDS"
    )
    pattern_refresh_timeout_seconds: float = Field(
        default=300.0, gt=0, validation_alias="PATTERN_REFRESH_TIMEOUT_SECONDS"
    )
    pattern_read_timeout_seconds: Optional[float] = Field(
        default=10.0, validation_alias="PATTERN_READ_TIMEOUT_SECONDS"
    )
    high_variation_regions: Annotated[List[str], NoDecode] = Field(
        default=DEFAULT_HIGH_VARIATION_REGIONS,
        validation_alias="HIGH_VARIATION_REGIONS",
    )

    # Electricity Maps
    electricity_maps_api_key: Optional[str] = Field(default=None, validation_alias="ELECTRICITY_MAPS_API_KEY")
    electricity_maps_base_url: str = Field(
        default="https://api.electricitymap.org/v3",
        validation_alias="ELECTRICITY_MAPS_BASE_URL",
    )
    electricity_maps_timeout: float = Field(default=10.0, gt=0, validation_alias="ELECTRICITY_MAPS_TIMEOUT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is valid"""
        allowed = ["development", "staging", "production", "test"]
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("high_variation_regions", mode="before")
    @classmethod
    def parse_high_variation_regions(cls, v):
        """Parse regions from a comma-separated string, a JSON list or a list"""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return [str(region).strip() for region in json.loads(v)]
            return [region.strip() for region in v.split(",") if region.strip()]
        return v

    @field_validator("pattern_read_timeout_seconds")
    @classmethod
    def validate_read_timeout(cls, v: Optional[float]) -> Optional[float]:
        """Zero or negative disables the read timeout"""
        if v is not None and v <= 0:
            return None
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.environment == "development"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance"""
    return settings
