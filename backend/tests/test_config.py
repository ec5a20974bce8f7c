"""
Configuration Tests

Tests for:
- Settings loading from environment
- Settings validation
- High-variation region parsing
- IntelligenceConfig construction and presets
"""

import os
from datetime import timedelta

import pytest
from unittest.mock import patch


# =============================================================================
# SETTINGS TESTS
# =============================================================================


class TestSettings:
    """Tests for the Settings configuration class"""

    def test_settings_loads_from_env(self):
        """Test that settings loads from environment variables"""
        from config.settings import Settings

        with patch.dict(os.environ, {
            "ELECTRICITY_MAPS_API_KEY": "test-em-key",
            "HISTORY_RETENTION_DAYS": "14",
            "MIN_DATA_POINTS_FOR_ANALYSIS": "72",
            "PATTERN_UPDATE_INTERVAL_SECONDS": "600",
            "ENVIRONMENT": "test",
        }):
            settings = Settings()

            assert settings.electricity_maps_api_key == "test-em-key"
            assert settings.history_retention_days == 14
            assert settings.min_data_points_for_analysis == 72
            assert settings.pattern_update_interval_seconds == 600
            assert settings.environment == "test"

    def test_settings_validates_environment(self):
        """Test that environment must be one of allowed values"""
        from config.settings import Settings
        from pydantic import ValidationError

        with patch.dict(os.environ, {"ENVIRONMENT": "invalid_environment"}):
            with pytest.raises(ValidationError):
                Settings()

    def test_settings_default_environment(self):
        """Test default environment is development"""
        from config.settings import Settings

        env = os.environ.copy()
        env.pop("ENVIRONMENT", None)
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)
            assert settings.environment == "development"
            assert settings.is_development is True
            assert settings.is_production is False

    def test_is_production_property(self):
        """Test is_production property works correctly"""
        from config.settings import Settings

        with patch.dict(os.environ, {"ENVIRONMENT": "production"}):
            settings = Settings()

            assert settings.is_production is True
            assert settings.is_development is False

    def test_pattern_defaults(self):
        """Test pattern learning defaults"""
        from config.settings import Settings

        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

            assert settings.history_retention_days == 30
            assert settings.min_data_points_for_analysis == 168
            assert settings.pattern_update_interval_seconds == 900
            assert settings.pattern_read_timeout_seconds == 10.0
            assert settings.electricity_maps_base_url == "https://api.electricitymap.org/v3"

    def test_rejects_non_positive_interval(self):
        """Test the refresh interval must be positive"""
        from config.settings import Settings
        from pydantic import ValidationError

        with patch.dict(os.environ, {"PATTERN_UPDATE_INTERVAL_SECONDS": "0"}):
            with pytest.raises(ValidationError):
                Settings()

    @pytest.mark.parametrize("value", ["0", "-5"])
    def test_non_positive_read_timeout_disables_it(self, value):
        """Test a zero or negative read timeout means wait indefinitely"""
        from config.settings import Settings

        with patch.dict(os.environ, {"PATTERN_READ_TIMEOUT_SECONDS": value}):
            settings = Settings()

            assert settings.pattern_read_timeout_seconds is None


class TestHighVariationRegions:
    """Tests for HIGH_VARIATION_REGIONS parsing"""

    def test_default_allow_list(self):
        from config.settings import DEFAULT_HIGH_VARIATION_REGIONS, Settings

        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

            assert settings.high_variation_regions == DEFAULT_HIGH_VARIATION_REGIONS
            assert "PL" in settings.high_variation_regions

    def test_comma_separated(self):
        from config.settings import Settings

        with patch.dict(os.environ, {"HIGH_VARIATION_REGIONS": "PL, US-TEX,,ZA "}):
            settings = Settings()

            assert settings.high_variation_regions == ["PL", "US-TEX", "ZA"]

    def test_json_list(self):
        from config.settings import Settings

        with patch.dict(os.environ, {"HIGH_VARIATION_REGIONS": '["CN", "IN"]'}):
            settings = Settings()

            assert settings.high_variation_regions == ["CN", "IN"]


# =============================================================================
# INTELLIGENCE CONFIG TESTS
# =============================================================================


class TestIntelligenceConfig:
    """Tests for the engine configuration dataclass"""

    def test_defaults(self):
        from config.intelligence import IntelligenceConfig

        config = IntelligenceConfig()

        assert config.history_retention_days == 30
        assert config.min_data_points == 168
        assert config.update_interval == timedelta(minutes=15)
        assert config.expected_sample_count == 720
        assert config.history_window == timedelta(days=30)

    def test_from_settings(self):
        from config.intelligence import IntelligenceConfig
        from config.settings import Settings

        with patch.dict(os.environ, {
            "HISTORY_RETENTION_DAYS": "7",
            "PATTERN_UPDATE_INTERVAL_SECONDS": "300",
            "PATTERN_REFRESH_TIMEOUT_SECONDS": "45",
            "PATTERN_READ_TIMEOUT_SECONDS": "0",
            "HIGH_VARIATION_REGIONS": "PL",
        }):
            config = IntelligenceConfig.from_settings(Settings())

        assert config.history_retention_days == 7
        assert config.update_interval == timedelta(minutes=5)
        assert config.refresh_timeout_seconds == 45.0
        assert config.read_timeout_seconds is None
        assert config.high_variation_regions == ["PL"]

    def test_high_variation_preset(self):
        from config.intelligence import IntelligenceConfig

        base = IntelligenceConfig(refresh_timeout_seconds=30.0)
        config = IntelligenceConfig.high_variation(base)

        assert config.update_interval == timedelta(minutes=10)
        assert config.min_data_points == 72
        assert config.history_retention_days == 14
        assert config.refresh_timeout_seconds == 30.0
        # Base is untouched
        assert base.min_data_points == 168

    @pytest.mark.parametrize("kwargs", [
        {"history_retention_days": 0},
        {"min_data_points": 0},
        {"update_interval": timedelta(0)},
    ])
    def test_validation(self, kwargs):
        from config.intelligence import IntelligenceConfig

        with pytest.raises(ValueError):
            IntelligenceConfig(**kwargs)

    def test_is_frozen(self):
        from dataclasses import FrozenInstanceError
        from config.intelligence import IntelligenceConfig

        config = IntelligenceConfig()

        with pytest.raises(FrozenInstanceError):
            config.min_data_points = 10
