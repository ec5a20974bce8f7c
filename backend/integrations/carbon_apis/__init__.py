"""
Carbon Intensity Data Sources

Clients for grid carbon intensity APIs behind the CarbonDataSource
contract used by the intelligence engine.
"""

from .base import (
    CarbonDataSource,
    BaseCarbonClient,
    RetryConfig,
    # Errors
    CarbonAPIError,
    RateLimitError,
    AuthenticationError,
    ServiceUnavailableError,
)
from .electricity_maps import ElectricityMapsClient, resolve_zone

__all__ = [
    "CarbonDataSource",
    "BaseCarbonClient",
    "RetryConfig",
    "CarbonAPIError",
    "RateLimitError",
    "AuthenticationError",
    "ServiceUnavailableError",
    "ElectricityMapsClient",
    "resolve_zone",
]
