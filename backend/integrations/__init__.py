"""
External API Integrations

This module provides integration clients for external services:

Carbon APIs:
- Electricity Maps: live, historical and forecast grid carbon intensity

All clients support:
- Async/await with httpx
- Automatic retry with exponential backoff
- Structured logging
"""

from .carbon_apis import (
    # Contract and base classes
    CarbonDataSource,
    BaseCarbonClient,
    RetryConfig,
    # Errors
    CarbonAPIError,
    RateLimitError,
    AuthenticationError,
    ServiceUnavailableError,
    # Clients
    ElectricityMapsClient,
)

__all__ = [
    # Contract and base classes
    "CarbonDataSource",
    "BaseCarbonClient",
    "RetryConfig",
    # Errors
    "CarbonAPIError",
    "RateLimitError",
    "AuthenticationError",
    "ServiceUnavailableError",
    # Clients
    "ElectricityMapsClient",
]
