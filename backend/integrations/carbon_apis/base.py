"""
Abstract Base Classes for Carbon Data Sources

Provides common functionality for carbon intensity integrations including:
- The data-source contract consumed by the intelligence engine
- HTTP client management with connection pooling
- Retry logic with exponential backoff
- Structured logging
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import asyncio
import random

import httpx
import structlog

from models.carbon import CarbonIntensity, GreenHoursForecast, HistoricalSample

logger = structlog.get_logger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class CarbonAPIError(Exception):
    """Error from an upstream carbon data provider, tagged with the provider name and HTTP status"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        api_name: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.api_name = api_name

    def __str__(self) -> str:
        parts = [self.message]
        if self.api_name:
            parts.insert(0, f"[{self.api_name}]")
        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")
        return " ".join(parts)


class RateLimitError(CarbonAPIError):
    """Provider throttled the request; ``retry_after`` carries its Retry-After hint in seconds"""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class AuthenticationError(CarbonAPIError):
    """Provider rejected the auth token (HTTP 401/403); never retried"""

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(message, **kwargs)


class ServiceUnavailableError(CarbonAPIError):
    """Provider answered with a 5xx status, after retries where the code is retryable"""

    def __init__(self, message: str = "Service unavailable", **kwargs):
        super().__init__(message, **kwargs)


# =============================================================================
# DATA SOURCE CONTRACT
# =============================================================================


class CarbonDataSource(ABC):
    """
    Source of carbon intensity data for the intelligence engine.

    Implementations may block on network I/O; callers bound each call
    with their own timeout.
    """

    @abstractmethod
    async def fetch_historical_samples(
        self,
        region: str,
        start: datetime,
        end: datetime,
    ) -> List[HistoricalSample]:
        """Historical samples in ``[start, end]``, in ascending timestamp order"""

    @abstractmethod
    async def fetch_current_intensity(self, region: str) -> CarbonIntensity:
        """Latest carbon intensity reading for a region"""

    @abstractmethod
    async def fetch_forecast(self, region: str, hours: int = 24) -> GreenHoursForecast:
        """Green hours forecast for the next ``hours`` hours"""

    async def close(self) -> None:
        """Release any held resources"""

    async def __aenter__(self) -> "CarbonDataSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


# =============================================================================
# RETRY CONFIGURATION
# =============================================================================


@dataclass
class RetryConfig:
    """
    Backoff policy for carbon data requests.

    Applied per request, so each chunk of a history backfill is retried
    on its own.
    """

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True

    # Timeouts, throttling and gateway errors from the provider
    retryable_status_codes: tuple[int, ...] = (408, 429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Seconds to wait before retry ``attempt`` (0-based), capped and optionally jittered"""
        delay = min(
            self.base_delay_seconds * (self.exponential_base ** attempt),
            self.max_delay_seconds,
        )

        if self.jitter:
            delay = delay * (0.5 + random.random())

        return delay


# =============================================================================
# BASE HTTP CLIENT
# =============================================================================


class BaseCarbonClient(CarbonDataSource):
    """
    Base class for HTTP carbon data clients.

    Provides common functionality:
    - HTTP client management
    - Retry logic with exponential backoff
    - Typed errors for auth, rate limit and availability failures
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        client_name: str,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.client_name = client_name
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()

        # HTTP client (lazy initialization)
        self._client: Optional[httpx.AsyncClient] = None

        self.logger = logger.bind(api_client=client_name)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers=self._get_default_headers(),
                follow_redirects=True,
            )
        return self._client

    @abstractmethod
    def _get_default_headers(self) -> dict[str, str]:
        """Get default headers for requests. Override in subclasses."""

    async def close(self) -> None:
        """Close the HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _retry_or_raise(self, attempt: int, event: str, **context) -> bool:
        """Sleep before the next attempt; False once retries are exhausted"""
        if attempt >= self.retry_config.max_retries:
            return False
        delay = self.retry_config.get_delay(attempt)
        self.logger.warning(event, attempt=attempt + 1, delay=delay, **context)
        await asyncio.sleep(delay)
        return True

    async def get(self, endpoint: str, params: Optional[dict] = None) -> httpx.Response:
        """
        Execute a GET request with retry logic.

        Raises:
            AuthenticationError: On 401/403
            RateLimitError: On 429 once retries are exhausted
            ServiceUnavailableError: On 5xx once retries are exhausted
            CarbonAPIError: On any other failure
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.retry_config.max_retries + 1):
            try:
                client = await self._get_client()

                self.logger.debug(
                    "api_request_start",
                    endpoint=endpoint,
                    attempt=attempt + 1,
                )

                response = await client.get(endpoint, params=params)

                if response.status_code in (401, 403):
                    raise AuthenticationError(
                        status_code=response.status_code,
                        response_body=response.text,
                        api_name=self.client_name,
                    )

                if response.status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", 60))
                    if await self._retry_or_raise(attempt, "api_rate_limited", retry_after=retry_after):
                        continue
                    raise RateLimitError(
                        retry_after=retry_after,
                        status_code=429,
                        api_name=self.client_name,
                    )

                if response.status_code >= 500:
                    retryable = response.status_code in self.retry_config.retryable_status_codes
                    if retryable and await self._retry_or_raise(
                        attempt, "api_request_retry", status_code=response.status_code
                    ):
                        continue
                    raise ServiceUnavailableError(
                        status_code=response.status_code,
                        response_body=response.text,
                        api_name=self.client_name,
                    )

                if response.status_code >= 400:
                    raise CarbonAPIError(
                        f"Request to {endpoint} failed",
                        status_code=response.status_code,
                        response_body=response.text,
                        api_name=self.client_name,
                    )

                self.logger.debug(
                    "api_request_success",
                    endpoint=endpoint,
                    status_code=response.status_code,
                )

                return response

            except httpx.TimeoutException as e:
                last_exception = e
                if await self._retry_or_raise(attempt, "api_request_timeout", endpoint=endpoint):
                    continue

            except CarbonAPIError:
                raise

            except httpx.HTTPError as e:
                self.logger.error(
                    "api_request_error",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise CarbonAPIError(
                    message=str(e),
                    api_name=self.client_name,
                ) from e

        # All retries exhausted
        raise CarbonAPIError(
            message=f"Request failed after {self.retry_config.max_retries + 1} attempts",
            api_name=self.client_name,
        ) from last_exception
