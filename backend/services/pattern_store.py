"""
Region Pattern Store

In-memory cache of learned regional patterns with lazy recompute,
serve-stale fallback and a cancellable background refresh job.

Concurrency model (single event loop):
- Readers look up the pattern map without locking. Patterns are
  immutable and replaced wholesale, so a reader never sees a partial
  update.
- Installing a pattern or clearing entries happens under one map-wide
  ``asyncio.Lock``.
- At most one recompute per region runs at a time. Lazy readers, forced
  refreshes and the scheduler all await the same task, shielded so a
  reader's timeout or cancellation never cancels the shared work. A timed
  refresh that is the last waiter cancels the recompute instead.
- clear() detaches the region's running recompute: callers already
  waiting get its result, later readers start a new one.
"""

import asyncio
import functools
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog

from config.intelligence import IntelligenceConfig
from integrations.carbon_apis.base import CarbonDataSource
from models.pattern import RegionPattern
from services.pattern_calculator import PatternCalculator, PatternComputationError, PatternError

logger = structlog.get_logger(__name__)


Clock = Callable[[], datetime]
RegionConfig = Callable[[str], IntelligenceConfig]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CollaboratorFetchError(PatternError):
    """Raised when a data source call fails or times out"""

    def __init__(
        self,
        message: str,
        region: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.region = region
        self.original_error = original_error


class NoPatternAvailable(PatternError):
    """Raised when a region has no cached pattern and computing one failed"""

    def __init__(self, region: str, cause: Optional[BaseException] = None):
        self.region = region
        self.cause = cause
        reason = f": {cause}" if cause is not None and str(cause) else ""
        super().__init__(f"No pattern available for {region}{reason}")


class RegionPatternStore:
    """
    Per-region pattern cache over a historical data source.

    Example usage:
        ```python
        store = RegionPatternStore(source, PatternCalculator(168))
        pattern = await store.get_pattern("DE", timeout=5.0)
        ```
    """

    def __init__(
        self,
        source: CarbonDataSource,
        calculator: PatternCalculator,
        config: Optional[IntelligenceConfig] = None,
        clock: Optional[Clock] = None,
        region_config: Optional[RegionConfig] = None,
    ):
        self.source = source
        self.calculator = calculator
        self.config = config or IntelligenceConfig()
        self._clock = clock or utc_now
        self._region_config = region_config

        self._patterns: Dict[str, RegionPattern] = {}
        self._lock = asyncio.Lock()

        # Single-flight guard: region -> running recompute
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._waiters: Dict[asyncio.Task, int] = {}

        # Bumped by clear() so an older recompute cannot reinstall its result
        self._generations: Dict[str, int] = {}

        # Metrics
        self._hits = 0
        self._misses = 0
        self._refreshes = 0
        self._failures = 0
        self._stale_served = 0

        self.logger = logger.bind(component="pattern_store")

    # ==========================================================================
    # Reads
    # ==========================================================================

    def peek(self, region: str) -> Optional[RegionPattern]:
        """Cached pattern for a region, fresh or stale, without recomputing"""
        return self._patterns.get(region)

    def regions(self) -> List[str]:
        """Regions that currently have a cached pattern"""
        return list(self._patterns)

    def is_refreshing(self, region: str) -> bool:
        return region in self._in_flight

    def config_for(self, region: str) -> IntelligenceConfig:
        """Configuration governing one region's pattern"""
        if self._region_config is None:
            return self.config
        return self._region_config(region)

    async def get_pattern(
        self,
        region: str,
        timeout: Optional[float] = None,
    ) -> RegionPattern:
        """
        Get the pattern for a region, recomputing it if absent or stale.

        A failed or timed-out recompute falls back to the previously
        cached pattern. The failure is only logged and counted.

        Args:
            region: Region code
            timeout: Seconds to wait for a recompute; defaults to the
                configured read timeout, None in the config means no bound

        Raises:
            NoPatternAvailable: If nothing is cached and the recompute failed
        """
        config = self.config_for(region)
        cached = self._patterns.get(region)
        if cached is not None and not cached.is_stale(self._clock(), config.update_interval):
            self._hits += 1
            return cached

        self._misses += 1
        if timeout is None:
            timeout = config.read_timeout_seconds

        try:
            return await self._wait_for_recompute(region, timeout)
        except (PatternError, asyncio.TimeoutError) as e:
            if cached is None:
                raise NoPatternAvailable(region, e) from e

            self._stale_served += 1
            self.logger.warning(
                "pattern_serving_stale",
                region=region,
                age_seconds=round(cached.age(self._clock()).total_seconds()),
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )
            return cached

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def refresh(self, region: str, timeout: Optional[float] = None) -> RegionPattern:
        """
        Recompute a region's pattern now, joining any recompute in flight.

        When ``timeout`` expires and no other caller is waiting on the
        recompute, it is cancelled rather than left running.

        Raises:
            PatternError: If the recompute fails; the cached entry is kept
            asyncio.TimeoutError: If ``timeout`` expires
        """
        return await self._wait_for_recompute(region, timeout, cancel_on_timeout=True)

    async def clear(self, region: Optional[str] = None) -> None:
        """Evict one region, or every region when ``region`` is None"""
        async with self._lock:
            if region is None:
                targets = set(self._patterns) | set(self._in_flight)
                self._patterns.clear()
            else:
                targets = {region}
                self._patterns.pop(region, None)

            for key in targets:
                self._generations[key] = self._generations.get(key, 0) + 1
                # Running task keeps its current waiters but takes no new ones
                self._in_flight.pop(key, None)

        self.logger.info("pattern_cleared", region=region or "*", count=len(targets))

    # ==========================================================================
    # Recompute
    # ==========================================================================

    async def _wait_for_recompute(
        self,
        region: str,
        timeout: Optional[float],
        cancel_on_timeout: bool = False,
    ) -> RegionPattern:
        task = self._ensure_recompute(region)
        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            if timeout is None:
                return await asyncio.shield(task)
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            if cancel_on_timeout and self._waiters.get(task) == 1 and not task.done():
                await self._cancel_recompute(region, task)
            raise
        finally:
            remaining = self._waiters.get(task, 1) - 1
            if remaining > 0:
                self._waiters[task] = remaining
            else:
                self._waiters.pop(task, None)

    async def _cancel_recompute(self, region: str, task: asyncio.Task) -> None:
        task.cancel()
        # Wait for the fetch to unwind so the next region starts alone
        await asyncio.wait({task})
        if self._in_flight.get(region) is task:
            del self._in_flight[region]
        self.logger.info("pattern_recompute_cancelled", region=region)

    def _ensure_recompute(self, region: str) -> asyncio.Task:
        """Return the in-flight recompute for a region, starting one if needed"""
        task = self._in_flight.get(region)
        if task is not None:
            self.logger.debug("recompute_joined", region=region)
            return task

        task = asyncio.create_task(
            self._recompute(region, self._generations.get(region, 0)),
            name=f"pattern-recompute-{region}",
        )
        self._in_flight[region] = task
        task.add_done_callback(functools.partial(self._recompute_done, region))
        return task

    def _recompute_done(self, region: str, task: asyncio.Task) -> None:
        if self._in_flight.get(region) is task:
            del self._in_flight[region]
        if not task.cancelled():
            # Mark retrieved in case every waiter gave up
            task.exception()

    async def _fetch_samples(self, region: str, now: datetime, config: IntelligenceConfig) -> list:
        start = now - config.history_window
        try:
            return await asyncio.wait_for(
                self.source.fetch_historical_samples(region, start, now),
                config.refresh_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise CollaboratorFetchError(
                f"Historical fetch for {region} timed out after "
                f"{config.refresh_timeout_seconds}s",
                region=region,
                original_error=e,
            ) from e
        except PatternError:
            raise
        except Exception as e:
            raise CollaboratorFetchError(
                f"Historical fetch for {region} failed: {e}",
                region=region,
                original_error=e,
            ) from e

    def _compute(self, region: str, samples: list, config: IntelligenceConfig) -> RegionPattern:
        try:
            return self.calculator.compute(
                region, samples, now=self._clock(), min_points=config.min_data_points
            )
        except PatternError:
            raise
        except Exception as e:
            raise PatternComputationError(region, e) from e

    async def _recompute(self, region: str, generation: int) -> RegionPattern:
        self._refreshes += 1
        now = self._clock()
        config = self.config_for(region)

        try:
            samples = await self._fetch_samples(region, now, config)
            pattern = self._compute(region, samples, config)
        except PatternError as e:
            self._failures += 1
            self.logger.warning(
                "pattern_recompute_failed",
                region=region,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        async with self._lock:
            if self._generations.get(region, 0) != generation:
                self.logger.info("pattern_discarded_after_clear", region=region)
                return pattern
            self._patterns[region] = pattern

        self.logger.info(
            "pattern_updated",
            region=region,
            samples=pattern.sample_count,
            mean=round(pattern.mean, 2),
            p20=pattern.p20,
            p80=pattern.p80,
            trend=pattern.trend_direction.value,
        )
        return pattern

    # ==========================================================================
    # Metrics
    # ==========================================================================

    def get_metrics(self) -> Dict[str, Any]:
        """Get store metrics"""
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0.0

        return {
            "hits": self._hits,
            "misses": self._misses,
            "total_requests": total,
            "hit_rate_percent": round(hit_rate, 2),
            "refreshes": self._refreshes,
            "failures": self._failures,
            "stale_served": self._stale_served,
            "in_flight": len(self._in_flight),
            "cached_regions": len(self._patterns),
        }

    def reset_metrics(self) -> None:
        """Reset metrics counters"""
        self._hits = 0
        self._misses = 0
        self._refreshes = 0
        self._failures = 0
        self._stale_served = 0


class PatternRefreshScheduler:
    """
    Periodically recomputes every cached region, one region at a time.

    Each region gets a bounded timeout so a slow region cannot hold up
    the sweep. Failures are logged and leave the cached entry in place.
    Tests drive it with ``run_once``; services run it with ``start``.
    """

    def __init__(
        self,
        store: RegionPatternStore,
        interval_seconds: float,
        region_timeout_seconds: float = 300.0,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.store = store
        self.interval_seconds = interval_seconds
        self.region_timeout_seconds = region_timeout_seconds
        self._task: Optional[asyncio.Task] = None
        self.logger = logger.bind(component="pattern_refresh_scheduler")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Dict[str, Any]:
        """Refresh every cached region sequentially"""
        refreshed: List[str] = []
        failed: Dict[str, str] = {}

        for region in self.store.regions():
            try:
                await self.store.refresh(region, timeout=self.region_timeout_seconds)
                refreshed.append(region)
            except asyncio.TimeoutError:
                failed[region] = f"timed out after {self.region_timeout_seconds}s"
                self.logger.warning(
                    "pattern_refresh_timeout",
                    region=region,
                    timeout_seconds=self.region_timeout_seconds,
                )
            except PatternError as e:
                failed[region] = str(e)
                self.logger.warning(
                    "pattern_refresh_failed",
                    region=region,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        self.logger.info(
            "pattern_refresh_sweep_complete",
            refreshed=len(refreshed),
            failed=len(failed),
        )

        return {"refreshed": refreshed, "failed": failed}

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception as e:
                self.logger.error(
                    "pattern_refresh_sweep_error",
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def start(self) -> None:
        """Start the background refresh loop"""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="pattern-refresh-scheduler")
        self.logger.info("pattern_refresh_scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish"""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.info("pattern_refresh_scheduler_stopped")

    async def __aenter__(self) -> "PatternRefreshScheduler":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
