"""
Carbon Intelligence Engine - Pattern Refresh Worker

Warms regional patterns, logs the current relative intensity for each
region and keeps the patterns fresh in the background.

Usage:
    python main.py DE PL US-TEX --once    # Warm, report and exit
    python main.py DE PL                  # Warm, then refresh until interrupted
"""

import argparse
import asyncio
import logging
from typing import List, Optional, Sequence

import structlog

from config.settings import Settings, get_settings
from services.carbon_intelligence_service import (
    CarbonIntelligenceService,
    create_intelligence_service_from_settings,
)
from services.pattern_calculator import PatternError


def configure_logging(production: bool) -> None:
    """Configure structured logging; production uses a leaner processor chain"""
    logging.basicConfig(format="%(message)s", level=logging.INFO)

    if production:
        log_processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ]
    else:
        log_processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ]

    structlog.configure(
        processors=log_processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


def build_service(settings: Optional[Settings] = None) -> CarbonIntelligenceService:
    return create_intelligence_service_from_settings(settings or get_settings())


async def warm_regions(service: CarbonIntelligenceService, regions: Sequence[str]) -> List[str]:
    """
    Learn a pattern for each region and log its relative intensity.

    Returns the regions that failed or have no pattern yet; a failure in
    one region does not stop the others.
    """
    failed = []
    for region in regions:
        try:
            relative = await service.get_relative_carbon_intensity(region)
        except PatternError as e:
            failed.append(region)
            logger.error("region_warm_failed", region=region, error=str(e))
            continue

        if relative.relative_mode is None:
            failed.append(region)
            logger.warning("region_warm_degraded", region=region)
            continue

        logger.info(
            "region_warmed",
            region=region,
            carbon_intensity=relative.carbon_intensity,
            relative_mode=relative.relative_mode.value if relative.relative_mode else None,
            daily_rank=relative.daily_rank,
            confidence=relative.confidence_score,
            high_variation=relative.is_high_variation,
        )
    return failed


async def run(service: CarbonIntelligenceService, regions: Sequence[str], once: bool) -> int:
    async with service:
        failed = await warm_regions(service, regions)
        if once:
            return 1 if failed else 0

        logger.info(
            "refresh_worker_running",
            regions=service.get_supported_regions(),
            interval_seconds=service.scheduler.interval_seconds,
        )
        # Scheduler runs until the task is cancelled
        await asyncio.Event().wait()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Learn regional carbon intensity patterns and keep them fresh"
    )
    parser.add_argument(
        "regions",
        nargs="+",
        help="Region codes or location names to warm (e.g. DE PL Texas)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Warm the regions, report and exit (default: keep refreshing)",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.is_production)
    logger.info("worker_starting", environment=settings.environment, version=settings.app_version)

    service = build_service(settings)
    try:
        return asyncio.run(run(service, args.regions, args.once))
    except KeyboardInterrupt:
        logger.info("worker_stopped")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
