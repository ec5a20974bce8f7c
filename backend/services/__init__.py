"""
Business Logic Services

Service layer for the Carbon Intelligence Engine.
"""

from services.carbon_intelligence_service import (
    CarbonIntelligenceService,
    create_intelligence_service_from_settings,
)
from services.pattern_calculator import (
    PatternCalculator,
    PatternError,
    InsufficientDataError,
)
from services.pattern_store import (
    RegionPatternStore,
    PatternRefreshScheduler,
    CollaboratorFetchError,
    NoPatternAvailable,
)
from services.trend_analysis import ConfidenceScorer

__all__ = [
    "CarbonIntelligenceService",
    "create_intelligence_service_from_settings",
    "PatternCalculator",
    "RegionPatternStore",
    "PatternRefreshScheduler",
    "ConfidenceScorer",
    # Errors
    "PatternError",
    "InsufficientDataError",
    "CollaboratorFetchError",
    "NoPatternAvailable",
]
