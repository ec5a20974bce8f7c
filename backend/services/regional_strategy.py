"""
Regional Optimization Strategies

Static scheduling guidance for grid regions known for large intraday
carbon swings, with a generic default for everything else.
"""

from typing import Dict

from integrations.carbon_apis.electricity_maps import resolve_zone
from models.pattern import RegionalStrategy


REGIONAL_STRATEGIES: Dict[str, RegionalStrategy] = {
    "PL": RegionalStrategy(
        region="PL",
        primary_energy_source="coal",
        optimal_hours=[22, 23, 0, 1, 2, 3, 4, 5, 11, 12, 13, 14],
        avoidance_hours=[17, 18, 19, 20, 21, 7, 8, 9],
        variation_level="high",
        recommendations=[
            "Schedule energy-intensive tasks during night hours (22:00-05:00)",
            "Avoid peak evening hours (17:00-21:00) when coal plants ramp up",
            "Take advantage of midday solar generation (11:00-14:00)",
            "Weekend scheduling provides 15-20% better carbon efficiency",
            "Consider seasonal patterns - summer has more renewable generation",
        ],
    ),
    "US-TEX": RegionalStrategy(
        region="US-TEX",
        primary_energy_source="mixed",
        optimal_hours=[10, 11, 12, 13, 14, 15, 23, 0, 1, 2, 3, 4],
        avoidance_hours=[16, 17, 18, 19, 20, 21, 6, 7, 8, 9],
        variation_level="high",
        recommendations=[
            "Maximize solar window utilization (10:00-15:00)",
            "Avoid extreme peak hours (16:00-21:00) when gas peakers activate",
            "Night hours (23:00-04:00) often have good wind generation",
            "Summer cooling loads create high variation - plan accordingly",
            "West Texas wind patterns favor overnight scheduling",
        ],
    ),
    "CN": RegionalStrategy(
        region="CN",
        primary_energy_source="coal",
        optimal_hours=[1, 2, 3, 4, 5, 11, 12, 13, 14, 15],
        avoidance_hours=[18, 19, 20, 21, 22, 7, 8, 9, 10],
        variation_level="high",
        recommendations=[
            "Schedule during early morning hours (01:00-05:00) for lowest grid load",
            "Midday solar generation window (11:00-15:00) increasingly reliable",
            "Avoid industrial peak hours (18:00-22:00)",
            "Regional differences significant - eastern coastal areas cleaner",
            "Seasonal coal heating creates winter optimization challenges",
        ],
    ),
    "IN": RegionalStrategy(
        region="IN",
        primary_energy_source="coal",
        optimal_hours=[2, 3, 4, 5, 11, 12, 13, 14, 15, 16],
        avoidance_hours=[18, 19, 20, 21, 22, 23, 6, 7, 8, 9],
        variation_level="high",
        recommendations=[
            "Early morning hours (02:00-05:00) have lowest coal dependency",
            "Solar generation peak (11:00-16:00) offers best carbon efficiency",
            "Avoid evening industrial peak (18:00-23:00)",
            "Monsoon season affects renewable generation patterns",
            "Southern states typically have better renewable mix",
        ],
    ),
    "AU-NSW": RegionalStrategy(
        region="AU-NSW",
        primary_energy_source="mixed",
        optimal_hours=[10, 11, 12, 13, 14, 15, 23, 0, 1, 2, 3],
        avoidance_hours=[17, 18, 19, 20, 21, 7, 8, 9],
        variation_level="high",
        recommendations=[
            "Solar generation window (10:00-15:00) provides cleanest energy",
            "Night hours (23:00-03:00) benefit from lower demand",
            "Avoid evening air conditioning peak (17:00-21:00)",
            "Seasonal patterns significant - summer has high variation",
            "Coal retirement schedule improving long-term trends",
        ],
    ),
    "ZA": RegionalStrategy(
        region="ZA",
        primary_energy_source="coal",
        optimal_hours=[11, 12, 13, 14, 15, 1, 2, 3, 4, 5],
        avoidance_hours=[17, 18, 19, 20, 21, 22, 6, 7, 8],
        variation_level="high",
        recommendations=[
            "Midday solar generation (11:00-15:00) offers best opportunities",
            "Early morning hours (01:00-05:00) have reduced coal load",
            "Avoid evening peak (17:00-22:00) when load shedding risk highest",
            "Grid stability affects optimization - flexible scheduling essential",
            "Industrial demand patterns create predictable carbon peaks",
        ],
    ),
}


def default_strategy(region: str) -> RegionalStrategy:
    return RegionalStrategy(
        region=region,
        primary_energy_source="mixed",
        optimal_hours=[22, 23, 0, 1, 2, 3, 11, 12, 13, 14],
        avoidance_hours=[17, 18, 19, 20],
        variation_level="medium",
        recommendations=[
            "Schedule during typical low-demand hours (22:00-03:00)",
            "Take advantage of midday renewable generation when available",
            "Avoid evening peak hours (17:00-20:00)",
            "Monitor local grid patterns for region-specific optimization",
        ],
    )


def get_regional_strategy(region: str) -> RegionalStrategy:
    """Strategy for a region or location name, falling back to the default"""
    zone = resolve_zone(region)
    strategy = REGIONAL_STRATEGIES.get(zone)
    if strategy is None:
        return default_strategy(zone)
    return strategy.model_copy(deep=True)
