"""
Tests for relative metrics

Covers:
- Counting percentile, including the empty-pattern default
- Clean / average / dirty mode against P20 / P80
- Daily rank strings and trend magnitude
- Dynamic green-hour thresholds
"""

from datetime import timedelta

import pytest

from models.carbon import GreenHour
from models.pattern import RegionPattern, RelativeMode
from services.pattern_calculator import compute_pattern
from services.relative_metrics import (
    HIGH_VARIATION_STDDEV,
    apply_dynamic_thresholds,
    best_green_hour,
    classify,
    daily_rank,
    local_percentile,
)
from conftest import FIXED_NOW, make_daily_samples, make_samples


# =============================================================================
# HELPERS
# =============================================================================


def _pattern(values):
    return compute_pattern("DE", make_samples(values), min_points=1)


def _bare_pattern(mean=200.0, std_dev=30.0, p20=150.0, p80=250.0) -> RegionPattern:
    """Pattern with hand-picked thresholds and no retained samples"""
    return RegionPattern(
        region="DE",
        last_updated=FIXED_NOW,
        mean=mean,
        std_dev=std_dev,
        p20=p20,
        p80=p80,
        hourly_averages=tuple([mean] * 24),
    )


def _hour(offset: int, intensity: float, confidence: float = 70.0) -> GreenHour:
    start = FIXED_NOW + timedelta(hours=offset)
    return GreenHour(
        start=start,
        end=start + timedelta(hours=1),
        carbon_intensity=intensity,
        confidence=confidence,
    )


# =============================================================================
# CLASSIFICATION
# =============================================================================


class TestPercentile:
    """Tests for the counting percentile estimator"""

    def test_counts_strictly_less(self):
        pattern = _pattern([100, 200, 200, 300])

        assert local_percentile(200, pattern) == 25.0
        assert local_percentile(201, pattern) == 75.0

    def test_rounds_to_one_decimal(self):
        pattern = _pattern([10, 20, 30])
        # 1/3 * 100 = 33.33...
        assert local_percentile(15, pattern) == 33.3
        # 2/3 * 100 = 66.66...
        assert local_percentile(25, pattern) == 66.7

    def test_empty_pattern_defaults_to_median(self):
        assert local_percentile(123.0, _bare_pattern()) == 50.0

    def test_monotonic_in_value(self):
        pattern = compute_pattern("DE", make_daily_samples(7), min_points=1)
        values = [0, 50, 99.9, 100, 100.1, 180, 250, 250.1, 399, 400, 401, 1000]
        percentiles = [classify(v, pattern).percentile for v in values]

        assert percentiles == sorted(percentiles)

    def test_estimators_may_disagree(self):
        # Counting percentile of P80 itself is well below 80 here
        pattern = compute_pattern("DE", make_daily_samples(7), min_points=1)
        metrics = classify(pattern.p80, pattern)

        assert metrics.mode == RelativeMode.DIRTY
        assert metrics.percentile == pytest.approx(79.2)


class TestModeAndRank:
    """Tests for relative mode, daily rank and trend magnitude"""

    def test_mode_boundaries_are_inclusive(self):
        pattern = _bare_pattern(p20=150.0, p80=250.0)

        assert classify(150.0, pattern).mode == RelativeMode.CLEAN
        assert classify(150.1, pattern).mode == RelativeMode.AVERAGE
        assert classify(249.9, pattern).mode == RelativeMode.AVERAGE
        assert classify(250.0, pattern).mode == RelativeMode.DIRTY

    def test_daily_rank_strings(self):
        assert daily_rank(12.5) == "top 12% cleanest"
        assert daily_rank(20.0) == "top 20% cleanest"
        assert daily_rank(50.0) == "average for this region"
        assert daily_rank(80.0) == "top 20% dirtiest"
        assert daily_rank(95.5) == "top 4% dirtiest"

    def test_trend_magnitude(self):
        pattern = _bare_pattern(mean=200.0)

        assert classify(250.0, pattern).trend_magnitude == pytest.approx(25.0)
        assert classify(150.0, pattern).trend_magnitude == pytest.approx(-25.0)

    def test_trend_magnitude_zero_mean(self):
        pattern = _bare_pattern(mean=0.0, p20=0.0, p80=0.0, std_dev=0.0)
        assert classify(50.0, pattern).trend_magnitude == 0.0

    def test_scenario_a_night_reading_is_clean(self):
        pattern = compute_pattern("DE", make_daily_samples(7), min_points=1)
        metrics = classify(100.0, pattern)

        assert metrics.mode == RelativeMode.CLEAN
        assert metrics.percentile == 0.0
        assert metrics.daily_rank == "top 0% cleanest"


# =============================================================================
# DYNAMIC THRESHOLDS
# =============================================================================


class TestDynamicThresholds:
    """Tests for filtering forecast green hours"""

    def test_keeps_hours_at_or_below_p20(self):
        pattern = _bare_pattern(mean=200.0, std_dev=30.0, p20=150.0)
        hours = [_hour(1, 140.0), _hour(2, 150.0), _hour(3, 160.0)]

        kept = apply_dynamic_thresholds(hours, pattern)

        assert [h.carbon_intensity for h in kept] == [140.0, 150.0]
        assert all(h.confidence == 70.0 for h in kept)

    def test_low_variation_drops_below_mean_hours(self):
        pattern = _bare_pattern(mean=200.0, std_dev=HIGH_VARIATION_STDDEV, p20=150.0)

        assert apply_dynamic_thresholds([_hour(1, 180.0)], pattern) == []

    def test_high_variation_admits_below_mean_with_discount(self):
        pattern = _bare_pattern(mean=200.0, std_dev=80.0, p20=150.0)
        hours = [_hour(1, 140.0), _hour(2, 180.0), _hour(3, 200.0)]

        kept = apply_dynamic_thresholds(hours, pattern)

        assert [h.carbon_intensity for h in kept] == [140.0, 180.0]
        assert kept[0].confidence == 70.0
        assert kept[1].confidence == pytest.approx(56.0)

    def test_inputs_are_not_mutated(self):
        pattern = _bare_pattern(mean=200.0, std_dev=80.0, p20=150.0)
        hours = [_hour(1, 180.0)]

        kept = apply_dynamic_thresholds(hours, pattern)

        assert hours[0].confidence == 70.0
        assert kept[0] is not hours[0]

    def test_best_green_hour_takes_first_minimum(self):
        hours = [_hour(1, 120.0), _hour(2, 90.0), _hour(3, 90.0)]

        best = best_green_hour(hours)

        assert best is hours[1]
        assert best_green_hour([]) is None
