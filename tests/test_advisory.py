"""Tests for PAGASA rainfall advisories."""

from datetime import datetime, timedelta

import pytest

from weathercast import Reading, analyze_rainfall, classify_rainfall, forecast_advisories, is_escalation, run_forecast
from weathercast.advisory import AdvisoryLevel, cumulative_rainfall, predict_continuation, rainfall_trend

from conftest import make_reading

NOW = datetime(2024, 1, 1, 12, 0)


def _at(minutes_before: int, rainfall: float) -> Reading:
  return Reading(
      timestamp=NOW - timedelta(minutes=minutes_before),
      temperature=27.0,
      humidity=85.0,
      rainfall=rainfall,
      wind_speed=14.0,
  )


@pytest.fixture
def rising_rain():
  return [_at(150, 1.0), _at(90, 1.0), _at(30, 5.0), _at(0, 5.0)]


class TestClassification:

  @pytest.mark.parametrize(
      "total, level, color",
      [
          (0.0, AdvisoryLevel.LIGHT, "GREY"),
          (2.4, AdvisoryLevel.LIGHT, "GREY"),
          (2.5, AdvisoryLevel.MODERATE, "GREY"),
          (7.5, AdvisoryLevel.HEAVY, "YELLOW"),
          (15.0, AdvisoryLevel.INTENSE, "ORANGE"),
          (30.0, AdvisoryLevel.INTENSE, "ORANGE"),
          (30.1, AdvisoryLevel.TORRENTIAL, "RED"),
      ],
  )
  def test_levels(self, total, level, color):
    advisory = classify_rainfall(total)
    assert advisory.level is level
    assert advisory.color == color
    assert advisory.one_hour_total == total
    assert advisory.is_current

  def test_torrential_has_open_upper_bound(self):
    advisory = classify_rainfall(45.0)
    assert advisory.threshold_min == 30.0
    assert advisory.threshold_max is None
    assert advisory.response == "EVACUATION"

  def test_escalation(self):
    assert is_escalation(classify_rainfall(20.0), classify_rainfall(8.0))
    assert not is_escalation(classify_rainfall(8.0), classify_rainfall(20.0))
    assert not is_escalation(classify_rainfall(8.0), classify_rainfall(9.0))
    assert not is_escalation(classify_rainfall(40.0), None)


class TestTotalsAndTrend:

  def test_cumulative_windows(self, rising_rain):
    assert cumulative_rainfall(rising_rain, 1, NOW) == 10.0
    assert cumulative_rainfall(rising_rain, 2, NOW) == 11.0
    assert cumulative_rainfall(rising_rain, 3, NOW) == 12.0

  def test_cumulative_defaults_to_latest_reading(self, rising_rain):
    assert cumulative_rainfall(rising_rain, 1) == 10.0
    assert cumulative_rainfall([], 1) == 0.0

  def test_increasing_trend(self, rising_rain):
    trend = rainfall_trend(rising_rain, NOW)
    assert trend.direction == "increasing"
    assert trend.rate == 9.0
    assert trend.acceleration == 9.0

  def test_stable_with_sparse_data(self):
    trend = rainfall_trend([_at(0, 3.0)], NOW)
    assert trend.direction == "stable"
    assert trend.rate == 0.0

  def test_unreadable_gauge_values_are_skipped(self):
    readings = [_at(150, 10.0), _at(90, float("nan")), _at(45, 10.0), _at(20, float("inf")), _at(0, 10.0)]
    analytics = analyze_rainfall(readings, NOW)
    assert analytics.one_hour_total == 20.0
    assert analytics.three_hour_total == 30.0
    assert analytics.twenty_four_hour_total == 30.0
    assert analytics.current_advisory.level is AdvisoryLevel.INTENSE
    assert analytics.trend.rate == 20.0

  def test_infinite_reading_is_not_recent_rain(self):
    readings = [_at(120, 0.0), _at(60, 0.0), _at(10, float("inf"))]
    analytics = analyze_rainfall(readings, NOW)
    assert analytics.one_hour_total == 0.0
    assert analytics.trend.direction == "stable"
    assert not analytics.continuation.will_continue

  def test_acceleration_counts_the_third_hour_back(self):
    without_history = [_at(90, 2.0), _at(30, 3.0)]
    with_history = [_at(150, 3.0)] + without_history

    assert rainfall_trend(without_history, NOW).acceleration == -1.0
    trend = rainfall_trend(with_history, NOW)
    assert trend.direction == "increasing"
    assert trend.rate == 1.0
    assert trend.acceleration == 2.0

    assert not analyze_rainfall(without_history, NOW).continuation.will_continue
    continuation = analyze_rainfall(with_history, NOW).continuation
    assert continuation.will_continue
    assert continuation.confidence == "MEDIUM"
    assert continuation.duration_hours == 1.0

  def test_decreasing_trend(self):
    readings = [_at(90, 6.0), _at(70, 6.0), _at(10, 1.0)]
    trend = rainfall_trend(readings, NOW)
    assert trend.direction == "decreasing"
    assert trend.rate == -11.0


class TestContinuation:

  def test_heavy_and_rising_continues(self, rising_rain):
    analytics = analyze_rainfall(rising_rain, NOW)
    assert analytics.current_advisory.level is AdvisoryLevel.HEAVY
    continuation = analytics.continuation
    assert continuation.will_continue
    assert continuation.confidence == "HIGH"
    assert continuation.duration_hours == 2.0

    projected = analytics.predicted_advisory
    assert projected.level is AdvisoryLevel.INTENSE
    assert projected.one_hour_total == 19.0
    assert not projected.is_current
    assert projected.projected_time == NOW + timedelta(hours=2)

  def test_dry_spell_does_not_continue(self):
    readings = [_at(120, 0.0), _at(60, 0.0), _at(0, 0.0)]
    advisory = classify_rainfall(0.0)
    continuation = predict_continuation(advisory, rainfall_trend(readings, NOW), readings, NOW)
    assert not continuation.will_continue
    assert continuation.projected_advisory is None

  def test_light_stable_rain_has_low_confidence(self):
    readings = [_at(100, 0.5), _at(50, 0.5), _at(10, 0.5)]
    analytics = analyze_rainfall(readings, NOW)
    assert analytics.continuation.will_continue
    assert analytics.continuation.confidence == "LOW"
    assert analytics.predicted_advisory is None

  def test_empty_history(self):
    analytics = analyze_rainfall([])
    assert analytics.one_hour_total == 0.0
    assert analytics.current_advisory.level is AdvisoryLevel.LIGHT
    assert not analytics.continuation.will_continue


class TestForecastAdvisories:

  def test_one_advisory_per_step(self, noisy_readings):
    forecast = run_forecast(noisy_readings, "24h")
    advisories = forecast_advisories(forecast)
    assert len(advisories) == len(forecast.predictions)
    for advisory, prediction in zip(advisories, forecast.predictions):
      assert advisory.projected_time == prediction.timestamp
      assert advisory.one_hour_total == prediction.rainfall
      assert not advisory.is_current
      assert advisory.confidence in {"HIGH", "MEDIUM", "LOW"}

  def test_no_advisories_without_forecast(self):
    assert forecast_advisories(run_forecast([make_reading(0)], "6h")) == []
