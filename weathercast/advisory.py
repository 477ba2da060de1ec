"""PAGASA rainfall advisories for observed and forecast rainfall."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Sequence

from .base import MetricKey, Reading, WeatherForecast
from .features import is_valid


class AdvisoryLevel(str, Enum):
  LIGHT = "LIGHT"
  MODERATE = "MODERATE"
  HEAVY = "HEAVY"
  INTENSE = "INTENSE"
  TORRENTIAL = "TORRENTIAL"


LEVEL_ORDER = (
    AdvisoryLevel.LIGHT,
    AdvisoryLevel.MODERATE,
    AdvisoryLevel.HEAVY,
    AdvisoryLevel.INTENSE,
    AdvisoryLevel.TORRENTIAL,
)

# Lower bound of each level, 1-hour rainfall in mm.
TORRENTIAL_MM = 30.0
INTENSE_MM = 15.0
HEAVY_MM = 7.5
MODERATE_MM = 2.5

HIGH_CONFIDENCE_R2 = 0.7
MEDIUM_CONFIDENCE_R2 = 0.4


@dataclass(frozen=True)
class RainfallAdvisory:
  level: AdvisoryLevel
  color: str
  one_hour_total: float
  threshold_min: float
  threshold_max: Optional[float]
  flood_possibility: str
  response: str
  is_current: bool = True
  confidence: Optional[str] = None
  projected_time: Optional[datetime] = None


@dataclass(frozen=True)
class RainfallTrend:
  direction: str
  rate: float
  acceleration: float


@dataclass(frozen=True)
class ContinuationPrediction:
  will_continue: bool
  confidence: str
  duration_hours: float
  projected_advisory: Optional[RainfallAdvisory] = None


@dataclass(frozen=True)
class RainfallAnalytics:
  one_hour_total: float
  three_hour_total: float
  six_hour_total: float
  twenty_four_hour_total: float
  current_advisory: RainfallAdvisory
  trend: RainfallTrend
  continuation: ContinuationPrediction

  @property
  def predicted_advisory(self) -> Optional[RainfallAdvisory]:
    return self.continuation.projected_advisory


def classify_rainfall(one_hour_total: float) -> RainfallAdvisory:
  """Maps a 1-hour rainfall total (mm) onto the PAGASA warning scale."""
  if one_hour_total > TORRENTIAL_MM:
    return RainfallAdvisory(
        AdvisoryLevel.TORRENTIAL, "RED", one_hour_total, TORRENTIAL_MM, None,
        "Serious flooding expected in low lying areas", "EVACUATION",
    )
  if one_hour_total >= INTENSE_MM:
    return RainfallAdvisory(
        AdvisoryLevel.INTENSE, "ORANGE", one_hour_total, INTENSE_MM, TORRENTIAL_MM,
        "Flooding is threatening", "ALERT for possible evacuation",
    )
  if one_hour_total >= HEAVY_MM:
    return RainfallAdvisory(
        AdvisoryLevel.HEAVY, "YELLOW", one_hour_total, HEAVY_MM, INTENSE_MM,
        "Flooding is possible", "MONITOR the weather condition",
    )
  if one_hour_total >= MODERATE_MM:
    return RainfallAdvisory(
        AdvisoryLevel.MODERATE, "GREY", one_hour_total, MODERATE_MM, HEAVY_MM,
        "Flooding still possible in certain areas", "General awareness",
    )
  return RainfallAdvisory(
      AdvisoryLevel.LIGHT, "GREY", one_hour_total, 0.0, MODERATE_MM,
      "Very low to no direct flood risk", "No immediate action required",
  )


def _window_total(readings: Sequence[Reading], start: datetime, end: Optional[datetime] = None) -> float:
  # Unparsable or non-finite gauge values are skipped, not summed.
  return sum(
      reading.rainfall
      for reading in readings
      if is_valid(reading.rainfall)
      and reading.timestamp >= start
      and (end is None or reading.timestamp < end)
  )


def _default_now(readings: Sequence[Reading]) -> Optional[datetime]:
  if not readings:
    return None
  return max(reading.timestamp for reading in readings)


def cumulative_rainfall(readings: Sequence[Reading], hours: float, now: Optional[datetime] = None) -> float:
  now = now or _default_now(readings)
  if now is None:
    return 0.0
  return _window_total(readings, now - timedelta(hours=hours))


def rainfall_trend(readings: Sequence[Reading], now: Optional[datetime] = None) -> RainfallTrend:
  """Hour-over-hour change in rainfall totals and its acceleration.

  Acceleration compares the latest change against the change one hour
  earlier, so the hour three hours back counts even though it falls outside
  the two-hour window used for the rate.
  """
  stable = RainfallTrend(direction="stable", rate=0.0, acceleration=0.0)
  now = now or _default_now(readings)
  if now is None or len(readings) < 2:
    return stable

  one_hour_ago = now - timedelta(hours=1)
  two_hours_ago = now - timedelta(hours=2)
  three_hours_ago = now - timedelta(hours=3)
  recent = [reading for reading in readings if reading.timestamp >= two_hours_ago]
  if len(recent) < 2:
    return stable

  current = _window_total(recent, one_hour_ago)
  previous = _window_total(recent, two_hours_ago, one_hour_ago)
  earlier = _window_total(readings, three_hours_ago, two_hours_ago)

  rate = current - previous
  acceleration = rate - (previous - earlier)
  if rate > 0.5:
    direction = "increasing"
  elif rate < -0.5:
    direction = "decreasing"
  else:
    direction = "stable"
  return RainfallTrend(direction=direction, rate=rate, acceleration=acceleration)


def predict_continuation(
    advisory: RainfallAdvisory,
    trend: RainfallTrend,
    readings: Sequence[Reading],
    now: Optional[datetime] = None,
) -> ContinuationPrediction:
  """Estimates whether rainfall keeps going over the next two hours."""
  now = now or _default_now(readings)
  if now is None:
    return ContinuationPrediction(will_continue=False, confidence="LOW", duration_hours=0.0)
  recent_rain = any(
      is_valid(reading.rainfall) and reading.rainfall > 0
      for reading in readings
      if reading.timestamp >= now - timedelta(minutes=30)
  )
  direction, rate = trend.direction, trend.rate

  will_continue, confidence, duration = False, "LOW", 0.0
  if advisory.level in (AdvisoryLevel.TORRENTIAL, AdvisoryLevel.INTENSE):
    if recent_rain and direction in ("increasing", "stable"):
      will_continue, confidence, duration = True, "HIGH", 2.0
    elif recent_rain and direction == "decreasing" and rate > -2:
      will_continue, confidence, duration = True, "MEDIUM", 1.5
  elif advisory.level is AdvisoryLevel.HEAVY:
    if recent_rain and direction == "increasing":
      will_continue, confidence, duration = True, "HIGH", 2.0
    elif recent_rain and (direction == "stable" or (direction == "decreasing" and rate > -1)):
      will_continue, confidence, duration = True, "MEDIUM", 1.5
  else:
    if recent_rain and direction == "increasing" and trend.acceleration > 0:
      will_continue, confidence, duration = True, "MEDIUM", 1.0
    elif recent_rain and direction == "stable":
      will_continue, confidence, duration = True, "LOW", 0.5

  projected = None
  if will_continue and confidence != "LOW":
    projected_total = advisory.one_hour_total
    if direction == "increasing" and rate > 0:
      projected_total = advisory.one_hour_total + rate
    elif direction == "decreasing" and rate < 0:
      projected_total = max(0.0, advisory.one_hour_total + rate)
    projected = replace(
        classify_rainfall(projected_total),
        is_current=False,
        confidence=confidence,
        projected_time=now + timedelta(hours=2),
    )

  return ContinuationPrediction(
      will_continue=will_continue,
      confidence=confidence,
      duration_hours=duration,
      projected_advisory=projected,
  )


def analyze_rainfall(readings: Sequence[Reading], now: Optional[datetime] = None) -> RainfallAnalytics:
  """Totals, current advisory, trend and continuation for recent readings.

  ``now`` defaults to the newest reading so that archived data is judged at
  the time it was recorded.
  """
  now = now or _default_now(readings)
  one_hour = cumulative_rainfall(readings, 1, now)
  advisory = classify_rainfall(one_hour)
  trend = rainfall_trend(readings, now)
  return RainfallAnalytics(
      one_hour_total=one_hour,
      three_hour_total=cumulative_rainfall(readings, 3, now),
      six_hour_total=cumulative_rainfall(readings, 6, now),
      twenty_four_hour_total=cumulative_rainfall(readings, 24, now),
      current_advisory=advisory,
      trend=trend,
      continuation=predict_continuation(advisory, trend, readings, now),
  )


def forecast_advisories(forecast: WeatherForecast) -> List[RainfallAdvisory]:
  """Projected advisory for each forecast step, graded by the rainfall model fit."""
  if not forecast.ok or forecast.models is None:
    return []
  r_squared = forecast.models.model(MetricKey.RAINFALL).r_squared
  if r_squared >= HIGH_CONFIDENCE_R2:
    confidence = "HIGH"
  elif r_squared >= MEDIUM_CONFIDENCE_R2:
    confidence = "MEDIUM"
  else:
    confidence = "LOW"
  return [
      replace(
          classify_rainfall(prediction.rainfall),
          is_current=False,
          confidence=confidence,
          projected_time=prediction.timestamp,
      )
      for prediction in forecast.predictions
  ]


def is_escalation(current: RainfallAdvisory, previous: Optional[RainfallAdvisory]) -> bool:
  if previous is None:
    return False
  return LEVEL_ORDER.index(current.level) > LEVEL_ORDER.index(previous.level)
