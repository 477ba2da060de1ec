"""Shared forecasting datatypes for the weather-station regression engine."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional, Tuple, Union


class MetricKey(str, Enum):
  """Station metrics; one regression model is trained per key."""

  TEMPERATURE = "temperature"
  HUMIDITY = "humidity"
  RAINFALL = "rainfall"
  WIND_SPEED = "wind_speed"


METRIC_KEYS: Tuple[MetricKey, ...] = tuple(MetricKey)

PHYSICAL_BOUNDS: Dict[MetricKey, Tuple[float, float]] = {
    MetricKey.TEMPERATURE: (-50.0, 60.0),
    MetricKey.HUMIDITY: (0.0, 100.0),
    MetricKey.RAINFALL: (0.0, 1000.0),
    MetricKey.WIND_SPEED: (0.0, 200.0),
}

METRIC_UNITS = {
    MetricKey.TEMPERATURE: "°C",
    MetricKey.HUMIDITY: "%",
    MetricKey.RAINFALL: "mm",
    MetricKey.WIND_SPEED: "km/h",
}


def clamp_metric(key: MetricKey, value: float) -> float:
  """Clamps a value into the physical range of ``key``; NaN maps to the lower bound."""
  low, high = PHYSICAL_BOUNDS[MetricKey(key)]
  value = float(value)
  if math.isnan(value):
    return low
  return min(max(value, low), high)


@dataclass(frozen=True)
class Reading:
  """One timestamped station observation."""

  timestamp: datetime
  temperature: float
  humidity: float
  rainfall: float
  wind_speed: float

  def value(self, key: MetricKey) -> float:
    return getattr(self, MetricKey(key).value)

  def metric_values(self) -> Tuple[float, float, float, float]:
    return (self.temperature, self.humidity, self.rainfall, self.wind_speed)


@dataclass(frozen=True)
class Prediction(Reading):
  """One forecast step; every value lies within its physical bounds."""


@dataclass(frozen=True)
class RegressionModel:
  """Linear model on the original scale for a single target metric."""

  target: MetricKey
  coefficients: Tuple[float, ...]
  intercept: float
  r_squared: float
  feature_means: Tuple[float, ...] = ()
  feature_stds: Tuple[float, ...] = ()


class FallbackReason(str, Enum):
  INSUFFICIENT_READINGS = "insufficient_readings"
  INSUFFICIENT_VALID_ROWS = "insufficient_valid_rows"
  SINGULAR_SYSTEM = "singular_system"


@dataclass(frozen=True)
class Fitted:
  model: RegressionModel

  @property
  def is_fallback(self) -> bool:
    return False


@dataclass(frozen=True)
class Fallback:
  """Degenerate model produced when a regular fit was not possible."""

  model: RegressionModel
  reason: FallbackReason

  @property
  def is_fallback(self) -> bool:
    return True


FitResult = Union[Fitted, Fallback]


@dataclass(frozen=True)
class ModelBundle:
  """The four per-metric fit results of one forecast request."""

  temperature: FitResult
  humidity: FitResult
  rainfall: FitResult
  wind_speed: FitResult

  def get(self, key: MetricKey) -> FitResult:
    return getattr(self, MetricKey(key).value)

  def model(self, key: MetricKey) -> RegressionModel:
    return self.get(key).model

  @property
  def r_squared(self) -> Dict[MetricKey, float]:
    return {key: self.model(key).r_squared for key in METRIC_KEYS}

  @property
  def average_r_squared(self) -> float:
    values = list(self.r_squared.values())
    return sum(values) / len(values)


class Horizon(str, Enum):
  """Selectable forecast horizons."""

  ONE_HOUR = "1h"
  SIX_HOURS = "6h"
  DAY = "24h"

  @property
  def steps(self) -> int:
    return _HORIZON_PLAN[self][0]

  @property
  def interval(self) -> timedelta:
    return timedelta(hours=_HORIZON_PLAN[self][1])


# Horizon -> (number of steps, hours between steps).
_HORIZON_PLAN = {
    Horizon.ONE_HOUR: (1, 1),
    Horizon.SIX_HOURS: (6, 1),
    Horizon.DAY: (8, 3),
}


class ForecastStatus(str, Enum):
  OK = "ok"
  INSUFFICIENT_DATA = "insufficient_data"
  NO_DATA = "no_data"


@dataclass(frozen=True)
class MetricChange:
  current: float
  projected: float
  change: float
  change_percent: float


@dataclass(frozen=True)
class WeatherForecast:
  """Standardized output of a forecast request."""

  status: ForecastStatus
  horizon: Horizon
  predictions: Tuple[Prediction, ...] = ()
  models: Optional[ModelBundle] = None
  baseline: Optional[Reading] = None
  issued_at: Optional[datetime] = None
  metadata: Dict[str, object] = field(default_factory=dict)

  @property
  def ok(self) -> bool:
    return self.status is ForecastStatus.OK

  @property
  def model_fit_quality(self) -> float:
    if self.models is None:
      return 0.0
    return self.models.average_r_squared

  def metric_changes(self) -> Dict[MetricKey, MetricChange]:
    """Change from the baseline to the final forecast step, per metric."""
    if self.baseline is None:
      return {}
    last = self.predictions[-1] if self.predictions else self.baseline
    changes = {}
    for key in METRIC_KEYS:
      current = self.baseline.value(key)
      projected = last.value(key)
      change = projected - current
      percent = (change / current) * 100.0 if current != 0 else 0.0
      changes[key] = MetricChange(current, projected, change, percent)
    return changes
