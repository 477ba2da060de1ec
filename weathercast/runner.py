"""Adapter for running autoregressive regression forecasts over station readings."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional, Sequence, Union

from .base import (
    METRIC_KEYS,
    ForecastStatus,
    Horizon,
    MetricKey,
    ModelBundle,
    Prediction,
    Reading,
    WeatherForecast,
    clamp_metric,
)
from .features import is_valid
from .regression import MIN_TRAINING_ROWS, predict, train

logger = logging.getLogger(__name__)


def train_models(readings: Sequence[Reading], *, cap_outliers: bool = True) -> ModelBundle:
  """Trains one independent model per metric on the full history."""
  fits = {key.value: train(readings, key, cap_outliers=cap_outliers) for key in METRIC_KEYS}
  return ModelBundle(**fits)


def _latest_valid(ordered: Sequence[Reading], key: MetricKey) -> float:
  for reading in reversed(ordered):
    value = reading.value(key)
    if is_valid(value):
      return float(value)
  return float("nan")


def _baseline(ordered: Sequence[Reading], current: Optional[Reading]) -> Dict[MetricKey, float]:
  values = {}
  for key in METRIC_KEYS:
    value = current.value(key) if current is not None else float("nan")
    if not is_valid(value):
      value = _latest_valid(ordered, key)
    values[key] = clamp_metric(key, value)
  return values


def run_forecast(
    readings: Sequence[Reading],
    horizon: Union[Horizon, str] = Horizon.SIX_HOURS,
    *,
    current: Optional[Reading] = None,
    now: Optional[datetime] = None,
    cap_outliers: bool = True,
) -> WeatherForecast:
  """Trains per-metric models and rolls predictions forward over ``horizon``.

  Each step predicts from the previous step's clamped output, so errors can
  compound across steps. Fewer than three readings is reported through the
  returned status rather than raised.
  """
  horizon = Horizon(horizon)
  if not readings and current is None:
    return WeatherForecast(status=ForecastStatus.NO_DATA, horizon=horizon)
  if len(readings) < MIN_TRAINING_ROWS:
    logger.info("Insufficient data for forecasting: %d readings (need %d).", len(readings), MIN_TRAINING_ROWS)
    return WeatherForecast(
        status=ForecastStatus.INSUFFICIENT_DATA,
        horizon=horizon,
        metadata={"readings": len(readings), "required": MIN_TRAINING_ROWS},
    )

  ordered = sorted(readings, key=lambda reading: reading.timestamp)
  start_time = ordered[0].timestamp
  if now is None:
    now = current.timestamp if current is not None else ordered[-1].timestamp

  models = train_models(ordered, cap_outliers=cap_outliers)
  state = _baseline(ordered, current)
  baseline = Reading(timestamp=now, **{key.value: state[key] for key in METRIC_KEYS})

  predictions = []
  for step in range(1, horizon.steps + 1):
    future_time = now + step * horizon.interval
    elapsed_hours = (future_time - start_time).total_seconds() / 3600.0
    inputs = [state[key] for key in METRIC_KEYS]
    next_state = {
        key: clamp_metric(key, predict(models.model(key), future_time, elapsed_hours, *inputs))
        for key in METRIC_KEYS
    }
    predictions.append(Prediction(timestamp=future_time, **{key.value: next_state[key] for key in METRIC_KEYS}))
    state = next_state

  fallbacks = [key.value for key in METRIC_KEYS if models.get(key).is_fallback]
  logger.info(
      "Forecast %s: %d steps from %d readings, fit quality %.3f%s",
      horizon.value,
      len(predictions),
      len(ordered),
      models.average_r_squared,
      f" (fallback models: {', '.join(fallbacks)})" if fallbacks else "",
  )
  return WeatherForecast(
      status=ForecastStatus.OK,
      horizon=horizon,
      predictions=tuple(predictions),
      models=models,
      baseline=baseline,
      issued_at=now,
      metadata={"readings": len(ordered), "fallback_models": fallbacks},
  )
