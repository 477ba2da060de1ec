"""Feature engineering and dataset preparation for the regression engine."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Sequence

import numpy as np

from .base import MetricKey, Reading

FEATURE_NAMES = (
    "elapsed_hours",
    "hour_sin",
    "hour_cos",
    "day_sin",
    "day_cos",
    "temperature",
    "humidity",
    "rainfall",
    "wind_speed",
)
FEATURE_COUNT = len(FEATURE_NAMES)
IQR_MULTIPLIER = 1.5
MIN_OUTLIER_SAMPLES = 4


@dataclass(frozen=True)
class FeatureStats:
  mean: float
  std: float


@dataclass(frozen=True)
class TrainingSet:
  """Valid, time-ordered rows for one target, raw and normalized."""

  target: MetricKey
  start_time: datetime
  timestamps: List[datetime]
  features: np.ndarray
  targets: np.ndarray
  raw_targets: np.ndarray
  outlier_flags: np.ndarray
  feature_stats: List[FeatureStats]
  target_stats: FeatureStats
  normalized_features: np.ndarray
  normalized_targets: np.ndarray

  @property
  def size(self) -> int:
    return int(self.features.shape[0])


def extract_time_features(timestamp: datetime) -> np.ndarray:
  """Cyclical hour-of-day and day-of-week encoding (sin/cos pairs)."""
  hour = timestamp.hour + timestamp.minute / 60.0 + timestamp.second / 3600.0
  day = timestamp.isoweekday() % 7  # Sunday is day 0
  hour_angle = 2.0 * math.pi * hour / 24.0
  day_angle = 2.0 * math.pi * day / 7.0
  return np.array(
      [math.sin(hour_angle), math.cos(hour_angle), math.sin(day_angle), math.cos(day_angle)],
      dtype=np.float64,
  )


def feature_vector(
    timestamp: datetime,
    elapsed_hours: float,
    temperature: float,
    humidity: float,
    rainfall: float,
    wind_speed: float,
) -> np.ndarray:
  row = np.empty(FEATURE_COUNT, dtype=np.float64)
  row[0] = elapsed_hours
  row[1:5] = extract_time_features(timestamp)
  row[5:] = (temperature, humidity, rainfall, wind_speed)
  return row


def build_feature_row(reading: Reading, elapsed_hours: float) -> np.ndarray:
  return feature_vector(reading.timestamp, elapsed_hours, *reading.metric_values())


def is_valid(value) -> bool:
  """True for finite real numbers; NaN, infinities and non-numbers are invalid."""
  try:
    return math.isfinite(value)
  except TypeError:
    return False


def detect_outliers(values: Sequence[float]) -> np.ndarray:
  """Flags values outside the 1.5 x IQR fences."""
  arr = np.asarray(values, dtype=np.float64)
  flags = np.zeros(arr.shape[0], dtype=bool)
  if arr.shape[0] < MIN_OUTLIER_SAMPLES:
    return flags

  ordered = np.sort(arr)
  n = ordered.shape[0]
  q1 = ordered[int(n * 0.25)]
  q3 = ordered[int(n * 0.75)]
  iqr = q3 - q1
  lower = q1 - IQR_MULTIPLIER * iqr
  upper = q3 + IQR_MULTIPLIER * iqr
  flags[:] = (arr < lower) | (arr > upper)
  return flags


def cap_outliers(values: Sequence[float], flags: Sequence[bool], median: float) -> np.ndarray:
  """Pulls each flagged value halfway toward ``median``."""
  capped = np.asarray(values, dtype=np.float64).copy()
  mask = np.asarray(flags, dtype=bool)
  deviation = capped[mask] - median
  capped[mask] = median + np.sign(deviation) * 0.5 * np.abs(deviation)
  return capped


def calculate_stats(values: Sequence[float]) -> FeatureStats:
  valid = [float(v) for v in values if is_valid(v)]
  if not valid:
    return FeatureStats(mean=0.0, std=1.0)
  arr = np.asarray(valid, dtype=np.float64)
  mean = float(np.mean(arr))
  std = float(np.sqrt(np.mean((arr - mean) ** 2)))
  if std == 0.0 or not math.isfinite(std):
    std = 1.0
  return FeatureStats(mean=mean, std=std)


def normalize(values, stats: FeatureStats) -> np.ndarray:
  std = stats.std if stats.std > 0 else 1.0
  return (np.asarray(values, dtype=np.float64) - stats.mean) / std


def prepare_training_set(
    readings: Sequence[Reading],
    target: MetricKey,
    *,
    cap_target_outliers: bool = True,
) -> TrainingSet:
  """Sorts, filters, caps and z-scores ``readings`` for fitting ``target``.

  Rows with any invalid feature or target value are dropped entirely. Only the
  target column is outlier-capped; feature columns are used as recorded.
  """
  if not readings:
    raise ValueError("At least one reading is required to build a training set.")
  target = MetricKey(target)
  ordered = sorted(readings, key=lambda reading: reading.timestamp)
  start_time = ordered[0].timestamp

  rows: List[np.ndarray] = []
  targets: List[float] = []
  timestamps: List[datetime] = []
  for reading in ordered:
    elapsed_hours = (reading.timestamp - start_time).total_seconds() / 3600.0
    row = build_feature_row(reading, elapsed_hours)
    value = reading.value(target)
    if not all(is_valid(x) for x in row) or not is_valid(value):
      continue
    rows.append(row)
    targets.append(float(value))
    timestamps.append(reading.timestamp)

  features = np.asarray(rows, dtype=np.float64).reshape(len(rows), FEATURE_COUNT)
  raw_targets = np.asarray(targets, dtype=np.float64)

  if cap_target_outliers:
    flags = detect_outliers(raw_targets)
  else:
    flags = np.zeros(raw_targets.shape[0], dtype=bool)
  if flags.any():
    capped = cap_outliers(raw_targets, flags, float(np.median(raw_targets)))
  else:
    capped = raw_targets.copy()

  feature_stats = [calculate_stats(features[:, idx]) for idx in range(FEATURE_COUNT)]
  target_stats = calculate_stats(capped)
  normalized_features = np.column_stack(
      [normalize(features[:, idx], feature_stats[idx]) for idx in range(FEATURE_COUNT)]
  )

  return TrainingSet(
      target=target,
      start_time=start_time,
      timestamps=timestamps,
      features=features,
      targets=capped,
      raw_targets=raw_targets,
      outlier_flags=flags,
      feature_stats=feature_stats,
      target_stats=target_stats,
      normalized_features=normalized_features,
      normalized_targets=normalize(capped, target_stats),
  )
