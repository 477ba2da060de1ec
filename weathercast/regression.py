"""Ridge-regularized multiple linear regression solved by Gaussian elimination."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Sequence

import numpy as np

from .base import Fallback, FallbackReason, FitResult, Fitted, MetricKey, Reading, RegressionModel
from .features import FEATURE_COUNT, TrainingSet, feature_vector, is_valid, prepare_training_set

logger = logging.getLogger(__name__)

MIN_TRAINING_ROWS = 3
RIDGE_FLOOR = 0.0001
RIDGE_SCALE = 0.001
PIVOT_EPSILON = 1e-10
LEGACY_FEATURE_COUNT = 5


class SingularMatrixError(ValueError):
  """Raised when elimination meets a near-zero pivot or a non-finite value."""


def ridge_lambda(n: int) -> float:
  return max(RIDGE_FLOOR, RIDGE_SCALE / math.sqrt(n))


def solve_linear_system(a, b) -> np.ndarray:
  """Solves ``a @ x = b`` with Gaussian elimination and partial pivoting."""
  matrix = np.asarray(a, dtype=np.float64)
  n = matrix.shape[0]
  augmented = np.empty((n, n + 1), dtype=np.float64)
  augmented[:, :n] = matrix
  augmented[:, n] = np.asarray(b, dtype=np.float64)

  with np.errstate(all="ignore"):
    for col in range(n):
      pivot_row = col
      for row in range(col + 1, n):
        if abs(augmented[row, col]) > abs(augmented[pivot_row, col]):
          pivot_row = row
      if pivot_row != col:
        augmented[[col, pivot_row]] = augmented[[pivot_row, col]]

      pivot = augmented[col, col]
      if not math.isfinite(pivot) or abs(pivot) < PIVOT_EPSILON:
        raise SingularMatrixError(f"Pivot {pivot!r} in column {col} is too small.")

      for row in range(col + 1, n):
        factor = augmented[row, col] / pivot
        augmented[row, col:] -= factor * augmented[col, col:]
      if not np.all(np.isfinite(augmented)):
        raise SingularMatrixError(f"Non-finite value produced while eliminating column {col}.")

    solution = np.zeros(n, dtype=np.float64)
    for row in range(n - 1, -1, -1):
      residual = augmented[row, n] - np.dot(augmented[row, row + 1:n], solution[row + 1:])
      solution[row] = residual / augmented[row, row]
      if not math.isfinite(solution[row]):
        raise SingularMatrixError(f"Non-finite value produced during back-substitution at row {row}.")

  return solution


def _degenerate_model(target: MetricKey, intercept: float) -> RegressionModel:
  return RegressionModel(
      target=target,
      coefficients=(0.0,) * FEATURE_COUNT,
      intercept=float(intercept),
      r_squared=0.0,
      feature_means=(0.0,) * FEATURE_COUNT,
      feature_stds=(1.0,) * FEATURE_COUNT,
  )


def _last_valid_target(readings: Sequence[Reading], target: MetricKey) -> float:
  for reading in sorted(readings, key=lambda r: r.timestamp, reverse=True):
    value = reading.value(target)
    if is_valid(value):
      return float(value)
  return 0.0


def _r_squared(training: TrainingSet, coefficients: np.ndarray, intercept: float) -> float:
  targets = training.targets
  predicted = intercept + training.features @ coefficients
  total = float(np.sum((targets - np.mean(targets)) ** 2))
  if total <= 0:
    return 0.0
  residual = float(np.sum((targets - predicted) ** 2))
  score = 1.0 - residual / total
  if not math.isfinite(score):
    return 0.0
  return max(0.0, min(1.0, score))


def train(
    readings: Sequence[Reading],
    target: MetricKey,
    *,
    cap_outliers: bool = True,
) -> FitResult:
  """Fits one model predicting ``target`` from the 9-feature row.

  Never raises for numeric trouble: too little data or a singular system gives
  a ``Fallback`` with zero coefficients and ``r_squared`` of 0.
  """
  target = MetricKey(target)
  if len(readings) < MIN_TRAINING_ROWS:
    logger.warning("%s: %d readings, need %d; using fallback model.", target.value, len(readings), MIN_TRAINING_ROWS)
    return Fallback(
        _degenerate_model(target, _last_valid_target(readings, target)),
        FallbackReason.INSUFFICIENT_READINGS,
    )

  training = prepare_training_set(readings, target, cap_target_outliers=cap_outliers)
  n = training.size
  if n < MIN_TRAINING_ROWS:
    logger.warning("%s: %d valid rows after filtering; using fallback model.", target.value, n)
    return Fallback(
        _degenerate_model(target, _last_valid_target(readings, target)),
        FallbackReason.INSUFFICIENT_VALID_ROWS,
    )

  x = training.normalized_features
  y = training.normalized_targets
  xtx = np.zeros((FEATURE_COUNT, FEATURE_COUNT), dtype=np.float64)
  xty = np.zeros(FEATURE_COUNT, dtype=np.float64)
  for i in range(n):
    xtx += np.outer(x[i], x[i])
    xty += x[i] * y[i]
  xtx[np.diag_indices(FEATURE_COUNT)] += ridge_lambda(n)

  target_stats = training.target_stats
  try:
    normalized_coefficients = solve_linear_system(xtx, xty)
  except SingularMatrixError as exc:
    logger.warning("%s: solve failed (%s); using mean fallback model.", target.value, exc)
    return Fallback(_degenerate_model(target, target_stats.mean), FallbackReason.SINGULAR_SYSTEM)

  feature_means = np.array([stats.mean for stats in training.feature_stats], dtype=np.float64)
  feature_stds = np.array([stats.std for stats in training.feature_stats], dtype=np.float64)
  coefficients = np.zeros(FEATURE_COUNT, dtype=np.float64)
  for idx in range(FEATURE_COUNT):
    if feature_stds[idx] > 0 and target_stats.std > 0:
      coefficients[idx] = normalized_coefficients[idx] * target_stats.std / feature_stds[idx]
  intercept = target_stats.mean - float(np.dot(coefficients, feature_means))

  r_squared = _r_squared(training, coefficients, intercept)
  logger.debug(
      "%s: fitted on %d rows (%d outliers capped), r2=%.4f",
      target.value,
      n,
      int(training.outlier_flags.sum()),
      r_squared,
  )
  return Fitted(
      RegressionModel(
          target=target,
          coefficients=tuple(float(c) for c in coefficients),
          intercept=intercept,
          r_squared=r_squared,
          feature_means=tuple(float(m) for m in feature_means),
          feature_stds=tuple(float(s) for s in feature_stds),
      )
  )


def predict(
    model: RegressionModel,
    timestamp: datetime,
    elapsed_hours: float,
    temperature: float,
    humidity: float,
    rainfall: float,
    wind_speed: float,
) -> float:
  """Applies ``model`` to one point; invalid inputs or outputs yield the intercept."""
  inputs = (elapsed_hours, temperature, humidity, rainfall, wind_speed)
  if not all(is_valid(value) for value in inputs):
    return model.intercept

  if len(model.coefficients) != FEATURE_COUNT:
    # Models fitted before time encoding used only elapsed hours and metrics.
    features = inputs
    coefficients = model.coefficients[:LEGACY_FEATURE_COUNT]
  else:
    features = feature_vector(timestamp, elapsed_hours, temperature, humidity, rainfall, wind_speed)
    coefficients = model.coefficients

  with np.errstate(all="ignore"):
    value = model.intercept + sum(coef * feature for coef, feature in zip(coefficients, features))
  if not is_valid(value):
    return model.intercept
  return float(value)
