"""Weather-station regression forecasting engine."""

from .advisory import analyze_rainfall, classify_rainfall, forecast_advisories, is_escalation
from .base import (
    METRIC_KEYS,
    PHYSICAL_BOUNDS,
    Fallback,
    FallbackReason,
    Fitted,
    ForecastStatus,
    Horizon,
    MetricKey,
    ModelBundle,
    Prediction,
    Reading,
    RegressionModel,
    WeatherForecast,
    clamp_metric,
)
from .regression import SingularMatrixError, predict, train
from .runner import run_forecast, train_models

__all__ = [
    "Reading",
    "Prediction",
    "MetricKey",
    "METRIC_KEYS",
    "PHYSICAL_BOUNDS",
    "clamp_metric",
    "RegressionModel",
    "Fitted",
    "Fallback",
    "FallbackReason",
    "ModelBundle",
    "Horizon",
    "ForecastStatus",
    "WeatherForecast",
    "SingularMatrixError",
    "train",
    "predict",
    "train_models",
    "run_forecast",
    "analyze_rainfall",
    "classify_rainfall",
    "forecast_advisories",
    "is_escalation",
]
