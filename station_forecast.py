"""Utilities for loading weather-station readings and running regression forecasts."""

from __future__ import annotations

import argparse
import logging
import math
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

from weathercast import (
    METRIC_KEYS,
    ForecastStatus,
    Horizon,
    MetricKey,
    Reading,
    WeatherForecast,
    analyze_rainfall,
    forecast_advisories,
    run_forecast,
)
from weathercast.base import METRIC_UNITS
from weathercast.log import setup_logging

logger = logging.getLogger(__name__)

TIMESTAMP_COLUMN = "timestamp"
_COLUMN_ALIASES = {
    "time": "timestamp",
    "datetime": "timestamp",
    "temp": "temperature",
    "windSpeed": "wind_speed",
    "wind": "wind_speed",
    "windspeed": "wind_speed",
    "rain": "rainfall",
}
METRIC_LABELS = {
    MetricKey.TEMPERATURE: "Temperature",
    MetricKey.HUMIDITY: "Humidity",
    MetricKey.RAINFALL: "Rainfall",
    MetricKey.WIND_SPEED: "Wind Speed",
}
METRIC_COLORS = {
    MetricKey.TEMPERATURE: "#F44336",
    MetricKey.HUMIDITY: "#2196F3",
    MetricKey.RAINFALL: "#00BCD4",
    MetricKey.WIND_SPEED: "#4CAF50",
}


def _import_pandas():
  try:
    import pandas as pd
  except ModuleNotFoundError as exc:  # pragma: no cover
    raise SystemExit("pandas is required for reading station data; install with `pip install pandas`.") from exc
  return pd


def _canonical_key(name: str) -> str:
  stripped = str(name).strip()
  return _COLUMN_ALIASES.get(stripped, _COLUMN_ALIASES.get(stripped.lower(), stripped.lower()))


def readings_from_frame(frame) -> List[Reading]:
  """Converts a DataFrame with timestamp and metric columns into readings.

  Rows whose timestamp cannot be parsed are dropped; unparsable metric cells
  become NaN and are left for the engine to filter.
  """
  pd = _import_pandas()
  frame = frame.rename(columns=_canonical_key)
  required = [TIMESTAMP_COLUMN] + [key.value for key in METRIC_KEYS]
  missing = [column for column in required if column not in frame.columns]
  if missing:
    raise ValueError(f"Station data is missing required columns: {', '.join(missing)}")

  timestamps = pd.to_datetime(frame[TIMESTAMP_COLUMN], errors="coerce")
  metrics = {key: pd.to_numeric(frame[key.value], errors="coerce") for key in METRIC_KEYS}
  readings: List[Reading] = []
  for idx in range(len(frame)):
    ts = timestamps.iloc[idx]
    if pd.isna(ts):
      continue
    readings.append(
        Reading(
            timestamp=ts.to_pydatetime(),
            **{key.value: float(metrics[key].iloc[idx]) for key in METRIC_KEYS},
        )
    )
  return readings


def load_readings_csv(path: str) -> List[Reading]:
  pd = _import_pandas()
  csv_path = Path(path).expanduser()
  if not csv_path.is_file():
    raise SystemExit(f"Station data file not found: {csv_path}")
  readings = readings_from_frame(pd.read_csv(csv_path))
  logger.info("Loaded %d readings from %s", len(readings), csv_path)
  return readings


def synthetic_readings(
    days: int = 7,
    *,
    start: Optional[datetime] = None,
    noise: float = 0.0,
    seed: Optional[int] = None,
) -> List[Reading]:
  """Hourly readings with a daily temperature cycle (mean 28 °C, amplitude 5 °C)."""
  if days <= 0:
    raise ValueError("days must be positive for synthetic readings.")
  start = start or datetime(2024, 1, 1)
  rng = np.random.default_rng(seed)
  hours = np.arange(days * 24, dtype=np.float64)
  phase = 2.0 * np.pi * hours / 24.0

  temperature = 28.0 + 5.0 * np.sin(phase)
  humidity = 75.0 - 10.0 * np.sin(phase)
  rainfall = np.zeros_like(hours)
  wind_speed = 12.0 + 3.0 * np.cos(phase)
  if noise > 0:
    temperature += rng.normal(0.0, noise, hours.shape)
    humidity = np.clip(humidity + rng.normal(0.0, 2.0 * noise, hours.shape), 0.0, 100.0)
    showers = rng.random(hours.shape) < 0.1
    rainfall = np.where(showers, rng.gamma(2.0, 2.0, hours.shape), 0.0)
    wind_speed = np.clip(wind_speed + rng.normal(0.0, noise, hours.shape), 0.0, None)

  return [
      Reading(
          timestamp=start + timedelta(hours=float(hours[idx])),
          temperature=float(temperature[idx]),
          humidity=float(humidity[idx]),
          rainfall=float(rainfall[idx]),
          wind_speed=float(wind_speed[idx]),
      )
      for idx in range(len(hours))
  ]


def parse_current(pairs: Optional[Sequence[str]], timestamp: datetime) -> Optional[Reading]:
  """Builds a current-reading override from key=value pairs; omitted metrics are NaN."""
  if not pairs:
    return None
  values: Dict[str, float] = {}
  for kv in pairs:
    if "=" not in kv:
      raise ValueError(f"Invalid current value '{kv}'. Expected key=value.")
    key, raw = kv.split("=", 1)
    name = _canonical_key(key)
    if name not in {metric.value for metric in METRIC_KEYS}:
      raise ValueError(f"Unknown metric '{key}' in current values.")
    try:
      values[name] = float(raw)
    except ValueError as exc:
      raise ValueError(f"Current value for '{key}' must be numeric, got '{raw}'.") from exc
  return Reading(timestamp=timestamp, **{key.value: values.get(key.value, math.nan) for key in METRIC_KEYS})


def forecast_to_frame(forecast: WeatherForecast):
  pd = _import_pandas()
  columns = [TIMESTAMP_COLUMN] + [key.value for key in METRIC_KEYS]
  rows = [
      [prediction.timestamp] + [prediction.value(key) for key in METRIC_KEYS]
      for prediction in forecast.predictions
  ]
  return pd.DataFrame(rows, columns=columns)


def build_forecast_figure(readings: Sequence[Reading], forecast: WeatherForecast, *, title: Optional[str] = None):
  try:
    import plotly.graph_objects as go
    from plotly.subplots import make_subplots
  except ImportError as exc:  # pragma: no cover
    raise SystemExit("plotly is required for plotting; install with `pip install plotly`.") from exc

  ordered = sorted(readings, key=lambda reading: reading.timestamp)
  history_times = [reading.timestamp for reading in ordered]
  forecast_times = [prediction.timestamp for prediction in forecast.predictions]
  r_squared = forecast.models.r_squared if forecast.models is not None else {}

  fig = make_subplots(
      rows=len(METRIC_KEYS),
      cols=1,
      shared_xaxes=True,
      vertical_spacing=0.06,
      subplot_titles=[
          f"{METRIC_LABELS[key]} (R² {r_squared.get(key, 0.0) * 100:.0f}%)" for key in METRIC_KEYS
      ],
  )

  for row_index, key in enumerate(METRIC_KEYS, start=1):
    showlegend = row_index == 1
    color = METRIC_COLORS[key]
    fig.add_trace(
        go.Scatter(
            x=history_times,
            y=[reading.value(key) for reading in ordered],
            mode="lines",
            name="observed",
            line=dict(color="rgba(128,128,128,0.75)", width=1.0),
            legendgroup="observed",
            showlegend=showlegend,
        ),
        row=row_index,
        col=1,
    )
    if forecast.predictions:
      anchor_time = [forecast.baseline.timestamp] if forecast.baseline is not None else []
      anchor_value = [forecast.baseline.value(key)] if forecast.baseline is not None else []
      fig.add_trace(
          go.Scatter(
              x=anchor_time + forecast_times,
              y=anchor_value + [prediction.value(key) for prediction in forecast.predictions],
              mode="lines+markers",
              name="forecast",
              line=dict(color=color, width=2.0, dash="dash"),
              marker=dict(color=color, size=6, line=dict(color="white", width=0.5)),
              legendgroup="forecast",
              showlegend=showlegend,
          ),
          row=row_index,
          col=1,
      )
    fig.update_yaxes(title_text=METRIC_UNITS[key], row=row_index, col=1)

  fig.update_layout(
      template="simple_white",
      hovermode="x unified",
      margin=dict(l=50, r=20, t=90, b=60),
      height=220 * len(METRIC_KEYS),
      title=dict(
          text=title or f"Station forecast ({forecast.horizon.value}), model fit {forecast.model_fit_quality * 100:.0f}%",
          x=0.5,
          xanchor="center",
      ),
  )
  return fig


def render_forecast_chart(fig, chart_path: str) -> None:
  output_path = Path(chart_path)
  suffix = output_path.suffix.lower()
  try:
    if suffix in {".html", ".htm"}:
      fig.write_html(str(output_path), include_plotlyjs="cdn")
    else:
      fig.write_image(str(output_path), scale=2)
  except (ValueError, ImportError) as exc:
    fallback = output_path.with_suffix(output_path.suffix + ".html" if suffix else ".html")
    fig.write_html(str(fallback), include_plotlyjs="cdn")
    print(
        f"Plotly static export failed ({exc}). Saved interactive HTML to {fallback}",
        file=sys.stderr,
    )
  else:
    print(f"Saved chart to {chart_path}")


def _print_forecast(forecast: WeatherForecast) -> None:
  print(f"\nForecast horizon {forecast.horizon.value}: {len(forecast.predictions)} steps")
  print(f"Model fit quality: {forecast.model_fit_quality * 100:.1f}%")
  for key in METRIC_KEYS:
    fit = forecast.models.get(key)
    note = f" (fallback: {fit.reason.value})" if fit.is_fallback else ""
    print(f"  {METRIC_LABELS[key]:<12} R²={fit.model.r_squared:.3f}{note}")

  print(forecast_to_frame(forecast).to_string(index=False, float_format=lambda v: f"{v:.2f}"))

  print("\nChange over horizon:")
  for key, change in forecast.metric_changes().items():
    print(
        f"  {METRIC_LABELS[key]:<12} {change.current:.2f} -> {change.projected:.2f} {METRIC_UNITS[key]} "
        f"({change.change:+.2f}, {change.change_percent:+.1f}%)"
    )


def _print_advisories(readings: Sequence[Reading], forecast: WeatherForecast) -> None:
  analytics = analyze_rainfall(readings)
  current = analytics.current_advisory
  print(
      f"\nRainfall advisory: {current.level.value} ({current.color}), 1h total {analytics.one_hour_total:.1f} mm. "
      f"{current.response}."
  )
  print(
      f"Totals: 3h {analytics.three_hour_total:.1f} mm, 6h {analytics.six_hour_total:.1f} mm, "
      f"24h {analytics.twenty_four_hour_total:.1f} mm; trend {analytics.trend.direction} ({analytics.trend.rate:+.1f} mm/h)"
  )
  if analytics.predicted_advisory is not None:
    predicted = analytics.predicted_advisory
    print(f"Projected in 2h: {predicted.level.value} ({predicted.confidence} confidence)")
  for advisory in forecast_advisories(forecast):
    print(
        f"  {advisory.projected_time:%Y-%m-%d %H:%M}  {advisory.level.value:<10} {advisory.color:<6} "
        f"{advisory.one_hour_total:.2f} mm ({advisory.confidence})"
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
  parser = argparse.ArgumentParser(description="Forecast weather-station metrics with multiple linear regression.")
  source = parser.add_mutually_exclusive_group(required=True)
  source.add_argument("--csv", help="CSV file with timestamp, temperature, humidity, rainfall and wind_speed columns.")
  source.add_argument(
      "--synthetic-days",
      type=int,
      help="Generate this many days of hourly synthetic readings instead of loading a file.",
  )
  parser.add_argument(
      "--horizon",
      default=Horizon.SIX_HOURS.value,
      choices=[horizon.value for horizon in Horizon],
      help="Forecast horizon (default: 6h).",
  )
  parser.add_argument(
      "--current",
      nargs="*",
      metavar="KEY=VALUE",
      help="Current readings to start the forecast from, e.g. temperature=29.5 rainfall=3.",
  )
  parser.add_argument("--noise", type=float, default=0.5, help="Noise level for synthetic readings (default: 0.5).")
  parser.add_argument("--seed", type=int, default=None, help="Random seed for synthetic readings.")
  parser.add_argument("--chart-path", help="Optional output path for the forecast chart (.html or image).")
  parser.add_argument("--advisory", action="store_true", help="Also print PAGASA rainfall advisories.")
  parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING).")
  parser.add_argument("--log-file", help="Optional file to append logs to.")

  args = parser.parse_args(argv)
  setup_logging(args.log_level, args.log_file)

  if args.csv:
    readings = load_readings_csv(args.csv)
  else:
    if args.synthetic_days <= 0:
      raise SystemExit("synthetic-days must be positive.")
    readings = synthetic_readings(args.synthetic_days, noise=args.noise, seed=args.seed)

  latest_time = max((reading.timestamp for reading in readings), default=None)
  try:
    current = parse_current(args.current, latest_time or datetime.now())
  except ValueError as exc:
    raise SystemExit(str(exc)) from exc

  print(f"Loaded {len(readings)} readings.")
  if readings:
    print(f"Range: {min(r.timestamp for r in readings).isoformat()} to {latest_time.isoformat()}")

  forecast = run_forecast(readings, args.horizon, current=current)
  if forecast.status is ForecastStatus.NO_DATA:
    print("No station data available to forecast from.", file=sys.stderr)
    return 1
  if forecast.status is ForecastStatus.INSUFFICIENT_DATA:
    print(
        f"Insufficient data for predictions: need at least 3 readings, got {len(readings)}.",
        file=sys.stderr,
    )
    return 0

  _print_forecast(forecast)
  if args.advisory:
    _print_advisories(readings, forecast)

  if args.chart_path:
    render_forecast_chart(build_forecast_figure(readings, forecast), args.chart_path)

  return 0


if __name__ == "__main__":
  raise SystemExit(main())
