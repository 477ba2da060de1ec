"""Streamlit dashboard for interactive weather-station forecasting."""

from __future__ import annotations

from typing import List

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from station_forecast import (
    METRIC_COLORS,
    METRIC_LABELS,
    build_forecast_figure,
    forecast_to_frame,
    readings_from_frame,
    synthetic_readings,
)
from weathercast import METRIC_KEYS, ForecastStatus, Horizon, Reading, analyze_rainfall, forecast_advisories, run_forecast
from weathercast.base import METRIC_UNITS
from weathercast.log import setup_logging

st.set_page_config(page_title="Station Forecast Explorer", layout="wide", page_icon="🌦")
setup_logging("WARNING")

st.title("Station Forecast Explorer")
st.write(
    "Load weather-station readings, train one multiple linear regression model per metric, and roll the models "
    "forward over a 1, 6 or 24 hour horizon. Rainfall forecasts are graded on the PAGASA advisory scale."
)

HORIZON_LABELS = {"1 Hour": Horizon.ONE_HOUR, "6 Hours": Horizon.SIX_HOURS, "24 Hours": Horizon.DAY}


def _history_figure(readings: List[Reading]) -> go.Figure:
  ordered = sorted(readings, key=lambda reading: reading.timestamp)
  times = [reading.timestamp for reading in ordered]
  fig = go.Figure()
  for key in METRIC_KEYS:
    fig.add_trace(
        go.Scatter(
            x=times,
            y=[reading.value(key) for reading in ordered],
            mode="lines",
            name=f"{METRIC_LABELS[key]} ({METRIC_UNITS[key]})",
            line=dict(color=METRIC_COLORS[key], width=1.5),
        )
    )
  fig.update_layout(
      template="simple_white",
      margin=dict(l=40, r=20, t=40, b=40),
      hovermode="x unified",
      title=dict(text="Station readings", x=0.5, xanchor="center"),
  )
  return fig


if "readings" not in st.session_state:
  st.session_state.readings = None

st.markdown("### Step 1: Load station readings")
source = st.radio("Data source", options=["Synthetic station", "Upload CSV"], horizontal=True)

if source == "Upload CSV":
  uploaded = st.file_uploader(
      "CSV with timestamp, temperature, humidity, rainfall and wind_speed columns",
      type=["csv"],
  )
  if uploaded is not None:
    try:
      st.session_state.readings = readings_from_frame(pd.read_csv(uploaded))
    except ValueError as exc:
      st.error(str(exc))
else:
  col_days, col_noise, col_seed = st.columns(3)
  with col_days:
    days = st.number_input("Days of history", min_value=1, max_value=60, value=7)
  with col_noise:
    noise = st.slider("Noise", min_value=0.0, max_value=3.0, value=0.5, step=0.1)
  with col_seed:
    seed = st.number_input("Seed", min_value=0, value=7)
  if st.button("Generate readings", type="primary", use_container_width=True):
    st.session_state.readings = synthetic_readings(int(days), noise=float(noise), seed=int(seed))

readings = st.session_state.readings
if readings:
  st.plotly_chart(_history_figure(readings), use_container_width=True)
else:
  st.info("Load or generate readings to view the station history before forecasting.")

st.markdown("---")
st.markdown("### Step 2: Forecast")

horizon_label = st.radio("Prediction horizon", options=list(HORIZON_LABELS), index=1, horizontal=True)

if readings is not None:
  forecast = run_forecast(readings, HORIZON_LABELS[horizon_label])
  if forecast.status is ForecastStatus.NO_DATA:
    st.warning("No station data available to forecast from.")
  elif forecast.status is ForecastStatus.INSUFFICIENT_DATA:
    st.warning("Insufficient data for predictions. Need at least 3 data points to train the model.")
  else:
    st.metric("Model fit", f"{forecast.model_fit_quality * 100:.0f}%")
    metric_columns = st.columns(len(METRIC_KEYS))
    changes = forecast.metric_changes()
    for column, key in zip(metric_columns, METRIC_KEYS):
      change = changes[key]
      with column:
        st.metric(
            f"{METRIC_LABELS[key]} in {forecast.horizon.value}",
            f"{change.projected:.1f} {METRIC_UNITS[key]}",
            delta=f"{change.change:+.1f} {METRIC_UNITS[key]}",
        )
        st.caption(f"R²: {forecast.models.model(key).r_squared * 100:.0f}%")

    st.plotly_chart(build_forecast_figure(readings, forecast), use_container_width=True)
    st.dataframe(forecast_to_frame(forecast), use_container_width=True)

    analytics = analyze_rainfall(readings)
    advisory = analytics.current_advisory
    st.markdown(
        f"**Rainfall advisory:** {advisory.level.value} ({advisory.color}) with "
        f"{analytics.one_hour_total:.1f} mm in the last hour. {advisory.flood_possibility}. {advisory.response}."
    )
    projected = forecast_advisories(forecast)
    if projected:
      worst = max(projected, key=lambda item: item.one_hour_total)
      st.caption(
          f"Highest forecast rainfall: {worst.one_hour_total:.2f} mm at {worst.projected_time:%b %d %H:%M} "
          f"({worst.level.value}, {worst.confidence} confidence)."
      )

with st.expander("Implementation details & methodology"):
  st.markdown(
      """
      **Features** – every reading becomes nine features: hours since the first reading, sine/cosine of the hour of
      day and the day of week, and the concurrent temperature, humidity, rainfall and wind speed.

      **Fitting** – features and target are z-scored, target outliers beyond 1.5 IQR are pulled halfway toward the
      median, and a ridge-regularized least squares system is solved by Gaussian elimination. R² is reported on the
      original scale.

      **Forecasting** – the 1h and 6h horizons step hourly, the 24h horizon in 3 hour steps. Each step feeds the
      previous step's clamped prediction back in as the current conditions, so errors can compound.
      """
  )

st.caption("Built with numpy, pandas, plotly and Streamlit.")
