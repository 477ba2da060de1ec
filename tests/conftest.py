"""Shared fixtures for the forecasting tests."""

from datetime import datetime, timedelta

import pytest

from station_forecast import synthetic_readings
from weathercast import Reading

START = datetime(2024, 1, 1)


def make_reading(hours: float, temperature=28.0, humidity=70.0, rainfall=0.0, wind_speed=10.0) -> Reading:
  return Reading(
      timestamp=START + timedelta(hours=hours),
      temperature=temperature,
      humidity=humidity,
      rainfall=rainfall,
      wind_speed=wind_speed,
  )


@pytest.fixture
def sinusoid_readings():
  """Seven days of noiseless hourly readings with a daily temperature cycle."""
  return synthetic_readings(7, start=START)


@pytest.fixture
def noisy_readings():
  return synthetic_readings(5, start=START, noise=1.0, seed=42)
