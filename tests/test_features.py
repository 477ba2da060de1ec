"""Tests for feature extraction, outlier handling and normalization."""

import math
from datetime import datetime

import numpy as np

from weathercast import MetricKey
from weathercast.features import (
    FEATURE_COUNT,
    FeatureStats,
    build_feature_row,
    calculate_stats,
    cap_outliers,
    detect_outliers,
    extract_time_features,
    is_valid,
    normalize,
    prepare_training_set,
)

from conftest import START, make_reading


class TestTimeFeatures:

  def test_midnight_sunday_encoding(self):
    features = extract_time_features(datetime(2024, 1, 7, 0, 0))  # a Sunday
    assert np.allclose(features, [0.0, 1.0, 0.0, 1.0])

  def test_noon_is_opposite_of_midnight(self):
    features = extract_time_features(datetime(2024, 1, 7, 12, 0))
    assert math.isclose(features[1], -1.0)
    assert abs(features[0]) < 1e-12

  def test_no_discontinuity_across_midnight(self):
    before = extract_time_features(datetime(2024, 1, 1, 23, 59))
    after = extract_time_features(datetime(2024, 1, 2, 0, 1))
    distance = float(np.linalg.norm(before[:2] - after[:2]))
    assert distance < 0.01

  def test_hour_encoding_lies_on_unit_circle(self):
    for hour in range(24):
      features = extract_time_features(datetime(2024, 1, 3, hour, 30))
      assert math.isclose(features[0] ** 2 + features[1] ** 2, 1.0)
      assert math.isclose(features[2] ** 2 + features[3] ** 2, 1.0)


class TestFeatureRow:

  def test_row_layout(self):
    reading = make_reading(6, temperature=30.0, humidity=65.0, rainfall=1.5, wind_speed=12.0)
    row = build_feature_row(reading, 6.0)
    assert row.shape == (FEATURE_COUNT,)
    assert row[0] == 6.0
    assert np.allclose(row[1:5], extract_time_features(reading.timestamp))
    assert list(row[5:]) == [30.0, 65.0, 1.5, 12.0]


class TestValidity:

  def test_finite_numbers_are_valid(self):
    assert is_valid(0)
    assert is_valid(-3.5)
    assert is_valid(np.float64(2.0))

  def test_invalid_values(self):
    assert not is_valid(float("nan"))
    assert not is_valid(float("inf"))
    assert not is_valid(float("-inf"))
    assert not is_valid(None)
    assert not is_valid("12")


class TestOutliers:

  def test_flags_single_spike(self):
    values = [5.0, 4.0, 6.0, 5.0, 500.0, 5.0, 6.0, 4.0]
    flags = detect_outliers(values)
    assert flags.tolist() == [False, False, False, False, True, False, False, False]

  def test_skipped_below_four_samples(self):
    assert not detect_outliers([1.0, 2.0, 1000.0]).any()

  def test_no_flags_for_uniform_spread(self):
    assert not detect_outliers(np.arange(20, dtype=float)).any()

  def test_cap_pulls_halfway_toward_median(self):
    capped = cap_outliers([1.0, 100.0, -80.0], [False, True, True], 10.0)
    assert capped.tolist() == [1.0, 55.0, -35.0]

  def test_cap_leaves_unflagged_values(self):
    values = np.array([3.0, 4.0, 5.0])
    capped = cap_outliers(values, [False, False, False], 4.0)
    assert capped.tolist() == values.tolist()
    assert capped is not values


class TestStats:

  def test_ignores_invalid_values(self):
    stats = calculate_stats([float("nan"), 2.0, 4.0, float("inf")])
    assert stats == FeatureStats(mean=3.0, std=1.0)

  def test_zero_variance_floors_std(self):
    stats = calculate_stats([7.0, 7.0, 7.0])
    assert stats.mean == 7.0
    assert stats.std == 1.0

  def test_no_valid_samples(self):
    assert calculate_stats([float("nan")]) == FeatureStats(mean=0.0, std=1.0)
    assert calculate_stats([]) == FeatureStats(mean=0.0, std=1.0)

  def test_normalize(self):
    assert normalize([1.0, 3.0], FeatureStats(mean=2.0, std=1.0)).tolist() == [-1.0, 1.0]
    assert normalize([5.0], FeatureStats(mean=2.0, std=0.0)).tolist() == [3.0]


class TestTrainingSet:

  def test_sorts_and_measures_elapsed_from_earliest(self):
    readings = [make_reading(2), make_reading(0), make_reading(1)]
    training = prepare_training_set(readings, MetricKey.TEMPERATURE)
    assert training.start_time == START
    assert training.features[:, 0].tolist() == [0.0, 1.0, 2.0]

  def test_drops_rows_with_invalid_values(self):
    readings = [
        make_reading(0),
        make_reading(1, humidity=float("nan")),
        make_reading(2, temperature=float("inf")),
        make_reading(3),
    ]
    training = prepare_training_set(readings, MetricKey.RAINFALL)
    assert training.size == 2
    assert training.features[:, 0].tolist() == [0.0, 3.0]

  def test_caps_only_the_target_column(self):
    rain = [5.0, 4.0, 6.0, 5.0, 500.0, 5.0, 6.0, 4.0]
    readings = [make_reading(idx, rainfall=value) for idx, value in enumerate(rain)]
    training = prepare_training_set(readings, MetricKey.RAINFALL)
    assert training.outlier_flags.tolist() == [idx == 4 for idx in range(len(rain))]
    assert training.targets[4] == 5.0 + 0.5 * (500.0 - 5.0)
    assert training.raw_targets[4] == 500.0
    assert training.features[4, 7] == 500.0
    unchanged = [idx for idx in range(len(rain)) if idx != 4]
    assert training.targets[unchanged].tolist() == [rain[idx] for idx in unchanged]

  def test_capping_can_be_disabled(self):
    rain = [5.0, 4.0, 6.0, 5.0, 500.0, 5.0]
    readings = [make_reading(idx, rainfall=value) for idx, value in enumerate(rain)]
    training = prepare_training_set(readings, MetricKey.RAINFALL, cap_target_outliers=False)
    assert not training.outlier_flags.any()
    assert training.targets.tolist() == rain

  def test_normalized_columns_are_centered(self, sinusoid_readings):
    training = prepare_training_set(sinusoid_readings, MetricKey.TEMPERATURE)
    assert np.allclose(training.normalized_features.mean(axis=0), 0.0, atol=1e-9)
    assert math.isclose(float(training.normalized_targets.std()), 1.0)
