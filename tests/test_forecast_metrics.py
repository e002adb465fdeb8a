# tests/test_forecast_metrics.py
# Pytest tests for utils.forecast_metrics: metric formulas, degenerate inputs, date alignment
# and the data-quality flags shown with each forecast.

import pytest
import math
import pandas as pd
import numpy as np

from utils.forecast_metrics import (
    calculate_mse,
    calculate_rmse,
    calculate_mae,
    calculate_r_squared,
    interpret_r_squared,
    calculate_confidence_interval,
    validate_prediction_data,
    generate_metrics_report,
    aggregate_predictions_by_date,
    build_forecast_frame,
    calculate_model_accuracy,
    assess_data_quality,
    has_prediction_variance,
    summarize_forecast_quality,
)


# --- Tests for Core Metrics ---

def test_basic_metric_values():
    actual = [3, 5, 7, 9]
    predicted = [2, 5, 8, 11]
    # errors: 1, 0, -1, -2
    assert calculate_mse(actual, predicted) == pytest.approx(6 / 4)
    assert calculate_rmse(actual, predicted) == pytest.approx(math.sqrt(1.5))
    assert calculate_mae(actual, predicted) == pytest.approx(1.0)
    # SS_tot = 9+1+1+9 = 20, SS_res = 6
    assert calculate_r_squared(actual, predicted) == pytest.approx(1 - 6 / 20)

def test_perfect_prediction():
    values = np.array([1.0, 4.0, 2.0, 8.0])
    assert calculate_mse(values, values) == 0.0
    assert calculate_r_squared(values, values) == 1.0

def test_accepts_pandas_series():
    actual = pd.Series([1, 2, 3])
    predicted = pd.Series([1, 2, 4])
    assert calculate_mae(actual, predicted) == pytest.approx(1 / 3)

@pytest.mark.parametrize("metric_fn", [calculate_mse, calculate_rmse, calculate_mae, calculate_r_squared])
def test_metrics_reject_empty_input(metric_fn):
    with pytest.raises(ValueError):
        metric_fn([], [])

@pytest.mark.parametrize("metric_fn", [calculate_mse, calculate_rmse, calculate_mae, calculate_r_squared])
def test_metrics_reject_length_mismatch(metric_fn):
    with pytest.raises(ValueError):
        metric_fn([1, 2, 3], [1, 2])

@pytest.mark.parametrize("bad_values", [[1, np.nan, 3], [1, np.inf, 3], [1, 'abc', 3]])
def test_metrics_reject_non_finite_or_non_numeric(bad_values):
    with pytest.raises(ValueError):
        calculate_mse(bad_values, [1, 2, 3])
    with pytest.raises(ValueError):
        calculate_r_squared([1, 2, 3], bad_values)

def test_r_squared_zero_variance_actuals():
    assert calculate_r_squared([4, 4, 4], [4, 4, 4]) == 1.0
    assert calculate_r_squared([4, 4, 4], [4, 5, 4]) == 0.0

def test_r_squared_floored_at_zero_for_worse_than_mean():
    # Anti-correlated forecast: raw R^2 would be strongly negative
    assert calculate_r_squared([1, 2, 3, 4], [4, 3, 2, 1]) == 0.0

@pytest.mark.parametrize("r_squared, expected", [
    (0.95, 'excellent'), (0.9, 'excellent'),
    (0.89, 'good'), (0.7, 'good'),
    (0.69, 'fair'), (0.5, 'fair'),
    (0.49, 'poor'), (0.0, 'poor'),
])
def test_interpret_r_squared_thresholds(r_squared, expected):
    assert interpret_r_squared(r_squared) == expected


# --- Tests for Confidence Interval, Validation and Report ---

def test_confidence_interval_lower_bound_floored_at_zero():
    interval_df = calculate_confidence_interval([1.0, 10.0], mse=4.0)
    margin = 1.96 * 2.0
    assert interval_df['upper_bound'].tolist() == pytest.approx([1.0 + margin, 10.0 + margin])
    assert interval_df['lower_bound'].tolist() == pytest.approx([0.0, 10.0 - margin])

def test_confidence_interval_rejects_negative_mse():
    with pytest.raises(ValueError):
        calculate_confidence_interval([1.0], mse=-1)

def test_validate_prediction_data_messages():
    assert validate_prediction_data([1, 2], [1, 2]) == {'valid': True, 'error': None}
    assert validate_prediction_data([], [])['valid'] is False
    assert 'same length' in validate_prediction_data([1, 2, 3], [1, 2])['error']
    assert 'At least 2' in validate_prediction_data([1], [1])['error']
    assert validate_prediction_data([1, 'x'], [1, 2])['valid'] is False

def test_generate_metrics_report_includes_accuracy_percentage():
    # errors 0, 0, -1, -2 -> SS_res = 5, SS_tot = 20, R^2 = 0.75
    report = generate_metrics_report([3, 5, 7, 9], [3, 5, 8, 11])
    assert report['r_squared'] == pytest.approx(0.75)
    assert report['accuracy'] == pytest.approx(75.0)
    assert report['interpretation'] == 'good'
    assert report['rmse'] == pytest.approx(math.sqrt(5 / 4))
    assert report['data_points'] == 4


# --- Tests for Date Alignment & Model Accuracy ---

def test_aggregate_predictions_by_date_averages_barangays(sample_predictions_df):
    aggregated = aggregate_predictions_by_date(sample_predictions_df)
    assert len(aggregated) == 10
    first = aggregated.iloc[0]
    assert first['date'] == pd.Timestamp('2024-01-03')
    assert first['predicted'] == pytest.approx(12.5)
    assert first['lower_bound'] == pytest.approx(10.5)
    assert first['upper_bound'] == pytest.approx(14.5)

def test_build_forecast_frame_union_of_dates(sample_historical_cases_df, sample_predictions_df):
    frame = build_forecast_frame(sample_historical_cases_df, sample_predictions_df)
    assert list(frame.columns) == ['date', 'actual', 'predicted', 'lower_bound', 'upper_bound']
    assert len(frame) == 12  # 2024-01-01 .. 2024-01-12
    assert frame['date'].is_monotonic_increasing
    # Daily totals sum across barangays
    assert frame.loc[frame['date'] == pd.Timestamp('2024-01-01'), 'actual'].iloc[0] == 15
    # Forecast-only dates have no actual
    assert frame.loc[frame['date'] == pd.Timestamp('2024-01-12'), 'actual'].isna().all()

def test_calculate_model_accuracy_on_overlap(sample_historical_cases_df, sample_predictions_df):
    accuracy = calculate_model_accuracy(sample_historical_cases_df, sample_predictions_df)
    # 8 overlapping dates (01-03..01-10), each off by 0.5; actuals 12..19
    assert set(accuracy.keys()) == {'mse', 'rmse', 'mae', 'r_squared', 'interpretation', 'confidence_level'}
    assert accuracy['mse'] == pytest.approx(0.25)
    assert accuracy['rmse'] == pytest.approx(0.5)
    assert accuracy['mae'] == pytest.approx(0.5)
    assert accuracy['r_squared'] == pytest.approx(1 - 2 / 42)
    assert accuracy['interpretation'] == 'excellent'
    assert accuracy['confidence_level'] == accuracy['r_squared']

def test_calculate_model_accuracy_insufficient_overlap_returns_none(sample_historical_cases_df, sample_predictions_df):
    few_predictions = sample_predictions_df[sample_predictions_df['prediction_date'] <= '2024-01-06']  # 4 dates
    assert calculate_model_accuracy(sample_historical_cases_df, few_predictions) is None
    assert calculate_model_accuracy(pd.DataFrame(), sample_predictions_df) is None
    assert calculate_model_accuracy(sample_historical_cases_df, pd.DataFrame()) is None

def test_calculate_model_accuracy_health_card_columns():
    dates = pd.date_range('2024-02-01', periods=6, freq='D')
    historical = pd.DataFrame({'record_date': dates, 'cards_issued': [5, 6, 7, 8, 9, 10]})
    predictions = pd.DataFrame({'prediction_date': dates, 'predicted_cards': [5, 6, 7, 8, 9, 10]})
    accuracy = calculate_model_accuracy(
        historical, predictions, historical_value_col='cards_issued', prediction_value_col='predicted_cards'
    )
    assert accuracy['r_squared'] == 1.0
    assert accuracy['mse'] == 0.0


# --- Tests for Data Quality Flags ---

@pytest.mark.parametrize("points, expected", [(50, 'high'), (120, 'high'), (49, 'moderate'), (30, 'moderate'), (29, 'insufficient'), (0, 'insufficient')])
def test_assess_data_quality(points, expected):
    assert assess_data_quality(points) == expected

def test_has_prediction_variance():
    assert has_prediction_variance([3.0, 3.0, 3.0]) is False
    assert has_prediction_variance([3.0, 3.1]) is True

def test_summarize_forecast_quality(sample_predictions_df):
    quality = summarize_forecast_quality(35, sample_predictions_df)
    assert quality['data_quality'] == 'moderate'
    assert quality['has_sufficient_data'] is True
    assert quality['variance_detected'] is True
    assert quality['model_version'] == 'SARIMA(1,1,1)(1,1,1,7)'

def test_summarize_forecast_quality_defaults_model_version():
    quality = summarize_forecast_quality(10, pd.DataFrame({'predicted_cases': [1.0, 1.0]}))
    assert quality['has_sufficient_data'] is False
    assert quality['variance_detected'] is False
    assert quality['model_version'] == 'SARIMA(1,1,1)(1,1,1,7)'
