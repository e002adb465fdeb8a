# utils/forecast_metrics.py
# Forecast accuracy metrics for "Barangay Health Watch".
# Scores stored disease / health card forecasts against the recorded history:
# MSE, RMSE, MAE and R-squared, a verbal interpretation, confidence bands and
# data-quality flags shown next to every forecast chart.

import pandas as pd
import numpy as np
from typing import Dict, Any, Optional, List, Sequence, Tuple, Union
import logging
from config import app_config

logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


# --- I. Core Metrics ---

def _validate_metric_inputs(actual: ArrayLike, predicted: ArrayLike) -> Tuple[np.ndarray, np.ndarray]:
    """Both sequences must be non-empty, equally long and entirely finite."""
    try:
        actual_arr = np.asarray(actual, dtype=float).ravel()
        predicted_arr = np.asarray(predicted, dtype=float).ravel()
    except (TypeError, ValueError) as e_conv:
        raise ValueError(f"Metric inputs must be numeric: {e_conv}") from e_conv

    if actual_arr.size == 0 or predicted_arr.size == 0:
        raise ValueError("Metric inputs must not be empty.")
    if actual_arr.size != predicted_arr.size:
        raise ValueError(f"Actual and predicted must have the same length ({actual_arr.size} != {predicted_arr.size}).")
    if not (np.isfinite(actual_arr).all() and np.isfinite(predicted_arr).all()):
        raise ValueError("Metric inputs contain NaN or infinite values.")
    return actual_arr, predicted_arr


def calculate_mse(actual: ArrayLike, predicted: ArrayLike) -> float:
    actual_arr, predicted_arr = _validate_metric_inputs(actual, predicted)
    return float(np.mean((actual_arr - predicted_arr) ** 2))


def calculate_rmse(actual: ArrayLike, predicted: ArrayLike) -> float:
    return float(np.sqrt(calculate_mse(actual, predicted)))


def calculate_mae(actual: ArrayLike, predicted: ArrayLike) -> float:
    actual_arr, predicted_arr = _validate_metric_inputs(actual, predicted)
    return float(np.mean(np.abs(actual_arr - predicted_arr)))


def calculate_r_squared(actual: ArrayLike, predicted: ArrayLike) -> float:
    """
    Coefficient of determination, kept on a 0..1 scale.
    Flat actuals (no variance) score 1.0 when predicted exactly and 0.0 otherwise;
    forecasts worse than the mean are floored at 0.
    """
    actual_arr, predicted_arr = _validate_metric_inputs(actual, predicted)
    ss_res = float(np.sum((actual_arr - predicted_arr) ** 2))
    ss_tot = float(np.sum((actual_arr - actual_arr.mean()) ** 2))
    if ss_tot == 0:
        return 1.0 if ss_res == 0 else 0.0
    return float(min(1.0, max(0.0, 1.0 - ss_res / ss_tot)))


def interpret_r_squared(r_squared: float) -> str:
    if r_squared >= app_config.R_SQUARED_EXCELLENT_MIN: return 'excellent'
    if r_squared >= app_config.R_SQUARED_GOOD_MIN: return 'good'
    if r_squared >= app_config.R_SQUARED_FAIR_MIN: return 'fair'
    return 'poor'


def calculate_confidence_interval(predictions: ArrayLike, mse: float,
                                  z_score: float = app_config.FORECAST_CONFIDENCE_Z_SCORE) -> pd.DataFrame:
    """predicted +/- z * sqrt(mse); case counts cannot go negative, so the lower bound stops at 0."""
    if mse is None or not np.isfinite(mse) or mse < 0:
        raise ValueError(f"mse must be a finite non-negative number, got {mse!r}")
    predicted_arr = np.asarray(predictions, dtype=float).ravel()
    margin = z_score * np.sqrt(mse)
    return pd.DataFrame({
        'predicted': predicted_arr,
        'lower_bound': np.maximum(0.0, predicted_arr - margin),
        'upper_bound': predicted_arr + margin,
    })


def validate_prediction_data(actual: ArrayLike, predicted: ArrayLike) -> Dict[str, Any]:
    """User-facing check run before a metrics report is generated."""
    try:
        actual_arr = np.asarray(actual, dtype=float).ravel() if actual is not None else np.array([])
        predicted_arr = np.asarray(predicted, dtype=float).ravel() if predicted is not None else np.array([])
    except (TypeError, ValueError):
        return {'valid': False, 'error': 'All values must be valid numbers.'}
    if actual_arr.size == 0 or predicted_arr.size == 0:
        return {'valid': False, 'error': 'Actual and predicted values are required.'}
    if actual_arr.size != predicted_arr.size:
        return {'valid': False, 'error': 'Actual and predicted arrays must have the same length.'}
    if actual_arr.size < app_config.FORECAST_MIN_VALIDATION_POINTS:
        return {'valid': False, 'error': f'At least {app_config.FORECAST_MIN_VALIDATION_POINTS} data points are required to calculate metrics.'}
    if not (np.isfinite(actual_arr).all() and np.isfinite(predicted_arr).all()):
        return {'valid': False, 'error': 'All values must be valid numbers.'}
    return {'valid': True, 'error': None}


def generate_metrics_report(actual: ArrayLike, predicted: ArrayLike) -> Dict[str, Any]:
    """All four metrics, the interpretation and accuracy (R-squared as a percentage)."""
    mse = calculate_mse(actual, predicted)
    r_squared = calculate_r_squared(actual, predicted)
    return {
        'mse': mse,
        'rmse': float(np.sqrt(mse)),
        'mae': calculate_mae(actual, predicted),
        'r_squared': r_squared,
        'accuracy': r_squared * 100,
        'interpretation': interpret_r_squared(r_squared),
        'data_points': int(np.asarray(actual).size),
    }


# --- II. Date Alignment & Model Accuracy ---

def _empty_dated_frame(columns: List[str]) -> pd.DataFrame:
    """Empty frame whose 'date' column is datetime so it still merges with populated frames."""
    return pd.DataFrame({col: pd.Series(dtype='datetime64[ns]' if col == 'date' else 'float64') for col in columns})

def aggregate_predictions_by_date(
    predictions_df: pd.DataFrame, date_col: str = 'prediction_date', value_col: str = 'predicted_cases',
    source_context: str = "ForecastMetrics"
) -> pd.DataFrame:
    """
    Collapses per-barangay forecasts into one system-wide series by averaging each date's rows.
    Returns columns date, predicted, lower_bound, upper_bound (bounds NaN when not supplied).
    """
    output_cols = ['date', 'predicted', 'lower_bound', 'upper_bound']
    if not isinstance(predictions_df, pd.DataFrame) or predictions_df.empty or date_col not in predictions_df.columns or value_col not in predictions_df.columns:
        return _empty_dated_frame(output_cols)
    work_df = predictions_df.copy()
    work_df['date'] = pd.to_datetime(work_df[date_col], errors='coerce').dt.normalize()
    work_df['predicted'] = pd.to_numeric(work_df[value_col], errors='coerce')
    for bound_col in ['lower_bound', 'upper_bound']:
        work_df[bound_col] = pd.to_numeric(work_df[bound_col], errors='coerce') if bound_col in work_df.columns else np.nan
    work_df = work_df.dropna(subset=['date', 'predicted'])
    aggregated = work_df.groupby('date', as_index=False)[['predicted', 'lower_bound', 'upper_bound']].mean()
    logger.debug(f"({source_context}) Aggregated {len(work_df)} prediction rows into {len(aggregated)} dates.")
    return aggregated[output_cols].sort_values('date').reset_index(drop=True)


def _historical_daily_totals(historical_df: pd.DataFrame, date_col: str, value_col: str) -> pd.DataFrame:
    if not isinstance(historical_df, pd.DataFrame) or historical_df.empty or date_col not in historical_df.columns or value_col not in historical_df.columns:
        return _empty_dated_frame(['date', 'actual'])
    work_df = pd.DataFrame({
        'date': pd.to_datetime(historical_df[date_col], errors='coerce').dt.normalize(),
        'actual': pd.to_numeric(historical_df[value_col], errors='coerce'),
    }).dropna()
    return work_df.groupby('date', as_index=False)['actual'].sum()


def build_forecast_frame(
    historical_df: pd.DataFrame, predictions_df: pd.DataFrame,
    historical_date_col: str = 'record_date', historical_value_col: str = 'case_count',
    prediction_date_col: str = 'prediction_date', prediction_value_col: str = 'predicted_cases',
    source_context: str = "ForecastMetrics"
) -> pd.DataFrame:
    """
    Outer-joins daily actual totals with the (date-averaged) forecast on the union of dates.
    Columns: date, actual, predicted, lower_bound, upper_bound. Missing sides are NaN.
    """
    actual_daily = _historical_daily_totals(historical_df, historical_date_col, historical_value_col)
    predicted_daily = aggregate_predictions_by_date(predictions_df, prediction_date_col, prediction_value_col, source_context)
    forecast_frame = actual_daily.merge(predicted_daily, on='date', how='outer').sort_values('date').reset_index(drop=True)
    logger.debug(
        f"({source_context}) Forecast frame: {len(actual_daily)} historical dates, "
        f"{len(predicted_daily)} predicted dates, {len(forecast_frame)} total."
    )
    return forecast_frame[['date', 'actual', 'predicted', 'lower_bound', 'upper_bound']]


def calculate_model_accuracy(
    historical_df: pd.DataFrame, predictions_df: pd.DataFrame,
    historical_date_col: str = 'record_date', historical_value_col: str = 'case_count',
    prediction_date_col: str = 'prediction_date', prediction_value_col: str = 'predicted_cases',
    min_overlap_points: int = app_config.FORECAST_MIN_OVERLAP_POINTS,
    source_context: str = "ForecastMetrics"
) -> Optional[Dict[str, Any]]:
    """
    Scores the forecast on dates that have both an actual and a predicted value.
    Returns None when fewer than min_overlap_points dates overlap.
    """
    forecast_frame = build_forecast_frame(
        historical_df, predictions_df, historical_date_col, historical_value_col,
        prediction_date_col, prediction_value_col, source_context
    )
    overlap_df = forecast_frame.dropna(subset=['actual', 'predicted'])
    if len(overlap_df) < min_overlap_points:
        logger.info(f"({source_context}) Only {len(overlap_df)} overlapping points (< {min_overlap_points}); accuracy not computed.")
        return None

    report = generate_metrics_report(overlap_df['actual'].values, overlap_df['predicted'].values)
    accuracy = {
        'mse': report['mse'],
        'rmse': report['rmse'],
        'mae': report['mae'],
        'r_squared': report['r_squared'],
        'interpretation': report['interpretation'],
        'confidence_level': report['r_squared'],
    }
    logger.info(f"({source_context}) Model accuracy over {len(overlap_df)} points: R2={accuracy['r_squared']:.3f} ({accuracy['interpretation']}).")
    return accuracy


# --- III. Data Quality Flags ---

def assess_data_quality(data_points: int) -> str:
    if data_points >= app_config.FORECAST_DATA_QUALITY_HIGH_MIN_POINTS: return 'high'
    if data_points >= app_config.FORECAST_DATA_QUALITY_MODERATE_MIN_POINTS: return 'moderate'
    return 'insufficient'


def has_prediction_variance(predicted_values: ArrayLike) -> bool:
    """False for a flat forecast (every predicted value identical), which usually means the model failed to fit."""
    values = pd.Series(np.asarray(predicted_values, dtype=float).ravel()).dropna()
    return values.nunique() > 1


def summarize_forecast_quality(
    historical_points: int, predictions_df: pd.DataFrame, value_col: str = 'predicted_cases'
) -> Dict[str, Any]:
    """Metadata block displayed alongside a forecast."""
    predicted_values = predictions_df[value_col] if isinstance(predictions_df, pd.DataFrame) and value_col in predictions_df.columns else []
    model_version = app_config.FORECAST_DEFAULT_MODEL_VERSION
    if isinstance(predictions_df, pd.DataFrame) and 'model_version' in predictions_df.columns:
        versions = predictions_df['model_version'].dropna()
        if not versions.empty:
            model_version = str(versions.iloc[0])
    return {
        'data_points': int(historical_points),
        'data_quality': assess_data_quality(historical_points),
        'has_sufficient_data': historical_points >= app_config.FORECAST_DATA_QUALITY_MODERATE_MIN_POINTS,
        'variance_detected': has_prediction_variance(predicted_values) if len(predicted_values) else False,
        'model_version': model_version,
        'forecast_points': int(len(predicted_values)),
    }
