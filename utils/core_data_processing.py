# utils/core_data_processing.py
# Data loading, cleaning and aggregation utilities for "Barangay Health Watch".
# The portal database is the system of record; this module reads table extracts
# (disease statistics, patient cases, health card issuance, barangay reference,
# forecast output) and shapes them for the outbreak, forecast and import views.

import streamlit as st
import pandas as pd
import numpy as np
import os
import logging
from config import app_config
from typing import List, Dict, Any, Optional, Tuple

logger = logging.getLogger(__name__)

CASE_RECORD_COLUMNS = ['disease_type', 'custom_disease_name', 'barangay_id', 'case_count', 'severity', 'record_date']


# --- I. Core Helper Functions ---
def _clean_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """Standardizes column names: lower case, replaces spaces/hyphens with underscores."""
    if not isinstance(df, pd.DataFrame):
        logger.error(f"_clean_column_names expects a pandas DataFrame, got {type(df)}.")
        return df if df is not None else pd.DataFrame()
    df.columns = df.columns.astype(str).str.strip().str.lower().str.replace(' ', '_').str.replace('-', '_')
    return df

def _convert_to_numeric(series: pd.Series, default_value: Any = np.nan) -> pd.Series:
    """Safely converts a pandas Series to numeric, coercing errors to default_value."""
    if not isinstance(series, pd.Series):
        logger.debug(f"_convert_to_numeric given non-Series type: {type(series)}. Attempting conversion to Series.")
        try:
            series = pd.Series(series)
        except Exception as e_series:
            logger.error(f"Could not convert input of type {type(series)} to Series in _convert_to_numeric: {e_series}")
            return pd.Series([default_value], dtype=float)
    return pd.to_numeric(series, errors='coerce').fillna(default_value)

def _normalize_key_value(value: Any, lowercase: bool = False) -> Optional[str]:
    """One id/enum cell as a stripped string (None for missing). Whole floats lose their '.0'."""
    if value is None:
        return None
    try:
        if pd.isna(value): return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        value = int(value)
    text = str(value).strip()
    if not text:
        return None
    return text.lower() if lowercase else text

def _normalize_key_column(series: pd.Series, lowercase: bool = False) -> pd.Series:
    """Turns id/enum columns into stripped strings (None for missing). Whole floats lose their '.0'."""
    return series.map(lambda value: _normalize_key_value(value, lowercase=lowercase)).astype(object)

def _load_table_csv(
    file_path: str, table_label: str, date_cols: List[str], numeric_cols_map: Dict[str, Any],
    string_cols: Optional[List[str]] = None, lowercase_cols: Optional[List[str]] = None,
    source_context: str = "DataLoader"
) -> pd.DataFrame:
    """
    Reads one table extract, cleans headers and coerces the date, numeric and key columns.
    Missing files, empty files and parse errors are logged and give an empty DataFrame.
    """
    logger.info(f"({source_context}) Attempting to load {table_label} from: {file_path}")
    if not os.path.exists(file_path):
        logger.error(f"({source_context}) {table_label} file not found: {file_path}")
        return pd.DataFrame()
    try:
        df = pd.read_csv(file_path, low_memory=False)
    except pd.errors.EmptyDataError:
        logger.warning(f"({source_context}) {table_label} file is empty: {file_path}")
        return pd.DataFrame()
    except Exception as e:
        logger.error(f"({source_context}) Error loading {table_label} from {file_path}: {e}", exc_info=True)
        return pd.DataFrame()

    df = _clean_column_names(df)
    for col in date_cols:
        if col in df.columns: df[col] = pd.to_datetime(df[col], errors='coerce')
        else: df[col] = pd.NaT
    for col, default_val in numeric_cols_map.items():
        if col in df.columns: df[col] = _convert_to_numeric(df[col], default_val)
        else: df[col] = default_val
    # Keys read as numbers (e.g. barangay ids) compare as strings everywhere downstream
    for col in (string_cols or []):
        if col in df.columns: df[col] = _normalize_key_column(df[col])
    for col in (lowercase_cols or []):
        if col in df.columns: df[col] = _normalize_key_column(df[col], lowercase=True)
    logger.info(f"({source_context}) Loaded {len(df)} {table_label} rows.")
    return df


# --- II. Data Loading Functions ---

@st.cache_data(ttl=app_config.CACHE_TTL_SECONDS_WEB_REPORTS, show_spinner="Loading disease statistics...")
def load_disease_statistics(file_path: Optional[str] = None, source_context: str = "DataLoader") -> pd.DataFrame:
    """Aggregated case counts per date, disease and barangay (includes imported historical rows)."""
    df = _load_table_csv(
        file_path or app_config.DISEASE_STATISTICS_CSV, "disease statistics",
        date_cols=['record_date'], numeric_cols_map={'case_count': 0},
        string_cols=['barangay_id', 'custom_disease_name'], lowercase_cols=['disease_type', 'severity'],
        source_context=source_context
    )
    return df

@st.cache_data(ttl=app_config.CACHE_TTL_SECONDS_WEB_REPORTS, show_spinner="Loading patient cases...")
def load_patient_cases(file_path: Optional[str] = None, source_context: str = "DataLoader") -> pd.DataFrame:
    """Individual diagnosed patient cases. Each row counts as a single case."""
    df = _load_table_csv(
        file_path or app_config.PATIENT_CASES_CSV, "patient cases",
        date_cols=['diagnosis_date'], numeric_cols_map={},
        string_cols=['patient_id', 'barangay_id', 'custom_disease_name'], lowercase_cols=['disease_type', 'severity'],
        source_context=source_context
    )
    return df

@st.cache_data(ttl=app_config.CACHE_TTL_SECONDS_WEB_REPORTS, show_spinner="Loading health card issuance...")
def load_healthcard_statistics(file_path: Optional[str] = None, source_context: str = "DataLoader") -> pd.DataFrame:
    return _load_table_csv(
        file_path or app_config.HEALTHCARD_STATISTICS_CSV, "health card statistics",
        date_cols=['record_date'], numeric_cols_map={'cards_issued': 0},
        string_cols=['barangay_id'], lowercase_cols=['healthcard_type'], source_context=source_context
    )

@st.cache_data(ttl=app_config.CACHE_TTL_SECONDS_WEB_REPORTS, show_spinner="Loading barangay reference...")
def load_barangays(file_path: Optional[str] = None, source_context: str = "DataLoader") -> pd.DataFrame:
    """Barangay reference list: id, name, code and population."""
    return _load_table_csv(
        file_path or app_config.BARANGAYS_CSV, "barangays",
        date_cols=[], numeric_cols_map={'population': np.nan},
        string_cols=['id', 'name', 'code'], source_context=source_context
    )

@st.cache_data(ttl=app_config.CACHE_TTL_SECONDS_WEB_REPORTS, show_spinner="Loading forecasts...")
def load_disease_predictions(file_path: Optional[str] = None, source_context: str = "DataLoader") -> pd.DataFrame:
    """Stored forecast output: one row per prediction date, disease and (optionally) barangay."""
    df = _load_table_csv(
        file_path or app_config.DISEASE_PREDICTIONS_CSV, "disease predictions",
        date_cols=['prediction_date'],
        numeric_cols_map={'predicted_cases': np.nan, 'lower_bound': np.nan, 'upper_bound': np.nan},
        string_cols=['barangay_id', 'model_version'], lowercase_cols=['disease_type'], source_context=source_context
    )
    return df


# --- III. Case Record Shaping ---

def combine_case_sources(
    statistics_df: Optional[pd.DataFrame], patient_cases_df: Optional[pd.DataFrame] = None,
    source_context: str = "CaseRecords"
) -> pd.DataFrame:
    """
    Merges aggregated statistics rows and individual patient cases into one case-record frame
    with columns disease_type, custom_disease_name, barangay_id, case_count, severity, record_date.
    Patient cases contribute case_count 1 dated by diagnosis_date.
    """
    frames = []
    if isinstance(statistics_df, pd.DataFrame) and not statistics_df.empty:
        stats_part = statistics_df.reindex(columns=CASE_RECORD_COLUMNS).copy()
        frames.append(stats_part)
    if isinstance(patient_cases_df, pd.DataFrame) and not patient_cases_df.empty:
        cases_part = patient_cases_df.rename(columns={'diagnosis_date': 'record_date'}).reindex(columns=CASE_RECORD_COLUMNS).copy()
        cases_part['case_count'] = 1
        frames.append(cases_part)

    if not frames:
        logger.info(f"({source_context}) No case sources supplied; returning empty case frame.")
        return pd.DataFrame(columns=CASE_RECORD_COLUMNS)

    combined_df = pd.concat(frames, ignore_index=True)
    combined_df['record_date'] = pd.to_datetime(combined_df['record_date'], errors='coerce')
    logger.info(f"({source_context}) Combined {len(combined_df)} case records from {len(frames)} source(s).")
    return combined_df

def filter_records_to_window(
    df: pd.DataFrame, days_window: int, as_of: Optional[Any] = None,
    date_col: str = 'record_date', source_context: str = "CaseRecords"
) -> pd.DataFrame:
    """
    Keeps rows dated within [as_of - days_window, as_of], compared by calendar day.
    as_of defaults to today. Rows with unparseable dates are dropped.
    """
    if not isinstance(df, pd.DataFrame) or df.empty or date_col not in df.columns:
        return pd.DataFrame(columns=df.columns if isinstance(df, pd.DataFrame) else CASE_RECORD_COLUMNS)
    if days_window is None or days_window < 0:
        raise ValueError(f"days_window must be a non-negative number of days, got {days_window!r}")

    end_day = pd.Timestamp(as_of if as_of is not None else pd.Timestamp('today')).normalize()
    start_day = end_day - pd.Timedelta(days=int(days_window))
    record_days = pd.to_datetime(df[date_col], errors='coerce').dt.normalize()
    in_window = record_days.between(start_day, end_day)
    logger.debug(f"({source_context}) Window {start_day.date()}..{end_day.date()} keeps {int(in_window.sum())}/{len(df)} rows.")
    return df[in_window].copy()


# --- IV. Trend & Aggregation Functions ---

def get_trend_data(
    df: pd.DataFrame, value_col: str, date_col: str = 'record_date', period: str = 'D', agg_func: str = 'sum',
    filter_col: Optional[str] = None, filter_val: Optional[Any] = None, source_context: str = "Trends"
) -> pd.Series:
    """Generates a time series of value_col bucketed by period ('D', 'W', 'MS', ...)."""
    logger.debug(f"({source_context}) Generating trend data for '{value_col}' by '{period}'.")
    if not isinstance(df, pd.DataFrame) or df.empty or date_col not in df.columns or value_col not in df.columns:
        logger.debug(f"Trend data: Input DataFrame invalid or missing columns '{date_col}' or '{value_col}'.")
        return pd.Series(dtype='float64')

    trend_df_work = df.copy()
    if not pd.api.types.is_datetime64_any_dtype(trend_df_work[date_col]):
        trend_df_work[date_col] = pd.to_datetime(trend_df_work[date_col], errors='coerce')
    trend_df_work.dropna(subset=[date_col], inplace=True)

    if filter_col and filter_col in trend_df_work.columns and filter_val is not None:
        trend_df_work = trend_df_work[trend_df_work[filter_col] == filter_val]

    if agg_func in ['mean', 'sum', 'median']:
        trend_df_work[value_col] = _convert_to_numeric(trend_df_work[value_col], np.nan)
        trend_df_work.dropna(subset=[value_col], inplace=True)

    if trend_df_work.empty:
        logger.debug(f"({source_context}) Trend data: nothing left after date/filter/NA handling.")
        return pd.Series(dtype='float64')

    trend_df_work.set_index(date_col, inplace=True)
    try:
        grouped_data = trend_df_work.groupby(pd.Grouper(freq=period))
        if agg_func == 'sum': trend_series = grouped_data[value_col].sum()
        elif agg_func == 'median': trend_series = grouped_data[value_col].median()
        elif agg_func == 'count': trend_series = grouped_data[value_col].count()
        elif agg_func == 'nunique': trend_series = grouped_data[value_col].nunique()
        else: trend_series = grouped_data[value_col].mean()
    except Exception as e:
        logger.error(f"({source_context}) Error during trend resampling for {value_col} (agg: {agg_func}): {e}", exc_info=True)
        return pd.Series(dtype='float64')

    trend_series.index.name = date_col
    return trend_series

def aggregate_case_counts(
    case_records_df: pd.DataFrame, period: str = 'D', disease_type: Optional[str] = None,
    source_context: str = "Trends"
) -> pd.Series:
    """Total case_count per time bucket, optionally for a single disease."""
    return get_trend_data(
        case_records_df, value_col='case_count', date_col='record_date', period=period, agg_func='sum',
        filter_col='disease_type' if disease_type else None, filter_val=disease_type, source_context=source_context
    )

def fill_missing_dates(
    series: pd.Series, start_date: Optional[Any] = None, end_date: Optional[Any] = None, fill_value: float = 0
) -> pd.Series:
    """Reindexes a date-indexed series onto a continuous daily range, filling gaps with fill_value."""
    if not isinstance(series, pd.Series) or (series.empty and (start_date is None or end_date is None)):
        return pd.Series(dtype='float64')
    work_series = series.copy()
    work_series.index = pd.to_datetime(work_series.index).normalize()
    work_series = work_series.groupby(level=0).sum()
    range_start = pd.Timestamp(start_date).normalize() if start_date is not None else work_series.index.min()
    range_end = pd.Timestamp(end_date).normalize() if end_date is not None else work_series.index.max()
    if range_start > range_end:
        raise ValueError(f"start_date {range_start.date()} is after end_date {range_end.date()}")
    full_range = pd.date_range(range_start, range_end, freq='D', name=series.index.name)
    return work_series.reindex(full_range, fill_value=fill_value)

def calculate_moving_average(series: pd.Series, window: int = app_config.FORECAST_MOVING_AVERAGE_WINDOW) -> pd.Series:
    """
    Trailing moving average rounded to 2 decimals. The first window-1 points have no full window
    and keep their original values.
    """
    if window < 1:
        raise ValueError(f"window must be >= 1, got {window}")
    if not isinstance(series, pd.Series) or series.empty:
        return pd.Series(dtype='float64')
    numeric_series = pd.to_numeric(series, errors='coerce')
    smoothed = numeric_series.rolling(window=window, min_periods=window).mean().round(2)
    return smoothed.fillna(numeric_series)

def aggregate_by_barangay(
    case_records_df: pd.DataFrame, barangays_df: Optional[pd.DataFrame] = None, source_context: str = "Aggregation"
) -> pd.DataFrame:
    """Total case_count per barangay, with names from the reference list, largest first."""
    output_cols = ['barangay_id', 'barangay_name', 'case_count']
    if not isinstance(case_records_df, pd.DataFrame) or case_records_df.empty or 'barangay_id' not in case_records_df.columns:
        return pd.DataFrame(columns=output_cols)
    work_df = case_records_df.copy()
    work_df['case_count'] = _convert_to_numeric(work_df['case_count'], 0)
    per_barangay = work_df.groupby('barangay_id', as_index=False)['case_count'].sum()
    per_barangay['barangay_name'] = _normalize_key_column(per_barangay['barangay_id']).map(build_barangay_name_lookup(barangays_df)).fillna(app_config.UNKNOWN_BARANGAY_NAME)
    logger.debug(f"({source_context}) Aggregated cases across {len(per_barangay)} barangays.")
    return per_barangay[output_cols].sort_values('case_count', ascending=False).reset_index(drop=True)

def get_disease_case_matrix(
    case_records_df: pd.DataFrame, barangays_df: Optional[pd.DataFrame] = None, source_context: str = "Aggregation"
) -> pd.DataFrame:
    """Barangay (rows) by disease label (columns) matrix of summed case counts, zero-filled."""
    if not isinstance(case_records_df, pd.DataFrame) or case_records_df.empty:
        return pd.DataFrame()
    work_df = case_records_df.dropna(subset=['disease_type', 'barangay_id']).copy()
    if work_df.empty:
        return pd.DataFrame()
    work_df['case_count'] = _convert_to_numeric(work_df['case_count'], 0)
    work_df['barangay_name'] = _normalize_key_column(work_df['barangay_id']).map(build_barangay_name_lookup(barangays_df)).fillna(app_config.UNKNOWN_BARANGAY_NAME)
    work_df['disease_label'] = work_df['disease_type'].map(app_config.DISEASE_TYPE_LABELS).fillna(work_df['disease_type'])
    matrix_df = work_df.pivot_table(index='barangay_name', columns='disease_label', values='case_count', aggfunc='sum', fill_value=0)
    logger.debug(f"({source_context}) Case matrix shape: {matrix_df.shape}.")
    return matrix_df

def get_case_summary_kpis(case_records_df: pd.DataFrame, source_context: str = "KPIs") -> Dict[str, Any]:
    """Headline numbers for the surveillance landing views."""
    summary = {'total_cases': 0, 'diseases_reported': 0, 'barangays_affected': 0, 'latest_record_date': None}
    if not isinstance(case_records_df, pd.DataFrame) or case_records_df.empty:
        return summary
    counts = _convert_to_numeric(case_records_df.get('case_count', pd.Series(dtype=float)), 0)
    summary['total_cases'] = int(counts.sum())
    summary['diseases_reported'] = int(case_records_df['disease_type'].nunique()) if 'disease_type' in case_records_df.columns else 0
    summary['barangays_affected'] = int(case_records_df['barangay_id'].nunique()) if 'barangay_id' in case_records_df.columns else 0
    if 'record_date' in case_records_df.columns:
        latest = pd.to_datetime(case_records_df['record_date'], errors='coerce').max()
        summary['latest_record_date'] = latest.date() if pd.notna(latest) else None
    logger.debug(f"({source_context}) Case summary KPIs: {summary}")
    return summary


# --- V. Reference Lookups ---

def build_barangay_name_lookup(barangays: Optional[Any]) -> Dict[str, str]:
    """
    Maps barangay id key (see _normalize_key_value) to display name. Accepts a DataFrame with
    'id'/'name' columns, a list of dicts, or a ready {id: name} mapping.
    """
    if barangays is None:
        return {}
    if isinstance(barangays, pd.DataFrame):
        if barangays.empty or 'id' not in barangays.columns or 'name' not in barangays.columns:
            return {}
        pairs = zip(barangays['id'], barangays['name'])
    elif isinstance(barangays, dict):
        pairs = barangays.items()
    else:
        pairs = ((rec.get('id'), rec.get('name')) for rec in barangays)
    lookup = {}
    for barangay_id, name in pairs:
        id_key = _normalize_key_value(barangay_id)
        if id_key is not None and name is not None:
            lookup[id_key] = str(name)
    return lookup

def barangay_reference_records(barangays: Optional[Any]) -> List[Dict[str, Any]]:
    """Normalizes a barangay reference (DataFrame or list of dicts) into a list of dicts."""
    if barangays is None:
        return []
    if isinstance(barangays, pd.DataFrame):
        return barangays.to_dict('records') if not barangays.empty else []
    return [dict(rec) for rec in barangays]
