# utils/outbreak_detection.py
# Outbreak classification for "Barangay Health Watch".
# Groups case records by (disease_type, barangay), compares each group's summed case count with
# the disease's threshold and assigns a risk tier from the severity mix of the cases.
# Also hosts the population-based severity calculator used when importing historical counts.

import pandas as pd
import numpy as np
from typing import Dict, Any, Optional, List, Union
import logging
from config import app_config
from utils.core_data_processing import (
    build_barangay_name_lookup, filter_records_to_window, _normalize_key_column, _normalize_key_value,
)

logger = logging.getLogger(__name__)

OUTBREAK_OUTPUT_COLUMNS = [
    'disease_type', 'custom_disease_name', 'barangay_id', 'barangay_name', 'case_count',
    'high_risk_cases', 'medium_risk_cases', 'low_risk_cases', 'threshold', 'days_window',
    'threshold_description', 'alert_type', 'risk_level', 'first_case_date', 'latest_case_date',
]


def normalize_severity(severity: Any) -> str:
    """Folds current (high_risk) and legacy (critical/severe/moderate/mild) labels into high/medium/low."""
    if severity is None or (isinstance(severity, float) and np.isnan(severity)):
        return app_config.DEFAULT_SEVERITY_BUCKET
    return app_config.SEVERITY_ALIASES.get(str(severity).strip().lower(), app_config.DEFAULT_SEVERITY_BUCKET)


def calculate_severity(case_count: Any, population: Any, source_context: str = "Severity") -> str:
    """
    Severity of a barangay's case load relative to its population.
    high at >= 70% of the population affected, medium at >= 50%, otherwise low.
    Missing/zero population or a negative count cannot be assessed and falls back to low.
    """
    count_val = pd.to_numeric(case_count, errors='coerce')
    population_val = pd.to_numeric(population, errors='coerce')
    if pd.isna(population_val) or population_val <= 0:
        logger.warning(f"({source_context}) Cannot assess severity without a positive population (got {population!r}); defaulting to low.")
        return 'low'
    if pd.isna(count_val) or count_val < 0:
        logger.warning(f"({source_context}) Invalid case count {case_count!r} for severity; defaulting to low.")
        return 'low'

    affected_pct = (count_val / population_val) * 100
    if affected_pct >= app_config.SEVERITY_HIGH_POPULATION_PCT: return 'high'
    if affected_pct >= app_config.SEVERITY_MEDIUM_POPULATION_PCT: return 'medium'
    return 'low'


def format_severity_percentage(case_count: Any, population: Any) -> str:
    count_val = pd.to_numeric(case_count, errors='coerce')
    population_val = pd.to_numeric(population, errors='coerce')
    if pd.isna(population_val) or population_val <= 0 or pd.isna(count_val):
        return "N/A"
    return f"{(count_val / population_val) * 100:.2f}%"


def _normalize_threshold_table(
    thresholds: Dict[str, Union[int, float, Dict[str, Any]]], label: str = "outbreak"
) -> Dict[str, Dict[str, Any]]:
    """
    Accepts either the full {disease: {cases_threshold, days_window, description}} shape or a
    plain {disease: cases_threshold} mapping. Window and description come from the defaults
    when not given.
    """
    normalized = {}
    for disease_key, entry in thresholds.items():
        disease_type = str(disease_key).strip().lower()
        default_entry = app_config.OUTBREAK_THRESHOLDS.get(disease_type, app_config.OUTBREAK_THRESHOLDS[app_config.CUSTOM_DISEASE_TYPE])
        if isinstance(entry, dict):
            cases_threshold = entry.get('cases_threshold')
            days_window = entry.get('days_window', default_entry['days_window'])
            description = entry.get('description')
        else:
            cases_threshold, days_window, description = entry, default_entry['days_window'], None

        cases_val = pd.to_numeric(cases_threshold, errors='coerce')
        if pd.isna(cases_val) or cases_val < 1:
            raise ValueError(f"Invalid {label} threshold for '{disease_type}': cases_threshold must be >= 1, got {cases_threshold!r}")
        days_val = pd.to_numeric(days_window, errors='coerce')
        if pd.isna(days_val) or days_val < 0:
            raise ValueError(f"Invalid {label} threshold for '{disease_type}': days_window must be >= 0, got {days_window!r}")
        normalized[disease_type] = {
            'cases_threshold': int(cases_val),
            'days_window': int(days_val),
            'description': description or f"{int(cases_val)}+ cases in {int(days_val)} days",
        }
    return normalized


class OutbreakClassifier:
    """
    Threshold-based outbreak detector.

    Tier rules (evaluated only once a group reaches its threshold):
      critical - at least 3 high-severity cases
      high     - at least 5 medium-severity cases
      medium   - any high or medium cases
      low      - only low-severity cases
    """
    def __init__(
        self,
        thresholds: Optional[Dict[str, Any]] = None,
        rapid_spike_thresholds: Optional[Dict[str, Any]] = None,
    ):
        self.thresholds = _normalize_threshold_table(
            thresholds if thresholds is not None else app_config.OUTBREAK_THRESHOLDS
        )
        self.rapid_spike_thresholds = _normalize_threshold_table(
            rapid_spike_thresholds if rapid_spike_thresholds is not None else app_config.OUTBREAK_RAPID_SPIKE_THRESHOLDS,
            label="rapid spike",
        )
        self.critical_high_risk_min = app_config.OUTBREAK_CRITICAL_HIGH_RISK_CASES_MIN
        self.high_medium_risk_min = app_config.OUTBREAK_HIGH_MEDIUM_RISK_CASES_MIN
        self.risk_level_order = app_config.OUTBREAK_RISK_LEVEL_ORDER
        logger.info(f"OutbreakClassifier initialized with {len(self.thresholds)} disease thresholds.")

    def classify_tier(self, high_risk_cases: float, medium_risk_cases: float, low_risk_cases: float = 0) -> str:
        if high_risk_cases >= self.critical_high_risk_min:
            return 'critical'
        if medium_risk_cases >= self.high_medium_risk_min:
            return 'high'
        if high_risk_cases > 0 or medium_risk_cases > 0:
            return 'medium'
        return 'low'

    def _prepare_records(self, case_records: Union[pd.DataFrame, List[Dict[str, Any]]], source_context: str) -> pd.DataFrame:
        """Validates input rows; malformed ones are logged and dropped."""
        if isinstance(case_records, pd.DataFrame):
            records_df = case_records.copy()
        else:
            records_df = pd.DataFrame(list(case_records or []))
        if records_df.empty:
            return pd.DataFrame(columns=['disease_type', 'barangay_id', 'barangay_key', 'case_count', 'severity_bucket', 'record_date', 'custom_disease_name'])

        for col in ['disease_type', 'barangay_id', 'case_count', 'severity', 'record_date', 'custom_disease_name']:
            if col not in records_df.columns:
                records_df[col] = None

        records_df['case_count'] = pd.to_numeric(records_df['case_count'], errors='coerce')
        # One missing id turns an int column into floats (7 -> 7.0); grouping and lookups use the key
        records_df['barangay_key'] = _normalize_key_column(records_df['barangay_id'])
        disease_missing = records_df['disease_type'].isna() | (records_df['disease_type'].astype(str).str.strip() == '')
        barangay_missing = records_df['barangay_key'].isna()
        count_invalid = records_df['case_count'].isna() | (records_df['case_count'] < 0) | ~np.isfinite(records_df['case_count'].fillna(0))
        malformed_mask = disease_missing | barangay_missing | count_invalid
        if malformed_mask.any():
            logger.warning(
                f"({source_context}) Skipping {int(malformed_mask.sum())} malformed case record(s) "
                f"(missing disease/barangay or non-numeric/negative case_count)."
            )
        records_df = records_df[~malformed_mask].copy()

        records_df['disease_type'] = records_df['disease_type'].astype(str).str.strip().str.lower()
        records_df['severity_bucket'] = records_df['severity'].map(normalize_severity)
        records_df['record_date'] = pd.to_datetime(records_df['record_date'], errors='coerce')
        return records_df

    def _evaluate_groups(
        self, disease_records_df: pd.DataFrame, disease_type: str, threshold_entry: Dict[str, Any],
        barangay_names: Dict[str, str], alert_type: str
    ) -> List[Dict[str, Any]]:
        outbreaks = []
        for barangay_key, group_df in disease_records_df.groupby('barangay_key', sort=False):
            total_cases = group_df['case_count'].sum()
            if total_cases < threshold_entry['cases_threshold']:
                continue
            bucket_totals = group_df.groupby('severity_bucket')['case_count'].sum()
            high_cases = float(bucket_totals.get('high', 0))
            medium_cases = float(bucket_totals.get('medium', 0))
            low_cases = float(bucket_totals.get('low', 0))

            custom_name = None
            if disease_type == app_config.CUSTOM_DISEASE_TYPE:
                named_rows = group_df['custom_disease_name'].dropna()
                custom_name = str(named_rows.iloc[0]) if not named_rows.empty else None

            outbreaks.append({
                'disease_type': disease_type,
                'custom_disease_name': custom_name,
                'barangay_id': _caller_barangay_id(group_df['barangay_id'].iloc[0]),
                'barangay_name': barangay_names.get(barangay_key, app_config.UNKNOWN_BARANGAY_NAME),
                'case_count': _as_count(total_cases),
                'high_risk_cases': _as_count(high_cases),
                'medium_risk_cases': _as_count(medium_cases),
                'low_risk_cases': _as_count(low_cases),
                'threshold': threshold_entry['cases_threshold'],
                'days_window': threshold_entry['days_window'],
                'threshold_description': threshold_entry['description'],
                'alert_type': alert_type,
                'risk_level': self.classify_tier(high_cases, medium_cases, low_cases),
                'first_case_date': group_df['record_date'].min(),
                'latest_case_date': group_df['record_date'].max(),
            })
        return outbreaks

    def detect(
        self,
        case_records: Union[pd.DataFrame, List[Dict[str, Any]]],
        barangays: Optional[Any] = None,
        disease_type: Optional[str] = None,
        barangay_id: Optional[Any] = None,
        as_of: Optional[Any] = None,
        source_context: str = "OutbreakDetection",
    ) -> pd.DataFrame:
        """
        Returns one row per (disease, barangay) group at or above its threshold, most severe first.
        Without as_of the records are taken as already limited to the relevant window. With as_of,
        each disease's own days_window is applied and the rapid-spike thresholds are checked too.
        Disease types with no threshold entry are ignored.
        """
        records_df = self._prepare_records(case_records, source_context)
        disease_filter_key = str(disease_type).strip().lower() if disease_type else None
        if disease_filter_key is not None:
            records_df = records_df[records_df['disease_type'] == disease_filter_key]
        barangay_filter_key = _normalize_key_value(barangay_id)
        if barangay_filter_key is not None:
            records_df = records_df[records_df['barangay_key'] == barangay_filter_key]
        logger.info(f"({source_context}) Evaluating {len(records_df)} case records against outbreak thresholds.")

        barangay_names = build_barangay_name_lookup(barangays)
        threshold_passes = [('threshold', self.thresholds)]
        if as_of is not None:
            threshold_passes.append(('rapid_spike', self.rapid_spike_thresholds))

        outbreaks: List[Dict[str, Any]] = []
        thresholds_checked = 0
        for alert_type, threshold_table in threshold_passes:
            for threshold_disease, threshold_entry in threshold_table.items():
                if disease_filter_key is not None and threshold_disease != disease_filter_key:
                    continue
                thresholds_checked += 1
                disease_records_df = records_df[records_df['disease_type'] == threshold_disease]
                if as_of is not None:
                    disease_records_df = filter_records_to_window(
                        disease_records_df, threshold_entry['days_window'], as_of, source_context=source_context
                    )
                if disease_records_df.empty:
                    continue
                outbreaks.extend(self._evaluate_groups(disease_records_df, threshold_disease, threshold_entry, barangay_names, alert_type))

        if not outbreaks:
            logger.info(f"({source_context}) No outbreaks detected across {thresholds_checked} threshold(s).")
            outbreaks_df = pd.DataFrame(columns=OUTBREAK_OUTPUT_COLUMNS)
            outbreaks_df.attrs['thresholds_checked'] = thresholds_checked
            return outbreaks_df

        outbreaks_df = pd.DataFrame(outbreaks, columns=OUTBREAK_OUTPUT_COLUMNS)
        outbreaks_df['_risk_order'] = outbreaks_df['risk_level'].map(self.risk_level_order)
        outbreaks_df = outbreaks_df.sort_values(['_risk_order', 'case_count'], ascending=[True, False], kind='mergesort')
        outbreaks_df = outbreaks_df.drop(columns=['_risk_order']).reset_index(drop=True)
        outbreaks_df.attrs['thresholds_checked'] = thresholds_checked
        logger.info(f"({source_context}) Detected {len(outbreaks_df)} outbreak(s); critical={int((outbreaks_df['risk_level'] == 'critical').sum())}.")
        return outbreaks_df


def _as_count(value: float) -> Union[int, float]:
    """Whole totals come back as int; fractional totals (rare, from averaged feeds) are kept."""
    return int(value) if float(value).is_integer() else float(value)


def _caller_barangay_id(value: Any) -> Any:
    """The id as the caller passed it: 7 stays 7, '7' stays '7'. Float ids promoted by a missing sibling come back as int."""
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# --- Module-Level Helpers ---

def detect_outbreaks(
    case_records: Union[pd.DataFrame, List[Dict[str, Any]]],
    barangays: Optional[Any] = None,
    thresholds: Optional[Dict[str, Any]] = None,
    disease_type: Optional[str] = None,
    barangay_id: Optional[Any] = None,
    as_of: Optional[Any] = None,
    source_context: str = "OutbreakDetection",
) -> pd.DataFrame:
    """Convenience wrapper: builds a classifier (default or custom thresholds) and runs detect()."""
    classifier = OutbreakClassifier(thresholds=thresholds)
    return classifier.detect(
        case_records, barangays=barangays, disease_type=disease_type, barangay_id=barangay_id,
        as_of=as_of, source_context=source_context,
    )


def summarize_outbreaks(outbreaks_df: pd.DataFrame, thresholds: Optional[Dict[str, Any]] = None) -> Dict[str, int]:
    """
    Counts per tier plus the number of thresholds that were checked. The count recorded by
    detect() wins; otherwise the size of the given (or default) threshold table is reported.
    """
    thresholds_checked = None
    if isinstance(outbreaks_df, pd.DataFrame):
        thresholds_checked = outbreaks_df.attrs.get('thresholds_checked')
    if thresholds_checked is None:
        thresholds_checked = len(thresholds if thresholds is not None else app_config.OUTBREAK_THRESHOLDS)
    summary = {
        'total_outbreaks': 0, 'critical_outbreaks': 0, 'high_risk_outbreaks': 0,
        'medium_risk_outbreaks': 0, 'low_risk_outbreaks': 0, 'thresholds_checked': int(thresholds_checked),
    }
    if not isinstance(outbreaks_df, pd.DataFrame) or outbreaks_df.empty:
        return summary
    tier_counts = outbreaks_df['risk_level'].value_counts()
    summary['total_outbreaks'] = int(len(outbreaks_df))
    summary['critical_outbreaks'] = int(tier_counts.get('critical', 0))
    summary['high_risk_outbreaks'] = int(tier_counts.get('high', 0))
    summary['medium_risk_outbreaks'] = int(tier_counts.get('medium', 0))
    summary['low_risk_outbreaks'] = int(tier_counts.get('low', 0))
    return summary


def build_outbreak_alert_message(outbreak: Dict[str, Any]) -> Dict[str, str]:
    """Title and body for the alert raised to administrators. Delivery is handled by the portal."""
    disease_type = outbreak.get('disease_type', '')
    custom_name = outbreak.get('custom_disease_name')
    disease_label = custom_name if isinstance(custom_name, str) and custom_name else app_config.DISEASE_TYPE_LABELS.get(disease_type, disease_type)
    risk_level = str(outbreak.get('risk_level', 'low')).upper()
    return {
        'title': f"{risk_level} Outbreak Alert: {disease_label}",
        'message': (
            f"{outbreak.get('case_count', 0)} cases detected in "
            f"{outbreak.get('barangay_name') or app_config.UNKNOWN_BARANGAY_NAME} "
            f"({outbreak.get('threshold_description', '')})"
        ),
    }
