# utils/excel_import.py
# Historical data import for "Barangay Health Watch".
# Validates spreadsheets of past disease case counts and health card issuance before they are
# written to the portal. Every row is checked independently: bad rows become {row, field, message, value}
# errors, good rows become records, and one bad row never blocks the rest of the file.
#
# Result shape (both importers):
#   {'success': valid_rows > 0, 'records': [...], 'errors': [...], 'warnings': [...],
#    'total_rows': int, 'valid_rows': int}
# File-level problems (unreadable workbook, no data, too many rows, missing columns) are reported
# as a single error on row 0 and no rows are validated.

import pandas as pd
import numpy as np
import os
import re
import logging
from datetime import date, datetime
from typing import Dict, Any, Optional, List, Tuple, Union, IO
from config import app_config
from utils.core_data_processing import barangay_reference_records
from utils.outbreak_detection import calculate_severity

logger = logging.getLogger(__name__)

_NUMERIC_TEXT_PATTERN = re.compile(r'^\d+(\.\d+)?$')
_MAX_EXCEL_SERIAL = 2958465    # 9999-12-31


# --- I. Upload & Cell Helpers ---

def validate_excel_upload(filename: str, size_bytes: int) -> Dict[str, Any]:
    """Cheap gate run before the workbook is opened."""
    extension = os.path.splitext(str(filename or ''))[1].lower()
    if extension not in app_config.IMPORT_ALLOWED_EXTENSIONS:
        return {'valid': False, 'error': 'Invalid file format. Please upload an Excel file (.xlsx or .xls)'}
    if size_bytes is not None and size_bytes > app_config.IMPORT_MAX_FILE_SIZE_BYTES:
        return {'valid': False, 'error': f'File size exceeds {app_config.IMPORT_MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB limit'}
    return {'valid': True, 'error': None}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _clean_text(value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)    # "Source" typed as 2023 should not come back as "2023.0"
    return str(value).strip()


def _serial_to_iso(serial_value: float) -> Optional[str]:
    if not np.isfinite(serial_value) or serial_value < 1 or serial_value > _MAX_EXCEL_SERIAL:
        return None
    converted = pd.Timestamp(app_config.EXCEL_SERIAL_DATE_ORIGIN) + pd.Timedelta(days=int(serial_value))
    return converted.strftime('%Y-%m-%d')


def convert_excel_date_to_iso(value: Any) -> Optional[str]:
    """
    Normalizes a spreadsheet date cell to 'YYYY-MM-DD'.
    Accepts native date/datetime cells, 'YYYY-MM-DD' and 'MM/DD/YYYY' text, and spreadsheet
    serial numbers. Numeric text is read as a serial only from EXCEL_TEXT_SERIAL_MIN up,
    so a bare year typed as text is rejected. Anything else gives None.
    """
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, (pd.Timestamp, datetime, date, np.datetime64)):
        return pd.Timestamp(value).strftime('%Y-%m-%d')
    if isinstance(value, (int, float, np.integer, np.floating)):
        return _serial_to_iso(float(value))

    text_value = str(value).strip()
    if _NUMERIC_TEXT_PATTERN.match(text_value):
        serial_value = float(text_value)
        if serial_value < app_config.EXCEL_TEXT_SERIAL_MIN:
            return None
        return _serial_to_iso(serial_value)
    # Text cells sometimes carry a midnight time component from the export tool
    text_value = re.sub(r'[ T]00:00(:00)?$', '', text_value)
    for date_format in app_config.IMPORT_DATE_STRING_FORMATS:
        try:
            return datetime.strptime(text_value, date_format).strftime('%Y-%m-%d')
        except ValueError:
            continue
    return None


def _parse_positive_int(value: Any) -> Optional[int]:
    """Whole numbers only: 12, 12.0 and '12' pass; 12.5, 'twelve' and booleans do not. Sign is checked by the caller."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return int(value) if np.isfinite(value) and float(value).is_integer() else None
    text_value = str(value).strip()
    try:
        return int(text_value)
    except ValueError:
        pass
    try:
        float_value = float(text_value)
    except ValueError:
        return None
    return int(float_value) if np.isfinite(float_value) and float_value.is_integer() else None


def _build_lookup(labels: Dict[str, str], aliases: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Lower-cased label, key and alias -> key."""
    lookup = {label.lower(): key for key, label in labels.items()}
    lookup.update({key.lower(): key for key in labels})
    lookup.update({alias.lower(): key for alias, key in (aliases or {}).items()})
    return lookup

_DISEASE_TYPE_LOOKUP = _build_lookup(app_config.DISEASE_TYPE_LABELS, app_config.DISEASE_TYPE_ALIASES)
_HEALTHCARD_TYPE_LOOKUP = _build_lookup(app_config.HEALTHCARD_TYPE_LABELS)


def _build_barangay_index(barangays: Optional[Any]) -> Dict[str, Dict[str, Any]]:
    index = {}
    for barangay_rec in barangay_reference_records(barangays):
        name = barangay_rec.get('name')
        if _is_blank(name):
            continue
        index.setdefault(str(name).strip().lower(), barangay_rec)
    return index


def _new_result() -> Dict[str, Any]:
    return {'success': False, 'records': [], 'errors': [], 'warnings': [], 'total_rows': 0, 'valid_rows': 0}


def _error(row_number: int, field: str, message: str, value: Any = None) -> Dict[str, Any]:
    if isinstance(value, np.generic):
        value = value.item()
    if value is not None and not isinstance(value, (str, int, float, bool)):
        value = str(value)
    elif isinstance(value, float) and np.isnan(value):
        value = None
    return {'row': row_number, 'field': field, 'message': message, 'value': value}


# --- II. Field Validators (shared by both importers) ---

def _check_record_date(raw_value: Any, row_number: int, today: date, row_errors: List[Dict[str, Any]],
                       invalid_message: str) -> Optional[str]:
    if _is_blank(raw_value):
        row_errors.append(_error(row_number, 'Record Date', 'Record Date is required', None))
        return None
    iso_date = convert_excel_date_to_iso(raw_value)
    if iso_date is None:
        row_errors.append(_error(row_number, 'Record Date', invalid_message, raw_value))
        return None
    if date.fromisoformat(iso_date) > today:
        row_errors.append(_error(row_number, 'Record Date', 'Date cannot be in the future', iso_date))
        return None
    return iso_date


def _check_positive_count(raw_value: Any, field: str, row_number: int, row_errors: List[Dict[str, Any]]) -> Optional[int]:
    if _is_blank(raw_value):
        row_errors.append(_error(row_number, field, f'{field} is required', None))
        return None
    parsed_count = _parse_positive_int(raw_value)
    if parsed_count is None or parsed_count <= 0:
        row_errors.append(_error(row_number, field, f'{field} must be a positive integer', raw_value))
        return None
    return parsed_count


def _check_barangay(raw_value: Any, row_number: int, barangay_index: Dict[str, Dict[str, Any]],
                    row_errors: List[Dict[str, Any]], required: bool, not_found_hint: str) -> Tuple[bool, Optional[Dict[str, Any]]]:
    """Returns (ok, matched reference record). A blank optional barangay is ok with no match."""
    barangay_name = _clean_text(raw_value)
    if barangay_name is None:
        if required:
            row_errors.append(_error(row_number, 'Barangay', 'Barangay is required', None))
            return False, None
        return True, None
    matched = barangay_index.get(barangay_name.lower())
    if matched is None:
        row_errors.append(_error(row_number, 'Barangay', f'Barangay "{barangay_name}" not found. {not_found_hint}', barangay_name))
        return False, None
    return True, matched


# --- III. Frame-Level Checks ---

def _prepare_frame(df: pd.DataFrame, required_columns: List[str], result: Dict[str, Any], source_context: str) -> Optional[pd.DataFrame]:
    """Applies the file-level rules. Returns the frame of data rows or None after recording a row-0 error."""
    if not isinstance(df, pd.DataFrame):
        result['errors'].append(_error(0, 'file', 'Failed to parse Excel file'))
        return None
    work_df = df.copy()
    work_df.columns = [str(col).strip() for col in work_df.columns]
    # Fully blank rows are spacing, not data; the index still maps back to spreadsheet rows
    work_df = work_df.dropna(how='all')
    work_df = work_df[~work_df.apply(lambda row: all(_is_blank(v) for v in row), axis=1)] if not work_df.empty else work_df
    result['total_rows'] = int(len(work_df))

    if work_df.empty:
        logger.warning(f"({source_context}) Import sheet has no data rows.")
        result['errors'].append(_error(0, 'file', 'Excel file contains no data rows'))
        return None
    if len(work_df) > app_config.IMPORT_MAX_ROWS:
        logger.warning(f"({source_context}) Import rejected: {len(work_df)} rows exceeds {app_config.IMPORT_MAX_ROWS}.")
        result['errors'].append(_error(0, 'file', f'Too many rows ({len(work_df)}). Maximum {app_config.IMPORT_MAX_ROWS} rows per import.'))
        return None
    missing_columns = [col for col in required_columns if col not in work_df.columns]
    if missing_columns:
        logger.warning(f"({source_context}) Import missing required columns: {missing_columns}")
        result['errors'].append(_error(0, 'columns', f"Missing required columns: {', '.join(missing_columns)}. Please use the template file."))
        return None
    return work_df


def _row_number(index_label: Any, position: int) -> int:
    base_position = index_label if isinstance(index_label, (int, np.integer)) else position
    return int(base_position) + app_config.IMPORT_FIRST_DATA_ROW_NUMBER


def _flag_duplicate(record_key: Tuple, row_number: int, seen_keys: Dict[Tuple, int], result: Dict[str, Any], label: str):
    if record_key in seen_keys:
        result['warnings'].append(_error(
            row_number, 'row',
            f'Duplicate of row {seen_keys[record_key]} (same date, {label} and barangay). Only one can be saved.',
        ))
    else:
        seen_keys[record_key] = row_number


def _finish(result: Dict[str, Any], source_context: str) -> Dict[str, Any]:
    result['valid_rows'] = len(result['records'])
    result['success'] = result['valid_rows'] > 0
    log_fn = logger.info if result['success'] else logger.warning
    log_fn(
        f"({source_context}) Import parsed: total={result['total_rows']} valid={result['valid_rows']} "
        f"errors={len(result['errors'])} warnings={len(result['warnings'])}"
    )
    return result


# --- IV. Row Parsers ---

def parse_disease_rows(df: pd.DataFrame, barangays: Optional[Any], today: Optional[date] = None,
                       source_context: str = "DiseaseImport") -> Dict[str, Any]:
    """Validates disease case-count rows (columns as in the import template)."""
    result = _new_result()
    work_df = _prepare_frame(df, app_config.DISEASE_IMPORT_REQUIRED_COLUMNS, result, source_context)
    if work_df is None:
        return _finish(result, source_context)

    today_val = today or date.today()
    barangay_index = _build_barangay_index(barangays)
    disease_labels_text = ', '.join(app_config.DISEASE_TYPE_LABELS.values())
    seen_keys: Dict[Tuple, int] = {}

    for position, (index_label, row) in enumerate(work_df.iterrows()):
        row_number = _row_number(index_label, position)
        row_errors: List[Dict[str, Any]] = []

        record_date = _check_record_date(row.get('Record Date'), row_number, today_val, row_errors,
                                         'Invalid date format. Use YYYY-MM-DD or Excel date.')

        disease_type = None
        disease_text = _clean_text(row.get('Disease Type'))
        if disease_text is None:
            row_errors.append(_error(row_number, 'Disease Type', 'Disease Type is required', None))
        else:
            disease_type = _DISEASE_TYPE_LOOKUP.get(disease_text.lower())
            if disease_type is None:
                row_errors.append(_error(row_number, 'Disease Type', f'Invalid disease type. Must be one of: {disease_labels_text}', disease_text))

        custom_disease_name = None
        if disease_type == app_config.CUSTOM_DISEASE_TYPE:
            custom_disease_name = _clean_text(row.get('Custom Disease Name'))
            if custom_disease_name is None:
                row_errors.append(_error(row_number, 'Custom Disease Name', 'Custom Disease Name is required when Disease Type is "Other"', None))

        case_count = _check_positive_count(row.get('Case Count'), 'Case Count', row_number, row_errors)
        barangay_ok, barangay_rec = _check_barangay(row.get('Barangay'), row_number, barangay_index, row_errors,
                                                    required=True, not_found_hint='Check spelling or use barangay code.')

        if row_errors or not barangay_ok:
            result['errors'].extend(row_errors)
            continue

        record = {
            'record_date': record_date,
            'disease_type': disease_type,
            'custom_disease_name': custom_disease_name,
            'case_count': case_count,
            'barangay_id': barangay_rec.get('id'),
            'barangay_name': barangay_rec.get('name'),
            'source': _clean_text(row.get('Source')),
            'notes': _clean_text(row.get('Notes')),
        }
        if 'population' in barangay_rec:
            record['severity'] = calculate_severity(case_count, barangay_rec.get('population'), source_context=source_context)
        _flag_duplicate((record_date, disease_type, (custom_disease_name or '').lower(), str(record['barangay_id'])),
                        row_number, seen_keys, result, 'disease')
        result['records'].append(record)

    return _finish(result, source_context)


def parse_healthcard_rows(df: pd.DataFrame, barangays: Optional[Any], today: Optional[date] = None,
                          source_context: str = "HealthCardImport") -> Dict[str, Any]:
    """Validates health card issuance rows. A blank Barangay means a system-wide total (barangay_id None)."""
    result = _new_result()
    work_df = _prepare_frame(df, app_config.HEALTHCARD_IMPORT_REQUIRED_COLUMNS, result, source_context)
    if work_df is None:
        return _finish(result, source_context)

    today_val = today or date.today()
    barangay_index = _build_barangay_index(barangays)
    type_choices_text = ', '.join(app_config.HEALTHCARD_TYPE_LABELS.values())
    seen_keys: Dict[Tuple, int] = {}

    for position, (index_label, row) in enumerate(work_df.iterrows()):
        row_number = _row_number(index_label, position)
        row_errors: List[Dict[str, Any]] = []

        record_date = _check_record_date(row.get('Record Date'), row_number, today_val, row_errors,
                                         'Invalid Record Date format. Use YYYY-MM-DD.')

        healthcard_type = None
        type_text = _clean_text(row.get('HealthCard Type'))
        if type_text is None:
            row_errors.append(_error(row_number, 'HealthCard Type', 'HealthCard Type is required', None))
        else:
            healthcard_type = _HEALTHCARD_TYPE_LOOKUP.get(type_text.lower())
            if healthcard_type is None:
                row_errors.append(_error(row_number, 'HealthCard Type', f'Invalid HealthCard Type. Must be one of: {type_choices_text}', type_text))

        cards_issued = _check_positive_count(row.get('Cards Issued'), 'Cards Issued', row_number, row_errors)
        barangay_ok, barangay_rec = _check_barangay(row.get('Barangay'), row_number, barangay_index, row_errors,
                                                    required=False, not_found_hint='Check spelling.')

        if row_errors or not barangay_ok:
            result['errors'].extend(row_errors)
            continue

        record = {
            'record_date': record_date,
            'healthcard_type': healthcard_type,
            'cards_issued': cards_issued,
            'barangay_id': barangay_rec.get('id') if barangay_rec else None,
            'barangay_name': barangay_rec.get('name') if barangay_rec else None,
            'source': _clean_text(row.get('Source')),
            'notes': _clean_text(row.get('Notes')),
        }
        _flag_duplicate((record_date, healthcard_type, str(record['barangay_id'])), row_number, seen_keys, result, 'card type')
        result['records'].append(record)

    return _finish(result, source_context)


# --- V. Workbook Entry Points ---

def read_import_sheet(source: Union[str, IO[bytes]], source_context: str = "ExcelImport") -> Tuple[Optional[pd.DataFrame], Optional[str]]:
    """
    Opens the workbook and picks the sheet to import: 'Data' when present, otherwise the first
    sheet with a 'Record Date' column. Returns (frame, None) or (None, error message).
    Cells are read as objects so dates, numbers and text reach the validators untouched.
    """
    try:
        sheets = pd.read_excel(source, sheet_name=None, dtype=object)
    except Exception as e:
        logger.error(f"({source_context}) Could not read workbook: {e}", exc_info=True)
        return None, f'Failed to parse Excel file: {e}'

    logger.info(f"({source_context}) Workbook sheets: {list(sheets.keys())}")
    if app_config.IMPORT_PREFERRED_SHEET_NAME in sheets:
        return sheets[app_config.IMPORT_PREFERRED_SHEET_NAME], None
    for sheet_name, sheet_df in sheets.items():
        if 'Record Date' in [str(col).strip() for col in sheet_df.columns]:
            logger.info(f"({source_context}) No '{app_config.IMPORT_PREFERRED_SHEET_NAME}' sheet; using '{sheet_name}'.")
            return sheet_df, None
    return None, f'Excel file must contain a "{app_config.IMPORT_PREFERRED_SHEET_NAME}" sheet with the required columns. Please use the template file.'


def parse_disease_excel(source: Union[str, IO[bytes]], barangays: Optional[Any], today: Optional[date] = None,
                        source_context: str = "DiseaseImport") -> Dict[str, Any]:
    sheet_df, read_error = read_import_sheet(source, source_context)
    if read_error:
        result = _new_result()
        result['errors'].append(_error(0, 'file', read_error))
        return _finish(result, source_context)
    return parse_disease_rows(sheet_df, barangays, today=today, source_context=source_context)


def parse_healthcard_excel(source: Union[str, IO[bytes]], barangays: Optional[Any], today: Optional[date] = None,
                           source_context: str = "HealthCardImport") -> Dict[str, Any]:
    sheet_df, read_error = read_import_sheet(source, source_context)
    if read_error:
        result = _new_result()
        result['errors'].append(_error(0, 'file', read_error))
        return _finish(result, source_context)
    return parse_healthcard_rows(sheet_df, barangays, today=today, source_context=source_context)


def import_result_errors_frame(result: Dict[str, Any]) -> pd.DataFrame:
    """Errors and warnings as one table for display and download."""
    rows = [dict(err, level='error') for err in result.get('errors', [])]
    rows += [dict(warn, level='warning') for warn in result.get('warnings', [])]
    if not rows:
        return pd.DataFrame(columns=['level', 'row', 'field', 'message', 'value'])
    return pd.DataFrame(rows)[['level', 'row', 'field', 'message', 'value']].sort_values(['row', 'level'], kind='mergesort').reset_index(drop=True)
