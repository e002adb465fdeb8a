# tests/test_excel_import.py
# Pytest tests for utils.excel_import: per-field validation, file-level rejection,
# partial acceptance, row numbering and workbook sheet selection.

import pytest
import pandas as pd
import numpy as np
from datetime import date, datetime

from utils.excel_import import (
    validate_excel_upload,
    convert_excel_date_to_iso,
    parse_disease_rows,
    parse_healthcard_rows,
    parse_disease_excel,
    parse_healthcard_excel,
    read_import_sheet,
    import_result_errors_frame,
)
from config import app_config


def _disease_row(**overrides):
    row = {
        'Record Date': '2024-01-15', 'Disease Type': 'Dengue', 'Custom Disease Name': None,
        'Case Count': 5, 'Barangay': 'San Isidro', 'Source': None, 'Notes': None,
    }
    row.update(overrides)
    return row

def _errors_for(result, field):
    return [err for err in result['errors'] if err['field'] == field]


# --- Tests for Upload Gate ---

def test_validate_excel_upload():
    assert validate_excel_upload('history.xlsx', 1024) == {'valid': True, 'error': None}
    assert validate_excel_upload('HISTORY.XLS', 1024)['valid'] is True
    assert validate_excel_upload('history.csv', 1024)['error'] == 'Invalid file format. Please upload an Excel file (.xlsx or .xls)'
    assert validate_excel_upload('history.xlsx', 6 * 1024 * 1024)['error'] == 'File size exceeds 5MB limit'


# --- Tests for Date Conversion ---

@pytest.mark.parametrize("raw_value, expected", [
    ('2024-01-15', '2024-01-15'),
    ('01/15/2024', '2024-01-15'),
    ('1/5/2024', '2024-01-05'),
    ('2024-01-15 00:00:00', '2024-01-15'),
    (45292, '2024-01-01'),
    (45292.75, '2024-01-01'),
    ('45292', '2024-01-01'),
    (pd.Timestamp('2024-02-29'), '2024-02-29'),
    (datetime(2023, 12, 31, 14, 30), '2023-12-31'),
    (date(2023, 7, 4), '2023-07-04'),
])
def test_convert_excel_date_to_iso_accepts(raw_value, expected):
    assert convert_excel_date_to_iso(raw_value) == expected

@pytest.mark.parametrize("raw_value", ['15-01-2024', '2024-13-01', 'yesterday', '', None, np.nan, 0, -3, True, '2024', '9999'])
def test_convert_excel_date_to_iso_rejects(raw_value):
    assert convert_excel_date_to_iso(raw_value) is None


# --- Tests for Disease Row Validation ---

def test_parse_disease_rows_all_valid(valid_disease_import_df, sample_barangays_list, import_today):
    result = parse_disease_rows(valid_disease_import_df, sample_barangays_list, today=import_today)

    assert result['success'] is True
    assert result['errors'] == []
    assert result['total_rows'] == 4
    assert result['valid_rows'] == 4
    first, second, third, fourth = result['records']

    assert first == {
        'record_date': '2024-01-15', 'disease_type': 'dengue', 'custom_disease_name': None, 'case_count': 12,
        'barangay_id': 1, 'barangay_name': 'San Isidro', 'source': 'CHO logbook', 'notes': None, 'severity': 'low',
    }
    assert (second['record_date'], second['disease_type'], second['case_count'], second['barangay_id']) == ('2024-02-20', 'hiv_aids', 3, 2)
    assert (third['record_date'], third['disease_type'], third['custom_disease_name']) == ('2024-02-15', 'other', 'Leptospirosis')
    assert (fourth['record_date'], fourth['disease_type']) == ('2024-03-05', 'animal_bite')

def test_disease_severity_from_population(sample_barangays_list, import_today):
    # Poblacion has population 10: 7 cases -> 70% -> high, 5 -> 50% -> medium
    df = pd.DataFrame([_disease_row(**{'Barangay': 'Poblacion', 'Case Count': 7}),
                       _disease_row(**{'Barangay': 'Poblacion', 'Case Count': 5, 'Record Date': '2024-01-16'})])
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)
    assert [rec['severity'] for rec in result['records']] == ['high', 'medium']

def test_disease_rows_without_population_reference_have_no_severity(import_today):
    df = pd.DataFrame([_disease_row()])
    result = parse_disease_rows(df, [{'id': 1, 'name': 'San Isidro'}], today=import_today)
    assert 'severity' not in result['records'][0]

def test_partial_acceptance_and_row_numbers(sample_barangays_list, import_today):
    df = pd.DataFrame([
        _disease_row(),                                   # row 2: valid
        _disease_row(**{'Case Count': 0}),                 # row 3: invalid count
        _disease_row(**{'Record Date': '2024-01-20'}),     # row 4: valid
        _disease_row(**{'Barangay': 'Atlantis'}),          # row 5: unknown barangay
    ])
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)

    assert result['success'] is True
    assert result['valid_rows'] == 2
    assert result['total_rows'] == 4
    assert [err['row'] for err in result['errors']] == [3, 5]
    assert result['errors'][0] == {'row': 3, 'field': 'Case Count', 'message': 'Case Count must be a positive integer', 'value': 0}
    assert result['errors'][1]['message'] == 'Barangay "Atlantis" not found. Check spelling or use barangay code.'

def test_each_failed_check_reports_its_own_error(sample_barangays_list, import_today):
    df = pd.DataFrame([_disease_row(**{'Record Date': None, 'Disease Type': 'Flu', 'Case Count': None, 'Barangay': None})])
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)
    assert result['success'] is False
    assert {err['field'] for err in result['errors']} == {'Record Date', 'Disease Type', 'Case Count', 'Barangay'}
    assert _errors_for(result, 'Record Date')[0]['message'] == 'Record Date is required'
    assert _errors_for(result, 'Case Count')[0]['message'] == 'Case Count is required'
    assert _errors_for(result, 'Barangay')[0]['message'] == 'Barangay is required'
    assert _errors_for(result, 'Disease Type')[0]['message'].startswith('Invalid disease type. Must be one of: HIV/AIDS, Dengue')

def test_future_date_produces_exactly_one_error(sample_barangays_list, import_today):
    df = pd.DataFrame([_disease_row(**{'Record Date': '2024-07-01'}), _disease_row(**{'Record Date': '2024-06-30'})])
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)
    date_errors = _errors_for(result, 'Record Date')
    assert len(date_errors) == 1
    assert date_errors[0] == {'row': 2, 'field': 'Record Date', 'message': 'Date cannot be in the future', 'value': '2024-07-01'}
    assert result['valid_rows'] == 1   # today itself is allowed

def test_invalid_date_format_message(sample_barangays_list, import_today):
    result = parse_disease_rows(pd.DataFrame([_disease_row(**{'Record Date': '31.01.2024'})]), sample_barangays_list, today=import_today)
    assert _errors_for(result, 'Record Date')[0]['message'] == 'Invalid date format. Use YYYY-MM-DD or Excel date.'

def test_bare_year_text_is_flagged_not_read_as_serial(sample_barangays_list, import_today):
    result = parse_disease_rows(pd.DataFrame([_disease_row(**{'Record Date': '2024'})]), sample_barangays_list, today=import_today)
    assert _errors_for(result, 'Record Date')[0]['message'] == 'Invalid date format. Use YYYY-MM-DD or Excel date.'
    assert result['valid_rows'] == 0
    # The same number in a numeric cell is still a spreadsheet serial
    assert convert_excel_date_to_iso(2024) == '1905-07-16'

@pytest.mark.parametrize("bad_count", [-4, 12.5, 'twelve', True])
def test_case_count_must_be_positive_whole_number(bad_count, sample_barangays_list, import_today):
    result = parse_disease_rows(pd.DataFrame([_disease_row(**{'Case Count': bad_count})]), sample_barangays_list, today=import_today)
    assert _errors_for(result, 'Case Count')[0]['message'] == 'Case Count must be a positive integer'
    assert result['valid_rows'] == 0

def test_custom_disease_name_required_only_for_other(sample_barangays_list, import_today):
    df = pd.DataFrame([
        _disease_row(**{'Disease Type': 'Other'}),
        _disease_row(**{'Disease Type': 'Dengue', 'Custom Disease Name': None, 'Record Date': '2024-01-16'}),
    ])
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)
    assert result['errors'] == [{'row': 2, 'field': 'Custom Disease Name',
                                 'message': 'Custom Disease Name is required when Disease Type is "Other"', 'value': None}]
    assert result['valid_rows'] == 1

def test_disease_type_matches_label_or_key(sample_barangays_list, import_today):
    df = pd.DataFrame([
        _disease_row(**{'Disease Type': 'pregnancy complications'}),
        _disease_row(**{'Disease Type': 'PREGNANCY_COMPLICATIONS', 'Record Date': '2024-01-16'}),
        _disease_row(**{'Disease Type': 'hiv_aids', 'Record Date': '2024-01-17'}),
    ])
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)
    assert [rec['disease_type'] for rec in result['records']] == ['pregnancy_complications', 'pregnancy_complications', 'hiv_aids']

def test_duplicate_rows_raise_warning_not_error(sample_barangays_list, import_today):
    df = pd.DataFrame([_disease_row(), _disease_row(**{'Barangay': 'san isidro', 'Case Count': 3})])
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)
    assert result['valid_rows'] == 2
    assert len(result['warnings']) == 1
    assert result['warnings'][0]['row'] == 3
    assert 'Duplicate of row 2' in result['warnings'][0]['message']

def test_blank_rows_are_ignored_but_row_numbers_are_kept(sample_barangays_list, import_today):
    df = pd.DataFrame([_disease_row(), {key: None for key in _disease_row()}, _disease_row(**{'Case Count': -1})])
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)
    assert result['total_rows'] == 2
    assert result['errors'][0]['row'] == 4


# --- Tests for File-Level Rejection ---

def test_too_many_rows_rejected_as_a_whole(sample_barangays_list, import_today):
    df = pd.DataFrame([_disease_row()] * (app_config.IMPORT_MAX_ROWS + 1))
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)
    assert result['success'] is False
    assert result['records'] == []
    assert result['errors'] == [{'row': 0, 'field': 'file', 'message': 'Too many rows (1001). Maximum 1000 rows per import.', 'value': None}]

def test_exactly_max_rows_is_accepted(sample_barangays_list, import_today):
    df = pd.DataFrame([_disease_row()] * app_config.IMPORT_MAX_ROWS)
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)
    assert result['valid_rows'] == app_config.IMPORT_MAX_ROWS
    assert len(result['warnings']) == app_config.IMPORT_MAX_ROWS - 1

def test_empty_sheet_rejected(sample_barangays_list):
    result = parse_disease_rows(pd.DataFrame(columns=app_config.DISEASE_IMPORT_REQUIRED_COLUMNS), sample_barangays_list)
    assert result['errors'][0]['message'] == 'Excel file contains no data rows'
    assert result['success'] is False

def test_missing_required_columns_rejected(sample_barangays_list, import_today):
    df = pd.DataFrame([{'Record Date': '2024-01-15', 'Disease Type': 'Dengue'}])
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)
    assert result['errors'] == [{
        'row': 0, 'field': 'columns',
        'message': 'Missing required columns: Case Count, Barangay. Please use the template file.', 'value': None,
    }]


# --- Tests for Health Card Rows ---

def test_parse_healthcard_rows_valid(valid_healthcard_import_df, sample_barangays_list, import_today):
    result = parse_healthcard_rows(valid_healthcard_import_df, sample_barangays_list, today=import_today)
    assert result['success'] is True
    assert result['valid_rows'] == 3
    types = [rec['healthcard_type'] for rec in result['records']]
    assert types == ['food_handler', 'non_food', 'pink']
    # Blank barangay -> system-wide record
    assert result['records'][1]['barangay_id'] is None
    assert result['records'][0]['barangay_id'] == 1

def test_healthcard_row_errors(sample_barangays_list, import_today):
    df = pd.DataFrame([{
        'Record Date': '2024-01-15', 'HealthCard Type': 'Blue Card', 'Cards Issued': 0, 'Barangay': 'Nowhere',
    }])
    result = parse_healthcard_rows(df, sample_barangays_list, today=import_today)
    assert {err['field'] for err in result['errors']} == {'HealthCard Type', 'Cards Issued', 'Barangay'}
    assert _errors_for(result, 'Cards Issued')[0]['message'] == 'Cards Issued must be a positive integer'
    assert _errors_for(result, 'Barangay')[0]['message'] == 'Barangay "Nowhere" not found. Check spelling.'

def test_healthcard_missing_columns(sample_barangays_list):
    result = parse_healthcard_rows(pd.DataFrame([{'Record Date': '2024-01-15'}]), sample_barangays_list)
    assert result['errors'][0]['field'] == 'columns'
    assert 'HealthCard Type, Cards Issued' in result['errors'][0]['message']


# --- Tests for Workbook Reading (real .xlsx files) ---

def test_parse_disease_excel_prefers_data_sheet(tmp_path, valid_disease_import_df, sample_barangays_df, import_today):
    workbook_path = tmp_path / "disease_history.xlsx"
    with pd.ExcelWriter(workbook_path, engine="openpyxl") as writer:
        pd.DataFrame({'Step': ['Fill in the Data sheet']}).to_excel(writer, sheet_name="Instructions", index=False)
        valid_disease_import_df.to_excel(writer, sheet_name="Data", index=False)
        sample_barangays_df[['name', 'code']].to_excel(writer, sheet_name="Barangay List", index=False)

    result = parse_disease_excel(str(workbook_path), sample_barangays_df, today=import_today)
    assert result['errors'] == []
    assert result['valid_rows'] == 4
    assert result['records'][0]['barangay_id'] == '1'
    assert result['records'][2]['record_date'] == '2024-02-15'

def test_read_import_sheet_falls_back_to_sheet_with_record_date(tmp_path, valid_healthcard_import_df):
    workbook_path = tmp_path / "cards.xlsx"
    with pd.ExcelWriter(workbook_path, engine="openpyxl") as writer:
        pd.DataFrame({'Note': ['read me']}).to_excel(writer, sheet_name="Readme", index=False)
        valid_healthcard_import_df.to_excel(writer, sheet_name="Issued", index=False)

    sheet_df, error_message = read_import_sheet(str(workbook_path))
    assert error_message is None
    assert 'HealthCard Type' in sheet_df.columns

def test_workbook_without_usable_sheet(tmp_path, sample_barangays_list):
    workbook_path = tmp_path / "wrong.xlsx"
    pd.DataFrame({'Foo': [1]}).to_excel(workbook_path, sheet_name="Sheet1", index=False)
    result = parse_healthcard_excel(str(workbook_path), sample_barangays_list)
    assert result['success'] is False
    assert result['errors'][0]['row'] == 0
    assert result['errors'][0]['field'] == 'file'

def test_unreadable_file_reported_not_raised(tmp_path, sample_barangays_list):
    bogus_path = tmp_path / "not_really.xlsx"
    bogus_path.write_bytes(b"plain text, not a workbook")
    result = parse_disease_excel(str(bogus_path), sample_barangays_list)
    assert result['success'] is False
    assert result['errors'][0]['message'].startswith('Failed to parse Excel file')


# --- Tests for Error Report Frame ---

def test_import_result_errors_frame(sample_barangays_list, import_today):
    df = pd.DataFrame([_disease_row(), _disease_row(), _disease_row(**{'Case Count': 'x'})])
    result = parse_disease_rows(df, sample_barangays_list, today=import_today)
    report_df = import_result_errors_frame(result)
    assert list(report_df.columns) == ['level', 'row', 'field', 'message', 'value']
    assert list(report_df['level']) == ['warning', 'error']
    assert list(report_df['row']) == [3, 4]
