# tests/conftest.py
# Shared fixtures for the Barangay Health Watch test-suite.
# Fixture data is small and hand-checkable: totals, tiers and row numbers referenced in the
# tests can be verified by reading the tables below.

import pytest
import pandas as pd
import numpy as np
from datetime import date


# --- Reference Data ---
@pytest.fixture(scope="session")
def sample_barangays_list():
    """Barangay reference as the portal API returns it (list of dicts)."""
    return [
        {'id': 1, 'name': 'San Isidro', 'code': 'SI', 'population': 5000},
        {'id': 2, 'name': 'Poblacion', 'code': 'POB', 'population': 10},
        {'id': 3, 'name': 'Bagong Silang', 'code': 'BS', 'population': None},
    ]

@pytest.fixture(scope="session")
def sample_barangays_df(sample_barangays_list):
    df = pd.DataFrame(sample_barangays_list)
    df['id'] = df['id'].astype(str)
    return df


# --- Case Records (Outbreak Classifier input) ---
@pytest.fixture(scope="session")
def sample_case_records_df():
    """
    Dengue in barangay 1: 7 cases (3 high, 2 medium, 2 low)         -> critical
    Measles in barangay 2: 6 cases (5 medium, 1 low)               -> high
    Malaria in barangay 1: 3 cases (1 medium via legacy 'severe')   -> medium
    Rabies (animal_bite) in barangay 3: 1 low case                  -> low
    Dengue in barangay 2: 4 cases                                   -> below threshold
    HIV in barangay 1: 2 cases                                      -> below threshold
    """
    rows = [
        # dengue, barangay 1
        ('dengue', '1', 2, 'high_risk', '2024-03-01'),
        ('dengue', '1', 1, 'high', '2024-03-03'),
        ('dengue', '1', 2, 'medium_risk', '2024-03-05'),
        ('dengue', '1', 2, 'low_risk', '2024-03-08'),
        # measles, barangay 2
        ('measles', '2', 3, 'medium', '2024-03-02'),
        ('measles', '2', 2, 'medium_risk', '2024-03-04'),
        ('measles', '2', 1, None, '2024-03-06'),
        # malaria, barangay 1
        ('malaria', '1', 1, 'severe', '2024-03-02'),
        ('malaria', '1', 2, 'mild', '2024-03-07'),
        # animal bite, barangay 3
        ('animal_bite', '3', 1, 'low_risk', '2024-03-09'),
        # dengue, barangay 2 (below threshold of 5)
        ('dengue', '2', 4, 'high_risk', '2024-03-09'),
        # hiv, barangay 1 (below threshold of 3)
        ('hiv_aids', '1', 2, 'medium_risk', '2024-02-20'),
    ]
    df = pd.DataFrame(rows, columns=['disease_type', 'barangay_id', 'case_count', 'severity', 'record_date'])
    df['custom_disease_name'] = None
    df['record_date'] = pd.to_datetime(df['record_date'])
    return df

@pytest.fixture(scope="session")
def sample_patient_cases_df():
    return pd.DataFrame({
        'patient_id': ['P001', 'P002', 'P003'],
        'disease_type': ['dengue', 'dengue', 'measles'],
        'custom_disease_name': [None, None, None],
        'barangay_id': ['1', '1', '2'],
        'severity': ['high_risk', 'low_risk', 'medium_risk'],
        'diagnosis_date': pd.to_datetime(['2024-03-10', '2024-03-11', '2024-03-11']),
    })


# --- Forecast Data ---
@pytest.fixture(scope="session")
def sample_historical_cases_df():
    """Ten consecutive days of dengue totals, split over two barangays on some days."""
    dates = pd.date_range('2024-01-01', periods=10, freq='D')
    rows = []
    for i, day in enumerate(dates):
        rows.append({'record_date': day, 'disease_type': 'dengue', 'barangay_id': '1', 'case_count': 10 + i})
    # Extra rows on two days: daily totals must sum across barangays
    rows.append({'record_date': dates[0], 'disease_type': 'dengue', 'barangay_id': '2', 'case_count': 5})
    rows.append({'record_date': dates[1], 'disease_type': 'dengue', 'barangay_id': '2', 'case_count': 5})
    return pd.DataFrame(rows)

@pytest.fixture(scope="session")
def sample_predictions_df():
    """Forecasts for days 3..12 of the historical window; two barangay rows per date averaged to one value."""
    dates = pd.date_range('2024-01-03', periods=10, freq='D')
    rows = []
    for i, day in enumerate(dates):
        # True totals for 2024-01-03.. are 12, 13, ...; predictions average to (12 + i) + 0.5
        rows.append({'prediction_date': day, 'disease_type': 'dengue', 'barangay_id': '1', 'predicted_cases': 12 + i,
                     'lower_bound': 10 + i, 'upper_bound': 14 + i, 'model_version': 'SARIMA(1,1,1)(1,1,1,7)'})
        rows.append({'prediction_date': day, 'disease_type': 'dengue', 'barangay_id': '2', 'predicted_cases': 13 + i,
                     'lower_bound': 11 + i, 'upper_bound': 15 + i, 'model_version': 'SARIMA(1,1,1)(1,1,1,7)'})
    return pd.DataFrame(rows)


# --- Import Sheets ---
@pytest.fixture
def import_today():
    return date(2024, 6, 30)

@pytest.fixture
def valid_disease_import_df():
    return pd.DataFrame({
        'Record Date': ['2024-01-15', '02/20/2024', 45337, pd.Timestamp('2024-03-05')],
        'Disease Type': ['Dengue', 'hiv/aids', 'Other', 'RABIES'],
        'Custom Disease Name': [None, None, 'Leptospirosis', None],
        'Case Count': [12, 3.0, '4', 1],
        'Barangay': ['San Isidro', 'poblacion', 'Bagong Silang', ' San Isidro '],
        'Source': ['CHO logbook', None, None, 'RHU'],
        'Notes': [None, None, 'Flooding', None],
    })

@pytest.fixture
def valid_healthcard_import_df():
    return pd.DataFrame({
        'Record Date': ['2024-01-15', '2024-01-16', '2024-01-17'],
        'HealthCard Type': ['General (Yellow Card)', 'non_food', 'service/clinical (pink card)'],
        'Cards Issued': [25, 10, 4],
        'Barangay': ['San Isidro', None, 'Poblacion'],
        'Source': [None, None, None],
        'Notes': [None, None, None],
    })


# --- Generic Series for UI helpers ---
@pytest.fixture(scope="session")
def sample_series_data():
    idx = pd.date_range('2024-01-01', periods=10, freq='D', name='record_date')
    return pd.Series(np.arange(10, 20, dtype=float), index=idx)
