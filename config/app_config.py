# config/app_config.py
# Central configuration for "Barangay Health Watch" - municipal disease surveillance console.
# Holds outbreak threshold tables, enum label tables, forecast accuracy cutoffs,
# historical import limits, data paths, logging settings and UI colors.

import os
import pandas as pd

# --- I. Core System & Directory Configuration ---
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

ASSETS_DIR = os.path.join(BASE_DIR, "assets")
# DATA_DIR: sample extracts of the portal tables. Point BHW_DATA_DIR at a fresh export to refresh.
DATA_DIR = os.getenv("BHW_DATA_DIR", os.path.join(BASE_DIR, "data"))

DISEASE_STATISTICS_CSV = os.path.join(DATA_DIR, "disease_statistics.csv")
PATIENT_CASES_CSV = os.path.join(DATA_DIR, "patient_cases.csv")
HEALTHCARD_STATISTICS_CSV = os.path.join(DATA_DIR, "healthcard_statistics.csv")
BARANGAYS_CSV = os.path.join(DATA_DIR, "barangays.csv")
DISEASE_PREDICTIONS_CSV = os.path.join(DATA_DIR, "disease_predictions.csv")

# APP_BRANDING
APP_NAME = "Barangay Health Watch"
APP_VERSION = "1.2.0"
APP_LOGO_SMALL = os.path.join(ASSETS_DIR, "bhw_logo_small.png")
STYLE_CSS_PATH_WEB = os.path.join(ASSETS_DIR, "style_web_reports.css")

ORGANIZATION_NAME = "City Health Office"
APP_FOOTER_TEXT = f"© {pd.Timestamp('now').year} {ORGANIZATION_NAME}. For disease surveillance and public health response."
SUPPORT_CONTACT_INFO = "cho-support@example.gov.ph"

# --- II. Disease & Health Card Vocabulary ---
# Keys are the values stored in the portal tables; labels are what staff type into templates.
DISEASE_TYPE_LABELS = {
    "hiv_aids": "HIV/AIDS",
    "dengue": "Dengue",
    "malaria": "Malaria",
    "measles": "Measles",
    "animal_bite": "Rabies",
    "pregnancy_complications": "Pregnancy Complications",
    "other": "Other",
}
# Extra spellings seen in field templates.
DISEASE_TYPE_ALIASES = {
    "animal bite": "animal_bite",
    "hiv": "hiv_aids",
}
CUSTOM_DISEASE_TYPE = "other"

HEALTHCARD_TYPE_LABELS = {
    "food_handler": "General (Yellow Card)",
    "non_food": "General (Green Card)",
    "pink": "Service/Clinical (Pink Card)",
}

# --- III. Outbreak Detection Thresholds ---
# cases_threshold: minimum summed case count in the window that makes an outbreak.
OUTBREAK_THRESHOLDS = {
    "dengue": {"cases_threshold": 5, "days_window": 14, "description": "5+ cases in 14 days"},
    "hiv_aids": {"cases_threshold": 3, "days_window": 30, "description": "3+ new cases in 30 days"},
    "malaria": {"cases_threshold": 3, "days_window": 14, "description": "3+ cases in 14 days"},
    "measles": {"cases_threshold": 3, "days_window": 14, "description": "3+ cases in 14 days (highly contagious)"},
    "animal_bite": {"cases_threshold": 1, "days_window": 7, "description": "Any animal bite/rabies case (immediate alert)"},
    "pregnancy_complications": {"cases_threshold": 5, "days_window": 30, "description": "5+ cases in 30 days"},
    "other": {"cases_threshold": 3, "days_window": 14, "description": "3+ cases in 14 days (custom disease)"},
}
# Short-window spikes, evaluated only when detection is given an as-of date.
OUTBREAK_RAPID_SPIKE_THRESHOLDS = {
    "dengue": {"cases_threshold": 5, "days_window": 3, "description": "Rapid spike: 5+ cases in 3 days"},
}

# Severity vocabulary. Records may carry legacy labels; everything folds into high/medium/low.
SEVERITY_BUCKETS = ["high", "medium", "low"]
SEVERITY_ALIASES = {
    "high": "high", "high_risk": "high", "critical": "high",
    "medium": "medium", "medium_risk": "medium", "severe": "medium",
    "low": "low", "low_risk": "low", "moderate": "low", "mild": "low", "unspecified": "low",
}
DEFAULT_SEVERITY_BUCKET = "low"

# Tier escalation
OUTBREAK_CRITICAL_HIGH_RISK_CASES_MIN = 3
OUTBREAK_HIGH_MEDIUM_RISK_CASES_MIN = 5
OUTBREAK_RISK_LEVEL_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}
UNKNOWN_BARANGAY_NAME = "Unknown"

# Population-based severity (share of barangay population affected, percent)
SEVERITY_HIGH_POPULATION_PCT = 70
SEVERITY_MEDIUM_POPULATION_PCT = 50

# --- IV. Forecast Accuracy ---
FORECAST_MIN_OVERLAP_POINTS = 5
R_SQUARED_EXCELLENT_MIN = 0.9
R_SQUARED_GOOD_MIN = 0.7
R_SQUARED_FAIR_MIN = 0.5
FORECAST_CONFIDENCE_Z_SCORE = 1.96    # 95% interval
FORECAST_MIN_VALIDATION_POINTS = 2
FORECAST_DATA_QUALITY_HIGH_MIN_POINTS = 50
FORECAST_DATA_QUALITY_MODERATE_MIN_POINTS = 30
FORECAST_DEFAULT_MODEL_VERSION = "SARIMA(1,1,1)(1,1,1,7)"
FORECAST_MOVING_AVERAGE_WINDOW = 7

# --- V. Historical Excel Import ---
IMPORT_MAX_ROWS = 1000
IMPORT_MAX_FILE_SIZE_BYTES = 5 * 1024 * 1024
IMPORT_ALLOWED_EXTENSIONS = [".xlsx", ".xls"]
IMPORT_PREFERRED_SHEET_NAME = "Data"
IMPORT_FIRST_DATA_ROW_NUMBER = 2    # Row 1 holds the headers

DISEASE_IMPORT_REQUIRED_COLUMNS = ["Record Date", "Disease Type", "Case Count", "Barangay"]
DISEASE_IMPORT_OPTIONAL_COLUMNS = ["Custom Disease Name", "Source", "Notes"]
HEALTHCARD_IMPORT_REQUIRED_COLUMNS = ["Record Date", "HealthCard Type", "Cards Issued"]
HEALTHCARD_IMPORT_OPTIONAL_COLUMNS = ["Barangay", "Source", "Notes"]
IMPORT_DATE_STRING_FORMATS = ["%Y-%m-%d", "%m/%d/%Y"]
# Spreadsheet serial day 0. Matches the 1900 date system including the Lotus leap-year quirk.
EXCEL_SERIAL_DATE_ORIGIN = "1899-12-30"
# Numeric text below this serial (1927-05-18) is a typo such as a bare year, not a date
EXCEL_TEXT_SERIAL_MIN = 10000

# --- VI. Web Dashboard Configuration ---
CACHE_TTL_SECONDS_WEB_REPORTS = 3600
OUTBREAK_CACHE_TTL_SECONDS = 120
WEB_DASHBOARD_DEFAULT_DATE_RANGE_DAYS_TREND = 90
WEB_PLOT_DEFAULT_HEIGHT = 400
WEB_PLOT_COMPACT_HEIGHT = 320

# LOGGING
LOG_LEVEL = os.getenv("BHW_LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# COLORS
COLOR_RISK_CRITICAL = "#B71C1C"
COLOR_RISK_HIGH = "#D32F2F"
COLOR_RISK_MODERATE = "#FBC02D"
COLOR_RISK_LOW = "#388E3C"
COLOR_RISK_NEUTRAL = "#757575"
COLOR_ACTION_PRIMARY = "#1976D2"
COLOR_ACTION_SECONDARY = "#546E7A"

OUTBREAK_TIER_COLORS = {
    "critical": COLOR_RISK_CRITICAL,
    "high": COLOR_RISK_HIGH,
    "medium": COLOR_RISK_MODERATE,
    "low": COLOR_RISK_LOW,
}
DISEASE_COLORS_WEB = {
    "dengue": "#EF4444", "malaria": "#F59E0B", "hiv_aids": "#8B5CF6",
    "measles": "#EC4899", "animal_bite": "#10B981",
    "pregnancy_complications": "#3B82F6", "other": "#6B7280",
}
