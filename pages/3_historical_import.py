# pages/3_historical_import.py
# Historical Data Import for "Barangay Health Watch".
# Staff upload the disease or health card template workbook; every row is validated
# and the page reports accepted rows, per-row errors and duplicate warnings before
# anything is handed on for saving.

import streamlit as st
import pandas as pd
import os
import logging

from config import app_config
from utils.core_data_processing import load_barangays
from utils.excel_import import (
    validate_excel_upload,
    parse_disease_excel,
    parse_healthcard_excel,
    import_result_errors_frame,
)
from utils.ui_visualization_helpers import render_web_kpi_card, render_web_traffic_light_indicator

st.set_page_config(
    page_title=f"Historical Import - {app_config.APP_NAME}",
    layout="wide",
    initial_sidebar_state="expanded"
)

logger = logging.getLogger(__name__)

IMPORT_TYPES = {
    "disease": {
        "label": "Disease case counts",
        "parser": parse_disease_excel,
        "required": app_config.DISEASE_IMPORT_REQUIRED_COLUMNS,
        "optional": app_config.DISEASE_IMPORT_OPTIONAL_COLUMNS,
        "choices": ("Disease Type", list(app_config.DISEASE_TYPE_LABELS.values())),
    },
    "healthcard": {
        "label": "Health card issuance",
        "parser": parse_healthcard_excel,
        "required": app_config.HEALTHCARD_IMPORT_REQUIRED_COLUMNS,
        "optional": app_config.HEALTHCARD_IMPORT_OPTIONAL_COLUMNS,
        "choices": ("HealthCard Type", list(app_config.HEALTHCARD_TYPE_LABELS.values())),
    },
}


st.title("📥 Historical Data Import")
st.markdown("**Load past case counts or health card issuance from the Excel template.**")
st.markdown("---")

if os.path.exists(app_config.APP_LOGO_SMALL):
    st.sidebar.image(app_config.APP_LOGO_SMALL, width=180)
st.sidebar.header("📄 Import Settings")
import_type = st.sidebar.radio("Data type:", list(IMPORT_TYPES.keys()), format_func=lambda key: IMPORT_TYPES[key]["label"])
import_settings = IMPORT_TYPES[import_type]

with st.expander("Template requirements", expanded=False):
    choice_field, choice_values = import_settings["choices"]
    st.markdown(
        f"- Sheet: **{app_config.IMPORT_PREFERRED_SHEET_NAME}** (or the first sheet with a *Record Date* column)\n"
        f"- Required columns: {', '.join(import_settings['required'])}\n"
        f"- Optional columns: {', '.join(import_settings['optional'])}\n"
        f"- {choice_field}: {', '.join(choice_values)}\n"
        f"- Dates as YYYY-MM-DD, MM/DD/YYYY or Excel date cells; no future dates\n"
        f"- At most {app_config.IMPORT_MAX_ROWS} data rows and {app_config.IMPORT_MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB per file"
    )

uploaded_file = st.file_uploader("Upload workbook", type=[ext.lstrip('.') for ext in app_config.IMPORT_ALLOWED_EXTENSIONS],
                                 key=f"import_upload_{import_type}")
if uploaded_file is None:
    st.info("Choose a workbook to validate.")
    st.stop()

upload_check = validate_excel_upload(uploaded_file.name, uploaded_file.size)
if not upload_check['valid']:
    render_web_traffic_light_indicator(upload_check['error'], "high")
    logger.warning(f"Import upload rejected ({uploaded_file.name}): {upload_check['error']}")
    st.stop()

barangays_df = load_barangays(source_context="HistoricalImport")
if barangays_df.empty:
    st.warning("Barangay reference list is unavailable; rows with a barangay cannot be matched.")

with st.spinner("Validating rows..."):
    import_result = import_settings["parser"](uploaded_file, barangays_df, source_context=f"HistoricalImport/{import_type}")

# --- Outcome ---
kpi_cols = st.columns(4)
with kpi_cols[0]:
    render_web_kpi_card("Rows Read", str(import_result['total_rows']), icon="📄")
with kpi_cols[1]:
    render_web_kpi_card("Valid Rows", str(import_result['valid_rows']), icon="✅",
                        status_level="good" if import_result['valid_rows'] else "neutral")
with kpi_cols[2]:
    render_web_kpi_card("Errors", str(len(import_result['errors'])), icon="⛔",
                        status_level="high" if import_result['errors'] else "low")
with kpi_cols[3]:
    render_web_kpi_card("Warnings", str(len(import_result['warnings'])), icon="⚠️",
                        status_level="moderate" if import_result['warnings'] else "low")

if import_result['success'] and not import_result['errors']:
    render_web_traffic_light_indicator("All rows passed validation.", "low")
elif import_result['success']:
    render_web_traffic_light_indicator(
        "Partial import: valid rows can be saved; fix the listed rows and re-upload them.", "moderate",
        details_text=f"{import_result['valid_rows']} of {import_result['total_rows']} rows valid"
    )
else:
    render_web_traffic_light_indicator("Nothing to import.", "high",
                                       details_text=import_result['errors'][0]['message'] if import_result['errors'] else "")

issues_df = import_result_errors_frame(import_result)
if not issues_df.empty:
    st.subheader("Row Issues")
    st.dataframe(issues_df, use_container_width=True, hide_index=True)
    st.download_button("Download issues (CSV)", issues_df.to_csv(index=False).encode("utf-8"),
                       file_name=f"{import_type}_import_issues.csv", mime="text/csv")

if import_result['records']:
    st.subheader("Validated Records")
    records_df = pd.DataFrame(import_result['records'])
    st.dataframe(records_df, use_container_width=True, hide_index=True)
    st.download_button("Download validated records (CSV)", records_df.to_csv(index=False).encode("utf-8"),
                       file_name=f"{import_type}_validated_records.csv", mime="text/csv")
