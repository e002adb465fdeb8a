# app_home.py
# Landing page for "Barangay Health Watch" - municipal disease surveillance console.

import streamlit as st
import os
from config import app_config
import logging

# --- Page Configuration ---
st.set_page_config(
    page_title=f"{app_config.APP_NAME} - Overview",
    page_icon=app_config.APP_LOGO_SMALL if os.path.exists(app_config.APP_LOGO_SMALL) else "🩺",
    layout="wide",
    initial_sidebar_state="expanded",
    menu_items={
        'Get Help': f"mailto:{app_config.SUPPORT_CONTACT_INFO}?subject=Help Request - {app_config.APP_NAME}",
        'Report a bug': f"mailto:{app_config.SUPPORT_CONTACT_INFO}?subject=Bug Report - {app_config.APP_NAME} v{app_config.APP_VERSION}",
        'About': f"""
        ### {app_config.APP_NAME}
        **Version:** {app_config.APP_VERSION}
        Outbreak detection, forecast review and historical data import for barangay health surveillance.
        {app_config.APP_FOOTER_TEXT}
        """
    }
)

# --- Logging Setup ---
logging.basicConfig(
    level=getattr(logging, app_config.LOG_LEVEL.upper(), logging.INFO),
    format=app_config.LOG_FORMAT,
    datefmt=app_config.LOG_DATE_FORMAT,
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

# --- CSS Loading ---
@st.cache_resource
def load_web_css(css_file_path: str):
    if os.path.exists(css_file_path):
        try:
            with open(css_file_path, encoding="utf-8") as f:
                st.markdown(f'<style>{f.read()}</style>', unsafe_allow_html=True)
            logger.info(f"Web CSS loaded successfully from {css_file_path}")
        except OSError as e_css:
            logger.error(f"Error reading web CSS file {css_file_path}: {e_css}")
    else:
        logger.warning(f"Web CSS file not found: {css_file_path}. Default Streamlit styles will apply.")

load_web_css(app_config.STYLE_CSS_PATH_WEB)


# --- App Header ---
header_cols_home = st.columns([0.15, 0.85])
with header_cols_home[0]:
    if os.path.exists(app_config.APP_LOGO_SMALL):
        st.image(app_config.APP_LOGO_SMALL, width=100)
    else:
        st.markdown("🩺", unsafe_allow_html=True)
with header_cols_home[1]:
    st.title(app_config.APP_NAME)
    st.caption(f"Version {app_config.APP_VERSION}  |  {app_config.ORGANIZATION_NAME}")
st.markdown("---")

st.markdown(f"""
    #### Welcome to {app_config.APP_NAME}

    This console works on the city's disease case records, patient diagnoses and health card issuance.
    It watches each barangay for disease clusters that cross their reporting thresholds, checks how well
    the case forecasts have tracked reality, and brings paper-era records in through a validated Excel import.

    👈 **Use the sidebar to open a view.**
""")

st.subheader("Views")

with st.expander("🚨 **Outbreak Alerts**", expanded=True):
    st.markdown("""
    Groups cases by disease and barangay and compares each group with its disease threshold
    (for example dengue: 5+ cases in 14 days; any rabies exposure alerts immediately).
    - **Tiers:** critical when 3+ high-severity cases, high when 5+ medium-severity cases, then medium and low.
    - **Also shown:** daily case trend, moving average, top barangays and a barangay by disease heatmap.
    """)
    if st.button("Go to Outbreak Alerts", key="nav_outbreak_alerts", type="primary"):
        st.switch_page("pages/1_outbreak_alerts.py")

with st.expander("📈 **Forecast Accuracy**", expanded=False):
    st.markdown("""
    Aligns stored forecasts with recorded cases by date and scores the overlap with MSE, RMSE, MAE and R².
    - **Interpretation:** excellent (R² ≥ 0.9), good (≥ 0.7), fair (≥ 0.5), otherwise poor.
    - **Data quality:** flags short histories and flat forecasts.
    """)
    if st.button("Go to Forecast Accuracy", key="nav_forecast_accuracy", type="primary"):
        st.switch_page("pages/2_forecast_accuracy.py")

with st.expander("📥 **Historical Data Import**", expanded=False):
    st.markdown(f"""
    Validates the disease and health card templates row by row. Valid rows are kept even when others fail.
    - **Limits:** {app_config.IMPORT_MAX_ROWS} rows and {app_config.IMPORT_MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB per workbook, `.xlsx` or `.xls`.
    - **Feedback:** every problem is reported with its spreadsheet row number and column.
    """)
    if st.button("Go to Historical Import", key="nav_historical_import", type="primary"):
        st.switch_page("pages/3_historical_import.py")


# --- Sidebar Content ---
st.sidebar.header(app_config.APP_NAME)
if os.path.exists(app_config.APP_LOGO_SMALL):
    st.sidebar.image(app_config.APP_LOGO_SMALL, width=180)
st.sidebar.caption(f"Version {app_config.APP_VERSION}")
st.sidebar.markdown("---")
st.sidebar.markdown(f"**Support & Info:**<br/>{app_config.ORGANIZATION_NAME}<br/>"
                    f"Contact: [{app_config.SUPPORT_CONTACT_INFO}](mailto:{app_config.SUPPORT_CONTACT_INFO})", unsafe_allow_html=True)
st.sidebar.markdown("---")
st.sidebar.caption(app_config.APP_FOOTER_TEXT)


logger.info(f"Application home page ({app_config.APP_NAME}) loaded successfully.")
