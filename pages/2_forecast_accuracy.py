# pages/2_forecast_accuracy.py
# Forecast Accuracy view for "Barangay Health Watch".
# Lines up stored disease forecasts with the recorded case counts, scores the
# overlap (MSE, RMSE, MAE, R^2) and flags data quality and flat forecasts.

import streamlit as st
import pandas as pd
import os
import logging

from config import app_config
from utils.core_data_processing import load_disease_statistics, load_disease_predictions, load_barangays, build_barangay_name_lookup
from utils.forecast_metrics import (
    build_forecast_frame,
    calculate_model_accuracy,
    summarize_forecast_quality,
    calculate_confidence_interval,
)
from utils.ui_visualization_helpers import render_web_kpi_card, render_web_traffic_light_indicator, plot_forecast_comparison_web

st.set_page_config(
    page_title=f"Forecast Accuracy - {app_config.APP_NAME}",
    layout="wide",
    initial_sidebar_state="expanded"
)

logger = logging.getLogger(__name__)


@st.cache_data(ttl=app_config.CACHE_TTL_SECONDS_WEB_REPORTS, show_spinner="Loading forecasts and recorded cases...")
def get_forecast_console_data():
    statistics_df = load_disease_statistics(source_context="ForecastConsole")
    predictions_df = load_disease_predictions(source_context="ForecastConsole")
    barangays_df = load_barangays(source_context="ForecastConsole")
    return statistics_df, predictions_df, barangays_df


st.title("📈 Forecast Accuracy")
st.markdown("**How well the stored disease forecasts track the cases actually recorded.**")
st.markdown("---")

statistics_df, predictions_df, barangays_df = get_forecast_console_data()
if predictions_df.empty:
    st.warning("No forecasts available. Generate predictions before reviewing accuracy.")
    logger.warning("Forecast console: prediction extract is empty.")
    st.stop()

# --- Sidebar Filters ---
if os.path.exists(app_config.APP_LOGO_SMALL):
    st.sidebar.image(app_config.APP_LOGO_SMALL, width=180)
st.sidebar.header("🔎 Forecast Filters")

disease_options = sorted(predictions_df['disease_type'].dropna().unique().tolist())
selected_disease = st.sidebar.selectbox(
    "Disease:", disease_options,
    format_func=lambda key: app_config.DISEASE_TYPE_LABELS.get(key, key.title())
)
barangay_names = build_barangay_name_lookup(barangays_df)
barangay_options = ["All"] + sorted(predictions_df['barangay_id'].dropna().unique().tolist())
selected_barangay = st.sidebar.selectbox(
    "Barangay:", barangay_options,
    format_func=lambda key: "All barangays (averaged)" if key == "All" else barangay_names.get(key, key)
)

disease_predictions_df = predictions_df[predictions_df['disease_type'] == selected_disease]
disease_history_df = statistics_df[statistics_df['disease_type'] == selected_disease] if not statistics_df.empty else statistics_df
if selected_barangay != "All":
    disease_predictions_df = disease_predictions_df[disease_predictions_df['barangay_id'] == selected_barangay]
    if not disease_history_df.empty:
        disease_history_df = disease_history_df[disease_history_df['barangay_id'] == selected_barangay]

disease_label = app_config.DISEASE_TYPE_LABELS.get(selected_disease, selected_disease)
forecast_frame = build_forecast_frame(disease_history_df, disease_predictions_df)
accuracy = calculate_model_accuracy(disease_history_df, disease_predictions_df)
historical_points = int(forecast_frame['actual'].notna().sum()) if not forecast_frame.empty else 0
quality = summarize_forecast_quality(historical_points, disease_predictions_df)
logger.info(f"Forecast console: {selected_disease}/{selected_barangay} accuracy={accuracy} quality={quality['data_quality']}.")

# --- Accuracy KPIs ---
st.subheader(f"{disease_label}: Model {quality['model_version']}")
kpi_cols = st.columns(4)
if accuracy is None:
    render_web_traffic_light_indicator(
        "Not enough overlap to score this forecast.", "warning",
        details_text=f"At least {app_config.FORECAST_MIN_OVERLAP_POINTS} dates need both a recorded and a predicted value."
    )
else:
    with kpi_cols[0]:
        render_web_kpi_card("R²", f"{accuracy['r_squared']:.2f}", icon="🎯", status_level=accuracy['interpretation'],
                            help_text=f"Fit is {accuracy['interpretation']}")
    with kpi_cols[1]:
        render_web_kpi_card("RMSE", f"{accuracy['rmse']:.2f}", icon="📏", units=" cases")
    with kpi_cols[2]:
        render_web_kpi_card("MAE", f"{accuracy['mae']:.2f}", icon="📐", units=" cases")
    with kpi_cols[3]:
        render_web_kpi_card("MSE", f"{accuracy['mse']:.2f}", icon="∑")

quality_status = {"high": "good", "moderate": "moderate", "insufficient": "high"}.get(quality['data_quality'], "neutral")
render_web_traffic_light_indicator(
    f"Data quality: {quality['data_quality']}", quality_status,
    details_text=f"{quality['data_points']} recorded days, {quality['forecast_points']} forecast rows"
)
if not quality['variance_detected']:
    render_web_traffic_light_indicator("Forecast is flat.", "warning",
                                       details_text="All predicted values are identical; the model may not have converged.")

# --- Chart ---
st.plotly_chart(plot_forecast_comparison_web(forecast_frame, f"{disease_label} Cases: Actual vs. Predicted"),
                use_container_width=True)

# Stored forecasts without bounds get an interval from the observed error
if accuracy is not None and not forecast_frame.empty and forecast_frame['lower_bound'].isna().all():
    forecast_only_df = forecast_frame.dropna(subset=['predicted'])
    interval_df = calculate_confidence_interval(forecast_only_df['predicted'], accuracy['mse'])
    interval_df.insert(0, 'date', forecast_only_df['date'].values)
    with st.expander("95% interval from observed error", expanded=False):
        st.dataframe(interval_df, use_container_width=True, hide_index=True)

with st.expander("Aligned actual and predicted values", expanded=False):
    st.dataframe(forecast_frame, use_container_width=True, hide_index=True)
