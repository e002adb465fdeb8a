# pages/1_outbreak_alerts.py
# Outbreak Alerts console for "Barangay Health Watch".
# Combines aggregated disease statistics with individual patient cases, runs the
# outbreak classifier per (disease, barangay) and shows the tiered alerts with
# supporting trend, ranking and barangay x disease views.

import streamlit as st
import pandas as pd
import os
import logging
from datetime import date, timedelta

from config import app_config
from utils.core_data_processing import (
    load_disease_statistics,
    load_patient_cases,
    load_barangays,
    combine_case_sources,
    filter_records_to_window,
    aggregate_case_counts,
    fill_missing_dates,
    calculate_moving_average,
    aggregate_by_barangay,
    get_disease_case_matrix,
    get_case_summary_kpis,
)
from utils.outbreak_detection import detect_outbreaks, summarize_outbreaks, build_outbreak_alert_message
from utils.ui_visualization_helpers import (
    render_web_kpi_card,
    render_web_traffic_light_indicator,
    plot_annotated_line_chart_web,
    plot_bar_chart_web,
    plot_donut_chart_web,
    plot_heatmap_web,
)

st.set_page_config(
    page_title=f"Outbreak Alerts - {app_config.APP_NAME}",
    layout="wide",
    initial_sidebar_state="expanded"
)

logger = logging.getLogger(__name__)


# --- Data Loading ---
@st.cache_data(ttl=app_config.OUTBREAK_CACHE_TTL_SECONDS, show_spinner="Loading case records...")
def get_outbreak_console_data():
    statistics_df = load_disease_statistics(source_context="OutbreakConsole")
    patient_cases_df = load_patient_cases(source_context="OutbreakConsole")
    barangays_df = load_barangays(source_context="OutbreakConsole")
    case_records_df = combine_case_sources(statistics_df, patient_cases_df, source_context="OutbreakConsole")
    return case_records_df, barangays_df


# --- Page Title ---
st.title("🚨 Outbreak Alerts")
st.markdown(f"**Threshold-based outbreak detection by disease and barangay for {app_config.ORGANIZATION_NAME}**")
st.markdown("---")

case_records_df, barangays_df = get_outbreak_console_data()
if case_records_df.empty:
    st.warning("No case records available. Check the disease statistics and patient case extracts.")
    logger.warning("Outbreak console: no case records loaded.")
    st.stop()

# --- Sidebar Filters ---
if os.path.exists(app_config.APP_LOGO_SMALL):
    st.sidebar.image(app_config.APP_LOGO_SMALL, width=180)
st.sidebar.header("🗓️ Alert Filters")

latest_record_day = case_records_df['record_date'].max()
default_as_of = latest_record_day.date() if pd.notna(latest_record_day) else date.today()
as_of_date = st.sidebar.date_input("Evaluate as of:", value=default_as_of, max_value=max(default_as_of, date.today()),
                                   key="outbreak_as_of_date")
enforce_windows = st.sidebar.checkbox(
    "Apply each disease's detection window", value=True,
    help="Counts only cases inside each threshold's day window ending on the as-of date, and enables rapid-spike alerts."
)

disease_options = ["All"] + sorted(case_records_df['disease_type'].dropna().unique().tolist())
selected_disease = st.sidebar.selectbox(
    "Disease:", disease_options,
    format_func=lambda key: key if key == "All" else app_config.DISEASE_TYPE_LABELS.get(key, key.title())
)
disease_filter = None if selected_disease == "All" else selected_disease

# --- Detection ---
if enforce_windows:
    outbreaks_df = detect_outbreaks(case_records_df, barangays=barangays_df, disease_type=disease_filter,
                                    as_of=as_of_date, source_context="OutbreakConsole")
else:
    window_days = st.sidebar.slider("Window (days):", min_value=1, max_value=90, value=14)
    windowed_df = filter_records_to_window(case_records_df, window_days, as_of=as_of_date, source_context="OutbreakConsole")
    outbreaks_df = detect_outbreaks(windowed_df, barangays=barangays_df, disease_type=disease_filter, source_context="OutbreakConsole")

outbreak_summary = summarize_outbreaks(outbreaks_df)
logger.info(f"Outbreak console: {outbreak_summary['total_outbreaks']} outbreaks as of {as_of_date}.")

# --- KPI Row ---
st.subheader(f"Alert Summary as of {as_of_date.strftime('%d %b %Y')}")
kpi_cols = st.columns(4)
with kpi_cols[0]:
    render_web_kpi_card("Critical", str(outbreak_summary['critical_outbreaks']), icon="🔴",
                        status_level="critical" if outbreak_summary['critical_outbreaks'] else "neutral",
                        help_text=f"{app_config.OUTBREAK_CRITICAL_HIGH_RISK_CASES_MIN}+ high-severity cases in the group")
with kpi_cols[1]:
    render_web_kpi_card("High", str(outbreak_summary['high_risk_outbreaks']), icon="🟠",
                        status_level="high" if outbreak_summary['high_risk_outbreaks'] else "neutral",
                        help_text=f"{app_config.OUTBREAK_HIGH_MEDIUM_RISK_CASES_MIN}+ medium-severity cases in the group")
with kpi_cols[2]:
    render_web_kpi_card("Medium", str(outbreak_summary['medium_risk_outbreaks']), icon="🟡",
                        status_level="medium" if outbreak_summary['medium_risk_outbreaks'] else "neutral")
with kpi_cols[3]:
    render_web_kpi_card("Low", str(outbreak_summary['low_risk_outbreaks']), icon="🟢", status_level="low")
st.caption(f"{outbreak_summary['thresholds_checked']} disease thresholds checked.")

# --- Alerts List ---
st.subheader("Active Alerts")
if outbreaks_df.empty:
    render_web_traffic_light_indicator("No outbreaks detected for the selected filters.", "low")
else:
    for outbreak in outbreaks_df.to_dict('records'):
        alert = build_outbreak_alert_message(outbreak)
        render_web_traffic_light_indicator(alert['title'], outbreak['risk_level'], details_text=alert['message'])

    with st.expander("Alert details table", expanded=False):
        display_df = outbreaks_df.copy()
        display_df['disease'] = display_df['disease_type'].map(app_config.DISEASE_TYPE_LABELS).fillna(display_df['disease_type'])
        st.dataframe(
            display_df[['risk_level', 'alert_type', 'disease', 'custom_disease_name', 'barangay_name', 'case_count',
                        'high_risk_cases', 'medium_risk_cases', 'low_risk_cases', 'threshold_description',
                        'first_case_date', 'latest_case_date']],
            use_container_width=True, hide_index=True
        )

    tier_counts_df = outbreaks_df.groupby('risk_level').size().reset_index(name='count')
    tier_counts_df['order'] = tier_counts_df['risk_level'].map(app_config.OUTBREAK_RISK_LEVEL_ORDER)
    chart_cols = st.columns([0.6, 0.4])
    with chart_cols[0]:
        st.plotly_chart(plot_bar_chart_web(
            outbreaks_df.assign(label=outbreaks_df['barangay_name'] + " · " + outbreaks_df['disease_type'].map(app_config.DISEASE_TYPE_LABELS).fillna('')),
            x_col='label', y_col='case_count', chart_title="Outbreak Case Counts",
            color_col='risk_level', color_type='tier', orientation='h', y_axis_label="Cases"
        ), use_container_width=True)
    with chart_cols[1]:
        st.plotly_chart(plot_donut_chart_web(
            tier_counts_df.sort_values('order'), labels_col='risk_level', values_col='count',
            chart_title="Alerts by Tier", color_type='tier'
        ), use_container_width=True)

st.markdown("---")

# --- Case Trends & Distribution ---
st.subheader("Case Trends")
trend_start = as_of_date - timedelta(days=app_config.WEB_DASHBOARD_DEFAULT_DATE_RANGE_DAYS_TREND - 1)
trend_records_df = filter_records_to_window(case_records_df, app_config.WEB_DASHBOARD_DEFAULT_DATE_RANGE_DAYS_TREND - 1,
                                            as_of=as_of_date, source_context="OutbreakConsole/Trend")
daily_cases = aggregate_case_counts(trend_records_df, period='D', disease_type=disease_filter)
if daily_cases.empty:
    st.info("No cases in the trend window.")
else:
    daily_cases = fill_missing_dates(daily_cases, start_date=trend_start, end_date=as_of_date)
    trend_cols = st.columns(2)
    with trend_cols[0]:
        st.plotly_chart(plot_annotated_line_chart_web(daily_cases, "Daily Cases", y_axis_label="Cases", y_axis_is_count=True),
                        use_container_width=True)
    with trend_cols[1]:
        st.plotly_chart(plot_annotated_line_chart_web(
            calculate_moving_average(daily_cases), f"{app_config.FORECAST_MOVING_AVERAGE_WINDOW}-Day Moving Average",
            y_axis_label="Cases (avg)"
        ), use_container_width=True)

case_kpis = get_case_summary_kpis(trend_records_df)
st.caption(
    f"Trend window: {case_kpis['total_cases']} cases, {case_kpis['diseases_reported']} diseases, "
    f"{case_kpis['barangays_affected']} barangays. Latest record: {case_kpis['latest_record_date'] or 'n/a'}."
)

distribution_cols = st.columns(2)
with distribution_cols[0]:
    st.plotly_chart(plot_bar_chart_web(
        aggregate_by_barangay(trend_records_df, barangays_df).head(10), x_col='barangay_name', y_col='case_count',
        chart_title="Top Barangays by Cases", orientation='h', y_axis_label="Cases"
    ), use_container_width=True)
with distribution_cols[1]:
    st.plotly_chart(plot_heatmap_web(get_disease_case_matrix(trend_records_df, barangays_df), "Cases by Barangay and Disease"),
                    use_container_width=True)

with st.expander("Detection thresholds", expanded=False):
    thresholds_df = pd.DataFrame([
        {'Disease': app_config.DISEASE_TYPE_LABELS.get(key, key), 'Cases': entry['cases_threshold'],
         'Days': entry['days_window'], 'Rule': entry['description']}
        for key, entry in app_config.OUTBREAK_THRESHOLDS.items()
    ])
    st.dataframe(thresholds_df, use_container_width=True, hide_index=True)
