# utils/ui_visualization_helpers.py
# UI helpers for the "Barangay Health Watch" Streamlit console:
#   1. Plotly theme registration and color lookup (risk tiers, diseases, actions).
#   2. HTML KPI cards and traffic-light indicators styled by style_web_reports.css.
#   3. Chart builders for case trends, forecast-vs-actual comparisons, barangay rankings,
#      outbreak tier mixes and the barangay x disease heatmap.

import streamlit as st
import plotly.graph_objects as go
import plotly.express as px
import numpy as np
import pandas as pd
import logging
import plotly.io as pio
from config import app_config
import html
from typing import Optional, List, Dict, Any

logger = logging.getLogger(__name__)


# --- I. Core Theming and Color Utilities ---

def _get_theme_color(index: Any = 0, fallback_color: str = app_config.COLOR_ACTION_PRIMARY, color_type: str = "general") -> str:
    """
    Retrieves a color by semantic type (risk/tier/disease/action) or from the active Plotly colorway.
    Unknown keys fall back to fallback_color.
    """
    try:
        if color_type == "risk_critical": return app_config.COLOR_RISK_CRITICAL
        if color_type == "risk_high": return app_config.COLOR_RISK_HIGH
        if color_type == "risk_moderate": return app_config.COLOR_RISK_MODERATE
        if color_type == "risk_low": return app_config.COLOR_RISK_LOW
        if color_type == "action_primary": return app_config.COLOR_ACTION_PRIMARY
        if color_type == "action_secondary": return app_config.COLOR_ACTION_SECONDARY

        if color_type == "tier":
            return app_config.OUTBREAK_TIER_COLORS.get(str(index).lower(), fallback_color)
        if color_type == "disease":
            return app_config.DISEASE_COLORS_WEB.get(str(index).lower(), fallback_color)

        if color_type == "general":
            active_template_name = pio.templates.default
            colorway_to_use = px.colors.qualitative.Plotly
            if active_template_name:
                # Indexing also resolves combined names such as "plotly+bhw_web_theme"
                current_template_layout = pio.templates[active_template_name].layout
                if hasattr(current_template_layout, 'colorway') and current_template_layout.colorway:
                    colorway_to_use = current_template_layout.colorway
            if colorway_to_use:
                num_idx_for_color = index if isinstance(index, int) else abs(hash(str(index)))
                return colorway_to_use[num_idx_for_color % len(colorway_to_use)]
    except Exception as e_get_color:
        logger.warning(f"Could not retrieve theme color for index/key '{index}', type '{color_type}': {e_get_color}. Using fallback: {fallback_color}")
    return fallback_color


def set_bhw_plotly_theme_web():
    """Registers the 'bhw_web_theme' Plotly template and makes it the default."""
    theme_font_family_web = '-apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif'
    theme_grid_color_web = "#E0E0E0"
    theme_border_color_web = "#BDBDBD"

    bhw_colorway_list = [
        app_config.COLOR_ACTION_PRIMARY,
        app_config.COLOR_RISK_LOW,
        app_config.COLOR_RISK_MODERATE,
        app_config.COLOR_RISK_HIGH,
        "#00ACC1",
        "#5E35B1",
    ]
    bhw_colorway_list.extend(px.colors.qualitative.Bold[len(bhw_colorway_list):])

    layout_settings_web = {
        'font': dict(family=theme_font_family_web, size=11, color=app_config.COLOR_RISK_NEUTRAL),
        'paper_bgcolor': "#FFFFFF",
        'plot_bgcolor': "#FAFAFA",
        'colorway': bhw_colorway_list,
        'xaxis': dict(gridcolor=theme_grid_color_web, linecolor=theme_border_color_web, zerolinecolor=theme_grid_color_web, zerolinewidth=1, title_font_size=12, tickfont_size=10, automargin=True, title_standoff=12),
        'yaxis': dict(gridcolor=theme_grid_color_web, linecolor=theme_border_color_web, zerolinecolor=theme_grid_color_web, zerolinewidth=1, title_font_size=12, tickfont_size=10, automargin=True, title_standoff=12),
        'title': dict(
            font=dict(family=theme_font_family_web, size=16, color=app_config.COLOR_ACTION_SECONDARY),
            x=0.02, xanchor='left', y=0.96, yanchor='top', pad=dict(t=25, b=10, l=2)
        ),
        'legend': dict(bgcolor='rgba(255,255,255,0.9)', bordercolor=theme_border_color_web, borderwidth=0.5, orientation='h', yanchor='bottom', y=1.01, xanchor='right', x=1, font_size=10),
        'margin': dict(l=60, r=20, t=70, b=50)
    }

    pio.templates["bhw_web_theme"] = go.layout.Template(layout=go.Layout(**layout_settings_web))
    pio.templates.default = "plotly+bhw_web_theme"
    logger.info("Plotly theme 'bhw_web_theme' set as default.")

set_bhw_plotly_theme_web()


def _hex_to_rgba(hex_color: str, alpha: float) -> str:
    if isinstance(hex_color, str) and hex_color.startswith('#') and len(hex_color) == 7:
        red, green, blue = (int(hex_color[i:i + 2], 16) for i in (1, 3, 5))
        return f"rgba({red},{green},{blue},{alpha})"
    return f"rgba(100,100,100,{alpha})"


# --- II. HTML-Based UI Components ---
# These use the CSS in style_web_reports.css (app_config.STYLE_CSS_PATH_WEB)

def render_web_kpi_card(title: str, value: str, icon: str = "●", status_level: str = "neutral",
                        delta: Optional[str] = None, delta_is_positive: Optional[bool] = None,
                        help_text: Optional[str] = None, units: Optional[str] = ""):
    """
    Renders a KPI card. status_level accepts outbreak tiers (critical/high/medium/low),
    forecast interpretations (excellent/good/fair/poor) or neutral.
    """
    status_class_map = {
        "critical": "status-critical", "high": "status-high", "poor": "status-high",
        "medium": "status-moderate", "moderate": "status-moderate", "fair": "status-moderate", "warning": "status-moderate",
        "low": "status-low", "good": "status-low", "excellent": "status-low",
        "neutral": "status-neutral", "default": "status-neutral"
    }
    css_status_class = status_class_map.get(str(status_level).lower(), "status-neutral")

    delta_html_content = ""
    if delta is not None and str(delta).strip():
        delta_class = ""
        if delta_is_positive is True: delta_class = "positive"
        elif delta_is_positive is False: delta_class = "negative"
        delta_html_content = f'<p class="kpi-delta {delta_class}">{html.escape(str(delta))}</p>'

    tooltip_attr = f'title="{html.escape(str(help_text))}"' if help_text and str(help_text).strip() else ''
    value_units_html = f"{html.escape(str(value))}<span class='kpi-units'>{html.escape(str(units))}</span>" if units else html.escape(str(value))

    html_render_content = f"""
    <div class="kpi-card {css_status_class}" {tooltip_attr}>
        <div class="kpi-card-header">
            <div class="kpi-icon">{html.escape(str(icon))}</div>
            <h3 class="kpi-title">{html.escape(str(title))}</h3>
        </div>
        <div class="kpi-body">
            <p class="kpi-value">{value_units_html}</p>
            {delta_html_content}
        </div>
    </div>
    """.replace("\n", "")
    st.markdown(html_render_content, unsafe_allow_html=True)


def render_web_traffic_light_indicator(message: str, status_level: str, details_text: str = ""):
    """One-line status row with a colored dot; used for outbreak alerts and import outcomes."""
    status_class_map_tl = {
        "critical": "status-critical", "high": "status-high",
        "medium": "status-moderate", "moderate": "status-moderate", "warning": "status-moderate",
        "low": "status-low", "good": "status-low", "ok": "status-low",
        "neutral": "status-neutral", "unknown": "status-neutral"
    }
    dot_css_class = status_class_map_tl.get(str(status_level).lower(), "status-neutral")
    details_html_span = f'<span class="traffic-light-details">{html.escape(str(details_text))}</span>' if details_text and str(details_text).strip() else ""
    html_render_content = f"""
    <div class="traffic-light-indicator">
        <span class="traffic-light-dot {dot_css_class}"></span>
        <span class="traffic-light-message">{html.escape(str(message))}</span>
        {details_html_span}
    </div>
    """.replace("\n", "")
    st.markdown(html_render_content, unsafe_allow_html=True)


# --- III. Plotly Chart Generation Functions ---

def _create_empty_plot_figure(title_str: str, height_val: Optional[int], message_str: str = "No data available to display.") -> go.Figure:
    fig_empty = go.Figure()
    final_fig_height = height_val if height_val is not None else app_config.WEB_PLOT_DEFAULT_HEIGHT
    fig_empty.update_layout(
        title_text=f"{title_str}: {message_str}",
        height=final_fig_height,
        xaxis={'visible': False},
        yaxis={'visible': False},
        annotations=[dict(text=message_str, xref="paper", yref="paper", showarrow=False, font=dict(size=12, color=_get_theme_color(color_type="action_secondary")))]
    )
    return fig_empty


def plot_annotated_line_chart_web(
    data_series_input: pd.Series, chart_title: str, y_axis_label: str = "Value",
    line_color: Optional[str] = None,
    target_ref_line: Optional[float] = None, target_ref_label: Optional[str] = None,
    show_conf_interval: bool = False, lower_ci_series: Optional[pd.Series] = None, upper_ci_series: Optional[pd.Series] = None,
    chart_height: Optional[int] = None, date_display_format: str = "%d-%b-%y",
    y_axis_is_count: bool = False
) -> go.Figure:
    """Single time series, optionally with a confidence band and a reference line (e.g. an outbreak threshold)."""
    final_chart_height = chart_height if chart_height is not None else app_config.WEB_PLOT_COMPACT_HEIGHT
    if not isinstance(data_series_input, pd.Series) or data_series_input.empty:
        return _create_empty_plot_figure(chart_title, final_chart_height)

    data_series_clean = pd.to_numeric(data_series_input, errors='coerce')
    if data_series_clean.isnull().all():
        return _create_empty_plot_figure(chart_title, final_chart_height, "All data non-numeric or became NaN.")

    fig_line = go.Figure()
    chosen_line_color = line_color if line_color else _get_theme_color(0)
    y_hover_format_str = 'd' if y_axis_is_count else ',.1f'
    hovertemplate_line = f'<b>Date</b>: %{{x|{date_display_format}}}<br><b>{y_axis_label}</b>: %{{customdata:{y_hover_format_str}}}<extra></extra>'

    fig_line.add_trace(go.Scatter(
        x=data_series_clean.index, y=data_series_clean.values,
        mode="lines+markers", name=y_axis_label,
        line=dict(color=chosen_line_color, width=2.2), marker=dict(size=5),
        customdata=data_series_clean.values, hovertemplate=hovertemplate_line
    ))

    if show_conf_interval and isinstance(lower_ci_series, pd.Series) and isinstance(upper_ci_series, pd.Series) and \
       not lower_ci_series.empty and not upper_ci_series.empty:
        common_idx = data_series_clean.index.intersection(lower_ci_series.index).intersection(upper_ci_series.index)
        if not common_idx.empty:
            ls_ci = pd.to_numeric(lower_ci_series.reindex(common_idx), errors='coerce')
            us_ci = pd.to_numeric(upper_ci_series.reindex(common_idx), errors='coerce')
            valid_ci_data = ls_ci.notna() & us_ci.notna() & (us_ci >= ls_ci)
            if valid_ci_data.any():
                x_ci_vals = common_idx[valid_ci_data]
                fig_line.add_trace(go.Scatter(x=list(x_ci_vals) + list(x_ci_vals[::-1]),
                                              y=list(us_ci[valid_ci_data].values) + list(ls_ci[valid_ci_data].values[::-1]),
                                              fill="toself", fillcolor=_hex_to_rgba(chosen_line_color, 0.1),
                                              line=dict(width=0), name="CI", hoverinfo='skip'))

    if target_ref_line is not None:
        target_display_label = target_ref_label if target_ref_label else f"Target: {target_ref_line:,.2f}"
        fig_line.add_hline(y=target_ref_line, line_dash="dash", line_color=_get_theme_color(color_type="risk_high"), line_width=1.2,
                           annotation_text=target_display_label, annotation_position="bottom right", annotation_font_size=9)

    final_x_axis_label = data_series_clean.index.name if data_series_clean.index.name and str(data_series_clean.index.name).strip() else "Date"
    yaxis_line_config = dict(title_text=y_axis_label, rangemode='tozero' if y_axis_is_count and data_series_clean.min() >= 0 else 'normal')
    if y_axis_is_count:
        yaxis_line_config['tickformat'] = 'd'
        max_val_line = data_series_clean.max()
        if pd.notna(max_val_line) and max_val_line > 0:
            if max_val_line <= 10: yaxis_line_config['dtick'] = 1
            elif max_val_line <= 50: yaxis_line_config['dtick'] = 5

    fig_line.update_layout(title_text=chart_title, xaxis_title=final_x_axis_label, yaxis=yaxis_line_config,
                           height=final_chart_height, hovermode="x unified", legend=dict(traceorder='normal'))
    return fig_line


def plot_forecast_comparison_web(
    forecast_frame: pd.DataFrame, chart_title: str, y_axis_label: str = "Cases",
    chart_height: Optional[int] = None, date_display_format: str = "%d-%b-%y"
) -> go.Figure:
    """
    Actual vs. predicted on a shared date axis with the prediction band.
    Expects the columns produced by forecast_metrics.build_forecast_frame.
    """
    final_chart_height = chart_height if chart_height is not None else app_config.WEB_PLOT_DEFAULT_HEIGHT
    required_cols = {'date', 'actual', 'predicted'}
    if not isinstance(forecast_frame, pd.DataFrame) or forecast_frame.empty or not required_cols.issubset(forecast_frame.columns):
        return _create_empty_plot_figure(chart_title, final_chart_height)
    if forecast_frame['actual'].isna().all() and forecast_frame['predicted'].isna().all():
        return _create_empty_plot_figure(chart_title, final_chart_height, "No actual or predicted values.")

    actual_color = _get_theme_color(color_type="action_primary")
    predicted_color = _get_theme_color(color_type="risk_moderate")
    fig_forecast = go.Figure()

    if {'lower_bound', 'upper_bound'}.issubset(forecast_frame.columns):
        band_df = forecast_frame.dropna(subset=['lower_bound', 'upper_bound'])
        if not band_df.empty:
            fig_forecast.add_trace(go.Scatter(
                x=list(band_df['date']) + list(band_df['date'][::-1]),
                y=list(band_df['upper_bound']) + list(band_df['lower_bound'][::-1]),
                fill="toself", fillcolor=_hex_to_rgba(predicted_color, 0.15),
                line=dict(width=0), name="Prediction band", hoverinfo='skip'
            ))

    actual_df = forecast_frame.dropna(subset=['actual'])
    fig_forecast.add_trace(go.Scatter(
        x=actual_df['date'], y=actual_df['actual'], mode="lines+markers", name="Actual",
        line=dict(color=actual_color, width=2.2), marker=dict(size=4),
        hovertemplate=f'<b>Date</b>: %{{x|{date_display_format}}}<br><b>Actual</b>: %{{y:,.0f}}<extra></extra>'
    ))
    predicted_df = forecast_frame.dropna(subset=['predicted'])
    fig_forecast.add_trace(go.Scatter(
        x=predicted_df['date'], y=predicted_df['predicted'], mode="lines", name="Predicted",
        line=dict(color=predicted_color, width=2, dash="dot"),
        hovertemplate=f'<b>Date</b>: %{{x|{date_display_format}}}<br><b>Predicted</b>: %{{y:,.1f}}<extra></extra>'
    ))

    fig_forecast.update_layout(title_text=chart_title, xaxis_title="Date", yaxis=dict(title_text=y_axis_label, rangemode='tozero'),
                               height=final_chart_height, hovermode="x unified")
    return fig_forecast


def plot_bar_chart_web(
    df_input: pd.DataFrame, x_col: str, y_col: str, chart_title: str,
    color_col: Optional[str] = None, color_type: str = "general",
    orientation: str = "v", chart_height: Optional[int] = None,
    y_axis_label: Optional[str] = None, y_is_count: bool = True, sort_by_value: bool = True
) -> go.Figure:
    """Bar chart; color_col with color_type 'tier' or 'disease' uses the configured palettes."""
    final_chart_height = chart_height if chart_height is not None else app_config.WEB_PLOT_DEFAULT_HEIGHT
    if not isinstance(df_input, pd.DataFrame) or df_input.empty or x_col not in df_input.columns or y_col not in df_input.columns:
        return _create_empty_plot_figure(chart_title, final_chart_height)

    df_bar = df_input.copy()
    df_bar[y_col] = pd.to_numeric(df_bar[y_col], errors='coerce')
    df_bar = df_bar.dropna(subset=[y_col])
    if df_bar.empty:
        return _create_empty_plot_figure(chart_title, final_chart_height, "All values non-numeric.")
    if sort_by_value:
        df_bar = df_bar.sort_values(y_col, ascending=(orientation == "h"))

    color_map = None
    if color_col and color_col in df_bar.columns and color_type in ("tier", "disease"):
        color_map = {val: _get_theme_color(val, color_type=color_type, fallback_color=app_config.COLOR_RISK_NEUTRAL) for val in df_bar[color_col].dropna().unique()}

    fig_bar = px.bar(
        df_bar, x=y_col if orientation == "h" else x_col, y=x_col if orientation == "h" else y_col,
        color=color_col if color_col in df_bar.columns else None, color_discrete_map=color_map,
        orientation=orientation, text=y_col
    )
    fig_bar.update_traces(texttemplate='%{text:d}' if y_is_count else '%{text:,.1f}', textposition='outside', cliponaxis=False)
    axis_label = y_axis_label or y_col.replace('_', ' ').title()
    if orientation == "h":
        fig_bar.update_layout(xaxis_title=axis_label, yaxis_title=x_col.replace('_', ' ').title())
    else:
        fig_bar.update_layout(yaxis_title=axis_label, xaxis_title=x_col.replace('_', ' ').title())
    fig_bar.update_layout(title_text=chart_title, height=final_chart_height, bargap=0.25)
    logger.debug(f"Bar chart '{chart_title}' built with {len(df_bar)} bars.")
    return fig_bar


def plot_donut_chart_web(
    df_input: pd.DataFrame, labels_col: str, values_col: str, chart_title: str,
    color_type: str = "general", chart_height: Optional[int] = None
) -> go.Figure:
    final_chart_height = chart_height if chart_height is not None else app_config.WEB_PLOT_COMPACT_HEIGHT
    if not isinstance(df_input, pd.DataFrame) or df_input.empty or labels_col not in df_input.columns or values_col not in df_input.columns:
        return _create_empty_plot_figure(chart_title, final_chart_height)
    df_donut = df_input.copy()
    df_donut[values_col] = pd.to_numeric(df_donut[values_col], errors='coerce').fillna(0)
    df_donut = df_donut[df_donut[values_col] > 0]
    if df_donut.empty:
        return _create_empty_plot_figure(chart_title, final_chart_height, "All values are zero.")

    slice_colors = [_get_theme_color(label if color_type != "general" else i, color_type=color_type)
                    for i, label in enumerate(df_donut[labels_col])]
    fig_donut = go.Figure(go.Pie(
        labels=df_donut[labels_col].astype(str).str.title(), values=df_donut[values_col], hole=0.5,
        marker=dict(colors=slice_colors), sort=False, textinfo='label+value'
    ))
    fig_donut.update_layout(title_text=chart_title, height=final_chart_height, showlegend=False)
    return fig_donut


def plot_heatmap_web(
    matrix_df: pd.DataFrame, chart_title: str, chart_height: Optional[int] = None,
    colorscale: str = "Reds", z_axis_label: str = "Cases"
) -> go.Figure:
    """Heatmap of a numeric matrix (rows x columns), e.g. barangay x disease case counts."""
    final_chart_height = chart_height if chart_height is not None else app_config.WEB_PLOT_DEFAULT_HEIGHT
    if not isinstance(matrix_df, pd.DataFrame) or matrix_df.empty:
        return _create_empty_plot_figure(chart_title, final_chart_height)
    numeric_matrix = matrix_df.apply(pd.to_numeric, errors='coerce')
    if numeric_matrix.isnull().all().all():
        return _create_empty_plot_figure(chart_title, final_chart_height, "All data non-numeric.")

    fig_heatmap = go.Figure(go.Heatmap(
        z=numeric_matrix.values, x=[str(c) for c in numeric_matrix.columns], y=[str(i) for i in numeric_matrix.index],
        colorscale=colorscale, colorbar=dict(title=z_axis_label),
        text=numeric_matrix.fillna(0).astype(int).values, texttemplate="%{text}",
        hovertemplate=f'<b>%{{y}}</b><br>%{{x}}: %{{z:,.0f}} {z_axis_label.lower()}<extra></extra>'
    ))
    fig_heatmap.update_layout(title_text=chart_title, height=max(final_chart_height, 28 * len(numeric_matrix.index) + 120),
                              xaxis=dict(side='top'), yaxis=dict(autorange='reversed'))
    return fig_heatmap
