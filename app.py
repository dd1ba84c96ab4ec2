import pandas as pd
import streamlit as st
from contextlib import contextmanager
from typing import Dict, List, Optional

from api.settings import build_source, load_settings, today
from rollup.data import PAGE_RANGES, load_dashboard_data, prepare_context
from rollup.errors import DashboardError
from rollup.filters import normalize_filters
from rollup.metrics_issues import compute_dietitian_gaps, compute_underperformers
from rollup.metrics_quality import compute_customer_rating, compute_quality
from rollup.metrics_revenue import compute_revenue

PERIOD_LABELS = {"y": "Yesterday", "w": "WTD", "m": "MTD"}


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str, actions: Optional[str] = None):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header">
            <div class="card-title">{title}</div>
            <div>{actions or ""}</div>
          </div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def render_page_header(title: str, chips: List[str], export_df: Optional[pd.DataFrame] = None, export_name: str = "export.csv"):
    inject_base_styles()
    c1, c2 = st.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>Dietitian Rollup</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if export_df is not None and not export_df.empty:
            st.download_button(
                "Export CSV",
                data=export_df.to_csv(index=False).encode("utf-8"),
                file_name=export_name,
                mime="text/csv",
            )
    st.markdown("<div class='chip-row'>" + "".join(f"<span class='chip'>{c}</span>" for c in chips) + "</div>", unsafe_allow_html=True)


def format_lakhs(value: float) -> str:
    return f"₹{value:,.2f}L"


def context_for(page: str) -> Dict[str, object]:
    data_ctx = load_dashboard_data(source, include=PAGE_RANGES[page], today=day)
    return prepare_context(filters, data_ctx)


def tree_rows(nodes: List[dict], depth: int = 0) -> List[Dict[str, object]]:
    """Flatten the revenue tree into indented table rows."""
    rows: List[Dict[str, object]] = []
    for node in nodes:
        row: Dict[str, object] = {"Name": ("    " * depth) + node["name"], "Role": node["role"]}
        for period, label in PERIOD_LABELS.items():
            service = node["service"][period]
            row[f"Service {label}"] = format_lakhs(service["achieved"])
            row[f"Service {label} %"] = service["pct"]
            row[f"Commerce {label} %"] = node["commerce"][period]["pct"]
        rows.append(row)
        rows.extend(tree_rows(node.get("children", []), depth + 1))
    return rows


def render_revenue_page():
    payload = compute_revenue(filters, context_for("revenue"))
    totals = payload["totals"]
    render_page_header("Revenue", [f"As of {payload['today']}", f"SM: {filters.selected_sm or 'All'}"])

    cols = st.columns(3)
    for col, (period, label) in zip(cols, PERIOD_LABELS.items()):
        service = totals["service"][period]
        col.metric(
            f"Service {label}",
            format_lakhs(service["achieved"]),
            delta=f"{service['pct']}% of {format_lakhs(service['target'])}",
            help="Achieved vs target scaled to the period.",
        )

    with card("Senior manager achievement"):
        chart = payload["charts"]["sm_service_achievement"]
        if chart:
            st.vega_lite_chart(chart, use_container_width=True)
        else:
            st.info("No senior managers found.")

    with card("Hierarchy"):
        rows = tree_rows(payload["tree"])
        if rows:
            st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
        else:
            st.info("No hierarchy rows for this selection.")


def render_quality_page():
    quality = compute_quality(filters, context_for("quality"))["quality"]
    ratings = compute_customer_rating(filters, context_for("customer_rating"))["customer_rating"]
    render_page_header("Quality", [f"Min active clients: {filters.thresholds.min_active_clients:.0f}"])

    q_df = pd.DataFrame.from_dict(quality, orient="index")
    r_df = pd.DataFrame.from_dict(ratings, orient="index")
    merged = q_df.join(r_df, how="outer").fillna(0.0) if not q_df.empty or not r_df.empty else pd.DataFrame()
    if merged.empty:
        st.info("No quality rows meet the active client floor.")
        return
    merged.index.name = "entity_id"
    merged = merged.reset_index()
    merged["role"] = merged["entity_id"].str.split("-", n=1).str[0].str.upper()

    role = st.selectbox("Role", ["SM", "M", "AM", "FLAP", "EM"], index=0)
    with card("Weight loss and customer rating"):
        view = merged[merged["role"] == role].sort_values("entity_id")
        st.dataframe(view, use_container_width=True, hide_index=True)


def render_issues_page():
    under = compute_underperformers(filters, context_for("underperformers"))
    gaps = compute_dietitian_gaps(filters, context_for("dietitian_gaps"))
    gaps_df = pd.DataFrame(gaps["dietitian_gaps"])
    render_page_header(
        "Issues",
        [f"Underperformer ≤ {under['threshold_pct']:.0f}%", f"Zero days ≥ {filters.thresholds.min_zero_days}"],
        export_df=gaps_df,
        export_name="dietitian-gaps.csv",
    )

    with card("Underperformers", f"{under['count']} found"):
        if under["underperformers"]:
            st.dataframe(pd.json_normalize(under["underperformers"], sep="_"), use_container_width=True, hide_index=True)
        else:
            st.success("No account managers at or below the threshold.")

    with card("Dietitian gaps", f"{gaps['count']} found"):
        if gaps_df.empty:
            st.success("No dietitians with zero-sales streaks.")
        else:
            st.dataframe(gaps_df, use_container_width=True, hide_index=True)


# ---------- UI setup ----------
st.set_page_config(page_title="Dietitian Revenue & Quality", layout="wide")
inject_base_styles()
st.title("Dietitian Revenue & Quality")

settings = load_settings()
day = today(settings)

with st.sidebar:
    st.markdown("### Navigate")
    nav_choice = st.radio("Navigate", ["Revenue", "Quality", "Issues"], index=0)
    st.markdown("---")
    selected_sm = st.text_input("Senior manager (optional)", "")
    with st.expander("Thresholds", expanded=False):
        underperformer_pct = st.slider("Underperformer at or below (%)", 0, 100, 25, 5)
        min_zero_days = st.number_input("Min consecutive zero days", min_value=1, value=3, step=1)
        min_days_since_joining = st.number_input("Min days since joining", min_value=0, value=30, step=5)
        min_active_clients = st.number_input("Min active clients", min_value=0, value=30, step=5)

filters = normalize_filters(
    {
        "selected_sm": selected_sm,
        "thresholds": {
            "underperformer_pct": underperformer_pct,
            "min_zero_days": min_zero_days,
            "min_days_since_joining": min_days_since_joining,
            "min_active_clients": min_active_clients,
        },
    }
)

try:
    source = build_source(settings)
    if nav_choice == "Revenue":
        render_revenue_page()
    elif nav_choice == "Quality":
        render_quality_page()
    else:
        render_issues_page()
except DashboardError as exc:
    st.error(str(exc))
    st.stop()
