"""
Streamlit Caffeine Dashboard.
Level curve, intake/cost summary, event list and quick-log buttons.
Mobile-first, talks to the API only.
"""

import os
from datetime import datetime, time, timedelta

import httpx
import pandas as pd
import plotly.graph_objects as go
import streamlit as st

# --- Config ---
API_BASE = os.getenv("CAFFEINE_API_URL", "http://localhost:8000")
API_KEY = os.getenv("CAFFEINE_API_KEY", "")
HEADERS = {"x-api-key": API_KEY} if API_KEY else {}


def api_get(path: str, params: dict | None = None) -> dict | list:
    try:
        r = httpx.get(f"{API_BASE}{path}", params=params, headers=HEADERS, timeout=10)
        r.raise_for_status()
        return r.json()
    except httpx.HTTPError as e:
        st.error(f"API-Fehler: {e}")
        return {}


def api_post(path: str, params: dict | None = None) -> dict:
    try:
        r = httpx.post(f"{API_BASE}{path}", params=params, headers=HEADERS, timeout=10)
        r.raise_for_status()
        return r.json()
    except httpx.HTTPError as e:
        st.error(f"API-Fehler: {e}")
        return {}


def api_delete(path: str) -> dict:
    try:
        r = httpx.delete(f"{API_BASE}{path}", headers=HEADERS, timeout=10)
        r.raise_for_status()
        return r.json()
    except httpx.HTTPError as e:
        st.error(f"API-Fehler: {e}")
        return {}


# --- Plotly mobile-friendly helper ---
PLOTLY_MOBILE_CONFIG = {
    "displayModeBar": False,
    "scrollZoom": False,
    "responsive": True,
}

PLOTLY_MOBILE_LAYOUT = dict(
    dragmode=False,
    template="plotly_dark",
    margin=dict(l=40, r=20, t=40, b=35),
    legend=dict(orientation="h", yanchor="bottom", y=1.02),
    xaxis=dict(fixedrange=True),
    yaxis=dict(fixedrange=True),
)


def mobile_chart(fig, height=350, **kwargs):
    fig.update_layout(**PLOTLY_MOBILE_LAYOUT, height=height, **kwargs)
    st.plotly_chart(fig, use_container_width=True, config=PLOTLY_MOBILE_CONFIG)


PRESETS = {
    "24 Std.": timedelta(hours=24),
    "7 Tage": timedelta(days=7),
    "30 Tage": timedelta(days=30),
}


def format_currency(cents: int) -> str:
    return f"${cents / 100:,.2f}"


# --- Page Config ---
st.set_page_config(
    page_title="Caffeine",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="collapsed",
)

st.markdown("""
<style>
    .block-container { padding-top: 0.3rem; max-width: 100%; }
    .stButton > button { min-height: 52px; font-size: 1rem; border-radius: 10px; }
</style>
""", unsafe_allow_html=True)

st.header("Caffeine")

# =========================================================
# Range selection
# =========================================================
preset = st.radio("Zeitraum", [*PRESETS, "Eigener"], horizontal=True, label_visibility="collapsed")
now = datetime.now().astimezone()
if preset == "Eigener":
    rc1, rc2 = st.columns(2)
    with rc1:
        d_start = st.date_input("Start", value=(now - timedelta(days=1)).date())
    with rc2:
        d_end = st.date_input("Ende", value=now.date())
    range_start = datetime.combine(d_start, time.min).astimezone()
    range_end = datetime.combine(d_end, time.max).astimezone()
else:
    range_end = now
    range_start = now - PRESETS[preset]

params = {"start": range_start.isoformat(), "end": range_end.isoformat()}

# =========================================================
# Summary
# =========================================================
summary = api_get("/api/events/summary", params)
levels = api_get("/api/levels", params)
events = api_get("/api/events", params)
current = api_get("/api/levels/current")

m1, m2, m3 = st.columns(3)
if isinstance(current, dict) and "level" in current:
    m1.metric("Aktuell", f"{current['level']:.0f} mg")
if isinstance(summary, dict) and "intake" in summary:
    m2.metric("Konsumiert", f"{summary['intake']} mg")
    m3.metric("Ausgaben", format_currency(summary.get("cost", 0)))

# =========================================================
# Level curve
# =========================================================
if isinstance(levels, list) and levels:
    df = pd.DataFrame(levels)
    df["time"] = pd.to_datetime(df["timestamp"], unit="s", utc=True).dt.tz_convert(now.tzinfo)

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=df["time"], y=df["level"],
        mode="lines", name="Koffein",
        line=dict(color="#FF9800", width=3),
        fill="tozeroy", fillcolor="rgba(255,152,0,0.08)",
    ))

    if isinstance(events, list):
        for ev in events:
            t = pd.to_datetime(ev["timestamp"]).tz_convert(now.tzinfo)
            fig.add_shape(
                type="line", x0=t, x1=t, y0=0, y1=1, yref="paper",
                line=dict(color="#9E9E9E", width=1, dash="dash"),
            )
            fig.add_annotation(
                x=t, y=1, yref="paper", text=f"{ev['amount']:.0f}mg",
                showarrow=False, font=dict(color="#9E9E9E", size=9),
                xanchor="left", yanchor="bottom",
            )

    fig.update_layout(xaxis_title="Zeit", yaxis_title="mg")
    mobile_chart(fig, height=420)
else:
    st.info("Keine Daten im Zeitraum.")

# =========================================================
# Quick log
# =========================================================
st.subheader("Schnell-Log")
b1, b2 = st.columns(2)
with b1:
    if st.button("Double Oat Latte", use_container_width=True, type="primary"):
        r = api_post("/api/predefined-event", {"type": 1})
        if r.get("status") == "ok":
            st.success("Latte geloggt")
            st.rerun()
with b2:
    if st.button("The Jolly Miller", use_container_width=True):
        r = api_post("/api/predefined-event", {"type": 2})
        if r.get("status") == "ok":
            st.success("Jolly Miller geloggt")
            st.rerun()

# =========================================================
# Events
# =========================================================
st.subheader("Events")
if isinstance(events, list) and events:
    for ev in reversed(events):
        ec, dc = st.columns([5, 1])
        ts = pd.to_datetime(ev["timestamp"]).tz_convert(now.tzinfo)
        ec.write(
            f"{ts:%d.%m. %H:%M} · {ev['description']} "
            f"({ev['amount']:.0f} mg, {format_currency(ev['cost'])})"
        )
        if dc.button("X", key=f"del_{ev['id']}"):
            api_delete(f"/api/events/{ev['id']}")
            st.rerun()
else:
    st.caption("Keine Events.")
