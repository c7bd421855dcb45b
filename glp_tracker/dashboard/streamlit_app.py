"""
Streamlit GLP-Tracker dashboard.
Pages: overview (level, phase, next shot, titration), injections + PK chart,
dosing calculator, settings. Mobile-first; everything goes through the API.
"""

from datetime import datetime

import httpx
import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from glp_tracker.config import API_KEY, API_URL, SYRINGE_SIZES_ML
from glp_tracker.dashboard.frames import ms_to_local

HEADERS = {"x-api-key": API_KEY} if API_KEY else {}


def api_get(path: str, params: dict | None = None) -> dict | list:
    try:
        r = httpx.get(f"{API_URL}{path}", params=params, headers=HEADERS, timeout=10)
        r.raise_for_status()
        return r.json()
    except httpx.HTTPError as e:
        st.error(f"API Error: {e}")
        return {}


def api_send(method: str, path: str, data: dict | None = None) -> dict:
    try:
        r = httpx.request(method, f"{API_URL}{path}", json=data, headers=HEADERS, timeout=10)
        r.raise_for_status()
        return r.json()
    except httpx.HTTPStatusError as e:
        detail = e.response.json().get("detail", str(e)) if e.response.content else str(e)
        st.error(f"API Error: {detail}")
        return {}
    except httpx.HTTPError as e:
        st.error(f"API Error: {e}")
        return {}


# --- Plotly mobile-friendly helper ---
PLOTLY_MOBILE_CONFIG = {
    "displayModeBar": False,
    "scrollZoom": False,
    "staticPlot": False,
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

PHASE_LABELS = {
    "peak": "Peak",
    "cruise": "Cruise",
    "washout": "Washout",
    "none": "No injections yet",
}

RANGE_LABELS = {
    "week": "1W",
    "month": "1M",
    "three_months": "3M",
    "six_months": "6M",
    "all": "All",
}


def mobile_chart(fig, height=350, **kwargs):
    """Render a Plotly chart with mobile-friendly settings (no accidental zoom/pan)."""
    fig.update_layout(**PLOTLY_MOBILE_LAYOUT, height=height, **kwargs)
    st.plotly_chart(fig, use_container_width=True, config=PLOTLY_MOBILE_CONFIG)


def _substances() -> dict:
    data = api_get("/api/substances")
    if isinstance(data, dict):
        return {s["substance_id"]: s for s in data.get("substances", [])}
    return {}


# --- Page Config ---
st.set_page_config(
    page_title="GLP-Tracker",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="collapsed",
)

st.markdown("""
<style>
    .block-container { padding-top: 0.3rem; padding-left: 0.5rem; padding-right: 0.5rem; }
    div[data-testid="stMetric"] {
        background-color: #2C2C2E;
        border: 1px solid #333;
        border-radius: 10px;
        padding: 8px 10px;
    }
    .stButton > button { min-height: 52px; font-size: 1rem; border-radius: 10px; }
</style>
""", unsafe_allow_html=True)

PAGES = ["Overview", "Injections", "Calculator", "Settings"]

with st.sidebar:
    st.header("GLP-Tracker")
    current_page = st.radio("Navigation", PAGES, index=0, label_visibility="collapsed")
    st.divider()
    level_sidebar = api_get("/api/level")
    if isinstance(level_sidebar, dict) and "level_mg" in level_sidebar:
        st.metric("Current level", f"{level_sidebar['level_mg']:.2f} mg")
        st.caption(f"Phase: {PHASE_LABELS.get(level_sidebar.get('phase'), '?')}")

substances = _substances()


# =========================================================
# PAGE: Overview
# =========================================================
if current_page == "Overview":
    level = api_get("/api/level")
    nxt = api_get("/api/schedule/next")
    titr = api_get("/api/titration")

    c1, c2, c3 = st.columns(3)
    with c1:
        value = level.get("level_mg") if isinstance(level, dict) else None
        st.metric("Current level", f"{value:.2f} mg" if value is not None else "--")
    with c2:
        phase = level.get("phase", "none") if isinstance(level, dict) else "none"
        st.metric("Phase", PHASE_LABELS.get(phase, "--"))
    with c3:
        if isinstance(nxt, dict) and nxt.get("found"):
            days = nxt["days_until"]
            st.metric("Next injection", "today" if days == 0 else f"in {days} d")
        else:
            st.metric("Next injection", "--")

    st.subheader("Next dose")
    if isinstance(titr, dict) and titr.get("found"):
        name = substances.get(titr["substance_id"], {}).get("name", titr["substance_id"])
        st.metric(name, f"{titr['dose']} mg")
        if titr.get("is_max"):
            st.caption("Maximum dose on the ladder")
        elif titr.get("injections_remaining"):
            st.caption(f"{titr['injections_remaining']} more at this dose before stepping up")
        elif titr.get("is_custom"):
            st.caption("Custom interval: dose kept as last injection")
        else:
            st.caption("Ready to step up")
    elif isinstance(titr, dict) and titr.get("starting_dose") is not None:
        st.info(f"No injections yet. Usual starting dose: {titr['starting_dose']} mg")

    st.subheader("Level, last 7 days")
    curve = api_get("/api/level/curve", {"points": 84})
    if isinstance(curve, dict) and curve.get("points"):
        df = pd.DataFrame(curve["points"])
        df["t"] = ms_to_local(df["time"])
        fig = go.Figure()
        fig.add_trace(go.Scatter(
            x=df["t"], y=df["level"],
            mode="lines", name="Level",
            line=dict(color="#AF52DE", width=3),
            fill="tozeroy", fillcolor="rgba(175,82,222,0.15)",
        ))
        fig.update_layout(yaxis_title="mg")
        mobile_chart(fig, height=320)


# =========================================================
# PAGE: Injections
# =========================================================
elif current_page == "Injections":
    st.subheader("Log injection")
    ids = list(substances) or ["tirz"]
    ic1, ic2 = st.columns(2)
    with ic1:
        sub = st.selectbox("Substance", ids,
                           format_func=lambda s: substances.get(s, {}).get("name", s))
    with ic2:
        ladder = substances.get(sub, {}).get("common_doses", [2.5])
        dose = st.selectbox("Dose (mg)", ladder)
    dc1, dc2, dc3 = st.columns(3)
    with dc1:
        idate = st.date_input("Date", value=datetime.now().date())
    with dc2:
        itime = st.time_input("Time", value=datetime.now().time().replace(second=0, microsecond=0))
    with dc3:
        site = st.selectbox("Site", ["", "belly-left", "belly-right", "thigh-left",
                                     "thigh-right", "arm-left", "arm-right"])
    if st.button("Save", type="primary", use_container_width=True):
        r = api_send("POST", "/api/injections", {
            "substance_id": sub,
            "dose_mg": dose,
            "site": site or None,
            "timestamp": datetime.combine(idate, itime).isoformat(),
        })
        if r.get("status") == "ok":
            st.success("Injection saved")
            st.rerun()

    st.divider()
    st.subheader("Drug level")
    range_name = st.radio("Range", list(RANGE_LABELS), horizontal=True,
                          format_func=RANGE_LABELS.get, index=1)
    offset = st.number_input("Windows back", min_value=0, value=0, step=1)
    curves = api_get("/api/level/curves", {"range": range_name, "offset": offset})
    if isinstance(curves, dict) and curves.get("has_data"):
        df = pd.DataFrame(curves["points"])
        df["t"] = ms_to_local(df["time"])
        fig = go.Figure()
        for sid in curves["substances"]:
            fig.add_trace(go.Scatter(
                x=df["t"], y=df[sid], mode="lines",
                name=substances.get(sid, {}).get("name", sid),
                line=dict(color=substances.get(sid, {}).get("color", "#00D4AA"), width=2),
            ))
        if curves.get("include_future") and offset == 0:
            fig.add_vline(
                x=ms_to_local(curves["now"]),
                line=dict(color="#8E8E93", width=1, dash="dot"),
            )
        fig.update_layout(yaxis_title="mg")
        mobile_chart(fig, height=380)
    else:
        st.caption("No injections in this window.")

    st.divider()
    st.subheader("History")
    rows = api_get("/api/injections")
    if isinstance(rows, list) and rows:
        hdf = pd.DataFrame(rows)
        hdf["date"] = ms_to_local(hdf["timestamp_ms"]).dt.strftime("%d.%m.%Y %H:%M")
        st.dataframe(hdf[["id", "date", "substance_id", "dose_mg", "site"]],
                     use_container_width=True, hide_index=True)
        del_id = st.number_input("Delete ID", min_value=0, step=1, value=0)
        if st.button("Delete", use_container_width=True) and del_id:
            if api_send("DELETE", f"/api/injections/{int(del_id)}").get("status") == "ok":
                st.rerun()
    else:
        st.caption("No injections recorded.")


# =========================================================
# PAGE: Calculator
# =========================================================
elif current_page == "Calculator":
    st.subheader("Vial / syringe")
    vc1, vc2, vc3 = st.columns(3)
    with vc1:
        vial_mg = st.selectbox("Vial (mg)", [2, 5, 10, 15, 20, 30], index=2)
    with vc2:
        vial_ml = st.selectbox("Water (ml)", [1, 2, 3, 5], index=1)
    with vc3:
        syringe_ml = st.selectbox("Syringe (ml)", list(SYRINGE_SIZES_ML))
    want_mg = st.number_input("Dose (mg)", min_value=0.05, value=2.5, step=0.25)
    res = api_send("POST", "/api/calc/units", {
        "want_mg": want_mg, "vial_mg": vial_mg, "vial_ml": vial_ml, "syringe_ml": syringe_ml,
    })
    if res:
        r1, r2, r3 = st.columns(3)
        r1.metric("Draw", f"{res['units']:.0f} IU")
        r2.metric("Doses per vial", res["doses_per_vial"])
        r3.metric("Leftover", f"{res['remnant_mg']:.2f} mg")
        st.progress(min(res["syringe_fill_pct"], 100.0) / 100.0,
                    text=f"Syringe {res['syringe_fill_pct']:.0f}% full")

    st.divider()
    st.subheader("Pen clicks")
    pen_sub = st.selectbox("Pen", [s for s in substances if substances[s].get("pens")],
                           format_func=lambda s: substances[s]["name"])
    pens = substances.get(pen_sub, {}).get("pens", []) if pen_sub else []
    if pens:
        pen = st.selectbox("Pen strength", pens, format_func=lambda p: p["label"])
        pen_want = st.number_input("Dose (mg) ", min_value=0.05, value=float(pen["mg"]), step=0.25)
        clicks = api_send("POST", "/api/calc/pen-clicks",
                          {"want_mg": pen_want, "pen_total_mg": pen["total_mg"]})
        if clicks:
            st.metric("Clicks", clicks["clicks"])


# =========================================================
# PAGE: Settings
# =========================================================
elif current_page == "Settings":
    data = api_get("/api/profile")
    profile = data.get("profile", {}) if isinstance(data, dict) else {}

    st.subheader("Injection interval")
    custom = st.toggle("Custom interval (off-label)", value=profile.get("custom_interval_enabled", False))
    half_day = st.toggle("Half-day intervals", value=profile.get("half_day_dosing", False))
    interval = st.slider(
        "Days between injections", 1.0, 30.0,
        float(profile.get("injection_interval_days") or 7.0),
        step=0.5 if half_day else 1.0,
        disabled=not custom,
    )
    if custom:
        st.warning("Custom interval is outside the manufacturer's recommendation")

    st.subheader("Premium")
    premium = st.toggle("Premium (plan future injections)", value=profile.get("is_premium", False))

    if st.button("Save settings", type="primary", use_container_width=True):
        r = api_send("PUT", "/api/profile", {
            "custom_interval_enabled": custom,
            "half_day_dosing": half_day,
            "injection_interval_days": interval,
            "is_premium": premium,
        })
        if r:
            st.success("Saved")
            st.rerun()

    st.divider()
    st.caption("Levels are a one-compartment decay estimate for orientation only, not medical advice.")
