"""Analytics page: book-wide P&L and exposure."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st
from datetime import datetime
from backend.core.exposure_math import format_number
from dashboard.utils import api_get, money, sidebar_api_key

st.set_page_config(page_title="Analytics | Exposure Ledger", layout="wide")
sidebar_api_key()

st.title("Analytics")

overview = api_get("/api/analytics/overview")
if not overview:
    st.stop()

# --- Key metrics ---
c1, c2, c3, c4, c5 = st.columns(5)
c1.metric("Matches",   overview["total_matches"])
c2.metric("Settled",   overview["settled_matches"])
c3.metric("Customers", overview["total_customers"])
c4.metric("Entries",   overview["total_entries"])
c5.metric("Total P&L", format_number(overview["total_profit_loss"]))

st.markdown("---")

col_l, col_r = st.columns(2)

# P&L per settled match
with col_l:
    st.subheader("P&L by Match")
    match_pl = overview.get("match_profit_loss", [])
    if match_pl:
        df_pl = pd.DataFrame(match_pl)
        fig_pl = go.Figure(go.Bar(
            x=df_pl["name"],
            y=df_pl["profit"],
            marker_color=["green" if p >= 0 else "red" for p in df_pl["profit"]],
            text=df_pl["profit"].map(format_number),
            textposition="outside",
        ))
        fig_pl.add_hline(y=0, line_dash="dash", line_color="gray")
        fig_pl.update_layout(xaxis_title="Match", yaxis_title="Net P&L", height=360, showlegend=False)
        st.plotly_chart(fig_pl, use_container_width=True)
    else:
        st.info("No settled matches yet.")

# Top customers by share exposure
with col_r:
    st.subheader("Top Customers by Exposure")
    top = overview.get("top_customer_exposure", [])
    if top:
        df_top = pd.DataFrame(top)
        fig_top = px.bar(
            df_top, x="total", y="name", orientation="h",
            labels={"total": "Share exposure", "name": "Customer"},
        )
        fig_top.update_layout(height=360, yaxis={"categoryorder": "total ascending"})
        st.plotly_chart(fig_top, use_container_width=True)
    else:
        st.info("No ledger entries yet.")

st.markdown("---")

recent = overview.get("recent_settlements", [])
st.subheader("Recent Settlements")
if recent:
    for s in recent:
        ts = datetime.fromisoformat(s["settled_at"]).strftime("%b %d %Y") if s.get("settled_at") else "?"
        st.markdown(f"**{s['match_name']}** | {s['winner']} won | {money(s['net_profit'])} | {ts}")

    # cumulative over the recent window, oldest first
    df_recent = pd.DataFrame(recent[::-1])
    df_recent["cumulative"] = df_recent["net_profit"].cumsum()
    fig_cum = go.Figure(go.Scatter(
        x=df_recent["match_name"], y=df_recent["cumulative"], mode="lines+markers",
    ))
    fig_cum.add_hline(y=0, line_dash="dash", line_color="gray")
    fig_cum.update_layout(xaxis_title="Settlement", yaxis_title="Cumulative P&L", height=300)
    st.plotly_chart(fig_cum, use_container_width=True)
else:
    st.info("No settlements yet.")
