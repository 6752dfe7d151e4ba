"""
Streamlit Dashboard for the Exposure Ledger
Per-match exposure, scenario P&L, ledger entries and settlement
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import streamlit as st
import pandas as pd
from datetime import datetime

from backend.core.exposure_math import format_number
from dashboard.utils import (
    STATUS_ICONS,
    api_delete,
    api_get,
    api_patch,
    api_post,
    money,
    select_match,
    sidebar_api_key,
)

st.set_page_config(
    page_title="Exposure Ledger",
    page_icon="📒",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
    <style>
    .big-metric { font-size: 24px; font-weight: bold; }
    </style>
""", unsafe_allow_html=True)


# ==============================================================================
# SIDEBAR
# ==============================================================================

sidebar_api_key()

with st.sidebar:
    st.title("📒 Exposure Ledger")
    st.caption("See sidebar pages for Customers, Tools & Analytics.")
    st.markdown("---")

    with st.expander("New match"):
        with st.form("new_match_form", clear_on_submit=True):
            m_name = st.text_input("Match name")
            m_team_a = st.text_input("Side A")
            m_team_b = st.text_input("Side B")
            if st.form_submit_button("Create", type="primary"):
                if not (m_name and m_team_a and m_team_b):
                    st.error("Name and both sides are required.")
                else:
                    created = api_post("/api/matches", {"name": m_name, "team_a": m_team_a, "team_b": m_team_b})
                    if created:
                        st.success(f"Match #{created['id']} created")
                        st.rerun()

match = select_match()

if match is None:
    st.title("Exposure Ledger")
    st.info("No matches yet. Create one from the sidebar.")
    st.stop()

match_id = match["id"]
team_a, team_b = match["team_a"], match["team_b"]
is_settled = match["status"] == "settled"


# ==============================================================================
# HEADER + STATUS
# ==============================================================================

st.title(f"{STATUS_ICONS.get(match['status'], '')} {match['name']}")
st.caption(f"{team_a} vs {team_b} | status: {match['status']}")

if not is_settled:
    next_status = {"upcoming": "live", "live": "completed"}.get(match["status"])
    if next_status and st.button(f"Mark as {next_status}"):
        if api_patch(f"/api/matches/{match_id}", {"status": next_status}):
            st.rerun()

summary = api_get(f"/api/matches/{match_id}/summary")
if not summary:
    st.stop()

totals = summary["totals"]
odds = summary["average_odds"]
pl = summary["profit_loss"]
risk = summary["risk_metrics"]


# ==============================================================================
# KPI CARDS
# ==============================================================================

col1, col2, col3, col4 = st.columns(4)
col1.metric(f"{team_a} Exposure", format_number(totals["total_a"]))
col2.metric(f"{team_b} Exposure", format_number(totals["total_b"]))
col3.metric(f"My Share on {team_a}", format_number(totals["total_a_share"]))
col4.metric(f"My Share on {team_b}", format_number(totals["total_b_share"]))

col1, col2, col3, col4 = st.columns(4)
col1.metric(f"Avg Odds {team_a}", format_number(odds["odds_a"]))
col2.metric(f"Avg Odds {team_b}", format_number(odds["odds_b"]))
col3.metric("Total Exposure", format_number(risk["total_exposure"]))
col4.metric("Risk / Reward", format_number(risk["risk_reward_ratio"]))

if risk["exposure_limit_exceeded"]:
    st.error(
        f"Exposure limit exceeded: {format_number(risk['total_exposure'])} "
        f"> {format_number(risk['exposure_limit'])}"
    )


# ==============================================================================
# SCENARIO P&L
# ==============================================================================

st.markdown("---")
st.subheader("Profit / Loss by outcome")
c1, c2 = st.columns(2)
with c1:
    st.markdown(f"**If {team_a} wins:** {money(pl['profit_if_a'])}")
    st.markdown(f"Break-even odds on {team_a}: **{format_number(pl['break_even_odds_a'])}**")
with c2:
    st.markdown(f"**If {team_b} wins:** {money(pl['profit_if_b'])}")
    st.markdown(f"Break-even odds on {team_b}: **{format_number(pl['break_even_odds_b'])}**")
st.caption(f"Worst case {format_number(pl['max_loss'])} | best case {format_number(pl['max_profit'])}")


# ==============================================================================
# LEDGER
# ==============================================================================

st.markdown("---")
st.subheader(f"Ledger ({summary['entry_count']} entries)")

entries = api_get(f"/api/matches/{match_id}/entries") or []
if entries:
    df = pd.DataFrame(entries)
    share = df["share_percent"] / 100
    df["share_a"] = df["exposure_a"] * share
    df["share_b"] = df["exposure_b"] * share
    for col in ("exposure_a", "exposure_b", "share_a", "share_b"):
        df[col] = df[col].map(format_number)
    st.dataframe(
        df[["id", "name", "exposure_a", "exposure_b", "share_percent", "share_a", "share_b"]].rename(columns={
            "id": "ID",
            "name": "Player",
            "exposure_a": f"{team_a} Exposure",
            "exposure_b": f"{team_b} Exposure",
            "share_percent": "Share %",
            "share_a": f"My Share on {team_a}",
            "share_b": f"My Share on {team_b}",
        }),
        use_container_width=True,
        hide_index=True,
    )
else:
    st.info("No entries for this match yet.")

if not is_settled:
    tab_add, tab_edit = st.tabs(["Add Entry", "Edit / Delete"])

    # --------------------------------------------------------------------------
    # TAB 1: ADD ENTRY
    # --------------------------------------------------------------------------
    with tab_add:
        customers = api_get("/api/customers") or []
        if not customers:
            st.info("Add a customer on the Customers page first, or use the converter on the Tools page.")
        else:
            by_label = {f"{c['name']} (#{c['id']})": c["id"] for c in customers}
            with st.form("add_entry_form", clear_on_submit=True):
                label = st.selectbox("Customer", list(by_label.keys()))
                a1, a2, a3 = st.columns(3)
                exposure_a = a1.number_input(f"{team_a} Exposure", value=0.0, step=100.0)
                exposure_b = a2.number_input(f"{team_b} Exposure", value=0.0, step=100.0)
                share_percent = a3.number_input("Share %", min_value=0.0, max_value=100.0, value=100.0, step=5.0)

                if st.form_submit_button("Add Entry", type="primary"):
                    result = api_post("/api/entries", {
                        "match_id": match_id,
                        "customer_id": by_label[label],
                        "exposure_a": float(exposure_a),
                        "exposure_b": float(exposure_b),
                        "share_percent": float(share_percent),
                    })
                    if result:
                        st.success(f"Entry #{result['id']} added for {result['name']}")
                        st.rerun()

    # --------------------------------------------------------------------------
    # TAB 2: EDIT / DELETE
    # --------------------------------------------------------------------------
    with tab_edit:
        if not entries:
            st.info("Nothing to edit.")
        for entry in entries:
            with st.expander(f"#{entry['id']} | {entry['name']}"):
                with st.form(f"edit_entry_{entry['id']}"):
                    e1, e2, e3 = st.columns(3)
                    new_a = e1.number_input(f"{team_a} Exposure", value=float(entry["exposure_a"]), key=f"ea_{entry['id']}")
                    new_b = e2.number_input(f"{team_b} Exposure", value=float(entry["exposure_b"]), key=f"eb_{entry['id']}")
                    new_share = e3.number_input(
                        "Share %", min_value=0.0, max_value=100.0,
                        value=float(entry["share_percent"]), key=f"es_{entry['id']}",
                    )
                    b1, b2 = st.columns(2)
                    save = b1.form_submit_button("Save")
                    delete = b2.form_submit_button("Delete")

                if save:
                    if api_patch(f"/api/entries/{entry['id']}", {
                        "exposure_a": float(new_a), "exposure_b": float(new_b), "share_percent": float(new_share),
                    }):
                        st.rerun()
                if delete:
                    if api_delete(f"/api/entries/{entry['id']}"):
                        st.rerun()


# ==============================================================================
# SETTLEMENT
# ==============================================================================

st.markdown("---")
st.subheader("Settlement")

if is_settled:
    settlements = api_get("/api/settlements", {"match_id": match_id}) or []
    winner = team_a if match.get("winning_side") == "A" else team_b
    if settlements:
        s = settlements[0]
        settled_at = datetime.fromisoformat(s["settled_at"]).strftime("%b %d %Y, %H:%M")
        st.success(f"Settled: **{winner}** won | Net P&L {money(s['net_profit'])} | {settled_at}")
    else:
        st.success(f"Settled: **{winner}** won")
else:
    side_label = st.radio("Winning side", [team_a, team_b], horizontal=True)
    side = "A" if side_label == team_a else "B"

    preview = api_get(f"/api/matches/{match_id}/settlement-preview", {"winning_side": side})
    if preview:
        st.markdown(f"Net P&L if **{side_label}** wins: {money(preview['net_profit'])}")
        names = {e["id"]: e["name"] for e in entries}
        if preview["payouts"]:
            st.dataframe(
                pd.DataFrame([
                    {"Player": names.get(p["entry_id"], "Unknown"), "Payout": format_number(p["payout"])}
                    for p in preview["payouts"]
                ]),
                use_container_width=True,
                hide_index=True,
            )

    confirm = st.checkbox("I understand settlement is final and freezes this ledger")
    if st.button("Settle Match", type="primary", disabled=not confirm):
        result = api_post(f"/api/matches/{match_id}/settle", {"winning_side": side})
        if result:
            st.success(f"Match settled. Net P&L: {format_number(result['net_profit'])}")
            st.rerun()

# Footer
st.markdown("---")
st.caption("Exposure Ledger | Built with Streamlit")
