"""Tools page: odds converter and CSV import/export."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

import streamlit as st
from datetime import datetime
from backend.core.exposure_math import format_number
from dashboard.utils import api_download, api_post, select_match, sidebar_api_key

st.set_page_config(page_title="Tools | Exposure Ledger", layout="wide")
sidebar_api_key()

st.title("Tools")

match = select_match(key="tools_match")
tab_convert, tab_csv = st.tabs(["Odds Converter", "CSV Import / Export"])

# --------------------------------------------------------------------------
# TAB 1: ODDS CONVERTER
# --------------------------------------------------------------------------
with tab_convert:
    st.subheader("Stake + odds -> exposure")
    st.caption("A customer backing one side at decimal odds: the book pays the profit if that side wins, keeps the stake otherwise.")

    team_a = match["team_a"] if match else "Side A"
    team_b = match["team_b"] if match else "Side B"

    c1, c2, c3 = st.columns(3)
    stake = c1.number_input("Stake", min_value=0.01, value=1000.0, step=100.0)
    odds = c2.number_input("Decimal odds", min_value=1.01, value=1.95, step=0.05)
    side_label = c3.radio("Customer backs", [team_a, team_b], horizontal=True)
    side = "A" if side_label == team_a else "B"

    result = api_post("/api/tools/convert", {"stake": float(stake), "odds": float(odds), "side": side})
    if result:
        r1, r2 = st.columns(2)
        r1.metric(f"{team_a} Exposure", format_number(result["exposure_a"]))
        r2.metric(f"{team_b} Exposure", format_number(result["exposure_b"]))

    if match and match["status"] != "settled":
        with st.form("odds_entry_form", clear_on_submit=True):
            st.markdown(f"**Add to {match['name']}**")
            f1, f2 = st.columns(2)
            name = f1.text_input("Customer name", help="Created automatically if new")
            share_percent = f2.number_input("Share %", min_value=0.0, max_value=100.0, value=100.0, step=5.0)
            if st.form_submit_button("Add Entry", type="primary"):
                if not name.strip():
                    st.error("Customer name is required.")
                else:
                    entry = api_post(f"/api/matches/{match['id']}/entries/from-odds", {
                        "name": name.strip(),
                        "stake": float(stake),
                        "odds": float(odds),
                        "side": side,
                        "share_percent": float(share_percent),
                    })
                    if entry:
                        st.success(
                            f"Entry #{entry['id']} added for {entry['name']}: "
                            f"{format_number(entry['exposure_a'])} / {format_number(entry['exposure_b'])}"
                        )

# --------------------------------------------------------------------------
# TAB 2: CSV
# --------------------------------------------------------------------------
with tab_csv:
    if not match:
        st.info("Create a match first.")
        st.stop()

    st.subheader("Export")
    stamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
    col_csv, col_xls = st.columns(2)
    with col_csv:
        data = api_download(f"/api/matches/{match['id']}/export", {"fmt": "csv"})
        if data is not None:
            st.download_button("Download CSV", data, file_name=f"ledger-{stamp}.csv", mime="text/csv")
    with col_xls:
        data = api_download(f"/api/matches/{match['id']}/export", {"fmt": "excel"})
        if data is not None:
            st.download_button(
                "Download for Excel", data,
                file_name=f"ledger-{stamp}.xls", mime="application/vnd.ms-excel",
            )

    st.markdown("---")
    st.subheader("Import")
    st.caption("Columns: Player, A Exposure, B Exposure, Share %. The first row is a header.")

    if match["status"] == "settled":
        st.warning("This match is settled; its ledger is frozen.")
    else:
        uploaded = st.file_uploader("CSV file", type=["csv", "xls", "txt"])
        if uploaded is not None and st.button("Import", type="primary"):
            text = uploaded.getvalue().decode("utf-8-sig", errors="replace")
            result = api_post(f"/api/matches/{match['id']}/import", {"csv_text": text})
            if result:
                st.success(result["message"])
