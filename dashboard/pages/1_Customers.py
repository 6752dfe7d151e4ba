"""Customers page: directory, details and per-customer positions."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

import pandas as pd
import streamlit as st
from backend.core.exposure_math import format_number
from dashboard.utils import api_delete, api_get, api_patch, api_post, sidebar_api_key

st.set_page_config(page_title="Customers | Exposure Ledger", layout="wide")
sidebar_api_key()

st.title("Customers")

customers = api_get("/api/customers") or []

# --- Add customer ---
with st.expander("Add customer", expanded=not customers):
    with st.form("add_customer_form", clear_on_submit=True):
        c1, c2 = st.columns(2)
        name = c1.text_input("Name")
        email = c2.text_input("Email")
        phone = c1.text_input("Phone")
        credit_limit = c2.number_input("Credit limit", min_value=0.0, value=0.0, step=1000.0)
        notes = st.text_area("Notes", max_chars=1000)

        if st.form_submit_button("Add", type="primary"):
            if not name.strip():
                st.error("Name is required.")
            else:
                result = api_post("/api/customers", {
                    "name": name.strip(),
                    "email": email or None,
                    "phone": phone or None,
                    "credit_limit": float(credit_limit) if credit_limit else None,
                    "notes": notes or None,
                })
                if result:
                    st.success(f"Customer #{result['id']} added")
                    st.rerun()

if not customers:
    st.info("No customers yet.")
    st.stop()

st.markdown("---")

# --- Directory ---
search = st.text_input("Search", placeholder="name, email or phone")
df = pd.DataFrame(customers)
if search:
    needle = search.lower()
    mask = df[["name", "email", "phone"]].fillna("").apply(
        lambda col: col.str.lower().str.contains(needle, regex=False)
    ).any(axis=1)
    df = df[mask]

st.write(f"**{len(df)} customer(s)**")
st.dataframe(
    df[["id", "name", "email", "phone", "credit_limit", "status"]].rename(columns={
        "id": "ID",
        "name": "Name",
        "email": "Email",
        "phone": "Phone",
        "credit_limit": "Credit Limit",
        "status": "Status",
    }),
    use_container_width=True,
    hide_index=True,
)

st.markdown("---")

# --- Detail / edit ---
by_label = {f"{c['name']} (#{c['id']})": c for c in customers}
label = st.selectbox("Customer", list(by_label.keys()))
customer = by_label[label]

col_l, col_r = st.columns(2)

with col_l:
    st.subheader("Details")
    with st.form(f"edit_customer_{customer['id']}"):
        new_name = st.text_input("Name", value=customer["name"])
        new_email = st.text_input("Email", value=customer.get("email") or "")
        new_phone = st.text_input("Phone", value=customer.get("phone") or "")
        new_limit = st.number_input("Credit limit", min_value=0.0, value=float(customer.get("credit_limit") or 0.0))
        statuses = ["active", "suspended", "inactive"]
        new_status = st.selectbox("Status", statuses, index=statuses.index(customer["status"]))
        new_notes = st.text_area("Notes", value=customer.get("notes") or "")
        save = st.form_submit_button("Save", type="primary")

    if save:
        result = api_patch(f"/api/customers/{customer['id']}", {
            "name": new_name.strip(),
            "email": new_email or None,
            "phone": new_phone or None,
            "credit_limit": float(new_limit) if new_limit else None,
            "status": new_status,
            "notes": new_notes or None,
        })
        if result:
            st.success("Saved")
            st.rerun()

    if st.button("Delete customer", key=f"del_{customer['id']}"):
        if api_delete(f"/api/customers/{customer['id']}"):
            st.success("Deleted")
            st.rerun()

with col_r:
    st.subheader("Positions")
    entries = api_get(f"/api/customers/{customer['id']}/entries") or []
    if not entries:
        st.info("No ledger entries for this customer.")
    else:
        matches = {m["id"]: m for m in (api_get("/api/matches") or [])}
        rows = []
        for e in entries:
            m = matches.get(e["match_id"], {})
            share = e["share_percent"] / 100
            rows.append({
                "Match": m.get("name", f"#{e['match_id']}"),
                "Status": m.get("status", "?"),
                "A Exposure": format_number(e["exposure_a"]),
                "B Exposure": format_number(e["exposure_b"]),
                "Share %": e["share_percent"],
                "My Share A": format_number(e["exposure_a"] * share),
                "My Share B": format_number(e["exposure_b"] * share),
            })
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)
