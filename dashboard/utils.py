"""Shared utilities for all dashboard pages."""

import os
import requests
import streamlit as st
from dotenv import load_dotenv

from backend.core.exposure_math import NO_DATA, format_number

load_dotenv()

_API_URL = os.getenv("API_URL", "http://localhost:8000")
_API_KEY = os.getenv("API_KEY_USER1", "")


def _key() -> str:
    return st.session_state.get("api_key", _API_KEY)


def _headers() -> dict:
    return {"X-API-Key": _key()}


def _error_detail(exc: requests.HTTPError) -> str:
    try:
        return exc.response.json().get("detail", str(exc))
    except ValueError:
        return exc.response.text or str(exc)


def _send(method: str, endpoint: str, payload: dict = None, params: dict = None):
    try:
        r = requests.request(
            method,
            f"{_API_URL}{endpoint}",
            headers={**_headers(), "Content-Type": "application/json"},
            json=payload,
            params=params,
            timeout=15,
        )
        r.raise_for_status()
        return r.json()
    except requests.HTTPError as exc:
        if exc.response is None:
            st.error(f"Request failed: {exc}")
        else:
            st.error(f"API {exc.response.status_code}: {_error_detail(exc)}")
        return None
    except Exception as exc:
        st.error(f"Request failed: {exc}")
        return None


def api_get(endpoint: str, params: dict = None):
    return _send("GET", endpoint, params=params)


def api_post(endpoint: str, payload: dict = None):
    return _send("POST", endpoint, payload=payload)


def api_patch(endpoint: str, payload: dict):
    return _send("PATCH", endpoint, payload=payload)


def api_delete(endpoint: str):
    return _send("DELETE", endpoint)


def api_download(endpoint: str, params: dict = None):
    """Raw response body (CSV export). None on failure."""
    try:
        r = requests.get(f"{_API_URL}{endpoint}", headers=_headers(), params=params, timeout=30)
        r.raise_for_status()
        return r.content
    except Exception as exc:
        st.error(f"Download failed: {exc}")
        return None


def sidebar_api_key() -> None:
    """Show API key input in sidebar if the key is not yet set."""
    if not _key():
        with st.sidebar:
            key_input = st.text_input("API Key", type="password", key="api_key_sidebar")
            if key_input:
                st.session_state["api_key"] = key_input
                st.rerun()


def match_label(match: dict) -> str:
    return f"{match['name']} ({match['team_a']} vs {match['team_b']}) [{match['status']}]"


def select_match(key: str = "match_select"):
    """Sidebar match picker. Returns the chosen match dict, or None if there are none."""
    matches = api_get("/api/matches") or []
    if not matches:
        return None
    options = {match_label(m): m for m in matches}
    label = st.sidebar.selectbox("Match", list(options.keys()), key=key)
    return options[label]


def money(value) -> str:
    """format_number with a sign-aware colour for st.markdown."""
    text = format_number(value)
    if text in ("0", NO_DATA):
        return text
    colour = "green" if value > 0 else "red"
    return f":{colour}[{text}]"


STATUS_ICONS = {
    "upcoming":  "🕒",
    "live":      "🟢",
    "completed": "🏁",
    "settled":   "✅",
}
