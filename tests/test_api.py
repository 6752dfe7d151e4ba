"""End-to-end tests for the FastAPI routes against an in-memory database."""

import pytest

from backend.services.csv_io import EXCEL_BOM

OWNER_HEADERS = {"X-API-Key": "test-owner-key"}
CLERK_HEADERS = {"X-API-Key": "test-clerk-key"}


def _create_match(client, **overrides):
    payload = {"name": "Final", "team_a": "Mumbai", "team_b": "Chennai", **overrides}
    resp = client.post("/api/matches", json=payload, headers=OWNER_HEADERS)
    assert resp.status_code == 201
    return resp.json()


def _create_customer(client, name):
    resp = client.post("/api/customers", json={"name": name}, headers=OWNER_HEADERS)
    assert resp.status_code == 201
    return resp.json()


def _add_entry(client, match_id, customer_id, a, b, share):
    resp = client.post(
        "/api/entries",
        json={"match_id": match_id, "customer_id": customer_id,
              "exposure_a": a, "exposure_b": b, "share_percent": share},
        headers=OWNER_HEADERS,
    )
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
def ledger(client):
    """Final with E1 {-9500, 10000, 20%} and E2 {5000, -4000, 50%}."""
    match = _create_match(client)
    ravi = _create_customer(client, "Ravi")
    sunil = _create_customer(client, "Sunil")
    e1 = _add_entry(client, match["id"], ravi["id"], -9500, 10000, 20)
    e2 = _add_entry(client, match["id"], sunil["id"], 5000, -4000, 50)
    return {"match": match, "customers": (ravi, sunil), "entries": (e1, e2)}


# ---------------------------------------------------------------------------
# Public + auth
# ---------------------------------------------------------------------------

def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "operational"


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "database": "connected"}


def test_missing_api_key(client):
    assert client.get("/api/matches").status_code == 401


def test_invalid_api_key(client):
    assert client.get("/api/matches", headers={"X-API-Key": "nope"}).status_code == 401


def test_clerk_can_use_ledger_but_not_admin(client):
    assert client.get("/api/matches", headers=CLERK_HEADERS).status_code == 200
    assert client.post("/admin/sync-entry-names", headers=CLERK_HEADERS).status_code == 403


def test_owner_can_sync_names(client, ledger):
    resp = client.post("/admin/sync-entry-names", headers=OWNER_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["entries_fixed"] == 0


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

def test_match_crud(client):
    match = _create_match(client)
    assert match["status"] == "upcoming"

    resp = client.patch(f"/api/matches/{match['id']}", json={"status": "live"}, headers=OWNER_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["status"] == "live"

    listed = client.get("/api/matches", params={"status": "live"}, headers=OWNER_HEADERS).json()
    assert [m["id"] for m in listed] == [match["id"]]

    assert client.delete(f"/api/matches/{match['id']}", headers=OWNER_HEADERS).status_code == 200
    assert client.get(f"/api/matches/{match['id']}", headers=OWNER_HEADERS).status_code == 404


def test_match_validation(client):
    resp = client.post("/api/matches", json={"name": "", "team_a": "A", "team_b": "B"}, headers=OWNER_HEADERS)
    assert resp.status_code == 422


def test_match_backward_transition_conflict(client):
    match = _create_match(client)
    client.patch(f"/api/matches/{match['id']}", json={"status": "completed"}, headers=OWNER_HEADERS)
    resp = client.patch(f"/api/matches/{match['id']}", json={"status": "upcoming"}, headers=OWNER_HEADERS)
    assert resp.status_code == 409
    assert resp.json()["type"] == "InvalidStatusTransition"


def test_match_entries_listing(client, ledger):
    match_id = ledger["match"]["id"]
    entries = client.get(f"/api/matches/{match_id}/entries", headers=OWNER_HEADERS).json()
    assert [e["name"] for e in entries] == ["Ravi", "Sunil"]
    assert client.get("/api/matches/999/entries", headers=OWNER_HEADERS).status_code == 404


def test_match_summary(client, ledger):
    match_id = ledger["match"]["id"]
    body = client.get(f"/api/matches/{match_id}/summary", headers=OWNER_HEADERS).json()

    assert body["entry_count"] == 2
    assert body["totals"]["total_a"] == pytest.approx(-4500)
    assert body["totals"]["total_a_share"] == pytest.approx(600)
    assert body["profit_loss"]["profit_if_a"] == pytest.approx(600)
    assert body["profit_loss"]["break_even_odds_b"] is None
    assert body["risk_metrics"]["max_loss"] == pytest.approx(0)
    assert body["risk_metrics"]["risk_reward_ratio"] is None
    assert body["risk_metrics"]["exposure_limit_exceeded"] is False


def test_match_summary_exposure_limit(client, ledger):
    match_id = ledger["match"]["id"]
    body = client.get(
        f"/api/matches/{match_id}/summary",
        params={"exposure_limit": 500},
        headers=OWNER_HEADERS,
    ).json()
    assert body["risk_metrics"]["exposure_limit"] == 500
    assert body["risk_metrics"]["exposure_limit_exceeded"] is True


def test_match_summary_empty_ledger(client):
    match = _create_match(client)
    body = client.get(f"/api/matches/{match['id']}/summary", headers=OWNER_HEADERS).json()
    assert body["average_odds"] == {"odds_a": None, "odds_b": None}
    assert body["profit_loss"]["max_loss"] == 0


# ---------------------------------------------------------------------------
# Customers + entries
# ---------------------------------------------------------------------------

def test_customer_validation(client):
    resp = client.post("/api/customers", json={"name": "Asha", "email": "not-an-email"}, headers=OWNER_HEADERS)
    assert resp.status_code == 422

    resp = client.post("/api/customers", json={"name": "Asha", "email": ""}, headers=OWNER_HEADERS)
    assert resp.status_code == 201
    assert resp.json()["email"] is None


def test_customer_rename_propagates(client, ledger):
    ravi = ledger["customers"][0]
    resp = client.patch(f"/api/customers/{ravi['id']}", json={"name": "Ravi K"}, headers=OWNER_HEADERS)
    assert resp.status_code == 200

    entries = client.get(f"/api/customers/{ravi['id']}/entries", headers=OWNER_HEADERS).json()
    assert [e["name"] for e in entries] == ["Ravi K"]


def test_customer_delete(client, ledger):
    sunil = ledger["customers"][1]
    assert client.delete(f"/api/customers/{sunil['id']}", headers=OWNER_HEADERS).status_code == 200
    assert client.get(f"/api/customers/{sunil['id']}", headers=OWNER_HEADERS).status_code == 404
    assert len(client.get("/api/customers", headers=OWNER_HEADERS).json()) == 1


def test_entry_share_out_of_range(client, ledger):
    resp = client.post(
        "/api/entries",
        json={"match_id": ledger["match"]["id"], "customer_id": ledger["customers"][0]["id"],
              "exposure_a": 1, "exposure_b": 1, "share_percent": 150},
        headers=OWNER_HEADERS,
    )
    assert resp.status_code == 422


def test_entry_unknown_customer(client, ledger):
    resp = client.post(
        "/api/entries",
        json={"match_id": ledger["match"]["id"], "customer_id": 999,
              "exposure_a": 1, "exposure_b": 1, "share_percent": 10},
        headers=OWNER_HEADERS,
    )
    assert resp.status_code == 404


def test_entry_update_and_delete(client, ledger):
    e1, e2 = ledger["entries"]
    resp = client.patch(f"/api/entries/{e1['id']}", json={"share_percent": 30}, headers=OWNER_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["share_percent"] == 30

    assert client.delete(f"/api/entries/{e2['id']}", headers=OWNER_HEADERS).status_code == 200
    assert client.delete(f"/api/entries/{e2['id']}", headers=OWNER_HEADERS).status_code == 404


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

def test_convert(client):
    resp = client.post("/api/tools/convert", json={"stake": 10000, "odds": 1.95, "side": "A"}, headers=OWNER_HEADERS)
    assert resp.status_code == 200
    assert resp.json() == {"exposure_a": -9500.0, "exposure_b": 10000.0}


@pytest.mark.parametrize("payload", [
    {"stake": 0, "odds": 1.95, "side": "A"},
    {"stake": 100, "odds": 1.0, "side": "A"},
    {"stake": 100, "odds": 1.95, "side": "C"},
])
def test_convert_validation(client, payload):
    assert client.post("/api/tools/convert", json=payload, headers=OWNER_HEADERS).status_code == 422


def test_entry_from_odds_creates_customer(client):
    match = _create_match(client)
    resp = client.post(
        f"/api/matches/{match['id']}/entries/from-odds",
        json={"name": "Kiran", "stake": 2000, "odds": 2.5, "side": "B", "share_percent": 40},
        headers=OWNER_HEADERS,
    )
    assert resp.status_code == 201
    entry = resp.json()
    assert entry["name"] == "Kiran"
    assert entry["exposure_a"] == 2000
    assert entry["exposure_b"] == -3000
    assert [c["name"] for c in client.get("/api/customers", headers=OWNER_HEADERS).json()] == ["Kiran"]


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

def test_settlement_preview(client, ledger):
    match_id = ledger["match"]["id"]
    body = client.get(
        f"/api/matches/{match_id}/settlement-preview",
        params={"winning_side": "A"},
        headers=OWNER_HEADERS,
    ).json()
    assert body["total_payout"] == pytest.approx(-600)
    assert [p["payout"] for p in body["payouts"]] == [pytest.approx(1900), pytest.approx(-2500)]


def test_settle_flow(client, ledger):
    match_id = ledger["match"]["id"]
    resp = client.post(f"/api/matches/{match_id}/settle", json={"winning_side": "A"}, headers=OWNER_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["net_profit"] == pytest.approx(-600)

    match = client.get(f"/api/matches/{match_id}", headers=OWNER_HEADERS).json()
    assert match["status"] == "settled"
    assert match["winning_side"] == "A"

    again = client.post(f"/api/matches/{match_id}/settle", json={"winning_side": "B"}, headers=OWNER_HEADERS)
    assert again.status_code == 409

    e1 = ledger["entries"][0]
    locked = client.patch(f"/api/entries/{e1['id']}", json={"share_percent": 1}, headers=OWNER_HEADERS)
    assert locked.status_code == 409

    settlements = client.get("/api/settlements", headers=OWNER_HEADERS).json()
    assert [s["match_id"] for s in settlements] == [match_id]


def test_settle_missing_match(client):
    resp = client.post("/api/matches/12345/settle", json={"winning_side": "A"}, headers=OWNER_HEADERS)
    assert resp.status_code == 404


def test_settle_invalid_side(client, ledger):
    match_id = ledger["match"]["id"]
    resp = client.post(f"/api/matches/{match_id}/settle", json={"winning_side": "draw"}, headers=OWNER_HEADERS)
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def test_export_csv(client, ledger):
    match_id = ledger["match"]["id"]
    resp = client.get(f"/api/matches/{match_id}/export", headers=OWNER_HEADERS)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attachment" in resp.headers["content-disposition"]

    lines = resp.text.splitlines()
    assert lines[0].startswith("Player,Mumbai Exposure,Chennai Exposure,Share %")
    assert lines[1] == "Ravi,-9500,10000,20,-1900,2000"


def test_export_excel_has_bom(client, ledger):
    match_id = ledger["match"]["id"]
    resp = client.get(f"/api/matches/{match_id}/export", params={"fmt": "excel"}, headers=OWNER_HEADERS)
    assert resp.status_code == 200
    assert resp.content.decode("utf-8").startswith(EXCEL_BOM)


def test_import_csv(client):
    match = _create_match(client)
    text = "Player,A,B,Share %\nRavi,-9500,10000,20\nSunil,5000,-4000,50\n"
    resp = client.post(f"/api/matches/{match['id']}/import", json={"csv_text": text}, headers=OWNER_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["imported"] == 2

    summary = client.get(f"/api/matches/{match['id']}/summary", headers=OWNER_HEADERS).json()
    assert summary["totals"]["total_a_share"] == pytest.approx(600)


def test_import_csv_without_rows(client):
    match = _create_match(client)
    resp = client.post(f"/api/matches/{match['id']}/import", json={"csv_text": "Player\n"}, headers=OWNER_HEADERS)
    assert resp.status_code == 400


def test_import_csv_blank_player_name(client):
    match = _create_match(client)
    text = "Player,A,B,Share %\nRavi,-9500,10000,20\n,5000,-4000,50\n"
    resp = client.post(f"/api/matches/{match['id']}/import", json={"csv_text": text}, headers=OWNER_HEADERS)
    assert resp.status_code == 400
    assert resp.json()["type"] == "InvalidImportRow"

    customers = client.get("/api/customers", headers=OWNER_HEADERS).json()
    assert customers == []


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

def test_analytics_overview(client, ledger):
    match_id = ledger["match"]["id"]
    client.post(f"/api/matches/{match_id}/settle", json={"winning_side": "B"}, headers=OWNER_HEADERS)
    body = client.get("/api/analytics/overview", headers=OWNER_HEADERS).json()
    assert body["settled_matches"] == 1
    assert body["total_profit_loss"] == pytest.approx(0)
    assert body["recent_settlements"][0]["winner"] == "Chennai"
