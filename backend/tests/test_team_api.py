import pytest
from fastapi.testclient import TestClient

from app.errors import QuotaExhaustedError, UpstreamUnavailableError
from app.models.sync_event import SyncEvent
from app.services.quota_lock import QuotaLockService
from conftest import toggl_entry

DAY = "2024-03-01"


def team_day(client: TestClient, refresh: bool = False):
    params = {"date": DAY, "tzOffset": "0"}
    if refresh:
        params["refresh"] = "1"
    return client.get("/api/v1/team", params=params)


def seed_everyone(upstream):
    upstream.entries["token-ana"] = [toggl_entry(1, "2024-03-01T09:00:00Z", 3600)]
    upstream.entries["token-bea"] = [toggl_entry(2, "2024-03-01T10:00:00Z", 1800)]
    upstream.entries["token-caio"] = [toggl_entry(3, "2024-03-01T11:00:00Z", 900)]


def test_empty_team_day_is_stale_but_ok(client, upstream):
    response = team_day(client)

    assert response.status_code == 200
    data = response.json()
    assert data["stale"] is True
    assert data["warning"] == "No stored entries for this day yet."
    assert [member["name"] for member in data["members"]] == ["Ana", "Bea", "Caio"]
    assert upstream.calls == []


def test_full_refresh_is_fresh(client, upstream):
    seed_everyone(upstream)

    data = team_day(client, refresh=True).json()

    assert data["source"] == "toggl_sync"
    assert data["stale"] is False
    totals = {member["name"]: member["totalSeconds"] for member in data["members"]}
    assert totals == {"Ana": 3600, "Bea": 1800, "Caio": 900}

    stored = team_day(client).json()
    assert stored["source"] == "db"
    assert {member["name"]: member["entryCount"] for member in stored["members"]} == {"Ana": 1, "Bea": 1, "Caio": 1}


def test_partial_failure_keeps_fresh_members(client, upstream, db):
    seed_everyone(upstream)
    upstream.errors["token-bea"] = UpstreamUnavailableError("Toggl request failed (500)", status=500)

    response = team_day(client, refresh=True)

    assert response.status_code == 200
    data = response.json()
    assert data["stale"] is True
    assert data["source"] == "db_fallback"
    assert "Bea" in data["warning"]
    assert "Ana" not in data["warning"]
    assert "Caio" not in data["warning"]

    members = {member["name"]: member for member in data["members"]}
    assert [entry["id"] for entry in members["Ana"]["entries"]] == ["1"]
    assert [entry["id"] for entry in members["Caio"]["entries"]] == ["3"]
    assert members["Ana"]["stale"] is False
    assert members["Bea"]["stale"] is True
    assert members["Bea"]["entries"] == []

    errors = db.query(SyncEvent).filter(SyncEvent.status == "error").all()
    assert [event.member_name for event in errors] == ["Bea"]


def test_failed_member_falls_back_to_stored_entries(client, upstream):
    seed_everyone(upstream)
    team_day(client, refresh=True)
    upstream.errors["token-bea"] = UpstreamUnavailableError("Toggl request failed (503)", status=503)

    data = team_day(client, refresh=True).json()

    members = {member["name"]: member for member in data["members"]}
    assert [entry["id"] for entry in members["Bea"]["entries"]] == ["2"]
    assert members["Bea"]["stale"] is True


def test_all_members_failing_without_storage_propagates(client, upstream):
    for token in ("token-ana", "token-bea", "token-caio"):
        upstream.errors[token] = UpstreamUnavailableError("Toggl request failed (500)", status=500)
    upstream.errors["token-caio"] = QuotaExhaustedError("Toggl request failed (402)", status=402)

    response = team_day(client, refresh=True)

    assert response.status_code == 402
    assert client.get("/api/v1/quota").json()["active"] is True


def test_cooldown_serves_storage_for_the_whole_team(client, upstream, db):
    seed_everyone(upstream)
    team_day(client, refresh=True)
    upstream.calls.clear()
    QuotaLockService(db).set_lock(402, 3600, reason="test")

    data = team_day(client, refresh=True).json()

    assert upstream.calls == []
    assert data["cooldownActive"] is True
    assert data["source"] == "db_fallback"
    assert all(member["entryCount"] == 1 for member in data["members"])


def test_no_configured_members_is_rejected(client, team):
    team._members = []

    response = team_day(client)

    assert response.status_code == 400
    assert response.json()["detail"] == "No members configured"


def test_unreadable_upstream_body_only_fails_that_member(client, upstream, db):
    seed_everyone(upstream)
    upstream.proxy_pages.add("token-bea")

    response = team_day(client, refresh=True)

    assert response.status_code == 200
    data = response.json()
    assert data["stale"] is True
    assert "Bea" in data["warning"]
    members = {member["name"]: member for member in data["members"]}
    assert members["Bea"]["stale"] is True
    assert members["Ana"]["stale"] is False
    assert [entry["id"] for entry in members["Caio"]["entries"]] == ["3"]

    errors = db.query(SyncEvent).filter(SyncEvent.status == "error").all()
    assert [event.member_name for event in errors] == ["Bea"]
    assert client.get("/api/v1/quota").json()["active"] is False
