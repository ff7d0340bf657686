import pytest
from fastapi.testclient import TestClient

from app.models.daily_member_stat import DailyMemberStat
from app.models.project import Project
from app.models.time_entry import TimeEntry

URL = "/api/v1/time-entries/manual"


def manual_body(**overrides) -> dict:
    body = {
        "member": "Ana",
        "description": "Planning",
        "project": "Internal Ops",
        "startAt": "2024-03-01T09:00:00Z",
        "durationMinutes": 45,
        "tzOffset": 0,
    }
    body.update(overrides)
    return body


def test_creates_entry_project_and_stats(client: TestClient, db):
    response = client.post(URL, json=manual_body())

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["member"] == "Ana"
    assert data["entry"]["duration"] == 2700
    assert data["entry"]["source"] == "manual"
    assert data["project"] == {"key": "manual:internal-ops", "name": "Internal Ops", "type": "work"}

    assert db.query(Project).filter(Project.project_key == "manual:internal-ops").count() == 1
    stat = db.query(DailyMemberStat).one()
    assert stat.total_seconds == 2700


def test_same_idempotency_key_replays_byte_identical_response(client: TestClient, db):
    headers = {"Idempotency-Key": "retry-123"}

    first = client.post(URL, json=manual_body(), headers=headers)
    second = client.post(URL, json=manual_body(), headers=headers)

    assert first.status_code == second.status_code == 200
    assert first.content == second.content
    assert db.query(TimeEntry).count() == 1


def test_replay_ignores_a_changed_body(client: TestClient, db):
    headers = {"Idempotency-Key": "retry-456"}

    first = client.post(URL, json=manual_body(), headers=headers)
    second = client.post(URL, json=manual_body(startAt="2024-03-01T15:00:00Z"), headers=headers)

    assert first.content == second.content
    assert db.query(TimeEntry).count() == 1


def test_idempotency_key_is_scoped_per_member(client: TestClient, db):
    headers = {"Idempotency-Key": "shared"}

    client.post(URL, json=manual_body(), headers=headers)
    other = client.post(URL, json=manual_body(member="Bea"), headers=headers)

    assert other.json()["member"] == "Bea"
    assert db.query(TimeEntry).count() == 2


def test_without_key_every_request_executes(client: TestClient, db):
    client.post(URL, json=manual_body())
    client.post(URL, json=manual_body(startAt="2024-03-01T11:00:00Z"))

    assert db.query(TimeEntry).count() == 2


def test_same_start_and_duration_without_key_overwrites_the_entry(client: TestClient, db):
    client.post(URL, json=manual_body())
    second = client.post(URL, json=manual_body(description="Retro", project="Hiring"))

    assert second.status_code == 200
    row = db.query(TimeEntry).one()
    assert row.description == "Retro"
    assert row.project_key == "manual:hiring"
    assert db.query(DailyMemberStat).one().total_seconds == 2700


@pytest.mark.parametrize("duration", [0, -5])
def test_non_positive_duration_is_rejected(client: TestClient, duration):
    response = client.post(URL, json=manual_body(durationMinutes=duration))

    assert response.status_code == 400


def test_unknown_member_is_not_found(client: TestClient):
    response = client.post(URL, json=manual_body(member="Zed"))

    assert response.status_code == 404


def test_invalid_start_is_rejected(client: TestClient):
    response = client.post(URL, json=manual_body(startAt="yesterday"))

    assert response.status_code == 400


def test_entry_without_project(client: TestClient):
    data = client.post(URL, json=manual_body(project="  ")).json()

    assert data["project"] is None
    assert data["entry"]["projectKey"] is None
