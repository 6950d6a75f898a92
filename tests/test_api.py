"""API tests for the conflict, calendar and alert endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from studio_schedule.main import app, store


@pytest.fixture(autouse=True)
def _clear_store():
    """Reset the in-memory snapshot before each test."""
    store.jobs.replace_all([])
    store.reservations.replace_all([])
    store.assignments.replace_all([])
    yield
    store.jobs.replace_all([])
    store.reservations.replace_all([])
    store.assignments.replace_all([])


@pytest.fixture()
def client():
    return TestClient(app)


# ---------------------------------------------------------------------------
# Stub data helpers
# ---------------------------------------------------------------------------


def _job_rows() -> list[dict]:
    return [
        {
            "id": "wedding",
            "title": "Silva wedding",
            "type": "wedding",
            "status": "confirmed",
            "start_datetime": "2026-03-07T10:00:00+00:00",
            "end_datetime": "2026-03-07T12:00:00+00:00",
            "job_team_members": [{"id": "jtm-1", "user_id": "ana"}],
        },
        {
            "id": "portrait",
            "title": "Costa portrait",
            "type": "portrait",
            "status": "scheduled",
            "start_datetime": "2026-03-07T11:30:00+00:00",
            "end_datetime": "2026-03-07T13:00:00+00:00",
            "job_team_members": [{"id": "jtm-2", "user_id": "ana"}],
        },
        {
            "id": "product",
            "title": "Fashion product shoot",
            "type": "product",
            "status": "scheduled",
            "start_datetime": "2026-03-09T09:00:00+00:00",
        },
    ]


def _reservation_rows() -> list[dict]:
    return [
        {
            "id": "r1",
            "job_id": "wedding",
            "resource_id": "camera-1",
            "reserved_from": "2026-03-07T10:00:00+00:00",
            "reserved_until": "2026-03-07T12:00:00+00:00",
        },
        {
            "id": "r2",
            "job_id": "product",
            "resource_id": "camera-1",
            "reserved_from": "2026-03-07T12:00:00+00:00",
            "reserved_until": "2026-03-07T14:00:00+00:00",
        },
    ]


def _load(client: TestClient) -> None:
    assert client.put("/jobs", json=_job_rows()).status_code == 200
    assert client.put("/reservations", json=_reservation_rows()).status_code == 200


# ---------------------------------------------------------------------------
# Snapshot loading
# ---------------------------------------------------------------------------


def test_replace_jobs_reports_accepted_and_rejected(client: TestClient):
    rows = _job_rows() + [{"id": "broken", "title": "No start", "type": "event"}]

    resp = client.put("/jobs", json=rows)

    assert resp.status_code == 200
    assert resp.json() == {"collection": "jobs", "accepted": 3, "rejected": 1}
    assert len(store.assignments.list_all()) == 2


def test_replace_assignments(client: TestClient):
    resp = client.put(
        "/assignments", json=[{"job_id": "wedding", "user_id": "rui"}, {"job_id": "x"}]
    )

    assert resp.json() == {"collection": "assignments", "accepted": 1, "rejected": 1}


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


def test_list_conflicts(client: TestClient):
    _load(client)

    body = client.get("/conflicts").json()

    assert set(body) == {"wedding", "portrait", "product"}
    assert body["wedding"]["has_team_conflict"] is True
    assert body["wedding"]["has_resource_conflict"] is False
    assert body["wedding"]["conflicting_job_ids"] == ["portrait"]
    assert body["wedding"]["conflicting_member_ids"] == ["ana"]
    assert body["product"]["has_resource_conflict"] is False


def test_job_conflicts_explains_the_clash(client: TestClient):
    _load(client)

    resp = client.get("/jobs/portrait/conflicts")

    assert resp.status_code == 200
    body = resp.json()
    assert body["job"]["title"] == "Costa portrait"
    assert body["verdict"]["details"] == [
        {"kind": "team", "claim_id": "ana", "other_job_id": "wedding"}
    ]


def test_job_conflicts_404_for_missing_job(client: TestClient):
    resp = client.get("/jobs/not-found/conflicts")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Job not found"


def test_check_conflicts_for_a_moved_job(client: TestClient):
    _load(client)

    resp = client.post(
        "/conflicts/check",
        json={
            "job_id": "wedding",
            "start": "2026-03-07T06:00:00+00:00",
            "end": "2026-03-07T08:00:00+00:00",
        },
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["job_id"] == "wedding"
    assert body["has_team_conflict"] is False
    assert body["has_resource_conflict"] is False


def test_check_conflicts_requires_start(client: TestClient):
    resp = client.post("/conflicts/check", json={"job_id": "wedding"})
    assert resp.status_code == 422


def test_conflicts_follow_snapshot_changes(client: TestClient):
    _load(client)
    assert client.get("/conflicts").json()["wedding"]["has_team_conflict"] is True

    client.put("/assignments", json=[{"job_id": "wedding", "user_id": "ana"}])

    assert client.get("/conflicts").json()["wedding"]["has_team_conflict"] is False


# ---------------------------------------------------------------------------
# Calendar and alerts
# ---------------------------------------------------------------------------


def test_week_calendar(client: TestClient):
    _load(client)

    resp = client.get("/calendar", params={"granularity": "week", "anchor": "2026-03-07"})

    assert resp.status_code == 200
    buckets = resp.json()
    assert len(buckets) == 7
    saturday = buckets[6]
    assert saturday["range_start"].startswith("2026-03-07T00:00:00")
    assert [e["job"]["id"] for e in saturday["events"]] == ["wedding", "portrait"]
    assert saturday["events"][0]["verdict"]["has_team_conflict"] is True


def test_calendar_status_filter_keeps_hidden_conflicts(client: TestClient):
    _load(client)

    resp = client.get(
        "/calendar",
        params={"granularity": "day", "anchor": "2026-03-07", "status": "confirmed"},
    )

    events = resp.json()[0]["events"]
    assert [e["job"]["id"] for e in events] == ["wedding"]
    assert events[0]["verdict"]["conflicting_job_ids"] == ["portrait"]


def test_calendar_type_filter(client: TestClient):
    _load(client)

    resp = client.get(
        "/calendar",
        params={"granularity": "week", "anchor": "2026-03-09", "type": "product"},
    )

    ids = [e["job"]["id"] for b in resp.json() for e in b["events"]]
    assert ids == ["product"]


def test_naive_timestamps_are_read_as_utc(client: TestClient):
    rows = [
        {
            "id": "a",
            "title": "Morning shoot",
            "type": "portrait",
            "start_datetime": "2026-03-04T10:00:00",
            "end_datetime": "2026-03-04T12:00:00",
            "job_team_members": [{"user_id": "ana"}],
        },
        {
            "id": "b",
            "title": "Late shoot",
            "type": "portrait",
            "start_datetime": "2026-03-04T11:00:00+00:00",
            "job_team_members": [{"user_id": "ana"}],
        },
    ]
    assert client.put("/jobs", json=rows).status_code == 200

    calendar = client.get("/calendar", params={"granularity": "week", "anchor": "2026-03-04"})
    alerts = client.get("/alerts", params={"now": "2026-03-03T12:00:00"})

    assert calendar.status_code == 200
    wednesday = calendar.json()[3]
    assert [e["job"]["id"] for e in wednesday["events"]] == ["a", "b"]
    assert wednesday["events"][0]["verdict"]["has_team_conflict"] is True
    assert alerts.status_code == 200
    assert [a["entity_id"] for a in alerts.json()] == ["a", "b"]


def test_recomputer_is_shut_down_with_the_app(monkeypatch):
    calls = []

    class _Recomputer:
        def shutdown(self):
            calls.append("shutdown")

    monkeypatch.setattr("studio_schedule.main.recomputer", _Recomputer())

    with TestClient(app):
        assert calls == []

    assert calls == ["shutdown"]


def test_alerts(client: TestClient):
    _load(client)

    resp = client.get("/alerts", params={"now": "2026-03-06T12:00:00+00:00"})

    assert resp.status_code == 200
    alerts = resp.json()
    assert [a["entity_id"] for a in alerts] == ["wedding", "portrait"]
    assert all(a["priority"] == "urgent" for a in alerts)
