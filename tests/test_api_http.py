import importlib

import pytest
from fastapi.testclient import TestClient

from apps.api.schemas import (
    ErrorResponse,
    HealthDocument,
    IngestResponse,
    StatsResponse,
    SyncLogsResponse,
)
from packages import metrics
from packages.errors import StoreUnavailable
from packages.store import MemoryStore
from tests.fixtures import payloads


@pytest.fixture()
def api(tmp_path, monkeypatch):
    monkeypatch.setenv("FITNESS_STORE_BACKEND", "json")
    monkeypatch.setenv("FITNESS_DATA_FILE", str(tmp_path / "health-data.json"))
    monkeypatch.setenv("FITNESS_SYNC_LOG_FILE", str(tmp_path / "sync-logs.json"))
    monkeypatch.delenv("FITNESS_SYNC_LOG_RETENTION", raising=False)

    import packages.config as config
    importlib.reload(config)
    import packages.store as store_module
    store_module.reset_store()
    import apps.api.cache as cache
    cache.clear()
    import apps.api.main as api_main
    importlib.reload(api_main)

    yield api_main
    store_module.reset_store()


@pytest.fixture()
def client(api):
    with TestClient(api.app) as client:
        yield client


def test_health_starts_empty(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"workouts": [], "dailyStats": [], "lastSync": None}


def test_health_webhook_round_trip(client):
    resp = client.post("/api/webhook/health", json=payloads.HAE_FULL)
    assert resp.status_code == 200
    body = IngestResponse.model_validate(resp.json())
    assert body.success is True
    assert body.message == "Data received"
    assert body.dailyStats == 2
    assert body.workoutIds == ["hae-run-1"]
    assert body.formats == ["data.metrics", "data.workouts"]

    doc = HealthDocument.model_validate(client.get("/api/health").json())
    assert doc.lastSync is not None
    assert [w.id for w in doc.workouts] == ["hae-run-1"]
    assert {d.date: d.steps for d in doc.dailyStats} == {"2024-01-02": 9000, "2024-01-03": 1200}


def test_unparsable_body_still_succeeds(client):
    resp = client.post(
        "/api/webhook/health",
        content=b"{not json",
        headers={"content-type": "application/json", "user-agent": "Shortcuts/1.0"},
    )
    assert resp.status_code == 200
    assert resp.json()["readings"] == 0
    logs = client.get("/api/debug").json()
    assert logs[0]["payload"] is None
    assert logs[0]["userAgent"] == "Shortcuts/1.0"


def test_workout_webhook_and_listing(client):
    resp = client.post(
        "/api/webhook/workout",
        json={"workoutActivityType": "Running", "startDate": "2024-01-04T06:00:00Z", "distance": 4.0},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Workout added"
    assert body["id"].startswith("workout-")

    client.post("/api/webhook/workout", json={"id": "w-walk", "type": "walk", "date": "2024-01-05", "distance": 1})
    client.post("/api/webhook/workout", json={"id": "w-old", "type": "run", "date": "2023-12-30", "distance": 2})

    runs = client.get("/api/workouts", params={"type": "run"}).json()
    assert [w["date"] for w in runs] == ["2024-01-04", "2023-12-30"]
    assert len(client.get("/api/workouts", params={"type": "all"}).json()) == 3
    window = client.get("/api/workouts", params={"from": "2024-01-01", "to": "2024-01-04"}).json()
    assert [w["type"] for w in window] == ["run"]
    assert len(client.get("/api/workouts", params={"limit": 1}).json()) == 1


def test_workout_webhook_rejects_unidentifiable_body(client):
    resp = client.post("/api/webhook/workout", json=["not", "an", "object"])
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] is None
    assert body["message"] == "Workout skipped"
    assert body["skipped"] == 1


def test_bad_query_values_are_422(client):
    resp = client.get("/api/workouts", params={"from": "last week"})
    assert resp.json()["error"]["code"] == "validation_error"
    assert "query.from" in resp.json()["error"]["details"]
    assert client.get("/api/workouts", params={"from": "last week"}).status_code == 422
    assert client.get("/api/workouts", params={"limit": -1}).status_code == 422
    assert client.delete("/api/daily/not-a-date").status_code == 422
    assert client.get("/api/debug/sync-logs", params={"limit": 0}).status_code == 422


def test_meal_webhook_adds_calories(client):
    client.post("/api/webhook/health", json={"calories": 400, "date": "2024-01-08"})
    resp = client.post("/api/webhook/meal", json={"timestamp": "2024-01-08T19:00:00Z", "calories": 650})
    body = resp.json()
    assert body["message"] == "Meal logged"
    assert body["date"] == "2024-01-08"
    assert body["totalCalories"] == 1050

    skipped = client.post("/api/webhook/meal", json={"foods": ["tea"]}).json()
    assert skipped["message"] == "Meal skipped"
    assert skipped["date"] is None


def test_daily_listing_and_delete(client):
    client.post("/api/webhook/health", json=payloads.SHORTCUT_VENDOR)
    client.post("/api/webhook/health", json={"steps": 10, "date": "2024-01-01"})
    rows = client.get("/api/daily", params={"from": "2024-01-02"}).json()
    assert [r["date"] for r in rows] == ["2024-01-05"]

    assert client.delete("/api/daily/2024-01-05").json() == {"success": True, "deleted": True}
    assert client.delete("/api/daily/2024-01-05").json() == {"success": True, "deleted": False}
    assert [r["date"] for r in client.get("/api/daily").json()] == ["2024-01-01"]


def test_delete_workout(client):
    client.post("/api/webhook/workout", json={"id": "gone", "type": "swim", "date": "2024-01-09"})
    assert client.delete("/api/workouts/gone").json()["deleted"] is True
    assert client.delete("/api/workouts/gone").json()["deleted"] is False
    assert client.get("/api/workouts").json() == []


def test_stats_follow_writes(client):
    empty = StatsResponse.model_validate(client.get("/api/stats").json())
    assert empty.totalWorkouts == 0

    client.post("/api/webhook/health", json=payloads.GLASSES_WORKOUT)
    client.post("/api/webhook/health", json={"steps": 12000, "date": "2024-01-06"})
    stats = StatsResponse.model_validate(client.get("/api/stats").json())
    assert stats.totalWorkouts == 1
    assert stats.byType["hike"].count == 1
    assert stats.totalSteps == 12000
    assert stats.totalDistance == pytest.approx(6.0, rel=1e-3)
    assert stats.lastSync is not None

    (workout,) = client.get("/api/workouts").json()
    client.delete(f"/api/workouts/{workout['id']}")
    assert client.get("/api/stats").json()["totalWorkouts"] == 0


def test_bulk_sync(client):
    resp = client.post(
        "/api/sync",
        json={
            "workouts": [{"id": "s1", "type": "cycle", "date": "2024-01-10", "distance": 20}],
            "dailyStats": [{"date": "2024-01-10", "steps": 3000, "distance": 1.2, "calories": 150}],
        },
    )
    body = resp.json()
    assert resp.status_code == 200
    assert (body["workoutsAdded"], body["dailyStatsAdded"]) == (1, 1)
    assert client.get("/api/daily").json() == [
        {"date": "2024-01-10", "steps": 3000, "distance": 1.2, "calories": 150}
    ]


def test_sync_logs_are_bounded_and_tagged(client):
    for i in range(12):
        client.post("/api/webhook/health", json={"steps": i + 1, "date": "2024-01-11"})
    client.post("/api/webhook/meal", json={"calories": 10, "date": "2024-01-11"})

    assert len(client.get("/api/debug").json()) == 10
    logs = SyncLogsResponse.model_validate(client.get("/api/debug/sync-logs", params={"limit": 500}).json()).logs
    assert len(logs) == 10
    assert logs[0].source == "meal"
    assert logs[1].payload == {"steps": 12, "date": "2024-01-11"}


def test_versioned_prefix(client):
    assert client.get("/api/v1/health").status_code == 200
    assert client.post("/api/v1/webhook/health", json=payloads.SHORTCUT_VENDOR).status_code == 200
    assert client.get("/api/v1/daily").json()[0]["steps"] == 8123


def test_request_id_header(client):
    resp = client.get("/api/health", headers={"x-request-id": "abc123"})
    assert resp.headers["x-request-id"] == "abc123"
    assert client.get("/api/health").headers["x-request-id"]


def test_metrics_endpoint(client):
    client.get("/api/health")
    client.post("/api/webhook/health", json=payloads.HAE_METRICS)
    resp = client.get("/api/metrics")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in resp.text
    assert 'ingest_payloads_total{source="health"}' in resp.text
    assert 'route="/api/health"' in resp.text


def test_request_metrics_label_mounted_route_templates(client):
    metrics.reset()
    client.get("/api/health")
    client.get("/api/v1/health")
    client.delete("/api/v1/workouts/abc")
    client.delete("/api/v1/workouts/xyz")
    client.get("/api/nowhere")

    counters, _ = metrics.snapshot()
    assert counters['http_requests_total{route="/api/health",status="200"}'] == 1
    assert counters['http_requests_total{route="/api/v1/health",status="200"}'] == 1
    assert counters['http_requests_total{route="/api/v1/workouts/{workout_id}",status="200"}'] == 2
    assert counters['http_requests_total{route="unmatched",status="404"}'] == 1


class BrokenStore(MemoryStore):
    def _load(self):
        raise StoreUnavailable("Failed to read health-data.json: disk gone")

    def _load_logs(self):
        raise StoreUnavailable("Failed to read sync-logs.json: disk gone")


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/api/health"),
        ("get", "/api/workouts"),
        ("get", "/api/stats"),
        ("post", "/api/webhook/health"),
        ("post", "/api/webhook/meal"),
    ],
)
def test_store_failure_is_500(api, method, path):
    from apps.api import deps

    api.app.dependency_overrides[deps.get_store] = lambda: BrokenStore()
    try:
        with TestClient(api.app) as client:
            kwargs = {"json": {"calories": 10}} if method == "post" else {}
            resp = getattr(client, method)(path, **kwargs)
    finally:
        api.app.dependency_overrides.clear()
    assert resp.status_code == 500
    error = ErrorResponse.model_validate(resp.json()).error
    assert error.code == "store_unavailable"
    assert "disk gone" in error.message
