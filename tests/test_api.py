import pytest

from app.main import create_app
from detection.alert_rules import AlertRule
from errors import DataSourceUnavailable
from ingestion.event_schema import ErrorSeverity


@pytest.fixture
def app(event_store, metrics_service, engine, error_logger):
    app = create_app(event_store, metrics_service, engine, error_logger)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _event(**fields):
    event = {"page_path": "/", "visitor_id": "v1", "session_id": "s1",
             "event_type": "page_view"}
    event.update(fields)
    return event


def test_ingest_single_event(client, event_store):
    response = client.post("/ingest", json=_event())

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "ingested": 1}
    assert event_store.count() == 1


def test_ingest_batch(client, event_store):
    response = client.post("/ingest", json=[_event(), _event(page_path="/pricing")])

    assert response.get_json()["ingested"] == 2
    assert event_store.count() == 2


def test_ingest_rejects_invalid_batch_entirely(client, event_store):
    response = client.post("/ingest", json=[_event(), _event(timestamp="not a date")])

    assert response.status_code == 400
    assert "error" in response.get_json()
    assert event_store.count() == 0


@pytest.mark.parametrize("body", [None, [], "text", [_event(), 5]])
def test_ingest_rejects_non_events(client, body):
    response = client.post("/ingest", json=body)
    assert response.status_code == 400


def test_live_metrics(client):
    client.post("/ingest", json=[
        _event(referrer="https://example.com/a"),
        _event(page_path="/docs"),
    ])

    response = client.get("/api/analytics/aggregated-metrics?live=true&range=1d")
    body = response.get_json()

    assert response.status_code == 200
    assert body["success"] is True
    assert body["isLive"] is True
    assert "generatedAt" in body
    assert body["data"]["total_page_views"] == 2
    assert body["data"]["unique_visitors"] == 1
    assert {"referrer": "example.com", "count": 1} in body["data"]["referrer_breakdown"]


def test_stored_metrics_before_any_generation(client):
    body = client.get("/api/analytics/aggregated-metrics").get_json()

    assert body == {"success": True, "data": None, "isLive": False}


def test_generate_and_read_back(client):
    client.post("/ingest", json=_event())

    generated = client.post("/api/analytics/aggregated-metrics",
                            json={"dateRange": "30d", "generateNew": True}).get_json()

    assert generated["stored"] is True
    assert generated["dateRange"]["range"] == "30d"
    assert generated["data"]["total_page_views"] == 1

    stored = client.get("/api/analytics/aggregated-metrics?range=30d").get_json()
    assert stored["isLive"] is False
    assert stored["data"] == generated["data"]

    metric = client.get("/api/analytics/aggregated-metrics?range=30d&metric=total_page_views")
    assert metric.get_json()["data"] == 1


def test_generate_without_storing(client):
    body = client.post("/api/analytics/aggregated-metrics", json={}).get_json()

    assert body["stored"] is False
    assert body["dateRange"]["range"] == "7d"
    assert client.get("/api/analytics/aggregated-metrics").get_json()["data"] is None


def test_error_report_fires_critical_rule(client, engine):
    engine.add_rule(AlertRule(id="critical-errors", pattern="critical|fatal|crash",
                              severity=ErrorSeverity.CRITICAL, threshold=1, time_window=5))

    response = client.post("/errors", json={"message": "Fatal: disk full",
                                            "severity": "critical"})
    body = response.get_json()

    assert response.status_code == 200
    assert body["alert"]["rule_id"] == "critical-errors"
    assert body["alert"]["count"] == 1


def test_error_report_without_match(client):
    body = client.post("/errors", json={"message": "minor glitch"}).get_json()
    assert body == {"status": "ok", "alert": None}


def test_error_report_validation(client):
    assert client.post("/errors", json={"severity": "huge"}).status_code == 400
    assert client.post("/errors", json=["not", "an", "object"]).status_code == 400


def test_error_stats_endpoint(client):
    client.post("/errors", json={"message": "timeout", "severity": "high", "category": "api"})

    body = client.get("/errors/stats?days=1").get_json()

    assert body["success"] is True
    assert body["data"]["total_errors"] == 1
    assert body["data"]["errors_by_category"]["api"] == 1
    assert body["data"]["top_errors"] == [{"message": "timeout", "count": 1}]


def test_alert_rules_crud(client):
    assert client.get("/api/alerts/rules").get_json() == {"rules": []}

    created = client.post("/api/alerts/rules", json={
        "id": "pay", "pattern": "payment", "severity": "high",
        "threshold": 2, "time_window": 5,
    })
    assert created.status_code == 201
    assert created.get_json()["rule"]["id"] == "pay"

    rules = client.get("/api/alerts/rules").get_json()["rules"]
    assert [r["id"] for r in rules] == ["pay"]

    assert client.delete("/api/alerts/rules/pay").status_code == 200
    assert client.get("/api/alerts/rules").get_json() == {"rules": []}
    # Removing again is fine
    assert client.delete("/api/alerts/rules/pay").status_code == 200


def test_invalid_rule_is_rejected(client):
    response = client.post("/api/alerts/rules", json={
        "id": "bad", "pattern": "(oops", "severity": "high",
        "threshold": 1, "time_window": 5,
    })
    assert response.status_code == 400
    assert client.post("/api/alerts/rules", json={"id": "x"}).status_code == 400


def test_health(client):
    client.post("/ingest", json=_event())

    body = client.get("/health").get_json()

    assert body["status"] == "ok"
    assert body["events"] == 1
    assert body["alert_rules"] == 0
    assert body["memory_mb"] > 0


def test_store_down_returns_503(client, metrics_service, monkeypatch):
    def down(*args, **kwargs):
        raise DataSourceUnavailable("connection lost")

    monkeypatch.setattr(metrics_service, "live", down)

    response = client.get("/api/analytics/aggregated-metrics?live=true")

    assert response.status_code == 503
    assert response.get_json()["success"] is False
    assert response.get_json()["error"] == "Event store unavailable"


def test_unexpected_error_returns_500_and_is_logged(client, metrics_service, event_store,
                                                    monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(metrics_service, "stored", broken)

    response = client.get("/api/analytics/aggregated-metrics")
    body = response.get_json()

    assert response.status_code == 500
    assert body == {"success": False, "error": "Internal server error", "details": "kaboom"}

    stats = client.get("/errors/stats").get_json()["data"]
    assert stats["errors_by_category"]["api"] == 1
    assert stats["errors_by_severity"]["high"] == 1


def test_unknown_route_is_still_404(client):
    assert client.get("/nope").status_code == 404


def test_live_metrics_survive_an_oversized_timezone(client):
    client.post("/ingest", json=[
        _event(metadata={"timezone": 10 ** 400}),
        _event(visitor_id="v2", metadata={"timezone": 2}),
    ])

    response = client.get("/api/analytics/aggregated-metrics?range=7d&live=true")

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["unique_visitors"] == 2
    assert {"timezone": "unknown", "count": 1} in data["timezone_distribution"]


@pytest.mark.parametrize("days", ["0", "-3", "366", "99999999999"])
def test_error_stats_rejects_out_of_range_days(client, days):
    response = client.get(f"/errors/stats?days={days}")

    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_error_stats_accepts_a_year(client):
    assert client.get("/errors/stats?days=365").status_code == 200
