"""Tests for the monitoring lifecycle endpoints under /api/v1/monitoring."""

from __future__ import annotations

from fastapi.testclient import TestClient

from defi_alerts.core.enums import WidgetType


def test_status_reports_stopped_initially(client: TestClient):
    resp = client.get("/api/v1/monitoring/status")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["running"] is False
    assert data["interval_seconds"] == 3600
    assert data["last_cycle"] is None


def test_start_and_stop_are_idempotent(client: TestClient):
    for _ in range(2):
        resp = client.post("/api/v1/monitoring/start")
        assert resp.status_code == 200
        assert resp.json()["data"]["running"] is True
    assert client.get("/api/v1/monitoring/status").json()["data"]["running"] is True

    for _ in range(2):
        resp = client.post("/api/v1/monitoring/stop")
        assert resp.json()["data"]["running"] is False
    assert client.get("/api/v1/monitoring/status").json()["data"]["running"] is False


def test_run_cycle_returns_report(client: TestClient, metrics, notifier):
    resp = client.post(
        "/api/v1/alerts",
        json={
            "alert_name": "HF watch",
            "widget_type": "healthFactor",
            "condition": "less_than",
            "threshold": 1.5,
            "notify_target": "123456",
        },
    )
    assert resp.status_code == 201
    client.post(
        "/api/v1/alerts",
        json={
            "alert_name": "APY watch",
            "widget_type": "netAPY",
            "condition": "less_than",
            "threshold": 0.0,
            "notify_target": "123456",
        },
    )
    metrics.set_metric(WidgetType.HEALTH_FACTOR, 1.1)

    report = client.post("/api/v1/monitoring/run-cycle").json()["data"]
    assert report["evaluated"] == 2
    assert report["counts"]["FIRED"] == 1
    assert report["counts"]["FAILED"] == 1
    assert len(notifier.sent) == 1

    # Second cycle inside the cooldown window does not notify again
    report = client.post("/api/v1/monitoring/run-cycle").json()["data"]
    assert report["counts"]["COOLDOWN"] == 1
    assert len(notifier.sent) == 1

    status = client.get("/api/v1/monitoring/status").json()["data"]
    assert status["last_cycle"]["evaluated"] == 2
