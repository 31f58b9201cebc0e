"""Tests for the FastAPI server."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from src.api import server
from src.api.server import app

client = TestClient(app)


def contract_doc(**overrides):
    doc = {
        "contract_id": "trip-042",
        "name": "Lisbon offsite",
        "regime": "hard",
        "boundary": (datetime.now(timezone.utc) + timedelta(days=3)).isoformat(),
        "context": "Flight to Lisbon",
        "documents": [{"document_type": "boarding_pass", "reference_code": "XYZ1234"}],
    }
    doc.update(overrides)
    return doc


@pytest.fixture(autouse=True)
def clear_monitors():
    server.monitors.clear()
    server.pollers.clear()
    yield
    server.monitors.clear()
    server.pollers.clear()


class TestStatelessEndpoints:
    def test_health(self):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.json()["active_contracts"] == 0

    def test_parse_boarding_pass(self):
        resp = client.post("/boarding_pass/parse", json={
            "payload": "Flight AB123 JFK-LAX 2025-03-10 14:30 REF: XYZ1234",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["flight_number"] == "AB123"
        assert body["boundary_local"] == "2025-03-10T14:30"

    def test_suggest_documents(self):
        resp = client.post("/documents/suggest", json={
            "regime": "hard",
            "context": "flight to the festival",
            "documents": [{"document_type": "flight_itinerary", "title": "Booking"}],
        })
        assert resp.status_code == 200
        types = [s["document_type"] for s in resp.json()["suggestions"]]
        assert "boarding_pass" in types
        assert "event_ticket" in types
        assert resp.json()["readiness"]["label"] == "thin"

    def test_suggest_rejects_unknown_regime(self):
        resp = client.post("/documents/suggest", json={"regime": "flexible"})
        assert resp.status_code == 422

    def test_evaluate(self):
        now = "2026-03-10T12:00:00+00:00"
        resp = client.post("/evaluate", json={
            "contract": contract_doc(boundary="2026-03-10T15:00:00+00:00"),
            "now": now,
        })
        assert resp.status_code == 200
        snapshot = resp.json()["snapshot"]
        assert snapshot["remaining_margin"] == "3h 0m"
        assert snapshot["intervention"] == "PLAN B"
        assert snapshot["evaluated_at"] == now

    def test_evaluate_with_planner_signal(self):
        doc = contract_doc(couplings={"planner": {"enabled": True, "provider": {"provider": "ics_feed"}}})
        resp = client.post("/evaluate", json={
            "contract": doc,
            "planner_signal": {"total_tasks": 4, "completed_tasks": 2, "overdue_tasks": 1},
        })
        snapshot = resp.json()["snapshot"]
        assert snapshot["planner_weight"] == 1.0
        assert snapshot["coupling_statuses"]["planner"] == "ready"

    def test_evaluate_malformed_contract(self):
        resp = client.post("/evaluate", json={"contract": {"contract_id": "x", "regime": "sometimes"}})
        assert resp.status_code == 422
        assert "regime" in resp.json()["detail"]


class TestContractLifecycle:
    def test_activate(self):
        resp = client.post("/contracts", json={"contract": contract_doc()})
        assert resp.status_code == 201
        body = resp.json()
        assert body["contract"]["contract_id"] == "trip-042"
        assert body["polling"] is False
        assert "trip-042" in server.monitors

    def test_activate_twice_conflicts(self):
        client.post("/contracts", json={"contract": contract_doc()})
        resp = client.post("/contracts", json={"contract": contract_doc()})
        assert resp.status_code == 409

    def test_activation_validation_errors(self):
        resp = client.post("/contracts", json={"contract": contract_doc(name="", boundary=None)})
        assert resp.status_code == 422
        assert resp.json()["detail"]["missing_fields"] == ["name", "boundary"]
        assert "trip-042" not in server.monitors

    def test_check_escalates_on_second_call(self):
        resp = client.post("/contracts", json={"contract": contract_doc(
            boundary=(datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
        )})
        assert resp.status_code == 201

        first = client.post("/contracts/trip-042/check").json()
        second = client.post("/contracts/trip-042/check", json={}).json()
        assert first["escalation"] is None
        assert first["snapshot"]["intervention"] == "PLAN B"
        assert second["escalation"]["intervention"] == "PLAN B"
        assert second["track"]["escalated"] is True

    def test_acknowledge_and_get(self):
        client.post("/contracts", json={"contract": contract_doc(
            boundary=(datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
        )})
        client.post("/contracts/trip-042/check")
        client.post("/contracts/trip-042/check")

        ack = client.post("/contracts/trip-042/acknowledge").json()
        assert ack["track"]["violation_streak"] == 0
        assert ack["track"]["escalated"] is False

        state = client.get("/contracts/trip-042").json()
        assert state["track"]["escalated"] is False
        assert state["last_check"]["escalation"]["intervention"] == "PLAN B"

    def test_coupling_override(self):
        client.post("/contracts", json={"contract": contract_doc()})
        resp = client.post("/contracts/trip-042/check", json={
            "couplings": {"weather_status": "error"},
        })
        assert resp.status_code == 200
        assert resp.json()["snapshot"]["coupling_statuses"]["weather"] == "inactive"

    def test_unknown_contract(self):
        assert client.post("/contracts/nope/check").status_code == 404
        assert client.post("/contracts/nope/acknowledge").status_code == 404
        assert client.get("/contracts/nope").status_code == 404
