from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from triage_lib.api import TriageServices, build_engine, build_redis_services, create_app
from triage_lib.config.settings import AlertSettings, TriageSettings, WorkflowSettings
from triage_lib.core.engine import GREETING, WorkflowEngine
from triage_lib.core.templates import TemplateCatalog
from triage_lib.infrastructure.history import RedisHistoryStore
from triage_lib.infrastructure.llm.embeddings import HashingEmbeddingService
from triage_lib.infrastructure.llm.gateway import ModelGateway
from triage_lib.infrastructure.notifications import BackgroundAlertChannel, WebhookAlertChannel
from triage_lib.infrastructure.storage import RedisIncidentStore

from conftest import CountingStore, ScriptedGateway, diagnosis_reply, intake_reply


@pytest.fixture
def client(engine, history):
    app = create_app(TriageServices(engine=engine, history=history, templates=engine.templates))
    return TestClient(app)


def _diagnose(client, gateway, incident_id="inc-1"):
    gateway.queue(
        intake_reply(questions=[], signals={"service": "payment-service", "symptom": "database timeout"}),
        diagnosis_reply(severity="CRITICAL"),
    )
    response = client.post("/api/message", json={"incidentId": incident_id, "message": "payments db timing out"})
    assert response.status_code == 200
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_and_get_incident(client):
    incident_id = client.post("/api/incident").json()["incidentId"]

    state = client.get(f"/api/incident/{incident_id}").json()["incident"]

    assert state["incidentId"] == incident_id
    assert state["openQuestions"] == []
    assert state["stage"] == "INTAKE"
    assert state["conversation"][0]["content"] == GREETING


def test_intake_turn(client, gateway):
    gateway.queue(intake_reply(signals={"service": "checkout"}, hypothesis="Bad deploy"))

    response = client.post("/api/message", json={"incidentId": "inc-1", "message": "checkout is down"})

    body = response.json()
    assert response.status_code == 200
    assert body["stage"] == "INTAKE"
    assert body["signals"] == {"service": "checkout"}
    assert body["incidentId"] == "inc-1"
    assert len(body["openQuestions"]) == 2
    assert "open_questions" not in body
    assert body["response"].startswith("💡 Bad deploy")


@pytest.mark.parametrize("payload", [
    {"incidentId": "inc-1", "message": "   "},
    {"incidentId": "", "message": "hello"},
    {"message": "hello"},
])
def test_invalid_message_rejected(client, store, payload):
    response = client.post("/api/message", json=payload)

    assert response.status_code == 422
    assert store.puts == []


def test_full_triage_then_export(client, gateway):
    assert client.post("/api/incident/inc-1/export").status_code == 400

    body = _diagnose(client, gateway)
    assert body["stage"] == "RECOMMEND"
    assert body["diagnosis"]["severity"] == "CRITICAL"

    exported = client.post("/api/incident/inc-1/export").json()
    assert exported["key"] == "reports/inc-1.md"
    assert exported["markdown"].startswith("# Incident Report: inc-1")

    as_json = client.post("/api/incident/inc-1/export", json={"format": "json"}).json()
    assert as_json["key"] == "reports/inc-1.json"


@pytest.mark.parametrize("method, path", [
    ("get", "/api/incident/%20"),
    ("get", "/api/incident/%20/similar"),
    ("get", "/api/incident/%20/template"),
    ("post", "/api/incident/%20/export"),
])
def test_blank_path_id_is_bad_request(client, method, path):
    response = getattr(client, method)(path)

    assert response.status_code == 400
    assert "incident_id" in response.json()["detail"]


def test_diagnosis_and_templates_use_camel_case(client, gateway):
    body = _diagnose(client, gateway)

    assert body["diagnosis"]["nextSteps"]["immediate"]
    assert "whatToMonitor" in body["diagnosis"]
    template = client.get("/api/incident/inc-1/template").json()["template"]
    assert template["suggestedQuestions"]
    assert "runbookUrl" in template


def test_export_rejects_unknown_format(client, gateway):
    _diagnose(client, gateway)

    assert client.post("/api/incident/inc-1/export", json={"format": "pdf"}).status_code == 422


def test_history_and_stats(client, gateway):
    _diagnose(client, gateway)

    recent = client.get("/api/history").json()["incidents"]
    by_service = client.get("/api/history", params={"service": "payment-service"}).json()["incidents"]
    searched = client.get("/api/history", params={"query": "nothing-matches"}).json()["incidents"]
    stats = client.get("/api/analytics/stats").json()

    assert [e["incidentId"] for e in recent] == ["inc-1"]
    assert [e["incidentId"] for e in by_service] == ["inc-1"]
    assert searched == []
    assert stats["total"] == 1
    assert stats["bySeverity"]["CRITICAL"] == 1
    assert stats["last24Hours"] == 1


def test_templates(client, gateway):
    templates = client.get("/api/templates").json()["templates"]
    assert {t["id"] for t in templates} == {
        "database-timeout", "deployment-failure", "api-degradation", "authentication-failure",
    }

    assert client.get("/api/incident/unknown/template").json() == {"template": None}

    _diagnose(client, gateway)
    assert client.get("/api/incident/inc-1/template").json()["template"]["id"] == "database-timeout"


def test_similar_incidents(client, gateway):
    _diagnose(client, gateway, "inc-1")
    gateway.queue(
        intake_reply(questions=[], signals={"service": "payment-service", "symptom": "database timeout errors"}),
        diagnosis_reply(),
    )
    client.post("/api/message", json={"incidentId": "inc-2", "message": "payments db again"})

    similar = client.get("/api/incident/inc-2/similar").json()["similar"]

    assert [s["incidentId"] for s in similar] == ["inc-1"]
    assert similar[0]["metadata"]["service"] == "payment-service"


def test_storage_failure_is_server_error(history):
    engine = WorkflowEngine(
        store=CountingStore(fail_gets=True), gateway=ScriptedGateway(), settings=WorkflowSettings()
    )
    client = TestClient(create_app(TriageServices(engine, history, TemplateCatalog())))

    response = client.post("/api/message", json={"incidentId": "inc-1", "message": "hello"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Incident storage unavailable"


def test_build_engine_from_default_settings():
    services = build_engine(TriageSettings())

    assert isinstance(services.engine, WorkflowEngine)
    assert isinstance(services.engine.gateway, ModelGateway)
    assert isinstance(services.engine.embedder, HashingEmbeddingService)
    assert services.engine.dispatcher.capabilities.alerts is False
    assert services.engine.dispatcher.capabilities.history is True
    assert len(services.templates) == 4


def test_build_engine_sends_alerts_in_background():
    settings = TriageSettings(alerts=AlertSettings(webhook_url="https://hooks.example.com/x", max_attempts=4))

    services = build_engine(settings)

    assert isinstance(services.alerts, BackgroundAlertChannel)
    assert isinstance(services.alerts.channel, WebhookAlertChannel)
    assert services.engine.dispatcher.alerts is services.alerts
    assert services.engine.dispatcher.capabilities.alerts is True


def test_build_engine_on_redis():
    client = AsyncMock()

    services = build_engine(TriageSettings(), redis=client)

    assert isinstance(services.engine.store, RedisIncidentStore)
    assert isinstance(services.history, RedisHistoryStore)
    assert services.engine.dispatcher.history is services.history


async def test_build_redis_services_connects(monkeypatch):
    client = AsyncMock()
    connect = AsyncMock(return_value=client)
    monkeypatch.setattr("triage_lib.api.app.get_redis_client", connect)

    services = await build_redis_services(TriageSettings())

    connect.assert_awaited_once()
    assert connect.call_args.args[0].mode == "standalone"
    assert services.engine.store.client is client
