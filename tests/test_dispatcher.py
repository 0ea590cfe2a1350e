import pytest

from triage_lib.core.dispatcher import (
    DispatchCapabilities,
    DispatchStep,
    SideEffectDispatcher,
    StepStatus,
    incident_embedding_text,
    similarity_query_text,
)
from triage_lib.infrastructure.notifications import AlertChannel
from triage_lib.models.incident import Incident, Severity

from conftest import make_diagnosed_incident


class BrokenAlertChannel(AlertChannel):
    async def send(self, notification):
        raise ConnectionError("webhook unreachable")


class BrokenHistory:
    async def save(self, entry):
        raise RuntimeError("history down")


async def test_all_steps_run_for_high_severity(dispatcher, history, vector_index, alerts, analytics):
    incident = make_diagnosed_incident(severity=Severity.HIGH)

    report = await dispatcher.dispatch(incident)

    assert report.ok
    for step in DispatchStep:
        assert report.status(step) == StepStatus.OK
    assert len(history) == 1
    assert len(vector_index) == 1
    assert alerts.queue.qsize() == 1
    assert [e.event for e in analytics.events] == [
        "stage_transition_DIAGNOSE_to_RECOMMEND",
        "incident_completed",
    ]
    assert analytics.events[1].values["message_count"] == 0.0


@pytest.mark.parametrize("severity", [Severity.MEDIUM, Severity.LOW])
async def test_alert_skipped_below_high(dispatcher, alerts, severity):
    report = await dispatcher.dispatch(make_diagnosed_incident(severity=severity))

    assert report.status(DispatchStep.ALERT) == StepStatus.SKIPPED
    assert alerts.queue.qsize() == 0


async def test_critical_alert_summary(dispatcher, alerts):
    await dispatcher.dispatch(make_diagnosed_incident(severity=Severity.CRITICAL))

    notification = alerts.queue.get_nowait()
    assert notification.severity == "CRITICAL"
    assert notification.service == "payment-service"
    assert notification.summary == "CRITICAL incident in payment-service: database timeout"


async def test_similarity_metadata(dispatcher, vector_index, embedder):
    incident = make_diagnosed_incident()
    await dispatcher.dispatch(incident)

    vector = await embedder.embed(incident_embedding_text(incident))
    match = (await vector_index.query(vector, top_k=1))[0]

    assert match.id == "inc-1"
    assert match.score == pytest.approx(1.0)
    assert match.metadata["service"] == "payment-service"
    assert match.metadata["severity"] == "HIGH"
    assert match.metadata["symptom"] == "database timeout"
    assert match.metadata["created_at"].endswith("Z")


async def test_no_collaborators_skips_everything():
    report = await SideEffectDispatcher().dispatch(make_diagnosed_incident())

    assert {o.status for o in report.outcomes.values()} == {StepStatus.SKIPPED}
    assert report.ok


async def test_failed_step_is_reported_not_raised(history, alerts, analytics):
    dispatcher = SideEffectDispatcher(history=history, alerts=BrokenAlertChannel(), analytics=analytics)

    report = await dispatcher.dispatch(make_diagnosed_incident(severity=Severity.CRITICAL))

    assert report.failed == [DispatchStep.ALERT]
    assert "webhook unreachable" in report.outcomes[DispatchStep.ALERT].detail
    assert len(history) == 1
    assert len(analytics.events) == 2


async def test_history_failure_does_not_block_other_steps(alerts):
    dispatcher = SideEffectDispatcher(history=BrokenHistory(), alerts=alerts)

    report = await dispatcher.dispatch(make_diagnosed_incident())

    assert report.status(DispatchStep.HISTORY) == StepStatus.FAILED
    assert report.status(DispatchStep.ALERT) == StepStatus.OK


async def test_disabled_capability_is_not_called(history, alerts):
    dispatcher = SideEffectDispatcher(
        history=history,
        alerts=alerts,
        capabilities=DispatchCapabilities(history=True, alerts=False),
    )

    report = await dispatcher.dispatch(make_diagnosed_incident(severity=Severity.CRITICAL))

    assert report.status(DispatchStep.ALERT) == StepStatus.SKIPPED
    assert alerts.queue.qsize() == 0
    assert len(history) == 1


def test_capability_without_collaborator_rejected():
    with pytest.raises(ValueError, match="alerts"):
        SideEffectDispatcher(capabilities=DispatchCapabilities(alerts=True))


def test_capabilities_derived_from_collaborators(history, embedder):
    capabilities = DispatchCapabilities.from_collaborators(history=history, embedder=embedder)

    assert capabilities.history is True
    # An embedder alone is not enough to index
    assert capabilities.similarity is False


async def test_dispatch_requires_diagnosis(dispatcher):
    with pytest.raises(ValueError):
        await dispatcher.dispatch(Incident(incident_id="inc-1"))


def test_embedding_texts():
    incident = make_diagnosed_incident(
        service="checkout", symptom="500s", primaryError="NPE"
    )

    indexed = incident_embedding_text(incident)
    query = similarity_query_text(incident)

    assert indexed.splitlines()[:3] == query.splitlines()
    assert "Scope: unknown" in indexed
    assert "Severity: HIGH" in indexed
    assert "Hypotheses: Connection pool exhausted" in indexed
