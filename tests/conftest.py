import asyncio
import json
from typing import List, Optional

import pytest

from triage_lib.config.settings import WorkflowSettings
from triage_lib.core.dispatcher import SideEffectDispatcher
from triage_lib.core.engine import WorkflowEngine
from triage_lib.exceptions import StorageError
from triage_lib.infrastructure.analytics import LoggingAnalyticsSink
from triage_lib.infrastructure.history import InMemoryHistoryStore
from triage_lib.infrastructure.llm.embeddings import HashingEmbeddingService
from triage_lib.infrastructure.llm.gateway import BaseModelGateway
from triage_lib.infrastructure.notifications import QueueAlertChannel
from triage_lib.infrastructure.reports import InMemoryReportStore
from triage_lib.infrastructure.storage import InMemoryIncidentStore
from triage_lib.infrastructure.vector_index import InMemoryVectorIndex
from triage_lib.models.incident import (
    ConfidenceLevel,
    Diagnosis,
    Hypothesis,
    Incident,
    IncidentStage,
    NextSteps,
    Severity,
)


def intake_reply(questions=("Which region is affected?", "When did it start?"), signals=None, hypothesis=""):
    return json.dumps({
        "questions": list(questions),
        "inferredSignals": signals or {},
        "shortHypothesis": hypothesis,
    })


def diagnosis_reply(severity="HIGH", description="Bad deploy introduced a regression"):
    return json.dumps({
        "severity": severity,
        "hypotheses": [
            {"description": description, "confidence": "HIGH", "reasoning": "Errors began right after the deploy"},
            {"description": "Database saturation", "confidence": "LOW", "reasoning": "No DB alarms yet"},
        ],
        "nextSteps": {
            "immediate": ["Roll back the last deploy", "Page the owning team"],
            "deeper": ["Diff the release", "Review error logs"],
        },
        "whatToMonitor": ["5xx rate", "p99 latency"],
    })


def make_diagnosis(severity: Severity = Severity.HIGH) -> Diagnosis:
    return Diagnosis(
        severity=severity,
        hypotheses=[
            Hypothesis(
                description="Connection pool exhausted",
                confidence=ConfidenceLevel.HIGH,
                reasoning="Timeouts on every query",
            )
        ],
        next_steps=NextSteps(immediate=["Raise pool size"], deeper=["Audit slow queries"]),
        what_to_monitor=["Active connections"],
    )


def make_diagnosed_incident(incident_id="inc-1", severity=Severity.HIGH, **signals) -> Incident:
    return Incident(
        incident_id=incident_id,
        stage=IncidentStage.RECOMMEND,
        signals=signals or {"service": "payment-service", "symptom": "database timeout"},
        diagnosis=make_diagnosis(severity),
    )


class ScriptedGateway(BaseModelGateway):
    """Returns queued responses in order; queued exceptions are raised"""

    def __init__(self, *responses, delay: float = 0):
        self.responses: List = list(responses)
        self.prompts: List[str] = []
        self.delay = delay

    def queue(self, *responses) -> None:
        self.responses.extend(responses)

    async def generate(self, prompt: str, temperature: float = 0.3, max_tokens: int = 1024) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.responses:
            raise AssertionError("ScriptedGateway ran out of responses")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class CountingStore(InMemoryIncidentStore):
    def __init__(
        self,
        fail_puts: bool = False,
        fail_gets: bool = False,
        fail_after_puts: Optional[int] = None,
    ):
        super().__init__()
        self.puts: List[Incident] = []
        self.fail_puts = fail_puts
        self.fail_after_puts = fail_after_puts
        self.fail_gets = fail_gets

    async def get(self, incident_id: str) -> Optional[Incident]:
        if self.fail_gets:
            raise StorageError("read failed", error_code="STORAGE_READ_FAILED")
        return await super().get(incident_id)

    async def put(self, incident: Incident) -> None:
        limit_reached = self.fail_after_puts is not None and len(self.puts) >= self.fail_after_puts
        if self.fail_puts or limit_reached:
            raise StorageError("write failed", error_code="STORAGE_WRITE_FAILED")
        self.puts.append(incident.model_copy(deep=True))
        await super().put(incident)


@pytest.fixture
def settings():
    return WorkflowSettings()


@pytest.fixture
def store():
    return CountingStore()


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def history():
    return InMemoryHistoryStore()


@pytest.fixture
def alerts():
    return QueueAlertChannel()


@pytest.fixture
def analytics():
    return LoggingAnalyticsSink()


@pytest.fixture
def embedder():
    return HashingEmbeddingService(dimensions=256)


@pytest.fixture
def vector_index():
    return InMemoryVectorIndex()


@pytest.fixture
def report_store():
    return InMemoryReportStore()


@pytest.fixture
def dispatcher(history, embedder, vector_index, alerts, analytics):
    return SideEffectDispatcher(
        history=history,
        embedder=embedder,
        similarity=vector_index,
        alerts=alerts,
        analytics=analytics,
    )


@pytest.fixture
def engine(store, gateway, dispatcher, settings, embedder, vector_index, report_store, analytics):
    return WorkflowEngine(
        store=store,
        gateway=gateway,
        dispatcher=dispatcher,
        settings=settings,
        embedder=embedder,
        similarity=vector_index,
        report_store=report_store,
        analytics=analytics,
    )
