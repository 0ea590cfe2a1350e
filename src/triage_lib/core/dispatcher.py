"""
Side effects fired when an incident reaches RECOMMEND.

Steps:
  history     save an IncidentHistoryEntry (awaited first)
  similarity  embed the incident and upsert it into the vector index
  alert       notify the alert channel (CRITICAL/HIGH only)
  analytics   record stage transition and completion events

similarity, alert and analytics run concurrently once history has been
written. Every step is fail-soft: failures are logged at WARNING and
reported in the DispatchReport, never raised. The workflow engine calls
dispatch() at most once per incident.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Dict, List, Optional, Tuple

from triage_lib.infrastructure.analytics import AnalyticsSink
from triage_lib.infrastructure.history import HistoryStore
from triage_lib.infrastructure.llm.embeddings import EmbeddingService
from triage_lib.infrastructure.notifications import AlertChannel
from triage_lib.infrastructure.vector_index import SimilarityIndex
from triage_lib.models.common import to_json_compatible, utc_now
from triage_lib.models.history import AnalyticsEvent, IncidentHistoryEntry, NotificationMessage
from triage_lib.models.incident import Incident, IncidentStage, SignalKey


class DispatchStep(str, Enum):
    HISTORY = "history"
    SIMILARITY = "similarity"
    ALERT = "alert"
    ANALYTICS = "analytics"


class StepStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class DispatchCapabilities:
    """Which side effects this deployment supports"""

    history: bool = False
    similarity: bool = False
    alerts: bool = False
    analytics: bool = False

    @classmethod
    def from_collaborators(
        cls,
        history: Optional[HistoryStore] = None,
        embedder: Optional[EmbeddingService] = None,
        similarity: Optional[SimilarityIndex] = None,
        alerts: Optional[AlertChannel] = None,
        analytics: Optional[AnalyticsSink] = None,
    ) -> "DispatchCapabilities":
        return cls(
            history=history is not None,
            similarity=embedder is not None and similarity is not None,
            alerts=alerts is not None,
            analytics=analytics is not None,
        )


@dataclass(frozen=True)
class StepOutcome:
    step: DispatchStep
    status: StepStatus
    detail: str = ""


@dataclass
class DispatchReport:
    incident_id: str
    outcomes: Dict[DispatchStep, StepOutcome] = field(default_factory=dict)

    def record(self, outcome: StepOutcome) -> None:
        self.outcomes[outcome.step] = outcome

    def status(self, step: DispatchStep) -> Optional[StepStatus]:
        outcome = self.outcomes.get(step)
        return outcome.status if outcome else None

    @property
    def failed(self) -> List[DispatchStep]:
        return [s for s, o in self.outcomes.items() if o.status == StepStatus.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed


def incident_embedding_text(incident: Incident) -> str:
    """Text indexed for a diagnosed incident"""
    signals = incident.signals
    lines = [
        f"Service: {signals.get(SignalKey.SERVICE, 'unknown')}",
        f"Symptom: {signals.get(SignalKey.SYMPTOM, 'unknown')}",
        f"Error: {signals.get(SignalKey.PRIMARY_ERROR, 'unknown')}",
        f"Scope: {signals.get(SignalKey.SCOPE, 'unknown')}",
    ]
    if incident.diagnosis is not None:
        lines.append(f"Severity: {incident.diagnosis.severity.value}")
        lines.append(
            "Hypotheses: " + ". ".join(h.description for h in incident.diagnosis.hypotheses)
        )
    return "\n".join(lines)


def similarity_query_text(incident: Incident) -> str:
    """Text used to look up incidents similar to one still in progress"""
    signals = incident.signals
    return "\n".join([
        f"Service: {signals.get(SignalKey.SERVICE, 'unknown')}",
        f"Symptom: {signals.get(SignalKey.SYMPTOM, 'unknown')}",
        f"Error: {signals.get(SignalKey.PRIMARY_ERROR, 'unknown')}",
    ])


def _skipped(step: DispatchStep) -> StepOutcome:
    return StepOutcome(step, StepStatus.SKIPPED, "capability not configured")


class SideEffectDispatcher:
    """Fans a diagnosed incident out to history, similarity, alert and analytics backends"""

    def __init__(
        self,
        history: Optional[HistoryStore] = None,
        embedder: Optional[EmbeddingService] = None,
        similarity: Optional[SimilarityIndex] = None,
        alerts: Optional[AlertChannel] = None,
        analytics: Optional[AnalyticsSink] = None,
        capabilities: Optional[DispatchCapabilities] = None,
    ):
        self.history = history
        self.embedder = embedder
        self.similarity = similarity
        self.alerts = alerts
        self.analytics = analytics

        available = DispatchCapabilities.from_collaborators(
            history, embedder, similarity, alerts, analytics
        )
        if capabilities is None:
            capabilities = available
        else:
            missing = [
                name for name in ("history", "similarity", "alerts", "analytics")
                if getattr(capabilities, name) and not getattr(available, name)
            ]
            if missing:
                raise ValueError(f"Capabilities enabled without a collaborator: {', '.join(missing)}")
        self.capabilities = capabilities

        self.logger = logging.getLogger(__name__)

    async def dispatch(
        self,
        incident: Incident,
        previous_stage: IncidentStage = IncidentStage.DIAGNOSE,
    ) -> DispatchReport:
        if incident.diagnosis is None:
            raise ValueError(f"Incident {incident.incident_id} has no diagnosis to dispatch")

        report = DispatchReport(incident_id=incident.incident_id)

        # History completes before the concurrent steps start
        if self.capabilities.history:
            try:
                result = await self._save_history(incident)
            except Exception as e:
                result = e
            report.record(self._outcome(incident, DispatchStep.HISTORY, result))
        else:
            report.record(_skipped(DispatchStep.HISTORY))

        pending: List[Tuple[DispatchStep, Awaitable]] = []
        if self.capabilities.similarity:
            pending.append((DispatchStep.SIMILARITY, self._index_similarity(incident)))
        else:
            report.record(_skipped(DispatchStep.SIMILARITY))
        if self.capabilities.alerts:
            pending.append((DispatchStep.ALERT, self._send_alert(incident)))
        else:
            report.record(_skipped(DispatchStep.ALERT))
        if self.capabilities.analytics:
            pending.append((DispatchStep.ANALYTICS, self._record_analytics(incident, previous_stage)))
        else:
            report.record(_skipped(DispatchStep.ANALYTICS))

        results = await asyncio.gather(*(aw for _, aw in pending), return_exceptions=True)
        for (step, _), result in zip(pending, results):
            report.record(self._outcome(incident, step, result))

        self.logger.info(
            f"Dispatch for incident {incident.incident_id}: "
            + ", ".join(f"{s.value}={o.status.value}" for s, o in report.outcomes.items())
        )
        return report

    def _outcome(self, incident: Incident, step: DispatchStep, result) -> StepOutcome:
        if isinstance(result, StepOutcome):
            return result
        if isinstance(result, Exception):
            self.logger.warning(
                f"Dispatch step {step.value} failed for incident {incident.incident_id}: {result}"
            )
            return StepOutcome(step, StepStatus.FAILED, f"{type(result).__name__}: {result}")
        if isinstance(result, BaseException):
            # Cancellation and interpreter exits are not step failures
            raise result
        return StepOutcome(step, StepStatus.OK)

    # ============================================================
    # Steps
    # ============================================================
    async def _save_history(self, incident: Incident) -> None:
        await self.history.save(IncidentHistoryEntry.from_incident(incident))

    async def _index_similarity(self, incident: Incident) -> None:
        vector = await self.embedder.embed(incident_embedding_text(incident))
        await self.similarity.upsert(
            incident.incident_id,
            vector,
            {
                "service": incident.service,
                "severity": incident.diagnosis.severity.value,
                "symptom": incident.symptom,
                "created_at": to_json_compatible(incident.created_at),
            },
        )

    async def _send_alert(self, incident: Incident) -> Optional[StepOutcome]:
        severity = incident.diagnosis.severity
        if not severity.is_alertable:
            return StepOutcome(DispatchStep.ALERT, StepStatus.SKIPPED, f"severity {severity.value} not alertable")

        await self.alerts.send(
            NotificationMessage(
                incident_id=incident.incident_id,
                severity=severity.value,
                service=incident.service,
                summary=f"{severity.value} incident in {incident.service}: {incident.symptom}",
            )
        )
        return None

    async def _record_analytics(self, incident: Incident, previous_stage: IncidentStage) -> None:
        severity = incident.diagnosis.severity.value
        now = utc_now()
        await self.analytics.record(
            AnalyticsEvent(
                incident_id=incident.incident_id,
                event=f"stage_transition_{previous_stage.value}_to_{incident.stage.value}",
                service=incident.service,
                severity=severity,
                timestamp=now,
            )
        )
        await self.analytics.record(
            AnalyticsEvent(
                incident_id=incident.incident_id,
                event="incident_completed",
                service=incident.service,
                severity=severity,
                values={
                    "duration_ms": (now - incident.created_at).total_seconds() * 1000,
                    "message_count": float(len(incident.conversation)),
                },
                timestamp=now,
            )
        )
