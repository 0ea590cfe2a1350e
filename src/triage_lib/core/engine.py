"""
Incident workflow engine.

Drives one incident through INTAKE → DIAGNOSE → RECOMMEND, one user turn at
a time. Each incident behaves as a single-owner actor: every call for an id
runs under that id's lock, and calls for different ids run in parallel.

Per turn:
  1. append the user message
  2. run the step for the current stage (INTAKE may advance and fall through
     to DIAGNOSE within the same turn)
  3. append the assistant message, persist, and, if the incident just reached
     RECOMMEND, dispatch side effects

Each step works on a copy of the incident. A step that fails is discarded and
the turn continues from the last committed copy with a recovery message, so
an INTAKE → DIAGNOSE advance survives a diagnosis failure later in the same
turn. StorageError is never recovered here.
"""

import logging
import uuid
from typing import List, Optional, Tuple

from triage_lib.config.settings import WorkflowSettings, get_settings
from triage_lib.core.dispatcher import SideEffectDispatcher, similarity_query_text
from triage_lib.core.parser import ResponseParser
from triage_lib.core.policy import TransitionPolicy
from triage_lib.core.prompts import build_diagnosis_prompt, build_intake_prompt
from triage_lib.core.report import (
    format_diagnosis_message,
    format_intake_message,
    render_incident_report,
)
from triage_lib.core.signals import count_signals, has_minimum_signals, merge_signals
from triage_lib.core.templates import TemplateCatalog
from triage_lib.exceptions import DiagnosisNotReadyError, GatewayError, InvalidTurnError, StorageError
from triage_lib.infrastructure.analytics import AnalyticsSink
from triage_lib.infrastructure.llm.embeddings import EmbeddingService
from triage_lib.infrastructure.llm.gateway import BaseModelGateway
from triage_lib.infrastructure.reports import ReportStore
from triage_lib.infrastructure.storage import IncidentStore
from triage_lib.infrastructure.vector_index import SimilarityIndex
from triage_lib.models.api_models import ExportResponse, TurnResult
from triage_lib.models.history import AnalyticsEvent, IncidentTemplate, SimilarIncident
from triage_lib.models.incident import Incident, IncidentStage, MessageRole, is_valid_transition
from triage_lib.utils.keyed_lock import KeyedLock

GREETING = (
    "👋 I'm your AI incident triage assistant. I'll help you quickly assess and diagnose "
    "this incident. Let's start by understanding what's happening. "
    "Can you describe the issue you're seeing?"
)

CLOSING_MESSAGE = "Incident triage complete. You can review the recommendations above."

ERROR_MESSAGE = (
    "I encountered an error processing your message. Please try again or rephrase your input."
)

INTAKE_ERROR_MESSAGE = (
    "Could you provide more details about:\n"
    "1. What service or component is affected?\n"
    "2. What symptoms are you observing?\n"
    "3. Is this affecting all users or a specific region?"
)


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidTurnError(f"{field_name} must not be blank", error_code="INVALID_TURN")
    return str(value).strip()


class WorkflowEngine:
    """Stage machine for incident triage conversations.

    Usage:
        engine = WorkflowEngine(store=InMemoryIncidentStore(), gateway=ModelGateway())
        result = await engine.process_turn("inc-42", "payments API returns 500s in us-east")
    """

    def __init__(
        self,
        store: IncidentStore,
        gateway: BaseModelGateway,
        parser: Optional[ResponseParser] = None,
        policy: Optional[TransitionPolicy] = None,
        dispatcher: Optional[SideEffectDispatcher] = None,
        settings: Optional[WorkflowSettings] = None,
        embedder: Optional[EmbeddingService] = None,
        similarity: Optional[SimilarityIndex] = None,
        templates: Optional[TemplateCatalog] = None,
        report_store: Optional[ReportStore] = None,
        analytics: Optional[AnalyticsSink] = None,
    ):
        self.settings = settings or get_settings().workflow
        self.store = store
        self.gateway = gateway
        self.parser = parser or ResponseParser(fallback_severity=self.settings.fallback_severity)
        self.policy = policy or TransitionPolicy(
            signal_threshold=self.settings.signal_threshold,
            user_turn_threshold=self.settings.user_turn_threshold,
        )
        self.dispatcher = dispatcher or SideEffectDispatcher()
        self.embedder = embedder
        self.similarity = similarity
        self.templates = templates or TemplateCatalog()
        self.report_store = report_store
        self.analytics = analytics

        self._locks = KeyedLock()
        self.logger = logging.getLogger(__name__)

    # ============================================================
    # Public operations
    # ============================================================
    async def process_turn(self, incident_id: str, user_text: str) -> TurnResult:
        """Apply one user message to an incident and return the assistant reply.

        Raises:
            InvalidTurnError: Blank incident id or message (nothing is read or written)
            StorageError: The incident could not be loaded or persisted
        """
        incident_id = _require_text(incident_id, "incident_id")
        user_text = _require_text(user_text, "message")

        async with self._locks.hold(incident_id):
            incident = await self._load_or_create(incident_id)
            starting_stage = incident.stage

            incident = incident.model_copy(deep=True)
            incident.add_message(MessageRole.USER, user_text)

            incident, response = await self._run_stages(incident, user_text)

            incident.add_message(MessageRole.ASSISTANT, response)
            incident.touch()
            await self.store.put(incident)

            if incident.stage == IncidentStage.RECOMMEND and starting_stage != IncidentStage.RECOMMEND:
                await self.dispatcher.dispatch(incident, previous_stage=IncidentStage.DIAGNOSE)

            self.logger.info(
                f"Incident {incident_id} turn {incident.user_turn_count}: "
                f"{starting_stage.value} -> {incident.stage.value}"
            )
            return TurnResult.from_incident(incident, response)

    async def get_state(self, incident_id: str) -> Incident:
        """Current incident snapshot; created with a greeting on first access"""
        incident_id = _require_text(incident_id, "incident_id")
        async with self._locks.hold(incident_id):
            return await self._load_or_create(incident_id)

    async def create_incident(self, incident_id: Optional[str] = None) -> Incident:
        return await self.get_state(incident_id or str(uuid.uuid4()))

    async def find_similar(self, incident_id: str, top_k: int = 3) -> List[SimilarIncident]:
        """Past incidents resembling this one, best first. Empty when unavailable."""
        incident_id = _require_text(incident_id, "incident_id")
        if self.embedder is None or self.similarity is None or top_k <= 0:
            return []

        async with self._locks.hold(incident_id):
            incident = await self.store.get(incident_id)
        if incident is None:
            return []

        try:
            vector = await self.embedder.embed(similarity_query_text(incident))
            # One extra result since the incident may match itself
            matches = await self.similarity.query(vector, top_k=top_k + 1)
        except Exception as e:
            self.logger.warning(f"Similarity lookup failed for incident {incident_id}: {e}")
            return []

        return [
            SimilarIncident(incident_id=m.id, similarity=m.score, metadata=m.metadata)
            for m in matches
            if m.id != incident_id
        ][:top_k]

    async def suggest_template(self, incident_id: str) -> Optional[IncidentTemplate]:
        incident_id = _require_text(incident_id, "incident_id")
        async with self._locks.hold(incident_id):
            incident = await self.store.get(incident_id)
        return self.templates.match(incident.signals) if incident else None

    async def export_report(self, incident_id: str, fmt: str = "md") -> ExportResponse:
        """Render the post-incident report and store it when a report store is configured.

        Raises:
            DiagnosisNotReadyError: The incident does not exist or has no diagnosis yet
        """
        incident_id = _require_text(incident_id, "incident_id")
        async with self._locks.hold(incident_id):
            incident = await self.store.get(incident_id)

        if incident is None or incident.diagnosis is None:
            raise DiagnosisNotReadyError(
                f"No diagnosis available for incident {incident_id}",
                error_code="DIAGNOSIS_NOT_READY",
                context={"incident_id": incident_id},
            )

        markdown = render_incident_report(incident, "md")
        if self.report_store is None:
            return ExportResponse(markdown=markdown)

        key = f"reports/{incident_id}.{fmt}"
        content = markdown if fmt == "md" else render_incident_report(incident, fmt)
        content_type = "text/markdown" if fmt == "md" else "application/json"
        url = await self.report_store.put(key, content, content_type=content_type)
        self.logger.info(f"Exported report for incident {incident_id} to {key}")
        return ExportResponse(key=key, markdown=markdown, url=url)

    # ============================================================
    # Stage steps
    # ============================================================
    async def _run_stages(self, incident: Incident, user_text: str) -> Tuple[Incident, str]:
        if incident.stage == IncidentStage.INTAKE:
            try:
                advanced, response = await self._intake_step(incident.model_copy(deep=True), user_text)
            except StorageError:
                raise
            except GatewayError as e:
                self.logger.warning(f"Intake failed for incident {incident.incident_id}: {e}")
                return incident, INTAKE_ERROR_MESSAGE
            except Exception:
                self.logger.exception(f"Unexpected intake failure for incident {incident.incident_id}")
                return incident, ERROR_MESSAGE

            if advanced.stage == IncidentStage.INTAKE:
                return advanced, response
            incident = advanced

        if incident.stage == IncidentStage.DIAGNOSE:
            try:
                return await self._diagnose_step(incident.model_copy(deep=True))
            except StorageError:
                raise
            except GatewayError as e:
                self.logger.warning(f"Diagnosis failed for incident {incident.incident_id}: {e}")
                return incident, ERROR_MESSAGE
            except Exception:
                self.logger.exception(f"Unexpected diagnosis failure for incident {incident.incident_id}")
                return incident, ERROR_MESSAGE

        return incident, CLOSING_MESSAGE

    async def _intake_step(self, incident: Incident, user_text: str) -> Tuple[Incident, str]:
        prompt = build_intake_prompt(incident, user_text, self.settings.intake_context_window)
        raw = await self.gateway.generate(
            prompt,
            temperature=self.settings.intake_temperature,
            max_tokens=self.settings.intake_max_tokens,
        )
        reply = self.parser.parse_intake(raw).value

        incident.signals = merge_signals(incident.signals, reply.inferred_signals)
        incident.open_questions = list(reply.questions)

        decision = self.policy.evaluate(
            signal_count=count_signals(incident.signals),
            has_minimum_signals=has_minimum_signals(incident.signals),
            open_question_count=len(incident.open_questions),
            user_turn_count=incident.user_turn_count,
        )
        if not decision.advance:
            return incident, format_intake_message(reply.short_hypothesis, reply.questions)

        self._transition(incident, IncidentStage.DIAGNOSE)
        incident.open_questions = []
        self.logger.info(
            f"Incident {incident.incident_id} ready for diagnosis ({decision.rule.value}, "
            f"{incident.signal_count} signals, {incident.user_turn_count} user turns)"
        )

        if self.settings.checkpoint_on_advance:
            incident.touch()
            await self.store.put(incident)
        return incident, ""

    async def _diagnose_step(self, incident: Incident) -> Tuple[Incident, str]:
        raw = await self.gateway.generate(
            build_diagnosis_prompt(incident),
            temperature=self.settings.diagnosis_temperature,
            max_tokens=self.settings.diagnosis_max_tokens,
        )
        result = self.parser.parse_diagnosis(raw)

        self._transition(incident, IncidentStage.RECOMMEND)
        incident.diagnosis = result.value
        if result.is_fallback:
            self.logger.warning(
                f"Incident {incident.incident_id} diagnosed with fallback ({result.reason.value})"
            )
        return incident, format_diagnosis_message(result.value)

    def _transition(self, incident: Incident, to_stage: IncidentStage) -> None:
        if not is_valid_transition(incident.stage, to_stage):
            raise ValueError(
                f"Invalid stage transition for incident {incident.incident_id}: "
                f"{incident.stage.value} -> {to_stage.value}"
            )
        incident.stage = to_stage

    # ============================================================
    # Persistence helpers
    # ============================================================
    async def _load_or_create(self, incident_id: str) -> Incident:
        incident = await self.store.get(incident_id)
        if incident is not None:
            return incident

        incident = Incident.new(incident_id, GREETING)
        await self.store.put(incident)
        self.logger.info(f"Created incident {incident_id}")
        await self._track(AnalyticsEvent(incident_id=incident_id, event="incident_created"))
        return incident

    async def _track(self, event: AnalyticsEvent) -> None:
        if self.analytics is None:
            return
        try:
            await self.analytics.record(event)
        except Exception as e:
            self.logger.warning(f"Analytics event {event.event} dropped for incident {event.incident_id}: {e}")
