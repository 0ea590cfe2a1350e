"""Incident data models - stage-based triage workflow.

Key Models:
- Incident: Aggregate root, one per triage conversation
- IncidentStage: Linear progression (INTAKE → DIAGNOSE → RECOMMEND)
- SignalKey: Fixed set of evidence fields extracted from the conversation
- Diagnosis: Final structured output, produced once per incident
- IntakeResponse: Shape of the model's reply during INTAKE

Architecture:
- Stage never regresses; RECOMMEND is terminal
- diagnosis is present iff stage == RECOMMEND
- Conversation is append-only
- Persisted as a self-describing JSON record (model_dump(mode="json"))
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from triage_lib.models.common import CAMEL_CASE_CONFIG, utc_now


# ============================================================
# Stage & Lifecycle
# ============================================================

class IncidentStage(str, Enum):
    """
    Incident workflow stage.

    Lifecycle Flow:
      INTAKE → DIAGNOSE → RECOMMEND (terminal)

    No backward transitions exist.
    """

    INTAKE = "INTAKE"
    """
    Evidence gathering.

    Characteristics:
    - Model extracts signals from each user message
    - Model proposes 2-4 clarifying questions
    - Transition policy decides when to move on
    """

    DIAGNOSE = "DIAGNOSE"
    """
    Diagnosis in progress.

    Normally transient: entered and left within the same turn. Only observed
    at rest when the diagnosis call failed; the next turn retries it.
    """

    RECOMMEND = "RECOMMEND"
    """
    TERMINAL STATE: Diagnosis delivered.

    Further turns receive a static closing message.
    """

    @property
    def order(self) -> int:
        """Position in the INTAKE < DIAGNOSE < RECOMMEND total order"""
        return STAGE_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self is IncidentStage.RECOMMEND


STAGE_ORDER: List[IncidentStage] = [
    IncidentStage.INTAKE,
    IncidentStage.DIAGNOSE,
    IncidentStage.RECOMMEND,
]


def is_valid_transition(from_stage: IncidentStage, to_stage: IncidentStage) -> bool:
    """
    Validate stage transition.

    Valid Transitions:
    - INTAKE → DIAGNOSE
    - DIAGNOSE → RECOMMEND

    Invalid:
    - RECOMMEND → * (terminal)
    - any backward or skipping edge
    """
    valid_transitions = {
        IncidentStage.INTAKE: [IncidentStage.DIAGNOSE],
        IncidentStage.DIAGNOSE: [IncidentStage.RECOMMEND],
        IncidentStage.RECOMMEND: [],  # Terminal
    }

    return to_stage in valid_transitions.get(from_stage, [])


# ============================================================
# Signals
# ============================================================

class SignalKey(str, Enum):
    """Evidence fields the intake stage extracts from free text"""

    SERVICE = "service"
    SYMPTOM = "symptom"
    SCOPE = "scope"                    # regional | global
    RECENT_DEPLOY = "recentDeploy"     # yes | no
    TRAFFIC_SPIKE = "trafficSpike"     # yes | no
    PRIMARY_ERROR = "primaryError"
    DEPENDENCIES = "dependencies"
    ENVIRONMENT = "environment"        # prod | staging


# Keys whose values are restricted to a fixed vocabulary
SIGNAL_VALUE_CHOICES: Dict[SignalKey, FrozenSet[str]] = {
    SignalKey.SCOPE: frozenset({"regional", "global"}),
    SignalKey.RECENT_DEPLOY: frozenset({"yes", "no"}),
    SignalKey.TRAFFIC_SPIKE: frozenset({"yes", "no"}),
    SignalKey.ENVIRONMENT: frozenset({"prod", "staging"}),
}

MINIMUM_SIGNALS = (SignalKey.SERVICE, SignalKey.SYMPTOM)

Signals = Dict[SignalKey, str]


# ============================================================
# Conversation
# ============================================================

class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """One conversation entry"""

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utc_now)


# ============================================================
# Diagnosis
# ============================================================

class Severity(str, Enum):
    """Incident severity assessed at diagnosis time"""

    CRITICAL = "CRITICAL"   # Total outage, data loss, security breach
    HIGH = "HIGH"           # Partial outage, many users affected
    MEDIUM = "MEDIUM"       # Degradation for a subset of users
    LOW = "LOW"             # Minimal impact

    @property
    def is_alertable(self) -> bool:
        """Whether this severity pages the alert channel"""
        return self in (Severity.CRITICAL, Severity.HIGH)


class ConfidenceLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


def _upper_enum_value(v: Any) -> Any:
    return v.strip().upper() if isinstance(v, str) else v


class Hypothesis(BaseModel):
    """Candidate root cause with confidence and reasoning"""

    model_config = ConfigDict(frozen=True)

    description: str = Field(min_length=1, description="What we think caused the problem")
    confidence: ConfidenceLevel
    reasoning: str = Field(default="", description="Why this is likely")

    @field_validator("confidence", mode="before")
    @classmethod
    def normalize_confidence(cls, v):
        return _upper_enum_value(v)


class NextSteps(BaseModel):
    model_config = ConfigDict(frozen=True)

    immediate: List[str] = Field(default_factory=list)
    deeper: List[str] = Field(default_factory=list)


class Diagnosis(BaseModel):
    """
    Final structured triage output.

    Set exactly once, when the incident enters RECOMMEND. Accepts the
    camelCase keys the model is prompted to emit (nextSteps, whatToMonitor)
    as well as the snake_case field names used in persisted records.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    severity: Severity
    hypotheses: List[Hypothesis] = Field(min_length=1)
    next_steps: NextSteps = Field(alias="nextSteps")
    what_to_monitor: List[str] = Field(default_factory=list, alias="whatToMonitor")

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v):
        return _upper_enum_value(v)


# ============================================================
# Model reply shapes
# ============================================================

class IntakeResponse(BaseModel):
    """Structured reply expected from the model during INTAKE"""

    model_config = ConfigDict(populate_by_name=True)

    questions: List[str] = Field(description="Clarifying questions (may be empty, must be present)")
    inferred_signals: Dict[str, Any] = Field(default_factory=dict, alias="inferredSignals")
    short_hypothesis: str = Field(default="", alias="shortHypothesis")

    @field_validator("questions")
    @classmethod
    def drop_blank_questions(cls, v: List[str]) -> List[str]:
        return [q.strip() for q in v if q.strip()]

    @field_validator("inferred_signals", mode="before")
    @classmethod
    def null_signals_as_empty(cls, v):
        return {} if v is None else v

    @field_validator("short_hypothesis", mode="before")
    @classmethod
    def null_hypothesis_as_empty(cls, v):
        return "" if v is None else v


# ============================================================
# Aggregate root
# ============================================================

class Incident(BaseModel):
    """
    Root incident entity.
    Represents one complete triage conversation.
    """

    model_config = CAMEL_CASE_CONFIG

    incident_id: str = Field(min_length=1, description="Opaque stable identifier")

    stage: IncidentStage = Field(default=IncidentStage.INTAKE)

    signals: Dict[SignalKey, str] = Field(
        default_factory=dict,
        description="Evidence collected so far; keys are only added or overwritten"
    )

    conversation: List[Message] = Field(
        default_factory=list,
        description="Append-only ordered turns"
    )

    open_questions: List[str] = Field(
        default_factory=list,
        description="Clarifying questions pending during INTAKE"
    )

    diagnosis: Optional[Diagnosis] = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    # ============================================================
    # Computed Properties
    # ============================================================
    @property
    def user_turn_count(self) -> int:
        return sum(1 for m in self.conversation if m.role == MessageRole.USER)

    @property
    def signal_count(self) -> int:
        return len(self.signals)

    @property
    def service(self) -> str:
        return self.signals.get(SignalKey.SERVICE, "unknown")

    @property
    def symptom(self) -> str:
        return self.signals.get(SignalKey.SYMPTOM, "unknown")

    # ============================================================
    # Mutation helpers (used by the workflow engine only)
    # ============================================================
    def add_message(self, role: MessageRole, content: str) -> Message:
        message = Message(role=role, content=content)
        self.conversation.append(message)
        return message

    def touch(self) -> None:
        self.updated_at = utc_now()

    # ============================================================
    # Validators
    # ============================================================
    @field_validator("signals", mode="before")
    @classmethod
    def drop_unknown_signal_keys(cls, v):
        """Older or foreign records may carry keys outside the fixed set"""
        if v is None:
            return {}
        if not isinstance(v, dict):
            return v
        known = {key.value for key in SignalKey}
        return {
            key: value for key, value in v.items()
            if str(getattr(key, "value", key)) in known and value
        }

    @field_validator("open_questions", mode="before")
    @classmethod
    def null_questions_as_empty(cls, v):
        return [] if v is None else v

    @model_validator(mode="after")
    def diagnosis_matches_stage(self) -> "Incident":
        """Ensure diagnosis is present iff stage is RECOMMEND"""
        has_diagnosis = self.diagnosis is not None
        if has_diagnosis != (self.stage == IncidentStage.RECOMMEND):
            raise ValueError(
                f"Incident {self.incident_id}: diagnosis must be set iff stage is "
                f"RECOMMEND (stage={self.stage.value}, diagnosis={'set' if has_diagnosis else 'unset'})"
            )
        return self

    @classmethod
    def new(cls, incident_id: str, greeting: str) -> "Incident":
        """Create an incident seeded with the assistant greeting"""
        incident = cls(incident_id=incident_id)
        incident.add_message(MessageRole.ASSISTANT, greeting)
        return incident
