"""Records exchanged with the side-effect backends.

- IncidentHistoryEntry: durable summary written once at diagnosis time
- NotificationMessage: alert payload for CRITICAL/HIGH incidents
- SimilarityMatch / SimilarIncident: vector index results
- AnalyticsEvent: lifecycle data point
- IncidentTemplate: runbook template
- HistoryStats: aggregate counts over recent history
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from triage_lib.models.common import CAMEL_CASE_CONFIG, utc_now
from triage_lib.models.incident import Diagnosis, Incident, Message, SignalKey


class IncidentHistoryEntry(BaseModel):
    """Durable record of a completed triage, keyed by incident id"""

    model_config = CAMEL_CASE_CONFIG

    incident_id: str
    service: str = Field(default="unknown")
    severity: str
    symptom: str = Field(default="unknown")
    created_at: datetime
    completed_at: datetime = Field(default_factory=utc_now)
    resolution: Optional[str] = Field(
        default=None,
        description="Immediate actions joined with '; '"
    )

    # Full snapshot at completion time
    signals: Dict[SignalKey, str] = Field(default_factory=dict)
    diagnosis: Optional[Diagnosis] = None
    conversation: List[Message] = Field(default_factory=list)

    @classmethod
    def from_incident(cls, incident: Incident) -> "IncidentHistoryEntry":
        diagnosis = incident.diagnosis
        if diagnosis is None:
            raise ValueError(f"Incident {incident.incident_id} has no diagnosis to record")
        return cls(
            incident_id=incident.incident_id,
            service=incident.service,
            severity=diagnosis.severity.value,
            symptom=incident.symptom,
            created_at=incident.created_at,
            resolution="; ".join(diagnosis.next_steps.immediate),
            signals=dict(incident.signals),
            diagnosis=diagnosis,
            conversation=list(incident.conversation),
        )

    def search_text(self) -> str:
        return f"{self.service} {self.symptom} {self.severity}".lower()


class NotificationType(str, Enum):
    SLACK = "slack"
    EMAIL = "email"
    PAGERDUTY = "pagerduty"


class NotificationMessage(BaseModel):
    """Alert dispatched for high-severity diagnoses"""

    type: NotificationType = Field(default=NotificationType.SLACK)
    incident_id: str
    severity: str
    service: str
    summary: str
    timestamp: datetime = Field(default_factory=utc_now)


class SimilarityMatch(BaseModel):
    """Raw result row from a similarity index query"""

    id: str
    score: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SimilarIncident(BaseModel):
    """Similarity match exposed to callers"""

    model_config = CAMEL_CASE_CONFIG

    incident_id: str
    similarity: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AnalyticsEvent(BaseModel):
    """Lifecycle data point written to the analytics sink"""

    incident_id: str
    event: str = Field(description="e.g. incident_created, stage_transition_DIAGNOSE_to_RECOMMEND")
    service: str = Field(default="unknown")
    severity: Optional[str] = None
    values: Dict[str, float] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)


class IncidentTemplate(BaseModel):
    """Runbook template for a common incident type"""

    model_config = CAMEL_CASE_CONFIG

    id: str
    name: str
    description: str
    suggested_questions: List[str] = Field(default_factory=list)
    common_causes: List[str] = Field(default_factory=list)
    runbook_url: Optional[str] = None


class HistoryStats(BaseModel):
    """Aggregate counts over recent history entries"""

    model_config = CAMEL_CASE_CONFIG

    total: int
    by_severity: Dict[str, int]
    by_service: Dict[str, int]
    last_24_hours: int
    last_7_days: int
