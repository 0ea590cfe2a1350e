"""API Request/Response Models for the triage workflow.

These models provide a clean API layer separate from the domain Incident model.
They handle:
- Request validation (blank incident ids or messages never reach the engine)
- Response serialization, camelCase on the wire like the request bodies
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from triage_lib.models.common import CAMEL_CASE_CONFIG
from triage_lib.models.history import IncidentHistoryEntry, IncidentTemplate, SimilarIncident
from triage_lib.models.incident import Diagnosis, Incident, IncidentStage, SignalKey


def _require_text(value: str, field_name: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{field_name} must not be blank")
    return value


# ============================================================
# Requests
# ============================================================

class SendMessageRequest(BaseModel):
    """One user turn addressed to an incident"""

    model_config = CAMEL_CASE_CONFIG

    incident_id: str = Field(max_length=255)
    message: str = Field(max_length=8000)

    @field_validator("incident_id")
    @classmethod
    def incident_id_not_blank(cls, v: str) -> str:
        return _require_text(v, "incidentId")

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        return _require_text(v, "message")


class ExportRequest(BaseModel):
    format: Literal["json", "md"] = "md"


# ============================================================
# Responses
# ============================================================

class TurnResult(BaseModel):
    """Result of processing one user turn"""

    model_config = CAMEL_CASE_CONFIG

    incident_id: str
    stage: IncidentStage
    response: str
    signals: Dict[SignalKey, str] = Field(default_factory=dict)
    open_questions: List[str] = Field(default_factory=list)
    diagnosis: Optional[Diagnosis] = None

    @classmethod
    def from_incident(cls, incident: Incident, response: str) -> "TurnResult":
        return cls(
            incident_id=incident.incident_id,
            stage=incident.stage,
            response=response,
            signals=dict(incident.signals),
            open_questions=list(incident.open_questions),
            diagnosis=incident.diagnosis,
        )


class CreateIncidentResponse(BaseModel):
    model_config = CAMEL_CASE_CONFIG

    incident_id: str


class IncidentStateResponse(BaseModel):
    incident: Incident


class HistoryResponse(BaseModel):
    incidents: List[IncidentHistoryEntry]


class SimilarIncidentsResponse(BaseModel):
    similar: List[SimilarIncident]


class TemplateResponse(BaseModel):
    template: Optional[IncidentTemplate] = None


class TemplateListResponse(BaseModel):
    templates: List[IncidentTemplate]


class ExportResponse(BaseModel):
    key: Optional[str] = None
    markdown: str
    url: Optional[str] = None
