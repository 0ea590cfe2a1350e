"""
Shared data models for the triage workflow.

This package provides Pydantic models for the incident aggregate, the
model reply shapes, side-effect records, and the API layer.
"""

from triage_lib.models.incident import (
    # Core incident model
    Incident,
    IncidentStage,
    STAGE_ORDER,
    is_valid_transition,

    # Signals
    SignalKey,
    Signals,
    SIGNAL_VALUE_CHOICES,
    MINIMUM_SIGNALS,

    # Conversation
    Message,
    MessageRole,

    # Diagnosis
    Diagnosis,
    Hypothesis,
    NextSteps,
    Severity,
    ConfidenceLevel,

    # Model reply shapes
    IntakeResponse,
)

from triage_lib.models.history import (
    IncidentHistoryEntry,
    NotificationMessage,
    NotificationType,
    SimilarityMatch,
    SimilarIncident,
    AnalyticsEvent,
    IncidentTemplate,
    HistoryStats,
)

from triage_lib.models.api_models import (
    SendMessageRequest,
    ExportRequest,
    TurnResult,
    CreateIncidentResponse,
    IncidentStateResponse,
    HistoryResponse,
    SimilarIncidentsResponse,
    TemplateResponse,
    TemplateListResponse,
    ExportResponse,
)

__all__ = [
    # Core incident
    "Incident", "IncidentStage", "STAGE_ORDER", "is_valid_transition",
    # Signals
    "SignalKey", "Signals", "SIGNAL_VALUE_CHOICES", "MINIMUM_SIGNALS",
    # Conversation
    "Message", "MessageRole",
    # Diagnosis
    "Diagnosis", "Hypothesis", "NextSteps", "Severity", "ConfidenceLevel",
    # Model replies
    "IntakeResponse",
    # Side-effect records
    "IncidentHistoryEntry", "NotificationMessage", "NotificationType",
    "SimilarityMatch", "SimilarIncident", "AnalyticsEvent",
    "IncidentTemplate", "HistoryStats",
    # API
    "SendMessageRequest", "ExportRequest", "TurnResult",
    "CreateIncidentResponse", "IncidentStateResponse", "HistoryResponse",
    "SimilarIncidentsResponse", "TemplateResponse", "TemplateListResponse",
    "ExportResponse",
]
