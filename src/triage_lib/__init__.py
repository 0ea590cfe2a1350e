"""Incident Triage Library

Stage-based incident triage workflow: signal extraction, transition policy,
model-output parsing with safe fallbacks, and side-effect dispatch.
"""

__version__ = "0.1.0"

# Export shared models first (no dependencies)
from triage_lib.models import (
    Incident, IncidentStage, SignalKey, Diagnosis, Severity, TurnResult
)

from triage_lib.exceptions import (
    TriageError,
    GatewayError,
    StorageError,
    InvalidTurnError,
    DiagnosisNotReadyError,
)


# Engine and router pull in the LLM and HTTP stacks, so load them on first use
def __getattr__(name):
    """Lazy import for WorkflowEngine and create_router."""
    if name == "WorkflowEngine":
        from triage_lib.core.engine import WorkflowEngine
        return WorkflowEngine
    if name == "create_router":
        from triage_lib.api import create_router
        return create_router
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    # Models
    "Incident", "IncidentStage", "SignalKey", "Diagnosis", "Severity", "TurnResult",
    # Errors
    "TriageError", "GatewayError", "StorageError", "InvalidTurnError", "DiagnosisNotReadyError",
    # Lazy loaded
    "WorkflowEngine",
    "create_router",
]
