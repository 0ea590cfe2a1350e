"""Exception hierarchy for the triage library.

Every error raised by triage_lib derives from TriageError and carries an
optional machine-readable error_code plus a context dict for structured logs.

Recovery rules:
- GatewayError: recovered inside the workflow engine (fallback message)
- StorageError: fatal to the turn, surfaced to the caller as a server error
- InvalidTurnError: rejected before any state is touched (client error)
- DiagnosisNotReadyError: export requested before a diagnosis exists
"""

from typing import Any, Dict, Optional


class TriageError(Exception):
    """Base class for all triage_lib errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}


class GatewayError(TriageError):
    """Model gateway timed out, was unavailable, or returned an unusable response"""


class StorageError(TriageError):
    """Read or write against the incident storage cell failed"""


class InvalidTurnError(TriageError, ValueError):
    """Missing incident id or user text at the boundary"""


class DiagnosisNotReadyError(TriageError):
    """Operation requires a diagnosis that has not been produced yet"""
