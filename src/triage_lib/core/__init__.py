"""Triage workflow core: parsing, policy, prompts, engine and dispatch"""

from triage_lib.core.dispatcher import (
    DispatchCapabilities,
    DispatchReport,
    DispatchStep,
    SideEffectDispatcher,
    StepOutcome,
    StepStatus,
)
from triage_lib.core.engine import (
    CLOSING_MESSAGE,
    ERROR_MESSAGE,
    GREETING,
    INTAKE_ERROR_MESSAGE,
    WorkflowEngine,
)
from triage_lib.core.parser import (
    FallbackReason,
    ParseFallback,
    ParseKind,
    ParseOk,
    ParseResult,
    ResponseParser,
)
from triage_lib.core.policy import TransitionDecision, TransitionPolicy, TransitionRule
from triage_lib.core.prompts import build_diagnosis_prompt, build_intake_prompt
from triage_lib.core.signals import count_signals, has_minimum_signals, merge_signals
from triage_lib.core.templates import DEFAULT_TEMPLATES, TemplateCatalog

__all__ = [
    # Engine
    "WorkflowEngine",
    "GREETING", "CLOSING_MESSAGE", "ERROR_MESSAGE", "INTAKE_ERROR_MESSAGE",
    # Dispatch
    "SideEffectDispatcher", "DispatchCapabilities", "DispatchReport",
    "DispatchStep", "StepOutcome", "StepStatus",
    # Parsing
    "ResponseParser", "ParseKind", "ParseOk", "ParseFallback", "ParseResult", "FallbackReason",
    # Policy
    "TransitionPolicy", "TransitionDecision", "TransitionRule",
    # Prompts & signals
    "build_intake_prompt", "build_diagnosis_prompt",
    "merge_signals", "count_signals", "has_minimum_signals",
    # Templates
    "TemplateCatalog", "DEFAULT_TEMPLATES",
]
