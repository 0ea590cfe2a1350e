"""Prompt templates for the triage stages.

Pure functions of (incident snapshot, latest user text). Output is
deterministic: signals render in SignalKey order and message timestamps are
never included.
"""

from typing import Mapping, Sequence

from triage_lib.models.incident import Incident, Message, SignalKey

DEFAULT_INTAKE_CONTEXT_WINDOW = 6

_SIGNAL_KEY_LIST = ", ".join(key.value for key in SignalKey)

INTAKE_PROMPT_TEMPLATE = """You are an expert incident triage assistant. Your goal is to gather high-signal context about a production incident.

Current signals collected:
{signals}

Recent conversation:
{conversation}

User's latest message: "{user_message}"

Your task:
1. Extract any new structured signals from the user's message ({signal_keys})
2. Generate 2-4 high-signal clarifying questions to fill gaps (avoid redundant questions)
3. Provide a short hypothesis if possible

Allowed values: scope is "regional" or "global"; recentDeploy and trafficSpike are "yes" or "no"; environment is "prod" or "staging".

Respond ONLY with valid JSON in this exact format:
{{
  "questions": ["question 1", "question 2"],
  "inferredSignals": {{
    "service": "value if mentioned",
    "symptom": "value if mentioned"
  }},
  "shortHypothesis": "brief hypothesis or empty string"
}}

Keep questions focused on: affected services, symptoms, scope, recent changes, and error patterns."""

DIAGNOSIS_PROMPT_TEMPLATE = """You are an expert SRE performing incident diagnosis. Analyze the following incident data and provide structured triage output.

Collected signals:
{signals}

Full conversation context:
{conversation}

Your task:
1. Assess severity (CRITICAL, HIGH, MEDIUM, LOW)
2. Generate 2-4 ranked hypotheses, each with a confidence (HIGH, MEDIUM, LOW) and reasoning
3. Provide immediate and deeper investigation steps
4. Recommend key metrics to monitor

Respond ONLY with valid JSON in this exact format:
{{
  "severity": "HIGH",
  "hypotheses": [
    {{
      "description": "Most likely root cause",
      "confidence": "HIGH",
      "reasoning": "Why this is likely"
    }}
  ],
  "nextSteps": {{
    "immediate": ["Action to take right now", "Another immediate action"],
    "deeper": ["Investigation step 1", "Investigation step 2"]
  }},
  "whatToMonitor": ["Metric 1", "Metric 2", "Metric 3"]
}}

Be specific and actionable. Focus on practical steps the engineer can take immediately."""


def format_signals(signals: Mapping[SignalKey, str]) -> str:
    if not signals:
        return "No signals collected yet"

    return "\n".join(
        f"- {key.value}: {signals[key]}" for key in SignalKey if key in signals
    )


def format_conversation(messages: Sequence[Message]) -> str:
    return "\n\n".join(
        f"{message.role.value.upper()}: {message.content}" for message in messages
    )


def build_intake_prompt(
    incident: Incident,
    user_message: str,
    context_window: int = DEFAULT_INTAKE_CONTEXT_WINDOW,
) -> str:
    """Render the INTAKE instruction.

    Args:
        incident: Current incident snapshot (conversation may already include user_message)
        user_message: Latest user turn
        context_window: Number of trailing messages shown as recent context
    """
    recent = incident.conversation[-context_window:] if context_window > 0 else []
    return INTAKE_PROMPT_TEMPLATE.format(
        signals=format_signals(incident.signals),
        conversation=format_conversation(recent),
        user_message=user_message,
        signal_keys=_SIGNAL_KEY_LIST,
    )


def build_diagnosis_prompt(incident: Incident) -> str:
    """Render the DIAGNOSE instruction with the full conversation history."""
    return DIAGNOSIS_PROMPT_TEMPLATE.format(
        signals=format_signals(incident.signals),
        conversation=format_conversation(incident.conversation),
    )
