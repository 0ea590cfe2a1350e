"""
Text rendering for assistant replies, exported reports and history stats.

All functions are pure. Timestamps only appear in exported reports, never in
chat responses.
"""

import json
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from triage_lib.models.common import to_json_compatible, utc_now
from triage_lib.models.history import HistoryStats, IncidentHistoryEntry
from triage_lib.models.incident import Diagnosis, Incident, MessageRole, Severity, SignalKey

INTAKE_QUESTIONS_HEADER = "To better understand the situation:"
NO_QUESTIONS_PROMPT = "Is there anything else you can tell me about what you're seeing?"


def _numbered(items: Sequence[str]) -> List[str]:
    return [f"{i}. {item}" for i, item in enumerate(items, start=1)]


def format_intake_message(short_hypothesis: str, questions: Sequence[str]) -> str:
    """Clarifying reply for a turn that stays in INTAKE"""
    lines: List[str] = []
    if short_hypothesis:
        lines.extend([f"💡 {short_hypothesis}", ""])

    if questions:
        lines.append(INTAKE_QUESTIONS_HEADER)
        lines.extend(_numbered(questions))
    else:
        lines.append(NO_QUESTIONS_PROMPT)

    return "\n".join(lines)


def format_diagnosis_message(diagnosis: Diagnosis, title: str = "## 🔍 Incident Diagnosis") -> str:
    """Markdown diagnosis shown in chat when the incident reaches RECOMMEND"""
    parts = [
        title,
        "",
        f"**Severity**: {diagnosis.severity.value}",
        "",
        "### Likely Root Causes:",
    ]
    for i, hypothesis in enumerate(diagnosis.hypotheses, start=1):
        parts.append(f"{i}. **{hypothesis.confidence.value}**: {hypothesis.description}")
        if hypothesis.reasoning:
            parts.append(f"   _{hypothesis.reasoning}_")
        parts.append("")

    parts.append("### Immediate Actions:")
    parts.extend(_numbered(diagnosis.next_steps.immediate))

    parts.extend(["", "### Deeper Investigation:"])
    parts.extend(_numbered(diagnosis.next_steps.deeper))

    parts.extend(["", "### Monitor These Metrics:"])
    parts.extend(f"- {metric}" for metric in diagnosis.what_to_monitor)

    return "\n".join(parts)


def render_incident_report(incident: Incident, fmt: str = "md") -> str:
    """Post-incident report for export.

    Args:
        incident: Incident with a diagnosis
        fmt: "md" for markdown, "json" for the incident as served by the API

    Raises:
        ValueError: If the incident has no diagnosis or fmt is unknown
    """
    if incident.diagnosis is None:
        raise ValueError(f"Incident {incident.incident_id} has no diagnosis")

    if fmt == "json":
        return json.dumps(incident.model_dump(mode="json", by_alias=True), indent=2)
    if fmt != "md":
        raise ValueError(f"Unsupported report format: {fmt}")

    diagnosis = incident.diagnosis
    lines = [
        f"# Incident Report: {incident.incident_id}",
        "",
        f"- **Service**: {incident.service}",
        f"- **Severity**: {diagnosis.severity.value}",
        f"- **Opened**: {to_json_compatible(incident.created_at)}",
        f"- **Last updated**: {to_json_compatible(incident.updated_at)}",
        "",
        "## Signals",
        "",
        "| Signal | Value |",
        "|---|---|",
    ]
    for key in SignalKey:
        if key in incident.signals:
            lines.append(f"| {key.value} | {incident.signals[key]} |")

    lines.extend(["", format_diagnosis_message(diagnosis, title="## Diagnosis")])

    lines.extend(["", "## Conversation", ""])
    for message in incident.conversation:
        speaker = "Operator" if message.role == MessageRole.USER else "Assistant"
        lines.append(f"**{speaker}** ({to_json_compatible(message.timestamp)}):")
        lines.append("")
        lines.append(message.content)
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def summarize_history(
    entries: Iterable[IncidentHistoryEntry], now: Optional[datetime] = None
) -> HistoryStats:
    """Aggregate counts by severity, by service and over recent windows"""
    now = now or utc_now()
    day_ago = now - timedelta(hours=24)
    week_ago = now - timedelta(days=7)

    by_severity = {severity.value: 0 for severity in Severity}
    by_service = {}
    total = last_24_hours = last_7_days = 0

    for entry in entries:
        total += 1
        by_severity[entry.severity] = by_severity.get(entry.severity, 0) + 1
        by_service[entry.service] = by_service.get(entry.service, 0) + 1
        if entry.completed_at > day_ago:
            last_24_hours += 1
        if entry.completed_at > week_ago:
            last_7_days += 1

    return HistoryStats(
        total=total,
        by_severity=by_severity,
        by_service=by_service,
        last_24_hours=last_24_hours,
        last_7_days=last_7_days,
    )
