"""Runbook templates for common incident types.

Matching is a keyword heuristic over the collected signals; the first rule
that fires wins, in this order: database-timeout, deployment-failure,
api-degradation, authentication-failure.
"""

from typing import Dict, Iterable, List, Mapping, Optional

from triage_lib.models.history import IncidentTemplate
from triage_lib.models.incident import SignalKey

DEFAULT_TEMPLATES: List[IncidentTemplate] = [
    IncidentTemplate(
        id="database-timeout",
        name="Database Connection Timeout",
        description="Issues related to database connectivity and timeouts",
        suggested_questions=[
            "What is the database CPU and memory usage?",
            "Have there been recent schema changes or migrations?",
            "Are connection pools properly configured?",
            "Is this affecting all database queries or specific ones?",
        ],
        common_causes=[
            "Connection pool exhaustion",
            "Slow queries causing locks",
            "Database server resource constraints",
            "Network connectivity issues",
        ],
        runbook_url="https://runbooks.example.com/database-timeout",
    ),
    IncidentTemplate(
        id="deployment-failure",
        name="Post-Deployment Issues",
        description="Problems occurring after a recent deployment",
        suggested_questions=[
            "What changed in this deployment?",
            "Was there a previous deployment that worked?",
            "Are error rates elevated compared to before deployment?",
            "Can the deployment be rolled back quickly?",
        ],
        common_causes=[
            "Configuration errors",
            "Incompatible dependencies",
            "Database migration issues",
            "Breaking API changes",
        ],
        runbook_url="https://runbooks.example.com/deployment-rollback",
    ),
    IncidentTemplate(
        id="api-degradation",
        name="API Performance Degradation",
        description="Slow response times or timeouts in API services",
        suggested_questions=[
            "What is the P99 latency?",
            "Are there specific endpoints that are slow?",
            "Is there elevated traffic or unusual patterns?",
            "Are downstream dependencies responding slowly?",
        ],
        common_causes=[
            "N+1 query problems",
            "Inefficient algorithms",
            "Third-party API slowness",
            "Resource contention",
        ],
        runbook_url="https://runbooks.example.com/api-performance",
    ),
    IncidentTemplate(
        id="authentication-failure",
        name="Authentication/Authorization Failures",
        description="Users unable to log in or access resources",
        suggested_questions=[
            "Are all users affected or specific user segments?",
            "What authentication errors are being logged?",
            "Have there been changes to identity provider configuration?",
            "Are tokens expiring unexpectedly?",
        ],
        common_causes=[
            "Token/session expiration issues",
            "Identity provider outage",
            "Certificate expiration",
            "Misconfigured permissions",
        ],
        runbook_url="https://runbooks.example.com/auth-issues",
    ),
]


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


class TemplateCatalog:
    """Lookup and keyword matching over a fixed set of templates"""

    def __init__(self, templates: Optional[Iterable[IncidentTemplate]] = None):
        source = DEFAULT_TEMPLATES if templates is None else templates
        self._templates: Dict[str, IncidentTemplate] = {t.id: t for t in source}

    def all(self) -> List[IncidentTemplate]:
        return list(self._templates.values())

    def get(self, template_id: str) -> Optional[IncidentTemplate]:
        return self._templates.get(template_id)

    def _match_id(self, signals: Mapping[SignalKey, str]) -> Optional[str]:
        symptom = signals.get(SignalKey.SYMPTOM, "").lower()
        error = signals.get(SignalKey.PRIMARY_ERROR, "").lower()

        if _contains_any(symptom, ("database", "timeout")) or "connection" in error:
            return "database-timeout"
        if signals.get(SignalKey.RECENT_DEPLOY) == "yes" or "deploy" in symptom:
            return "deployment-failure"
        if _contains_any(symptom, ("slow", "latency", "timeout")):
            return "api-degradation"
        if _contains_any(symptom, ("auth", "login", "permission")):
            return "authentication-failure"
        return None

    def match(self, signals: Mapping[SignalKey, str]) -> Optional[IncidentTemplate]:
        """Best template for the signals, or None"""
        template_id = self._match_id(signals)
        return self._templates.get(template_id) if template_id else None

    def suggested_questions(self, signals: Mapping[SignalKey, str]) -> List[str]:
        template = self.match(signals)
        return list(template.suggested_questions) if template else []

    def __len__(self) -> int:
        return len(self._templates)
