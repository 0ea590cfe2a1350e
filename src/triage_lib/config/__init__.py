"""Configuration"""

from triage_lib.config.settings import (
    AlertSettings,
    EmbeddingSettings,
    LLMSettings,
    RedisSettings,
    TriageSettings,
    WorkflowSettings,
    get_settings,
    reset_settings,
)

__all__ = [
    "AlertSettings",
    "EmbeddingSettings",
    "LLMSettings",
    "RedisSettings",
    "TriageSettings",
    "WorkflowSettings",
    "get_settings",
    "reset_settings",
]
