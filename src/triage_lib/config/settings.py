"""Unified settings for the triage library.

Settings are plain pydantic models populated from environment variables
(after loading a .env file when present). A process-wide instance is exposed
through get_settings(); tests call reset_settings() between cases.

Environment Variables:
    CHAT_PROVIDER: Primary LLM provider (default: "openai")
    {PROVIDER}_API_KEY / {PROVIDER}_MODEL / {PROVIDER}_API_BASE
    LLM_REQUEST_TIMEOUT: Gateway timeout in seconds (default: 30)
    LLM_MAX_RETRIES: Extra attempts per provider for transient failures (default: 3)
    STRICT_PROVIDER_MODE: Disable provider fallbacks (default: false)

    TRIAGE_SIGNAL_THRESHOLD: Distinct signals that force diagnosis (default: 4)
    TRIAGE_USER_TURN_THRESHOLD: User turns that force diagnosis (default: 3)
    TRIAGE_INTAKE_CONTEXT_WINDOW: Messages shown to the intake prompt (default: 6)
    TRIAGE_FALLBACK_SEVERITY: Severity used when diagnosis cannot be parsed (default: MEDIUM)
    TRIAGE_CHECKPOINT_ON_ADVANCE: Persist before running diagnosis (default: true)

    ALERT_WEBHOOK_URL: Slack-compatible webhook (optional)
    INCIDENT_BASE_URL: Link target used in alerts
    EMBEDDING_MODEL / EMBEDDING_API_BASE / EMBEDDING_API_KEY / EMBEDDING_DIMENSIONS

    REDIS_MODE: "standalone" (default) or "sentinel"
    REDIS_HOST / REDIS_PORT / REDIS_DB / REDIS_PASSWORD
    REDIS_SENTINEL_HOSTS: Comma-separated "host:port" pairs (sentinel mode)
    REDIS_MASTER_SET: Sentinel master name (default: "mymaster")
"""

import logging
import os
from typing import List, Literal, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from triage_lib.models.incident import Severity

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_secret(name: str) -> Optional[SecretStr]:
    value = os.getenv(name)
    return SecretStr(value) if value else None


class LLMSettings(BaseModel):
    """Text generation provider configuration"""

    provider: str = Field(default="openai")
    request_timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    strict_provider_mode: bool = Field(default=False)

    openai_api_key: Optional[SecretStr] = None
    openai_model: Optional[str] = None
    openai_base_url: Optional[str] = None

    anthropic_api_key: Optional[SecretStr] = None
    anthropic_model: Optional[str] = None
    anthropic_base_url: Optional[str] = None

    openrouter_api_key: Optional[SecretStr] = None
    openrouter_model: Optional[str] = None
    openrouter_base_url: Optional[str] = None

    groq_api_key: Optional[SecretStr] = None
    groq_model: Optional[str] = None
    groq_base_url: Optional[str] = None

    fireworks_api_key: Optional[SecretStr] = None
    fireworks_model: Optional[str] = None
    fireworks_base_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LLMSettings":
        return cls(
            provider=os.getenv("CHAT_PROVIDER", "openai").strip().lower(),
            request_timeout=float(os.getenv("LLM_REQUEST_TIMEOUT", "30")),
            max_retries=int(os.getenv("LLM_MAX_RETRIES", "3")),
            strict_provider_mode=_env_bool("STRICT_PROVIDER_MODE", False),
            openai_api_key=_env_secret("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL"),
            openai_base_url=os.getenv("OPENAI_API_BASE"),
            anthropic_api_key=_env_secret("ANTHROPIC_API_KEY"),
            anthropic_model=os.getenv("ANTHROPIC_MODEL"),
            anthropic_base_url=os.getenv("ANTHROPIC_API_BASE"),
            openrouter_api_key=_env_secret("OPENROUTER_API_KEY"),
            openrouter_model=os.getenv("OPENROUTER_MODEL"),
            openrouter_base_url=os.getenv("OPENROUTER_API_BASE"),
            groq_api_key=_env_secret("GROQ_API_KEY"),
            groq_model=os.getenv("GROQ_MODEL"),
            groq_base_url=os.getenv("GROQ_API_BASE"),
            fireworks_api_key=_env_secret("FIREWORKS_API_KEY"),
            fireworks_model=os.getenv("FIREWORKS_MODEL"),
            fireworks_base_url=os.getenv("FIREWORKS_API_BASE"),
        )


class WorkflowSettings(BaseModel):
    """Knobs for the incident workflow engine"""

    intake_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    intake_max_tokens: int = Field(default=1024, gt=0)
    diagnosis_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    diagnosis_max_tokens: int = Field(default=2048, gt=0)
    intake_context_window: int = Field(default=6, ge=0)
    signal_threshold: int = Field(default=4, ge=1)
    user_turn_threshold: int = Field(default=3, ge=1)
    fallback_severity: Severity = Field(default=Severity.MEDIUM)
    checkpoint_on_advance: bool = Field(default=True)

    @classmethod
    def from_env(cls) -> "WorkflowSettings":
        return cls(
            signal_threshold=int(os.getenv("TRIAGE_SIGNAL_THRESHOLD", "4")),
            user_turn_threshold=int(os.getenv("TRIAGE_USER_TURN_THRESHOLD", "3")),
            intake_context_window=int(os.getenv("TRIAGE_INTAKE_CONTEXT_WINDOW", "6")),
            fallback_severity=os.getenv("TRIAGE_FALLBACK_SEVERITY", "MEDIUM").strip().upper(),
            checkpoint_on_advance=_env_bool("TRIAGE_CHECKPOINT_ON_ADVANCE", True),
        )


class AlertSettings(BaseModel):
    webhook_url: Optional[str] = None
    incident_base_url: str = Field(default="http://localhost:8000/incidents")
    max_attempts: int = Field(default=3, ge=1)

    @classmethod
    def from_env(cls) -> "AlertSettings":
        return cls(
            webhook_url=os.getenv("ALERT_WEBHOOK_URL") or None,
            incident_base_url=os.getenv("INCIDENT_BASE_URL", "http://localhost:8000/incidents"),
            max_attempts=int(os.getenv("ALERT_MAX_ATTEMPTS", "3")),
        )


class EmbeddingSettings(BaseModel):
    model: str = Field(default="text-embedding-3-small")
    base_url: str = Field(default="https://api.openai.com/v1")
    api_key: Optional[SecretStr] = None
    dimensions: int = Field(default=384, gt=0)

    @classmethod
    def from_env(cls) -> "EmbeddingSettings":
        return cls(
            model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            base_url=os.getenv("EMBEDDING_API_BASE", "https://api.openai.com/v1"),
            api_key=_env_secret("EMBEDDING_API_KEY") or _env_secret("OPENAI_API_KEY"),
            dimensions=int(os.getenv("EMBEDDING_DIMENSIONS", "384")),
        )


class RedisSettings(BaseModel):
    """Connection settings for the Redis-backed incident and history stores"""

    mode: Literal["standalone", "sentinel"] = "standalone"
    host: str = "localhost"
    port: int = Field(default=6379, gt=0)
    db: int = Field(default=0, ge=0)
    password: Optional[SecretStr] = None
    sentinel_hosts: List[Tuple[str, int]] = Field(default_factory=list)
    master_set: str = "mymaster"
    health_check_interval: int = Field(default=30, ge=0)

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("sentinel_hosts", mode="before")
    @classmethod
    def _parse_sentinel_hosts(cls, value):
        """Accept "host:port,host" strings; a bare host gets the default sentinel port"""
        if not isinstance(value, str):
            return value
        sentinels = []
        for host_port in value.split(","):
            host_port = host_port.strip()
            if not host_port:
                continue
            if ":" in host_port:
                host, port = host_port.rsplit(":", 1)
                sentinels.append((host, int(port)))
            else:
                sentinels.append((host_port, 26379))
        return sentinels

    @model_validator(mode="after")
    def _require_sentinels(self) -> "RedisSettings":
        if self.mode == "sentinel" and not self.sentinel_hosts:
            raise ValueError("REDIS_SENTINEL_HOSTS is required for sentinel mode")
        return self

    @classmethod
    def from_env(cls) -> "RedisSettings":
        return cls(
            mode=os.getenv("REDIS_MODE", "standalone"),
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", "6379")),
            db=int(os.getenv("REDIS_DB", "0")),
            password=_env_secret("REDIS_PASSWORD"),
            sentinel_hosts=os.getenv("REDIS_SENTINEL_HOSTS", ""),
            master_set=os.getenv("REDIS_MASTER_SET", "mymaster"),
        )


class TriageSettings(BaseModel):
    """Top-level settings container"""

    llm: LLMSettings = Field(default_factory=LLMSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    embeddings: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)

    @classmethod
    def from_env(cls) -> "TriageSettings":
        load_dotenv()

        return cls(
            llm=LLMSettings.from_env(),
            workflow=WorkflowSettings.from_env(),
            alerts=AlertSettings.from_env(),
            embeddings=EmbeddingSettings.from_env(),
            redis=RedisSettings.from_env(),
        )


# Global settings instance
_settings: Optional[TriageSettings] = None


def get_settings() -> TriageSettings:
    """Get the process-wide settings instance (loaded from environment on first use)"""
    global _settings
    if _settings is None:
        _settings = TriageSettings.from_env()
        logger.info(f"Settings loaded: provider={_settings.llm.provider}")
    return _settings


def reset_settings() -> None:
    """Reset the global settings (mainly for testing)"""
    global _settings
    _settings = None
