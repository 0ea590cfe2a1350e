"""Application wiring.

build_engine() assembles a WorkflowEngine and its collaborators from
TriageSettings. Incidents and history live in process memory unless a Redis
client is passed; build_redis_services() connects one from the REDIS_*
environment. The OpenAI embeddings client and the webhook alert channel are
swapped in when they are configured. create_app() mounts the triage router on
a FastAPI application.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI
from redis.asyncio import Redis

from triage_lib import __version__
from triage_lib.api.routes import create_router
from triage_lib.config.settings import TriageSettings, get_settings
from triage_lib.core.dispatcher import SideEffectDispatcher
from triage_lib.core.engine import WorkflowEngine
from triage_lib.core.templates import TemplateCatalog
from triage_lib.infrastructure.analytics import LoggingAnalyticsSink
from triage_lib.infrastructure.history import HistoryStore, InMemoryHistoryStore, RedisHistoryStore
from triage_lib.infrastructure.llm.embeddings import (
    EmbeddingService,
    HashingEmbeddingService,
    OpenAIEmbeddingService,
)
from triage_lib.infrastructure.llm.gateway import ModelGateway
from triage_lib.infrastructure.llm.providers import ProviderRegistry
from triage_lib.infrastructure.notifications import (
    AlertChannel,
    BackgroundAlertChannel,
    WebhookAlertChannel,
)
from triage_lib.infrastructure.redis_setup import get_redis_client
from triage_lib.infrastructure.reports import InMemoryReportStore
from triage_lib.infrastructure.storage import IncidentStore, InMemoryIncidentStore, RedisIncidentStore
from triage_lib.infrastructure.vector_index import InMemoryVectorIndex
from triage_lib.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class TriageServices:
    engine: WorkflowEngine
    history: HistoryStore
    templates: TemplateCatalog
    alerts: Optional[AlertChannel] = None


def _build_embedder(settings: TriageSettings) -> EmbeddingService:
    embeddings = settings.embeddings
    if embeddings.api_key is not None:
        return OpenAIEmbeddingService(
            api_key=embeddings.api_key.get_secret_value(),
            model=embeddings.model,
            base_url=embeddings.base_url,
            timeout=settings.llm.request_timeout,
            dimensions=embeddings.dimensions,
        )
    logger.info("No embedding API key configured, using local feature hashing")
    return HashingEmbeddingService(dimensions=embeddings.dimensions)


def _build_alerts(settings: TriageSettings) -> Optional[AlertChannel]:
    alerts = settings.alerts
    if not alerts.webhook_url:
        logger.info("ALERT_WEBHOOK_URL not set, alerts disabled")
        return None
    webhook = WebhookAlertChannel(
        alerts.webhook_url,
        incident_base_url=alerts.incident_base_url,
        max_attempts=alerts.max_attempts,
    )
    return BackgroundAlertChannel(webhook)


def build_engine(
    settings: Optional[TriageSettings] = None, redis: Optional[Redis] = None
) -> TriageServices:
    """Wire a WorkflowEngine from settings.

    Args:
        settings: Defaults to the process-wide settings
        redis: When given, incidents and history are stored in Redis
    """
    settings = settings or get_settings()

    if redis is not None:
        store: IncidentStore = RedisIncidentStore(redis)
        history: HistoryStore = RedisHistoryStore(redis)
    else:
        store = InMemoryIncidentStore()
        history = InMemoryHistoryStore()

    embedder = _build_embedder(settings)
    similarity = InMemoryVectorIndex(dimensions=settings.embeddings.dimensions)
    analytics = LoggingAnalyticsSink()
    templates = TemplateCatalog()

    alerts = _build_alerts(settings)
    dispatcher = SideEffectDispatcher(
        history=history,
        embedder=embedder,
        similarity=similarity,
        alerts=alerts,
        analytics=analytics,
    )
    gateway = ModelGateway(
        registry=ProviderRegistry(settings=settings.llm),
        request_timeout=settings.llm.request_timeout,
    )
    engine = WorkflowEngine(
        store=store,
        gateway=gateway,
        dispatcher=dispatcher,
        settings=settings.workflow,
        embedder=embedder,
        similarity=similarity,
        templates=templates,
        report_store=InMemoryReportStore(),
        analytics=analytics,
    )
    return TriageServices(engine=engine, history=history, templates=templates, alerts=alerts)


async def build_redis_services(settings: Optional[TriageSettings] = None) -> TriageServices:
    """Connect to Redis (standalone or sentinel) and wire the engine on it"""
    settings = settings or get_settings()
    client = await get_redis_client(settings.redis)
    return build_engine(settings, redis=client)


def create_app(services: Optional[TriageServices] = None) -> FastAPI:
    setup_logging()
    services = services or build_engine()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if isinstance(services.alerts, BackgroundAlertChannel):
            await services.alerts.aclose()

    app = FastAPI(title="Incident Triage", version=__version__, lifespan=lifespan)
    app.include_router(create_router(services.engine, services.history, services.templates))
    logger.info("Triage API ready")
    return app
