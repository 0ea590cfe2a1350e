"""HTTP routes for the triage workflow.

    GET  /health
    POST /api/incident                  create an incident, returns its id
    GET  /api/incident/{id}             current state (created on first access)
    POST /api/message                   process one user turn
    GET  /api/history                   ?service= or ?query=, else most recent
    GET  /api/analytics/stats           counts over recent history
    GET  /api/templates
    GET  /api/incident/{id}/similar
    GET  /api/incident/{id}/template
    POST /api/incident/{id}/export      400 until the incident has a diagnosis

Usage:
    app = FastAPI()
    app.include_router(create_router(engine, history))
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from triage_lib.core.engine import WorkflowEngine
from triage_lib.core.report import summarize_history
from triage_lib.core.templates import TemplateCatalog
from triage_lib.exceptions import DiagnosisNotReadyError, InvalidTurnError, StorageError
from triage_lib.infrastructure.history import HistoryStore
from triage_lib.models.api_models import (
    CreateIncidentResponse,
    ExportRequest,
    ExportResponse,
    HistoryResponse,
    IncidentStateResponse,
    SendMessageRequest,
    SimilarIncidentsResponse,
    TemplateListResponse,
    TemplateResponse,
    TurnResult,
)
from triage_lib.models.history import HistoryStats

logger = logging.getLogger(__name__)

RECENT_HISTORY_LIMIT = 20
STATS_HISTORY_LIMIT = 100


def _storage_failure(e: StorageError) -> HTTPException:
    logger.error(f"Storage failure: {e.message}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Incident storage unavailable",
    )


def create_router(
    engine: WorkflowEngine,
    history: Optional[HistoryStore] = None,
    templates: Optional[TemplateCatalog] = None,
) -> APIRouter:
    """Build the triage API router around an engine and its collaborators"""
    templates = templates or engine.templates
    router = APIRouter(tags=["triage"])

    @router.get("/health")
    async def health():
        return {"status": "ok"}

    @router.post("/api/incident", response_model=CreateIncidentResponse)
    async def create_incident():
        try:
            incident = await engine.create_incident()
        except StorageError as e:
            raise _storage_failure(e) from e
        return CreateIncidentResponse(incident_id=incident.incident_id)

    @router.get("/api/incident/{incident_id}", response_model=IncidentStateResponse)
    async def get_incident(incident_id: str):
        try:
            incident = await engine.get_state(incident_id)
        except InvalidTurnError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e
        except StorageError as e:
            raise _storage_failure(e) from e
        return IncidentStateResponse(incident=incident)

    @router.post("/api/message", response_model=TurnResult)
    async def send_message(request: SendMessageRequest):
        try:
            return await engine.process_turn(request.incident_id, request.message)
        except InvalidTurnError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e
        except StorageError as e:
            raise _storage_failure(e) from e

    @router.get("/api/history", response_model=HistoryResponse)
    async def list_history(
        service: Optional[str] = Query(default=None),
        query: Optional[str] = Query(default=None),
    ):
        if history is None:
            return HistoryResponse(incidents=[])
        try:
            if service:
                incidents = await history.list_by_service(service)
            elif query:
                incidents = await history.search(query)
            else:
                incidents = await history.list_recent(RECENT_HISTORY_LIMIT)
        except StorageError as e:
            raise _storage_failure(e) from e
        return HistoryResponse(incidents=incidents)

    @router.get("/api/analytics/stats", response_model=HistoryStats)
    async def history_stats():
        if history is None:
            return summarize_history([])
        try:
            entries = await history.list_recent(STATS_HISTORY_LIMIT)
        except StorageError as e:
            raise _storage_failure(e) from e
        return summarize_history(entries)

    @router.get("/api/templates", response_model=TemplateListResponse)
    async def list_templates():
        return TemplateListResponse(templates=templates.all())

    @router.get("/api/incident/{incident_id}/similar", response_model=SimilarIncidentsResponse)
    async def similar_incidents(incident_id: str):
        try:
            similar = await engine.find_similar(incident_id)
        except InvalidTurnError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e
        except StorageError as e:
            raise _storage_failure(e) from e
        return SimilarIncidentsResponse(similar=similar)

    @router.get("/api/incident/{incident_id}/template", response_model=TemplateResponse)
    async def suggested_template(incident_id: str):
        try:
            template = await engine.suggest_template(incident_id)
        except InvalidTurnError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e
        except StorageError as e:
            raise _storage_failure(e) from e
        return TemplateResponse(template=template)

    @router.post("/api/incident/{incident_id}/export", response_model=ExportResponse)
    async def export_incident(incident_id: str, request: Optional[ExportRequest] = None):
        fmt = request.format if request else "md"
        try:
            return await engine.export_report(incident_id, fmt)
        except InvalidTurnError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e
        except DiagnosisNotReadyError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e
        except StorageError as e:
            raise _storage_failure(e) from e

    return router
