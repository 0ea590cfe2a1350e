"""Incident storage cells.

One record per incident id. Exclusive access per id is provided by the
workflow engine's KeyedLock, not by the store. Any backend failure is raised
as StorageError so the engine can fail the turn without committing state.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from triage_lib.exceptions import StorageError
from triage_lib.models.incident import Incident

logger = logging.getLogger(__name__)


class IncidentStore(ABC):
    """Storage cell contract"""

    @abstractmethod
    async def get(self, incident_id: str) -> Optional[Incident]:
        """Load an incident, or None when it does not exist"""

    @abstractmethod
    async def put(self, incident: Incident) -> None:
        """Persist the full incident record"""


def _decode(incident_id: str, raw: str) -> Incident:
    try:
        return Incident.model_validate_json(raw)
    except ValidationError as e:
        logger.error(f"Stored record for incident {incident_id} is unreadable: {e}")
        raise StorageError(
            f"Stored record for incident {incident_id} is unreadable",
            error_code="STORAGE_CORRUPT_RECORD",
            context={"incident_id": incident_id},
        ) from e


class InMemoryIncidentStore(IncidentStore):
    """Process-local store; records are kept serialized so callers never share objects"""

    def __init__(self):
        self._records: Dict[str, str] = {}

    async def get(self, incident_id: str) -> Optional[Incident]:
        raw = self._records.get(incident_id)
        return _decode(incident_id, raw) if raw is not None else None

    async def put(self, incident: Incident) -> None:
        self._records[incident.incident_id] = incident.model_dump_json()

    def __contains__(self, incident_id: str) -> bool:
        return incident_id in self._records

    def __len__(self) -> int:
        return len(self._records)


class RedisIncidentStore(IncidentStore):
    """Redis-backed store; one JSON string per incident under incident:{id}"""

    def __init__(self, client: Redis, key_prefix: str = "incident:"):
        self.client = client
        self.key_prefix = key_prefix

    def _key(self, incident_id: str) -> str:
        return f"{self.key_prefix}{incident_id}"

    async def get(self, incident_id: str) -> Optional[Incident]:
        try:
            raw = await self.client.get(self._key(incident_id))
        except RedisError as e:
            logger.error(f"Failed to read incident {incident_id}: {e}")
            raise StorageError(
                f"Failed to read incident {incident_id}",
                error_code="STORAGE_READ_FAILED",
                context={"incident_id": incident_id},
            ) from e

        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return _decode(incident_id, raw)

    async def put(self, incident: Incident) -> None:
        try:
            await self.client.set(self._key(incident.incident_id), incident.model_dump_json())
        except RedisError as e:
            logger.error(f"Failed to write incident {incident.incident_id}: {e}")
            raise StorageError(
                f"Failed to write incident {incident.incident_id}",
                error_code="STORAGE_WRITE_FAILED",
                context={"incident_id": incident.incident_id},
            ) from e
