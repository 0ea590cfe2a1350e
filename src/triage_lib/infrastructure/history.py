"""Completed-incident history.

Entries are written once per incident, at diagnosis time, and read back by
the history and stats routes. Redis layout:
    incident:history             sorted set of incident ids scored by completion time
    incident:history:{id}        JSON entry
    incident:service:{service}   list of incident ids, newest first, capped
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from triage_lib.exceptions import StorageError
from triage_lib.models.history import IncidentHistoryEntry

logger = logging.getLogger(__name__)

SERVICE_INDEX_LIMIT = 50
DEFAULT_LIST_LIMIT = 10
DEFAULT_SERVICE_LIMIT = 5


class HistoryStore(ABC):
    """Durable history contract"""

    @abstractmethod
    async def save(self, entry: IncidentHistoryEntry) -> None:
        """Record a completed incident. Saving the same id twice overwrites."""

    @abstractmethod
    async def get(self, incident_id: str) -> Optional[IncidentHistoryEntry]:
        pass

    @abstractmethod
    async def list_recent(self, limit: int = DEFAULT_LIST_LIMIT) -> List[IncidentHistoryEntry]:
        """Most recently completed first"""

    @abstractmethod
    async def list_by_service(
        self, service: str, limit: int = DEFAULT_SERVICE_LIMIT
    ) -> List[IncidentHistoryEntry]:
        pass

    async def search(self, query: str, limit: int = 100) -> List[IncidentHistoryEntry]:
        """Case-insensitive substring match over service, symptom and severity"""
        needle = query.strip().lower()
        entries = await self.list_recent(limit)
        if not needle:
            return entries
        return [entry for entry in entries if needle in entry.search_text()]


class InMemoryHistoryStore(HistoryStore):
    def __init__(self):
        self._entries: Dict[str, IncidentHistoryEntry] = {}
        self._by_service: Dict[str, List[str]] = {}

    async def save(self, entry: IncidentHistoryEntry) -> None:
        self._entries[entry.incident_id] = entry.model_copy(deep=True)

        ids = self._by_service.setdefault(entry.service, [])
        if entry.incident_id in ids:
            ids.remove(entry.incident_id)
        ids.insert(0, entry.incident_id)
        del ids[SERVICE_INDEX_LIMIT:]

    async def get(self, incident_id: str) -> Optional[IncidentHistoryEntry]:
        entry = self._entries.get(incident_id)
        return entry.model_copy(deep=True) if entry else None

    async def list_recent(self, limit: int = DEFAULT_LIST_LIMIT) -> List[IncidentHistoryEntry]:
        ordered = sorted(self._entries.values(), key=lambda e: e.completed_at, reverse=True)
        return [e.model_copy(deep=True) for e in ordered[:limit]]

    async def list_by_service(
        self, service: str, limit: int = DEFAULT_SERVICE_LIMIT
    ) -> List[IncidentHistoryEntry]:
        ids = self._by_service.get(service, [])[:limit]
        return [self._entries[i].model_copy(deep=True) for i in ids if i in self._entries]

    def __len__(self) -> int:
        return len(self._entries)


class RedisHistoryStore(HistoryStore):
    def __init__(self, client: Redis, key_prefix: str = "incident:"):
        self.client = client
        self.key_prefix = key_prefix

    @property
    def _index_key(self) -> str:
        return f"{self.key_prefix}history"

    def _entry_key(self, incident_id: str) -> str:
        return f"{self.key_prefix}history:{incident_id}"

    def _service_key(self, service: str) -> str:
        return f"{self.key_prefix}service:{service}"

    def _storage_error(self, action: str, e: Exception) -> StorageError:
        logger.error(f"History {action} failed: {e}")
        return StorageError(f"History {action} failed", error_code="HISTORY_UNAVAILABLE")

    async def save(self, entry: IncidentHistoryEntry) -> None:
        try:
            pipe = self.client.pipeline()
            pipe.set(self._entry_key(entry.incident_id), entry.model_dump_json())
            pipe.zadd(self._index_key, {entry.incident_id: entry.completed_at.timestamp()})
            service_key = self._service_key(entry.service)
            pipe.lrem(service_key, 0, entry.incident_id)
            pipe.lpush(service_key, entry.incident_id)
            pipe.ltrim(service_key, 0, SERVICE_INDEX_LIMIT - 1)
            await pipe.execute()
        except RedisError as e:
            raise self._storage_error("save", e) from e

    async def get(self, incident_id: str) -> Optional[IncidentHistoryEntry]:
        try:
            raw = await self.client.get(self._entry_key(incident_id))
        except RedisError as e:
            raise self._storage_error("read", e) from e
        return IncidentHistoryEntry.model_validate_json(raw) if raw else None

    async def _load_many(self, ids: List[str]) -> List[IncidentHistoryEntry]:
        if not ids:
            return []
        try:
            raws = await self.client.mget([self._entry_key(i) for i in ids])
        except RedisError as e:
            raise self._storage_error("read", e) from e
        return [IncidentHistoryEntry.model_validate_json(raw) for raw in raws if raw]

    async def list_recent(self, limit: int = DEFAULT_LIST_LIMIT) -> List[IncidentHistoryEntry]:
        try:
            ids = await self.client.zrevrange(self._index_key, 0, limit - 1)
        except RedisError as e:
            raise self._storage_error("list", e) from e
        return await self._load_many(list(ids))

    async def list_by_service(
        self, service: str, limit: int = DEFAULT_SERVICE_LIMIT
    ) -> List[IncidentHistoryEntry]:
        try:
            ids = await self.client.lrange(self._service_key(service), 0, limit - 1)
        except RedisError as e:
            raise self._storage_error("list", e) from e
        return await self._load_many(list(ids))
