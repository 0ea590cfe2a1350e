"""Object storage for exported incident reports."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class ReportStore(ABC):
    @abstractmethod
    async def put(self, key: str, content: str, content_type: str = "text/markdown") -> str:
        """Store content under key and return a retrievable URL"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass


class InMemoryReportStore(ReportStore):
    def __init__(self, base_url: str = "memory://reports"):
        self.base_url = base_url.rstrip("/")
        self._objects: Dict[str, str] = {}
        self._content_types: Dict[str, str] = {}

    async def put(self, key: str, content: str, content_type: str = "text/markdown") -> str:
        self._objects[key] = content
        self._content_types[key] = content_type
        logger.debug(f"Stored report {key} ({len(content)} chars)")
        return f"{self.base_url}/{key}"

    async def get(self, key: str) -> Optional[str]:
        return self._objects.get(key)

    def content_type(self, key: str) -> Optional[str]:
        return self._content_types.get(key)
