"""Analytics sinks for incident lifecycle events."""

import logging
from abc import ABC, abstractmethod
from typing import List

from triage_lib.models.history import AnalyticsEvent

logger = logging.getLogger(__name__)


class AnalyticsSink(ABC):
    @abstractmethod
    async def record(self, event: AnalyticsEvent) -> None:
        pass


class LoggingAnalyticsSink(AnalyticsSink):
    """Writes each event as a structured log line and keeps the last few in memory"""

    def __init__(self, logger_name: str = "triage_lib.analytics", keep_last: int = 1000):
        self.logger = logging.getLogger(logger_name)
        self.keep_last = keep_last
        self.events: List[AnalyticsEvent] = []

    async def record(self, event: AnalyticsEvent) -> None:
        self.logger.info(
            f"[Analytics] {event.event} incident={event.incident_id} "
            f"service={event.service} severity={event.severity or '-'} values={event.values}"
        )
        self.events.append(event)
        if len(self.events) > self.keep_last:
            del self.events[: len(self.events) - self.keep_last]
