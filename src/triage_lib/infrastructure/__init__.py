"""Reference backends for the triage workflow's external collaborators"""

from triage_lib.infrastructure.analytics import AnalyticsSink, LoggingAnalyticsSink
from triage_lib.infrastructure.history import HistoryStore, InMemoryHistoryStore, RedisHistoryStore
from triage_lib.infrastructure.notifications import (
    AlertChannel,
    BackgroundAlertChannel,
    QueueAlertChannel,
    WebhookAlertChannel,
)
from triage_lib.infrastructure.redis_setup import get_redis_client
from triage_lib.infrastructure.reports import InMemoryReportStore, ReportStore
from triage_lib.infrastructure.storage import (
    IncidentStore,
    InMemoryIncidentStore,
    RedisIncidentStore,
)
from triage_lib.infrastructure.vector_index import InMemoryVectorIndex, SimilarityIndex

__all__ = [
    "IncidentStore", "InMemoryIncidentStore", "RedisIncidentStore",
    "HistoryStore", "InMemoryHistoryStore", "RedisHistoryStore",
    "SimilarityIndex", "InMemoryVectorIndex",
    "AlertChannel", "WebhookAlertChannel", "QueueAlertChannel", "BackgroundAlertChannel",
    "AnalyticsSink", "LoggingAnalyticsSink",
    "ReportStore", "InMemoryReportStore",
    "get_redis_client",
]
