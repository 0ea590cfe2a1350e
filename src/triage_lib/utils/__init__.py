"""Utility Functions"""

from triage_lib.utils.keyed_lock import KeyedLock
from triage_lib.utils.logging_config import setup_logging
from triage_lib.utils.resilience import (
    service_startup_retry,
    create_custom_retry,
    is_transient_http_error,
)

__all__ = [
    "KeyedLock",
    "setup_logging",
    "service_startup_retry",
    "create_custom_retry",
    "is_transient_http_error",
]
