"""Common helpers shared across triage models.

- utc_now(): timezone-aware current time
- to_json_compatible(): ISO string with 'Z' suffix
- CAMEL_CASE_CONFIG: model config for anything served over HTTP; camelCase
  on the wire, snake_case field names accepted on input and in stored records
"""

from datetime import datetime, timezone

from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

CAMEL_CASE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_json_compatible(value: datetime) -> str:
    """Format a datetime as ISO 8601 UTC with 'Z' suffix (e.g. "2024-01-15T14:30:00.123000Z").

    Naive datetimes are assumed to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
