"""Signal merging.

Folds signals inferred by the model into the incident's running signal set.
Last write wins per key; keys absent from the inferred set are untouched.
Anything that is not a recognised key with a usable value is dropped here,
never raised.
"""

import logging
from typing import Any, Mapping, Optional

from triage_lib.models.incident import MINIMUM_SIGNALS, SIGNAL_VALUE_CHOICES, SignalKey, Signals

logger = logging.getLogger(__name__)

_YES_NO_KEYS = (SignalKey.RECENT_DEPLOY, SignalKey.TRAFFIC_SPIKE)


def _coerce_key(raw_key: Any) -> Optional[SignalKey]:
    if isinstance(raw_key, SignalKey):
        return raw_key
    try:
        return SignalKey(str(raw_key).strip())
    except ValueError:
        return None


def normalize_signal_value(key: SignalKey, raw_value: Any) -> Optional[str]:
    """Return the canonical value for key, or None when the value is unusable."""
    if isinstance(raw_value, bool):
        if key not in _YES_NO_KEYS:
            return None
        return "yes" if raw_value else "no"

    if not isinstance(raw_value, str):
        return None

    value = raw_value.strip()
    if not value:
        return None

    choices = SIGNAL_VALUE_CHOICES.get(key)
    if choices is not None:
        value = value.lower()
        if value not in choices:
            return None

    return value


def merge_signals(existing: Mapping[SignalKey, str], inferred: Mapping[Any, Any]) -> Signals:
    """Merge inferred signals into existing ones, returning a new mapping.

    Args:
        existing: Current signal set
        inferred: Signals proposed by the model (untrusted)

    Returns:
        New signal mapping; inputs are not modified
    """
    merged: Signals = {SignalKey(key): value for key, value in existing.items()}
    dropped = []

    for raw_key, raw_value in (inferred or {}).items():
        key = _coerce_key(raw_key)
        if key is None:
            dropped.append(str(raw_key))
            continue
        value = normalize_signal_value(key, raw_value)
        if value is None:
            if raw_value not in (None, ""):
                dropped.append(str(raw_key))
            continue
        merged[key] = value

    if dropped:
        logger.debug(f"Dropped unusable inferred signals: {dropped}")

    return merged


def count_signals(signals: Mapping[SignalKey, str]) -> int:
    return len(signals)


def has_minimum_signals(signals: Mapping[SignalKey, str]) -> bool:
    """True when both service and symptom are known"""
    return all(signals.get(key) for key in MINIMUM_SIGNALS)
