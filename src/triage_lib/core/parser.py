"""
Response parsing for untrusted model output.

The model is asked for JSON but returns free text that may wrap, truncate or
mangle it. ResponseParser extracts the first top-level balanced {...} block
that decodes, validates it against the pydantic shape for the requested kind,
and otherwise substitutes a fixed conservative fallback.

Results are tagged so callers can tell validated data from a guess:

    result = parser.parse(text, ParseKind.DIAGNOSIS)
    if result.is_fallback:
        ...  # result.reason says why
    diagnosis = result.value

The parser never raises for bad model output. Fallbacks are logged at
WARNING and counted in fallback_counts.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Generic, Iterator, Optional, Tuple, TypeVar, Union

from pydantic import ValidationError

from triage_lib.models.incident import (
    ConfidenceLevel,
    Diagnosis,
    Hypothesis,
    IntakeResponse,
    NextSteps,
    Severity,
)

T = TypeVar("T")

FALLBACK_QUESTION = "Could you provide more details about the issue?"
FALLBACK_HYPOTHESIS = "Unable to determine root cause"
FALLBACK_REASONING = "Insufficient information provided"
FALLBACK_IMMEDIATE = "Gather more information about the incident"
FALLBACK_DEEPER = "Review recent changes and logs"
FALLBACK_METRICS = ("Error rates", "Response times", "Traffic patterns")


class ParseKind(str, Enum):
    INTAKE = "intake"
    DIAGNOSIS = "diagnosis"


class FallbackReason(str, Enum):
    NO_BLOCK = "no_block"              # No {...} block in the text
    MALFORMED = "malformed"            # Braces present, nothing decodes as JSON
    SHAPE_MISMATCH = "shape_mismatch"  # Decodes, but not the expected shape


@dataclass(frozen=True)
class ParseOk(Generic[T]):
    """Model output decoded and validated"""

    value: T
    is_fallback: ClassVar[bool] = False


@dataclass(frozen=True)
class ParseFallback(Generic[T]):
    """Model output unusable; value is the fixed fallback"""

    value: T
    reason: FallbackReason
    detail: str = ""
    is_fallback: ClassVar[bool] = True


ParseResult = Union[ParseOk[T], ParseFallback[T]]


def iter_json_blocks(text: str) -> Iterator[str]:
    """Yield top-level balanced {...} substrings, honouring JSON string quoting."""
    depth = 0
    start = 0
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start:i + 1]


def extract_json_object(text: str) -> Tuple[Optional[dict], Optional[FallbackReason]]:
    """Return the first decodable top-level JSON object in text.

    Returns:
        (payload, None) on success, (None, reason) otherwise
    """
    if not text or "{" not in text:
        return None, FallbackReason.NO_BLOCK

    for block in iter_json_blocks(text):
        try:
            payload = json.loads(block)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            return payload, None

    return None, FallbackReason.MALFORMED


class ResponseParser:
    """Decode model output into IntakeResponse / Diagnosis with safe fallbacks"""

    def __init__(self, fallback_severity: Severity = Severity.MEDIUM):
        self.fallback_severity = Severity(fallback_severity)
        self.fallback_counts: Counter = Counter()
        self.logger = logging.getLogger(__name__)

    # ============================================================
    # Fallback values
    # ============================================================
    @staticmethod
    def intake_fallback() -> IntakeResponse:
        return IntakeResponse(
            questions=[FALLBACK_QUESTION],
            inferred_signals={},
            short_hypothesis="",
        )

    def diagnosis_fallback(self) -> Diagnosis:
        return Diagnosis(
            severity=self.fallback_severity,
            hypotheses=[
                Hypothesis(
                    description=FALLBACK_HYPOTHESIS,
                    confidence=ConfidenceLevel.LOW,
                    reasoning=FALLBACK_REASONING,
                )
            ],
            next_steps=NextSteps(
                immediate=[FALLBACK_IMMEDIATE],
                deeper=[FALLBACK_DEEPER],
            ),
            what_to_monitor=list(FALLBACK_METRICS),
        )

    def fallback_for(self, kind: ParseKind):
        return self.intake_fallback() if kind == ParseKind.INTAKE else self.diagnosis_fallback()

    # ============================================================
    # Parsing
    # ============================================================
    def parse(self, raw_text: str, kind: ParseKind) -> ParseResult:
        kind = ParseKind(kind)
        payload, reason = extract_json_object(raw_text or "")
        if payload is None:
            return self._fallback(kind, reason, raw_text)

        shape = IntakeResponse if kind == ParseKind.INTAKE else Diagnosis
        try:
            value = shape.model_validate(payload)
        except ValidationError as e:
            return self._fallback(
                kind, FallbackReason.SHAPE_MISMATCH, raw_text,
                detail=f"{e.error_count()} validation error(s)"
            )

        return ParseOk(value)

    def parse_intake(self, raw_text: str) -> ParseResult:
        return self.parse(raw_text, ParseKind.INTAKE)

    def parse_diagnosis(self, raw_text: str) -> ParseResult:
        return self.parse(raw_text, ParseKind.DIAGNOSIS)

    def _fallback(
        self,
        kind: ParseKind,
        reason: FallbackReason,
        raw_text: str,
        detail: str = "",
    ) -> ParseFallback:
        self.fallback_counts[(kind.value, reason.value)] += 1
        preview = (raw_text or "")[:200]
        self.logger.warning(
            f"Using {kind.value} fallback ({reason.value}{': ' + detail if detail else ''}); "
            f"raw response: {preview!r}{'...' if raw_text and len(raw_text) > 200 else ''}"
        )
        return ParseFallback(self.fallback_for(kind), reason, detail)

    @property
    def total_fallbacks(self) -> int:
        return sum(self.fallback_counts.values())
