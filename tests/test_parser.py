import json

import pytest

from triage_lib.core.parser import (
    FALLBACK_DEEPER,
    FALLBACK_HYPOTHESIS,
    FALLBACK_IMMEDIATE,
    FALLBACK_METRICS,
    FALLBACK_QUESTION,
    FallbackReason,
    ParseFallback,
    ParseKind,
    ParseOk,
    ResponseParser,
    extract_json_object,
    iter_json_blocks,
)
from triage_lib.models.incident import ConfidenceLevel, Diagnosis, IntakeResponse, Severity

from conftest import diagnosis_reply, intake_reply


@pytest.fixture
def parser():
    return ResponseParser()


# ============================================================
# Block extraction
# ============================================================

def test_iter_json_blocks_yields_only_top_level():
    text = 'prefix {"a": {"b": 1}} middle {"c": 2} suffix'

    assert list(iter_json_blocks(text)) == ['{"a": {"b": 1}}', '{"c": 2}']


def test_iter_json_blocks_ignores_braces_in_strings():
    text = '{"q": "what is {this}?", "n": "}"}'

    assert list(iter_json_blocks(text)) == [text]


def test_extract_skips_non_json_braces():
    payload, reason = extract_json_object('Use the {service} field. {"questions": []}')

    assert reason is None
    assert payload == {"questions": []}


def test_extract_reports_missing_block():
    assert extract_json_object("no json at all") == (None, FallbackReason.NO_BLOCK)


def test_extract_reports_malformed_block():
    assert extract_json_object('{"questions": [') == (None, FallbackReason.MALFORMED)


# ============================================================
# Intake
# ============================================================

def test_parse_intake_inside_prose(parser):
    raw = "Sure! Here is my analysis:\n" + intake_reply(
        questions=["Which region?"], signals={"service": "api"}, hypothesis="Bad deploy"
    ) + "\nHope that helps."

    result = parser.parse(raw, ParseKind.INTAKE)

    assert isinstance(result, ParseOk)
    assert not result.is_fallback
    assert isinstance(result.value, IntakeResponse)
    assert result.value.questions == ["Which region?"]
    assert result.value.inferred_signals == {"service": "api"}
    assert result.value.short_hypothesis == "Bad deploy"


def test_parse_intake_in_code_fence(parser):
    raw = "```json\n" + intake_reply() + "\n```"

    assert parser.parse_intake(raw).is_fallback is False


def test_parse_intake_tolerates_null_fields(parser):
    raw = json.dumps({"questions": ["  ", "Which region?"], "inferredSignals": None, "shortHypothesis": None})

    value = parser.parse_intake(raw).value

    assert value.questions == ["Which region?"]
    assert value.inferred_signals == {}
    assert value.short_hypothesis == ""


@pytest.mark.parametrize("raw, reason", [
    ("", FallbackReason.NO_BLOCK),
    ("I cannot answer that.", FallbackReason.NO_BLOCK),
    ('{"questions": ["unterminated"', FallbackReason.MALFORMED),
    ('{"foo": "bar"}', FallbackReason.SHAPE_MISMATCH),
    ('{"questions": "not a list"}', FallbackReason.SHAPE_MISMATCH),
])
def test_intake_fallback(parser, raw, reason):
    result = parser.parse_intake(raw)

    assert isinstance(result, ParseFallback)
    assert result.reason == reason
    assert result.value.questions == [FALLBACK_QUESTION]
    assert result.value.inferred_signals == {}
    assert result.value.short_hypothesis == ""


def test_parse_handles_none(parser):
    assert parser.parse_intake(None).reason == FallbackReason.NO_BLOCK


# ============================================================
# Diagnosis
# ============================================================

def test_parse_diagnosis(parser):
    result = parser.parse_diagnosis(diagnosis_reply(severity="CRITICAL"))

    assert isinstance(result, ParseOk)
    diagnosis = result.value
    assert isinstance(diagnosis, Diagnosis)
    assert diagnosis.severity == Severity.CRITICAL
    assert diagnosis.hypotheses[0].confidence == ConfidenceLevel.HIGH
    assert diagnosis.next_steps.immediate[0] == "Roll back the last deploy"
    assert diagnosis.what_to_monitor == ["5xx rate", "p99 latency"]


def test_parse_diagnosis_normalizes_case(parser):
    payload = json.loads(diagnosis_reply())
    payload["severity"] = "high"
    payload["hypotheses"][0]["confidence"] = " medium "

    diagnosis = parser.parse_diagnosis(json.dumps(payload)).value

    assert diagnosis.severity == Severity.HIGH
    assert diagnosis.hypotheses[0].confidence == ConfidenceLevel.MEDIUM


@pytest.mark.parametrize("mutate", [
    lambda p: p.update(severity="SEV1"),
    lambda p: p.update(hypotheses=[]),
    lambda p: p.pop("nextSteps"),
    lambda p: p["hypotheses"][0].update(confidence="CERTAIN"),
])
def test_diagnosis_shape_mismatch(parser, mutate):
    payload = json.loads(diagnosis_reply())
    mutate(payload)

    result = parser.parse_diagnosis(json.dumps(payload))

    assert result.is_fallback
    assert result.reason == FallbackReason.SHAPE_MISMATCH


def test_diagnosis_fallback_value(parser):
    diagnosis = parser.parse_diagnosis("model returned nothing useful").value

    assert diagnosis.severity == Severity.MEDIUM
    assert len(diagnosis.hypotheses) == 1
    assert diagnosis.hypotheses[0].description == FALLBACK_HYPOTHESIS
    assert diagnosis.hypotheses[0].confidence == ConfidenceLevel.LOW
    assert diagnosis.next_steps.immediate == [FALLBACK_IMMEDIATE]
    assert diagnosis.next_steps.deeper == [FALLBACK_DEEPER]
    assert diagnosis.what_to_monitor == list(FALLBACK_METRICS)


def test_fallback_severity_is_configurable():
    parser = ResponseParser(fallback_severity=Severity.HIGH)

    assert parser.parse_diagnosis("{").value.severity == Severity.HIGH


def test_fallbacks_are_counted_and_logged(parser, caplog):
    parser.parse_intake("nothing")
    parser.parse_intake("nothing again")
    parser.parse_diagnosis('{"severity": "HIGH"}')
    parser.parse_intake(intake_reply())

    assert parser.fallback_counts[("intake", "no_block")] == 2
    assert parser.fallback_counts[("diagnosis", "shape_mismatch")] == 1
    assert parser.total_fallbacks == 3
    assert any(r.levelname == "WARNING" and "fallback" in r.getMessage() for r in caplog.records)
