from __future__ import annotations

import asyncio
import json

import pytest

from autograde.ai.openai_scoring import (
    EmptyResponseError,
    MockScoringClient,
    OpenAIScoringClient,
    SchemaBuildError,
    SchemaParseError,
    ScoringRequestError,
    build_assessment_response_schema,
    build_scoring_request,
    get_scoring_client,
    parse_assessment_payload,
    validate_schema_strictness,
)
from autograde.pipeline.request_builder import InlineSegment, TextSegment


def _valid_payload(**overrides) -> dict:
    payload = {
        "extractedText": "Force equals mass times acceleration",
        "similarityScore": 81,
        "mlScore": 77,
        "mlScoreDetails": {"correctness": 80, "completeness": 70, "clarity": 85},
        "questionGrades": [
            {"questionNumber": "1", "maxMarks": 5, "obtainedMarks": 4, "remarks": "Good"},
        ],
        "feedback": "Solid answer.",
        "keyConceptsFound": ["net force"],
        "missedConcepts": ["mass"],
    }
    payload.update(overrides)
    return payload


class _FakeResponse:
    def __init__(self, output_text: str | None) -> None:
        self.output_text = output_text


class _FakeResponses:
    def __init__(self, outcomes: list) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return _FakeResponse(outcome)


class _FakeOpenAI:
    def __init__(self, outcomes: list) -> None:
        self.responses = _FakeResponses(outcomes)


class _StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"status {status_code}")
        self.status_code = status_code


def _client_with(outcomes: list) -> tuple[OpenAIScoringClient, _FakeOpenAI]:
    client = OpenAIScoringClient(model="gpt-test", retry_backoffs_seconds=(0.0, 0.0))
    fake = _FakeOpenAI(outcomes)
    client._client = fake
    return client, fake


def test_build_scoring_request_uses_vision_file_parts_and_schema() -> None:
    schema = build_assessment_response_schema()
    payload = build_scoring_request(
        model="gpt-test",
        segments=[
            TextSegment("Grade this"),
            InlineSegment(mime_type="image/jpg", data="aW1n", name="page1.jpg"),
            InlineSegment(mime_type="application/pdf", data="cGRm", name="key.pdf"),
        ],
        schema=schema,
    )

    assert payload["model"] == "gpt-test"
    content = payload["input"][0]["content"]

    assert content[0] == {"type": "input_text", "text": "Grade this"}
    assert content[1] == {"type": "input_image", "image_url": "data:image/jpeg;base64,aW1n"}
    assert content[2] == {"type": "input_file", "filename": "key.pdf", "file_data": "data:application/pdf;base64,cGRm"}

    text_format = payload["text"]["format"]
    assert text_format["type"] == "json_schema"
    assert text_format["strict"] is True
    assert text_format["schema"] is schema


def test_assessment_schema_is_strict_for_all_object_nodes() -> None:
    schema = build_assessment_response_schema()

    def _assert_object_nodes(node: object) -> None:
        if isinstance(node, dict):
            if node.get("type") == "object":
                assert node.get("additionalProperties") is False
                assert sorted(node["required"]) == sorted(node["properties"].keys())
            for value in node.values():
                _assert_object_nodes(value)
        elif isinstance(node, list):
            for item in node:
                _assert_object_nodes(item)

    _assert_object_nodes(schema)

    grade_required = schema["properties"]["questionGrades"]["items"]["required"]
    assert grade_required == ["questionNumber", "maxMarks", "obtainedMarks", "remarks"]


def test_schema_validation_rejects_non_strict_shape() -> None:
    invalid_schema = {"type": "object", "properties": {"x": {"type": "object", "properties": {"a": {"type": "string"}}}}}
    with pytest.raises(SchemaBuildError):
        validate_schema_strictness(invalid_schema)


def test_parse_assessment_payload_keeps_values_as_returned() -> None:
    result = parse_assessment_payload(json.dumps(_valid_payload(mlScore=130)))

    assert result.ml_score == 130
    assert result.question_grades[0].question_number == "1"


@pytest.mark.parametrize("output_text", [None, "", "   "])
def test_parse_assessment_payload_rejects_empty_output(output_text) -> None:
    with pytest.raises(EmptyResponseError):
        parse_assessment_payload(output_text)


def test_parse_assessment_payload_rejects_schema_mismatch() -> None:
    broken = _valid_payload()
    del broken["mlScoreDetails"]

    with pytest.raises(SchemaParseError):
        parse_assessment_payload(json.dumps(broken))
    with pytest.raises(SchemaParseError):
        parse_assessment_payload("{not json")


def test_invoke_returns_parsed_result() -> None:
    client, fake = _client_with([json.dumps(_valid_payload())])

    result = asyncio.run(client.invoke([TextSegment("Grade this")]))

    assert result.ml_score == 77
    assert len(fake.responses.calls) == 1
    assert fake.responses.calls[0]["text"]["format"]["name"] == "assessment_result"


def test_invoke_retries_rate_limits_then_succeeds() -> None:
    client, fake = _client_with([_StatusError(429), _StatusError(503), json.dumps(_valid_payload())])

    result = asyncio.run(client.invoke([TextSegment("Grade this")]))

    assert result.similarity_score == 81
    assert len(fake.responses.calls) == 3


def test_invoke_does_not_retry_client_errors() -> None:
    client, fake = _client_with([_StatusError(400)])

    with pytest.raises(ScoringRequestError) as exc_info:
        asyncio.run(client.invoke([TextSegment("Grade this")]))

    assert exc_info.value.status_code == 400
    assert len(fake.responses.calls) == 1


def test_invoke_raises_on_empty_output() -> None:
    client, _ = _client_with([""])

    with pytest.raises(EmptyResponseError):
        asyncio.run(client.invoke([TextSegment("Grade this")]))


def test_missing_api_key_fails_at_call_time(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    client = OpenAIScoringClient(model="gpt-test")

    with pytest.raises(RuntimeError):
        asyncio.run(client.invoke([TextSegment("Grade this")]))


def test_get_scoring_client_honours_mock_flag(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_MOCK", "1")

    client = get_scoring_client()

    assert isinstance(client, MockScoringClient)
    result = asyncio.run(client.invoke([TextSegment("x"), InlineSegment(mime_type="image/png", data="eA==")]))
    assert result.ml_score == 74


def test_api_key_is_read_when_client_is_constructed(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "key-at-construction")
    client = OpenAIScoringClient(model="gpt-test")
    monkeypatch.delenv("OPENAI_API_KEY")

    assert client._get_client().api_key == "key-at-construction"
