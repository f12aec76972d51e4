"""OpenAI multimodal scoring client for handwritten submissions."""

from __future__ import annotations

import asyncio
import copy
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from autograde.pipeline.request_builder import InlineSegment, Segment, TextSegment
from autograde.schemas import AssessmentResult, MlScoreDetails, QuestionGrade
from autograde.settings import settings

logger = logging.getLogger(__name__)

_IMAGE_MIME_TYPES = {"image/png", "image/jpeg", "image/webp", "image/gif"}


@dataclass
class ScoringRequestError(Exception):
    status_code: int | None
    body: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class EmptyResponseError(Exception):
    message: str = "No response received from the scoring service"

    def __str__(self) -> str:
        return self.message


@dataclass
class SchemaParseError(Exception):
    message: str
    payload: str = ""

    def __str__(self) -> str:
        return self.message


@dataclass
class SchemaBuildError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


class ScoringClient(Protocol):
    async def invoke(self, segments: list[Segment]) -> AssessmentResult:
        """Score one assembled request."""


def _base_assessment_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "extractedText": {
                "type": "string",
                "description": "The combined raw text extracted from the student's handwritten document(s).",
            },
            "similarityScore": {
                "type": "number",
                "description": "A score from 0 to 100 indicating semantic similarity.",
            },
            "mlScore": {"type": "number", "description": "The final grade from 0 to 100."},
            "mlScoreDetails": {
                "type": "object",
                "properties": {
                    "correctness": {"type": "number"},
                    "completeness": {"type": "number"},
                    "clarity": {"type": "number"},
                },
            },
            "questionGrades": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "questionNumber": {"type": "string"},
                        "maxMarks": {"type": "number"},
                        "obtainedMarks": {"type": "number"},
                        "remarks": {"type": "string"},
                    },
                },
            },
            "feedback": {"type": "string", "description": "Constructive feedback for the student."},
            "keyConceptsFound": {
                "type": "array",
                "items": {"type": "string"},
                "description": "List of concepts correctly identified.",
            },
            "missedConcepts": {
                "type": "array",
                "items": {"type": "string"},
                "description": "List of concepts missing from the student answer.",
            },
        },
    }


def _ensure_strict_schema_node(node: object) -> None:
    if isinstance(node, list):
        for item in node:
            _ensure_strict_schema_node(item)
        return

    if not isinstance(node, dict):
        return

    if node.get("type") == "object":
        properties = node.get("properties")
        if not isinstance(properties, dict):
            properties = {}
            node["properties"] = properties
        node["additionalProperties"] = False
        node["required"] = list(properties.keys())

    properties = node.get("properties")
    if isinstance(properties, dict):
        for value in properties.values():
            _ensure_strict_schema_node(value)

    items = node.get("items")
    if items is not None:
        _ensure_strict_schema_node(items)


def build_assessment_response_schema() -> dict[str, Any]:
    schema = copy.deepcopy(_base_assessment_schema())
    _ensure_strict_schema_node(schema)
    validate_schema_strictness(schema)
    return schema


def validate_schema_strictness(schema: dict[str, Any]) -> None:
    def _walk(node: object, path: str) -> None:
        if isinstance(node, list):
            for idx, item in enumerate(node):
                _walk(item, f"{path}[{idx}]")
            return

        if not isinstance(node, dict):
            return

        if node.get("type") == "object":
            if node.get("additionalProperties") is not False:
                raise SchemaBuildError(f"Object at {path} missing additionalProperties=false")
            required = node.get("required")
            properties = node.get("properties") or {}
            if not isinstance(required, list):
                raise SchemaBuildError(f"Object at {path} missing required list")
            missing = [key for key in properties if key not in required]
            if missing:
                raise SchemaBuildError(f"Object at {path} does not require {', '.join(missing)}")

        for key, value in node.items():
            _walk(value, f"{path}.{key}")

    _walk(schema, "schema")


def _content_part(segment: Segment) -> dict[str, str]:
    if isinstance(segment, TextSegment):
        return {"type": "input_text", "text": segment.text}

    mime_type = segment.mime_type.lower().strip()
    if mime_type == "image/jpg":
        mime_type = "image/jpeg"
    data_url = f"data:{mime_type};base64,{segment.data}"
    if mime_type in _IMAGE_MIME_TYPES:
        return {"type": "input_image", "image_url": data_url}
    return {"type": "input_file", "filename": segment.name or "evidence", "file_data": data_url}


def build_scoring_request(model: str, segments: list[Segment], schema: dict[str, Any]) -> dict[str, object]:
    return {
        "model": model,
        "input": [{"role": "user", "content": [_content_part(segment) for segment in segments]}],
        "text": {
            "format": {
                "type": "json_schema",
                "name": "assessment_result",
                "strict": True,
                "schema": schema,
            }
        },
    }


def parse_assessment_payload(output_text: str | None) -> AssessmentResult:
    """Parse the service's JSON output into an AssessmentResult, as-is."""
    if not output_text or not output_text.strip():
        raise EmptyResponseError()
    try:
        return AssessmentResult.model_validate_json(output_text)
    except ValidationError as exc:
        raise SchemaParseError(f"Scoring response does not match the assessment schema: {exc.error_count()} error(s)", payload=output_text[:2000]) from exc


def _segment_counts(segments: list[Segment]) -> tuple[int, int]:
    inline = sum(1 for segment in segments if isinstance(segment, InlineSegment))
    return len(segments) - inline, inline


class OpenAIScoringClient:
    def __init__(
        self,
        model: str | None = None,
        timeout_seconds: float | None = None,
        retry_backoffs_seconds: tuple[float, ...] | None = None,
    ) -> None:
        self._api_key = os.getenv("OPENAI_API_KEY", "").strip()
        self._model = model or settings.scoring_model
        self._timeout_seconds = timeout_seconds or settings.scoring_timeout_seconds
        self._client = None
        self._retry_backoffs_seconds = (
            retry_backoffs_seconds if retry_backoffs_seconds is not None else settings.scoring_retry_backoffs
        )

    def _get_client(self):
        if self._client is None:
            if not self._api_key:
                raise RuntimeError("OPENAI_API_KEY is not set")

            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout_seconds)
        return self._client

    async def _call_openai_with_retry(self, request_payload: dict[str, object]) -> str | None:
        last_exc: ScoringRequestError | None = None
        client = self._get_client()
        attempts = len(self._retry_backoffs_seconds) + 1
        for attempt in range(attempts):
            try:
                response = await client.responses.create(**request_payload)
                return response.output_text
            except Exception as exc:
                status_code = getattr(exc, "status_code", None)
                if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
                    status_code = 504
                response_obj = getattr(exc, "response", None)
                body_text = ""
                if response_obj is not None:
                    body_text = getattr(response_obj, "text", "") or ""
                if not body_text:
                    body_text = str(exc)

                retryable = isinstance(exc, (httpx.TimeoutException, TimeoutError)) or status_code in {429, 503, 504}
                last_exc = ScoringRequestError(status_code=status_code, body=body_text, message=f"Scoring request failed: {exc}")

                if retryable and attempt < attempts - 1:
                    logger.warning(
                        "scoring openai retry",
                        extra={"stage": "openai_retry", "model": self._model, "attempt": attempt + 1, "status_code": status_code},
                    )
                    await asyncio.sleep(self._retry_backoffs_seconds[attempt])
                    continue
                raise last_exc from exc

        if last_exc:
            raise last_exc
        raise ScoringRequestError(status_code=None, body="Unknown OpenAI error", message="Scoring request failed")

    async def invoke(self, segments: list[Segment]) -> AssessmentResult:
        schema = build_assessment_response_schema()
        request_payload = build_scoring_request(self._model, segments, schema)
        text_parts, inline_parts = _segment_counts(segments)

        started = time.perf_counter()
        output_text = await self._call_openai_with_retry(request_payload)
        logger.info(
            "scoring openai call timing",
            extra={
                "stage": "call_openai",
                "model": self._model,
                "text_segments": text_parts,
                "inline_segments": inline_parts,
                "openai_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return parse_assessment_payload(output_text)


class MockScoringClient:
    """Deterministic stand-in used when OPENAI_MOCK=1."""

    async def invoke(self, segments: list[Segment]) -> AssessmentResult:
        _, inline_parts = _segment_counts(segments)
        return AssessmentResult(
            extracted_text=f"[mock] Transcribed {inline_parts} evidence file(s).",
            similarity_score=78,
            ml_score=74,
            ml_score_details=MlScoreDetails(correctness=72, completeness=70, clarity=86),
            question_grades=[
                QuestionGrade(question_number="1", max_marks=5, obtained_marks=4, remarks="Correct law stated."),
                QuestionGrade(question_number="2", max_marks=5, obtained_marks=3, remarks="Example incomplete."),
            ],
            feedback="Good grasp of the core idea; expand the worked example.",
            key_concepts_found=["net force", "acceleration"],
            missed_concepts=["mass dependence"],
        )


def get_scoring_client() -> ScoringClient:
    if os.getenv("OPENAI_MOCK", "").strip() == "1":
        return MockScoringClient()
    return OpenAIScoringClient()
