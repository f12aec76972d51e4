"""Pipeline state machine driving one assessment run per dashboard."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from autograde.ai.openai_scoring import ScoringClient
from autograde.codec import EncodingError, resolve_content
from autograde.models import PipelineStep, utcnow
from autograde.pipeline.pages import normalize_page_image
from autograde.pipeline.request_builder import Resolver, build_assessment_request
from autograde.schemas import AssessmentResult, AttachedFile, MlScoreDetails, PipelineLogEntry, QuestionGrade, Submission
from autograde.settings import settings
from autograde.stores import ConfigurationStore, SubmissionStore

logger = logging.getLogger(__name__)

DEFAULT_STUDENT_NAME = "Student User"
GENERIC_RUN_ERROR = "An error occurred during assessment. Please try again."
NO_FILES_MESSAGE = "Upload at least one page of your answer before submitting."
NO_MODEL_ANSWER_MESSAGE = "Teacher has not uploaded a model answer for this subject yet."
NO_READABLE_PAGES_MESSAGE = "None of the staged pages could be read."

PACED_STEPS: tuple[PipelineStep, ...] = (
    PipelineStep.PREPROCESSING,
    PipelineStep.OCR,
    PipelineStep.TEXT_PROCESSING,
    PipelineStep.SIMILARITY,
    PipelineStep.ML_SCORING,
)

STEP_MESSAGES: dict[PipelineStep, str] = {
    PipelineStep.PREPROCESSING: "Preprocessing & Enhancement",
    PipelineStep.OCR: "OCR Extraction",
    PipelineStep.TEXT_PROCESSING: "Text Processing",
    PipelineStep.SIMILARITY: "Similarity Calculation",
    PipelineStep.ML_SCORING: "ML Scoring",
}

_TRANSITIONS: dict[PipelineStep, frozenset[PipelineStep]] = {
    PipelineStep.UPLOAD: frozenset({PipelineStep.PREPROCESSING, PipelineStep.REPORT}),
    PipelineStep.PREPROCESSING: frozenset({PipelineStep.OCR, PipelineStep.UPLOAD}),
    PipelineStep.OCR: frozenset({PipelineStep.TEXT_PROCESSING, PipelineStep.UPLOAD}),
    PipelineStep.TEXT_PROCESSING: frozenset({PipelineStep.SIMILARITY, PipelineStep.UPLOAD}),
    PipelineStep.SIMILARITY: frozenset({PipelineStep.ML_SCORING, PipelineStep.UPLOAD}),
    PipelineStep.ML_SCORING: frozenset({PipelineStep.REPORT, PipelineStep.UPLOAD}),
    PipelineStep.REPORT: frozenset({PipelineStep.UPLOAD, PipelineStep.REPORT}),
}


@dataclass
class SubmissionValidationError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class IllegalTransitionError(Exception):
    current: PipelineStep
    target: PipelineStep

    def __str__(self) -> str:
        return f"Cannot move pipeline from {self.current.value} to {self.target.value}"


@dataclass
class PipelineBusyError(Exception):
    message: str = "An assessment is already in progress."

    def __str__(self) -> str:
        return self.message


@dataclass
class PipelineRunError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def sanitize_result(result: AssessmentResult) -> AssessmentResult:
    """Clamp scores to 0..100 and marks to 0..maxMarks; keep the first grade per question."""
    grades: list[QuestionGrade] = []
    seen: set[str] = set()
    for grade in result.question_grades:
        label = grade.question_number.strip()
        if not label or label in seen:
            continue
        seen.add(label)
        max_marks = max(0.0, grade.max_marks)
        grades.append(
            grade.model_copy(
                update={
                    "question_number": label,
                    "max_marks": max_marks,
                    "obtained_marks": _clamp(grade.obtained_marks, 0.0, max_marks),
                }
            )
        )

    details = result.ml_score_details
    return result.model_copy(
        update={
            "similarity_score": _clamp(result.similarity_score, 0.0, 100.0),
            "ml_score": _clamp(result.ml_score, 0.0, 100.0),
            "ml_score_details": MlScoreDetails(
                correctness=_clamp(details.correctness, 0.0, 100.0),
                completeness=_clamp(details.completeness, 0.0, 100.0),
                clarity=_clamp(details.clarity, 0.0, 100.0),
            ),
            "question_grades": grades,
        }
    )


class PipelineOrchestrator:
    """Explicit state machine for UPLOAD -> ... -> REPORT.

    The orchestrator owns the staged files, the last result, and the
    in-flight flag; it is the only writer of new submissions.
    """

    def __init__(
        self,
        configs: ConfigurationStore,
        submissions: SubmissionStore,
        *,
        subject: str = "",
        default_student_name: Callable[[], str] | None = None,
        step_interval_seconds: float | None = None,
        scoring_timeout_seconds: float | None = None,
        resolver: Resolver = resolve_content,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._configs = configs
        self._submissions = submissions
        self._default_student_name = default_student_name or (lambda: DEFAULT_STUDENT_NAME)
        self._step_interval = settings.step_interval_seconds if step_interval_seconds is None else step_interval_seconds
        self._scoring_timeout = settings.scoring_timeout_seconds if scoring_timeout_seconds is None else scoring_timeout_seconds
        self._resolver = resolver
        self._sleep = sleep

        self.subject = subject
        self.step = PipelineStep.UPLOAD
        self.staged_files: list[AttachedFile] = []
        self.result: AssessmentResult | None = None
        self.error: str | None = None
        self.warnings: list[str] = []
        self.logs: list[PipelineLogEntry] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def _transition(self, target: PipelineStep) -> None:
        if target not in _TRANSITIONS[self.step]:
            raise IllegalTransitionError(self.step, target)
        logger.debug("pipeline transition", extra={"stage": "transition", "from": self.step.value, "to": target.value})
        self.step = target

    def _require_editable(self) -> None:
        if self._running:
            raise PipelineBusyError()
        if self.step != PipelineStep.UPLOAD:
            raise IllegalTransitionError(self.step, PipelineStep.UPLOAD)

    def select_subject(self, subject: str) -> None:
        if self._running:
            raise PipelineBusyError()
        self.subject = subject
        self.error = None

    def stage_file(self, file: AttachedFile) -> None:
        self._require_editable()
        self.staged_files.append(file)
        self.error = None

    def remove_staged_file(self, file_id: str) -> bool:
        self._require_editable()
        remaining = [f for f in self.staged_files if f.id != file_id]
        removed = len(remaining) != len(self.staged_files)
        self.staged_files = remaining
        return removed

    def validate(self) -> None:
        """Check the run preconditions without changing state."""
        if not self.staged_files:
            raise SubmissionValidationError(NO_FILES_MESSAGE)
        if not self._configs.get(self.subject).has_model_answer:
            raise SubmissionValidationError(NO_MODEL_ANSWER_MESSAGE)

    async def _resolve_staged(self) -> list[AttachedFile]:
        resolved: list[AttachedFile] = []
        for file in self.staged_files:
            candidate = await self._resolver(file)
            if settings.normalize_page_images:
                candidate = normalize_page_image(candidate, settings.page_max_width)
            resolved.append(candidate)
        self.staged_files = resolved
        return resolved

    def _start_logs(self) -> None:
        self.logs = [
            PipelineLogEntry(id=uuid.uuid4().hex, step=step, message=STEP_MESSAGES[step], status="pending")
            for step in PACED_STEPS
        ]

    def _mark_log(self, step: PipelineStep) -> None:
        for entry in self.logs:
            if entry.step == step:
                entry.status = "active"
            elif entry.status == "active":
                entry.status = "completed"

    async def _advance(self, step: PipelineStep) -> None:
        self._transition(step)
        self._mark_log(step)
        await self._sleep(self._step_interval)

    async def run(self, client: ScoringClient, student_name: str | None = None) -> Submission:
        """Execute one pipeline run and record its submission.

        Raises SubmissionValidationError (state untouched) when preconditions
        fail, PipelineBusyError when a run is already active, and
        PipelineRunError after returning to UPLOAD on any other failure.
        """
        if self._running:
            raise PipelineBusyError()
        if self.step != PipelineStep.UPLOAD:
            raise IllegalTransitionError(self.step, PipelineStep.PREPROCESSING)
        try:
            self.validate()
        except SubmissionValidationError as exc:
            self.error = exc.message
            raise

        self._running = True
        self.error = None
        self.warnings = []
        self._start_logs()
        subject = self.subject
        config = self._configs.get(subject)
        logger.info(
            "pipeline run started",
            extra={"stage": "run", "subject": subject, "num_files": len(self.staged_files)},
        )
        try:
            await self._advance(PipelineStep.PREPROCESSING)
            student_files = await self._resolve_staged()
            for step in PACED_STEPS[1:-1]:
                await self._advance(step)
            self._transition(PipelineStep.ML_SCORING)
            self._mark_log(PipelineStep.ML_SCORING)

            request = await build_assessment_request(student_files, config, resolver=self._resolver)
            if request.dropped_files:
                self.warnings = [f"{name} could not be read and was not graded" for name in request.dropped_files]
            if request.student_files_sent == 0:
                raise EncodingError(NO_READABLE_PAGES_MESSAGE)
            raw_result = await asyncio.wait_for(client.invoke(request.segments), timeout=self._scoring_timeout)
            result = sanitize_result(raw_result)

            submission = Submission(
                id=uuid.uuid4().hex,
                student_name=(student_name or "").strip() or self._default_student_name(),
                subject=subject,
                score=result.ml_score,
                timestamp=utcnow(),
                result=result,
            )
            self._submissions.append(submission)
            self.result = result
            self._mark_log(PipelineStep.REPORT)
            self._transition(PipelineStep.REPORT)
        except Exception as exc:
            logger.exception("pipeline run failed", extra={"stage": self.step.value, "subject": subject})
            self.step = PipelineStep.UPLOAD
            self.error = GENERIC_RUN_ERROR
            self.logs = []
            raise PipelineRunError(GENERIC_RUN_ERROR) from exc
        finally:
            self._running = False

        logger.info(
            "pipeline run completed",
            extra={"stage": "report", "subject": subject, "submission_id": submission.id, "score": submission.score},
        )
        return submission

    def reset(self) -> None:
        """Clear staged files and the last result and return to UPLOAD."""
        if self._running:
            raise PipelineBusyError()
        if self.step != PipelineStep.UPLOAD:
            self._transition(PipelineStep.UPLOAD)
        self.staged_files = []
        self.result = None
        self.error = None
        self.warnings = []
        self.logs = []

    def replay(self, submission_id: str) -> Submission:
        """Show a stored submission's report without re-scoring it."""
        if self._running:
            raise PipelineBusyError()
        submission = self._submissions.get(submission_id)
        if submission is None:
            raise KeyError(submission_id)
        self._transition(PipelineStep.REPORT)
        self.result = submission.result
        self.subject = submission.subject
        self.error = None
        return submission
