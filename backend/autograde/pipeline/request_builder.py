"""Assembly of the multi-part assessment request sent to the scoring service."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from autograde.codec import is_sendable, resolve_content
from autograde.models import ModelAnswerType
from autograde.schemas import AttachedFile, SubjectConfig

logger = logging.getLogger(__name__)

Resolver = Callable[[AttachedFile], Awaitable[AttachedFile]]

GRADING_INSTRUCTIONS = """
You are an automated academic grading system.

Your task is to:
1. Analyze the provided STUDENT ANSWER (which may consist of multiple image/pdf pages).
2. Perform accurate OCR to extract the handwritten text from ALL pages.
3. Compare the extracted text with the provided MODEL ANSWER KEY.
4. Calculate a Semantic Similarity Score (0-100).
5. Assign a Final ML Grade (0-100) weighted as correctness 40%, completeness 40% and clarity 20%,
   and report each of those three sub-scores (0-100) in mlScoreDetails.
6. Grade every question found in the question paper individually: give its question number, the maximum
   marks, the marks obtained (never more than the maximum) and a short remark. Use "0" obtained marks for
   questions the student did not attempt.
7. Provide constructive feedback.
8. List key concepts from the model answer that were found in the student's text, and those that were missed.

Return ONLY JSON matching the provided schema.
""".strip()

MODEL_ANSWER_HEADER = "--- MODEL ANSWER KEY (Truth) ---"
MODEL_ANSWER_FILES_NOTE = "Refer to the following attached document(s) for the Model Answer Key:"
QUESTION_PAPER_HEADER = "--- ORIGINAL QUESTION PAPER (Reference) ---"
NO_QUESTION_PAPER_NOTE = (
    "No question paper was provided. Infer the question structure, question numbers and maximum marks "
    "from the Model Answer Key."
)
STUDENT_HEADER = "--- STUDENT SUBMISSION TO GRADE ---"
MULTI_PAGE_NOTE = (
    "The student submission consists of the following multiple pages/files. Treat them as a single continuous answer."
)


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class InlineSegment:
    mime_type: str
    data: str
    name: str = ""


Segment = TextSegment | InlineSegment


@dataclass
class AssessmentRequest:
    segments: list[Segment]
    dropped_files: list[str] = field(default_factory=list)
    student_files_sent: int = 0

    @property
    def evidence_complete(self) -> bool:
        return not self.dropped_files


async def _resolve_evidence(
    files: list[AttachedFile], resolver: Resolver, dropped: list[str], role: str
) -> list[tuple[int, AttachedFile]]:
    resolved: list[tuple[int, AttachedFile]] = []
    for index, file in enumerate(files):
        candidate = await resolver(file)
        if not is_sendable(candidate):
            logger.warning(
                "evidence file skipped",
                extra={"stage": "build_request", "role": role, "file_id": file.id, "file_name": file.name},
            )
            dropped.append(file.name)
            continue
        resolved.append((index, candidate))
    return resolved


def _inline(file: AttachedFile) -> InlineSegment:
    return InlineSegment(mime_type=file.mime_type, data=file.data or "", name=file.name)


async def build_assessment_request(
    student_files: list[AttachedFile],
    config: SubjectConfig,
    resolver: Resolver = resolve_content,
) -> AssessmentRequest:
    """Build the ordered request segments for one submission.

    Files whose content cannot be resolved to inline data are left out and
    listed in ``dropped_files``; the builder itself never fails on them.
    """
    segments: list[Segment] = [TextSegment(GRADING_INSTRUCTIONS)]
    dropped: list[str] = []

    segments.append(TextSegment(f"\n\n{MODEL_ANSWER_HEADER}"))
    if config.model_answer_type == ModelAnswerType.TEXT:
        segments.append(TextSegment(config.model_answer_text))
    else:
        segments.append(TextSegment(MODEL_ANSWER_FILES_NOTE))
        for _, file in await _resolve_evidence(config.model_answer_files, resolver, dropped, "model_answer"):
            segments.append(_inline(file))

    question_papers = await _resolve_evidence(config.question_paper_files, resolver, dropped, "question_paper")
    segments.append(TextSegment(f"\n\n{QUESTION_PAPER_HEADER}"))
    if question_papers:
        for _, file in question_papers:
            segments.append(_inline(file))
    else:
        segments.append(TextSegment(NO_QUESTION_PAPER_NOTE))

    segments.append(TextSegment(f"\n\n{STUDENT_HEADER}"))
    total = len(student_files)
    if total > 1:
        segments.append(TextSegment(MULTI_PAGE_NOTE))
    student_pages = await _resolve_evidence(student_files, resolver, dropped, "student")
    for index, file in student_pages:
        segments.append(TextSegment(f"\n[Student Submission Part {index + 1}/{total}]"))
        segments.append(_inline(file))

    return AssessmentRequest(segments=segments, dropped_files=dropped, student_files_sent=len(student_pages))
