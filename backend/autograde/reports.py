"""Read-only projections of the submission history for export and dashboards."""

from __future__ import annotations

import re
from collections.abc import Iterable

from autograde.schemas import ExportRow, ExportTable, SubjectStats, Submission

NOT_ATTEMPTED = "-"

_NUMBER_CHUNK = re.compile(r"(\d+)")


def natural_key(label: str) -> tuple:
    """Sort key ordering "2" < "2b" < "10", case-insensitively."""
    parts = _NUMBER_CHUNK.split(label.strip().lower())
    return tuple((0, int(part), "") if part.isdigit() else (1, 0, part) for part in parts if part)


def subject_submissions(submissions: Iterable[Submission], subject: str) -> list[Submission]:
    return [s for s in submissions if s.subject == subject]


def question_columns(submissions: Iterable[Submission]) -> list[str]:
    labels = {grade.question_number for s in submissions for grade in s.result.question_grades}
    return sorted(labels, key=natural_key)


def build_export_table(submissions: list[Submission], subject: str | None = None) -> ExportTable:
    columns = question_columns(submissions)
    rows: list[ExportRow] = []
    for submission in submissions:
        marks = {grade.question_number: grade.obtained_marks for grade in submission.result.question_grades}
        rows.append(
            ExportRow(
                student_name=submission.student_name,
                submitted_on=submission.timestamp.date().isoformat(),
                total_score=submission.score,
                question_marks={label: marks.get(label, NOT_ATTEMPTED) for label in columns},
                feedback=submission.result.feedback,
            )
        )
    return ExportTable(subject=subject, question_columns=columns, rows=rows)


def subject_stats(submissions: list[Submission], subject: str | None = None) -> SubjectStats:
    average = round(sum(s.score for s in submissions) / len(submissions)) if submissions else 0
    return SubjectStats(subject=subject, submission_count=len(submissions), average_score=average)
