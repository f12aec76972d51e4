"""Submission history endpoints for both dashboards."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from autograde.reports import build_export_table, subject_stats
from autograde.schemas import ExportTable, SubjectStats, Submission
from autograde.state import AppState, get_app_state

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.get("", response_model=list[Submission])
def list_submissions(
    subject: str | None = Query(default=None),
    student: str | None = Query(default=None),
    state: AppState = Depends(get_app_state),
) -> list[Submission]:
    rows = state.submissions.list_all()
    if subject:
        rows = [s for s in rows if s.subject == subject]
    if student:
        rows = [s for s in rows if s.student_name == student]
    return sorted(rows, key=lambda s: s.timestamp, reverse=True)


@router.get("/export", response_model=ExportTable)
def export_submissions(subject: str | None = Query(default=None), state: AppState = Depends(get_app_state)) -> ExportTable:
    rows = state.submissions.list_by_subject(subject) if subject else state.submissions.list_all()
    return build_export_table(rows, subject=subject)


@router.get("/stats", response_model=SubjectStats)
def submission_stats(subject: str | None = Query(default=None), state: AppState = Depends(get_app_state)) -> SubjectStats:
    rows = state.submissions.list_by_subject(subject) if subject else state.submissions.list_all()
    return subject_stats(rows, subject=subject)


@router.get("/{submission_id}", response_model=Submission)
def get_submission(submission_id: str, state: AppState = Depends(get_app_state)) -> Submission:
    submission = state.submissions.get(submission_id)
    if submission is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    return submission
