"""Student-facing pipeline endpoints: stage pages, run the assessment, read progress."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from autograde.ai.openai_scoring import ScoringClient, get_scoring_client
from autograde.pipeline.orchestrator import (
    IllegalTransitionError,
    PipelineBusyError,
    PipelineOrchestrator,
    PipelineRunError,
    SubmissionValidationError,
)
from autograde.routers.subjects import encode_evidence_uploads
from autograde.schemas import PipelineRunRequest, PipelineStatus, PipelineSubjectSelect, Submission
from autograde.state import AppState, get_app_state

router = APIRouter(prefix="/pipeline", tags=["pipeline"])


def _status(orchestrator: PipelineOrchestrator) -> PipelineStatus:
    return PipelineStatus(
        step=orchestrator.step,
        subject=orchestrator.subject,
        running=orchestrator.running,
        staged_files=list(orchestrator.staged_files),
        result=orchestrator.result,
        error=orchestrator.error,
        warnings=list(orchestrator.warnings),
        logs=list(orchestrator.logs),
    )


def _conflict(exc: Exception) -> HTTPException:
    return HTTPException(status_code=409, detail=str(exc))


@router.get("", response_model=PipelineStatus)
def get_pipeline(state: AppState = Depends(get_app_state)) -> PipelineStatus:
    return _status(state.orchestrator)


@router.post("/subject", response_model=PipelineStatus)
def select_subject(payload: PipelineSubjectSelect, state: AppState = Depends(get_app_state)) -> PipelineStatus:
    if payload.subject not in state.configs:
        raise HTTPException(status_code=404, detail="Subject not found")
    try:
        state.orchestrator.select_subject(payload.subject)
    except PipelineBusyError as exc:
        raise _conflict(exc) from exc
    return _status(state.orchestrator)


@router.post("/files", response_model=PipelineStatus)
async def stage_files(files: list[UploadFile] = File(...), state: AppState = Depends(get_app_state)) -> PipelineStatus:
    orchestrator = state.orchestrator
    if orchestrator.running:
        raise _conflict(PipelineBusyError())

    encoded, skipped = await encode_evidence_uploads(files, prefix="submissions/staged")
    try:
        for attached in encoded:
            orchestrator.stage_file(attached)
    except (PipelineBusyError, IllegalTransitionError) as exc:
        raise _conflict(exc) from exc

    response = _status(orchestrator)
    response.warnings = [*response.warnings, *(f"{name} could not be read and was not added" for name in skipped)]
    return response


@router.delete("/files/{file_id}", response_model=PipelineStatus)
def remove_staged_file(file_id: str, state: AppState = Depends(get_app_state)) -> PipelineStatus:
    try:
        removed = state.orchestrator.remove_staged_file(file_id)
    except (PipelineBusyError, IllegalTransitionError) as exc:
        raise _conflict(exc) from exc
    if not removed:
        raise HTTPException(status_code=404, detail="Staged file not found")
    return _status(state.orchestrator)


@router.post("/run", response_model=Submission, status_code=status.HTTP_201_CREATED)
async def run_pipeline(
    payload: PipelineRunRequest | None = None,
    state: AppState = Depends(get_app_state),
    client: ScoringClient = Depends(get_scoring_client),
) -> Submission:
    student_name = payload.student_name if payload else None
    try:
        return await state.orchestrator.run(client, student_name=student_name)
    except SubmissionValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except (PipelineBusyError, IllegalTransitionError) as exc:
        raise _conflict(exc) from exc
    except PipelineRunError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc


@router.post("/reset", response_model=PipelineStatus)
def reset_pipeline(state: AppState = Depends(get_app_state)) -> PipelineStatus:
    try:
        state.orchestrator.reset()
    except PipelineBusyError as exc:
        raise _conflict(exc) from exc
    return _status(state.orchestrator)


@router.post("/replay/{submission_id}", response_model=PipelineStatus)
def replay_submission(submission_id: str, state: AppState = Depends(get_app_state)) -> PipelineStatus:
    try:
        state.orchestrator.replay(submission_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Submission not found") from exc
    except (PipelineBusyError, IllegalTransitionError) as exc:
        raise _conflict(exc) from exc
    return _status(state.orchestrator)
