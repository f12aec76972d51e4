"""Subject configuration endpoints used by the teacher dashboard."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status

from autograde.codec import EncodingError, encode_upload, offload
from autograde.schemas import AttachedFile, FileUploadResult, SubjectConfig, SubjectConfigUpdate, SubjectCreate, SubjectRead
from autograde.settings import settings
from autograde.state import AppState, get_app_state

router = APIRouter(prefix="/subjects", tags=["subjects"])
logger = logging.getLogger(__name__)

ALLOWED_EVIDENCE_TYPES = {
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
}


def _subject_read(name: str, config: SubjectConfig) -> SubjectRead:
    return SubjectRead(name=name, config=config, has_model_answer=config.has_model_answer)


def _require_subject(state: AppState, name: str) -> SubjectConfig:
    if name not in state.configs:
        raise HTTPException(status_code=404, detail="Subject not found")
    return state.configs.get(name)


async def encode_evidence_uploads(files: list[UploadFile], prefix: str) -> tuple[list[AttachedFile], list[str]]:
    """Encode uploads, skipping unreadable ones. Unsupported types are rejected outright."""
    if not files:
        raise HTTPException(status_code=400, detail="At least one file is required")

    max_size = settings.max_upload_mb * 1024 * 1024
    for upload in files:
        if (upload.content_type or "").lower() not in ALLOWED_EVIDENCE_TYPES:
            raise HTTPException(status_code=400, detail="Unsupported file type. Use pdf/png/jpg/jpeg/webp")
        if upload.size is not None and upload.size > max_size:
            raise HTTPException(status_code=400, detail=f"File {upload.filename} exceeds {settings.max_upload_mb}MB")

    encoded: list[AttachedFile] = []
    skipped: list[str] = []
    for upload in files:
        try:
            attached = await encode_upload(upload)
            if settings.offload_uploads:
                attached = await offload(attached, prefix)
        except (EncodingError, OSError, RuntimeError, ValueError) as exc:
            logger.warning("upload skipped", extra={"stage": "encode_upload", "file_name": upload.filename, "error": str(exc)})
            skipped.append(upload.filename or "upload")
            continue
        encoded.append(attached)
    return encoded, skipped


@router.get("", response_model=list[SubjectRead])
def list_subjects(state: AppState = Depends(get_app_state)) -> list[SubjectRead]:
    return [_subject_read(name, state.configs.get(name)) for name in state.configs.list_subjects()]


@router.post("", response_model=SubjectRead, status_code=status.HTTP_201_CREATED)
def create_subject(payload: SubjectCreate, response: Response, state: AppState = Depends(get_app_state)) -> SubjectRead:
    try:
        created = state.configs.add_subject(payload.name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not created:
        response.status_code = status.HTTP_200_OK
    name = payload.name.strip()
    return _subject_read(name, state.configs.get(name))


@router.get("/{name}", response_model=SubjectRead)
def get_subject(name: str, state: AppState = Depends(get_app_state)) -> SubjectRead:
    return _subject_read(name, _require_subject(state, name))


@router.put("/{name}", response_model=SubjectRead)
def update_subject(name: str, payload: SubjectConfigUpdate, state: AppState = Depends(get_app_state)) -> SubjectRead:
    config = _require_subject(state, name)
    updated = config.model_copy(update=payload.model_dump(exclude_none=True))
    state.configs.set(name, updated)
    return _subject_read(name, state.configs.get(name))


async def _append_files(name: str, files: list[UploadFile], field_name: str, state: AppState) -> FileUploadResult:
    _require_subject(state, name)
    encoded, skipped = await encode_evidence_uploads(files, prefix=f"subjects/{field_name}")
    if not encoded:
        raise HTTPException(status_code=400, detail="None of the uploaded files could be read")

    # Re-read after the awaits so edits made meanwhile are not lost.
    config = state.configs.get(name)
    current = getattr(config, field_name)
    state.configs.set(name, config.model_copy(update={field_name: [*current, *encoded]}))
    return FileUploadResult(subject=_subject_read(name, state.configs.get(name)), added=len(encoded), skipped=skipped)


@router.post("/{name}/model-answer-files", response_model=FileUploadResult)
async def upload_model_answer_files(
    name: str,
    files: list[UploadFile] = File(...),
    state: AppState = Depends(get_app_state),
) -> FileUploadResult:
    return await _append_files(name, files, "model_answer_files", state)


@router.post("/{name}/question-paper-files", response_model=FileUploadResult)
async def upload_question_paper_files(
    name: str,
    files: list[UploadFile] = File(...),
    state: AppState = Depends(get_app_state),
) -> FileUploadResult:
    return await _append_files(name, files, "question_paper_files", state)


@router.delete("/{name}/files/{file_id}", response_model=SubjectRead)
def remove_subject_file(name: str, file_id: str, state: AppState = Depends(get_app_state)) -> SubjectRead:
    config = _require_subject(state, name)
    model_answer_files = [f for f in config.model_answer_files if f.id != file_id]
    question_paper_files = [f for f in config.question_paper_files if f.id != file_id]
    if len(model_answer_files) == len(config.model_answer_files) and len(question_paper_files) == len(config.question_paper_files):
        raise HTTPException(status_code=404, detail="File not found")

    state.configs.set(
        name,
        config.model_copy(update={"model_answer_files": model_answer_files, "question_paper_files": question_paper_files}),
    )
    return _subject_read(name, state.configs.get(name))
