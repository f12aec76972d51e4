"""Whole-application data maintenance."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from autograde.pipeline.orchestrator import PipelineBusyError
from autograde.schemas import StorageStatus
from autograde.state import AppState, get_app_state

router = APIRouter(prefix="/data", tags=["data"])


@router.post("/reset", response_model=StorageStatus)
def reset_data(state: AppState = Depends(get_app_state)) -> StorageStatus:
    try:
        state.reset()
    except PipelineBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return StorageStatus(degraded=state.storage_warning is not None, warning=state.storage_warning)


@router.get("/storage", response_model=StorageStatus)
def storage_status(state: AppState = Depends(get_app_state)) -> StorageStatus:
    return StorageStatus(degraded=state.storage_warning is not None, warning=state.storage_warning)
