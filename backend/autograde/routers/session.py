"""Signed-in role and display name, persisted alongside the application data."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from autograde.schemas import SessionState
from autograde.state import AppState, get_app_state

router = APIRouter(prefix="/session", tags=["session"])


@router.get("", response_model=SessionState)
def get_session_state(state: AppState = Depends(get_app_state)) -> SessionState:
    if state.session is None:
        raise HTTPException(status_code=404, detail="No active session")
    return state.session


@router.put("", response_model=SessionState)
def sign_in(payload: SessionState, state: AppState = Depends(get_app_state)) -> SessionState:
    state.set_session(payload.model_copy(update={"name": payload.name.strip()}))
    return state.session


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def sign_out(state: AppState = Depends(get_app_state)) -> Response:
    state.set_session(None)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
