from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..sessions import SessionService
from .deps import _sessions, current_user


router = APIRouter(prefix="/session", tags=["session"])


class StartSessionRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    releaseId: str = Field(..., min_length=1)


@router.post("/start")
def start_session(
    payload: StartSessionRequest,
    user_id: str = Depends(current_user),
    sessions: SessionService = Depends(_sessions),
) -> Dict[str, Any]:
    return {"session": sessions.start(user_id, payload.releaseId).to_dict()}


@router.get("/current")
def current_session(
    user_id: str = Depends(current_user),
    sessions: SessionService = Depends(_sessions),
) -> Dict[str, Any]:
    session = sessions.current(user_id)
    return {"session": session.to_dict() if session else None}


@router.post("/{session_id}/pause")
def pause(
    session_id: str,
    user_id: str = Depends(current_user),
    sessions: SessionService = Depends(_sessions),
) -> Dict[str, Any]:
    return {"session": sessions.pause(user_id, session_id).to_dict()}


@router.post("/{session_id}/resume")
def resume(
    session_id: str,
    user_id: str = Depends(current_user),
    sessions: SessionService = Depends(_sessions),
) -> Dict[str, Any]:
    return {"session": sessions.resume(user_id, session_id).to_dict()}


@router.post("/{session_id}/next")
def next_track(
    session_id: str,
    user_id: str = Depends(current_user),
    sessions: SessionService = Depends(_sessions),
) -> Dict[str, Any]:
    return {"session": sessions.advance(user_id, session_id).to_dict()}


@router.post("/{session_id}/end")
def end(
    session_id: str,
    user_id: str = Depends(current_user),
    sessions: SessionService = Depends(_sessions),
) -> Dict[str, Any]:
    return {"session": sessions.end(user_id, session_id).to_dict()}
