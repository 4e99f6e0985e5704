from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from api.dependencies import get_assembler, get_coordinator, get_registry
from api.models.schemas import (
    CancelResponse,
    ClearResponse,
    ErrorResponse,
    SessionListResponse,
    SessionSummary,
)
from app.assembler import MessageAssembler
from app.coordinator import TurnCoordinator
from app.session import SessionNotFoundError, SessionRegistry

router = APIRouter()


def _not_found(session_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": f"Session {session_id} not found"},
    )


@router.get(
    "",
    response_model=SessionListResponse,
    summary="List sessions, most recent first",
)
async def list_sessions(
    project_path: Optional[str] = Query(default=None, alias="projectPath"),
    registry: SessionRegistry = Depends(get_registry),
):
    sessions = [
        SessionSummary(
            session_id=session.session_id,
            project_id=session.project_id,
            status=session.status.value,
            turn_count=session.turn_count,
            message_count=len(session.messages),
            last_activity_at=session.last_activity_at,
        )
        for session in registry.list_sessions(project_path)
    ]
    return {"sessions": sessions, "count": len(sessions)}


@router.get(
    "/{session_id}",
    summary="Get a session and its message log",
    responses={404: {"model": ErrorResponse}},
)
async def get_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    try:
        session = registry.require(session_id)
    except SessionNotFoundError:
        return _not_found(session_id)
    return session.model_dump(mode="json")


@router.post(
    "/{session_id}/clear",
    response_model=ClearResponse,
    summary="Empty a session's message log",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def clear_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    assembler: MessageAssembler = Depends(get_assembler),
):
    try:
        session = registry.require(session_id)
    except SessionNotFoundError:
        return _not_found(session_id)

    if registry.is_busy(session_id):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"error": f"Session {session_id} already has a turn in progress"},
        )

    cleared = len(session.messages)
    registry.clear(session_id)
    assembler.forget(session_id)
    return {"session_id": session_id, "cleared": cleared}


@router.post(
    "/{session_id}/cancel",
    response_model=CancelResponse,
    summary="Cancel the session's in-flight turn",
    responses={404: {"model": ErrorResponse}},
)
async def cancel_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    coordinator: TurnCoordinator = Depends(get_coordinator),
):
    try:
        registry.require(session_id)
    except SessionNotFoundError:
        return _not_found(session_id)

    return {"session_id": session_id, "cancelled": coordinator.cancel_turn(session_id)}
