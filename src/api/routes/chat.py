from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from api.dependencies import get_app_settings, get_coordinator, get_streaming_handler
from api.models.schemas import ChatRequest, ErrorResponse
from app.coordinator import TurnCoordinator
from app.session import SessionBusyError
from app.streaming import ChatStreamingHandler
from config import Settings
from stream.transport import SESSION_HEADER

router = APIRouter()


@router.post(
    "/chat",
    summary="Run one turn and stream its events",
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def chat(
    body: ChatRequest,
    settings: Settings = Depends(get_app_settings),
    coordinator: TurnCoordinator = Depends(get_coordinator),
    streaming_handler: ChatStreamingHandler = Depends(get_streaming_handler),
):
    if not body.project_path or not body.message:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing required fields: projectPath and message"},
        )

    try:
        handle = coordinator.start_turn(body.project_path, body.message, body.session_id)
    except SessionBusyError as e:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"error": str(e)},
        )

    return EventSourceResponse(
        streaming_handler.stream_turn(handle),
        sep="\n",
        ping=settings.sse_ping_seconds,
        headers={
            SESSION_HEADER: handle.session_id,
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
        # Releases the turn if the response ended before streaming began
        background=BackgroundTask(coordinator.abandon, handle),
    )
