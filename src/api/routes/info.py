from fastapi import APIRouter, Depends, status

from api.dependencies import get_app_settings, get_coordinator, get_registry
from api.models.schemas import HealthResponse
from app.coordinator import TurnCoordinator
from app.models import utc_now
from app.session import SessionRegistry
from config import Settings

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check endpoint"
)
async def health_check(
    settings: Settings = Depends(get_app_settings),
    registry: SessionRegistry = Depends(get_registry),
    coordinator: TurnCoordinator = Depends(get_coordinator),
):
    return {
        "status": "ok",
        "timestamp": utc_now(),
        "pa_root": str(settings.projects_root),
        "engine_type": settings.engine_type,
        "metrics": {
            **registry.get_metrics(),
            **coordinator.get_metrics(),
            "skipped_frames": coordinator.decoder.skipped_frames,
        },
    }
