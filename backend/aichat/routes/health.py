"""Health check endpoint."""

from fastapi import APIRouter, Depends

from aichat.config import Settings
from aichat.dependencies import get_settings
from aichat.models import HealthResponse

router = APIRouter()


@router.get("/api/health", response_model=HealthResponse)
async def health(settings: Settings = Depends(get_settings)) -> HealthResponse:
    status = "ok" if settings.openai_configured else "degraded"
    return HealthResponse(
        status=status,
        openai_configured=settings.openai_configured,
    )
