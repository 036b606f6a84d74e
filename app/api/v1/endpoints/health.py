"""Health check endpoint. No store access; used for liveness probes."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.config import Settings, get_settings
from app.schemas.common import MESSAGE_OK, ApiResponse
from app.schemas.health import HealthResponse

router = APIRouter()


@router.get("", response_model=ApiResponse[HealthResponse])
def health_check(
    settings: Annotated[Settings, Depends(get_settings)],
) -> ApiResponse[HealthResponse]:
    """Return ok status with version and backend for liveness."""
    return ApiResponse(
        message=MESSAGE_OK,
        data=HealthResponse(version=settings.app_version, backend=settings.database_backend),
    )
