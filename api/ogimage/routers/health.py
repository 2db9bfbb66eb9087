from datetime import datetime, timezone

from fastapi import APIRouter, Request

from ..core.config import settings
from ..models.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Liveness probe. Does not touch storage or the raster engine."""
    return HealthResponse(
        service=settings.service_name,
        version=settings.service_version,
        status="ok",
        request_id=request.state.request_id,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
