"""Health check endpoint."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from omr_worker.models.responses import HealthResponse, ServiceAvailability

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness plus external engine availability. Always 200."""
    availability = request.app.state.pipeline.engine_availability()
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        service_availability=ServiceAvailability(**availability),
    )
