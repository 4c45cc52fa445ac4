"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request, status

from money_movement.api.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(request: Request) -> HealthResponse:
    """Check API health."""
    processor = request.app.state.processor
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        processor=processor.processor_name,
        sandbox=True,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    """Readiness check for container orchestration."""
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
