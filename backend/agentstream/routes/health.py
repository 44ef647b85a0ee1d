"""Health check endpoint."""

from fastapi import APIRouter

from agentstream.config import settings
from agentstream.models import HealthResponse
from agentstream.redis_client import get_redis

router = APIRouter()


@router.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    redis_connected = get_redis() is not None
    ok = settings.anthropic_configured and redis_connected
    return HealthResponse(
        status="ok" if ok else "degraded",
        anthropic_configured=settings.anthropic_configured,
        redis_connected=redis_connected,
    )
