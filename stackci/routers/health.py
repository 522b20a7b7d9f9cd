"""Liveness endpoint for the webhook listener."""

from fastapi import APIRouter

from stackci.config import settings
from stackci.schemas.health import HealthResponse

router = APIRouter()


@router.get("/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    """Report that the listener is up and which event table it writes to."""
    return HealthResponse(status="ok", event_table=settings.event_table or "in-memory")
