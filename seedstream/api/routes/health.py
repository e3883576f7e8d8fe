"""
Health API routes for SeedStream
"""

import time
from fastapi import APIRouter

from ... import __version__
from ...jobs import get_job_manager
from ...models import HealthResponse

router = APIRouter()

# Start time - set by lifespan
start_time: float = 0


def set_start_time(t: float) -> None:
    """Set the server start time."""
    global start_time
    start_time = t


@router.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="OK",
        version=__version__,
        uptime_seconds=time.time() - start_time,
        active_jobs=get_job_manager().get_active_count(),
    )


@router.get("/health", response_model=HealthResponse)
async def health_check_compat():
    """Health check endpoint without the /api prefix."""
    return await health_check()
