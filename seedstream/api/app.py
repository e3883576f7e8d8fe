"""
FastAPI application for SeedStream
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..jobs import get_job_manager
from .routes import health, stream
from .websocket import broadcast_progress, broadcast_status, websocket_progress_handler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    health.set_start_time(time.time())

    job_manager = get_job_manager()

    # Register WebSocket callbacks
    job_manager.register_progress_callback(broadcast_progress)
    job_manager.register_status_callback(broadcast_status)

    await job_manager.start()
    logger.info(f"SeedStream v{__version__} started")

    yield

    logger.info("Shutting down SeedStream...")
    await job_manager.stop()
    logger.info("SeedStream shutdown complete")


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    application = FastAPI(
        title="SeedStream",
        description="Torrent to HLS publishing service",
        version=__version__,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(stream.router)
    application.include_router(health.router)

    @application.websocket("/ws/progress")
    async def websocket_progress(websocket: WebSocket):
        await websocket_progress_handler(websocket)

    return application


app = create_app()
