"""
WebSocket handling for SeedStream
"""

import asyncio
import json
import logging
from typing import List, Set

from fastapi import WebSocket, WebSocketDisconnect

from ..jobs import ProgressEvent
from ..models import JobState

logger = logging.getLogger(__name__)

# Global WebSocket connections
websocket_connections: List[WebSocket] = []

# Pending broadcasts; the event loop only keeps weak references to tasks
_broadcast_tasks: Set[asyncio.Task] = set()


def broadcast_progress(event: ProgressEvent) -> None:
    """Broadcast progress update to all WebSocket clients."""
    message = {
        "type": "progress",
        "job_id": event.job_id,
        "data": {
            "file_name": event.file_name,
            "stage": event.stage,
            "progress": event.percent,
        }
    }
    _schedule_broadcast(message)


def broadcast_status(job_id: str, state: JobState, status: str) -> None:
    """Broadcast status change to all WebSocket clients."""
    message = {
        "type": "status_change",
        "job_id": job_id,
        "data": {
            "state": state.value if state else "unknown",
            "status": status,
        }
    }
    _schedule_broadcast(message)


def _schedule_broadcast(message: dict) -> None:
    task = asyncio.create_task(_broadcast_message(message))
    _broadcast_tasks.add(task)
    task.add_done_callback(_broadcast_tasks.discard)


async def _broadcast_message(message: dict) -> None:
    """Send message to all connected WebSocket clients."""
    disconnected = []
    for ws in websocket_connections[:]:  # Iterate over a copy
        try:
            await ws.send_json(message)
        except Exception:
            disconnected.append(ws)

    for ws in disconnected:
        if ws in websocket_connections:
            websocket_connections.remove(ws)


async def websocket_progress_handler(websocket: WebSocket) -> None:
    """WebSocket endpoint handler for real-time job updates."""
    await websocket.accept()
    websocket_connections.append(websocket)

    logger.info(f"WebSocket client connected. Total connections: {len(websocket_connections)}")

    try:
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=30.0)

                try:
                    message = json.loads(data)
                    if message.get("type") == "ping":
                        await websocket.send_json({"type": "pong"})
                except (json.JSONDecodeError, AttributeError):
                    pass

            except asyncio.TimeoutError:
                # Send ping to keep connection alive
                try:
                    await websocket.send_json({"type": "ping"})
                except Exception:
                    break

    except WebSocketDisconnect:
        pass
    finally:
        if websocket in websocket_connections:
            websocket_connections.remove(websocket)
        logger.info(f"WebSocket client disconnected. Total connections: {len(websocket_connections)}")
