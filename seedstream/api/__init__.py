"""
API package for SeedStream
"""

from .app import app, create_app
from .websocket import broadcast_progress, broadcast_status, websocket_connections

__all__ = [
    "app",
    "create_app",
    "broadcast_progress",
    "broadcast_status",
    "websocket_connections",
]
