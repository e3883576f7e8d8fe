"""
API routes for SeedStream
"""

from . import health, stream

__all__ = ["health", "stream"]
