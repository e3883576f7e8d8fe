"""
HLS transcoding for SeedStream.
"""

from .models import PlaylistArtifact, TranscodeProgress
from .constants import PLAYLIST_NAME, SEGMENT_DURATION
from .commands import CommandBuilder
from .engine import TranscodeEngine

__all__ = [
    "PlaylistArtifact",
    "TranscodeProgress",
    "PLAYLIST_NAME",
    "SEGMENT_DURATION",
    "CommandBuilder",
    "TranscodeEngine",
]
