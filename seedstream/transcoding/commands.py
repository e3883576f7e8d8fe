"""
FFmpeg command building for HLS output.
"""

import logging
from pathlib import Path
from typing import List

from .constants import (
    AUDIO_BITRATE,
    AUDIO_CODEC,
    PLAYLIST_NAME,
    PLAYLIST_SIZE,
    PRESET,
    SEGMENT_DURATION,
    SEGMENT_PATTERN,
    START_NUMBER,
    VIDEO_CODEC,
    VIDEO_LEVEL,
    VIDEO_PROFILE,
)

logger = logging.getLogger(__name__)


class CommandBuilder:
    """Builds FFmpeg commands for single-rendition HLS encoding."""

    def __init__(self, ffmpeg_path: str):
        self.ffmpeg_path = ffmpeg_path

    def build_hls_command(self, output_dir: Path, source: str = "pipe:0") -> List[str]:
        """
        Build an ffmpeg command that reads ``source`` and writes a playlist
        plus segments into ``output_dir``.
        """
        cmd = [self.ffmpeg_path, "-y", "-hide_banner"]

        # Input
        cmd.extend(["-i", source])

        # Map streams explicitly
        cmd.extend(["-map", "0:v:0", "-map", "0:a:0?"])

        # Video encoding
        cmd.extend([
            "-c:v", VIDEO_CODEC,
            "-preset", PRESET,
            "-profile:v", VIDEO_PROFILE,
            "-level", VIDEO_LEVEL,
            "-pix_fmt", "yuv420p",
        ])

        # Audio encoding
        cmd.extend(["-c:a", AUDIO_CODEC, "-b:a", AUDIO_BITRATE, "-ac", "2"])

        # HLS output
        cmd.extend([
            "-f", "hls",
            "-start_number", str(START_NUMBER),
            "-hls_time", str(SEGMENT_DURATION),
            "-hls_list_size", str(PLAYLIST_SIZE),
            "-hls_segment_filename", str(output_dir / SEGMENT_PATTERN),
            str(output_dir / PLAYLIST_NAME),
        ])

        return cmd
