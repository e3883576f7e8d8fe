"""
Data classes for transcoding progress and output.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass
class TranscodeProgress:
    """Progress parsed from ffmpeg's stderr."""
    frame: int = 0
    fps: float = 0.0
    bitrate: str = ""
    total_size: int = 0
    time: float = 0.0
    duration: float = 0.0
    speed: float = 0.0
    percent: float = 0.0
    stage: str = "transcoding"

    @property
    def has_percent(self) -> bool:
        """Percent is only meaningful once ffmpeg has reported the input duration."""
        return self.duration > 0


@dataclass
class PlaylistArtifact:
    """One HLS playlist and its segments, all inside ``output_dir``."""
    output_dir: Path
    playlist_path: Path
    segment_paths: List[Path] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.segment_paths) + 1
