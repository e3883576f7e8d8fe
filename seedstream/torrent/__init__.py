"""
Torrent ingestion for SeedStream.

The libtorrent client lives in ``seedstream.torrent.session`` and is imported
on demand so the rest of the package works without libtorrent installed.
"""

from .base import TorrentClient, TorrentFile, TorrentHandle, TorrentSource
from .ingest import (
    MAGNET_PREFIX,
    VIDEO_EXTENSIONS,
    ingest,
    is_video_file,
    resolve_input,
    select_video_files,
)

__all__ = [
    "TorrentClient",
    "TorrentFile",
    "TorrentHandle",
    "TorrentSource",
    "MAGNET_PREFIX",
    "VIDEO_EXTENSIONS",
    "ingest",
    "is_video_file",
    "resolve_input",
    "select_video_files",
]
