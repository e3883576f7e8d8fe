"""
Torrent ingestion stage: input resolution, acquisition and file qualification.
"""

import logging
from typing import Any, Iterable, List

from ..errors import IngestionError, InvalidInputError, NoQualifyingFilesError
from .base import TorrentClient, TorrentFile, TorrentHandle, TorrentSource

logger = logging.getLogger(__name__)

MAGNET_PREFIX = "magnet:?"
VIDEO_EXTENSIONS = (".mp4", ".mkv", ".avi", ".mov")


def resolve_input(source: Any) -> TorrentSource:
    """Accept a magnet URI string or a torrent-file payload, reject anything else."""
    if isinstance(source, str) and source.startswith(MAGNET_PREFIX):
        logger.debug("[Torrent] Detected magnet link")
        return source

    if isinstance(source, (bytes, bytearray)) and len(source) > 0:
        logger.debug("[Torrent] Detected torrent file payload")
        return bytes(source)

    raise InvalidInputError("Invalid input: Must be a magnet URI string or a torrent file buffer.")


def is_video_file(name: str) -> bool:
    return name.lower().endswith(VIDEO_EXTENSIONS)


def select_video_files(files: Iterable[TorrentFile]) -> List[TorrentFile]:
    """Keep recognized video files in torrent order."""
    selected = [f for f in files if is_video_file(f.name)]
    if not selected:
        raise NoQualifyingFilesError("No suitable video files found in the torrent.")
    return selected


async def ingest(client: TorrentClient, source: Any, job_id: str) -> TorrentHandle:
    """
    Resolve ``source`` and add it to ``client``.

    Suspends until the torrent's metadata is known. The returned handle must be
    destroyed by the caller, whatever happens next.
    """
    resolved = resolve_input(source)
    logger.info(f"[{job_id}] Adding torrent")

    try:
        handle = await client.add(resolved, job_id)
    except IngestionError:
        raise
    except Exception as e:
        raise IngestionError(f"Failed to add torrent: {e}") from e

    logger.info(f"[{job_id}] Torrent ready: {handle.name} ({len(handle.files)} file(s))")
    return handle
