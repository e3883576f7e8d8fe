"""
Publishes one HLS artifact: segments under opaque names first, then the
rewritten playlist, so every reference in a public playlist already resolves.
"""

import logging
from typing import Callable, Dict, Optional, Set

from ..errors import UploadError
from ..models import PlaylistResult
from ..naming import generate_opaque_name, rewrite_references
from ..registry import StatusRegistry
from ..transcoding.constants import PLAYLIST_SUFFIX, SEGMENT_SUFFIX
from ..transcoding.models import PlaylistArtifact
from .s3 import ObjectStore

logger = logging.getLogger(__name__)

SEGMENT_CONTENT_TYPE = "video/mp2t"
PLAYLIST_CONTENT_TYPE = "application/vnd.apple.mpegurl"


class HLSUploader:
    """Uploads playlist artifacts and records the resulting playlist URLs."""

    def __init__(self, store: ObjectStore, registry: StatusRegistry):
        self.store = store
        self.registry = registry

    async def upload_artifact(
        self,
        artifact: PlaylistArtifact,
        job_id: str,
        file_name: str,
        progress_callback: Optional[Callable[[float], None]] = None,
    ) -> PlaylistResult:
        """
        Upload ``artifact`` under ``{job_id}/`` and append its result to the job.

        Raises:
            UploadError: any segment or playlist write failed. Segments that
            were already stored are left in place.
        """
        total_files = artifact.file_count
        uploaded = 0
        taken: Set[str] = set()
        mapping: Dict[str, str] = {}

        def report() -> None:
            percent = round(uploaded / total_files * 100, 1)
            logger.info(f"[{job_id}] Upload progress: {percent:.0f}%")
            if progress_callback:
                try:
                    progress_callback(percent)
                except Exception as e:
                    logger.warning(f"Upload progress callback error: {e}")

        for segment_path in artifact.segment_paths:
            opaque_name = generate_opaque_name(SEGMENT_SUFFIX, taken)
            await self.store.put_file(segment_path, f"{job_id}/{opaque_name}", SEGMENT_CONTENT_TYPE)
            mapping[segment_path.name] = opaque_name
            uploaded += 1
            report()

        try:
            playlist_text = artifact.playlist_path.read_text(encoding="utf-8")
            artifact.playlist_path.write_text(rewrite_references(playlist_text, mapping), encoding="utf-8")
        except OSError as e:
            raise UploadError(f"Failed to rewrite playlist {artifact.playlist_path.name}: {e}") from e

        playlist_key = f"{job_id}/{generate_opaque_name(PLAYLIST_SUFFIX, taken)}"
        await self.store.put_file(artifact.playlist_path, playlist_key, PLAYLIST_CONTENT_TYPE)
        uploaded += 1
        report()

        result = PlaylistResult(playlist_url=self.store.public_url(playlist_key), file_name=file_name)
        self.registry.append_result(job_id, result)
        logger.info(f"[{job_id}] Playlist URL: {result.playlist_url}")
        return result
