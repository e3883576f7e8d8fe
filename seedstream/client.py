"""
SeedStream Client - submit torrents to a SeedStream server and collect playlists

Usage:
    from seedstream.client import SeedStreamClient

    client = SeedStreamClient("http://localhost:3000")
    job = await client.start_stream(magnet="magnet:?xt=urn:btih:...")
    job = await client.wait_for_completion(job.unique_id)
    for playlist in await client.get_playlists(job.unique_id):
        print(playlist.file_name, playlist.playlist_url)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from .models import JobState, PlaylistResult

logger = logging.getLogger(__name__)

UNKNOWN_STATE = "unknown"


@dataclass
class StreamJob:
    """Client-side view of a job."""
    unique_id: str
    state: str = JobState.SUBMITTED.value
    status: str = ""

    @property
    def is_finished(self) -> bool:
        return self.state in (JobState.COMPLETED.value, JobState.FAILED.value)


class SeedStreamClient:
    """
    Async HTTP client for one SeedStream server.

    Network errors are logged and reported as ``None`` / ``False`` / ``[]``,
    so callers can poll without wrapping every call.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def health_check(self) -> bool:
        """Check if the server is healthy."""
        try:
            async with self._client() as client:
                response = await client.get("/health", timeout=5.0)
                return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def start_stream(
        self,
        magnet: Optional[str] = None,
        torrent: Optional[bytes] = None,
    ) -> Optional[StreamJob]:
        """
        Submit a magnet link or the contents of a .torrent file.

        Returns:
            StreamJob for the accepted job, or None if the server rejected it.
        """
        if not magnet and not torrent:
            raise ValueError("Either magnet or torrent is required")

        try:
            async with self._client() as client:
                if torrent:
                    response = await client.post(
                        "/start-stream",
                        files={"file": ("upload.torrent", torrent, "application/x-bittorrent")},
                    )
                else:
                    response = await client.post("/start-stream", json={"magnet": magnet})

                if response.status_code == 202:
                    return StreamJob(unique_id=response.json()["uniqueId"])
                logger.error(f"Start stream request failed: {response.text}")
        except httpx.HTTPError as e:
            logger.error(f"Start stream request error: {e}")

        return None

    async def get_status(self, unique_id: str) -> Optional[StreamJob]:
        """Get the latest status of a job."""
        try:
            async with self._client() as client:
                response = await client.get(f"/status/{unique_id}", timeout=10.0)
                if response.status_code == 200:
                    data = response.json()
                    return StreamJob(
                        unique_id=data["uniqueId"],
                        state=data.get("state", UNKNOWN_STATE),
                        status=data.get("status", ""),
                    )
        except httpx.HTTPError as e:
            logger.error(f"Status request error: {e}")

        return None

    async def get_playlists(self, unique_id: str) -> List[PlaylistResult]:
        """Playlists published so far; empty while none are available."""
        try:
            async with self._client() as client:
                response = await client.get(f"/playlist/{unique_id}", timeout=10.0)
                if response.status_code == 200:
                    return [PlaylistResult.model_validate(item) for item in response.json()["playlistUrls"]]
        except httpx.HTTPError as e:
            logger.error(f"Playlist request error: {e}")

        return []

    async def wait_for_completion(
        self,
        unique_id: str,
        timeout: float = 3600,
        poll_interval: float = 2.0,
    ) -> Optional[StreamJob]:
        """Poll until the job completes or fails. None on timeout or unknown job."""
        elapsed = 0.0
        while elapsed < timeout:
            job = await self.get_status(unique_id)

            if job is None or job.state == UNKNOWN_STATE:
                return None

            if job.is_finished:
                if job.state == JobState.FAILED.value:
                    logger.error(f"Job failed: {job.status}")
                return job

            await asyncio.sleep(poll_interval)
            elapsed += poll_interval

        logger.error(f"Timeout waiting for job {unique_id}")
        return None
