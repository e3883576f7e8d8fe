"""Torrent capability protocols consumed by the job pipeline."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable, List, Optional, Protocol, Sequence, Union

TorrentSource = Union[str, bytes]


class TorrentFile(Protocol):
    """One file inside a torrent. Valid while its owning handle is alive."""

    name: str
    path: str
    size: int

    def open(self) -> AsyncIterator[bytes]:
        """Return a fresh byte stream over the whole file."""


class TorrentHandle(Protocol):
    """An added torrent whose metadata is available."""

    name: str
    files: List[TorrentFile]
    done: asyncio.Event

    @property
    def error(self) -> Optional[str]:
        """Fatal transfer error message, or None while the transfer is healthy."""

    def raise_if_failed(self) -> None:
        """Raise IngestionError if the transfer has failed fatally."""

    def on_done(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` once the whole transfer has completed."""

    def prioritize(self, files: Sequence[TorrentFile]) -> None:
        """Download only ``files``; everything else is skipped."""

    async def destroy(self) -> None:
        """Release peers and transfer resources. Safe to call more than once."""


class TorrentClient(Protocol):
    """Adds torrents and waits for their metadata."""

    async def add(self, source: TorrentSource, job_id: str) -> TorrentHandle:
        """Add a magnet URI or torrent payload; raise IngestionError on failure."""

    async def close(self) -> None:
        """Shut the client down."""


__all__ = ["TorrentClient", "TorrentFile", "TorrentHandle", "TorrentSource"]
