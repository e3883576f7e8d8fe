"""
libtorrent-backed torrent client.

Wraps libtorrent's polled session API behind awaitable operations: adding a
torrent suspends until metadata arrives, file streams suspend until the
pieces they cover are on disk, and a watcher task fires the handle's ``done``
event when the transfer finishes.
"""

import asyncio
import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Sequence

import libtorrent as lt

from ..config import TorrentConfig, get_config
from ..errors import IngestionError
from .base import TorrentSource

# Thread pool for blocking disk operations (piece reads, directory removal)
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="seedstream_torrent")

logger = logging.getLogger(__name__)

DEFAULT_FILE_PRIORITY = 4
SKIP_FILE_PRIORITY = 0


def _read_range(path: Path, offset: int, length: int) -> bytes:
    with open(path, "rb") as f:
        f.seek(offset)
        return f.read(length)


class LibtorrentFile:
    """A file inside a libtorrent torrent, streamed from disk as pieces arrive."""

    def __init__(self, owner: "LibtorrentHandle", index: int, name: str, path: str, size: int):
        self._owner = owner
        self.index = index
        self.name = name
        self.path = path
        self.size = size

    @property
    def local_path(self) -> Path:
        return self._owner.save_path / self.path

    def _piece_range(self, offset: int, length: int) -> range:
        info = self._owner.torrent_info
        first = info.map_file(self.index, offset, 1).piece
        last = info.map_file(self.index, offset + length - 1, 1).piece
        return range(first, last + 1)

    async def open(self) -> AsyncIterator[bytes]:
        """Yield the file's bytes in order, waiting for each chunk to download."""
        loop = asyncio.get_running_loop()
        chunk_size = self._owner.piece_length
        offset = 0

        while offset < self.size:
            length = min(chunk_size, self.size - offset)
            await self._owner.wait_for_pieces(self._piece_range(offset, length))
            data = await loop.run_in_executor(_executor, _read_range, self.local_path, offset, length)
            if len(data) != length:
                raise IngestionError(f"Short read from {self.path} at offset {offset}")
            yield data
            offset += length


class LibtorrentHandle:
    """A torrent added to a libtorrent session with its metadata resolved."""

    def __init__(self, session: "lt.session", handle: "lt.torrent_handle", save_path: Path, config: TorrentConfig):
        self._session = session
        self._handle = handle
        self._config = config
        self.save_path = save_path
        self.torrent_info = handle.torrent_file()
        self.name: str = self.torrent_info.name()
        self.piece_length: int = self.torrent_info.piece_length()
        self.files: List[LibtorrentFile] = self._build_files()
        self.done = asyncio.Event()
        self._done_callbacks: List[Callable[[], None]] = []
        self._destroyed = False
        self._watcher = asyncio.create_task(self._watch())

    def _build_files(self) -> List[LibtorrentFile]:
        storage = self.torrent_info.files()
        files = []
        for index in range(storage.num_files()):
            path = storage.file_path(index)
            # BEP 47 padding files
            if ".pad" in Path(path).parts:
                continue
            files.append(LibtorrentFile(
                self, index, storage.file_name(index), path, storage.file_size(index)
            ))
        return files

    @property
    def error(self) -> Optional[str]:
        if self._destroyed:
            return "Torrent was destroyed"
        if not self._handle.is_valid():
            return "Torrent handle is no longer valid"
        errc = self._handle.status().errc
        if errc.value() != 0:
            return errc.message()
        return None

    def raise_if_failed(self) -> None:
        error = self.error
        if error:
            raise IngestionError(f"Torrent error: {error}")

    def on_done(self, callback: Callable[[], None]) -> None:
        self._done_callbacks.append(callback)

    def prioritize(self, files: Sequence[LibtorrentFile]) -> None:
        """Download the given files in order and skip the rest."""
        wanted = {f.index for f in files}
        priorities = [
            DEFAULT_FILE_PRIORITY if index in wanted else SKIP_FILE_PRIORITY
            for index in range(self.torrent_info.num_files())
        ]
        self._handle.prioritize_files(priorities)
        self._handle.set_flags(lt.torrent_flags.sequential_download)

    async def wait_for_pieces(self, pieces: range) -> None:
        """Suspend until every piece in ``pieces`` has been downloaded and verified."""
        missing = [p for p in pieces if not self._handle.have_piece(p)]
        for piece in missing:
            self._handle.set_piece_deadline(piece, self._config.piece_deadline_ms)

        while missing:
            self.raise_if_failed()
            await asyncio.sleep(self._config.poll_interval)
            missing = [p for p in missing if not self._handle.have_piece(p)]

    async def _watch(self) -> None:
        """Fire the done notification once all wanted pieces are downloaded."""
        last_logged = -1
        while not self._destroyed:
            status = self._handle.status()
            if status.is_finished or status.is_seeding:
                logger.info(f"[Torrent] {self.name}: download complete")
                self.done.set()
                for callback in self._done_callbacks:
                    try:
                        callback()
                    except Exception as e:
                        logger.error(f"[Torrent] Done callback error: {e}")
                return

            percent = int(status.progress * 100)
            if percent // 10 != last_logged // 10:
                last_logged = percent
                logger.debug(
                    f"[Torrent] {self.name}: {percent}% "
                    f"({status.download_rate / 1024:.0f} kB/s, {status.num_peers} peers)"
                )
            await asyncio.sleep(self._config.poll_interval * 4)

    async def destroy(self) -> None:
        """Remove the torrent and its downloaded data."""
        if self._destroyed:
            return
        self._destroyed = True

        self._watcher.cancel()
        try:
            await self._watcher
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"[Torrent] Watcher for {self.name} had failed: {e}")

        try:
            self._session.remove_torrent(self._handle, lt.options_t.delete_files)
        except RuntimeError as e:
            logger.warning(f"[Torrent] Error removing {self.name}: {e}")

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(_executor, shutil.rmtree, self.save_path, True)
        logger.info(f"[Torrent] Destroyed {self.name}")


class LibtorrentClient:
    """Owns one libtorrent session shared by all jobs."""

    def __init__(self, config: Optional[TorrentConfig] = None):
        self.config = config or get_config().torrent
        self.download_dir = Path(self.config.download_directory)
        self._session: Optional[lt.session] = None

    @property
    def session(self) -> "lt.session":
        if self._session is None:
            self._session = lt.session({
                "listen_interfaces": self.config.listen_interfaces,
                "enable_outgoing_utp": self.config.enable_utp,
                "enable_incoming_utp": self.config.enable_utp,
                "enable_dht": self.config.enable_dht,
            })
            logger.info(f"[Torrent] Session listening on {self.config.listen_interfaces}")
        return self._session

    def _build_params(self, source: TorrentSource, save_path: Path) -> "lt.add_torrent_params":
        if isinstance(source, str):
            params = lt.parse_magnet_uri(source)
        else:
            params = lt.add_torrent_params()
            params.ti = lt.torrent_info(lt.bdecode(source))
        params.save_path = str(save_path)
        return params

    async def _wait_for_metadata(self, handle: "lt.torrent_handle") -> None:
        while True:
            status = handle.status()
            if status.errc.value() != 0:
                raise IngestionError(f"Torrent error: {status.errc.message()}")
            if status.has_metadata:
                return
            await asyncio.sleep(self.config.poll_interval)

    async def add(self, source: TorrentSource, job_id: str) -> LibtorrentHandle:
        save_path = self.download_dir / job_id
        save_path.mkdir(parents=True, exist_ok=True)
        loop = asyncio.get_running_loop()

        try:
            handle = self.session.add_torrent(self._build_params(source, save_path))
        except (RuntimeError, ValueError, TypeError) as e:
            await loop.run_in_executor(_executor, shutil.rmtree, save_path, True)
            raise IngestionError(f"Failed to add torrent: {e}") from e

        try:
            await self._wait_for_metadata(handle)
        except BaseException:
            self.session.remove_torrent(handle, lt.options_t.delete_files)
            await loop.run_in_executor(_executor, shutil.rmtree, save_path, True)
            raise

        return LibtorrentHandle(self.session, handle, save_path, self.config)

    async def close(self) -> None:
        if self._session is not None:
            self._session.pause()
            self._session = None
            logger.info("[Torrent] Session closed")
