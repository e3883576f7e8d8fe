"""
Job pipeline for SeedStream.

One asyncio task per job drives: ingest torrent -> for each video file,
transcode -> upload -> record result. A failing file is skipped; only a
failure to acquire the torrent fails the whole job.
"""

import asyncio
import re
import shutil
import uuid
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import SeedStreamConfig, get_config
from .errors import IngestionError, TranscodeError, UploadError
from .models import JobState, PlaylistResult
from .registry import StatusRegistry
from .storage import HLSUploader, ObjectStore, S3ObjectStore
from .torrent import TorrentClient, TorrentFile, TorrentHandle, ingest, resolve_input, select_video_files
from .transcoding import TranscodeEngine, TranscodeProgress

# Thread pool for blocking directory removal
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="seedstream_cleanup")

logger = logging.getLogger(__name__)

# Keeps "hls-output-NNN-<name>" under the 255-byte file name limit
MAX_WORK_DIR_NAME = 100


def sanitize_file_name(name: str) -> str:
    """Replace every run of non-word characters with an underscore."""
    return re.sub(r"\W+", "_", name)


@dataclass
class ProgressEvent:
    """Percentage progress of one file through one stage."""
    job_id: str
    file_name: str
    stage: str  # "transcode" or "upload"
    percent: float


StatusCallback = Callable[[str, JobState, str], None]
ProgressCallback = Callable[[ProgressEvent], None]


class JobManager:
    """Runs jobs as independent tasks and exposes their status and results."""

    def __init__(
        self,
        torrent_client: TorrentClient,
        engine: TranscodeEngine,
        store: ObjectStore,
        registry: Optional[StatusRegistry] = None,
        config: Optional[SeedStreamConfig] = None,
    ):
        self.config = config or get_config()
        self.torrent_client = torrent_client
        self.engine = engine
        self.registry = registry or StatusRegistry()
        self.store = store
        self.uploader = HLSUploader(store, self.registry)
        self.work_root = Path(self.config.transcoding.work_directory)
        self.active_jobs: Dict[str, asyncio.Task] = {}
        self.status_callbacks: List[StatusCallback] = []
        self.progress_callbacks: List[ProgressCallback] = []

    async def start(self) -> None:
        """Prepare the work directory and drop leftovers from a previous run."""
        self.work_root.mkdir(parents=True, exist_ok=True)
        await self._cleanup_orphaned_dirs()
        logger.info(f"[Job] Job manager ready, work directory: {self.work_root}")

    async def stop(self) -> None:
        """Cancel running jobs (shutdown only), then close the torrent client and the store."""
        tasks = list(self.active_jobs.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        await self.torrent_client.close()
        self.store.close()
        logger.info("[Job] Job manager stopped")

    # ---- public operations ----

    async def submit(self, source: Any) -> str:
        """
        Validate ``source`` and start a job for it.

        Returns the job id immediately; the work happens in a background task.

        Raises:
            InvalidInputError: ``source`` is not a magnet URI or torrent payload.
        """
        resolved = resolve_input(source)
        job_id = str(uuid.uuid4())
        self.registry.create(job_id)

        task = asyncio.create_task(self._run_job(job_id, resolved), name=f"seedstream-job-{job_id}")
        self.active_jobs[job_id] = task
        task.add_done_callback(lambda t: self._on_job_done(job_id, t))

        logger.info(f"[Job] Created job {job_id}")
        return job_id

    def get_status(self, job_id: str) -> str:
        return self.registry.get_status(job_id)

    def get_state(self, job_id: str) -> Optional[JobState]:
        return self.registry.get_state(job_id)

    def get_results(self, job_id: str) -> List[PlaylistResult]:
        return self.registry.get_results(job_id)

    def get_active_count(self) -> int:
        return len(self.active_jobs)

    async def wait_for_job(self, job_id: str) -> None:
        """Suspend until the job's task has finished (no-op for finished jobs)."""
        task = self.active_jobs.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def register_status_callback(self, callback: StatusCallback) -> None:
        self.status_callbacks.append(callback)

    def register_progress_callback(self, callback: ProgressCallback) -> None:
        self.progress_callbacks.append(callback)

    # ---- job task ----

    def _on_job_done(self, job_id: str, task: asyncio.Task) -> None:
        self.active_jobs.pop(job_id, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[Job] Job {job_id} task ended with an error: {task.exception()}")

    async def _run_job(self, job_id: str, source: Any) -> None:
        handle: Optional[TorrentHandle] = None
        job_dir = self.work_root / job_id
        # Terminal status is published only after the torrent and work dirs are gone
        outcome: Optional[Tuple[str, JobState]] = None

        try:
            self._set_status(job_id, "Initializing torrent...", JobState.INGESTING)
            handle = await ingest(self.torrent_client, source, job_id)

            files = select_video_files(handle.files)
            handle.prioritize(files)
            handle.on_done(lambda: self._on_download_done(job_id))

            self._set_status(
                job_id,
                f"Torrent added. Processing {len(files)} video file(s)...",
                JobState.PROCESSING_FILES,
            )
            await self._process_files(job_id, handle, files, job_dir)

            published = len(self.registry.get_results(job_id))
            outcome = (f"Process complete. {published} of {len(files)} file(s) published.", JobState.COMPLETED)

        except IngestionError as e:
            outcome = (f"Error during processing: {e}", JobState.FAILED)
        except asyncio.CancelledError:
            outcome = ("Error during processing: service shutting down", JobState.FAILED)
            raise
        except Exception as e:
            logger.exception(f"[Job] Unexpected error in job {job_id}: {e}")
            outcome = (f"Error during processing: {e}", JobState.FAILED)
        finally:
            if handle is not None:
                try:
                    await handle.destroy()
                except Exception as e:
                    logger.warning(f"[Job] {job_id}: error destroying torrent: {e}")
            await self._remove_dir(job_dir)
            if outcome is not None:
                self._set_status(job_id, *outcome)

    def _on_download_done(self, job_id: str) -> None:
        if self.registry.get_state(job_id) == JobState.PROCESSING_FILES:
            self._set_status(job_id, "Torrent download complete. Processing files...")

    async def _process_files(
        self,
        job_id: str,
        handle: TorrentHandle,
        files: List[TorrentFile],
        job_dir: Path,
    ) -> None:
        """Attempt every file; re-raise only errors that are not per-file."""
        semaphore = asyncio.Semaphore(max(1, self.config.pipeline.max_concurrent_files))
        total = len(files)
        aborted = False

        async def run(index: int, file: TorrentFile) -> None:
            nonlocal aborted
            async with semaphore:
                # Files still queued behind a fatal error are not started
                if aborted:
                    return
                try:
                    handle.raise_if_failed()
                    await self._process_file(job_id, file, index, total, job_dir)
                except Exception:
                    aborted = True
                    raise

        outcomes = await asyncio.gather(
            *(run(index, file) for index, file in enumerate(files, start=1)),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    async def _process_file(
        self,
        job_id: str,
        file: TorrentFile,
        index: int,
        total: int,
        job_dir: Path,
    ) -> None:
        safe_name = sanitize_file_name(file.name)[:MAX_WORK_DIR_NAME]
        work_dir = job_dir / f"hls-output-{index:03d}-{safe_name}"
        transcode_progress = _ProgressReporter(self, job_id, file.name, "transcode", "Transcoding")
        upload_progress = _ProgressReporter(self, job_id, file.name, "upload", "Uploading")

        try:
            try:
                work_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise TranscodeError(f"Cannot create work directory {work_dir.name}: {e}") from e
            self._set_status(job_id, f"Processing file {index}/{total}: {file.name}")

            artifact = await self.engine.transcode(
                file.open(),
                work_dir,
                progress_callback=transcode_progress.on_transcode_progress,
                start_callback=lambda cmd: logger.info(f"[{job_id}] FFmpeg started for {file.name}"),
            )

            await self.uploader.upload_artifact(
                artifact, job_id, file.name, progress_callback=upload_progress.report
            )
            self._set_status(job_id, f"Published {file.name}")

        except (TranscodeError, UploadError) as e:
            logger.warning(f"[Job] {job_id}: skipping {file.name}: {e}")
            self._set_status(job_id, f"Skipped {file.name}: {e}")
        finally:
            await self._remove_dir(work_dir)

    # ---- notifications ----

    def _set_status(self, job_id: str, message: str, state: Optional[JobState] = None) -> None:
        self.registry.set_status(job_id, message, state)
        current = self.registry.get_state(job_id)
        for callback in self.status_callbacks:
            try:
                callback(job_id, current, message)
            except Exception as e:
                logger.error(f"Status callback error: {e}")

    def _notify_progress(self, event: ProgressEvent) -> None:
        for callback in self.progress_callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Progress callback error: {e}")

    # ---- cleanup ----

    async def _remove_dir(self, path: Path) -> None:
        """Remove a directory tree on the cleanup thread pool."""
        if not path.exists():
            return

        def do_cleanup():
            shutil.rmtree(path, ignore_errors=True)
            if path.exists():
                logger.warning(f"[Cleanup] Failed to fully remove {path}")
            else:
                logger.debug(f"[Cleanup] Removed {path}")

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(_executor, do_cleanup)

    async def _cleanup_orphaned_dirs(self) -> int:
        """Remove job directories that have no running job (left by a previous process)."""
        if not self.work_root.exists():
            return 0

        cleaned = 0
        for item in self.work_root.iterdir():
            if item.is_dir() and item.name not in self.active_jobs:
                await self._remove_dir(item)
                cleaned += 1
                logger.info(f"[Cleanup] Removed orphaned work dir: {item.name}")

        return cleaned


class _ProgressReporter:
    """Turns raw progress into status messages, once per whole percent."""

    def __init__(self, manager: JobManager, job_id: str, file_name: str, stage: str, label: str):
        self.manager = manager
        self.job_id = job_id
        self.file_name = file_name
        self.stage = stage
        self.label = label
        self._last = -1

    def on_transcode_progress(self, progress: TranscodeProgress) -> None:
        # Unseekable inputs may never report a duration
        if progress.has_percent:
            self.report(progress.percent)

    def report(self, percent: float) -> None:
        whole = int(percent)
        if whole == self._last:
            return
        self._last = whole
        self.manager._set_status(self.job_id, f"{self.label} {self.file_name}: {whole}%")
        self.manager._notify_progress(ProgressEvent(self.job_id, self.file_name, self.stage, percent))


def create_job_manager(config: Optional[SeedStreamConfig] = None) -> JobManager:
    """Build a job manager wired to libtorrent, ffmpeg and S3."""
    from .torrent.session import LibtorrentClient

    config = config or get_config()
    return JobManager(
        torrent_client=LibtorrentClient(config.torrent),
        engine=TranscodeEngine(config.transcoding),
        store=S3ObjectStore(config.storage),
        config=config,
    )


# Global job manager instance
_job_manager: Optional[JobManager] = None


def get_job_manager() -> JobManager:
    """Get the global job manager instance."""
    global _job_manager
    if _job_manager is None:
        _job_manager = create_job_manager()
    return _job_manager


def set_job_manager(manager: Optional[JobManager]) -> None:
    """Set the global job manager instance."""
    global _job_manager
    _job_manager = manager
