"""
SeedStream Test Configuration and Fixtures

Provides:
- Fake torrent client/handle/files, transcoder and object store
- Auto-generated test media files (no external downloads needed)
- Temporary configuration with auto-cleanup
"""

import asyncio
import itertools
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional, Sequence, Set

import pytest
from fastapi.testclient import TestClient

from seedstream.config import SeedStreamConfig, set_config
from seedstream.errors import IngestionError, TranscodeError, UploadError
from seedstream.jobs import JobManager, set_job_manager
from seedstream.transcoding import PlaylistArtifact, TranscodeProgress


# =============================================================================
# HLS OUTPUT HELPERS
# =============================================================================

def write_hls_output(output_dir: Path, segments: int = 3) -> PlaylistArtifact:
    """Write a playlist plus ``segments`` small segment files the way ffmpeg names them."""
    output_dir.mkdir(parents=True, exist_ok=True)
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        "#EXT-X-TARGETDURATION:10",
        "#EXT-X-MEDIA-SEQUENCE:0",
    ]
    segment_paths = []
    for number in range(segments):
        segment = output_dir / f"index{number}.ts"
        segment.write_bytes(b"\x47" + bytes([number % 256]) * 187)
        segment_paths.append(segment)
        lines.extend(["#EXTINF:10.000000,", segment.name])
    lines.append("#EXT-X-ENDLIST")

    playlist = output_dir / "index.m3u8"
    playlist.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return PlaylistArtifact(output_dir, playlist, segment_paths)


# =============================================================================
# FAKE TORRENT CLIENT
# =============================================================================

class FakeTorrentFile:
    """In-memory torrent file. ``error`` is raised after the data has been yielded."""

    def __init__(self, name: str, data: bytes = b"\x00" * 4096, error: Optional[Exception] = None):
        self.name = name
        self.path = f"Release/{name}"
        self.size = len(data)
        self.data = data
        self.error = error
        self.open_count = 0

    def open(self):
        self.open_count += 1
        return self._stream()

    async def _stream(self):
        for offset in range(0, len(self.data), 1024):
            await asyncio.sleep(0)
            yield self.data[offset:offset + 1024]
        if self.error is not None:
            raise self.error


class FakeTorrentHandle:
    def __init__(self, files: Optional[List[FakeTorrentFile]] = None, name: str = "Release"):
        self.name = name
        self.files = files if files is not None else [FakeTorrentFile("movie.mp4")]
        self.done = asyncio.Event()
        self.fail_message: Optional[str] = None
        self.prioritized: List[FakeTorrentFile] = []
        self.destroy_count = 0
        self._callbacks: List[Callable[[], None]] = []

    @property
    def error(self) -> Optional[str]:
        return self.fail_message

    def raise_if_failed(self) -> None:
        if self.fail_message:
            raise IngestionError(f"Torrent error: {self.fail_message}")

    def on_done(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def finish(self) -> None:
        """Simulate the transfer completing."""
        self.done.set()
        for callback in self._callbacks:
            callback()

    def prioritize(self, files: Sequence[FakeTorrentFile]) -> None:
        self.prioritized = list(files)

    async def destroy(self) -> None:
        self.destroy_count += 1


class FakeTorrentClient:
    def __init__(self, handle: FakeTorrentHandle):
        self.handle = handle
        self.error: Optional[Exception] = None
        self.sources: List[object] = []
        self.closed = False

    async def add(self, source, job_id: str) -> FakeTorrentHandle:
        self.sources.append(source)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.handle

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# FAKE TRANSCODER
# =============================================================================

class FakeTranscodeEngine:
    """
    Consumes the input stream and writes a small HLS output.

    Output directories whose name contains any string in ``failures`` raise
    TranscodeError instead. ``gate`` (when set) is awaited before writing.
    """

    def __init__(self, segments: int = 3):
        self.segments = segments
        self.failures: Set[str] = set()
        self.gate: Optional[asyncio.Event] = None
        self.on_transcode: Optional[Callable[[], None]] = None
        self.output_dirs: List[Path] = []
        self.bytes_read: Dict[str, int] = {}

    async def transcode(self, stream, output_dir: Path, progress_callback=None, start_callback=None):
        self.output_dirs.append(output_dir)
        if start_callback:
            start_callback(["ffmpeg", "-i", "pipe:0"])

        total = 0
        async for chunk in stream:
            total += len(chunk)
        self.bytes_read[output_dir.name] = total

        if self.on_transcode:
            self.on_transcode()
        if self.gate is not None:
            await self.gate.wait()

        if any(marker in output_dir.name for marker in self.failures):
            raise TranscodeError("FFmpeg error (code 1): Invalid data found when processing input")

        if progress_callback:
            progress_callback(TranscodeProgress(time=10.0, duration=20.0, percent=50.0))

        return write_hls_output(output_dir, self.segments)


# =============================================================================
# FAKE OBJECT STORE
# =============================================================================

# Global upload sequence shared by all stores so cross-job ordering is observable
_upload_sequence = itertools.count()


class StoredObject:
    def __init__(self, key: str, content_type: str, body: bytes, local_path: Path):
        self.key = key
        self.content_type = content_type
        self.body = body
        self.local_path = local_path
        self.sequence = next(_upload_sequence)


class FakeObjectStore:
    def __init__(self, base_url: str = "http://127.0.0.1:9000", bucket: str = "hls"):
        self.base_url = base_url
        self.bucket = bucket
        self.objects: List[StoredObject] = []
        self.fail_on: Optional[Callable[[Path, str], bool]] = None
        self.closed = False

    async def put_file(self, local_path: Path, key: str, content_type: str) -> None:
        await asyncio.sleep(0)
        if self.fail_on is not None and self.fail_on(local_path, key):
            raise UploadError(f"Failed to upload {key}: connection refused")
        self.objects.append(StoredObject(key, content_type, local_path.read_bytes(), local_path))

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{self.bucket}/{key}"

    def close(self) -> None:
        self.closed = True

    @property
    def keys(self) -> List[str]:
        return [obj.key for obj in self.objects]


# =============================================================================
# TEST MEDIA GENERATION
# =============================================================================

class TestMediaGenerator:
    """
    Generates test media files using FFmpeg.
    Matroska output so the files can be read back through a pipe.
    """

    def __init__(self, output_dir: Path):
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._ffmpeg = shutil.which("ffmpeg")

    @property
    def has_ffmpeg(self) -> bool:
        return self._ffmpeg is not None

    def generate_test_video(
        self,
        name: str = "test_video",
        duration: int = 3,
        width: int = 640,
        height: int = 360,
        fps: int = 25,
        audio: bool = True
    ) -> Optional[Path]:
        """Generate a test video with color bars and tone, or None without FFmpeg."""
        if not self.has_ffmpeg:
            return None

        output_path = self.output_dir / f"{name}.mkv"

        cmd = [
            self._ffmpeg,
            "-y",
            "-f", "lavfi",
            "-i", f"testsrc=duration={duration}:size={width}x{height}:rate={fps}",
        ]

        if audio:
            cmd.extend([
                "-f", "lavfi",
                "-i", f"sine=frequency=440:duration={duration}",
            ])

        cmd.extend([
            "-c:v", "libx264",
            "-preset", "ultrafast",  # Fast encoding for tests
            "-pix_fmt", "yuv420p",
        ])

        if audio:
            cmd.extend(["-c:a", "aac", "-b:a", "128k"])

        cmd.append(str(output_path))

        try:
            result = subprocess.run(cmd, capture_output=True, timeout=60)
        except subprocess.TimeoutExpired:
            return None

        if result.returncode == 0 and output_path.exists():
            return output_path
        return None


# =============================================================================
# PYTEST FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def test_media_dir(tmp_path_factory) -> Path:
    """Session-scoped temp directory for test media."""
    return tmp_path_factory.mktemp("seedstream_test_media")


@pytest.fixture(scope="session")
def media_generator(test_media_dir) -> TestMediaGenerator:
    return TestMediaGenerator(test_media_dir)


@pytest.fixture(scope="session")
def quick_test_video(media_generator) -> Path:
    """Short test video, generated once per session."""
    if not media_generator.has_ffmpeg:
        pytest.skip("FFmpeg not available for test media generation")

    path = media_generator.generate_test_video("test_quick", duration=3)
    if path is None:
        pytest.skip("Failed to generate test video")
    return path


@pytest.fixture
def test_config(tmp_path) -> SeedStreamConfig:
    """Test configuration with work and download directories under tmp_path."""
    config = SeedStreamConfig()
    config.transcoding.work_directory = str(tmp_path / "hls-output")
    config.torrent.download_directory = str(tmp_path / "torrent_data")
    config.storage.endpoint_url = "http://127.0.0.1:9000"
    config.storage.public_base_url = None
    config.storage.bucket = "hls"
    config.logging.level = "WARNING"  # Less noise in tests

    set_config(config)
    return config


@pytest.fixture
def work_root(test_config) -> Path:
    return Path(test_config.transcoding.work_directory)


@pytest.fixture
def torrent_handle() -> FakeTorrentHandle:
    return FakeTorrentHandle()


@pytest.fixture
def torrent_client(torrent_handle) -> FakeTorrentClient:
    return FakeTorrentClient(torrent_handle)


@pytest.fixture
def fake_engine() -> FakeTranscodeEngine:
    return FakeTranscodeEngine()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def job_manager(test_config, torrent_client, fake_engine, object_store) -> JobManager:
    return JobManager(
        torrent_client=torrent_client,
        engine=fake_engine,
        store=object_store,
        config=test_config,
    )


@pytest.fixture
def api_client(job_manager) -> Generator[TestClient, None, None]:
    """Test client wired to the fake-backed job manager."""
    from seedstream.api import app

    set_job_manager(job_manager)
    with TestClient(app) as client:
        yield client
    set_job_manager(None)


# =============================================================================
# SKIP CONDITIONS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "requires_ffmpeg: marks tests that require FFmpeg"
    )


@pytest.fixture
def requires_ffmpeg():
    """Skip test if FFmpeg not available."""
    if not shutil.which("ffmpeg"):
        pytest.skip("FFmpeg not available")
