"""
Transcoding engine that turns one media byte stream into an HLS segment set.
"""

import asyncio
import re
import shutil
import signal
import sys
import logging
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Tuple

from ..config import TranscodingConfig, get_config
from ..errors import IngestionError, TranscodeError
from .models import PlaylistArtifact, TranscodeProgress
from .constants import (
    ERROR_MESSAGE_CHARS,
    PLAYLIST_NAME,
    SEGMENT_SUFFIX,
    STDERR_TAIL_LINES,
)
from .commands import CommandBuilder

logger = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(rb"[\r\n]")
_SEGMENT_NUMBER = re.compile(r"(\d+)$")


def _segment_sort_key(path: Path) -> Tuple[int, str]:
    match = _SEGMENT_NUMBER.search(path.stem)
    return (int(match.group(1)) if match else -1, path.name)


class TranscodeEngine:
    """FFmpeg-based HLS transcoder fed through stdin."""

    def __init__(self, config: Optional[TranscodingConfig] = None):
        self.config = config or get_config().transcoding
        self.ffmpeg_path = self._find_ffmpeg()
        self.command_builder = CommandBuilder(self.ffmpeg_path)

    def _find_ffmpeg(self) -> str:
        """Find ffmpeg executable."""
        if self.config.ffmpeg_path != "auto":
            return self.config.ffmpeg_path

        ffmpeg = shutil.which("ffmpeg")
        if ffmpeg:
            return ffmpeg

        raise RuntimeError("FFmpeg not found")

    async def _graceful_terminate(self, process: asyncio.subprocess.Process) -> None:
        """
        Terminate FFmpeg, escalating from SIGINT to SIGTERM to SIGKILL.

        SIGINT lets FFmpeg finalize the segment it is writing.
        """
        if process.returncode is not None:
            return

        try:
            if sys.platform != "win32":
                try:
                    process.send_signal(signal.SIGINT)
                    await asyncio.wait_for(process.wait(), timeout=5.0)
                    logger.debug("[Transcode] FFmpeg terminated gracefully")
                    return
                except (ProcessLookupError, OSError, asyncio.TimeoutError):
                    pass

            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=3.0)
                logger.debug("[Transcode] FFmpeg terminated with SIGTERM")
                return
            except (asyncio.TimeoutError, ProcessLookupError, OSError):
                pass

            try:
                process.kill()
                await process.wait()
                logger.warning("[Transcode] FFmpeg killed forcefully")
            except (ProcessLookupError, OSError):
                pass

        except Exception as e:
            logger.warning(f"[Transcode] Error during process termination: {e}")

    async def _run_ffmpeg(
        self,
        cmd: List[str],
        stream: AsyncIterator[bytes],
        progress_callback: Optional[Callable[[TranscodeProgress], None]],
    ) -> Tuple[int, str, Optional[BaseException]]:
        """
        Run FFmpeg, pumping ``stream`` into its stdin and parsing stderr.

        Returns:
            Tuple of (return_code, error_output, stream_error). ``stream_error``
            is the exception the input stream raised, if any.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(f"Failed to start FFmpeg: {e}") from e

        progress = TranscodeProgress()
        stderr_lines: List[str] = []
        stream_error: Optional[BaseException] = None

        async def feed_stdin():
            """Copy the input stream into FFmpeg until it ends or FFmpeg stops reading."""
            nonlocal stream_error
            try:
                async for chunk in stream:
                    process.stdin.write(chunk)
                    await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("[Transcode] FFmpeg closed stdin before the input ended")
            except Exception as e:
                stream_error = e
                logger.warning(f"[Transcode] Input stream failed: {e}")
            finally:
                try:
                    process.stdin.close()
                except (BrokenPipeError, ConnectionResetError):
                    pass
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

        def handle_line(raw: bytes) -> None:
            line = raw.decode("utf-8", errors="ignore").strip()
            if not line:
                return

            stderr_lines.append(line)
            # Keep only the tail to avoid memory growth
            if len(stderr_lines) > STDERR_TAIL_LINES:
                stderr_lines.pop(0)

            if "Duration:" in line:
                self._parse_duration(line, progress)
            elif "time=" in line:
                self._parse_progress(line, progress)
                if progress_callback:
                    try:
                        progress_callback(progress)
                    except Exception as e:
                        logger.warning(f"Progress callback error: {e}")

        async def read_stderr():
            """FFmpeg separates progress updates with carriage returns."""
            buffer = b""
            while True:
                chunk = await process.stderr.read(4096)
                if not chunk:
                    break
                buffer += chunk
                *lines, buffer = _LINE_SPLIT.split(buffer)
                for raw in lines:
                    handle_line(raw)
            if buffer:
                handle_line(buffer)

        feeder = asyncio.create_task(feed_stdin())
        reader = asyncio.create_task(read_stderr())

        try:
            await reader
            await process.wait()

            # FFmpeg has exited; any input it did not consume is not needed
            if not feeder.done():
                feeder.cancel()
            try:
                await feeder
            except asyncio.CancelledError:
                pass
        except asyncio.CancelledError:
            feeder.cancel()
            reader.cancel()
            await self._graceful_terminate(process)
            raise

        return_code = process.returncode if process.returncode is not None else -1
        return return_code, "\n".join(stderr_lines), stream_error

    def _parse_duration(self, line: str, progress: TranscodeProgress) -> None:
        """Input duration, reported once per input; "N/A" for unseekable streams."""
        match = re.search(r"Duration:\s*(\d+):(\d+):(\d+\.?\d*)", line)
        if match:
            try:
                h, m, s = match.groups()
                progress.duration = int(h) * 3600 + int(m) * 60 + float(s)
            except (ValueError, TypeError):
                pass

    def _parse_progress(self, line: str, progress: TranscodeProgress) -> None:
        """Parse FFmpeg progress output."""
        match = re.search(r"frame=\s*(\d+)", line)
        if match:
            try:
                progress.frame = int(match.group(1))
            except (ValueError, TypeError):
                pass

        # FPS - may have decimals or be "N/A"
        match = re.search(r"fps=\s*([\d.]+|N/A)", line)
        if match and match.group(1) != "N/A":
            try:
                progress.fps = float(match.group(1))
            except (ValueError, TypeError):
                pass

        match = re.search(r"bitrate=\s*([\d.]+\s*[kMG]?bits/s|N/A)", line)
        if match and match.group(1) != "N/A":
            progress.bitrate = match.group(1).strip()

        match = re.search(r"size=\s*(\d+)\s*(KiB|kB|MiB|MB|B)?", line)
        if match:
            try:
                size_val = int(match.group(1))
                unit = match.group(2) or "kB"
                if unit in ("MB", "MiB"):
                    progress.total_size = size_val * 1024 * 1024
                elif unit in ("kB", "KiB"):
                    progress.total_size = size_val * 1024
                else:
                    progress.total_size = size_val
            except (ValueError, TypeError):
                pass

        # Time - format HH:MM:SS.ms
        match = re.search(r"time=\s*(\d+):(\d+):(\d+\.?\d*)", line)
        if match:
            try:
                h, m, s = match.groups()
                progress.time = int(h) * 3600 + int(m) * 60 + float(s)
            except (ValueError, TypeError):
                pass

        match = re.search(r"speed=\s*([\d.]+)x", line)
        if match:
            try:
                progress.speed = float(match.group(1))
            except (ValueError, TypeError):
                pass

        if progress.duration > 0 and progress.time > 0:
            progress.percent = min(99.9, (progress.time / progress.duration) * 100)

    def _collect_artifact(self, output_dir: Path) -> Tuple[Optional[PlaylistArtifact], str]:
        """
        Validate HLS output: playlist exists and is not empty, segments exist.

        Returns:
            Tuple of (artifact, error_message)
        """
        playlist_path = output_dir / PLAYLIST_NAME
        if not playlist_path.exists():
            return None, "No .m3u8 file found after transcoding."

        if not playlist_path.read_text(encoding="utf-8").strip():
            return None, "Playlist is empty"

        segments = sorted(output_dir.glob(f"*{SEGMENT_SUFFIX}"), key=_segment_sort_key)
        if not segments:
            return None, "No segment files generated"

        if segments[0].stat().st_size == 0:
            return None, f"Segment {segments[0].name} is empty"

        logger.debug(f"[Validate] HLS output valid: {len(segments)} segments")
        return PlaylistArtifact(output_dir, playlist_path, segments), ""

    async def transcode(
        self,
        stream: AsyncIterator[bytes],
        output_dir: Path,
        progress_callback: Optional[Callable[[TranscodeProgress], None]] = None,
        start_callback: Optional[Callable[[List[str]], None]] = None,
    ) -> PlaylistArtifact:
        """
        Encode ``stream`` into an HLS playlist and segments inside ``output_dir``.

        Raises:
            TranscodeError: FFmpeg failed or produced no usable output.
            IngestionError: the input stream itself failed.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        cmd = self.command_builder.build_hls_command(output_dir)

        logger.info(f"[Transcode] FFmpeg started: {' '.join(cmd)}")
        if start_callback:
            try:
                start_callback(cmd)
            except Exception as e:
                logger.warning(f"Start callback error: {e}")

        return_code, error_output, stream_error = await self._run_ffmpeg(cmd, stream, progress_callback)

        if stream_error is not None:
            if isinstance(stream_error, IngestionError):
                raise stream_error
            raise TranscodeError(f"Input stream failed: {stream_error}") from stream_error

        if return_code != 0:
            error_msg = error_output[-ERROR_MESSAGE_CHARS:] if error_output else "Unknown error"
            logger.warning(f"[Transcode] FFmpeg failed (code {return_code}): {error_msg[-200:]}")
            raise TranscodeError(f"FFmpeg error (code {return_code}): {error_msg}")

        artifact, validation_error = self._collect_artifact(output_dir)
        if artifact is None:
            raise TranscodeError(f"Validation failed: {validation_error}")

        logger.info(f"[Transcode] HLS transcoding finished: {len(artifact.segment_paths)} segments")
        return artifact
