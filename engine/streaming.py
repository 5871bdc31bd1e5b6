"""Download streaming: redirect to direct URLs or relay extractor stdout."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator, Iterator, Optional
from urllib.parse import urlparse

import anyio

from config.settings import (
    PROCESS_TERMINATE_GRACE_SECONDS,
    STDERR_TAIL_LINES,
    STREAM_CHUNK_SIZE,
    STREAM_PROGRESS_LOG_BYTES,
)
from engine.errors import ExtractorNonZeroExit, ExtractorSpawnError, StreamAbortedByClient
from engine.extractor import MEDIA_TYPES, build_download_argv, normalize_quality
from metadata.types import PROCESS_INVOCATION, DirectURL, FormatOption

logger = logging.getLogger(__name__)

CONTENT_TYPES = {"mp3": "audio/mpeg", "mp4": "video/mp4"}


@dataclass(frozen=True)
class DownloadPlan:
    media_type: str
    filename: str
    content_type: str
    redirect_url: Optional[str] = None
    argv: Optional[list[str]] = None

    @property
    def is_redirect(self) -> bool:
        return self.redirect_url is not None


def is_http_url(value) -> bool:
    if not value or not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def format_from_request(media_type, quality=None, direct_url=None) -> FormatOption:
    """Rebuild the selected ``FormatOption`` from download query parameters."""
    if media_type not in MEDIA_TYPES:
        raise ValueError(f"type must be one of {', '.join(sorted(MEDIA_TYPES))}")
    if direct_url is not None and not is_http_url(direct_url):
        raise ValueError("direct must be an http(s) URL")
    is_audio = media_type == "mp3"
    label = "Highest" if is_audio else normalize_quality(quality)
    return FormatOption(
        quality_label=label,
        container=media_type,
        display_label=label,
        is_audio_only=is_audio,
        resolution=DirectURL(direct_url) if direct_url else PROCESS_INVOCATION,
    )


def plan_download(url: str, fmt: FormatOption, *, binary: Optional[str] = None, now=None) -> DownloadPlan:
    media_type = "mp3" if fmt.is_audio_only or fmt.container == "mp3" else "mp4"
    stamp = int((now if now is not None else time.time()) * 1000)
    filename = f"video-{stamp}.{media_type}"
    content_type = CONTENT_TYPES[media_type]
    if isinstance(fmt.resolution, DirectURL):
        return DownloadPlan(media_type, filename, content_type, redirect_url=fmt.resolution.url)
    argv = build_download_argv(url, media_type, fmt.quality_label, binary=binary)
    return DownloadPlan(media_type, filename, content_type, argv=argv)


class ExtractorProcess:
    """Owned extractor child process whose stdout is the media byte stream.

    stderr is drained by a reader thread into a bounded tail used only for
    diagnostics. ``terminate`` stops the whole process group so helpers
    spawned by the extractor (ffmpeg) do not outlive it.
    """

    def __init__(self, argv, *, chunk_size=STREAM_CHUNK_SIZE, stderr_lines=STDERR_TAIL_LINES):
        self.argv = list(argv)
        self.chunk_size = chunk_size
        self.bytes_read = 0
        self._proc: Optional[subprocess.Popen] = None
        self._stderr = deque(maxlen=stderr_lines)
        self._reader: Optional[threading.Thread] = None

    @property
    def pid(self):
        return self._proc.pid if self._proc else None

    @property
    def returncode(self):
        return self._proc.poll() if self._proc else None

    def start(self):
        try:
            self._proc = subprocess.Popen(
                self.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                start_new_session=(os.name == "posix"),
            )
        except FileNotFoundError as exc:
            raise ExtractorSpawnError(f"yt-dlp is not installed or not in PATH ({self.argv[0]})") from exc
        except OSError as exc:
            raise ExtractorSpawnError(f"failed to start yt-dlp: {exc}") from exc
        logger.info("Extractor started pid=%s", self._proc.pid)
        self._reader = threading.Thread(target=self._drain_stderr, name="ytdlp-stderr-reader", daemon=True)
        self._reader.start()
        return self

    def _drain_stderr(self):
        stream = self._proc.stderr
        if stream is None:
            return
        try:
            for raw_line in iter(stream.readline, b""):
                text = raw_line.decode("utf-8", "replace").strip()
                if text:
                    self._stderr.append(text)
                    logger.debug("yt-dlp stderr pid=%s: %s", self._proc.pid, text)
        except (OSError, ValueError):
            pass
        finally:
            try:
                stream.close()
            except OSError:
                pass

    def read_chunk(self) -> bytes:
        """Block until output is available; ``b""`` means end of stream."""
        if self._proc is None or self._proc.stdout is None:
            return b""
        try:
            chunk = self._proc.stdout.read(self.chunk_size)
        except (OSError, ValueError):
            return b""
        if not chunk:
            return b""
        self.bytes_read += len(chunk)
        return chunk

    def stderr_tail(self) -> str:
        return "\n".join(self._stderr)

    def check_exit(self, timeout=PROCESS_TERMINATE_GRACE_SECONDS):
        """Wait for exit after EOF and raise ``ExtractorNonZeroExit`` on failure."""
        try:
            returncode = self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            # stdout closed but the process lingers; treat as a failed run.
            self.terminate()
            returncode = self._proc.returncode
            if returncode in (0, None):
                returncode = -1
        if self._reader is not None:
            self._reader.join(timeout=1)
        if returncode != 0:
            raise ExtractorNonZeroExit(returncode, self.stderr_tail())
        return returncode

    def terminate(self, grace_sec=PROCESS_TERMINATE_GRACE_SECONDS):
        """Terminate the process quickly and safely; no-op once it has exited."""
        proc = self._proc
        if proc is None:
            return
        if proc.poll() is None:
            logger.info("Terminating extractor pid=%s", proc.pid)
            self._signal(signal.SIGTERM)
            try:
                proc.wait(timeout=grace_sec)
            except subprocess.TimeoutExpired:
                self._signal(getattr(signal, "SIGKILL", signal.SIGTERM))
                proc.wait()
        for stream in (proc.stdout,):
            try:
                if stream is not None:
                    stream.close()
            except OSError:
                pass

    def _signal(self, sig):
        proc = self._proc
        if os.name == "posix":
            try:
                os.killpg(proc.pid, sig)
            except ProcessLookupError:
                pass
            return
        if sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.kill()

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.terminate()
        return False


async def open_extractor_stream(argv) -> tuple[ExtractorProcess, bytes]:
    """Start the extractor and wait for its first chunk before headers are committed.

    Spawn failures and non-zero exits before any output raise here, so the
    caller can still answer with an error status.
    """
    process = ExtractorProcess(argv)
    await anyio.to_thread.run_sync(process.start)
    try:
        first_chunk = await anyio.to_thread.run_sync(process.read_chunk, abandon_on_cancel=True)
        if not first_chunk:
            await anyio.to_thread.run_sync(process.check_exit)
    except BaseException:
        with anyio.CancelScope(shield=True):
            await anyio.to_thread.run_sync(process.terminate)
        raise
    return process, first_chunk


async def relay(process: ExtractorProcess, first_chunk: bytes = b"") -> AsyncIterator[bytes]:
    """Yield extractor output chunk by chunk as the consumer asks for it.

    Nothing is read ahead of the consumer, so a slow client pauses the pipe
    and the extractor blocks on write. The process is terminated on every
    exit path: completion, error, cancellation, or ``aclose()``.
    """
    sent = 0
    next_progress_log = STREAM_PROGRESS_LOG_BYTES
    try:
        chunk = first_chunk
        while chunk:
            yield chunk
            sent += len(chunk)
            if sent >= next_progress_log:
                logger.debug("Relayed %d bytes pid=%s", sent, process.pid)
                next_progress_log += STREAM_PROGRESS_LOG_BYTES
            chunk = await anyio.to_thread.run_sync(process.read_chunk, abandon_on_cancel=True)
        await anyio.to_thread.run_sync(process.check_exit)
        logger.info("Download relay complete bytes=%d pid=%s", sent, process.pid)
    except (GeneratorExit, anyio.get_cancelled_exc_class()):
        logger.info("Client aborted download after %d bytes; terminating pid=%s", sent, process.pid)
        raise
    except ExtractorNonZeroExit as exc:
        logger.error("Extractor failed mid-stream after %d bytes: %s", sent, exc)
        raise
    finally:
        with anyio.CancelScope(shield=True):
            await anyio.to_thread.run_sync(process.terminate)


def iter_chunks(process: ExtractorProcess) -> Iterator[bytes]:
    """Blocking relay for command-line use; the caller owns ``process``."""
    while True:
        chunk = process.read_chunk()
        if not chunk:
            break
        yield chunk
    process.check_exit()


def copy_to(process: ExtractorProcess, sink) -> int:
    written = 0
    for chunk in iter_chunks(process):
        try:
            sink.write(chunk)
        except BrokenPipeError as exc:
            raise StreamAbortedByClient(f"output closed after {written} bytes") from exc
        written += len(chunk)
    return written
