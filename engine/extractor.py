import json
import logging
import os
import shutil
import subprocess

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError
from yt_dlp.utils import ExtractorError as YtDlpExtractorError

from config.settings import STDERR_TAIL_LINES
from engine.errors import ExtractorError, ExtractorNonZeroExit, ExtractorSpawnError

logger = logging.getLogger(__name__)

MEDIA_TYPES = {"mp3", "mp4"}
QUALITY_CEILINGS = {"1080p": 1080, "720p": 720, "480p": 480}

_COMMON_FLAGS = ("--no-playlist", "--no-check-certificates", "--no-warnings", "--prefer-free-formats")


def resolve_ytdlp_binary():
    configured = (os.environ.get("MEDIAFETCH_YTDLP_BIN") or "").strip()
    if configured:
        return configured
    return shutil.which("yt-dlp") or "yt-dlp"


def normalize_quality(value):
    """Map a requested quality onto a known ceiling label, or ``best``."""
    cleaned = (value or "").strip().lower()
    if cleaned in QUALITY_CEILINGS:
        return cleaned
    if cleaned.isdigit() and f"{cleaned}p" in QUALITY_CEILINGS:
        return f"{cleaned}p"
    return "best"


def build_format_selector(quality):
    ceiling = QUALITY_CEILINGS.get(normalize_quality(quality))
    if ceiling is None:
        return "best"
    return f"bestvideo[height<={ceiling}]+bestaudio/best[height<={ceiling}]"


# Render the download argv for subprocess.Popen(shell=False); media bytes go to stdout.
def build_download_argv(url, media_type, quality=None, *, binary=None):
    if media_type not in MEDIA_TYPES:
        raise ValueError(f"media_type must be one of {', '.join(sorted(MEDIA_TYPES))}")
    argv = [binary or resolve_ytdlp_binary(), "--output", "-", *_COMMON_FLAGS]
    if media_type == "mp3":
        argv.extend(["--extract-audio", "--audio-format", "mp3", "--audio-quality", "0"])
    else:
        argv.extend(["--format", build_format_selector(quality)])
    # "--" keeps a URL that starts with "-" from being read as an option.
    argv.extend(["--", url])
    return argv


def build_metadata_argv(url, *, binary=None):
    return [binary or resolve_ytdlp_binary(), "--dump-single-json", *_COMMON_FLAGS, "--", url]


def dump_metadata(url, *, binary=None, timeout=None):
    """Run the extractor binary once and return its single consolidated JSON document."""
    argv = build_metadata_argv(url, binary=binary)
    logger.debug("yt-dlp metadata argv=%s", argv)
    try:
        completed = subprocess.run(
            argv,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ExtractorSpawnError(f"yt-dlp is not installed or not in PATH ({argv[0]})") from exc
    except PermissionError as exc:
        raise ExtractorSpawnError(f"yt-dlp is not executable ({argv[0]})") from exc
    except subprocess.TimeoutExpired as exc:
        raise ExtractorError(f"yt-dlp timed out after {timeout}s") from exc

    if completed.returncode != 0:
        raise ExtractorNonZeroExit(completed.returncode, tail_lines(completed.stderr))
    try:
        return json.loads(completed.stdout or "")
    except ValueError as exc:
        raise ExtractorError("yt-dlp returned invalid JSON") from exc


def extract_with_library(url, *, timeout=None):
    opts = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
        "nocheckcertificate": True,
        "prefer_free_formats": True,
    }
    if timeout:
        opts["socket_timeout"] = timeout
    try:
        with YoutubeDL(opts) as ydl:
            return ydl.extract_info(url, download=False)
    except (DownloadError, YtDlpExtractorError) as exc:
        raise ExtractorError(f"yt_dlp extraction failed: {exc}") from exc


def tail_lines(text, limit=STDERR_TAIL_LINES):
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    return "\n".join(lines[-limit:])
