"""Application settings constants."""

from __future__ import annotations

APP_NAME = "Mediafetch API"
APP_VERSION = "0.1.0"

# Registry document schema understood by engine.registry.
PROVIDER_CONFIG_VERSION = 1
PROVIDER_CONFIG_FILENAME = "providers.json"

DEFAULT_MIRROR_TIMEOUT_MS = 8000
DEFAULT_EXTRACTOR_TIMEOUT_MS = 60000

DEFAULT_REQUEST_HEADERS = {
    "User-Agent": "Mediafetch/0.1",
    "Accept": "application/json",
}

# Built-in provider order used when no providers.json is present.
DEFAULT_PROVIDERS = [
    {
        "name": "piped-kavin",
        "kind": "http_mirror",
        "family": "piped",
        "endpoint_template": "https://pipedapi.kavin.rocks/streams/{video_id}",
        "timeout_ms": DEFAULT_MIRROR_TIMEOUT_MS,
    },
    {
        "name": "piped-adminforge",
        "kind": "http_mirror",
        "family": "piped",
        "endpoint_template": "https://pipedapi.adminforge.de/streams/{video_id}",
        "timeout_ms": DEFAULT_MIRROR_TIMEOUT_MS,
    },
    {
        "name": "invidious-nerdvpn",
        "kind": "http_mirror",
        "family": "invidious",
        "endpoint_template": "https://invidious.nerdvpn.de/api/v1/videos/{video_id}",
        "timeout_ms": DEFAULT_MIRROR_TIMEOUT_MS,
    },
    {
        "name": "invidious-nadeko",
        "kind": "http_mirror",
        "family": "invidious",
        "endpoint_template": "https://inv.nadeko.net/api/v1/videos/{video_id}",
        "timeout_ms": DEFAULT_MIRROR_TIMEOUT_MS,
    },
    {
        "name": "yt-dlp-cli",
        "kind": "process_extractor",
        "timeout_ms": DEFAULT_EXTRACTOR_TIMEOUT_MS,
    },
    {
        "name": "yt-dlp-library",
        "kind": "library_extractor",
        "timeout_ms": DEFAULT_EXTRACTOR_TIMEOUT_MS,
    },
]

# Download relay tuning.
STREAM_CHUNK_SIZE = 64 * 1024
STREAM_PROGRESS_LOG_BYTES = 8 * 1024 * 1024
PROCESS_TERMINATE_GRACE_SECONDS = 3.0
STDERR_TAIL_LINES = 20
