"""Build user-selectable format lists from provider responses."""

from __future__ import annotations

from engine.registry import ProviderFamily
from metadata.types import PROCESS_INVOCATION, DirectURL, FormatOption

PREFERRED_AUDIO_MIME = "audio/mp4"
AUDIO_QUALITY_LABEL = "Highest"
AUDIO_DISPLAY_LABEL = "High Quality Audio"

# The process extractor does not enumerate real per-video formats, so the
# fallback path offers a fixed capability table.
STATIC_FORMATS = (
    FormatOption("1080p", "mp4", "High Definition"),
    FormatOption("720p", "mp4", "Standard HD"),
    FormatOption("480p", "mp4", "Standard"),
    FormatOption(AUDIO_QUALITY_LABEL, "mp3", AUDIO_DISPLAY_LABEL, is_audio_only=True),
)

PLACEHOLDER_FORMAT = FormatOption(
    "720p",
    "mp4",
    "Standard HD (unavailable)",
    is_audio_only=False,
    resolution=PROCESS_INVOCATION,
    available=False,
)

_MIME_CONTAINERS = {
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/3gpp": "3gp",
    "audio/mp4": "m4a",
    "audio/webm": "webm",
    "audio/mpeg": "mp3",
}


def build_formats(raw, family) -> tuple[FormatOption, ...]:
    """Return the ordered format list for a provider response.

    ``family`` is a ``ProviderFamily`` for mirror responses, or ``None`` for
    the process/library extractor, which always gets ``STATIC_FORMATS``.
    The result is never empty.
    """
    if family is ProviderFamily.PIPED:
        formats = _piped_formats(raw)
    elif family is ProviderFamily.INVIDIOUS:
        formats = _invidious_formats(raw)
    else:
        formats = list(STATIC_FORMATS)
    return ensure_formats(formats)


def ensure_formats(formats) -> tuple[FormatOption, ...]:
    formats = tuple(formats or ())
    if not formats:
        return (PLACEHOLDER_FORMAT,)
    return formats


def _piped_formats(raw) -> list[FormatOption]:
    formats = []
    for stream in _dicts(raw.get("videoStreams")):
        # Video-only streams need a local merge, which is not available.
        if stream.get("videoOnly") is not False:
            continue
        url = _text(stream.get("url"))
        quality = _text(stream.get("quality"))
        if not url or not quality:
            continue
        container = container_from_mime(stream.get("mimeType")) or "mp4"
        formats.append(FormatOption(quality, container, f"{quality} Video", resolution=DirectURL(url)))

    audio_streams = [s for s in _dicts(raw.get("audioStreams")) if _text(s.get("url"))]
    preferred = [s for s in audio_streams if _mime(s.get("mimeType")) == PREFERRED_AUDIO_MIME]
    audio = (preferred or audio_streams or [None])[0]
    if audio is not None:
        formats.append(_audio_option(audio["url"]))
    return formats


def _invidious_formats(raw) -> list[FormatOption]:
    formats = []
    for stream in _dicts(raw.get("formatStreams")):
        url = _text(stream.get("url"))
        quality = _text(stream.get("qualityLabel")) or _text(stream.get("resolution"))
        if not url or not quality:
            continue
        container = _text(stream.get("container")) or container_from_mime(stream.get("type")) or "mp4"
        formats.append(FormatOption(quality, container.lower(), f"{quality} Video", resolution=DirectURL(url)))

    for stream in _dicts(raw.get("adaptiveFormats")):
        url = _text(stream.get("url"))
        mime = _mime(stream.get("type"))
        container = (_text(stream.get("container")) or "").lower()
        if url and (mime == PREFERRED_AUDIO_MIME or (mime.startswith("audio/") and container == "m4a")):
            formats.append(_audio_option(url))
            break
    return formats


def _audio_option(url) -> FormatOption:
    return FormatOption(
        AUDIO_QUALITY_LABEL,
        "mp3",
        AUDIO_DISPLAY_LABEL,
        is_audio_only=True,
        resolution=DirectURL(url),
    )


def container_from_mime(value):
    return _MIME_CONTAINERS.get(_mime(value))


def _mime(value) -> str:
    # "video/mp4; codecs=\"avc1.42001E, mp4a.40.2\"" -> "video/mp4"
    if not isinstance(value, str):
        return ""
    return value.split(";", 1)[0].strip().lower()


def _dicts(value):
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _text(value):
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None
