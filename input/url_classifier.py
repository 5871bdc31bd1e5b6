"""URL classification helpers for pasted media links."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import parse_qs, urlparse

_WATCH_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com"}
_SHORT_HOSTS = {"youtu.be", "www.youtu.be"}
_CONTENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class Platform(Enum):
    KNOWN = "known"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Classification:
    platform: Platform
    content_id: Optional[str] = None

    @property
    def has_content_id(self) -> bool:
        return self.platform is Platform.KNOWN and bool(self.content_id)


UNKNOWN = Classification(platform=Platform.UNKNOWN)


def classify(url: str) -> Classification:
    """Classify a pasted URL without network calls.

    Rules:
    - Watch links carry the ID in the ``v=`` query parameter.
    - Short links carry the ID as the first path segment on ``youtu.be``.
    - Shorts links carry the ID after a ``/shorts/`` path segment.
    - Anything else, or an empty/garbled ID, is ``UNKNOWN``. Never raises.
    """
    parsed = _parse(url)
    if parsed is None:
        return UNKNOWN

    host = (parsed.netloc or "").lower().split(":", 1)[0]
    parts = [segment for segment in (parsed.path or "").split("/") if segment]

    content_id = None
    if host in _SHORT_HOSTS:
        if parts:
            content_id = parts[0]
    elif host in _WATCH_HOSTS:
        if parts[:1] == ["watch"]:
            values = parse_qs(parsed.query).get("v")
            if values:
                content_id = values[0]
        elif len(parts) >= 2 and parts[0] == "shorts":
            content_id = parts[1]

    content_id = _clean_identifier(content_id)
    if not content_id:
        return UNKNOWN
    return Classification(platform=Platform.KNOWN, content_id=content_id)


def _parse(url):
    raw = (url or "").strip() if isinstance(url, str) else ""
    if not raw:
        return None
    if "://" not in raw:
        raw = f"https://{raw}"
    try:
        parsed = urlparse(raw)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https"):
        return None
    return parsed


def _clean_identifier(value: Optional[str]) -> Optional[str]:
    cleaned = (value or "").split("?", 1)[0].split("&", 1)[0].split("#", 1)[0].strip().strip("/")
    if not cleaned or not _CONTENT_ID_RE.match(cleaned):
        return None
    return cleaned
