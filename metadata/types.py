"""Canonical, provider-agnostic video metadata types."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class DirectURL:
    """Provider-hosted byte stream; the provider owns it and it may expire."""

    url: str


@dataclass(frozen=True)
class ProcessInvocation:
    """Resolve at download time through the process-based extractor."""


PROCESS_INVOCATION = ProcessInvocation()

Resolution = Union[DirectURL, ProcessInvocation]


@dataclass(frozen=True)
class FormatOption:
    quality_label: str
    container: str
    display_label: str
    is_audio_only: bool = False
    resolution: Resolution = PROCESS_INVOCATION
    available: bool = True

    @property
    def is_direct(self) -> bool:
        return isinstance(self.resolution, DirectURL)

    def to_payload(self) -> dict:
        payload = {
            "quality": self.quality_label,
            "type": self.container,
            "label": self.display_label,
        }
        if self.is_audio_only:
            payload["isAudio"] = True
        if isinstance(self.resolution, DirectURL):
            payload["url"] = self.resolution.url
            payload["direct"] = True
        if not self.available:
            payload["available"] = False
        return payload


@dataclass(frozen=True)
class VideoInfo:
    title: str
    thumbnail_url: str
    duration_seconds: int
    author: str
    formats: tuple[FormatOption, ...] = field(default_factory=tuple)
    source: str | None = None
    formats_verified: bool = True

    def __post_init__(self):
        if not self.formats:
            raise ValueError("VideoInfo.formats must not be empty")
        if self.duration_seconds < 0:
            raise ValueError("VideoInfo.duration_seconds must be >= 0")

    def to_payload(self) -> dict:
        return {
            "title": self.title,
            "thumbnail": self.thumbnail_url,
            "duration": format_duration(self.duration_seconds),
            "author": self.author,
            "formats": [fmt.to_payload() for fmt in self.formats],
            "formatsVerified": self.formats_verified,
            "source": self.source,
        }


def format_duration(seconds) -> str:
    """Render seconds as ``H:MM:SS`` when there are hours, else ``M:SS``."""
    total = max(0, int(seconds or 0))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def coerce_duration(value) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0
    else:
        return 0
    if not math.isfinite(number) or number < 0:
        return 0
    return int(round(number))
