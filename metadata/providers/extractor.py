"""Local extractor providers: the yt-dlp binary and the yt_dlp library."""

from __future__ import annotations

import logging
from typing import Optional

from engine import extractor
from engine.errors import ProviderSchemaError
from engine.registry import ProviderDescriptor, ProviderKind
from metadata.formats import build_formats
from metadata.types import VideoInfo, coerce_duration

logger = logging.getLogger(__name__)


class ProcessExtractorProvider:
    """Spawn the extractor binary and read its ``--dump-single-json`` document."""

    def __init__(self, descriptor: ProviderDescriptor, *, binary: Optional[str] = None) -> None:
        self.descriptor = descriptor
        self._binary = binary

    @property
    def name(self) -> str:
        return self.descriptor.name

    def fetch(self, url: str, content_id: Optional[str] = None) -> VideoInfo:
        info = extractor.dump_metadata(url, binary=self._binary, timeout=self.descriptor.timeout_seconds)
        return parse_extractor_info(info, name=self.name)


class LibraryExtractorProvider:
    def __init__(self, descriptor: ProviderDescriptor) -> None:
        self.descriptor = descriptor

    @property
    def name(self) -> str:
        return self.descriptor.name

    def fetch(self, url: str, content_id: Optional[str] = None) -> VideoInfo:
        info = extractor.extract_with_library(url, timeout=self.descriptor.timeout_seconds)
        return parse_extractor_info(info, name=self.name)


def parse_extractor_info(info, *, name: str) -> VideoInfo:
    """Map ``{title, thumbnail, duration, uploader}`` onto a record with the static format table."""
    if not isinstance(info, dict):
        raise ProviderSchemaError(name, "extractor output is not a JSON object")
    if "entries" in info:
        raise ProviderSchemaError(name, "playlists are not supported")
    title = info.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ProviderSchemaError(name, "extractor output is missing title")
    thumbnail = info.get("thumbnail")
    uploader = info.get("uploader") or info.get("channel")
    return VideoInfo(
        title=title.strip(),
        thumbnail_url=thumbnail.strip() if isinstance(thumbnail, str) else "",
        duration_seconds=coerce_duration(info.get("duration")),
        author=uploader.strip() if isinstance(uploader, str) else "",
        formats=build_formats(info, None),
        source=name,
        formats_verified=False,
    )


def build_extractor_provider(descriptor: ProviderDescriptor, *, binary: Optional[str] = None):
    if descriptor.kind is ProviderKind.PROCESS_EXTRACTOR:
        return ProcessExtractorProvider(descriptor, binary=binary)
    if descriptor.kind is ProviderKind.LIBRARY_EXTRACTOR:
        return LibraryExtractorProvider(descriptor)
    raise ValueError(f"provider {descriptor.name} is not an extractor")
