"""Public API mirror providers (Piped- and Invidious-style responses)."""

from __future__ import annotations

import json
import logging
import threading
from typing import Optional
from urllib.parse import urljoin

import requests

from engine.errors import ProviderSchemaError, ProviderTransportError
from engine.registry import ProviderDescriptor, ProviderFamily
from metadata.formats import build_formats
from metadata.types import VideoInfo, coerce_duration

logger = logging.getLogger(__name__)

MAX_RESPONSE_BYTES = 8 * 1024 * 1024
_READ_CHUNK_SIZE = 16 * 1024
_PREFERRED_THUMBNAIL_QUALITIES = ("maxres", "maxresdefault", "sddefault", "high")


class HttpMirrorProvider:
    """Query one mirror endpoint and normalize its response into a ``VideoInfo``."""

    def __init__(self, descriptor: ProviderDescriptor, *, session=None) -> None:
        if descriptor.family not in _PARSERS:
            raise ValueError(f"provider {descriptor.name} has no supported family")
        self.descriptor = descriptor
        self._http = session or requests

    @property
    def name(self) -> str:
        return self.descriptor.name

    def fetch(self, url: str, content_id: Optional[str] = None) -> VideoInfo:
        if not content_id:
            raise ValueError("HTTP mirrors need a content id")
        endpoint = self.descriptor.build_url(content_id)
        payload = self._request_json(endpoint)
        return _PARSERS[self.descriptor.family](payload, name=self.name, endpoint=endpoint)

    def _request_json(self, endpoint: str):
        # Socket timeouts bound single reads only; the whole attempt is bounded
        # here. On expiry the worker is abandoned and its response closed.
        timeout = self.descriptor.timeout_seconds
        state = {}
        done = threading.Event()

        def _run():
            try:
                state["body"] = self._fetch_body(endpoint, timeout, state)
            except Exception as exc:
                state["error"] = exc
            finally:
                done.set()

        worker = threading.Thread(target=_run, name=f"mirror-{self.name}", daemon=True)
        worker.start()
        if not done.wait(timeout):
            response = state.get("response")
            if response is not None:
                response.close()
            raise ProviderTransportError(self.name, f"timed out after {self.descriptor.timeout_ms} ms")
        if "error" in state:
            raise state["error"]

        try:
            return json.loads(state["body"])
        except ValueError as exc:
            raise ProviderSchemaError(self.name, "response is not valid JSON") from exc

    def _fetch_body(self, endpoint: str, timeout: float, state: dict) -> bytes:
        try:
            response = self._http.get(
                endpoint,
                headers=dict(self.descriptor.request_headers),
                timeout=(timeout, timeout),
                stream=True,
            )
        except requests.Timeout as exc:
            raise ProviderTransportError(self.name, f"timed out after {self.descriptor.timeout_ms} ms") from exc
        except requests.RequestException as exc:
            raise ProviderTransportError(self.name, f"request failed: {exc}") from exc

        state["response"] = response
        try:
            if not 200 <= response.status_code < 300:
                raise ProviderTransportError(self.name, f"HTTP {response.status_code}")
            return self._read_body(response)
        finally:
            response.close()

    def _read_body(self, response) -> bytes:
        received = bytearray()
        try:
            for chunk in response.iter_content(_READ_CHUNK_SIZE):
                received.extend(chunk)
                if len(received) > MAX_RESPONSE_BYTES:
                    raise ProviderSchemaError(self.name, "response body too large")
        except requests.Timeout as exc:
            raise ProviderTransportError(self.name, f"timed out after {self.descriptor.timeout_ms} ms") from exc
        except requests.RequestException as exc:
            raise ProviderTransportError(self.name, f"body read failed: {exc}") from exc
        return bytes(received)


def parse_piped_response(payload, *, name: str, endpoint: str) -> VideoInfo:
    """Family A: ``{title, thumbnailUrl, duration, uploader, videoStreams, audioStreams}``."""
    data = _require_object(payload, name)
    _require_lists(data, name, "videoStreams", "audioStreams")
    return VideoInfo(
        title=_require_title(data, name),
        thumbnail_url=_absolute(data.get("thumbnailUrl"), endpoint),
        duration_seconds=coerce_duration(data.get("duration")),
        author=_text(data.get("uploader")),
        formats=build_formats(data, ProviderFamily.PIPED),
        source=name,
    )


def parse_invidious_response(payload, *, name: str, endpoint: str) -> VideoInfo:
    """Family B: ``{title, videoThumbnails, lengthSeconds, author, formatStreams, adaptiveFormats}``."""
    data = _require_object(payload, name)
    _require_lists(data, name, "videoThumbnails", "formatStreams", "adaptiveFormats")
    return VideoInfo(
        title=_require_title(data, name),
        thumbnail_url=_absolute(_pick_thumbnail(data.get("videoThumbnails")), endpoint),
        duration_seconds=coerce_duration(data.get("lengthSeconds")),
        author=_text(data.get("author")),
        formats=build_formats(data, ProviderFamily.INVIDIOUS),
        source=name,
    )


_PARSERS = {
    ProviderFamily.PIPED: parse_piped_response,
    ProviderFamily.INVIDIOUS: parse_invidious_response,
}


def _require_object(payload, name):
    if not isinstance(payload, dict):
        raise ProviderSchemaError(name, "response is not a JSON object")
    if payload.get("error") and not payload.get("title"):
        raise ProviderSchemaError(name, f"error envelope: {str(payload.get('error'))[:200]}")
    return payload


def _require_title(data, name) -> str:
    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ProviderSchemaError(name, "response is missing title")
    return title.strip()


def _require_lists(data, name, *keys):
    for key in keys:
        value = data.get(key)
        if value is not None and not isinstance(value, list):
            raise ProviderSchemaError(name, f"{key} must be a list")


def _pick_thumbnail(thumbnails) -> Optional[str]:
    candidates = [t for t in thumbnails or [] if isinstance(t, dict) and _text(t.get("url"))]
    for quality in _PREFERRED_THUMBNAIL_QUALITIES:
        for thumb in candidates:
            if thumb.get("quality") == quality:
                return thumb["url"]
    return candidates[0]["url"] if candidates else None


def _absolute(url, endpoint) -> str:
    url = _text(url)
    if not url:
        return ""
    return urljoin(endpoint, url)


def _text(value) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""
