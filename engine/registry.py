"""Provider registry: the ordered, read-only list of metadata/stream providers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

from config.settings import (
    DEFAULT_EXTRACTOR_TIMEOUT_MS,
    DEFAULT_MIRROR_TIMEOUT_MS,
    DEFAULT_PROVIDERS,
    DEFAULT_REQUEST_HEADERS,
    PROVIDER_CONFIG_VERSION,
)
from engine.errors import RegistryConfigError
from engine.paths import resolve_config_path

logger = logging.getLogger(__name__)

VIDEO_ID_PLACEHOLDER = "{video_id}"


class ProviderKind(Enum):
    PROCESS_EXTRACTOR = "process_extractor"
    LIBRARY_EXTRACTOR = "library_extractor"
    HTTP_MIRROR = "http_mirror"


class ProviderFamily(Enum):
    # Family A: muxed videoStreams + audioStreams.
    PIPED = "piped"
    # Family B: progressive formatStreams + adaptiveFormats.
    INVIDIOUS = "invidious"


@dataclass(frozen=True)
class ProviderDescriptor:
    name: str
    kind: ProviderKind
    timeout_ms: int
    family: Optional[ProviderFamily] = None
    endpoint_template: Optional[str] = None
    request_headers: dict[str, str] = field(default_factory=dict)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def is_mirror(self) -> bool:
        return self.kind is ProviderKind.HTTP_MIRROR

    def build_url(self, video_id: str) -> str:
        if not self.endpoint_template:
            raise ValueError(f"provider {self.name} has no endpoint_template")
        return self.endpoint_template.replace(VIDEO_ID_PLACEHOLDER, video_id)


@dataclass(frozen=True)
class ProviderRegistry:
    version: int
    providers: tuple[ProviderDescriptor, ...]

    def mirrors(self) -> Iterator[ProviderDescriptor]:
        return (p for p in self.providers if p.kind is ProviderKind.HTTP_MIRROR)

    def extractors(self) -> Iterator[ProviderDescriptor]:
        return (p for p in self.providers if p.kind is not ProviderKind.HTTP_MIRROR)

    def describe(self) -> dict:
        """Public view of the registry; request headers are left out."""
        return {
            "version": self.version,
            "providers": [
                {
                    "name": p.name,
                    "kind": p.kind.value,
                    "family": p.family.value if p.family else None,
                    "timeoutMs": p.timeout_ms,
                }
                for p in self.providers
            ],
        }


def validate_registry_config(config) -> list[str]:
    errors = []
    if not isinstance(config, dict):
        return ["provider config must be a JSON object"]

    version = config.get("version")
    if version != PROVIDER_CONFIG_VERSION:
        errors.append(f"version must be {PROVIDER_CONFIG_VERSION}")

    providers = config.get("providers")
    if not isinstance(providers, list) or not providers:
        errors.append("providers must be a non-empty list")
        return errors

    kinds = {k.value for k in ProviderKind}
    families = {f.value for f in ProviderFamily}
    seen = set()
    for idx, entry in enumerate(providers):
        if not isinstance(entry, dict):
            errors.append(f"providers[{idx}] must be an object")
            continue
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(f"providers[{idx}] missing name")
        elif name in seen:
            errors.append(f"providers[{idx}] duplicate name '{name}'")
        else:
            seen.add(name)

        kind = entry.get("kind")
        if kind not in kinds:
            errors.append(f"providers[{idx}].kind must be one of {', '.join(sorted(kinds))}")

        timeout_ms = entry.get("timeout_ms")
        if timeout_ms is not None and (
            isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0
        ):
            errors.append(f"providers[{idx}].timeout_ms must be a positive integer")

        headers = entry.get("request_headers")
        if headers is not None:
            if not isinstance(headers, dict):
                errors.append(f"providers[{idx}].request_headers must be an object")
            elif not all(isinstance(k, str) and isinstance(v, str) for k, v in headers.items()):
                errors.append(f"providers[{idx}].request_headers values must be strings")

        family = entry.get("family")
        is_mirror = kind == ProviderKind.HTTP_MIRROR.value
        if (is_mirror or family is not None) and family not in families:
            errors.append(f"providers[{idx}].family must be one of {', '.join(sorted(families))}")
        if is_mirror:
            template = entry.get("endpoint_template")
            if not isinstance(template, str) or not template.startswith(("http://", "https://")):
                errors.append(f"providers[{idx}].endpoint_template must be an http(s) URL")
            elif VIDEO_ID_PLACEHOLDER not in template:
                errors.append(f"providers[{idx}].endpoint_template must contain {VIDEO_ID_PLACEHOLDER}")
    return errors


def build_registry(config) -> ProviderRegistry:
    errors = validate_registry_config(config)
    if errors:
        raise RegistryConfigError("; ".join(errors))

    descriptors = []
    for entry in config["providers"]:
        kind = ProviderKind(entry["kind"])
        default_timeout = DEFAULT_MIRROR_TIMEOUT_MS if kind is ProviderKind.HTTP_MIRROR else DEFAULT_EXTRACTOR_TIMEOUT_MS
        headers = dict(DEFAULT_REQUEST_HEADERS) if kind is ProviderKind.HTTP_MIRROR else {}
        headers.update(entry.get("request_headers") or {})
        descriptors.append(
            ProviderDescriptor(
                name=entry["name"].strip(),
                kind=kind,
                timeout_ms=entry.get("timeout_ms") or default_timeout,
                family=ProviderFamily(entry["family"]) if entry.get("family") else None,
                endpoint_template=entry.get("endpoint_template"),
                request_headers=headers,
            )
        )
    return ProviderRegistry(version=config["version"], providers=tuple(descriptors))


def default_registry() -> ProviderRegistry:
    return build_registry({"version": PROVIDER_CONFIG_VERSION, "providers": DEFAULT_PROVIDERS})


def load_registry(path=None) -> ProviderRegistry:
    """Load the registry from ``path``, ``MEDIAFETCH_PROVIDERS_CONFIG``, or the built-in defaults."""
    explicit = path or os.environ.get("MEDIAFETCH_PROVIDERS_CONFIG")
    if explicit and os.path.isabs(explicit):
        config_path = explicit
    else:
        try:
            config_path = resolve_config_path(explicit)
        except ValueError as exc:
            raise RegistryConfigError(str(exc)) from exc

    if not os.path.exists(config_path):
        if explicit:
            raise RegistryConfigError(f"Provider config not found: {config_path}")
        logger.info("No provider config at %s; using built-in provider list", config_path)
        return default_registry()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except json.JSONDecodeError as exc:
        raise RegistryConfigError(f"Provider config is not valid JSON: {exc}") from exc
    except OSError as exc:
        raise RegistryConfigError(f"Provider config could not be read: {exc}") from exc

    registry = build_registry(config)
    logger.info(
        "Loaded %d providers from %s (version %s)",
        len(registry.providers),
        config_path,
        registry.version,
    )
    return registry
