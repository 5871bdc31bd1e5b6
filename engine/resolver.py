"""Sequential provider failover for metadata resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from engine.errors import AllProvidersExhausted, ExtractorError, ProviderError
from engine.registry import ProviderDescriptor, ProviderRegistry
from input.url_classifier import Classification, classify
from metadata.providers.base import MetadataProvider
from metadata.providers.extractor import build_extractor_provider
from metadata.providers.mirrors import HttpMirrorProvider
from metadata.types import VideoInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attempt:
    descriptor: ProviderDescriptor
    run: Callable[[], VideoInfo]


@dataclass(frozen=True)
class AttemptFailure:
    provider: str
    message: str


class MetadataResolver:
    """Try each provider in declared order and return the first valid record.

    Mirrors are tried only when the URL classified as a known platform with a
    non-empty content id. Extractors are tried afterwards, or first when the
    URL is unknown. At most one outbound call is in flight at a time.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        session=None,
        extractor_binary: Optional[str] = None,
        provider_factory=None,
    ) -> None:
        self.registry = registry
        self._session = session
        self._extractor_binary = extractor_binary
        self._provider_factory = provider_factory or self._build_provider

    def _build_provider(self, descriptor: ProviderDescriptor) -> MetadataProvider:
        if descriptor.is_mirror:
            return HttpMirrorProvider(descriptor, session=self._session)
        return build_extractor_provider(descriptor, binary=self._extractor_binary)

    def iter_attempts(self, url: str, classification: Optional[Classification] = None) -> Iterator[Attempt]:
        classification = classification or classify(url)
        if classification.has_content_id:
            for descriptor in self.registry.mirrors():
                provider = self._provider_factory(descriptor)
                yield Attempt(descriptor, lambda p=provider: p.fetch(url, classification.content_id))
        else:
            logger.info("URL not recognized as a known platform; using extractor path url=%s", url)
        for descriptor in self.registry.extractors():
            provider = self._provider_factory(descriptor)
            yield Attempt(descriptor, lambda p=provider: p.fetch(url, None))

    def resolve(self, url: str) -> VideoInfo:
        failures: list[AttemptFailure] = []
        last_error: Optional[Exception] = None
        for attempt in self.iter_attempts(url):
            name = attempt.descriptor.name
            try:
                info = attempt.run()
            except (ProviderError, ExtractorError) as exc:
                last_error = exc
                failures.append(AttemptFailure(name, str(exc)))
                logger.warning("Provider %s failed: %s", name, exc)
                continue
            logger.info("Resolved metadata via %s title=%r", name, info.title)
            return info

        logger.error("All %d providers failed for url=%s", len(failures), url)
        raise AllProvidersExhausted(failures, last_error)


def resolve_metadata(url: str, registry: ProviderRegistry, **kwargs) -> VideoInfo:
    return MetadataResolver(registry, **kwargs).resolve(url)
