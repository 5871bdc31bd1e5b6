from typing import Optional, Protocol

from engine.registry import ProviderDescriptor
from metadata.types import VideoInfo


class MetadataProvider(Protocol):
    descriptor: ProviderDescriptor

    @property
    def name(self) -> str:
        raise NotImplementedError

    def fetch(self, url: str, content_id: Optional[str] = None) -> VideoInfo:
        """Return a normalized record or raise a ``ProviderError``/``ExtractorError``."""
        raise NotImplementedError
