from .errors import (
    AllProvidersExhausted,
    ExtractorNonZeroExit,
    ExtractorSpawnError,
    MediafetchError,
    ProviderSchemaError,
    ProviderTransportError,
)
from .registry import ProviderDescriptor, ProviderRegistry, load_registry

__all__ = [
    "AllProvidersExhausted",
    "ExtractorNonZeroExit",
    "ExtractorSpawnError",
    "MediafetchError",
    "ProviderDescriptor",
    "ProviderRegistry",
    "ProviderSchemaError",
    "ProviderTransportError",
    "load_registry",
]
