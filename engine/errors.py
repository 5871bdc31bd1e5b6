"""Exception types raised by the resolution and download pipelines."""

from __future__ import annotations


class MediafetchError(Exception):
    pass


class RegistryConfigError(MediafetchError):
    pass


class ProviderError(MediafetchError):
    """A single provider attempt failed; the pipeline moves on to the next one."""

    def __init__(self, provider, message):
        super().__init__(message)
        self.provider = provider

    def __str__(self):
        return f"{self.provider}: {self.args[0]}"


class ProviderTransportError(ProviderError):
    pass


class ProviderSchemaError(ProviderError):
    pass


class AllProvidersExhausted(MediafetchError):
    def __init__(self, attempts, last_error=None):
        self.attempts = list(attempts)
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else "no providers configured"
        super().__init__(detail)


class ExtractorError(MediafetchError):
    pass


class ExtractorSpawnError(ExtractorError):
    pass


class ExtractorNonZeroExit(ExtractorError):
    def __init__(self, returncode, stderr_tail=""):
        self.returncode = returncode
        self.stderr_tail = stderr_tail or ""
        message = f"yt-dlp exited with code {returncode}"
        if self.stderr_tail:
            message = f"{message}: {self.stderr_tail}"
        super().__init__(message)


class StreamAbortedByClient(MediafetchError):
    pass
