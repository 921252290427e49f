"""Exception hierarchy for Sitch.

Errors are scoped so that a failure affects as little as possible:

- ConfigError: a source or provider is misconfigured; that source is skipped.
- Unavailable: a provider lacks its credential; its sources are skipped silently.
- ProviderError: a fetch failed (network, timeout, rate limit, auth); the
  source gets no watermark advance this run.
- FetchCancelled: a fetch was told to stop between requests.
- ParseError: a single malformed item; dropped by the adapter.
- PersistenceError: the registry or watermark store cannot be used; fatal.
- RenderError: an output sink failed; no watermarks are committed.
"""


class SitchError(Exception):
    """Base class for all Sitch errors."""


class ConfigError(SitchError):
    """Missing credential, malformed source entry or malformed config file."""


class Unavailable(ConfigError):
    """A provider cannot be used until it is configured (e.g. missing API key)."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider} is unavailable: {reason}")
        self.provider = provider
        self.reason = reason


class ProviderError(SitchError):
    """A provider request failed for one source."""


class FetchCancelled(ProviderError):
    """A fetch was stopped because it timed out or the run was interrupted."""


class ParseError(ProviderError):
    """A single item in a provider response could not be parsed."""


class PersistenceError(SitchError):
    """The source registry or watermark store is unreadable or unwritable."""


class RenderError(SitchError):
    """An output sink failed to deliver a report."""
