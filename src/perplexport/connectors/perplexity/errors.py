"""Exception taxonomy for the export run."""


class PerplexportError(Exception):
    """Base class for every error raised by perplexport."""


class DecodeError(PerplexportError):
    """A response body could not be decoded as JSON."""


class CorrelationTimeout(PerplexportError):
    """No thread payload arrived before the load cycle timed out."""


class NavigationFailure(PerplexportError):
    """The browser failed to navigate to a thread page."""


class DiscoveryExhausted(PerplexportError):
    """No selector strategy matched anything on the library page."""
