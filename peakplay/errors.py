"""
Error taxonomy for the refresh pipeline.

Only NoDataAvailable and SourceUnavailable ever reach a reader; the
others are handled where they occur.
"""


class PeakPlayError(Exception):
    """Base class for all peakplay errors."""


class ConfigError(PeakPlayError):
    """Required credentials or secrets are absent at startup."""


class AuthError(PeakPlayError):
    """Caller credential missing or invalid."""

    def __init__(self, message: str, status_code: int = 401, hint: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.hint = hint


class SourceUnavailable(PeakPlayError):
    """The primary listing could not be fetched or parsed."""


class FetchCancelled(SourceUnavailable):
    """A fetch was cancelled or ran past its deadline before completing."""


class EnrichmentBatchError(PeakPlayError):
    """One enrichment batch failed. Recovered locally, never escalates."""

    def __init__(self, message: str, track_ids=None):
        super().__init__(message)
        self.track_ids = list(track_ids or [])


class CacheIOError(PeakPlayError):
    """Reading from or writing to a cache store failed."""


class NoDataAvailable(PeakPlayError):
    """A refresh failed and there is no previous entry to fall back on."""
