# errors.py
"""
Exception hierarchy shared by the fetcher, the video pipeline and the catalog
scrapers. The FastAPI layer in app.py maps each kind to an HTTP status code.
"""
from typing import List, Optional


class DrakorkitaError(Exception):
    """Base class for every error raised by this service."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


# Upstream / transport

class UpstreamUnavailable(DrakorkitaError):
    """Every direct and proxy path was exhausted without a usable response."""

    status_code = 502

    def __init__(self, url: str, elapsed_ms: float, attempts: Optional[List] = None, message: Optional[str] = None):
        self.url = url
        self.elapsed_ms = elapsed_ms
        self.attempts = list(attempts or [])
        tried = ", ".join(attempt.describe() for attempt in self.attempts) or "no path enabled"
        super().__init__(
            message or f"Failed to fetch {url} after {elapsed_ms:.0f} ms",
            details=f"Attempts: {tried}",
        )

    @property
    def exhausted_sources(self) -> List[str]:
        return [attempt.source for attempt in self.attempts]


class UpstreamBlocked(UpstreamUnavailable):
    """Same as UpstreamUnavailable, but at least one path answered 403/429."""

    status_code = 503


class ResolutionTimeout(DrakorkitaError):
    status_code = 504


# Markup / payload shape

class ParseFailure(DrakorkitaError):
    """The upstream response does not have the shape the selectors expect."""

    status_code = 404


class VideoDataNotFound(ParseFailure):
    status_code = 404


class CatalogNotFound(DrakorkitaError):
    status_code = 404


# Caller input

class InvalidEndpoint(DrakorkitaError):
    status_code = 400


class InvalidConfiguration(DrakorkitaError):
    status_code = 400


class IndexOutOfRange(DrakorkitaError):
    status_code = 400

    def __init__(self, index: int, available: int, message: str):
        self.index = index
        self.available = available
        super().__init__(message)


class EpisodeIndexOutOfRange(IndexOutOfRange):
    def __init__(self, index: int, available: int):
        super().__init__(index, available, f"Invalid episode. {available} episodes available")


class ResolutionIndexOutOfRange(IndexOutOfRange):
    def __init__(self, index: int, available: int):
        super().__init__(index, available, f"Invalid resolution. {available} resolutions available")
