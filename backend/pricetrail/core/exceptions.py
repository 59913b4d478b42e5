"""Custom exception classes for the application."""

from typing import Optional


class PriceTrailException(Exception):
    """Base exception for all PriceTrail errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(PriceTrailException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} with identifier '{identifier}' not found")


class FetchError(PriceTrailException):
    """Raised when fetching raw content from a source fails."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Fetch failed for {url}: {message}")


class TransientNetworkError(FetchError):
    """Retryable failure: timeouts, transport errors, 5xx, 408 and 429."""


class RenderError(TransientNetworkError):
    """The headless browser failed to render a page or capture a response."""


class PermanentRequestError(FetchError):
    """Non-retryable client error (4xx other than 408 and 429)."""


class CircuitOpenError(FetchError):
    """Raised without a network attempt while an endpoint's circuit is open."""

    def __init__(self, endpoint: str, retry_after: float):
        self.endpoint = endpoint
        self.retry_after = retry_after
        super().__init__(endpoint, f"circuit open, retry in {retry_after:.1f}s")


class ParseFailure(PriceTrailException):
    """A page or record could not be extracted. Never leaves an adapter."""


class PersistenceError(PriceTrailException):
    """The store is unavailable or a write failed."""


class HealthCheckFailure(PriceTrailException):
    """A source failed its reachability check."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"Health check failed for {source}: {message}")
