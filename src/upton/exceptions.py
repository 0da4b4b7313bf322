from __future__ import annotations

from typing import Optional


class UptonError(Exception):
    """Base class for every failure raised by this package."""


class UptonConfigError(UptonError):
    pass


class FetchError(UptonError):
    """A resource fetch failed."""

    def __init__(self, uri: str, message: str = "", status_code: Optional[int] = None) -> None:
        self.uri = uri
        self.status_code = status_code
        super().__init__(message or f"Failed to fetch {uri}")


class ResourceNotFound(FetchError):
    pass


class InternalServerError(FetchError):
    pass


class ServiceUnavailable(FetchError):
    pass


class InvalidURI(FetchError):
    pass


class RequestTimeout(FetchError):
    pass


class ConnectionFailed(FetchError):
    pass


class HTTPStatusError(FetchError):
    """Any HTTP error status outside the skippable set."""


class RetriesExhausted(FetchError):
    def __init__(self, uri: str, attempts: int, last_error: Exception) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(uri, f"Gave up on {uri} after {attempts} timed out attempts")


# Failures that are logged and treated as empty content.
SKIPPABLE_ERRORS = (ResourceNotFound, InternalServerError, ServiceUnavailable, InvalidURI)
