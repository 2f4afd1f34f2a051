"""Error taxonomy shared by the core and the adapters.

Filesystem failures stay plain ``OSError`` so callers can handle them the
usual way; unreadable stored documents are reported through
``LoadStatus.CORRUPT`` by the JSON store instead of an exception.
"""

from __future__ import annotations


class HeraldError(Exception):
    """Base class for errors raised by herald itself."""


class NetworkError(HeraldError):
    """An upstream fetch failed, returned a bad status, or sent garbage."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RetryCancelledError(HeraldError):
    """A retry loop was abandoned because the service is shutting down."""


class ValidationError(HeraldError, ValueError):
    """Caller supplied data failed a format or schema check."""
