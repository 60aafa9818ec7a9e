"""
Failure categories for the sync pipeline.

Provider errors (``ResultsApiError`` and subclasses) describe a single
request. ``NotFoundError`` and ``RequestTimeoutError`` are expected during
identity scans and are skipped there; elsewhere they propagate to the
per-event handler, which records them on the event row.
"""
from typing import List, Optional


class SyncError(Exception):
    """Base class for sync pipeline errors."""


class ResultsApiError(SyncError):
    """A result provider request failed."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message)
        self.endpoint = endpoint


class NotFoundError(ResultsApiError):
    """The provider has no record at that identifier."""


class RequestTimeoutError(ResultsApiError):
    """No response within the request deadline."""


class ProviderError(ResultsApiError):
    """Error notification, unexpected status or unreadable payload."""

    def __init__(self, message: str, endpoint: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, endpoint)
        self.status_code = status_code


class PersistenceConflictError(SyncError):
    """A write lost a race against a concurrent writer."""


class PartialSyncError(SyncError):
    """One bracket (or event) failed mid-sync."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class ListingSourceNotConfiguredError(SyncError):
    """Discovery was requested but no listing source is available."""
