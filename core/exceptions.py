"""Exception hierarchy for the music search service.

Record store backends raise ``RecordStoreError`` subclasses only, so callers
can handle every backend alike.
"""


class SearchServiceError(Exception):
    """Base for all service errors.

    ``details`` holds structured context (collection, HTTP status, response
    body) for logs and error reports.
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})


class RecordStoreError(SearchServiceError):
    """A record store operation failed."""


class ValidationError(RecordStoreError):
    """The store rejected a write: malformed record or violated constraint."""


class TransportError(RecordStoreError):
    """The store could not be reached, failed server-side, or kept throttling."""


class ConfigurationError(SearchServiceError):
    """Settings are missing or inconsistent."""


class ServiceInitializationError(SearchServiceError):
    """A shared service (record store, client) could not be created."""
