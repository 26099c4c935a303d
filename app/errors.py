"""Exceptions raised by the image version pipeline."""


class ImageLedgerError(Exception):
    """Base class for ledger and pipeline errors."""


class FetchError(ImageLedgerError):
    """The provider URL could not be downloaded.

    ``status_code`` is the upstream HTTP status, or None for transport
    failures (timeout, DNS, connection reset).
    """

    def __init__(self, reason, status_code=None, url=None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
        self.url = url


class StorageError(ImageLedgerError):
    """The storage backend rejected a write."""

    def __init__(self, reason, backend=None, storage_path=None):
        super().__init__(reason)
        self.reason = reason
        self.backend = backend
        self.storage_path = storage_path


class ConcurrencyConflict(ImageLedgerError):
    """Two writers broke the one-current-image-per-subject index.

    Indicates a transaction scoping bug, not a condition callers handle.
    """


class ImageVersionNotFound(ImageLedgerError):
    pass


class InvalidImageVersion(ImageLedgerError):
    """The record exists but cannot be used for the requested change."""
