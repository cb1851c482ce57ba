"""
Error taxonomy for the compositor pipeline.

Structural and export failures propagate to the caller. Media fetch and
format failures are absorbed by the compositor into a degraded rendering
(placeholder or silent section) and reported as diagnostics. Store failures
surface to the immediate caller of the store operation.
"""

from typing import Optional


class Script2VideoError(Exception):
    """Base class for all pipeline errors."""

    pass


class StructuralError(Script2VideoError):
    """Raised when a script timeline is malformed or empty."""

    pass


class MediaFetchError(Script2VideoError):
    """Raised when a media URL cannot be fetched (non-2xx status or transport error)."""

    def __init__(self, url: str, cause: object):
        self.url = url
        self.cause = cause
        super().__init__(f"Failed to fetch {url}: {cause}")


class UnsupportedFormatError(Script2VideoError):
    """Raised when the format policy rejects a media URL."""

    def __init__(self, url: str, kind: str):
        self.url = url
        self.kind = kind
        super().__init__(f"Unsupported {kind} format: {url}")


class ExportError(Script2VideoError):
    """Raised when every export strategy failed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class StoreTransactionError(Script2VideoError):
    """Raised when a cache or history store read/write fails."""

    def __init__(self, operation: str, cause: object):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Store operation '{operation}' failed: {cause}")


class SaveCancelled(Script2VideoError):
    """Raised by a save-location provider when the user declines to pick a destination."""

    pass
