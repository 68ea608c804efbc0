"""Exception hierarchy for the ingest pipeline.

Malformed index rows are never raised; they are skipped by the parser.
Everything here is either fatal to a parse run (`DecompressionError`) or is
turned into the `failed` upload state by the driver loop.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base exception for all ingest-related errors."""


class DecompressionError(IngestError):
    """Raised when a gzip-compressed index is corrupt or truncated."""


class ApiError(IngestError):
    """Raised when the filings API answers with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UploadError(IngestError):
    """Raised when a chunk cannot be delivered.

    Attributes:
        chunk: 1-based chunk number that failed, when known.
    """

    def __init__(self, message: str, chunk: int | None = None) -> None:
        super().__init__(message)
        self.chunk = chunk


class MissingIdMappingError(UploadError):
    """Raised when a filing chunk cannot be translated to server IDs."""


class UploadStoppedError(UploadError):
    """Raised inside the upload loop when the operator asked it to stop."""
