"""
Pipeline exceptions.

Stage handlers translate these into their error topics; nothing here is
retried.
"""

from typing import Optional


class PipelineError(Exception):
    """Base exception for all pipeline errors."""
    pass


class PreconditionError(PipelineError):
    """Raised when a stage finds required trace state missing or malformed."""
    pass


class ValidationError(PipelineError):
    """Raised when an input (file name, payload) is rejected."""
    pass


class ExternalServiceError(PipelineError):
    """Raised when a third-party API call fails."""
    pass


class YouTubeUploadError(ExternalServiceError):
    """YouTube Data API failure, with a user-facing message."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResponseParseError(PipelineError):
    """Raised when AI-generated content cannot be decoded as structured output."""
    pass


class StorageError(PipelineError):
    """Raised by storage adapters."""
    pass


class StorageNotFoundError(StorageError):
    """Raised when a storage key does not exist."""

    def __init__(self, key: str):
        super().__init__(f"File not found: {key}")
        self.key = key


class AuthenticationError(PipelineError):
    """Raised when no usable YouTube credentials exist."""
    pass
