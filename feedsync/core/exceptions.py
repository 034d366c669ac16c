"""Custom exceptions for FeedSync."""

from typing import Optional


class FeedSyncError(Exception):
    """Base exception for FeedSync."""
    pass


class ValidationError(FeedSyncError):
    """Operation rejected locally before any request was sent."""
    pass


class TransportError(FeedSyncError):
    """Request could not be completed (network failure)."""
    pass


class ApiError(TransportError):
    """Backend answered with a non-success status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class ParsingError(FeedSyncError):
    """Server payload did not have the expected shape."""
    pass


class UploadError(FeedSyncError):
    """Direct transfer to a signed upload target failed."""
    pass


class SessionError(FeedSyncError):
    """Stored session could not be read or written."""
    pass


def get_error_message(error: object, fallback: str = "Unexpected error") -> str:
    """
    Extract a human-readable message from an error.

    Args:
        error: Exception instance or plain string
        fallback: Message used when nothing usable is found

    Returns:
        Message suitable for display
    """
    if isinstance(error, BaseException):
        message: Optional[str] = str(error).strip()
        if message:
            return message
    elif isinstance(error, str) and error.strip():
        return error
    return fallback
