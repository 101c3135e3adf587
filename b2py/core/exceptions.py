"""
Custom exceptions for B2 upload operations.

This module defines the typed error taxonomy surfaced by the upload subsystem.
Transient network failures never escape as-is; they are retried locally and
converted into one of these once the retry budget is exhausted.
"""
from typing import Optional, Any


class B2Exception(Exception):
    """Base exception for all b2py errors."""

    def __init__(self, message: str, error_code: Optional[str] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            error_code: Backend error code (if available)
        """
        self.error_code = error_code
        super().__init__(message)


class AuthError(B2Exception):
    """Authorization with the storage backend failed after all retries."""
    pass


class InvalidSessionTransition(B2Exception, ValueError):
    """An upload session was moved to a state it cannot reach."""
    pass


class UploadError(B2Exception):
    """
    Base class for upload failures.

    Carries whatever resume state was achieved before the failure so an
    outer retry loop can continue instead of starting from zero.
    """

    def __init__(
        self,
        message: str,
        resume_state: Any = None,
        error_code: Optional[str] = None
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            resume_state: ResumeState reached before the failure (if any)
            error_code: Backend error code (if available)
        """
        self.resume_state = resume_state
        super().__init__(message, error_code)


class SessionStartError(UploadError):
    """The backend refused to start a large-file session."""
    pass


class PartUploadError(UploadError):
    """A single part exhausted its retries."""

    def __init__(
        self,
        part_number: int,
        last_error: Optional[BaseException] = None,
        resume_state: Any = None
    ) -> None:
        """
        Initialize the exception.

        Args:
            part_number: 1-based number of the failed part
            last_error: Error raised by the final attempt
            resume_state: ResumeState reached before the failure
        """
        self.part_number = part_number
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            f"Part {part_number} failed after all retries{detail}",
            resume_state=resume_state
        )


class FinishError(UploadError):
    """All parts were uploaded but the backend rejected the finish call."""
    pass


class SmallFileUploadError(UploadError):
    """The single-request upload path exhausted its retries."""
    pass


class UploadCanceledError(UploadError):
    """The session was canceled while the upload was running."""
    pass
