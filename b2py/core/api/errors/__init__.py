"""B2 API errors and exceptions."""
from .api_errors import B2APIError, APIErrorCodes, ContentHashMismatch, is_transient_error

__all__ = [
    'B2APIError',
    'APIErrorCodes',
    'ContentHashMismatch',
    'is_transient_error',
]
