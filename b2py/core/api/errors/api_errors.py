"""B2 API error codes and exceptions."""
import asyncio
from typing import Dict, Optional

import aiohttp


class APIErrorCodes:
    """B2 API error codes worth naming."""

    ERROR_CODES: Dict[str, str] = {
        'bad_request': 'The request had the wrong fields or illegal values.',
        'unauthorized': 'The application key is bad or does not allow this operation.',
        'bad_auth_token': 'The auth token used is not valid.',
        'expired_auth_token': 'The auth token used has expired. Call b2_authorize_account again.',
        'cap_exceeded': 'Usage cap exceeded.',
        'not_found': 'File or session not present.',
        'request_timeout': 'The service timed out reading the uploaded file.',
        'too_many_requests': 'Too many requests; back off and retry.',
        'internal_error': 'An unexpected error occurred on the service.',
        'service_unavailable': 'The service is temporarily unavailable; get a new upload URL.',
    }

    TRANSIENT_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

    @classmethod
    def get_message(cls, code: str) -> str:
        """Gets error message for error code."""
        return cls.ERROR_CODES.get(code, f"Unknown error: {code}")


class B2APIError(Exception):
    """Exception raised for non-2xx B2 API responses."""

    def __init__(self, status: int, code: str = '', message: Optional[str] = None):
        self.status = status
        self.code = code
        self.message = message or APIErrorCodes.get_message(code)
        super().__init__(f"HTTP {status} {code}: {self.message}")

    @property
    def is_transient(self) -> bool:
        """True for statuses B2 documents as safe to retry with a new URL."""
        return self.status in APIErrorCodes.TRANSIENT_STATUSES

    @property
    def is_auth_expired(self) -> bool:
        """True when the session token must be refreshed."""
        return self.status == 401 and self.code in ('expired_auth_token', 'bad_auth_token')


class ContentHashMismatch(Exception):
    """The backend confirmed a different hash than the one sent."""

    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(f"Content hash mismatch: sent {expected}, backend computed {received}")


def is_transient_error(error: BaseException) -> bool:
    """Classify an exception as retryable network noise."""
    if isinstance(error, B2APIError):
        return error.is_transient
    return isinstance(error, (asyncio.TimeoutError, aiohttp.ClientError, ConnectionError, ContentHashMismatch))
