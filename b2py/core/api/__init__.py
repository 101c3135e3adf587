"""B2 API module."""
from .errors import B2APIError, APIErrorCodes, is_transient_error
from .events import EventEmitter
from .config import APIConfig, B2Config, TimeoutConfig, RetryConfig
from .models import Credential, UploadTarget
from .async_client import AsyncAPIClient
from .async_auth import CredentialCache
from .retry import RetryStrategy, ExponentialBackoffStrategy

__all__ = [
    # Client
    'AsyncAPIClient',
    'CredentialCache',
    'Credential',
    'UploadTarget',

    # Configuration
    'APIConfig',
    'B2Config',
    'TimeoutConfig',
    'RetryConfig',

    # Retry
    'RetryStrategy',
    'ExponentialBackoffStrategy',

    # Errors
    'B2APIError',
    'APIErrorCodes',
    'is_transient_error',

    # Events
    'EventEmitter',
]
