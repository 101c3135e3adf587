"""
b2py - Async resumable large-file uploads to Backblaze B2.

Usage:
    >>> from b2py import B2Client
    >>>
    >>> async with B2Client() as b2:
    ...     result = await b2.upload_file_with_retry("lecture.mp4", "courses/1/lecture.mp4")
    ...     print(result.url)
"""
import logging
from .client import B2Client

# Configuration
from .core.api import (
    APIConfig,
    B2Config,
    TimeoutConfig,
    RetryConfig,
    AsyncAPIClient,
    CredentialCache
)

# Uploads
from .core.upload import (
    UploadFacade,
    UploadOrchestrator,
    UploadResult,
    UploadSettings,
    ProgressSnapshot,
    ResumeState
)
from .core.cleanup import CleanupManager, CleanupReport
from .core.exceptions import (
    B2Exception,
    AuthError,
    UploadError,
    SessionStartError,
    PartUploadError,
    FinishError,
    SmallFileUploadError,
    UploadCanceledError
)

__version__ = '1.0.0'


def setup_logging(level=logging.INFO):
    """
    Configure logging for b2py modules.

    This ensures that all b2py loggers are properly configured
    to show log messages at the specified level.

    Args:
        level: Logging level (default: logging.INFO)
    """
    loggers = [
        'b2py',
        'b2py.client',
        'b2py.auth',
        'b2py.api',
        'b2py.upload',
        'b2py.upload.coordinator',
        'b2py.upload.part',
        'b2py.upload.small',
        'b2py.upload.file',
        'b2py.upload.progress',
        'b2py.cleanup',
    ]

    for logger_name in loggers:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)
        # Ensure propagation is enabled
        logger.propagate = True


__all__ = [
    'B2Client',
    'APIConfig',
    'B2Config',
    'TimeoutConfig',
    'RetryConfig',
    'AsyncAPIClient',
    'CredentialCache',
    'UploadFacade',
    'UploadOrchestrator',
    'UploadResult',
    'UploadSettings',
    'ProgressSnapshot',
    'ResumeState',
    'CleanupManager',
    'CleanupReport',
    'B2Exception',
    'AuthError',
    'UploadError',
    'SessionStartError',
    'PartUploadError',
    'FinishError',
    'SmallFileUploadError',
    'UploadCanceledError',
    'setup_logging',
]
