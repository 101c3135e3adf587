"""Upload services module."""
from .file_service import FileValidator, AsyncFileReader, guess_content_type
from .part_service import PartUploader, RetryingUploader, ContentHashMismatch, sha1_hex
from .progress_service import MonotonicProgress, ProgressTracker, PROGRESS_EVENT
from .small_file_service import SmallFileUploader, empty_file_result, EMPTY_FILE_ID

__all__ = [
    'FileValidator',
    'AsyncFileReader',
    'guess_content_type',
    'PartUploader',
    'RetryingUploader',
    'ContentHashMismatch',
    'sha1_hex',
    'MonotonicProgress',
    'ProgressTracker',
    'PROGRESS_EVENT',
    'SmallFileUploader',
    'empty_file_result',
    'EMPTY_FILE_ID',
]
