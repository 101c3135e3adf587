"""
Upload module for B2 large-file uploads.

Small files go up in a single request; large files are split into parts
uploaded concurrently with per-part retries, then assembled by the backend.
"""
from .facade import UploadFacade
from .coordinator import UploadOrchestrator
from .models import (
    UploadResult,
    UploadPlan,
    UploadSettings,
    UploadSession,
    SessionStatus,
    Part,
    PartStatus,
    PartResult,
    ProgressSnapshot,
    ResumeState,
)
from .protocols import (
    StorageBackend,
    ChunkingStrategy,
    FileReaderProtocol,
    ProgressObserver,
)
from .services import PartUploader, ProgressTracker, SmallFileUploader
from .strategies import PartPlanner, FailurePolicy, RecoveryAction

__all__ = [
    # Main classes
    'UploadFacade',
    'UploadOrchestrator',
    'PartUploader',
    'SmallFileUploader',
    'ProgressTracker',
    'PartPlanner',
    'FailurePolicy',
    'RecoveryAction',

    # Models
    'UploadResult',
    'UploadPlan',
    'UploadSettings',
    'UploadSession',
    'SessionStatus',
    'Part',
    'PartStatus',
    'PartResult',
    'ProgressSnapshot',
    'ResumeState',

    # Protocols
    'StorageBackend',
    'ChunkingStrategy',
    'FileReaderProtocol',
    'ProgressObserver',
]
