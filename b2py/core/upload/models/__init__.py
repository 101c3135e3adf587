"""Upload models."""
from .upload_models import (
    MB,
    GB,
    SessionStatus,
    PartStatus,
    UploadSettings,
    UploadPlan,
    Part,
    PartResult,
    UploadSession,
    UploadResult,
    ProgressSnapshot,
    ResumeState
)

__all__ = [
    'MB',
    'GB',
    'SessionStatus',
    'PartStatus',
    'UploadSettings',
    'UploadPlan',
    'Part',
    'PartResult',
    'UploadSession',
    'UploadResult',
    'ProgressSnapshot',
    'ResumeState'
]
