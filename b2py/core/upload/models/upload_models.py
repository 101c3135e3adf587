"""
Data models for upload module.

Uses dataclasses for type-safe data structures.
"""
import json
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Any, Optional, List

from ...exceptions import InvalidSessionTransition

MB = 1024 * 1024
GB = 1024 * MB


class SessionStatus(str, Enum):
    """Lifecycle of a large-file session."""
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELED = 'canceled'
    FAILED = 'failed'

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.CANCELED, SessionStatus.FAILED)


_ALLOWED_TRANSITIONS = {
    SessionStatus.PENDING: {SessionStatus.IN_PROGRESS},
    SessionStatus.IN_PROGRESS: {SessionStatus.COMPLETED, SessionStatus.CANCELED, SessionStatus.FAILED},
}


class PartStatus(str, Enum):
    """State of one part within a session."""
    PENDING = 'pending'
    IN_FLIGHT = 'in_flight'
    COMPLETED = 'completed'
    FAILED = 'failed'


@dataclass
class UploadSettings:
    """
    Thresholds and limits for the upload subsystem.

    Attributes:
        large_file_threshold: Files at or above this size use the multipart path
        min_part_size: Smallest part the backend accepts (except the last one)
        max_part_size: Largest part the backend accepts
        max_parts: Maximum parts per session
        max_small_file_size: Largest file a single request may carry
        default_concurrency: Concurrency when network speed is unknown
        max_retries: Attempts per part and per small-file upload
        retry_base_delay: First backoff delay in seconds
        retry_max_delay: Backoff cap in seconds
        progress_interval: Seconds between periodic progress snapshots
    """
    large_file_threshold: int = 50 * MB
    min_part_size: int = 5 * MB
    max_part_size: int = 5 * GB
    max_parts: int = 10000
    max_small_file_size: int = 5 * GB
    default_concurrency: int = 4
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 60.0
    progress_interval: float = 1.0


@dataclass(frozen=True)
class UploadPlan:
    """
    Transfer parameters for one file.

    Attributes:
        part_size: Bytes per part (last part may be shorter)
        concurrency: Parts started together in one batch
        per_part_timeout: Hard timeout for one part upload attempt, in seconds
        max_retries: Attempts per part
    """
    part_size: int
    concurrency: int
    per_part_timeout: float
    max_retries: int

    def total_parts(self, file_size: int) -> int:
        """Number of parts needed for a file of the given size."""
        if file_size <= 0:
            return 0
        return -(-file_size // self.part_size)

    def with_part_size(self, part_size: int, per_part_timeout: Optional[float] = None) -> 'UploadPlan':
        """Copy of the plan with a different part size."""
        return replace(
            self,
            part_size=part_size,
            per_part_timeout=per_part_timeout if per_part_timeout is not None else self.per_part_timeout
        )


@dataclass
class Part:
    """
    A contiguous byte range uploaded as one unit.

    Attributes:
        part_number: 1-based part number
        start: First byte offset (inclusive)
        end: Last byte offset (exclusive)
        status: Current part status
        content_hash: SHA-1 of the part bytes once known
    """
    part_number: int
    start: int
    end: int
    status: PartStatus = PartStatus.PENDING
    content_hash: Optional[str] = None

    @property
    def size(self) -> int:
        """Returns part size."""
        return self.end - self.start


@dataclass(frozen=True)
class PartResult:
    """A part whose hash the backend has confirmed."""
    part_number: int
    content_hash: str
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return {'part_number': self.part_number, 'content_hash': self.content_hash, 'size': self.size}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PartResult':
        return cls(
            part_number=int(data['part_number']),
            content_hash=data['content_hash'],
            size=int(data['size'])
        )


@dataclass
class UploadSession:
    """
    Backend-tracked handle spanning one large-file upload.

    Attributes:
        session_id: Opaque backend handle (B2 fileId)
        destination_name: Name of the object being created
        file_size: Total size, None when unknown (listed sessions)
        part_size: Bytes per part
        total_parts: Number of parts
        status: Lifecycle state
        started_at: Start time in epoch milliseconds
        content_type: MIME type given at start
    """
    session_id: str
    destination_name: str
    file_size: Optional[int] = None
    part_size: int = 0
    total_parts: int = 0
    status: SessionStatus = SessionStatus.PENDING
    started_at: int = field(default_factory=lambda: int(time.time() * 1000))
    content_type: Optional[str] = None

    def transition(self, status: SessionStatus) -> None:
        """
        Move to a new status.

        Raises:
            InvalidSessionTransition: If the move goes backwards or leaves a terminal state
        """
        if status not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidSessionTransition(
                f"Session {self.session_id}: cannot go from {self.status.value} to {status.value}"
            )
        self.status = status

    @property
    def age_hours(self) -> float:
        """Hours since the session was started."""
        return (time.time() * 1000 - self.started_at) / (1000 * 60 * 60)


@dataclass(frozen=True)
class UploadResult:
    """
    Result of a successful upload.

    Attributes:
        file_id: Final content identifier
        destination_name: Name of the stored object
        url: Public URL
        file_size: Size of uploaded file
        elapsed: Seconds spent
        total_parts: Parts used (1 for the single-request path, 0 for empty files)
        content_hash: Whole-file SHA-1 (single-request path only)
    """
    file_id: str
    destination_name: str
    url: str
    file_size: int
    elapsed: float
    total_parts: int = 0
    content_hash: Optional[str] = None

    @property
    def average_speed(self) -> float:
        """Bytes per second over the whole transfer."""
        return self.file_size / self.elapsed if self.elapsed > 0 else 0.0


@dataclass(frozen=True)
class ProgressSnapshot:
    """
    Point-in-time view of an upload.

    Attributes:
        stage: starting, uploading, finishing or complete
        percent: 0-100, from completed parts only
        uploaded_bytes: Bytes in completed parts
        file_size: Total bytes
        speed: Bytes per second
        eta: Seconds remaining, None when indeterminate
        active_parts: Parts in flight
        completed_parts: Parts confirmed
        total_parts: Parts in the session
        message: Human-readable status
    """
    stage: str
    percent: int
    uploaded_bytes: int
    file_size: int
    speed: float
    eta: Optional[float]
    active_parts: int
    completed_parts: int
    total_parts: int
    message: str = ''

    def to_event(self) -> Dict[str, Any]:
        """Event payload for external listeners (REST handlers, sockets)."""
        return {
            'stage': self.stage,
            'progress': self.percent,
            'completedChunks': self.completed_parts,
            'totalChunks': self.total_parts,
            'message': self.message,
            'fileSize': self.file_size,
            'uploadedBytes': self.uploaded_bytes,
            'uploadSpeed': f"{self.speed / MB:.2f} MB/s",
            'timeRemaining': f"{round(self.eta)}s" if self.eta is not None else 'calculating...',
        }


@dataclass
class ResumeState:
    """
    Everything needed to continue an interrupted upload.

    Attributes:
        session_id: Backend session handle
        destination_name: Object name of the session
        file_size: Size of the source file when the session started
        part_size: Part size the session was started with
        completed_parts: Parts the backend has confirmed
    """
    session_id: str
    destination_name: str
    file_size: int
    part_size: int
    completed_parts: List[PartResult] = field(default_factory=list)

    @property
    def completed_numbers(self) -> List[int]:
        return sorted(p.part_number for p in self.completed_parts)

    @property
    def completed_bytes(self) -> int:
        return sum(p.size for p in self.completed_parts)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary for serialization.

        Returns:
            Dictionary representation
        """
        return {
            'session_id': self.session_id,
            'destination_name': self.destination_name,
            'file_size': self.file_size,
            'part_size': self.part_size,
            'completed_parts': [p.to_dict() for p in sorted(self.completed_parts, key=lambda p: p.part_number)],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResumeState':
        """
        Create from dictionary.

        Args:
            data: Dictionary with resume data

        Returns:
            ResumeState instance
        """
        return cls(
            session_id=data['session_id'],
            destination_name=data['destination_name'],
            file_size=int(data['file_size']),
            part_size=int(data['part_size']),
            completed_parts=[PartResult.from_dict(p) for p in data.get('completed_parts', [])]
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, payload: str) -> 'ResumeState':
        return cls.from_dict(json.loads(payload))
