"""
Protocol definitions for upload module.

Defines interfaces (protocols) for dependency injection, so the
orchestrator can run against the real B2 client or an in-memory fake.
"""
from typing import Protocol, Dict, Any, List, Tuple, Optional, runtime_checkable
from pathlib import Path

from ..api.models import Credential, UploadTarget
from .models import Part, ProgressSnapshot


class StorageBackend(Protocol):
    """
    Object-storage operations consumed by the upload subsystem.

    Implemented by AsyncAPIClient against the B2 native API.
    """

    async def authorize(self) -> Credential:
        """Perform one network authorization (no caching)."""
        ...

    async def get_upload_url(self, credential: Credential, bucket_id: str) -> UploadTarget:
        """Fresh single-use URL for a whole-file upload."""
        ...

    async def start_large_file(
        self,
        credential: Credential,
        bucket_id: str,
        file_name: str,
        content_type: str,
        file_info: Optional[Dict[str, str]] = None
    ) -> str:
        """Start a session and return its id."""
        ...

    async def get_upload_part_url(self, credential: Credential, session_id: str) -> UploadTarget:
        """Fresh single-use URL for one part upload attempt."""
        ...

    async def upload_part(
        self,
        target: UploadTarget,
        part_number: int,
        data: bytes,
        content_hash: str
    ) -> str:
        """Upload one part and return the hash the backend computed."""
        ...

    async def upload_file(
        self,
        target: UploadTarget,
        file_name: str,
        data: bytes,
        content_hash: str,
        content_type: str
    ) -> Dict[str, Any]:
        """Upload a whole file; returns file_id, file_name, content_hash, size."""
        ...

    async def finish_large_file(
        self,
        credential: Credential,
        session_id: str,
        part_hashes: List[str]
    ) -> Dict[str, Any]:
        """Assemble parts; returns file_id and file_name."""
        ...

    async def cancel_large_file(self, credential: Credential, session_id: str) -> None:
        """Cancel a session."""
        ...

    async def list_unfinished_large_files(
        self,
        credential: Credential,
        bucket_id: str,
        start_file_id: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """One page of unfinished sessions plus the next page cursor."""
        ...

    async def list_parts(
        self,
        credential: Credential,
        session_id: str,
        start_part_number: Optional[int] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """One page of confirmed parts plus the next page cursor."""
        ...


class ChunkingStrategy(Protocol):
    """Protocol for splitting a file into parts."""

    def calculate_parts(self, file_size: int, part_size: int) -> List[Part]:
        """
        Calculate part boundaries for a file.

        Args:
            file_size: Total file size in bytes
            part_size: Bytes per part

        Returns:
            Parts numbered from 1
        """
        ...


class FileReaderProtocol(Protocol):
    """Protocol for file reading operations."""

    async def read_range(self, file_path: Path, start: int, end: int) -> bytes:
        """
        Read exactly [start, end) from a file.

        Args:
            file_path: Path to the file
            start: Start position in bytes
            end: End position in bytes (exclusive)

        Returns:
            The bytes in range
        """
        ...

    async def read_file(self, file_path: Path) -> bytes:
        """Read a whole file."""
        ...


@runtime_checkable
class ProgressObserver(Protocol):
    """Receives progress snapshots published during an upload."""

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        ...
