"""
File validation and reading services.

Single Responsibility: Each class handles one specific task.
"""
import mimetypes
from pathlib import Path
from typing import Tuple, Union
import logging

import aiofiles

# Types the platform registry often lacks
_CONTENT_TYPE_OVERRIDES = {
    '.m3u8': 'application/vnd.apple.mpegurl',
    '.ts': 'video/mp2t',
    '.mkv': 'video/x-matroska',
    '.webm': 'video/webm',
}


def guess_content_type(file_name: str) -> str:
    """MIME type for an object name, falling back to octet-stream."""
    suffix = Path(file_name).suffix.lower()
    if suffix in _CONTENT_TYPE_OVERRIDES:
        return _CONTENT_TYPE_OVERRIDES[suffix]
    content_type, _ = mimetypes.guess_type(file_name)
    return content_type or 'application/octet-stream'


class FileValidator:
    """
    Validates files before upload.

    Responsibilities:
    - Check file existence
    - Verify file is not a directory
    - Get file size
    """

    def validate(self, file_path: Union[str, Path]) -> Tuple[Path, int]:
        """
        Validate a file for upload.

        Args:
            file_path: Path to the file

        Returns:
            Tuple of (validated Path, file size in bytes)

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If path is not a regular file
        """
        path = Path(file_path) if isinstance(file_path, str) else file_path

        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        if not path.is_file():
            raise ValueError(f"Path is not a file: {path}")

        return path, path.stat().st_size

    def ensure_unchanged(self, path: Path, expected_size: int) -> None:
        """
        Check the file was not modified since it was validated.

        Raises:
            ValueError: If the size changed
        """
        current = path.stat().st_size
        if current != expected_size:
            raise ValueError(
                f"File size changed during upload: was {expected_size} bytes, now {current} bytes"
            )


class AsyncFileReader:
    """
    Asynchronous positional file reader.

    Uses aiofiles for non-blocking I/O. Every read opens its own handle,
    so concurrent reads at different offsets never share a file position.
    """

    def __init__(self):
        """Initialize file reader."""
        self._logger = logging.getLogger('b2py.upload.file')

    async def read_range(self, file_path: Path, start: int, end: int) -> bytes:
        """
        Read exactly [start, end) from a file.

        Args:
            file_path: Path to the file
            start: Start position in bytes
            end: End position in bytes (exclusive)

        Returns:
            The bytes in range

        Raises:
            OSError: If the file is shorter than expected
        """
        size = end - start
        async with aiofiles.open(file_path, 'rb') as f:
            await f.seek(start)
            data = await f.read(size)

        if len(data) != size:
            raise OSError(
                f"Short read at {start}-{end} of {file_path}: got {len(data)} of {size} bytes"
            )
        self._logger.debug(f"Read range: {start}-{end} ({size} bytes)")
        return data

    async def read_file(self, file_path: Path) -> bytes:
        """
        Read entire file.

        Args:
            file_path: Path to the file

        Returns:
            File data
        """
        async with aiofiles.open(file_path, 'rb') as f:
            return await f.read()
