"""
Chunking strategies for file uploads.

Implements Strategy Pattern for splitting a file into numbered parts.
"""
from abc import ABC, abstractmethod
from typing import List

from ..models import Part


class BaseChunkingStrategy(ABC):
    """Abstract base class for chunking strategies."""

    @abstractmethod
    def calculate_parts(self, file_size: int, part_size: int) -> List[Part]:
        """Calculate part boundaries."""
        pass


class FixedSizeChunkingStrategy(BaseChunkingStrategy):
    """
    Fixed-size parts; only the last part may be shorter.

    Multipart backends require every part but the last to meet the
    minimum part size, so parts are never rebalanced.
    """

    def calculate_parts(self, file_size: int, part_size: int) -> List[Part]:
        """
        Calculate fixed-size part boundaries.

        Args:
            file_size: Total file size in bytes
            part_size: Bytes per part

        Returns:
            Contiguous parts numbered 1..N covering [0, file_size)
        """
        if part_size <= 0:
            raise ValueError("Part size must be positive")

        if file_size == 0:
            return []

        parts = []
        position = 0
        number = 1

        while position < file_size:
            end = min(position + part_size, file_size)
            parts.append(Part(part_number=number, start=position, end=end))
            position = end
            number += 1

        return parts
