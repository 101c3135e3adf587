"""
Part planning.

Chooses part size, concurrency and per-part timeout from the file size
and an estimate of the network throughput.
"""
from typing import Optional

from ..models import MB, GB, UploadPlan, UploadSettings


class PartPlanner:
    """
    Computes an UploadPlan for a file.

    Part size grows with file size, concurrency with link speed, and the
    per-part timeout with part size.

    Example:
        >>> planner = PartPlanner()
        >>> plan = planner.plan_parts(2 * GB, estimated_network_mbps=80)
        >>> plan.part_size // MB, plan.concurrency
        (10, 6)
    """

    # (file size upper bound, part size)
    PART_SIZE_TABLE = (
        (1 * GB, 6 * MB),
        (4 * GB, 10 * MB),
    )
    LARGEST_TABLE_PART = 25 * MB

    # (part size upper bound inclusive, timeout seconds)
    TIMEOUT_TABLE = (
        (10 * MB, 300.0),
        (50 * MB, 600.0),
        (100 * MB, 900.0),
    )
    LONGEST_TIMEOUT = 1200.0

    # (Mbps upper bound, concurrency)
    CONCURRENCY_TABLE = (
        (10, 2),
        (50, 4),
        (100, 6),
    )
    MAX_CONCURRENCY = 10

    def __init__(self, settings: Optional[UploadSettings] = None):
        self._settings = settings or UploadSettings()

    @property
    def settings(self) -> UploadSettings:
        return self._settings

    def plan_parts(self, file_size: int, estimated_network_mbps: Optional[float] = None) -> UploadPlan:
        """
        Plan a multipart transfer.

        Args:
            file_size: Total file size in bytes
            estimated_network_mbps: Measured or guessed link speed, None if unknown

        Returns:
            UploadPlan for the file
        """
        part_size = self.part_size_for(file_size)
        return UploadPlan(
            part_size=part_size,
            concurrency=self.concurrency_for(estimated_network_mbps),
            per_part_timeout=self.timeout_for(part_size),
            max_retries=self._settings.max_retries,
        )

    def plan_single(self, file_size: int) -> UploadPlan:
        """Plan for the single-request path: the whole file is one part."""
        size = max(file_size, 1)
        return UploadPlan(
            part_size=size,
            concurrency=1,
            per_part_timeout=self.timeout_for(size),
            max_retries=self._settings.max_retries,
        )

    def part_size_for(self, file_size: int) -> int:
        """Part size for a file, clamped to backend limits."""
        settings = self._settings

        part_size = self.LARGEST_TABLE_PART
        for upper_bound, size in self.PART_SIZE_TABLE:
            if file_size < upper_bound:
                part_size = size
                break

        part_size = max(part_size, settings.min_part_size)

        # Grow parts until the file fits within the part-count cap
        min_for_cap = -(-file_size // settings.max_parts) if file_size > 0 else 0
        part_size = max(part_size, min_for_cap)

        return min(part_size, settings.max_part_size)

    def timeout_for(self, part_size: int) -> float:
        """Hard timeout in seconds for one attempt at a part of this size."""
        for upper_bound, timeout in self.TIMEOUT_TABLE:
            if part_size <= upper_bound:
                return timeout
        return self.LONGEST_TIMEOUT

    def concurrency_for(self, mbps: Optional[float]) -> int:
        """Parallel part uploads for a link speed."""
        if mbps is None or mbps <= 0:
            return self._settings.default_concurrency
        for upper_bound, concurrency in self.CONCURRENCY_TABLE:
            if mbps < upper_bound:
                return concurrency
        return self.MAX_CONCURRENCY

    def with_part_size(self, plan: UploadPlan, part_size: int) -> UploadPlan:
        """Copy of `plan` using `part_size`, with the matching timeout."""
        part_size = max(min(part_size, self._settings.max_part_size), self._settings.min_part_size)
        return plan.with_part_size(part_size, self.timeout_for(part_size))
