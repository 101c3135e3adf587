"""
Progress tracking service.

Aggregates per-part completion into ProgressSnapshots and publishes them
to subscribers through an EventEmitter, on every part completion and on a
periodic timer tied to the session lifetime.
"""
import asyncio
import time
from dataclasses import replace
from typing import Callable, Dict, Iterable, Optional, Union

from ...api.events import EventEmitter
from ...logging import get_logger
from ..models import PartResult, ProgressSnapshot
from ..protocols import ProgressObserver

ProgressCallback = Callable[[ProgressSnapshot], None]

PROGRESS_EVENT = 'progress'


class MonotonicProgress:
    """
    Forwards snapshots to an observer, holding percent at its high-water mark.

    One instance spans every attempt of a retried upload, so a resumed or
    restarted session never reports less than an earlier one did.
    """

    def __init__(self, observer: Union[ProgressCallback, ProgressObserver]):
        self._callback = observer.on_progress if isinstance(observer, ProgressObserver) else observer
        self._high = 0

    @property
    def high_water(self) -> int:
        return self._high

    def __call__(self, snapshot: ProgressSnapshot) -> None:
        if snapshot.percent < self._high:
            snapshot = replace(snapshot, percent=self._high)
        self._high = snapshot.percent
        self._callback(snapshot)


class ProgressTracker:
    """
    Tracks upload progress for one transfer.

    Percent is derived from confirmed parts only, never decreases, and
    stays at or below 99 until finish() publishes 100 exactly once.

    Example:
        >>> async with ProgressTracker(file_size, total_parts, observer=print) as tracker:
        ...     tracker.start_part(1, part.size)
        ...     tracker.complete_part(1, result)
        ...     tracker.finish()
    """

    def __init__(
        self,
        file_size: int,
        total_parts: int,
        observer: Optional[Union[ProgressCallback, ProgressObserver]] = None,
        interval: float = 1.0
    ):
        """
        Initialize tracker.

        Args:
            file_size: Total bytes of the transfer
            total_parts: Parts in the session
            observer: Callable or object with on_progress(snapshot)
            interval: Seconds between periodic snapshots, 0 disables them
        """
        self._file_size = file_size
        self._total_parts = total_parts
        self._interval = interval
        self._emitter = EventEmitter('b2py.upload.progress')
        self._logger = get_logger('b2py.upload.progress')

        self._completed: Dict[int, PartResult] = {}
        self._active: Dict[int, int] = {}
        self._session_bytes = 0
        self._last_percent = 0
        self._stage = 'starting'
        self._message = 'Initializing upload...'
        self._started_at: Optional[float] = None
        self._finished = False
        self._closed = False
        self._task: Optional[asyncio.Task] = None

        if observer is not None:
            self.subscribe(observer)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def completed_bytes(self) -> int:
        return sum(r.size for r in self._completed.values())

    @property
    def subscriber_count(self) -> int:
        return self._emitter.listener_count(PROGRESS_EVENT)

    def subscribe(self, observer: Union[ProgressCallback, ProgressObserver]) -> ProgressCallback:
        """
        Register a progress listener.

        Returns:
            The callback actually registered (pass it to unsubscribe)
        """
        callback = observer.on_progress if isinstance(observer, ProgressObserver) else observer
        self._emitter.on(PROGRESS_EVENT, callback)
        return callback

    def unsubscribe(self, callback: ProgressCallback) -> None:
        self._emitter.off(PROGRESS_EVENT, callback)

    def start(self) -> None:
        """Begin timing and start the periodic publisher."""
        if self._started_at is not None or self._closed:
            return
        self._started_at = time.time()
        self._publish()
        self._stage = 'uploading'
        self._message = 'Uploading...'

        if self._interval > 0:
            self._task = asyncio.get_running_loop().create_task(self._periodic())

    def seed_completed(self, results: Iterable[PartResult]) -> None:
        """Count parts confirmed before this session (resume) without crediting speed."""
        for result in results:
            self._completed[result.part_number] = result
        self._logger.debug(f"Seeded {len(self._completed)} completed parts")

    def start_part(self, part_number: int, size: int) -> None:
        self._active[part_number] = size

    def complete_part(self, part_number: int, result: PartResult) -> None:
        """Record a confirmed part and publish a snapshot."""
        self._active.pop(part_number, None)
        if part_number in self._completed:
            return
        self._completed[part_number] = result
        self._session_bytes += result.size
        self._message = f"Uploaded part {len(self._completed)}/{self._total_parts}"
        self._publish()

    def fail_part(self, part_number: int) -> None:
        self._active.pop(part_number, None)

    def finishing(self) -> None:
        """All parts are in; the finish call is running."""
        self._stage = 'finishing'
        self._message = 'Finalizing upload...'
        self._publish()

    def finish(self) -> None:
        """Publish the single 100% snapshot."""
        if self._finished or self._closed:
            return
        self._finished = True
        self._stage = 'complete'
        self._message = 'Upload completed successfully'
        self._publish()

    def snapshot(self) -> ProgressSnapshot:
        """Current progress."""
        completed_bytes = self.completed_bytes
        if self._finished:
            percent = 100
        elif self._file_size > 0:
            percent = min(99, int(completed_bytes * 100 / self._file_size))
        else:
            percent = 0
        self._last_percent = max(self._last_percent, percent)

        elapsed = time.time() - self._started_at if self._started_at else 0.0
        speed = self._session_bytes / elapsed if elapsed > 0 else 0.0
        remaining = max(self._file_size - completed_bytes, 0)
        eta = remaining / speed if speed > 0 else None

        return ProgressSnapshot(
            stage=self._stage,
            percent=self._last_percent,
            uploaded_bytes=completed_bytes,
            file_size=self._file_size,
            speed=speed,
            eta=0.0 if self._finished else eta,
            active_parts=len(self._active),
            completed_parts=len(self._completed),
            total_parts=self._total_parts,
            message=self._message,
        )

    def destroy(self) -> None:
        """Stop publishing. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._emitter.off(PROGRESS_EVENT)

    async def _periodic(self) -> None:
        while not self._closed:
            await asyncio.sleep(self._interval)
            if self._closed:
                break
            self._publish()

    def _publish(self) -> None:
        if self._closed:
            return
        self._emitter.emit(PROGRESS_EVENT, self.snapshot())

    async def __aenter__(self) -> 'ProgressTracker':
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.destroy()
