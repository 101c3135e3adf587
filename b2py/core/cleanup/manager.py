"""
Cleanup of unfinished large-file sessions.

Unfinished sessions keep their uploaded parts billed until they are
finished or canceled. This module lists them and cancels stale ones.
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..api.async_auth import CredentialCache
from ..api.config import B2Config
from ..logging import format_duration, format_size, get_logger
from ..upload.models import SessionStatus, UploadSession
from ..upload.protocols import StorageBackend

ConfirmCallback = Callable[[List[UploadSession]], bool]


@dataclass
class CleanupReport:
    """
    Outcome of a cleanup run.

    Attributes:
        candidates: Sessions older than the cutoff
        succeeded: Session ids canceled
        failed: Session id to error message, for cancels that failed
        dry_run: Nothing was canceled
        aborted: The confirm callback declined
    """
    candidates: List[UploadSession] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    dry_run: bool = False
    aborted: bool = False

    @property
    def total_size(self) -> int:
        """Known bytes held by the candidates."""
        return sum(s.file_size or 0 for s in self.candidates)


class CleanupManager:
    """
    Lists and cancels unfinished sessions.

    Cancels run in small batches with a pause between them so a large
    backlog does not trip the backend's rate limits.
    """

    BATCH_SIZE = 5

    def __init__(
        self,
        backend: StorageBackend,
        credentials: CredentialCache,
        b2_config: B2Config,
        batch_size: int = BATCH_SIZE,
        batch_delay: float = 1.0
    ):
        self._backend = backend
        self._credentials = credentials
        self._b2 = b2_config
        self._batch_size = max(1, batch_size)
        self._batch_delay = batch_delay
        self._logger = get_logger('b2py.cleanup')

    async def list_unfinished(self, bucket_id: Optional[str] = None) -> List[UploadSession]:
        """
        List every unfinished session in a bucket, oldest first.

        Args:
            bucket_id: Bucket to scan (defaults to the configured one)
        """
        bucket = bucket_id or self._b2.bucket_id
        credential = await self._credentials.authorize()
        sessions: List[UploadSession] = []
        cursor: Optional[str] = None

        while True:
            page, cursor = await self._backend.list_unfinished_large_files(credential, bucket, cursor)
            for item in page:
                sessions.append(UploadSession(
                    session_id=item['session_id'],
                    destination_name=item.get('destination_name', ''),
                    file_size=item.get('size_hint'),
                    status=SessionStatus.IN_PROGRESS,
                    started_at=item.get('started_at', 0),
                    content_type=item.get('content_type'),
                ))
            if not cursor:
                break

        sessions.sort(key=lambda s: s.started_at)
        self._logger.info(f"Found {len(sessions)} unfinished uploads")
        return sessions

    async def cancel_session(self, session_id: str) -> None:
        """Cancel one session and discard its parts."""
        credential = await self._credentials.authorize()
        await self._backend.cancel_large_file(credential, session_id)
        self._logger.info(f"Canceled unfinished upload {session_id}")

    async def cleanup_older_than(
        self,
        hours: float,
        dry_run: bool = False,
        force: bool = True,
        confirm: Optional[ConfirmCallback] = None
    ) -> CleanupReport:
        """
        Cancel unfinished sessions started more than `hours` ago.

        Args:
            hours: Age cutoff
            dry_run: Report candidates without canceling anything
            force: Skip the confirm callback
            confirm: Called with the candidates; returning False aborts

        Returns:
            CleanupReport
        """
        sessions = await self.list_unfinished()
        cutoff_ms = (time.time() - hours * 3600) * 1000
        candidates = [s for s in sessions if s.started_at < cutoff_ms]
        report = CleanupReport(candidates=candidates, dry_run=dry_run)

        if not candidates:
            self._logger.info(f"No uploads older than {format_duration(hours)} ({len(sessions)} unfinished in total)")
            return report

        self._logger.info(
            f"{len(candidates)} uploads older than {format_duration(hours)}, "
            f"estimated {format_size(report.total_size)}"
        )
        if dry_run:
            return report

        if not force and confirm is not None and not confirm(candidates):
            self._logger.info("Cleanup declined")
            report.aborted = True
            return report

        for index in range(0, len(candidates), self._batch_size):
            batch = candidates[index:index + self._batch_size]
            results = await asyncio.gather(
                *(self.cancel_session(s.session_id) for s in batch),
                return_exceptions=True
            )
            for session, outcome in zip(batch, results):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    self._logger.warning(f"Failed to cancel {session.session_id}: {outcome}")
                    report.failed[session.session_id] = str(outcome)
                else:
                    session.transition(SessionStatus.CANCELED)
                    report.succeeded.append(session.session_id)

            if index + self._batch_size < len(candidates) and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)

        self._logger.info(f"Cleanup done: {len(report.succeeded)} canceled, {len(report.failed)} failed")
        return report
