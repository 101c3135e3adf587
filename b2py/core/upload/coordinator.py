"""
Upload coordinator.

Orchestrates a large-file transfer using injected dependencies:
start or resume a session, upload the missing parts in bounded batches,
retry stragglers one by one, then finish with the ordered hash list.
"""
import asyncio
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Union

from .models import (
    Part,
    PartResult,
    PartStatus,
    ResumeState,
    SessionStatus,
    UploadPlan,
    UploadResult,
    UploadSession,
    UploadSettings,
)
from .protocols import ChunkingStrategy, FileReaderProtocol, StorageBackend
from .strategies import FixedSizeChunkingStrategy, PartPlanner
from .services import (
    AsyncFileReader,
    FileValidator,
    PartUploader,
    ProgressTracker,
    SmallFileUploader,
    empty_file_result,
    guess_content_type,
)
from ..api.async_auth import CredentialCache
from ..api.config import B2Config, RetryConfig
from ..api.errors import B2APIError
from ..api.retry import ExponentialBackoffStrategy, RetryStrategy
from ..exceptions import (
    B2Exception,
    FinishError,
    PartUploadError,
    SessionStartError,
    UploadCanceledError,
    UploadError,
)

logger = logging.getLogger('b2py.upload.coordinator')


class UploadOrchestrator:
    """
    Coordinates one large-file upload.

    Uses dependency injection for all components, making it:
    - Testable (an in-memory backend stands in for B2)
    - Extensible (swap chunking, reading or retry strategies)

    An instance drives a single transfer at a time; cancel() targets the
    transfer currently running on it.
    """

    def __init__(
        self,
        backend: StorageBackend,
        credentials: CredentialCache,
        b2_config: B2Config,
        settings: Optional[UploadSettings] = None,
        planner: Optional[PartPlanner] = None,
        chunking_strategy: Optional[ChunkingStrategy] = None,
        file_reader: Optional[FileReaderProtocol] = None,
        retry_strategy: Optional[RetryStrategy] = None
    ):
        """
        Initialize upload orchestrator.

        Args:
            backend: Storage backend (AsyncAPIClient or a fake)
            credentials: Shared credential cache
            b2_config: Bucket addressing
            settings: Thresholds and limits
            planner: Part planner
            chunking_strategy: Strategy for part boundaries
            file_reader: Positional file reader
            retry_strategy: Per-part backoff
        """
        self._backend = backend
        self._credentials = credentials
        self._b2 = b2_config
        self._settings = settings or UploadSettings()
        self._planner = planner or PartPlanner(self._settings)
        self._chunking = chunking_strategy or FixedSizeChunkingStrategy()
        self._file_reader = file_reader or AsyncFileReader()
        self._retry = retry_strategy or ExponentialBackoffStrategy(RetryConfig(
            max_retries=self._settings.max_retries,
            base_delay=self._settings.retry_base_delay,
            max_delay=self._settings.retry_max_delay,
        ))
        self._validator = FileValidator()
        self._small = SmallFileUploader(
            backend, credentials, b2_config,
            settings=self._settings,
            planner=self._planner,
            file_reader=self._file_reader,
            retry_strategy=self._retry,
        )

        self._session: Optional[UploadSession] = None
        self._completed: Dict[int, PartResult] = {}
        self._cancel_event = asyncio.Event()

    @property
    def session(self) -> Optional[UploadSession]:
        """Session of the current (or last) transfer."""
        return self._session

    @property
    def small_file_uploader(self) -> SmallFileUploader:
        return self._small

    @property
    def planner(self) -> PartPlanner:
        return self._planner

    def resume_state(self) -> Optional[ResumeState]:
        """Snapshot of what the backend has confirmed so far."""
        if self._session is None:
            return None
        return ResumeState(
            session_id=self._session.session_id,
            destination_name=self._session.destination_name,
            file_size=self._session.file_size or 0,
            part_size=self._session.part_size,
            completed_parts=sorted(self._completed.values(), key=lambda r: r.part_number),
        )

    async def upload(
        self,
        file_path: Union[str, Path],
        destination_name: str,
        resume_state: Optional[ResumeState] = None,
        observer=None,
        plan: Optional[UploadPlan] = None,
        estimated_network_mbps: Optional[float] = None,
        verify_resume: bool = False
    ) -> UploadResult:
        """
        Execute the complete upload process.

        Args:
            file_path: Source file
            destination_name: Object name in the bucket
            resume_state: Continue this session instead of starting one
            observer: Progress callable or ProgressObserver
            plan: Explicit plan (otherwise computed by the planner)
            estimated_network_mbps: Link speed hint for concurrency
            verify_resume: Re-query the backend for parts already confirmed

        Returns:
            UploadResult with the public URL

        Raises:
            FileNotFoundError: If file doesn't exist
            SessionStartError: If no session could be started
            PartUploadError: If a part exhausted its retries
            FinishError: If the backend rejected the finish call
            UploadCanceledError: If cancel() was called
        """
        path, file_size = self._validator.validate(file_path)
        started = time.time()
        self._cancel_event = asyncio.Event()
        self._session = None
        self._completed = {}

        if file_size == 0:
            logger.info(f"Empty file {destination_name}, nothing to upload")
            return empty_file_result(destination_name, self._b2)

        if file_size < self._settings.large_file_threshold and resume_state is None:
            logger.debug(f"{destination_name} below large-file threshold, using single request")
            return await self._small.upload_small(path, destination_name, observer)

        plan = plan or self._planner.plan_parts(file_size, estimated_network_mbps)
        if resume_state is not None:
            if resume_state.destination_name != destination_name:
                raise UploadError(
                    f"Session {resume_state.session_id} uploads {resume_state.destination_name!r}, "
                    f"not {destination_name!r}"
                )
            if resume_state.file_size != file_size:
                raise UploadError(
                    f"File size changed since session {resume_state.session_id} started: "
                    f"was {resume_state.file_size} bytes, now {file_size} bytes"
                )
            if plan.part_size != resume_state.part_size:
                plan = plan.with_part_size(resume_state.part_size, self._planner.timeout_for(resume_state.part_size))

        total_parts = plan.total_parts(file_size)
        file_size_mb = file_size / (1024 * 1024)
        logger.info(
            f"Starting large upload: {destination_name} ({file_size_mb:.2f} MB, {total_parts} parts of "
            f"{plan.part_size / (1024 * 1024):.2f} MB, concurrency {plan.concurrency})"
        )

        session_id = await self._open_session(destination_name, file_size, resume_state)
        self._session = UploadSession(
            session_id=session_id,
            destination_name=destination_name,
            file_size=file_size,
            part_size=plan.part_size,
            total_parts=total_parts,
            content_type=guess_content_type(destination_name),
        )
        self._session.transition(SessionStatus.IN_PROGRESS)
        if self._canceled:
            await self._cancel_session(self._session)
            raise UploadCanceledError(
                f"Upload of {destination_name} was canceled while the session was starting",
                resume_state=self.resume_state()
            )

        if resume_state is not None:
            for result in resume_state.completed_parts:
                self._completed[result.part_number] = result
            if verify_resume:
                for result in await self._confirmed_parts(session_id):
                    self._completed[result.part_number] = result
            self._completed = {n: r for n, r in self._completed.items() if 1 <= n <= total_parts}
            logger.info(f"Resuming session {session_id}: {len(self._completed)}/{total_parts} parts already done")

        parts = self._chunking.calculate_parts(file_size, plan.part_size)
        for part in parts:
            if part.part_number in self._completed:
                part.status = PartStatus.COMPLETED
                part.content_hash = self._completed[part.part_number].content_hash
        pending = [p for p in parts if p.status != PartStatus.COMPLETED]

        tracker = ProgressTracker(file_size, total_parts, observer=observer, interval=self._settings.progress_interval)
        uploader = PartUploader(
            self._backend, self._credentials, path,
            file_reader=self._file_reader,
            retry_strategy=self._retry,
            cancel_event=self._cancel_event,
        )
        try:
            tracker.seed_completed(self._completed.values())
            tracker.start()

            await self._upload_batches(uploader, session_id, pending, plan, tracker)

            if self._canceled:
                raise UploadCanceledError(
                    f"Upload of {destination_name} was canceled",
                    resume_state=self.resume_state()
                )

            tracker.finishing()
            response = await self._finish(session_id, total_parts, file_size)
            if self._session.status == SessionStatus.IN_PROGRESS:
                self._session.transition(SessionStatus.COMPLETED)
            tracker.finish()
        except UploadCanceledError:
            raise
        except BaseException:
            self._mark_failed()
            raise
        finally:
            tracker.destroy()

        elapsed = time.time() - started
        speed_mb = file_size_mb / elapsed if elapsed > 0 else 0
        logger.info(f"Upload completed: {destination_name} in {elapsed:.1f}s ({speed_mb:.2f} MB/s)")

        return UploadResult(
            file_id=response.get('file_id', session_id),
            destination_name=destination_name,
            url=self._b2.public_url(destination_name),
            file_size=file_size,
            elapsed=elapsed,
            total_parts=total_parts,
        )

    async def cancel(self) -> bool:
        """
        Cancel the running session.

        Safe to call while parts are in flight: the flag stops new
        attempts, results that arrive afterwards are discarded, and
        upload() raises UploadCanceledError.

        Returns:
            True if a backend session was canceled
        """
        self._cancel_event.set()
        session = self._session
        if session is None or session.status.is_terminal:
            return False

        await self._cancel_session(session)
        return True

    async def _cancel_session(self, session: UploadSession) -> None:
        session.transition(SessionStatus.CANCELED)
        logger.info(f"Canceling session {session.session_id}")
        credential = await self._credentials.authorize()
        await self._backend.cancel_large_file(credential, session.session_id)

    @property
    def _canceled(self) -> bool:
        return self._cancel_event.is_set()

    def _mark_failed(self) -> None:
        if self._session is not None and self._session.status == SessionStatus.IN_PROGRESS:
            self._session.transition(SessionStatus.FAILED)

    async def _open_session(
        self,
        destination_name: str,
        file_size: int,
        resume_state: Optional[ResumeState]
    ) -> str:
        if resume_state is not None:
            return resume_state.session_id

        credential = await self._credentials.authorize()
        try:
            session_id = await self._backend.start_large_file(
                credential,
                self._b2.bucket_id,
                destination_name,
                guess_content_type(destination_name),
                {'large_file_size': str(file_size)},
            )
        except B2Exception:
            raise
        except Exception as e:
            if isinstance(e, B2APIError) and e.is_auth_expired:
                await self._credentials.refresh(credential)
            logger.error(f"Could not start session for {destination_name}: {e}")
            raise SessionStartError(f"Failed to start large file session: {e}") from e

        logger.debug(f"Started session {session_id}")
        return session_id

    async def _confirmed_parts(self, session_id: str) -> List[PartResult]:
        """Parts the backend holds for a session, following pagination."""
        credential = await self._credentials.authorize()
        results: List[PartResult] = []
        cursor: Optional[int] = None
        while True:
            page, cursor = await self._backend.list_parts(credential, session_id, cursor)
            results.extend(
                PartResult(p['part_number'], p['content_hash'], p['size']) for p in page
            )
            if cursor is None:
                break
        logger.debug(f"Backend confirms {len(results)} parts for session {session_id}")
        return results

    async def _upload_batches(
        self,
        uploader: PartUploader,
        session_id: str,
        pending: List[Part],
        plan: UploadPlan,
        tracker: ProgressTracker
    ) -> None:
        """
        Upload parts in batches of plan.concurrency.

        Parts that exhausted their retries inside a batch are retried one
        at a time before the next batch starts.

        Raises:
            PartUploadError: If a part also failed its sequential retry
        """
        batch_size = max(1, plan.concurrency)

        for index in range(0, len(pending), batch_size):
            if self._canceled:
                break
            number = index // batch_size + 1
            batch = pending[index:index + batch_size]
            batch_start = time.time()
            results = await asyncio.gather(
                *(self._upload_tracked(uploader, session_id, part, plan, tracker) for part in batch),
                return_exceptions=True
            )

            failed: List[Part] = []
            error: Optional[BaseException] = None
            error_part: Optional[Part] = None
            for part, outcome in zip(batch, results):
                if isinstance(outcome, PartResult):
                    self._accept(part, outcome, tracker)
                elif isinstance(outcome, PartUploadError):
                    failed.append(part)
                elif isinstance(outcome, UploadCanceledError):
                    continue
                elif error is None:
                    error, error_part = outcome, part

            # Raised only after every confirmed part of the batch is recorded
            if error is not None:
                if isinstance(error, B2Exception) or not isinstance(error, Exception):
                    raise error
                raise PartUploadError(error_part.part_number, error, resume_state=self.resume_state()) from error

            logger.debug(
                f"Batch {number} settled in {time.time() - batch_start:.1f}s "
                f"({len(self._completed)}/{self._session.total_parts} parts done)"
            )

            if failed and not self._canceled:
                logger.info(f"Retrying {len(failed)} failed parts of batch {number} sequentially")
                for part in failed:
                    if self._canceled:
                        break
                    await self._upload_sequential(uploader, session_id, part, plan, tracker)

    async def _upload_sequential(
        self,
        uploader: PartUploader,
        session_id: str,
        part: Part,
        plan: UploadPlan,
        tracker: ProgressTracker
    ) -> None:
        try:
            result = await self._upload_tracked(uploader, session_id, part, plan, tracker)
        except UploadCanceledError:
            return
        except PartUploadError as e:
            raise PartUploadError(e.part_number, e.last_error, resume_state=self.resume_state()) from e
        self._accept(part, result, tracker)

    async def _upload_tracked(
        self,
        uploader: PartUploader,
        session_id: str,
        part: Part,
        plan: UploadPlan,
        tracker: ProgressTracker
    ) -> PartResult:
        tracker.start_part(part.part_number, part.size)
        try:
            return await uploader.upload_part(session_id, part, plan)
        except BaseException:
            tracker.fail_part(part.part_number)
            raise

    def _accept(self, part: Part, result: PartResult, tracker: ProgressTracker) -> None:
        if self._canceled:
            logger.debug(f"Discarding part {part.part_number} completed after cancel")
            return
        self._completed[result.part_number] = result
        tracker.complete_part(result.part_number, result)

    async def _finish(self, session_id: str, total_parts: int, file_size: int) -> dict:
        ordered = sorted(self._completed.values(), key=lambda r: r.part_number)
        numbers = [r.part_number for r in ordered]
        if numbers != list(range(1, total_parts + 1)):
            missing = sorted(set(range(1, total_parts + 1)) - set(numbers))
            raise FinishError(f"Cannot finish session {session_id}: missing parts {missing}",
                              resume_state=self.resume_state())
        if sum(r.size for r in ordered) != file_size:
            raise FinishError(f"Cannot finish session {session_id}: part sizes do not add up to {file_size}",
                              resume_state=self.resume_state())

        logger.info(f"Finishing session {session_id} with {total_parts} parts")
        credential = await self._credentials.authorize()
        try:
            return await self._backend.finish_large_file(credential, session_id, [r.content_hash for r in ordered])
        except B2Exception:
            raise
        except Exception as e:
            if isinstance(e, B2APIError) and e.is_auth_expired:
                await self._credentials.refresh(credential)
            logger.error(f"Finish failed for session {session_id}: {e}")
            raise FinishError(f"Failed to finish large file: {e}", resume_state=self.resume_state()) from e
