"""
Part upload service.

Uploads one byte range of a large-file session with per-attempt retry,
a fresh upload URL per attempt, a hard timeout and SHA-1 verification.
"""
import asyncio
import hashlib
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from ...api.async_auth import CredentialCache
from ...api.errors import B2APIError, ContentHashMismatch
from ...api.models import Credential
from ...api.retry import ExponentialBackoffStrategy, RetryStrategy
from ...exceptions import PartUploadError, UploadCanceledError
from ...logging import get_logger
from ..models import MB, Part, PartResult, PartStatus, UploadPlan
from ..protocols import FileReaderProtocol, StorageBackend
from .file_service import AsyncFileReader

T = TypeVar('T')


def sha1_hex(data: bytes) -> str:
    """SHA-1 hex digest, the content hash B2 verifies."""
    return hashlib.sha1(data).hexdigest()


class RetryingUploader:
    """
    Shared attempt loop for part and whole-file uploads.

    Each attempt receives the current credential. The retry strategy
    decides which failures earn another attempt; an expired token is
    refreshed through the credential cache first.
    """

    def __init__(
        self,
        backend: StorageBackend,
        credentials: CredentialCache,
        retry_strategy: Optional[RetryStrategy] = None,
        logger_name: str = 'b2py.upload'
    ):
        self._backend = backend
        self._credentials = credentials
        self._retry = retry_strategy or ExponentialBackoffStrategy()
        self._logger = get_logger(logger_name)

    async def _run_attempts(
        self,
        label: str,
        max_retries: int,
        attempt_fn: Callable[[Credential, int], Awaitable[T]],
        is_canceled: Callable[[], bool] = lambda: False
    ) -> T:
        """
        Run `attempt_fn` until it succeeds or the budget is spent.

        Returns:
            The first successful result

        Raises:
            UploadCanceledError: If the session was canceled between attempts
            RetriesExhausted: Carrying the last error
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_retries + 1):
            if is_canceled():
                raise UploadCanceledError(f"{label}: session canceled")

            started = time.time()
            credential = await self._credentials.authorize()
            try:
                return await attempt_fn(credential, attempt)
            except Exception as e:
                last_error = e
                if isinstance(e, B2APIError) and e.is_auth_expired:
                    self._logger.info(f"{label}: auth token expired, refreshing")
                    await self._credentials.refresh(credential)
                elif isinstance(e, asyncio.TimeoutError):
                    elapsed = time.time() - started
                    self._logger.warning(f"{label} timed out (attempt {attempt}/{max_retries}) after {elapsed:.1f}s")
                else:
                    self._logger.warning(f"{label} failed (attempt {attempt}/{max_retries}): {e}")

            if not self._retry.should_retry(last_error, attempt, max_retries):
                if attempt < max_retries:
                    self._logger.error(f"{label} failed permanently: {last_error}")
                break

            delay = self._retry.delay(attempt)
            self._logger.debug(f"{label}: waiting {delay:.1f}s before retry")
            await self._retry.wait_async(attempt)

        raise RetriesExhausted(last_error)


class RetriesExhausted(Exception):
    def __init__(self, last_error: Optional[BaseException]):
        self.last_error = last_error
        super().__init__(str(last_error))


class PartUploader(RetryingUploader):
    """
    Uploads individual parts of one file.

    Responsibilities:
    - Fetch a fresh upload URL for every attempt
    - Read the exact byte range once per attempt and hash that buffer
    - Send the same buffer under the plan's hard timeout
    """

    def __init__(
        self,
        backend: StorageBackend,
        credentials: CredentialCache,
        file_path: Path,
        file_reader: Optional[FileReaderProtocol] = None,
        retry_strategy: Optional[RetryStrategy] = None,
        cancel_event: Optional[asyncio.Event] = None
    ):
        """
        Initialize part uploader.

        Args:
            backend: Storage backend
            credentials: Shared credential cache
            file_path: Source file
            file_reader: Positional reader (aiofiles-based by default)
            retry_strategy: Backoff between attempts
            cancel_event: Set when the session is canceled
        """
        super().__init__(backend, credentials, retry_strategy, logger_name='b2py.upload.part')
        self._file_path = file_path
        self._reader = file_reader or AsyncFileReader()
        self._cancel_event = cancel_event or asyncio.Event()

    async def upload_part(self, session_id: str, part: Part, plan: UploadPlan) -> PartResult:
        """
        Upload one part.

        Args:
            session_id: Backend session id
            part: Part to upload
            plan: Timeout and retry budget

        Returns:
            PartResult with the confirmed hash

        Raises:
            PartUploadError: When all attempts failed
            UploadCanceledError: If the session was canceled before an attempt
        """
        label = f"Part {part.part_number}"
        part.status = PartStatus.IN_FLIGHT
        size_mb = part.size / MB

        async def attempt(credential: Credential, number: int) -> PartResult:
            started = time.time()
            self._logger.debug(
                f"Uploading part {part.part_number} (attempt {number}) - {size_mb:.2f}MB "
                f"(timeout: {plan.per_part_timeout:.0f}s)"
            )
            target = await self._backend.get_upload_part_url(credential, session_id)
            data = await self._reader.read_range(self._file_path, part.start, part.end)
            content_hash = sha1_hex(data)

            confirmed = await asyncio.wait_for(
                self._backend.upload_part(target, part.part_number, data, content_hash),
                timeout=plan.per_part_timeout
            )
            if confirmed != content_hash:
                raise ContentHashMismatch(content_hash, confirmed)

            elapsed = time.time() - started
            self._logger.debug(f"Part {part.part_number} uploaded in {elapsed:.1f}s")
            return PartResult(part_number=part.part_number, content_hash=content_hash, size=len(data))

        try:
            result = await self._run_attempts(
                label, plan.max_retries, attempt, is_canceled=self._cancel_event.is_set
            )
        except RetriesExhausted as e:
            part.status = PartStatus.FAILED
            self._logger.error(f"Part {part.part_number} failed after {plan.max_retries} attempts: {e.last_error}")
            raise PartUploadError(part.part_number, e.last_error) from e.last_error
        except Exception:
            part.status = PartStatus.FAILED
            raise

        part.status = PartStatus.COMPLETED
        part.content_hash = result.content_hash
        return result
