"""
Single-request upload path for files below the large-file threshold.
"""
import asyncio
import time
from pathlib import Path
from typing import Optional, Union

from ...api.async_auth import CredentialCache
from ...api.config import B2Config
from ...api.models import Credential
from ...api.retry import RetryStrategy
from ...exceptions import SmallFileUploadError
from ..models import MB, PartResult, UploadResult, UploadSettings
from ..protocols import FileReaderProtocol, StorageBackend
from ..strategies import PartPlanner
from .file_service import AsyncFileReader, FileValidator, guess_content_type
from .part_service import RetryingUploader, RetriesExhausted, sha1_hex
from .progress_service import ProgressTracker

EMPTY_FILE_ID = 'empty-file'


class SmallFileUploader(RetryingUploader):
    """
    Uploads a whole file in one request.

    The file is read and hashed once; every attempt fetches a fresh
    upload URL and sends the same buffer.
    """

    def __init__(
        self,
        backend: StorageBackend,
        credentials: CredentialCache,
        b2_config: B2Config,
        settings: Optional[UploadSettings] = None,
        planner: Optional[PartPlanner] = None,
        file_reader: Optional[FileReaderProtocol] = None,
        retry_strategy: Optional[RetryStrategy] = None
    ):
        super().__init__(backend, credentials, retry_strategy, logger_name='b2py.upload.small')
        self._b2 = b2_config
        self._settings = settings or UploadSettings()
        self._planner = planner or PartPlanner(self._settings)
        self._reader = file_reader or AsyncFileReader()
        self._validator = FileValidator()

    async def upload_small(
        self,
        file_path: Union[str, Path],
        destination_name: str,
        observer=None
    ) -> UploadResult:
        """
        Upload a file with a single request.

        Args:
            file_path: Source file
            destination_name: Object name in the bucket
            observer: Progress callable or ProgressObserver

        Returns:
            UploadResult with the whole-file hash

        Raises:
            SmallFileUploadError: When all attempts failed
        """
        path, file_size = self._validator.validate(file_path)
        started = time.time()

        if file_size == 0:
            self._logger.info(f"Empty file {destination_name}, nothing to upload")
            return empty_file_result(destination_name, self._b2)

        if file_size > self._settings.max_small_file_size:
            raise SmallFileUploadError(
                f"{destination_name} is {file_size / MB:.2f}MB, above the single-request limit"
            )

        data = await self._reader.read_file(path)
        self._validator.ensure_unchanged(path, file_size)
        content_hash = sha1_hex(data)
        content_type = guess_content_type(destination_name)
        plan = self._planner.plan_single(file_size)

        self._logger.info(
            f"Uploading {destination_name} ({file_size / MB:.2f}MB) in a single request"
        )

        async def attempt(credential: Credential, number: int) -> dict:
            target = await self._backend.get_upload_url(credential, self._b2.bucket_id)
            self._logger.debug(f"Small upload attempt {number} for {destination_name}")
            response = await asyncio.wait_for(
                self._backend.upload_file(target, destination_name, data, content_hash, content_type),
                timeout=plan.per_part_timeout
            )
            return response

        tracker = ProgressTracker(file_size, 1, observer=observer, interval=self._settings.progress_interval)
        try:
            tracker.start()
            tracker.start_part(1, file_size)
            try:
                response = await self._run_attempts(destination_name, plan.max_retries, attempt)
            except RetriesExhausted as e:
                tracker.fail_part(1)
                raise SmallFileUploadError(
                    f"Upload of {destination_name} failed after {plan.max_retries} attempts: {e.last_error}"
                ) from e.last_error

            tracker.complete_part(1, PartResult(1, content_hash, file_size))
            tracker.finish()
        finally:
            tracker.destroy()

        elapsed = time.time() - started
        self._logger.info(f"Uploaded {destination_name} in {elapsed:.1f}s")
        return UploadResult(
            file_id=response.get('file_id', ''),
            destination_name=destination_name,
            url=self._b2.public_url(destination_name),
            file_size=file_size,
            elapsed=elapsed,
            total_parts=1,
            content_hash=content_hash,
        )


def empty_file_result(destination_name: str, b2_config: B2Config) -> UploadResult:
    """Synthetic result for a zero-byte file; no backend call is made."""
    return UploadResult(
        file_id=EMPTY_FILE_ID,
        destination_name=destination_name,
        url=b2_config.public_url(destination_name),
        file_size=0,
        elapsed=0.0,
        total_parts=0,
    )
