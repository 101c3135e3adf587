"""
B2Client - High-level async client for B2 large-file uploads.

Example:
    >>> async with B2Client() as b2:
    ...     result = await b2.upload_file_with_retry("lecture.mp4", "courses/1/lecture.mp4")
    ...     print(result.url)
"""
from pathlib import Path
from typing import List, Optional, Union

from .core.api import AsyncAPIClient, APIConfig, CredentialCache, ExponentialBackoffStrategy
from .core.cleanup import CleanupManager, CleanupReport
from .core.cleanup.manager import ConfirmCallback
from .core.logging import get_logger
from .core.upload import ResumeState, UploadFacade, UploadResult, UploadSession, UploadSettings
from .core.upload.protocols import StorageBackend


class B2Client:
    """
    High-level async client for uploads into one B2 bucket.

    Account and bucket settings come from the environment unless a config
    is given:
        >>> client = B2Client(APIConfig.from_env())
        >>> async with client:
        ...     await client.cleanup_older_than(24, dry_run=True)

    A different backend (anything implementing StorageBackend) can be
    injected; the client then never opens an HTTP session itself.
    """

    def __init__(
        self,
        config: Optional[APIConfig] = None,
        settings: Optional[UploadSettings] = None,
        *,
        backend: Optional[StorageBackend] = None
    ):
        """
        Initialize B2 client.

        Args:
            config: API configuration (defaults to APIConfig.from_env())
            settings: Upload thresholds and limits
            backend: Storage backend override
        """
        self._config = config or APIConfig.from_env()
        self._settings = settings or UploadSettings()
        self._logger = get_logger('b2py.client')

        self._owns_backend = backend is None
        self._backend = backend or AsyncAPIClient(self._config)
        self._credentials = CredentialCache(
            self._backend.authorize,
            retry_strategy=ExponentialBackoffStrategy(self._config.retry),
            max_retries=self._config.retry.max_retries,
            max_age=self._config.credential_max_age,
        )
        self._uploads = UploadFacade(self._backend, self._credentials, self._config.b2, self._settings)
        self._cleanup = CleanupManager(self._backend, self._credentials, self._config.b2)
        self._last_mbps: Optional[float] = None

    @property
    def config(self) -> APIConfig:
        return self._config

    @property
    def credentials(self) -> CredentialCache:
        return self._credentials

    @property
    def uploads(self) -> UploadFacade:
        return self._uploads

    @property
    def estimated_network_mbps(self) -> Optional[float]:
        """Throughput observed on the last large upload, used to size concurrency."""
        return self._last_mbps

    async def __aenter__(self) -> 'B2Client':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the HTTP session if this client opened it."""
        if self._owns_backend:
            await self._backend.close()

    async def upload_file(
        self,
        file_path: Union[str, Path],
        destination_name: Optional[str] = None,
        progress_callback=None,
        resume_state: Optional[ResumeState] = None
    ) -> UploadResult:
        """
        Upload a file once, without whole-file retries.

        Args:
            file_path: Local file
            destination_name: Object name (defaults to the file name)
            progress_callback: Callable receiving ProgressSnapshots, or a ProgressObserver
            resume_state: Continue an earlier session

        Returns:
            UploadResult
        """
        result = await self._uploads.upload_file(
            file_path, destination_name,
            progress_callback=progress_callback,
            resume_state=resume_state,
            estimated_network_mbps=self._last_mbps,
        )
        self._observe(result)
        return result

    async def upload_file_with_retry(
        self,
        file_path: Union[str, Path],
        destination_name: Optional[str] = None,
        max_retries: int = 3,
        progress_callback=None,
        resume_state: Optional[ResumeState] = None,
        keep_session: bool = False
    ) -> UploadResult:
        """
        Upload a file, resuming or restarting on failure.

        Args:
            file_path: Local file
            destination_name: Object name (defaults to the file name)
            max_retries: Whole-file attempt budget
            progress_callback: Callable receiving ProgressSnapshots, or a ProgressObserver
            resume_state: Continue an earlier session
            keep_session: Do not cancel the session when giving up
        Returns:
            UploadResult
        """
        result = await self._uploads.upload_file_with_retry(
            file_path, destination_name,
            max_retries=max_retries,
            progress_callback=progress_callback,
            resume_state=resume_state,
            estimated_network_mbps=self._last_mbps,
            keep_session=keep_session,
        )
        self._observe(result)
        return result

    async def cancel_uploads(self) -> int:
        """Cancel uploads running on this client; returns sessions canceled."""
        return await self._uploads.cancel()

    async def list_unfinished(self, bucket_id: Optional[str] = None) -> List[UploadSession]:
        return await self._cleanup.list_unfinished(bucket_id)

    async def cancel_session(self, session_id: str) -> None:
        await self._cleanup.cancel_session(session_id)

    async def cleanup_older_than(
        self,
        hours: float,
        dry_run: bool = False,
        force: bool = False,
        confirm: Optional[ConfirmCallback] = None
    ) -> CleanupReport:
        """Cancel unfinished sessions older than `hours`. See CleanupManager."""
        return await self._cleanup.cleanup_older_than(hours, dry_run=dry_run, force=force, confirm=confirm)

    def _observe(self, result: UploadResult) -> None:
        if result.total_parts > 1 and result.elapsed > 0:
            self._last_mbps = result.average_speed * 8 / 1_000_000
            self._logger.debug(f"Observed throughput {self._last_mbps:.1f} Mbps")
