"""
Upload facade.

Provides a simplified interface for file uploads.
Follows Facade Pattern - hides the orchestrator, planner and retry policy.
"""
import asyncio
import logging
from pathlib import Path
from typing import Optional, Set, Union

from .coordinator import UploadOrchestrator
from .models import ResumeState, UploadPlan, UploadResult, UploadSettings
from .services import FileValidator, MonotonicProgress
from .strategies import FailureContext, FailurePolicy, PartPlanner, RecoveryAction
from ..api.async_auth import CredentialCache
from ..api.config import B2Config
from ..exceptions import B2Exception, UploadCanceledError
from .protocols import StorageBackend


class UploadFacade:
    """
    Simplified interface for B2 file uploads.

    This is the main entry point for uploading files. Every call runs on
    its own orchestrator, so concurrent uploads share only the backend
    and the credential cache.

    Example:
        >>> uploader = UploadFacade(client, credentials, b2_config)
        >>> result = await uploader.upload_file_with_retry("lecture.mp4", "courses/1/lecture.mp4")
        >>> print(result.url)
    """

    def __init__(
        self,
        backend: StorageBackend,
        credentials: CredentialCache,
        b2_config: B2Config,
        settings: Optional[UploadSettings] = None,
        policy: Optional[FailurePolicy] = None,
        log_level: Optional[int] = None
    ):
        """
        Initialize upload facade.

        Args:
            backend: Storage backend
            credentials: Shared credential cache
            b2_config: Bucket addressing
            settings: Thresholds and limits
            policy: Whole-file failure decision table
            log_level: Level for the b2py.upload logger
        """
        self._logger = logging.getLogger('b2py.upload')
        if log_level is not None:
            self._logger.setLevel(log_level)

        self._backend = backend
        self._credentials = credentials
        self._b2 = b2_config
        self._settings = settings or UploadSettings()
        self._planner = PartPlanner(self._settings)
        self._policy = policy or FailurePolicy()
        self._validator = FileValidator()
        self._active: Set[UploadOrchestrator] = set()

    @property
    def settings(self) -> UploadSettings:
        return self._settings

    def create_orchestrator(self) -> UploadOrchestrator:
        """New orchestrator wired to this facade's backend and settings."""
        return UploadOrchestrator(
            self._backend,
            self._credentials,
            self._b2,
            settings=self._settings,
            planner=self._planner,
        )

    async def upload_file(
        self,
        file_path: Union[str, Path],
        destination_name: Optional[str] = None,
        progress_callback=None,
        resume_state: Optional[ResumeState] = None,
        estimated_network_mbps: Optional[float] = None,
        plan: Optional[UploadPlan] = None
    ) -> UploadResult:
        """
        Upload a file once, choosing the path by size.

        Args:
            file_path: Path to file to upload
            destination_name: Object name (defaults to the resumed session's name, then the file name)
            progress_callback: Callable or ProgressObserver
            resume_state: Continue an earlier session
            estimated_network_mbps: Link speed hint
            plan: Explicit upload plan

        Returns:
            UploadResult with the public URL
        """
        path = Path(file_path) if isinstance(file_path, str) else file_path
        name = destination_name or (resume_state.destination_name if resume_state else path.name)
        orchestrator = self.create_orchestrator()
        self._active.add(orchestrator)
        try:
            return await orchestrator.upload(
                path, name,
                resume_state=resume_state,
                observer=progress_callback,
                plan=plan,
                estimated_network_mbps=estimated_network_mbps,
            )
        finally:
            self._active.discard(orchestrator)

    async def upload_file_with_retry(
        self,
        file_path: Union[str, Path],
        destination_name: Optional[str] = None,
        max_retries: int = 3,
        progress_callback=None,
        resume_state: Optional[ResumeState] = None,
        estimated_network_mbps: Optional[float] = None,
        plan: Optional[UploadPlan] = None,
        keep_session: bool = False
    ) -> UploadResult:
        """
        Upload a file, recovering from failed attempts.

        Each failure is classified by the FailurePolicy, which decides
        whether to resume the session, restart it (possibly with smaller
        parts), fall back to a single request, or give up.

        Args:
            file_path: Path to file to upload
            destination_name: Object name (defaults to the resumed session's name, then the file name)
            max_retries: Whole-file attempt budget
            progress_callback: Callable or ProgressObserver
            resume_state: Continue an earlier session
            estimated_network_mbps: Link speed hint
            plan: Explicit upload plan
            keep_session: Leave the session open when giving up, so the
                resume state carried by the error stays usable

        Returns:
            UploadResult with the public URL

        Raises:
            UploadError: The last typed error once the budget is spent
            AuthError: If authorization failed
        """
        path, file_size = self._validator.validate(file_path)
        name = destination_name or (resume_state.destination_name if resume_state else path.name)
        plan = plan or self._planner.plan_parts(file_size, estimated_network_mbps)
        state = resume_state
        verify = False
        small_only = False
        last_error: Optional[B2Exception] = None
        max_attempts = max(1, max_retries)
        observer = MonotonicProgress(progress_callback) if progress_callback is not None else None

        for attempt in range(1, max_attempts + 1):
            orchestrator = self.create_orchestrator()
            self._active.add(orchestrator)
            try:
                if small_only:
                    return await orchestrator.small_file_uploader.upload_small(path, name, observer)
                result = await orchestrator.upload(
                    path, name,
                    resume_state=state,
                    observer=observer,
                    plan=plan,
                    verify_resume=verify,
                )
                if attempt > 1:
                    self._logger.info(f"Upload of {name} succeeded on attempt {attempt}")
                return result
            except B2Exception as e:
                last_error = e
                failed_state = getattr(e, 'resume_state', None)
                completed = len(failed_state.completed_parts) if failed_state else 0
                decision = self._policy.decide(FailureContext(
                    attempt=attempt,
                    max_attempts=max_attempts,
                    completed_parts=completed,
                    error=e,
                    part_size=plan.part_size,
                    min_part_size=self._settings.min_part_size,
                    file_size=file_size,
                    max_small_file_size=self._settings.max_small_file_size,
                ))
                self._logger.warning(
                    f"Upload attempt {attempt}/{max_attempts} for {name} failed "
                    f"({type(e).__name__}: {e}); action: {decision.action.value} [{decision.rule}]"
                )
            finally:
                self._active.discard(orchestrator)

            if decision.action == RecoveryAction.ABORT:
                if not keep_session and not isinstance(last_error, UploadCanceledError):
                    await self._cancel_orphan(failed_state)
                break

            if decision.action in (RecoveryAction.RESUME, RecoveryAction.RESUME_VERIFIED) and failed_state:
                state = failed_state
                verify = decision.action == RecoveryAction.RESUME_VERIFIED
            else:
                await self._cancel_orphan(failed_state)
                state = None
                verify = False
                if decision.action == RecoveryAction.RESTART_SMALLER_PARTS:
                    plan = self._planner.with_part_size(plan, plan.part_size // 2)
                    self._logger.info(f"Retrying {name} with {plan.part_size / (1024 * 1024):.2f} MB parts")
                elif decision.action == RecoveryAction.SMALL_FILE:
                    small_only = True

            if decision.delay > 0:
                await asyncio.sleep(decision.delay)

        self._logger.error(f"Upload of {name} failed after {max_attempts} attempts")
        raise last_error

    async def cancel(self) -> int:
        """
        Cancel every upload currently running through this facade.

        Returns:
            Number of backend sessions canceled
        """
        canceled = 0
        for orchestrator in list(self._active):
            if await orchestrator.cancel():
                canceled += 1
        return canceled

    async def _cancel_orphan(self, state: Optional[ResumeState]) -> None:
        """Best-effort cancel of a session that will not be resumed."""
        if state is None:
            return
        try:
            credential = await self._credentials.authorize()
            await self._backend.cancel_large_file(credential, state.session_id)
            self._logger.info(f"Canceled orphaned session {state.session_id}")
        except Exception as e:
            self._logger.warning(f"Could not cancel orphaned session {state.session_id}: {e}")
