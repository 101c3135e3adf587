"""
Async authorization service.

Obtains and caches the B2 session credential. The cache is an explicit
object handed to whoever needs the credential; there is no module-level
singleton.
"""
import asyncio
from typing import Awaitable, Callable, Optional

from .models import Credential
from .retry import ExponentialBackoffStrategy, RetryStrategy
from ..exceptions import AuthError
from ..logging import get_logger


class CredentialCache:
    """
    Single-flight credential cache.

    However many coroutines call authorize() or refresh() at once, at most
    one underlying authorization runs; the others await the same task.

    Example:
        >>> cache = CredentialCache(client.authorize)
        >>> credential = await cache.authorize()
    """

    def __init__(
        self,
        authorize_fn: Callable[[], Awaitable[Credential]],
        retry_strategy: Optional[RetryStrategy] = None,
        max_retries: Optional[int] = None,
        max_age: Optional[float] = None
    ):
        """
        Initialize credential cache.

        Args:
            authorize_fn: Coroutine function performing the network authorization
            retry_strategy: Backoff strategy (exponential by default)
            max_retries: Attempts before giving up with AuthError
            max_age: Seconds after which a cached credential is re-authorized
        """
        self._authorize_fn = authorize_fn
        self._retry = retry_strategy or ExponentialBackoffStrategy()
        self._max_retries = max(1, max_retries if max_retries is not None else 3)
        self._max_age = max_age
        self._credential: Optional[Credential] = None
        self._inflight: Optional[asyncio.Future] = None
        self._logger = get_logger('b2py.auth')
        self.authorization_count = 0

    @property
    def credential(self) -> Optional[Credential]:
        """Currently cached credential, if any."""
        return self._credential

    async def authorize(self) -> Credential:
        """
        Return the cached credential, authorizing on first use.

        Raises:
            AuthError: If authorization fails after all retries
        """
        cached = self._credential
        if cached is not None and not self._expired(cached):
            return cached
        return await self._single_flight(stale=None)

    async def refresh(self, stale: Optional[Credential]) -> Credential:
        """
        Re-authorize because `stale` was rejected by the backend.

        If another caller already replaced `stale`, the newer credential is
        returned without a second authorization.
        """
        return await self._single_flight(stale=stale)

    def invalidate(self) -> None:
        """Drop the cached credential."""
        self._credential = None

    def _expired(self, credential: Credential) -> bool:
        return self._max_age is not None and credential.age() >= self._max_age

    async def _single_flight(self, stale: Optional[Credential]) -> Credential:
        current = self._credential
        if current is not None and current is not stale and not self._expired(current):
            return current

        # No await between check and assignment, so only one task is created
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._authorize_with_retry())
        return await asyncio.shield(self._inflight)

    async def _authorize_with_retry(self) -> Credential:
        last_error: Optional[BaseException] = None

        for attempt in range(1, self._max_retries + 1):
            try:
                self.authorization_count += 1
                self._logger.info(f"Authorizing with B2 (attempt {attempt}/{self._max_retries})")
                credential = await self._authorize_fn()
                self._credential = credential
                self._logger.info("B2 authorization successful")
                return credential
            except Exception as e:
                last_error = e
                if not self._retry.should_retry(e, attempt, self._max_retries):
                    self._logger.error(f"B2 authorization failed: {e}")
                    break
                self._logger.warning(f"B2 authorization attempt {attempt} failed: {e}")
                await self._retry.wait_async(attempt)

        raise AuthError(f"Authorization failed: {last_error}")
