"""Retry strategies using Strategy Pattern."""
import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from ..config import RetryConfig
from ..errors import B2APIError, is_transient_error


class RetryStrategy(ABC):
    """Abstract retry strategy."""

    @abstractmethod
    def should_retry(self, error: BaseException, attempt: int, max_retries: int) -> bool:
        """Determines if an operation should be attempted again."""
        pass

    @abstractmethod
    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt."""
        pass

    async def wait_async(self, attempt: int):
        """Waits before retry (async)."""
        delay = self.delay(attempt)
        if delay > 0:
            await asyncio.sleep(delay)


class ExponentialBackoffStrategy(RetryStrategy):
    """Exponential backoff retry strategy: base delay doubling, capped."""

    def __init__(self, config: Optional[RetryConfig] = None):
        self._config = config or RetryConfig()

    @property
    def config(self) -> RetryConfig:
        return self._config

    def should_retry(self, error: BaseException, attempt: int, max_retries: int) -> bool:
        """Retries transient errors and refreshed tokens while budget remains."""
        if attempt >= max_retries:
            return False
        if isinstance(error, B2APIError) and error.is_auth_expired:
            return True
        return is_transient_error(error)

    def delay(self, attempt: int) -> float:
        return self._config.calculate_delay(attempt)
