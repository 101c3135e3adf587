"""
Failure policy for whole-file retries.

The choice between resuming, restarting with smaller parts, falling back
to the single-request path, or giving up is a decision table keyed by
(attempt count, completed-part count, error class). Rules are checked in
order and the first match wins.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple, Type

from ...exceptions import (
    AuthError,
    FinishError,
    PartUploadError,
    SessionStartError,
    UploadCanceledError,
)


class RecoveryAction(str, Enum):
    """What the retry wrapper does next."""
    RESUME = 'resume'
    RESUME_VERIFIED = 'resume_verified'
    RESTART = 'restart'
    RESTART_SMALLER_PARTS = 'restart_smaller_parts'
    SMALL_FILE = 'small_file'
    ABORT = 'abort'


@dataclass(frozen=True)
class FailureContext:
    """
    Facts about a failed attempt.

    Attributes:
        attempt: 1-based number of the attempt that just failed
        max_attempts: Attempt budget of the retry wrapper
        completed_parts: Parts confirmed so far in the current session
        error: The typed error raised by the attempt
        part_size: Part size the attempt used
        min_part_size: Smallest allowed part size
        file_size: Size of the source file
        max_small_file_size: Largest file the single-request path accepts
    """
    attempt: int
    max_attempts: int
    completed_parts: int
    error: BaseException
    part_size: int = 0
    min_part_size: int = 0
    file_size: int = 0
    max_small_file_size: int = 0


@dataclass(frozen=True)
class Rule:
    """One row of the decision table."""
    errors: Tuple[Type[BaseException], ...]
    condition: Callable[[FailureContext], bool]
    action: RecoveryAction
    name: str


@dataclass(frozen=True)
class RecoveryDecision:
    """Outcome of evaluating the table."""
    action: RecoveryAction
    rule: str
    delay: float = 0.0


def _always(ctx: FailureContext) -> bool:
    return True


def _budget_spent(ctx: FailureContext) -> bool:
    return ctx.attempt >= ctx.max_attempts


DEFAULT_RULES = (
    Rule((AuthError, UploadCanceledError), _always, RecoveryAction.ABORT, 'fatal'),
    Rule((BaseException,), _budget_spent, RecoveryAction.ABORT, 'budget_exhausted'),
    Rule(
        (SessionStartError,),
        lambda ctx: 0 < ctx.file_size <= ctx.max_small_file_size,
        RecoveryAction.SMALL_FILE,
        'session_start_small_fallback'
    ),
    Rule((SessionStartError,), _always, RecoveryAction.RESTART, 'session_start_restart'),
    Rule(
        (PartUploadError,),
        lambda ctx: ctx.completed_parts > 0,
        RecoveryAction.RESUME,
        'part_failed_resume'
    ),
    Rule(
        (PartUploadError,),
        lambda ctx: ctx.part_size > ctx.min_part_size,
        RecoveryAction.RESTART_SMALLER_PARTS,
        'part_failed_shrink'
    ),
    Rule((PartUploadError,), _always, RecoveryAction.RESTART, 'part_failed_restart'),
    Rule((FinishError,), _always, RecoveryAction.RESUME_VERIFIED, 'finish_reverify'),
    Rule((BaseException,), _always, RecoveryAction.RESTART, 'default_restart'),
)


class FailurePolicy:
    """
    Evaluates the decision table and computes the backoff delay.

    Example:
        >>> policy = FailurePolicy()
        >>> ctx = FailureContext(attempt=1, max_attempts=3, completed_parts=4,
        ...                      error=PartUploadError(5))
        >>> policy.decide(ctx).action
        <RecoveryAction.RESUME: 'resume'>
    """

    def __init__(
        self,
        rules: Tuple[Rule, ...] = DEFAULT_RULES,
        base_delay: float = 1.0,
        max_delay: float = 10.0
    ):
        self._rules = rules
        self._base_delay = base_delay
        self._max_delay = max_delay

    def decide(self, ctx: FailureContext) -> RecoveryDecision:
        """Return the first matching rule's action."""
        rule = self._match(ctx)
        action = rule.action if rule else RecoveryAction.ABORT
        delay = 0.0 if action == RecoveryAction.ABORT else self.backoff(ctx.attempt)
        return RecoveryDecision(action=action, rule=rule.name if rule else 'no_match', delay=delay)

    def backoff(self, attempt: int) -> float:
        """Delay before the next whole-file attempt."""
        return min(self._base_delay * (2 ** (attempt - 1)), self._max_delay)

    def _match(self, ctx: FailureContext) -> Optional[Rule]:
        for rule in self._rules:
            if isinstance(ctx.error, rule.errors) and rule.condition(ctx):
                return rule
        return None
