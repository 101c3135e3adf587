"""Upload strategies."""
from .chunking import BaseChunkingStrategy, FixedSizeChunkingStrategy
from .planning import PartPlanner
from .failure_policy import (
    FailurePolicy,
    FailureContext,
    RecoveryAction,
    RecoveryDecision,
    Rule,
    DEFAULT_RULES
)

__all__ = [
    'BaseChunkingStrategy',
    'FixedSizeChunkingStrategy',
    'PartPlanner',
    'FailurePolicy',
    'FailureContext',
    'RecoveryAction',
    'RecoveryDecision',
    'Rule',
    'DEFAULT_RULES',
]
