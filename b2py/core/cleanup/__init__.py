"""Cleanup of unfinished uploads."""
from .manager import CleanupManager, CleanupReport

__all__ = ['CleanupManager', 'CleanupReport']
