"""Logging utilities for b2py modules."""

import logging


def get_logger(name: str) -> logging.Logger:
    """Get a logger that automatically inherits from root logger.

    This ensures that loggers work with basicConfig() without needing
    explicit setup_logging() calls. The logger will:
    - Propagate to root logger (default behavior)
    - Only set a default level if root logger has no handlers

    Args:
        name: Logger name (e.g. 'b2py.upload.part')

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.propagate = True

    # Only set default level if basicConfig hasn't been called yet
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logger.setLevel(logging.WARNING)

    return logger


def format_size(num_bytes) -> str:
    """Format a byte count for log lines and CLI output."""
    if num_bytes is None:
        return "Unknown"

    size = float(num_bytes)
    for unit in ('B', 'KB', 'MB', 'GB'):
        if size < 1024 or unit == 'GB':
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def format_duration(hours: float) -> str:
    """Format an age given in hours."""
    if hours < 1:
        return f"{round(hours * 60)} minutes"
    if hours < 24:
        return f"{round(hours)} hours"
    days = int(hours // 24)
    remaining = round(hours % 24)
    return f"{days} days, {remaining} hours"
