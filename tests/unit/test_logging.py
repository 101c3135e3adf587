"""Tests for logging helpers."""
import logging

import pytest

import b2py
from b2py.core.logging import format_duration, format_size, get_logger


class TestGetLogger:
    """Test suite for get_logger."""

    def test_returns_named_logger(self):
        logger = get_logger('b2py.upload.part')

        assert logger.name == 'b2py.upload.part'
        assert logger.propagate is True

    def test_setup_logging_sets_levels(self):
        """Test setup_logging configures every package logger."""
        b2py.setup_logging(logging.DEBUG)

        assert logging.getLogger('b2py.upload.coordinator').level == logging.DEBUG
        assert logging.getLogger('b2py.cleanup').level == logging.DEBUG

        b2py.setup_logging(logging.WARNING)


class TestFormatSize:
    @pytest.mark.parametrize("num_bytes,expected", [
        (0, "0.0 B"),
        (512, "512.0 B"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
        (3 * 1024 ** 3, "3.0 GB"),
        (2048 * 1024 ** 3, "2048.0 GB"),
    ])
    def test_units(self, num_bytes, expected):
        assert format_size(num_bytes) == expected

    def test_unknown(self):
        assert format_size(None) == "Unknown"


class TestFormatDuration:
    @pytest.mark.parametrize("hours,expected", [
        (0.5, "30 minutes"),
        (5.2, "5 hours"),
        (50, "2 days, 2 hours"),
    ])
    def test_ranges(self, hours, expected):
        assert format_duration(hours) == expected
