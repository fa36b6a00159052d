"""Pytest configuration and shared fixtures."""

import logging
import shutil
import tempfile
from pathlib import Path

import pytest


@pytest.fixture
def temp_tape_dir():
    """Create a temporary directory for tape output."""
    tape_dir = tempfile.mkdtemp(prefix="tape_recorder_test_")
    yield Path(tape_dir)
    shutil.rmtree(tape_dir, ignore_errors=True)


@pytest.fixture
def recorder_logger():
    """Restore the recorder logger's handlers and level after the test."""
    logger = logging.getLogger("tape-recorder")
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)


@pytest.fixture
def project_dir():
    """Return the project root directory."""
    return Path(__file__).parent.parent
