# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_logging_setup.py

import pytest
from loguru import logger

from castore.system.logging_setup import LOG_FILE_NAME, setup_logging


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger.remove()


def test_console_only_by_default():
    assert setup_logging() is None


def test_file_logging(tmp_path):
    log_dir = tmp_path / "logs"
    log_file = setup_logging(verbose=True, local_log=log_dir)
    assert log_file == log_dir / LOG_FILE_NAME

    logger.debug("stored an object")
    logger.complete()
    logger.remove()
    assert "stored an object" in log_file.read_text()


def test_unusable_log_directory(tmp_path):
    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("x")
    assert setup_logging(local_log=not_a_dir) is None
