# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/storage/atomic.py

"""Write-then-rename helpers for local filesystem storage."""

import os
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO

from loguru import logger

CHUNK_SIZE = 64 * 1024


class StagedFile:
    """Temporary file that is removed on exit unless it was committed."""

    def __init__(self, temp_dir: Path, prefix: str = "staged"):
        self.temp_dir = temp_dir
        self.path = temp_dir / f"{prefix}-{uuid.uuid4().hex[:12]}"
        self.committed = False

    def commit(self, dest: Path) -> None:
        """Atomically move the staged file to dest."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        os.replace(self.path, dest)
        self.committed = True

    def cleanup(self) -> None:
        if self.committed:
            return
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove staged file {self.path}: {e}")

    def __enter__(self) -> "StagedFile":
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()


def _fsync_dir(path: Path) -> None:
    # not every platform lets a directory be opened for fsync
    try:
        fd = os.open(path, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def atomic_write(dest: Path, source: BinaryIO, temp_dir: Path) -> int:
    """Copy source into dest so that dest is either absent or complete.

    temp_dir must be on the same filesystem as dest.

    Returns:
        Number of bytes written
    """
    with StagedFile(temp_dir) as staged:
        with open(staged.path, "wb") as f:
            shutil.copyfileobj(source, f, CHUNK_SIZE)
            f.flush()
            os.fsync(f.fileno())
            size = f.tell()
        staged.commit(dest)
    _fsync_dir(dest.parent)
    return size


def atomic_write_bytes(dest: Path, data: bytes, temp_dir: Path) -> None:
    with StagedFile(temp_dir) as staged:
        with open(staged.path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        staged.commit(dest)
    _fsync_dir(dest.parent)
