# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/storage/filesystem.py

"""
Local filesystem storage driver.

Layout under the repository root:

    .castore.json        repository marker
    objects/ab/abcd...   one file per object, sharded by the first two hex chars
    tmp/                 staging area for write-then-rename

Objects are staged in tmp/ and renamed into place, so a reader never
sees a partially written object under its final key.
"""

import os
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from loguru import logger

from castore.core.keys import ContentKey, is_valid_key, shard_path
from castore.system.exceptions import BackendError, InvalidConfiguration, NotFound
from .atomic import atomic_write, atomic_write_bytes
from .protocols import BackendKind, RepositoryMarker

MARKER_FILE = ".castore.json"
OBJECTS_DIR = "objects"
TEMP_DIR = "tmp"


def validate_fs_location(location: str) -> Path:
    """Check that location can be a repository root directory."""
    if not isinstance(location, (str, os.PathLike)) or not str(location).strip():
        raise InvalidConfiguration("Filesystem location must be a non-empty path")
    if "\x00" in str(location):
        raise InvalidConfiguration(f"Filesystem location contains a NUL byte: {location!r}")
    path = Path(location).expanduser()
    if path.exists() and not path.is_dir():
        raise InvalidConfiguration(f"Filesystem location exists and is not a directory: {path}")
    return path


class FilesystemHandle:
    """Handle on a local repository root.

    The handle keeps no open descriptors between calls; distinct handles
    can be used from different threads at the same time.
    """

    def __init__(self, root: Path):
        self.root = root
        self.objects_dir = root / OBJECTS_DIR
        self.temp_dir = root / TEMP_DIR
        self.marker_path = root / MARKER_FILE
        self._closed = False

    def _object_path(self, key: ContentKey) -> Path:
        return self.objects_dir / shard_path(key)

    def put(self, key: ContentKey, source: BinaryIO) -> None:
        dest = self._object_path(key)
        if dest.is_file():
            logger.debug(f"Object {key} already present, skipping write")
            return
        try:
            size = atomic_write(dest, source, self.temp_dir)
        except OSError as e:
            raise BackendError(f"Failed to store object {key} at {dest}: {e}",
                               key=key, path=str(dest)) from e
        logger.debug(f"Stored {key} ({size} bytes) at {dest}")

    def get(self, key: ContentKey) -> BinaryIO:
        path = self._object_path(key)
        try:
            return open(path, "rb")
        except FileNotFoundError:
            raise NotFound(key) from None
        except OSError as e:
            raise BackendError(f"Failed to read object {key} at {path}: {e}",
                               key=key, path=str(path)) from e

    def exists(self, key: ContentKey) -> bool:
        return self._object_path(key).is_file()

    def delete(self, key: ContentKey) -> None:
        path = self._object_path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFound(key) from None
        except OSError as e:
            raise BackendError(f"Failed to delete object {key} at {path}: {e}",
                               key=key, path=str(path)) from e
        logger.debug(f"Deleted {key}")

    def keys(self) -> Iterator[ContentKey]:
        if not self.objects_dir.is_dir():
            return
        for shard in sorted(self.objects_dir.iterdir()):
            if not shard.is_dir():
                continue
            for entry in sorted(shard.iterdir()):
                if entry.is_file() and is_valid_key(entry.name):
                    yield ContentKey(entry.name)

    def root_exists(self) -> bool:
        return self.root.is_dir() and self.marker_path.is_file()

    def read_marker(self) -> Optional[RepositoryMarker]:
        try:
            data = self.marker_path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise BackendError(f"Failed to read repository marker {self.marker_path}: {e}",
                               path=str(self.marker_path)) from e
        return RepositoryMarker.from_bytes(data, str(self.marker_path))

    def root_init(self, marker: RepositoryMarker) -> None:
        try:
            self.objects_dir.mkdir(parents=True, exist_ok=True)
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            atomic_write_bytes(self.marker_path, marker.to_bytes(), self.temp_dir)
        except OSError as e:
            raise BackendError(f"Failed to initialize repository at {self.root}: {e}",
                               path=str(self.root)) from e
        logger.info(f"Initialized filesystem repository at {self.root}")

    def is_healthy(self) -> bool:
        return not self._closed

    def close(self) -> None:
        self._closed = True


class FilesystemDriver:
    """Driver for repositories rooted in a local directory."""

    kind = BackendKind.FS

    def __init__(self, location: str, settings=None):
        self.location = str(location)
        self.root = validate_fs_location(location)

    def connect(self) -> FilesystemHandle:
        return FilesystemHandle(self.root)

    def describe(self) -> str:
        return f"filesystem repository at {self.root}"
