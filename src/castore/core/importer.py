# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/core/importer.py

"""
Bulk import of a directory tree into a repository.

Only regular files are imported; symlinks and special files (sockets,
FIFOs, devices) are skipped. The import is a best-effort bulk load: files
stored before a failure stay in the repository.
"""

from __future__ import annotations

import os
import stat
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, BinaryIO, Iterator, Optional

import orjson
from loguru import logger
from pydantic import BaseModel, Field

from castore.core.keys import ContentKey
from castore.system.exceptions import ImportCancelled, ImportFailed, InvalidConfiguration

if TYPE_CHECKING:
    from castore.core.repository import Repository


class ImportEntry(BaseModel):
    """One imported file"""
    path: str
    key: str
    size: int


class ImportManifest(BaseModel):
    """Ordered (relative path, key) pairs describing one import. Never persisted by the repository."""
    source: str
    entries: list[ImportEntry] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def keys(self) -> list[ContentKey]:
        return [ContentKey(entry.key) for entry in self.entries]

    def pairs(self) -> list[tuple[str, ContentKey]]:
        return [(entry.path, ContentKey(entry.key)) for entry in self.entries]

    @property
    def total_size(self) -> int:
        return sum(entry.size for entry in self.entries)

    def to_json(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json"), option=orjson.OPT_INDENT_2)


def scan_source(source_dir: Path) -> tuple[list[PurePosixPath], list[str]]:
    """Walk source_dir without following symlinks.

    Returns:
        (sorted relative paths of regular files, sorted relative paths skipped)
    """
    files: list[PurePosixPath] = []
    skipped: list[str] = []
    for dirpath, dirnames, filenames in os.walk(source_dir, followlinks=False):
        current = Path(dirpath)
        dirnames.sort()
        # os.walk lists symlinked directories in dirnames but never descends into them
        for name in dirnames:
            if (current / name).is_symlink():
                skipped.append((current / name).relative_to(source_dir).as_posix())
        for name in filenames:
            full_path = current / name
            rel_path = PurePosixPath(full_path.relative_to(source_dir).as_posix())
            try:
                mode = os.lstat(full_path).st_mode
            except FileNotFoundError:
                continue
            if stat.S_ISREG(mode):
                files.append(rel_path)
            else:
                logger.debug(f"Skipping non-regular file {rel_path}")
                skipped.append(str(rel_path))
    return sorted(files), sorted(skipped)


def _open_source(path: Path) -> BinaryIO:
    return open(path, "rb")


def _import_one(repo: "Repository", source_dir: Path, rel_path: PurePosixPath) -> ImportEntry:
    full_path = source_dir / rel_path
    with _open_source(full_path) as f:
        key = repo.put(f)
        size = f.tell()
    return ImportEntry(path=str(rel_path), key=key, size=size)


def import_directory(repo: "Repository", source_dir: Path,
                     cancel: Optional[threading.Event] = None,
                     workers: Optional[int] = None) -> ImportManifest:
    """Import every regular file under source_dir through repo.put().

    At most ``workers`` files (default: the repository pool size) are in
    flight at once. Cancellation is checked before each file starts.

    Raises:
        ImportFailed: If any file cannot be read or stored
        ImportCancelled: If cancel was set before all files started
    """
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise InvalidConfiguration(f"Import source is not a directory: {source_dir}")

    files, skipped = scan_source(source_dir)
    logger.info(f"Importing {len(files)} file(s) from {source_dir} ({len(skipped)} skipped)")

    max_workers = workers or repo.pool_size
    results: dict[PurePosixPath, ImportEntry] = {}
    failure: Optional[tuple[PurePosixPath, BaseException]] = None
    cancelled = False

    def manifest() -> ImportManifest:
        return ImportManifest(
            source=str(source_dir),
            entries=[results[path] for path in files if path in results],
            skipped=skipped,
        )

    pending: dict[Future, PurePosixPath] = {}
    remaining: Iterator[PurePosixPath] = iter(files)
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="castore-import") as executor:
        while True:
            while failure is None and not cancelled and len(pending) < max_workers:
                if cancel is not None and cancel.is_set():
                    cancelled = True
                    break
                rel_path = next(remaining, None)
                if rel_path is None:
                    break
                pending[executor.submit(_import_one, repo, source_dir, rel_path)] = rel_path

            if not pending:
                break

            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                rel_path = pending.pop(future)
                try:
                    results[rel_path] = future.result()
                except Exception as e:
                    logger.error(f"Failed to import {rel_path}: {e}")
                    if failure is None:
                        failure = (rel_path, e)

    if failure is not None:
        rel_path, error = failure
        raise ImportFailed(str(rel_path), manifest(), str(error)) from error
    if cancelled:
        logger.warning(f"Import from {source_dir} cancelled after {len(results)} file(s)")
        raise ImportCancelled(manifest())

    logger.info(f"Imported {len(results)} file(s) from {source_dir}")
    return manifest()
