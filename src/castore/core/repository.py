# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/core/repository.py

"""
Content repository: the single entry point to a content-addressed store.

A Repository resolves a backend kind and a location into a storage driver
behind a bounded connection pool, determines whether the repository was
newly created, and exposes content-addressed put/get/exists/delete plus
bulk directory import.

Usage:
    repo, created = Repository.open_or_create("./storage", "fs", pool_size=4)
    with repo:
        key = repo.put(b"hello")
        assert repo.get_bytes(key) == b"hello"

The repository holds no global lock. Parallelism is bounded by the pool,
and each driver supports concurrent use of distinct handles.
"""

from __future__ import annotations

import io
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from loguru import logger

from castore.config.manager import DEFAULT_POOL_SIZE, HyperdriveConfig, StoreConfig
from castore.core.importer import ImportManifest, import_directory
from castore.core.keys import ContentKey, hash_stream, validate_key
from castore.core.pool import ConnectionPool, PoolStats
from castore.storage.factory import DRIVERS, create_driver, resolve_backend_kind
from castore.storage.protocols import BackendKind, RepositoryMarker, StorageDriver
from castore.system.exceptions import (
    BackendMismatch, CastoreError, ContentIntegrityError, ImportRejected,
    InvalidConfiguration, RepositoryClosed
)

# objects up to this size are spooled in memory before being written
SPOOL_MAX_MEMORY = 8 * 1024 * 1024

Content = Union[bytes, bytearray, memoryview, str, BinaryIO]


@dataclass
class RepositoryInfo:
    location: str
    backend: str
    pool_size: int
    was_created: bool
    objects: int
    driver: str


def _validate_pool_size(pool_size: object) -> int:
    if isinstance(pool_size, bool) or not isinstance(pool_size, int) or pool_size < 1:
        raise InvalidConfiguration(f"pool_size must be a positive integer, got {pool_size!r}")
    return pool_size


def _as_reader(content: Content) -> BinaryIO:
    if isinstance(content, str):
        return io.BytesIO(content.encode("utf-8"))
    if isinstance(content, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(content))
    if hasattr(content, "read"):
        return content
    raise TypeError(f"Cannot store content of type {type(content).__name__}")


def _probe_marker(driver: StorageDriver) -> Optional[RepositoryMarker]:
    handle = driver.connect()
    try:
        return handle.read_marker()
    finally:
        handle.close()


class Repository:
    """One logical store rooted at a location, with a fixed backend kind."""

    def __init__(self, driver: StorageDriver, pool_size: int, was_created: bool,
                 pool_timeout: Optional[float] = None):
        self.driver = driver
        self.location = driver.location
        self.backend_kind: BackendKind = driver.kind
        self.pool_size = pool_size
        self.pool_timeout = pool_timeout
        self._was_created = was_created
        self.pool = ConnectionPool(driver.connect, pool_size, timeout=pool_timeout)

    # ---- Construction ----

    @classmethod
    def open_or_create(cls, location: str, backend_kind: Union[str, BackendKind] = BackendKind.HYPERDRIVE,
                       pool_size: int = DEFAULT_POOL_SIZE, *,
                       hyperdrive: Optional[HyperdriveConfig] = None,
                       pool_timeout: Optional[float] = None) -> tuple["Repository", bool]:
        """Open the repository at location, creating it if absent.

        Args:
            location: Filesystem path (fs) or volume name (hyperdrive)
            backend_kind: "fs" or "hyperdrive"
            pool_size: Maximum concurrently open backend handles
            hyperdrive: Replica settings for the hyperdrive backend
            pool_timeout: Default seconds to wait for a pooled handle

        Returns:
            (repository, was_created)

        Raises:
            InvalidConfiguration: Bad location or pool size
            UnsupportedBackend: Unknown backend kind
            BackendMismatch: A repository exists at location under another backend kind
        """
        pool_size = _validate_pool_size(pool_size)
        kind = resolve_backend_kind(backend_kind)
        if location is None:
            raise InvalidConfiguration("Repository location is required")
        driver = create_driver(kind, location, hyperdrive)

        repo = cls(driver, pool_size, was_created=False, pool_timeout=pool_timeout)
        try:
            repo._was_created = repo._open_or_init(hyperdrive)
        except BaseException:
            repo.close()
            raise

        if repo.was_created:
            logger.info(f"Created {driver.describe()}")
        else:
            logger.info(f"Opened existing {driver.describe()}")
        return repo, repo.was_created

    def _open_or_init(self, settings: Optional[HyperdriveConfig]) -> bool:
        with self.pool.lease() as handle:
            marker = handle.read_marker()
            if marker is not None:
                if marker.backend != self.backend_kind.value:
                    raise BackendMismatch(self.location, self.backend_kind.value, marker.backend)
                return False

            self._check_other_backends(settings)
            handle.root_init(RepositoryMarker(backend=self.backend_kind.value, location=self.location))
            return True

    def _check_other_backends(self, settings: Optional[HyperdriveConfig]) -> None:
        """Refuse to create where another backend kind already holds a repository."""
        for kind in DRIVERS:
            if kind == self.backend_kind:
                continue
            try:
                other = create_driver(kind, self.location, settings)
                marker = _probe_marker(other)
            except CastoreError as e:
                logger.debug(f"Could not probe {kind} backend at {self.location}: {e}")
                continue
            if marker is not None:
                raise BackendMismatch(self.location, self.backend_kind.value, marker.backend)

    # ---- Properties ----

    @property
    def was_created(self) -> bool:
        return self._was_created

    @property
    def closed(self) -> bool:
        return self.pool.closed

    def _check_open(self) -> None:
        if self.pool.closed:
            raise RepositoryClosed(f"Repository at {self.location} is closed")

    # ---- Content operations ----

    def put(self, content: Content, key: Optional[str] = None) -> ContentKey:
        """Store content and return its key.

        Storing content that is already present only re-validates presence;
        the driver decides whether its stored copies are durable enough to
        skip the write.

        Args:
            content: bytes, str (UTF-8) or a binary reader
            key: Expected key, verified against the content if given

        Raises:
            ContentIntegrityError: If key does not match the content
        """
        self._check_open()
        expected = validate_key(key) if key is not None else None
        reader = _as_reader(content)

        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY) as spool:
            actual, size = hash_stream(reader, spool.write)
            if expected is not None and expected != actual:
                raise ContentIntegrityError(
                    f"Content hashes to {actual}, not the supplied key {expected}",
                    expected_key=expected, actual_key=actual,
                )
            with self.pool.lease() as handle:
                spool.seek(0)
                handle.put(actual, spool)
        logger.debug(f"Put {actual} ({size} bytes)")
        return actual

    def get(self, key: str) -> BinaryIO:
        """Return a binary reader over the object's content.

        The caller owns the reader and must close it. The reader may hold an
        open file after the pooled handle is released, so outstanding readers
        are not bounded by pool_size.

        Raises:
            NotFound: If the key is absent
        """
        self._check_open()
        key = validate_key(key)
        with self.pool.lease() as handle:
            return handle.get(key)

    def get_bytes(self, key: str) -> bytes:
        with self.get(key) as reader:
            return reader.read()

    def exists(self, key: str) -> bool:
        self._check_open()
        key = validate_key(key)
        with self.pool.lease() as handle:
            return handle.exists(key)

    def delete(self, key: str) -> None:
        """Remove an object immediately.

        Raises:
            NotFound: If the key is absent
        """
        self._check_open()
        key = validate_key(key)
        with self.pool.lease() as handle:
            handle.delete(key)
        logger.debug(f"Deleted {key}")

    def keys(self) -> Iterator[ContentKey]:
        self._check_open()
        with self.pool.lease() as handle:
            stored = list(handle.keys())
        return iter(stored)

    def is_empty(self) -> bool:
        self._check_open()
        with self.pool.lease() as handle:
            return next(iter(handle.keys()), None) is None

    # ---- Bulk import ----

    def import_directory(self, source_dir: Union[str, Path],
                         cancel: Optional[threading.Event] = None) -> ImportManifest:
        """Import every regular file under source_dir.

        Allowed on a freshly created repository, or on an existing one that
        holds no objects.

        Raises:
            ImportRejected: If the repository existed already and is not empty
            ImportFailed: If a file could not be read or stored
            ImportCancelled: If cancel was set before the import finished
        """
        self._check_open()
        if not self.was_created and not self.is_empty():
            raise ImportRejected(
                f"Repository at {self.location} already existed and holds content; "
                f"directory import is only allowed into a new or empty repository"
            )
        return import_directory(self, Path(source_dir), cancel=cancel)

    # ---- Lifecycle ----

    def info(self) -> RepositoryInfo:
        return RepositoryInfo(
            location=self.location,
            backend=self.backend_kind.value,
            pool_size=self.pool_size,
            was_created=self.was_created,
            objects=sum(1 for _ in self.keys()),
            driver=self.driver.describe(),
        )

    def pool_stats(self) -> PoolStats:
        return self.pool.stats()

    def close(self) -> None:
        """Release every pooled backend handle."""
        if not self.pool.closed:
            self.pool.close()
            logger.debug(f"Closed repository at {self.location}")

    def __enter__(self) -> "Repository":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Repository(location={self.location!r}, backend={self.backend_kind.value!r})"


def open_or_create(location: str, backend_kind: Union[str, BackendKind] = BackendKind.HYPERDRIVE,
                   pool_size: int = DEFAULT_POOL_SIZE, **kwargs) -> tuple[Repository, bool]:
    return Repository.open_or_create(location, backend_kind, pool_size, **kwargs)


def open_from_config(config: StoreConfig) -> tuple[Repository, bool]:
    """Open or create the repository described by a loaded StoreConfig."""
    return Repository.open_or_create(
        config.storage,
        config.storage_type,
        config.pool_size,
        hyperdrive=config.hyperdrive,
        pool_timeout=config.pool_timeout,
    )
