# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/system/exceptions.py

"""
castore-specific exception classes.

Every error raised by the repository, the pool and the storage drivers
derives from CastoreError, so callers can catch the whole family at the
CLI boundary and narrower classes where they can recover.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from castore.core.importer import ImportManifest


class CastoreError(Exception):
    """Base exception for all castore errors."""
    pass


# === CONFIGURATION ERRORS ===

class InvalidConfiguration(CastoreError):
    """Raised for a bad location, pool size, or configuration file."""
    pass


class UnsupportedBackend(InvalidConfiguration):
    """Raised when the requested backend kind is not registered."""

    def __init__(self, backend_kind: str, supported: tuple[str, ...] = ()):
        self.backend_kind = backend_kind
        self.supported = supported
        message = f"Unsupported backend '{backend_kind}'"
        if supported:
            message += f" (expected one of: {', '.join(supported)})"
        super().__init__(message)


class BackendMismatch(CastoreError):
    """Raised when a repository exists under a different backend kind."""

    def __init__(self, location: str, requested: str, existing: str):
        self.location = location
        self.requested = requested
        self.existing = existing
        super().__init__(
            f"Repository at '{location}' was created with backend '{existing}', "
            f"cannot open it as '{requested}'"
        )


# === CONTENT ERRORS ===

class NotFound(CastoreError):
    """Raised when a content key is absent from the repository."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Content not found: {key}")


class InvalidContentKey(CastoreError):
    """Raised for a string that is not a well-formed content key."""
    pass


class ContentIntegrityError(CastoreError):
    """Raised when stored or supplied content does not match its key."""

    def __init__(self, message: str, expected_key: str = None, actual_key: str = None):
        self.expected_key = expected_key
        self.actual_key = actual_key
        super().__init__(message)


# === POOL AND LIFECYCLE ERRORS ===

class PoolTimeout(CastoreError):
    """Raised when no pooled handle became free within the caller's timeout."""

    def __init__(self, timeout: float, size: int):
        self.timeout = timeout
        self.size = size
        super().__init__(f"Timed out after {timeout:.2f}s waiting for one of {size} pooled handles")


class PoolClosed(CastoreError):
    """Raised when acquiring from a pool that has been closed."""
    pass


class RepositoryClosed(CastoreError):
    """Raised when operating on a repository after close()."""
    pass


# === IMPORT ERRORS ===

class ImportFailed(CastoreError):
    """Raised when a directory import could not read or store one file.

    Files imported before the failure stay in the repository; they are
    listed in ``manifest``.
    """

    def __init__(self, path: str, manifest: "ImportManifest", reason: str = ""):
        self.path = path
        self.manifest = manifest
        message = f"Import failed at '{path}' after {len(manifest)} file(s)"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ImportCancelled(CastoreError):
    """Raised when a directory import was cancelled between files."""

    def __init__(self, manifest: "ImportManifest"):
        self.manifest = manifest
        super().__init__(f"Import cancelled after {len(manifest)} file(s)")


class ImportRejected(CastoreError):
    """Raised when importing into an existing repository that already holds content."""
    pass


# === BACKEND ERRORS ===

class BackendError(CastoreError):
    """Base class for storage backend I/O failures."""

    def __init__(self, message: str, key: Optional[str] = None, path: Optional[str] = None,
                 retry_possible: bool = False):
        self.key = key
        self.path = path
        self.retry_possible = retry_possible
        super().__init__(message)


class HandleBroken(BackendError):
    """The backend handle is no longer usable and must not return to the pool."""
    pass


class ReplicaUnavailable(BackendError):
    """A replica of the distributed store could not be reached."""

    def __init__(self, message: str, replica: str = None, **kwargs):
        self.replica = replica
        kwargs.setdefault('retry_possible', True)
        super().__init__(message, **kwargs)


class QuorumNotReached(BackendError):
    """Too few replicas acknowledged a write or delete."""

    def __init__(self, message: str, acknowledged: int = 0, required: int = 0, **kwargs):
        self.acknowledged = acknowledged
        self.required = required
        kwargs['retry_possible'] = False
        super().__init__(message, **kwargs)
