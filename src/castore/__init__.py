# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/__init__.py

"""castore - content-addressed repository over pluggable storage backends."""

from castore.core.repository import Repository, RepositoryInfo, open_or_create, open_from_config
from castore.core.importer import ImportEntry, ImportManifest
from castore.core.keys import ContentKey, compute_key
from castore.storage.protocols import BackendKind
from castore.system.exceptions import (
    CastoreError, InvalidConfiguration, UnsupportedBackend, BackendMismatch,
    NotFound, PoolTimeout, ImportFailed, ImportCancelled, BackendError,
)

__all__ = [
    "Repository",
    "RepositoryInfo",
    "open_or_create",
    "open_from_config",
    "ImportEntry",
    "ImportManifest",
    "ContentKey",
    "compute_key",
    "BackendKind",
    "CastoreError",
    "InvalidConfiguration",
    "UnsupportedBackend",
    "BackendMismatch",
    "NotFound",
    "PoolTimeout",
    "ImportFailed",
    "ImportCancelled",
    "BackendError",
]
