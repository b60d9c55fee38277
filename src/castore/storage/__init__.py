# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/storage/__init__.py

"""
Storage layer for castore - the physical backends behind a repository.

This module provides:
- Local filesystem driver (sharded objects, write-then-rename)
- Hyperdrive driver (replicated volumes over local or SSH replicas)
- Backend kind resolution
"""

from .protocols import BackendKind, RepositoryMarker, StorageDriver, StorageHandle
from .filesystem import FilesystemDriver, FilesystemHandle
from .hyperdrive import HyperdriveDriver, HyperdriveHandle
from .replicas import LocalReplica, SSHReplica, parse_replica
from .factory import DRIVERS, create_driver, resolve_backend_kind

__all__ = [
    'BackendKind',
    'RepositoryMarker',
    'StorageDriver',
    'StorageHandle',
    'FilesystemDriver',
    'FilesystemHandle',
    'HyperdriveDriver',
    'HyperdriveHandle',
    'LocalReplica',
    'SSHReplica',
    'parse_replica',
    'DRIVERS',
    'create_driver',
    'resolve_backend_kind',
]
