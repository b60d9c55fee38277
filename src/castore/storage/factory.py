# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/storage/factory.py

"""Backend kind resolution and driver construction."""

from typing import TYPE_CHECKING, Optional, Union

from loguru import logger

from castore.system.exceptions import UnsupportedBackend
from .filesystem import FilesystemDriver
from .hyperdrive import HyperdriveDriver
from .protocols import BackendKind, StorageDriver

if TYPE_CHECKING:
    from castore.config.manager import HyperdriveConfig

DRIVERS = {
    BackendKind.FS: FilesystemDriver,
    BackendKind.HYPERDRIVE: HyperdriveDriver,
}


def resolve_backend_kind(backend_kind: Union[str, BackendKind]) -> BackendKind:
    """Map a configured backend name to its BackendKind.

    Raises:
        UnsupportedBackend: For names with no registered driver
    """
    if isinstance(backend_kind, BackendKind):
        return backend_kind
    try:
        return BackendKind(str(backend_kind).strip().lower())
    except ValueError:
        raise UnsupportedBackend(str(backend_kind), tuple(k.value for k in DRIVERS)) from None


def create_driver(backend_kind: Union[str, BackendKind], location: str,
                  settings: Optional["HyperdriveConfig"] = None) -> StorageDriver:
    """Build the driver for backend_kind at location.

    Raises:
        UnsupportedBackend: If backend_kind is unknown
        InvalidConfiguration: If location is not valid for the backend
    """
    kind = resolve_backend_kind(backend_kind)
    driver = DRIVERS[kind](location, settings)
    logger.debug(f"Created driver for {driver.describe()}")
    return driver
