# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/storage/protocols.py

"""
Shared protocols for storage drivers.

A driver is a factory of handles. A handle carries the whole capability
set of a backend: object put/get/exists/delete plus the root-level
existence check and initialization. The repository never holds a handle
outside its connection pool.
"""

from datetime import datetime, UTC
from enum import Enum
from typing import BinaryIO, Iterator, Optional, Protocol

import orjson
from pydantic import BaseModel, Field, ValidationError

from castore.core.keys import ContentKey
from castore.system.exceptions import InvalidConfiguration

MARKER_FORMAT_VERSION = 1


class BackendKind(str, Enum):
    """Physical storage kinds a repository can live on."""
    FS = "fs"
    HYPERDRIVE = "hyperdrive"

    def __str__(self) -> str:
        return self.value


class RepositoryMarker(BaseModel):
    """Marker document written once when a repository is created."""
    backend: str
    location: str
    format_version: int = MARKER_FORMAT_VERSION
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_bytes(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json"), option=orjson.OPT_INDENT_2)

    @classmethod
    def from_bytes(cls, data: bytes, source: str = "marker") -> "RepositoryMarker":
        try:
            return cls.model_validate(orjson.loads(data))
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise InvalidConfiguration(f"Corrupt repository marker at {source}: {e}") from e


class StorageHandle(Protocol):
    """One open session against a backend."""

    def put(self, key: ContentKey, source: BinaryIO) -> None:
        """Store source under key; the object must never be visible half-written.

        A key whose stored copy already satisfies the backend's durability
        rule is left as is.
        """
        ...

    def get(self, key: ContentKey) -> BinaryIO:
        """Return a reader over the object's bytes.

        The reader is owned by the caller and may outlive the handle.

        Raises:
            NotFound: If the key is absent
        """
        ...

    def exists(self, key: ContentKey) -> bool:
        ...

    def delete(self, key: ContentKey) -> None:
        """Remove the object.

        Raises:
            NotFound: If the key is absent
        """
        ...

    def keys(self) -> Iterator[ContentKey]:
        ...

    def root_exists(self) -> bool:
        """True if a repository marker is present at the driver's location."""
        ...

    def read_marker(self) -> Optional[RepositoryMarker]:
        ...

    def root_init(self, marker: RepositoryMarker) -> None:
        """Create the repository structure and write its marker."""
        ...

    def is_healthy(self) -> bool:
        ...

    def close(self) -> None:
        ...


class StorageDriver(Protocol):
    """Factory of StorageHandle objects for one repository location."""

    kind: BackendKind
    location: str

    def connect(self) -> StorageHandle:
        ...

    def describe(self) -> str:
        ...
