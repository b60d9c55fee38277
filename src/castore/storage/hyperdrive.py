# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/storage/hyperdrive.py

"""
Distributed, replicated storage driver ("hyperdrive").

A repository on this backend is a named volume in a namespace that is
replicated across several replica roots. Each replica holds:

    volumes/<volume-id>/volume.json        repository marker
    volumes/<volume-id>/objects/ab/abcd... objects, sharded by key prefix
    tmp/                                   staging for write-then-rename

where volume-id is the xxh3_64 digest of the volume name.

Writes go to every replica and succeed once write_quorum replicas have
acknowledged them; replicas that already hold a verified copy are
not rewritten. Deletes must reach every replica. Reads try replicas in
random order, verify the digest of what they read, and skip replicas
that are unreachable or corrupt.
"""

import io
import posixpath
import random
from typing import BinaryIO, Callable, Iterator, Optional, TypeVar

import xxhash
from loguru import logger

from castore.core.keys import ContentKey, compute_key, is_valid_key, shard_path
from castore.core.retry import RetryConfig, RetryableOperation
from castore.system.exceptions import (
    BackendError, InvalidConfiguration, NotFound, QuorumNotReached, ReplicaUnavailable
)
from .protocols import BackendKind, RepositoryMarker
from .replicas import Replica, default_replica_root, parse_replica

VOLUMES_DIR = "volumes"
MARKER_FILE = "volume.json"
OBJECTS_DIR = "objects"
MAX_VOLUME_NAME = 255

T = TypeVar("T")


def validate_volume_name(location: str) -> str:
    if not isinstance(location, str) or not location.strip():
        raise InvalidConfiguration("Hyperdrive volume name must be a non-empty string")
    if "\x00" in location:
        raise InvalidConfiguration(f"Hyperdrive volume name contains a NUL byte: {location!r}")
    if len(location) > MAX_VOLUME_NAME:
        raise InvalidConfiguration(f"Hyperdrive volume name longer than {MAX_VOLUME_NAME} characters")
    return location.strip()


def volume_id(name: str) -> str:
    return xxhash.xxh3_64_hexdigest(name.encode("utf-8"))


class HyperdriveHandle:
    """Session over every replica of one volume.

    Distinct handles never share replica connections, so they can be used
    from different threads concurrently.
    """

    def __init__(self, volume: str, replicas: list[Replica], write_quorum: int,
                 retry_config: RetryConfig):
        self.volume = volume
        self.replicas = replicas
        self.write_quorum = write_quorum
        self.retry_config = retry_config
        self.base = posixpath.join(VOLUMES_DIR, volume_id(volume))
        self._closed = False

    def _object_path(self, key: ContentKey) -> str:
        return posixpath.join(self.base, OBJECTS_DIR, str(shard_path(key)))

    def _marker_path(self) -> str:
        return posixpath.join(self.base, MARKER_FILE)

    def _call(self, replica: Replica, action: str, func: Callable[..., T], *args) -> T:
        op = RetryableOperation(f"{action} on {replica.name}", self.retry_config)
        return op.execute(func, *args)

    def _fan_out(self, action: str, func: Callable[[Replica], T]) -> tuple[list[tuple[Replica, T]], list[ReplicaUnavailable]]:
        results = []
        failures = []
        for replica in self.replicas:
            try:
                results.append((replica, self._call(replica, action, func, replica)))
            except ReplicaUnavailable as e:
                logger.warning(f"Replica {replica.name} unavailable during {action}: {e}")
                failures.append(e)
        return results, failures

    def _require_quorum(self, action: str, acknowledged: int, key: Optional[str],
                        failures: list[ReplicaUnavailable]) -> None:
        if acknowledged < self.write_quorum:
            detail = "; ".join(str(f) for f in failures)
            raise QuorumNotReached(
                f"{action} of {key or self.volume} acknowledged by {acknowledged}/{len(self.replicas)} "
                f"replicas, {self.write_quorum} required" + (f" ({detail})" if detail else ""),
                acknowledged=acknowledged, required=self.write_quorum, key=key,
            )

    def _holds_verified_copy(self, replica: Replica, rel_path: str, key: ContentKey) -> bool:
        try:
            data = replica.read_bytes(rel_path)
        except FileNotFoundError:
            return False
        if compute_key(data) != key:
            logger.warning(f"Replica {replica.name} holds a corrupt copy of {key}, rewriting")
            return False
        return True

    def put(self, key: ContentKey, source: BinaryIO) -> None:
        """Write key to every replica that lacks a verified copy.

        Replicas already holding a verified copy count towards the quorum
        without being rewritten.
        """
        rel_path = self._object_path(key)

        def write(replica: Replica) -> bool:
            if self._holds_verified_copy(replica, rel_path, key):
                return False
            source.seek(0)
            replica.write_atomic(rel_path, source)
            return True

        results, failures = self._fan_out(f"put {key}", write)
        self._require_quorum("put", len(results), key, failures)
        written = sum(1 for _, wrote in results if wrote)
        logger.debug(f"Stored {key} on {len(results)}/{len(self.replicas)} replicas of {self.volume} "
                     f"({written} written)")

    def get(self, key: ContentKey) -> BinaryIO:
        rel_path = self._object_path(key)
        failures = []
        for replica in random.sample(self.replicas, len(self.replicas)):
            try:
                data = self._call(replica, f"get {key}", replica.read_bytes, rel_path)
            except FileNotFoundError:
                continue
            except ReplicaUnavailable as e:
                failures.append(e)
                continue
            if compute_key(data) != key:
                logger.warning(f"Replica {replica.name} holds a corrupt copy of {key}, skipping")
                continue
            return io.BytesIO(data)
        if failures and len(failures) == len(self.replicas):
            raise BackendError(f"No replica reachable to read {key}: {failures[-1]}",
                               key=key, retry_possible=True)
        raise NotFound(key)

    def exists(self, key: ContentKey) -> bool:
        rel_path = self._object_path(key)
        failures = 0
        for replica in self.replicas:
            try:
                if self._call(replica, f"exists {key}", replica.exists, rel_path):
                    return True
            except ReplicaUnavailable as e:
                logger.warning(f"Replica {replica.name} unavailable during exists: {e}")
                failures += 1
        if failures == len(self.replicas):
            raise BackendError(f"No replica reachable to check {key}", key=key, retry_possible=True)
        return False

    def delete(self, key: ContentKey) -> None:
        """Remove key from every replica.

        A delete completes only when every replica answered; an unreachable
        replica may still hold the object, so the delete fails and must be
        repeated once it is back.
        """
        rel_path = self._object_path(key)
        results, failures = self._fan_out(f"delete {key}", lambda r: r.remove(rel_path))
        removed = sum(1 for _, was_present in results if was_present)
        if failures:
            detail = "; ".join(str(f) for f in failures)
            raise QuorumNotReached(
                f"delete of {key} acknowledged by {len(results)}/{len(self.replicas)} replicas, "
                f"all required ({detail})",
                acknowledged=len(results), required=len(self.replicas), key=key,
            )
        if removed == 0:
            raise NotFound(key)
        logger.debug(f"Deleted {key} from {removed} replica(s) of {self.volume}")

    def keys(self) -> Iterator[ContentKey]:
        objects = posixpath.join(self.base, OBJECTS_DIR)
        seen: set[str] = set()
        for replica in self.replicas:
            try:
                shards = self._call(replica, "list shards", replica.list_dir, objects)
                for shard in shards:
                    for name in self._call(replica, "list objects", replica.list_dir,
                                           posixpath.join(objects, shard)):
                        if is_valid_key(name):
                            seen.add(name)
            except ReplicaUnavailable as e:
                logger.warning(f"Replica {replica.name} unavailable while listing: {e}")
        for name in sorted(seen):
            yield ContentKey(name)

    def read_marker(self) -> Optional[RepositoryMarker]:
        failures = 0
        for replica in self.replicas:
            try:
                data = self._call(replica, "read marker", replica.read_bytes, self._marker_path())
            except FileNotFoundError:
                continue
            except ReplicaUnavailable as e:
                logger.warning(f"Replica {replica.name} unavailable while reading marker: {e}")
                failures += 1
                continue
            return RepositoryMarker.from_bytes(data, f"{replica.name}/{self._marker_path()}")
        if failures == len(self.replicas):
            raise BackendError(f"No replica reachable to look up volume '{self.volume}'",
                               path=self._marker_path(), retry_possible=True)
        return None

    def root_exists(self) -> bool:
        return self.read_marker() is not None

    def root_init(self, marker: RepositoryMarker) -> None:
        payload = marker.to_bytes()

        def write(replica: Replica) -> None:
            replica.write_atomic(self._marker_path(), io.BytesIO(payload))

        results, failures = self._fan_out(f"init volume {self.volume}", write)
        self._require_quorum("init", len(results), None, failures)
        logger.info(f"Registered hyperdrive volume '{self.volume}' on {len(results)} replica(s)")

    def is_healthy(self) -> bool:
        return not self._closed and any(replica.ping() for replica in self.replicas)

    def close(self) -> None:
        for replica in self.replicas:
            replica.close()
        self._closed = True


class HyperdriveDriver:
    """Driver for volumes in the replicated namespace."""

    kind = BackendKind.HYPERDRIVE

    def __init__(self, location: str, settings=None):
        self.location = validate_volume_name(location)
        replicas = list(settings.replicas) if settings is not None and settings.replicas else []
        if not replicas:
            replicas = [str(default_replica_root())]
        self.replica_uris = replicas
        self.key_filename = getattr(settings, "ssh_key", None)
        quorum = getattr(settings, "write_quorum", None)
        if quorum is None:
            quorum = len(replicas) // 2 + 1
        if not 1 <= quorum <= len(replicas):
            raise InvalidConfiguration(
                f"write_quorum must be between 1 and {len(replicas)}, got {quorum}")
        self.write_quorum = quorum
        attempts = getattr(settings, "retry_attempts", 3)
        self.retry_config = RetryConfig(max_attempts=attempts)
        # fail on malformed URIs at open time rather than on first use
        for uri in replicas:
            parse_replica(uri, self.key_filename)

    def connect(self) -> HyperdriveHandle:
        replicas = [parse_replica(uri, self.key_filename) for uri in self.replica_uris]
        return HyperdriveHandle(self.location, replicas, self.write_quorum, self.retry_config)

    def describe(self) -> str:
        return (f"hyperdrive volume '{self.location}' on {len(self.replica_uris)} replica(s), "
                f"write quorum {self.write_quorum}")
