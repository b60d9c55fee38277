# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/storage/replicas.py

"""
Replica transports for the hyperdrive (distributed) driver.

A replica is one copy of the distributed namespace, reached either on the
local filesystem or over SSH/SFTP. All paths handed to a replica are
relative POSIX paths under the replica root.
"""

import os
import posixpath
import socket
import stat
import uuid
from pathlib import Path
from typing import BinaryIO, Optional, Protocol
from urllib.parse import urlparse, unquote

import paramiko
from loguru import logger

from castore.system.exceptions import InvalidConfiguration, ReplicaUnavailable
from .atomic import atomic_write

TEMP_DIR = "tmp"


class Replica(Protocol):
    """Transport to one replica root"""

    name: str

    def read_bytes(self, rel_path: str) -> bytes:
        """Raises FileNotFoundError if absent, ReplicaUnavailable if unreachable"""
        ...

    def write_atomic(self, rel_path: str, source: BinaryIO) -> None:
        ...

    def exists(self, rel_path: str) -> bool:
        ...

    def remove(self, rel_path: str) -> bool:
        """Returns False if the path was already absent"""
        ...

    def list_dir(self, rel_path: str) -> list[str]:
        ...

    def ping(self) -> bool:
        ...

    def close(self) -> None:
        ...


class LocalReplica:
    """Replica rooted in a local (or network-mounted) directory"""

    def __init__(self, root: Path):
        self.root = root
        self.name = f"file://{root}"

    def _unavailable(self, action: str, rel_path: str, e: OSError) -> ReplicaUnavailable:
        return ReplicaUnavailable(f"{self.name}: {action} {rel_path} failed: {e}",
                                  replica=self.name, path=rel_path)

    def read_bytes(self, rel_path: str) -> bytes:
        try:
            return (self.root / rel_path).read_bytes()
        except FileNotFoundError:
            raise
        except OSError as e:
            raise self._unavailable("read", rel_path, e) from e

    def write_atomic(self, rel_path: str, source: BinaryIO) -> None:
        try:
            atomic_write(self.root / rel_path, source, self.root / TEMP_DIR)
        except OSError as e:
            raise self._unavailable("write", rel_path, e) from e

    def exists(self, rel_path: str) -> bool:
        try:
            return stat.S_ISREG(os.stat(self.root / rel_path).st_mode)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise self._unavailable("stat", rel_path, e) from e

    def remove(self, rel_path: str) -> bool:
        try:
            (self.root / rel_path).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise self._unavailable("remove", rel_path, e) from e

    def list_dir(self, rel_path: str) -> list[str]:
        try:
            return sorted(os.listdir(self.root / rel_path))
        except FileNotFoundError:
            return []
        except OSError as e:
            raise self._unavailable("list", rel_path, e) from e

    def ping(self) -> bool:
        return self.root.is_dir() and os.access(self.root, os.W_OK)

    def close(self) -> None:
        pass


_SSH_ERRORS = (paramiko.SSHException, EOFError, socket.error)


class SSHReplica:
    """Replica on a remote host, reached through paramiko SFTP.

    The SSH connection is opened lazily on first use and re-used until the
    handle owning this replica is closed.
    """

    def __init__(self, host: str, root: str, username: Optional[str] = None,
                 port: int = 22, key_filename: Optional[str] = None, timeout: float = 30.0):
        self.host = host
        self.root = root
        self.username = username
        self.port = port
        self.key_filename = key_filename
        self.timeout = timeout
        user_part = f"{username}@" if username else ""
        self.name = f"ssh://{user_part}{host}:{port}{root}"
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    def _connect(self) -> paramiko.SFTPClient:
        if self._sftp is not None:
            return self._sftp
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        connect_kwargs = {
            "hostname": self.host,
            "port": self.port,
            "timeout": self.timeout,
            "banner_timeout": self.timeout,
            "auth_timeout": self.timeout,
        }
        if self.username:
            connect_kwargs["username"] = self.username
        if self.key_filename:
            connect_kwargs["key_filename"] = self.key_filename
        try:
            client.connect(**connect_kwargs)
            self._sftp = client.open_sftp()
        except (*_SSH_ERRORS, OSError) as e:
            client.close()
            raise ReplicaUnavailable(f"SSH connection to {self.name} failed: {e}",
                                     replica=self.name) from e
        self._client = client
        logger.debug(f"Established SSH connection to {self.name}")
        return self._sftp

    def _remote(self, rel_path: str) -> str:
        return posixpath.join(self.root, rel_path)

    def _drop_connection(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._sftp = None

    def _unavailable(self, action: str, rel_path: str, e: Exception) -> ReplicaUnavailable:
        self._drop_connection()
        return ReplicaUnavailable(f"{self.name}: {action} {rel_path} failed: {e}",
                                  replica=self.name, path=rel_path)

    def _makedirs(self, sftp: paramiko.SFTPClient, remote_dir: str) -> None:
        parts = []
        current = remote_dir
        while current not in ("", "/"):
            try:
                sftp.stat(current)
                break
            except FileNotFoundError:
                parts.append(current)
                current = posixpath.dirname(current)
        for directory in reversed(parts):
            try:
                sftp.mkdir(directory)
            except OSError:
                # another writer may have created it meanwhile
                sftp.stat(directory)

    def read_bytes(self, rel_path: str) -> bytes:
        sftp = self._connect()
        try:
            with sftp.open(self._remote(rel_path), "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise
        except (*_SSH_ERRORS, OSError) as e:
            raise self._unavailable("read", rel_path, e) from e

    def write_atomic(self, rel_path: str, source: BinaryIO) -> None:
        sftp = self._connect()
        dest = self._remote(rel_path)
        temp_dir = self._remote(TEMP_DIR)
        temp_path = posixpath.join(temp_dir, f"staged-{uuid.uuid4().hex[:12]}")
        try:
            self._makedirs(sftp, temp_dir)
            self._makedirs(sftp, posixpath.dirname(dest))
            sftp.putfo(source, temp_path)
            sftp.posix_rename(temp_path, dest)
        except (*_SSH_ERRORS, OSError) as e:
            try:
                if self._sftp is not None:
                    self._sftp.remove(temp_path)
            except (*_SSH_ERRORS, OSError):
                pass
            raise self._unavailable("write", rel_path, e) from e

    def exists(self, rel_path: str) -> bool:
        sftp = self._connect()
        try:
            return stat.S_ISREG(sftp.stat(self._remote(rel_path)).st_mode)
        except FileNotFoundError:
            return False
        except (*_SSH_ERRORS, OSError) as e:
            raise self._unavailable("stat", rel_path, e) from e

    def remove(self, rel_path: str) -> bool:
        sftp = self._connect()
        try:
            sftp.remove(self._remote(rel_path))
            return True
        except FileNotFoundError:
            return False
        except (*_SSH_ERRORS, OSError) as e:
            raise self._unavailable("remove", rel_path, e) from e

    def list_dir(self, rel_path: str) -> list[str]:
        sftp = self._connect()
        try:
            return sorted(sftp.listdir(self._remote(rel_path)))
        except FileNotFoundError:
            return []
        except (*_SSH_ERRORS, OSError) as e:
            raise self._unavailable("list", rel_path, e) from e

    def ping(self) -> bool:
        if self._client is None:
            return True
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    def close(self) -> None:
        if self._sftp is not None:
            self._sftp.close()
        self._drop_connection()


def default_replica_root() -> Path:
    data_home = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(data_home) / "castore" / "hyperdrive"


def parse_replica(uri: str, key_filename: Optional[str] = None) -> Replica:
    """Build a replica from 'file:///path', a bare path, or 'ssh://user@host:port/path'."""
    if not uri or not uri.strip():
        raise InvalidConfiguration("Replica URI must not be empty")
    parsed = urlparse(uri)
    if parsed.scheme in ("", "file"):
        path = unquote(parsed.path) if parsed.scheme == "file" else uri
        if not path:
            raise InvalidConfiguration(f"Replica URI has no path: {uri}")
        return LocalReplica(Path(path).expanduser())
    if parsed.scheme == "ssh":
        if not parsed.hostname or not parsed.path:
            raise InvalidConfiguration(f"SSH replica URI needs a host and a path: {uri}")
        return SSHReplica(
            host=parsed.hostname,
            root=unquote(parsed.path),
            username=parsed.username,
            port=parsed.port or 22,
            key_filename=key_filename,
        )
    raise InvalidConfiguration(f"Unsupported replica scheme '{parsed.scheme}' in {uri}")
