# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/conftest.py

"""
Shared test fixtures for the castore test suite.
"""

from pathlib import Path

import pytest

from castore.config.manager import HyperdriveConfig
from castore.core.repository import Repository

from tests.fixtures.source_tree import create_source_tree


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path_factory, monkeypatch):
    """Keep config lookups and the default hyperdrive replica out of the real home directory."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_DATA_HOME", str(home / "data"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / "config"))
    monkeypatch.delenv("CASTORE_CONFIG_HOME", raising=False)
    return home


@pytest.fixture
def replica_roots(tmp_path) -> list[Path]:
    return [tmp_path / "replicas" / f"r{i}" for i in range(3)]


@pytest.fixture
def hyperdrive_settings(replica_roots) -> HyperdriveConfig:
    """Three local replicas, no retries so failure tests stay fast."""
    return HyperdriveConfig(replicas=[str(root) for root in replica_roots], retry_attempts=1)


@pytest.fixture
def fs_location(tmp_path) -> Path:
    return tmp_path / "storage"


@pytest.fixture
def fs_repo(fs_location):
    repo, created = Repository.open_or_create(str(fs_location), "fs", pool_size=4)
    assert created
    yield repo
    repo.close()


@pytest.fixture
def hd_repo(hyperdrive_settings):
    repo, created = Repository.open_or_create("test-volume", "hyperdrive", pool_size=4,
                                              hyperdrive=hyperdrive_settings)
    assert created
    yield repo
    repo.close()


@pytest.fixture(params=["fs", "hyperdrive"])
def any_repo(request, fs_location, hyperdrive_settings):
    """A fresh repository on each backend kind."""
    if request.param == "fs":
        repo, _ = Repository.open_or_create(str(fs_location), "fs", pool_size=4)
    else:
        repo, _ = Repository.open_or_create("any-volume", "hyperdrive", pool_size=4,
                                            hyperdrive=hyperdrive_settings)
    yield repo
    repo.close()


@pytest.fixture
def source_tree(tmp_path):
    """Directory with regular files, symlinks and nested directories."""
    return create_source_tree(tmp_path / "source")
