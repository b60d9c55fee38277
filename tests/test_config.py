# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_config.py

from pathlib import Path

import pytest
import yaml

from castore.config.manager import (
    DEFAULT_POOL_SIZE, DEFAULT_STORAGE, DEFAULT_STORAGE_TYPE, USER_CFG,
    HyperdriveConfig, StoreConfig
)
from castore.system.exceptions import InvalidConfiguration


def write_config(directory: Path, data: dict) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / USER_CFG
    path.write_text(yaml.safe_dump(data))
    return path


def test_defaults_without_config_files():
    cfg = StoreConfig.load()
    assert cfg.storage == DEFAULT_STORAGE
    assert cfg.storage_type == DEFAULT_STORAGE_TYPE == "hyperdrive"
    assert cfg.pool_size == DEFAULT_POOL_SIZE
    assert cfg.pool_timeout is None
    assert cfg.hyperdrive.replicas == []
    assert cfg.hyperdrive.write_quorum is None


def test_user_config_loaded(isolated_environment):
    write_config(isolated_environment / "config" / "castore",
                 {"storage": "/srv/store", "storage_type": "fs", "pool_size": 3})
    cfg = StoreConfig.load()
    assert cfg.storage == "/srv/store"
    assert cfg.storage_type == "fs"
    assert cfg.pool_size == 3


def test_castore_config_home_overrides_user_config(isolated_environment, tmp_path, monkeypatch):
    write_config(isolated_environment / "config" / "castore",
                 {"storage": "/srv/user", "pool_size": 3, "hyperdrive": {"retry_attempts": 5}})
    override_dir = tmp_path / "override"
    write_config(override_dir, {"storage": "/srv/override", "hyperdrive": {"write_quorum": 2}})
    monkeypatch.setenv("CASTORE_CONFIG_HOME", str(override_dir))

    cfg = StoreConfig.load()
    assert cfg.storage == "/srv/override"
    assert cfg.pool_size == 3
    assert cfg.hyperdrive.retry_attempts == 5
    assert cfg.hyperdrive.write_quorum == 2


def test_explicit_config_file_wins(isolated_environment, tmp_path):
    write_config(isolated_environment / "config" / "castore", {"storage": "/srv/user"})
    explicit = write_config(tmp_path / "explicit", {"storage": "/srv/explicit"})
    assert StoreConfig.load(explicit).storage == "/srv/explicit"


def test_explicit_config_file_missing(tmp_path):
    with pytest.raises(InvalidConfiguration, match="not found"):
        StoreConfig.load(tmp_path / "nope.yml")


def test_overrides_beat_files_and_none_is_ignored(tmp_path):
    explicit = write_config(tmp_path, {"storage": "/srv/file", "pool_size": 2})
    cfg = StoreConfig.load(explicit, storage="/srv/cli", pool_size=None)
    assert cfg.storage == "/srv/cli"
    assert cfg.pool_size == 2


def test_storage_type_dash_spelling(tmp_path):
    explicit = write_config(tmp_path, {"storage-type": "fs"})
    assert StoreConfig.load(explicit).storage_type == "fs"


@pytest.mark.parametrize("data", [
    {"pool_size": 0},
    {"pool_size": -3},
    {"pool_size": "many"},
    {"pool_timeout": 0},
    {"hyperdrive": {"write_quorum": 0}},
    {"hyperdrive": {"retry_attempts": 50}},
])
def test_invalid_values(data):
    with pytest.raises(InvalidConfiguration):
        StoreConfig.from_data(data)


def test_config_must_be_mapping(tmp_path):
    path = tmp_path / USER_CFG
    path.write_text("- just\n- a list\n")
    with pytest.raises(InvalidConfiguration, match="mapping"):
        StoreConfig.load(path)


def test_malformed_yaml(tmp_path):
    path = tmp_path / USER_CFG
    path.write_text("storage: [unclosed\n")
    with pytest.raises(InvalidConfiguration):
        StoreConfig.load(path)


def test_save_and_reload(tmp_path):
    cfg = StoreConfig(
        storage="archive",
        storage_type="hyperdrive",
        pool_size=5,
        hyperdrive=HyperdriveConfig(replicas=["/mnt/a", "ssh://joe@backup/srv/castore"], write_quorum=1),
    )
    path = tmp_path / USER_CFG
    cfg.save(path)
    assert StoreConfig.load(path) == cfg
