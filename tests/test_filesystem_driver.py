# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_filesystem_driver.py

import io
import os
from unittest.mock import patch

import pytest

from castore.core.keys import compute_key
from castore.storage.filesystem import FilesystemDriver, MARKER_FILE
from castore.storage.protocols import BackendKind, RepositoryMarker
from castore.system.exceptions import BackendError, InvalidConfiguration, NotFound


@pytest.fixture
def handle(tmp_path):
    driver = FilesystemDriver(str(tmp_path / "repo"))
    h = driver.connect()
    h.root_init(RepositoryMarker(backend="fs", location=driver.location))
    yield h
    h.close()


def test_driver_kind_and_description(tmp_path):
    driver = FilesystemDriver(str(tmp_path / "repo"))
    assert driver.kind == BackendKind.FS
    assert "repo" in driver.describe()


@pytest.mark.parametrize("location", ["", "   ", "bad\x00path"])
def test_invalid_location(location):
    with pytest.raises(InvalidConfiguration):
        FilesystemDriver(location)


def test_location_that_is_a_file(tmp_path):
    path = tmp_path / "not-a-dir"
    path.write_text("x")
    with pytest.raises(InvalidConfiguration, match="not a directory"):
        FilesystemDriver(str(path))


def test_root_exists_requires_marker(tmp_path):
    root = tmp_path / "repo"
    root.mkdir()
    h = FilesystemDriver(str(root)).connect()
    assert not h.root_exists()
    assert h.read_marker() is None
    h.root_init(RepositoryMarker(backend="fs", location=str(root)))
    assert h.root_exists()
    assert (root / MARKER_FILE).is_file()
    assert (root / "objects").is_dir()
    assert h.read_marker().backend == "fs"


def test_corrupt_marker(tmp_path):
    root = tmp_path / "repo"
    root.mkdir()
    (root / MARKER_FILE).write_text("{not json")
    h = FilesystemDriver(str(root)).connect()
    with pytest.raises(InvalidConfiguration, match="Corrupt repository marker"):
        h.read_marker()


def test_put_get_sharded_layout(handle):
    data = b"sharded content"
    key = compute_key(data)
    handle.put(key, io.BytesIO(data))

    path = handle.root / "objects" / key[:2] / key
    assert path.read_bytes() == data
    with handle.get(key) as reader:
        assert reader.read() == data
    assert handle.exists(key)


def test_put_leaves_no_temp_files(handle):
    key = compute_key(b"abc")
    handle.put(key, io.BytesIO(b"abc"))
    assert list((handle.root / "tmp").iterdir()) == []


def test_failed_write_leaves_nothing_visible(handle):
    key = compute_key(b"will fail")

    class ExplodingReader(io.BytesIO):
        def read(self, *args):
            raise OSError("disk full")

    with pytest.raises(BackendError) as excinfo:
        handle.put(key, ExplodingReader(b"will fail"))
    assert excinfo.value.key == key
    assert not handle.exists(key)
    assert list((handle.root / "tmp").iterdir()) == []


def test_rename_failure_cleans_staging(handle):
    key = compute_key(b"rename")
    with patch("castore.storage.atomic.os.replace", side_effect=OSError("cross-device link")):
        with pytest.raises(BackendError, match="cross-device"):
            handle.put(key, io.BytesIO(b"rename"))
    assert not handle.exists(key)
    assert list((handle.root / "tmp").iterdir()) == []


def test_get_missing_raises_not_found(handle):
    with pytest.raises(NotFound):
        handle.get(compute_key(b"absent"))


def test_delete(handle):
    key = compute_key(b"to delete")
    handle.put(key, io.BytesIO(b"to delete"))
    handle.delete(key)
    assert not handle.exists(key)
    with pytest.raises(NotFound):
        handle.delete(key)


def test_keys_lists_only_objects(handle):
    stored = set()
    for i in range(5):
        data = f"object {i}".encode()
        key = compute_key(data)
        handle.put(key, io.BytesIO(data))
        stored.add(key)
    # stray files are not objects
    (handle.root / "objects" / "zz").mkdir()
    (handle.root / "objects" / "zz" / "notes.txt").write_text("x")
    assert set(handle.keys()) == stored


def test_open_reader_survives_delete(handle):
    data = b"still readable"
    key = compute_key(data)
    handle.put(key, io.BytesIO(data))
    reader = handle.get(key)
    handle.delete(key)
    if os.name == "posix":
        assert reader.read() == data
    reader.close()
