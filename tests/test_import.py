# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_import.py

import os
import threading

import orjson
import pytest

import castore.core.importer as importer
from castore.core.importer import ImportManifest, scan_source
from castore.core.keys import compute_key
from castore.core.repository import Repository
from castore.system.exceptions import (
    ImportCancelled, ImportFailed, ImportRejected, InvalidConfiguration
)


def test_scan_source_order_and_skips(source_tree):
    files, skipped = scan_source(source_tree.root)
    assert [str(f) for f in files] == sorted(source_tree.files)
    assert skipped == sorted(source_tree.symlinks)


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs FIFO support")
def test_scan_source_skips_fifo(source_tree):
    os.mkfifo(source_tree.root / "pipe")
    files, skipped = scan_source(source_tree.root)
    assert "pipe" in skipped
    assert all(str(f) != "pipe" for f in files)


def test_import_into_new_repository(any_repo, source_tree):
    manifest = any_repo.import_directory(source_tree.root)

    assert len(manifest) == 6
    assert [entry.path for entry in manifest] == sorted(source_tree.files)
    for rel_path, key in manifest.pairs():
        assert key == compute_key(source_tree.files[rel_path])
        assert any_repo.get_bytes(key) == source_tree.files[rel_path]
    assert manifest.skipped == sorted(source_tree.symlinks)
    assert manifest.total_size == sum(len(data) for data in source_tree.files.values())


def test_identical_files_share_one_object(fs_repo, source_tree):
    manifest = fs_repo.import_directory(source_tree.root)
    pairs = dict(manifest.pairs())
    assert pairs["output/result.txt"] == pairs["output/copy-of-result.txt"]
    assert len(list(fs_repo.keys())) == 5


def test_import_with_single_worker(fs_location, source_tree):
    repo, _ = Repository.open_or_create(str(fs_location), "fs", pool_size=1)
    with repo:
        manifest = repo.import_directory(source_tree.root)
    assert len(manifest) == 6


def test_import_accepts_string_path(fs_repo, source_tree):
    manifest = fs_repo.import_directory(str(source_tree.root))
    assert manifest.source == str(source_tree.root)


def test_empty_source_directory(fs_repo, tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    manifest = fs_repo.import_directory(empty)
    assert len(manifest) == 0
    assert manifest.skipped == []


def test_source_not_a_directory(fs_repo, tmp_path):
    with pytest.raises(InvalidConfiguration):
        fs_repo.import_directory(tmp_path / "missing")


def test_unreadable_file_fails_import(fs_repo, source_tree, monkeypatch):
    real_open = importer._open_source

    def open_source(path):
        if path.name == "deep.bin":
            raise PermissionError(f"Permission denied: {path}")
        return real_open(path)

    monkeypatch.setattr(importer, "_open_source", open_source)

    with pytest.raises(ImportFailed) as excinfo:
        fs_repo.import_directory(source_tree.root)

    error = excinfo.value
    assert error.path == "input/nested/deep.bin"
    assert isinstance(error.__cause__, PermissionError)
    assert "input/nested/deep.bin" not in [entry.path for entry in error.manifest]
    for rel_path, key in error.manifest.pairs():
        assert fs_repo.exists(key)


def test_cancel_before_start(fs_repo, source_tree):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ImportCancelled) as excinfo:
        fs_repo.import_directory(source_tree.root, cancel=cancel)
    assert len(excinfo.value.manifest) == 0
    assert fs_repo.is_empty()


def test_cancel_midway(fs_location, source_tree, monkeypatch):
    cancel = threading.Event()
    real_open = importer._open_source

    def open_then_cancel(path):
        cancel.set()
        return real_open(path)

    monkeypatch.setattr(importer, "_open_source", open_then_cancel)
    repo, _ = Repository.open_or_create(str(fs_location), "fs", pool_size=1)
    with repo:
        with pytest.raises(ImportCancelled) as excinfo:
            repo.import_directory(source_tree.root, cancel=cancel)
    # with one worker exactly one file starts before the flag is seen
    assert len(excinfo.value.manifest) == 1


def test_import_rejected_into_existing_repository(fs_location, source_tree):
    repo, _ = Repository.open_or_create(str(fs_location), "fs", pool_size=2)
    repo.put(b"already here")
    repo.close()

    existing, created = Repository.open_or_create(str(fs_location), "fs", pool_size=2)
    with existing:
        assert not created
        with pytest.raises(ImportRejected):
            existing.import_directory(source_tree.root)


def test_import_allowed_into_existing_empty_repository(fs_location, source_tree):
    repo, _ = Repository.open_or_create(str(fs_location), "fs", pool_size=2)
    repo.close()

    existing, created = Repository.open_or_create(str(fs_location), "fs", pool_size=2)
    with existing:
        assert not created
        manifest = existing.import_directory(source_tree.root)
    assert len(manifest) == 6


def test_in_flight_bounded_by_pool_size(fs_location, source_tree, monkeypatch):
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}
    real_import_one = importer._import_one

    def tracked(repo, source_dir, rel_path):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        try:
            return real_import_one(repo, source_dir, rel_path)
        finally:
            with lock:
                state["active"] -= 1

    monkeypatch.setattr(importer, "_import_one", tracked)
    repo, _ = Repository.open_or_create(str(fs_location), "fs", pool_size=2)
    with repo:
        repo.import_directory(source_tree.root)
    assert 1 <= state["peak"] <= 2


def test_manifest_json(fs_repo, source_tree):
    manifest = fs_repo.import_directory(source_tree.root)
    data = orjson.loads(manifest.to_json())
    assert data["source"] == str(source_tree.root)
    assert [entry["path"] for entry in data["entries"]] == sorted(source_tree.files)
    assert ImportManifest.model_validate(data) == manifest
