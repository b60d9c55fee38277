# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/fixtures/source_tree.py

"""
Builders for directory trees used by the import tests.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class SourceTree:
    root: Path
    files: dict[str, bytes] = field(default_factory=dict)
    symlinks: list[str] = field(default_factory=list)


def create_source_tree(root: Path) -> SourceTree:
    """Create a tree with 6 regular files (one empty, two identical) and 3 symlinks."""
    tree = SourceTree(root=root)
    contents = {
        "README.md": b"# Imported project\n",
        "input/data.csv": b"id,name\n1,Alice\n2,Bob\n",
        "input/nested/deep.bin": bytes(range(256)) * 64,
        "output/result.txt": b"analysis result",
        "output/copy-of-result.txt": b"analysis result",
        "empty.txt": b"",
    }
    for rel_path, data in contents.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        tree.files[rel_path] = data

    links = {
        "link-to-readme": "README.md",
        "input/link-to-data.csv": "data.csv",
        "linked-dir": "input",
    }
    for rel_path, target in links.items():
        os.symlink(target, root / rel_path)
        tree.symlinks.append(rel_path)
    return tree
