# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/core/keys.py

"""
Content keys: the only addressing scheme of a repository.

A key is the xxHash3-128 digest of an object's bytes, rendered as 32
lowercase hex characters. Identical content always yields the same key.
"""

import re
from pathlib import PurePosixPath
from typing import BinaryIO, Callable, NewType, Optional

import xxhash

from castore.system.exceptions import InvalidContentKey

ContentKey = NewType("ContentKey", str)

KEY_LENGTH = 32
CHUNK_SIZE = 64 * 1024

_KEY_RE = re.compile(r"^[0-9a-f]{32}$")


def new_hasher():
    return xxhash.xxh3_128()


def compute_key(data: bytes) -> ContentKey:
    """Calculate the content key for an in-memory byte string"""
    return ContentKey(xxhash.xxh3_128_hexdigest(data))


def hash_stream(reader: BinaryIO, sink: Optional[Callable[[bytes], object]] = None,
                chunk_size: int = CHUNK_SIZE) -> tuple[ContentKey, int]:
    """Hash a binary stream in chunks, optionally copying every chunk to sink.

    Returns:
        (key, size in bytes)
    """
    h = new_hasher()
    size = 0
    for chunk in iter(lambda: reader.read(chunk_size), b''):
        h.update(chunk)
        size += len(chunk)
        if sink is not None:
            sink(chunk)
    return ContentKey(h.hexdigest()), size


def is_valid_key(value: object) -> bool:
    return isinstance(value, str) and bool(_KEY_RE.match(value))


def validate_key(value: object) -> ContentKey:
    """Return value as a ContentKey, raising InvalidContentKey if malformed."""
    if not is_valid_key(value):
        raise InvalidContentKey(f"Malformed content key: {value!r}")
    return ContentKey(value)


def shard_path(key: ContentKey, depth: int = 1, width: int = 2) -> PurePosixPath:
    """Relative path of an object, fanned out by leading hex characters.

    >>> str(shard_path(ContentKey("ab" + "0" * 30)))
    'ab/ab000000000000000000000000000000'
    """
    parts = [key[i * width:(i + 1) * width] for i in range(depth)]
    return PurePosixPath(*parts, key)
