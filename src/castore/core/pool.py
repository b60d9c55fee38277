# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/castore/core/pool.py

"""
Bounded pool of backend handles.

At most ``size`` handles are open at any instant. Handles are created
lazily and reused; a caller that finds every handle leased waits until
one is released, or fails with PoolTimeout once its timeout elapses.
"""

import itertools
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from loguru import logger

from castore.system.exceptions import HandleBroken, PoolClosed, PoolTimeout, ReplicaUnavailable

BROKEN_ERRORS = (HandleBroken, ReplicaUnavailable, ConnectionError)


@dataclass
class PooledHandle:
    """A leased backend handle.

    The pool owns the underlying session; callers use ``session`` only
    between acquire() and release().
    """
    session: Any
    handle_id: int
    created_at: float = field(default_factory=time.time)
    uses: int = 0
    leased: bool = False


@dataclass
class PoolStats:
    size: int
    open: int
    leased: int
    idle: int
    created: int
    discarded: int


class ConnectionPool:
    """Thread-safe pool of sessions produced by ``factory``."""

    def __init__(self, factory: Callable[[], Any], size: int, timeout: Optional[float] = None):
        if not isinstance(size, int) or isinstance(size, bool) or size < 1:
            raise ValueError(f"Pool size must be a positive integer, got {size!r}")
        self.factory = factory
        self.size = size
        self.timeout = timeout
        self._slots = threading.BoundedSemaphore(size)
        self._lock = threading.Lock()
        self._idle: list[PooledHandle] = []
        self._open = 0
        self._leased = 0
        self._created = 0
        self._discarded = 0
        self._ids = itertools.count(1)
        self._closed = False

    def acquire(self, timeout: Optional[float] = None) -> PooledHandle:
        """Lease a handle, waiting for a free slot if all are leased.

        Args:
            timeout: Seconds to wait; falls back to the pool's default, None waits forever

        Raises:
            PoolTimeout: If no handle became free in time
            PoolClosed: If the pool was closed
        """
        if self._closed:
            raise PoolClosed("Connection pool is closed")
        wait = self.timeout if timeout is None else timeout
        if wait is None:
            acquired = self._slots.acquire()
        else:
            acquired = self._slots.acquire(timeout=wait)
        if not acquired:
            logger.debug(f"Pool timeout after {wait}s ({self.size} handles leased)")
            raise PoolTimeout(wait, self.size)

        try:
            with self._lock:
                if self._closed:
                    raise PoolClosed("Connection pool is closed")
                handle = self._idle.pop() if self._idle else None
                if handle is None:
                    # reserve the slot before the factory runs outside the lock
                    self._open += 1
            if handle is None:
                try:
                    session = self.factory()
                except Exception:
                    with self._lock:
                        self._open -= 1
                    raise
                handle = PooledHandle(session=session, handle_id=next(self._ids))
                with self._lock:
                    self._created += 1
                logger.debug(f"Opened pooled handle #{handle.handle_id} ({self._open}/{self.size})")
        except BaseException:
            self._slots.release()
            raise

        with self._lock:
            self._leased += 1
        handle.leased = True
        handle.uses += 1
        return handle

    def release(self, handle: PooledHandle, discard: bool = False) -> None:
        """Return a leased handle; discard closes it instead of keeping it for reuse."""
        if not handle.leased:
            raise ValueError(f"Handle #{handle.handle_id} is not leased")
        handle.leased = False
        close_it = discard or self._closed
        with self._lock:
            self._leased -= 1
            if close_it:
                self._open -= 1
                if discard:
                    self._discarded += 1
            else:
                self._idle.append(handle)
        if close_it:
            self._close_session(handle)
            if discard:
                logger.debug(f"Discarded pooled handle #{handle.handle_id}")
        self._slots.release()

    @contextmanager
    def lease(self, timeout: Optional[float] = None) -> Iterator[Any]:
        """Lease a session for the duration of the block.

        The session is discarded when the block raises a broken-handle error
        or the session reports itself unhealthy afterwards.
        """
        handle = self.acquire(timeout)
        discard = False
        try:
            yield handle.session
        except BROKEN_ERRORS:
            discard = True
            raise
        except Exception:
            discard = not self._is_healthy(handle)
            raise
        finally:
            self.release(handle, discard=discard)

    def _is_healthy(self, handle: PooledHandle) -> bool:
        check = getattr(handle.session, "is_healthy", None)
        if check is None:
            return True
        try:
            return bool(check())
        except Exception as e:
            logger.debug(f"Health check of handle #{handle.handle_id} failed: {e}")
            return False

    def _close_session(self, handle: PooledHandle) -> None:
        close = getattr(handle.session, "close", None)
        if close is None:
            return
        try:
            close()
        except Exception as e:
            logger.warning(f"Error closing pooled handle #{handle.handle_id}: {e}")

    def stats(self) -> PoolStats:
        with self._lock:
            return PoolStats(
                size=self.size,
                open=self._open,
                leased=self._leased,
                idle=len(self._idle),
                created=self._created,
                discarded=self._discarded,
            )

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close idle handles; leased handles are closed when released."""
        with self._lock:
            self._closed = True
            idle, self._idle = self._idle, []
            self._open -= len(idle)
        for handle in idle:
            self._close_session(handle)
        if idle:
            logger.debug(f"Closed {len(idle)} idle pooled handle(s)")
