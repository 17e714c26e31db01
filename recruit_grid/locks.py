from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

from recruit_grid.errors import conflict


class KeyedLock:
    """One mutex per key, created on demand and dropped when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, ...], threading.Lock] = {}
        self._refs: dict[tuple[str, ...], int] = {}

    @contextmanager
    def hold(self, *key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._refs[key] = self._refs.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)


class ClientGate:
    """Shared/exclusive admission per client name.

    Regular operations enter a shared slot; rename and delete of a client take
    the exclusive slot. Shared entry while a client is held exclusively fails
    fast with a retryable conflict; exclusive entry waits for in-flight shared
    slots to drain, up to ``timeout_s``.
    """

    def __init__(self, *, timeout_s: float = 5.0) -> None:
        self._cond = threading.Condition()
        self._shared: dict[str, int] = {}
        self._exclusive: set[str] = set()
        self.timeout_s = timeout_s

    @contextmanager
    def shared(self, client_id: str) -> Iterator[None]:
        with self._cond:
            if client_id in self._exclusive:
                raise conflict(
                    "client is being migrated; retry shortly",
                    code="CLIENT_MIGRATING",
                    retryable=True,
                )
            self._shared[client_id] = self._shared.get(client_id, 0) + 1
        try:
            yield
        finally:
            with self._cond:
                self._shared[client_id] -= 1
                if self._shared[client_id] == 0:
                    del self._shared[client_id]
                self._cond.notify_all()

    @contextmanager
    def exclusive(self, *client_ids: str) -> Iterator[None]:
        keys = sorted(set(client_ids))
        with self._cond:
            if any(key in self._exclusive for key in keys):
                raise conflict(
                    "client is being migrated; retry shortly",
                    code="CLIENT_MIGRATING",
                    retryable=True,
                )
            self._exclusive.update(keys)
            deadline = time.monotonic() + self.timeout_s
            while any(self._shared.get(key) for key in keys):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._exclusive.difference_update(keys)
                    self._cond.notify_all()
                    raise conflict(
                        "client is busy; retry shortly",
                        code="CLIENT_BUSY",
                        retryable=True,
                    )
                self._cond.wait(remaining)
        try:
            yield
        finally:
            with self._cond:
                self._exclusive.difference_update(keys)
                self._cond.notify_all()

    def is_exclusive(self, client_id: str) -> bool:
        with self._cond:
            return client_id in self._exclusive
