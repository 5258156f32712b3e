"""Per-entity mutual exclusion."""

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0  # holders plus waiters


class KeyedLock:
    """One lock per key (job id, user id), created on demand.

    Multiple keys are always acquired in sorted order so two callers
    locking overlapping sets cannot deadlock. A key's lock is dropped once
    nobody holds or waits for it, so the table only grows with concurrency,
    not with the number of keys ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _Entry()
                self._locks[key] = entry
            entry.users += 1
            return entry.lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """Acquire the locks for all keys for the duration of the block."""
        with self.hold_all(keys):
            yield

    @contextmanager
    def hold_all(self, keys: Iterable[str]) -> Iterator[None]:
        ordered = sorted(set(k for k in keys if k))
        acquired: list[tuple[str, threading.RLock]] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)
