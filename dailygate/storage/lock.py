"""Per-key mutual exclusion for state that lives in the database.

Every read-modify-write of a user's gate state (and every append to that
user's audit chain) happens while holding the lock for ``(organization, user)``.
Locks are re-entrant so the audit logger can take the same key the gate
already holds. Entries are reference-counted and dropped once no thread holds
or waits on them, so the table does not grow with the number of users.
"""

from __future__ import annotations

import contextlib
import datetime
import logging
import threading
import typing as t

from dailygate.gate.errors import LockTimeout

logger = logging.getLogger(__name__)

LockKey = tuple[str, ...]


class _Entry(object):
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.refs = 0


class KeyedLockTable(object):
    def __init__(self, timeout: datetime.timedelta | None = None):
        self.timeout = timeout
        self._entries: dict[LockKey, _Entry] = {}
        self._guard = threading.Lock()

    @contextlib.contextmanager
    def hold(self, *key: str, timeout: datetime.timedelta | None = None) -> t.Iterator[None]:
        """Hold the lock for ``key``; raises ``LockTimeout`` if it is not acquired in time."""
        timeout = timeout if timeout is not None else self.timeout
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.refs += 1

        try:
            acquired = entry.lock.acquire(timeout=timeout.total_seconds() if timeout is not None else -1)
            if not acquired:
                logger.warning("lock wait timed out", extra={"key": key})
                raise LockTimeout(f"timed out waiting for lock {':'.join(key)}")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            with self._guard:
                entry.refs -= 1
                if entry.refs == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
