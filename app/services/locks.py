from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

LockKey = tuple[str, str]


def room_key(room_id: int) -> LockKey:
    return ("room", str(room_id))


def teacher_key(teacher_id: int) -> LockKey:
    return ("teacher", str(teacher_id))


def series_key(recurrence_id: str) -> LockKey:
    return ("series", recurrence_id)


class ResourceLocks:
    """
    Per-room, per-teacher and per-series mutexes for one process.

    A scheduling operation holds the locks of every resource it touches for
    the whole expand -> check -> persist sequence, so two operations on the
    same room, teacher or series are serialized and the later one sees what
    the earlier one committed. Keys are always taken in sorted order.

    A key stays registered only while some operation holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[LockKey, asyncio.Lock] = {}
        self._users: dict[LockKey, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, key: LockKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: LockKey) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, keys: Iterable[LockKey]) -> AsyncIterator[None]:
        ordered = sorted(set(keys))
        locks = [self._checkout(key) for key in ordered]
        acquired: list[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._checkin(key)
