"""Keyed Locks — in-process asyncio locks per course and per (course, teacher).

Invariants:
    - One live lock per key while anyone holds or waits on it
    - The entry is dropped when its last holder leaves, so the registry only
      contains keys with work in flight

Design Decisions:
    - Holder count kept next to the lock; registration and release happen with no await
      in between, so the count cannot race on a single event loop
    - Cross-process convergence is left to ON CONFLICT upserts
      (ADR: single advisory lock per course, no distributed lock service)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Hashable


class KeyedLocks:
    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._holders: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]


# Roster sync, coursework sync, course start and role assignment share one lock per course
course_locks = KeyedLocks()
cell_locks = KeyedLocks()


def course_lock(course_id: str):
    return course_locks.hold(course_id)


def cell_lock(course_id: str, teacher_id: str):
    return cell_locks.hold((course_id, teacher_id))
