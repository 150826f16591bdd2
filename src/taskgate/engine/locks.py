"""Per-task asyncio locks."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID


class TaskLockRegistry:
    """Hands out one lock per task id; entries are dropped once nobody holds or waits."""

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._users: dict[UUID, int] = {}

    @asynccontextmanager
    async def hold(self, task_id: UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(task_id, asyncio.Lock())
        self._users[task_id] = self._users.get(task_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[task_id] -= 1
            if self._users[task_id] == 0:
                del self._users[task_id]
                del self._locks[task_id]

    def __len__(self) -> int:
        return len(self._locks)
