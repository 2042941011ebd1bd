"""Per-task mutual exclusion for read-modify-write sequences on a task."""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class TaskLockRegistry:
    """Hands out one asyncio.Lock per task id.

    Entries are dropped once nobody holds or waits on them, so the registry
    only ever contains tasks that are being worked on. Locks are kept per
    event loop because an asyncio.Lock is bound to the loop that uses it.
    """

    def __init__(self) -> None:
        self._by_loop: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[str, _LockEntry]] = (
            weakref.WeakKeyDictionary()
        )

    def _entries(self) -> dict[str, _LockEntry]:
        loop = asyncio.get_running_loop()
        entries = self._by_loop.get(loop)
        if entries is None:
            entries = {}
            self._by_loop[loop] = entries
        return entries

    @asynccontextmanager
    async def hold(self, task_id: str) -> AsyncIterator[None]:
        """Hold the lock for a task for the duration of the block."""
        entries = self._entries()
        entry = entries.get(task_id)
        if entry is None:
            entry = _LockEntry()
            entries[task_id] = entry

        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                entries.pop(task_id, None)

    def active_count(self) -> int:
        """Number of tasks currently locked or awaited in this loop."""
        return len(self._entries())


# Global registry instance
task_locks = TaskLockRegistry()
