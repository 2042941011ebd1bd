"""Tests for per-task locking."""

import asyncio

import pytest

from shamebot.core.task_locks import TaskLockRegistry


@pytest.mark.unit
class TestTaskLockRegistry:
    """One lock per task id, dropped once unused."""

    async def test_same_task_is_serialised(self):
        registry = TaskLockRegistry()
        events = []

        async def worker(name: str) -> None:
            async with registry.hold("1"):
                events.append(f"{name} in")
                await asyncio.sleep(0)
                events.append(f"{name} out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events == ["a in", "a out", "b in", "b out"]

    async def test_different_tasks_do_not_block_each_other(self):
        registry = TaskLockRegistry()

        async with registry.hold("1"):
            async with asyncio.timeout(1):
                async with registry.hold("2"):
                    assert registry.active_count() == 2

    async def test_entries_are_dropped_when_released(self):
        registry = TaskLockRegistry()

        async with registry.hold("1"):
            assert registry.active_count() == 1

        assert registry.active_count() == 0

    async def test_entry_survives_while_someone_waits(self):
        registry = TaskLockRegistry()
        release = asyncio.Event()

        async def holder() -> None:
            async with registry.hold("1"):
                await release.wait()

        async def waiter() -> None:
            async with registry.hold("1"):
                pass

        holding = asyncio.create_task(holder())
        await asyncio.sleep(0)
        waiting = asyncio.create_task(waiter())
        await asyncio.sleep(0)

        assert registry.active_count() == 1
        release.set()
        await asyncio.gather(holding, waiting)
        assert registry.active_count() == 0
