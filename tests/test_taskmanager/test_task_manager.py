"""Tests for the asyncio task manager."""

from __future__ import annotations

import asyncio

from handle_wallet.taskmanager import CronJob, TaskManager


async def _wait_for(predicate, timeout: float = 1.0) -> bool:
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


class TestTaskManagerLifecycle:
    async def test_start_stop(self) -> None:
        tm = TaskManager()
        assert tm.is_running is False
        await tm.start()
        assert tm.is_running is True
        await tm.stop()
        assert tm.is_running is False

    async def test_stop_idempotent(self) -> None:
        tm = TaskManager()
        await tm.stop()
        assert tm.is_running is False

    async def test_register_names_job(self) -> None:
        tm = TaskManager()

        async def handler() -> None:
            pass

        tm.register("poll:mainnet:alice", CronJob(handler=handler, period=60))
        assert tm.has_job("poll:mainnet:alice")
        assert tm.jobs["poll:mainnet:alice"].name == "poll:mainnet:alice"


class TestTaskManagerJobs:
    async def test_job_runs_periodically(self) -> None:
        calls: list[int] = []

        async def handler() -> None:
            calls.append(1)

        tm = TaskManager()
        tm.register("tick", CronJob(handler=handler, period=0.01))
        await tm.start()
        try:
            assert await _wait_for(lambda: len(calls) >= 3)
        finally:
            await tm.stop()

    async def test_register_while_running(self) -> None:
        calls: list[int] = []

        async def handler() -> None:
            calls.append(1)

        tm = TaskManager()
        await tm.start()
        try:
            tm.register("late", CronJob(handler=handler, period=0.01))
            assert await _wait_for(lambda: len(calls) >= 1)
        finally:
            await tm.stop()

    async def test_unregister_stops_job(self) -> None:
        calls: list[int] = []

        async def handler() -> None:
            calls.append(1)

        tm = TaskManager()
        tm.register("tick", CronJob(handler=handler, period=0.01))
        await tm.start()
        try:
            assert await _wait_for(lambda: len(calls) >= 1)
            await tm.unregister("tick")
            count = len(calls)
            await asyncio.sleep(0.05)
            assert len(calls) == count
            assert tm.has_job("tick") is False
        finally:
            await tm.stop()

    async def test_job_can_unregister_itself(self) -> None:
        tm = TaskManager()
        calls: list[int] = []

        async def handler() -> None:
            calls.append(1)
            await tm.unregister("once")

        tm.register("once", CronJob(handler=handler, period=0.01))
        await tm.start()
        try:
            await asyncio.sleep(0.1)
            assert calls == [1]
            assert tm.has_job("once") is False
        finally:
            await tm.stop()

    async def test_failing_job_keeps_running(self) -> None:
        calls: list[int] = []

        async def handler() -> None:
            calls.append(1)
            msg = "boom"
            raise RuntimeError(msg)

        tm = TaskManager()
        tm.register("flaky", CronJob(handler=handler, period=0.01))
        await tm.start()
        try:
            assert await _wait_for(lambda: len(calls) >= 2)
        finally:
            await tm.stop()

    async def test_replace_job(self) -> None:
        first: list[int] = []
        second: list[int] = []

        async def handler_a() -> None:
            first.append(1)

        async def handler_b() -> None:
            second.append(1)

        tm = TaskManager()
        await tm.start()
        try:
            tm.register("job", CronJob(handler=handler_a, period=0.01))
            tm.register("job", CronJob(handler=handler_b, period=0.01))
            assert await _wait_for(lambda: len(second) >= 2)
            assert first == []
        finally:
            await tm.stop()
