"""Task manager lifecycle — start, stop, schedule.

The ``TaskManager`` owns a set of ``CronJob`` definitions and runs them
on asyncio background tasks. Each job has a ``period`` (seconds) and a
handler coroutine; the first run happens one period after scheduling.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CronJob:
    """A recurring background job."""

    handler: Callable[[], Awaitable[None]]
    period: float  # seconds
    name: str = ""


class TaskManager:
    """Manages asyncio-based cron jobs.

    Usage::

        tm = TaskManager()
        tm.register("poll:mainnet:alice", CronJob(handler=..., period=3))
        await tm.start()
        ...
        await tm.unregister("poll:mainnet:alice")
        await tm.stop()
    """

    def __init__(self) -> None:
        self._jobs: dict[str, CronJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the task manager is currently running."""
        return self._running

    @property
    def jobs(self) -> dict[str, CronJob]:
        """Registered jobs (name → CronJob)."""
        return dict(self._jobs)

    def has_job(self, name: str) -> bool:
        return name in self._jobs

    def register(self, name: str, job: CronJob) -> None:
        """Register a cron job.  Can be called before or after start().

        If the manager is already running the job is started immediately.
        Registering an existing name replaces that job.
        """
        resolved = CronJob(handler=job.handler, period=job.period, name=name)
        previous = self._tasks.pop(name, None)
        if previous is not None:
            previous.cancel()
        self._jobs[name] = resolved
        if self._running:
            self._tasks[name] = asyncio.create_task(self._run_loop(resolved))

    async def unregister(self, name: str) -> None:
        """Remove a job and cancel its task, waiting for it to finish."""
        self._jobs.pop(name, None)
        task = self._tasks.pop(name, None)
        if task is None or task is asyncio.current_task():
            # A job unregistering itself just lets its loop see the removal.
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def start(self) -> None:
        """Start all registered cron jobs."""
        if self._running:
            return
        self._running = True
        for name, job in self._jobs.items():
            self._tasks[name] = asyncio.create_task(self._run_loop(job))
        logger.info("TaskManager started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Cancel all running jobs and wait for cleanup."""
        if not self._running:
            return
        self._running = False
        for task in self._tasks.values():
            task.cancel()
        results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        for r in results:
            if isinstance(r, Exception) and not isinstance(r, asyncio.CancelledError):
                logger.error("Task error during shutdown: %s", r)
        self._tasks.clear()
        logger.info("TaskManager stopped")

    async def _run_loop(self, job: CronJob) -> None:
        """Repeatedly execute *job* every *job.period* seconds."""
        name = job.name or "unnamed"
        while self._running and self._jobs.get(name) is job:
            try:
                await asyncio.sleep(job.period)
                if not self._running or self._jobs.get(name) is not job:
                    break
                await job.handler()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Cron job %r failed", name)
