"""Fire-and-forget execution of update sequences."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Protocol

from rollout_sidecar.logging import get_logger

log = get_logger("rollout_sidecar.tasks")

Work = Callable[[], Awaitable[None]]


class TaskRunner(Protocol):
    """Submits a unit of work to run independently of the caller."""

    async def submit(self, work: Work, *, name: str = "") -> None: ...


class BackgroundTaskRunner:
    """Runs each unit of work on a detached asyncio task.

    Task references are retained until completion; the event loop only
    keeps weak references to running tasks.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def submit(self, work: Work, *, name: str = "") -> None:
        task = asyncio.create_task(self._run(work, name), name=name or None)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait(self) -> None:
        """Wait for all in-flight work to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @staticmethod
    async def _run(work: Work, name: str) -> None:
        try:
            await work()
        except Exception:
            log.exception("background_task_failed", task=name)


class InlineTaskRunner:
    """Runs work to completion before ``submit`` returns."""

    async def submit(self, work: Work, *, name: str = "") -> None:
        await work()
