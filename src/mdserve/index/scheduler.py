"""Periodic index rebuilds."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from mdserve.index.builder import IndexBuilder
from mdserve.models import BuildStats

LOGGER = logging.getLogger(__name__)

DEFAULT_INTERVAL = 60 * 60.0


class RebuildScheduler:
    """Runs the index builder now and then every ``interval`` seconds.

    Builds run in a worker thread so the event loop keeps serving requests.
    A failed cycle is logged and the schedule carries on. A build that is in
    progress when :meth:`stop` is called runs to completion before the task
    exits, so no worker thread outlives the scheduler.
    """

    def __init__(self, builder: IndexBuilder, *, interval: float = DEFAULT_INTERVAL) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.builder = builder
        self.interval = interval
        self._task: asyncio.Task[None] | None = None
        self._stopping: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> BuildStats | None:
        try:
            return await asyncio.to_thread(self.builder.build_index)
        except Exception:
            LOGGER.exception("Could not build index")
            return None

    async def _run(self, stopping: asyncio.Event) -> None:
        while not stopping.is_set():
            await self.run_once()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stopping.wait(), timeout=self.interval)

    def start(self) -> None:
        """Schedule the rebuild loop on the running event loop."""
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stopping), name="mdserve-index-rebuild")
        LOGGER.info("Index rebuilds scheduled every %.0fs", self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        if self._stopping is not None:
            self._stopping.set()
        await task
