"""Periodic driver for coordinator ticks."""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class OverlapPolicy(str, Enum):
    """What to do when a tick is due while the previous one still runs."""

    SKIP = "skip"
    ALLOW = "allow"


class TickScheduler:
    """Calls ``tick_fn`` every ``interval`` seconds.

    Ticks start on a fixed cadence. With ``OverlapPolicy.SKIP`` a tick that is
    due while another is still running is skipped; with ``OverlapPolicy.ALLOW``
    it starts anyway and the two run side by side.
    """

    def __init__(
        self,
        tick_fn: Callable[[], Awaitable[Any]],
        interval: float = 10.0,
        overlap: OverlapPolicy = OverlapPolicy.SKIP,
        name: str = "coordinator",
    ):
        if interval <= 0:
            raise ValueError(f"Tick interval must be positive, got {interval}")
        self.tick_fn = tick_fn
        self.interval = interval
        self.overlap = OverlapPolicy(overlap)
        self.name = name
        self.ticks_started = 0
        self.ticks_skipped = 0
        self._running = False
        self._stop: Optional[asyncio.Event] = None
        self._in_flight: set[asyncio.Task] = set()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self) -> Any:
        """Run a single tick, logging (not raising) its failure."""
        try:
            return await self.tick_fn()
        except Exception as e:
            logger.error(f"{self.name} tick failed: {e}")
            return None

    async def run(self) -> None:
        """Tick until stop() is called, then wait for in-flight ticks."""
        if self._stop is None:
            self._stop = asyncio.Event()
        self._running = True
        logger.info(
            f"Starting {self.name} scheduler (interval: {self.interval}s, "
            f"overlap: {self.overlap.value})"
        )

        try:
            while not self._stop.is_set():
                if self._in_flight and self.overlap is OverlapPolicy.SKIP:
                    self.ticks_skipped += 1
                    logger.debug(f"Previous {self.name} tick still running, skipping")
                else:
                    self.ticks_started += 1
                    task = asyncio.create_task(self.run_once())
                    self._in_flight.add(task)
                    task.add_done_callback(self._in_flight.discard)

                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass

            if self._in_flight:
                await asyncio.gather(*self._in_flight, return_exceptions=True)
        finally:
            self._running = False
            self._stop = None
        logger.info(f"{self.name} scheduler stopped")

    def start(self) -> asyncio.Task:
        """Run the scheduler as a background task."""
        if self._task is None or self._task.done():
            self._stop = asyncio.Event()
            self._task = asyncio.create_task(self.run())
        return self._task

    def stop(self) -> None:
        """Ask the loop to stop after the current wait."""
        if self._stop is not None:
            self._stop.set()

    async def shutdown(self) -> None:
        """Stop and wait for the background task started by start()."""
        self.stop()
        if self._task is not None:
            await self._task
            self._task = None
