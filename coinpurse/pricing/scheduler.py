"""
Price Refresh Scheduler

Drives PriceOracle.refresh() once at start-up and then on a fixed
period, independently of request handling.

DESIGN DECISION: Fixed ticks measured from start-up, no jitter, no
backoff. A failing cycle simply waits for the next tick. If a refresh
runs past a tick, that tick is skipped rather than fired late.
"""

import asyncio
import math
from typing import Optional

import structlog

from coinpurse.config import get_settings
from coinpurse.pricing.oracle import PriceOracle


logger = structlog.get_logger(__name__)


class RefreshScheduler:
    """
    Background task that keeps a PriceOracle fresh.

    Usage:
        scheduler = RefreshScheduler(oracle)
        scheduler.start()          # inside a running event loop
        ...
        await scheduler.stop()

    or:
        async with RefreshScheduler(oracle):
            ...
    """

    def __init__(
        self,
        oracle: PriceOracle,
        interval_seconds: Optional[float] = None,
    ):
        if interval_seconds is None:
            interval_seconds = get_settings().price.refresh_interval_seconds
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self._oracle = oracle
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._cycles = 0

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cycles(self) -> int:
        """Number of scheduled refreshes run so far."""
        return self._cycles

    def start(self) -> asyncio.Task:
        """
        Start the refresh loop on the running event loop.

        Calling start() on a running scheduler returns the existing task.
        """
        if self.running:
            return self._task
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="coinpurse-price-refresh"
        )
        logger.info("price_scheduler_started", interval=self._interval)
        return self._task

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("price_scheduler_stopped", cycles=self._cycles)

    async def trigger(self) -> bool:
        """
        Refresh now, outside the timer.

        Safe to call while the loop is running; the oracle serialises
        refreshes.
        """
        return await self._oracle.refresh()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        tick = 0

        while True:
            try:
                await self._oracle.refresh()
            except Exception:
                # refresh() reports its own failures; this keeps the timer alive
                # if it ever breaks that contract
                logger.exception("price_refresh_cycle_crashed")
            self._cycles += 1

            now = loop.time()
            tick = max(tick + 1, math.floor((now - started) / self._interval) + 1)
            await asyncio.sleep(started + tick * self._interval - now)

    async def __aenter__(self) -> "RefreshScheduler":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
