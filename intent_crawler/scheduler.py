"""Polling scheduler with explicit tickers and cancellation tokens."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot stop signal shared between a scheduler job and its owner."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class Ticker(ABC):
    """Decides when the next cycle of a job starts."""

    @abstractmethod
    async def wait(self, token: CancellationToken) -> bool:
        """Block until the next tick; return False once the token is cancelled."""

    def cycle_done(self) -> None:
        """Called by the runner after each cycle, successful or not."""


class IntervalTicker(Ticker):
    """Wall-clock ticker: one tick every ``interval_seconds``."""

    def __init__(self, interval_seconds: float) -> None:
        self.interval_seconds = max(0.0, float(interval_seconds))

    async def wait(self, token: CancellationToken) -> bool:
        if token.cancelled:
            return False
        try:
            await asyncio.wait_for(token.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            return not token.cancelled
        return False


class ManualTicker(Ticker):
    """Ticker driven by the caller, used to run cycles deterministically in tests.

    ``await ticker.tick()`` releases exactly one cycle and returns once the
    runner has finished it.
    """

    def __init__(self) -> None:
        self._ticks: asyncio.Queue[asyncio.Event] = asyncio.Queue()
        self._current: asyncio.Event | None = None

    async def tick(self) -> None:
        done = asyncio.Event()
        await self._ticks.put(done)
        await done.wait()

    async def wait(self, token: CancellationToken) -> bool:
        if token.cancelled:
            return False
        getter = asyncio.ensure_future(self._ticks.get())
        stopper = asyncio.ensure_future(token.wait())
        done, pending = await asyncio.wait({getter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if getter in done:
            self._current = getter.result()
            if token.cancelled:
                self.cycle_done()
                return False
            return True
        return False

    def cycle_done(self) -> None:
        if self._current is not None:
            self._current.set()
            self._current = None


class PollingScheduler:
    """Runs named recurring jobs; each job has its own ticker and token.

    Cancelling a job stops future cycles only; a cycle already running is
    allowed to finish.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, tuple[asyncio.Task[None], CancellationToken]] = {}
        self._draining: set[asyncio.Task[None]] = set()

    def schedule(self, name: str, ticker: Ticker, func: Callable[[], Awaitable[object]]) -> CancellationToken:
        self.cancel(name)
        token = CancellationToken()

        async def _runner() -> None:
            while await ticker.wait(token):
                try:
                    await func()
                except Exception as exc:
                    logger.warning("Scheduler job failed name=%s error=%s", name, exc)
                finally:
                    ticker.cycle_done()

        task = asyncio.create_task(_runner(), name=f"intent-crawler-job-{name}")
        self._jobs[name] = (task, token)
        return token

    def cancel(self, name: str) -> bool:
        job = self._jobs.pop(name, None)
        if job is None:
            return False
        task, token = job
        token.cancel()
        if not task.done():
            self._draining.add(task)
            task.add_done_callback(self._draining.discard)
        return True

    def is_scheduled(self, name: str) -> bool:
        return name in self._jobs

    async def stop(self) -> None:
        for name in list(self._jobs):
            self.cancel(name)
        if not self._draining:
            return
        await asyncio.gather(*list(self._draining), return_exceptions=True)
        self._draining.clear()
