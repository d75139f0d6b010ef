from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Tuple

log = logging.getLogger("scheduler")


class ScheduledTask:
    """Cancellation handle for one scheduled callback."""

    def __init__(self, when: float, callback: Callable[[], Any]) -> None:
        self.when = when
        self._callback = callback
        self._cancelled = False
        self._done = False
        self._inner: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._done

    def cancel(self) -> None:
        if self._cancelled or self._done:
            return
        self._cancelled = True
        if self._inner is not None:
            self._inner.cancel()
            self._inner = None

    def _run(self) -> None:
        if self._cancelled or self._done:
            return
        self._done = True
        self._inner = None
        self._callback()


class Scheduler(ABC):
    """
    Scheduler contract.

    now(): wall clock, epoch seconds
    call_later(): run callback after delay seconds; returns a cancellable task
    """

    @abstractmethod
    def now(self) -> float:
        raise NotImplementedError

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], Any]) -> ScheduledTask:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Schedules onto the running asyncio loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ScheduledTask:
        loop = self._loop or asyncio.get_running_loop()
        delay = max(0.0, float(delay))
        task = ScheduledTask(self.now() + delay, callback)
        task._inner = loop.call_later(delay, task._run)
        return task


class ManualScheduler(Scheduler):
    """
    Virtual clock for tests and offline replay.

    Nothing runs until advance() moves time forward; due callbacks then run
    in (when, insertion) order. A failing callback is logged and the sweep
    continues, like an asyncio loop would.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, ScheduledTask]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ScheduledTask:
        task = ScheduledTask(self._now + max(0.0, float(delay)), callback)
        heapq.heappush(self._queue, (task.when, next(self._seq), task))
        return task

    def pending(self) -> int:
        return sum(1 for _, _, t in self._queue if not t.cancelled and not t.done)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing everything due. Returns how many callbacks ran."""
        target = self._now + float(seconds)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, task = heapq.heappop(self._queue)
            self._now = max(self._now, when)
            if task.cancelled or task.done:
                continue
            try:
                task._run()
            except Exception:
                log.exception("Scheduled callback failed")
            fired += 1
        self._now = target
        return fired

    def set_time(self, epoch_seconds: float) -> int:
        return self.advance(max(0.0, epoch_seconds - self._now))
