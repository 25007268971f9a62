"""Cancellable delayed wake-ups for phase deadlines.

The engine only needs two things from a scheduler: the current time, and a way
to run a callback once after a delay that can be cancelled before it fires.
``AsyncioPhaseScheduler`` backs this with ``loop.call_later`` for the server;
``VirtualClockScheduler`` keeps its own clock so tests can step through phases
without sleeping.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

WakeupCallback = Callable[[], None]


class ScheduledWakeup(ABC):
    @abstractmethod
    def cancel(self) -> None:
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class PhaseScheduler(ABC):
    @abstractmethod
    def now(self) -> datetime:
        pass

    @abstractmethod
    def schedule(self, delay_seconds: float, callback: WakeupCallback) -> ScheduledWakeup:
        pass


class _AsyncioWakeup(ScheduledWakeup):
    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class AsyncioPhaseScheduler(PhaseScheduler):
    """Wall-clock scheduler. Must be used from inside the running event loop."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def schedule(self, delay_seconds: float, callback: WakeupCallback) -> ScheduledWakeup:
        loop = asyncio.get_running_loop()
        handle = loop.call_later(max(delay_seconds, 0), callback)
        return _AsyncioWakeup(handle)


class _VirtualWakeup(ScheduledWakeup):
    def __init__(self, due_at: datetime, callback: WakeupCallback) -> None:
        self.due_at = due_at
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class VirtualClockScheduler(PhaseScheduler):
    """Deterministic scheduler driven by explicit ``advance`` calls."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._queue: List[Tuple[datetime, int, _VirtualWakeup]] = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self._now

    def schedule(self, delay_seconds: float, callback: WakeupCallback) -> ScheduledWakeup:
        wakeup = _VirtualWakeup(self._now + timedelta(seconds=max(delay_seconds, 0)), callback)
        heapq.heappush(self._queue, (wakeup.due_at, next(self._seq), wakeup))
        return wakeup

    @property
    def pending(self) -> int:
        return sum(1 for _, _, wakeup in self._queue if not wakeup.cancelled)

    def next_due_at(self) -> Optional[datetime]:
        self._drop_cancelled()
        return self._queue[0][0] if self._queue else None

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every wake-up that falls due. Returns how many fired."""
        target = self._now + timedelta(seconds=seconds)
        fired = 0
        while True:
            self._drop_cancelled()
            if not self._queue or self._queue[0][0] > target:
                break
            due_at, _, wakeup = heapq.heappop(self._queue)
            self._now = due_at
            wakeup.callback()
            fired += 1
        self._now = target
        return fired

    def fire_next(self) -> bool:
        """Jump straight to the earliest pending wake-up and run it."""
        self._drop_cancelled()
        if not self._queue:
            return False
        due_at, _, wakeup = heapq.heappop(self._queue)
        self._now = max(self._now, due_at)
        wakeup.callback()
        return True

    def _drop_cancelled(self) -> None:
        while self._queue and self._queue[0][2].cancelled:
            heapq.heappop(self._queue)
