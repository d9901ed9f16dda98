"""Timer scheduling on the engine's event loop.

Every engine component schedules its delayed work through a
:class:`TimerSet`, which remembers the live handles so that teardown can
cancel them in one call.  Two schedulers are provided: :class:`LoopScheduler`
runs on a real asyncio loop and :class:`ManualScheduler` is a virtual clock for
tests and simulations.
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Any, Callable, Coroutine, List, Optional, Protocol, Set, Tuple


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> TimerHandle: ...

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]": ...


class LoopScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._tasks: Set[asyncio.Task[Any]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback, *args)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]":
        task = self.loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        if not self._tasks:
            return
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


class _ManualTimer:
    __slots__ = ("due", "callback", "args", "cancelled")

    def __init__(self, due: float, callback: Callable[..., None], args: Tuple[Any, ...]) -> None:
        self.due = due
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic virtual clock.

    Timers only fire from :meth:`advance`, in due-time order with ties broken
    by registration order.  The clock is moved to each timer's due time before
    its callback runs, so callbacks observe the time they were scheduled for.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._queue: List[Tuple[float, int, _ManualTimer]] = []
        self._sequence = itertools.count()
        self._tasks: Set[asyncio.Task[Any]] = set()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(0.0, float(delay)), callback, args)
        heapq.heappush(self._queue, (timer.due, next(self._sequence), timer))
        return timer

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("Cannot move the clock backwards")
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            _, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = timer.due
            timer.callback(*timer.args)
        self._now = target

    def pending(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]":
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every spawned task, including ones spawned while waiting."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class ScheduledCall:
    """Handle returned by :class:`TimerSet`; ``cancel`` is idempotent."""

    __slots__ = ("_owner", "_callback", "_args", "_interval", "_handle", "active")

    def __init__(
        self,
        owner: "TimerSet",
        callback: Callable[..., None],
        args: Tuple[Any, ...],
        interval: Optional[float],
    ) -> None:
        self._owner = owner
        self._callback = callback
        self._args = args
        self._interval = interval
        self._handle: Optional[TimerHandle] = None
        self.active = True

    @property
    def repeating(self) -> bool:
        return self._interval is not None

    def _arm(self, delay: float) -> None:
        self._handle = self._owner.scheduler.call_later(delay, self._fire)

    def _fire(self) -> None:
        if not self.active:
            return
        if self._interval is not None:
            self._arm(self._interval)
        else:
            self.active = False
            self._owner._forget(self)
        self._callback(*self._args)

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._owner._forget(self)


class TimerSet:
    """Group of timers owned by one component."""

    def __init__(self, scheduler: Scheduler) -> None:
        self.scheduler = scheduler
        self._calls: Set[ScheduledCall] = set()

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> ScheduledCall:
        call = ScheduledCall(self, callback, args, None)
        self._calls.add(call)
        call._arm(delay)
        return call

    def call_every(self, interval: float, callback: Callable[..., None], *args: Any) -> ScheduledCall:
        """Run *callback* every *interval* seconds, first after one interval."""

        if interval <= 0:
            raise ValueError("Repeating timer interval must be positive")
        call = ScheduledCall(self, callback, args, float(interval))
        self._calls.add(call)
        call._arm(interval)
        return call

    def cancel(self, call: Optional[ScheduledCall]) -> None:
        if call is not None:
            call.cancel()

    def cancel_all(self) -> None:
        for call in list(self._calls):
            call.cancel()
        self._calls.clear()

    def _forget(self, call: ScheduledCall) -> None:
        self._calls.discard(call)

    def __len__(self) -> int:
        return len(self._calls)


__all__ = [
    "LoopScheduler",
    "ManualScheduler",
    "ScheduledCall",
    "Scheduler",
    "TimerHandle",
    "TimerSet",
]
