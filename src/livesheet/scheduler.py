"""Single-threaded cooperative scheduling for reactive propagation.

Every state change in a sheet runs as a callback on one dispatch queue.
``dispatch()`` drains the queue unless a drain is already running, so a
callback never preempts another one mid-update.  Timers (debounce,
delayed teardown) and spawned coroutines (storage writes) feed the same
queue.

The queue has two lanes.  Plain ``dispatch()`` callbacks run first, in
FIFO order.  ``dispatch_ranked()`` callbacks run once the FIFO lane is
empty, lowest rank first (FIFO within a rank).  Scope lenses use their
dependency depth as the rank, so a formula reading both ``a`` and
``b = a + 1`` recomputes after ``b`` has.

A callback that raises is logged as ``dispatch_error`` and the drain
carries on with the next one.

Two implementations:

- ``VirtualScheduler`` -- a manual clock advanced explicitly; deterministic.
- ``AsyncioScheduler`` -- timers and coroutines on an asyncio event loop.
"""

from __future__ import annotations

import asyncio
import heapq
import inspect
import itertools
from collections import deque
from collections.abc import Coroutine
from typing import Any, Callable

from livesheet.logging.events import (
    DISPATCH_CALLBACK_FAILED,
    EventType,
    PROPAGATION_LIMIT_EXCEEDED,
    emit_error,
)


DEFAULT_MAX_STEPS = 100_000


def _describe(target: Any) -> str:
    return getattr(target, "__qualname__", None) or repr(target)


class Timer:
    """Handle for a callback scheduled with ``call_later``."""

    __slots__ = ("deadline", "callback", "args", "cancelled", "_handle")

    def __init__(self, deadline: float, callback: Callable[..., Any], args: tuple) -> None:
        self.deadline = deadline
        self.callback = callback
        self.args = args
        self.cancelled = False
        self._handle: asyncio.TimerHandle | None = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()


class Scheduler:
    """Base scheduler: the dispatch queue shared by both clocks."""

    def __init__(self, *, max_steps: int = DEFAULT_MAX_STEPS) -> None:
        self.max_steps = max_steps
        self._queue: deque[tuple[Callable[..., Any], tuple]] = deque()
        self._ranked: list[tuple[int, int, Callable[..., Any], tuple]] = []
        self._order = itertools.count()
        self._draining = False

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Timer:
        """Dispatch ``callback(*args)`` after *delay* seconds."""
        raise NotImplementedError

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Run *coro* after every previously spawned coroutine."""
        raise NotImplementedError

    async def flush(self) -> None:
        """Wait for all spawned coroutines to finish.

        Every coroutine runs even if an earlier one failed.  Failures are
        logged as ``dispatch_error`` and the first one is re-raised.
        """
        raise NotImplementedError

    def cancel_spawned(self) -> int:
        """Drop spawned coroutines that have not finished; returns how many."""
        raise NotImplementedError

    def dispatch(self, callback: Callable[..., Any], *args: Any) -> None:
        """Queue ``callback(*args)`` and drain the queue if idle."""
        self._queue.append((callback, args))
        if not self._draining:
            self._drain()

    def dispatch_ranked(self, rank: int, callback: Callable[..., Any], *args: Any) -> None:
        """Queue ``callback(*args)`` behind the FIFO lane, ordered by *rank*."""
        heapq.heappush(self._ranked, (rank, next(self._order), callback, args))
        if not self._draining:
            self._drain()

    def _drain(self) -> None:
        self._draining = True
        steps = 0
        try:
            while self._queue or self._ranked:
                steps += 1
                if steps > self.max_steps:
                    dropped = len(self._queue) + len(self._ranked)
                    self._queue.clear()
                    self._ranked.clear()
                    emit_error(
                        EventType.propagation_limit,
                        f"Propagation stopped after {self.max_steps} steps",
                        {"max_steps": self.max_steps, "dropped": dropped},
                        error_code=PROPAGATION_LIMIT_EXCEEDED,
                    )
                    break
                if self._queue:
                    callback, args = self._queue.popleft()
                else:
                    _, _, callback, args = heapq.heappop(self._ranked)
                try:
                    callback(*args)
                except Exception as exc:
                    self._report(callback, exc)
        finally:
            self._draining = False

    @staticmethod
    def _report(target: Any, exc: BaseException) -> None:
        emit_error(
            EventType.dispatch_error,
            f"{_describe(target)} failed: {type(exc).__name__}: {exc}",
            {"callback": _describe(target), "error": repr(exc)},
            error_code=DISPATCH_CALLBACK_FAILED,
        )


class VirtualScheduler(Scheduler):
    """Scheduler driven by a manual clock.

    Nothing time-based happens until ``advance()`` moves the clock; timers
    then fire in deadline order (ties in scheduling order).
    """

    def __init__(self, *, max_steps: int = DEFAULT_MAX_STEPS) -> None:
        super().__init__(max_steps=max_steps)
        self._now = 0.0
        self._timers: list[tuple[float, int, Timer]] = []
        self._seq = itertools.count()
        self._spawned: deque[Coroutine[Any, Any, Any]] = deque()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Timer:
        timer = Timer(self._now + max(delay, 0.0), callback, args)
        heapq.heappush(self._timers, (timer.deadline, next(self._seq), timer))
        return timer

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, t in self._timers if not t.cancelled)

    @property
    def pending_spawned(self) -> int:
        return len(self._spawned)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer that falls due."""
        target = self._now + seconds
        while self._timers and self._timers[0][0] <= target:
            deadline, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = deadline
            self.dispatch(timer.callback, *timer.args)
        self._now = target

    def run_until_idle(self, max_timers: int = 10_000) -> None:
        """Advance the clock until no live timers remain."""
        fired = 0
        while self._timers and fired < max_timers:
            deadline, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            fired += 1
            self._now = max(self._now, deadline)
            self.dispatch(timer.callback, *timer.args)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        self._spawned.append(coro)

    async def flush(self) -> None:
        first: Exception | None = None
        while self._spawned:
            coro = self._spawned.popleft()
            try:
                await coro
            except Exception as exc:
                self._report(coro, exc)
                if first is None:
                    first = exc
        if first is not None:
            raise first

    def cancel_spawned(self) -> int:
        dropped = len(self._spawned)
        while self._spawned:
            self._spawned.popleft().close()
        return dropped


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop.

    Must be used from code running inside the loop.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        *,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> None:
        super().__init__(max_steps=max_steps)
        self._loop = loop
        self._last: asyncio.Task | None = None
        self._pending: list[tuple[asyncio.Task, Coroutine[Any, Any, Any]]] = []

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Timer:
        timer = Timer(self.now() + delay, callback, args)
        timer._handle = self.loop.call_later(delay, self._fire, timer)
        return timer

    def _fire(self, timer: Timer) -> None:
        if not timer.cancelled:
            self.dispatch(timer.callback, *timer.args)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        self._last = self.loop.create_task(self._chain(self._last, coro))
        self._pending.append((self._last, coro))

    @staticmethod
    async def _chain(previous: asyncio.Task | None, coro: Coroutine[Any, Any, Any]) -> None:
        # A failed predecessor does not stop the chain; flush() reports it.
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        await coro

    async def flush(self) -> None:
        first: BaseException | None = None
        while self._pending:
            pending, self._pending = self._pending, []
            results = await asyncio.gather(*(task for task, _ in pending), return_exceptions=True)
            for (_, coro), result in zip(pending, results):
                if isinstance(result, Exception):
                    self._report(coro, result)
                    if first is None:
                        first = result
        if first is not None:
            raise first

    def cancel_spawned(self) -> int:
        pending, self._pending = self._pending, []
        dropped = 0
        for task, coro in pending:
            if task.done():
                continue
            dropped += 1
            task.cancel()
            if inspect.getcoroutinestate(coro) == inspect.CORO_CREATED:
                coro.close()
        self._last = None
        return dropped
