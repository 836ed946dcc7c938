from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol


Callback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None:  # pragma: no cover
        ...

    @property
    def cancelled(self) -> bool:  # pragma: no cover
        ...


class Scheduler(Protocol):
    """Timer primitives the engine runs on.

    Callbacks are plain functions; anything they guard must be re-checked when
    they fire, never when they were scheduled.
    """

    def call_later(self, delay_ms: int, callback: Callback) -> TimerHandle:  # pragma: no cover
        ...

    def call_every(self, interval_ms: int, callback: Callback) -> TimerHandle:  # pragma: no cover
        ...


class _AsyncioTimer:
    def __init__(self, *, loop: asyncio.AbstractEventLoop, delay_ms: int, callback: Callback, repeat: bool) -> None:
        self._loop = loop
        self._delay_s = max(delay_ms, 0) / 1000
        self._callback = callback
        self._repeat = repeat
        self._cancelled = False
        self._handle = loop.call_later(self._delay_s, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        if self._repeat:
            # Re-arm before running so a callback may cancel its own timer.
            self._handle = self._loop.call_later(self._delay_s, self._fire)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    """Scheduler backed by the running asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_ms: int, callback: Callback) -> _AsyncioTimer:
        return _AsyncioTimer(loop=self._get_loop(), delay_ms=delay_ms, callback=callback, repeat=False)

    def call_every(self, interval_ms: int, callback: Callback) -> _AsyncioTimer:
        return _AsyncioTimer(loop=self._get_loop(), delay_ms=interval_ms, callback=callback, repeat=True)


class _VirtualTimer:
    def __init__(self, *, due_ms: int, interval_ms: int | None, callback: Callback) -> None:
        self.due_ms = due_ms
        self.interval_ms = interval_ms
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class VirtualScheduler:
    """Manually driven clock.

    Used by the simulation script and by tests: nothing fires until `advance()`
    moves the clock past a timer's due time. Timers due at the same instant fire
    in the order they were scheduled.
    """

    def __init__(self) -> None:
        self.now_ms = 0
        self._seq = itertools.count()
        self._heap: list[tuple[int, int, _VirtualTimer]] = []

    def _push(self, timer: _VirtualTimer) -> None:
        heapq.heappush(self._heap, (timer.due_ms, next(self._seq), timer))

    def call_later(self, delay_ms: int, callback: Callback) -> _VirtualTimer:
        timer = _VirtualTimer(due_ms=self.now_ms + max(delay_ms, 0), interval_ms=None, callback=callback)
        self._push(timer)
        return timer

    def call_every(self, interval_ms: int, callback: Callback) -> _VirtualTimer:
        step = max(interval_ms, 1)
        timer = _VirtualTimer(due_ms=self.now_ms + step, interval_ms=step, callback=callback)
        self._push(timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, t in self._heap if not t.cancelled)

    def next_due_ms(self) -> int | None:
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)
        return self._heap[0][0] if self._heap else None

    def advance(self, ms: int) -> int:
        """Move the clock forward by `ms`, firing everything that comes due.

        Returns the number of callbacks fired.
        """

        target = self.now_ms + max(ms, 0)
        fired = 0
        while True:
            due = self.next_due_ms()
            if due is None or due > target:
                break
            _, _, timer = heapq.heappop(self._heap)
            self.now_ms = due
            if timer.interval_ms is not None:
                timer.due_ms = due + timer.interval_ms
                self._push(timer)
            timer.callback()
            fired += 1
        self.now_ms = target
        return fired
