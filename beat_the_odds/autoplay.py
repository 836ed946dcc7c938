from __future__ import annotations

import logging
import time
from collections.abc import Callable

from beat_the_odds.catalog import UpgradeId
from beat_the_odds.scheduler import Scheduler, TimerHandle
from beat_the_odds.shop import auto_buy_candidates


logger = logging.getLogger(__name__)

AUTO_FLIP_DELAY_MS = 100
AUTO_FLIP_FAILSAFE_MS = 2_000
AUTO_BUY_INTERVAL_MS = 500


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class AutoFlipLoop:
    """Edge-triggered auto flipper.

    `rearm()` is called after every state change. A flip is scheduled once the
    conditions hold, and the conditions are checked again when the timer fires.
    The failsafe interval recovers from a schedule that never fired.
    """

    def __init__(
        self,
        *,
        scheduler: Scheduler,
        should_flip: Callable[[], bool],
        flip: Callable[[], bool],
        delay_ms: int = AUTO_FLIP_DELAY_MS,
        failsafe_ms: int = AUTO_FLIP_FAILSAFE_MS,
        now_ms: Callable[[], int] = _wall_clock_ms,
    ) -> None:
        self._scheduler = scheduler
        self._should_flip = should_flip
        self._flip = flip
        self._delay_ms = delay_ms
        self._failsafe_ms = failsafe_ms
        self._now_ms = now_ms
        self._pending: TimerHandle | None = None
        self._pending_due_ms = 0
        self._failsafe: TimerHandle | None = None
        self._closed = False

    def start(self) -> None:
        if self._closed or self._failsafe is not None:
            return
        self._failsafe = self._scheduler.call_every(self._failsafe_ms, self._on_failsafe)
        self.rearm()

    def rearm(self) -> None:
        if self._closed or self._pending is not None:
            return
        if self._should_flip():
            self._pending_due_ms = self._now_ms() + self._delay_ms
            self._pending = self._scheduler.call_later(self._delay_ms, self._on_fire)

    def _on_fire(self) -> None:
        self._pending = None
        if self._closed:
            return
        if self._should_flip():
            self._flip()

    def _on_failsafe(self) -> None:
        pending = self._pending
        if pending is not None and not pending.cancelled:
            overdue_ms = self._now_ms() - self._pending_due_ms
            if overdue_ms > self._failsafe_ms:
                logger.warning("Auto-flip timer is %s ms overdue; rescheduling", overdue_ms)
                pending.cancel()
        if pending is not None and pending.cancelled:
            self._pending = None
        self.rearm()

    @property
    def scheduled(self) -> bool:
        return self._pending is not None

    def stop(self) -> None:
        self._closed = True
        for handle in (self._pending, self._failsafe):
            if handle is not None:
                handle.cancel()
        self._pending = None
        self._failsafe = None


class AutoBuyLoop:
    """Buys affordable standard upgrades on a fixed interval.

    A single tick may buy several items; it walks the whole priority list.
    """

    def __init__(
        self,
        *,
        scheduler: Scheduler,
        is_active: Callable[[], bool],
        try_buy: Callable[[UpgradeId], bool],
        interval_ms: int = AUTO_BUY_INTERVAL_MS,
    ) -> None:
        self._scheduler = scheduler
        self._is_active = is_active
        self._try_buy = try_buy
        self._interval_ms = interval_ms
        self._timer: TimerHandle | None = None
        self._closed = False

    @property
    def running(self) -> bool:
        return self._timer is not None

    def rearm(self) -> None:
        if self._closed:
            return
        active = self._is_active()
        if active and self._timer is None:
            self._timer = self._scheduler.call_every(self._interval_ms, self.tick)
        elif not active and self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def tick(self) -> list[UpgradeId]:
        if self._closed or not self._is_active():
            return []
        bought: list[UpgradeId] = []
        for uid in auto_buy_candidates():
            if self._try_buy(uid):
                bought.append(uid)
        if bought:
            logger.debug("Auto-buy purchased %s", ",".join(bought))
        return bought

    def stop(self) -> None:
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
