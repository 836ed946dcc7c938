from __future__ import annotations

from beat_the_odds.api.models import GameState
from beat_the_odds.autoplay import AutoBuyLoop, AutoFlipLoop
from beat_the_odds.catalog import UpgradeId
from beat_the_odds.scheduler import VirtualScheduler


def _state(**upgrades: int) -> GameState:
    state = GameState()
    for key, level in upgrades.items():
        state.upgrades[UpgradeId(key)] = level
    return state


def test_auto_buy_tick_buys_what_it_can_afford_and_never_flips(make_engine, scheduler) -> None:
    state = _state(PRESTIGE_AUTO=1, PRESTIGE_AUTO_BUY=1)
    state.money = 1
    state.auto_flip_enabled = False
    engine = make_engine(state=state)
    engine.start()

    scheduler.advance(500)

    assert engine.state.upgrades[UpgradeId.CHANCE] == 1
    assert engine.state.upgrades[UpgradeId.VALUE] == 0
    assert engine.state.money == 0
    assert engine.state.total_flips == 0
    assert not engine.is_flipping


def test_auto_buy_walks_the_whole_priority_list_in_one_tick(make_engine, scheduler) -> None:
    state = _state(PRESTIGE_AUTO_BUY=1)
    state.money = 4
    engine = make_engine(state=state)
    engine.start()

    scheduler.advance(500)

    levels = engine.state.upgrades
    assert (levels[UpgradeId.CHANCE], levels[UpgradeId.VALUE], levels[UpgradeId.COMBO], levels[UpgradeId.SPEED]) == (
        1,
        1,
        1,
        1,
    )
    assert engine.state.money == 0


def test_auto_buy_skips_locked_items(make_engine, scheduler) -> None:
    state = _state(PRESTIGE_AUTO_BUY=1, CHANCE=14, VALUE=5, COMBO=5, SPEED=5)
    state.money = 10_000
    engine = make_engine(state=state)
    engine.start()

    scheduler.advance(500)

    # Passive income and the auto flipper need a streak first.
    assert engine.state.upgrades[UpgradeId.PASSIVE_INCOME] == 0
    assert engine.state.upgrades[UpgradeId.AUTO_FLIP] == 0
    assert engine.state.money == 10_000


def test_auto_buy_does_not_break_a_purist_run(make_engine, scheduler) -> None:
    state = _state(PRESTIGE_AUTO_BUY=1)
    state.money = 1
    engine = make_engine(state=state)
    engine.start()
    scheduler.advance(500)
    assert engine.state.upgrades[UpgradeId.CHANCE] == 1
    assert engine.state.run_flags.is_purist_run


def test_auto_flip_runs_after_short_delay_and_breaks_purist(make_engine, scheduler) -> None:
    engine = make_engine(state=_state(PRESTIGE_AUTO=1))
    engine.start()

    scheduler.advance(99)
    assert not engine.is_flipping
    scheduler.advance(1)
    assert engine.is_flipping
    assert not engine.state.run_flags.is_purist_run

    # Resolves, then re-arms for the next flip.
    scheduler.advance(2_000)
    assert engine.state.total_flips == 1
    scheduler.advance(100)
    assert engine.is_flipping


def test_auto_flip_rechecks_conditions_when_it_fires(make_engine, scheduler) -> None:
    engine = make_engine(state=_state(PRESTIGE_AUTO=1))
    engine.start()
    assert engine.auto_flip.scheduled

    # Flipped off without a change notification; the pending timer must notice.
    engine.state.auto_flip_enabled = False
    scheduler.advance(100)
    assert not engine.is_flipping
    assert engine.state.total_flips == 0


def test_failsafe_recovers_a_missed_schedule(make_engine, scheduler) -> None:
    state = _state(PRESTIGE_AUTO=1)
    state.auto_flip_enabled = False
    engine = make_engine(state=state)
    engine.start()
    assert not engine.auto_flip.scheduled

    engine.state.auto_flip_enabled = True
    scheduler.advance(1_999)
    assert not engine.auto_flip.scheduled
    scheduler.advance(1)
    assert engine.auto_flip.scheduled
    scheduler.advance(100)
    assert engine.is_flipping


class _DroppingScheduler(VirtualScheduler):
    """Loses the first `drop` one-shot timers: they stay pending and never fire."""

    def __init__(self, *, drop: int) -> None:
        super().__init__()
        self.drop = drop

    def call_later(self, delay_ms, callback):
        if self.drop > 0:
            self.drop -= 1
            return super().call_later(delay_ms, lambda: None)
        return super().call_later(delay_ms, callback)


def test_failsafe_replaces_a_stalled_timer() -> None:
    scheduler = _DroppingScheduler(drop=1)
    flips: list[int] = []
    loop = AutoFlipLoop(
        scheduler=scheduler,
        should_flip=lambda: not flips,
        flip=lambda: flips.append(scheduler.now_ms) or True,
        delay_ms=100,
        failsafe_ms=2_000,
        now_ms=lambda: scheduler.now_ms,
    )
    loop.start()
    assert loop.scheduled

    # First failsafe tick: the timer is overdue by 1.9 s, still within tolerance.
    scheduler.advance(2_000)
    assert flips == []
    assert loop.scheduled

    # Second tick: overdue by 3.9 s, so it is replaced and the new one fires.
    scheduler.advance(2_000)
    scheduler.advance(100)
    assert flips == [4_100]
    loop.stop()


def test_auto_flip_stops_at_a_win(make_engine, scheduler) -> None:
    state = _state(PRESTIGE_AUTO=1)
    state.streak = 9
    engine = make_engine(state=state, default=0.0)
    engine.start()

    scheduler.advance(100 + 2_000)
    assert engine.has_won
    scheduler.advance(10_000)
    assert engine.state.total_flips == 1


def test_close_cancels_every_timer(make_engine, scheduler) -> None:
    engine = make_engine(state=_state(PRESTIGE_AUTO=1, PRESTIGE_AUTO_BUY=1))
    engine.start()
    engine.close()
    assert scheduler.pending == 0
    scheduler.advance(60_000)
    assert engine.state.total_flips == 0


def test_loops_in_isolation(scheduler) -> None:
    flips: list[int] = []
    active = {"flip": True, "buy": True}

    flip_loop = AutoFlipLoop(
        scheduler=scheduler,
        should_flip=lambda: active["flip"],
        flip=lambda: flips.append(scheduler.now_ms) or True,
        delay_ms=10,
        failsafe_ms=1_000,
    )
    flip_loop.start()
    scheduler.advance(10)
    assert flips == [10]

    bought: list[UpgradeId] = []
    buy_loop = AutoBuyLoop(
        scheduler=scheduler,
        is_active=lambda: active["buy"],
        try_buy=lambda uid: uid == UpgradeId.SPEED and not bought.append(uid),
        interval_ms=50,
    )
    buy_loop.rearm()
    assert buy_loop.running
    assert buy_loop.tick() == [UpgradeId.SPEED]

    active["buy"] = False
    buy_loop.rearm()
    assert not buy_loop.running

    flip_loop.stop()
    buy_loop.stop()
    assert scheduler.pending == 0
