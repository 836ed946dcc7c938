from __future__ import annotations

import pytest

from beat_the_odds.api.models import GameState, Identity, LeaderboardCategory, Outcome, PlayerStats
from beat_the_odds.catalog import UpgradeId
from beat_the_odds.engine import CHEATER_NAME, COMPLIMENTS


def test_only_one_flip_resolves_at_a_time(make_engine, scheduler) -> None:
    engine = make_engine(draws=[0.0])

    assert engine.request_flip() is True
    assert engine.is_flipping
    assert engine.request_flip() is False
    assert engine.last_rejection == "a flip is already resolving"

    scheduler.advance(1_999)
    assert engine.is_flipping
    scheduler.advance(1)
    assert not engine.is_flipping

    s = engine.state
    assert (s.streak, s.max_streak, s.total_flips, s.money) == (1, 1, 1, 1)
    assert s.history == [Outcome.heads]


def test_tails_resets_streak_and_pays_passive_income(make_engine, scheduler) -> None:
    state = GameState(streak=4, max_streak=4)
    state.upgrades[UpgradeId.PASSIVE_INCOME] = 1
    engine = make_engine(state=state)

    engine.request_flip()
    scheduler.advance(2_000)

    assert engine.state.streak == 0
    assert engine.state.max_streak == 4
    assert engine.state.money == 1
    assert engine.state.history == [Outcome.tails]


def test_history_is_newest_first_and_bounded(make_engine, scheduler) -> None:
    engine = make_engine(draws=[0.0] + [0.99] * 11)
    for _ in range(12):
        assert engine.request_flip()
        scheduler.advance(2_000)

    history = engine.state.history
    assert len(history) == 10
    assert history[0] == Outcome.tails
    assert engine.state.total_flips == 12


def test_flip_uses_values_frozen_at_start(make_engine, scheduler) -> None:
    # 0.22 loses at 20% but would win at 25%.
    engine = make_engine(state=GameState(money=2), draws=[0.22, 0.0])

    engine.request_flip()
    assert engine.buy_upgrade(UpgradeId.CHANCE)
    assert engine.probability == pytest.approx(0.25)
    scheduler.advance(2_000)
    assert engine.state.streak == 0

    engine.request_flip()
    assert engine.buy_upgrade(UpgradeId.VALUE)
    scheduler.advance(2_000)
    # Paid at the old coin value of $1.
    assert engine.state.money == 1


def test_win_is_raised_exactly_once(make_engine, scheduler) -> None:
    events = []
    engine = make_engine(state=GameState(streak=9, max_streak=9), default=0.0, on_event=events.append)

    engine.request_flip()
    scheduler.advance(2_000)

    assert engine.has_won
    assert engine.request_flip() is False
    scheduler.advance(10_000)
    assert [e.type for e in events].count("WIN") == 1


def test_manual_flips_keep_the_run_purist(make_engine, scheduler) -> None:
    engine = make_engine(draws=[0.0])
    engine.request_flip()
    scheduler.advance(2_000)
    assert engine.state.run_flags.is_purist_run

    engine.request_flip(automated=True)
    assert not engine.state.run_flags.is_purist_run

    scheduler.advance(2_000)
    engine.request_flip()
    assert not engine.state.run_flags.is_purist_run


def test_rejected_automated_flip_does_not_touch_purist_flag(make_engine) -> None:
    engine = make_engine()
    engine.request_flip()
    assert engine.request_flip(automated=True) is False
    assert engine.state.run_flags.is_purist_run


def test_win_updates_stats_and_submits_scores(make_engine, scheduler) -> None:
    submitted = []
    state = GameState(streak=9, max_streak=9, money=500, identity=Identity(player_name="Ada"))
    engine = make_engine(state=state, default=0.0, score_sink=submitted.append)

    engine.request_flip()
    scheduler.advance(2_000)

    stats = engine.state.identity.stats
    assert stats.purist_wins == 1
    assert stats.highest_cash == 501
    assert engine.state.identity.unlocked_titles["purist"] == 1

    (batch,) = submitted
    assert [u.category for u in batch] == [LeaderboardCategory.rich, LeaderboardCategory.purist]
    assert batch[0].entry.name == "Ada"
    assert batch[0].entry.score == 501
    assert batch[1].entry.score == 1
    assert batch[0].entry.timestamp == scheduler.now_ms


def test_cheaters_submit_under_reserved_name(make_engine, scheduler) -> None:
    submitted = []
    state = GameState(streak=9, max_streak=9, identity=Identity(player_name="Ada"))
    engine = make_engine(state=state, score_sink=submitted.append)

    engine.request_flip(force_heads=True)
    scheduler.advance(2_000)

    assert engine.has_won
    assert engine.state.run_flags.has_cheated
    assert all(u.entry.name == CHEATER_NAME for u in submitted[0])


def test_anonymous_players_submit_nothing(make_engine, scheduler) -> None:
    submitted = []
    engine = make_engine(state=GameState(streak=9), default=0.0, score_sink=submitted.append)
    engine.request_flip()
    scheduler.advance(2_000)
    assert engine.has_won
    assert submitted == []


def test_hard_mode_buff_is_consumed_by_the_next_flip(make_engine, scheduler) -> None:
    state = GameState(is_hard_mode=True, prestige_level=5)
    state.upgrades[UpgradeId.HARD_MODE_BUFF] = 2
    # 0.35 misses the 20% coin but lands under the buffed 40%.
    engine = make_engine(state=state, draws=[0.35, 0.35])

    engine.request_flip()
    assert engine.state.upgrades[UpgradeId.HARD_MODE_BUFF] == 1
    scheduler.advance(2_000)
    assert engine.state.streak == 1

    engine.request_flip()
    scheduler.advance(2_000)
    engine.request_flip()
    scheduler.advance(2_000)
    assert engine.state.upgrades[UpgradeId.HARD_MODE_BUFF] == 0
    assert engine.state.streak == 0


def test_hard_mode_needs_prestige_gate_and_a_fresh_streak(make_engine) -> None:
    engine = make_engine(state=GameState(prestige_level=4))
    assert engine.set_hard_mode(True) is False

    engine = make_engine(state=GameState(prestige_level=5, streak=2))
    assert engine.set_hard_mode(True) is False

    engine = make_engine(state=GameState(prestige_level=5))
    assert engine.set_hard_mode(True) is True
    assert engine.win_streak == 15


def test_mom_purchase_opens_interstitial_and_confirm_wipes_run(make_engine) -> None:
    submitted = []
    kept = Identity(player_name="Ada", stats=PlayerStats(purist_wins=3))
    state = GameState(money=1_000_050, prestige_level=2, identity=Identity(player_name="Ada"))
    engine = make_engine(
        state=state,
        score_sink=submitted.append,
        reload_identity=lambda: kept.model_copy(deep=True),
    )

    assert engine.buy_upgrade(UpgradeId.PRESTIGE_MOM)
    assert engine.pending_interstitial in COMPLIMENTS
    assert engine.state.identity.stats.special_purchases == 1
    assert submitted[0][0].category == LeaderboardCategory.mommy

    assert engine.request_flip() is False
    assert engine.buy_upgrade(UpgradeId.VALUE) is False

    assert engine.confirm_interstitial()
    assert engine.pending_interstitial is None
    assert engine.state.money == 0
    assert engine.state.prestige_level == 0
    assert engine.state.identity.stats.purist_wins == 3
    assert engine.confirm_interstitial() is False


def test_unaffordable_purchase_is_a_no_op(make_engine) -> None:
    engine = make_engine(state=GameState(money=0))
    assert engine.buy_upgrade(UpgradeId.CHANCE) is False
    assert engine.state.upgrades[UpgradeId.CHANCE] == 0


def test_ascend_requires_a_win(make_engine, scheduler) -> None:
    engine = make_engine(state=GameState(streak=9, max_streak=9), default=0.0)
    assert engine.ascend() is False

    engine.request_flip()
    scheduler.advance(2_000)
    assert engine.ascend() is True
    assert not engine.has_won
    assert engine.state.prestige_level == 1
    assert engine.state.void_fragments == 5
    assert engine.request_flip() is True


def test_ascend_submits_prestige_when_named(make_engine, scheduler) -> None:
    submitted = []
    state = GameState(streak=10, max_streak=10, identity=Identity(player_name="Ada"))
    engine = make_engine(state=state, score_sink=submitted.append)

    assert engine.has_won
    assert engine.ascend()
    (batch,) = submitted
    assert batch[0].category == LeaderboardCategory.prestige
    assert batch[0].entry.score == 1


def test_changes_are_reported(make_engine, scheduler) -> None:
    seen = []
    engine = make_engine(on_change=seen.append)
    engine.request_flip()
    scheduler.advance(2_000)
    engine.set_auto_buy(False)
    assert len(seen) == 3
    assert seen[-1].auto_buy_enabled is False


def test_closed_engine_ignores_pending_flip(make_engine, scheduler) -> None:
    engine = make_engine(draws=[0.0])
    engine.request_flip()
    engine.close()
    scheduler.advance(2_000)
    assert engine.state.total_flips == 0
    assert engine.request_flip() is False


def test_view_exposes_shop_and_odds(make_engine) -> None:
    view = make_engine(state=GameState(money=5)).view()
    assert view.probability == 0.20
    assert view.win_streak == 10
    assert view.payout_next_heads == 1

    shop = {item.id: item for item in view.shop}
    assert shop[UpgradeId.CHANCE].affordable
    assert shop[UpgradeId.CHANCE].next_cost == 1
    assert not shop[UpgradeId.AUTO_FLIP].unlocked
    assert shop[UpgradeId.PRESTIGE_FATE].currency == "fragments"
