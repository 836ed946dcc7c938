from __future__ import annotations

from beat_the_odds import game_store
from beat_the_odds.api.models import GameState, Identity, PlayerStats
from beat_the_odds.catalog import UpgradeId
from beat_the_odds.engine import COMPLIMENTS
from beat_the_odds.session import GameSession
from conftest import ScriptedRandom


def _seed(redis_client, state: GameState) -> None:
    game_store.save_state(r=redis_client, state=state, salt="test-salt")


def _session(redis_client, scheduler) -> GameSession:
    s = GameSession(r=redis_client, scheduler=scheduler, salt="test-salt", rng=ScriptedRandom(default=0.0))
    s.start()
    return s


def test_session_resumes_the_saved_run(redis_client, scheduler) -> None:
    _seed(redis_client, GameState(money=321, identity=Identity(player_name="Ada")))
    s = _session(redis_client, scheduler)
    assert s.engine.state.money == 321
    assert s.engine.state.identity.player_name == "Ada"
    s.engine.close()


def test_every_change_is_written_through(redis_client, scheduler) -> None:
    s = _session(redis_client, scheduler)
    s.engine.request_flip()
    scheduler.advance(2_000)

    stored = game_store.load_state(r=redis_client, salt="test-salt")
    assert stored.total_flips == 1
    assert stored.streak == 1
    s.engine.close()


def test_win_without_event_loop_lands_on_the_local_board(redis_client, scheduler) -> None:
    _seed(redis_client, GameState(streak=9, max_streak=9, identity=Identity(player_name="Ada")))
    s = _session(redis_client, scheduler)
    published: list[dict[str, object]] = []
    s.hub.publish = published.append  # type: ignore[method-assign]

    s.engine.request_flip()
    scheduler.advance(2_000)

    assert {"type": "win"} in published
    board = s.local_board.load()
    assert [e.name for e in board.rich] == ["Ada"]
    assert [e.score for e in board.purist] == [1]
    s.engine.close()


def test_confirming_the_interstitial_remembers_the_compliment(redis_client, scheduler) -> None:
    _seed(redis_client, GameState(money=1_000_000, identity=Identity(player_name="Ada")))
    s = _session(redis_client, scheduler)

    assert s.engine.buy_upgrade(UpgradeId.PRESTIGE_MOM)
    text = s.engine.pending_interstitial
    assert text in COMPLIMENTS
    assert s.engine.confirm_interstitial()

    assert game_store.seen_compliments(r=redis_client) == {text}
    assert s.engine.state.money == 0
    assert s.engine.state.identity.stats.special_purchases == 1
    assert s.engine.state.identity.player_name == "Ada"
    s.engine.close()


def test_hard_reset_keeps_meta_unless_full(redis_client, scheduler) -> None:
    _seed(redis_client, GameState(money=50, identity=Identity(player_name="Ada")))
    s = _session(redis_client, scheduler)

    s.hard_reset()
    assert s.engine.state.money == 0
    assert s.engine.state.identity.player_name == "Ada"

    s.hard_reset(full=True)
    assert s.engine.state.identity.player_name is None
    assert game_store.load_state(r=redis_client, salt="test-salt").identity.player_name is None
    s.engine.close()


def test_importing_an_older_save_never_lowers_player_stats(redis_client, scheduler) -> None:
    identity = Identity(
        player_name="Ada",
        stats=PlayerStats(purist_wins=7, highest_cash=900),
        unlocked_titles={"purist": 7},
        active_title="purist",
    )
    _seed(redis_client, GameState(identity=identity))
    s = _session(redis_client, scheduler)

    older = GameState(
        money=42,
        identity=Identity(stats=PlayerStats(purist_wins=2, highest_cash=5_000), unlocked_titles={"high_roller": 1}),
    )
    s.import_save(game_store.export_state(state=older, salt="test-salt"))

    meta = game_store.load_meta(r=redis_client, salt="test-salt").identity
    assert s.engine.state.money == 42
    assert meta.player_name == "Ada"
    assert meta.stats.purist_wins == 7
    assert meta.stats.highest_cash == 5_000
    assert meta.unlocked_titles == {"purist": 7, "high_roller": 1}
    assert meta.active_title == "purist"
    s.engine.close()
