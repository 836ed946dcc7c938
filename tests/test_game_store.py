from __future__ import annotations

import random
from datetime import date

from beat_the_odds import game_store
from beat_the_odds.api.models import GameState, Identity, PlayerStats


def test_save_and_load(redis_client) -> None:
    state = GameState(money=77, identity=Identity(player_name="Ada"))
    game_store.save_state(r=redis_client, state=state, salt="s")

    loaded = game_store.load_state(r=redis_client, salt="s")
    assert loaded == state


def test_missing_save_loads_defaults(redis_client) -> None:
    assert game_store.load_state(r=redis_client) == GameState()


def test_meta_survives_a_run_wipe(redis_client) -> None:
    state = GameState(money=77, identity=Identity(player_name="Ada", stats=PlayerStats(purist_wins=4)))
    game_store.save_state(r=redis_client, state=state)
    game_store.delete_run(r=redis_client)

    loaded = game_store.load_state(r=redis_client)
    assert loaded.money == 0
    assert loaded.identity.player_name == "Ada"
    assert loaded.identity.stats.purist_wins == 4


def test_tampered_save_keeps_meta(redis_client) -> None:
    state = GameState(money=77, identity=Identity(player_name="Ada"))
    game_store.save_state(r=redis_client, state=state)
    redis_client.set(game_store.SAVE_KEY, '{"payload": "e30=", "hash": "nope"}')

    loaded = game_store.load_state(r=redis_client)
    assert loaded.money == 0
    assert loaded.identity.player_name == "Ada"


def test_full_wipe_drops_meta(redis_client) -> None:
    game_store.save_state(r=redis_client, state=GameState(identity=Identity(player_name="Ada")))
    game_store.delete_run(r=redis_client)
    game_store.delete_meta(r=redis_client)
    assert game_store.load_state(r=redis_client).identity.player_name is None


def test_compliments_prefer_unseen_then_repeat(redis_client) -> None:
    pool = ("a", "b", "c")
    rng = random.Random(3)
    game_store.mark_compliment_seen(r=redis_client, text="a")
    game_store.mark_compliment_seen(r=redis_client, text="b")
    assert game_store.pick_compliment(r=redis_client, pool=pool, rng=rng) == "c"

    game_store.mark_compliment_seen(r=redis_client, text="c")
    assert game_store.pick_compliment(r=redis_client, pool=pool, rng=rng) in pool


def test_backup_reminder_last_day_of_month_once(redis_client) -> None:
    redis_client.set(game_store.FIRST_SEEN_KEY, "2024-01-01")

    assert game_store.should_show_backup_reminder(r=redis_client, today=date(2024, 2, 28)) is False
    assert game_store.should_show_backup_reminder(r=redis_client, today=date(2024, 2, 29)) is True

    assert game_store.dismiss_backup_reminder(r=redis_client, today=date(2024, 2, 29)) == "2024-02"
    assert game_store.should_show_backup_reminder(r=redis_client, today=date(2024, 2, 29)) is False
    assert game_store.should_show_backup_reminder(r=redis_client, today=date(2024, 3, 31)) is True


def test_backup_reminder_waits_for_new_players(redis_client) -> None:
    redis_client.set(game_store.FIRST_SEEN_KEY, "2024-03-20")
    assert game_store.should_show_backup_reminder(r=redis_client, today=date(2024, 3, 31)) is False
    redis_client.delete(game_store.FIRST_SEEN_KEY)
    assert game_store.should_show_backup_reminder(r=redis_client, today=date(2024, 3, 31)) is False


def test_export_import_round_trip() -> None:
    state = GameState(money=9, identity=Identity(player_name="Ada"))
    assert game_store.import_state(text=game_store.export_state(state=state)) == state
