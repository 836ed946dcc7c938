from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from datetime import UTC, date, datetime, timedelta

import redis

from beat_the_odds.api.models import GameState, PlayerMeta
from beat_the_odds.codec import DEFAULT_SALT, decode, encode, import_save


logger = logging.getLogger(__name__)

SAVE_KEY = "beat_the_odds:save"
META_KEY = "beat_the_odds:meta"
LOCAL_BOARD_KEY = "beat_the_odds:local_board"
SEEN_COMPLIMENTS_KEY = "beat_the_odds:seen_compliments"
FIRST_SEEN_KEY = "beat_the_odds:first_seen"
FLAG_KEY_PREFIX = "beat_the_odds:flag:"  # + {name}

BACKUP_REMINDER_FLAG = "backup_reminder"
# Players newer than this never see the monthly backup prompt.
BACKUP_REMINDER_MIN_DAYS = 20


def utc_today() -> date:
    return datetime.now(tz=UTC).date()


def month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


def save_state(*, r: redis.Redis, state: GameState, salt: str = DEFAULT_SALT) -> None:
    """Write-through of the run and, under its own key, the player's meta."""

    r.set(SAVE_KEY, encode(state, salt=salt))
    r.set(META_KEY, encode(PlayerMeta(identity=state.identity), salt=salt))
    r.set(FIRST_SEEN_KEY, utc_today().isoformat(), nx=True)


def load_meta(*, r: redis.Redis, salt: str = DEFAULT_SALT) -> PlayerMeta:
    return decode(r.get(META_KEY), PlayerMeta, salt=salt)


def load_state(*, r: redis.Redis, salt: str = DEFAULT_SALT) -> GameState:
    """Load the run, defaulting on a missing or damaged save.

    Meta is authoritative for identity: it survives run wipes, the save does not.
    """

    state = decode(r.get(SAVE_KEY), GameState, salt=salt)
    if r.exists(META_KEY):
        state.identity = load_meta(r=r, salt=salt).identity
    return state


def delete_run(*, r: redis.Redis) -> None:
    r.delete(SAVE_KEY)


def delete_meta(*, r: redis.Redis) -> None:
    r.delete(META_KEY)


def export_state(*, state: GameState, salt: str = DEFAULT_SALT) -> str:
    return encode(state, salt=salt)


def import_state(*, text: str, salt: str = DEFAULT_SALT) -> GameState:
    """Parse a save supplied by the player. Raises SaveImportError; nothing is written."""

    return import_save(text, GameState, salt=salt)


# ---- compliments ----


def seen_compliments(*, r: redis.Redis) -> set[str]:
    return set(r.smembers(SEEN_COMPLIMENTS_KEY))


def mark_compliment_seen(*, r: redis.Redis, text: str) -> None:
    r.sadd(SEEN_COMPLIMENTS_KEY, text)


def pick_compliment(*, r: redis.Redis, pool: Sequence[str], rng: random.Random) -> str:
    """Prefer compliments this player has not seen; repeat once all are used up."""

    seen = seen_compliments(r=r)
    available = [c for c in pool if c not in seen]
    return rng.choice(available or list(pool))


# ---- monthly flags ----


def get_flag(*, r: redis.Redis, name: str) -> str | None:
    return r.get(f"{FLAG_KEY_PREFIX}{name}")


def set_flag(*, r: redis.Redis, name: str, value: str) -> None:
    r.set(f"{FLAG_KEY_PREFIX}{name}", value)


def should_show_backup_reminder(*, r: redis.Redis, today: date | None = None) -> bool:
    """On the last day of a month, once per month, for players older than 20 days."""

    today = today or utc_today()
    if (today + timedelta(days=1)).day != 1:
        return False
    if get_flag(r=r, name=BACKUP_REMINDER_FLAG) == month_key(today):
        return False

    first_seen = r.get(FIRST_SEEN_KEY)
    if not first_seen:
        return False
    try:
        started = date.fromisoformat(first_seen)
    except ValueError:
        logger.warning("Ignoring malformed first-seen date %r", first_seen)
        return False
    return (today - started).days >= BACKUP_REMINDER_MIN_DAYS


def dismiss_backup_reminder(*, r: redis.Redis, today: date | None = None) -> str:
    key = month_key(today or utc_today())
    set_flag(r=r, name=BACKUP_REMINDER_FLAG, value=key)
    return key
