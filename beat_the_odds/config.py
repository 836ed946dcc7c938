from __future__ import annotations

import os
from dataclasses import dataclass

from beat_the_odds.codec import DEFAULT_SALT


DEFAULT_LEADERBOARD_URL = "https://api.npoint.io/b190545b7a1821a2daf4"
# Secondary node, used when the primary rate-limits us.
DEFAULT_LEADERBOARD_BACKUP_URL = "https://api.npoint.io/5c460922a3cce1f11663"


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str
    leaderboard_url: str
    leaderboard_backup_url: str | None
    save_salt: str
    http_timeout_s: float
    log_level: str


def settings_from_env() -> Settings:
    # An empty backup url disables failover.
    backup = os.environ.get("BEAT_THE_ODDS_LEADERBOARD_BACKUP_URL", DEFAULT_LEADERBOARD_BACKUP_URL)
    return Settings(
        redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        leaderboard_url=os.environ.get("BEAT_THE_ODDS_LEADERBOARD_URL", DEFAULT_LEADERBOARD_URL),
        leaderboard_backup_url=backup or None,
        save_salt=os.environ.get("BEAT_THE_ODDS_SAVE_SALT", DEFAULT_SALT),
        http_timeout_s=float(os.environ.get("BEAT_THE_ODDS_HTTP_TIMEOUT", "10")),
        log_level=os.environ.get("BEAT_THE_ODDS_LOG_LEVEL", "INFO").upper(),
    )
