from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from beat_the_odds.api.models import Identity, PlayerStats


@dataclass(frozen=True, slots=True)
class TitleSpec:
    id: str
    name: str
    description: str
    # Title level derived from the stats; 0 means locked.
    level_for: Callable[[PlayerStats], int]
    secret: bool = False


HIGH_ROLLER_CASH = 1_000_000
CHEATER_TITLE_ID = "cheater"

TITLES: dict[str, TitleSpec] = {
    spec.id: spec
    for spec in (
        TitleSpec("purist", "The Purist", "Won a run without ever letting the machine flip.", lambda s: s.purist_wins),
        TitleSpec("ascendant", "Ascendant", "Traded a win for a trip to the void.", lambda s: s.total_prestiges),
        TitleSpec("mamas_favorite", "Mama's Favorite", "Pressed the forbidden button.", lambda s: s.special_purchases),
        TitleSpec("hardened", "Hardened", "Beat hard mode.", lambda s: s.hard_mode_wins),
        TitleSpec(
            "high_roller",
            "High Roller",
            "Held a million dollars at the moment of victory.",
            lambda s: 1 if s.highest_cash >= HIGH_ROLLER_CASH else 0,
        ),
        TitleSpec(CHEATER_TITLE_ID, "Cheater", "We saw that.", lambda s: 0, secret=True),
    )
}


def refresh_titles(identity: Identity, *, has_cheated: bool) -> list[str]:
    """Unlock/level up titles from the current stats.

    Levels never go down. Returns the ids whose level changed.
    """

    changed: list[str] = []
    for spec in TITLES.values():
        level = spec.level_for(identity.stats)
        if spec.id == CHEATER_TITLE_ID and has_cheated:
            level = 1
        if level > identity.unlocked_titles.get(spec.id, 0):
            identity.unlocked_titles[spec.id] = level
            changed.append(spec.id)
    return changed


def set_active_title(identity: Identity, title_id: str | None) -> None:
    if title_id is None:
        identity.active_title = None
        return
    if identity.unlocked_titles.get(title_id, 0) <= 0:
        raise ValueError("Title is not unlocked")
    identity.active_title = title_id


def display_title(identity: Identity) -> str | None:
    """Leaderboard label for the active title, e.g. "The Purist x3"."""

    tid = identity.active_title
    if not tid or tid not in TITLES:
        return None
    level = identity.unlocked_titles.get(tid, 0)
    if level <= 0:
        return None
    name = TITLES[tid].name
    return f"{name} x{level}" if level > 1 else name


def merge_identity(kept: Identity, incoming: Identity) -> Identity:
    """Combine the identity already held with one from an imported save.

    Stats and title levels take the higher value per field, so an older save
    can never lower them. The imported name and active title win when set.
    """

    stats = PlayerStats(
        **{
            name: max(getattr(kept.stats, name), getattr(incoming.stats, name))
            for name in PlayerStats.model_fields
        }
    )
    titles = dict(kept.unlocked_titles)
    for tid, level in incoming.unlocked_titles.items():
        titles[tid] = max(titles.get(tid, 0), level)

    active = incoming.active_title if titles.get(incoming.active_title or "", 0) > 0 else kept.active_title
    return Identity(
        player_name=incoming.player_name or kept.player_name,
        stats=stats,
        unlocked_titles=titles,
        active_title=active,
    )
