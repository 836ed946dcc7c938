from __future__ import annotations

import math
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from beat_the_odds.catalog import UpgradeId, default_levels


HISTORY_LIMIT = 10


class _CamelModel(BaseModel):
    # Saves and the browser UI use camelCase keys.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Outcome(StrEnum):
    heads = "H"
    tails = "T"


class PlayerStats(_CamelModel):
    """Meta counters that survive run resets and run wipes."""

    purist_wins: int = Field(default=0, ge=0)
    # "Your Mom" button presses; the leaderboard category is `mommy`.
    special_purchases: int = Field(default=0, ge=0, alias="momPurchases")
    highest_cash: int = Field(default=0, ge=0)
    total_prestiges: int = Field(default=0, ge=0)
    max_prestige_level: int = Field(default=0, ge=0)
    hard_mode_wins: int = Field(default=0, ge=0)


class RunFlags(_CamelModel):
    is_purist_run: bool = True
    has_cheated: bool = False


class Identity(_CamelModel):
    player_name: str | None = None
    stats: PlayerStats = Field(default_factory=PlayerStats)
    unlocked_titles: dict[str, int] = Field(default_factory=dict)
    active_title: str | None = None


class PlayerMeta(_CamelModel):
    """Stored under its own key so a run wipe never loses it."""

    identity: Identity = Field(default_factory=Identity)


# Flat keys written by saves that predate the nested groups.
_LEGACY_RUN_FLAG_KEYS = ("isPuristRun", "hasCheated")
_LEGACY_IDENTITY_KEYS = ("playerName", "stats", "unlockedTitles", "activeTitle")


class GameState(_CamelModel):
    money: int = Field(default=0, ge=0)
    streak: int = Field(default=0, ge=0)
    max_streak: int = Field(default=0, ge=0)
    total_flips: int = Field(default=0, ge=0)
    upgrades: dict[UpgradeId, int] = Field(default_factory=default_levels)
    history: list[Outcome] = Field(default_factory=list)

    prestige_level: int = Field(default=0, ge=0)
    void_fragments: int = Field(default=0, ge=0)
    auto_flip_enabled: bool = True
    auto_buy_enabled: bool = True

    is_hard_mode: bool = False

    run_flags: RunFlags = Field(default_factory=RunFlags)
    identity: Identity = Field(default_factory=Identity)

    @model_validator(mode="before")
    @classmethod
    def _migrate_flat_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "runFlags" not in data and "run_flags" not in data:
            flags = {k: data.pop(k) for k in _LEGACY_RUN_FLAG_KEYS if k in data}
            if flags:
                data["runFlags"] = flags
        if "identity" not in data:
            ident = {k: data.pop(k) for k in _LEGACY_IDENTITY_KEYS if k in data}
            if ident:
                data["identity"] = ident
        return data

    @field_validator("upgrades", mode="before")
    @classmethod
    def _backfill_upgrades(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        levels = default_levels()
        known = {u.value for u in UpgradeId}
        for key, level in value.items():
            if str(key) not in known:
                continue
            if level is None:
                level = 0
            elif isinstance(level, int) and not isinstance(level, bool):
                level = max(0, level)
            elif isinstance(level, float) and math.isfinite(level):
                level = max(0, int(level))
            # Anything else is left for the field's int validation to reject.
            levels[UpgradeId(str(key))] = level
        return levels

    @field_validator("history", mode="before")
    @classmethod
    def _bound_history(cls, value: Any) -> Any:
        if isinstance(value, list):
            return value[:HISTORY_LIMIT]
        return value


class LeaderboardCategory(StrEnum):
    purist = "purist"
    prestige = "prestige"
    rich = "rich"
    mommy = "mommy"


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    score: int | float
    # Epoch milliseconds; the wire name is `date`.
    timestamp: int = Field(default=0, alias="date")
    title: str | None = None


class GlobalLeaderboard(BaseModel):
    purist: list[LeaderboardEntry] = Field(default_factory=list)
    prestige: list[LeaderboardEntry] = Field(default_factory=list)
    rich: list[LeaderboardEntry] = Field(default_factory=list)
    mommy: list[LeaderboardEntry] = Field(default_factory=list)

    @classmethod
    def from_document(cls, data: object) -> "GlobalLeaderboard":
        """Lenient parse of a remote/local document.

        Missing or malformed category arrays become empty; malformed entries are dropped.
        """

        board = cls()
        if not isinstance(data, dict):
            return board
        for cat in LeaderboardCategory:
            raw = data.get(cat.value)
            if not isinstance(raw, list):
                continue
            entries: list[LeaderboardEntry] = []
            for item in raw:
                try:
                    entries.append(LeaderboardEntry.model_validate(item))
                except ValueError:
                    continue
            setattr(board, cat.value, entries)
        return board

    def category(self, cat: LeaderboardCategory) -> list[LeaderboardEntry]:
        return getattr(self, cat.value)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ScoreUpdate(BaseModel):
    category: LeaderboardCategory
    entry: LeaderboardEntry


# ---- request / response bodies ----


class ToggleRequest(BaseModel):
    enabled: bool


class PlayerNameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=24)


class TitleRequest(BaseModel):
    title_id: str | None = None


class KeyInputRequest(BaseModel):
    code: str
    # True when focus is inside a text field; all shortcuts are ignored then.
    in_text_input: bool = False


class SaveImportRequest(BaseModel):
    data: str = Field(..., min_length=1)


class ShopItemView(_CamelModel):
    id: UpgradeId
    name: str
    description: str
    level: int
    max_level: int
    next_cost: int | None
    currency: str
    unlocked: bool
    affordable: bool
    effect: str
    next_effect: str | None


class GameView(_CamelModel):
    state: GameState
    probability: float
    flip_duration_ms: int
    win_streak: int
    payout_next_heads: int
    expected_flips_to_win: float
    is_flipping: bool
    has_won: bool
    can_ascend: bool
    hard_mode_unlocked: bool
    pending_interstitial: str | None
    shop: list[ShopItemView]


class ReminderResponse(BaseModel):
    show: bool
    month: str


class KeyInputResponse(BaseModel):
    action: str


class SaveExportResponse(BaseModel):
    data: str
