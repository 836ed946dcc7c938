from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum


class UpgradeId(StrEnum):
    # Standard shop (money)
    CHANCE = "CHANCE"
    SPEED = "SPEED"
    COMBO = "COMBO"
    VALUE = "VALUE"
    AUTO_FLIP = "AUTO_FLIP"
    PASSIVE_INCOME = "PASSIVE_INCOME"
    EDGING = "EDGING"
    HARD_MODE_BUFF = "HARD_MODE_BUFF"

    # Void shop (fragments)
    PRESTIGE_KARMA = "PRESTIGE_KARMA"
    PRESTIGE_FATE = "PRESTIGE_FATE"
    PRESTIGE_FLUX = "PRESTIGE_FLUX"
    PRESTIGE_PASSIVE = "PRESTIGE_PASSIVE"
    PRESTIGE_AUTO = "PRESTIGE_AUTO"
    PRESTIGE_AUTO_BUY = "PRESTIGE_AUTO_BUY"
    PRESTIGE_EDGING = "PRESTIGE_EDGING"
    PRESTIGE_GOLD_DIGGER = "PRESTIGE_GOLD_DIGGER"
    PRESTIGE_LIMITLESS = "PRESTIGE_LIMITLESS"
    PRESTIGE_MOM = "PRESTIGE_MOM"
    PRESTIGE_CARE_PACKAGE = "PRESTIGE_CARE_PACKAGE"
    PRESTIGE_VETERAN = "PRESTIGE_VETERAN"


class Currency(StrEnum):
    money = "money"
    fragments = "fragments"


def _table(values: tuple[float, ...]) -> Callable[[int], float]:
    def effect(level: int) -> float:
        return values[min(max(level, 0), len(values) - 1)]

    return effect


def _linear(per_level: float, base: float = 0.0) -> Callable[[int], float]:
    def effect(level: int) -> float:
        return base + level * per_level

    return effect


def _owned(level: int) -> float:
    return 1.0 if level > 0 else 0.0


def _fmt_percent(value: float) -> str:
    return f"{value * 100:.0f}%"


def _fmt_seconds(value: float) -> str:
    return f"{value / 1000:.2f}s"


def _fmt_multiplier(value: float) -> str:
    return f"{value:g}x"


def _fmt_dollars(value: float) -> str:
    return f"${value:,.0f}"


def _fmt_on_off(value: float) -> str:
    return "ON" if value > 0 else "OFF"


def _fmt_count(value: float) -> str:
    return f"{value:.0f}"


@dataclass(frozen=True, slots=True)
class UpgradeConfig:
    """Static definition of one upgrade.

    `cost_tiers[n]` is the price of going from level n to n+1, so the catalog
    needs at least `extended_max_level` tiers when an extension exists.
    """

    id: UpgradeId
    name: str
    description: str
    cost_tiers: tuple[int, ...]
    max_level: int
    effect: Callable[[int], float]
    format_effect: Callable[[float], str]
    currency: Currency = Currency.money
    # Carried forward unchanged by an ascension.
    prestige: bool = False
    extended_max_level: int | None = None
    extended_by: UpgradeId | None = None
    # Highest streak the run must have reached before the item can be bought.
    unlock_streak: int = 0
    # Levels are charges spent by play rather than permanent levels.
    consumable: bool = False


UPGRADES: Mapping[UpgradeId, UpgradeConfig] = {
    UpgradeId.CHANCE: UpgradeConfig(
        id=UpgradeId.CHANCE,
        name="Weighted Coin",
        description="Increases the probability of flipping Heads.",
        cost_tiers=(1, 10, 100, 200, 300, 500, 1_000, 1_500, 2_000, 3_000, 5_000, 7_000, 8_000, 9_000, 25_000, 50_000),
        max_level=14,
        effect=_linear(0.05),
        format_effect=_fmt_percent,
        extended_max_level=16,
        extended_by=UpgradeId.PRESTIGE_LIMITLESS,
    ),
    UpgradeId.SPEED: UpgradeConfig(
        id=UpgradeId.SPEED,
        name="Sleight of Hand",
        description="Reduces the time it takes to flip.",
        cost_tiers=(1, 10, 100, 1_000, 10_000, 25_000, 50_000, 100_000, 250_000),
        max_level=5,
        effect=_table((2000, 1500, 1000, 750, 500, 250, 100, 50, 25, 10)),
        format_effect=_fmt_seconds,
        extended_max_level=9,
        extended_by=UpgradeId.PRESTIGE_LIMITLESS,
    ),
    UpgradeId.COMBO: UpgradeConfig(
        id=UpgradeId.COMBO,
        name="Streak Multiplier",
        description="Increases money earned for consecutive Heads.",
        cost_tiers=(1, 10, 100, 1_000, 10_000),
        max_level=5,
        effect=_table((1.0, 1.25, 1.5, 2.0, 3.0, 5.0)),
        format_effect=_fmt_multiplier,
    ),
    UpgradeId.VALUE: UpgradeConfig(
        id=UpgradeId.VALUE,
        name="Coin Value",
        description="Increases the base value of a Heads result.",
        cost_tiers=(1, 10, 100, 1_000, 10_000, 50_000, 100_000, 500_000),
        max_level=5,
        effect=_table((1, 5, 10, 25, 50, 100, 250, 500, 1000)),
        format_effect=_fmt_dollars,
        extended_max_level=8,
        extended_by=UpgradeId.PRESTIGE_LIMITLESS,
    ),
    UpgradeId.AUTO_FLIP: UpgradeConfig(
        id=UpgradeId.AUTO_FLIP,
        name="Auto Flipper",
        description="Automatically flips the coin for you.",
        cost_tiers=(500,),
        max_level=1,
        effect=_owned,
        format_effect=_fmt_on_off,
        unlock_streak=5,
    ),
    UpgradeId.PASSIVE_INCOME: UpgradeConfig(
        id=UpgradeId.PASSIVE_INCOME,
        name="Consolation Prize",
        description="Earn a little money every time you flip Tails.",
        cost_tiers=(50, 250, 1_000, 5_000, 20_000),
        max_level=5,
        effect=_table((0, 1, 5, 10, 25, 50)),
        format_effect=_fmt_dollars,
        unlock_streak=3,
    ),
    UpgradeId.EDGING: UpgradeConfig(
        id=UpgradeId.EDGING,
        name="Edging",
        description="Multiplies all earnings by 10.",
        cost_tiers=(5_000,),
        max_level=1,
        effect=_table((1, 10)),
        format_effect=_fmt_multiplier,
        unlock_streak=9,
    ),
    UpgradeId.HARD_MODE_BUFF: UpgradeConfig(
        id=UpgradeId.HARD_MODE_BUFF,
        name="Loaded Thumb",
        description="+20% chance for your next flip. Hard mode only.",
        cost_tiers=(10_000, 10_000, 10_000),
        max_level=3,
        effect=_linear(0.20),
        format_effect=_fmt_count,
        consumable=True,
    ),
    UpgradeId.PRESTIGE_KARMA: UpgradeConfig(
        id=UpgradeId.PRESTIGE_KARMA,
        name="Karma",
        description="Start every run with money in your pocket.",
        cost_tiers=(1, 3, 5, 10, 20),
        max_level=5,
        effect=_table((0, 100, 500, 2_500, 10_000, 50_000)),
        format_effect=_fmt_dollars,
        currency=Currency.fragments,
        prestige=True,
    ),
    UpgradeId.PRESTIGE_FATE: UpgradeConfig(
        id=UpgradeId.PRESTIGE_FATE,
        name="Fate",
        description="Permanently increases the base chance of Heads.",
        cost_tiers=(2, 4, 8, 16, 32),
        max_level=5,
        effect=_linear(0.01),
        format_effect=_fmt_percent,
        currency=Currency.fragments,
        prestige=True,
    ),
    UpgradeId.PRESTIGE_FLUX: UpgradeConfig(
        id=UpgradeId.PRESTIGE_FLUX,
        name="Flux",
        description="Permanently shaves time off every flip.",
        cost_tiers=(2, 4, 8, 16, 32),
        max_level=5,
        effect=_linear(50),
        format_effect=_fmt_seconds,
        currency=Currency.fragments,
        prestige=True,
    ),
    UpgradeId.PRESTIGE_PASSIVE: UpgradeConfig(
        id=UpgradeId.PRESTIGE_PASSIVE,
        name="Trust Fund",
        description="Permanent income on every Tails.",
        cost_tiers=(3, 6, 12),
        max_level=3,
        effect=_table((0, 10, 50, 250)),
        format_effect=_fmt_dollars,
        currency=Currency.fragments,
        prestige=True,
    ),
    UpgradeId.PRESTIGE_AUTO: UpgradeConfig(
        id=UpgradeId.PRESTIGE_AUTO,
        name="Ghost Hand",
        description="Auto Flipper is unlocked from the start of every run.",
        cost_tiers=(5,),
        max_level=1,
        effect=_owned,
        format_effect=_fmt_on_off,
        currency=Currency.fragments,
        prestige=True,
    ),
    UpgradeId.PRESTIGE_AUTO_BUY: UpgradeConfig(
        id=UpgradeId.PRESTIGE_AUTO_BUY,
        name="Personal Shopper",
        description="Automatically buys standard upgrades when you can afford them.",
        cost_tiers=(10,),
        max_level=1,
        effect=_owned,
        format_effect=_fmt_on_off,
        currency=Currency.fragments,
        prestige=True,
    ),
    UpgradeId.PRESTIGE_EDGING: UpgradeConfig(
        id=UpgradeId.PRESTIGE_EDGING,
        name="Eternal Edge",
        description="Edging is permanently active.",
        cost_tiers=(15,),
        max_level=1,
        effect=_table((1, 10)),
        format_effect=_fmt_multiplier,
        currency=Currency.fragments,
        prestige=True,
    ),
    UpgradeId.PRESTIGE_GOLD_DIGGER: UpgradeConfig(
        id=UpgradeId.PRESTIGE_GOLD_DIGGER,
        name="Gold Digger",
        description="Multiplies all Heads earnings by 10.",
        cost_tiers=(25,),
        max_level=1,
        effect=_table((1, 10)),
        format_effect=_fmt_multiplier,
        currency=Currency.fragments,
        prestige=True,
    ),
    UpgradeId.PRESTIGE_LIMITLESS: UpgradeConfig(
        id=UpgradeId.PRESTIGE_LIMITLESS,
        name="Limitless",
        description="Breaks every cap. Chance up to 99%, flips down to 1ms.",
        cost_tiers=(50,),
        max_level=1,
        effect=_owned,
        format_effect=_fmt_on_off,
        currency=Currency.fragments,
        prestige=True,
    ),
    UpgradeId.PRESTIGE_MOM: UpgradeConfig(
        id=UpgradeId.PRESTIGE_MOM,
        name="Your Mom",
        description="Do not press this button.",
        cost_tiers=(1_000_000,),
        max_level=1,
        effect=_owned,
        format_effect=_fmt_on_off,
        currency=Currency.money,
        prestige=True,
    ),
    UpgradeId.PRESTIGE_CARE_PACKAGE: UpgradeConfig(
        id=UpgradeId.PRESTIGE_CARE_PACKAGE,
        name="Care Package",
        description="A dollar store gift basket. Adds a little to every Tails.",
        cost_tiers=(1, 1, 1, 1, 1),
        max_level=5,
        effect=_linear(1),
        format_effect=_fmt_dollars,
        currency=Currency.fragments,
        prestige=True,
    ),
    UpgradeId.PRESTIGE_VETERAN: UpgradeConfig(
        id=UpgradeId.PRESTIGE_VETERAN,
        name="Veteran",
        description="Beat hard mode to earn it. Multiplies all Heads earnings by 10.",
        cost_tiers=(40,),
        max_level=1,
        effect=_table((1, 10)),
        format_effect=_fmt_multiplier,
        currency=Currency.fragments,
        prestige=True,
    ),
}

# Ordinary-currency items the auto-buyer considers, highest priority first.
AUTO_BUY_PRIORITY: tuple[UpgradeId, ...] = (
    UpgradeId.CHANCE,
    UpgradeId.VALUE,
    UpgradeId.COMBO,
    UpgradeId.SPEED,
    UpgradeId.PASSIVE_INCOME,
    UpgradeId.AUTO_FLIP,
    UpgradeId.EDGING,
)


def get_upgrade(upgrade_id: UpgradeId | str) -> UpgradeConfig:
    uid = UpgradeId(upgrade_id) if not isinstance(upgrade_id, UpgradeId) else upgrade_id
    return UPGRADES[uid]


def level_of(upgrades: Mapping[UpgradeId, int], upgrade_id: UpgradeId) -> int:
    return int(upgrades.get(upgrade_id, 0) or 0)


def owns(upgrades: Mapping[UpgradeId, int], *ids: UpgradeId) -> bool:
    return any(level_of(upgrades, uid) > 0 for uid in ids)


def effect_of(upgrades: Mapping[UpgradeId, int], upgrade_id: UpgradeId) -> float:
    return UPGRADES[upgrade_id].effect(level_of(upgrades, upgrade_id))


def effective_max_level(cfg: UpgradeConfig, upgrades: Mapping[UpgradeId, int]) -> int:
    if cfg.extended_max_level is not None and cfg.extended_by is not None and owns(upgrades, cfg.extended_by):
        return cfg.extended_max_level
    return cfg.max_level


def is_maxed(cfg: UpgradeConfig, upgrades: Mapping[UpgradeId, int]) -> bool:
    return level_of(upgrades, cfg.id) >= effective_max_level(cfg, upgrades)


def next_cost(cfg: UpgradeConfig, upgrades: Mapping[UpgradeId, int]) -> int | None:
    """Price of the next level, or None when maxed."""

    if is_maxed(cfg, upgrades):
        return None
    level = level_of(upgrades, cfg.id)
    return cfg.cost_tiers[min(level, len(cfg.cost_tiers) - 1)]


def default_levels() -> dict[UpgradeId, int]:
    return {uid: 0 for uid in UpgradeId}
