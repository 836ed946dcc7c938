"""Derived values of the coin economy.

Pure functions over upgrade levels and prestige level. Nothing here mutates
state, so the engine and the API can call them on every tick/render.
"""
from __future__ import annotations

import math
from collections.abc import Mapping

from beat_the_odds.catalog import UpgradeId, effect_of, owns


BASE_PROBABILITY = 0.20
PROBABILITY_CAP = 0.90
HARD_MODE_PROBABILITY_CAP = 0.70
LIMITLESS_PROBABILITY_CAP = 0.99
HARD_MODE_BUFF_BONUS = 0.20

MIN_FLIP_DURATION_MS = 50
LIMITLESS_MIN_FLIP_DURATION_MS = 1

WINNING_STREAK = 10
HARD_MODE_WINNING_STREAK = 15
HARD_MODE_PRESTIGE_GATE = 5

PRESTIGE_INCOME_STEP = 0.1
FLAT_MULTIPLIER = 10

Upgrades = Mapping[UpgradeId, int]


def has_limitless(upgrades: Upgrades) -> bool:
    return owns(upgrades, UpgradeId.PRESTIGE_LIMITLESS)


def probability_cap(upgrades: Upgrades, *, hard_mode: bool) -> float:
    if has_limitless(upgrades):
        return LIMITLESS_PROBABILITY_CAP
    return HARD_MODE_PROBABILITY_CAP if hard_mode else PROBABILITY_CAP


def probability(upgrades: Upgrades, prestige_level: int, hard_mode: bool, *, buffed: bool = False) -> float:
    """Chance of Heads for the next flip.

    A buffed flip gets the hard-mode buff bonus and is clamped by the normal cap
    instead of the hard-mode one.
    """

    raw = BASE_PROBABILITY + effect_of(upgrades, UpgradeId.CHANCE) + effect_of(upgrades, UpgradeId.PRESTIGE_FATE)
    cap = probability_cap(upgrades, hard_mode=hard_mode)
    if buffed:
        raw += HARD_MODE_BUFF_BONUS
        cap = probability_cap(upgrades, hard_mode=False)
    return max(BASE_PROBABILITY, min(cap, raw))


def flip_duration_ms(upgrades: Upgrades, prestige_level: int) -> int:
    raw = effect_of(upgrades, UpgradeId.SPEED) - effect_of(upgrades, UpgradeId.PRESTIGE_FLUX)
    floor = LIMITLESS_MIN_FLIP_DURATION_MS if has_limitless(upgrades) else MIN_FLIP_DURATION_MS
    return int(max(floor, raw))


def prestige_multiplier(prestige_level: int) -> float:
    return 1 + prestige_level * PRESTIGE_INCOME_STEP


def combo_multiplier(streak: int, combo_factor: float) -> float:
    if streak <= 1:
        return 1.0
    return 1 + streak * (combo_factor - 1)


def flat_multipliers(upgrades: Upgrades) -> list[int]:
    """Each active flat multiplier is 10x; they stack multiplicatively."""

    out: list[int] = []
    if owns(upgrades, UpgradeId.EDGING, UpgradeId.PRESTIGE_EDGING):
        out.append(FLAT_MULTIPLIER)
    if owns(upgrades, UpgradeId.PRESTIGE_GOLD_DIGGER):
        out.append(FLAT_MULTIPLIER)
    if owns(upgrades, UpgradeId.PRESTIGE_VETERAN):
        out.append(FLAT_MULTIPLIER)
    return out


def payout(streak: int, upgrades: Upgrades, prestige_level: int, multipliers: list[int] | None = None) -> int:
    """Money earned by a Heads that brought the streak to `streak`.

    Intermediate values stay floating point; only the final result is truncated.
    """

    if multipliers is None:
        multipliers = flat_multipliers(upgrades)
    base_value = effect_of(upgrades, UpgradeId.VALUE)
    earned = base_value * combo_multiplier(streak, effect_of(upgrades, UpgradeId.COMBO))
    for m in multipliers:
        earned *= m
    earned *= prestige_multiplier(prestige_level)
    return max(0, math.floor(earned))


def passive_income(upgrades: Upgrades, prestige_level: int) -> int:
    """Consolation money paid on Tails. Never combined with a Heads payout."""

    base = (
        effect_of(upgrades, UpgradeId.PASSIVE_INCOME)
        + effect_of(upgrades, UpgradeId.PRESTIGE_PASSIVE)
        + effect_of(upgrades, UpgradeId.PRESTIGE_CARE_PACKAGE)
    )
    return max(0, math.floor(base * (1 + prestige_level)))


def win_streak(hard_mode: bool) -> int:
    return HARD_MODE_WINNING_STREAK if hard_mode else WINNING_STREAK


def expected_flips_to_streak(p: float, n: int) -> float:
    """Expected number of flips to see `n` Heads in a row at chance `p`."""

    if p <= 0:
        return math.inf
    if p >= 1:
        return float(n)
    return (p ** -n - 1) / (1 - p)


def has_auto_flip(upgrades: Upgrades) -> bool:
    return owns(upgrades, UpgradeId.AUTO_FLIP, UpgradeId.PRESTIGE_AUTO)


def has_auto_buy(upgrades: Upgrades) -> bool:
    return owns(upgrades, UpgradeId.PRESTIGE_AUTO_BUY)
