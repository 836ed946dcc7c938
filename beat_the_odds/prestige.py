"""Ascension: trade a won run for void fragments and a higher prestige level."""
from __future__ import annotations

from dataclasses import dataclass

from beat_the_odds.api.models import GameState, RunFlags
from beat_the_odds.catalog import UPGRADES, UpgradeId, default_levels, effect_of


# Flat reward. The scaling variant (5 + 5 per prestige level) was dropped.
FRAGMENTS_PER_WIN = 5


@dataclass(frozen=True, slots=True)
class AscensionResult:
    state: GameState
    fragments_awarded: int
    previous_level: int
    new_level: int
    # Best prestige level recorded before this ascension.
    previous_best: int

    @property
    def should_submit(self) -> bool:
        return self.new_level >= self.previous_best


def carried_upgrades(upgrades: dict[UpgradeId, int]) -> dict[UpgradeId, int]:
    out = default_levels()
    for uid, cfg in UPGRADES.items():
        if cfg.prestige:
            out[uid] = upgrades.get(uid, 0)
    return out


def ascend(state: GameState) -> AscensionResult:
    """Build the next run's state. The input is not modified."""

    start_money = int(effect_of(state.upgrades, UpgradeId.PRESTIGE_KARMA))
    new_level = state.prestige_level + 1

    identity = state.identity.model_copy(deep=True)
    stats = identity.stats
    previous_best = stats.max_prestige_level
    stats.total_prestiges += 1
    stats.max_prestige_level = max(stats.max_prestige_level, new_level)

    next_state = GameState(
        money=start_money,
        upgrades=carried_upgrades(state.upgrades),
        prestige_level=new_level,
        void_fragments=state.void_fragments + FRAGMENTS_PER_WIN,
        auto_flip_enabled=state.auto_flip_enabled,
        auto_buy_enabled=state.auto_buy_enabled,
        is_hard_mode=state.is_hard_mode,
        run_flags=RunFlags(is_purist_run=True, has_cheated=state.run_flags.has_cheated),
        identity=identity,
    )
    return AscensionResult(
        state=next_state,
        fragments_awarded=FRAGMENTS_PER_WIN,
        previous_level=state.prestige_level,
        new_level=new_level,
        previous_best=previous_best,
    )
