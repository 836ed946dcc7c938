from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from beat_the_odds import economy
from beat_the_odds.api.models import GameState
from beat_the_odds.catalog import Currency, UpgradeId, get_upgrade, is_maxed, next_cost


@dataclass(frozen=True, slots=True)
class GuardContext:
    """Everything a guard may look at.

    Rejections are reasons, not exceptions: an invalid flip or purchase is a no-op.
    """

    action: str
    state: GameState
    is_idle: bool
    has_won: bool
    interstitial_pending: bool
    upgrade_id: UpgradeId | None = None


class Guard(ABC):
    @abstractmethod
    def check(self, *, ctx: GuardContext) -> str | None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class IdleGuard(Guard):
    def check(self, *, ctx: GuardContext) -> str | None:
        return None if ctx.is_idle else "a flip is already resolving"


@dataclass(frozen=True, slots=True)
class NotWonGuard(Guard):
    def check(self, *, ctx: GuardContext) -> str | None:
        if ctx.has_won or ctx.state.streak >= economy.win_streak(ctx.state.is_hard_mode):
            return "the run is already won"
        return None


@dataclass(frozen=True, slots=True)
class WonGuard(Guard):
    def check(self, *, ctx: GuardContext) -> str | None:
        return None if ctx.has_won else "the run has not been won yet"


@dataclass(frozen=True, slots=True)
class NoInterstitialGuard(Guard):
    def check(self, *, ctx: GuardContext) -> str | None:
        return "an interstitial is pending" if ctx.interstitial_pending else None


@dataclass(frozen=True, slots=True)
class PurchasableGuard(Guard):
    """Item exists, is not maxed, and its unlock conditions are met."""

    def check(self, *, ctx: GuardContext) -> str | None:
        if ctx.upgrade_id is None:
            return "no upgrade given"
        cfg = get_upgrade(ctx.upgrade_id)
        state = ctx.state
        if is_maxed(cfg, state.upgrades):
            return f"{cfg.id} is at max level"
        if not is_unlocked(state, cfg.id):
            return f"{cfg.id} is still locked"
        return None


@dataclass(frozen=True, slots=True)
class AffordableGuard(Guard):
    def check(self, *, ctx: GuardContext) -> str | None:
        if ctx.upgrade_id is None:
            return "no upgrade given"
        cfg = get_upgrade(ctx.upgrade_id)
        cost = next_cost(cfg, ctx.state.upgrades)
        if cost is None:
            return f"{cfg.id} is at max level"
        wallet = ctx.state.money if cfg.currency == Currency.money else ctx.state.void_fragments
        return None if wallet >= cost else f"cannot afford {cfg.id} ({cost} {cfg.currency})"


@dataclass(frozen=True, slots=True)
class HardModeGateGuard(Guard):
    """Hard mode can only be toggled between flips, at the start of a run, past the prestige gate."""

    def check(self, *, ctx: GuardContext) -> str | None:
        if ctx.state.prestige_level < economy.HARD_MODE_PRESTIGE_GATE:
            return "hard mode is locked"
        if ctx.state.streak > 0 or ctx.has_won:
            return "hard mode can only change between streaks"
        return None


def is_unlocked(state: GameState, upgrade_id: UpgradeId) -> bool:
    """Run-progress unlocks. Owned items always count as unlocked."""

    cfg = get_upgrade(upgrade_id)
    if state.upgrades.get(upgrade_id, 0) > 0 and not cfg.consumable:
        return True
    if upgrade_id == UpgradeId.HARD_MODE_BUFF:
        return state.is_hard_mode
    if upgrade_id == UpgradeId.PRESTIGE_VETERAN:
        return state.identity.stats.hard_mode_wins > 0
    return state.max_streak >= cfg.unlock_streak


@dataclass(frozen=True, slots=True)
class GuardPipeline:
    guards: tuple[Guard, ...]

    def first_rejection(self, *, ctx: GuardContext) -> str | None:
        for g in self.guards:
            reason = g.check(ctx=ctx)
            if reason is not None:
                return reason
        return None


DEFAULT_PIPELINES: dict[str, GuardPipeline] = {
    "flip": GuardPipeline(guards=(IdleGuard(), NotWonGuard(), NoInterstitialGuard())),
    "buy": GuardPipeline(guards=(NoInterstitialGuard(), PurchasableGuard(), AffordableGuard())),
    "ascend": GuardPipeline(guards=(IdleGuard(), WonGuard(), NoInterstitialGuard())),
    "hard_mode": GuardPipeline(guards=(IdleGuard(), HardModeGateGuard(), NoInterstitialGuard())),
}


def pipeline_for(action: str) -> GuardPipeline:
    pipe = DEFAULT_PIPELINES.get(action)
    if pipe is None:
        raise ValueError(f"Unknown action: {action}")
    return pipe
